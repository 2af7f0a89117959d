"""Entry point for ``python -m pm_dashboard``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

from pm_dashboard.core import csv_export
from pm_dashboard.core.backlog_health import backlog_breakdown, calculate_backlog_health
from pm_dashboard.core.compliance import find_non_compliant_issues
from pm_dashboard.core.data_models import Snapshot
from pm_dashboard.core.dependencies import find_blocked_issues
from pm_dashboard.core.forecast import forecast_all_initiatives, monte_carlo_forecast
from pm_dashboard.core.initiatives import (
    build_initiatives,
    calculate_cascade_impact,
    detect_initiative_dependencies,
)
from pm_dashboard.core.insights import generate_insights
from pm_dashboard.core.pdf_generator import ReportConfig, StatusReport, generate_pdf
from pm_dashboard.core.snapshot import load_snapshot
from pm_dashboard.services.config_manager import ConfigManager
from pm_dashboard.services.criteria_config import CriteriaConfigService
from pm_dashboard.services.decisions import DecisionLog
from pm_dashboard.services.dod_templates import DoDTemplateService
from pm_dashboard.services.health_history import BacklogHealthHistory
from pm_dashboard.services.retro_actions import RetroActionService
from pm_dashboard.services.sprint_goals import SprintGoalService
from pm_dashboard.services.store import ProjectStore

logger = logging.getLogger("pm_dashboard")

EXPORT_KINDS = (
    "non_compliant",
    "dod_violations",
    "dependency_blockers",
    "initiative_forecast",
    "backlog_health",
    "initiative_dependencies",
    "retro_actions",
    "sprint_goals",
    "decisions",
)


# -- helpers ------------------------------------------------------------------

def _read_snapshot(path: Path) -> Snapshot:
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a JSON object at the top level")
    return load_snapshot(raw)


def _open_store(args: argparse.Namespace, config: ConfigManager, snapshot: Snapshot) -> ProjectStore:
    store = ProjectStore.from_config(config)
    if args.data_dir:
        store = ProjectStore(args.data_dir, store.project_id)
    project = args.project or snapshot.project_id
    if project:
        store.project_id = project
    return store


def _build_exports(
    snapshot: Snapshot, store: ProjectStore, config: ConfigManager, kinds: list[str]
) -> dict[str, str]:
    criteria_service = CriteriaConfigService(store, config.get("stale_thresholds"))
    sp_refined = bool(config.get("story_points_count_as_refined"))
    initiatives = build_initiatives(snapshot.epics, snapshot.issues)
    builders: dict[str, Any] = {
        "non_compliant": lambda: csv_export.export_non_compliant(
            find_non_compliant_issues(
                snapshot.issues, criteria_service.criteria(), criteria_service.stale_thresholds()
            )
        ),
        "dod_violations": lambda: csv_export.export_dod_violations(
            DoDTemplateService(store).violations(snapshot.issues)
        ),
        "dependency_blockers": lambda: csv_export.export_dependency_blockers(
            find_blocked_issues(snapshot.issues)
        ),
        "initiative_forecast": lambda: csv_export.export_initiative_forecast(
            forecast_all_initiatives(initiatives)
        ),
        "backlog_health": lambda: csv_export.export_backlog_health(
            backlog_breakdown(snapshot.issues, story_points_count_as_refined=sp_refined)
        ),
        "initiative_dependencies": lambda: csv_export.export_initiative_dependencies(
            initiatives, detect_initiative_dependencies(initiatives, snapshot.issues)
        ),
        "retro_actions": lambda: csv_export.export_retro_actions(RetroActionService(store).all()),
        "sprint_goals": lambda: csv_export.export_sprint_goals(SprintGoalService(store).history()),
        "decisions": lambda: csv_export.export_decisions(DecisionLog(store).all()),
    }
    return {kind: builders[kind]() for kind in kinds}


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    logger.info("Wrote %s", path)


# -- commands -----------------------------------------------------------------

def _cmd_export(args: argparse.Namespace, config: ConfigManager, snapshot: Snapshot) -> int:
    store = _open_store(args, config, snapshot)
    kinds = args.only or list(EXPORT_KINDS)
    for kind, content in _build_exports(snapshot, store, config, kinds).items():
        _write_text(args.out / csv_export.DEFAULT_FILENAMES[kind], content)
    return 0


def _cmd_cascade(args: argparse.Namespace, config: ConfigManager, snapshot: Snapshot) -> int:
    initiatives = build_initiatives(snapshot.epics, snapshot.issues)
    if not any(i.id == args.initiative for i in initiatives):
        logger.error("Unknown initiative %r", args.initiative)
        return 1
    edges = detect_initiative_dependencies(initiatives, snapshot.issues)
    impact = calculate_cascade_impact(args.initiative, args.weeks, initiatives, edges)
    _write_text(
        args.out / csv_export.DEFAULT_FILENAMES["cascade_impact"],
        csv_export.export_cascade_impact(impact),
    )
    return 0


def _cmd_report(args: argparse.Namespace, config: ConfigManager, snapshot: Snapshot) -> int:
    store = _open_store(args, config, snapshot)
    initiatives = build_initiatives(snapshot.epics, snapshot.issues)
    history = BacklogHealthHistory.from_config(store, config)
    health = calculate_backlog_health(
        snapshot.issues, story_points_count_as_refined=bool(config.get("story_points_count_as_refined"))
    )
    history.record(health)

    monte_carlo = {}
    for initiative in initiatives:
        result = monte_carlo_forecast(initiative)
        if result is not None:
            monte_carlo[initiative.name] = result

    report = StatusReport(
        config=ReportConfig(
            title=args.title or config.get("report_title", "Project Status Report"),
            author=config.get("report_author", ""),
            project_display_name=snapshot.project_id or "",
            report_date=date.today(),
            confidential=bool(config.get("company_name")),
            company_name=config.get("company_name", ""),
            dark_mode=args.dark or bool(config.get("dark_mode")),
        ),
        forecasts=forecast_all_initiatives(initiatives),
        monte_carlo=monte_carlo,
        insights=generate_insights(snapshot.issues, snapshot.milestones, snapshot.epics),
        backlog_health=health,
        health_history=history.samples(),
    )
    pdf = generate_pdf(report)
    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_bytes(pdf)
    logger.info("Report written to %s", args.out)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pm-dashboard",
        description="Project-management analytics over an issue-tracker snapshot.",
    )
    parser.add_argument("--snapshot", type=Path, required=True, help="Snapshot JSON file.")
    parser.add_argument("--project", help="Project id used to scope stored records.")
    parser.add_argument("--config-dir", type=Path, help="Override the settings directory.")
    parser.add_argument("--data-dir", type=Path, help="Override the record store directory.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", help="Write CSV exports.")
    export.add_argument("--out", type=Path, default=Path("."), help="Output directory.")
    export.add_argument("--only", nargs="+", choices=EXPORT_KINDS, help="Restrict to these exports.")
    export.set_defaults(handler=_cmd_export)

    cascade = sub.add_parser("cascade", help="Export the cascade impact of delaying an initiative.")
    cascade.add_argument("--initiative", required=True, help="Initiative id (label slug).")
    cascade.add_argument("--weeks", type=float, required=True, help="Delay in weeks.")
    cascade.add_argument("--out", type=Path, default=Path("."), help="Output directory.")
    cascade.set_defaults(handler=_cmd_cascade)

    report = sub.add_parser("report", help="Render the PDF status report.")
    report.add_argument("--out", type=Path, default=Path("status-report.pdf"), help="Output PDF path.")
    report.add_argument("--title", help="Report title.")
    report.add_argument("--dark", action="store_true", help="Dark colour scheme.")
    report.set_defaults(handler=_cmd_report)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command-line interface."""
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    config = ConfigManager(args.config_dir)
    try:
        snapshot = _read_snapshot(args.snapshot)
    except FileNotFoundError:
        logger.error("Snapshot file not found: %s", args.snapshot)
        return 1
    except (json.JSONDecodeError, ValueError) as exc:
        logger.error("Could not read snapshot %s: %s", args.snapshot, exc)
        return 1
    return args.handler(args, config, snapshot)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
