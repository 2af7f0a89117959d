"""ReportLab PDF builder for the landscape 16:9 executive status report.

Page order: title, initiative forecast table, one Monte-Carlo page per
initiative that could be simulated, key insights, backlog health.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from xml.sax.saxutils import escape

from reportlab.graphics.shapes import Drawing, Rect, String
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    BaseDocTemplate,
    Frame,
    Image,
    PageBreak,
    PageTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)

from pm_dashboard.core.backlog_health import BacklogHealth
from pm_dashboard.core.chart_generator import generate_health_trend_chart, generate_monte_carlo_chart
from pm_dashboard.core.forecast import ForecastRow, MonteCarloResult
from pm_dashboard.core.insights import Insight
from pm_dashboard.core.records import HealthSample

logger = logging.getLogger(__name__)

PAGE_W = 406 * mm
PAGE_H = 228.4 * mm
MARGIN = 18 * mm
CONTENT_W = PAGE_W - 2 * MARGIN

MAX_INSIGHTS = 12

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _long_date(d: date) -> str:
    """``March 03, 2025`` whatever the process locale."""
    return f"{_MONTHS[d.month - 1]} {d.day:02d}, {d.year}"


def _short_date(d: date | None, missing: str = "None") -> str:
    if d is None:
        return missing
    return f"{_MONTHS[d.month - 1][:3]} {d.day:02d}, {d.year}"


# -- palettes -----------------------------------------------------------------

_PALETTES: dict[str, dict[str, Any]] = {
    "light": {
        "accent": colors.HexColor("#1F4E79"),
        "text": colors.HexColor("#1B1F24"),
        "muted": colors.HexColor("#5E6C84"),
        "page": colors.white,
        "panel": colors.HexColor("#EEF2F6"),
        "ok": colors.HexColor("#2E8540"),
        "warn": colors.HexColor("#E3A008"),
        "bad": colors.HexColor("#C0392B"),
        "stripe": colors.HexColor("#F6F8FA"),
        "rule": colors.HexColor("#D0D7DE"),
        "on_accent": colors.white,
    },
    "dark": {
        "accent": colors.HexColor("#4F8FD6"),
        "text": colors.HexColor("#E6EDF3"),
        "muted": colors.HexColor("#8B98A5"),
        "page": colors.HexColor("#161B22"),
        "panel": colors.HexColor("#21262D"),
        "ok": colors.HexColor("#3FB950"),
        "warn": colors.HexColor("#D29922"),
        "bad": colors.HexColor("#F85149"),
        "stripe": colors.HexColor("#1C2128"),
        "rule": colors.HexColor("#30363D"),
        "on_accent": colors.white,
    },
}

_FORECAST_TONE = {"ahead": "ok", "on-track": "ok", "warning": "warn", "at-risk": "bad"}
_INSIGHT_TONE = {"critical": "bad", "warning": "warn", "info": "accent", "success": "ok"}
_HEALTH_TONE = {"healthy": "ok", "needs-attention": "warn", "critical": "bad"}

# name -> (sample-sheet parent, font size, leading, colour key, alignment)
_STYLE_SPECS: dict[str, tuple[str, float, float, str, int]] = {
    "title": ("Title", 36, 44, "text", TA_CENTER),
    "subtitle": ("Normal", 18, 24, "muted", TA_CENTER),
    "heading": ("Heading1", 22, 28, "text", TA_LEFT),
    "body": ("Normal", 12, 16, "text", TA_LEFT),
    "small": ("Normal", 9, 12, "muted", TA_LEFT),
    "cell": ("Normal", 9, 12, "text", TA_LEFT),
    "cell_right": ("Normal", 9, 12, "text", TA_RIGHT),
    "cell_header": ("Normal", 9, 12, "on_accent", TA_LEFT),
    "notice": ("Normal", 9, 12, "bad", TA_CENTER),
    "label": ("Normal", 10, 14, "muted", TA_LEFT),
    "value": ("Normal", 12, 16, "text", TA_LEFT),
}


@dataclass
class ReportConfig:
    """Title-page settings for a status report."""

    title: str = "Project Status Report"
    author: str = ""
    project_display_name: str = ""
    report_date: date = field(default_factory=date.today)
    confidential: bool = False
    company_name: str = ""
    dark_mode: bool = False


@dataclass
class StatusReport:
    """Everything rendered into the PDF."""

    config: ReportConfig
    forecasts: list[ForecastRow] = field(default_factory=list)
    monte_carlo: dict[str, MonteCarloResult] = field(default_factory=dict)
    insights: list[Insight] = field(default_factory=list)
    backlog_health: BacklogHealth | None = None
    health_history: list[HealthSample] = field(default_factory=list)


# -- document -----------------------------------------------------------------

class _StatusDocument(BaseDocTemplate):
    """Single-frame landscape document with a painted background and footer."""

    def __init__(self, buf: io.BytesIO, pal: dict[str, Any], footer: str) -> None:
        super().__init__(
            buf,
            pagesize=(PAGE_W, PAGE_H),
            leftMargin=MARGIN, rightMargin=MARGIN, topMargin=MARGIN, bottomMargin=MARGIN,
            title=footer,
        )
        self._pal = pal
        self._footer = footer
        frame = Frame(MARGIN, MARGIN, CONTENT_W, PAGE_H - 2 * MARGIN, id="body")
        self.addPageTemplates([PageTemplate(id="page", frames=[frame], onPage=self._decorate)])

    def _decorate(self, canvas: Any, doc: Any) -> None:
        canvas.saveState()
        canvas.setFillColor(self._pal["page"])
        canvas.rect(0, 0, PAGE_W, PAGE_H, fill=1, stroke=0)
        if doc.page > 1:
            canvas.setFillColor(self._pal["muted"])
            canvas.setFont("Helvetica", 8)
            canvas.drawString(MARGIN, MARGIN / 2, self._footer)
            canvas.drawRightString(PAGE_W - MARGIN, MARGIN / 2, f"Page {doc.page}")
        canvas.restoreState()


def _styles(pal: dict[str, Any]) -> dict[str, ParagraphStyle]:
    sheet = getSampleStyleSheet()
    return {
        name: ParagraphStyle(
            f"Report_{name}", parent=sheet[parent],
            fontSize=size, leading=leading, textColor=pal[colour], alignment=align,
        )
        for name, (parent, size, leading, colour, align) in _STYLE_SPECS.items()
    }


def _tone(pal: dict[str, Any], key: str) -> str:
    return pal[key].hexval().replace("0x", "#")


def _grid(pal: dict[str, Any], rows: int) -> TableStyle:
    """Accent header row, hairline grid and striped body rows."""
    return TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), pal["accent"]),
        ("GRID", (0, 0), (-1, -1), 0.25, pal["rule"]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("LEFTPADDING", (0, 0), (-1, -1), 4),
        ("RIGHTPADDING", (0, 0), (-1, -1), 4),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
        *[("BACKGROUND", (0, r), (-1, r), pal["stripe"]) for r in range(2, rows, 2)],
    ])


def _header_row(labels: list[str], styles: dict[str, ParagraphStyle]) -> list[Paragraph]:
    return [Paragraph(f"<b>{escape(label)}</b>", styles["cell_header"]) for label in labels]


def _progress_bar(pct: float, pal: dict[str, Any], width: float = 48 * mm) -> Drawing:
    """Filled bar coloured by completion with the percentage to its right."""
    height = 4 * mm
    label_w = 12 * mm
    track_w = width - label_w
    tone = "ok" if pct >= 75 else "warn" if pct >= 25 else "bad"
    drawing = Drawing(width, height)
    drawing.add(Rect(0, 0, track_w, height, fillColor=pal["panel"], strokeColor=pal["rule"], strokeWidth=0.25))
    filled = track_w * max(0.0, min(pct, 100.0)) / 100
    if filled > 0:
        drawing.add(Rect(0, 0, filled, height, fillColor=pal[tone], strokeColor=None))
    drawing.add(String(
        track_w + 2 * mm, 1 * mm, f"{pct:.0f}%",
        fontName="Helvetica-Bold", fontSize=8, fillColor=pal["text"],
    ))
    return drawing


def _image(png: bytes, width: float, height: float) -> Image:
    return Image(io.BytesIO(png), width=width, height=height, kind="proportional")


# -- public API ---------------------------------------------------------------

def generate_pdf(report: StatusReport) -> bytes:
    """Render *report* and return the PDF bytes."""
    cfg = report.config
    pal = _PALETTES["dark" if cfg.dark_mode else "light"]
    logger.info(
        "Generating PDF %r: %d initiative(s), %d simulation(s), %d insight(s), dark=%s",
        cfg.title, len(report.forecasts), len(report.monte_carlo), len(report.insights), cfg.dark_mode,
    )

    buf = io.BytesIO()
    footer = " | ".join(part for part in (cfg.title, cfg.project_display_name) if part)
    doc = _StatusDocument(buf, pal, footer)
    styles = _styles(pal)

    story: list[Any] = []
    _add_title_page(story, cfg, styles)
    story.append(PageBreak())
    _add_forecast_table(story, report.forecasts, styles, pal)
    for name, result in report.monte_carlo.items():
        story.append(PageBreak())
        _add_monte_carlo_page(story, name, result, styles, pal, cfg.dark_mode)
    story.append(PageBreak())
    _add_insights(story, report.insights, styles, pal)
    if report.backlog_health is not None:
        story.append(PageBreak())
        _add_backlog_health(story, report.backlog_health, report.health_history, styles, pal, cfg.dark_mode)

    doc.build(story)
    pdf = buf.getvalue()
    logger.info("PDF built: %d bytes", len(pdf))
    return pdf


# -- sections -----------------------------------------------------------------

def _add_title_page(story: list[Any], cfg: ReportConfig, styles: dict[str, ParagraphStyle]) -> None:
    lines = [cfg.project_display_name, _long_date(cfg.report_date)]
    if cfg.author:
        lines.append(f"Prepared by {cfg.author}")

    story.extend([Spacer(1, 60 * mm), Paragraph(escape(cfg.title), styles["title"]), Spacer(1, 8 * mm)])
    for line in filter(None, lines):
        story.append(Paragraph(escape(line), styles["subtitle"]))
        story.append(Spacer(1, 3 * mm))

    if cfg.confidential and cfg.company_name:
        story.append(Spacer(1, 30 * mm))
        story.append(Paragraph(
            f"CONFIDENTIAL: prepared for {escape(cfg.company_name)}. "
            "Do not distribute outside the intended recipients.",
            styles["notice"],
        ))


def _add_forecast_table(
    story: list[Any], rows: list[ForecastRow], styles: dict[str, ParagraphStyle], pal: dict[str, Any],
) -> None:
    story.append(Paragraph("Initiative Forecast", styles["heading"]))
    story.append(Spacer(1, 4 * mm))
    if not rows:
        story.append(Paragraph("<i>No initiatives found</i>", styles["small"]))
        return

    data: list[list[Any]] = [_header_row(
        ["Initiative", "Status", "Progress", "Due", "Forecast", "Gap (days)",
         "Outlook", "Confidence", "Open issues"],
        styles,
    )]
    for row in rows:
        initiative, forecast, comparison = row.initiative, row.forecast, row.comparison
        tone = _tone(pal, _FORECAST_TONE.get(comparison.status, "muted"))
        gap = "-" if comparison.gap_days is None else f"{comparison.gap_days:+d}"
        data.append([
            Paragraph(escape(initiative.name), styles["cell"]),
            Paragraph(escape(initiative.status), styles["cell"]),
            _progress_bar(initiative.progress, pal),
            Paragraph(_short_date(initiative.due_date), styles["cell"]),
            Paragraph(_short_date(forecast.forecast_date, "Cannot forecast"), styles["cell"]),
            Paragraph(gap, styles["cell_right"]),
            Paragraph(f'<font color="{tone}"><b>{comparison.status}</b></font>', styles["cell"]),
            Paragraph(f"{forecast.confidence}%" if forecast.confidence else "-", styles["cell_right"]),
            Paragraph(str(forecast.remaining_issues), styles["cell_right"]),
        ])

    shares = (0.22, 0.08, 0.16, 0.10, 0.10, 0.07, 0.11, 0.08, 0.08)
    table = Table(data, colWidths=[CONTENT_W * s for s in shares], repeatRows=1)
    table.setStyle(_grid(pal, len(data)))
    story.append(table)


def _add_monte_carlo_page(
    story: list[Any],
    name: str,
    result: MonteCarloResult,
    styles: dict[str, ParagraphStyle],
    pal: dict[str, Any],
    dark: bool,
) -> None:
    story.append(Paragraph(f"Completion Odds: {escape(name)}", styles["heading"]))
    story.append(Paragraph(
        f"{len(result.samples)} simulated runs, between {result.min_weeks} and "
        f"{result.max_weeks} weeks (mean {result.mean_weeks:.1f}).",
        styles["body"],
    ))
    story.append(Spacer(1, 4 * mm))

    odds: list[list[Any]] = [_header_row(["Likelihood", "Weeks", "Finish by"], styles)]
    for pct in (result.p10, result.p50, result.p90):
        odds.append([
            Paragraph(f"P{pct.probability}", styles["cell"]),
            Paragraph(str(pct.weeks), styles["cell_right"]),
            Paragraph(_short_date(pct.date), styles["cell"]),
        ])
    odds_table = Table(odds, colWidths=[CONTENT_W * 0.08, CONTENT_W * 0.08, CONTENT_W * 0.14])
    odds_table.setStyle(_grid(pal, len(odds)))

    png = generate_monte_carlo_chart(result, dpi=150, dark=dark)
    chart: Any = _image(png, 230 * mm, 115 * mm) if png else Paragraph(
        "<i>No chart data available</i>", styles["small"]
    )
    layout = Table([[chart, odds_table]], colWidths=[CONTENT_W * 0.68, CONTENT_W * 0.32])
    layout.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    story.append(layout)


def _add_insights(
    story: list[Any], insights: list[Insight], styles: dict[str, ParagraphStyle], pal: dict[str, Any],
) -> None:
    story.append(Paragraph("Key Insights", styles["heading"]))
    story.append(Spacer(1, 4 * mm))
    if not insights:
        story.append(Paragraph("<i>No insights for the current data</i>", styles["small"]))
        return

    shown = insights[:MAX_INSIGHTS]
    if len(insights) > len(shown):
        logger.debug("Showing %d of %d insights", len(shown), len(insights))

    data: list[list[Any]] = [_header_row(["Severity", "Area", "Finding", "Next step"], styles)]
    for insight in shown:
        tone = _tone(pal, _INSIGHT_TONE.get(insight.severity, "muted"))
        data.append([
            Paragraph(f'<font color="{tone}"><b>{insight.severity.upper()}</b></font>', styles["cell"]),
            Paragraph(escape(insight.category), styles["cell"]),
            Paragraph(f"<b>{escape(insight.title)}</b><br/>{escape(insight.description)}", styles["cell"]),
            Paragraph(escape(insight.recommendation), styles["cell"]),
        ])
    table = Table(data, colWidths=[CONTENT_W * s for s in (0.10, 0.12, 0.43, 0.35)], repeatRows=1)
    table.setStyle(_grid(pal, len(data)))
    story.append(table)


def _add_backlog_health(
    story: list[Any],
    health: BacklogHealth,
    history: list[HealthSample],
    styles: dict[str, ParagraphStyle],
    pal: dict[str, Any],
    dark: bool,
) -> None:
    story.append(Paragraph("Backlog Health", styles["heading"]))
    story.append(Spacer(1, 4 * mm))

    tone = _tone(pal, _HEALTH_TONE.get(health.status, "muted"))
    metrics: list[tuple[str, str]] = [
        ("Composite score", f'<b>{health.composite_score}</b> <font color="{tone}">({health.status})</font>'),
        ("Open issues", str(health.total_issues)),
        ("Refined", f"{health.refined_pct}%"),
        ("Described", f"{health.described_pct}%"),
        ("Sprint ready", f"{health.ready_pct}%"),
    ]
    metrics += [(f"Missing {name.lower()}", str(count)) for name, count in health.missing_fields.items()]
    summary = Table(
        [[Paragraph(escape(label), styles["label"]), Paragraph(value, styles["value"])] for label, value in metrics],
        colWidths=["60%", "40%"],
    )
    summary.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), pal["panel"]),
        ("LINEBELOW", (0, 0), (-1, -1), 0.25, pal["rule"]),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]))

    png = generate_health_trend_chart(history, dpi=150, dark=dark)
    chart: Any = _image(png, 220 * mm, 110 * mm) if png else Paragraph(
        "<i>Not enough history for a trend chart</i>", styles["small"]
    )
    layout = Table([[chart, summary]], colWidths=[CONTENT_W * 0.64, CONTENT_W * 0.36])
    layout.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
    story.append(layout)

    if health.alert is not None:
        story.append(Spacer(1, 4 * mm))
        story.append(Paragraph(
            f"<b>{escape(health.alert.message)}</b> {escape(health.alert.recommendation)}", styles["body"],
        ))
