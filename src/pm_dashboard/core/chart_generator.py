"""Matplotlib charts embedded in the status report (Monte-Carlo, health trend)."""

from __future__ import annotations

import io
import logging
from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timezone

from dateutil import parser as dtparser

from pm_dashboard.core.backlog_health import ATTENTION_THRESHOLD, HEALTHY_THRESHOLD
from pm_dashboard.core.forecast import MonteCarloResult
from pm_dashboard.core.records import HealthSample

import matplotlib  # isort: skip

matplotlib.use("Agg")

import matplotlib.dates as mdates  # noqa: E402
import matplotlib.pyplot as plt  # noqa: E402
import matplotlib.ticker as mticker  # noqa: E402

logger = logging.getLogger(__name__)

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Matches the report palettes in pdf_generator.
_PALETTES: dict[str, dict[str, str]] = {
    "light": {
        "text": "#5e6c84",
        "rule": "#d0d7de",
        "page": "#ffffff",
        "legend": "#f6f8fa",
        "bars": "#6a9fd4",
        "p10": "#2e8540",
        "p50": "#1f4e79",
        "p90": "#c0392b",
        "score": "#1f4e79",
        "healthy_band": "#e6f4ea",
        "critical_band": "#fbeaea",
    },
    "dark": {
        "text": "#8b98a5",
        "rule": "#30363d",
        "page": "#161b22",
        "legend": "#21262d",
        "bars": "#388bfd",
        "p10": "#3fb950",
        "p50": "#79c0ff",
        "p90": "#f85149",
        "score": "#79c0ff",
        "healthy_band": "#12261e",
        "critical_band": "#2d1517",
    },
}


# -- helpers ------------------------------------------------------------------

def _tick_date(x: float, _pos: int | None = None) -> str:
    """``Mon DD`` regardless of the process locale."""
    when = mdates.num2date(x)
    return f"{_MONTHS[when.month - 1]} {when.day:02d}"


def _new_figure(dark: bool, dpi: int) -> tuple[plt.Figure, plt.Axes, dict[str, str]]:
    pal = _PALETTES["dark" if dark else "light"]
    fig, ax = plt.subplots(figsize=(7.2, 3.6), dpi=dpi, facecolor=pal["page"])
    ax.set_facecolor(pal["page"])
    ax.tick_params(labelsize=7, colors=pal["text"])
    ax.spines[["top", "right"]].set_visible(False)
    ax.spines[["left", "bottom"]].set_color(pal["rule"])
    ax.grid(axis="y", linewidth=0.3, color=pal["rule"])
    ax.set_axisbelow(True)
    return fig, ax, pal


def _finish(fig: plt.Figure, ax: plt.Axes, pal: dict[str, str], dpi: int) -> bytes:
    """Attach the legend, render to PNG and release the figure."""
    legend = ax.legend(fontsize=6, loc="upper right", framealpha=0.9, facecolor=pal["legend"])
    plt.setp(legend.get_texts(), color=pal["text"])
    out = io.BytesIO()
    try:
        fig.tight_layout()
        fig.savefig(out, format="png", dpi=dpi, bbox_inches="tight", facecolor=pal["page"])
    finally:
        plt.close(fig)
    png = out.getvalue()
    logger.debug("Chart rendered: %d bytes", len(png))
    return png


def _sample_time(sample: HealthSample) -> datetime | None:
    try:
        value = dtparser.isoparse(sample.timestamp)
    except (ValueError, OverflowError):
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# -- public API ---------------------------------------------------------------

def generate_monte_carlo_chart(
    result: MonteCarloResult, *, title: str = "", dpi: int = 150, dark: bool = False
) -> bytes | None:
    """Histogram of simulated weeks-to-complete with P10/P50/P90 markers.

    Returns ``None`` when the simulation produced no samples.
    """
    if not result.samples:
        logger.debug("No Monte-Carlo samples, skipping chart")
        return None

    fig, ax, pal = _new_figure(dark, dpi)

    counts = Counter(result.samples)
    weeks = sorted(counts)
    ax.bar(weeks, [counts[w] for w in weeks], color=pal["bars"], alpha=0.8, width=0.8, label="Simulations")

    for pct, key in ((result.p10, "p10"), (result.p50, "p50"), (result.p90, "p90")):
        ax.axvline(
            pct.weeks, color=pal[key], linewidth=1.5, linestyle="--",
            label=f"P{pct.probability}: {pct.weeks} wk ({pct.date.isoformat()})",
        )

    ax.set_xlabel("Weeks to complete", fontsize=8, color=pal["text"])
    ax.set_ylabel("Simulations", fontsize=8, color=pal["text"])
    ax.xaxis.set_major_locator(mticker.MaxNLocator(integer=True))
    if title:
        ax.set_title(title, fontsize=9, color=pal["text"])
    return _finish(fig, ax, pal, dpi)


def generate_health_trend_chart(
    samples: Sequence[HealthSample], *, dpi: int = 150, dark: bool = False
) -> bytes | None:
    """Composite backlog-health score over time.

    Returns ``None`` with fewer than two dated samples.
    """
    points = [(t, s.composite_score) for s in samples if (t := _sample_time(s)) is not None]
    if len(points) < 2:
        logger.debug("Not enough health samples for a trend chart (%d)", len(points))
        return None

    fig, ax, pal = _new_figure(dark, dpi)
    times = [t for t, _ in points]

    ax.axhspan(HEALTHY_THRESHOLD, 100, color=pal["healthy_band"], zorder=0)
    ax.axhspan(0, ATTENTION_THRESHOLD, color=pal["critical_band"], zorder=0)
    ax.plot(times, [score for _, score in points], color=pal["score"], marker="o",
            markersize=3, linewidth=1.5, label="Composite score")

    ax.set_ylabel("Health score", fontsize=8, color=pal["text"])
    ax.set_ylim(0, 100)
    ax.set_xlim(times[0], times[-1])
    ax.xaxis.set_major_formatter(mticker.FuncFormatter(_tick_date))
    ax.xaxis.set_major_locator(mdates.AutoDateLocator(minticks=3, maxticks=8))
    fig.autofmt_xdate(rotation=30, ha="right")
    return _finish(fig, ax, pal, dpi)
