"""
Claims Intel - Slack message text (mrkdwn) for the summary and period reports.
"""

from typing import Any, Dict, Iterable, List, Optional

import claims_analytics

FOOTER = "_Sent from Claims Intelligence Dashboard_"
TOP_INSURERS = 10


def fmt(value: int) -> str:
    return f"{int(value):,}"


def _signed(delta: float) -> str:
    return f"{'+' if delta > 0 else ''}{delta:.1f}%"


def _arrow(delta: float) -> str:
    if delta > 0:
        return "📈"
    if delta < 0:
        return "📉"
    return "➡️"


def format_summary_message(records: Any, start: str, end: str, insurers: Iterable[str]) -> str:
    """Dashboard snapshot for the selected window and insurers."""
    selected = set(insurers)
    df = claims_analytics.filter_records(records, start, end, selected)
    stats = claims_analytics.overall_stats(df)
    breakdown = claims_analytics.insurer_totals(df, sort_by="claims", sort_dir="desc")
    total = stats["total"]
    peak = stats["peak"]
    peak_text = f"{fmt(peak['total'])} ({peak['date']})" if peak else "—"

    lines = [
        "📊 *Claims Intelligence Report*",
        f"📅 Period: {start} → {end}",
        "",
        f"🏥 Total Claims: *{fmt(total)}*",
        f"📈 Daily Average: *{fmt(stats['average'])}*",
        f"🔥 Peak Day: *{peak_text}*",
        f"🏢 Insurers: *{len(selected)}* selected",
        "",
        "*Breakdown:*",
    ]
    for i, row in enumerate(breakdown, 1):
        share = row["total"] / total * 100 if total else 0.0
        lines.append(f"{i}. {row['insurer']}: *{fmt(row['total'])}* ({share:.1f}%)")
    lines += ["", FOOTER]
    return "\n".join(lines)


def format_report_message(periods: List[Dict[str, Any]]) -> str:
    """
    Multi-period report. `periods` are claims_analytics.period_comparison results,
    ordered by start date; changes are relative to the preceding period.
    """
    lines = ["📋 *Claims Intelligence Report*", ""]
    for i, period in enumerate(periods):
        lines.append(f"*{period['label']}* ({period['from']} → {period['to']})")
        lines.append(f"  🏥 Total Claims: *{fmt(period['total'])}*")
        lines.append(f"  📊 Daily Avg: *{fmt(period['avg'])}* | {period['days']} days")
        if i > 0:
            previous = periods[i - 1]
            delta = claims_analytics.pct_change(period["total"], previous["total"])
            lines.append(f"  {_arrow(delta)} Change: *{_signed(delta)}* vs {previous['label']}")
        lines.append("")

    if periods:
        last = periods[-1]
        previous: Optional[Dict[str, Any]] = periods[-2] if len(periods) > 1 else None
        top = sorted(last["by_insurer"].items(), key=lambda item: item[1], reverse=True)[:TOP_INSURERS]
        lines.append(f"*Top Insurers ({last['label']}):*")
        for i, (name, count) in enumerate(top, 1):
            change = ""
            if previous is not None:
                delta = claims_analytics.pct_change(count, previous["by_insurer"].get(name, 0))
                change = f" ({_signed(delta)})"
            lines.append(f"{i}. {name}: *{fmt(count)}*{change}")

    lines += ["", FOOTER]
    return "\n".join(lines)
