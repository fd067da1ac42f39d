"""
Claims Intel - Dashboard Analytics
==================================

Aggregations behind the claims dashboard, computed with pandas over the
in-memory ClaimRecord list (one row per date x insurer):

    OVERVIEW   daily totals, insurer totals, total / daily average / peak day
    TRENDS     per-date series with one key per insurer
    PIVOT      insurer x date matrix and its CSV export
    COMPARE    month-over-month or custom-period comparison with % deltas
    REPORTS    preset period sets (weekly, wow, monthly, mom, monthweek)

Dates are "YYYY-MM-DD" strings throughout, so window filters are plain
string comparisons. Averages round half up.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

COLUMNS = ["unique_key", "date", "insurer", "claims_count"]
DEFAULT_WINDOW_DAYS = 30
SORT_FIELDS = ("claims", "name")


# =============================================================================
# Helpers
# =============================================================================

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def pct_change(current: float, previous: float) -> float:
    """Percentage change vs previous; 100 when growing from zero, 0 when both are zero."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def _parse_date(value: str) -> date:
    return date.fromisoformat(value)


def _short_date(value: str) -> str:
    d = _parse_date(value)
    return f"{d:%b} {d.day}"


def period_label(start: str, end: str) -> str:
    """Default label for a custom period: "Jan 5 → Jan 11"."""
    return f"{_short_date(start)} → {_short_date(end)}"


@dataclass
class Period:
    """Inclusive date window with a display label."""
    start: str
    end: str
    label: str = ""

    def __post_init__(self):
        if self.start > self.end:
            self.start, self.end = self.end, self.start
        if not self.label:
            self.label = period_label(self.start, self.end)

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.start, "to": self.end, "label": self.label}


def to_frame(records: Any) -> pd.DataFrame:
    """DataFrame view of ClaimRecords (or dicts with the same keys)."""
    if isinstance(records, pd.DataFrame):
        return records
    rows = [r.to_dict() if hasattr(r, "to_dict") else dict(r) for r in records]
    df = pd.DataFrame(rows, columns=COLUMNS)
    df["date"] = df["date"].fillna("").astype(str)
    df["insurer"] = df["insurer"].fillna("").astype(str)
    df["claims_count"] = pd.to_numeric(df["claims_count"], errors="coerce").fillna(0).astype(int)
    return df


def all_insurers(records: Any) -> List[str]:
    df = to_frame(records)
    return sorted(df["insurer"].unique().tolist())


def filter_records(
    records: Any,
    start: Optional[str] = None,
    end: Optional[str] = None,
    insurers: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Rows with start <= date <= end (inclusive) for the given insurers."""
    df = to_frame(records)
    mask = pd.Series(True, index=df.index)
    if start:
        mask &= df["date"] >= start
    if end:
        mask &= df["date"] <= end
    if insurers is not None:
        mask &= df["insurer"].isin(list(insurers))
    return df[mask]


def default_window(records: Any, days: int = DEFAULT_WINDOW_DAYS) -> Tuple[str, str]:
    """(start, end) covering the last `days` distinct dates; ("", "") without data."""
    dates = sorted(d for d in to_frame(records)["date"].unique() if d)
    if not dates:
        return "", ""
    return dates[max(0, len(dates) - days)], dates[-1]


def date_bounds(records: Any) -> Tuple[str, str]:
    dates = sorted(d for d in to_frame(records)["date"].unique() if d)
    if not dates:
        return "", ""
    return dates[0], dates[-1]


# =============================================================================
# Overview
# =============================================================================

def daily_totals(df: pd.DataFrame) -> List[Dict[str, Any]]:
    totals = df.groupby("date", sort=True)["claims_count"].sum()
    return [{"date": d, "total": int(t)} for d, t in totals.items()]


def insurer_totals(df: pd.DataFrame, sort_by: str = "claims", sort_dir: str = "desc") -> List[Dict[str, Any]]:
    """Total claims and active days (count > 0) per insurer."""
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"sort_by must be one of {SORT_FIELDS}, got {sort_by!r}")
    if df.empty:
        return []
    grouped = df.assign(active=df["claims_count"] > 0).groupby("insurer", sort=False)
    table = pd.DataFrame({
        "total": grouped["claims_count"].sum(),
        "days": grouped["active"].sum(),
    }).reset_index()
    column = "total" if sort_by == "claims" else "insurer"
    table = table.sort_values(column, ascending=(sort_dir == "asc"), kind="mergesort")
    return [
        {"insurer": row.insurer, "total": int(row.total), "days": int(row.days)}
        for row in table.itertuples(index=False)
    ]


def overall_stats(df: pd.DataFrame) -> Dict[str, Any]:
    daily = daily_totals(df)
    total = int(df["claims_count"].sum())
    peak = None
    for point in daily:
        if point["total"] > (peak["total"] if peak else 0):
            peak = point
    return {
        "total": total,
        "days": len(daily),
        "average": round_half_up(total / len(daily)) if daily else 0,
        "peak": peak,
    }


def trend_series(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """One point per date: {"date": d, <insurer>: count, ...}."""
    latest = df.drop_duplicates(["date", "insurer"], keep="last")
    series = []
    for day, group in latest.groupby("date", sort=True):
        point: Dict[str, Any] = {"date": day}
        point.update({ins: int(n) for ins, n in zip(group["insurer"], group["claims_count"])})
        series.append(point)
    return series


def pivot_table(df: pd.DataFrame, insurers: Optional[Iterable[str]] = None) -> pd.DataFrame:
    """Insurer x date matrix of claim counts; missing cells are 0."""
    dates = sorted(df["date"].unique().tolist())
    names = sorted(insurers) if insurers is not None else sorted(df["insurer"].unique().tolist())
    latest = df.drop_duplicates(["date", "insurer"], keep="last")
    table = latest.pivot(index="insurer", columns="date", values="claims_count")
    return table.reindex(index=names, columns=dates).fillna(0).astype(int)


def pivot(df: pd.DataFrame, insurers: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    table = pivot_table(df, insurers)
    return {
        "dates": list(table.columns),
        "insurers": list(table.index),
        "values": {ins: {d: int(v) for d, v in row.items()} for ins, row in table.iterrows()},
        "date_totals": {d: int(v) for d, v in table.sum(axis=0).items()},
        "insurer_totals": {ins: int(v) for ins, v in table.sum(axis=1).items()},
    }


def pivot_csv(df: pd.DataFrame, insurers: Optional[Iterable[str]] = None) -> str:
    """CSV export: header, TOTAL row, then one quoted row per insurer."""
    table = pivot_table(df, insurers)
    dates = list(table.columns)
    total = int(df["claims_count"].sum())
    lines = [
        "Insurer," + ",".join(dates) + ",Total",
        "TOTAL," + ",".join(str(int(v)) for v in table.sum(axis=0)) + f",{total}",
    ]
    for insurer, row in table.iterrows():
        values = [int(v) for v in row]
        lines.append(f'"{insurer}",' + ",".join(str(v) for v in values) + f",{sum(values)}")
    return "\n".join(lines) + "\n"


# =============================================================================
# Compare
# =============================================================================

def available_months(records: Any) -> List[str]:
    df = to_frame(records)
    months = {d[:7] for d in df["date"] if len(d) >= 7}
    return sorted(months)


def _summarize(part: pd.DataFrame) -> Dict[str, Any]:
    total = int(part["claims_count"].sum())
    days = int(part["date"].nunique())
    by_insurer = part.groupby("insurer", sort=False)["claims_count"].sum()
    return {
        "total": total,
        "avg": round_half_up(total / days) if days else 0,
        "days": days,
        "by_insurer": {ins: int(n) for ins, n in by_insurer.items()},
    }


def _with_deltas(periods: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    for i, period in enumerate(periods):
        if i == 0:
            period["delta"] = None
            period["avg_delta"] = None
        else:
            previous = periods[i - 1]
            period["delta"] = pct_change(period["total"], previous["total"])
            period["avg_delta"] = pct_change(period["avg"], previous["avg"])
    return periods


def month_comparison(
    records: Any,
    months: Iterable[str],
    insurers: Optional[Iterable[str]] = None,
) -> List[Dict[str, Any]]:
    """Per "YYYY-MM" month: totals, daily average, day-of-month series and deltas."""
    df = filter_records(records, insurers=insurers)
    results = []
    for month in sorted(set(months)):
        part = df[df["date"].str.startswith(month)]
        stats = _summarize(part)
        day_numbers = pd.to_numeric(part["date"].str.slice(8, 10), errors="coerce")
        daily = part.groupby(day_numbers)["claims_count"].sum()
        stats["daily"] = {int(day): int(n) for day, n in daily.items()}
        results.append({"month": month, "label": month, **stats})
    return _with_deltas(results)


def period_comparison(
    records: Any,
    periods: Iterable[Period],
    insurers: Optional[Iterable[str]] = None,
) -> List[Dict[str, Any]]:
    """Per custom period (ordered by start): totals, "Day N" series and deltas."""
    df = filter_records(records, insurers=insurers)
    results = []
    for period in sorted(periods, key=lambda p: p.start):
        part = df[(df["date"] >= period.start) & (df["date"] <= period.end)]
        stats = _summarize(part)
        offsets = (pd.to_datetime(part["date"], errors="coerce") - pd.Timestamp(period.start)).dt.days + 1
        daily = part.groupby(offsets)["claims_count"].sum()
        stats["daily"] = {f"Day {int(n)}": int(v) for n, v in daily.items()}
        results.append({**period.to_dict(), **stats})
    return _with_deltas(results)


def insurer_comparison(periods: List[Dict[str, Any]], insurers: Iterable[str]) -> List[Dict[str, Any]]:
    """Rows of per-period insurer totals with % delta vs the previous period, largest last-period first."""
    rows = []
    for insurer in sorted(insurers):
        row: Dict[str, Any] = {"insurer": insurer}
        for i, period in enumerate(periods):
            key = period["label"]
            row[key] = period["by_insurer"].get(insurer, 0)
            if i > 0:
                previous = periods[i - 1]["by_insurer"].get(insurer, 0)
                row[f"{key}_delta"] = pct_change(row[key], previous)
        rows.append(row)
    if periods:
        last_key = periods[-1]["label"]
        rows.sort(key=lambda r: r.get(last_key, 0), reverse=True)
    return rows


# =============================================================================
# Period presets
# =============================================================================

def default_custom_periods(max_date: str) -> List[Period]:
    """Two adjacent 7-day periods ending at max_date."""
    end = _parse_date(max_date)
    current_start = end - timedelta(days=6)
    previous_end = current_start - timedelta(days=1)
    previous_start = previous_end - timedelta(days=6)
    return [
        Period(previous_start.isoformat(), previous_end.isoformat(), "Previous Period"),
        Period(current_start.isoformat(), end.isoformat(), "Current Period"),
    ]


def _month_start(d: date, months_back: int) -> date:
    index = d.year * 12 + (d.month - 1) - months_back
    return date(index // 12, index % 12 + 1, 1)


def report_presets(max_date: str) -> Dict[str, List[Period]]:
    """
    Report period sets relative to the latest data date.

    Weeks run Monday to Sunday; "Last Week" is the last complete week before
    the week containing max_date. Months are complete calendar months before
    the month containing max_date.
    """
    today = _parse_date(max_date)
    this_monday = today - timedelta(days=today.weekday())
    last_monday = this_monday - timedelta(days=7)
    last_sunday = this_monday - timedelta(days=1)

    last_month_start = _month_start(today, 1)
    last_month_end = _month_start(today, 0) - timedelta(days=1)
    prev_month_start = _month_start(today, 2)
    prev_month_end = last_month_start - timedelta(days=1)

    last_week = Period(last_monday.isoformat(), last_sunday.isoformat(), "Last Week")
    two_weeks_ago = Period(
        (last_monday - timedelta(days=7)).isoformat(),
        (last_monday - timedelta(days=1)).isoformat(),
        "2 Weeks Ago",
    )
    last_month = Period(last_month_start.isoformat(), last_month_end.isoformat(), f"{last_month_start:%B %Y}")
    prev_month = Period(prev_month_start.isoformat(), prev_month_end.isoformat(), f"{prev_month_start:%B %Y}")

    return {
        "weekly": [last_week],
        "wow": [two_weeks_ago, last_week],
        "monthly": [last_month],
        "mom": [prev_month, last_month],
        "monthweek": [last_month, last_week],
    }


REPORT_PRESET_TYPES = ("weekly", "wow", "monthly", "mom", "monthweek")


def report_periods(records: Any, periods: Iterable[Period], insurers: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
    """Period stats for the Slack report (ordered by start, with deltas)."""
    return period_comparison(records, periods, insurers)
