"""
Dashboard metrics aggregation.

Pure functions over rows already read from the store. Each block of the
summary payload (velocity, KPIs, weekly, monthly, staffing, reviews,
compliance, sync freshness) is computed independently so a missing input
only degrades its own block. Output keys are camelCase, matching the
dashboard's JSON contract.
"""
import calendar
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from dashboard_service.config import DEFAULT_MONTHLY_TARGET
from dashboard_service.utils.formatting import (
    pct_change,
    round_half_up,
    round_int,
    to_millions,
    trend_label,
)

logger = logging.getLogger(__name__)

STRETCH_MULTIPLIER = 1.5
STALE_AFTER_HOURS = 24
NEVER_SYNCED_HOURS = -1
LAST_YEAR_OFFSET_DAYS = 364  # 52 weeks: same weekday one year back
WEEKLY_WINDOW_DAYS = 7
RECENT_REVIEWS_SHOWN = 5

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
DAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]

SHIFT_IN_PROGRESS = "in_progress"
SHIFT_SCHEDULED = "scheduled"
SHIFT_CANCELLED = "cancelled"


def as_date(value: Any) -> date:
    """Accept date, datetime or 'YYYY-MM-DD' strings from the store."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def as_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _num(value: Any) -> float:
    return float(value) if value else 0.0


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def resolve_target(value: Optional[float], default: float = DEFAULT_MONTHLY_TARGET) -> float:
    """Stored target when set and positive, else the default."""
    return float(value) if value else float(default)


# ---------------------------------------------------------------------------
# Revenue velocity
# ---------------------------------------------------------------------------

def compute_revenue_velocity(
    mtd_rows: Sequence[Mapping[str, Any]],
    monthly_target: float,
    today: date,
) -> Dict[str, Any]:
    """Month-to-date pace against the monthly target.

    *mtd_rows* are the month's daily rows up to today, newest first.
    """
    month_days = days_in_month(today.year, today.month)
    current_day = today.day

    mtd_revenue = sum(_num(r.get("revenue")) for r in mtd_rows)
    days_with_data = sum(1 for r in mtd_rows if _num(r.get("revenue")) > 0)
    yesterday_revenue = _num(mtd_rows[0].get("revenue")) if mtd_rows else 0.0

    avg_daily = mtd_revenue / days_with_data if days_with_data > 0 else 0.0
    goal_pct = mtd_revenue / monthly_target * 100 if monthly_target > 0 else 0.0
    stretch_goal = monthly_target * STRETCH_MULTIPLIER
    gap_to_stretch = stretch_goal - mtd_revenue
    remaining_days = month_days - current_day

    return {
        "monthlyTarget": monthly_target,
        "mtdRevenue": mtd_revenue,
        "goalAchievedPercent": goal_pct,
        "currentDay": current_day,
        "daysInMonth": month_days,
        "surplus": mtd_revenue - monthly_target,
        "projectedMonthEnd": avg_daily * month_days,
        "dailyTargetPace": monthly_target / month_days,
        "showStretchGoal": goal_pct >= 100,
        "stretchGoal": stretch_goal,
        "gapToStretch": gap_to_stretch,
        "requiredPaceForStretch": gap_to_stretch / remaining_days if remaining_days > 0 else 0.0,
        "yesterdayRevenue": yesterday_revenue,
        "avgDailyRevenue": avg_daily,
    }


# ---------------------------------------------------------------------------
# KPI summary (year over year)
# ---------------------------------------------------------------------------

def kpi_windows(today: date, latest_data_date: Optional[date]) -> Dict[str, date]:
    """Current and prior-year windows ending on the day the data actually reaches.

    If the newest row is in the current month, both windows stop at its
    day-of-month; otherwise at today. The prior-year end is clamped to that
    month's length (29 Feb -> 28 Feb).
    """
    end_day = today.day
    if latest_data_date is not None:
        latest = as_date(latest_data_date)
        if (latest.year, latest.month) == (today.year, today.month):
            end_day = latest.day
    prev_year = today.year - 1
    prev_end_day = min(end_day, days_in_month(prev_year, today.month))
    return {
        "current_start": date(today.year, today.month, 1),
        "current_end": date(today.year, today.month, end_day),
        "previous_start": date(prev_year, today.month, 1),
        "previous_end": date(prev_year, today.month, prev_end_day),
    }


def sum_period(rows: Iterable[Mapping[str, Any]]) -> Dict[str, float]:
    revenue = pax = total_spend = 0.0
    for r in rows:
        row_pax = _num(r.get("pax"))
        revenue += _num(r.get("revenue"))
        pax += row_pax
        total_spend += _num(r.get("avg_spend")) * row_pax
    return {
        "revenue": revenue,
        "pax": pax,
        "avgSpend": total_spend / pax if pax > 0 else 0.0,
    }


def compute_kpi_summary(
    current_rows: Sequence[Mapping[str, Any]],
    previous_rows: Sequence[Mapping[str, Any]],
    monthly_target: float,
) -> Dict[str, Any]:
    current = sum_period(current_rows)
    previous = sum_period(previous_rows)

    revenue_trend = pct_change(current["revenue"], previous["revenue"])
    pax_trend = pct_change(current["pax"], previous["pax"])
    spend_trend = pct_change(current["avgSpend"], previous["avgSpend"])
    target_pct = round_int(current["revenue"] / monthly_target * 100) if monthly_target > 0 else 0

    return {
        "revenue": {
            "value": current["revenue"],
            "trend": revenue_trend,
            "trendLabel": trend_label(revenue_trend),
        },
        "pax": {
            "value": current["pax"],
            "trend": pax_trend,
            "trendLabel": trend_label(pax_trend),
        },
        "avgSpend": {
            "value": round_int(current["avgSpend"]),
            "trend": spend_trend,
            "trendLabel": trend_label(spend_trend),
        },
        "yoyGrowth": {
            "value": revenue_trend,
            "trendLabel": trend_label(pax_trend, "Pax YoY"),
        },
        "targetMet": {
            "percentage": min(target_pct, 100),
            "isOnTrack": target_pct >= 100,
        },
    }


# ---------------------------------------------------------------------------
# Weekly series
# ---------------------------------------------------------------------------

def last_year_date(day: Any) -> date:
    return as_date(day) - timedelta(days=LAST_YEAR_OFFSET_DAYS)


def weekly_last_year_dates(recent_rows: Sequence[Mapping[str, Any]]) -> List[date]:
    """Comparison dates for the weekly window, chronological."""
    return [last_year_date(r["date"]) for r in reversed(recent_rows)]


def compute_weekly_sales(
    recent_rows: Sequence[Mapping[str, Any]],
    last_year_rows: Sequence[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """Last 7 days (given newest first) against the same weekday 52 weeks earlier, in millions."""
    ly_revenue = {as_date(r["date"]): _num(r.get("revenue")) for r in last_year_rows}
    series = []
    for row in reversed(recent_rows):
        day = as_date(row["date"])
        series.append({
            "date": day.isoformat(),
            "day": DAY_NAMES[day.weekday()],
            "actual": to_millions(row.get("revenue")),
            "lastYear": to_millions(ly_revenue.get(last_year_date(day), 0)),
            "projected": 0,
        })
    return series


# ---------------------------------------------------------------------------
# Monthly performance
# ---------------------------------------------------------------------------

def compute_monthly_performance(
    year_rows: Iterable[Mapping[str, Any]],
    targets: Iterable[Mapping[str, Any]],
    today: date,
    default_target: float = DEFAULT_MONTHLY_TARGET,
) -> List[Dict[str, Any]]:
    """Actual vs target for each month of the current year that has revenue."""
    revenue_by_month: Dict[int, float] = {}
    for r in year_rows:
        day = as_date(r["date"])
        if day.year != today.year:
            continue
        revenue_by_month[day.month] = revenue_by_month.get(day.month, 0.0) + _num(r.get("revenue"))

    target_by_month: Dict[int, float] = {}
    for t in targets:
        if not t.get("period_start"):
            continue
        start = as_date(t["period_start"])
        if start.year == today.year:
            target_by_month[start.month] = _num(t.get("target_value"))

    performance = []
    for month in range(1, today.month + 1):
        actual = revenue_by_month.get(month, 0.0)
        if actual <= 0:
            continue
        target = resolve_target(target_by_month.get(month), default_target)
        performance.append({
            "month": MONTH_NAMES[month - 1],
            "monthIndex": month - 1,
            "actualRevenue": actual,
            "targetRevenue": target,
            "achievementPercent": round_int(actual / target * 100) if target > 0 else 0,
        })
    return performance


# ---------------------------------------------------------------------------
# Staffing
# ---------------------------------------------------------------------------

def compute_staffing(
    shifts: Sequence[Mapping[str, Any]],
    today_metrics: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    """Coverage for today's shifts. staff_on_duty from the sheet overrides the shift count."""
    in_progress = sum(1 for s in shifts if s.get("status") == SHIFT_IN_PROGRESS)
    total_required = sum(1 for s in shifts if s.get("status") != SHIFT_CANCELLED)

    override = int(_num((today_metrics or {}).get("staff_on_duty")))
    active_staff = override if override > 0 else in_progress
    pax = _num((today_metrics or {}).get("pax"))

    gaps: Dict[str, int] = {}
    for s in shifts:
        if s.get("status") == SHIFT_SCHEDULED:
            role = s.get("role") or "unassigned"
            gaps[role] = gaps.get(role, 0) + 1

    return {
        "activeStaff": active_staff,
        "totalRequired": total_required,
        "coveragePercentage": round_int(active_staff / total_required * 100) if total_required > 0 else 100,
        "guestStaffRatio": round_half_up(pax / active_staff, 1) if active_staff > 0 else 0,
        "coverageGaps": [{"role": role, "count": count} for role, count in gaps.items()],
    }


# ---------------------------------------------------------------------------
# Reviews and compliance
# ---------------------------------------------------------------------------

def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def compute_reviews(review_rows: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    reviews = [
        {
            "id": str(r.get("id")),
            "source": r.get("source"),
            "authorName": r.get("author_name"),
            "rating": _num(r.get("rating")),
            "comment": r.get("comment"),
            "sentimentScore": r.get("sentiment_score"),
            "publishedAt": _iso(r.get("published_at")),
        }
        for r in review_rows
    ]
    count = len(reviews)
    avg_rating = sum(r["rating"] for r in reviews) / count if count else 0.0
    avg_sentiment = sum(_num(r["sentimentScore"]) for r in reviews) / count if count else 0.0
    return {
        "averageRating": round_half_up(avg_rating, 1),
        "totalReviews": count,
        "sentimentScore": round_int(avg_sentiment * 100),
        "recentReviews": reviews[:RECENT_REVIEWS_SHOWN],
    }


def compute_google_reviews(latest: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Rating and review count from the newest daily row that carries them."""
    latest = latest or {}
    return {
        "isConnected": True,
        "rating": round_half_up(_num(latest.get("google_rating")), 1),
        "reviewCount": int(_num(latest.get("google_review_count"))),
        "recentReviews": [],
    }


def map_compliance(rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "id": str(r.get("id")),
            "title": r.get("title"),
            "description": r.get("description"),
            "type": r.get("type"),
            "status": r.get("status"),
            "dueDate": _iso(r.get("due_date")),
            "completedAt": _iso(r.get("completed_at")),
        }
        for r in rows
    ]


# ---------------------------------------------------------------------------
# Sync freshness
# ---------------------------------------------------------------------------

def compute_sync_status(last_sync: Optional[Mapping[str, Any]], now: datetime) -> Dict[str, Any]:
    if not last_sync or not last_sync.get("completed_at"):
        return {
            "lastSyncAt": None,
            "status": None,
            "hoursAgo": NEVER_SYNCED_HOURS,
            "isStale": True,
        }
    completed_at = as_datetime(last_sync["completed_at"])
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    hours_ago = round_int((now - completed_at).total_seconds() / 3600)
    return {
        "lastSyncAt": completed_at.isoformat(),
        "status": last_sync.get("status"),
        "hoursAgo": hours_ago,
        "isStale": hours_ago > STALE_AFTER_HOURS,
    }
