"""
Derived aggregates for the dashboard widgets.

Everything here is a pure function over records already fetched from the
database, so the routes stay thin and the numbers are easy to test.
"""

from __future__ import annotations

import calendar
import math
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable, Optional

from finboard.db import AccountRecord, NetWorthSnapshotRecord, TransactionRecord
from finboard.types import BudgetPeriod

DEFAULT_CATEGORY_COLOR = "#A0AEC0"

CATEGORY_COLORS = {
    "housing": "#4C51BF",
    "food": "#38A169",
    "transportation": "#ED8936",
    "utilities": "#667EEA",
    "entertainment": "#F56565",
    "healthcare": "#9F7AEA",
    "shopping": "#ED64A6",
    "travel": "#48BB78",
    "education": "#4299E1",
    "personal": "#ECC94B",
    "other": DEFAULT_CATEGORY_COLOR,
}

BUDGET_WARNING_PERCENT = 75
BUDGET_OVER_PERCENT = 90

# Budget usage levels that raise a notification when an expense crosses them.
ALERT_THRESHOLDS = (100, 90)

TIMEFRAME_DAYS = {
    "month": 30,
    "quarter": 90,
    "year": 365,
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def month_bounds(day: date) -> tuple[date, date]:
    """First and last calendar day of the month containing ``day``."""
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def parse_month(value: Optional[str], today: Optional[date] = None) -> date:
    """
    Parse a ``YYYY-MM`` string into the first day of that month.

    Raises:
        ValueError: If the value is not a valid year-month.
    """
    if not value:
        return (today or date.today()).replace(day=1)
    year, _, month = value.partition("-")
    return date(int(year), int(month), 1)


def period_bounds(period: BudgetPeriod, day: date) -> tuple[date, date]:
    if period == BudgetPeriod.WEEKLY:
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=6)
    if period == BudgetPeriod.YEARLY:
        return date(day.year, 1, 1), date(day.year, 12, 31)
    return month_bounds(day)


def budget_window(
    period: BudgetPeriod,
    day: date,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> tuple[date, date]:
    """Current period window, clipped to the budget's own start/end dates."""
    start, end = period_bounds(period, day)
    if start_date and start_date > start:
        start = start_date
    if end_date and end_date < end:
        end = end_date
    return start, end


def sum_amounts(transactions: Iterable[TransactionRecord]) -> float:
    return sum(float(t.amount) for t in transactions)


def monthly_summary(income: float, expenses: float) -> dict:
    return {
        "income": round(income, 2),
        "expenses": round(expenses, 2),
        "balance": round(income - expenses, 2),
    }


def budget_percentage(spent: float, limit: float) -> int:
    """Share of the budget used, as a whole percent capped at 100."""
    if limit <= 0:
        return 100 if spent > 0 else 0
    return min(round_half_up(spent / limit * 100), 100)


def budget_status(percentage: int) -> str:
    if percentage >= BUDGET_OVER_PERCENT:
        return "over"
    if percentage >= BUDGET_WARNING_PERCENT:
        return "warning"
    return "ok"


def crossed_budget_threshold(
    spent_before: float, spent_after: float, limit: float
) -> Optional[int]:
    """
    Return the highest alert threshold crossed when spending moved from
    ``spent_before`` to ``spent_after``, or None.
    """
    if limit <= 0:
        return None
    before = spent_before / limit * 100
    after = spent_after / limit * 100
    for threshold in ALERT_THRESHOLDS:
        if before < threshold <= after:
            return threshold
    return None


def category_color(category: str) -> str:
    return CATEGORY_COLORS.get(category.lower(), DEFAULT_CATEGORY_COLOR)


def category_totals(expenses: Iterable[TransactionRecord]) -> list[dict]:
    totals: dict[str, float] = defaultdict(float)
    for transaction in expenses:
        totals[transaction.category] += float(transaction.amount)

    grand_total = sum(totals.values())
    items = []
    for category, total in totals.items():
        share = round(total / grand_total * 100, 1) if grand_total else 0.0
        items.append(
            {
                "category": category,
                "total": round(total, 2),
                "color": category_color(category),
                "percentage": share,
            }
        )
    items.sort(key=lambda item: item["total"], reverse=True)
    return items


def net_worth(accounts: Iterable[AccountRecord]) -> dict:
    assets = 0.0
    liabilities = 0.0
    for account in accounts:
        if not account.is_active:
            continue
        if account.balance >= 0:
            assets += account.balance
        else:
            liabilities += abs(account.balance)
    return {
        "assets": round(assets, 2),
        "liabilities": round(liabilities, 2),
        "net_worth": round(assets - liabilities, 2),
    }


def net_worth_change(series: list[NetWorthSnapshotRecord]) -> float:
    """Percent change between the two most recent snapshots."""
    if len(series) < 2:
        return 0.0
    latest, previous = series[-1].net_worth, series[-2].net_worth
    if previous == 0:
        return 0.0
    return round((latest - previous) / previous * 100, 2)


def timeframe_days(timeframe: str) -> int:
    try:
        return TIMEFRAME_DAYS[timeframe]
    except KeyError:
        raise ValueError(f"Unknown timeframe: {timeframe}") from None
