"""Read-only projections over a controller's current list.

Nothing here keeps state or mutates its input; every function can be rerun
from scratch on each list change.
"""
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, Tuple

from planner.domain import Note, Task, Transaction, WeeklyBudget

NEAR_THRESHOLD = Decimal("0.85")

COMPLETED_COLOR = "#d1d1d1"
_EVENT_COLORS = {"High": "#f87171", "Med": "#60a5fa", "Low": "#fde047"}
_DEFAULT_EVENT_COLOR = "#d1d5db"

# red / blue / yellow, gray for anything else
_PRIORITY_COLORS = {"High": "red", "Med": "blue", "Low": "yellow"}
_TAG_COLORS = {"Tag1": "red", "Tag2": "blue", "Tag3": "yellow"}


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    title: str
    start: datetime
    end: datetime
    priority: str
    completed: bool
    color: str


@dataclass(frozen=True)
class BudgetSummary:
    budget: Decimal
    total_expenses: Decimal
    remaining: Decimal
    near_threshold: bool
    exceeded: bool
    by_category: Tuple[Tuple[str, Decimal], ...]


def event_color(priority: str, completed: bool) -> str:
    if completed:
        return COMPLETED_COLOR
    return _EVENT_COLORS.get(priority, _DEFAULT_EVENT_COLOR)


def priority_color(priority: str) -> str:
    return _PRIORITY_COLORS.get(priority, "gray")


def tag_color(tag: str) -> str:
    return _TAG_COLORS.get(tag, "gray")


def calendar_events(tasks: Iterable[Task]) -> Tuple[CalendarEvent, ...]:
    return tuple(
        CalendarEvent(
            id=t.id,
            title=t.text,
            start=t.start,
            end=t.end,
            priority=t.priority,
            completed=t.completed,
            color=event_color(t.priority, t.completed),
        )
        for t in tasks
    )


def expenses_by_category(transactions: Iterable[Transaction]) -> Tuple[Tuple[str, Decimal], ...]:
    """Category totals, largest first; ties keep first-seen order."""
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    for t in transactions:
        totals[t.category] += t.amount
    return tuple(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def budget_summary(transactions: Iterable[Transaction], weekly_budget: WeeklyBudget,
                   near_ratio: Decimal = NEAR_THRESHOLD) -> BudgetSummary:
    transactions = tuple(transactions)
    budget = weekly_budget.amount
    total = sum((t.amount for t in transactions), Decimal("0"))
    return BudgetSummary(
        budget=budget,
        total_expenses=total,
        remaining=budget - total,
        near_threshold=total >= near_ratio * budget,
        exceeded=total > budget,
        by_category=expenses_by_category(transactions),
    )


def filter_notes(notes: Iterable[Note], query: str) -> Tuple[Note, ...]:
    """Notes whose title contains ``query``, ignoring case; all notes if it is empty."""
    notes = tuple(notes)
    if not query:
        return notes
    needle = query.lower()
    return tuple(n for n in notes if needle in n.title.lower())


def format_timestamp(ts: datetime) -> str:
    """'Jan 2, 2025, 9:05 AM' in local time."""
    if ts.tzinfo is not None:
        ts = ts.astimezone()
    hour = ts.hour % 12 or 12
    return f"{ts.strftime('%b')} {ts.day}, {ts.year}, {hour}:{ts.strftime('%M %p')}"


def format_clock(now: datetime) -> Tuple[str, str]:
    """('October 19, 2026', '3:04:05 PM')"""
    hour = now.hour % 12 or 12
    return (
        f"{now.strftime('%B')} {now.day}, {now.year}",
        f"{hour}:{now.strftime('%M:%S %p')}",
    )
