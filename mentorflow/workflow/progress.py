"""
Progress arithmetic.

Week progress is a pure function of the assignment statuses under the week;
curriculum progress is a task-weighted average of week progress. Nothing in
this module touches the database, so recomputing from the same statuses
always yields the same numbers.
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence

from ..database.models import AssignmentStatusEnum, WeekProgressStatusEnum


@dataclass(frozen=True)
class WeekProgress:
    total_tasks: int
    completed_tasks: int
    progress_percentage: int
    status: str


def percentage(completed: int, total: int) -> int:
    """Integer percentage rounded half up; 0 for an empty denominator."""
    if total <= 0:
        return 0
    # Integer arithmetic avoids banker's rounding from round()
    return (200 * completed + total) // (2 * total)


def derive_week_status(completed: int, total: int, any_started: bool) -> str:
    if total > 0 and completed == total:
        return WeekProgressStatusEnum.COMPLETED.value
    if completed == 0 and not any_started:
        return WeekProgressStatusEnum.NOT_STARTED.value
    return WeekProgressStatusEnum.IN_PROGRESS.value


def compute_week_progress(statuses: Iterable[str]) -> WeekProgress:
    """Aggregate one week from its assignment statuses."""
    statuses = list(statuses)
    total = len(statuses)
    completed = sum(1 for s in statuses if s == AssignmentStatusEnum.COMPLETED.value)
    started = any(s != AssignmentStatusEnum.NOT_STARTED.value for s in statuses)
    return WeekProgress(
        total_tasks=total,
        completed_tasks=completed,
        progress_percentage=percentage(completed, total),
        status=derive_week_status(completed, total, started),
    )


def overall_progress(weeks: Sequence[WeekProgress]) -> int:
    """
    Task-weighted average of week progress.

    Weighting each week's exact ratio by its task count reduces to
    sum(completed) / sum(total), so empty weeks never skew the result.
    """
    completed = sum(w.completed_tasks for w in weeks)
    total = sum(w.total_tasks for w in weeks)
    return percentage(completed, total)


def current_week_number(weeks: Sequence[tuple]) -> int:
    """
    Lowest week number whose week is not yet completed.

    Args:
        weeks: (week_number, WeekProgress) pairs

    Returns:
        That week number, or the last week number when everything is complete
    """
    ordered: List[tuple] = sorted(weeks, key=lambda pair: pair[0])
    for number, progress in ordered:
        if progress.status != WeekProgressStatusEnum.COMPLETED.value:
            return number
    return ordered[-1][0] if ordered else 1
