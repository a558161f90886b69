"""
Recurrence Projector for the Shift Calendar

Expands a single shift definition onto one calendar month. Every bound is
inclusive, and open-ended shifts are cut off at a fixed horizon past the
viewed month so no projection iterates without limit.
"""

from datetime import date
from typing import Callable, Dict, List, Set
import logging

from .data_manager import ShiftDefinition, RecurrenceRule, DEFAULT_HORIZON_MONTHS
from .date_utils import (
    MonthLike, YearMonth, to_year_month, to_iso, iter_days, clip_to_month,
    month_horizon_end, sunday_weekday, week_start,
)


logger = logging.getLogger(__name__)


class ProjectionError(Exception):
    """Base exception for projecting a shift onto a month"""
    pass


class InvalidShiftError(ProjectionError):
    """Raised when a shift definition is internally inconsistent"""
    pass


class UnknownRecurrenceRuleError(ProjectionError):
    """Raised when a shift carries a recurrence rule we do not know"""
    pass


def _resolve_rule(shift: ShiftDefinition) -> RecurrenceRule:
    try:
        return RecurrenceRule(shift.recurrence_rule)
    except ValueError:
        raise UnknownRecurrenceRuleError(
            f"Shift {shift.id} has unknown recurrence rule '{shift.recurrence_rule}'"
        )


def _check_shift(shift: ShiftDefinition):
    if not isinstance(shift.start_date, date):
        raise InvalidShiftError(f"Shift {shift.id} has no valid start date: {shift.start_date!r}")
    if shift.end_date is not None:
        if not isinstance(shift.end_date, date):
            raise InvalidShiftError(f"Shift {shift.id} has an invalid end date: {shift.end_date!r}")
        if shift.start_date > shift.end_date:
            raise InvalidShiftError(
                f"Shift {shift.id} starts {shift.start_date} after it ends {shift.end_date}"
            )
    bad_days = sorted(d for d in shift.selected_weekdays if not 0 <= d <= 6)
    if bad_days:
        raise InvalidShiftError(f"Shift {shift.id} has weekday indices outside 0..6: {bad_days}")


def _effective_end(shift: ShiftDefinition, year_month: YearMonth, horizon_months: int) -> date:
    if shift.end_date is not None:
        return shift.end_date
    return month_horizon_end(year_month, horizon_months)


def _project_none(shift: ShiftDefinition, year_month: YearMonth, horizon_months: int) -> List[date]:
    end = shift.end_date if shift.end_date is not None else shift.start_date
    window = clip_to_month(shift.start_date, end, year_month)
    if window is None:
        return []
    return list(iter_days(*window))


def _project_daily(shift: ShiftDefinition, year_month: YearMonth, horizon_months: int) -> List[date]:
    end = _effective_end(shift, year_month, horizon_months)
    window = clip_to_month(shift.start_date, end, year_month)
    if window is None:
        return []
    return list(iter_days(*window))


def _project_weekly(shift: ShiftDefinition, year_month: YearMonth, horizon_months: int) -> List[date]:
    if not shift.selected_weekdays:
        return []
    end = _effective_end(shift, year_month, horizon_months)
    window = clip_to_month(shift.start_date, end, year_month)
    if window is None:
        return []
    return [day for day in iter_days(*window) if sunday_weekday(day) in shift.selected_weekdays]


def _project_biweekly(shift: ShiftDefinition, year_month: YearMonth, horizon_months: int) -> List[date]:
    anchor = week_start(shift.start_date)
    return [
        day for day in _project_weekly(shift, year_month, horizon_months)
        if (week_start(day) - anchor).days % 14 == 0
    ]


def _project_monthly(shift: ShiftDefinition, year_month: YearMonth, horizon_months: int) -> List[date]:
    day_of_month = shift.start_date.day
    # Months without that day (the 31st in April) get no occurrence
    if day_of_month > year_month.days_in_month:
        return []
    occurrence = date(year_month.year, year_month.month, day_of_month)
    if occurrence < shift.start_date:
        return []
    if shift.end_date is not None and occurrence > shift.end_date:
        return []
    return [occurrence]


_PROJECTORS: Dict[RecurrenceRule, Callable[[ShiftDefinition, YearMonth, int], List[date]]] = {
    RecurrenceRule.NONE: _project_none,
    RecurrenceRule.DAILY: _project_daily,
    RecurrenceRule.WEEKLY: _project_weekly,
    RecurrenceRule.BIWEEKLY: _project_biweekly,
    RecurrenceRule.MONTHLY: _project_monthly,
}


def project_dates(shift: ShiftDefinition, target_month: MonthLike,
                  horizon_months: int = DEFAULT_HORIZON_MONTHS) -> List[date]:
    """
    Compute the days of target_month on which the shift occurs

    Args:
        shift: Shift definition to expand
        target_month: YearMonth, any date in the month, or a "YYYY-MM" key
        horizon_months: How many months past target_month an open-ended
            shift is considered to run

    Returns:
        Sorted list of distinct dates, all inside target_month

    Raises:
        UnknownRecurrenceRuleError: the rule is not one of RecurrenceRule
        InvalidShiftError: the dates or weekdays are inconsistent
    """
    year_month = to_year_month(target_month)
    if horizon_months < 0:
        raise ValueError(f"Horizon must not be negative, got {horizon_months}")
    rule = _resolve_rule(shift)
    _check_shift(shift)

    dates = sorted(set(_PROJECTORS[rule](shift, year_month, horizon_months)))
    logger.debug(f"Projected shift {shift.id} ({rule.value}) onto {year_month}: {len(dates)} days")
    return dates


def project(shift: ShiftDefinition, target_month: MonthLike,
            horizon_months: int = DEFAULT_HORIZON_MONTHS) -> Set[str]:
    """ISO date strings of the days in target_month on which the shift occurs"""
    return {to_iso(day) for day in project_dates(shift, target_month, horizon_months)}
