"""
Monthly earnings estimates

Turns a month's date index into pay totals using each shift's wage setup.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional
import logging

from .data_manager import ShiftDefinition, WageType
from .date_utils import MonthLike, to_year_month, parse_iso_date


logger = logging.getLogger(__name__)


@dataclass
class EarningsSummary:
    """Estimated pay for one month"""
    month_key: str
    total: float = 0.0
    per_shift: Dict[str, float] = field(default_factory=dict)
    worked_days: Dict[str, int] = field(default_factory=dict)


def shift_hours(shift: ShiftDefinition) -> float:
    """Length of one occurrence in hours; an end before the start runs past midnight"""
    start = datetime.strptime(shift.start_time, "%H:%M")
    end = datetime.strptime(shift.end_time, "%H:%M")
    minutes = (end - start).total_seconds() / 60
    if minutes < 0:
        minutes += 24 * 60
    return minutes / 60


def calculate_daily_wage(shift: ShiftDefinition) -> Optional[float]:
    """Pay for a single worked day, or None for monthly salaries"""
    wage_type = WageType(shift.wage_type)
    if wage_type == WageType.DAILY:
        return round(shift.wage, 2)
    if wage_type == WageType.HOURLY:
        return round(shift_hours(shift) * shift.wage, 2)
    return None


def calculate_monthly_earnings(date_index: Mapping[str, List[str]],
                               shifts_by_id: Mapping[str, ShiftDefinition],
                               target_month: MonthLike) -> EarningsSummary:
    """
    Sum the pay of every (date, shift) pair of the month in date_index

    Monthly-salaried shifts count their wage once when they occur at least
    once in the month. IDs missing from shifts_by_id are ignored.
    """
    year_month = to_year_month(target_month)
    summary = EarningsSummary(month_key=year_month.key)
    daily_wages: Dict[str, Optional[float]] = {}

    for date_str, shift_ids in date_index.items():
        if not year_month.contains(parse_iso_date(date_str)):
            continue
        for shift_id in shift_ids:
            shift = shifts_by_id.get(shift_id)
            if shift is None:
                logger.debug(f"Ignoring unknown shift {shift_id} on {date_str}")
                continue
            if shift_id not in daily_wages:
                daily_wages[shift_id] = calculate_daily_wage(shift)
            summary.worked_days[shift_id] = summary.worked_days.get(shift_id, 0) + 1
            wage = daily_wages[shift_id]
            if wage is not None:
                summary.per_shift[shift_id] = summary.per_shift.get(shift_id, 0.0) + wage

    for shift_id, wage in daily_wages.items():
        if wage is None:
            summary.per_shift[shift_id] = round(shifts_by_id[shift_id].wage, 2)

    summary.per_shift = {k: round(v, 2) for k, v in summary.per_shift.items()}
    summary.total = round(sum(summary.per_shift.values()), 2)
    return summary
