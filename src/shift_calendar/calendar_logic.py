"""
Month Aggregator for the Shift Calendar

Projects every shift onto the viewed month and merges the results into the
two indices the calendar renders from: shift IDs per date and display items
per date. A shift that fails to project is reported, not fatal.
"""

from datetime import date
from typing import Callable, Dict, List, Optional, Sequence
from dataclasses import dataclass, field
import logging

from .data_manager import DataManager, ShiftDefinition, RecurrenceRule, DEFAULT_HORIZON_MONTHS
from .color_manager import ColorManager
from .date_utils import MonthLike, YearMonth, to_year_month, to_iso
from .earnings import EarningsSummary, calculate_monthly_earnings
from .recurrence import project_dates


logger = logging.getLogger(__name__)

ColorLookup = Callable[[str], str]


@dataclass(frozen=True)
class DisplayItem:
    """What the calendar draws for one shift on one day"""
    shift_id: str
    label: str
    color_key: str


@dataclass(frozen=True)
class ProjectionFailure:
    """A shift that could not be projected onto the month"""
    shift_id: str
    error_type: str
    message: str


@dataclass
class MonthSchedule:
    """Result of aggregating all shifts for one month"""
    year_month: YearMonth
    date_index: Dict[str, List[str]] = field(default_factory=dict)
    display_index: Dict[str, List[DisplayItem]] = field(default_factory=dict)
    errors: List[ProjectionFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def shift_ids_on(self, day) -> List[str]:
        key = to_iso(day) if isinstance(day, date) else day
        return list(self.date_index.get(key, []))

    def display_items_on(self, day) -> List[DisplayItem]:
        key = to_iso(day) if isinstance(day, date) else day
        return list(self.display_index.get(key, []))

    def dates_for(self, shift_id: str) -> List[str]:
        return sorted(d for d, ids in self.date_index.items() if shift_id in ids)


def aggregate(shifts: Sequence[ShiftDefinition], target_month: MonthLike,
              color_of: ColorLookup,
              horizon_months: int = DEFAULT_HORIZON_MONTHS) -> MonthSchedule:
    """
    Build the date and display indices for a month

    Args:
        shifts: Snapshot of shift definitions, in display order
        target_month: Month being viewed
        color_of: Stable shift ID to color lookup, used when a shift has no
            explicit color_key
        horizon_months: Projection horizon for open-ended shifts

    Returns:
        MonthSchedule with both indices and any per-shift failures
    """
    year_month = to_year_month(target_month)
    result = MonthSchedule(year_month=year_month)

    for shift in shifts:
        try:
            dates = project_dates(shift, year_month, horizon_months)
            if not dates:
                continue
            item = DisplayItem(
                shift_id=shift.id,
                label=shift.label,
                color_key=shift.color_key or color_of(shift.id)
            )
        except Exception as e:
            logger.warning(f"Skipping shift {getattr(shift, 'id', '?')} for {year_month}: {e}")
            result.errors.append(ProjectionFailure(
                shift_id=str(getattr(shift, 'id', '')),
                error_type=type(e).__name__,
                message=str(e)
            ))
            continue

        for day in dates:
            key = to_iso(day)
            shift_ids = result.date_index.setdefault(key, [])
            # Same shift listed twice in the input
            if shift.id in shift_ids:
                continue
            shift_ids.append(shift.id)
            result.display_index.setdefault(key, []).append(item)

    logger.info(f"Aggregated {len(shifts)} shifts for {year_month}: "
                f"{len(result.date_index)} active days, {len(result.errors)} failures")
    return result


class ShiftCalendar:
    """Builds month views from the shift store"""

    def __init__(self, data_manager: DataManager, color_manager: Optional[ColorManager] = None):
        self.data_manager = data_manager
        self.color_manager = color_manager or ColorManager()
        self.sync_colors()

    def sync_colors(self):
        """
        Load stored shift colors into the color manager

        Shifts saved without a color get the next free one, written back to
        the store in store order, so every month and export shows a shift in
        the same color.
        """
        uncolored = []
        for shift in self.data_manager.get_shifts():
            if shift.color_key:
                self.color_manager.assign(shift.id, shift.color_key)
            else:
                uncolored.append(shift.id)
        for shift_id in uncolored:
            self.data_manager.set_shift_color(shift_id, self.color_manager.get_color(shift_id))
        if uncolored:
            logger.info(f"Assigned colors to {len(uncolored)} shifts")

    def add_shift(self, label: str, start_date, recurrence_rule=RecurrenceRule.NONE,
                  end_date=None, selected_weekdays=None, **details) -> ShiftDefinition:
        """Add a shift to the store with its display color fixed at creation"""
        return self.data_manager.add_shift(
            label, start_date, recurrence_rule, end_date, selected_weekdays,
            color_of=self.color_manager.get_color, **details
        )

    def build_month(self, year: int, month: int) -> MonthSchedule:
        """Aggregate the current store snapshot for the given month"""
        year_month = YearMonth(year, month)
        self.data_manager.set_setting("lastUsedMonth", year_month.key)
        self.sync_colors()
        return aggregate(
            self.data_manager.get_shifts(),
            year_month,
            self.color_manager.get_color,
            horizon_months=self.data_manager.get_projection_horizon()
        )

    def get_day_details(self, year: int, month: int, day_iso: str,
                        month_schedule: Optional[MonthSchedule] = None) -> List[ShiftDefinition]:
        """Shift definitions active on a day, in calendar order"""
        schedule = month_schedule or self.build_month(year, month)
        shifts_by_id = self.data_manager.get_shifts_by_id()
        return [shifts_by_id[sid] for sid in schedule.shift_ids_on(day_iso) if sid in shifts_by_id]

    def calculate_monthly_earnings(self, year: int, month: int,
                                   month_schedule: Optional[MonthSchedule] = None) -> EarningsSummary:
        schedule = month_schedule or self.build_month(year, month)
        return calculate_monthly_earnings(
            schedule.date_index,
            self.data_manager.get_shifts_by_id(),
            schedule.year_month
        )

    def delete_shift(self, shift_id: str) -> bool:
        """Delete from the store and free the shift's color"""
        deleted = self.data_manager.delete_shift(shift_id)
        if deleted:
            self.color_manager.release_color(shift_id)
        return deleted

    def clear_shifts(self) -> int:
        """Remove every shift and return all colors to the palette"""
        count = self.data_manager.clear_shifts()
        self.color_manager.reset()
        return count

    def import_data(self, data, merge: bool = False) -> int:
        """Restore a backup and rebuild the color assignments from it"""
        count = self.data_manager.import_data(data, merge=merge)
        self.color_manager.reset()
        self.sync_colors()
        return count
