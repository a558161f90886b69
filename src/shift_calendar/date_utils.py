"""
Date helpers for the Shift Calendar

Month arithmetic, day iteration and the weekday convention shared by the
recurrence projector and the month aggregator. Weekdays are indexed
0 = Sunday .. 6 = Saturday and weeks start on Sunday.
"""

from datetime import date, timedelta
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union
import calendar


ISO_FORMAT = "%Y-%m-%d"

WEEKDAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


@dataclass(frozen=True, order=True)
class YearMonth:
    """A concrete calendar month"""
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month must be in 1..12, got {self.month}")

    @classmethod
    def parse(cls, value: str) -> 'YearMonth':
        """Parse a "YYYY-MM" month key"""
        try:
            year_str, month_str = value.strip().split('-')
            return cls(int(year_str), int(month_str))
        except (ValueError, AttributeError) as e:
            raise ValueError(f"Invalid month key '{value}': expected YYYY-MM") from e

    @classmethod
    def from_date(cls, day: date) -> 'YearMonth':
        return cls(day.year, day.month)

    @classmethod
    def today(cls) -> 'YearMonth':
        return cls.from_date(date.today())

    @property
    def key(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days_in_month)

    def add_months(self, months: int) -> 'YearMonth':
        index = self.year * 12 + (self.month - 1) + months
        return YearMonth(index // 12, index % 12 + 1)

    def contains(self, day: date) -> bool:
        return day.year == self.year and day.month == self.month

    def __str__(self) -> str:
        return self.key


MonthLike = Union[YearMonth, date, str]


def to_year_month(value: MonthLike) -> YearMonth:
    """Normalize a YearMonth, a date or a "YYYY-MM" string to a YearMonth"""
    if isinstance(value, YearMonth):
        return value
    if isinstance(value, date):
        return YearMonth.from_date(value)
    if isinstance(value, str):
        return YearMonth.parse(value)
    raise TypeError(f"Cannot interpret {value!r} as a calendar month")


def to_iso(day: date) -> str:
    return day.strftime(ISO_FORMAT)


def parse_iso_date(value: Union[str, date, None]) -> Optional[date]:
    """Parse an ISO date string, passing dates and None through"""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        # Accept full ISO timestamps as stored by older clients
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise ValueError(f"Invalid date '{value}': expected YYYY-MM-DD") from e


def sunday_weekday(day: date) -> int:
    """Weekday index with 0 = Sunday .. 6 = Saturday"""
    return (day.weekday() + 1) % 7


def week_start(day: date) -> date:
    """Sunday on or before the given day"""
    return day - timedelta(days=sunday_weekday(day))


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every day in [start, end], inclusive; nothing if start > end"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def clip_to_month(start: date, end: date, year_month: YearMonth) -> Optional[Tuple[date, date]]:
    """Intersect [start, end] with the month, or None when they do not overlap"""
    lower = max(start, year_month.first_day)
    upper = min(end, year_month.last_day)
    if lower > upper:
        return None
    return lower, upper


def month_horizon_end(year_month: YearMonth, horizon_months: int) -> date:
    """Last day of the month `horizon_months` after the given one"""
    if horizon_months < 0:
        raise ValueError(f"Horizon must not be negative, got {horizon_months}")
    return year_month.add_months(horizon_months).last_day
