"""
Test Suite for the Month Aggregator and ShiftCalendar service

Covers index merging order, duplicate handling, partial-failure isolation
and the store-backed month views.
"""

import pytest
from datetime import date
import sys
from pathlib import Path
import tempfile
import os
import json

# Setup import path for src
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shift_calendar.data_manager import DataManager, ShiftDefinition, RecurrenceRule, WageType
from shift_calendar.calendar_logic import aggregate, ShiftCalendar, DisplayItem, MonthSchedule
from shift_calendar.color_manager import ColorManager, SESSION_COLORS
from shift_calendar.date_utils import YearMonth


def make_shift(shift_id, rule, start, end=None, weekdays=(), label=None, color_key=None):
    return ShiftDefinition(
        id=shift_id,
        label=label or f"Job {shift_id}",
        start_date=start,
        end_date=end,
        recurrence_rule=rule,
        selected_weekdays=set(weekdays),
        color_key=color_key,
    )


@pytest.fixture
def june_shifts():
    return [
        make_shift("A", RecurrenceRule.DAILY, date(2024, 6, 1), date(2024, 6, 10)),
        make_shift("B", RecurrenceRule.WEEKLY, date(2024, 6, 1), weekdays={1}),
        make_shift("C", RecurrenceRule.NONE, date(2024, 6, 3)),
    ]


@pytest.fixture
def data_manager():
    """Clean DataManager for each test - isolated temp file."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as temp:
        temp_path = temp.name
        json.dump({}, temp)
    dm = DataManager(temp_path)
    yield dm
    os.unlink(temp_path)
    for suffix in (".bak", ".tmp"):
        leftover = Path(temp_path).with_suffix(suffix)
        if leftover.exists():
            leftover.unlink()


def test_shared_date_keeps_input_order(june_shifts):
    result = aggregate(june_shifts, YearMonth(2024, 6), ColorManager())
    assert result.date_index["2024-06-03"] == ["A", "B", "C"]
    assert [item.shift_id for item in result.display_index["2024-06-03"]] == ["A", "B", "C"]
    assert result.success


def test_indices_cover_exactly_projected_dates(june_shifts):
    result = aggregate(june_shifts, YearMonth(2024, 6), ColorManager())
    assert result.dates_for("A") == [f"2024-06-{d:02d}" for d in range(1, 11)]
    assert result.dates_for("B") == ["2024-06-03", "2024-06-10", "2024-06-17", "2024-06-24"]
    assert result.dates_for("C") == ["2024-06-03"]
    assert set(result.date_index) == set(result.display_index)
    for date_str, ids in result.date_index.items():
        assert [item.shift_id for item in result.display_index[date_str]] == ids


def test_duplicate_shift_listed_once_per_date():
    """
    Why this is important: the same shift appearing twice in the input must
    not draw two dots or be paid twice on the same day.
    """
    shift = make_shift("A", RecurrenceRule.DAILY, date(2024, 6, 1), date(2024, 6, 3))
    result = aggregate([shift, shift], YearMonth(2024, 6), ColorManager())
    for date_str in ("2024-06-01", "2024-06-02", "2024-06-03"):
        assert result.date_index[date_str] == ["A"]
        assert len(result.display_index[date_str]) == 1


def test_failing_shift_does_not_abort_month():
    """
    Why this is important: one broken shift definition must not blank the
    whole calendar. The other shifts still show and the failure is reported.
    """
    shifts = [
        make_shift("A", RecurrenceRule.DAILY, date(2024, 6, 1), date(2024, 6, 2)),
        make_shift("BAD", RecurrenceRule.DAILY, date(2024, 6, 20), date(2024, 6, 1)),
        make_shift("ODD", "fortnightly", date(2024, 6, 1)),
        make_shift("C", RecurrenceRule.NONE, date(2024, 6, 2)),
    ]
    result = aggregate(shifts, YearMonth(2024, 6), ColorManager())

    assert result.date_index["2024-06-02"] == ["A", "C"]
    assert not result.success
    assert [(f.shift_id, f.error_type) for f in result.errors] == [
        ("BAD", "InvalidShiftError"),
        ("ODD", "UnknownRecurrenceRuleError"),
    ]
    assert "BAD" not in {sid for ids in result.date_index.values() for sid in ids}


def test_explicit_color_wins_and_lookup_only_for_contributing_shifts():
    calls = []

    def color_of(shift_id):
        calls.append(shift_id)
        return "#123456"

    shifts = [
        make_shift("A", RecurrenceRule.NONE, date(2024, 6, 1), color_key="#ABCDEF"),
        make_shift("B", RecurrenceRule.NONE, date(2024, 6, 2)),
        make_shift("LATER", RecurrenceRule.NONE, date(2024, 8, 1)),
    ]
    result = aggregate(shifts, YearMonth(2024, 6), color_of)

    assert result.display_index["2024-06-01"] == [DisplayItem("A", "Job A", "#ABCDEF")]
    assert result.display_index["2024-06-02"] == [DisplayItem("B", "Job B", "#123456")]
    assert calls == ["B"]


def test_aggregate_is_idempotent(june_shifts):
    colors = ColorManager()
    first = aggregate(june_shifts, YearMonth(2024, 6), colors)
    second = aggregate(june_shifts, YearMonth(2024, 6), colors)
    assert first.date_index == second.date_index
    assert first.display_index == second.display_index


def test_no_duplicate_ids_in_any_date(june_shifts):
    result = aggregate(june_shifts + june_shifts[:2], YearMonth(2024, 6), ColorManager())
    for ids in result.date_index.values():
        assert len(ids) == len(set(ids))


def test_empty_input_gives_empty_month():
    result = aggregate([], "2024-06", ColorManager())
    assert result == MonthSchedule(year_month=YearMonth(2024, 6))


def test_shift_calendar_builds_month_from_store(data_manager):
    cafe = data_manager.add_shift("Cafe", date(2024, 6, 1), RecurrenceRule.WEEKLY,
                                  selected_weekdays={1, 3, 5})
    tutoring = data_manager.add_shift("Tutoring", date(2024, 6, 5), RecurrenceRule.NONE)
    calendar_service = ShiftCalendar(data_manager)

    schedule = calendar_service.build_month(2024, 6)

    assert schedule.shift_ids_on("2024-06-05") == [cafe.id, tutoring.id]
    assert schedule.display_items_on(date(2024, 6, 5))[0].color_key == SESSION_COLORS[0]
    assert schedule.display_items_on(date(2024, 6, 5))[1].color_key == SESSION_COLORS[1]
    assert data_manager.get_setting("lastUsedMonth") == "2024-06"

    details = calendar_service.get_day_details(2024, 6, "2024-06-05", schedule)
    assert [s.label for s in details] == ["Cafe", "Tutoring"]
    assert calendar_service.get_day_details(2024, 6, "2024-06-04", schedule) == []


def test_stored_bad_shift_is_reported_not_fatal(data_manager):
    good = data_manager.add_shift("Cafe", date(2024, 6, 1), RecurrenceRule.DAILY, date(2024, 6, 2))
    # Written by an older client that skipped validation
    data_manager.data["shifts"]["broken"] = {
        "id": "broken", "label": "Broken", "startDate": "2024-06-10",
        "endDate": "2024-06-01", "recurrenceRule": "daily", "selectedWeekdays": [],
    }

    schedule = ShiftCalendar(data_manager).build_month(2024, 6)

    assert schedule.dates_for(good.id) == ["2024-06-01", "2024-06-02"]
    assert [f.shift_id for f in schedule.errors] == ["broken"]


def test_horizon_setting_is_used(data_manager):
    data_manager.add_shift("Cafe", date(2024, 1, 1), RecurrenceRule.DAILY)
    data_manager.set_setting("projectionHorizonMonths", 0)
    schedule = ShiftCalendar(data_manager).build_month(2024, 6)
    assert len(schedule.date_index) == 30


def test_monthly_earnings_through_calendar(data_manager):
    data_manager.add_shift("Cafe", date(2024, 6, 1), RecurrenceRule.WEEKLY,
                           selected_weekdays={1, 3, 5}, wage=15.0,
                           wage_type=WageType.HOURLY, start_time="09:00", end_time="13:00")
    earnings = ShiftCalendar(data_manager).calculate_monthly_earnings(2024, 6)
    assert earnings.total == pytest.approx(720.0)


def test_delete_shift_frees_color(data_manager):
    first = data_manager.add_shift("Cafe", date(2024, 6, 1))
    calendar_service = ShiftCalendar(data_manager)
    calendar_service.build_month(2024, 6)
    assert calendar_service.color_manager.get_color(first.id) == SESSION_COLORS[0]

    assert calendar_service.delete_shift(first.id)
    assert data_manager.get_shift(first.id) is None
    assert SESSION_COLORS[0] in calendar_service.color_manager.available_colors()
    assert not calendar_service.delete_shift(first.id)


def test_failing_color_lookup_is_reported_not_fatal():
    def color_of(shift_id):
        if shift_id == "B":
            raise KeyError(shift_id)
        return "#123456"

    shifts = [
        make_shift("A", RecurrenceRule.NONE, date(2024, 6, 1)),
        make_shift("B", RecurrenceRule.NONE, date(2024, 6, 1)),
        make_shift("C", RecurrenceRule.NONE, date(2024, 6, 2)),
    ]
    result = aggregate(shifts, YearMonth(2024, 6), color_of)

    assert result.date_index == {"2024-06-01": ["A"], "2024-06-02": ["C"]}
    assert [(f.shift_id, f.error_type) for f in result.errors] == [("B", "KeyError")]


def test_colors_survive_reload(tmp_path):
    """
    Why this is important: a job must keep its color between runs. Viewing
    a different month first must not hand the same color to another job.
    """
    path = tmp_path / "shifts.json"
    dm = DataManager(path)
    summer = dm.add_shift("Summer job", date(2024, 7, 1), RecurrenceRule.DAILY, date(2024, 7, 31))
    cafe = dm.add_shift("Cafe", date(2024, 6, 3))
    dm.save_data()

    first_run = DataManager(path)
    july = ShiftCalendar(first_run).build_month(2024, 7)
    summer_color = july.display_items_on("2024-07-01")[0].color_key
    first_run.save_data()

    second_run = DataManager(path)
    june = ShiftCalendar(second_run).build_month(2024, 6)
    cafe_color = june.display_items_on("2024-06-03")[0].color_key

    assert summer_color == SESSION_COLORS[0]
    assert cafe_color == SESSION_COLORS[1]
    assert second_run.get_shift(summer.id).color_key == summer_color
    assert second_run.get_shift(cafe.id).color_key == cafe_color


def test_new_shift_gets_color_not_already_stored(data_manager):
    data_manager.add_shift("Old job", date(2024, 6, 1), color_key=SESSION_COLORS[0])
    calendar_service = ShiftCalendar(data_manager)

    new = calendar_service.add_shift("New job", date(2024, 6, 2))

    assert new.color_key == SESSION_COLORS[1]
    assert data_manager.get_shift(new.id).color_key == SESSION_COLORS[1]


def test_clear_and_restore_rebuild_colors(data_manager):
    calendar_service = ShiftCalendar(data_manager)
    shift = calendar_service.add_shift("Cafe", date(2024, 6, 1))
    snapshot = data_manager.export_data()

    assert calendar_service.clear_shifts() == 1
    assert calendar_service.color_manager.used_colors() == []

    assert calendar_service.import_data(snapshot) == 1
    assert calendar_service.color_manager.get_color(shift.id) == SESSION_COLORS[0]
    assert calendar_service.build_month(2024, 6).dates_for(shift.id) == ["2024-06-01"]


def test_legacy_timestamp_record_counts_towards_earnings(data_manager):
    """
    Why this is important: records from the mobile app carry ISO timestamps
    as shift times. They must still be paid, and a record whose time cannot
    be read must not stop the month's earnings from being computed.
    """
    data_manager.data["shifts"]["bar"] = {
        "id": "bar", "jobName": "Bar", "repeatOption": "none",
        "startDate": "2024-06-02T00:00:00.000Z",
        "startTime": "2024-06-02T09:00:00.000Z", "endTime": "2024-06-02T17:00:00.000Z",
        "wage": 10,
    }
    data_manager.data["shifts"]["garbled"] = {
        "id": "garbled", "label": "Garbled", "startDate": "2024-06-03",
        "recurrenceRule": "none", "startTime": "9ish",
    }
    calendar_service = ShiftCalendar(data_manager)

    schedule = calendar_service.build_month(2024, 6)
    earnings = calendar_service.calculate_monthly_earnings(2024, 6, schedule)

    assert schedule.dates_for("bar") == ["2024-06-02"]
    assert schedule.shift_ids_on("2024-06-03") == []
    assert earnings.total == pytest.approx(80.0)
