"""
Main Entry Point for the Shift Calendar

Loads the shift store, builds the requested month and prints or exports it.
Subcommands add, list and delete shifts and back up or restore the store.
"""

import sys
import argparse
import json
import logging
from pathlib import Path
from datetime import datetime
from typing import List, Optional

from shift_calendar.data_manager import DataManager, DataManagerError, RecurrenceRule, WageType
from shift_calendar.calendar_logic import ShiftCalendar
from shift_calendar.date_utils import YearMonth, WEEKDAY_NAMES, to_iso
from shift_calendar.reporting import ExportManager


def setup_logging(log_dir: str = "logs"):
    """Setup application logging"""
    log_path = Path(log_dir)
    log_path.mkdir(exist_ok=True)

    log_file = log_path / f"shift_calendar_{datetime.now().strftime('%Y%m%d')}.log"

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )

    return logging.getLogger(__name__)


def handle_exception(exc_type, exc_value, exc_traceback):
    """Global exception handler"""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logging.getLogger(__name__).error(
        "Uncaught exception",
        exc_info=(exc_type, exc_value, exc_traceback)
    )


def _parse_weekdays(value: str) -> List[int]:
    """Comma separated weekday indices, 0 = Sunday .. 6 = Saturday"""
    try:
        days = [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid weekday list '{value}': expected e.g. 1,3,5")
    if any(not 0 <= day <= 6 for day in days):
        raise argparse.ArgumentTypeError(f"Weekdays must be in 0..6 (0 = Sunday), got '{value}'")
    return days


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shift-calendar",
        description="Show work shifts for a month and estimate earnings."
    )
    parser.add_argument("--data-file", default="data/shift_data.json",
                        help="JSON file holding the shift definitions")
    parser.add_argument("--month", type=YearMonth.parse, default=None,
                        help="Month to show as YYYY-MM (default: current month)")
    parser.add_argument("--export", choices=["pdf", "excel", "csv"],
                        help="Export the month instead of only printing it")
    parser.add_argument("--output", help="Export file path (default: generated name)")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND",
                                     help="Manage shifts instead of showing a month")

    add = commands.add_parser("add", help="Add a shift")
    add.add_argument("label", help="Job name shown on the calendar")
    add.add_argument("--start", required=True, help="First day as YYYY-MM-DD")
    add.add_argument("--end", help="Last day as YYYY-MM-DD (default: open-ended)")
    add.add_argument("--repeat", default=RecurrenceRule.NONE.value,
                     choices=[rule.value for rule in RecurrenceRule])
    add.add_argument("--weekdays", type=_parse_weekdays, default=[],
                     help="Weekly/biweekly days, e.g. 1,3,5 for Mon/Wed/Fri (0 = Sunday)")
    add.add_argument("--wage", type=float, default=0.0)
    add.add_argument("--wage-type", default=WageType.HOURLY.value,
                     choices=[wage_type.value for wage_type in WageType])
    add.add_argument("--start-time", default="09:00", help="HH:MM")
    add.add_argument("--end-time", default="18:00", help="HH:MM")
    add.add_argument("--description", default="")
    add.add_argument("--working", action="store_true", help="Mark as a current job")

    commands.add_parser("list", help="List stored shifts")

    delete = commands.add_parser("delete", help="Delete a shift by ID")
    delete.add_argument("shift_id")

    clear = commands.add_parser("clear", help="Delete every shift")
    clear.add_argument("--yes", action="store_true", help="Confirm deleting all shifts")

    backup = commands.add_parser("backup", help="Write all shifts to a backup file")
    backup.add_argument("path")

    restore = commands.add_parser("restore", help="Load shifts from a backup file")
    restore.add_argument("path")
    restore.add_argument("--merge", action="store_true",
                         help="Keep current shifts and overwrite only matching IDs")

    commands.add_parser("status", help="Show where the data lives and what it holds")
    return parser


class ShiftCalendarApp:
    """Main application class"""

    def __init__(self, data_file: str):
        self.logger = logging.getLogger(__name__)
        self.data_file = data_file
        self.data_manager = None
        self.shift_calendar = None
        self.export_manager = None

    def initialize(self) -> bool:
        """Initialize application components"""
        try:
            self.logger.info("Initializing Shift Calendar")
            self.data_manager = DataManager(self.data_file)
            self.logger.info(f"Shift store loaded from {self.data_manager.data_file}")
            self.shift_calendar = ShiftCalendar(self.data_manager)
            self.export_manager = ExportManager(self.shift_calendar)
            return True

        except DataManagerError as e:
            self.logger.error(f"Failed to initialize application: {e}", exc_info=True)
            return False

    def run(self, year_month: YearMonth, export_format: Optional[str] = None,
            output_path: Optional[str] = None) -> bool:
        """Print the month and optionally export it"""
        if not self.initialize():
            return False
        try:
            schedule = self.shift_calendar.build_month(year_month.year, year_month.month)
            print(self.export_manager.report_generator.create_month_summary(
                year_month.year, year_month.month, schedule))

            if export_format:
                if output_path is None:
                    output_path = self.export_manager.get_default_filename(
                        year_month.year, year_month.month, export_format)
                if not self.export_manager.export_calendar(
                        year_month.year, year_month.month, export_format, output_path, schedule):
                    self.logger.error(f"Export to {output_path} failed")
                    return False
                self.logger.info(f"Exported {year_month} to {output_path}")
            return True

        finally:
            self.cleanup()

    def run_command(self, args: argparse.Namespace) -> bool:
        """Run a shift management subcommand"""
        if not self.initialize():
            return False
        try:
            handler = getattr(self, f"_command_{args.command}")
            return handler(args)
        except DataManagerError as e:
            self.logger.error(f"Command '{args.command}' failed: {e}")
            print(f"Error: {e}", file=sys.stderr)
            return False
        finally:
            self.cleanup()

    def _command_add(self, args) -> bool:
        shift = self.shift_calendar.add_shift(
            args.label, args.start, args.repeat, args.end, args.weekdays,
            wage=args.wage, wage_type=args.wage_type,
            start_time=args.start_time, end_time=args.end_time,
            description=args.description, is_currently_working=args.working
        )
        print(f"Added {shift.label} ({shift.recurrence_rule.value}) as {shift.id}")
        return True

    def _command_list(self, args) -> bool:
        shifts = self.data_manager.get_shifts()
        if not shifts:
            print("No shifts stored")
        for shift in shifts:
            days = ""
            if shift.selected_weekdays:
                days = " on " + ",".join(WEEKDAY_NAMES[d] for d in sorted(shift.selected_weekdays))
            end = to_iso(shift.end_date) if shift.end_date else "open"
            print(f"{shift.id}  {shift.label}  {shift.recurrence_rule.value}{days}  "
                  f"{to_iso(shift.start_date)}..{end}")
        return True

    def _command_delete(self, args) -> bool:
        if not self.shift_calendar.delete_shift(args.shift_id):
            print(f"No shift with ID {args.shift_id}", file=sys.stderr)
            return False
        print(f"Deleted {args.shift_id}")
        return True

    def _command_clear(self, args) -> bool:
        if not args.yes:
            print("Refusing to delete every shift without --yes", file=sys.stderr)
            return False
        print(f"Deleted {self.shift_calendar.clear_shifts()} shifts")
        return True

    def _command_backup(self, args) -> bool:
        snapshot = self.data_manager.export_data()
        try:
            with open(args.path, 'w', encoding='utf-8') as f:
                json.dump(snapshot, f, indent=2, ensure_ascii=False)
        except OSError as e:
            self.logger.error(f"Failed to write backup {args.path}: {e}", exc_info=True)
            return False
        print(f"Backed up {len(snapshot['shifts'])} shifts to {args.path}")
        return True

    def _command_restore(self, args) -> bool:
        try:
            with open(args.path, 'r', encoding='utf-8') as f:
                snapshot = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to read backup {args.path}: {e}")
            print(f"Error: cannot read backup {args.path}: {e}", file=sys.stderr)
            return False
        count = self.shift_calendar.import_data(snapshot, merge=args.merge)
        print(f"Restored {count} shifts from {args.path}")
        return True

    def _command_status(self, args) -> bool:
        for key, value in self.data_manager.get_storage_status().items():
            print(f"{key}: {value}")
        return True

    def cleanup(self):
        """Persist settings touched during the run"""
        try:
            if self.data_manager:
                self.data_manager.save_data()
                self.logger.info("Data saved successfully")
        except DataManagerError as e:
            self.logger.error(f"Error during cleanup: {e}")


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    sys.excepthook = handle_exception
    args = build_parser().parse_args(argv)

    logger = setup_logging()
    logger.info("Starting Shift Calendar")

    app = ShiftCalendarApp(args.data_file)
    if args.command:
        success = app.run_command(args)
    else:
        success = app.run(args.month or YearMonth.today(), args.export, args.output)

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
