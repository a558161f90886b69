"""
Data Manager for the Shift Calendar

Handles JSON persistence, validation and CRUD operations for work-shift
definitions and application settings.
"""

import json
import logging
import re
import uuid
from datetime import datetime, date, time
from typing import Callable, Dict, List, Optional, Any, Iterable, Set
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

from .date_utils import parse_iso_date, to_iso


logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"
DEFAULT_HORIZON_MONTHS = 2

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class DataManagerError(Exception):
    """Base exception for DataManager operations"""
    pass


class DataFileCorruptedError(DataManagerError):
    """Raised when the data file is corrupted"""
    pass


class DataFileNotFoundError(DataManagerError):
    """Raised when the data file is not found"""
    pass


class DataSaveError(DataManagerError):
    """Raised when saving data fails"""
    pass


class DataValidationError(DataManagerError):
    """Raised when data validation fails"""
    pass


class ShiftNotFoundError(DataManagerError):
    """Raised when a shift ID is not in the store"""
    pass


class RecurrenceRule(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class WageType(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"


@dataclass
class ShiftDefinition:
    """A user-defined work shift with its recurrence rule.

    selected_weekdays uses 0 = Sunday .. 6 = Saturday and only matters for
    weekly and biweekly rules. end_date of None means open-ended.
    """
    id: str
    label: str
    start_date: date
    end_date: Optional[date] = None
    recurrence_rule: RecurrenceRule = RecurrenceRule.NONE
    selected_weekdays: Set[int] = field(default_factory=set)
    color_key: Optional[str] = None
    wage: float = 0.0
    wage_type: WageType = WageType.HOURLY
    start_time: str = "09:00"
    end_time: str = "18:00"
    description: str = ""
    is_currently_working: bool = False

    def to_dict(self) -> Dict[str, Any]:
        rule = self.recurrence_rule
        wage_type = self.wage_type
        return {
            "id": self.id,
            "label": self.label,
            "startDate": to_iso(self.start_date),
            "endDate": to_iso(self.end_date) if self.end_date else None,
            "recurrenceRule": rule.value if isinstance(rule, Enum) else rule,
            "selectedWeekdays": sorted(self.selected_weekdays),
            "colorKey": self.color_key,
            "wage": self.wage,
            "wageType": wage_type.value if isinstance(wage_type, Enum) else wage_type,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "description": self.description,
            "isCurrentlyWorking": self.is_currently_working
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ShiftDefinition':
        # Older records used the mobile app's field names
        label = data.get("label", data.get("jobName", ""))
        rule_value = data.get("recurrenceRule", data.get("repeatOption", "none"))
        weekdays = data.get("selectedWeekdays", data.get("selectedWeekDays", []))
        color_key = data.get("colorKey", data.get("color"))

        try:
            rule = RecurrenceRule(rule_value)
        except ValueError:
            raise DataValidationError(f"Unknown recurrence rule '{rule_value}' for shift {data.get('id')}")
        try:
            wage_type = WageType(data.get("wageType", "hourly"))
        except ValueError:
            raise DataValidationError(f"Unknown wage type '{data.get('wageType')}' for shift {data.get('id')}")

        try:
            start_date = parse_iso_date(data["startDate"])
            end_date = parse_iso_date(data.get("endDate"))
        except (KeyError, ValueError) as e:
            raise DataValidationError(f"Invalid dates for shift {data.get('id')}: {e}")
        if start_date is None:
            raise DataValidationError(f"Shift {data.get('id')} has no start date")

        start_time = _normalize_time(data.get("startTime"), "09:00", data.get("id"))
        end_time = _normalize_time(data.get("endTime"), "18:00", data.get("id"))

        return cls(
            id=str(data["id"]),
            label=label,
            start_date=start_date,
            end_date=end_date,
            recurrence_rule=rule,
            selected_weekdays={int(d) for d in weekdays},
            color_key=color_key,
            wage=float(data.get("wage", 0.0)),
            wage_type=wage_type,
            start_time=start_time,
            end_time=end_time,
            description=data.get("description", ""),
            is_currently_working=data.get("isCurrentlyWorking", False)
        )


def _normalize_time(value, default: str, shift_id) -> str:
    """Wall-clock "HH:MM" from a stored time.

    The mobile app saved shift times as full ISO timestamps; only their
    clock part is kept.
    """
    if value is None or value == "":
        return default
    text = str(value).strip()
    if _TIME_PATTERN.match(text):
        return text
    for parser in (datetime.fromisoformat, time.fromisoformat):
        try:
            return parser(text.replace("Z", "+00:00")).strftime("%H:%M")
        except ValueError:
            continue
    raise DataValidationError(f"Invalid time '{value}' for shift {shift_id}")


def _coerce_enum(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise DataValidationError(f"Unknown {enum_cls.__name__} value '{value}'")


def _coerce_date(value, name: str) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError) as e:
        raise DataValidationError(f"Invalid {name}: {e}")


def validate_shift(shift: ShiftDefinition) -> List[str]:
    """Return a list of validation problems; empty when the shift is valid"""
    problems = []
    if not isinstance(shift.label, str) or not shift.label.strip():
        problems.append("Label is required")
    if not isinstance(shift.recurrence_rule, RecurrenceRule):
        problems.append(f"Unknown recurrence rule '{shift.recurrence_rule}'")
    dates_ok = True
    for name, value in (("Start date", shift.start_date), ("End date", shift.end_date)):
        if value is None and name == "End date":
            continue
        # datetime is a date subclass but does not compare with plain dates
        if not isinstance(value, date) or isinstance(value, datetime):
            problems.append(f"{name} {value!r} is not a date")
            dates_ok = False
    if dates_ok and shift.end_date is not None and shift.start_date > shift.end_date:
        problems.append(f"Start date {shift.start_date} is after end date {shift.end_date}")
    bad_days = sorted(d for d in shift.selected_weekdays if not 0 <= d <= 6)
    if bad_days:
        problems.append(f"Weekday indices out of range 0..6: {bad_days}")
    if not isinstance(shift.wage, (int, float)) or shift.wage < 0:
        problems.append(f"Wage {shift.wage!r} must be a non-negative number")
    for name, value in (("Start time", shift.start_time), ("End time", shift.end_time)):
        if not isinstance(value, str) or not _TIME_PATTERN.match(value):
            problems.append(f"{name} '{value}' is not HH:MM")
    return problems


class DataManager:
    """Manages shift persistence and CRUD operations"""

    def __init__(self, data_file: str = "data/shift_data.json"):
        if data_file == "data/shift_data.json":
            # Use path relative to the package directory
            data_file = Path(__file__).parent.parent / "data" / "shift_data.json"
        self.data_file = Path(data_file)
        self.data = self._load_or_create_data()

    def _load_or_create_data(self) -> Dict[str, Any]:
        """Load existing data or create default structure with recovery from backup"""
        backup_file = self.data_file.with_suffix('.bak')
        if self.data_file.exists():
            try:
                with open(self.data_file, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                return self._validate_and_migrate_data(data)
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading main data file {self.data_file}: {e}")
                if not backup_file.exists():
                    raise DataFileCorruptedError(f"Main data file corrupted and no backup available: {e}")
                return self._recover_from_backup(backup_file)
        if backup_file.exists():
            logger.info(f"Main data file missing, attempting recovery from backup {backup_file}")
            return self._recover_from_backup(backup_file)
        logger.info("No data file found, creating default data")
        return self._create_default_data()

    def _recover_from_backup(self, backup_file: Path) -> Dict[str, Any]:
        try:
            logger.info(f"Attempting recovery from backup file {backup_file}")
            with open(backup_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            backup_file.replace(self.data_file)
            logger.info("Successfully recovered data from backup")
            return self._validate_and_migrate_data(data)
        except (json.JSONDecodeError, IOError) as backup_e:
            logger.error(f"Backup file also corrupted: {backup_e}")
            logger.info("Creating default data due to corrupted files")
            return self._create_default_data()

    def _validate_and_migrate_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and migrate data structure to current version"""
        if not isinstance(data, dict):
            raise DataFileCorruptedError(f"Unexpected top-level JSON type {type(data).__name__}")

        default_data = self._create_default_data()
        for key in default_data:
            if key not in data:
                data[key] = default_data[key]
        for key, value in default_data["settings"].items():
            data["settings"].setdefault(key, value)

        # Early versions kept shifts as a list
        if isinstance(data["shifts"], list):
            data["shifts"] = {str(item["id"]): item for item in data["shifts"] if "id" in item}

        return data

    def _create_default_data(self) -> Dict[str, Any]:
        return {
            "settings": {
                "appVersion": APP_VERSION,
                "lastUsedMonth": datetime.now().strftime("%Y-%m"),
                "projectionHorizonMonths": DEFAULT_HORIZON_MONTHS,
                "dataFile": str(self.data_file)
            },
            "shifts": {}  # {shift_id: shift dict}, insertion order is display order
        }

    def _validate_saved_data(self) -> bool:
        """Validate that the saved data file matches current data"""
        try:
            if not self.data_file.exists():
                raise DataFileNotFoundError(f"Saved data file {self.data_file} does not exist")

            with open(self.data_file, 'r', encoding='utf-8') as f:
                saved_data = json.load(f)

            for key in ["settings", "shifts"]:
                if key not in saved_data:
                    raise DataValidationError(f"Required section '{key}' missing from saved data")

            if saved_data.get("settings", {}).get("appVersion") != self.data.get("settings", {}).get("appVersion"):
                raise DataValidationError("App version mismatch in saved data")
            if len(saved_data["shifts"]) != len(self.data["shifts"]):
                raise DataValidationError("Shift count mismatch in saved data")

            return True

        except (json.JSONDecodeError, IOError) as e:
            raise DataValidationError(f"Failed to validate saved data: {e}")

    def save_data(self) -> bool:
        """Save current data to file atomically with validation"""
        temp_file = None
        backup_file = self.data_file.with_suffix('.bak')

        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            if self.data_file.exists():
                self.data_file.replace(backup_file)

            # Write to temporary file first, then rename into place
            temp_file = self.data_file.with_suffix('.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)
            temp_file.replace(self.data_file)

            self._validate_saved_data()
            return True

        except DataValidationError as e:
            logger.error(f"Data validation failed after save: {e}", exc_info=True)
            if backup_file.exists():
                try:
                    backup_file.replace(self.data_file)
                except OSError as restore_e:
                    logger.error(f"Failed to restore from backup: {restore_e}", exc_info=True)
            raise DataSaveError(f"Save operation failed validation: {e}")

        except (IOError, OSError, TypeError, ValueError) as e:
            logger.error(f"Error during save operation: {e}", exc_info=True)
            raise DataSaveError(f"Failed to save data: {e}")

        finally:
            if temp_file and temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as cleanup_e:
                    logger.error(f"Failed to clean up temporary file {temp_file}: {cleanup_e}", exc_info=True)

    # Shift Management
    def get_shifts(self, working_only: bool = False) -> List[ShiftDefinition]:
        """Snapshot of all shift definitions in insertion order.

        Records that cannot be parsed are logged and skipped so that one bad
        entry does not hide the rest of the calendar.
        """
        shifts = []
        for shift_id, shift_data in self.data.get("shifts", {}).items():
            try:
                shift = ShiftDefinition.from_dict(shift_data)
            except (DataValidationError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable shift record {shift_id}: {e}")
                continue
            if not working_only or shift.is_currently_working:
                shifts.append(shift)
        return shifts

    def get_shift(self, shift_id: str) -> Optional[ShiftDefinition]:
        shift_data = self.data.get("shifts", {}).get(shift_id)
        if shift_data is None:
            return None
        return ShiftDefinition.from_dict(shift_data)

    def get_shifts_by_id(self) -> Dict[str, ShiftDefinition]:
        return {shift.id: shift for shift in self.get_shifts()}

    def add_shift(self, label: str, start_date: date,
                  recurrence_rule: RecurrenceRule = RecurrenceRule.NONE,
                  end_date: Optional[date] = None,
                  selected_weekdays: Optional[Iterable[int]] = None,
                  color_of: Optional[Callable[[str], str]] = None,
                  **details) -> ShiftDefinition:
        """Create a new shift with a generated ID.

        Dates may be given as date objects or ISO strings. When no color_key
        is passed, color_of (if given) picks one for the new ID so the color
        is stored with the shift. Extra keyword arguments are passed to
        ShiftDefinition (wage, wage_type, start_time, end_time, color_key,
        description, is_currently_working).
        """
        if "wage_type" in details:
            details["wage_type"] = _coerce_enum(WageType, details["wage_type"])
        shift_id = uuid.uuid4().hex
        try:
            shift = ShiftDefinition(
                id=shift_id,
                label=label,
                start_date=_coerce_date(start_date, "start date"),
                end_date=_coerce_date(end_date, "end date"),
                recurrence_rule=_coerce_enum(RecurrenceRule, recurrence_rule),
                selected_weekdays=set(selected_weekdays or ()),
                **details
            )
        except TypeError as e:
            raise DataValidationError(f"Invalid shift fields: {e}")
        if shift.start_date is None:
            raise DataValidationError("Start date is required")
        self._check_valid(shift)
        if shift.color_key is None and color_of is not None:
            shift.color_key = color_of(shift_id)
        self.data.setdefault("shifts", {})[shift.id] = shift.to_dict()
        logger.info(f"Added shift {shift.id} ({shift.label}, {shift.recurrence_rule.value})")
        return shift

    def update_shift(self, shift_id: str, **updates) -> bool:
        """Update fields of an existing shift; returns False if it does not exist"""
        current = self.get_shift(shift_id)
        if current is None:
            return False
        if "id" in updates:
            raise DataValidationError("Shift ID cannot be changed")
        if "recurrence_rule" in updates:
            updates["recurrence_rule"] = _coerce_enum(RecurrenceRule, updates["recurrence_rule"])
        if "wage_type" in updates:
            updates["wage_type"] = _coerce_enum(WageType, updates["wage_type"])
        if "selected_weekdays" in updates:
            updates["selected_weekdays"] = set(updates["selected_weekdays"] or ())
        for key in ("start_date", "end_date"):
            if key in updates:
                updates[key] = _coerce_date(updates[key], key.replace("_", " "))
        if "start_date" in updates and updates["start_date"] is None:
            raise DataValidationError("Start date is required")
        try:
            updated = replace(current, **updates)
        except TypeError as e:
            raise DataValidationError(f"Invalid shift update: {e}")
        self._check_valid(updated)
        self.data["shifts"][shift_id] = updated.to_dict()
        return True

    def set_shift_color(self, shift_id: str, color_key: Optional[str]):
        """Store a display color on the raw record without revalidating it"""
        record = self.data.get("shifts", {}).get(shift_id)
        if record is None:
            raise ShiftNotFoundError(f"No shift with ID {shift_id}")
        record.pop("color", None)
        record["colorKey"] = color_key

    def delete_shift(self, shift_id: str) -> bool:
        """Delete shift (hard delete)"""
        if self.data.get("shifts", {}).pop(shift_id, None) is None:
            return False
        logger.info(f"Deleted shift {shift_id}")
        return True

    def clear_shifts(self) -> int:
        """Remove every shift, keeping settings; returns how many were removed"""
        count = len(self.data.get("shifts", {}))
        self.data["shifts"] = {}
        logger.info(f"Cleared {count} shifts")
        return count

    def require_shift(self, shift_id: str) -> ShiftDefinition:
        shift = self.get_shift(shift_id)
        if shift is None:
            raise ShiftNotFoundError(f"No shift with ID {shift_id}")
        return shift

    def _check_valid(self, shift: ShiftDefinition):
        problems = validate_shift(shift)
        if problems:
            raise DataValidationError("; ".join(problems))

    # Backup and Restore
    def export_data(self) -> Dict[str, Any]:
        """Snapshot of the store for backup, with shifts in the current layout"""
        return {
            "appVersion": APP_VERSION,
            "exportedAt": datetime.now().isoformat(timespec="seconds"),
            "settings": dict(self.data.get("settings", {})),
            "shifts": [shift.to_dict() for shift in self.get_shifts()]
        }

    def import_data(self, data: Dict[str, Any], merge: bool = False) -> int:
        """
        Restore shifts from an export_data snapshot

        Every record is parsed and validated before anything is changed, so a
        bad backup leaves the store untouched. Without merge the current
        shifts are replaced; with merge, records overwrite shifts with the
        same ID. Returns the number of imported shifts.
        """
        if not isinstance(data, dict):
            raise DataValidationError(f"Backup must be a JSON object, got {type(data).__name__}")
        records = data.get("shifts", [])
        if isinstance(records, dict):
            records = list(records.values())
        if not isinstance(records, list):
            raise DataValidationError("Backup 'shifts' must be a list or an object")

        imported: Dict[str, ShiftDefinition] = {}
        for index, record in enumerate(records):
            try:
                shift = ShiftDefinition.from_dict(record)
            except (DataValidationError, KeyError, TypeError, ValueError, AttributeError) as e:
                raise DataValidationError(f"Backup record {index} is unreadable: {e}")
            problems = validate_shift(shift)
            if problems:
                raise DataValidationError(f"Backup record {index} ({shift.id}) is invalid: {'; '.join(problems)}")
            imported[shift.id] = shift

        shifts = self.data.setdefault("shifts", {}) if merge else {}
        for shift_id, shift in imported.items():
            shifts[shift_id] = shift.to_dict()
        self.data["shifts"] = shifts

        settings = data.get("settings")
        if isinstance(settings, dict) and "projectionHorizonMonths" in settings:
            self.set_setting("projectionHorizonMonths", settings["projectionHorizonMonths"])

        logger.info(f"Imported {len(imported)} shifts ({'merged' if merge else 'replaced'})")
        return len(imported)

    def get_storage_status(self) -> Dict[str, Any]:
        """Where the store lives and what it currently holds"""
        backup_file = self.data_file.with_suffix('.bak')
        status = {
            "dataFile": str(self.data_file),
            "exists": self.data_file.exists(),
            "backupExists": backup_file.exists(),
            "sizeBytes": 0,
            "lastModified": None,
            "shiftCount": len(self.data.get("shifts", {})),
            "readableShiftCount": len(self.get_shifts()),
            "lastUsedMonth": self.get_setting("lastUsedMonth")
        }
        if status["exists"]:
            stat = self.data_file.stat()
            status["sizeBytes"] = stat.st_size
            status["lastModified"] = datetime.fromtimestamp(stat.st_mtime).isoformat(timespec="seconds")
        return status

    # Settings Management
    def get_setting(self, key: str, default=None):
        """Get application setting"""
        return self.data.get("settings", {}).get(key, default)

    def set_setting(self, key: str, value):
        """Set application setting"""
        self.data.setdefault("settings", {})[key] = value

    def get_projection_horizon(self) -> int:
        """Months past the viewed month that open-ended shifts are projected to"""
        value = self.get_setting("projectionHorizonMonths", DEFAULT_HORIZON_MONTHS)
        try:
            horizon = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid projectionHorizonMonths setting {value!r}, using default")
            return DEFAULT_HORIZON_MONTHS
        if horizon < 0:
            logger.warning(f"Negative projectionHorizonMonths setting {horizon}, using default")
            return DEFAULT_HORIZON_MONTHS
        return horizon
