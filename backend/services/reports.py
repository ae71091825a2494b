"""
Daily in/out schedule built from the raw attendance log.

Each (date, employee) group becomes one row with up to two shifts:
entry1/exit1 and entry2/exit2. The log is not assumed to be well formed;
malformed days degrade to partially filled rows instead of failing.
"""
import calendar
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Sequence

from backend.config import REPORT_TZ
from backend.errors import EmptyReportPeriod
from backend.models import AttendanceEvent, Employee, ReportRow, display_name
from database.db import get_all_employees, get_events_between

logger = logging.getLogger(__name__)

EMPTY_SLOT = "-"
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
REPORT_COLUMNS = ("Date / Day", "Employee", "Role", "Entry 1", "Exit 1", "Entry 2", "Exit 2")


def local_datetime(timestamp_ms: int, tz: timezone = REPORT_TZ) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz)


def format_clock(timestamp_ms: int, tz: timezone = REPORT_TZ) -> str:
    return local_datetime(timestamp_ms, tz).strftime("%H:%M")


def month_bounds(month: str) -> tuple[date, date]:
    """month = "YYYY-MM" -> (first day, last day)."""
    try:
        year_text, month_text = month.strip().split("-", 1)
        year, month_num = int(year_text), int(month_text)
        last_day = calendar.monthrange(year, month_num)[1]
    except (ValueError, calendar.IllegalMonthError) as e:
        raise ValueError(f"Invalid month '{month}', expected YYYY-MM.") from e
    return date(year, month_num, 1), date(year, month_num, last_day)


def period_bounds_ms(period_start: date, period_end: date, tz: timezone = REPORT_TZ) -> tuple[int, int]:
    """[start of period_start, start of the day after period_end) in epoch ms."""
    start = datetime.combine(period_start, time.min, tz)
    end = datetime.combine(period_end + timedelta(days=1), time.min, tz)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


def period_label(period_start: date, period_end: date) -> str:
    last_day = calendar.monthrange(period_start.year, period_start.month)[1]
    if (
        period_start.day == 1
        and period_end == period_start.replace(day=last_day)
    ):
        return period_start.strftime("%m/%Y")
    return f"{period_start.isoformat()} to {period_end.isoformat()}"


def assign_slots(day_events: Sequence[AttendanceEvent], tz: timezone = REPORT_TZ) -> tuple[str, str, str, str]:
    """
    Maps one employee's events for one day (sorted by time) onto
    (entry1, exit1, entry2, exit2). Events beyond the fourth slot are dropped.
    """
    entry1 = exit1 = entry2 = exit2 = EMPTY_SLOT
    count = len(day_events)
    if count == 0:
        return entry1, exit1, entry2, exit2

    idx = 0
    if day_events[0]["kind"] == "ENTRY":
        entry1 = format_clock(day_events[0]["timestamp"], tz)
        idx = 1
        if count > 1 and day_events[1]["kind"] == "EXIT":
            exit1 = format_clock(day_events[1]["timestamp"], tz)
            idx = 2

    # dangling exit with no matching first exit
    if exit1 == EMPTY_SLOT and idx < count and day_events[idx]["kind"] == "EXIT":
        exit1 = format_clock(day_events[idx]["timestamp"], tz)
        idx += 1

    if idx < count and day_events[idx]["kind"] == "ENTRY":
        entry2 = format_clock(day_events[idx]["timestamp"], tz)
        if idx + 1 < count and day_events[idx + 1]["kind"] == "EXIT":
            exit2 = format_clock(day_events[idx + 1]["timestamp"], tz)

    return entry1, exit1, entry2, exit2


def aggregate(
    employees: Iterable[Employee],
    events: Iterable[AttendanceEvent],
    period_start: date,
    period_end: date,
    tz: timezone = REPORT_TZ,
) -> list[ReportRow]:
    """
    Rows per (date, employee) present in the period, dates ascending and
    employees in first-seen order. The period is inclusive on both ends and
    evaluated on the event's calendar date in `tz`.

    Raises EmptyReportPeriod when no event falls inside the period.
    """
    by_id = {e["id"]: e for e in employees}

    grouped: dict[date, dict[str, list[AttendanceEvent]]] = {}
    for event in events:
        day = local_datetime(event["timestamp"], tz).date()
        if day < period_start or day > period_end:
            continue
        grouped.setdefault(day, {}).setdefault(event["employee_id"], []).append(event)

    if not grouped:
        raise EmptyReportPeriod()

    rows: list[ReportRow] = []
    for day in sorted(grouped):
        for employee_id, day_events in grouped[day].items():
            ordered = sorted(day_events, key=lambda e: e["timestamp"])
            entry1, exit1, entry2, exit2 = assign_slots(ordered, tz)

            employee = by_id.get(employee_id)
            if employee is None:
                logger.debug("Report row for missing employee %s", employee_id)
                name = f"Unknown employee ({employee_id})"
                role = ""
            else:
                name = display_name(employee)
                role = employee["role"]

            rows.append({
                "date": day.isoformat(),
                "weekday": WEEKDAYS[day.weekday()],
                "employee_id": employee_id,
                "name": name,
                "role": role,
                "entry1": entry1,
                "exit1": exit1,
                "entry2": entry2,
                "exit2": exit2,
            })
    return rows


def load_report(period_start: date, period_end: date, tz: timezone = REPORT_TZ) -> list[ReportRow]:
    if period_end < period_start:
        raise ValueError("Report period end is before its start.")
    start_ms, end_ms = period_bounds_ms(period_start, period_end, tz)
    events = get_events_between(start_ms, end_ms)
    return aggregate(get_all_employees(), events, period_start, period_end, tz)
