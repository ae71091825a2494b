"""
Entry/exit sequencing for attendance punches.

Kinds strictly alternate per employee (ENTRY, EXIT, ENTRY, ...) regardless of
elapsed time; a forgotten clock-out is not corrected. A cooldown guard drops
repeated punches produced by consecutive camera frames of the same person.
"""
import logging
import math
import threading
from typing import Sequence

from backend.config import ATTENDANCE_COOLDOWN_MS
from backend.models import AttendanceEvent, CooldownDecision, EventKind, PunchResult
from database.db import add_event, get_events_for_employee, new_event, now_ms

logger = logging.getLogger(__name__)

PUNCH_LOCK = threading.Lock()


def next_event_kind(history: Sequence[AttendanceEvent]) -> EventKind:
    if not history:
        return "ENTRY"
    return "EXIT" if history[-1]["kind"] == "ENTRY" else "ENTRY"


def check_cooldown(
    last_event: AttendanceEvent | None,
    now: int,
    min_interval_ms: int = ATTENDANCE_COOLDOWN_MS,
) -> CooldownDecision:
    if last_event is None:
        return {"allowed": True, "retry_after_seconds": None, "message": "ok"}

    elapsed = now - int(last_event["timestamp"])
    if elapsed < min_interval_ms:
        remaining_ms = min_interval_ms - elapsed
        return {
            "allowed": False,
            "retry_after_seconds": max(1, math.ceil(remaining_ms / 1000)),
            "message": "too soon",
        }
    return {"allowed": True, "retry_after_seconds": None, "message": "ok"}


def record_punch(
    employee_id: str,
    similarity: float | None,
    *,
    now: int | None = None,
    min_interval_ms: int = ATTENDANCE_COOLDOWN_MS,
) -> PunchResult:
    """Cooldown check + alternation + append. A rejected attempt writes nothing."""
    with PUNCH_LOCK:
        ts = now if now is not None else now_ms()
        history = get_events_for_employee(employee_id)
        last_event = history[-1] if history else None

        cooldown = check_cooldown(last_event, ts, min_interval_ms)
        if not cooldown["allowed"]:
            logger.info(
                "Duplicate punch ignored for %s (retry in %ss)",
                employee_id,
                cooldown["retry_after_seconds"],
            )
            return {
                "logged": False,
                "decision_code": "DUPLICATE_IGNORED",
                "message": cooldown["message"],
                "employee_id": employee_id,
                "kind": None,
                "event": None,
                "retry_after_seconds": cooldown["retry_after_seconds"],
            }

        kind = next_event_kind(history)
        event = new_event(employee_id, kind, timestamp=ts, verification="SUCCESS", similarity=similarity)
        add_event(event)

    logger.info("Recorded %s for %s", kind, employee_id)
    return {
        "logged": True,
        "decision_code": "ENTRY_RECORDED" if kind == "ENTRY" else "EXIT_RECORDED",
        "message": "Entry recorded" if kind == "ENTRY" else "Exit recorded",
        "employee_id": employee_id,
        "kind": kind,
        "event": event,
        "retry_after_seconds": None,
    }


def record_manual_punch(
    employee_id: str,
    *,
    kind: EventKind | None = None,
    timestamp: int | None = None,
) -> AttendanceEvent:
    """
    HR correction: MANUAL event, no cooldown, kind defaults to the alternation rule.

    Raises ValueError for a timestamp in the future.
    """
    with PUNCH_LOCK:
        current = now_ms()
        if timestamp is not None and timestamp > current:
            raise ValueError("Manual punch timestamp is in the future.")
        ts = timestamp if timestamp is not None else current
        if kind is None:
            history = [e for e in get_events_for_employee(employee_id) if e["timestamp"] <= ts]
            kind = next_event_kind(history)
        event = new_event(employee_id, kind, timestamp=ts, verification="MANUAL")
        add_event(event)
    logger.info("Manual %s recorded for %s at %s", kind, employee_id, ts)
    return event
