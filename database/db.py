import json
import sqlite3
import time
import uuid
from typing import Any, cast

from backend.config import DB_PATH
from backend.models import AttendanceEvent, Employee, EventKind, Verification


def connect_db():
    conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
    return conn


def now_ms() -> int:
    return int(time.time() * 1000)


def create_tables():
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = connect_db()
    cursor = conn.cursor()

    cursor.execute("""
    CREATE TABLE IF NOT EXISTS employees (
        id TEXT PRIMARY KEY,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        role TEXT NOT NULL,
        reference_image BLOB,
        descriptor TEXT,                 -- JSON list of floats
        enrolled_at INTEGER NOT NULL     -- epoch ms
    )
    """)

    # Append-only log. No FK on employee_id:
    # events outlive the employee row.
    cursor.execute("""
    CREATE TABLE IF NOT EXISTS attendance_events (
        id TEXT PRIMARY KEY,
        employee_id TEXT NOT NULL,
        timestamp INTEGER NOT NULL,      -- epoch ms
        kind TEXT NOT NULL CHECK (kind IN ('ENTRY', 'EXIT')),
        verification TEXT NOT NULL CHECK (verification IN ('SUCCESS', 'FAILED', 'MANUAL')),
        similarity REAL
    )
    """)
    cursor.execute("""
    CREATE INDEX IF NOT EXISTS idx_attendance_events_employee_ts
    ON attendance_events (employee_id, timestamp)
    """)
    cursor.execute("""
    CREATE INDEX IF NOT EXISTS idx_attendance_events_ts
    ON attendance_events (timestamp)
    """)

    conn.commit()
    conn.close()


# -----------------------------
# Employees
# -----------------------------
def _decode_descriptor(raw: str | None) -> list[float] | None:
    if not raw:
        return None
    try:
        values = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(values, list):
        return None
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError):
        return None


def _employee_from_row(row: tuple[Any, ...]) -> Employee:
    employee_id, first_name, last_name, role, descriptor, enrolled_at = row
    return {
        "id": str(employee_id),
        "first_name": str(first_name),
        "last_name": str(last_name),
        "role": str(role),
        "descriptor": _decode_descriptor(descriptor),
        "enrolled_at": int(enrolled_at),
    }


def get_all_employees() -> list[Employee]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("""
        SELECT id, first_name, last_name, role, descriptor, enrolled_at
        FROM employees
        ORDER BY enrolled_at ASC, rowid ASC
    """)
    rows = cur.fetchall()
    conn.close()
    return [_employee_from_row(r) for r in rows]


def add_employee(
    first_name: str,
    last_name: str,
    role: str,
    *,
    reference_image: bytes | None,
    descriptor: list[float] | None,
    enrolled_at: int | None = None,
    employee_id: str | None = None,
) -> Employee:
    employee: Employee = {
        "id": employee_id or uuid.uuid4().hex,
        "first_name": first_name,
        "last_name": last_name,
        "role": role,
        "descriptor": [float(v) for v in descriptor] if descriptor is not None else None,
        "enrolled_at": enrolled_at if enrolled_at is not None else now_ms(),
    }
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("""
        INSERT INTO employees (id, first_name, last_name, role, reference_image, descriptor, enrolled_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """, (
        employee["id"],
        first_name,
        last_name,
        role,
        sqlite3.Binary(reference_image) if reference_image is not None else None,
        json.dumps(employee["descriptor"]) if employee["descriptor"] is not None else None,
        employee["enrolled_at"],
    ))
    conn.commit()
    conn.close()
    return employee


def get_employee_by_id(employee_id: str) -> Employee | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("""
        SELECT id, first_name, last_name, role, descriptor, enrolled_at
        FROM employees
        WHERE id = ?
    """, (employee_id,))
    row = cur.fetchone()
    conn.close()
    return _employee_from_row(row) if row else None


def get_employee_photo(employee_id: str) -> bytes | None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("SELECT reference_image FROM employees WHERE id = ?", (employee_id,))
    row = cur.fetchone()
    conn.close()
    if not row or row[0] is None:
        return None
    return bytes(row[0])


# -----------------------------
# Attendance events
# -----------------------------
def _event_from_row(row: tuple[Any, ...]) -> AttendanceEvent:
    event_id, employee_id, timestamp, kind, verification, similarity = row
    return {
        "id": str(event_id),
        "employee_id": str(employee_id),
        "timestamp": int(timestamp),
        "kind": cast(EventKind, kind),
        "verification": cast(Verification, verification),
        "similarity": float(similarity) if similarity is not None else None,
    }


def new_event(
    employee_id: str,
    kind: EventKind,
    *,
    timestamp: int,
    verification: Verification = "SUCCESS",
    similarity: float | None = None,
) -> AttendanceEvent:
    return {
        "id": str(uuid.uuid4()),
        "employee_id": employee_id,
        "timestamp": int(timestamp),
        "kind": kind,
        "verification": verification,
        "similarity": similarity,
    }


def add_event(event: AttendanceEvent) -> None:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute("""
        INSERT INTO attendance_events (id, employee_id, timestamp, kind, verification, similarity)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (
        event["id"],
        event["employee_id"],
        event["timestamp"],
        event["kind"],
        event["verification"],
        event["similarity"],
    ))
    conn.commit()
    conn.close()


_EVENT_COLUMNS = "id, employee_id, timestamp, kind, verification, similarity"


def get_all_events() -> list[AttendanceEvent]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(f"""
        SELECT {_EVENT_COLUMNS}
        FROM attendance_events
        ORDER BY timestamp ASC, rowid ASC
    """)
    rows = cur.fetchall()
    conn.close()
    return [_event_from_row(r) for r in rows]


def get_events_for_employee(employee_id: str) -> list[AttendanceEvent]:
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(f"""
        SELECT {_EVENT_COLUMNS}
        FROM attendance_events
        WHERE employee_id = ?
        ORDER BY timestamp ASC, rowid ASC
    """, (employee_id,))
    rows = cur.fetchall()
    conn.close()
    return [_event_from_row(r) for r in rows]


def get_events_between(start_ms: int, end_ms: int) -> list[AttendanceEvent]:
    """Events with start_ms <= timestamp < end_ms, oldest first."""
    conn = connect_db()
    cur = conn.cursor()
    cur.execute(f"""
        SELECT {_EVENT_COLUMNS}
        FROM attendance_events
        WHERE timestamp >= ? AND timestamp < ?
        ORDER BY timestamp ASC, rowid ASC
    """, (start_ms, end_ms))
    rows = cur.fetchall()
    conn.close()
    return [_event_from_row(r) for r in rows]
