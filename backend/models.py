from typing import Literal, TypedDict

EventKind = Literal["ENTRY", "EXIT"]
Verification = Literal["SUCCESS", "FAILED", "MANUAL"]

DecisionCode = Literal[
    "ENTRY_RECORDED",
    "EXIT_RECORDED",
    "DUPLICATE_IGNORED",
    "FACE_NO_MATCH",
    "NO_ENROLLED_BIOMETRICS",
    "NO_FACE",
    "EXTRACTION_FAILED",
]

EVENT_KINDS: tuple[str, ...] = ("ENTRY", "EXIT")
VERIFICATIONS: tuple[str, ...] = ("SUCCESS", "FAILED", "MANUAL")


class Employee(TypedDict):
    id: str
    first_name: str
    last_name: str
    role: str
    descriptor: list[float] | None
    enrolled_at: int


class AttendanceEvent(TypedDict):
    id: str
    employee_id: str
    timestamp: int
    kind: EventKind
    verification: Verification
    similarity: float | None


class MatchResult(TypedDict):
    verified: bool
    employee_id: str | None
    distance: float | None
    confidence: float | None
    message: str


class CooldownDecision(TypedDict):
    allowed: bool
    retry_after_seconds: int | None
    message: str


class PunchResult(TypedDict):
    logged: bool
    decision_code: DecisionCode
    message: str
    employee_id: str
    kind: EventKind | None
    event: AttendanceEvent | None
    retry_after_seconds: int | None


class ReportRow(TypedDict):
    date: str
    weekday: str
    employee_id: str
    name: str
    role: str
    entry1: str
    exit1: str
    entry2: str
    exit2: str


def display_name(employee: Employee) -> str:
    return f"{employee['first_name']} {employee['last_name']}".strip()
