import asyncio
import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from backend.config import ATTENDANCE_COOLDOWN_MS, DESCRIPTOR_LENGTH, MATCH_THRESHOLD, REPORT_TZ
from backend.dependencies import read_image_upload, require_extractor
from backend.errors import IncompleteEnrollment
from backend.models import DecisionCode, Employee, MatchResult, PunchResult, display_name
from backend.recognizer import build_gallery, match, verify_employee
from backend.services.reports import format_clock, period_bounds_ms
from backend.services.sequencer import record_manual_punch, record_punch
from biometrics.extractor import DescriptorExtractor, Detection
from database.db import get_all_employees, get_all_events, get_employee_by_id, get_events_between, get_events_for_employee

logger = logging.getLogger(__name__)

router = APIRouter()


class ManualPunch(BaseModel):
    employee_id: str
    kind: Literal["ENTRY", "EXIT"] | None = None
    timestamp: int | None = None


def _scan_payload(
    decision_code: DecisionCode,
    message: str,
    *,
    result: MatchResult | None = None,
    employee: Employee | None = None,
    punch: PunchResult | None = None,
) -> dict:
    payload = {
        "verified": bool(result and result["verified"]),
        "decision_code": decision_code,
        "message": message,
        "employee_id": employee["id"] if employee else None,
        "full_name": display_name(employee) if employee else None,
        "role": employee["role"] if employee else None,
        "distance": result["distance"] if result else None,
        "confidence": result["confidence"] if result else None,
        "logged": False,
    }
    if punch is not None:
        payload["logged"] = punch["logged"]
        payload["kind"] = punch["kind"]
        if punch["event"] is not None:
            payload["event_id"] = punch["event"]["id"]
            payload["timestamp"] = punch["event"]["timestamp"]
            payload["time"] = format_clock(punch["event"]["timestamp"], REPORT_TZ)
        if punch["retry_after_seconds"] is not None:
            payload["retry_after_seconds"] = punch["retry_after_seconds"]
    return payload


async def _extract(extractor: DescriptorExtractor, file: UploadFile) -> tuple[Detection | None, dict | None]:
    """Returns (detection, None) or (None, failure payload)."""
    frame = await read_image_upload(file)
    try:
        detection = await asyncio.to_thread(extractor.extract_descriptor, frame)
    except Exception as e:
        logger.warning("Descriptor extraction failed: %s", e)
        return None, _scan_payload("EXTRACTION_FAILED", "Extraction failure, please retry.")
    if detection is None:
        return None, _scan_payload("NO_FACE", "No face detected.")
    return detection, None


def _descriptor_mismatch(e: ValueError) -> dict:
    logger.error("Live descriptor does not fit the enrolled gallery: %s", e)
    return _scan_payload("EXTRACTION_FAILED", "Extraction failure, please retry.")


async def _punch_for_match(result: MatchResult, employee: Employee) -> dict:
    punch = await asyncio.to_thread(
        record_punch,
        employee["id"],
        result["confidence"],
        min_interval_ms=ATTENDANCE_COOLDOWN_MS,
    )
    message = punch["message"]
    if punch["decision_code"] == "DUPLICATE_IGNORED":
        message = f"Too soon: try again in {punch['retry_after_seconds']}s."
    return _scan_payload(punch["decision_code"], message, result=result, employee=employee, punch=punch)


@router.post("/attendance/recognize")
async def recognize_attendance(
    extractor: DescriptorExtractor = Depends(require_extractor),
    file: UploadFile = File(...),
):
    detection, failure = await _extract(extractor, file)
    if failure is not None:
        return failure

    employees = get_all_employees()
    gallery, skipped = build_gallery(employees, DESCRIPTOR_LENGTH)
    if skipped:
        logger.warning("Excluded %d employee(s) without usable biometrics: %s", len(skipped), skipped)

    try:
        result = match(detection.descriptor, gallery, MATCH_THRESHOLD)
    except ValueError as e:
        return _descriptor_mismatch(e)
    if not result["verified"]:
        code: DecisionCode = "NO_ENROLLED_BIOMETRICS" if not gallery else "FACE_NO_MATCH"
        return _scan_payload(code, result["message"], result=result)

    employee = next(e for e in employees if e["id"] == result["employee_id"])
    return await _punch_for_match(result, employee)


# 1:1 check for an employee picked at the kiosk
@router.post("/attendance/verify/{employee_id}")
async def verify_attendance(
    employee_id: str,
    extractor: DescriptorExtractor = Depends(require_extractor),
    file: UploadFile = File(...),
):
    employee = get_employee_by_id(employee_id)
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found.")

    detection, failure = await _extract(extractor, file)
    if failure is not None:
        return failure

    try:
        result = verify_employee(detection.descriptor, employee, MATCH_THRESHOLD, DESCRIPTOR_LENGTH)
    except IncompleteEnrollment as e:
        raise HTTPException(status_code=409, detail=e.message)
    except ValueError as e:
        return _descriptor_mismatch(e)

    if not result["verified"]:
        return _scan_payload("FACE_NO_MATCH", "Face does not match this employee.", result=result, employee=employee)
    return await _punch_for_match(result, employee)


@router.post("/attendance/manual")
def manual_punch(payload: ManualPunch):
    if not get_employee_by_id(payload.employee_id):
        raise HTTPException(status_code=404, detail="Employee not found.")
    try:
        return record_manual_punch(payload.employee_id, kind=payload.kind, timestamp=payload.timestamp)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/attendance/events")
def attendance_events(employee_id: str | None = None, day: str | None = None):
    if day:
        try:
            target = date.fromisoformat(day)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid day, expected YYYY-MM-DD.")
        start_ms, end_ms = period_bounds_ms(target, target, REPORT_TZ)
        events = get_events_between(start_ms, end_ms)
        if employee_id:
            events = [e for e in events if e["employee_id"] == employee_id]
        return events
    if employee_id:
        return get_events_for_employee(employee_id)
    return get_all_events()
