from fastapi import APIRouter

from backend.config import (
    ATTENDANCE_COOLDOWN_MS,
    CAMERA_INDEX,
    DESCRIPTOR_LENGTH,
    DETECTION_MIN_SCORE,
    MATCH_THRESHOLD,
    REPORT_TZ_OFFSET,
    SCAN_POLL_INTERVAL_MS,
)
from backend.services.model_state import get_model_status, start_model_load

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok", "models": get_model_status()["state"]}


@router.get("/config/recognition")
def recognition_config():
    return {
        "match_threshold": MATCH_THRESHOLD,
        "descriptor_length": DESCRIPTOR_LENGTH,
        "detection_min_score": DETECTION_MIN_SCORE,
        "attendance_cooldown_ms": ATTENDANCE_COOLDOWN_MS,
        "report_tz_offset": REPORT_TZ_OFFSET,
        "scan_poll_interval_ms": SCAN_POLL_INTERVAL_MS,
        "camera_index": CAMERA_INDEX,
    }


@router.get("/models/status")
def models_status():
    return get_model_status()


@router.post("/models/load")
def models_load():
    state = start_model_load()
    if state == "started":
        return {"ok": True, "message": "Model load started"}
    if state == "already_ready":
        return {"ok": True, "message": "Models already loaded"}
    return {"ok": False, "message": "Model load already running"}
