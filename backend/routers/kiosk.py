from fastapi import APIRouter, HTTPException

from backend.camera import CameraSource
from backend.config import (
    ATTENDANCE_COOLDOWN_MS,
    CAMERA_INDEX,
    DESCRIPTOR_LENGTH,
    MATCH_THRESHOLD,
    SCAN_POLL_INTERVAL_MS,
)
from backend.errors import CameraUnavailable, ModelNotReady
from backend.models import MatchResult, PunchResult
from backend.recognizer import build_gallery
from backend.services.model_state import get_extractor
from backend.services.scanner import KioskScanner
from backend.services.sequencer import record_punch
from database.db import get_all_employees

router = APIRouter()

_SCANNER: KioskScanner | None = None


def _record_match(result: MatchResult) -> PunchResult:
    return record_punch(str(result["employee_id"]), result["confidence"], min_interval_ms=ATTENDANCE_COOLDOWN_MS)


def get_scanner() -> KioskScanner:
    global _SCANNER
    if _SCANNER is None:
        _SCANNER = KioskScanner(
            camera_factory=lambda: CameraSource(CAMERA_INDEX),
            extractor_provider=get_extractor,
            gallery_provider=lambda: build_gallery(get_all_employees(), DESCRIPTOR_LENGTH),
            on_match=_record_match,
            poll_interval_ms=SCAN_POLL_INTERVAL_MS,
            threshold=MATCH_THRESHOLD,
        )
    return _SCANNER


async def shutdown_scanner() -> None:
    if _SCANNER is not None:
        await _SCANNER.stop()


@router.post("/kiosk/scan/start")
async def scan_start():
    scanner = get_scanner()
    try:
        started = await scanner.start()
    except ModelNotReady as e:
        raise HTTPException(status_code=503, detail=e.message)
    except CameraUnavailable as e:
        raise HTTPException(status_code=503, detail={"reason": e.reason, "message": e.message})
    return {"ok": True, "started": started, **scanner.status()}


@router.post("/kiosk/scan/stop")
async def scan_stop():
    scanner = get_scanner()
    await scanner.reset()
    return {"ok": True, **scanner.status()}


@router.get("/kiosk/scan/status")
def scan_status():
    return get_scanner().status()
