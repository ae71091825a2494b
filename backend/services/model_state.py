"""
Process-wide lifecycle of the descriptor extractor.

    uninitialized -> loading -> ready
                             -> failed -> loading (retry)

Enrollment and scanning query this state before touching the extractor; the
HTTP layer reports it so the kiosk can show a degraded-mode banner.
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Callable

from backend.config import DETECTION_MIN_SCORE, DETECTOR_MODEL_PATH, RECOGNIZER_MODEL_PATH
from backend.errors import ModelNotReady
from biometrics.extractor import DescriptorExtractor, OpenCVDescriptorExtractor

logger = logging.getLogger(__name__)

ExtractorLoader = Callable[[], DescriptorExtractor]

# -----------------------------
# Model Status (in-memory)
# -----------------------------
LOAD_LOCK = threading.Lock()
STATUS_LOCK = threading.Lock()
SETTLED = threading.Event()  # set once a load attempt ends (ready or failed)

MODEL_STATUS = {
    "state": "uninitialized",  # uninitialized | loading | ready | failed
    "started_at": None,        # ISO string
    "finished_at": None,       # ISO string
    "message": "",
    "last_ready": None,        # ISO string
}

_EXTRACTOR: DescriptorExtractor | None = None


def load_default_extractor() -> DescriptorExtractor:
    return OpenCVDescriptorExtractor(
        DETECTOR_MODEL_PATH,
        RECOGNIZER_MODEL_PATH,
        min_score=DETECTION_MIN_SCORE,
    )


def start_model_load(loader: ExtractorLoader | None = None) -> str:
    """
    Returns:
      - "started": a load thread was spawned
      - "already_loading": a load is in progress
      - "already_ready": models are loaded; nothing to do
    """
    with STATUS_LOCK:
        state = MODEL_STATUS["state"]
    if state == "ready":
        return "already_ready"
    if LOAD_LOCK.locked():
        return "already_loading"

    with STATUS_LOCK:
        MODEL_STATUS["state"] = "loading"
        MODEL_STATUS["message"] = "Loading face models..."
    SETTLED.clear()
    thread = threading.Thread(target=run_model_load, args=(loader,), name="model-loader", daemon=True)
    thread.start()
    return "started"


def run_model_load(loader: ExtractorLoader | None = None) -> None:
    """Builds the extractor and updates MODEL_STATUS. Never raises."""
    global _EXTRACTOR

    if not LOAD_LOCK.acquire(blocking=False):
        return
    try:
        with STATUS_LOCK:
            MODEL_STATUS["state"] = "loading"
            MODEL_STATUS["started_at"] = datetime.now().isoformat(timespec="seconds")
            MODEL_STATUS["finished_at"] = None
            MODEL_STATUS["message"] = "Loading face models..."
        SETTLED.clear()

        extractor = (loader or load_default_extractor)()
        finished_at = datetime.now().isoformat(timespec="seconds")
        with STATUS_LOCK:
            _EXTRACTOR = extractor
            MODEL_STATUS["state"] = "ready"
            MODEL_STATUS["finished_at"] = finished_at
            MODEL_STATUS["message"] = "Face models loaded"
            MODEL_STATUS["last_ready"] = finished_at
        logger.info("Face models ready")

    except Exception as e:
        finished_at = datetime.now().isoformat(timespec="seconds")
        with STATUS_LOCK:
            _EXTRACTOR = None
            MODEL_STATUS["state"] = "failed"
            MODEL_STATUS["finished_at"] = finished_at
            MODEL_STATUS["message"] = f"Model load failed: {e}"
        logger.error("Face model load failed: %s", e)
    finally:
        SETTLED.set()
        LOAD_LOCK.release()


def get_model_status() -> dict:
    with STATUS_LOCK:
        return dict(MODEL_STATUS)


def is_ready() -> bool:
    with STATUS_LOCK:
        return MODEL_STATUS["state"] == "ready"


def wait_until_ready(timeout: float | None = None) -> bool:
    """Blocks until the current load attempt settles; True if models are ready."""
    with STATUS_LOCK:
        state = MODEL_STATUS["state"]
    if state == "uninitialized":
        return False
    SETTLED.wait(timeout)
    return is_ready()


async def wait_until_ready_async(timeout: float | None = None) -> bool:
    return await asyncio.to_thread(wait_until_ready, timeout)


def get_extractor() -> DescriptorExtractor:
    with STATUS_LOCK:
        state = MODEL_STATUS["state"]
        extractor = _EXTRACTOR
        message = MODEL_STATUS["message"]
    if state != "ready" or extractor is None:
        if state == "failed":
            raise ModelNotReady(message or "Face models failed to load.")
        if state == "loading":
            raise ModelNotReady("Face models are still loading.")
        raise ModelNotReady()
    return extractor


def install_extractor(extractor: DescriptorExtractor, message: str = "Extractor installed") -> None:
    """Marks the runtime ready with an already-built extractor."""
    global _EXTRACTOR
    now = datetime.now().isoformat(timespec="seconds")
    with STATUS_LOCK:
        _EXTRACTOR = extractor
        MODEL_STATUS.update({
            "state": "ready",
            "started_at": now,
            "finished_at": now,
            "message": message,
            "last_ready": now,
        })
    SETTLED.set()


def reset_model_state() -> None:
    global _EXTRACTOR
    with STATUS_LOCK:
        _EXTRACTOR = None
        MODEL_STATUS.update({
            "state": "uninitialized",
            "started_at": None,
            "finished_at": None,
            "message": "",
            "last_ready": None,
        })
    SETTLED.clear()
