"""
Live kiosk scanning loop.

A periodic asyncio task grabs a frame every poll interval and hands it to the
extractor in a worker thread. At most one extraction is in flight: a tick that
finds the previous one still running is skipped, not queued. The first
verified match stops the loop before the punch is written, so two close frames
cannot both record an event. The camera is held only while the loop runs and
is released on every exit path.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Literal, Sequence

from backend.config import MATCH_THRESHOLD, SCAN_POLL_INTERVAL_MS
from backend.errors import ClockfaceError
from backend.models import MatchResult, PunchResult
from backend.recognizer import GalleryEntry, match
from biometrics.extractor import DescriptorExtractor

logger = logging.getLogger(__name__)

ScannerState = Literal["idle", "scanning", "matched", "error"]


class KioskScanner:
    def __init__(
        self,
        *,
        camera_factory: Callable[[], Any],
        extractor_provider: Callable[[], DescriptorExtractor],
        gallery_provider: Callable[[], tuple[list[GalleryEntry], list[str]]],
        on_match: Callable[[MatchResult], PunchResult],
        poll_interval_ms: int = SCAN_POLL_INTERVAL_MS,
        threshold: float = MATCH_THRESHOLD,
    ):
        self._camera_factory = camera_factory
        self._extractor_provider = extractor_provider
        self._gallery_provider = gallery_provider
        self._on_match = on_match
        self.poll_interval_ms = poll_interval_ms
        self.threshold = threshold

        self.state: ScannerState = "idle"
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self._camera: Any = None
        self._extractor: DescriptorExtractor | None = None
        self._gallery: Sequence[GalleryEntry] = []

        self.ticks = 0
        self.skipped_ticks = 0
        self.extractions = 0
        self.last_decision: str | None = None
        self.last_message = ""
        self.last_result: dict | None = None
        self.started_at: str | None = None

    # -----------------------------
    # Control
    # -----------------------------
    async def start(self) -> bool:
        """
        Acquires the camera and starts the loop. Returns False if already
        scanning. Raises ModelNotReady / CameraUnavailable before any state
        is changed.
        """
        if self.is_running:
            return False

        extractor = self._extractor_provider()
        gallery, skipped = self._gallery_provider()
        if skipped:
            logger.warning("Excluded %d employee(s) without usable biometrics: %s", len(skipped), skipped)

        camera = self._camera_factory()
        camera.open()
        self._camera = camera

        self._generation += 1
        self._extractor = extractor
        self._gallery = gallery
        self.state = "scanning"
        self.ticks = 0
        self.skipped_ticks = 0
        self.extractions = 0
        self.last_decision = None
        self.last_message = "Scanning..."
        self.last_result = None
        self.started_at = datetime.now().isoformat(timespec="seconds")
        self._task = asyncio.create_task(self._run(camera, self._generation))
        logger.info("Kiosk scan started (gallery=%d)", len(gallery))
        return True

    async def stop(self) -> None:
        """Cancels the loop, discards any in-flight extraction and releases the camera."""
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._cancel_inflight()
        # a task cancelled before its first step never reaches _run's finally
        self._release_camera(self._camera)
        if self.state == "scanning":
            self.state = "idle"
            self.last_message = "Stopped"
        logger.info("Kiosk scan stopped")

    async def reset(self) -> None:
        await self.stop()
        self.state = "idle"
        self.last_decision = None
        self.last_message = ""
        self.last_result = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> dict:
        return {
            "state": self.state,
            "running": self.is_running,
            "started_at": self.started_at,
            "poll_interval_ms": self.poll_interval_ms,
            "ticks": self.ticks,
            "skipped_ticks": self.skipped_ticks,
            "extractions": self.extractions,
            "inflight": self._inflight is not None and not self._inflight.done(),
            "last_decision": self.last_decision,
            "message": self.last_message,
            "result": self.last_result,
        }

    # -----------------------------
    # Loop
    # -----------------------------
    def _cancel_inflight(self) -> None:
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            inflight.cancel()

    def _release_camera(self, camera) -> None:
        if camera is None or camera is not self._camera:
            return
        self._camera = None
        try:
            camera.release()
        except Exception as e:
            logger.warning("Camera release failed: %s", e)

    async def _run(self, camera, generation: int) -> None:
        interval = self.poll_interval_ms / 1000.0
        try:
            while generation == self._generation and self.state == "scanning":
                await self._tick(camera, generation)
                await asyncio.sleep(interval)
        except Exception as e:
            logger.exception("Kiosk scan loop crashed")
            if generation == self._generation:
                self.state = "error"
                self.last_message = f"Scan loop stopped: {e}"
        finally:
            if generation != self._generation:
                self._cancel_inflight()
            self._release_camera(camera)

    async def _tick(self, camera, generation: int) -> None:
        self.ticks += 1
        if self._inflight is not None and not self._inflight.done():
            self.skipped_ticks += 1
            return

        try:
            frame = await asyncio.to_thread(camera.read)
        except Exception as e:
            logger.warning("Camera read failed: %s", e)
            self.last_message = f"Camera read failed: {e}"
            return
        if frame is None:
            self.last_message = "No camera frame"
            return
        if self._is_stale(generation):
            return
        self._inflight = asyncio.create_task(self._scan_frame(frame, generation))

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation or self.state != "scanning"

    async def _scan_frame(self, frame, generation: int) -> None:
        extractor = self._extractor
        if extractor is None:
            return
        self.extractions += 1
        try:
            detection = await asyncio.to_thread(extractor.extract_descriptor, frame)
        except ClockfaceError as e:
            if not self._is_stale(generation):
                self.last_decision = "EXTRACTION_FAILED"
                self.last_message = e.message
            return
        except Exception as e:
            logger.warning("Extraction failed during scan: %s", e)
            if not self._is_stale(generation):
                self.last_decision = "EXTRACTION_FAILED"
                self.last_message = "Extraction failure"
            return

        if self._is_stale(generation):
            return

        if detection is None:
            self.last_decision = "NO_FACE"
            self.last_message = "No face detected"
            return

        try:
            result = match(detection.descriptor, self._gallery, self.threshold)
        except ValueError as e:
            logger.error("Matcher rejected live descriptor: %s", e)
            self.last_decision = "EXTRACTION_FAILED"
            self.last_message = "Descriptor does not fit the enrolled gallery"
            return

        if not result["verified"]:
            self.last_decision = "NO_ENROLLED_BIOMETRICS" if not self._gallery else "FACE_NO_MATCH"
            self.last_message = result["message"]
            return

        # Stop issuing extractions before the punch is written.
        self.state = "matched"
        try:
            punch = await asyncio.to_thread(self._on_match, result)
        except Exception as e:
            logger.exception("Failed to record punch for %s", result["employee_id"])
            self.state = "error"
            self.last_decision = None
            self.last_message = f"Could not record attendance: {e}"
            return

        if generation != self._generation:
            return

        self.last_decision = punch["decision_code"]
        self.last_message = punch["message"]
        self.last_result = {"match": result, "punch": punch}
