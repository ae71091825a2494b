import logging
import os
from pathlib import Path

import cv2  # type: ignore
import numpy as np  # type: ignore

from backend.config import CAMERA_INDEX
from backend.errors import CameraUnavailable

logger = logging.getLogger(__name__)


def _failure_reason(index: int) -> str:
    device = Path(f"/dev/video{index}")
    if device.exists() and not os.access(device, os.R_OK | os.W_OK):
        return "permission_denied"
    return "no_device"


class CameraSource:
    """
    Local webcam held for the duration of a scan session.

    Use as a context manager, or call open()/release() explicitly; release()
    is idempotent.
    """

    def __init__(self, index: int = CAMERA_INDEX):
        self.index = index
        self._capture = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> "CameraSource":
        if self._capture is not None:
            return self
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            reason = _failure_reason(self.index)
            logger.warning("Camera %s unavailable (%s)", self.index, reason)
            raise CameraUnavailable(reason)
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        self._capture = cap
        logger.info("Camera %s acquired", self.index)
        return self

    def read(self) -> np.ndarray | None:
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        if not ok or frame is None:
            return None
        return frame

    def release(self) -> None:
        if self._capture is None:
            return
        self._capture.release()
        self._capture = None
        logger.info("Camera %s released", self.index)

    def __enter__(self) -> "CameraSource":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
