"""
Descriptor extraction: image/frame -> fixed-length face descriptor.

The service only depends on the `DescriptorExtractor` protocol. The default
backend is OpenCV's YuNet detector plus the SFace recognizer, both loaded from
ONNX files; tests swap in a fake that returns fixed descriptors.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import cv2  # type: ignore
import numpy as np  # type: ignore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Detection:
    descriptor: np.ndarray
    score: float | None = None


class DescriptorExtractor(Protocol):
    def extract_descriptor(self, image: np.ndarray) -> Detection | None:
        """Returns the descriptor of the most prominent face, or None if no face is found."""
        ...


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    vec = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return vec
    return vec / norm


class OpenCVDescriptorExtractor:
    """YuNet detection + SFace features (128 floats, L2-normalized)."""

    def __init__(
        self,
        detector_model: Path,
        recognizer_model: Path,
        *,
        min_score: float = 0.5,
        nms_threshold: float = 0.3,
    ):
        for path in (detector_model, recognizer_model):
            if not Path(path).exists():
                raise FileNotFoundError(f"Face model not found: {path}")

        logger.info("Loading face detector %s", detector_model)
        self.detector = cv2.FaceDetectorYN.create(
            str(detector_model),
            "",
            (320, 320),
            min_score,
            nms_threshold,
            5000,
        )
        logger.info("Loading face recognizer %s", recognizer_model)
        self.recognizer = cv2.FaceRecognizerSF.create(str(recognizer_model), "")

    def extract_descriptor(self, image: np.ndarray) -> Detection | None:
        if image is None or image.size == 0:
            return None
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        elif image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)

        height, width = image.shape[:2]
        self.detector.setInputSize((width, height))
        _, faces = self.detector.detect(image)
        if faces is None or len(faces) == 0:
            return None

        # take largest face
        face = sorted(faces, key=lambda f: float(f[2]) * float(f[3]), reverse=True)[0]

        aligned = self.recognizer.alignCrop(image, face)
        feature = self.recognizer.feature(aligned)
        return Detection(descriptor=l2_normalize(feature), score=float(face[-1]))
