import logging

import numpy as np  # type: ignore

from backend.config import DESCRIPTOR_LENGTH
from backend.errors import ExtractionFailure, NoFaceDetected
from biometrics.extractor import DescriptorExtractor

logger = logging.getLogger(__name__)


def validate_for_enrollment(
    image: np.ndarray,
    extractor: DescriptorExtractor,
    expected_length: int = DESCRIPTOR_LENGTH,
) -> list[float]:
    """
    Runs the extractor once on an enrollment photo.

    Raises NoFaceDetected when the photo has no usable face (retake the photo)
    and ExtractionFailure when the extractor itself fails (retry later).
    """
    try:
        detection = extractor.extract_descriptor(image)
    except ExtractionFailure:
        raise
    except Exception as e:
        logger.warning("Descriptor extraction failed during enrollment: %s", e)
        raise ExtractionFailure(f"Extraction failure: {e}") from e

    if detection is None:
        raise NoFaceDetected()

    descriptor = [float(v) for v in np.asarray(detection.descriptor).reshape(-1)]
    if len(descriptor) != expected_length:
        raise ExtractionFailure(
            f"Extraction failure: expected {expected_length} values, got {len(descriptor)}."
        )
    return descriptor
