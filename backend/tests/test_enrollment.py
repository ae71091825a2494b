import numpy as np
import pytest

from backend.errors import ExtractionFailure, ModelNotReady, NoFaceDetected
from backend.services.enrollment import validate_for_enrollment
from biometrics.images import decode_image, encode_reference_image
from conftest import FakeExtractor, jpeg_bytes, unit_descriptor

FRAME = np.zeros((120, 160, 3), np.uint8)


def test_returns_descriptor_as_floats():
    descriptor = validate_for_enrollment(FRAME, FakeExtractor(unit_descriptor(4)))
    assert len(descriptor) == 128
    assert descriptor[4] == 1.0
    assert all(isinstance(v, float) for v in descriptor)


def test_no_face_is_a_user_error():
    with pytest.raises(NoFaceDetected):
        validate_for_enrollment(FRAME, FakeExtractor(None))


def test_extractor_crash_becomes_extraction_failure():
    extractor = FakeExtractor(unit_descriptor(0))
    extractor.error = RuntimeError("onnx session died")
    with pytest.raises(ExtractionFailure) as exc:
        validate_for_enrollment(FRAME, extractor)
    assert "onnx session died" in exc.value.message


def test_model_not_ready_passes_through():
    extractor = FakeExtractor(unit_descriptor(0))
    extractor.error = ModelNotReady()
    with pytest.raises(ModelNotReady):
        validate_for_enrollment(FRAME, extractor)


def test_wrong_descriptor_length_is_rejected():
    with pytest.raises(ExtractionFailure):
        validate_for_enrollment(FRAME, FakeExtractor([0.5] * 64))


def test_reference_image_is_downscaled():
    wide = np.full((300, 800, 3), 200, np.uint8)
    stored = decode_image(encode_reference_image(wide, max_width=400))
    assert stored is not None
    assert stored.shape[1] == 400
    assert stored.shape[0] == 150


def test_small_reference_image_keeps_its_size():
    image = decode_image(jpeg_bytes(160, 120))
    stored = decode_image(encode_reference_image(image))
    assert stored.shape[:2] == (120, 160)


def test_decode_rejects_garbage():
    assert decode_image(b"not an image") is None
