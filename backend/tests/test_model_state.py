import pytest

from backend.errors import ModelNotReady
from backend.services import model_state
from conftest import FakeExtractor


@pytest.fixture(autouse=True)
def clean_state():
    model_state.reset_model_state()
    yield
    model_state.reset_model_state()


def test_uninitialized_runtime_is_not_ready():
    assert model_state.get_model_status()["state"] == "uninitialized"
    assert model_state.wait_until_ready(0.01) is False
    with pytest.raises(ModelNotReady):
        model_state.get_extractor()


def test_successful_load_makes_extractor_available():
    extractor = FakeExtractor()
    model_state.run_model_load(lambda: extractor)

    status = model_state.get_model_status()
    assert status["state"] == "ready"
    assert status["last_ready"] is not None
    assert model_state.get_extractor() is extractor


def test_failed_load_is_reported_not_raised():
    def broken():
        raise FileNotFoundError("face_detection_yunet_2023mar.onnx")

    model_state.run_model_load(broken)

    status = model_state.get_model_status()
    assert status["state"] == "failed"
    assert "yunet" in status["message"]
    with pytest.raises(ModelNotReady) as exc:
        model_state.get_extractor()
    assert "yunet" in exc.value.message


def test_background_load_settles():
    extractor = FakeExtractor()
    assert model_state.start_model_load(lambda: extractor) == "started"
    assert model_state.wait_until_ready(5) is True
    assert model_state.get_extractor() is extractor
    assert model_state.start_model_load(lambda: extractor) == "already_ready"


def test_retry_after_failure():
    def broken():
        raise RuntimeError("bad model")

    model_state.run_model_load(broken)
    assert model_state.is_ready() is False

    model_state.run_model_load(FakeExtractor)
    assert model_state.is_ready() is True
