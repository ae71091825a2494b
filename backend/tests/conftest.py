import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

import backend.config as config
import backend.main as main
import database.db as db
from backend.services import model_state
from biometrics.extractor import Detection


def unit_descriptor(index: int, length: int = 128) -> list[float]:
    vec = [0.0] * length
    vec[index] = 1.0
    return vec


def jpeg_bytes(width: int = 160, height: int = 120) -> bytes:
    ok, buf = cv2.imencode(".jpg", np.full((height, width, 3), 127, np.uint8))
    assert ok
    return buf.tobytes()


class FakeExtractor:
    """Returns whatever descriptor the test sets; None means no face."""

    def __init__(self, descriptor: list[float] | None = None):
        self.descriptor = descriptor
        self.error: Exception | None = None
        self.calls = 0

    def extract_descriptor(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.descriptor is None:
            return None
        return Detection(descriptor=np.asarray(self.descriptor, dtype=np.float32), score=0.99)


@pytest.fixture()
def temp_db(tmp_path, monkeypatch):
    test_db = tmp_path / "clockface_test.db"

    # Point DB to a temp file for isolation.
    monkeypatch.setattr(config, "DB_PATH", test_db)
    monkeypatch.setattr(db, "DB_PATH", test_db)

    db.create_tables()
    return test_db


@pytest.fixture()
def fake_extractor():
    extractor = FakeExtractor()
    model_state.install_extractor(extractor, message="Fake extractor")
    yield extractor
    model_state.reset_model_state()


@pytest.fixture()
def client(temp_db, fake_extractor, monkeypatch):
    monkeypatch.setattr(main, "PRELOAD_MODELS", False)

    with TestClient(main.app) as c:
        yield c
