import io
from datetime import datetime, timezone

import openpyxl
import pytest

import database.db as db
from backend.errors import CameraUnavailable
from backend.routers import attendance as attendance_router
from backend.routers import kiosk as kiosk_router
from backend.routers import reports as reports_router
from backend.services import model_state
from conftest import jpeg_bytes, unit_descriptor


def _ms(day: int, hour: int, minute: int = 0) -> int:
    return int(datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc).timestamp() * 1000)


def _photo(content_type: str = "image/jpeg"):
    return {"file": ("face.jpg", jpeg_bytes(), content_type)}


def _enroll(client, fake_extractor, descriptor, first="Ana", last="Souza", role="Cashier"):
    fake_extractor.descriptor = descriptor
    res = client.post(
        "/employees/enroll",
        data={"first_name": first, "last_name": last, "role": role},
        files=_photo(),
    )
    assert res.status_code == 200, res.text
    return res.json()


@pytest.fixture()
def utc_reports(monkeypatch):
    monkeypatch.setattr(reports_router, "REPORT_TZ", timezone.utc)
    monkeypatch.setattr(attendance_router, "REPORT_TZ", timezone.utc)


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "models": "ready"}


def test_recognition_config(client):
    body = client.get("/config/recognition").json()
    assert body["match_threshold"] == 0.55
    assert body["descriptor_length"] == 128
    assert body["attendance_cooldown_ms"] == 60000


def test_models_status_and_load(client):
    assert client.get("/models/status").json()["state"] == "ready"
    res = client.post("/models/load")
    assert res.json() == {"ok": True, "message": "Models already loaded"}


def test_enroll_stores_employee_and_photo(client, fake_extractor):
    employee = _enroll(client, fake_extractor, unit_descriptor(0))

    assert employee["full_name"] == "Ana Souza"
    assert employee["has_biometrics"] is True

    listed = client.get("/employees").json()
    assert [e["id"] for e in listed] == [employee["id"]]

    photo = client.get(f"/employees/{employee['id']}/photo")
    assert photo.status_code == 200
    assert photo.headers["content-type"] == "image/jpeg"
    assert photo.content[:2] == b"\xff\xd8"


def test_enroll_without_face_is_rejected_and_not_stored(client, fake_extractor):
    fake_extractor.descriptor = None
    res = client.post(
        "/employees/enroll",
        data={"first_name": "Ana", "last_name": "Souza", "role": "Cashier"},
        files=_photo(),
    )
    assert res.status_code == 422
    assert client.get("/employees").json() == []


def test_enroll_extractor_failure_is_retryable(client, fake_extractor):
    fake_extractor.descriptor = unit_descriptor(0)
    fake_extractor.error = RuntimeError("inference crashed")
    res = client.post(
        "/employees/enroll",
        data={"first_name": "Ana", "last_name": "Souza", "role": "Cashier"},
        files=_photo(),
    )
    assert res.status_code == 503
    assert db.get_all_employees() == []


def test_enroll_validation(client, fake_extractor):
    fake_extractor.descriptor = unit_descriptor(0)

    blank = client.post(
        "/employees/enroll",
        data={"first_name": "  ", "last_name": "Souza", "role": "Cashier"},
        files=_photo(),
    )
    assert blank.status_code == 400
    assert blank.json()["detail"] == "All fields are required."

    wrong_type = client.post(
        "/employees/enroll",
        data={"first_name": "Ana", "last_name": "Souza", "role": "Cashier"},
        files={"file": ("face.gif", b"GIF89a", "image/gif")},
    )
    assert wrong_type.status_code == 400

    garbage = client.post(
        "/employees/enroll",
        data={"first_name": "Ana", "last_name": "Souza", "role": "Cashier"},
        files={"file": ("face.jpg", b"not really a jpeg", "image/jpeg")},
    )
    assert garbage.status_code == 400
    assert garbage.json()["detail"] == "Invalid image data."


def test_employee_not_found(client):
    assert client.get("/employees/nope").status_code == 404
    assert client.get("/employees/nope/photo").status_code == 404


def test_recognize_alternates_and_ignores_duplicates(client, fake_extractor, monkeypatch):
    employee = _enroll(client, fake_extractor, unit_descriptor(0))

    first = client.post("/attendance/recognize", files=_photo()).json()
    assert first["verified"] is True
    assert first["decision_code"] == "ENTRY_RECORDED"
    assert first["logged"] is True
    assert first["employee_id"] == employee["id"]
    assert first["confidence"] == 100.0

    again = client.post("/attendance/recognize", files=_photo()).json()
    assert again["decision_code"] == "DUPLICATE_IGNORED"
    assert again["logged"] is False
    assert again["retry_after_seconds"] >= 1
    assert len(db.get_events_for_employee(employee["id"])) == 1

    monkeypatch.setattr(attendance_router, "ATTENDANCE_COOLDOWN_MS", 0)
    exit_punch = client.post("/attendance/recognize", files=_photo()).json()
    assert exit_punch["decision_code"] == "EXIT_RECORDED"
    assert exit_punch["kind"] == "EXIT"

    events = client.get(f"/employees/{employee['id']}/events").json()
    assert [e["kind"] for e in events] == ["ENTRY", "EXIT"]
    assert all(e["verification"] == "SUCCESS" for e in events)


def test_recognize_outcomes_without_a_match(client, fake_extractor):
    fake_extractor.descriptor = unit_descriptor(0)
    empty = client.post("/attendance/recognize", files=_photo()).json()
    assert empty["decision_code"] == "NO_ENROLLED_BIOMETRICS"
    assert empty["verified"] is False

    _enroll(client, fake_extractor, unit_descriptor(0))

    fake_extractor.descriptor = unit_descriptor(1)
    stranger = client.post("/attendance/recognize", files=_photo()).json()
    assert stranger["decision_code"] == "FACE_NO_MATCH"
    assert stranger["logged"] is False

    fake_extractor.descriptor = None
    nobody = client.post("/attendance/recognize", files=_photo()).json()
    assert nobody["decision_code"] == "NO_FACE"

    fake_extractor.error = RuntimeError("inference crashed")
    broken = client.post("/attendance/recognize", files=_photo()).json()
    assert broken["decision_code"] == "EXTRACTION_FAILED"

    assert db.get_all_events() == []


def test_recognize_requires_loaded_models(client):
    model_state.reset_model_state()
    res = client.post("/attendance/recognize", files=_photo())
    assert res.status_code == 503


def test_verify_one_to_one(client, fake_extractor):
    employee = _enroll(client, fake_extractor, unit_descriptor(0))

    fake_extractor.descriptor = unit_descriptor(1)
    miss = client.post(f"/attendance/verify/{employee['id']}", files=_photo()).json()
    assert miss["decision_code"] == "FACE_NO_MATCH"
    assert miss["message"] == "Face does not match this employee."

    fake_extractor.descriptor = unit_descriptor(0)
    hit = client.post(f"/attendance/verify/{employee['id']}", files=_photo()).json()
    assert hit["decision_code"] == "ENTRY_RECORDED"

    assert client.post("/attendance/verify/nope", files=_photo()).status_code == 404


def test_verify_incomplete_enrollment(client, fake_extractor):
    legacy = db.add_employee("Caio", "Reis", "Driver", reference_image=None, descriptor=None)
    fake_extractor.descriptor = unit_descriptor(0)

    res = client.post(f"/attendance/verify/{legacy['id']}", files=_photo())
    assert res.status_code == 409

    listed = client.get(f"/employees/{legacy['id']}").json()
    assert listed["has_biometrics"] is False


def test_manual_punch_and_monthly_report(client, fake_extractor, utc_reports):
    employee = _enroll(client, fake_extractor, unit_descriptor(0))
    for hour in (8, 12, 13, 17):
        res = client.post("/attendance/manual", json={"employee_id": employee["id"], "timestamp": _ms(4, hour)})
        assert res.status_code == 200
        assert res.json()["verification"] == "MANUAL"

    report = client.get("/reports/attendance", params={"month": "2024-03"}).json()
    assert report["period"] == "03/2024"
    assert len(report["rows"]) == 1
    row = report["rows"][0]
    assert row["name"] == "Ana Souza"
    assert (row["entry1"], row["exit1"], row["entry2"], row["exit2"]) == ("08:00", "12:00", "13:00", "17:00")

    day = client.get("/attendance/events", params={"day": "2024-03-04", "employee_id": employee["id"]}).json()
    assert [e["kind"] for e in day] == ["ENTRY", "EXIT", "ENTRY", "EXIT"]


def test_manual_punch_unknown_employee(client):
    res = client.post("/attendance/manual", json={"employee_id": "nope"})
    assert res.status_code == 404


def test_report_errors(client, utc_reports):
    assert client.get("/reports/attendance", params={"month": "2024-03"}).status_code == 404
    assert client.get("/reports/attendance", params={"month": "2024-13"}).status_code == 400
    assert client.get("/reports/attendance").status_code == 400
    bad_range = client.get("/reports/attendance", params={"start": "2024-03-10", "end": "2024-03-01"})
    assert bad_range.status_code == 400


def test_report_exports(client, fake_extractor, utc_reports, monkeypatch, tmp_path):
    monkeypatch.setattr(reports_router, "LOGO_PATH", tmp_path / "missing_logo.png")
    employee = _enroll(client, fake_extractor, unit_descriptor(0))
    client.post("/attendance/manual", json={"employee_id": employee["id"], "timestamp": _ms(4, 8)})

    csv_res = client.get("/reports/attendance.csv", params={"month": "2024-03"})
    assert csv_res.status_code == 200
    assert "attendance_report_03-2024.csv" in csv_res.headers["content-disposition"]
    lines = csv_res.text.splitlines()
    assert lines[0] == "Period,03/2024"
    assert lines[1].startswith("Date / Day,Employee,Role")
    assert lines[2].startswith("2024-03-04 - Monday,Ana Souza,Cashier,08:00")

    xlsx_res = client.get("/reports/attendance.xlsx", params={"month": "2024-03"})
    assert xlsx_res.status_code == 200
    assert xlsx_res.content[:2] == b"PK"
    wb = openpyxl.load_workbook(io.BytesIO(xlsx_res.content))
    values = [cell for row in wb.active.iter_rows(values_only=True) for cell in row]
    assert "Ana Souza" in values
    assert "08:00" in values


def test_kiosk_reports_camera_failure(client, monkeypatch):
    class DeniedCamera:
        def __init__(self, index):
            self.index = index

        def open(self):
            raise CameraUnavailable("permission_denied")

        def release(self):
            pass

    monkeypatch.setattr(kiosk_router, "_SCANNER", None)
    monkeypatch.setattr(kiosk_router, "CameraSource", DeniedCamera)

    res = client.post("/kiosk/scan/start")
    assert res.status_code == 503
    assert res.json()["detail"]["reason"] == "permission_denied"

    status = client.get("/kiosk/scan/status").json()
    assert status["state"] == "idle"
    assert status["running"] is False


def test_manual_punch_rejects_future_timestamp(client, fake_extractor):
    employee = _enroll(client, fake_extractor, unit_descriptor(0))
    tomorrow = db.now_ms() + 24 * 3600 * 1000

    res = client.post("/attendance/manual", json={"employee_id": employee["id"], "timestamp": tomorrow})
    assert res.status_code == 400
    assert db.get_events_for_employee(employee["id"]) == []

    punch = client.post("/attendance/recognize", files=_photo()).json()
    assert punch["decision_code"] == "ENTRY_RECORDED"


def test_descriptor_length_mismatch_is_an_extraction_failure(client, fake_extractor):
    employee = _enroll(client, fake_extractor, unit_descriptor(0))
    fake_extractor.descriptor = [0.0] * 64

    recognized = client.post("/attendance/recognize", files=_photo())
    assert recognized.status_code == 200
    assert recognized.json()["decision_code"] == "EXTRACTION_FAILED"

    verified = client.post(f"/attendance/verify/{employee['id']}", files=_photo())
    assert verified.status_code == 200
    assert verified.json()["decision_code"] == "EXTRACTION_FAILED"

    assert db.get_all_events() == []
