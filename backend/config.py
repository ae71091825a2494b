import os
from datetime import timedelta, timezone
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]

ASSETS_DIR = Path(os.getenv("CLOCKFACE_ASSETS_DIR", BASE_DIR / "assets"))
MODELS_DIR = Path(os.getenv("CLOCKFACE_MODELS_DIR", BASE_DIR / "biometrics" / "models"))
DETECTOR_MODEL_PATH = Path(
    os.getenv("CLOCKFACE_DETECTOR_MODEL_PATH", MODELS_DIR / "face_detection_yunet_2023mar.onnx")
)
RECOGNIZER_MODEL_PATH = Path(
    os.getenv("CLOCKFACE_RECOGNIZER_MODEL_PATH", MODELS_DIR / "face_recognition_sface_2021dec.onnx")
)
DB_PATH = Path(os.getenv("CLOCKFACE_DB_PATH", BASE_DIR / "database" / "clockface.db"))
LOGO_PATH = Path(os.getenv("CLOCKFACE_LOGO_PATH", ASSETS_DIR / "logo.png"))
ORGANIZATION_NAME = os.getenv("CLOCKFACE_ORGANIZATION_NAME", "Clockface").strip() or "Clockface"

LOG_LEVEL = os.getenv("CLOCKFACE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
LOG_FILE = os.getenv("CLOCKFACE_LOG_FILE", "").strip() or None


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_int(value: str | None, fallback: int, *, minimum: int = 0) -> int:
    if value is None or not value.strip():
        return fallback
    try:
        return max(minimum, int(value))
    except ValueError:
        return fallback


def _parse_float(value: str | None, fallback: float) -> float:
    if value is None or not value.strip():
        return fallback
    try:
        return float(value)
    except ValueError:
        return fallback


def parse_utc_offset(value: str | None, fallback: timezone = timezone.utc) -> timezone:
    """
    Parses "+HH:MM", "-HH:MM", "-03" or "Z" into a fixed-offset timezone.
    Reports use a fixed offset so the same log renders the same schedule
    wherever it is generated.
    """
    if not value:
        return fallback
    text = value.strip().upper()
    if text in {"Z", "UTC", "+00:00", "-00:00"}:
        return timezone.utc
    sign = -1 if text.startswith("-") else 1
    body = text.lstrip("+-")
    parts = body.split(":")
    try:
        hours = int(parts[0])
        minutes = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return fallback
    if hours > 23 or minutes > 59:
        return fallback
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("CLOCKFACE_CORS_ALLOW_ORIGINS"),
    ["http://localhost:5173", "http://127.0.0.1:5173"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("CLOCKFACE_CORS_ALLOW_METHODS"),
    ["GET", "POST", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("CLOCKFACE_CORS_ALLOW_HEADERS"),
    ["Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("CLOCKFACE_CORS_ALLOW_CREDENTIALS"), True)

# Start loading the extractor models when the app starts.
PRELOAD_MODELS = _parse_bool(os.getenv("CLOCKFACE_PRELOAD_MODELS"), True)

# Matching (distance units over L2-normalized descriptors; lower = stricter)
MATCH_THRESHOLD = _parse_float(os.getenv("CLOCKFACE_MATCH_THRESHOLD"), 0.55)
DESCRIPTOR_LENGTH = _parse_int(os.getenv("CLOCKFACE_DESCRIPTOR_LENGTH"), 128, minimum=1)
DETECTION_MIN_SCORE = _parse_float(os.getenv("CLOCKFACE_DETECTION_MIN_SCORE"), 0.5)

# Attendance
ATTENDANCE_COOLDOWN_MS = _parse_int(os.getenv("CLOCKFACE_ATTENDANCE_COOLDOWN_MS"), 60_000)
REPORT_TZ_OFFSET = os.getenv("CLOCKFACE_REPORT_TZ_OFFSET", "-03:00")
REPORT_TZ = parse_utc_offset(REPORT_TZ_OFFSET)

# Kiosk scanning
SCAN_POLL_INTERVAL_MS = _parse_int(os.getenv("CLOCKFACE_SCAN_POLL_INTERVAL_MS"), 1000, minimum=50)
CAMERA_INDEX = _parse_int(os.getenv("CLOCKFACE_CAMERA_INDEX"), 0)

# Enrollment photo storage
REFERENCE_IMAGE_MAX_WIDTH = _parse_int(os.getenv("CLOCKFACE_REFERENCE_IMAGE_MAX_WIDTH"), 400, minimum=32)
REFERENCE_IMAGE_JPEG_QUALITY = min(
    100,
    _parse_int(os.getenv("CLOCKFACE_REFERENCE_IMAGE_JPEG_QUALITY"), 70, minimum=1),
)
