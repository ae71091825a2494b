"""Domain errors raised by the biometric and attendance services.

Routers translate these into HTTP responses; the kiosk scanner reports them in
its status and keeps scanning.
"""


class ClockfaceError(Exception):
    """Base class for recoverable domain errors."""

    default_message = "Clockface error."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NoFaceDetected(ClockfaceError):
    default_message = "No face detected - retake photo."


class ExtractionFailure(ClockfaceError):
    default_message = "Extraction failure."


class ModelNotReady(ExtractionFailure):
    default_message = "Face models are not ready."


class IncompleteEnrollment(ClockfaceError):
    default_message = "Employee has no usable biometric descriptor; re-enroll the photo."

    def __init__(self, employee_id: str, message: str | None = None):
        self.employee_id = employee_id
        super().__init__(message)


class EmptyReportPeriod(ClockfaceError):
    default_message = "No attendance records for this period."


class CameraUnavailable(ClockfaceError):
    """Camera could not be acquired. `reason` is "no_device" or "permission_denied"."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        if message is None:
            if reason == "permission_denied":
                message = "Camera access denied. Check device permissions."
            else:
                message = "No camera device available."
        super().__init__(message)
