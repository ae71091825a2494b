import cv2  # type: ignore
import numpy as np  # type: ignore

ACCEPTED_CONTENT_TYPES = ("image/jpeg", "image/png")


def decode_image(data: bytes) -> np.ndarray | None:
    """Decodes JPEG/PNG bytes into a BGR frame; None when the bytes are not an image."""
    if not data:
        return None
    img_array = np.frombuffer(data, np.uint8)
    frame = cv2.imdecode(img_array, cv2.IMREAD_COLOR)
    return frame


def encode_reference_image(image: np.ndarray, *, max_width: int = 400, quality: int = 70) -> bytes:
    """Downscales to max_width (keeping aspect ratio) and re-encodes as JPEG."""
    height, width = image.shape[:2]
    if width > max_width:
        scale = max_width / float(width)
        image = cv2.resize(image, (max_width, max(1, int(round(height * scale)))), interpolation=cv2.INTER_AREA)

    ok, buf = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("Could not encode reference image.")
    return buf.tobytes()
