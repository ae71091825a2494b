import numpy as np  # type: ignore
from fastapi import HTTPException, UploadFile

from backend.errors import ModelNotReady
from backend.services.model_state import get_extractor
from biometrics.extractor import DescriptorExtractor
from biometrics.images import ACCEPTED_CONTENT_TYPES, decode_image


def require_extractor() -> DescriptorExtractor:
    try:
        return get_extractor()
    except ModelNotReady as e:
        raise HTTPException(status_code=503, detail=e.message)


async def read_image_upload(file: UploadFile) -> np.ndarray:
    if file.content_type not in ACCEPTED_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Upload JPG/PNG only.")

    data = await file.read()
    frame = decode_image(data)
    if frame is None:
        raise HTTPException(status_code=400, detail="Invalid image data.")
    return frame
