import asyncio
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile

from backend.config import DESCRIPTOR_LENGTH, REFERENCE_IMAGE_JPEG_QUALITY, REFERENCE_IMAGE_MAX_WIDTH
from backend.dependencies import read_image_upload, require_extractor
from backend.errors import ExtractionFailure, NoFaceDetected
from backend.models import Employee, display_name
from backend.recognizer import has_usable_descriptor
from backend.services.enrollment import validate_for_enrollment
from biometrics.extractor import DescriptorExtractor
from biometrics.images import encode_reference_image
from database.db import add_employee, get_all_employees, get_employee_by_id, get_employee_photo, get_events_for_employee

logger = logging.getLogger(__name__)

router = APIRouter()


def employee_payload(employee: Employee) -> dict:
    return {
        "id": employee["id"],
        "first_name": employee["first_name"],
        "last_name": employee["last_name"],
        "full_name": display_name(employee),
        "role": employee["role"],
        "enrolled_at": employee["enrolled_at"],
        "has_biometrics": has_usable_descriptor(employee, DESCRIPTOR_LENGTH),
    }


@router.get("/employees")
def employees():
    return [employee_payload(e) for e in get_all_employees()]


@router.get("/employees/{employee_id}")
def employee_detail(employee_id: str):
    employee = get_employee_by_id(employee_id)
    if not employee:
        raise HTTPException(status_code=404, detail="Employee not found.")
    return employee_payload(employee)


@router.get("/employees/{employee_id}/photo")
def employee_photo(employee_id: str):
    photo = get_employee_photo(employee_id)
    if photo is None:
        raise HTTPException(status_code=404, detail="Photo not found.")
    return Response(content=photo, media_type="image/jpeg")


@router.get("/employees/{employee_id}/events")
def employee_events(employee_id: str):
    if not get_employee_by_id(employee_id):
        raise HTTPException(status_code=404, detail="Employee not found.")
    return get_events_for_employee(employee_id)


# Enroll (create employee + reference photo + descriptor)
@router.post("/employees/enroll")
async def enroll_employee(
    extractor: DescriptorExtractor = Depends(require_extractor),
    first_name: str = Form(...),
    last_name: str = Form(...),
    role: str = Form(...),
    file: UploadFile = File(...),
):
    first_name = first_name.strip()
    last_name = last_name.strip()
    role = role.strip()

    if not first_name or not last_name or not role:
        raise HTTPException(status_code=400, detail="All fields are required.")

    frame = await read_image_upload(file)

    # Store the employee ONLY IF a descriptor could be computed
    try:
        descriptor = await asyncio.to_thread(validate_for_enrollment, frame, extractor, DESCRIPTOR_LENGTH)
    except NoFaceDetected as e:
        raise HTTPException(status_code=422, detail=e.message)
    except ExtractionFailure as e:
        raise HTTPException(status_code=503, detail=e.message)

    photo = encode_reference_image(
        frame,
        max_width=REFERENCE_IMAGE_MAX_WIDTH,
        quality=REFERENCE_IMAGE_JPEG_QUALITY,
    )
    employee = add_employee(
        first_name,
        last_name,
        role,
        reference_image=photo,
        descriptor=descriptor,
    )
    logger.info("Enrolled employee %s (%s)", employee["id"], display_name(employee))
    return employee_payload(employee)
