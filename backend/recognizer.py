from typing import Iterable, Sequence

import numpy as np  # type: ignore

from backend.config import DESCRIPTOR_LENGTH, MATCH_THRESHOLD
from backend.errors import IncompleteEnrollment
from backend.models import Employee, MatchResult

GalleryEntry = tuple[str, Sequence[float]]

NO_ENROLLED_MESSAGE = "no enrolled biometrics"
UNKNOWN_MESSAGE = "unknown"
MATCHED_MESSAGE = "identified"


def has_usable_descriptor(employee: Employee, expected_length: int = DESCRIPTOR_LENGTH) -> bool:
    descriptor = employee.get("descriptor")
    return bool(descriptor) and len(descriptor) == expected_length


def build_gallery(
    employees: Iterable[Employee],
    expected_length: int = DESCRIPTOR_LENGTH,
) -> tuple[list[GalleryEntry], list[str]]:
    """
    Returns:
      (gallery, skipped_ids) where gallery keeps input order and skipped_ids
      lists enrollment-incomplete employees.
    """
    gallery: list[GalleryEntry] = []
    skipped: list[str] = []
    for employee in employees:
        if has_usable_descriptor(employee, expected_length):
            gallery.append((employee["id"], employee["descriptor"] or []))
        else:
            skipped.append(employee["id"])
    return gallery, skipped


def confidence_from_distance(distance: float) -> float:
    return float(min(100.0, max(0.0, 100.0 - distance * 100.0)))


def match(
    live_descriptor: Sequence[float],
    gallery: Sequence[GalleryEntry],
    threshold: float = MATCH_THRESHOLD,
) -> MatchResult:
    """
    Nearest gallery entry by Euclidean distance.

    verified only when the best distance is strictly below `threshold`.
    On ties the first entry in gallery order wins. A descriptor length
    mismatch is a caller bug and raises ValueError.
    """
    live = np.asarray(live_descriptor, dtype=np.float64).reshape(-1)

    if len(gallery) == 0:
        return {
            "verified": False,
            "employee_id": None,
            "distance": None,
            "confidence": None,
            "message": NO_ENROLLED_MESSAGE,
        }

    ids = [entry[0] for entry in gallery]
    rows = []
    for employee_id, descriptor in gallery:
        vec = np.asarray(descriptor, dtype=np.float64).reshape(-1)
        if vec.shape != live.shape:
            raise ValueError(
                f"Descriptor length mismatch for {employee_id}: "
                f"gallery has {vec.shape[0]}, live has {live.shape[0]}"
            )
        rows.append(vec)

    distances = np.linalg.norm(np.vstack(rows) - live, axis=1)
    best = int(np.argmin(distances))  # first minimum
    best_distance = float(distances[best])

    if best_distance < threshold:
        return {
            "verified": True,
            "employee_id": ids[best],
            "distance": best_distance,
            "confidence": confidence_from_distance(best_distance),
            "message": MATCHED_MESSAGE,
        }

    return {
        "verified": False,
        "employee_id": None,
        "distance": best_distance,
        "confidence": None,
        "message": UNKNOWN_MESSAGE,
    }


def verify_employee(
    live_descriptor: Sequence[float],
    employee: Employee,
    threshold: float = MATCH_THRESHOLD,
    expected_length: int = DESCRIPTOR_LENGTH,
) -> MatchResult:
    """1:1 check against a pre-selected employee."""
    if not has_usable_descriptor(employee, expected_length):
        raise IncompleteEnrollment(employee["id"])
    return match(live_descriptor, [(employee["id"], employee["descriptor"] or [])], threshold)
