import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterable, List, Optional

from .base import first_present


class PatientType(IntEnum):
    ALL = 0
    IPD = 1
    OPD = 2
    WALKIN = 3


@dataclass
class Page:
    items: List[Dict[str, Any]]
    page: int
    total_pages: int
    total_items: int


def filter_by_type(records: Iterable[Dict[str, Any]], patient_type: PatientType) -> List[Dict[str, Any]]:
    """IPD keeps patientStartStatus != 1, OPD keeps == 1; other types pass through."""
    records = [r for r in records or [] if isinstance(r, dict)]
    if patient_type == PatientType.IPD:
        return [r for r in records if r.get("patientStartStatus") != 1]
    if patient_type == PatientType.OPD:
        return [r for r in records if r.get("patientStartStatus") == 1]
    return records


def stamp_completed_time(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {**r, "_completedTime": first_present(r, "completedTime", "addedOn")}
        for r in records or []
        if isinstance(r, dict)
    ]


def search_patients(records: Iterable[Dict[str, Any]], query: Optional[str]) -> List[Dict[str, Any]]:
    records = [r for r in records or [] if isinstance(r, dict)]
    if not query or not query.strip():
        return records
    q = query.strip()
    ql = q.lower()

    def _hit(r: Dict[str, Any]) -> bool:
        for k in ("pName", "patientName", "patientID", "pID"):
            v = r.get(k)
            if v is not None and ql in str(v).lower():
                return True
        for k in ("phoneNumber", "phone"):
            v = r.get(k)
            if v is not None and q in str(v):
                return True
        return False

    return [r for r in records if _hit(r)]


def paginate(records: List[Dict[str, Any]], page: int, page_size: int) -> Page:
    total = len(records)
    total_pages = max(1, math.ceil(total / page_size)) if page_size > 0 else 1
    page = min(max(1, page), total_pages)
    start = (page - 1) * page_size
    return Page(items=records[start:start + page_size], page=page, total_pages=total_pages, total_items=total)


def is_walk_in_record(patient: Dict[str, Any]) -> bool:
    """Walk-in rows in the patient list carry the prescription file."""
    return first_present(patient, "prescriptionURL", "fileName") is not None


def details_ref(patient: Dict[str, Any], tab: str = "normal") -> Dict[str, Any]:
    """Reference handed to the patient-details flow for a list row."""
    walk_in = is_walk_in_record(patient)
    ref: Dict[str, Any] = {
        "timeLineID": first_present(patient, "id") if walk_in else first_present(patient, "timeLineID"),
        "tab": tab,
        "walkIn": walk_in,
        "patientData": patient,
    }
    if walk_in:
        ref["prescriptionURL"] = first_present(patient, "prescriptionURL", "fileName")
    return ref
