from typing import Any

from .base import first_present
from .models import PatientVariant, Registered, WalkIn

PATIENT_ID_KEYS = ("patientID",)
TIMELINE_KEYS = ("timelineID", "timeLineID")
WALKIN_KEYS = ("walkInID", "walkinID")
PID_KEYS = ("pID",)
LOINC_KEYS = ("loincCode", "loinc_num_")


def _as_int(value: Any) -> Any:
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def classify(ref: Any) -> PatientVariant:
    """Return Registered or WalkIn for a loosely-typed patient/test reference.

    Precedence:
      1. patientID present            -> Registered
      2. walkInID or pID present      -> WalkIn
      3. anything else                -> Registered with whatever ids exist
    Blank strings count as absent. Pure: equal input, equal output.
    """
    patient_id = first_present(ref, *PATIENT_ID_KEYS)
    timeline_id = _as_int(first_present(ref, *TIMELINE_KEYS))

    if patient_id is not None:
        return Registered(patient_id=str(patient_id).strip(), timeline_id=timeline_id)

    walk_in_id = first_present(ref, *WALKIN_KEYS)
    if walk_in_id is None:
        walk_in_id = first_present(ref, *PID_KEYS)
    if walk_in_id is not None:
        loinc = first_present(ref, *LOINC_KEYS)
        return WalkIn(
            walk_in_id=_as_int(walk_in_id),
            loinc_code=str(loinc).strip() if loinc is not None else None,
        )

    return Registered(patient_id=None, timeline_id=timeline_id)


def lookup_id(variant: PatientVariant) -> Any:
    """Id used by `attachment/{hospitalID}/all/{id}`."""
    if isinstance(variant, WalkIn):
        return variant.walk_in_id
    return variant.patient_id


def variant_ref(variant: PatientVariant) -> dict:
    """Inverse of classify(): a minimal reference that classifies back to `variant`."""
    if isinstance(variant, WalkIn):
        return {"walkInID": variant.walk_in_id, "loincCode": variant.loinc_code}
    return {"patientID": variant.patient_id, "timelineID": variant.timeline_id}
