from typing import Any, Dict, Iterable, List, Optional

from .base import first_present, parse_timestamp
from .models import (
    ExplicitList,
    ImplicitSingleton,
    TestOrder,
    TestSource,
    TestStatus,
    ViewSource,
    WalkIn,
)
from .variant import LOINC_KEYS, classify

UNKNOWN_TEST = "Unknown Test"


def extract_test_source(record: Dict[str, Any]) -> TestSource:
    """`testsList` as list or single object, else the record itself is the test."""
    tests = record.get("testsList")
    if isinstance(tests, list):
        return ExplicitList([t for t in tests if isinstance(t, dict)])
    if isinstance(tests, dict):
        return ExplicitList([tests])
    return ImplicitSingleton(record)


def _tests_of(record: Dict[str, Any]) -> List[Dict[str, Any]]:
    src = extract_test_source(record)
    if isinstance(src, ExplicitList):
        return src.tests
    return [src.record]


def _patient_ref(patient: Dict[str, Any], test: Dict[str, Any], walk_in: bool) -> Dict[str, Any]:
    ref = {
        "patientID": first_present(patient, "patientID"),
        "timelineID": first_present(patient, "timeLineID", "timelineID"),
        "pID": first_present(patient, "pID"),
        "walkInID": first_present(patient, "walkInID", "walkinID"),
        "loincCode": first_present(test, *LOINC_KEYS),
    }
    # walk-in lists key the visit by the record id
    if walk_in and ref["walkInID"] is None and ref["patientID"] is None:
        ref["walkInID"] = first_present(patient, "id")
    return ref


def _row(
    patient: Dict[str, Any],
    test: Dict[str, Any],
    source: ViewSource,
    status: TestStatus,
    date_raw: Any,
    index: int,
    walk_in: bool,
) -> TestOrder:
    variant = classify(_patient_ref(patient, test, walk_in))
    loinc = first_present(test, *LOINC_KEYS)
    if isinstance(variant, WalkIn):
        order_id: Any = (variant.loinc_code, variant.walk_in_id)
    else:
        order_id = first_present(test, "id")
        if order_id is None:
            order_id = first_present(patient, "id")
    name = first_present(test, "name", "test") or first_present(patient, "test") or UNKNOWN_TEST
    return TestOrder(
        id=order_id,
        test_name=str(name),
        loinc_code=str(loinc) if loinc is not None else None,
        status=status,
        date=parse_timestamp(date_raw),
        variant=variant,
        source=source,
        key=(order_id, source.value, index),
        timeline_id=first_present(patient, "timeLineID", "timelineID", "id"),
        patient=patient,
    )


def build_view(
    active: Optional[Iterable[Dict[str, Any]]],
    completed: Optional[Iterable[Dict[str, Any]]],
    walk_in: bool = False,
) -> List[TestOrder]:
    """Merge the active and completed patient lists into test rows.

    Active rows come first, completed rows are appended; nothing is
    re-sorted and no id is deduplicated across the two lists. Rows coming
    from the completed list are always COMPLETED.
    """
    rows: List[TestOrder] = []
    index = 0

    for patient in active or []:
        if not isinstance(patient, dict):
            continue
        for test in _tests_of(patient):
            raw_status = first_present(patient, "status")
            if raw_status is None:
                raw_status = first_present(test, "status")
            status = TestStatus.parse(raw_status) if raw_status is not None else TestStatus.PENDING
            date_raw = first_present(patient, "addedOn", "latestTestTime")
            rows.append(_row(patient, test, ViewSource.ACTIVE, status, date_raw, index, walk_in))
            index += 1

    for patient in completed or []:
        if not isinstance(patient, dict):
            continue
        for test in _tests_of(patient):
            date_raw = first_present(patient, "completedTime", "_completedTime", "addedOn")
            rows.append(
                _row(patient, test, ViewSource.COMPLETED, TestStatus.COMPLETED, date_raw, index, walk_in)
            )
            index += 1

    return rows
