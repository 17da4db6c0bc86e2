from typing import Any, Dict, Tuple

from labtrack.commons.errors import MissingIdentifierError
from labtrack.commons.types import UserCtx
from labtrack.parsers.base import is_present
from labtrack.parsers.models import PatientVariant, TestStatus, WalkIn


def _require(**ids) -> None:
    missing = [k for k, v in ids.items() if not is_present(v)]
    if missing:
        raise MissingIdentifierError(f"Missing identifier(s): {', '.join(missing)}", missing)


class EndpointRouter:
    """Backend path templates for the lab module, scoped to one user."""

    def __init__(self, user: UserCtx):
        self.user = user

    @property
    def _scope(self) -> str:
        u = self.user
        return f"test/{u.role_name}/{u.hospital_id}/{u.user_id}"

    # --- per-visit lists ---
    def active_list(self, timeline_id: Any, walk_in: bool = False) -> str:
        name = "getWalkinPatientDetails" if walk_in else "getPatientDetails"
        return f"{self._scope}/{timeline_id}/{name}"

    def completed_list(self, timeline_id: Any, walk_in: bool = False) -> str:
        name = (
            "getWalkinReportsCompletedPatientDetails"
            if walk_in
            else "getReportsCompletedPatientDetails"
        )
        return f"{self._scope}/{timeline_id}/{name}"

    # --- patient lists (all visits) ---
    def all_patients(self) -> str:
        return f"{self._scope}/getAllPatient"

    def walkin_patients(self) -> str:
        return f"test/getWalkinTaxinvoicePatientsData/{self.user.hospital_id}/{self.user.role_name}"

    def all_completed(self, walk_in: bool = False) -> str:
        name = "getAllWalkinReportsCompletedPatients" if walk_in else "getAllReportsCompletedPatients"
        return f"{self._scope}/{name}"

    def patient_timeline(self, timeline_id: Any) -> str:
        return f"patientTimeLine/{self.user.hospital_id}/{timeline_id}"

    # --- attachments ---
    def attachments(self, patient_or_walkin_id: Any) -> str:
        return f"attachment/{self.user.hospital_id}/all/{patient_or_walkin_id}"

    def upload(self, variant: PatientVariant, test_id: Any = None) -> Tuple[str, Dict[str, str]]:
        """(path, query params) for the attachment upload of `variant`."""
        u = self.user
        if isinstance(variant, WalkIn):
            _require(walkInID=variant.walk_in_id, loincCode=variant.loinc_code)
            path = f"attachment/{u.hospital_id}/{variant.walk_in_id}/{u.user_id}/walkinAttachment"
            return path, {"testID": str(variant.loinc_code)}
        _require(timelineID=variant.timeline_id, patientID=variant.patient_id)
        path = f"attachment/{u.hospital_id}/{variant.timeline_id}/{variant.patient_id}/{u.user_id}"
        return path, {"testID": "" if test_id is None else str(test_id)}

    # --- status transitions ---
    def test_status(self, variant: PatientVariant, test_id: Any) -> str:
        u = self.user
        if isinstance(variant, WalkIn):
            _require(walkInID=variant.walk_in_id, loincCode=variant.loinc_code)
            return f"test/{u.hospital_id}/{variant.loinc_code}/{variant.walk_in_id}/walkinTestStatus"
        _require(testID=test_id)
        return f"test/{u.role_name}/{u.hospital_id}/{test_id}/testStatus"

    @staticmethod
    def status_body(status: TestStatus) -> Dict[str, str]:
        return {"status": status.value}
