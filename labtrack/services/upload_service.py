from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from labtrack.commons.errors import (
    EnvelopeError,
    LabTrackError,
    MissingIdentifierError,
    TransportError,
)
from labtrack.commons.logger import logger
from labtrack.commons.types import UploadCfg
from labtrack.helpers.file_transport import UploadFile, wait_until_ready
from labtrack.helpers.http_transport import HttpTransport
from labtrack.helpers.router import EndpointRouter
from labtrack.parsers.attachments import normalize_uploaded
from labtrack.parsers.base import first_present
from labtrack.parsers.models import (
    Attachment,
    PatientVariant,
    Registered,
    TestStatus,
    UploadFailure,
    UploadRequest,
    UploadResult,
    WalkIn,
)
from labtrack.services.orders_service import TestOrderStateMachine
from labtrack.validation.validators import collect_returned_attachments


class UploadCoordinator:
    def __init__(
        self,
        transport: HttpTransport,
        router: EndpointRouter,
        upload_cfg: Optional[UploadCfg] = None,
        size_of=None,
    ):
        self.transport = transport
        self.router = router
        self.cfg = upload_cfg or UploadCfg()
        self.size_of = size_of

    async def _check_ready(self, files: Sequence[UploadFile]) -> None:
        for f in files:
            await wait_until_ready(
                f,
                attempts=self.cfg.readiness_attempts,
                backoff_sec=self.cfg.readiness_backoff_sec,
                size_of=self.size_of,
            )

    async def _timeline_patient_id(self, timeline_id: Any) -> Optional[str]:
        if timeline_id is None:
            return None
        try:
            body = await self.transport.get_json(self.router.patient_timeline(timeline_id))
        except (TransportError, EnvelopeError) as ex:
            logger.warning(f"Timeline {timeline_id} lookup failed: {ex}")
            return None
        return first_present(body.get("patientTimeLine") or {}, "patientID")

    async def resolve_variant(self, variant: PatientVariant, test_ref: UploadRequest) -> PatientVariant:
        """Fill in the patient id a registered upload needs, or raise MissingIdentifierError."""
        if isinstance(variant, WalkIn):
            return variant
        timeline_id = variant.timeline_id if variant.timeline_id is not None else test_ref.timeline_id
        patient_id = variant.patient_id
        if patient_id is None:
            patient_id = await self._timeline_patient_id(timeline_id)
        if patient_id is None:
            patient_id = first_present(test_ref.patient, "patientID", "id")
        if patient_id is None:
            raise MissingIdentifierError(
                f"No patient id for timeline {timeline_id}; upload not attempted", ["patientID"]
            )
        return Registered(patient_id=str(patient_id), timeline_id=timeline_id)

    def _metadata(self) -> Dict[str, str]:
        u = self.router.user
        return {
            "category": u.role_name,
            "hospitalID": str(u.hospital_id),
            "userID": str(u.user_id),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def submit(
        self,
        files: Sequence[UploadFile],
        variant: PatientVariant,
        test_ref: UploadRequest,
        machine: Optional[TestOrderStateMachine] = None,
    ) -> UploadResult:
        """Upload result files for one test, then try to mark it completed.

        Raises FileNotReadyError / MissingIdentifierError before any upload
        request. Per-file failures are returned in `failures`.
        """
        if not files:
            raise LabTrackError("Select at least one file to upload")
        await self._check_ready(files)
        variant = await self.resolve_variant(variant, test_ref)
        path, params = self.router.upload(variant, test_ref.test_id)

        attachments: List[Attachment] = []
        failures: List[UploadFailure] = []
        for f in files:
            try:
                body = await self.transport.post_multipart(
                    path, [f.read_part()], data=self._metadata(), params=params
                )
            except (TransportError, EnvelopeError, OSError) as ex:
                logger.error(f"Upload of {f.name} failed: {ex}")
                failures.append(UploadFailure(file_name=f.name, reason=str(ex)))
                continue
            attachments.extend(normalize_uploaded(collect_returned_attachments(body)))
            logger.info(f"Uploaded {f.name} to {path}")

        if machine is None:
            machine = TestOrderStateMachine(
                self.transport,
                self.router,
                order_id=test_ref.test_id,
                variant=variant,
                status=TestStatus.PROCESSING,
                test_name=test_ref.test_name,
                timeline_id=test_ref.timeline_id,
                patient=test_ref.patient,
            )
        uploaded_any = len(failures) < len(files)
        next_status = machine.status
        if uploaded_any:
            try:
                next_status = await machine.complete()
            except LabTrackError as ex:
                # the files are stored; only the auto-completion failed
                logger.warning(f"Auto-completion after upload failed: {ex}")
                next_status = machine.status

        return UploadResult(attachments=attachments, next_status=next_status, failures=failures)
