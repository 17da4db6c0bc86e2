import asyncio
from typing import Any, Dict, List, Optional

from labtrack.commons.errors import EnvelopeError, TransportError
from labtrack.commons.logger import logger
from labtrack.helpers.http_transport import HttpTransport
from labtrack.helpers.router import EndpointRouter
from labtrack.parsers.patients import (
    Page,
    PatientType,
    filter_by_type,
    paginate,
    search_patients,
    stamp_completed_time,
)
from labtrack.validation.validators import validate_status_envelope_or_raise


class PatientsService:
    """Lab patient list: active and completed tabs, type filter, search, paging."""

    def __init__(self, transport: HttpTransport, router: EndpointRouter, page_size: int = 10):
        self.transport = transport
        self.router = router
        self.page_size = page_size

    async def _patient_list(self, path: str) -> List[Dict[str, Any]]:
        try:
            body = await self.transport.get_json(path)
        except (TransportError, EnvelopeError) as ex:
            logger.warning(f"Failed to fetch patients from {path}: {ex}")
            return []
        return [p for p in body.get("patientList") or [] if isinstance(p, dict)]

    async def _walkin_list(self) -> List[Dict[str, Any]]:
        path = self.router.walkin_patients()
        try:
            data = validate_status_envelope_or_raise(await self.transport.get_raw(path))
        except (TransportError, EnvelopeError) as ex:
            logger.warning(f"Failed to fetch walk-in patients: {ex}")
            return []
        return [p for p in data if isinstance(p, dict)]

    async def active(self, patient_type: PatientType = PatientType.ALL) -> List[Dict[str, Any]]:
        if patient_type == PatientType.WALKIN:
            return await self._walkin_list()
        if patient_type == PatientType.ALL:
            registered, walkins = await asyncio.gather(
                self._patient_list(self.router.all_patients()), self._walkin_list()
            )
            return registered + walkins
        registered = await self._patient_list(self.router.all_patients())
        return filter_by_type(registered, patient_type)

    async def completed(self, patient_type: PatientType = PatientType.ALL) -> List[Dict[str, Any]]:
        walkin_path = self.router.all_completed(walk_in=True)
        registered_path = self.router.all_completed(walk_in=False)
        if patient_type == PatientType.WALKIN:
            return stamp_completed_time(await self._patient_list(walkin_path))
        if patient_type == PatientType.ALL:
            walkins, registered = await asyncio.gather(
                self._patient_list(walkin_path), self._patient_list(registered_path)
            )
            return stamp_completed_time(walkins + registered)
        registered = await self._patient_list(registered_path)
        return stamp_completed_time(filter_by_type(registered, patient_type))

    async def load(self, patient_type: PatientType = PatientType.ALL):
        """Both tabs, loaded together."""
        return await asyncio.gather(self.active(patient_type), self.completed(patient_type))

    async def page(
        self,
        tab: str = "normal",
        patient_type: PatientType = PatientType.ALL,
        query: Optional[str] = None,
        page: int = 1,
    ) -> Page:
        records = await (self.completed(patient_type) if tab == "completed" else self.active(patient_type))
        return paginate(search_patients(records, query), page, self.page_size)
