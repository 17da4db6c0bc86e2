# labtrack/services/results_service.py
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from labtrack.commons.errors import EnvelopeError, TransportError
from labtrack.commons.logger import logger
from labtrack.helpers.http_transport import HttpTransport
from labtrack.helpers.router import EndpointRouter
from labtrack.parsers.attachments import collect_record_attachments, reconcile_attachments
from labtrack.parsers.models import Attachment, TestOrder, TestStatus, TestTarget, WalkIn
from labtrack.parsers.reconciliation import build_view
from labtrack.parsers.variant import classify, lookup_id
from labtrack.services.orders_service import TestOrderStateMachine


@dataclass
class OrdersView:
    rows: List[TestOrder]
    active: List[Dict[str, Any]] = field(default_factory=list)
    completed: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def patient(self) -> Optional[Dict[str, Any]]:
        """First record of either list; what the profile header shows."""
        for recs in (self.active, self.completed):
            if recs:
                return recs[0]
        return None


class ResultsService:
    def __init__(self, transport: HttpTransport, router: EndpointRouter):
        self.transport = transport
        self.router = router

    async def _fetch_list(self, path: str, key: str = "patientList") -> List[Dict[str, Any]]:
        """GET a list endpoint; any failure yields an empty list."""
        try:
            body = await self.transport.get_json(path)
        except (TransportError, EnvelopeError) as ex:
            logger.warning(f"Fetch {path} failed, using empty list: {ex}")
            return []
        items = body.get(key) or []
        if not isinstance(items, list):
            logger.warning(f"Unexpected {key} shape from {path}: {type(items).__name__}")
            return []
        return [it for it in items if isinstance(it, dict)]

    async def fetch_lists(self, timeline_id: Any, walk_in: bool = False):
        """Active and completed lists, fetched concurrently and joined."""
        return await asyncio.gather(
            self._fetch_list(self.router.active_list(timeline_id, walk_in)),
            self._fetch_list(self.router.completed_list(timeline_id, walk_in)),
        )

    async def orders_view(self, timeline_id: Any, walk_in: bool = False) -> OrdersView:
        active, completed = await self.fetch_lists(timeline_id, walk_in)
        rows = build_view(active, completed, walk_in=walk_in)
        logger.info(
            f"Timeline {timeline_id}: {len(active)} active / {len(completed)} completed records, "
            f"{len(rows)} test rows"
        )
        return OrdersView(rows=rows, active=active, completed=completed)

    async def fetch_attachments(self, ref: Any) -> List[Dict[str, Any]]:
        lookup = lookup_id(classify(ref))
        if lookup is None:
            logger.info("No patient/walk-in id to fetch attachments with")
            return []
        return await self._fetch_list(self.router.attachments(lookup), key="attachments")

    async def report_attachments(
        self,
        ref: Any,
        target: TestTarget,
        uploaded: Optional[Iterable[Attachment]] = None,
    ) -> List[Attachment]:
        """Attachments for the report tab of one test.

        Sources by priority: `uploaded` (this session), the completed list
        for the visit, the direct attachment endpoint.
        """
        variant = classify(ref)
        if isinstance(variant, WalkIn):
            visit_id, walk_in = variant.walk_in_id, True
        else:
            visit_id, walk_in = variant.timeline_id, False

        completed: List[Dict[str, Any]] = []
        if visit_id is not None:
            completed, direct = await asyncio.gather(
                self._fetch_list(self.router.completed_list(visit_id, walk_in)),
                self.fetch_attachments(ref),
            )
        else:
            direct = await self.fetch_attachments(ref)

        return reconcile_attachments(
            [list(uploaded or []), collect_record_attachments(completed), direct], target
        )

    async def mark_done(self, machine: TestOrderStateMachine) -> TestStatus:
        """Report tab "Done" button; a failed completion is raised."""
        return await machine.complete()

    def machine_for(self, order: TestOrder) -> TestOrderStateMachine:
        return TestOrderStateMachine.for_order(self.transport, self.router, order)
