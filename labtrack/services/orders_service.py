from typing import Any, Callable, Dict, List, Optional

from labtrack.commons.errors import (
    EnvelopeError,
    InvalidTransitionError,
    TransitionError,
    TransportError,
)
from labtrack.commons.logger import logger
from labtrack.helpers.http_transport import HttpTransport
from labtrack.helpers.router import EndpointRouter
from labtrack.parsers.models import PatientVariant, TestOrder, TestStatus, UploadRequest

Listener = Callable[[TestStatus], None]


class TestOrderStateMachine:
    """Lifecycle of one lab test: pending -> processing -> completed.

    `committed` is what the backend has confirmed; `pending` marks a
    transition in flight. `status` is what a caller should display: the
    pending target while a request is running (optimistic), the committed
    state otherwise. A failed request clears the marker, which is the
    rollback.
    """

    def __init__(
        self,
        transport: HttpTransport,
        router: EndpointRouter,
        order_id: Any,
        variant: PatientVariant,
        status: Any = TestStatus.PENDING,
        test_name: str = "",
        timeline_id: Optional[int] = None,
        patient: Optional[Dict[str, Any]] = None,
    ):
        self.transport = transport
        self.router = router
        self.order_id = order_id
        self.variant = variant
        self.test_name = test_name
        self.timeline_id = timeline_id
        self.patient = patient or {}
        self._committed = TestStatus.parse(status)
        self._pending: Optional[TestStatus] = None
        self._listeners: List[Listener] = []

    @classmethod
    def for_order(cls, transport: HttpTransport, router: EndpointRouter, order: TestOrder):
        return cls(
            transport,
            router,
            order_id=order.id,
            variant=order.variant,
            status=order.status,
            test_name=order.test_name,
            timeline_id=order.timeline_id,
            patient=order.patient,
        )

    @property
    def committed(self) -> TestStatus:
        return self._committed

    @property
    def pending(self) -> Optional[TestStatus]:
        return self._pending

    @property
    def status(self) -> TestStatus:
        return self._pending or self._committed

    def on_change(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        current = self.status
        for cb in self._listeners:
            try:
                cb(current)
            except Exception as ex:
                logger.exception(f"Status listener failed: {ex}")

    async def _transition(self, expected: TestStatus, target: TestStatus) -> TestStatus:
        # one request in flight per order
        if self._pending is not None:
            raise InvalidTransitionError(
                f"{self.test_name or self.order_id} is already moving to {self._pending.value}"
            )
        if self._committed != expected:
            raise InvalidTransitionError(
                f"Cannot move {self.test_name or self.order_id} to {target.value} from {self._committed.value}"
            )
        path = self.router.test_status(self.variant, self.order_id)

        self._pending = target
        self._notify()
        try:
            await self.transport.post_json(path, self.router.status_body(target))
        except (TransportError, EnvelopeError) as ex:
            self._pending = None
            self._notify()
            logger.error(f"Status {target.value} rejected for {path}: {ex}")
            raise TransitionError(f"Failed to update test status to {target.value}: {ex}") from ex

        self._committed = target
        self._pending = None
        self._notify()
        logger.info(f"Test {self.order_id} -> {target.value}")
        return self._committed

    async def start_processing(self) -> TestStatus:
        return await self._transition(TestStatus.PENDING, TestStatus.PROCESSING)

    def request_upload(self) -> UploadRequest:
        if self._committed != TestStatus.PROCESSING or self._pending is not None:
            raise InvalidTransitionError(
                f"Upload only allowed while processing (current: {self.status.value})"
            )
        return UploadRequest(
            variant=self.variant,
            test_id=self.order_id,
            test_name=self.test_name,
            timeline_id=self.timeline_id,
            patient=self.patient,
        )

    async def complete(self) -> TestStatus:
        if self._committed == TestStatus.COMPLETED and self._pending is None:
            return self._committed
        return await self._transition(TestStatus.PROCESSING, TestStatus.COMPLETED)

    def converge(self, remote_status: Any) -> TestStatus:
        """Apply a refetched status. Only forward moves are taken."""
        remote = TestStatus.parse(remote_status)
        if self._pending is None and remote.rank > self._committed.rank:
            self._committed = remote
            self._notify()
        return self.status
