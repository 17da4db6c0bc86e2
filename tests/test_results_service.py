import asyncio

import httpx
import pytest

from labtrack.commons.errors import TransitionError
from labtrack.helpers.http_transport import HttpTransport
from labtrack.parsers.models import Registered, ViewSource
from labtrack.parsers.models import TestStatus as Status
from labtrack.parsers.models import TestTarget as Target
from labtrack.services.results_service import ResultsService

SCOPE = "test/pathology/7/3"
ACTIVE = f"{SCOPE}/40/getPatientDetails"
COMPLETED = f"{SCOPE}/40/getReportsCompletedPatientDetails"


def _patients(*records):
    return {"message": "success", "patientList": list(records)}


@pytest.mark.asyncio
async def test_orders_view_merges_both_lists(backend, transport, router):
    backend.on("GET", ACTIVE, _patients(
        {"id": 40, "patientID": "P-1", "timeLineID": 40, "pName": "Ana",
         "testsList": [{"id": 901, "name": "CBC", "status": "pending"}]}))
    backend.on("GET", COMPLETED, _patients(
        {"id": 40, "patientID": "P-1", "timeLineID": 40,
         "testsList": [{"id": 902, "name": "TSH"}]}))

    view = await ResultsService(transport, router).orders_view(40)

    assert [(r.id, r.status, r.source) for r in view.rows] == [
        (901, Status.PENDING, ViewSource.ACTIVE),
        (902, Status.COMPLETED, ViewSource.COMPLETED),
    ]
    assert view.patient["pName"] == "Ana"
    assert sorted(backend.paths("GET")) == sorted([ACTIVE, COMPLETED])


@pytest.mark.asyncio
async def test_one_failed_list_still_renders_the_other(backend, transport, router):
    backend.on("GET", ACTIVE, httpx.Response(500, json={"message": "boom"}))
    backend.on("GET", COMPLETED, _patients({"patientID": "P-1", "testsList": [{"id": 902}]}))

    view = await ResultsService(transport, router).orders_view(40)

    assert [r.id for r in view.rows] == [902]
    assert backend.paths("GET").count(ACTIVE) == 2


@pytest.mark.asyncio
async def test_failure_envelope_counts_as_empty(backend, transport, router):
    backend.on("GET", ACTIVE, {"message": "failure"})
    backend.on("GET", COMPLETED, {"message": "success", "patientList": None})
    view = await ResultsService(transport, router).orders_view(40)
    assert view.rows == []
    assert view.patient is None


@pytest.mark.asyncio
async def test_walk_in_lists(backend, transport, router):
    backend.on("GET", f"{SCOPE}/55/getWalkinPatientDetails",
               _patients({"id": 55, "loincCode": "LP123", "test": "Urine"}))
    view = await ResultsService(transport, router).orders_view(55, walk_in=True)
    assert view.rows[0].id == ("LP123", 55)
    assert f"{SCOPE}/55/getWalkinReportsCompletedPatientDetails" in backend.paths("GET")


@pytest.mark.asyncio
async def test_report_attachments_reconciles_all_sources(backend, transport, router):
    backend.on("GET", COMPLETED, _patients({
        "patientID": "P-1", "timeLineID": 40,
        "attachments": [
            {"id": 1, "testID": 901, "addedOn": "2024-01-01", "fileName": "old.pdf"},
            {"id": 3, "testID": 777, "addedOn": "2024-01-09"},
        ],
    }))
    backend.on("GET", "attachment/7/all/P-1", {"message": "success", "attachments": [
        {"id": 2, "testID": 901, "addedOn": "2024-01-03"},
        {"id": 1, "testID": 901, "addedOn": "2024-01-01", "fileName": "direct.pdf"},
    ]})
    svc = ResultsService(transport, router)

    out = await svc.report_attachments({"patientID": "P-1", "timeLineID": 40}, Target(test_id=901))

    assert [a.id for a in out] == [2, 1]
    assert out[1].file_name == "old.pdf"


@pytest.mark.asyncio
async def test_report_attachments_walk_in_uses_walk_in_id(backend, transport, router):
    backend.on("GET", "attachment/7/all/55", {"message": "success", "attachments": [
        {"id": 8, "loincCode": "LP123"}, {"id": 9, "loincCode": "LP999"}]})
    svc = ResultsService(transport, router)

    out = await svc.report_attachments({"walkInID": 55, "loincCode": "LP123"},
                                       Target(loinc_code="LP123"))

    assert [a.id for a in out] == [8]
    assert f"{SCOPE}/55/getWalkinReportsCompletedPatientDetails" in backend.paths("GET")


@pytest.mark.asyncio
async def test_fetch_attachments_without_ids(backend, transport, router):
    assert await ResultsService(transport, router).fetch_attachments({}) == []
    assert backend.calls == []


@pytest.mark.asyncio
async def test_mark_done_completes_and_surfaces_failures(backend, transport, router):
    svc = ResultsService(transport, router)
    backend.on("GET", ACTIVE, _patients({"patientID": "P-1", "timeLineID": 40, "status": "processing",
                                         "testsList": [{"id": 901, "name": "CBC"}]}))
    backend.on("GET", COMPLETED, _patients())
    row = (await svc.orders_view(40)).rows[0]
    assert row.variant == Registered("P-1", 40)

    backend.on("POST", "test/pathology/7/901/testStatus", {"message": "failure"}, {"message": "success"})
    machine = svc.machine_for(row)
    with pytest.raises(TransitionError):
        await svc.mark_done(machine)
    assert machine.status is Status.PROCESSING
    assert await svc.mark_done(machine) is Status.COMPLETED


def _gated_transport(first, second, bodies):
    """`first` is answered only after `second` has been requested."""
    second_seen = asyncio.Event()

    async def handler(request):
        path = request.url.path.replace("/api/v1/", "", 1)
        if path == second:
            second_seen.set()
        elif path == first:
            await asyncio.wait_for(second_seen.wait(), timeout=2)
        return httpx.Response(200, json=bodies[path])

    return HttpTransport("http://lab.test/api/v1", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_active_and_completed_are_fetched_together(router):
    bodies = {
        ACTIVE: _patients({"patientID": "P-1", "testsList": [{"id": 901}]}),
        COMPLETED: _patients({"patientID": "P-1", "testsList": [{"id": 902}]}),
    }
    transport = _gated_transport(ACTIVE, COMPLETED, bodies)

    view = await ResultsService(transport, router).orders_view(40)

    assert [r.id for r in view.rows] == [901, 902]
    await transport.aclose()


@pytest.mark.asyncio
async def test_report_sources_are_fetched_together(router):
    direct = "attachment/7/all/P-1"
    bodies = {
        COMPLETED: _patients({"patientID": "P-1", "attachments": [{"id": 1, "testID": 901}]}),
        direct: {"message": "success", "attachments": [{"id": 2, "testID": 901}]},
    }
    transport = _gated_transport(COMPLETED, direct, bodies)

    out = await ResultsService(transport, router).report_attachments(
        {"patientID": "P-1", "timeLineID": 40}, Target(test_id=901)
    )

    assert sorted(a.id for a in out) == [1, 2]
    await transport.aclose()
