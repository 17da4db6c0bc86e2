import asyncio
import json
import os
import sys
from dataclasses import asdict, is_dataclass
from typing import List, Optional

import typer
import yaml

from labtrack.commons.errors import LabTrackError
from labtrack.commons.logger import setup_logging
from labtrack.commons.types import Settings
from labtrack.helpers.file_transport import UploadFile
from labtrack.helpers.http_transport import HttpTransport
from labtrack.helpers.router import EndpointRouter
from labtrack.parsers.patients import PatientType
from labtrack.parsers.variant import variant_ref
from labtrack.services.patients_service import PatientsService
from labtrack.services.results_service import ResultsService
from labtrack.services.upload_service import UploadCoordinator

app = typer.Typer(add_completion=False, help="Lab test orders and reports client")


def resource_path(relative_path: str) -> str:
    """Absolute path to a bundled resource, packaged (.exe) or in development."""
    if hasattr(sys, "_MEIPASS"):
        base_path = sys._MEIPASS
    else:
        base_path = os.path.abspath(".")
    return os.path.join(base_path, relative_path)


def load_cfg(path: str = "labtrack/configs/settings.yaml") -> Settings:
    config_path = resource_path(path)
    with open(config_path, "r", encoding="utf-8") as f:
        return Settings.model_validate(yaml.safe_load(f))


def _bootstrap():
    cfg = load_cfg(os.getenv("LABTRACK_CONFIG", "labtrack/configs/settings.yaml"))
    logger = setup_logging(
        cfg.paths["logs_root"],
        os.getenv("LOG_LEVEL", cfg.logging.level),
        name=cfg.app.get("name", "labtrack"),
        retention_days=cfg.logging.retention_days,
        console=cfg.logging.console,
    )
    transport = HttpTransport(
        cfg.api.base_url,
        token=os.getenv(cfg.api.token_env),
        timeout=cfg.api.timeout_sec,
        attempts=cfg.retry.attempts,
        backoff_sec=cfg.retry.backoff_sec,
    )
    return cfg, logger, transport, EndpointRouter(cfg.user)


def _echo(obj):
    if is_dataclass(obj):
        obj = asdict(obj)
    elif isinstance(obj, list):
        obj = [asdict(o) if is_dataclass(o) else o for o in obj]
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _run(coro_factory):
    cfg, logger, transport, router = _bootstrap()

    async def _amain():
        try:
            return await coro_factory(cfg, transport, router)
        finally:
            await transport.aclose()

    try:
        return asyncio.run(_amain())
    except LabTrackError as ex:
        logger.error(f"{type(ex).__name__}: {ex}")
        raise typer.Exit(code=1)


async def _pick_row(svc: ResultsService, timeline_id: int, index: int, walk_in: bool):
    view = await svc.orders_view(timeline_id, walk_in=walk_in)
    if not 0 <= index < len(view.rows):
        raise LabTrackError(f"No test row {index} (view has {len(view.rows)})")
    return view.rows[index]


@app.command()
def patients(
    tab: str = typer.Option("normal", help="normal | completed"),
    patient_type: int = typer.Option(0, "--type", help="0=all 1=IPD 2=OPD 3=walk-in"),
    query: Optional[str] = typer.Option(None, help="name / id / phone search"),
    page: int = typer.Option(1, help="page number"),
):
    async def go(cfg, transport, router):
        svc = PatientsService(transport, router, page_size=cfg.patients.page_size)
        _echo(await svc.page(tab, PatientType(patient_type), query, page))

    _run(go)


@app.command()
def tests(timeline_id: int, walk_in: bool = typer.Option(False, "--walk-in")):
    """Merged active + completed test rows for one visit."""

    async def go(cfg, transport, router):
        view = await ResultsService(transport, router).orders_view(timeline_id, walk_in=walk_in)
        _echo([{**asdict(r), "patient": None} for r in view.rows])

    _run(go)


@app.command()
def start(timeline_id: int, index: int, walk_in: bool = typer.Option(False, "--walk-in")):
    """Move test row INDEX from pending to processing."""

    async def go(cfg, transport, router):
        svc = ResultsService(transport, router)
        machine = svc.machine_for(await _pick_row(svc, timeline_id, index, walk_in))
        _echo({"status": (await machine.start_processing()).value})

    _run(go)


@app.command()
def upload(
    timeline_id: int,
    index: int,
    files: List[str],
    walk_in: bool = typer.Option(False, "--walk-in"),
):
    """Upload result files for a processing test and complete it."""

    async def go(cfg, transport, router):
        svc = ResultsService(transport, router)
        machine = svc.machine_for(await _pick_row(svc, timeline_id, index, walk_in))
        request = machine.request_upload()
        coordinator = UploadCoordinator(transport, router, cfg.upload)
        result = await coordinator.submit(
            [UploadFile.from_path(f) for f in files], request.variant, request, machine=machine
        )
        _echo(result)
        if result.failures:
            raise typer.Exit(code=2)

    _run(go)


@app.command()
def reports(timeline_id: int, index: int, walk_in: bool = typer.Option(False, "--walk-in")):
    """Reconciled report attachments for test row INDEX."""

    async def go(cfg, transport, router):
        svc = ResultsService(transport, router)
        row = await _pick_row(svc, timeline_id, index, walk_in)
        _echo(await svc.report_attachments(variant_ref(row.variant), row.target))

    _run(go)


@app.command()
def done(timeline_id: int, index: int, walk_in: bool = typer.Option(False, "--walk-in")):
    """Mark a processing test as completed."""

    async def go(cfg, transport, router):
        svc = ResultsService(transport, router)
        machine = svc.machine_for(await _pick_row(svc, timeline_id, index, walk_in))
        _echo({"status": (await svc.mark_done(machine)).value})

    _run(go)


if __name__ == "__main__":
    app()
