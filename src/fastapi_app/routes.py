"""API routes for the CloudWatch exporter.

Endpoints
─────────
GET  /scrape?task=&target=&region=  – Scrape one task, Prometheus text format.
GET  /metrics                       – Exporter's own process-wide metrics.
POST /reload                        – Re-read the configuration file.
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from config.settings import ConfigurationError
from helpers.constants import APP_LOGGER
from services.exporter_state import ExporterState
from services.prometheus_collector import render

router = APIRouter()

# Lazy singleton holding the active configuration snapshot
_state: ExporterState | None = None


def get_state() -> ExporterState:
    global _state
    if _state is None:
        _state = ExporterState()
    return _state


# ── Scrape ────────────────────────────────────────────────────────────────

@router.get("/scrape")
def scrape(task: str = "", target: str = "", region: str = "") -> Response:
    """Scrape every task named ``task`` and return its samples.

    Example:
        GET /scrape?task=ec2&target=i-0123456789abcdef0&region=eu-west-1
    """
    if not task:
        return PlainTextResponse("Missing 'task' query parameter\n", status_code=400)

    try:
        session = get_state().new_session(target=target, task_name=task, region=region)
    except ConfigurationError as exc:
        APP_LOGGER.warning(msg=f"Rejected scrape: {exc}", task=task, region=region)
        return PlainTextResponse(f"{exc}\n", status_code=400)

    APP_LOGGER.debug(msg="Scrape requested", task=task, target=target, region=region)
    return Response(content=render(session), media_type=CONTENT_TYPE_LATEST)


# ── Exporter metrics ──────────────────────────────────────────────────────

@router.get("/metrics")
def metrics() -> Response:
    """Process-wide metrics (total CloudWatch requests, runtime)."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


# ── Reload ────────────────────────────────────────────────────────────────

@router.post("/reload")
def reload_config() -> JSONResponse:
    """Re-read the configuration; the previous one stays active on failure."""
    state = get_state()
    try:
        snapshot = state.reload()
    except ConfigurationError as exc:
        APP_LOGGER.error(msg=f"Reload failed: {exc}")
        return JSONResponse(
            content={"status": "error", "message": str(exc)}, status_code=500
        )
    return JSONResponse(
        content={
            "status": "success",
            "tasks": snapshot.settings.task_names,
            "loaded_at": snapshot.loaded_at.isoformat(),
        },
        status_code=200,
    )


@router.get("/favicon.ico")
def favicon() -> Response:
    return Response(status_code=204)
