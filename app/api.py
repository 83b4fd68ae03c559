"""HTTP lookup routes over the live snapshot."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.schemas import HealthReport, LookupRequest, Reading, SourceHealth
from services.engine import AggregatorEngine, build_default_engine

logger = logging.getLogger(__name__)

router = APIRouter()


def get_engine() -> AggregatorEngine:
    return build_default_engine()


@router.post(
    "/weight",
    response_model=Reading,
    summary="Fetch the current reading of one configured scale.",
)
async def get_weight(
    request: Optional[LookupRequest] = Body(default=None),
    engine: AggregatorEngine = Depends(get_engine),
) -> Reading:
    path = request.path if request is not None else None
    try:
        return engine.lookup(path)
    except ValueError as exc:
        logger.warning("Lookup request without a scale path")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except KeyError as exc:
        logger.warning("Lookup for unregistered scale", extra={"source": path})
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc


@router.get(
    "/health",
    response_model=HealthReport,
    summary="Per-source connection health.",
)
async def healthcheck(engine: AggregatorEngine = Depends(get_engine)) -> HealthReport:
    sources = [
        SourceHealth(
            slot=link.slot,
            address=link.address,
            state=link.state.value,
            reconnect_attempts=link.attempts,
            max_reconnect_attempts=link.max_attempts,
            status=engine.store.get(link.slot).status,
        )
        for link in engine.health()
    ]
    return HealthReport(status="ok", sources=sources)


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for source status."}
