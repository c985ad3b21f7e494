"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status

from app.schemas import BatchReport, DeviceState, IngestOutcome, IngestResult
from services.processor import ProcessorService, build_default_processor

router = APIRouter()


def get_processor() -> ProcessorService:
    return build_default_processor()


@router.post(
    "/messages",
    response_model=IngestResult,
    summary="Normalize a single meter message.",
)
def ingest_message(
    message: Dict[str, Any] = Body(..., description="Raw meter message with id, type and data."),
    processor: ProcessorService = Depends(get_processor),
) -> IngestResult:
    result = processor.ingest(message)
    if result.outcome in {IngestOutcome.malformed, IngestOutcome.failed}:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=result.reason or "Invalid input data",
        )
    return result


@router.post(
    "/messages/batch",
    response_model=BatchReport,
    summary="Normalize a batch of meter messages, isolating failures per message.",
)
def ingest_batch(
    messages: List[Any] = Body(..., description="Raw meter messages in arrival order."),
    processor: ProcessorService = Depends(get_processor),
) -> BatchReport:
    return processor.ingest_batch(messages)


@router.get(
    "/devices/{device_id}",
    response_model=DeviceState,
    summary="Fetch the cumulative baseline and identity tracked for a device.",
)
def get_device_state(
    device_id: str,
    processor: ProcessorService = Depends(get_processor),
) -> DeviceState:
    state = processor.interpreter.store.find(device_id)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No state recorded for device {device_id!r}.",
        )
    return state


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
