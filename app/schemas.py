"""Pydantic schemas for device state, output payloads and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
VOLUME_TYPE = "W"


class DeviceIdentity(BaseModel):
    """Last-known identity reported by a meter."""

    sn: str
    imei: Optional[str] = None
    firmware_version: Optional[str] = None
    meter_model: Optional[str] = None
    batt_percentage: Optional[int] = None
    dot: Optional[int] = None


class DeviceState(BaseModel):
    """Cumulative volume baseline and identity tracked per device id."""

    device_id: str
    cumulative_volume: float = 0.0
    last_reading_timestamp: datetime = EPOCH
    identity: Optional[DeviceIdentity] = None


class OutputHeader(BaseModel):
    msn: str
    type: Literal["W"] = VOLUME_TYPE


class OutputDataPoint(BaseModel):
    dt: str = Field(..., description="Local civil time, YYYY-MM-DD HH:MM:SS.")
    val: str = Field(..., description="Cumulative volume with 3 fractional digits.")


class PayloadData(BaseModel):
    data: List[OutputDataPoint] = Field(default_factory=list)


class OutputPayload(BaseModel):
    """Wire-level record handed to the billing API."""

    header: OutputHeader
    payload: PayloadData


class IngestOutcome(str, Enum):
    """What happened to a single inbound message."""

    processed = "processed"
    skipped = "skipped"
    malformed = "malformed"
    unknown_kind = "unknown_kind"
    failed = "failed"


class IngestResult(BaseModel):
    """Outcome of processing one message."""

    device_id: Optional[str] = None
    message_type: Optional[str] = None
    outcome: IngestOutcome
    payload: Optional[OutputPayload] = None
    reason: Optional[str] = None
    delivered: bool = False


class MessageFailure(BaseModel):
    """Details about a message that was skipped inside a batch."""

    index: int = Field(..., ge=0)
    device_id: Optional[str] = None
    reason: str


class BatchReport(BaseModel):
    """Aggregated result of a batch run."""

    message_count: int = Field(..., ge=0)
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    delivery_failed: int = 0
    processing_ms: Optional[int] = None
    payloads: List[OutputPayload] = Field(default_factory=list)
    errors: List[MessageFailure] = Field(default_factory=list)
