"""Typed views of the raw meter messages.

Each message kind is validated once into one of these models; nothing past the
interpreter looks at the loosely typed ``data`` objects again.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageKind(str, Enum):
    """Message kinds understood by the interpreter."""

    meter_info = "meterInfo"
    daily_reading = "dailyReading"
    interval_flow = "intervalFlow"
    alarm = "alarm"


class _MessageData(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        allow_inf_nan=False,
    )


class MeterInfoData(_MessageData):
    """Identity payload of a ``meterInfo`` message."""

    sn: str = Field(..., min_length=1)
    imei: Optional[str] = None
    firmware_version: Optional[str] = Field(default=None, alias="firmwareVersion")
    meter_model: Optional[str] = Field(default=None, alias="meterModel")
    batt_percentage: Optional[int] = Field(default=None, alias="battPercentage")
    dot: Optional[int] = None


class DailyReadingData(_MessageData):
    """Absolute reading carried by a ``dailyReading`` message."""

    timestamp: int = Field(..., alias="timeStamp")
    port1: float
    report_cycle: Optional[int] = Field(default=None, alias="reportCycle")


class IntervalFlowData(_MessageData):
    """One delta batch entry of an ``intervalFlow`` message."""

    start_timestamp: int = Field(..., alias="startTimeStamp")
    interval: int
    port: Optional[int] = None
    interval_consumption: List[float] = Field(..., alias="intervalConsumption")


class IncomingMessage(BaseModel):
    """Envelope shared by every message kind."""

    id: str = Field(..., min_length=1)
    type: str
    data: Optional[List[Any]] = None
