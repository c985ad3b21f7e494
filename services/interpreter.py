"""Dispatch of raw meter messages onto device state and normalized output."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.schemas import DeviceIdentity, OutputPayload
from datastore.device_state import DeviceStateStore
from logging_config import log_context
from models.messages import (
    DailyReadingData,
    IntervalFlowData,
    MessageKind,
    MeterInfoData,
)
from models.records import NormalizedPoint
from services.conversion import (
    DEFAULT_UTC_OFFSET_HOURS,
    format_decimal,
    to_local_time,
    to_utc,
)
from services.formatter import OutputFormatter
from services.series import CumulativeSeriesGenerator
from settings import RESYNC_ALWAYS, RESYNC_REPORT_CYCLE

logger = logging.getLogger(__name__)

_DataModel = TypeVar("_DataModel", bound=BaseModel)


class MessageError(ValueError):
    """Base class for messages the interpreter refuses to process."""


class MalformedMessage(MessageError):
    """A required field is absent or has the wrong type."""


class UnknownMessageKind(MessageError):
    """The message ``type`` is not one of the supported kinds."""

    def __init__(self, kind: Any) -> None:
        super().__init__(f"Unknown message type: {kind!r}")
        self.kind = kind


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


class MessageInterpreter:
    """Interprets one message at a time against an injected state store.

    The interpreter keeps no state between messages. Every update for a device
    happens while holding that device's lock, and a message is fully parsed and
    converted before anything is written, so a rejected message never leaves a
    partial update behind.
    """

    def __init__(
        self,
        store: DeviceStateStore,
        generator: Optional[CumulativeSeriesGenerator] = None,
        formatter: Optional[OutputFormatter] = None,
        resync_policy: str = RESYNC_REPORT_CYCLE,
        utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS,
    ) -> None:
        if resync_policy not in {RESYNC_ALWAYS, RESYNC_REPORT_CYCLE}:
            raise ValueError(f"Unsupported resync policy: {resync_policy!r}")
        self.store = store
        self.generator = generator or CumulativeSeriesGenerator(utc_offset_hours)
        self.formatter = formatter or OutputFormatter()
        self.resync_policy = resync_policy
        self.utc_offset_hours = utc_offset_hours
        self._handlers: Dict[
            MessageKind, Callable[[str, Any], Optional[OutputPayload]]
        ] = {
            MessageKind.meter_info: self._handle_meter_info,
            MessageKind.daily_reading: self._handle_daily_reading,
            MessageKind.interval_flow: self._handle_interval_flow,
            MessageKind.alarm: self._handle_alarm,
        }

    def process_message(
        self, device_id: str, kind: Any, raw_fields: Any
    ) -> Optional[OutputPayload]:
        """Apply one message; return its payload, or ``None`` when it yields no points.

        Raises ``UnknownMessageKind`` or ``MalformedMessage``.
        """
        if not isinstance(device_id, str) or not device_id:
            raise MalformedMessage("Message is missing a device id.")
        try:
            message_kind = MessageKind(kind)
        except ValueError as exc:
            raise UnknownMessageKind(kind) from exc
        return self._handlers[message_kind](device_id, raw_fields)

    def _handle_meter_info(self, device_id: str, raw_fields: Any) -> None:
        info = self._parse(MeterInfoData, raw_fields, first_only=True)[0]
        identity = DeviceIdentity(**info.model_dump())
        self.store.set_identity(device_id, identity)
        logger.debug(
            "Updated device identity",
            extra=log_context(device_id=device_id, msn=identity.sn),
        )
        return None

    def _handle_daily_reading(self, device_id: str, raw_fields: Any) -> OutputPayload:
        reading = self._parse(DailyReadingData, raw_fields, first_only=True)[0]
        point = NormalizedPoint(
            timestamp=self._local_time(reading.timestamp),
            value=self._decimal(reading.port1),
        )
        report_cycle = reading.report_cycle or 0
        resync = self.resync_policy == RESYNC_ALWAYS or report_cycle > 0

        with self.store.locked(device_id) as state:
            if resync:
                self.store.set_absolute_reading(
                    device_id, reading.port1, to_utc(reading.timestamp)
                )
            identity = state.identity

        if not resync:
            logger.debug(
                "Absolute reading without a report cycle left the baseline unchanged",
                extra=log_context(device_id=device_id, message_type=MessageKind.daily_reading.value),
            )
        return self.formatter.format(device_id, identity, [point])

    def _handle_interval_flow(
        self, device_id: str, raw_fields: Any
    ) -> Optional[OutputPayload]:
        entries = self._parse(IntervalFlowData, raw_fields, first_only=False)
        points: List[NormalizedPoint] = []

        with self.store.locked(device_id) as state:
            baseline = state.cumulative_volume
            pending = []
            for entry in entries:
                try:
                    series = self.generator.generate(entry, baseline)
                except ValueError as exc:
                    raise MalformedMessage(str(exc)) from exc
                baseline = series.final_baseline
                points.extend(series.points)
                pending.append(series)

            for series in pending:
                if not series.deltas:
                    continue
                self.store.add_deltas(
                    device_id, series.deltas, timestamp=to_utc(series.last_epoch)
                )
            identity = state.identity

        if not points:
            return None
        logger.debug(
            "Derived cumulative series",
            extra=log_context(device_id=device_id, point_count=len(points)),
        )
        return self.formatter.format(device_id, identity, points)

    def _handle_alarm(self, device_id: str, raw_fields: Any) -> None:
        # Alarms do not touch cumulative state yet; a meter-reset alarm would
        # be handled here.
        logger.debug(
            "Ignoring alarm message",
            extra=log_context(device_id=device_id, message_type=MessageKind.alarm.value),
        )
        return None

    @staticmethod
    def _decimal(value: float) -> str:
        try:
            return format_decimal(value)
        except ValueError as exc:
            raise MalformedMessage(str(exc)) from exc

    def _local_time(self, epoch_seconds: int) -> str:
        try:
            return to_local_time(epoch_seconds, self.utc_offset_hours)
        except ValueError as exc:
            raise MalformedMessage(str(exc)) from exc

    @staticmethod
    def _parse(
        model: Type[_DataModel], raw_fields: Any, first_only: bool
    ) -> Sequence[_DataModel]:
        if not isinstance(raw_fields, list) or not raw_fields:
            raise MalformedMessage("Message data must be a non-empty list.")
        elements = raw_fields[:1] if first_only else raw_fields
        parsed = []
        for element in elements:
            if not isinstance(element, dict):
                raise MalformedMessage("Message data entries must be objects.")
            try:
                parsed.append(model.model_validate(element))
            except ValidationError as exc:
                raise MalformedMessage(_describe_validation_error(exc)) from exc
        return parsed
