"""Assembly of normalized points into the billing payload shape."""

from __future__ import annotations

from typing import Iterable, Optional

from app.schemas import (
    VOLUME_TYPE,
    DeviceIdentity,
    OutputDataPoint,
    OutputHeader,
    OutputPayload,
    PayloadData,
)
from models.records import NormalizedPoint


class OutputFormatter:
    """Builds one ``OutputPayload`` per message that produced points."""

    def resolve_msn(self, device_id: str, identity: Optional[DeviceIdentity]) -> str:
        """Serial number for the header.

        Until a ``meterInfo`` message has been seen for the device there is no
        serial number, and the message device id is used instead.
        """
        if identity is not None and identity.sn:
            return identity.sn
        return device_id

    def format(
        self,
        device_id: str,
        identity: Optional[DeviceIdentity],
        points: Iterable[NormalizedPoint],
    ) -> OutputPayload:
        return OutputPayload(
            header=OutputHeader(msn=self.resolve_msn(device_id, identity), type=VOLUME_TYPE),
            payload=PayloadData(
                data=[OutputDataPoint(dt=point.timestamp, val=point.value) for point in points]
            ),
        )
