from __future__ import annotations

from typing import Optional, Protocol

import httpx

from app.schemas import OutputPayload
from settings import get_settings
from storage.outbox import build_default_outbox


class DeliveryError(RuntimeError):
    """A payload could not be handed to the billing API."""


class PayloadSink(Protocol):
    def deliver(self, payload: OutputPayload) -> None: ...

    def close(self) -> None: ...


class BillingApiClient:
    """Posts each payload to the billing API as a one-element JSON array."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def deliver(self, payload: OutputPayload) -> None:
        try:
            response = self._client.post(
                self.base_url,
                json=[payload.model_dump(mode="json")],
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DeliveryError(
                f"Billing API rejected payload for {payload.header.msn!r} "
                f"with status {exc.response.status_code}."
            ) from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"Billing API request failed for {payload.header.msn!r}: {exc}"
            ) from exc


def build_default_sink() -> PayloadSink:
    """HTTP delivery when ``BILLING_API_URL`` is set, otherwise the local outbox."""
    settings = get_settings()
    if settings.billing_api_url:
        return BillingApiClient(
            settings.billing_api_url, timeout=settings.billing_api_timeout
        )
    return build_default_outbox()
