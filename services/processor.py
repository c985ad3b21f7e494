"""Message ingestion orchestration: isolation, per-device ordering and delivery."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.schemas import (
    BatchReport,
    IngestOutcome,
    IngestResult,
    MessageFailure,
    OutputPayload,
)
from datastore.device_state import build_default_store
from delivery.billing import DeliveryError, PayloadSink, build_default_sink
from logging_config import log_context
from models.messages import IncomingMessage
from services.interpreter import (
    MalformedMessage,
    MessageInterpreter,
    UnknownMessageKind,
)
from settings import get_settings

logger = logging.getLogger(__name__)


class ProcessorService:
    """Feeds raw messages through the interpreter and hands payloads to the sink.

    A message that cannot be processed is logged and reported on its own result;
    it never stops the messages after it. Batches are split per device id so
    each device sees its messages in arrival order while different devices are
    processed in parallel.
    """

    def __init__(
        self,
        interpreter: MessageInterpreter,
        sink: PayloadSink,
        workers: int = 4,
    ) -> None:
        self.interpreter = interpreter
        self.sink = sink
        self.executor = ThreadPoolExecutor(max_workers=workers)

    def ingest(self, message: Any, index: Optional[int] = None) -> IngestResult:
        """Process one raw message with per-message error isolation."""
        device_id = _peek_device_id(message)
        message_type = _peek_message_type(message)
        context = log_context(device_id=device_id, message_type=message_type, index=index)

        try:
            envelope = self._parse_envelope(message)
            payload = self.interpreter.process_message(
                envelope.id, envelope.type, envelope.data
            )
        except UnknownMessageKind as exc:
            logger.warning("Skipping message of unknown type", extra={**context, "reason": str(exc)})
            return IngestResult(
                device_id=device_id,
                message_type=message_type,
                outcome=IngestOutcome.unknown_kind,
                reason=str(exc),
            )
        except MalformedMessage as exc:
            logger.warning("Skipping malformed message", extra={**context, "reason": str(exc)})
            return IngestResult(
                device_id=device_id,
                message_type=message_type,
                outcome=IngestOutcome.malformed,
                reason=str(exc),
            )
        except Exception as exc:  # pragma: no cover - defensive catch-all
            logger.exception("Message processing failed", extra={**context, "reason": str(exc)})
            return IngestResult(
                device_id=device_id,
                message_type=message_type,
                outcome=IngestOutcome.failed,
                reason=str(exc),
            )

        if payload is None:
            return IngestResult(
                device_id=device_id,
                message_type=message_type,
                outcome=IngestOutcome.skipped,
            )

        delivered = self._deliver(payload, context)
        logger.info(
            "Prepared payload",
            extra={**context, "msn": payload.header.msn, "point_count": len(payload.payload.data)},
        )
        return IngestResult(
            device_id=device_id,
            message_type=message_type,
            outcome=IngestOutcome.processed,
            payload=payload,
            delivered=delivered,
        )

    def ingest_batch(self, messages: Sequence[Any]) -> BatchReport:
        """Process a batch; messages of one device stay in order, devices run in parallel."""
        start_time = time.perf_counter()
        results: List[Optional[IngestResult]] = [None] * len(messages)
        groups: Dict[str, List[Tuple[int, Any]]] = {}

        for index, message in enumerate(messages):
            device_id = _peek_device_id(message)
            if device_id is None:
                results[index] = self.ingest(message, index=index)
                continue
            groups.setdefault(device_id, []).append((index, message))

        futures: List[Future[List[Tuple[int, IngestResult]]]] = [
            self.executor.submit(self._ingest_group, group) for group in groups.values()
        ]
        for future in futures:
            for index, result in future.result():
                results[index] = result

        report = BatchReport(message_count=len(messages))
        for index, result in enumerate(results):
            assert result is not None
            if result.outcome is IngestOutcome.processed:
                report.processed += 1
                if result.payload is not None:
                    report.payloads.append(result.payload)
                if not result.delivered:
                    report.delivery_failed += 1
            elif result.outcome is IngestOutcome.skipped:
                report.skipped += 1
            else:
                report.failed += 1
                report.errors.append(
                    MessageFailure(
                        index=index,
                        device_id=result.device_id,
                        reason=result.reason or result.outcome.value,
                    )
                )

        self.interpreter.store.checkpoint()
        report.processing_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Processed message batch",
            extra=log_context(
                message_count=report.message_count,
                error_count=report.failed,
                processing_ms=report.processing_ms,
            ),
        )
        return report

    def shutdown(self) -> None:
        """Clean up executor and sink resources during application shutdown."""
        self.executor.shutdown(wait=True)
        self.interpreter.store.checkpoint()
        self.sink.close()

    def _ingest_group(
        self, group: List[Tuple[int, Any]]
    ) -> List[Tuple[int, IngestResult]]:
        return [(index, self.ingest(message, index=index)) for index, message in group]

    def _deliver(self, payload: OutputPayload, context: Dict[str, Any]) -> bool:
        try:
            self.sink.deliver(payload)
        except DeliveryError as exc:
            logger.error(
                "Payload delivery failed",
                extra={**context, "msn": payload.header.msn, "reason": str(exc)},
            )
            return False
        return True

    @staticmethod
    def _parse_envelope(message: Any) -> IncomingMessage:
        if not isinstance(message, dict):
            raise MalformedMessage("Message must be a JSON object.")
        try:
            return IncomingMessage.model_validate(message)
        except ValidationError as exc:
            fields = sorted(
                ".".join(str(item) for item in error["loc"]) for error in exc.errors()
            )
            raise MalformedMessage(
                f"Message envelope is invalid: {', '.join(fields)}"
            ) from exc


def _peek_device_id(message: Any) -> Optional[str]:
    if isinstance(message, dict):
        value = message.get("id")
        if isinstance(value, str) and value:
            return value
    return None


def _peek_message_type(message: Any) -> Optional[str]:
    if isinstance(message, dict):
        value = message.get("type")
        if isinstance(value, str):
            return value
    return None


@lru_cache
def build_default_processor(
    workers: Optional[int] = None,
) -> ProcessorService:
    """Factory that wires the processor with the configured store and sink."""
    settings = get_settings()
    interpreter = MessageInterpreter(
        store=build_default_store(),
        resync_policy=settings.resync_policy,
        utc_offset_hours=settings.utc_offset_hours,
    )
    worker_count = workers or settings.processor_workers
    return ProcessorService(
        interpreter=interpreter,
        sink=build_default_sink(),
        workers=worker_count,
    )
