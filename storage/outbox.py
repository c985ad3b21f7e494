from __future__ import annotations

import json
from collections import deque
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Deque, Dict, List, Optional

from app.schemas import OutputPayload
from settings import get_settings

DEFAULT_MEMORY_LIMIT = 1000


class PayloadOutbox:
    """Keeps recent payloads in memory, optionally appending every payload to JSONL files.

    Only the newest ``max_in_memory`` payloads stay in memory. Each serial number
    gets its own ``<msn>.jsonl`` under ``root_path`` holding the full history.
    """

    def __init__(
        self,
        name: str = "outbox",
        root_path: Optional[Path] = None,
        max_in_memory: int = DEFAULT_MEMORY_LIMIT,
    ) -> None:
        if max_in_memory < 1:
            raise ValueError("max_in_memory must be at least 1.")
        self.name = name
        self._payloads: Deque[OutputPayload] = deque(maxlen=max_in_memory)
        self.root_path = root_path
        self._lock = Lock()
        if root_path:
            root_path.mkdir(parents=True, exist_ok=True)

    def deliver(self, payload: OutputPayload) -> None:
        with self._lock:
            self._payloads.append(payload.model_copy(deep=True))
            if self.root_path:
                path = self.root_path / f"{_safe_name(payload.header.msn)}.jsonl"
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(payload.model_dump(mode="json"), sort_keys=True))
                    handle.write("\n")

    def list_payloads(self, msn: Optional[str] = None) -> List[OutputPayload]:
        with self._lock:
            return [
                payload.model_copy(deep=True)
                for payload in self._payloads
                if msn is None or payload.header.msn == msn
            ]

    def load_persisted(self, msn: str) -> List[OutputPayload]:
        """Read back everything appended for ``msn`` on disk."""
        if not self.root_path:
            return []
        path = self.root_path / f"{_safe_name(msn)}.jsonl"
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as handle:
            return [
                OutputPayload.model_validate_json(line)
                for line in handle
                if line.strip()
            ]

    def counts(self) -> Dict[str, int]:
        """Per-serial totals of the payloads still held in memory."""
        with self._lock:
            totals: Dict[str, int] = {}
            for payload in self._payloads:
                totals[payload.header.msn] = totals.get(payload.header.msn, 0) + 1
            return totals

    def close(self) -> None:
        return None


def _safe_name(msn: str) -> str:
    return "".join(char if char.isalnum() or char in "-_." else "_" for char in msn) or "_"


@lru_cache
def build_default_outbox(root_path: Optional[str] = None) -> PayloadOutbox:
    settings = get_settings()
    outbox_root = settings.outbox_root_path if root_path is None else root_path
    path = Path(outbox_root) if outbox_root else None
    return PayloadOutbox(
        name="outbox", root_path=path, max_in_memory=settings.outbox_memory_limit
    )
