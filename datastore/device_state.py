from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock, RLock
from typing import Dict, Iterable, Iterator, Optional

from app.schemas import DeviceIdentity, DeviceState
from settings import get_settings


class DeviceStateStore:
    """Per-device cumulative state, serialized per key and parallel across keys."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._states: Dict[str, DeviceState] = {}
        self._locks: Dict[str, RLock] = {}
        self._registry_lock = Lock()
        self.persistence_path = persistence_path
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    @contextmanager
    def locked(self, device_id: str) -> Iterator[DeviceState]:
        """Hold the device lock for a multi-step update; yields the live state."""
        lock = self._lock_for(device_id)
        with lock:
            yield self._state_for(device_id)

    def get(self, device_id: str) -> DeviceState:
        with self.locked(device_id) as state:
            return state.model_copy(deep=True)

    def find(self, device_id: str) -> Optional[DeviceState]:
        with self._registry_lock:
            known = device_id in self._states
        if not known:
            return None
        return self.get(device_id)

    def device_ids(self) -> list[str]:
        with self._registry_lock:
            return sorted(self._states)

    def set_identity(self, device_id: str, identity: DeviceIdentity) -> None:
        with self.locked(device_id) as state:
            state.identity = identity.model_copy(deep=True)

    def set_absolute_reading(
        self, device_id: str, volume: float, timestamp: datetime
    ) -> None:
        with self.locked(device_id) as state:
            state.cumulative_volume = volume
            state.last_reading_timestamp = timestamp

    def add_delta(self, device_id: str, delta: float) -> float:
        return self.add_deltas(device_id, [delta])

    def add_deltas(
        self,
        device_id: str,
        deltas: Iterable[float],
        timestamp: Optional[datetime] = None,
    ) -> float:
        """Accumulate ``deltas`` in order and store the result with one write."""
        with self.locked(device_id) as state:
            cumulative = state.cumulative_volume
            for delta in deltas:
                cumulative += delta
            state.cumulative_volume = cumulative
            if timestamp is not None:
                state.last_reading_timestamp = timestamp
            return cumulative

    def checkpoint(self) -> None:
        """Write a JSON snapshot of every device state to ``persistence_path``."""
        if not self.persistence_path:
            return
        payload = {}
        for device_id in self.device_ids():
            payload[device_id] = self.get(device_id).model_dump(mode="json")
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _lock_for(self, device_id: str) -> RLock:
        with self._registry_lock:
            lock = self._locks.get(device_id)
            if lock is None:
                lock = RLock()
                self._locks[device_id] = lock
            return lock

    def _state_for(self, device_id: str) -> DeviceState:
        with self._registry_lock:
            state = self._states.get(device_id)
            if state is None:
                state = DeviceState(device_id=device_id)
                self._states[device_id] = state
            return state

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for device_id, payload in data.items():
            self._states[device_id] = DeviceState.model_validate(payload)


@lru_cache
def build_default_store(path: Optional[str] = None) -> DeviceStateStore:
    settings = get_settings()
    state_path = settings.state_persistence_path if path is None else path
    persistence = Path(state_path) if state_path else None
    return DeviceStateStore(persistence_path=persistence)
