"""Unit tests for the per-device state store."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone

import pytest

from app.schemas import EPOCH, DeviceIdentity
from datastore.device_state import DeviceStateStore


def test_get_creates_zero_state_once() -> None:
    store = DeviceStateStore()

    first = store.get("dev-1")
    second = store.get("dev-1")

    assert first.cumulative_volume == 0
    assert first.last_reading_timestamp == EPOCH
    assert first.identity is None
    assert first == second
    assert store.device_ids() == ["dev-1"]


def test_find_does_not_create_state() -> None:
    store = DeviceStateStore()

    assert store.find("missing") is None
    assert store.device_ids() == []


def test_get_returns_deep_copy() -> None:
    store = DeviceStateStore()
    store.set_identity("dev-1", DeviceIdentity(sn="SN-1"))

    fetched = store.get("dev-1")
    fetched.cumulative_volume = 99.0
    fetched.identity.sn = "changed"  # type: ignore[union-attr]

    fresh = store.get("dev-1")
    assert fresh.cumulative_volume == 0
    assert fresh.identity is not None
    assert fresh.identity.sn == "SN-1"


def test_set_identity_leaves_volume_untouched() -> None:
    store = DeviceStateStore()
    store.add_delta("dev-1", 12.5)

    store.set_identity("dev-1", DeviceIdentity(sn="SN-1", firmware_version="1.2"))
    store.set_identity("dev-1", DeviceIdentity(sn="SN-2"))

    state = store.get("dev-1")
    assert state.cumulative_volume == 12.5
    assert state.identity == DeviceIdentity(sn="SN-2")


def test_set_absolute_reading_overwrites() -> None:
    store = DeviceStateStore()
    store.add_delta("dev-1", 500.0)
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)

    store.set_absolute_reading("dev-1", 12.0, stamp)

    state = store.get("dev-1")
    assert state.cumulative_volume == 12.0
    assert state.last_reading_timestamp == stamp


def test_add_delta_returns_new_cumulative() -> None:
    store = DeviceStateStore()

    assert store.add_delta("dev-1", 1.5) == 1.5
    assert store.add_delta("dev-1", 2.0) == 3.5
    assert store.get("dev-1").cumulative_volume == 3.5


def test_add_deltas_applies_in_order_with_timestamp() -> None:
    store = DeviceStateStore()
    stamp = datetime(2024, 1, 1, 1, tzinfo=timezone.utc)

    result = store.add_deltas("dev-1", [0.1, 0.2, 0.3], timestamp=stamp)

    assert result == 0.1 + 0.2 + 0.3
    state = store.get("dev-1")
    assert state.cumulative_volume == result
    assert state.last_reading_timestamp == stamp


def test_concurrent_deltas_are_not_lost() -> None:
    store = DeviceStateStore()
    threads_per_device = 4
    increments = 250

    def worker(device_id: str) -> None:
        for _ in range(increments):
            store.add_delta(device_id, 1.0)

    threads = [
        threading.Thread(target=worker, args=(device_id,))
        for device_id in ("dev-a", "dev-b")
        for _ in range(threads_per_device)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    expected = float(threads_per_device * increments)
    assert store.get("dev-a").cumulative_volume == expected
    assert store.get("dev-b").cumulative_volume == expected


def test_locked_holds_device_between_steps() -> None:
    store = DeviceStateStore()
    entered = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with store.locked("dev-1"):
            entered.set()
            release.wait(timeout=2)
            store.add_delta("dev-1", 1.0)

    thread = threading.Thread(target=holder)
    thread.start()
    assert entered.wait(timeout=2)

    result: list[float] = []
    writer = threading.Thread(target=lambda: result.append(store.add_delta("dev-1", 10.0)))
    writer.start()
    writer.join(timeout=0.1)
    assert writer.is_alive()

    release.set()
    thread.join(timeout=2)
    writer.join(timeout=2)
    assert result == [11.0]


def test_checkpoint_persists_and_reloads(tmp_path) -> None:
    path = tmp_path / "state" / "devices.json"
    store = DeviceStateStore(persistence_path=path)
    store.set_identity("dev-1", DeviceIdentity(sn="SN-1", batt_percentage=87))
    store.add_delta("dev-1", 42.0)

    store.checkpoint()

    payload = json.loads(path.read_text())
    assert payload["dev-1"]["cumulative_volume"] == 42.0
    assert payload["dev-1"]["identity"]["sn"] == "SN-1"

    reloaded = DeviceStateStore(persistence_path=path)
    assert reloaded.get("dev-1").model_dump() == store.get("dev-1").model_dump()


def test_checkpoint_without_path_is_noop(tmp_path) -> None:
    store = DeviceStateStore()
    store.add_delta("dev-1", 1.0)

    store.checkpoint()

    assert list(tmp_path.iterdir()) == []


def test_corrupt_checkpoint_starts_empty(tmp_path) -> None:
    path = tmp_path / "devices.json"
    path.write_text("{not json")

    store = DeviceStateStore(persistence_path=path)

    assert store.device_ids() == []
    assert store.get("dev-1").cumulative_volume == pytest.approx(0.0)
