from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_LOG_LEVEL_ENV = "LOG_LEVEL"
_WORKER_COUNT_ENV = "PROCESSOR_WORKER_COUNT"
_UTC_OFFSET_ENV = "METER_UTC_OFFSET_HOURS"
_RESYNC_POLICY_ENV = "METER_RESYNC_POLICY"
_STATE_PATH_ENV = "DEVICE_STATE_PERSISTENCE_PATH"
_OUTBOX_ROOT_ENV = "OUTBOX_ROOT_PATH"
_OUTBOX_LIMIT_ENV = "OUTBOX_MEMORY_LIMIT"
_BILLING_URL_ENV = "BILLING_API_URL"
_BILLING_TIMEOUT_ENV = "BILLING_API_TIMEOUT"

RESYNC_ALWAYS = "always"
RESYNC_REPORT_CYCLE = "report_cycle"
_RESYNC_POLICIES = {RESYNC_ALWAYS, RESYNC_REPORT_CYCLE}


@dataclass(frozen=True)
class Settings:
    log_level: str
    processor_workers: int
    utc_offset_hours: int
    resync_policy: str
    state_persistence_path: Optional[str]
    outbox_root_path: Optional[str]
    outbox_memory_limit: int
    billing_api_url: Optional[str]
    billing_api_timeout: float


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_utc_offset(default: int) -> int:
    value = os.getenv(_UTC_OFFSET_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    # datetime.timezone only accepts offsets strictly inside +/-24h.
    return parsed if -24 < parsed < 24 else default


def _read_resync_policy(default: str) -> str:
    value = os.getenv(_RESYNC_POLICY_ENV)
    if value is None:
        return default
    candidate = value.strip().lower()
    return candidate if candidate in _RESYNC_POLICIES else default


def _read_timeout(default: float) -> float:
    value = os.getenv(_BILLING_TIMEOUT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        log_level=_read_log_level("INFO"),
        processor_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        utc_offset_hours=_read_utc_offset(8),
        resync_policy=_read_resync_policy(RESYNC_REPORT_CYCLE),
        state_persistence_path=_read_optional_env(_STATE_PATH_ENV, None),
        outbox_root_path=_read_optional_env(_OUTBOX_ROOT_ENV, None),
        outbox_memory_limit=_read_positive_int(_OUTBOX_LIMIT_ENV, 1000),
        billing_api_url=_read_optional_env(_BILLING_URL_ENV, None),
        billing_api_timeout=_read_timeout(10.0),
    )
