import logging

from logging_config import ContextualFormatter, log_context


def _record(message: str = "Skipping malformed message", **extra) -> logging.LogRecord:
    record = logging.makeLogRecord(
        {"name": "services.processor", "levelname": "WARNING", "msg": message, "created": 0.0}
    )
    record.__dict__.update(extra)
    return record


def test_formatter_defaults_render_utc_timestamp() -> None:
    line = ContextualFormatter().format(_record())

    assert line == "1970-01-01T00:00:00Z | WARNING | services.processor | Skipping malformed message"


def test_formatter_appends_context_and_quotes_spaced_values() -> None:
    record = _record(**log_context(device_id="dev-1", index=3, reason="port1: Field required", msn=None))

    line = ContextualFormatter().format(record)

    assert line.endswith('| device_id=dev-1 index=3 reason="port1: Field required"')
    assert "msn=" not in line


def test_formatter_honours_custom_context_keys() -> None:
    record = _record(device_id="dev-1", point_count=2)

    line = ContextualFormatter(fmt="%(message)s", context_keys=["point_count"]).format(record)

    assert line == "Skipping malformed message | point_count=2"
