from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_report(report: Dict[str, Any]) -> None:
    echo_heading("Batch Report")
    echo_key_values(
        [
            ("message_count", report.get("message_count")),
            ("processed", report.get("processed")),
            ("skipped", report.get("skipped")),
            ("failed", report.get("failed")),
            ("delivery_failed", report.get("delivery_failed")),
            ("processing_ms", report.get("processing_ms")),
        ]
    )

    payloads = report.get("payloads") or []
    typer.echo()
    echo_heading("Payloads")
    if payloads:
        for payload in payloads:
            header = payload.get("header") or {}
            points = (payload.get("payload") or {}).get("data") or []
            typer.echo(f"  - msn {header.get('msn')} ({header.get('type')}): {len(points)} point(s)")
            for point in points:
                typer.echo(f"      {point.get('dt')}  {point.get('val')}")
    else:
        typer.echo("No payloads produced.")

    errors = report.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(
                f"  - message {error.get('index')} (device {error.get('device_id')}): {error.get('reason')}"
            )
    else:
        typer.echo("No errors recorded.")


def render_device(state: Dict[str, Any]) -> None:
    echo_heading("Device State")
    echo_key_values(
        [
            ("device_id", state.get("device_id")),
            ("cumulative_volume", state.get("cumulative_volume")),
            ("last_reading_timestamp", state.get("last_reading_timestamp")),
        ]
    )

    identity = state.get("identity") or {}
    typer.echo()
    echo_heading("Identity")
    if identity:
        echo_key_values(
            [
                ("sn", identity.get("sn")),
                ("imei", identity.get("imei")),
                ("firmware_version", identity.get("firmware_version")),
                ("meter_model", identity.get("meter_model")),
                ("batt_percentage", identity.get("batt_percentage")),
            ]
        )
    else:
        typer.echo("No identity reported yet.")
