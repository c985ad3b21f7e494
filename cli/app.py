from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_device, render_report
from datastore.device_state import DeviceStateStore
from services.interpreter import MessageInterpreter
from services.processor import ProcessorService
from settings import get_settings
from storage.outbox import PayloadOutbox


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for feeding meter messages to the telemetry normalizer.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def load_messages(path: Path) -> List[Any]:
    """Read messages from a JSON array, a single JSON object, or JSON lines."""
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        messages = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                messages.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise typer.BadParameter(
                    f"{path} line {line_number} is not valid JSON: {exc.msg}"
                ) from exc
        return messages
    if isinstance(data, list):
        return data
    return [data]


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Normalizer API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON or JSON lines file of messages."
    ),
) -> None:
    """Send a file of meter messages to the service as one batch."""
    state = _get_state(ctx)
    messages = load_messages(file)
    typer.echo(f"Sending {len(messages)} message(s) to {state.config.base_url} ...")
    report = state.client.send_messages(messages)
    typer.echo()
    render_report(report)


@app.command("device")
def device_command(
    ctx: typer.Context,
    device_id: str = typer.Argument(..., help="Device id as it appears in message envelopes."),
) -> None:
    """Show the cumulative baseline and identity the service tracks for a device."""
    state = _get_state(ctx)
    render_device(state.client.get_device(device_id))


@app.command("replay")
def replay_command(
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON or JSON lines file of messages."
    ),
    summary: bool = typer.Option(
        False,
        "--summary/--json",
        help="Print a readable report instead of the payload JSON.",
    ),
) -> None:
    """Normalize a file of messages locally, starting from empty device state."""
    settings = get_settings()
    messages = load_messages(file)
    processor = ProcessorService(
        interpreter=MessageInterpreter(
            store=DeviceStateStore(),
            resync_policy=settings.resync_policy,
            utc_offset_hours=settings.utc_offset_hours,
        ),
        sink=PayloadOutbox(name="replay"),
        workers=settings.processor_workers,
    )
    try:
        report = processor.ingest_batch(messages)
    finally:
        processor.shutdown()

    if summary:
        render_report(report.model_dump(mode="json"))
        return
    payloads = [payload.model_dump(mode="json") for payload in report.payloads]
    typer.echo(json.dumps(payloads, indent=2))
    if report.errors:
        typer.secho(f"{len(report.errors)} message(s) skipped.", fg=typer.colors.YELLOW, err=True)
