"""Command-line entrypoints for the radio program builder."""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import typer

from radio_builder.config.load import PUBLISHING_KEYS
from radio_builder.exceptions import RequestError
from radio_builder.pipelines.orchestrator import PipelineOrchestrator, build_orchestrator
from radio_builder.pipelines.segments import BuildRequest

app = typer.Typer(help="Assemble and publish radio programs from user recordings.")


def _load_request(request_path: Path) -> BuildRequest:
    path = request_path.expanduser()
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload: Any = json.load(handle)
    except OSError as exc:
        raise RequestError(f"Cannot read request file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise RequestError(f"Request file {path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise RequestError(f"Request file {path} must contain a JSON object.")
    return BuildRequest.from_mapping(payload)


def _prepare(
    request_json: Path, env: str, require: Iterable[str]
) -> tuple[BuildRequest, PipelineOrchestrator]:
    try:
        request = _load_request(request_json)
    except RequestError as exc:
        typer.echo(f"Invalid request: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    try:
        orchestrator = build_orchestrator(env, require=require)
    except Exception as exc:  # noqa: BLE001 - configuration safety
        typer.echo(f"Failed to load configuration: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    return request, orchestrator


@app.command()
def build(
    request_json: Path = typer.Argument(..., help="JSON file describing the program to build."),
    env: str = typer.Option(
        "dev",
        "--env",
        help="Configuration environment to load (default: dev).",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        help="Rebuild even when the recordings have not changed.",
    ),
) -> None:
    """Build the program, publish it, and print the build result as JSON."""

    request, orchestrator = _prepare(request_json, env, PUBLISHING_KEYS)
    with orchestrator:
        result = orchestrator.build(request, force=force)

    typer.echo(json.dumps(result.to_dict(), indent=2))
    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def check(
    request_json: Path = typer.Argument(..., help="JSON file describing the program to check."),
    env: str = typer.Option(
        "dev",
        "--env",
        help="Configuration environment to load (default: dev).",
    ),
) -> None:
    """Report whether the program must be rebuilt for the current recordings."""

    request, orchestrator = _prepare(request_json, env, ())
    with orchestrator:
        try:
            rebuild, previous = orchestrator.check(request)
        except (RequestError, ValueError) as exc:
            typer.echo(f"Invalid request: {exc}", err=True)
            raise typer.Exit(code=2) from exc

    payload = {
        "world": request.world,
        "programId": request.program_id,
        "recordingCount": request.recording_count,
        "needsRebuild": rebuild,
        "previousRecordingCount": previous.recording_count if previous else None,
        "programUrl": previous.program_url if previous else None,
    }
    typer.echo(json.dumps(payload, indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
