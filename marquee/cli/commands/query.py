"""Query command: run a request against the live API."""

import asyncio
from pathlib import Path

import typer

from ..app import app, console, get_json_mode, setup_logging
from ..utils import ExitCode, Output, load_request_file
from ...client.tmdb import TMDBClient
from ...config import get_config
from ...core.errors import ExtractionError, MarqueeError
from ...core.models import ResultEnvelope
from ...pipeline import QueryPipeline


def _title(entry: dict) -> str:
    return entry.get("title") or entry.get("name") or str(entry.get("id", "?"))


async def _run(loaded, config) -> ResultEnvelope:
    async with TMDBClient.from_config(config) as client:
        pipeline = QueryPipeline(client, config=config)
        return await pipeline.run(loaded.request, loaded.hits)


@app.command("query")
def query_command(
    request_file: Path = typer.Argument(..., help="Request file (YAML or JSON)"),
    limit: int = typer.Option(None, "--limit", "-n", help="Maximum entries to return"),
    min_results: int = typer.Option(
        None, "--min-results", help="Results needed before relaxation stops"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show planner logs"),
    debug: bool = typer.Option(False, "--debug", help="Show debug logs"),
):
    """Execute a request and print the answer with its provenance trail.

    Example:
        marquee query scorsese_dicaprio.yaml --limit 10
    """
    setup_logging(verbose=verbose, debug=debug)
    out = Output(console=console, json_mode=get_json_mode())

    try:
        loaded = load_request_file(request_file)
    except FileNotFoundError:
        out.error(f"File not found: {request_file}", exit_code=ExitCode.FILE_NOT_FOUND)
        raise typer.Exit(out.finish())
    except ValueError as e:
        out.error(f"Invalid request file: {e}")
        raise typer.Exit(out.finish())

    config = get_config()
    if limit is not None:
        config.execution.max_entries = limit
    if min_results is not None:
        config.execution.min_results = min_results

    try:
        envelope = asyncio.run(_run(loaded, config))
    except ValueError as e:
        out.error(str(e), exit_code=ExitCode.CONFIG_ERROR)
        raise typer.Exit(out.finish())
    except ExtractionError as e:
        out.error(f"Malformed entity: {e}")
        raise typer.Exit(out.finish())
    except MarqueeError as e:
        out.error(str(e), exit_code=ExitCode.API_ERROR)
        raise typer.Exit(out.finish())

    out.success(
        f"{len(envelope.entries)} results via {envelope.endpoint} ({envelope.final_state.value})",
        endpoint=envelope.endpoint,
        final_state=envelope.final_state.value,
        response_format=envelope.response_format,
        entries=envelope.entries,
        parameters=envelope.parameters,
    )
    out.table(
        "Results",
        ["#", "Title", "Date", "Rating"],
        [
            [
                str(i),
                _title(entry),
                entry.get("release_date") or entry.get("first_air_date") or "",
                str(entry.get("vote_average", "")),
            ]
            for i, entry in enumerate(envelope.entries, start=1)
        ],
        data_key="results_table",
    )

    if envelope.relaxation_events:
        out.set_data(
            "relaxation_events",
            [event.model_dump(mode="json") for event in envelope.relaxation_events],
        )
        out.text("\n[bold]Relaxation[/bold]")
        for event in envelope.relaxation_events:
            dropped = ", ".join(c.describe() for c in event.removed_or_modified_constraint)
            out.text(
                f"  {event.tier_before.value} → {event.tier_after.value}: {event.reason}"
                + (f" [dim]({dropped})[/dim]" if dropped else "")
            )

    if envelope.exhausted:
        out.warning("Every relaxation step ran; the answer may not match the request")
        out.set_exit_code(ExitCode.EXHAUSTED)

    raise typer.Exit(out.finish())
