"""Plan command: offline dry run of the strict-state plan."""

import asyncio
from pathlib import Path

import typer

from ..app import app, console, get_json_mode, setup_logging
from ..utils import ExitCode, Output, load_request_file
from ...config import get_config
from ...core.errors import ExtractionError
from ...pipeline import QueryPipeline


@app.command("plan")
def plan_command(
    request_file: Path = typer.Argument(..., help="Request file (YAML or JSON)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show planner logs"),
    debug: bool = typer.Option(False, "--debug", help="Show debug logs"),
):
    """Show the constraint tree, endpoint ranking and parameters for a request.

    Nothing is sent to the API; names resolve through the override table only.

    Example:
        marquee plan horror_low_budget.yaml
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

    pipeline = QueryPipeline(api=None, config=get_config())
    try:
        plan = asyncio.run(pipeline.plan(loaded.request, loaded.hits))
    except ExtractionError as e:
        out.error(f"Malformed entity: {e}")
        raise typer.Exit(out.finish())

    out.success(
        "Planned query",
        tree=plan.tree.describe(),
        media_types=[m.value for m in plan.media_types],
        sort_intent=plan.sort_intent.model_dump(),
    )
    out.text(f"  Constraints: {plan.tree.describe()}")
    out.text(f"  Media:       {', '.join(m.value for m in plan.media_types)}")
    out.text(f"  Sort intent: {plan.sort_intent.category}")

    for entity in plan.skipped:
        out.warning(f"Skipped low-confidence {entity.kind} {entity.value!r}")
    for entity in plan.entities:
        if entity.needs_lookup and entity.resolved_id is None:
            out.warning(
                f"Unresolved {entity.kind} {entity.value!r}",
                suggestion="`marquee query` resolves names through the API",
            )

    out.table(
        "Endpoint Ranking",
        ["Endpoint", "Score", "Coverage"],
        [[s.path, f"{s.score:.3f}", f"{s.coverage:.2f}"] for s in plan.ranking],
        data_key="ranking",
    )

    if plan.step is None:
        out.warning(
            f"No viable endpoint: {plan.selection_error}",
            suggestion="the query would start from the semantic fallback",
        )
        raise typer.Exit(out.finish())

    step = plan.step
    out.set_data("endpoint", step.resolved_path())
    out.text(f"\n  Endpoint: [bold]{step.resolved_path()}[/bold]")
    out.table(
        "Parameters",
        ["Key", "Value", "Phase"],
        [
            [key, value, step.phase_log[key].value]
            for key, value in step.query_params().items()
        ],
        data_key="parameters",
    )
    if step.revenue_threshold is not None:
        threshold = step.revenue_threshold
        out.set_data("revenue_threshold", threshold.model_dump())
        out.text(f"  Revenue filter: {threshold.operator} {threshold.amount:,}")

    raise typer.Exit(out.finish())
