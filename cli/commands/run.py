"""
Run command: split, generate and replay in one go
"""

import json
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from replaycache.core.canonical import canonicalize
from replaycache.core.errors import ReplayCacheError
from replaycache.logging_config import get_logger, setup_logging
from replaycache.metrics import start_metrics_server
from replaycache.pipeline import CachePipeline

from ..options import load_object, resolve_config

console = Console()


def _parse_json(name: str, text: Optional[str]) -> Any:
    if text is None:
        return None
    try:
        return json.loads(text)
    except ValueError as ex:
        raise typer.BadParameter(f"{name} is not valid JSON: {ex}") from ex


def run_command(
    splitter: str = typer.Option(..., "--splitter", help="Splitter function, module:function"),
    source: str = typer.Option(..., "--source", help="Data source, module:object"),
    engine: str = typer.Option(..., "--engine", help="Query engine, module:object"),
    params: Optional[str] = typer.Option(None, "--params", help="Request passed to the splitter (JSON)"),
    pipeline: Optional[str] = typer.Option(None, "--pipeline", help="Transform pipeline (JSON)"),
    merge_field: List[str] = typer.Option([], "--merge-field", "-m", help="Field merged across groups"),
    ignore_field: List[str] = typer.Option([], "--ignore-field", "-i", help="Field left out of the group key"),
    root: Optional[str] = typer.Option(None, "--root", "-r", help="Directory of the file backend"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend: file or stream"),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Key prefix of stored partitions"),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="Eviction age in seconds"),
    redis_url: Optional[str] = typer.Option(None, "--redis-url", help="Redis URL of the stream backend"),
    force: bool = typer.Option(False, "--force", "-f", help="Regenerate cached partitions"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress"),
    metrics_port: Optional[int] = typer.Option(None, "--metrics-port", help="Serve Prometheus metrics on this port"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Split a request, generate its partitions and replay them.

    Examples:
        replaycache run --splitter jobs:by_day --source jobs:SOURCE --engine jobs:ENGINE
        replaycache run --splitter jobs:by_day --source jobs:SOURCE --engine jobs:ENGINE \\
            --params '{"from": "2024-01-01", "to": "2024-01-07"}' -m count --json
    """
    request = _parse_json("--params", params)
    transform = _parse_json("--pipeline", pipeline)
    try:
        config = resolve_config(
            root=root,
            backend=backend,
            prefix=prefix,
            ttl=ttl,
            redis_url=redis_url,
            force_regenerate=force or None,
            verbose=verbose or None,
        )
        split_fn = load_object(splitter)
        data_source = load_object(source)
        query_engine = load_object(engine)
    except (ValueError, ImportError, AttributeError, ReplayCacheError) as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    try:
        if config.verbose:
            setup_logging(level="DEBUG", log_format="text")
        logger = get_logger()
        if metrics_port:
            start_metrics_server(metrics_port)
        with CachePipeline(config, data_source, query_engine, logger=logger) as runner:
            runner.set_splitter(split_fn)
            runner.split(request)
            generation = runner.generate()
            result = runner.replay(generation.keys, transform, merge_field, ignore_field)
            if not config.persistent:
                runner.log_store.sweep_removals()

        if json_output:
            output = {
                "success": not generation.errors,
                "partitions": generation.keys,
                "generated": generation.generated,
                "skipped": generation.skipped,
                "errors": {k: str(v) for k, v in generation.errors.items()},
                "chunks": result.chunks,
                "cache_hits": result.cache_hits,
                "records": canonicalize(result.records),
            }
            print(json.dumps(output, indent=2, default=str))
        else:
            table = Table(title="Run Summary")
            table.add_column("Metric", style="green")
            table.add_column("Value", style="cyan", justify="right")
            table.add_row("Partitions", str(len(generation.keys)))
            table.add_row("Generated", str(len(generation.generated)))
            table.add_row("Pre-loaded", str(len(generation.skipped)))
            table.add_row("Failed", str(len(generation.errors)))
            table.add_row("Raw records", str(result.raw_records))
            table.add_row("Chunks", f"{result.chunks} ({result.cache_hits} cached)")
            table.add_row("Results", str(len(result.records)))
            console.print(table)

            for key, error in generation.errors.items():
                console.print(f"[red]✗ {key}:[/red] {error}")

            console.print("\n[bold]Results:[/bold]")
            body = json.dumps(canonicalize(result.records), indent=2, default=str)
            console.print(Syntax(body, "json", theme="monokai"))

        raise typer.Exit(1 if generation.errors else 0)

    except ReplayCacheError as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)
