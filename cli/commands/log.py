"""
Partition log commands: list, tail
"""

import json
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from replaycache.config import build_stores
from replaycache.core.errors import ReplayCacheError

from ..options import resolve_config

app = typer.Typer()
console = Console()

ROOT_OPTION = typer.Option(None, "--root", "-r", help="Directory of the file backend")
BACKEND_OPTION = typer.Option(None, "--backend", "-b", help="Backend: file or stream")
PREFIX_OPTION = typer.Option(None, "--prefix", help="Key prefix of stored partitions")
REDIS_OPTION = typer.Option(None, "--redis-url", help="Redis URL of the stream backend")


@app.command("list")
def list_partitions(
    root: Optional[str] = ROOT_OPTION,
    backend: Optional[str] = BACKEND_OPTION,
    prefix: Optional[str] = PREFIX_OPTION,
    redis_url: Optional[str] = REDIS_OPTION,
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    List cached partitions with entry counts.

    Examples:
        replaycache log list
        replaycache log list --backend stream --json
    """
    try:
        config = resolve_config(root=root, backend=backend, prefix=prefix, redis_url=redis_url)
        store, cache = build_stores(config)
        try:
            rows = [
                {
                    "key": key,
                    "entries": store.count(key),
                    "marked_for_removal": store.is_marked_for_removal(key),
                }
                for key in store.partitions()
            ]
        finally:
            store.close()
            cache.close()

        if json_output:
            print(json.dumps({"partitions": rows, "count": len(rows)}, indent=2))
            raise typer.Exit(0)

        if not rows:
            console.print("[yellow]No cached partitions[/yellow]")
            raise typer.Exit(0)

        table = Table(title=f"Partitions ({config.backend}, prefix {config.key_prefix})")
        table.add_column("Key", style="cyan")
        table.add_column("Entries", style="green", justify="right")
        table.add_column("Removal", style="yellow")
        for row in rows:
            table.add_row(
                row["key"], str(row["entries"]), "marked" if row["marked_for_removal"] else ""
            )
        console.print(table)
        console.print(f"\n[bold]Total partitions:[/bold] {len(rows)}")
        raise typer.Exit(0)

    except ReplayCacheError as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)


@app.command()
def tail(
    key: str = typer.Argument(..., help="Partition key"),
    lines: Optional[int] = typer.Option(None, "--lines", "-n", help="Number of entries to show"),
    root: Optional[str] = ROOT_OPTION,
    backend: Optional[str] = BACKEND_OPTION,
    prefix: Optional[str] = PREFIX_OPTION,
    redis_url: Optional[str] = REDIS_OPTION,
    show_payload: bool = typer.Option(False, "--payload", "-p", help="Show full payloads"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Show the last entries of a partition log.

    Examples:
        replaycache log tail 2024-01-01
        replaycache log tail 2024-01-01 --lines 10 --payload
        replaycache log tail 2024-01-01 --json
    """
    try:
        config = resolve_config(root=root, backend=backend, prefix=prefix, redis_url=redis_url)
        store, cache = build_stores(config)
        try:
            entries = [
                {"seq": entry.sequence_id, "payload": entry.payload.decode("utf-8", "replace")}
                for entry in store.read_range(key)
            ]
        finally:
            store.close()
            cache.close()

        if lines:
            entries = entries[-lines:]

        if json_output:
            print(json.dumps({"key": key, "entries": entries, "count": len(entries)}, indent=2))
            raise typer.Exit(0)

        if not entries:
            console.print(f"[yellow]Partition {key} is empty or missing[/yellow]")
            raise typer.Exit(0)

        if show_payload:
            for entry in entries:
                console.print(f"\n[bold cyan]Entry {entry['seq']}[/bold cyan]")
                console.print(Syntax(entry["payload"], "json", theme="monokai"))
        else:
            table = Table(title=f"Partition: {key}")
            table.add_column("Seq", style="cyan")
            table.add_column("Bytes", style="green", justify="right")
            table.add_column("Payload (prefix)", style="dim")
            for entry in entries:
                table.add_row(
                    str(entry["seq"]),
                    str(len(entry["payload"].encode("utf-8"))),
                    entry["payload"][:60],
                )
            console.print(table)

        console.print(f"\n[bold]Total entries:[/bold] {len(entries)}")
        raise typer.Exit(0)

    except ReplayCacheError as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)
