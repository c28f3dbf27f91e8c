"""
Sweep command: purge tombstoned partition logs and expired chunk memos
"""

import json
from typing import Optional

import typer
from rich.console import Console

from replaycache.config import build_stores
from replaycache.core.errors import ReplayCacheError
from replaycache.logging_config import get_logger

from ..options import resolve_config

console = Console()


def sweep_command(
    root: Optional[str] = typer.Option(None, "--root", "-r", help="Directory of the file backend"),
    backend: Optional[str] = typer.Option(None, "--backend", "-b", help="Backend: file or stream"),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Key prefix of stored partitions"),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="Eviction age in seconds"),
    redis_url: Optional[str] = typer.Option(None, "--redis-url", help="Redis URL of the stream backend"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Purge tombstoned partitions and expired chunk memos.

    Only entries older than the TTL are removed. The stream backend expires
    its keys server-side, so it always reports zero.

    Examples:
        replaycache sweep
        replaycache sweep --ttl 0 --json
    """
    try:
        config = resolve_config(root=root, backend=backend, prefix=prefix, ttl=ttl, redis_url=redis_url)
        store, cache = build_stores(config, logger=get_logger())
        try:
            partitions = store.sweep_removals()
            memos = cache.sweep_expired()
        finally:
            store.close()
            cache.close()

        if json_output:
            print(json.dumps({"success": True, "partitions": partitions, "memos": memos}, indent=2))
        else:
            console.print(f"[green]✓ Swept {partitions} partition(s), {memos} memo(s)[/green]")
            console.print(f"  Backend: [cyan]{config.backend}[/cyan]  TTL: [cyan]{config.ttl}s[/cyan]")
        raise typer.Exit(0)

    except ReplayCacheError as e:
        if json_output:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)
