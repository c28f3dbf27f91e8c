"""
Chunked replay of cached partitions.

Replay re-reads raw partition logs in bounded chunks, runs each chunk through
the query engine (memoized per chunk) and merges the chunk results.
"""

from .runner import ReplayEngine, ReplayResult, parse_timestamp

__all__ = [
    "ReplayEngine",
    "ReplayResult",
    "parse_timestamp",
]
