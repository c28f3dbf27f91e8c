"""
Partition Replay Cache

Caches the raw output of an expensive, partitioned source query and replays
it in bounded chunks through a transform step, memoizing per-chunk results.
"""

__version__ = "0.1.0"
