"""
Chunk result memoization.

This module provides:
- ChunkCache: Abstract memo interface with TTL sweep
- FileChunkCache: One memo file per chunk key, expiry by modification time
- StreamChunkCache: One Redis hash per chunk key, native expiry
"""

from .chunk_cache import ChunkCache, FileChunkCache, StreamChunkCache

__all__ = [
    "ChunkCache",
    "FileChunkCache",
    "StreamChunkCache",
]
