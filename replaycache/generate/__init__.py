"""
Generation of partition logs from the data source.
"""

from .runner import GenerationEngine, GenerationResult, encode_record

__all__ = [
    "GenerationEngine",
    "GenerationResult",
    "encode_record",
]
