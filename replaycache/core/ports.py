"""
Interfaces of the external collaborators.

The cache never interprets source queries or transform pipelines; it only
hands them to these ports.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, Iterator, List, Sequence

from .records import Partition

# Splitter signature: (request config) -> ordered partitions
Splitter = Callable[[Any], Sequence[Partition]]


class DataSource(ABC):
    """
    Random-access data source able to stream a partition's result set.

    Iterator exhaustion is the end signal; an exception raised while
    iterating is the error signal.
    """

    @abstractmethod
    def open(self, query: Any) -> Iterator[Any]:
        """
        Open a cursor for a partition's source query.

        Args:
            query: Opaque source query of the partition

        Returns:
            Iterator over raw records (dicts, str or bytes)
        """
        ...


class QueryEngine(ABC):
    """
    Transform step turning a batch of records plus a pipeline into results.
    """

    @abstractmethod
    def apply(self, records: List[Dict[str, Any]], pipeline: Any) -> Any:
        """
        Run a pipeline over records.

        Returns:
            List of result records. Anything else is treated as an
            unexpected result by the replay engine.
        """
        ...


class FunctionSource(DataSource):
    """Adapt a plain callable (query -> iterable of records) to DataSource."""

    def __init__(self, fn: Callable[[Any], Iterable[Any]]) -> None:
        self.fn = fn

    def open(self, query: Any) -> Iterator[Any]:
        return iter(self.fn(query))


class FunctionQueryEngine(QueryEngine):
    """Adapt a plain callable (records, pipeline) -> results to QueryEngine."""

    def __init__(self, fn: Callable[[List[Dict[str, Any]], Any], Any]) -> None:
        self.fn = fn

    def apply(self, records: List[Dict[str, Any]], pipeline: Any) -> Any:
        return self.fn(records, pipeline)


def as_source(obj: Any) -> DataSource:
    """Return obj as a DataSource, wrapping plain callables."""
    if isinstance(obj, DataSource):
        return obj
    if hasattr(obj, "open"):
        return FunctionSource(obj.open)
    if callable(obj):
        return FunctionSource(obj)
    raise TypeError(f"not a data source: {obj!r}")


def as_query_engine(obj: Any) -> QueryEngine:
    """Return obj as a QueryEngine, wrapping plain callables."""
    if isinstance(obj, QueryEngine):
        return obj
    if hasattr(obj, "apply"):
        return FunctionQueryEngine(obj.apply)
    if callable(obj):
        return FunctionQueryEngine(obj)
    raise TypeError(f"not a query engine: {obj!r}")
