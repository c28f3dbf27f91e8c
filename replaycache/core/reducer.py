"""
MergeReducer: fold per-chunk results into one combined result set.

Records sharing a group key are combined. The reduction applied to each merge
field (sum, concatenation or overwrite) is resolved once per field name from
the first value stored for it, then reused for every later record. A stored
value that does not fit that reduction is overwritten instead.
"""

import threading
from enum import Enum
from numbers import Number
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

GROUP_KEY_DELIMITER = "-"


def _summable(value: Any) -> bool:
    # bool is an int subclass but is not summable here
    return isinstance(value, Number) and not isinstance(value, bool)


class Reduction(Enum):
    """How a merge field combines the stored value with an incoming one."""

    SUM = "sum"
    CONCAT = "concat"
    OVERWRITE = "overwrite"

    @classmethod
    def for_value(cls, value: Any) -> "Reduction":
        if _summable(value):
            return cls.SUM
        if isinstance(value, (list, tuple)):
            return cls.CONCAT
        return cls.OVERWRITE

    def combine(self, prior: Any, incoming: Any) -> Any:
        if self is Reduction.OVERWRITE or prior is None:
            return incoming
        if incoming is None:
            return prior
        # a value that does not fit the resolved reduction overwrites
        if self is Reduction.SUM:
            if _summable(prior) and _summable(incoming):
                return prior + incoming
            return incoming
        if not isinstance(prior, (list, tuple)):
            return incoming
        if isinstance(incoming, (list, tuple)):
            return list(prior) + list(incoming)
        return list(prior) + [incoming]


def group_key(record: Mapping[str, Any], excluded: Iterable[str]) -> str:
    """
    Build the grouping key of a result record.

    Every field not excluded contributes "<field>-<value>", in the record's
    own key order.
    """
    skip = set(excluded)
    return GROUP_KEY_DELIMITER.join(
        f"{field}{GROUP_KEY_DELIMITER}{value}"
        for field, value in record.items()
        if field not in skip
    )


class MergeReducer:
    """
    Combine result records across chunks.

    Usage:
        reducer = MergeReducer(merge_fields=["count"])
        reducer.accept(chunk_a)
        reducer.accept(chunk_b)
        combined = reducer.result()

    With no merge fields the reducer only concatenates, keeping encounter order.
    """

    def __init__(
        self, merge_fields: Sequence[str] = (), ignore_fields: Sequence[str] = ()
    ) -> None:
        self.merge_fields = list(merge_fields)
        self.ignore_fields = list(ignore_fields)
        self._excluded = set(self.merge_fields) | set(self.ignore_fields)
        self._reductions: Dict[str, Reduction] = {}
        self._combined: Dict[str, Dict[str, Any]] = {}
        self._flat: List[Any] = []
        self._lock = threading.Lock()

    @property
    def merging(self) -> bool:
        return bool(self.merge_fields)

    def reduction_for(self, field: str) -> Optional[Reduction]:
        """Reduction resolved for a merge field, or None if not seen yet."""
        return self._reductions.get(field)

    def accept(self, records: Sequence[Any]) -> int:
        """
        Fold one chunk's result records.

        Args:
            records: Result records of a chunk

        Returns:
            Number of records accepted
        """
        with self._lock:
            if not self.merging:
                self._flat.extend(records)
                return len(records)

            for record in records:
                self._fold(record)
            return len(records)

    def _fold(self, record: Mapping[str, Any]) -> None:
        key = group_key(record, self._excluded)
        current = self._combined.get(key)
        if current is None:
            stored = dict(record)
            for field in self.merge_fields:
                if isinstance(stored.get(field), (list, tuple)):
                    stored[field] = list(stored[field])
            self._combined[key] = stored
            return

        for field in self.merge_fields:
            if field not in record:
                continue
            prior = current.get(field)
            current[field] = self._resolve(field, prior).combine(prior, record[field])

    def _resolve(self, field: str, prior: Any) -> Reduction:
        reduction = self._reductions.get(field)
        if reduction is not None:
            return reduction
        if prior is None:
            return Reduction.OVERWRITE
        reduction = Reduction.for_value(prior)
        self._reductions[field] = reduction
        return reduction

    def result(self) -> List[Any]:
        """
        Combined result.

        Returns:
            Merged group values (order unspecified) when merge fields are set,
            otherwise the flat list in encounter order.
        """
        with self._lock:
            if self.merging:
                return list(self._combined.values())
            return list(self._flat)

    def __len__(self) -> int:
        return len(self._combined) if self.merging else len(self._flat)
