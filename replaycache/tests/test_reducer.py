"""
Tests for merging chunk results.

Goal: records sharing a group key combine field by field, whichever chunk
they came from.
"""

import threading

from replaycache.core.reducer import MergeReducer, Reduction, group_key


def _by_group(records, field="site"):
    return {r[field]: r for r in records}


def test_group_key_uses_record_field_order():
    record = {"site": "a", "day": "mon", "hits": 3}

    assert group_key(record, ["hits"]) == "site-a-day-mon"
    assert group_key(record, ["hits", "day"]) == "site-a"


def test_no_merge_fields_concatenates_in_order():
    reducer = MergeReducer()
    reducer.accept([{"n": 1}, {"n": 2}])
    reducer.accept([{"n": 3}])

    assert reducer.result() == [{"n": 1}, {"n": 2}, {"n": 3}]
    assert len(reducer) == 3


def test_numeric_fields_are_summed_across_chunks():
    reducer = MergeReducer(merge_fields=["hits"])
    reducer.accept([{"site": "a", "hits": 1}, {"site": "b", "hits": 2}])
    reducer.accept([{"site": "a", "hits": 11}])

    combined = _by_group(reducer.result())
    assert combined["a"]["hits"] == 12
    assert combined["b"]["hits"] == 2
    assert reducer.reduction_for("hits") is Reduction.SUM


def test_list_fields_are_concatenated():
    reducer = MergeReducer(merge_fields=["tags"])
    reducer.accept([{"site": "a", "tags": ["p"]}])
    reducer.accept([{"site": "a", "tags": ["q"]}])

    assert reducer.result() == [{"site": "a", "tags": ["p", "q"]}]
    assert reducer.reduction_for("tags") is Reduction.CONCAT


def test_concatenation_does_not_mutate_input():
    first = {"site": "a", "tags": ["p"]}
    reducer = MergeReducer(merge_fields=["tags"])
    reducer.accept([first])
    reducer.accept([{"site": "a", "tags": ["q"]}])

    assert first["tags"] == ["p"]


def test_other_values_are_overwritten():
    reducer = MergeReducer(merge_fields=["last_seen", "active"])
    reducer.accept([{"site": "a", "last_seen": "mon", "active": True}])
    reducer.accept([{"site": "a", "last_seen": "tue", "active": False}])

    assert reducer.result() == [{"site": "a", "last_seen": "tue", "active": False}]
    assert reducer.reduction_for("active") is Reduction.OVERWRITE


def test_reduction_is_resolved_once_per_field():
    """The first stored value decides; later groups reuse the reduction."""
    reducer = MergeReducer(merge_fields=["hits"])
    reducer.accept([{"site": "a", "hits": 1}, {"site": "a", "hits": 2}])
    reducer.accept([{"site": "b", "hits": [1]}, {"site": "b", "hits": [2]}])

    combined = _by_group(reducer.result())
    assert combined["a"]["hits"] == 3
    assert reducer.reduction_for("hits") is Reduction.SUM
    # lists do not fit SUM, so the later value overwrites
    assert combined["b"]["hits"] == [2]


def test_mixed_types_overwrite_instead_of_failing():
    reducer = MergeReducer(merge_fields=["v"])
    reducer.accept([{"g": "a", "v": 1}, {"g": "a", "v": 2}])
    reducer.accept([{"g": "b", "v": "n/a"}, {"g": "b", "v": 3}])
    reducer.accept([{"g": "a", "v": "late"}])

    combined = {r["g"]: r["v"] for r in reducer.result()}
    assert combined == {"a": "late", "b": 3}


def test_concat_with_non_list_prior_overwrites():
    reducer = MergeReducer(merge_fields=["tags"])
    reducer.accept([{"site": "a", "tags": ["p"]}, {"site": "a", "tags": ["r"]}])
    reducer.accept([{"site": "b", "tags": "none"}, {"site": "b", "tags": ["q"]}])

    combined = _by_group(reducer.result())
    assert reducer.reduction_for("tags") is Reduction.CONCAT
    assert combined["b"]["tags"] == ["q"]


def test_ignored_fields_leave_group_key_first_value_kept():
    reducer = MergeReducer(merge_fields=["hits"], ignore_fields=["ts"])
    reducer.accept([{"site": "a", "ts": 1, "hits": 1}])
    reducer.accept([{"site": "a", "ts": 2, "hits": 2}])

    assert reducer.result() == [{"site": "a", "ts": 1, "hits": 3}]


def test_missing_merge_field_is_skipped():
    reducer = MergeReducer(merge_fields=["hits"])
    reducer.accept([{"site": "a", "hits": 4}])
    reducer.accept([{"site": "a"}])

    assert reducer.result() == [{"site": "a", "hits": 4}]


def test_none_prior_takes_incoming():
    assert Reduction.SUM.combine(None, 5) == 5
    assert Reduction.SUM.combine(5, None) == 5
    assert Reduction.CONCAT.combine([1], 2) == [1, 2]
    assert Reduction.SUM.combine("x", 2) == 2
    assert Reduction.SUM.combine(True, 2) == 2
    assert Reduction.CONCAT.combine("x", [2]) == [2]


def test_concurrent_accept_counts_every_record():
    reducer = MergeReducer(merge_fields=["hits"])
    chunk = [{"site": "a", "hits": 1}] * 100

    threads = [threading.Thread(target=reducer.accept, args=(chunk,)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert reducer.result() == [{"site": "a", "hits": 800}]


def test_sum_by_group_example():
    reducer = MergeReducer(merge_fields=["b"])
    reducer.accept([{"a": 1, "b": 5}, {"a": 1, "b": 7}])
    reducer.accept([{"a": 2, "b": 1}])

    combined = {r["a"]: r["b"] for r in reducer.result()}
    assert combined == {1: 12, 2: 1}
