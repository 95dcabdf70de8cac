# bulkexport/sources/base.py
from __future__ import annotations
from itertools import islice
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol


class BatchCursor(Protocol):
    def next_batch(self) -> Optional[List[Any]]:
        """Next page of records, or None at the end of the result set."""
        ...

    def close(self) -> None: ...


class RecordSource(Protocol):
    def open(self, filter: Optional[Dict[str, Any]], batch_size: int) -> BatchCursor: ...


class IteratorCursor:
    """Pages any iterator in `batch_size` slices."""

    def __init__(self, it: Iterator[Any], batch_size: int):
        self._it = it
        self._batch_size = batch_size
        self._exhausted = False

    def next_batch(self) -> Optional[List[Any]]:
        if self._exhausted:
            return None
        batch = list(islice(self._it, self._batch_size))
        if not batch:
            self._exhausted = True
            return None
        return batch

    def close(self) -> None:
        self._exhausted = True
        close = getattr(self._it, "close", None)
        if callable(close):
            close()


class IterableSource:
    """
    In-memory source. The filter, if given, is an exact-match dict on
    top-level fields; enough for tests and for callers holding an iterable.
    """

    def __init__(self, records: Iterable[Any]):
        self._records = records

    def open(self, filter: Optional[Dict[str, Any]], batch_size: int) -> IteratorCursor:
        it: Iterator[Any] = iter(self._records)
        if filter:
            it = (r for r in it if all(r.get(k) == v for k, v in filter.items()))
        return IteratorCursor(it, batch_size)
