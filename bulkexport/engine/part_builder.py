# bulkexport/engine/part_builder.py
from __future__ import annotations
from typing import Iterable, Iterator, Optional

from .context import DEFAULT_CHUNK_SIZE_BYTES, Part


class PartBuilder:
    """
    Packs serialized lines into parts of at most `chunk_size_bytes`.

    - A line is never split over two parts.
    - No part is empty; part numbers start at 1 and have no gaps.
    - Policy: a single line larger than `chunk_size_bytes` becomes its own
      oversized part. Lines are never truncated, so the cap is a target and
      not a hard limit for such lines.

    Owned by one thread (the coordinator); not thread-safe.
    """

    def __init__(self, chunk_size_bytes: int = DEFAULT_CHUNK_SIZE_BYTES):
        if chunk_size_bytes <= 0:
            raise ValueError("chunk_size_bytes must be > 0")
        self.chunk_size_bytes = chunk_size_bytes
        self._buffer = bytearray()
        self._next_part_number = 1
        self._finished = False

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    @property
    def parts_sealed(self) -> int:
        return self._next_part_number - 1

    def add(self, line: bytes) -> Optional[Part]:
        """Append one line; returns the sealed part when the line did not fit."""
        if self._finished:
            raise RuntimeError("PartBuilder already finished")
        if not line:
            return None

        sealed = None
        if self._buffer and len(self._buffer) + len(line) > self.chunk_size_bytes:
            sealed = self._seal()
        self._buffer.extend(line)
        return sealed

    def finish(self) -> Optional[Part]:
        """Seal the remainder (may be smaller than the cap) at end of input."""
        self._finished = True
        if not self._buffer:
            return None
        return self._seal()

    def build(self, lines: Iterable[bytes]) -> Iterator[Part]:
        for line in lines:
            part = self.add(line)
            if part is not None:
                yield part
        last = self.finish()
        if last is not None:
            yield last

    def _seal(self) -> Part:
        part = Part(part_number=self._next_part_number, payload=bytes(self._buffer))
        self._next_part_number += 1
        self._buffer = bytearray()
        return part
