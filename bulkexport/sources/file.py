# bulkexport/sources/file.py
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from bulkexport.core.errors import SourceReadError


class FileCursor:
    """Yields one fixed-size byte chunk per batch."""

    def __init__(self, path: Path, chunk_size: int):
        self._path = path
        self._chunk_size = chunk_size
        try:
            self._fh = open(path, "rb")
        except OSError as e:
            raise SourceReadError(f"cannot open {path}: {e}", cause=e) from e

    def next_batch(self) -> Optional[List[bytes]]:
        try:
            chunk = self._fh.read(self._chunk_size)
        except OSError as e:
            raise SourceReadError(f"reading {self._path} failed: {e}", cause=e) from e
        if not chunk:
            return None
        return [chunk]

    def close(self) -> None:
        self._fh.close()


class FileSource:
    """
    Local file as a source of raw chunks. Each chunk is exactly `chunk_size`
    bytes except the last, so with the same cap in the part builder every
    chunk becomes one part.
    """

    def __init__(self, path: Union[str, Path], chunk_size: int):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self.path = Path(path)
        self.chunk_size = chunk_size
        if not self.path.is_file():
            raise FileNotFoundError(f"File not found: {self.path}")

    def open(self, filter: Optional[Dict[str, Any]], batch_size: int) -> FileCursor:
        # filter/batch_size do not apply to raw bytes
        return FileCursor(self.path, self.chunk_size)
