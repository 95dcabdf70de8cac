# Record sources for bulkexport

from .base import BatchCursor, IterableSource, RecordSource
from .file import FileSource
from .mongo import MongoSource

__all__ = [
    "BatchCursor",
    "RecordSource",
    "IterableSource",
    "FileSource",
    "MongoSource",
]
