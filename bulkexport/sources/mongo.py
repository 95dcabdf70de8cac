# bulkexport/sources/mongo.py
import logging
from itertools import islice
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pymongo.errors import PyMongoError

from bulkexport.core.errors import SourceReadError

logger = logging.getLogger(__name__)


class MongoCursor:
    """Wraps a pymongo cursor as a batch cursor; the driver pages with getMore."""

    def __init__(self, cursor, batch_size: int, namespace: str):
        self._cursor = cursor
        self._batch_size = batch_size
        self._namespace = namespace
        self.batches_read = 0

    def next_batch(self) -> Optional[List[Dict[str, Any]]]:
        try:
            batch = list(islice(self._cursor, self._batch_size))
        except PyMongoError as e:
            raise SourceReadError(f"reading {self._namespace} failed: {e}", cause=e) from e
        if not batch:
            return None
        self.batches_read += 1
        return batch

    def close(self) -> None:
        try:
            self._cursor.close()
        except PyMongoError as e:
            logger.warning("closing cursor on %s failed: %s", self._namespace, e)


class MongoSource:
    """
    Read-only source over one collection. `no_cursor_timeout` keeps the
    server cursor alive while slow uploads hold the pipeline back.
    """

    def __init__(
        self,
        collection,
        *,
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[Sequence[Tuple[str, int]]] = None,
        no_cursor_timeout: bool = True,
    ):
        self._collection = collection
        self._projection = projection
        self._sort = list(sort) if sort else None
        self._no_cursor_timeout = no_cursor_timeout

    @property
    def namespace(self) -> str:
        return getattr(self._collection, "full_name", None) or str(self._collection.name)

    def open(self, filter: Optional[Dict[str, Any]], batch_size: int) -> MongoCursor:
        kwargs: Dict[str, Any] = {"batch_size": batch_size}
        if self._sort:
            kwargs["sort"] = self._sort
        if self._no_cursor_timeout:
            kwargs["no_cursor_timeout"] = True
        try:
            cursor = self._collection.find(filter or {}, self._projection, **kwargs)
        except PyMongoError as e:
            raise SourceReadError(f"opening cursor on {self.namespace} failed: {e}", cause=e) from e
        logger.info("cursor opened on %s batch_size=%d", self.namespace, batch_size)
        return MongoCursor(cursor, batch_size, self.namespace)
