# bulkexport/infra/mongo_client.py

import logging
from typing import Optional

from pymongo import MongoClient

from bulkexport.core.settings import settings

logger = logging.getLogger(__name__)

_mongo_client: Optional[MongoClient] = None


def get_mongo() -> MongoClient:
    """Lazy singleton MongoClient (connect=False: pas verbinden bij eerste query)."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = MongoClient(settings.MONGO_URI, connect=False)
        logger.info("Mongo client initialized database=%s", settings.MONGO_DATABASE)
    return _mongo_client


def get_collection(collection: str, database: Optional[str] = None, client: Optional[MongoClient] = None):
    client = client or get_mongo()
    return client[database or settings.MONGO_DATABASE][collection]
