"""
Optional MongoDB document sink.

The relay keeps its working state in memory. When DATABASE_URL and
DATABASE_NAME are configured, selected records are also written here.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

from config import settings

logger = logging.getLogger(__name__)


def connect(url: Optional[str], name: Optional[str]) -> Optional[Database]:
    if not url or not name:
        return None
    client = MongoClient(url, serverSelectionTimeoutMS=5000)
    return client[name]


db: Optional[Database] = connect(settings.database_url, settings.database_name)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert one document and return its id as a string."""
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME.")

    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    doc.setdefault("created_at", datetime.now(timezone.utc))
    doc["updated_at"] = datetime.now(timezone.utc)

    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)
