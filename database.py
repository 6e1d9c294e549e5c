"""
MongoDB access for the fire-management API.

Each pydantic model in schemas.py maps to a collection named after the
lowercased class name (CommunityPlan -> "communityplan").
"""

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
# bounds how long a request waits when the server is unreachable
DATABASE_TIMEOUT_MS = int(os.getenv("DATABASE_TIMEOUT_MS", "5000"))


def connect(url: str, name: str, timeout_ms: int = DATABASE_TIMEOUT_MS) -> Database:
    client = MongoClient(url, serverSelectionTimeoutMS=timeout_ms)
    return client[name]


db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    db = connect(DATABASE_URL, DATABASE_NAME)


def get_db():
    return db


def create_document(collection_name: str, data, database: Optional[Database] = None) -> str:
    """Insert a document and return its id as a string."""
    database = database if database is not None else db
    if database is None:
        raise RuntimeError("Database not configured")

    if isinstance(data, BaseModel):
        data = data.model_dump()
    else:
        data = dict(data)

    now = datetime.now(timezone.utc)
    data["created_at"] = now
    data["updated_at"] = now

    result = database[collection_name].insert_one(data)
    return str(result.inserted_id)


def ensure_indexes(database: Database):
    plans = database["communityplan"]
    plans.create_index([("village_info.name", ASCENDING)])
    plans.create_index([("village_info.district", ASCENDING)])
    plans.create_index([("village_info.subdistrict", ASCENDING)])
    plans.create_index([("status", ASCENDING)])
    plans.create_index([("submitted_at", DESCENDING)])


def ping(database: Optional[Database]) -> bool:
    if database is None:
        return False
    try:
        database.command("ping")
        return True
    except Exception as e:
        logger.warning(f"Database ping failed: {e}")
        return False
