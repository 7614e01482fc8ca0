"""
Database helpers

MongoDB access for the wine catalog. The connection is configured from the
environment:
- DATABASE_URL -> MongoDB connection string (no URL means no database)
- DATABASE_NAME -> database name, defaults to "project-wine"
- DATABASE_TIMEOUT_MS -> server selection / connect / socket timeout
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import HTTPException
from loguru import logger
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "project-wine")
DATABASE_TIMEOUT_MS = int(os.getenv("DATABASE_TIMEOUT_MS", "5000"))

client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    client = MongoClient(
        DATABASE_URL,
        serverSelectionTimeoutMS=DATABASE_TIMEOUT_MS,
        connectTimeoutMS=DATABASE_TIMEOUT_MS,
        socketTimeoutMS=DATABASE_TIMEOUT_MS,
    )
    db = client[DATABASE_NAME]


def get_db() -> Database:
    """FastAPI dependency returning the configured database handle."""
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    doc.setdefault("created_at", datetime.now(timezone.utc))
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None) -> List[dict]:
    return list(database[collection_name].find(filter_dict or {}))


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    # ObjectId is not JSON serializable
    if doc is None:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


def ensure_indexes(database: Database) -> None:
    """Create the unique indexes the collections rely on."""
    database["wine"].create_index([("name", ASCENDING)], unique=True)
    database["user"].create_index([("username", ASCENDING)], unique=True)
    database["user"].create_index([("access_token", ASCENDING)], unique=True)
    database["secret"].create_index([("user", ASCENDING)])


def reset_wines(database: Database, seed: Optional[List[dict]] = None) -> int:
    """Clear the wine collection and insert the optional seed list."""
    deleted = database["wine"].delete_many({}).deleted_count
    logger.info(f"Removed {deleted} wine documents")
    created = 0
    for item in seed or []:
        create_document(database, "wine", item)
        created += 1
    return created
