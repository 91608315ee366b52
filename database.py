"""
Database access for the storefront.

A single ``Database`` handle is built when the application starts and is
stored on ``app.state.db``; request handlers receive it through the
``get_db`` dependency. Documents are plain dicts; the helpers below stamp
``createdAt``/``updatedAt`` the way every collection expects.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, TEXT, MongoClient

import config

logger = structlog.get_logger()


class Database:
    def __init__(self, client, name: str):
        self.client = client
        self.db = client[name]

    @classmethod
    def connect(cls, uri: str = config.MONGODB_URI, name: str = config.DATABASE_NAME) -> "Database":
        client = MongoClient(uri, serverSelectionTimeoutMS=30000, connectTimeoutMS=30000, maxPoolSize=10)
        logger.info("Connecting to MongoDB", database=name)
        return cls(client, name)

    @property
    def name(self) -> str:
        return self.db.name

    def __getitem__(self, collection: str):
        return self.db[collection]

    def list_collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    def close(self):
        self.client.close()


def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def utcnow() -> datetime:
    # naive UTC, matching what pymongo hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail=f"Invalid {label}")


def _as_document(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True)
    return dict(data)


def create_document(db: Database, collection: str, data: Union[BaseModel, dict]) -> str:
    doc = _as_document(data)
    now = utcnow()
    doc.setdefault("createdAt", now)
    doc["updatedAt"] = now
    result = db[collection].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, sort: Optional[list] = None, skip: int = 0) -> List[dict]:
    cursor = db[collection].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(db: Database, collection: str, document_id: Any, label: str = "id") -> Optional[dict]:
    return db[collection].find_one({"_id": to_object_id(document_id, label)})


def get_document_or_404(db: Database, collection: str, document_id: Any, not_found: str, label: str = "id") -> dict:
    doc = get_document(db, collection, document_id, label)
    if doc is None:
        raise HTTPException(status_code=404, detail=not_found)
    return doc


def update_document(db: Database, collection: str, document_id: Any, updates: dict) -> Optional[dict]:
    """Apply a partial ``$set`` and return the updated document, or None when it does not exist."""
    changes = dict(updates)
    changes["updatedAt"] = utcnow()
    _id = to_object_id(document_id)
    result = db[collection].update_one({"_id": _id}, {"$set": changes})
    if not result.matched_count:
        return None
    return db[collection].find_one({"_id": _id})


def delete_document(db: Database, collection: str, document_id: Any) -> Optional[dict]:
    _id = to_object_id(document_id)
    doc = db[collection].find_one({"_id": _id})
    if doc is None:
        return None
    db[collection].delete_one({"_id": _id})
    return doc


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_value(v) for v in value]
    return value


def serialize_document(doc: Optional[dict], exclude: tuple = ()) -> Optional[dict]:
    if doc is None:
        return None
    out = serialize_value(doc)
    for key in exclude:
        out.pop(key, None)
    return out


def paginate(page: int, limit: int, total: int) -> Dict[str, Any]:
    pages = (total + limit - 1) // limit if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }


INDEXES = {
    "accounts": [
        [("game", ASCENDING), ("status", ASCENDING)],
        [("category", ASCENDING), ("status", ASCENDING)],
        [("price", ASCENDING)],
        [("title", TEXT), ("description", TEXT)],
        [("isWeeklyDeal", ASCENDING)],
        [("isOnSale", ASCENDING)],
        [("isFeatured", ASCENDING)],
    ],
    "categories": [
        [("type", ASCENDING), ("status", ASCENDING)],
        [("subcategories.slug", ASCENDING)],
    ],
    "orders": [
        [("buyer._id", ASCENDING)],
        [("status", ASCENDING), ("paymentStatus", ASCENDING)],
        [("createdAt", DESCENDING)],
    ],
    "supports": [
        [("userId", ASCENDING)],
        [("status", ASCENDING)],
        [("priority", ASCENDING)],
        [("createdAt", DESCENDING)],
    ],
    "blogs": [
        [("status", ASCENDING)],
        [("category", ASCENDING)],
        [("publishedAt", DESCENDING)],
    ],
    "logs": [
        [("timestamp", DESCENDING)],
        [("level", ASCENDING), ("timestamp", DESCENDING)],
        [("category", ASCENDING), ("timestamp", DESCENDING)],
    ],
    "carts": [
        [("userId", ASCENDING), ("productId", ASCENDING)],
    ],
    "notifications": [
        [("userId", ASCENDING), ("sentAt", DESCENDING)],
    ],
    "popularcategories": [
        [("order", ASCENDING)],
    ],
    "reviews": [
        [("accountId", ASCENDING), ("isApproved", ASCENDING)],
    ],
    "helpcontents": [
        [("type", ASCENDING), ("isActive", ASCENDING)],
        [("order", ASCENDING)],
    ],
}

UNIQUE_INDEXES = {
    "users": "email",
    "orders": "orderId",
    "supports": "ticketId",
    "blogs": "slug",
    "site_content": "key",
    "helpcontents": "key",
    "reviews": [("userId", ASCENDING), ("accountId", ASCENDING)],
}


def ensure_indexes(db: Database):
    for collection, indexes in INDEXES.items():
        for keys in indexes:
            db[collection].create_index(keys)
    for collection, keys in UNIQUE_INDEXES.items():
        db[collection].create_index(keys, unique=True)
    logger.info("Indexes ensured", collections=sorted(set(INDEXES) | set(UNIQUE_INDEXES)))
