"""
MongoDB access for the salon back-office.

Every business collection carries a `userId` owner field. The helpers here take
the owner explicitly so that no query can run without it.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import DESCENDING, MongoClient

from config import settings

_client = MongoClient(settings.database_url) if settings.database_url else None
db = _client[settings.database_name] if _client is not None else None


def now_utc() -> datetime:
    """Naive UTC timestamp, matching what pymongo hands back from the server."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def collection(name: str):
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db[name]


def parse_object_id(value: Any, not_found: str = "Not found") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=404, detail=not_found)


def owner_filter(owner_id: ObjectId, **extra) -> Dict[str, Any]:
    return {"userId": owner_id, **extra}


def create_document(collection_name: str, data: Union[BaseModel, dict], owner_id: Optional[ObjectId] = None) -> ObjectId:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    now = now_utc()
    doc.setdefault("createdAt", now)
    doc.setdefault("updatedAt", now)
    if owner_id is not None:
        doc["userId"] = owner_id
    result = collection(collection_name).insert_one(doc)
    return result.inserted_id


def get_documents(collection_name: str, owner_id: ObjectId, filter_dict: Optional[dict] = None) -> List[dict]:
    return list(collection(collection_name).find(owner_filter(owner_id, **(filter_dict or {}))).sort("createdAt", DESCENDING))


def serialize(value: Any) -> Any:
    """Turn ObjectIds into strings so documents can be returned as JSON."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
