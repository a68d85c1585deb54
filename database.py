"""
MongoDB access.

Handlers never touch a global connection: they receive the database through
the ``get_db`` dependency, which tests override with an in-memory database.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient, ReturnDocument
from pymongo.database import Database

import config
from errors import InvalidInput, NotFound

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None

UNIQUE_INDEXES = (
    ("category", "name"),
    ("category", "slug"),
    ("subcategory", "name"),
    ("subcategory", "slug"),
    ("brand", "name"),
    ("brand", "slug"),
    ("product", "title"),
    ("user", "email"),
    ("cart", "user"),
)


def get_client() -> MongoClient:
    global _client
    if _client is None:
        logger.info("Connecting to MongoDB database %s", config.DATABASE_NAME)
        _client = MongoClient(config.DATABASE_URL)
    return _client


def get_db() -> Database:
    return get_client()[config.DATABASE_NAME]


def ensure_indexes(db: Database) -> None:
    for collection, field in UNIQUE_INDEXES:
        db[collection].create_index(field, unique=True)
    db["otp"].create_index("user")
    db["subcategory"].create_index("category")
    db["order"].create_index("user")
    logger.info("Indexes ensured on %s", db.name)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 24 and ObjectId.is_valid(value)


def parse_object_id(value: Any, label: str = "ID") -> ObjectId:
    if not is_object_id(value):
        raise InvalidInput(f"Invalid {label}")
    return ObjectId(value)


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    # Convert ObjectId in nested fields if any
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, dict):
            doc[k] = serialize_doc(v)
        elif isinstance(v, list):
            doc[k] = [serialize_doc(i) if isinstance(i, dict) else (str(i) if isinstance(i, ObjectId) else i) for i in v]
    return doc


def create_document(db: Database, collection: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    now = utcnow()
    doc = dict(data)
    doc["createdAt"] = now
    doc["updatedAt"] = now
    result = db[collection].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def get_by_id(db: Database, collection: str, doc_id: str, label: str, projection: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    oid = parse_object_id(doc_id, f"{label} ID")
    doc = db[collection].find_one({"_id": oid}, projection)
    if not doc:
        raise NotFound(f"{label} not found")
    return doc


def update_by_id(db: Database, collection: str, doc_id: ObjectId, updates: Dict[str, Any], label: str) -> Dict[str, Any]:
    updates = dict(updates)
    updates["updatedAt"] = utcnow()
    doc = db[collection].find_one_and_update(
        {"_id": doc_id}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise NotFound(f"{label} not found")
    return doc


def delete_by_id(db: Database, collection: str, doc_id: str, label: str) -> Dict[str, Any]:
    oid = parse_object_id(doc_id, f"{label} ID")
    doc = db[collection].find_one_and_delete({"_id": oid})
    if not doc:
        raise NotFound(f"{label} not found")
    return doc


def find_existing_ids(db: Database, collection: str, ids: Iterable[str]) -> List[str]:
    oids = [ObjectId(i) for i in ids if is_object_id(i)]
    if not oids:
        return []
    return [str(d["_id"]) for d in db[collection].find({"_id": {"$in": oids}}, {"_id": 1})]


def populate(
    db: Database,
    docs: Sequence[Dict[str, Any]],
    field: str,
    collection: str,
    fields: Sequence[str] = ("name", "slug"),
) -> List[Dict[str, Any]]:
    """
    Replace the string reference(s) stored under ``field`` with the referenced
    documents (restricted to ``fields``). Works for single references and for
    lists of references; unresolved references become ``None`` or are dropped.
    """
    wanted = set()
    for doc in docs:
        ref = doc.get(field)
        refs = ref if isinstance(ref, list) else [ref]
        wanted.update(r for r in refs if is_object_id(r))
    if not wanted:
        return list(docs)
    projection = {f: 1 for f in fields} if fields else None
    found = {
        str(d["_id"]): serialize_doc(d)
        for d in db[collection].find({"_id": {"$in": [ObjectId(w) for w in wanted]}}, projection)
    }
    out = []
    for doc in docs:
        doc = dict(doc)
        ref = doc.get(field)
        if isinstance(ref, list):
            doc[field] = [found[r] for r in ref if r in found]
        elif ref is not None:
            doc[field] = found.get(ref)
        out.append(doc)
    return out
