"""
MongoDB access for the Learnify workflow engine.

One collection per entity. The module-level ``db`` is ``None`` when the
connection settings are missing so the app can still start.
"""
import functools
import logging
import math
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from errors import DependencyFailure, EngineError, InvalidInput

load_dotenv()

logger = logging.getLogger("learnify.database")

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
STORE_TIMEOUT_MS = int(os.getenv("STORE_TIMEOUT_MS", "5000"))

USERS = "users"
TEACHER_REQUESTS = "teacher_requests"
CLASSES = "classes"
ENROLLMENTS = "enrollments"
ASSIGNMENTS = "assignments"
SUBMISSIONS = "submissions"
EVALUATIONS = "evaluations"
RESOURCES = "resources"
PAYMENTS = "payments"


def connect(url: Optional[str], name: Optional[str]) -> Optional[Database]:
    if not url or not name:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; store unavailable")
        return None
    client = MongoClient(url, serverSelectionTimeoutMS=STORE_TIMEOUT_MS)
    return client[name]


db = connect(DATABASE_URL, DATABASE_NAME)


def ensure_indexes(database: Database) -> None:
    """Create the unique indexes backing the at-most-one invariants."""
    database[USERS].create_index("uid", unique=True)
    database[USERS].create_index("email", unique=True)
    database[ENROLLMENTS].create_index(
        [("class_id", ASCENDING), ("user_id", ASCENDING)], unique=True
    )
    database[SUBMISSIONS].create_index(
        [("assignment_id", ASCENDING), ("user_id", ASCENDING)], unique=True
    )
    database[EVALUATIONS].create_index(
        [("class_id", ASCENDING), ("user_id", ASCENDING)], unique=True
    )


# ----------------------
# Utils
# ----------------------

def now() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: Union[str, ObjectId]) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise InvalidInput("Invalid id format", {"id": id_str})


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
        elif isinstance(v, datetime):
            # pymongo hands back naive UTC datetimes
            if v.tzinfo is None:
                v = v.replace(tzinfo=timezone.utc)
            d[k] = v.astimezone(timezone.utc).isoformat()
    return d


def store_operation(func):
    """Classify raw store failures raised by an engine operation."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except EngineError:
            raise
        except PyMongoError as exc:
            logger.error("store call failed in %s: %s", func.__name__, exc)
            raise DependencyFailure(
                f"Entity store failure during {func.__name__}",
                {"error": exc.__class__.__name__},
            ) from exc

    return wrapper


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def paginate(
    database: Database,
    collection_name: str,
    query: Dict[str, Any],
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Dict[str, Any]], int, int]:
    """Offset pagination, 1-indexed. Returns (items, total_pages, current_page)."""
    if page < 1 or limit < 1:
        raise InvalidInput("page and limit must be positive", {"page": page, "limit": limit})
    collection = database[collection_name]
    items = list(collection.find(query).skip((page - 1) * limit).limit(limit))
    total = collection.count_documents(query)
    return items, math.ceil(total / limit), page
