"""Supplementary class material shared by teachers."""
import logging
from typing import Any, Dict, List, Optional

from pymongo.database import Database

from courses import require_class
from database import RESOURCES, create_document, oid, serialize_doc, store_operation
from errors import InvalidInput, NotFound
from schemas import RESOURCE_TYPES, Resource, build

logger = logging.getLogger("learnify.resources")


@store_operation
def add_resource(
    db: Database,
    class_id: str,
    title: str,
    url: str,
    description: Optional[str] = None,
    type: Optional[str] = None,
    teacher_id: Optional[str] = None,
) -> str:
    if not title or not url:
        raise InvalidInput("Title and URL are required")
    if type and type not in RESOURCE_TYPES:
        raise InvalidInput("Invalid resource type", {"type": type})
    class_oid = require_class(db, class_id)["_id"]
    resource = build(
        Resource,
        class_id=class_oid,
        title=title,
        url=url,
        description=description or "",
        type=type or "link",
        teacher_id=teacher_id,
    )
    resource_id = create_document(db, RESOURCES, resource)
    logger.info("resource %s added to class %s", resource_id, class_id)
    return resource_id


@store_operation
def list_resources(db: Database, class_id: str) -> List[Dict[str, Any]]:
    cursor = db[RESOURCES].find({"class_id": oid(class_id)}).sort("created_at", -1)
    return [serialize_doc(r) for r in cursor]


@store_operation
def delete_resource(db: Database, resource_id: str, teacher_id: Optional[str] = None) -> None:
    """Delete a resource; with ``teacher_id`` only the owner's copy matches."""
    query: Dict[str, Any] = {"_id": oid(resource_id)}
    if teacher_id:
        query["teacher_id"] = teacher_id
    result = db[RESOURCES].delete_one(query)
    if result.deleted_count == 0:
        raise NotFound("Resource not found")
    logger.info("resource %s deleted", resource_id)
