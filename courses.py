"""
Course lifecycle: teacher requests and class offerings.

Both move pending -> approved | rejected exactly once. Approving either one
publishes a TeacherPromotionRequested event for the instructor.
"""
import logging
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

import identity
from database import (
    ASSIGNMENTS,
    CLASSES,
    ENROLLMENTS,
    EVALUATIONS,
    SUBMISSIONS,
    TEACHER_REQUESTS,
    create_document,
    get_documents,
    oid,
    paginate,
    serialize_doc,
    store_operation,
)
from errors import InvalidInput, NotFound
from events import EventBus, TeacherPromotionRequested
from schemas import DERIVED_CLASS_FIELDS, ClassOffering, TeacherRequest, build

logger = logging.getLogger("learnify.courses")

ACTIONS = {"approve": "approved", "reject": "rejected"}
MUTABLE_CLASS_FIELDS = ("title", "price", "description", "image")


def default_bus(db: Database) -> EventBus:
    return identity.register_handlers(EventBus(), db)


def require_class(db: Database, class_id) -> Dict[str, Any]:
    course = db[CLASSES].find_one({"_id": oid(class_id)})
    if not course:
        raise NotFound("Class not found")
    return course


def adjust_counter(db: Database, class_id: ObjectId, deltas: Dict[str, int]) -> bool:
    """$inc counters on a class. Failures are logged, not raised."""
    try:
        db[CLASSES].update_one({"_id": class_id}, {"$inc": deltas})
    except PyMongoError:
        logger.exception("counter update %s failed for class %s; counters drift", deltas, class_id)
        return False
    return True


def _filters(**fields) -> Dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None and v != ""}


def _decide(db: Database, collection: str, doc_id: str, action: str, bus: Optional[EventBus], label: str) -> Dict[str, Any]:
    if action not in ACTIONS:
        raise InvalidInput("Invalid action", {"action": action})
    decided = db[collection].find_one_and_update(
        {"_id": oid(doc_id), "status": "pending"},
        {"$set": {"status": ACTIONS[action]}},
        return_document=ReturnDocument.AFTER,
    )
    if decided is None:
        raise NotFound(f"{label} not found or already processed")
    logger.info("%s %s %s", label, doc_id, ACTIONS[action])

    if action == "approve":
        email = decided.get("instructor_email")
        if email:
            bus = bus or default_bus(db)
            event = TeacherPromotionRequested(email=email, source=collection, source_id=str(doc_id))
            if not bus.publish(event):
                logger.error("promotion after %s %s approval did not complete", label, doc_id)
    return serialize_doc(decided)


# ----------------------
# Teacher requests
# ----------------------

@store_operation
def submit_teacher_request(db: Database, fields: Dict[str, Any]) -> str:
    fields = {k: v for k, v in fields.items() if k not in ("status", "created_at")}
    request_id = create_document(db, TEACHER_REQUESTS, build(TeacherRequest, **fields))
    logger.info("teacher request %s submitted", request_id)
    return request_id


@store_operation
def list_teacher_requests(
    db: Database,
    category: Optional[str] = None,
    experience: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
):
    query = _filters(category=category, experience=experience, status=status)
    items, total_pages, current_page = paginate(db, TEACHER_REQUESTS, query, page, limit)
    return [serialize_doc(i) for i in items], total_pages, current_page


@store_operation
def decide_teacher_request(db: Database, request_id: str, action: str, bus: Optional[EventBus] = None) -> Dict[str, Any]:
    return _decide(db, TEACHER_REQUESTS, request_id, action, bus, "Teacher request")


# ----------------------
# Class offerings
# ----------------------

@store_operation
def submit_class_offering(db: Database, fields: Dict[str, Any]) -> str:
    fields = {k: v for k, v in fields.items() if k not in DERIVED_CLASS_FIELDS}
    class_id = create_document(db, CLASSES, build(ClassOffering, **fields))
    logger.info("class %s submitted", class_id)
    return class_id


@store_operation
def list_class_offerings(
    db: Database,
    instructor_email: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    experience: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
):
    query = _filters(
        instructor_email=instructor_email, status=status, category=category, experience=experience
    )
    items, total_pages, current_page = paginate(db, CLASSES, query, page, limit)
    return [serialize_doc(i) for i in items], total_pages, current_page


@store_operation
def list_all_class_offerings(db: Database):
    return [serialize_doc(c) for c in get_documents(db, CLASSES)]


@store_operation
def get_class_offering(db: Database, class_id: str) -> Dict[str, Any]:
    return serialize_doc(require_class(db, class_id))


@store_operation
def update_class_offering(db: Database, class_id: str, changes: Dict[str, Any]) -> None:
    data = {k: v for k, v in changes.items() if k in MUTABLE_CLASS_FIELDS and v is not None}
    if "price" in data and data["price"] < 0:
        raise InvalidInput("price must not be negative")
    class_oid = oid(class_id)
    if not data:
        raise NotFound("Class not found or no changes made")
    result = db[CLASSES].update_one({"_id": class_oid}, {"$set": data})
    if result.modified_count == 0:
        raise NotFound("Class not found or no changes made")
    logger.info("class %s updated: %s", class_id, sorted(data))


@store_operation
def decide_class_offering(db: Database, class_id: str, action: str, bus: Optional[EventBus] = None) -> Dict[str, Any]:
    return _decide(db, CLASSES, class_id, action, bus, "Class")


@store_operation
def delete_class_offering(db: Database, class_id: str) -> None:
    # Child enrollments, assignments, evaluations and resources are left in place.
    result = db[CLASSES].delete_one({"_id": oid(class_id)})
    if result.deleted_count == 0:
        raise NotFound("Class not found")
    logger.info("class %s deleted", class_id)


@store_operation
def reconcile_class_counters(db: Database, class_id: str) -> Dict[str, Any]:
    """Recompute every derived counter of a class from its child documents."""
    class_oid = require_class(db, class_id)["_id"]
    assignment_ids = [a["_id"] for a in db[ASSIGNMENTS].find({"class_id": class_oid}, {"_id": 1})]
    ratings = [e["rating"] for e in db[EVALUATIONS].find({"class_id": class_oid}, {"rating": 1})]
    counters = {
        "total_enrollment": db[ENROLLMENTS].count_documents({"class_id": class_oid}),
        "total_assignments": len(assignment_ids),
        "total_submissions": db[SUBMISSIONS].count_documents({"assignment_id": {"$in": assignment_ids}}),
        "total_reviews": len(ratings),
    }
    update: Dict[str, Any] = {"$set": counters}
    if ratings:
        counters["average_rating"] = sum(ratings) / len(ratings)
    else:
        update["$unset"] = {"average_rating": ""}
    db[CLASSES].update_one({"_id": class_oid}, update)
    logger.info("class %s counters reconciled: %s", class_id, counters)
    return counters
