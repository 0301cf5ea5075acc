"""Enrollment of students in class offerings."""
import logging
import math
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from courses import adjust_counter, require_class
from database import CLASSES, ENROLLMENTS, create_document, oid, serialize_doc, store_operation
from errors import Conflict, InvalidInput, NotFound
from schemas import Enrollment, build

logger = logging.getLogger("learnify.enrollment")


@store_operation
def enroll(db: Database, class_id: str, user_id: str) -> str:
    class_oid = require_class(db, class_id)["_id"]
    if db[ENROLLMENTS].find_one({"class_id": class_oid, "user_id": user_id}):
        raise Conflict("User already enrolled in this class")
    enrollment = build(Enrollment, class_id=class_oid, user_id=user_id)
    try:
        enrollment_id = create_document(db, ENROLLMENTS, enrollment)
    except DuplicateKeyError as exc:
        raise Conflict("User already enrolled in this class") from exc
    adjust_counter(db, class_oid, {"total_enrollment": 1})
    logger.info("user %s enrolled in class %s", user_id, class_id)
    return enrollment_id


@store_operation
def list_enrolled_courses(db: Database, user_id: str) -> List[Dict[str, Any]]:
    """Each enrolled class merged with the student's progress on it.

    Enrollments whose class no longer exists are dropped.
    """
    enrollments = list(db[ENROLLMENTS].find({"user_id": user_id}))
    if not enrollments:
        return []
    class_ids = [e["class_id"] for e in enrollments]
    classes = {c["_id"]: c for c in db[CLASSES].find({"_id": {"$in": class_ids}})}

    enriched = []
    for enrollment in enrollments:
        course = classes.get(enrollment["class_id"])
        if course is None:
            logger.debug("dropping enrollment %s: class %s missing", enrollment["_id"], enrollment["class_id"])
            continue
        enriched.append(serialize_doc({
            **course,
            "progress": enrollment.get("progress", 0),
            "completed": enrollment.get("completed", False),
            "enrolled_at": enrollment.get("enrolled_at"),
        }))
    return enriched


@store_operation
def update_progress(db: Database, class_id: str, progress: float, user_id: Optional[str] = None) -> None:
    """Set progress on a student's enrollment.

    Without a user the value goes on the class and on every enrollment in it.
    The value is stored as given; no bound is applied.
    """
    try:
        progress = float(progress)
    except (TypeError, ValueError):
        raise InvalidInput("progress must be numeric", {"progress": progress})
    if not math.isfinite(progress):
        raise InvalidInput("progress must be numeric", {"progress": progress})
    if progress.is_integer():
        progress = int(progress)

    class_oid = oid(class_id)
    changes = {"progress": progress, "completed": progress >= 100}
    if user_id is None:
        result = db[CLASSES].update_one({"_id": class_oid}, {"$set": {"progress": progress}})
        if result.matched_count == 0:
            raise NotFound("Class not found")
        result = db[ENROLLMENTS].update_many({"class_id": class_oid}, {"$set": changes})
        logger.info("progress of class %s set to %s on %d enrollments", class_id, progress, result.matched_count)
        return
    result = db[ENROLLMENTS].update_one({"class_id": class_oid, "user_id": user_id}, {"$set": changes})
    if result.matched_count == 0:
        raise NotFound("Enrollment not found")
    logger.info("progress of %s in class %s set to %s", user_id, class_id, progress)
