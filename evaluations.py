"""
Class evaluations (student reviews).

After every new evaluation the class's average_rating and total_reviews are
recomputed from the full, freshly read set of its evaluations rather than
adjusted incrementally, so each write stores a value that is correct for the
snapshot it read.
"""
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from courses import require_class
from database import CLASSES, EVALUATIONS, create_document, serialize_doc, store_operation
from errors import Conflict
from schemas import Evaluation, build

logger = logging.getLogger("learnify.evaluations")


def refresh_rating(db: Database, class_oid: ObjectId) -> Dict[str, Any]:
    ratings = [e["rating"] for e in db[EVALUATIONS].find({"class_id": class_oid}, {"rating": 1})]
    summary = {
        "average_rating": sum(ratings) / len(ratings) if ratings else None,
        "total_reviews": len(ratings),
    }
    db[CLASSES].update_one({"_id": class_oid}, {"$set": summary})
    return summary


@store_operation
def evaluate(
    db: Database,
    class_id: str,
    user_id: str,
    rating: float,
    name: Optional[str] = None,
    photo: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    class_oid = require_class(db, class_id)["_id"]
    if db[EVALUATIONS].find_one({"class_id": class_oid, "user_id": user_id}):
        raise Conflict("You have already submitted a review for this class")
    evaluation = build(
        Evaluation,
        class_id=class_oid,
        user_id=user_id,
        name=name,
        photo=photo,
        rating=rating,
        description=description,
    )
    try:
        create_document(db, EVALUATIONS, evaluation)
    except DuplicateKeyError as exc:
        raise Conflict("You have already submitted a review for this class") from exc
    logger.info("class %s evaluated by %s", class_id, user_id)

    try:
        return refresh_rating(db, class_oid)
    except PyMongoError:
        logger.exception("rating refresh failed for class %s", class_id)
        return {}


@store_operation
def list_all_reviews(db: Database) -> List[Dict[str, Any]]:
    """Every evaluation with its class context, newest first.

    Unlike the submission views this is an inner join: reviews of deleted
    classes are left out.
    """
    evaluations = list(db[EVALUATIONS].find().sort("submitted_at", -1))
    class_ids = list({e["class_id"] for e in evaluations})
    classes = {c["_id"]: c for c in db[CLASSES].find({"_id": {"$in": class_ids}})} if class_ids else {}

    reviews = []
    for evaluation in evaluations:
        course = classes.get(evaluation["class_id"])
        if course is None:
            continue
        reviews.append(serialize_doc({
            "_id": evaluation["_id"],
            "user_id": evaluation.get("user_id"),
            "name": evaluation.get("name"),
            "photo": evaluation.get("photo"),
            "rating": evaluation.get("rating"),
            "description": evaluation.get("description"),
            "submitted_at": evaluation.get("submitted_at"),
            "class_name": course.get("title"),
            "instructor_name": course.get("instructor_name"),
            "class_image": course.get("image"),
        }))
    return reviews
