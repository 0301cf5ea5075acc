"""
Assignments and submissions.

Counter maintenance on the owning class:
- creating an assignment adds one to total_assignments,
- a student's first submission adds one to total_submissions (resubmitting
  updates the existing record and leaves the counter alone),
- deleting an assignment removes its submissions and takes them, and the
  assignment itself, off the counters.

Each step commits on its own; see courses.reconcile_class_counters for repair.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from courses import adjust_counter, require_class
from database import (
    ASSIGNMENTS,
    CLASSES,
    SUBMISSIONS,
    USERS,
    create_document,
    now,
    oid,
    serialize_doc,
    store_operation,
)
from errors import InvalidInput, NotFound
from schemas import Assignment, Submission, build

logger = logging.getLogger("learnify.assignments")


def _require_assignment(db: Database, assignment_id) -> Dict[str, Any]:
    assignment = db[ASSIGNMENTS].find_one({"_id": oid(assignment_id)})
    if not assignment:
        raise NotFound("Assignment not found")
    return assignment


# ----------------------
# Assignments
# ----------------------

@store_operation
def create_assignment(
    db: Database,
    class_id: str,
    title: str,
    description: Optional[str] = None,
    deadline: Optional[datetime] = None,
    max_points: Optional[float] = None,
) -> str:
    class_oid = require_class(db, class_id)["_id"]
    assignment = build(
        Assignment,
        class_id=class_oid,
        title=title,
        description=description,
        deadline=deadline,
        max_points=max_points or 100,
    )
    assignment_id = create_document(db, ASSIGNMENTS, assignment)
    adjust_counter(db, class_oid, {"total_assignments": 1})
    logger.info("assignment %s created in class %s", assignment_id, class_id)
    return assignment_id


@store_operation
def get_assignment(db: Database, assignment_id: str) -> Dict[str, Any]:
    assignment = _require_assignment(db, assignment_id)
    count = db[SUBMISSIONS].count_documents({"assignment_id": assignment["_id"]})
    return serialize_doc({**assignment, "submission_count": count})


@store_operation
def list_assignments(db: Database, class_id: str) -> List[Dict[str, Any]]:
    assignments = list(db[ASSIGNMENTS].find({"class_id": oid(class_id)}).sort("created_at", 1))
    if not assignments:
        return []
    counts = {
        row["_id"]: row["count"]
        for row in db[SUBMISSIONS].aggregate([
            {"$match": {"assignment_id": {"$in": [a["_id"] for a in assignments]}}},
            {"$group": {"_id": "$assignment_id", "count": {"$sum": 1}}},
        ])
    }
    return [serialize_doc({**a, "submission_count": counts.get(a["_id"], 0)}) for a in assignments]


@store_operation
def update_assignment(
    db: Database,
    assignment_id: str,
    title: str,
    description: Optional[str] = None,
    deadline: Optional[datetime] = None,
    max_points: Optional[float] = None,
) -> None:
    max_points = max_points or 100
    if max_points <= 0:
        raise InvalidInput("max_points must be positive")
    result = db[ASSIGNMENTS].update_one(
        {"_id": oid(assignment_id)},
        {"$set": {
            "title": title,
            "description": description,
            "deadline": deadline,
            "max_points": max_points,
            "updated_at": now(),
        }},
    )
    if result.modified_count == 0:
        raise NotFound("Assignment not found or no changes made")
    logger.info("assignment %s updated", assignment_id)


@store_operation
def delete_assignment(db: Database, assignment_id: str) -> None:
    assignment = _require_assignment(db, assignment_id)
    removed = db[SUBMISSIONS].delete_many({"assignment_id": assignment["_id"]}).deleted_count
    db[ASSIGNMENTS].delete_one({"_id": assignment["_id"]})
    adjust_counter(db, assignment["class_id"], {
        "total_assignments": -1,
        "total_submissions": -removed,
    })
    logger.info("assignment %s deleted with %d submissions", assignment_id, removed)


# ----------------------
# Submissions
# ----------------------

@store_operation
def submit(
    db: Database,
    assignment_id: str,
    user_id: str,
    submission_text: Optional[str] = None,
    submission_url: Optional[str] = None,
) -> Tuple[str, bool]:
    """Submit or resubmit. Returns (submission id, whether it was created)."""
    assignment = _require_assignment(db, assignment_id)
    key = {"assignment_id": assignment["_id"], "user_id": user_id}
    changes = {
        "submission_text": submission_text or "",
        "submission_url": submission_url or "",
        "submitted_at": now(),
        "status": "submitted",
    }

    existing = db[SUBMISSIONS].find_one(key)
    if existing is None:
        submission = build(Submission, **key, **changes)
        try:
            submission_id = create_document(db, SUBMISSIONS, submission)
        except DuplicateKeyError:
            # a concurrent first submission won the insert
            existing = db[SUBMISSIONS].find_one(key)
            if existing is None:
                # and was removed before it could be re-read
                raise NotFound("Submission not found")
        else:
            adjust_counter(db, assignment["class_id"], {"total_submissions": 1})
            logger.info("submission %s created for assignment %s", submission_id, assignment_id)
            return submission_id, True

    db[SUBMISSIONS].update_one({"_id": existing["_id"]}, {"$set": changes})
    logger.info("submission %s resubmitted", existing["_id"])
    return str(existing["_id"]), False


@store_operation
def grade_submission(db: Database, submission_id: str, grade, feedback: Optional[str] = None) -> None:
    submission = db[SUBMISSIONS].find_one({"_id": oid(submission_id)})
    if not submission:
        raise NotFound("Submission not found")
    try:
        grade = float(grade)
    except (TypeError, ValueError):
        raise InvalidInput("grade must be numeric", {"grade": grade})
    if not math.isfinite(grade):
        raise InvalidInput("grade must be numeric", {"grade": grade})
    if grade.is_integer():
        grade = int(grade)

    result = db[SUBMISSIONS].update_one(
        {"_id": submission["_id"]},
        {"$set": {"grade": grade, "feedback": feedback, "status": "graded", "graded_at": now()}},
    )
    if result.matched_count == 0:
        raise NotFound("Submission not found")
    logger.info("submission %s graded %s", submission_id, grade)


@store_operation
def list_submissions_for_assignment(db: Database, assignment_id: str) -> List[Dict[str, Any]]:
    """Teacher view: submissions with the student's profile, newest first.

    Students are matched on their identity-provider uid; unmatched rows keep
    no student fields.
    """
    submissions = list(
        db[SUBMISSIONS].find({"assignment_id": oid(assignment_id)}).sort("submitted_at", -1)
    )
    uids = list({s["user_id"] for s in submissions})
    users = {u["uid"]: u for u in db[USERS].find({"uid": {"$in": uids}})} if uids else {}

    rows = []
    for submission in submissions:
        row = dict(submission)
        student = users.get(submission["user_id"])
        if student is not None:
            row["student_name"] = student.get("name")
            row["student_email"] = student.get("email")
            row["student_photo"] = student.get("photo")
        rows.append(serialize_doc(row))
    return rows


@store_operation
def list_submissions_for_student(db: Database, user_id: str) -> List[Dict[str, Any]]:
    """Student view: submissions with assignment and class context, newest first.

    Missing assignments or classes leave their fields off the row.
    """
    submissions = list(db[SUBMISSIONS].find({"user_id": user_id}).sort("submitted_at", -1))
    assignment_ids = list({s["assignment_id"] for s in submissions})
    assignments = (
        {a["_id"]: a for a in db[ASSIGNMENTS].find({"_id": {"$in": assignment_ids}})}
        if assignment_ids else {}
    )
    class_ids = list({a["class_id"] for a in assignments.values()})
    classes = {c["_id"]: c for c in db[CLASSES].find({"_id": {"$in": class_ids}})} if class_ids else {}

    rows = []
    for submission in submissions:
        row = dict(submission)
        assignment = assignments.get(submission["assignment_id"])
        if assignment is not None:
            row["assignment_title"] = assignment.get("title")
            row["assignment_deadline"] = assignment.get("deadline")
            row["max_points"] = assignment.get("max_points")
            course = classes.get(assignment["class_id"])
            if course is not None:
                row["class_name"] = course.get("title")
                row["class_id"] = course["_id"]
        rows.append(serialize_doc(row))
    return rows
