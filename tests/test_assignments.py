"""
Assignments, submissions and grading, including the counters they keep on
the owning class.
"""
from datetime import datetime, timedelta, timezone

import pytest

import assignments
import database
from errors import InvalidInput, NotFound

MISSING_ID = "64b7f0c2a1b2c3d4e5f60718"


@pytest.fixture
def class_id(make_class):
    return make_class(title="Algorithms")


@pytest.fixture
def assignment_id(db, class_id):
    return assignments.create_assignment(db, class_id, "Sorting", "Implement merge sort")


def test_create_assignment_counts_and_defaults(db, class_doc, class_id, assignment_id):
    doc = db[database.ASSIGNMENTS].find_one({"_id": database.oid(assignment_id)})
    assert doc["max_points"] == 100
    assert doc["class_id"] == database.oid(class_id)
    assert class_doc(class_id)["total_assignments"] == 1


def test_create_assignment_for_missing_class(db):
    with pytest.raises(NotFound):
        assignments.create_assignment(db, MISSING_ID, "Orphan")


def test_update_assignment_replaces_fields(db, assignment_id):
    deadline = datetime(2030, 1, 15, tzinfo=timezone.utc)
    assignments.update_assignment(db, assignment_id, "Sorting v2", None, deadline, 50)
    doc = assignments.get_assignment(db, assignment_id)
    assert doc["title"] == "Sorting v2"
    assert doc["description"] is None
    assert doc["max_points"] == 50
    assert doc["updated_at"]
    assert doc["submission_count"] == 0

    assignments.update_assignment(db, assignment_id, "Sorting v3")
    assert assignments.get_assignment(db, assignment_id)["max_points"] == 100

    with pytest.raises(NotFound):
        assignments.update_assignment(db, MISSING_ID, "x")


def test_first_submit_creates_and_counts(db, class_doc, class_id, assignment_id):
    submission_id, created = assignments.submit(db, assignment_id, "student-1", "my answer")
    assert created is True
    doc = db[database.SUBMISSIONS].find_one({"_id": database.oid(submission_id)})
    assert doc["status"] == "submitted"
    assert doc["submission_text"] == "my answer"
    assert doc["submission_url"] == ""
    assert class_doc(class_id)["total_submissions"] == 1


def test_resubmit_updates_in_place(db, class_doc, class_id, assignment_id):
    first_id, _ = assignments.submit(db, assignment_id, "student-1", "draft", "https://v1")
    assignments.grade_submission(db, first_id, 70, "Needs work")
    before = db[database.SUBMISSIONS].find_one({"_id": database.oid(first_id)})

    second_id, created = assignments.submit(db, assignment_id, "student-1", submission_url="https://v2")

    assert created is False
    assert second_id == first_id
    assert db[database.SUBMISSIONS].count_documents({}) == 1
    doc = db[database.SUBMISSIONS].find_one({"_id": database.oid(first_id)})
    assert doc["submission_text"] == ""
    assert doc["submission_url"] == "https://v2"
    assert doc["status"] == "submitted"
    assert doc["submitted_at"] >= before["submitted_at"]
    assert doc["grade"] == 70
    assert doc["feedback"] == "Needs work"
    assert class_doc(class_id)["total_submissions"] == 1


def test_submit_to_missing_assignment(db):
    with pytest.raises(NotFound):
        assignments.submit(db, MISSING_ID, "student-1", "answer")


def test_grade_submission(db, assignment_id):
    submission_id, _ = assignments.submit(db, assignment_id, "student-1", "answer")
    assignments.grade_submission(db, submission_id, "85", "Good work")
    doc = db[database.SUBMISSIONS].find_one({"_id": database.oid(submission_id)})
    assert doc["status"] == "graded"
    assert doc["grade"] == 85
    assert doc["feedback"] == "Good work"
    assert doc["graded_at"]


def test_grade_missing_submission(db):
    with pytest.raises(NotFound):
        assignments.grade_submission(db, MISSING_ID, 85, "Good work")


@pytest.mark.parametrize("grade", [101, -5, 85.5])
def test_grade_is_stored_as_given(db, assignment_id, grade):
    submission_id, _ = assignments.submit(db, assignment_id, "student-1", "answer")
    assignments.grade_submission(db, submission_id, grade)
    doc = db[database.SUBMISSIONS].find_one({"_id": database.oid(submission_id)})
    assert doc["status"] == "graded"
    assert doc["grade"] == grade


def test_grade_above_a_small_max_points(db, class_id):
    quiz_id = assignments.create_assignment(db, class_id, "Quiz", max_points=10)
    submission_id, _ = assignments.submit(db, quiz_id, "student-1", "answer")
    assignments.grade_submission(db, submission_id, 85, "Good work")
    doc = db[database.SUBMISSIONS].find_one({"_id": database.oid(submission_id)})
    assert doc["status"] == "graded"
    assert doc["grade"] == 85


@pytest.mark.parametrize("grade", ["abc", None, float("nan"), float("inf")])
def test_grade_must_be_numeric(db, assignment_id, grade):
    submission_id, _ = assignments.submit(db, assignment_id, "student-1", "answer")
    with pytest.raises(InvalidInput):
        assignments.grade_submission(db, submission_id, grade)
    doc = db[database.SUBMISSIONS].find_one({"_id": database.oid(submission_id)})
    assert doc["status"] == "submitted"


def test_submit_racing_a_removed_submission(db, class_doc, class_id, assignment_id, stale_reads):
    assignments.submit(db, assignment_id, "student-1", "first")
    # the insert collides with a submission the re-read no longer finds
    with pytest.raises(NotFound):
        assignments.submit(stale_reads(database.SUBMISSIONS), assignment_id, "student-1", "second")
    assert db[database.SUBMISSIONS].count_documents({}) == 1
    assert class_doc(class_id)["total_submissions"] == 1


def test_delete_assignment_cascades(db, class_doc, class_id, assignment_id):
    other_id = assignments.create_assignment(db, class_id, "Graphs")
    assignments.submit(db, assignment_id, "student-1", "a")
    assignments.submit(db, assignment_id, "student-2", "b")
    assignments.submit(db, other_id, "student-1", "c")
    assert class_doc(class_id)["total_assignments"] == 2
    assert class_doc(class_id)["total_submissions"] == 3

    assignments.delete_assignment(db, assignment_id)

    assert db[database.SUBMISSIONS].count_documents({"assignment_id": database.oid(assignment_id)}) == 0
    assert db[database.SUBMISSIONS].count_documents({}) == 1
    doc = class_doc(class_id)
    assert doc["total_assignments"] == 1
    assert doc["total_submissions"] == 1

    with pytest.raises(NotFound):
        assignments.delete_assignment(db, assignment_id)
    assert class_doc(class_id)["total_assignments"] == 1


def test_list_assignments_with_counts(db, class_id, assignment_id):
    other_id = assignments.create_assignment(db, class_id, "Graphs")
    assignments.submit(db, assignment_id, "student-1", "a")
    assignments.submit(db, assignment_id, "student-2", "b")

    counts = {a["id"]: a["submission_count"] for a in assignments.list_assignments(db, class_id)}
    assert counts == {assignment_id: 2, other_id: 0}
    assert assignments.list_assignments(db, MISSING_ID) == []


def test_teacher_view_joins_student_profile(db, make_user, assignment_id):
    uid, email = make_user(name="Linus")
    assignments.submit(db, assignment_id, uid, "registered")
    assignments.submit(db, assignment_id, "unregistered-uid", "anonymous")
    # make the ordering deterministic
    earlier = datetime.now(timezone.utc) - timedelta(hours=1)
    db[database.SUBMISSIONS].update_one({"user_id": uid}, {"$set": {"submitted_at": earlier}})

    rows = assignments.list_submissions_for_assignment(db, assignment_id)

    assert [r["user_id"] for r in rows] == ["unregistered-uid", uid]
    assert "student_name" not in rows[0]
    assert rows[1]["student_name"] == "Linus"
    assert rows[1]["student_email"] == email


def test_student_view_joins_assignment_and_class(db, class_id, assignment_id):
    orphan_class = database.oid(MISSING_ID)
    orphan_assignment = db[database.ASSIGNMENTS].insert_one(
        {"class_id": orphan_class, "title": "Orphaned", "max_points": 10}
    ).inserted_id
    assignments.submit(db, assignment_id, "student-1", "a")
    assignments.submit(db, str(orphan_assignment), "student-1", "b")
    db[database.SUBMISSIONS].insert_one(
        {"assignment_id": database.oid("64b7f0c2a1b2c3d4e5f60719"), "user_id": "student-1",
         "submitted_at": datetime.now(timezone.utc) - timedelta(days=1), "status": "submitted"}
    )

    rows = assignments.list_submissions_for_student(db, "student-1")

    assert len(rows) == 3
    by_title = {r.get("assignment_title"): r for r in rows}
    full = by_title["Sorting"]
    assert full["class_name"] == "Algorithms"
    assert full["class_id"] == class_id
    assert full["max_points"] == 100
    partial = by_title["Orphaned"]
    assert partial["max_points"] == 10
    assert "class_name" not in partial
    bare = by_title[None]
    assert "max_points" not in bare
    assert rows[-1] is bare
