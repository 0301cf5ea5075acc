from datetime import datetime, timedelta, timezone

import pytest

import database
import evaluations
from errors import Conflict, InvalidInput, NotFound


def test_average_is_recomputed_from_all_evaluations(db, class_doc, make_class):
    class_id = make_class()
    for user, rating in (("u1", 5), ("u2", 3), ("u3", 4)):
        summary = evaluations.evaluate(db, class_id, user, rating, name=user)

    assert summary == {"average_rating": 4.0, "total_reviews": 3}
    doc = class_doc(class_id)
    assert doc["average_rating"] == 4.0
    assert doc["total_reviews"] == 3


def test_second_evaluation_by_same_user_conflicts(db, class_doc, make_class):
    class_id = make_class()
    for user, rating in (("u1", 5), ("u2", 3), ("u3", 4)):
        evaluations.evaluate(db, class_id, user, rating)

    with pytest.raises(Conflict):
        evaluations.evaluate(db, class_id, "u2", 1)

    doc = class_doc(class_id)
    assert doc["average_rating"] == 4.0
    assert doc["total_reviews"] == 3


def test_same_user_may_review_different_classes(db, make_class):
    first = make_class(title="One")
    second = make_class(title="Two")
    evaluations.evaluate(db, first, "u1", 5)
    assert evaluations.evaluate(db, second, "u1", 2)["average_rating"] == 2


@pytest.mark.parametrize("rating", [0, 5.5, "great"])
def test_rating_must_be_in_range(db, make_class, rating):
    class_id = make_class()
    with pytest.raises(InvalidInput):
        evaluations.evaluate(db, class_id, "u1", rating)
    assert db[database.EVALUATIONS].count_documents({}) == 0


def test_evaluate_missing_class(db):
    with pytest.raises(NotFound):
        evaluations.evaluate(db, "64b7f0c2a1b2c3d4e5f60718", "u1", 4)


def test_reviews_feed_is_inner_join_newest_first(db, make_class):
    kept = make_class(title="Kept", instructor_name="Ms Kay", image="https://img/kept.png")
    gone = make_class(title="Gone")
    evaluations.evaluate(db, kept, "u1", 5, name="Uno", description="Great")
    evaluations.evaluate(db, kept, "u2", 3, name="Dos")
    evaluations.evaluate(db, gone, "u1", 4)
    db[database.EVALUATIONS].update_one(
        {"user_id": "u1", "class_id": database.oid(kept)},
        {"$set": {"submitted_at": datetime.now(timezone.utc) - timedelta(days=1)}},
    )
    db[database.CLASSES].delete_one({"_id": database.oid(gone)})

    reviews = evaluations.list_all_reviews(db)

    assert [r["name"] for r in reviews] == ["Dos", "Uno"]
    assert reviews[1]["class_name"] == "Kept"
    assert reviews[1]["instructor_name"] == "Ms Kay"
    assert reviews[1]["class_image"] == "https://img/kept.png"
    assert reviews[1]["description"] == "Great"


def test_reviews_feed_empty(db):
    assert evaluations.list_all_reviews(db) == []
