"""Users and their roles."""
import logging
import re
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import USERS, create_document, oid, serialize_doc, store_operation
from errors import Conflict, InvalidInput, NotFound
from events import EventBus, TeacherPromotionRequested
from schemas import ROLES, User, build

logger = logging.getLogger("learnify.identity")


def _require_role(role: str) -> str:
    if role not in ROLES:
        raise InvalidInput("Invalid role", {"role": role})
    return role


@store_operation
def register_user(db: Database, uid: str, name: str, email: str, photo: Optional[str] = None) -> str:
    user = build(User, uid=uid, name=name, email=email, photo=photo)
    existing = db[USERS].find_one({"$or": [{"uid": user.uid}, {"email": user.email}]})
    if existing:
        raise Conflict("User already exists")
    try:
        user_id = create_document(db, USERS, user)
    except DuplicateKeyError as exc:
        raise Conflict("User already exists") from exc
    logger.info("registered user %s", user_id)
    return user_id


@store_operation
def list_users(db: Database, email: Optional[str] = None) -> List[Dict[str, Any]]:
    query = {"email": email} if email else {}
    return [serialize_doc(u) for u in db[USERS].find(query)]


@store_operation
def get_user_by_email(db: Database, email: str) -> Dict[str, Any]:
    user = db[USERS].find_one({"email": email})
    if not user:
        raise NotFound("User not found")
    return serialize_doc(user)


@store_operation
def search_users(db: Database, term: str) -> List[Dict[str, Any]]:
    pattern = {"$regex": re.escape(term or ""), "$options": "i"}
    query = {"$or": [{"name": pattern}, {"email": pattern}]}
    return [serialize_doc(u) for u in db[USERS].find(query)]


@store_operation
def get_role(db: Database, uid: str) -> str:
    user = db[USERS].find_one({"uid": uid})
    if not user:
        raise NotFound("User not found")
    return user.get("role") or "student"


@store_operation
def set_role(db: Database, user_id: str, role: str) -> None:
    _require_role(role)
    result = db[USERS].update_one({"_id": oid(user_id)}, {"$set": {"role": role}})
    if result.modified_count == 0:
        raise NotFound("User not found or role already set")
    logger.info("user %s role set to %s", user_id, role)


def make_admin(db: Database, user_id: str) -> None:
    set_role(db, user_id, "admin")


@store_operation
def set_role_by_email(db: Database, email: str, role: str) -> None:
    _require_role(role)
    result = db[USERS].update_one({"email": email}, {"$set": {"role": role}})
    if result.modified_count == 0:
        raise NotFound(f"User not found or already a {role}")
    logger.info("user with email %s role set to %s", email, role)


@store_operation
def promote(db: Database, email: str, role: str = "teacher") -> bool:
    """Elevate a user to ``role``; never lowers an existing role.

    Returns False when no user needed the change.
    """
    _require_role(role)
    lower = list(ROLES[: ROLES.index(role)])
    result = db[USERS].update_one(
        {"email": email, "role": {"$in": lower}}, {"$set": {"role": role}}
    )
    if result.modified_count == 0:
        logger.info("promotion of %s to %s had no effect", email, role)
        return False
    logger.info("promoted %s to %s", email, role)
    return True


def register_handlers(bus: EventBus, db: Database) -> EventBus:
    def on_teacher_promotion(event: TeacherPromotionRequested) -> None:
        promote(db, event.email, "teacher")

    bus.subscribe(TeacherPromotionRequested, on_teacher_promotion)
    return bus
