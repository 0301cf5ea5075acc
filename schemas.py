"""
Database Schemas for Learnify

Each Pydantic model corresponds to a MongoDB collection (see the collection
constants in database.py). Derived fields (status, counters, timestamps) carry
their initial values here so a client can never set them on insert.
"""
from datetime import datetime, timezone
from typing import Literal, Optional, Type, TypeVar

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError

from errors import InvalidInput

Role = Literal["student", "teacher", "admin"]
ReviewStatus = Literal["pending", "approved", "rejected"]
SubmissionStatus = Literal["submitted", "graded"]
ResourceType = Literal["link", "document", "video", "image"]

ROLES = ("student", "teacher", "admin")
RESOURCE_TYPES = ("link", "document", "video", "image")

# Fields only the engine may write on a class offering
DERIVED_CLASS_FIELDS = (
    "status",
    "total_enrollment",
    "total_assignments",
    "total_submissions",
    "average_rating",
    "total_reviews",
    "created_at",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    uid: str = Field(..., min_length=1, description="External identity provider uid")
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    photo: Optional[str] = Field(None, description="Profile photo URL")
    role: Role = Field("student", description="User role")
    created_at: datetime = Field(default_factory=_now)


class TeacherRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    instructor_email: EmailStr
    name: Optional[str] = None
    category: str
    experience: str
    status: ReviewStatus = "pending"
    created_at: datetime = Field(default_factory=_now)


class ClassOffering(BaseModel):
    model_config = ConfigDict(extra="allow")

    instructor_email: EmailStr
    instructor_name: Optional[str] = None
    title: str
    price: float = Field(0, ge=0)
    description: Optional[str] = None
    image: Optional[str] = None
    status: ReviewStatus = "pending"
    total_enrollment: int = 0
    total_assignments: int = 0
    total_submissions: int = 0
    total_reviews: int = 0
    created_at: datetime = Field(default_factory=_now)


class Enrollment(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    class_id: ObjectId
    user_id: str
    enrolled_at: datetime = Field(default_factory=_now)
    progress: float = 0
    completed: bool = False


class Assignment(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    class_id: ObjectId
    title: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    max_points: float = Field(100, gt=0)
    created_at: datetime = Field(default_factory=_now)


class Submission(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    assignment_id: ObjectId
    user_id: str
    submission_text: str = ""
    submission_url: str = ""
    status: SubmissionStatus = "submitted"
    submitted_at: datetime = Field(default_factory=_now)


class Evaluation(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    class_id: ObjectId
    user_id: str
    name: Optional[str] = None
    photo: Optional[str] = None
    rating: float = Field(..., ge=1, le=5)
    description: Optional[str] = None
    submitted_at: datetime = Field(default_factory=_now)


class Payment(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    class_id: ObjectId
    user_id: str
    amount: float = Field(..., ge=0)
    status: Literal["completed"] = "completed"
    transaction_id: str
    created_at: datetime = Field(default_factory=_now)


class Resource(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    class_id: ObjectId
    title: str = Field(..., min_length=1)
    description: str = ""
    type: ResourceType = "link"
    url: str = Field(..., min_length=1)
    teacher_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


M = TypeVar("M", bound=BaseModel)


def build(model: Type[M], **fields) -> M:
    """Validate a document, reporting failures as InvalidInput."""
    try:
        return model(**fields)
    except ValidationError as exc:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
            for err in exc.errors()
        ]
        raise InvalidInput(f"Invalid {model.__name__}", {"errors": errors}) from exc
