import logging
import os
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo.database import Database

import assignments
import courses
import database
import enrollment
import evaluations
import identity
import payments
import resources
from errors import DependencyFailure, EngineError
from schemas import ResourceType, Role

logger = logging.getLogger("learnify.api")

app = FastAPI(title="Learnify API")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)


# ----------------------
# Utils
# ----------------------

def get_db() -> Database:
    if database.db is None:
        raise DependencyFailure("Database unavailable")
    return database.db


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "details": exc.details})


# ----------------------
# Request models
# ----------------------

class RegisterRequest(BaseModel):
    uid: str
    name: str
    email: EmailStr
    photo: Optional[str] = None


class RoleUpdate(BaseModel):
    role: Role


class EmailBody(BaseModel):
    email: EmailStr


class TeacherRequestCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    instructor_email: EmailStr
    name: Optional[str] = None
    category: str
    experience: str


class ClassCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    instructor_email: EmailStr
    instructor_name: Optional[str] = None
    title: str
    price: float = Field(0, ge=0)
    description: Optional[str] = None
    image: Optional[str] = None


class ClassUpdate(BaseModel):
    title: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    image: Optional[str] = None


class ProgressUpdate(BaseModel):
    progress: float
    user_id: Optional[str] = None


class EnrollRequest(BaseModel):
    class_id: str
    user_id: str


class AssignmentBody(BaseModel):
    title: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    max_points: Optional[float] = Field(None, gt=0)


class SubmissionCreate(BaseModel):
    user_id: str
    submission_text: Optional[str] = None
    submission_url: Optional[str] = None


class GradeRequest(BaseModel):
    grade: float
    feedback: Optional[str] = None


class EvaluationCreate(BaseModel):
    user_id: str
    name: Optional[str] = None
    photo: Optional[str] = None
    rating: float = Field(..., ge=1, le=5)
    description: Optional[str] = None


class ResourceCreate(BaseModel):
    title: str
    url: str
    description: Optional[str] = None
    type: ResourceType = "link"
    teacher_id: Optional[str] = None


class PaymentRequest(BaseModel):
    class_id: str
    user_id: str
    amount: float = Field(..., ge=0)
    card_number: str
    expiry_date: str
    cvv: str


def _page(items, total_pages, current_page, key="classes"):
    return {key: items, "totalPages": total_pages, "currentPage": current_page}


# ----------------------
# Startup
# ----------------------
@app.on_event("startup")
def create_indexes():
    # If DB is not configured, skip so the app can start
    if database.db is None:
        return
    try:
        database.ensure_indexes(database.db)
    except Exception:
        logger.exception("could not create indexes; uniqueness relies on existence checks only")


# ----------------------
# Basic routes
# ----------------------
@app.get("/")
def root():
    return {"message": "Learnify Server is Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "Running",
        "database": "Not Available",
        "database_url": "Set" if os.getenv("DATABASE_URL") else "Not Set",
        "database_name": "Set" if os.getenv("DATABASE_NAME") else "Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["collections"] = database.db.list_collection_names()
            response["database"] = "Connected & Working"
            response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"Connected but error: {str(e)[:80]}"
    return response


# ----------------------
# Users
# ----------------------
@app.post("/users", status_code=201)
def register(payload: RegisterRequest, db=Depends(get_db)):
    user_id = identity.register_user(db, payload.uid, payload.name, payload.email, payload.photo)
    return {"message": "User registered successfully", "userId": user_id}


@app.get("/users")
def list_users(email: Optional[str] = None, db=Depends(get_db)):
    return identity.list_users(db, email)


@app.get("/users/search")
def search_users(term: str = "", db=Depends(get_db)):
    return identity.search_users(db, term)


@app.get("/users/{uid}/role")
def get_role(uid: str, db=Depends(get_db)):
    return {"role": identity.get_role(db, uid)}


@app.put("/users/{user_id}/make-admin")
def make_admin(user_id: str, db=Depends(get_db)):
    identity.make_admin(db, user_id)
    return {"message": "User role updated to admin successfully"}


@app.put("/users/{user_id}/update-role")
def update_role(user_id: str, body: RoleUpdate, db=Depends(get_db)):
    identity.set_role(db, user_id, body.role)
    return {"message": f"User role updated to {body.role} successfully"}


@app.put("/make-teacher")
def make_teacher(body: EmailBody, db=Depends(get_db)):
    identity.set_role_by_email(db, body.email, "teacher")
    return {"message": "User role updated to teacher"}


# ----------------------
# Teacher requests
# ----------------------
@app.post("/reqteachers", status_code=201)
def submit_teacher_request(body: TeacherRequestCreate, db=Depends(get_db)):
    request_id = courses.submit_teacher_request(db, body.model_dump())
    return {"message": "Teacher request submitted successfully", "requestId": request_id}


@app.get("/reqteachers")
def list_teacher_requests(
    category: Optional[str] = None,
    experience: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db=Depends(get_db),
):
    return _page(*courses.list_teacher_requests(db, category, experience, status, page, limit), key="requests")


@app.put("/reqteachers/{request_id}/{action}")
def decide_teacher_request(request_id: str, action: str, db=Depends(get_db)):
    courses.decide_teacher_request(db, request_id, action)
    return {"message": f"Teacher request {action}d successfully"}


# ----------------------
# Class offerings
# ----------------------
@app.post("/classes", status_code=201)
def submit_class(body: ClassCreate, db=Depends(get_db)):
    class_id = courses.submit_class_offering(db, body.model_dump())
    return {"message": "Class submitted successfully", "classId": class_id}


@app.get("/classes")
def list_classes(
    instructor_email: Optional[str] = None,
    status: Optional[str] = None,
    category: Optional[str] = None,
    experience: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    db=Depends(get_db),
):
    return _page(*courses.list_class_offerings(db, instructor_email, status, category, experience, page, limit))


@app.get("/all-classes")
def all_classes(db=Depends(get_db)):
    return courses.list_all_class_offerings(db)


@app.get("/classes/{class_id}")
def get_class(class_id: str, db=Depends(get_db)):
    return courses.get_class_offering(db, class_id)


@app.put("/classes/{class_id}")
def update_class(class_id: str, body: ClassUpdate, db=Depends(get_db)):
    courses.update_class_offering(db, class_id, body.model_dump())
    return {"message": "Class updated successfully"}


@app.delete("/classes/{class_id}")
def delete_class(class_id: str, db=Depends(get_db)):
    courses.delete_class_offering(db, class_id)
    return {"message": "Class deleted successfully"}


@app.put("/classes/{class_id}/approve")
def approve_class(class_id: str, db=Depends(get_db)):
    courses.decide_class_offering(db, class_id, "approve")
    return {"message": "Class approved successfully"}


@app.put("/classes/{class_id}/reject")
def reject_class(class_id: str, db=Depends(get_db)):
    courses.decide_class_offering(db, class_id, "reject")
    return {"message": "Class rejected successfully"}


@app.put("/classes/{class_id}/progress")
def update_progress(class_id: str, body: ProgressUpdate, db=Depends(get_db)):
    enrollment.update_progress(db, class_id, body.progress, body.user_id)
    return {"message": "Progress updated successfully"}


@app.post("/classes/{class_id}/reconcile")
def reconcile_class(class_id: str, db=Depends(get_db)):
    return courses.reconcile_class_counters(db, class_id)


# ----------------------
# Enrollment
# ----------------------
@app.post("/enroll")
def enroll(body: EnrollRequest, db=Depends(get_db)):
    enrollment_id = enrollment.enroll(db, body.class_id, body.user_id)
    return {"success": True, "message": "Enrollment successful", "enrollmentId": enrollment_id}


@app.get("/enrolled-classes/{user_id}")
def enrolled_classes(user_id: str, db=Depends(get_db)):
    return {"success": True, "enrolledClasses": enrollment.list_enrolled_courses(db, user_id)}


# ----------------------
# Assignments & submissions
# ----------------------
@app.post("/classes/{class_id}/assignments", status_code=201)
def create_assignment(class_id: str, body: AssignmentBody, db=Depends(get_db)):
    assignment_id = assignments.create_assignment(
        db, class_id, body.title, body.description, body.deadline, body.max_points
    )
    return {"message": "Assignment created successfully", "assignmentId": assignment_id}


@app.get("/classes/{class_id}/assignments")
def list_assignments(class_id: str, db=Depends(get_db)):
    return {"success": True, "assignments": assignments.list_assignments(db, class_id)}


@app.get("/assignments/{assignment_id}")
def get_assignment(assignment_id: str, db=Depends(get_db)):
    return {"success": True, "assignment": assignments.get_assignment(db, assignment_id)}


@app.put("/assignments/{assignment_id}")
def update_assignment(assignment_id: str, body: AssignmentBody, db=Depends(get_db)):
    assignments.update_assignment(
        db, assignment_id, body.title, body.description, body.deadline, body.max_points
    )
    return {"success": True, "message": "Assignment updated successfully"}


@app.delete("/assignments/{assignment_id}")
def delete_assignment(assignment_id: str, db=Depends(get_db)):
    assignments.delete_assignment(db, assignment_id)
    return {"success": True, "message": "Assignment deleted successfully"}


@app.post("/assignments/{assignment_id}/submit")
def submit_assignment(assignment_id: str, body: SubmissionCreate, db=Depends(get_db)):
    submission_id, created = assignments.submit(
        db, assignment_id, body.user_id, body.submission_text, body.submission_url
    )
    content = {
        "success": True,
        "message": "Assignment submitted successfully" if created else "Submission updated successfully",
        "submissionId": submission_id,
    }
    return JSONResponse(status_code=201 if created else 200, content=content)


@app.get("/assignments/{assignment_id}/submissions")
def assignment_submissions(assignment_id: str, db=Depends(get_db)):
    return {"success": True, "submissions": assignments.list_submissions_for_assignment(db, assignment_id)}


@app.put("/submissions/{submission_id}/grade")
def grade_submission(submission_id: str, body: GradeRequest, db=Depends(get_db)):
    assignments.grade_submission(db, submission_id, body.grade, body.feedback)
    return {"success": True, "message": "Submission graded successfully"}


@app.get("/students/{user_id}/submissions")
def student_submissions(user_id: str, db=Depends(get_db)):
    return {"success": True, "submissions": assignments.list_submissions_for_student(db, user_id)}


# ----------------------
# Evaluations
# ----------------------
@app.post("/classes/{class_id}/evaluate")
def evaluate_class(class_id: str, body: EvaluationCreate, db=Depends(get_db)):
    summary = evaluations.evaluate(
        db, class_id, body.user_id, body.rating, body.name, body.photo, body.description
    )
    return {"success": True, "message": "Evaluation submitted successfully", **summary}


@app.get("/reviews")
def all_reviews(db=Depends(get_db)):
    return {"success": True, "reviews": evaluations.list_all_reviews(db)}


# ----------------------
# Resources
# ----------------------
@app.post("/classes/{class_id}/resources", status_code=201)
def add_resource(class_id: str, body: ResourceCreate, db=Depends(get_db)):
    resource_id = resources.add_resource(
        db, class_id, body.title, body.url, body.description, body.type, body.teacher_id
    )
    return {"success": True, "message": "Resource added successfully", "resourceId": resource_id}


@app.get("/classes/{class_id}/resources")
def list_resources(class_id: str, db=Depends(get_db)):
    return {"success": True, "resources": resources.list_resources(db, class_id)}


@app.delete("/resources/{resource_id}")
def delete_resource(resource_id: str, teacher_id: Optional[str] = None, db=Depends(get_db)):
    resources.delete_resource(db, resource_id, teacher_id)
    return {"success": True, "message": "Resource deleted successfully"}


# ----------------------
# Payments (stub)
# ----------------------
@app.post("/api/payments")
def process_payment(body: PaymentRequest, db=Depends(get_db)):
    transaction_id = payments.record_payment(
        db, body.class_id, body.user_id, body.amount, body.card_number, body.expiry_date, body.cvv
    )
    return {"success": True, "message": "Payment processed successfully", "transactionId": transaction_id}


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
