import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..access import get_teacher_assignment, get_teacher_class, get_teacher_student, iso_date_or_400
from ..config import Settings
from ..models import (
    AssignmentBase,
    AssignmentGradedPayload,
    AssignmentRecord,
    AssignmentUpdate,
    SubmissionGrade,
    SubmissionRecord,
)
from ..notifications import notify_parents_of_student
from ..policies import apply_late_penalty
from ..security import get_clock, get_db, get_settings, require_role
from ..utils import Clock, parse_datetime, to_iso

logger = logging.getLogger(__name__)

require_teacher = require_role("teacher")
assignments_router = APIRouter(prefix="/api/teacher/assignments")

DATE_FIELDS = ("due_date", "publish_at", "close_at")


def _normalize_dates(data: Dict[str, Any]) -> Dict[str, Any]:
    for field in DATE_FIELDS:
        if field in data:
            data[field] = iso_date_or_400(data[field], field)
    return data


@assignments_router.get("", response_model=List[AssignmentRecord])
async def list_assignments(
    class_id: Optional[str] = Query(None),
    student_id: Optional[str] = Query(None),
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query: Dict[str, Any] = {"teacher_id": current_user["id"]}
    if class_id:
        query["class_id"] = class_id
    if student_id:
        query["student_id"] = student_id
    return await db.assignments.find(query, {"_id": 0}).sort("due_date", -1).to_list(5000)


@assignments_router.post("", response_model=List[AssignmentRecord], status_code=201)
async def create_assignment(
    payload: AssignmentBase,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Class assignments are stored as one assignment per enrolled student."""
    data = _normalize_dates(payload.model_dump())
    if not data.get("due_date"):
        raise HTTPException(status_code=400, detail="Teslim tarihi gereklidir")
    if payload.type == "class":
        if not payload.class_id:
            raise HTTPException(status_code=400, detail="Sınıf ID, sınıf ödevi için gereklidir")
        class_doc = await get_teacher_class(db, current_user["id"], payload.class_id)
        student_ids = class_doc.get("students", [])
        if not student_ids:
            raise HTTPException(status_code=400, detail="Sınıfta kayıtlı öğrenci bulunmuyor")
    else:
        if not payload.student_id:
            raise HTTPException(status_code=400, detail="Öğrenci ID, bireysel ödev için gereklidir")
        student = await get_teacher_student(db, current_user["id"], payload.student_id)
        student_ids = [student["id"]]
        data["class_id"] = student.get("class_id")

    records = [
        AssignmentRecord(**{**data, "student_id": student_id}, teacher_id=current_user["id"])
        for student_id in student_ids
    ]
    await db.assignments.insert_many([record.model_dump() for record in records])
    logger.info("Teacher %s created %s assignment(s) '%s'", current_user["id"], len(records), payload.title)
    return records


@assignments_router.get("/{assignment_id}", response_model=AssignmentRecord)
async def get_assignment(
    assignment_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await get_teacher_assignment(db, current_user["id"], assignment_id)


@assignments_router.put("/{assignment_id}", response_model=AssignmentRecord)
async def update_assignment(
    assignment_id: str,
    payload: AssignmentUpdate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await get_teacher_assignment(db, current_user["id"], assignment_id)
    update_data = _normalize_dates(payload.model_dump(exclude_unset=True))
    if "due_date" in update_data and not update_data["due_date"]:
        raise HTTPException(status_code=400, detail="Teslim tarihi gereklidir")
    update_data["updated_at"] = to_iso(clock())
    return await db.assignments.find_one_and_update(
        {"id": assignment_id}, {"$set": update_data}, projection={"_id": 0}, return_document=True
    )


@assignments_router.delete("/{assignment_id}")
async def delete_assignment(
    assignment_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await get_teacher_assignment(db, current_user["id"], assignment_id)
    await db.assignment_submissions.delete_many({"assignment_id": assignment_id})
    await db.goals.update_many({"assignment_ids": assignment_id}, {"$pull": {"assignment_ids": assignment_id}})
    await db.assignments.delete_one({"id": assignment_id})
    return {"message": "Ödev başarıyla silindi"}


@assignments_router.get("/{assignment_id}/submissions", response_model=List[SubmissionRecord])
async def list_submissions(
    assignment_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await get_teacher_assignment(db, current_user["id"], assignment_id)
    return await db.assignment_submissions.find({"assignment_id": assignment_id}, {"_id": 0}).to_list(1000)


async def _teacher_submission(db: AsyncIOMotorDatabase, teacher_id: str, submission_id: str):
    submission = await db.assignment_submissions.find_one({"id": submission_id}, {"_id": 0})
    assignment = None
    if submission:
        assignment = await db.assignments.find_one(
            {"id": submission["assignment_id"], "teacher_id": teacher_id}, {"_id": 0}
        )
    if not submission or not assignment:
        raise HTTPException(status_code=404, detail="Teslim bulunamadı veya yetkiniz yok")
    return submission, assignment


@assignments_router.put("/submissions/{submission_id}/grade", response_model=SubmissionRecord)
async def grade_submission(
    submission_id: str,
    payload: SubmissionGrade,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    submission, assignment = await _teacher_submission(db, current_user["id"], submission_id)
    max_grade = assignment.get("max_grade") or 100
    if payload.grade > max_grade:
        raise HTTPException(status_code=400, detail=f"Not en fazla {max_grade} olabilir")
    grade = apply_late_penalty(payload.grade, submission, assignment)
    now = to_iso(clock())
    update_data = {
        "grade": grade,
        "raw_grade": payload.grade,
        "max_grade": max_grade,
        "teacher_feedback": payload.teacher_feedback,
        "status": payload.status or "graded",
        "graded_at": now,
        "updated_at": now,
    }
    result = await db.assignment_submissions.find_one_and_update(
        {"id": submission_id}, {"$set": update_data}, projection={"_id": 0}, return_document=True
    )
    title = f"Ödev Notlandırıldı - {assignment['title']}"
    await notify_parents_of_student(
        db,
        settings,
        submission["student_id"],
        title,
        f"\"{assignment['title']}\" ödevi {grade}/{max_grade} puan ile notlandırıldı.",
        AssignmentGradedPayload(
            assignment_id=assignment["id"],
            submission_id=submission_id,
            assignment_title=assignment["title"],
            grade=grade,
            max_grade=max_grade,
        ),
        clock=clock,
    )
    return result


@assignments_router.put("/submissions/{submission_id}/reopen", response_model=SubmissionRecord)
async def reopen_submission(
    submission_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    submission, assignment = await _teacher_submission(db, current_user["id"], submission_id)
    submitted_at = parse_datetime(submission.get("submitted_at"))
    due_date = parse_datetime(assignment.get("due_date"))
    reopened_status = "late" if submitted_at and due_date and submitted_at > due_date else "submitted"
    return await db.assignment_submissions.find_one_and_update(
        {"id": submission_id},
        {
            "$set": {
                "status": reopened_status,
                "grade": None,
                "raw_grade": None,
                "teacher_feedback": None,
                "graded_at": None,
                "updated_at": to_iso(clock()),
            }
        },
        projection={"_id": 0},
        return_document=True,
    )
