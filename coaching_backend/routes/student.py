import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from ..config import Settings
from ..models import (
    AssignmentCompletedPayload,
    AssignmentProgressUpdate,
    GoalRecord,
    GoalStudentUpdate,
    SubmissionCreate,
    SubmissionRecord,
    SubmissionVersion,
)
from ..notifications import notify_parents_of_student
from ..policies import apply_goal_rules, check_submission_window, validate_goal_changes
from ..reports.fetchers import assignment_item, goal_item, submission_item
from ..reports.metrics import compute_performance
from ..security import get_clock, get_db, get_settings, require_role
from ..utils import Clock, to_iso

logger = logging.getLogger(__name__)

require_student = require_role("student")
student_router = APIRouter(prefix="/api/student")


async def _student_assignment(db: AsyncIOMotorDatabase, student_id: str, assignment_id: str) -> Dict[str, Any]:
    assignment = await db.assignments.find_one({"id": assignment_id, "student_id": student_id}, {"_id": 0})
    if not assignment:
        raise HTTPException(status_code=404, detail="Ödev bulunamadı")
    return assignment


def _require_content(payload: SubmissionCreate) -> str:
    content = (payload.content or "").strip()
    if not content and not payload.attachments:
        raise HTTPException(status_code=400, detail="Ödev içeriği gereklidir")
    return content


@student_router.get("/assignments")
async def list_assignments(
    current_user: Dict[str, Any] = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Published assignments of the student, each with its submission (or None)."""
    now = to_iso(clock())
    assignments = await db.assignments.find(
        {
            "student_id": current_user["id"],
            "$or": [{"publish_at": None}, {"publish_at": {"$lte": now}}],
        },
        {"_id": 0},
    ).sort("due_date", 1).to_list(1000)
    submissions = await db.assignment_submissions.find(
        {"student_id": current_user["id"]}, {"_id": 0}
    ).to_list(1000)
    by_assignment = {submission["assignment_id"]: submission for submission in submissions}
    return [{**assignment, "submission": by_assignment.get(assignment["id"])} for assignment in assignments]


@student_router.post("/assignments/{assignment_id}/submit", response_model=SubmissionRecord, status_code=201)
async def submit_assignment(
    assignment_id: str,
    payload: SubmissionCreate,
    current_user: Dict[str, Any] = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    content = _require_content(payload)
    assignment = await _student_assignment(db, current_user["id"], assignment_id)
    now = clock()
    late = check_submission_window(assignment, now)

    existing = await db.assignment_submissions.find_one(
        {"assignment_id": assignment_id, "student_id": current_user["id"]}, {"_id": 0, "id": 1}
    )
    if existing:
        raise HTTPException(status_code=409, detail="Bu ödev zaten teslim edilmiş")

    submitted_at = to_iso(now)
    submission = SubmissionRecord(
        assignment_id=assignment_id,
        student_id=current_user["id"],
        status="late" if late else "submitted",
        max_grade=assignment.get("max_grade") or 100,
        content=content,
        attachments=payload.attachments,
        submitted_at=submitted_at,
        versions=[
            SubmissionVersion(attempt=1, content=content, attachments=payload.attachments, submitted_at=submitted_at)
        ],
        created_at=submitted_at,
        updated_at=submitted_at,
    )
    try:
        await db.assignment_submissions.insert_one(submission.model_dump())
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Bu ödev zaten teslim edilmiş")
    await db.assignments.update_one(
        {"id": assignment_id}, {"$set": {"progress": 100, "updated_at": submitted_at}}
    )

    await notify_parents_of_student(
        db,
        settings,
        current_user["id"],
        f"Ödev Teslim Edildi - {assignment['title']}",
        f"{current_user['first_name']} {current_user['last_name']} \"{assignment['title']}\" ödevini teslim etti."
        + (" (Geç teslim)" if late else ""),
        AssignmentCompletedPayload(
            assignment_id=assignment_id,
            submission_id=submission.id,
            assignment_title=assignment["title"],
            late=late,
        ),
        clock=clock,
    )
    logger.info("Student %s submitted assignment %s (late=%s)", current_user["id"], assignment_id, late)
    return submission


@student_router.put("/assignments/{assignment_id}/resubmit", response_model=SubmissionRecord)
async def resubmit_assignment(
    assignment_id: str,
    payload: SubmissionCreate,
    current_user: Dict[str, Any] = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    content = _require_content(payload)
    assignment = await _student_assignment(db, current_user["id"], assignment_id)
    submission = await db.assignment_submissions.find_one(
        {"assignment_id": assignment_id, "student_id": current_user["id"]}, {"_id": 0}
    )
    if not submission:
        raise HTTPException(status_code=400, detail="Önce bir teslim oluşturulmalıdır")
    if submission.get("status") == "graded":
        raise HTTPException(status_code=400, detail="Notlandırılmış teslimler yeniden gönderilemez")
    attempt = submission.get("attempt", 1) + 1
    if attempt > (assignment.get("max_attempts") or 1):
        raise HTTPException(status_code=400, detail="Maksimum deneme hakkı aşıldı")

    now = clock()
    late = check_submission_window(assignment, now)
    submitted_at = to_iso(now)
    version = SubmissionVersion(
        attempt=attempt, content=content, attachments=payload.attachments, submitted_at=submitted_at
    )
    return await db.assignment_submissions.find_one_and_update(
        {"id": submission["id"]},
        {
            "$set": {
                "content": content,
                "attachments": [attachment.model_dump() for attachment in payload.attachments],
                "status": "late" if late else "submitted",
                "attempt": attempt,
                "submitted_at": submitted_at,
                "updated_at": submitted_at,
            },
            "$push": {"versions": version.model_dump()},
        },
        projection={"_id": 0},
        return_document=True,
    )


@student_router.patch("/assignments/{assignment_id}/progress")
async def update_assignment_progress(
    assignment_id: str,
    payload: AssignmentProgressUpdate,
    current_user: Dict[str, Any] = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    if not 0 <= payload.progress <= 100:
        raise HTTPException(status_code=400, detail="İlerleme 0-100 arasında olmalıdır")
    await _student_assignment(db, current_user["id"], assignment_id)
    await db.assignments.update_one(
        {"id": assignment_id}, {"$set": {"progress": payload.progress, "updated_at": to_iso(clock())}}
    )
    return {"message": "İlerleme güncellendi", "progress": payload.progress}


@student_router.get("/goals", response_model=List[GoalRecord])
async def list_goals(
    current_user: Dict[str, Any] = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await db.goals.find({"student_id": current_user["id"]}, {"_id": 0}).sort("target_date", 1).to_list(500)


@student_router.patch("/goals/{goal_id}", response_model=GoalRecord)
async def update_goal(
    goal_id: str,
    payload: GoalStudentUpdate,
    current_user: Dict[str, Any] = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    goal = await db.goals.find_one({"id": goal_id, "student_id": current_user["id"]}, {"_id": 0})
    if not goal:
        raise HTTPException(status_code=404, detail="Hedef bulunamadı")
    update_data = payload.model_dump(exclude_unset=True)
    validate_goal_changes(update_data.get("status"), update_data.get("progress"))
    now = clock()
    update_data = apply_goal_rules(update_data, goal, now)
    update_data["updated_at"] = to_iso(now)
    return await db.goals.find_one_and_update(
        {"id": goal_id}, {"$set": update_data}, projection={"_id": 0}, return_document=True
    )


@student_router.get("/stats")
async def get_stats(
    current_user: Dict[str, Any] = Depends(require_student),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    student_id = current_user["id"]
    assignments = await db.assignments.find({"student_id": student_id}, {"_id": 0}).to_list(1000)
    submissions = await db.assignment_submissions.find({"student_id": student_id}, {"_id": 0}).to_list(1000)
    goals = await db.goals.find({"student_id": student_id}, {"_id": 0}).to_list(500)
    summary = compute_performance(
        [assignment_item(doc) for doc in assignments],
        [submission_item(doc) for doc in submissions],
        [goal_item(doc) for doc in goals],
    )
    return {
        **summary.model_dump(),
        "pending_assignments": max(summary.total_assignments - summary.submitted_assignments, 0),
        "active_goals": sum(1 for goal in goals if goal.get("status") in ("pending", "in_progress")),
    }
