import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..access import USER_PROJECTION, get_teacher_assignment, get_teacher_goal, get_teacher_student, iso_date_or_400
from ..config import Settings
from ..models import GoalCreate, GoalRecord, GoalUpdate, GoalUpdatePayload
from ..notifications import notify_parents_of_student
from ..policies import apply_goal_rules, validate_goal_changes
from ..security import get_clock, get_db, get_settings, require_role
from ..utils import Clock, full_name, to_iso

logger = logging.getLogger(__name__)

require_teacher = require_role("teacher")
goals_router = APIRouter(prefix="/api/teacher/goals")


@goals_router.get("", response_model=List[GoalRecord])
async def list_goals(
    student_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query: Dict[str, Any] = {"teacher_id": current_user["id"]}
    if student_id:
        query["student_id"] = student_id
    if status:
        query["status"] = status
    return await db.goals.find(query, {"_id": 0}).sort("target_date", 1).to_list(1000)


@goals_router.post("", response_model=GoalRecord, status_code=201)
async def create_goal(
    payload: GoalCreate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if not (payload.student_id and payload.title and payload.description and payload.target_date):
        raise HTTPException(status_code=400, detail="Tüm gerekli alanlar doldurulmalıdır")
    await get_teacher_student(db, current_user["id"], payload.student_id)
    for assignment_id in payload.assignment_ids:
        await get_teacher_assignment(db, current_user["id"], assignment_id)

    data = payload.model_dump()
    data["target_date"] = iso_date_or_400(payload.target_date, "target_date")
    data["success_criteria"] = payload.success_criteria or ""
    goal = GoalRecord(**data, teacher_id=current_user["id"])
    await db.goals.insert_one(goal.model_dump())
    return goal


@goals_router.put("/{goal_id}", response_model=GoalRecord)
async def update_goal(
    goal_id: str,
    payload: GoalUpdate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    goal = await get_teacher_goal(db, current_user["id"], goal_id)
    update_data = payload.model_dump(exclude_unset=True)
    validate_goal_changes(update_data.get("status"), update_data.get("progress"))
    if "target_date" in update_data:
        update_data["target_date"] = iso_date_or_400(update_data["target_date"], "target_date")
        if not update_data["target_date"]:
            raise HTTPException(status_code=400, detail="Hedef tarihi gereklidir")
    now = clock()
    update_data = apply_goal_rules(update_data, goal, now)
    update_data["updated_at"] = to_iso(now)
    return await db.goals.find_one_and_update(
        {"id": goal_id}, {"$set": update_data}, projection={"_id": 0}, return_document=True
    )


@goals_router.delete("/{goal_id}")
async def delete_goal(
    goal_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await get_teacher_goal(db, current_user["id"], goal_id)
    await db.goals.delete_one({"id": goal_id})
    return {"message": "Hedef başarıyla silindi"}


@goals_router.post("/{goal_id}/assignments/{assignment_id}", response_model=GoalRecord)
async def link_assignment(
    goal_id: str,
    assignment_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await get_teacher_goal(db, current_user["id"], goal_id)
    await get_teacher_assignment(db, current_user["id"], assignment_id)
    return await db.goals.find_one_and_update(
        {"id": goal_id},
        {"$addToSet": {"assignment_ids": assignment_id}, "$set": {"updated_at": to_iso(clock())}},
        projection={"_id": 0},
        return_document=True,
    )


@goals_router.delete("/{goal_id}/assignments/{assignment_id}", response_model=GoalRecord)
async def unlink_assignment(
    goal_id: str,
    assignment_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    goal = await get_teacher_goal(db, current_user["id"], goal_id)
    if assignment_id not in goal.get("assignment_ids", []):
        raise HTTPException(status_code=404, detail="Ödev bulunamadı veya yetkiniz yok")
    return await db.goals.find_one_and_update(
        {"id": goal_id},
        {"$pull": {"assignment_ids": assignment_id}, "$set": {"updated_at": to_iso(clock())}},
        projection={"_id": 0},
        return_document=True,
    )


@goals_router.post("/{goal_id}/notify-parent")
async def notify_parent(
    goal_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    goal = await get_teacher_goal(db, current_user["id"], goal_id)
    student = await db.users.find_one({"id": goal["student_id"], "role": "student"}, USER_PROJECTION)
    if not student:
        raise HTTPException(status_code=404, detail="Öğrenci bulunamadı")
    parent = await db.users.find_one({"role": "parent", "children": student["id"]}, {"_id": 0, "id": 1})
    if not parent:
        raise HTTPException(status_code=404, detail="Öğrencinin velisi bulunamadı")

    verb = "tamamlandı" if goal["status"] == "completed" else "güncellendi"
    message = (
        f"{student['first_name']} {student['last_name']} öğrencisinin \"{goal['title']}\" hedefi {verb}. "
        f"İlerleme: %{goal.get('progress', 0)}"
    )
    payload = GoalUpdatePayload(
        goal_id=goal["id"],
        goal_title=goal["title"],
        goal_status=goal["status"],
        goal_progress=goal.get("progress", 0),
        student_name=full_name(student),
    )
    notifications = await notify_parents_of_student(
        db,
        settings,
        student["id"],
        f"Hedef Güncellemesi - {goal['title']}",
        message,
        payload,
        priority="high" if goal["status"] == "completed" else "medium",
        clock=clock,
    )
    await db.goals.update_one({"id": goal_id}, {"$set": {"parent_notification_sent": True}})
    logger.info("Goal %s update sent to %s parent(s)", goal_id, len(notifications))
    return {"message": "Veliye bildirim gönderildi", "notifications": len(notifications)}
