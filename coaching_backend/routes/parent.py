import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..access import USER_PROJECTION, resolve_student_teacher
from ..config import Settings
from ..models import ParentNotificationRecord
from ..reports.data import ReportData
from ..reports.service import build_report_data
from ..security import get_clock, get_db, get_settings, require_role
from ..utils import Clock

logger = logging.getLogger(__name__)

require_parent = require_role("parent")
parent_router = APIRouter(prefix="/api/parent")


@parent_router.get("/dashboard")
async def get_dashboard(
    current_user: Dict[str, Any] = Depends(require_parent),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    children_ids = current_user.get("children", [])
    children = await db.users.find(
        {"id": {"$in": children_ids}, "role": "student"}, USER_PROJECTION
    ).to_list(50)

    overview = []
    for child in children:
        assignments = await db.assignments.count_documents({"student_id": child["id"]})
        submissions = await db.assignment_submissions.find(
            {"student_id": child["id"]}, {"_id": 0, "status": 1, "grade": 1}
        ).to_list(1000)
        goals = await db.goals.find(
            {"student_id": child["id"]}, {"_id": 0, "id": 1, "title": 1, "status": 1, "progress": 1, "target_date": 1}
        ).to_list(200)
        grades = [s["grade"] for s in submissions if s.get("grade") is not None]
        overview.append(
            {
                "student": child,
                "total_assignments": assignments,
                "submitted_assignments": len(submissions),
                "average_grade": round(sum(grades) / len(grades), 1) if grades else None,
                "goals": goals,
            }
        )

    unread = await db.parent_notifications.count_documents({"parent_id": current_user["id"], "is_read": False})
    return {"children": overview, "unread_notifications": unread}


@parent_router.get("/notifications", response_model=List[ParentNotificationRecord])
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: Dict[str, Any] = Depends(require_parent),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query: Dict[str, Any] = {"parent_id": current_user["id"]}
    if unread_only:
        query["is_read"] = False
    return await db.parent_notifications.find(query, {"_id": 0}).sort("created_at", -1).limit(limit).to_list(limit)


@parent_router.patch("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    current_user: Dict[str, Any] = Depends(require_parent),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    result = await db.parent_notifications.update_one(
        {"id": notification_id, "parent_id": current_user["id"]}, {"$set": {"is_read": True}}
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Bildirim bulunamadı")
    return {"message": "Bildirim okundu olarak işaretlendi"}


@parent_router.post("/notifications/read-all")
async def mark_all_notifications_read(
    current_user: Dict[str, Any] = Depends(require_parent),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    result = await db.parent_notifications.update_many(
        {"parent_id": current_user["id"], "is_read": False}, {"$set": {"is_read": True}}
    )
    return {"message": "Tüm bildirimler okundu olarak işaretlendi", "updated": result.modified_count}


@parent_router.get("/students/{student_id}/report/data", response_model=ReportData)
async def get_child_report_data(
    student_id: str,
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    current_user: Dict[str, Any] = Depends(require_parent),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    if student_id not in current_user.get("children", []):
        raise HTTPException(status_code=404, detail="Öğrenci bulunamadı veya yetkiniz yok")
    student = await db.users.find_one({"id": student_id, "role": "student"}, USER_PROJECTION)
    if not student:
        raise HTTPException(status_code=404, detail="Öğrenci bulunamadı veya yetkiniz yok")
    teacher_id = await resolve_student_teacher(db, student)
    if not teacher_id:
        raise HTTPException(status_code=404, detail="Öğrencinin öğretmeni bulunamadı")
    return await build_report_data(
        db, student_id, teacher_id, start_date, end_date, clock=clock, retry_delay=settings.report_retry_delay
    )
