import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..access import USER_PROJECTION, create_user, iso_date_or_400
from ..billing import assign_free_slot
from ..models import DiscountBase, DiscountRecord, DiscountUpdate, SubscriptionRecord, UserCreate, UserRecord
from ..security import get_clock, get_db, require_role
from ..utils import Clock, to_iso

logger = logging.getLogger(__name__)

require_admin = require_role("admin")
admin_router = APIRouter(prefix="/api/admin")


async def _get_teacher(db: AsyncIOMotorDatabase, teacher_id: str) -> Dict[str, Any]:
    teacher = await db.users.find_one({"id": teacher_id, "role": "teacher"}, USER_PROJECTION)
    if not teacher:
        raise HTTPException(status_code=404, detail="Öğretmen bulunamadı")
    return teacher


@admin_router.get("/teachers", response_model=List[UserRecord])
async def list_teachers(
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await db.users.find({"role": "teacher"}, USER_PROJECTION).sort("created_at", -1).to_list(1000)


@admin_router.post("/teachers", response_model=UserRecord, status_code=201)
async def create_teacher(
    payload: UserCreate,
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    teacher = await create_user(db, payload, "teacher", created_by=current_user["id"])
    logger.info("Admin %s created teacher %s", current_user["id"], teacher["username"])
    return teacher


@admin_router.patch("/teachers/{teacher_id}/toggle-status", response_model=UserRecord)
async def toggle_teacher_status(
    teacher_id: str,
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    teacher = await _get_teacher(db, teacher_id)
    return await db.users.find_one_and_update(
        {"id": teacher_id},
        {"$set": {"is_active": not teacher.get("is_active", True), "updated_at": to_iso(clock())}},
        projection=USER_PROJECTION,
        return_document=True,
    )


@admin_router.post("/teachers/{teacher_id}/free-slot")
async def grant_free_slot(
    teacher_id: str,
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await _get_teacher(db, teacher_id)
    return await assign_free_slot(db, teacher_id, clock)


@admin_router.get("/stats")
async def get_stats(
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    users = {}
    for role in ("teacher", "student", "parent"):
        users[role] = {
            "total": await db.users.count_documents({"role": role}),
            "active": await db.users.count_documents({"role": role, "is_active": True}),
        }
    return {
        "teachers": users["teacher"],
        "students": users["student"],
        "parents": users["parent"],
        "classes": await db.classes.count_documents({}),
        "assignments": await db.assignments.count_documents({}),
        "submissions": await db.assignment_submissions.count_documents({}),
        "goals": await db.goals.count_documents({}),
        "reports": await db.reports.count_documents({}),
        "active_subscriptions": await db.subscriptions.count_documents({"is_active": True}),
    }


@admin_router.get("/discounts", response_model=List[DiscountRecord])
async def list_discounts(
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await db.discounts.find({}, {"_id": 0}).sort("created_at", -1).to_list(500)


@admin_router.post("/discounts", response_model=DiscountRecord, status_code=201)
async def create_discount(
    payload: DiscountBase,
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    data = payload.model_dump()
    data["start_date"] = iso_date_or_400(payload.start_date, "start_date")
    data["end_date"] = iso_date_or_400(payload.end_date, "end_date")
    if not data["start_date"] or not data["end_date"] or data["start_date"] >= data["end_date"]:
        raise HTTPException(status_code=400, detail="Bitiş tarihi başlangıç tarihinden sonra olmalıdır")
    discount = DiscountRecord(**data, created_by=current_user["id"])
    await db.discounts.insert_one(discount.model_dump())
    return discount


@admin_router.put("/discounts/{discount_id}", response_model=DiscountRecord)
async def update_discount(
    discount_id: str,
    payload: DiscountUpdate,
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    update_data = payload.model_dump(exclude_unset=True)
    for field in ("start_date", "end_date"):
        if field in update_data:
            update_data[field] = iso_date_or_400(update_data[field], field)
    update_data["updated_at"] = to_iso(clock())
    result = await db.discounts.find_one_and_update(
        {"id": discount_id}, {"$set": update_data}, projection={"_id": 0}, return_document=True
    )
    if not result:
        raise HTTPException(status_code=404, detail="İndirim bulunamadı")
    return result


@admin_router.delete("/discounts/{discount_id}")
async def delete_discount(
    discount_id: str,
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    result = await db.discounts.delete_one({"id": discount_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="İndirim bulunamadı")
    return {"message": "İndirim silindi"}


@admin_router.get("/subscriptions", response_model=List[SubscriptionRecord])
async def list_subscriptions(
    teacher_id: Optional[str] = Query(None),
    active_only: bool = Query(False),
    current_user: Dict[str, Any] = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query: Dict[str, Any] = {}
    if teacher_id:
        query["teacher_id"] = teacher_id
    if active_only:
        query["is_active"] = True
    return await db.subscriptions.find(query, {"_id": 0}).sort("created_at", -1).to_list(1000)
