import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..access import (
    USER_PROJECTION,
    create_user,
    ensure_unique_user,
    get_teacher_class,
    get_teacher_student,
    teacher_class_filter,
    teacher_student_ids,
)
from ..models import (
    ClassBase,
    ClassRecord,
    ClassUpdate,
    ParentChildrenUpdate,
    ParentCreate,
    PasswordUpdate,
    StudentCreate,
    StudentUpdate,
    UserRecord,
)
from ..security import get_clock, get_db, get_password_hash, require_role
from ..utils import Clock, to_iso

logger = logging.getLogger(__name__)

require_teacher = require_role("teacher")
teacher_router = APIRouter(prefix="/api/teacher")


async def _ensure_co_teachers(db: AsyncIOMotorDatabase, owner_id: str, co_teachers: List[str]):
    if owner_id in co_teachers:
        raise HTTPException(status_code=400, detail="Sınıf sahibi yardımcı öğretmen olarak eklenemez")
    if not co_teachers:
        return
    found = await db.users.count_documents({"id": {"$in": co_teachers}, "role": "teacher", "is_active": True})
    if found != len(set(co_teachers)):
        raise HTTPException(status_code=400, detail="Yardımcı öğretmenlerden biri bulunamadı")


async def _set_student_class(db: AsyncIOMotorDatabase, student_id: str, class_id: Optional[str]):
    await db.classes.update_many({"students": student_id}, {"$pull": {"students": student_id}})
    if class_id:
        await db.classes.update_one({"id": class_id}, {"$addToSet": {"students": student_id}})
    await db.users.update_one({"id": student_id}, {"$set": {"class_id": class_id}})


# Classes

@teacher_router.get("/classes", response_model=List[ClassRecord])
async def list_classes(
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await db.classes.find(teacher_class_filter(current_user["id"]), {"_id": 0}).sort("name", 1).to_list(500)


@teacher_router.post("/classes", response_model=ClassRecord, status_code=201)
async def create_class(
    payload: ClassBase,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    name = payload.name.strip()
    if await db.classes.find_one({"teacher_id": current_user["id"], "name": name}, {"_id": 0, "id": 1}):
        raise HTTPException(status_code=409, detail="Bu isimde zaten bir sınıf mevcut")
    await _ensure_co_teachers(db, current_user["id"], payload.co_teachers)
    allowed = await teacher_student_ids(db, current_user["id"])
    if any(student_id not in allowed for student_id in payload.students):
        raise HTTPException(status_code=400, detail="Öğrencilerden biri bulunamadı veya yetkiniz yok")
    class_record = ClassRecord(**{**payload.model_dump(), "name": name}, teacher_id=current_user["id"])
    await db.classes.insert_one(class_record.model_dump())
    for student_id in class_record.students:
        await _set_student_class(db, student_id, class_record.id)
    return class_record


@teacher_router.put("/classes/{class_id}", response_model=ClassRecord)
async def update_class(
    class_id: str,
    payload: ClassUpdate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    class_doc = await get_teacher_class(db, current_user["id"], class_id)
    update_data = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if "name" in update_data:
        update_data["name"] = update_data["name"].strip()
        duplicate = await db.classes.find_one(
            {"teacher_id": class_doc["teacher_id"], "name": update_data["name"], "id": {"$ne": class_id}},
            {"_id": 0, "id": 1},
        )
        if duplicate:
            raise HTTPException(status_code=409, detail="Bu isimde zaten bir sınıf mevcut")
    if "co_teachers" in update_data:
        if class_doc["teacher_id"] != current_user["id"]:
            raise HTTPException(status_code=403, detail="Yardımcı öğretmenleri yalnızca sınıf sahibi değiştirebilir")
        await _ensure_co_teachers(db, class_doc["teacher_id"], update_data["co_teachers"])
    if "students" in update_data:
        allowed = await teacher_student_ids(db, current_user["id"])
        new_students = set(update_data["students"]) - set(class_doc.get("students", []))
        if any(student_id not in allowed for student_id in new_students):
            raise HTTPException(status_code=400, detail="Öğrencilerden biri bulunamadı veya yetkiniz yok")
    update_data["updated_at"] = to_iso(clock())
    result = await db.classes.find_one_and_update(
        {"id": class_id}, {"$set": update_data}, projection={"_id": 0}, return_document=True
    )
    if "students" in update_data:
        removed = set(class_doc.get("students", [])) - set(update_data["students"])
        for student_id in removed:
            await db.users.update_one({"id": student_id, "class_id": class_id}, {"$set": {"class_id": None}})
        for student_id in update_data["students"]:
            await db.users.update_one({"id": student_id}, {"$set": {"class_id": class_id}})
    return result


@teacher_router.delete("/classes/{class_id}")
async def delete_class(
    class_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    class_doc = await db.classes.find_one({"id": class_id, "teacher_id": current_user["id"]}, {"_id": 0})
    if not class_doc:
        raise HTTPException(status_code=404, detail="Sınıf bulunamadı veya yetkiniz yok")
    assignments = await db.assignments.find({"class_id": class_id}, {"_id": 0, "id": 1}).to_list(10000)
    assignment_ids = [assignment["id"] for assignment in assignments]
    if assignment_ids:
        await db.assignment_submissions.delete_many({"assignment_id": {"$in": assignment_ids}})
        await db.goals.update_many({}, {"$pull": {"assignment_ids": {"$in": assignment_ids}}})
    await db.assignments.delete_many({"class_id": class_id})
    await db.users.update_many({"class_id": class_id}, {"$set": {"class_id": None}})
    await db.classes.delete_one({"id": class_id})
    logger.info("Class %s deleted with %s assignment(s)", class_id, len(assignment_ids))
    return {"message": "Sınıf başarıyla silindi"}


# Students

@teacher_router.get("/students", response_model=List[UserRecord])
async def list_students(
    class_id: Optional[str] = Query(None),
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    student_ids = await teacher_student_ids(db, current_user["id"])
    query: Dict[str, Any] = {"id": {"$in": list(student_ids)}, "role": "student"}
    if class_id:
        query["class_id"] = class_id
    return await db.users.find(query, USER_PROJECTION).sort("first_name", 1).to_list(5000)


@teacher_router.post("/students", response_model=UserRecord, status_code=201)
async def create_student(
    payload: StudentCreate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if payload.class_id:
        await get_teacher_class(db, current_user["id"], payload.class_id)
    student = await create_user(db, payload, "student", created_by=current_user["id"])
    if payload.class_id:
        await db.classes.update_one({"id": payload.class_id}, {"$addToSet": {"students": student["id"]}})
    return student


@teacher_router.get("/students/{student_id}", response_model=UserRecord)
async def get_student(
    student_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await get_teacher_student(db, current_user["id"], student_id)


@teacher_router.put("/students/{student_id}", response_model=UserRecord)
async def update_student(
    student_id: str,
    payload: StudentUpdate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await get_teacher_student(db, current_user["id"], student_id)
    update_data = payload.model_dump(exclude_unset=True)
    if update_data.get("email"):
        update_data["email"] = update_data["email"].strip().lower()
        await ensure_unique_user(db, "", update_data["email"], exclude_id=student_id)
    if "class_id" in update_data:
        if update_data["class_id"]:
            await get_teacher_class(db, current_user["id"], update_data["class_id"])
        await _set_student_class(db, student_id, update_data.pop("class_id"))
    update_data["updated_at"] = to_iso(clock())
    return await db.users.find_one_and_update(
        {"id": student_id}, {"$set": update_data}, projection=USER_PROJECTION, return_document=True
    )


@teacher_router.put("/students/{student_id}/password")
async def reset_student_password(
    student_id: str,
    payload: PasswordUpdate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await get_teacher_student(db, current_user["id"], student_id)
    await db.users.update_one({"id": student_id}, {"$set": {"password_hash": get_password_hash(payload.password)}})
    return {"message": "Şifre güncellendi"}


@teacher_router.get("/students/{student_id}/assignments")
async def list_student_assignments(
    student_id: str,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await get_teacher_student(db, current_user["id"], student_id)
    assignments = await db.assignments.find(
        {"student_id": student_id, "teacher_id": current_user["id"]}, {"_id": 0}
    ).sort("due_date", -1).to_list(1000)
    submissions = await db.assignment_submissions.find({"student_id": student_id}, {"_id": 0}).to_list(1000)
    by_assignment = {submission["assignment_id"]: submission for submission in submissions}
    return [{**assignment, "submission": by_assignment.get(assignment["id"])} for assignment in assignments]


# Parents

@teacher_router.get("/parents", response_model=List[UserRecord])
async def list_parents(
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    student_ids = await teacher_student_ids(db, current_user["id"])
    return await db.users.find(
        {"role": "parent", "$or": [{"children": {"$in": list(student_ids)}}, {"created_by": current_user["id"]}]},
        USER_PROJECTION,
    ).to_list(5000)


@teacher_router.post("/parents", response_model=UserRecord, status_code=201)
async def create_parent(
    payload: ParentCreate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    allowed = await teacher_student_ids(db, current_user["id"])
    if any(child not in allowed for child in payload.children):
        raise HTTPException(status_code=400, detail="Öğrencilerden biri bulunamadı veya yetkiniz yok")
    return await create_user(db, payload, "parent", created_by=current_user["id"])


@teacher_router.put("/parents/{parent_id}/children", response_model=UserRecord)
async def update_parent_children(
    parent_id: str,
    payload: ParentChildrenUpdate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    allowed = await teacher_student_ids(db, current_user["id"])
    parent = await db.users.find_one({"id": parent_id, "role": "parent"}, USER_PROJECTION)
    if not parent or not (
        parent.get("created_by") == current_user["id"] or set(parent.get("children", [])) & allowed
    ):
        raise HTTPException(status_code=404, detail="Veli bulunamadı veya yetkiniz yok")
    if any(child not in allowed for child in payload.children):
        raise HTTPException(status_code=400, detail="Öğrencilerden biri bulunamadı veya yetkiniz yok")
    # Children of other teachers stay linked.
    kept = [child for child in parent.get("children", []) if child not in allowed]
    children = kept + [child for child in payload.children if child not in kept]
    return await db.users.find_one_and_update(
        {"id": parent_id},
        {"$set": {"children": children, "updated_at": to_iso(clock())}},
        projection=USER_PROJECTION,
        return_document=True,
    )
