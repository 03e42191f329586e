"""Ownership checks and shared lookups used by the role routers."""
import re
from typing import Any, Dict, List, Optional, Set

from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from .models import UserRecord
from .security import get_password_hash
from .utils import parse_datetime, to_iso

USER_PROJECTION = {"_id": 0, "password_hash": 0}


def teacher_class_filter(teacher_id: str) -> Dict[str, Any]:
    """Classes the teacher owns or co-teaches."""
    return {"$or": [{"teacher_id": teacher_id}, {"co_teachers": teacher_id}]}


async def teacher_student_ids(db: AsyncIOMotorDatabase, teacher_id: str) -> Set[str]:
    classes = await db.classes.find(teacher_class_filter(teacher_id), {"_id": 0, "students": 1}).to_list(500)
    ids = {student_id for class_doc in classes for student_id in class_doc.get("students", [])}
    created = await db.users.find(
        {"role": "student", "created_by": teacher_id}, {"_id": 0, "id": 1}
    ).to_list(5000)
    ids.update(user["id"] for user in created)
    return ids


async def get_teacher_student(db: AsyncIOMotorDatabase, teacher_id: str, student_id: str) -> Dict[str, Any]:
    allowed = await teacher_student_ids(db, teacher_id)
    student = None
    if student_id in allowed:
        student = await db.users.find_one({"id": student_id, "role": "student"}, USER_PROJECTION)
    if not student:
        raise HTTPException(status_code=404, detail="Öğrenci bulunamadı veya yetkiniz yok")
    return student


async def get_teacher_class(db: AsyncIOMotorDatabase, teacher_id: str, class_id: str) -> Dict[str, Any]:
    class_doc = await db.classes.find_one({"id": class_id, **teacher_class_filter(teacher_id)}, {"_id": 0})
    if not class_doc:
        raise HTTPException(status_code=404, detail="Sınıf bulunamadı veya yetkiniz yok")
    return class_doc


async def get_teacher_assignment(db: AsyncIOMotorDatabase, teacher_id: str, assignment_id: str) -> Dict[str, Any]:
    assignment = await db.assignments.find_one({"id": assignment_id, "teacher_id": teacher_id}, {"_id": 0})
    if not assignment:
        raise HTTPException(status_code=404, detail="Ödev bulunamadı veya yetkiniz yok")
    return assignment


async def get_teacher_goal(db: AsyncIOMotorDatabase, teacher_id: str, goal_id: str) -> Dict[str, Any]:
    goal = await db.goals.find_one({"id": goal_id, "teacher_id": teacher_id}, {"_id": 0})
    if not goal:
        raise HTTPException(status_code=404, detail="Hedef bulunamadı veya yetkiniz yok")
    return goal


async def resolve_student_teacher(db: AsyncIOMotorDatabase, student: Dict[str, Any]) -> Optional[str]:
    """The teacher a student's reports are issued under: the creator, else the class teacher."""
    if student.get("created_by"):
        return student["created_by"]
    if student.get("class_id"):
        class_doc = await db.classes.find_one({"id": student["class_id"]}, {"_id": 0, "teacher_id": 1})
        if class_doc:
            return class_doc.get("teacher_id")
    class_doc = await db.classes.find_one({"students": student["id"]}, {"_id": 0, "teacher_id": 1})
    return class_doc.get("teacher_id") if class_doc else None


def iso_date_or_400(value: Optional[str], field: str) -> Optional[str]:
    if value is None or value == "":
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Geçersiz tarih: {field}")
    return to_iso(parsed)


async def ensure_unique_user(db: AsyncIOMotorDatabase, username: str, email: str, exclude_id: Optional[str] = None):
    conflicts: List[str] = []
    base = {"id": {"$ne": exclude_id}} if exclude_id else {}
    if username and await db.users.find_one(
        {**base, "username": {"$regex": f"^{re.escape(username)}$", "$options": "i"}}, {"_id": 0, "id": 1}
    ):
        conflicts.append("Kullanıcı adı")
    if email and await db.users.find_one(
        {**base, "email": {"$regex": f"^{re.escape(email)}$", "$options": "i"}}, {"_id": 0, "id": 1}
    ):
        conflicts.append("E-posta")
    if conflicts:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"{' ve '.join(conflicts)} zaten kullanımda")


async def create_user(db: AsyncIOMotorDatabase, payload: Any, role: str, **extra: Any) -> Dict[str, Any]:
    data = {k: v for k, v in payload.model_dump(exclude={"password"}).items() if v is not None}
    data.update(extra)
    data["username"] = data["username"].strip().lower()
    data["email"] = data["email"].strip().lower()
    await ensure_unique_user(db, data["username"], data["email"])
    record = UserRecord(role=role, password_hash=get_password_hash(payload.password), **data)
    doc = record.model_dump()
    doc["password_hash"] = record.password_hash
    await db.users.insert_one(doc)
    return record.model_dump()
