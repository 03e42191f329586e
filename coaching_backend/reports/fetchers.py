"""Entity fetchers for the report pipeline.

Identity lookups (student, teacher) are validated and retried; the peripheral
collections are fetched concurrently and degrade to empty lists on failure.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import IdentityError
from ..utils import Clock, parse_datetime, shift_months, to_iso, utc_now
from .data import (
    DEFAULT_ASSIGNMENT_TITLE,
    DEFAULT_CLASS_NAME,
    DEFAULT_GOAL_TITLE,
    DEFAULT_SUBJECT,
    AssignmentItem,
    ClassInfo,
    GoalItem,
    Period,
    ReportInputs,
    StudentInfo,
    SubmissionItem,
    TeacherInfo,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
DEFAULT_PERIOD_MONTHS = 3
FETCH_LIMIT = 1000

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[Any]]


def resolve_period(
    start: Optional[Any] = None,
    end: Optional[Any] = None,
    clock: Clock = utc_now,
) -> Period:
    """Default window is the last three months up to now."""
    end_dt = parse_datetime(end) or clock()
    start_dt = parse_datetime(start) or shift_months(end_dt, -DEFAULT_PERIOD_MONTHS)
    return Period(start=start_dt, end=end_dt)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    attempts: int = MAX_RETRIES,
    delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> T:
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            logger.warning("%s failed (attempt %s/%s): %s", label, attempt, attempts, exc)
            if attempt >= attempts:
                raise
        await sleep(delay * attempt)
        attempt += 1


async def fetch_student(db: AsyncIOMotorDatabase, student_id: str) -> StudentInfo:
    user = await db.users.find_one({"id": student_id}, {"_id": 0, "password_hash": 0})
    if not user:
        raise IdentityError(f"Öğrenci bulunamadı: {student_id}")
    if user.get("role") != "student":
        raise IdentityError(f"Kullanıcı öğrenci değil: {user.get('role')}")
    if not user.get("is_active", True):
        raise IdentityError(f"Öğrenci aktif değil: {student_id}")
    return StudentInfo(
        id=user["id"],
        first_name=user.get("first_name") or "",
        last_name=user.get("last_name") or "",
        email=user.get("email") or "",
        phone=user.get("phone"),
        class_id=user.get("class_id"),
    )


async def fetch_teacher(db: AsyncIOMotorDatabase, teacher_id: str) -> TeacherInfo:
    user = await db.users.find_one({"id": teacher_id}, {"_id": 0, "password_hash": 0})
    if not user:
        raise IdentityError(f"Öğretmen bulunamadı: {teacher_id}")
    if user.get("role") != "teacher":
        raise IdentityError(f"Kullanıcı öğretmen değil: {user.get('role')}")
    if not user.get("is_active", True):
        raise IdentityError(f"Öğretmen aktif değil: {teacher_id}")
    return TeacherInfo(
        id=user["id"],
        first_name=user.get("first_name") or "",
        last_name=user.get("last_name") or "",
        email=user.get("email") or "",
    )


async def fetch_class(db: AsyncIOMotorDatabase, class_id: Optional[str]) -> Optional[ClassInfo]:
    if not class_id:
        return None
    try:
        class_doc = await db.classes.find_one({"id": class_id}, {"_id": 0})
    except Exception as exc:
        logger.warning("Class lookup failed for %s: %s", class_id, exc)
        return None
    if not class_doc:
        return None
    return ClassInfo(
        id=class_doc["id"],
        name=class_doc.get("name") or DEFAULT_CLASS_NAME,
        description=class_doc.get("description"),
    )


def _range_filter(period: Period) -> Dict[str, str]:
    return {"$gte": to_iso(period.start), "$lte": to_iso(period.end)}


def assignment_item(doc: Dict[str, Any]) -> AssignmentItem:
    tags = doc.get("tags") or []
    return AssignmentItem(
        id=doc["id"],
        title=doc.get("title") or DEFAULT_ASSIGNMENT_TITLE,
        subject=(tags[0] if tags and tags[0] else DEFAULT_SUBJECT),
        due_date=parse_datetime(doc.get("due_date")),
        max_grade=doc.get("max_grade") or 100,
    )


def submission_item(doc: Dict[str, Any]) -> SubmissionItem:
    return SubmissionItem(
        id=doc["id"],
        assignment_id=doc["assignment_id"],
        status=doc.get("status") or "submitted",
        grade=doc.get("grade"),
        submitted_at=parse_datetime(doc.get("submitted_at")),
        graded_at=parse_datetime(doc.get("graded_at")),
    )


def goal_item(doc: Dict[str, Any]) -> GoalItem:
    return GoalItem(
        id=doc["id"],
        title=doc.get("title") or DEFAULT_GOAL_TITLE,
        description=doc.get("description") or "",
        status=doc.get("status") or "pending",
        progress=doc.get("progress") or 0,
        target_date=parse_datetime(doc.get("target_date")),
        completed_at=parse_datetime(doc.get("completed_at")),
        created_at=parse_datetime(doc.get("created_at")),
    )


async def fetch_assignments(db: AsyncIOMotorDatabase, student_id: str, period: Period) -> List[AssignmentItem]:
    docs = await db.assignments.find(
        {"student_id": student_id, "due_date": _range_filter(period)}, {"_id": 0}
    ).sort("due_date", -1).to_list(FETCH_LIMIT)
    return [assignment_item(doc) for doc in docs]


async def fetch_submissions(db: AsyncIOMotorDatabase, student_id: str, period: Period) -> List[SubmissionItem]:
    docs = await db.assignment_submissions.find(
        {"student_id": student_id, "submitted_at": _range_filter(period)}, {"_id": 0}
    ).sort("submitted_at", -1).to_list(FETCH_LIMIT)
    return [submission_item(doc) for doc in docs]


async def fetch_goals(db: AsyncIOMotorDatabase, student_id: str, period: Period) -> List[GoalItem]:
    docs = await db.goals.find(
        {"student_id": student_id, "created_at": _range_filter(period)}, {"_id": 0}
    ).sort("target_date", 1).to_list(FETCH_LIMIT)
    return [goal_item(doc) for doc in docs]


def _settled(result: Any, label: str) -> list:
    if isinstance(result, BaseException):
        logger.warning("%s could not be fetched, continuing with empty list: %s", label, result)
        return []
    return result


async def collect_report_inputs(
    db: AsyncIOMotorDatabase,
    student_id: str,
    teacher_id: str,
    start: Optional[Any] = None,
    end: Optional[Any] = None,
    clock: Clock = utc_now,
    retry_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> ReportInputs:
    period = resolve_period(start, end, clock)
    student = await with_retry(
        lambda: fetch_student(db, student_id), "Student fetch", delay=retry_delay, sleep=sleep
    )
    teacher = await with_retry(
        lambda: fetch_teacher(db, teacher_id), "Teacher fetch", delay=retry_delay, sleep=sleep
    )
    class_info = await fetch_class(db, student.class_id)

    assignments, submissions, goals = await asyncio.gather(
        fetch_assignments(db, student_id, period),
        fetch_submissions(db, student_id, period),
        fetch_goals(db, student_id, period),
        return_exceptions=True,
    )
    return ReportInputs(
        student=student,
        teacher=teacher,
        class_info=class_info,
        period=period,
        assignments=_settled(assignments, "Assignments"),
        submissions=_settled(submissions, "Submissions"),
        goals=_settled(goals, "Goals"),
    )
