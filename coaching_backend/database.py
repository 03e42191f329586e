import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from .config import Settings

logger = logging.getLogger(__name__)


def create_client(settings: Settings) -> AsyncIOMotorClient:
    try:
        return AsyncIOMotorClient(settings.mongo_url, serverSelectionTimeoutMS=5000)
    except Exception as e:
        logger.error("Failed to create MongoDB client: %s", e)
        raise


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create every collection index once at startup."""
    await db.users.create_index([("id", 1)], unique=True)
    await db.users.create_index([("username", 1)], unique=True)
    await db.users.create_index([("email", 1)], unique=True)
    await db.users.create_index([("role", 1), ("is_active", 1)])
    await db.users.create_index([("children", 1)])
    await db.classes.create_index([("id", 1)], unique=True)
    await db.classes.create_index([("teacher_id", 1), ("name", 1)])
    await db.classes.create_index([("co_teachers", 1)])
    await db.assignments.create_index([("id", 1)], unique=True)
    await db.assignments.create_index([("student_id", 1), ("due_date", -1)])
    await db.assignments.create_index([("class_id", 1)])
    await db.assignments.create_index([("teacher_id", 1)])
    await db.assignment_submissions.create_index([("id", 1)], unique=True)
    await db.assignment_submissions.create_index(
        [("assignment_id", 1), ("student_id", 1)], unique=True
    )
    await db.assignment_submissions.create_index([("student_id", 1), ("submitted_at", -1)])
    await db.goals.create_index([("id", 1)], unique=True)
    await db.goals.create_index([("student_id", 1), ("created_at", -1)])
    await db.goals.create_index([("teacher_id", 1), ("target_date", 1)])
    await db.reports.create_index([("id", 1)], unique=True)
    await db.reports.create_index([("share_token", 1)])
    await db.parent_notifications.create_index([("parent_id", 1), ("created_at", -1)])
    await db.subscriptions.create_index([("teacher_id", 1)])
    await db.discounts.create_index([("id", 1)], unique=True)
    await db.free_teacher_slots.create_index([("teacher_id", 1)], unique=True)
    await db.free_teacher_slots.create_index([("slot_number", 1)], unique=True)
    await db.notification_logs.create_index([("created_at", -1)])
