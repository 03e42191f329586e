import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from .errors import SlotsExhaustedError
from .models import FreeTeacherSlotRecord, SubscriptionRecord
from .utils import Clock, round_half_up, shift_months, to_iso, utc_now

logger = logging.getLogger(__name__)

PLAN_PRICES = {
    "3months": 1500,
    "6months": 2400,
    "12months": 3600,
}
PLAN_MONTHS = {
    "3months": 3,
    "6months": 6,
    "12months": 12,
}
FREE_SLOT_LIMIT = 20
FREE_SLOT_DAYS = 365
RECENT_SLOT_COUNT = 5


def apply_discount(price: float, percentage: float) -> int:
    return round_half_up(price - price * percentage / 100)


def plan_end_date(start, plan_type: str):
    return shift_months(start, PLAN_MONTHS[plan_type])


async def active_discounts(db: AsyncIOMotorDatabase, clock: Clock = utc_now) -> List[Dict[str, Any]]:
    now = to_iso(clock())
    discounts = await db.discounts.find(
        {"is_active": True, "start_date": {"$lte": now}, "end_date": {"$gte": now}}, {"_id": 0}
    ).to_list(200)
    return [
        d for d in discounts
        if d.get("max_uses") is None or d.get("current_uses", 0) < d["max_uses"]
    ]


def best_discount(discounts: List[Dict[str, Any]], plan_type: str) -> Optional[Dict[str, Any]]:
    matching = [d for d in discounts if plan_type in (d.get("plan_types") or [])]
    if not matching:
        return None
    return max(matching, key=lambda d: d.get("discount_percentage", 0))


async def get_pricing(db: AsyncIOMotorDatabase, clock: Clock = utc_now) -> List[Dict[str, Any]]:
    discounts = await active_discounts(db, clock)
    plans = []
    for plan_type, original in PLAN_PRICES.items():
        discount = best_discount(discounts, plan_type)
        percentage = discount["discount_percentage"] if discount else 0
        plans.append({
            "plan_type": plan_type,
            "months": PLAN_MONTHS[plan_type],
            "original_price": original,
            "discounted_price": apply_discount(original, percentage) if discount else original,
            "discount_percentage": percentage,
            "discount_name": discount["name"] if discount else None,
        })
    return plans


async def release_expired_slots(db: AsyncIOMotorDatabase, clock: Clock = utc_now) -> int:
    result = await db.free_teacher_slots.delete_many({"expires_at": {"$lt": to_iso(clock())}})
    if result.deleted_count:
        logger.info("Released %s expired free teacher slot(s)", result.deleted_count)
    return result.deleted_count


async def get_free_slot_summary(db: AsyncIOMotorDatabase, clock: Clock = utc_now) -> Dict[str, Any]:
    await release_expired_slots(db, clock)
    used = await db.free_teacher_slots.count_documents({"is_active": True})
    recent = await db.free_teacher_slots.find({"is_active": True}, {"_id": 0}).sort(
        "assigned_at", -1
    ).limit(RECENT_SLOT_COUNT).to_list(RECENT_SLOT_COUNT)
    teacher_ids = [slot["teacher_id"] for slot in recent]
    teachers = await db.users.find(
        {"id": {"$in": teacher_ids}}, {"_id": 0, "id": 1, "first_name": 1, "last_name": 1}
    ).to_list(RECENT_SLOT_COUNT)
    names = {t["id"]: f"{t.get('first_name', '')} {t.get('last_name', '')}".strip() for t in teachers}
    return {
        "total_slots": FREE_SLOT_LIMIT,
        "used_slots": used,
        "available_slots": max(0, FREE_SLOT_LIMIT - used),
        "recent_assignments": [
            {
                "slot_number": slot["slot_number"],
                "teacher_name": names.get(slot["teacher_id"], ""),
                "assigned_at": slot["assigned_at"],
            }
            for slot in recent
        ],
    }


async def assign_free_slot(db: AsyncIOMotorDatabase, teacher_id: str, clock: Clock = utc_now) -> Dict[str, Any]:
    """
    Give the teacher the lowest free slot number, first come first served.
    A teacher who already holds a slot gets that slot back.
    """
    await release_expired_slots(db, clock)
    existing = await db.free_teacher_slots.find_one({"teacher_id": teacher_id}, {"_id": 0})
    if existing and existing.get("is_active"):
        return existing
    if existing:
        await db.free_teacher_slots.delete_one({"teacher_id": teacher_id})

    now = clock()
    while True:
        taken_docs = await db.free_teacher_slots.find({}, {"_id": 0, "slot_number": 1}).to_list(FREE_SLOT_LIMIT * 2)
        taken = {d["slot_number"] for d in taken_docs}
        free_numbers = [n for n in range(1, FREE_SLOT_LIMIT + 1) if n not in taken]
        if not free_numbers:
            raise SlotsExhaustedError("Ücretsiz öğretmen kontenjanı doldu")
        slot = FreeTeacherSlotRecord(
            teacher_id=teacher_id,
            slot_number=free_numbers[0],
            assigned_at=to_iso(now),
            expires_at=to_iso(now + timedelta(days=FREE_SLOT_DAYS)),
        )
        doc = slot.model_dump()
        try:
            await db.free_teacher_slots.insert_one(doc)
        except DuplicateKeyError:
            # Another request took this number (or this teacher) first.
            current = await db.free_teacher_slots.find_one({"teacher_id": teacher_id}, {"_id": 0})
            if current:
                return current
            continue
        break

    doc.pop("_id", None)
    await create_subscription(db, teacher_id, "12months", clock, free_trial=True)
    logger.info("Free slot %s assigned to teacher %s", doc["slot_number"], teacher_id)
    return doc


async def create_subscription(
    db: AsyncIOMotorDatabase,
    teacher_id: str,
    plan_type: str,
    clock: Clock = utc_now,
    free_trial: bool = False,
) -> Dict[str, Any]:
    now = clock()
    original = PLAN_PRICES[plan_type]
    discount = None if free_trial else best_discount(await active_discounts(db, clock), plan_type)
    percentage = 100 if free_trial else (discount["discount_percentage"] if discount else 0)
    record = SubscriptionRecord(
        teacher_id=teacher_id,
        plan_type=plan_type,
        start_date=to_iso(now),
        end_date=to_iso(plan_end_date(now, plan_type)),
        is_free_trial=free_trial,
        original_price=original,
        discounted_price=apply_discount(original, percentage),
        discount_percentage=percentage,
        payment_status="paid" if free_trial else "pending",
    )
    await db.subscriptions.update_many({"teacher_id": teacher_id, "is_active": True}, {"$set": {"is_active": False}})
    doc = record.model_dump()
    await db.subscriptions.insert_one(doc)
    doc.pop("_id", None)
    if discount:
        await db.discounts.update_one({"id": discount["id"]}, {"$inc": {"current_uses": 1}})
    return doc
