from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..billing import get_free_slot_summary, get_pricing
from ..security import get_clock, get_db
from ..utils import Clock

public_router = APIRouter()


@public_router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@public_router.get("/api/pricing")
async def pricing(
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> List[Dict[str, Any]]:
    return await get_pricing(db, clock)


@public_router.get("/api/free-teacher-slots")
async def free_teacher_slots(
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> Dict[str, Any]:
    return await get_free_slot_summary(db, clock)
