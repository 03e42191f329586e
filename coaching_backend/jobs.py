import logging
from datetime import timedelta
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from motor.motor_asyncio import AsyncIOMotorDatabase

from .access import resolve_student_teacher
from .config import Settings
from .errors import CoachingError
from .models import LowPerformancePayload
from .notifications import notify_parents_of_student
from .reports.service import build_report_data
from .utils import Clock, to_iso, utc_now

logger = logging.getLogger(__name__)

LOW_PERFORMANCE_THRESHOLD = 50
LOOKBACK_DAYS = 7


async def check_low_performance(
    db: AsyncIOMotorDatabase,
    settings: Settings,
    clock: Clock = utc_now,
) -> int:
    """Notify parents of active students whose overall performance last week fell below the threshold."""
    end = clock()
    start = end - timedelta(days=LOOKBACK_DAYS)
    students = await db.users.find(
        {"role": "student", "is_active": True}, {"_id": 0, "password_hash": 0}
    ).to_list(5000)
    notified = 0
    for student in students:
        teacher_id = await resolve_student_teacher(db, student)
        if not teacher_id:
            continue
        try:
            report = await build_report_data(
                db, student["id"], teacher_id, start, end, clock=clock, retry_delay=settings.report_retry_delay
            )
        except CoachingError as exc:
            logger.warning("Weekly check skipped student %s: %s", student["id"], exc.message)
            continue
        performance = report.performance
        if performance.total_assignments == 0 or performance.overall_performance >= LOW_PERFORMANCE_THRESHOLD:
            continue
        await notify_parents_of_student(
            db,
            settings,
            student["id"],
            "Düşük Performans Uyarısı",
            f"{report.student.full_name} son {LOOKBACK_DAYS} günde %{performance.overall_performance} "
            f"genel performans gösterdi.",
            LowPerformancePayload(
                overall_performance=performance.overall_performance,
                threshold=LOW_PERFORMANCE_THRESHOLD,
                period_start=to_iso(start),
                period_end=to_iso(end),
            ),
            priority="high",
            clock=clock,
        )
        notified += 1
    logger.info("Weekly performance check finished, %s student(s) flagged", notified)
    return notified


def create_scheduler(job: Callable, settings: Settings) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=settings.report_timezone)
    scheduler.add_job(
        job,
        CronTrigger(day_of_week="sun", hour=8, minute=0, timezone=settings.report_timezone),
        id="weekly_low_performance",
        replace_existing=True,
    )
    return scheduler
