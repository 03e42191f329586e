import asyncio
import logging
import secrets
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..errors import CoachingError, IdentityError, ReportRenderError
from ..models import ReportRecord, ReportSnapshotData
from ..utils import Clock, to_iso, utc_now
from .data import ReportData
from .fetchers import Sleep, collect_report_inputs
from .insights import generate_insights
from .metrics import build_assignment_rows, compute_metrics
from .renderers import ReportRenderer

logger = logging.getLogger(__name__)


async def build_report_data(
    db: AsyncIOMotorDatabase,
    student_id: str,
    teacher_id: str,
    start: Optional[Any] = None,
    end: Optional[Any] = None,
    clock: Clock = utc_now,
    retry_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> ReportData:
    """Fetch, measure and interpret one student's activity for the requested period."""
    try:
        inputs = await collect_report_inputs(
            db, student_id, teacher_id, start, end, clock=clock, retry_delay=retry_delay, sleep=sleep
        )
    except IdentityError:
        raise
    except Exception as exc:
        logger.exception("Report data collection failed for student %s: %s", student_id, exc)
        raise CoachingError(f"Veri toplama hatası: {exc}") from exc

    metrics = compute_metrics(inputs.assignments, inputs.submissions, inputs.goals)
    return ReportData(
        student=inputs.student,
        teacher=inputs.teacher,
        class_info=inputs.class_info,
        period=inputs.period,
        performance=metrics.performance,
        subjects=metrics.subjects,
        monthly=metrics.monthly,
        goals=inputs.goals,
        assignments=build_assignment_rows(inputs.assignments, inputs.submissions),
        insights=generate_insights(metrics, inputs.goals),
        generated_at=clock(),
    )


def render_report_pdf(
    report: ReportData,
    renderer: ReportRenderer,
    fallback: Optional[ReportRenderer] = None,
) -> bytes:
    try:
        return renderer.render(report)
    except Exception as exc:
        if fallback is None:
            logger.exception("PDF rendering failed with %s renderer: %s", renderer.name, exc)
            raise ReportRenderError("PDF oluşturulamadı") from exc
        logger.warning("%s renderer failed, falling back to %s: %s", renderer.name, fallback.name, exc)
    try:
        return fallback.render(report)
    except Exception as exc:
        logger.exception("PDF rendering failed with %s renderer: %s", fallback.name, exc)
        raise ReportRenderError("PDF oluşturulamadı") from exc


def snapshot_from_report(report: ReportData) -> ReportSnapshotData:
    return ReportSnapshotData(
        assignment_completion=report.performance.assignment_completion,
        subject_stats={stat.subject: stat.completion for stat in report.subjects},
        goals_progress=report.performance.goals_progress,
        overall_performance=report.performance.overall_performance,
    )


async def save_report(
    db: AsyncIOMotorDatabase,
    report: ReportData,
    title: Optional[str] = None,
    content: str = "",
    is_public: bool = False,
    clock: Clock = utc_now,
) -> Dict[str, Any]:
    now = to_iso(clock())
    record = ReportRecord(
        student_id=report.student.id,
        teacher_id=report.teacher.id,
        title=title or f"{report.student.full_name} Performans Raporu",
        content=content,
        data=snapshot_from_report(report),
        is_public=is_public,
        share_token=secrets.token_hex(32) if is_public else None,
        created_at=now,
        updated_at=now,
    )
    doc = record.model_dump()
    if doc["share_token"] is None:
        doc.pop("share_token")
    await db.reports.insert_one(doc)
    doc.pop("_id", None)
    doc.setdefault("share_token", None)
    return doc


async def publish_report(db: AsyncIOMotorDatabase, report_id: str, is_public: bool, clock: Clock = utc_now) -> Optional[Dict[str, Any]]:
    """Toggle sharing; a token is generated the first time a report becomes public."""
    existing = await db.reports.find_one({"id": report_id}, {"_id": 0})
    if not existing:
        return None
    updates: Dict[str, Any] = {"is_public": is_public, "updated_at": to_iso(clock())}
    if is_public and not existing.get("share_token"):
        updates["share_token"] = secrets.token_hex(32)
    result = await db.reports.find_one_and_update(
        {"id": report_id}, {"$set": updates}, projection={"_id": 0}, return_document=True
    )
    return result
