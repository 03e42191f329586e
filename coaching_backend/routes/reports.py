import io
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from ..access import get_teacher_student
from ..config import Settings
from ..models import ReportCreate, ReportRecord, ReportRequest
from ..reports.data import ReportData
from ..reports.exports import XLSX_MEDIA_TYPE, generate_report_excel
from ..reports.renderers import report_filename
from ..reports.service import build_report_data, publish_report, render_report_pdf, save_report
from ..security import get_clock, get_current_user, get_db, get_settings, require_role
from ..utils import Clock

logger = logging.getLogger(__name__)

require_teacher = require_role("teacher")
teacher_reports_router = APIRouter(prefix="/api/teacher")
reports_router = APIRouter(prefix="/api/reports")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class ReportShareUpdate(BaseModel):
    is_public: bool


async def _teacher_report_data(
    db: AsyncIOMotorDatabase,
    teacher_id: str,
    student_id: str,
    start_date: Optional[str],
    end_date: Optional[str],
    settings: Settings,
    clock: Clock,
) -> ReportData:
    await get_teacher_student(db, teacher_id, student_id)
    return await build_report_data(
        db, student_id, teacher_id, start_date, end_date, clock=clock, retry_delay=settings.report_retry_delay
    )


@teacher_reports_router.get("/students/{student_id}/report/data", response_model=ReportData)
async def get_report_data(
    student_id: str,
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    return await _teacher_report_data(db, current_user["id"], student_id, start_date, end_date, settings, clock)


@teacher_reports_router.post("/students/{student_id}/report/download")
async def download_report(
    student_id: str,
    payload: ReportRequest,
    request: Request,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    report = await _teacher_report_data(
        db, current_user["id"], student_id, payload.start_date, payload.end_date, settings, clock
    )
    if payload.format == "xlsx":
        content = await run_in_threadpool(generate_report_excel, report, settings.tz)
        media_type = XLSX_MEDIA_TYPE
        filename = report_filename(report, settings.tz, "xlsx")
    else:
        content = await run_in_threadpool(
            render_report_pdf,
            report,
            request.app.state.renderer,
            getattr(request.app.state, "fallback_renderer", None),
        )
        media_type = "application/pdf"
        filename = report_filename(report, settings.tz, "pdf")
    logger.info("Report %s generated for student %s (%s bytes)", payload.format, student_id, len(content))
    headers = {"Content-Disposition": f'attachment; filename="{filename}"', **NO_CACHE_HEADERS}
    return StreamingResponse(io.BytesIO(content), media_type=media_type, headers=headers)


@teacher_reports_router.post("/students/{student_id}/report", response_model=ReportRecord, status_code=201)
async def create_report(
    student_id: str,
    payload: ReportCreate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    report = await _teacher_report_data(
        db, current_user["id"], student_id, payload.start_date, payload.end_date, settings, clock
    )
    return await save_report(db, report, payload.title, payload.content, payload.is_public, clock=clock)


@teacher_reports_router.get("/reports", response_model=List[ReportRecord])
async def list_reports(
    student_id: Optional[str] = Query(None),
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    query: Dict[str, Any] = {"teacher_id": current_user["id"]}
    if student_id:
        query["student_id"] = student_id
    return await db.reports.find(query, {"_id": 0}).sort("created_at", -1).to_list(500)


@reports_router.get("/shared/{share_token}", response_model=ReportRecord)
async def get_shared_report(share_token: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    report = await db.reports.find_one({"share_token": share_token, "is_public": True}, {"_id": 0})
    if not report:
        raise HTTPException(status_code=404, detail="Rapor bulunamadı")
    return report


async def _owned_report(db: AsyncIOMotorDatabase, user: Dict[str, Any], report_id: str) -> Dict[str, Any]:
    report = await db.reports.find_one({"id": report_id}, {"_id": 0})
    if not report or (user["role"] != "admin" and report["teacher_id"] != user["id"]):
        raise HTTPException(status_code=404, detail="Rapor bulunamadı")
    return report


@reports_router.get("/{report_id}", response_model=ReportRecord)
async def get_report(
    report_id: str,
    current_user: Dict[str, Any] = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await _owned_report(db, current_user, report_id)


@reports_router.patch("/{report_id}/share", response_model=ReportRecord)
async def share_report(
    report_id: str,
    payload: ReportShareUpdate,
    current_user: Dict[str, Any] = Depends(require_teacher),
    db: AsyncIOMotorDatabase = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    await _owned_report(db, current_user, report_id)
    return await publish_report(db, report_id, payload.is_public, clock=clock)
