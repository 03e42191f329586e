"""Status rules for goals and the submission window of assignments."""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException

from .utils import parse_datetime, to_iso

GOAL_STATUSES = ("pending", "in_progress", "completed", "cancelled")


def validate_goal_changes(status: Optional[str], progress: Optional[Any]):
    if status is not None and status not in GOAL_STATUSES:
        raise HTTPException(status_code=400, detail="Geçersiz durum")
    if progress is not None and (
        isinstance(progress, bool) or not isinstance(progress, int) or not 0 <= progress <= 100
    ):
        raise HTTPException(status_code=400, detail="Geçersiz ilerleme")


def apply_goal_rules(updates: Dict[str, Any], current: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """
    Keep status and progress consistent.

    A requested status is applied first; ``completed`` forces progress 100.
    A requested progress is applied after it: 100 completes the goal and any
    progress moves a pending goal to in_progress. Stored progress alone never
    changes the status.
    """
    result = dict(updates)
    status = current.get("status", "pending")
    progress = current.get("progress", 0) or 0

    if updates.get("status") is not None:
        status = updates["status"]
        if status == "completed":
            progress = 100
    if updates.get("progress") is not None:
        progress = updates["progress"]
        if progress >= 100:
            progress = 100
            status = "completed"
        elif progress > 0 and status == "pending":
            status = "in_progress"

    result["status"] = status
    result["progress"] = progress
    if status == "completed" and current.get("status") != "completed":
        result["completed_at"] = to_iso(now)
    elif status != "completed":
        result["completed_at"] = None
    return result


def check_submission_window(assignment: Dict[str, Any], now: datetime) -> bool:
    """Raise 403 when the assignment cannot be submitted now; return True when the submission is late."""
    publish_at = parse_datetime(assignment.get("publish_at"))
    close_at = parse_datetime(assignment.get("close_at"))
    due_date = parse_datetime(assignment.get("due_date"))
    policy = (assignment.get("allow_late") or {}).get("policy", "no")

    if publish_at and now < publish_at:
        raise HTTPException(status_code=403, detail="Ödev henüz yayınlanmadı")
    if close_at and now > close_at and policy != "always":
        raise HTTPException(status_code=403, detail="Ödev süresi doldu")
    late = bool(due_date and now > due_date)
    if late and policy == "no":
        raise HTTPException(status_code=403, detail="Ödev süresi doldu")
    return late


def apply_late_penalty(grade: float, submission: Dict[str, Any], assignment: Dict[str, Any]) -> float:
    penalty = (assignment.get("allow_late") or {}).get("penalty_percent", 0) or 0
    if submission.get("status") != "late" or penalty <= 0:
        return grade
    return round(grade * (100 - penalty) / 100, 2)
