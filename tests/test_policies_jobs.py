from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from conftest import run, seed_user
from coaching_backend.config import Settings
from coaching_backend.jobs import check_low_performance
from coaching_backend.notifications import normalize_phone_number
from coaching_backend.policies import apply_goal_rules, apply_late_penalty, check_submission_window

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def _at(days):
    return (NOW + timedelta(days=days)).isoformat()


def test_until_close_policy_accepts_late_work_before_close():
    assignment = {"due_date": _at(-1), "close_at": _at(2), "allow_late": {"policy": "untilClose"}}
    assert check_submission_window(assignment, NOW) is True

    closed = {**assignment, "close_at": _at(-0.5)}
    with pytest.raises(HTTPException) as excinfo:
        check_submission_window(closed, NOW)
    assert excinfo.value.detail == "Ödev süresi doldu"


def test_always_policy_ignores_close_date():
    assignment = {"due_date": _at(-3), "close_at": _at(-1), "allow_late": {"policy": "always"}}
    assert check_submission_window(assignment, NOW) is True


def test_on_time_submission_is_not_late():
    assert check_submission_window({"due_date": _at(1)}, NOW) is False


def test_late_penalty_only_for_late_submissions():
    assignment = {"allow_late": {"policy": "always", "penalty_percent": 15}}
    assert apply_late_penalty(80, {"status": "late"}, assignment) == 68
    assert apply_late_penalty(80, {"status": "submitted"}, assignment) == 80


def test_goal_rules():
    completed = apply_goal_rules({"status": "completed"}, {"status": "in_progress", "progress": 20}, NOW)
    assert completed["progress"] == 100
    assert completed["completed_at"] == NOW.isoformat()

    reopened = apply_goal_rules({"status": "in_progress", "progress": 60}, {"status": "completed", "progress": 100}, NOW)
    assert reopened["completed_at"] is None
    assert reopened["status"] == "in_progress"

    started = apply_goal_rules({"progress": 10}, {"status": "pending", "progress": 0}, NOW)
    assert started["status"] == "in_progress"

    cancelled = apply_goal_rules({"status": "cancelled"}, {"status": "in_progress", "progress": 100}, NOW)
    assert cancelled["status"] == "cancelled"
    assert cancelled["progress"] == 100

    moved_back = apply_goal_rules({"status": "in_progress"}, {"status": "completed", "progress": 100}, NOW)
    assert moved_back["status"] == "in_progress"
    assert moved_back["completed_at"] is None

    finished = apply_goal_rules({"progress": 100}, {"status": "cancelled", "progress": 40}, NOW)
    assert finished["status"] == "completed"


def test_normalize_phone_number():
    assert normalize_phone_number("0532 123 45 67") == "+905321234567"
    assert normalize_phone_number("+900532") == "+90532"
    assert normalize_phone_number(None) is None


def test_weekly_job_flags_low_performance(db):
    teacher = seed_user(db, "teacher", "ogretmen")
    weak = seed_user(db, "student", "zayif", created_by=teacher["id"])
    strong = seed_user(db, "student", "guclu", created_by=teacher["id"])
    idle = seed_user(db, "student", "bos", created_by=teacher["id"])
    seed_user(db, "parent", "veli", children=[weak["id"], strong["id"], idle["id"]])

    run(db.assignments.insert_many([
        {"id": "w1", "student_id": weak["id"], "title": "A", "due_date": _at(-2)},
        {"id": "w2", "student_id": weak["id"], "title": "B", "due_date": _at(-3)},
        {"id": "g1", "student_id": strong["id"], "title": "C", "due_date": _at(-2)},
    ]))
    run(db.assignment_submissions.insert_one(
        {"id": "s1", "assignment_id": "g1", "student_id": strong["id"], "status": "graded", "grade": 95,
         "submitted_at": _at(-2)}
    ))

    flagged = run(check_low_performance(db, Settings(report_retry_delay=0), clock=lambda: NOW))

    assert flagged == 1
    notifications = run(db.parent_notifications.find({}, {"_id": 0}).to_list(10))
    assert [n["student_id"] for n in notifications] == [weak["id"]]
    assert notifications[0]["payload"]["type"] == "low_performance"
    assert notifications[0]["payload"]["threshold"] == 50
