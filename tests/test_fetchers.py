from datetime import datetime, timezone

import pytest

from conftest import run, seed_user
from coaching_backend.errors import CoachingError, IdentityError
from coaching_backend.reports import fetchers
from coaching_backend.reports.fetchers import collect_report_inputs, resolve_period, with_retry
from coaching_backend.reports.service import build_report_data

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_default_period_is_three_months():
    period = resolve_period(clock=fixed_clock)
    assert period.end == NOW
    assert period.start == datetime(2024, 2, 15, 12, 0, tzinfo=timezone.utc)


def test_explicit_period_is_parsed():
    period = resolve_period("2024-01-01T00:00:00Z", "2024-02-01", clock=fixed_clock)
    assert period.start == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert period.end == datetime(2024, 2, 1, tzinfo=timezone.utc)


def test_retry_uses_linear_backoff_then_succeeds():
    calls = []
    sleep = RecordingSleep()

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("temporarily unavailable")
        return "ok"

    assert run(with_retry(flaky, "flaky", delay=1.0, sleep=sleep)) == "ok"
    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]


def test_retry_gives_up_after_three_attempts():
    sleep = RecordingSleep()

    async def broken():
        raise IdentityError("Öğrenci bulunamadı: x")

    with pytest.raises(IdentityError):
        run(with_retry(broken, "broken", delay=0.5, sleep=sleep))
    assert sleep.delays == [0.5, 1.0]


def test_identity_validation(db):
    teacher = seed_user(db, "teacher", "ogretmen")
    parent = seed_user(db, "parent", "veli")
    inactive = seed_user(db, "student", "pasif", is_active=False)

    with pytest.raises(IdentityError, match="Öğrenci bulunamadı"):
        run(collect_report_inputs(db, "missing", teacher["id"], clock=fixed_clock, retry_delay=0))
    with pytest.raises(IdentityError, match="Kullanıcı öğrenci değil"):
        run(collect_report_inputs(db, parent["id"], teacher["id"], clock=fixed_clock, retry_delay=0))
    with pytest.raises(IdentityError, match="Öğrenci aktif değil"):
        run(collect_report_inputs(db, inactive["id"], teacher["id"], clock=fixed_clock, retry_delay=0))


def test_collects_entities_in_period(db):
    teacher = seed_user(db, "teacher", "ogretmen")
    student = seed_user(db, "student", "ogrenci", class_id="c1")
    run(db.classes.insert_one({"id": "c1", "name": "9-A", "teacher_id": teacher["id"], "students": [student["id"]]}))
    run(db.assignments.insert_many([
        {"id": "a1", "student_id": student["id"], "title": "Türev", "tags": ["Matematik"],
         "due_date": "2024-04-10T09:00:00+00:00", "max_grade": 100},
        {"id": "a2", "student_id": student["id"], "title": "", "tags": [],
         "due_date": "2024-05-01T09:00:00+00:00"},
        {"id": "old", "student_id": student["id"], "title": "Eski", "due_date": "2023-01-01T09:00:00+00:00"},
    ]))
    run(db.assignment_submissions.insert_one(
        {"id": "s1", "assignment_id": "a1", "student_id": student["id"], "status": "graded", "grade": 85,
         "submitted_at": "2024-04-09T10:00:00+00:00"}
    ))
    run(db.goals.insert_one(
        {"id": "g1", "student_id": student["id"], "title": "Okuma", "status": "in_progress", "progress": 40,
         "target_date": "2024-06-01T00:00:00+00:00", "created_at": "2024-04-01T00:00:00+00:00"}
    ))

    inputs = run(collect_report_inputs(db, student["id"], teacher["id"], clock=fixed_clock, retry_delay=0))

    assert inputs.class_info.name == "9-A"
    assert [a.id for a in inputs.assignments] == ["a2", "a1"]
    assert inputs.assignments[0].subject == "Genel"
    assert inputs.assignments[0].title == "Başlıksız Ödev"
    assert inputs.assignments[1].subject == "Matematik"
    assert [s.id for s in inputs.submissions] == ["s1"]
    assert [g.id for g in inputs.goals] == ["g1"]


def test_peripheral_failures_degrade_to_empty(db, monkeypatch):
    teacher = seed_user(db, "teacher", "ogretmen")
    student = seed_user(db, "student", "ogrenci")

    async def failing(*args, **kwargs):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(fetchers, "fetch_submissions", failing)
    monkeypatch.setattr(fetchers, "fetch_goals", failing)

    inputs = run(collect_report_inputs(db, student["id"], teacher["id"], clock=fixed_clock, retry_delay=0))

    assert inputs.submissions == []
    assert inputs.goals == []
    assert inputs.class_info is None


def test_build_report_data_for_empty_student(db):
    teacher = seed_user(db, "teacher", "ogretmen")
    student = seed_user(db, "student", "ogrenci")

    report = run(build_report_data(db, student["id"], teacher["id"], clock=fixed_clock, retry_delay=0))

    assert report.performance.overall_performance == 0
    assert report.insights.recommendations == ["Mevcut performansı korumak için düzenli çalışmaya devam edilmelidir."]
    assert report.generated_at == NOW


def test_build_report_data_wraps_unexpected_errors(db, monkeypatch):
    teacher = seed_user(db, "teacher", "ogretmen")
    student = seed_user(db, "student", "ogrenci")

    def broken_period(*args, **kwargs):
        raise ValueError("bad period")

    monkeypatch.setattr(fetchers, "resolve_period", broken_period)

    with pytest.raises(CoachingError, match="Veri toplama hatası"):
        run(build_report_data(db, student["id"], teacher["id"], clock=fixed_clock, retry_delay=0))
