from datetime import datetime, timedelta, timezone

import pytest

from conftest import login, run, seed_user


def _iso(days):
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


@pytest.fixture
def student(db, teacher):
    student = seed_user(db, "student", "ali", first_name="Ali", last_name="Kaya", created_by=teacher["id"])
    run(db.assignments.insert_many([
        {"id": f"a{i}", "student_id": student["id"], "teacher_id": teacher["id"], "title": f"Ödev {i}",
         "tags": ["Matematik"], "due_date": _iso(-i - 1), "max_grade": 100}
        for i in range(4)
    ]))
    run(db.assignment_submissions.insert_many([
        {"id": "s0", "assignment_id": "a0", "student_id": student["id"], "status": "graded", "grade": 90,
         "submitted_at": _iso(-2)},
        {"id": "s1", "assignment_id": "a1", "student_id": student["id"], "status": "submitted",
         "submitted_at": _iso(-3)},
    ]))
    return student


def test_report_data(client, teacher_headers, student):
    response = client.get(f"/api/teacher/students/{student['id']}/report/data", headers=teacher_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["performance"]["assignment_completion"] == 50
    assert data["performance"]["grading_rate"] == 50
    assert data["performance"]["average_grade"] == 90
    assert data["performance"]["overall_performance"] == 62
    assert data["subjects"][0]["subject"] == "Matematik"
    assert "Ödev teslim oranı" in data["insights"]["areas_for_improvement"]


def test_report_for_unknown_student_is_404(client, teacher_headers):
    response = client.get("/api/teacher/students/missing/report/data", headers=teacher_headers)
    assert response.status_code == 404


def test_pdf_download(client, teacher_headers, student):
    response = client.post(
        f"/api/teacher/students/{student['id']}/report/download", json={}, headers=teacher_headers
    )

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="rapor_Ali_Kaya_')
    assert disposition.endswith('.pdf"')
    assert "no-cache" in response.headers["cache-control"]


def test_excel_download(client, teacher_headers, student):
    response = client.post(
        f"/api/teacher/students/{student['id']}/report/download", json={"format": "xlsx"}, headers=teacher_headers
    )
    assert response.status_code == 200
    assert response.content[:2] == b"PK"
    assert response.headers["content-disposition"].endswith('.xlsx"')


def test_identity_errors_surface_as_404(client, db, teacher_headers, teacher, student):
    run(db.users.update_one({"id": student["id"]}, {"$set": {"is_active": False}}))
    response = client.get(f"/api/teacher/students/{student['id']}/report/data", headers=teacher_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == f"Öğrenci aktif değil: {student['id']}"


def test_saved_report_sharing(client, teacher_headers, student):
    private = client.post(
        f"/api/teacher/students/{student['id']}/report", json={"title": "Dönem raporu"}, headers=teacher_headers
    )
    assert private.status_code == 201
    assert private.json()["share_token"] is None
    assert private.json()["data"]["assignment_completion"] == 50

    shared = client.patch(
        f"/api/reports/{private.json()['id']}/share", json={"is_public": True}, headers=teacher_headers
    ).json()
    token = shared["share_token"]
    assert len(token) == 64

    client.cookies.clear()
    public = client.get(f"/api/reports/shared/{token}")
    assert public.status_code == 200
    assert public.json()["title"] == "Dönem raporu"

    client.patch(f"/api/reports/{shared['id']}/share", json={"is_public": False}, headers=teacher_headers)
    assert client.get(f"/api/reports/shared/{token}").status_code == 404
    assert client.get("/api/reports/shared/unknown").status_code == 404


def test_saved_report_visible_to_owner_only(client, db, teacher_headers, student):
    report = client.post(
        f"/api/teacher/students/{student['id']}/report", json={"is_public": True}, headers=teacher_headers
    ).json()
    assert report["share_token"]
    assert report["title"] == "Ali Kaya Performans Raporu"

    assert client.get(f"/api/reports/{report['id']}", headers=teacher_headers).status_code == 200

    seed_user(db, "teacher", "baska")
    other = login(client, "baska")
    assert client.get(f"/api/reports/{report['id']}", headers=other).status_code == 404
