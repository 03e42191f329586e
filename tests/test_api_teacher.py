from datetime import datetime, timedelta, timezone

from conftest import login, run, seed_user


def _iso(days):
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def _create_student(client, headers, username, class_id=None):
    payload = {
        "username": username,
        "email": f"{username}@example.com",
        "password": "secret123",
        "first_name": username.capitalize(),
        "last_name": "Öztürk",
    }
    if class_id:
        payload["class_id"] = class_id
    response = client.post("/api/teacher/students", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_class_co_teacher_limit(client, db, teacher_headers):
    co_teachers = [seed_user(db, "teacher", f"yardimci{i}")["id"] for i in range(4)]

    too_many = client.post(
        "/api/teacher/classes", json={"name": "9-A", "co_teachers": co_teachers}, headers=teacher_headers
    )
    assert too_many.status_code == 422
    assert "Maksimum 3 yardımcı öğretmen seçebilirsiniz" in too_many.text

    created = client.post(
        "/api/teacher/classes", json={"name": "9-A", "co_teachers": co_teachers[:3]}, headers=teacher_headers
    )
    assert created.status_code == 201
    class_id = created.json()["id"]

    update = client.put(
        f"/api/teacher/classes/{class_id}", json={"co_teachers": co_teachers}, headers=teacher_headers
    )
    assert update.status_code == 422

    duplicate = client.post("/api/teacher/classes", json={"name": "9-A"}, headers=teacher_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Bu isimde zaten bir sınıf mevcut"


def test_co_teacher_sees_class(client, db, teacher_headers):
    helper = seed_user(db, "teacher", "yardimci")
    client.post("/api/teacher/classes", json={"name": "10-B", "co_teachers": [helper["id"]]}, headers=teacher_headers)

    helper_headers = login(client, "yardimci")
    classes = client.get("/api/teacher/classes", headers=helper_headers).json()
    assert [c["name"] for c in classes] == ["10-B"]


def test_student_and_parent_management(client, db, teacher_headers):
    class_id = client.post("/api/teacher/classes", json={"name": "9-A"}, headers=teacher_headers).json()["id"]
    student = _create_student(client, teacher_headers, "ali", class_id)
    assert student["class_id"] == class_id
    assert "password_hash" not in student

    duplicate = client.post(
        "/api/teacher/students",
        json={"username": "ALI", "email": "ALI@example.com", "password": "secret123",
              "first_name": "Ali", "last_name": "Kaya"},
        headers=teacher_headers,
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Kullanıcı adı ve E-posta zaten kullanımda"

    students = client.get("/api/teacher/students", headers=teacher_headers).json()
    assert [s["username"] for s in students] == ["ali"]

    parent = client.post(
        "/api/teacher/parents",
        json={"username": "veli", "email": "veli@example.com", "password": "secret123",
              "first_name": "Fatma", "last_name": "Öztürk", "children": [student["id"]]},
        headers=teacher_headers,
    )
    assert parent.status_code == 201
    assert parent.json()["children"] == [student["id"]]

    other_teacher = seed_user(db, "teacher", "baska")
    other_headers = login(client, "baska")
    forbidden = client.get(f"/api/teacher/students/{student['id']}", headers=other_headers)
    assert forbidden.status_code == 404
    assert other_teacher["id"] != student["created_by"]


def test_class_assignment_fans_out_per_student(client, teacher_headers):
    class_id = client.post("/api/teacher/classes", json={"name": "9-A"}, headers=teacher_headers).json()["id"]
    _create_student(client, teacher_headers, "ali", class_id)
    _create_student(client, teacher_headers, "veli", class_id)

    missing_class = client.post(
        "/api/teacher/assignments",
        json={"title": "Türev", "type": "class", "due_date": _iso(7)},
        headers=teacher_headers,
    )
    assert missing_class.status_code == 400
    assert missing_class.json()["detail"] == "Sınıf ID, sınıf ödevi için gereklidir"

    response = client.post(
        "/api/teacher/assignments",
        json={"title": "Türev", "type": "class", "class_id": class_id, "due_date": _iso(7), "tags": ["Matematik"]},
        headers=teacher_headers,
    )
    assert response.status_code == 201
    created = response.json()
    assert len(created) == 2
    assert len({a["student_id"] for a in created}) == 2

    deleted = client.delete(f"/api/teacher/classes/{class_id}", headers=teacher_headers)
    assert deleted.status_code == 200
    assert client.get("/api/teacher/assignments", headers=teacher_headers).json() == []


def test_grading_applies_late_penalty_and_notifies_parent(client, db, teacher_headers):
    student = _create_student(client, teacher_headers, "ali")
    client.post(
        "/api/teacher/parents",
        json={"username": "veli", "email": "veli@example.com", "password": "secret123",
              "first_name": "Fatma", "last_name": "Öztürk", "children": [student["id"]]},
        headers=teacher_headers,
    )
    assignment = client.post(
        "/api/teacher/assignments",
        json={"title": "Deneme", "student_id": student["id"], "due_date": _iso(-1),
              "allow_late": {"policy": "always", "penalty_percent": 20}},
        headers=teacher_headers,
    ).json()[0]

    student_headers = login(client, "ali")
    submission = client.post(
        f"/api/student/assignments/{assignment['id']}/submit", json={"content": "Cevaplarım"}, headers=student_headers
    )
    assert submission.status_code == 201
    assert submission.json()["status"] == "late"

    grade_response = client.put(
        f"/api/teacher/assignments/submissions/{submission.json()['id']}/grade",
        json={"grade": 100, "teacher_feedback": "İyi"},
        headers=teacher_headers,
    )
    assert grade_response.status_code == 200
    graded = grade_response.json()
    assert graded["raw_grade"] == 100
    assert graded["grade"] == 80
    assert graded["status"] == "graded"

    notifications = run(db.parent_notifications.find({}, {"_id": 0}).to_list(10))
    types = sorted(n["payload"]["type"] for n in notifications)
    assert types == ["assignment_completed", "assignment_graded"]
    logs = run(db.notification_logs.find({}, {"_id": 0}).to_list(10))
    assert logs and all(log["status"] == "skipped" for log in logs)

    reopened = client.put(
        f"/api/teacher/assignments/submissions/{graded['id']}/reopen", headers=teacher_headers
    )
    assert reopened.json()["status"] == "late"
    assert reopened.json()["grade"] is None


def test_goal_lifecycle_and_parent_notice(client, db, teacher_headers):
    student = _create_student(client, teacher_headers, "ali")

    incomplete = client.post("/api/teacher/goals", json={"student_id": student["id"]}, headers=teacher_headers)
    assert incomplete.status_code == 400
    assert incomplete.json()["detail"] == "Tüm gerekli alanlar doldurulmalıdır"

    goal = client.post(
        "/api/teacher/goals",
        json={"student_id": student["id"], "title": "Kitap okuma", "description": "Haftada bir kitap",
              "target_date": _iso(30)},
        headers=teacher_headers,
    ).json()
    assert goal["status"] == "pending"

    no_parent = client.post(f"/api/teacher/goals/{goal['id']}/notify-parent", headers=teacher_headers)
    assert no_parent.status_code == 404
    assert no_parent.json()["detail"] == "Öğrencinin velisi bulunamadı"

    invalid = client.put(f"/api/teacher/goals/{goal['id']}", json={"progress": 150}, headers=teacher_headers)
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Geçersiz ilerleme"

    completed = client.put(f"/api/teacher/goals/{goal['id']}", json={"progress": 100}, headers=teacher_headers)
    assert completed.json()["status"] == "completed"
    assert completed.json()["completed_at"] is not None

    client.post(
        "/api/teacher/parents",
        json={"username": "veli", "email": "veli@example.com", "password": "secret123",
              "first_name": "Fatma", "last_name": "Öztürk", "children": [student["id"]]},
        headers=teacher_headers,
    )
    notice = client.post(f"/api/teacher/goals/{goal['id']}/notify-parent", headers=teacher_headers)
    assert notice.status_code == 200
    assert notice.json()["message"] == "Veliye bildirim gönderildi"

    stored = run(db.parent_notifications.find_one({}, {"_id": 0}))
    assert stored["title"] == "Hedef Güncellemesi - Kitap okuma"
    assert stored["message"] == 'Ali Öztürk öğrencisinin "Kitap okuma" hedefi tamamlandı. İlerleme: %100'
    assert stored["payload"]["type"] == "goal_update"

    deleted = client.delete(f"/api/teacher/goals/{goal['id']}", headers=teacher_headers)
    assert deleted.json()["message"] == "Hedef başarıyla silindi"


def test_goal_assignment_links(client, teacher_headers):
    student = _create_student(client, teacher_headers, "ali")
    assignment = client.post(
        "/api/teacher/assignments",
        json={"title": "Okuma", "student_id": student["id"], "due_date": _iso(5)},
        headers=teacher_headers,
    ).json()[0]
    goal = client.post(
        "/api/teacher/goals",
        json={"student_id": student["id"], "title": "Okuma", "description": "-", "target_date": _iso(30)},
        headers=teacher_headers,
    ).json()

    linked = client.post(f"/api/teacher/goals/{goal['id']}/assignments/{assignment['id']}", headers=teacher_headers)
    assert linked.json()["assignment_ids"] == [assignment["id"]]

    unknown = client.post(f"/api/teacher/goals/{goal['id']}/assignments/unknown", headers=teacher_headers)
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "Ödev bulunamadı veya yetkiniz yok"

    unlinked = client.delete(f"/api/teacher/goals/{goal['id']}/assignments/{assignment['id']}", headers=teacher_headers)
    assert unlinked.json()["assignment_ids"] == []
