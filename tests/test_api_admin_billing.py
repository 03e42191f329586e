from datetime import datetime, timedelta, timezone

import pytest

from conftest import run, seed_user
from coaching_backend.billing import (
    FREE_SLOT_LIMIT,
    apply_discount,
    assign_free_slot,
    get_free_slot_summary,
    get_pricing,
)
from coaching_backend.errors import SlotsExhaustedError

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


def test_apply_discount_rounds_half_up():
    assert apply_discount(1500, 10) == 1350
    assert apply_discount(2400, 12.5) == 2100
    assert apply_discount(3600, 100) == 0


def test_pricing_uses_active_discounts(db):
    run(db.discounts.insert_many([
        {"id": "d1", "name": "Bahar", "discount_percentage": 20, "plan_types": ["3months"], "is_active": True,
         "start_date": (NOW - timedelta(days=1)).isoformat(), "end_date": (NOW + timedelta(days=1)).isoformat()},
        {"id": "d2", "name": "Eski", "discount_percentage": 50, "plan_types": ["6months"], "is_active": True,
         "start_date": (NOW - timedelta(days=10)).isoformat(), "end_date": (NOW - timedelta(days=5)).isoformat()},
    ]))

    plans = {plan["plan_type"]: plan for plan in run(get_pricing(db, fixed_clock))}

    assert plans["3months"]["discounted_price"] == 1200
    assert plans["3months"]["discount_name"] == "Bahar"
    assert plans["6months"]["discounted_price"] == 2400
    assert plans["12months"]["original_price"] == 3600


def test_free_slots_take_lowest_number_and_run_out(db):
    first = run(assign_free_slot(db, "t1", fixed_clock))
    second = run(assign_free_slot(db, "t2", fixed_clock))
    assert (first["slot_number"], second["slot_number"]) == (1, 2)
    assert run(assign_free_slot(db, "t1", fixed_clock))["slot_number"] == 1

    subscription = run(db.subscriptions.find_one({"teacher_id": "t1"}, {"_id": 0}))
    assert subscription["is_free_trial"] is True
    assert subscription["discounted_price"] == 0

    run(db.free_teacher_slots.delete_one({"teacher_id": "t1"}))
    assert run(assign_free_slot(db, "t3", fixed_clock))["slot_number"] == 1

    for index in range(4, FREE_SLOT_LIMIT + 2):
        run(assign_free_slot(db, f"t{index}", fixed_clock))
    with pytest.raises(SlotsExhaustedError, match="Ücretsiz öğretmen kontenjanı doldu"):
        run(assign_free_slot(db, "late-teacher", fixed_clock))

    summary = run(get_free_slot_summary(db, fixed_clock))
    assert summary["used_slots"] == FREE_SLOT_LIMIT
    assert summary["available_slots"] == 0
    assert len(summary["recent_assignments"]) == 5


def test_expired_slots_are_released(db):
    run(assign_free_slot(db, "t1", fixed_clock))

    def next_year():
        return NOW + timedelta(days=400)

    summary = run(get_free_slot_summary(db, next_year))
    assert summary["used_slots"] == 0


def test_admin_teacher_management(client, db, admin_headers):
    created = client.post(
        "/api/admin/teachers",
        json={"username": "yeni", "email": "yeni@example.com", "password": "secret123",
              "first_name": "Yeni", "last_name": "Öğretmen"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    teacher_id = created.json()["id"]

    toggled = client.patch(f"/api/admin/teachers/{teacher_id}/toggle-status", headers=admin_headers)
    assert toggled.json()["is_active"] is False

    slot = client.post(f"/api/admin/teachers/{teacher_id}/free-slot", headers=admin_headers)
    assert slot.status_code == 200
    assert slot.json()["slot_number"] == 1

    subscriptions = client.get("/api/admin/subscriptions", headers=admin_headers).json()
    assert [s["teacher_id"] for s in subscriptions] == [teacher_id]

    stats = client.get("/api/admin/stats", headers=admin_headers).json()
    assert stats["teachers"] == {"total": 1, "active": 0}

    public_slots = client.get("/api/free-teacher-slots").json()
    assert public_slots["used_slots"] == 1
    assert public_slots["recent_assignments"][0]["teacher_name"] == "Yeni Öğretmen"


def test_slots_exhausted_maps_to_conflict(client, db, admin_headers):
    for number in range(1, FREE_SLOT_LIMIT + 1):
        run(db.free_teacher_slots.insert_one({
            "id": f"slot{number}", "teacher_id": f"t{number}", "slot_number": number, "is_active": True,
            "assigned_at": datetime.now(timezone.utc).isoformat(),
            "expires_at": (datetime.now(timezone.utc) + timedelta(days=30)).isoformat(),
        }))
    teacher = seed_user(db, "teacher", "gec")

    response = client.post(f"/api/admin/teachers/{teacher['id']}/free-slot", headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["detail"] == "Ücretsiz öğretmen kontenjanı doldu"


def test_discount_crud(client, admin_headers):
    payload = {
        "name": "Yaz", "discount_percentage": 15, "plan_types": ["12months"],
        "start_date": (datetime.now(timezone.utc) - timedelta(days=1)).isoformat(),
        "end_date": (datetime.now(timezone.utc) + timedelta(days=30)).isoformat(),
    }
    created = client.post("/api/admin/discounts", json=payload, headers=admin_headers)
    assert created.status_code == 201
    discount_id = created.json()["id"]

    pricing = {p["plan_type"]: p for p in client.get("/api/pricing").json()}
    assert pricing["12months"]["discounted_price"] == 3060

    updated = client.put(f"/api/admin/discounts/{discount_id}", json={"discount_percentage": 25}, headers=admin_headers)
    assert updated.json()["discount_percentage"] == 25

    assert client.delete(f"/api/admin/discounts/{discount_id}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/admin/discounts/{discount_id}", headers=admin_headers).status_code == 404
