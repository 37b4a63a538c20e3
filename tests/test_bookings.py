"""
tests/test_bookings.py
Booking lifecycle for all three kinds:
consultation / kundli: create (order) → verify (signature) → admin status
demo: create (slot held) → admin status
"""

import uuid
from datetime import date, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from services.booking.engine import SLOT_TAKEN_MESSAGE, BookingEngine
from shared.models.models import Admin, BookingKind, BookingRequest
from shared.utils.exceptions import ConflictError, UpstreamError
from tests.conftest import StubGateway, adult_dob, auth_headers, sign


def consultation_payload(**overrides) -> dict:
    payload = {
        "name": "Asha Verma",
        "email": "Asha.Verma@Example.com",
        "phone": "9876543210",
        "dob": adult_dob(30),
        "gender": "female",
    }
    payload.update(overrides)
    return payload


def kundli_payload(**overrides) -> dict:
    payload = {
        "name": "Ravi Kumar",
        "email": "ravi@example.com",
        "phone": "9123456780",
        "birth_date": "1994-08-15",
        "with_birth_time": True,
        "birth_time": "06:45",
        "birth_place": "Varanasi",
        "gender": "male",
    }
    payload.update(overrides)
    return payload


def demo_payload(days_ahead: int = 3, at: str = "10:30", **overrides) -> dict:
    payload = {
        "name": "Meera Iyer",
        "phone": "9988776655",
        "date": (date.today() + timedelta(days=days_ahead)).isoformat(),
        "time": at,
        "dob": adult_dob(25),
        "gender": "female",
    }
    payload.update(overrides)
    return payload


async def _reload(db: AsyncSession, record_id: str) -> BookingRequest:
    return await db.get(BookingRequest, uuid.UUID(record_id), populate_existing=True)


async def _count(db: AsyncSession) -> int:
    result = await db.execute(select(BookingRequest))
    return len(result.scalars().all())


# ── Consultation: create ──────────────────────────────────────

@pytest.mark.asyncio
async def test_create_consultation_opens_order(client: AsyncClient, db: AsyncSession, gateway: StubGateway):
    response = await client.post("/consultations/create", json=consultation_payload())
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["orderId"] == gateway.orders[0]["external_order_id"]
    assert data["amount"] == settings.CONSULTATION_AMOUNT * 100
    assert data["currency"] == "INR"
    assert data["keyId"] == "rzp_test_key"

    record = await _reload(db, data["consultationId"])
    assert record.kind == BookingKind.CONSULTATION.value
    assert record.status == "payment_pending"
    assert record.external_order_id == data["orderId"]
    assert record.email == "asha.verma@example.com"
    assert record.amount == settings.CONSULTATION_AMOUNT
    assert record.payment_id is None


@pytest.mark.asyncio
async def test_create_consultation_reports_every_invalid_field(client: AsyncClient, db: AsyncSession):
    response = await client.post(
        "/consultations/create",
        json=consultation_payload(phone="12345", email="", gender="unknown"),
    )
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    fields = {e["field"] for e in body["errors"]}
    assert fields == {"phone", "email", "gender"}
    assert await _count(db) == 0


@pytest.mark.asyncio
async def test_create_consultation_rejects_minor(client: AsyncClient):
    response = await client.post("/consultations/create", json=consultation_payload(dob=adult_dob(17)))
    assert response.status_code == 400
    errors = response.json()["errors"]
    assert errors == [{"field": "dob", "message": "You must be at least 18 years old"}]


@pytest.mark.asyncio
async def test_create_consultation_missing_field(client: AsyncClient):
    payload = consultation_payload()
    del payload["name"]
    response = await client.post("/consultations/create", json=payload)
    assert response.status_code == 400
    assert {"field": "name", "message": "name is required"} in response.json()["errors"]


@pytest.mark.asyncio
async def test_gateway_failure_persists_nothing(client: AsyncClient, db: AsyncSession, gateway: StubGateway):
    gateway.fail = True
    response = await client.post("/consultations/create", json=consultation_payload())
    assert response.status_code == 502
    assert response.json()["success"] is False
    assert await _count(db) == 0


@pytest.mark.asyncio
async def test_storage_failure_after_order_raises_upstream(
    db: AsyncSession, gateway: StubGateway, monkeypatch
):
    """The order exists at the gateway but the row could not be written."""
    from sqlalchemy.exc import OperationalError

    engine = BookingEngine(BookingKind.CONSULTATION, db, gateway)

    async def broken_insert(**values):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(engine.repo, "insert", broken_insert)

    with pytest.raises(UpstreamError):
        await engine.create(consultation_payload())
    assert len(gateway.orders) == 1
    assert await _count(db) == 0


# ── Consultation: verify ──────────────────────────────────────

async def _create_consultation(client: AsyncClient) -> dict:
    response = await client.post("/consultations/create", json=consultation_payload())
    assert response.status_code == 200
    return response.json()


def _verify_body(created: dict, payment_id: str = "pay_test_001", signature: str = None) -> dict:
    order_id = created["orderId"]
    return {
        "consultationId": created["consultationId"],
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature or sign(order_id, payment_id),
    }


@pytest.mark.asyncio
async def test_verify_consultation_marks_received(client: AsyncClient, db: AsyncSession):
    created = await _create_consultation(client)

    response = await client.post("/consultations/verify", json=_verify_body(created))
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Payment verified successfully"
    assert data["consultation"]["status"] == "received"
    assert data["consultation"]["payment_id"] == "pay_test_001"

    record = await _reload(db, created["consultationId"])
    assert record.status == "received"
    assert record.paid_at is not None


@pytest.mark.asyncio
async def test_verify_is_idempotent(client: AsyncClient, db: AsyncSession):
    created = await _create_consultation(client)
    first = await client.post("/consultations/verify", json=_verify_body(created))
    second = await client.post("/consultations/verify", json=_verify_body(created))

    assert first.status_code == second.status_code == 200
    assert first.json()["consultation"]["paid_at"] == second.json()["consultation"]["paid_at"]
    assert second.json()["consultation"]["status"] == "received"


@pytest.mark.asyncio
@pytest.mark.parametrize("admin_status", ["cancelled", "completed", "on_the_call"])
async def test_late_verify_keeps_admin_status(
    client: AsyncClient, db: AsyncSession, admin_user: Admin, admin_status: str
):
    created = await _create_consultation(client)
    moved = await client.put(
        f"/consultations/{created['consultationId']}/status",
        headers=auth_headers(admin_user),
        json={"status": admin_status},
    )
    assert moved.status_code == 200

    response = await client.post("/consultations/verify", json=_verify_body(created))
    assert response.status_code == 200
    assert response.json()["consultation"]["status"] == admin_status

    record = await _reload(db, created["consultationId"])
    assert record.status == admin_status
    assert record.payment_id == "pay_test_001"
    assert record.paid_at is not None


@pytest.mark.asyncio
async def test_verify_rejects_tampered_signature(client: AsyncClient, db: AsyncSession):
    created = await _create_consultation(client)
    body = _verify_body(created, signature=sign(created["orderId"], "pay_test_001", secret="wrong"))

    response = await client.post("/consultations/verify", json=body)
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid payment signature"

    record = await _reload(db, created["consultationId"])
    assert record.status == "payment_pending"
    assert record.payment_id is None


@pytest.mark.asyncio
async def test_verify_rejects_other_bookings_order(client: AsyncClient, db: AsyncSession):
    first = await _create_consultation(client)
    second = await _create_consultation(client)

    # Valid signature, but for the second booking's order
    body = _verify_body(second)
    body["consultationId"] = first["consultationId"]

    response = await client.post("/consultations/verify", json=body)
    assert response.status_code == 400
    record = await _reload(db, first["consultationId"])
    assert record.status == "payment_pending"


@pytest.mark.asyncio
async def test_verify_unknown_consultation(client: AsyncClient):
    body = {
        "consultationId": str(uuid.uuid4()),
        "razorpay_order_id": "order_x",
        "razorpay_payment_id": "pay_x",
        "razorpay_signature": sign("order_x", "pay_x"),
    }
    response = await client.post("/consultations/verify", json=body)
    assert response.status_code == 404
    assert response.json()["message"] == "Consultation not found"


@pytest.mark.asyncio
async def test_verify_requires_all_fields(client: AsyncClient):
    response = await client.post("/consultations/verify", json={"consultationId": str(uuid.uuid4())})
    assert response.status_code == 400
    fields = {e["field"] for e in response.json()["errors"]}
    assert {"razorpay_order_id", "razorpay_payment_id", "razorpay_signature"} <= fields


# ── Kundli ────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_kundli_stores_birth_details(client: AsyncClient, db: AsyncSession):
    response = await client.post("/kundli/create", json=kundli_payload())
    assert response.status_code == 200
    data = response.json()
    assert data["amount"] == settings.KUNDLI_AMOUNT * 100

    record = await _reload(db, data["kundliId"])
    assert record.status == "payment_pending"
    assert record.details == {"birth_time": "06:45", "birth_place": "Varanasi", "with_birth_time": True}


@pytest.mark.asyncio
async def test_create_kundli_missing_birth_place(client: AsyncClient):
    payload = kundli_payload()
    del payload["birth_place"]
    response = await client.post("/kundli/create", json=payload)
    assert response.status_code == 400
    assert "birth_place" in {e["field"] for e in response.json()["errors"]}


@pytest.mark.asyncio
async def test_create_kundli_requires_time_when_flagged(client: AsyncClient):
    response = await client.post("/kundli/create", json=kundli_payload(birth_time=None))
    assert response.status_code == 400
    assert [e["field"] for e in response.json()["errors"]] == ["birth_time"]


@pytest.mark.asyncio
async def test_create_kundli_ignores_time_when_unknown(client: AsyncClient, db: AsyncSession):
    response = await client.post(
        "/kundli/create", json=kundli_payload(with_birth_time=False, birth_time="99:99")
    )
    assert response.status_code == 200
    record = await _reload(db, response.json()["kundliId"])
    assert record.details["birth_time"] is None
    assert record.details["with_birth_time"] is False


@pytest.mark.asyncio
async def test_create_kundli_rejects_future_birth_date(client: AsyncClient):
    tomorrow = (date.today() + timedelta(days=1)).isoformat()
    response = await client.post("/kundli/create", json=kundli_payload(birth_date=tomorrow))
    assert response.status_code == 400
    assert response.json()["errors"][0]["message"] == "Birth date cannot be in the future"


@pytest.mark.asyncio
async def test_kundli_max_age_when_configured(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "KUNDLI_MAX_AGE_YEARS", 100)
    response = await client.post("/kundli/create", json=kundli_payload(birth_date="1900-01-01"))
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "birth_date"


@pytest.mark.asyncio
async def test_verify_kundli_marks_submitted(client: AsyncClient):
    created = (await client.post("/kundli/create", json=kundli_payload())).json()
    body = {
        "kundliId": created["kundliId"],
        "razorpay_order_id": created["orderId"],
        "razorpay_payment_id": "pay_kundli_1",
        "razorpay_signature": sign(created["orderId"], "pay_kundli_1"),
    }
    response = await client.post("/kundli/verify", json=body)
    assert response.status_code == 200
    assert response.json()["kundli"]["status"] == "submitted"


@pytest.mark.asyncio
async def test_kundli_report_data_attached_on_status_update(client: AsyncClient, admin_user: Admin):
    created = (await client.post("/kundli/create", json=kundli_payload())).json()
    chart = {"lagna": "Leo", "moon_sign": "Taurus"}

    response = await client.put(
        f"/kundli/{created['kundliId']}/status",
        headers=auth_headers(admin_user),
        json={"status": "processing", "kundli_data": chart},
    )
    assert response.status_code == 200
    assert response.json()["kundli"]["report_data"] == chart


@pytest.mark.asyncio
async def test_report_data_rejected_for_consultation(client: AsyncClient, admin_user: Admin):
    created = await _create_consultation(client)
    response = await client.put(
        f"/consultations/{created['consultationId']}/status",
        headers=auth_headers(admin_user),
        json={"status": "received", "kundli_data": {"lagna": "Leo"}},
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "kundli_data"


# ── Demo bookings ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_demo_booking(client: AsyncClient):
    response = await client.post("/demo-bookings", json=demo_payload())
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Demo booked successfully! We will contact you soon."
    booking = data["booking"]
    assert booking["status"] == "submitted"
    assert booking["amount"] == 0
    assert booking["scheduled_time"] == "10:30"
    assert booking["email"] is None


@pytest.mark.asyncio
async def test_demo_slot_conflict(client: AsyncClient, db: AsyncSession):
    first = await client.post("/demo-bookings", json=demo_payload())
    assert first.status_code == 200

    second = await client.post("/demo-bookings", json=demo_payload(name="Someone Else", phone="9000000000"))
    assert second.status_code == 409
    assert second.json()["message"] == SLOT_TAKEN_MESSAGE
    assert await _count(db) == 1

    other_time = await client.post("/demo-bookings", json=demo_payload(at="11:00"))
    assert other_time.status_code == 200


@pytest.mark.asyncio
async def test_cancelled_demo_frees_slot(client: AsyncClient, admin_user: Admin):
    first = (await client.post("/demo-bookings", json=demo_payload())).json()["booking"]
    cancel = await client.put(
        f"/demo-bookings/{first['id']}/status",
        headers=auth_headers(admin_user),
        json={"status": "cancelled"},
    )
    assert cancel.status_code == 200

    again = await client.post("/demo-bookings", json=demo_payload())
    assert again.status_code == 200


@pytest.mark.asyncio
async def test_reactivating_demo_into_taken_slot(client: AsyncClient, admin_user: Admin):
    headers = auth_headers(admin_user)
    first = (await client.post("/demo-bookings", json=demo_payload())).json()["booking"]
    await client.put(f"/demo-bookings/{first['id']}/status", headers=headers, json={"status": "cancelled"})
    await client.post("/demo-bookings", json=demo_payload())

    response = await client.put(
        f"/demo-bookings/{first['id']}/status", headers=headers, json={"status": "submitted"}
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_lost_slot_race_maps_to_conflict(db: AsyncSession, monkeypatch):
    """The unique slot index catches a booking that passed the pre-check."""
    engine = BookingEngine(BookingKind.DEMO, db)
    await engine.create(demo_payload())

    async def never_taken(*args, **kwargs):
        return False

    monkeypatch.setattr(engine, "slot_taken", never_taken)
    with pytest.raises(ConflictError):
        await engine.create(demo_payload(name="Late Comer"))
    assert await _count(db) == 1


@pytest.mark.asyncio
async def test_active_slot_index_allows_cancelled_duplicates(db: AsyncSession):
    day = date.today() + timedelta(days=5)
    base = dict(
        kind="demo", name="A", phone="9000000001", gender="male",
        birth_date=date(1990, 1, 1), scheduled_date=day, scheduled_time="09:00",
    )
    db.add(BookingRequest(status="cancelled", **base))
    db.add(BookingRequest(status="submitted", **base))
    await db.commit()

    db.add(BookingRequest(status="meeting_due", **base))
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()


@pytest.mark.asyncio
async def test_demo_rejects_past_date_and_bad_time(client: AsyncClient):
    response = await client.post("/demo-bookings", json=demo_payload(days_ahead=-1, at="9:30"))
    assert response.status_code == 400
    errors = {e["field"]: e["message"] for e in response.json()["errors"]}
    assert errors["date"] == "Please select a future date"
    assert "time" in errors


@pytest.mark.asyncio
async def test_upcoming_demos(client: AsyncClient, admin_user: Admin):
    await client.post("/demo-bookings", json=demo_payload(days_ahead=5))
    await client.post("/demo-bookings", json=demo_payload(days_ahead=1))

    response = await client.get("/demo-bookings/upcoming", headers=auth_headers(admin_user))
    assert response.status_code == 200
    upcoming = response.json()["upcomingDemos"]
    assert len(upcoming) == 2
    assert upcoming[0]["scheduled_date"] < upcoming[1]["scheduled_date"]


# ── Admin: status ─────────────────────────────────────────────

@pytest.mark.asyncio
async def test_status_update_requires_valid_status(client: AsyncClient, db: AsyncSession, admin_user: Admin):
    created = await _create_consultation(client)
    url = f"/consultations/{created['consultationId']}/status"

    for body in (
        {"status": "bogus", "notes": "should not be stored"},
        {"status": "meeting_due"},
        {"status": ""},
        {},
    ):
        response = await client.put(url, headers=auth_headers(admin_user), json=body)
        assert response.status_code == 400
        assert response.json()["message"] == "Valid status is required"

    record = await _reload(db, created["consultationId"])
    assert record.status == "payment_pending"
    assert record.notes is None


@pytest.mark.asyncio
async def test_status_update_permissive_by_default(client: AsyncClient, admin_user: Admin):
    created = await _create_consultation(client)
    response = await client.put(
        f"/consultations/{created['consultationId']}/status",
        headers=auth_headers(admin_user),
        json={"status": "completed", "notes": "Call done"},
    )
    assert response.status_code == 200
    consultation = response.json()["consultation"]
    assert consultation["status"] == "completed"
    assert consultation["notes"] == "Call done"


@pytest.mark.asyncio
async def test_status_update_strict_mode(client: AsyncClient, admin_user: Admin, monkeypatch):
    monkeypatch.setattr(settings, "STATUS_TRANSITION_MODE", "strict")
    headers = auth_headers(admin_user)
    created = await _create_consultation(client)
    url = f"/consultations/{created['consultationId']}/status"

    skip = await client.put(url, headers=headers, json={"status": "on_the_call"})
    assert skip.status_code == 400

    forward = await client.put(url, headers=headers, json={"status": "received"})
    assert forward.status_code == 200

    cancel = await client.put(url, headers=headers, json={"status": "cancelled"})
    assert cancel.status_code == 200

    reopen = await client.put(url, headers=headers, json={"status": "received"})
    assert reopen.status_code == 400


@pytest.mark.asyncio
async def test_status_update_unknown_record(client: AsyncClient, admin_user: Admin):
    response = await client.put(
        f"/kundli/{uuid.uuid4()}/status",
        headers=auth_headers(admin_user),
        json={"status": "processing"},
    )
    assert response.status_code == 404
    assert response.json()["message"] == "Kundli request not found"


# ── Admin: list / get / delete ────────────────────────────────

@pytest.mark.asyncio
async def test_admin_routes_require_token(client: AsyncClient):
    response = await client.get("/consultations")
    assert response.status_code == 401
    assert response.json()["message"] == "Access token required"


@pytest.mark.asyncio
async def test_list_consultations_with_counts(client: AsyncClient, admin_user: Admin):
    headers = auth_headers(admin_user)
    created = await _create_consultation(client)
    await client.post("/consultations/create", json=consultation_payload(name="Kiran Rao", phone="9000011111"))
    await client.post("/consultations/verify", json=_verify_body(created))

    response = await client.get("/consultations", headers=headers)
    assert response.status_code == 200
    data = response.json()
    assert len(data["consultations"]) == 2
    assert data["pagination"] == {"page": 1, "limit": 10, "total": 2, "pages": 1}
    assert data["counts"]["payment_pending"] == 1
    assert data["counts"]["received"] == 1
    assert data["counts"]["cancelled"] == 0
    assert data["counts"]["total"] == 2

    filtered = await client.get("/consultations?status=received", headers=headers)
    assert [c["id"] for c in filtered.json()["consultations"]] == [created["consultationId"]]

    searched = await client.get("/consultations?search=kiran", headers=headers)
    assert [c["name"] for c in searched.json()["consultations"]] == ["Kiran Rao"]


@pytest.mark.asyncio
async def test_list_kundli_searches_birth_place(client: AsyncClient, admin_user: Admin):
    await client.post("/kundli/create", json=kundli_payload())
    await client.post("/kundli/create", json=kundli_payload(birth_place="Pune", phone="9000022222"))

    response = await client.get("/kundli?search=varan", headers=auth_headers(admin_user))
    requests = response.json()["kundliRequests"]
    assert len(requests) == 1
    assert requests[0]["details"]["birth_place"] == "Varanasi"


@pytest.mark.asyncio
async def test_list_demos_by_date_range(client: AsyncClient, admin_user: Admin):
    await client.post("/demo-bookings", json=demo_payload(days_ahead=2))
    await client.post("/demo-bookings", json=demo_payload(days_ahead=9))

    date_to = (date.today() + timedelta(days=5)).isoformat()
    response = await client.get(f"/demo-bookings?dateTo={date_to}", headers=auth_headers(admin_user))
    bookings = response.json()["demoBookings"]
    assert len(bookings) == 1
    assert response.json()["counts"]["submitted"] == 2


@pytest.mark.asyncio
async def test_kinds_are_isolated(client: AsyncClient, admin_user: Admin):
    created = await _create_consultation(client)
    response = await client.get(f"/kundli/{created['consultationId']}", headers=auth_headers(admin_user))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_get_and_delete_consultation(client: AsyncClient, admin_user: Admin):
    headers = auth_headers(admin_user)
    created = await _create_consultation(client)
    url = f"/consultations/{created['consultationId']}"

    fetched = await client.get(url, headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["consultation"]["id"] == created["consultationId"]

    deleted = await client.delete(url, headers=headers)
    assert deleted.status_code == 200
    assert deleted.json()["message"] == "Consultation deleted successfully"

    assert (await client.get(url, headers=headers)).status_code == 404
