"""
services/booking/router.py
HTTP surface for the three booking kinds.

  /consultations   paid, two-phase (create → verify)
  /kundli          paid, two-phase (create → verify)
  /demo-bookings   free, single-phase, holds a (date, time) slot

Creation and verification are public; everything else needs an admin token.
"""

from datetime import date
from typing import Callable, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from services.booking.engine import BookingEngine, BookingFilters
from services.booking.kinds import get_kind_config
from services.payment.gateway import PaymentGateway, get_payment_gateway
from shared.middleware.auth import TokenData, require_admin
from shared.models.models import BookingKind, BookingRequest
from shared.schemas.schemas import (
    BookingResponse,
    ConsultationCreateRequest,
    ConsultationVerifyRequest,
    DemoBookingCreateRequest,
    KundliCreateRequest,
    KundliVerifyRequest,
    StatusUpdateRequest,
)

consultation_router = APIRouter(prefix="/consultations", tags=["Consultations"])
kundli_router = APIRouter(prefix="/kundli", tags=["Kundli"])
demo_router = APIRouter(prefix="/demo-bookings", tags=["Demo Bookings"])


# ── Helpers ───────────────────────────────────────────────────

def engine_for(kind: BookingKind) -> Callable[..., BookingEngine]:
    """Dependency factory: a BookingEngine bound to the request's session."""

    def dependency(
        db: AsyncSession = Depends(get_db),
        gateway: PaymentGateway = Depends(get_payment_gateway),
    ) -> BookingEngine:
        return BookingEngine(kind, db, gateway)

    return dependency


def _serialize(record: BookingRequest) -> dict:
    return BookingResponse.model_validate(record).model_dump(mode="json")


async def _create_paid(engine: BookingEngine, data) -> dict:
    record, order = await engine.create(data)
    config = engine.config
    return {
        "success": True,
        "message": f"{config.label} created successfully",
        config.id_field: str(record.id),
        "orderId": order["external_order_id"],
        "amount": order["amount"],        # paise, as returned by the gateway
        "currency": order["currency"],
        "keyId": engine.gateway.key_id,
    }


async def _verify_paid(engine: BookingEngine, record_id: UUID, data) -> dict:
    record = await engine.verify(
        record_id,
        order_id=data.razorpay_order_id,
        payment_id=data.razorpay_payment_id,
        signature=data.razorpay_signature,
    )
    return {
        "success": True,
        "message": "Payment verified successfully",
        engine.config.item_key: _serialize(record),
    }


def _add_admin_routes(router: APIRouter, kind: BookingKind) -> None:
    """List / get / status / delete, identical for every kind."""
    config = get_kind_config(kind)
    get_engine = engine_for(kind)

    @router.get("")
    async def list_records(
        status_filter: Optional[str] = Query(None, alias="status"),
        page: int = Query(1, ge=1),
        limit: int = Query(10, ge=1, le=100),
        search: Optional[str] = Query(None, max_length=100),
        date_from: Optional[date] = Query(None, alias="dateFrom"),
        date_to: Optional[date] = Query(None, alias="dateTo"),
        gender: Optional[str] = Query(None),
        _admin: TokenData = Depends(require_admin),
        engine: BookingEngine = Depends(get_engine),
    ):
        filters = BookingFilters(
            status=status_filter,
            search=search,
            date_from=date_from,
            date_to=date_to,
            gender=gender,
        )
        result, counts = await engine.list(filters, page=page, limit=limit)
        return {
            "success": True,
            config.collection_key: [_serialize(r) for r in result.items],
            "pagination": result.pagination(),
            "counts": counts,
        }

    @router.get("/{record_id}")
    async def get_record(
        record_id: UUID,
        _admin: TokenData = Depends(require_admin),
        engine: BookingEngine = Depends(get_engine),
    ):
        record = await engine.get(record_id)
        return {"success": True, config.item_key: _serialize(record)}

    @router.put("/{record_id}/status")
    async def update_record_status(
        record_id: UUID,
        data: StatusUpdateRequest,
        _admin: TokenData = Depends(require_admin),
        engine: BookingEngine = Depends(get_engine),
    ):
        record = await engine.update_status(
            record_id,
            data.status,
            notes=data.notes,
            report_data=data.kundli_data,
        )
        return {
            "success": True,
            "message": f"{config.label} status updated successfully",
            config.item_key: _serialize(record),
        }

    @router.delete("/{record_id}")
    async def delete_record(
        record_id: UUID,
        _admin: TokenData = Depends(require_admin),
        engine: BookingEngine = Depends(get_engine),
    ):
        await engine.delete(record_id)
        return {"success": True, "message": f"{config.label} deleted successfully"}


# ── Consultations ─────────────────────────────────────────────

@consultation_router.post("/create")
async def create_consultation(
    data: ConsultationCreateRequest,
    engine: BookingEngine = Depends(engine_for(BookingKind.CONSULTATION)),
):
    """Open a Razorpay order and store the consultation as payment_pending."""
    return await _create_paid(engine, data)


@consultation_router.post("/verify")
async def verify_consultation_payment(
    data: ConsultationVerifyRequest,
    engine: BookingEngine = Depends(engine_for(BookingKind.CONSULTATION)),
):
    return await _verify_paid(engine, data.consultation_id, data)


_add_admin_routes(consultation_router, BookingKind.CONSULTATION)


# ── Kundli ────────────────────────────────────────────────────

@kundli_router.post("/create")
async def create_kundli_request(
    data: KundliCreateRequest,
    engine: BookingEngine = Depends(engine_for(BookingKind.KUNDLI)),
):
    """Open a Razorpay order and store the kundli request as payment_pending."""
    return await _create_paid(engine, data)


@kundli_router.post("/verify")
async def verify_kundli_payment(
    data: KundliVerifyRequest,
    engine: BookingEngine = Depends(engine_for(BookingKind.KUNDLI)),
):
    return await _verify_paid(engine, data.kundli_id, data)


_add_admin_routes(kundli_router, BookingKind.KUNDLI)


# ── Demo bookings ─────────────────────────────────────────────

@demo_router.post("")
async def create_demo_booking(
    data: DemoBookingCreateRequest,
    engine: BookingEngine = Depends(engine_for(BookingKind.DEMO)),
):
    record, _ = await engine.create(data)
    return {
        "success": True,
        "message": "Demo booked successfully! We will contact you soon.",
        "booking": _serialize(record),
    }


# Registered before /{record_id} so "upcoming" is not parsed as an id
@demo_router.get("/upcoming")
async def upcoming_demo_bookings(
    limit: int = Query(10, ge=1, le=50),
    _admin: TokenData = Depends(require_admin),
    engine: BookingEngine = Depends(engine_for(BookingKind.DEMO)),
):
    records = await engine.upcoming(limit=limit)
    return {"success": True, "upcomingDemos": [_serialize(r) for r in records]}


_add_admin_routes(demo_router, BookingKind.DEMO)
