"""
services/booking/engine.py
Generic booking lifecycle shared by consultations, kundli requests and
demo bookings. Kind-specific behaviour comes from KIND_CONFIGS.

Paid kinds are two-phase:
  1. create  → gateway order + row in the initial status
  2. verify  → checkout signature checked, payment ref stored, paid status
Demo bookings are single-phase and hold a (date, time) slot.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from services.booking.kinds import KindConfig, get_kind_config
from services.booking.validators import validate
from services.payment.gateway import ExternalOrder, PaymentGateway
from shared.models.models import ACTIVE_DEMO_STATUSES, BookingKind, BookingRequest
from shared.schemas.schemas import BookingCreateRequest, KundliCreateRequest
from shared.utils.exceptions import (
    ConflictError,
    InvalidStatusError,
    NotFoundError,
    PaymentVerificationError,
    UpstreamError,
    ValidationError,
)
from shared.utils.repository import Page, Repository, ilike_any

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "This time slot is already booked. Please choose another time."


@dataclass
class BookingFilters:
    status: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    gender: Optional[str] = None


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class BookingEngine:
    def __init__(
        self,
        kind: BookingKind,
        db: AsyncSession,
        gateway: Optional[PaymentGateway] = None,
    ):
        self.config: KindConfig = get_kind_config(kind)
        self.kind = self.config.kind
        self.db = db
        self.repo: Repository[BookingRequest] = Repository(db, BookingRequest)
        self.gateway = gateway

    # ── Creation ──────────────────────────────────────────────

    async def create(
        self, payload: Union[BookingCreateRequest, Mapping[str, Any]]
    ) -> Tuple[BookingRequest, Optional[ExternalOrder]]:
        """
        Validate, open a gateway order for paid kinds, persist.
        Returns (record, order); order is None for demo bookings.
        """
        data = payload if isinstance(payload, BaseModel) else validate(self.kind, payload)
        values = self._values_from(data)

        if not self.config.requires_payment:
            return await self._create_demo(values), None

        if self.gateway is None:
            raise RuntimeError(f"{self.config.label} bookings need a payment gateway")

        receipt = f"{self.kind.value}_{uuid.uuid4().hex[:16]}"
        # Amount is fixed per kind; the gateway takes minor units
        order = await self.gateway.create_order(
            amount_minor_units=self.config.amount * 100,
            currency=settings.PAYMENT_CURRENCY,
            receipt=receipt,
            notes={"kind": self.kind.value, "phone": values["phone"]},
        )
        values["external_order_id"] = order["external_order_id"]

        try:
            record = await self.repo.insert(**values)
            await self.repo.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                f"Orphaned payment order {order['external_order_id']} "
                f"(receipt={receipt}, kind={self.kind.value}): could not persist booking: {e}"
            )
            raise UpstreamError(
                f"Could not save your {self.config.label.lower()} request. "
                "Please contact support if you were charged."
            )

        logger.info(f"{self.config.label} {record.id} created with order {record.external_order_id}")
        return record, order

    async def _create_demo(self, values: Dict[str, Any]) -> BookingRequest:
        if await self.slot_taken(values["scheduled_date"], values["scheduled_time"]):
            raise ConflictError(SLOT_TAKEN_MESSAGE)
        try:
            record = await self.repo.insert(**values)
            await self.repo.commit()
        except IntegrityError:
            # Lost the race to a concurrent booking for the same slot
            await self.db.rollback()
            raise ConflictError(SLOT_TAKEN_MESSAGE)

        logger.info(f"Demo booking {record.id} created for {record.scheduled_date} {record.scheduled_time}")
        return record

    async def slot_taken(self, day: date, at: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
        where = [
            BookingRequest.kind == BookingKind.DEMO.value,
            BookingRequest.scheduled_date == day,
            BookingRequest.scheduled_time == at,
            BookingRequest.status.in_(ACTIVE_DEMO_STATUSES),
        ]
        if exclude_id is not None:
            where.append(BookingRequest.id != exclude_id)
        return await self.repo.exists(*where)

    def _values_from(self, data: BookingCreateRequest) -> Dict[str, Any]:
        values: Dict[str, Any] = {
            "kind": self.kind.value,
            "name": data.name,
            "email": data.email,
            "phone": data.phone,
            "gender": data.gender,
            "amount": self.config.amount,
            "currency": settings.PAYMENT_CURRENCY,
            "status": self.config.initial_status,
        }
        if isinstance(data, KundliCreateRequest):
            values["birth_date"] = data.birth_date
            values["details"] = data.details()
        else:
            values["birth_date"] = data.dob
        if self.kind == BookingKind.DEMO:
            values["scheduled_date"] = data.meeting_date
            values["scheduled_time"] = data.meeting_time
        return values

    # ── Payment verification ──────────────────────────────────

    async def verify(
        self,
        record_id: uuid.UUID,
        order_id: str,
        payment_id: str,
        signature: str,
    ) -> BookingRequest:
        """
        Confirm a checkout callback. Repeating a successful verification is
        a no-op that returns the stored record.
        """
        if not self.config.requires_payment or self.gateway is None:
            raise RuntimeError(f"{self.config.label} bookings are not paid")

        record = await self.get(record_id)

        if not record.external_order_id or record.external_order_id != order_id:
            logger.warning(
                f"Order mismatch on {self.kind.value} {record.id}: "
                f"stored={record.external_order_id} received={order_id}"
            )
            raise PaymentVerificationError("Order does not match this booking")

        if not self.gateway.verify_signature(order_id, payment_id, signature):
            logger.warning(f"Signature mismatch on {self.kind.value} {record.id} (order={order_id})")
            raise PaymentVerificationError()

        if record.is_paid:
            return record

        changes: Dict[str, Any] = {
            "payment_id": payment_id,
            "payment_signature": signature,
            "paid_at": datetime.now(timezone.utc),
        }
        # Only an unpaid booking moves forward; admin-set statuses stand
        if record.status == self.config.initial_status:
            changes["status"] = self.config.paid_status
        else:
            logger.warning(
                f"Payment {payment_id} arrived for {self.kind.value} {record.id} "
                f"already in status {record.status}; status left unchanged for reconciliation"
            )

        record = await self.repo.update(record, **changes)
        await self.repo.commit()
        logger.info(f"Payment {payment_id} verified for {self.kind.value} {record.id}")
        return record

    # ── Admin operations ──────────────────────────────────────

    async def get(self, record_id: uuid.UUID) -> BookingRequest:
        record = await self.repo.get(record_id, BookingRequest.kind == self.kind.value)
        if record is None:
            raise NotFoundError(f"{self.config.label} not found")
        return record

    async def update_status(
        self,
        record_id: uuid.UUID,
        status: Optional[str],
        notes: Optional[str] = None,
        report_data: Any = None,
    ) -> BookingRequest:
        if not status or status not in self.config.statuses:
            raise InvalidStatusError()

        record = await self.get(record_id)

        if settings.STATUS_TRANSITION_MODE == "strict" and not self.config.can_transition(record.status, status):
            raise InvalidStatusError(f"Cannot change status from {record.status} to {status}")

        changes: Dict[str, Any] = {"status": status}
        if notes is not None:
            changes["notes"] = notes
        if report_data is not None:
            if self.kind != BookingKind.KUNDLI:
                raise ValidationError(
                    errors=[{"field": "kundli_data", "message": "Chart data can only be attached to kundli requests"}]
                )
            changes["report_data"] = report_data

        if (
            self.kind == BookingKind.DEMO
            and status in ACTIVE_DEMO_STATUSES
            and record.status not in ACTIVE_DEMO_STATUSES
            and await self.slot_taken(record.scheduled_date, record.scheduled_time, exclude_id=record.id)
        ):
            raise ConflictError(SLOT_TAKEN_MESSAGE)

        previous = record.status
        try:
            record = await self.repo.update(record, **changes)
            await self.repo.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(SLOT_TAKEN_MESSAGE)

        logger.info(f"{self.config.label} {record.id} status {previous} → {status}")
        return record

    async def delete(self, record_id: uuid.UUID) -> None:
        record = await self.get(record_id)
        await self.repo.delete(record)
        await self.repo.commit()
        logger.info(f"{self.config.label} {record_id} deleted")

    async def list(
        self,
        filters: BookingFilters,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[Page[BookingRequest], Dict[str, int]]:
        """Filtered page plus per-status counts for this kind."""
        kind_clause = BookingRequest.kind == self.kind.value
        where = [kind_clause]

        if filters.status:
            where.append(BookingRequest.status == filters.status)
        if filters.gender:
            where.append(BookingRequest.gender == filters.gender.lower())
        if filters.search:
            columns = [BookingRequest.name, BookingRequest.email, BookingRequest.phone]
            if self.kind == BookingKind.KUNDLI:
                columns.append(BookingRequest.details["birth_place"].as_string())
            where.append(ilike_any(columns, filters.search))

        if self.kind == BookingKind.DEMO:
            if filters.date_from:
                where.append(BookingRequest.scheduled_date >= filters.date_from)
            if filters.date_to:
                where.append(BookingRequest.scheduled_date <= filters.date_to)
            order_by = [BookingRequest.scheduled_date.asc(), BookingRequest.scheduled_time.asc()]
        else:
            if filters.date_from:
                where.append(BookingRequest.created_at >= _start_of_day(filters.date_from))
            if filters.date_to:
                where.append(BookingRequest.created_at < _start_of_day(filters.date_to + timedelta(days=1)))
            order_by = [BookingRequest.created_at.desc()]

        result = await self.repo.paginate(*where, order_by=order_by, page=page, limit=limit)
        counts = await self.status_counts()
        return result, counts

    async def status_counts(self) -> Dict[str, int]:
        counts = dict.fromkeys(self.config.statuses, 0)
        counts.update(await self.repo.count_by(BookingRequest.status, BookingRequest.kind == self.kind.value))
        counts["total"] = sum(counts.values())
        return counts

    async def upcoming(self, limit: int = 10) -> List[BookingRequest]:
        """Submitted demos from today onwards, soonest first."""
        if self.kind != BookingKind.DEMO:
            raise RuntimeError("Only demo bookings are scheduled")
        return await self.repo.list(
            BookingRequest.kind == self.kind.value,
            BookingRequest.status == "submitted",
            BookingRequest.scheduled_date >= date.today(),
            order_by=[BookingRequest.scheduled_date.asc(), BookingRequest.scheduled_time.asc()],
            limit=limit,
        )
