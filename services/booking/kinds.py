"""
services/booking/kinds.py
Per-kind configuration for the booking engine: status vocabulary,
forward edges, pricing and response keys. Field rules live in the
request schemas.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from config.settings import settings
from shared.models.models import BookingKind

CANCELLED = "cancelled"
COMPLETED = "completed"
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})


@dataclass(frozen=True)
class KindConfig:
    kind: BookingKind
    label: str
    lifecycle: Tuple[str, ...]          # forward order, ends in "completed"
    paid_status: Optional[str]
    amount: int                          # whole currency units
    id_field: str = "id"                 # camelCase id key in create/verify bodies
    item_key: str = "booking"
    collection_key: str = "bookings"

    @property
    def requires_payment(self) -> bool:
        return self.paid_status is not None

    @property
    def initial_status(self) -> str:
        return self.lifecycle[0]

    @property
    def statuses(self) -> Tuple[str, ...]:
        return self.lifecycle + (CANCELLED,)

    def next_status(self, status: str) -> Optional[str]:
        try:
            idx = self.lifecycle.index(status)
        except ValueError:
            return None
        return self.lifecycle[idx + 1] if idx + 1 < len(self.lifecycle) else None

    def can_transition(self, current: str, target: str) -> bool:
        """Strict-mode edge check. Same-status updates are always allowed."""
        if current == target:
            return True
        if current in TERMINAL_STATUSES:
            return False
        if target == CANCELLED:
            return True
        return self.next_status(current) == target


KIND_CONFIGS: Dict[BookingKind, KindConfig] = {
    BookingKind.CONSULTATION: KindConfig(
        kind=BookingKind.CONSULTATION,
        label="Consultation",
        lifecycle=("payment_pending", "received", "on_the_call", COMPLETED),
        paid_status="received",
        amount=settings.CONSULTATION_AMOUNT,
        id_field="consultationId",
        item_key="consultation",
        collection_key="consultations",
    ),
    BookingKind.KUNDLI: KindConfig(
        kind=BookingKind.KUNDLI,
        label="Kundli request",
        lifecycle=("payment_pending", "submitted", "processing", COMPLETED),
        paid_status="submitted",
        amount=settings.KUNDLI_AMOUNT,
        id_field="kundliId",
        item_key="kundli",
        collection_key="kundliRequests",
    ),
    BookingKind.DEMO: KindConfig(
        kind=BookingKind.DEMO,
        label="Demo booking",
        lifecycle=("submitted", "meeting_due", COMPLETED),
        paid_status=None,
        amount=0,
        item_key="booking",
        collection_key="demoBookings",
    ),
}


def get_kind_config(kind: BookingKind) -> KindConfig:
    return KIND_CONFIGS[BookingKind(kind)]
