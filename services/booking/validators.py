"""
services/booking/validators.py
Validates a raw booking payload for one kind, reporting every failing field.
The per-field rules live in shared/utils/validators.py.
"""

from typing import Any, Dict, Mapping, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from shared.models.models import BookingKind
from shared.schemas.schemas import (
    BookingCreateRequest,
    ConsultationCreateRequest,
    DemoBookingCreateRequest,
    KundliCreateRequest,
)
from shared.utils.exceptions import ValidationError

REQUEST_SCHEMAS: Dict[BookingKind, Type[BaseModel]] = {
    BookingKind.CONSULTATION: ConsultationCreateRequest,
    BookingKind.KUNDLI: KundliCreateRequest,
    BookingKind.DEMO: DemoBookingCreateRequest,
}


def validate(kind: BookingKind, payload: Mapping[str, Any]) -> BookingCreateRequest:
    """
    Validate `payload` against the request schema for `kind`.
    Raises ValidationError listing all violated fields.
    """
    schema = REQUEST_SCHEMAS[BookingKind(kind)]
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e.errors())
