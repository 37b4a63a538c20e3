"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the API.
Booking request validators delegate to shared/utils/validators.py.
"""

import re
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from config.settings import settings
from shared.models.models import TestimonialStatus
from shared.utils import validators as rules
from shared.utils.security import MIN_PASSWORD_LENGTH


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True, populate_by_name=True)


# ── Bookings: requests ────────────────────────────────────────

class ContactRequest(BaseSchema):
    """Fields shared by every booking form."""

    name: str = Field(..., max_length=255)
    phone: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return rules.check_name(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return rules.check_phone(v)


class ConsultationCreateRequest(ContactRequest):
    email: str
    dob: date
    gender: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return rules.check_email(v, required=True)

    @field_validator("dob")
    @classmethod
    def validate_dob(cls, v: date) -> date:
        return rules.check_adult_dob(v)

    @field_validator("gender")
    @classmethod
    def validate_gender(cls, v: str) -> str:
        return rules.check_gender(v, rules.ADULT_GENDERS)


class KundliCreateRequest(ContactRequest):
    email: str
    birth_date: date
    with_birth_time: bool = False
    birth_time: Optional[str] = Field(None, validate_default=True)
    birth_place: str = Field(..., max_length=255)
    gender: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return rules.check_email(v, required=True)

    @field_validator("birth_place")
    @classmethod
    def validate_birth_place(cls, v: str) -> str:
        return rules.check_required_text(v, "Birth place")

    @field_validator("birth_date")
    @classmethod
    def validate_birth_date(cls, v: date) -> date:
        return rules.check_birth_date(v, max_age_years=settings.KUNDLI_MAX_AGE_YEARS)

    @field_validator("gender")
    @classmethod
    def validate_gender(cls, v: str) -> str:
        return rules.check_gender(v, rules.KUNDLI_GENDERS)

    @field_validator("birth_time")
    @classmethod
    def validate_birth_time(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        # Only meaningful when the client knows the time of birth
        if not info.data.get("with_birth_time"):
            return None
        return rules.check_time(v)

    def details(self) -> Dict[str, Any]:
        return {
            "birth_time": self.birth_time,
            "birth_place": self.birth_place,
            "with_birth_time": self.with_birth_time,
        }


class DemoBookingCreateRequest(ContactRequest):
    email: Optional[str] = None
    meeting_date: date = Field(..., alias="date")
    meeting_time: str = Field(..., alias="time")
    dob: date
    gender: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return rules.check_email(v, required=False)

    @field_validator("meeting_date")
    @classmethod
    def validate_meeting_date(cls, v: date) -> date:
        return rules.check_meeting_date(v)

    @field_validator("meeting_time")
    @classmethod
    def validate_meeting_time(cls, v: str) -> str:
        return rules.check_time(v)

    @field_validator("dob")
    @classmethod
    def validate_dob(cls, v: date) -> date:
        return rules.check_adult_dob(v)

    @field_validator("gender")
    @classmethod
    def validate_gender(cls, v: str) -> str:
        return rules.check_gender(v, rules.ADULT_GENDERS)


BookingCreateRequest = Union[ConsultationCreateRequest, KundliCreateRequest, DemoBookingCreateRequest]


class PaymentVerifyRequest(BaseSchema):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class ConsultationVerifyRequest(PaymentVerifyRequest):
    consultation_id: uuid.UUID = Field(..., alias="consultationId")


class KundliVerifyRequest(PaymentVerifyRequest):
    kundli_id: uuid.UUID = Field(..., alias="kundliId")


class StatusUpdateRequest(BaseSchema):
    status: Optional[str] = None
    notes: Optional[str] = None
    kundli_data: Optional[Any] = None


# ── Bookings: responses ───────────────────────────────────────

class BookingResponse(BaseSchema):
    id: uuid.UUID
    kind: str
    name: str
    email: Optional[str]
    phone: str
    gender: str
    birth_date: date
    details: Optional[Dict[str, Any]] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    amount: int
    currency: str
    external_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    status: str
    notes: Optional[str] = None
    report_data: Optional[Any] = None
    created_at: datetime
    updated_at: datetime


# ── Admin ─────────────────────────────────────────────────────

class AdminLoginRequest(BaseSchema):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class AdminProfileResponse(BaseSchema):
    id: uuid.UUID
    username: str
    email: str
    role: str
    last_login: Optional[datetime]
    created_at: datetime


class AdminProfileUpdate(BaseSchema):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr


class ChangePasswordRequest(BaseSchema):
    current_password: str = Field(..., min_length=1, alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters long")
        return v


class LoginResponse(BaseSchema):
    success: bool = True
    message: str = "Login successful"
    token: str
    expires_at: datetime
    user: AdminProfileResponse


# ── Blog ──────────────────────────────────────────────────────

def _split_tags(v: Any) -> Optional[List[str]]:
    if v is None:
        return None
    if isinstance(v, str):
        v = v.split(",")
    return [str(t).strip() for t in v if str(t).strip()]


class BlogCreateRequest(BaseSchema):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    slug: Optional[str] = Field(None, max_length=280)
    excerpt: Optional[str] = None
    image_url: Optional[str] = None
    image_key: Optional[str] = None
    author: Optional[str] = Field(None, max_length=255)
    tags: Optional[Union[List[str], str]] = None
    published: bool = True
    featured: bool = False
    meta_title: Optional[str] = Field(None, max_length=255)
    meta_description: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Any) -> Optional[List[str]]:
        return _split_tags(v)


class BlogUpdateRequest(BaseSchema):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    slug: Optional[str] = Field(None, max_length=280)
    excerpt: Optional[str] = None
    image_url: Optional[str] = None
    image_key: Optional[str] = None
    author: Optional[str] = Field(None, max_length=255)
    tags: Optional[Union[List[str], str]] = None
    published: Optional[bool] = None
    featured: Optional[bool] = None
    meta_title: Optional[str] = Field(None, max_length=255)
    meta_description: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Any) -> Optional[List[str]]:
        return _split_tags(v)


class BlogResponse(BaseSchema):
    id: uuid.UUID
    title: str
    slug: str
    excerpt: Optional[str]
    content: str
    image_url: Optional[str]
    image_key: Optional[str]
    author: str
    tags: List[str]
    published: bool
    featured: bool
    meta_title: Optional[str]
    meta_description: Optional[str]
    view_count: int
    created_at: datetime
    updated_at: datetime


class BlogSummary(BaseSchema):
    id: uuid.UUID
    title: str
    slug: str
    excerpt: Optional[str]
    image_url: Optional[str]
    tags: List[str] = []
    created_at: datetime


# ── Testimonial ───────────────────────────────────────────────

YOUTUBE_URL_RE = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.?be)/.+$")
YOUTUBE_ID_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?)/|.*[?&]v=|shorts/)|youtu\.be/)([^\"&?/\s]{11})",
    re.IGNORECASE,
)


def extract_video_id(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    match = YOUTUBE_ID_RE.search(url)
    return match.group(1) if match else None


def _clean_youtube_url(v: Optional[str]) -> Optional[str]:
    v = (v or "").strip()
    if not v:
        return None
    if not YOUTUBE_URL_RE.match(v):
        raise ValueError("Please enter a valid YouTube URL")
    return v


class TestimonialCreateRequest(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    youtube_url: Optional[str] = None
    rating: int = Field(5, ge=1, le=5)
    location: Optional[str] = Field(None, max_length=255)
    is_featured: bool = False
    display_order: int = 0
    status: TestimonialStatus = TestimonialStatus.ACTIVE

    @field_validator("youtube_url")
    @classmethod
    def validate_youtube_url(cls, v: Optional[str]) -> Optional[str]:
        return _clean_youtube_url(v)


class TestimonialUpdateRequest(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    youtube_url: Optional[str] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    location: Optional[str] = Field(None, max_length=255)
    is_featured: Optional[bool] = None
    display_order: Optional[int] = None
    status: Optional[TestimonialStatus] = None

    @field_validator("youtube_url")
    @classmethod
    def validate_youtube_url(cls, v: Optional[str]) -> Optional[str]:
        return _clean_youtube_url(v)


class TestimonialResponse(BaseSchema):
    id: uuid.UUID
    name: str
    description: Optional[str]
    youtube_url: Optional[str]
    rating: int
    location: Optional[str]
    is_featured: bool
    display_order: int
    status: str
    created_at: datetime
    updated_at: datetime
    video_id: Optional[str] = None
    hasVideo: bool = False
    hasText: bool = False

    @model_validator(mode="after")
    def derive_flags(self) -> "TestimonialResponse":
        self.video_id = extract_video_id(self.youtube_url)
        self.hasVideo = bool(self.youtube_url)
        self.hasText = bool(self.description and self.description.strip())
        return self


# ── Upload ────────────────────────────────────────────────────

class ImageDeleteRequest(BaseSchema):
    file_name: str = Field(..., min_length=1, alias="fileName")


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True
