"""
services/admin/router.py
Admin account endpoints (login, profile, password) and the dashboard
statistics. Tokens are stateless, so logout is a client-side discard.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.middleware.auth import TokenData, require_admin
from shared.models.models import Admin, Blog, BookingKind, BookingRequest, Testimonial
from shared.schemas.schemas import (
    AdminLoginRequest,
    AdminProfileResponse,
    AdminProfileUpdate,
    ChangePasswordRequest,
    LoginResponse,
    MessageResponse,
)
from shared.utils.exceptions import ConflictError, InvalidCredentialsError, NotFoundError
from shared.utils.repository import Repository
from shared.utils.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

# Statuses still waiting on someone at the back office
PENDING_STATUSES = {
    BookingKind.CONSULTATION: ("payment_pending", "received"),
    BookingKind.DEMO: ("submitted",),
    BookingKind.KUNDLI: ("payment_pending", "submitted"),
}


# ── Helpers ───────────────────────────────────────────────────

async def _get_admin_or_404(admin_id: str, db: AsyncSession) -> Admin:
    admin = await Repository(db, Admin).get(UUID(admin_id))
    if not admin:
        raise NotFoundError("Admin not found")
    return admin


# ── Auth ──────────────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(data: AdminLoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Exchange username + password for a bearer token.
    Unknown user, inactive user and wrong password all return the same 401.
    """
    repo = Repository(db, Admin)
    admin = await repo.get_by(Admin.username == data.username)

    if not admin or not admin.is_active or not verify_password(data.password, admin.password_hash):
        logger.warning(f"Failed admin login for '{data.username}'")
        raise InvalidCredentialsError()

    admin = await repo.update(admin, last_login=datetime.now(timezone.utc))
    token, expires_at = create_access_token(
        admin_id=str(admin.id),
        username=admin.username,
        email=admin.email,
        role=admin.role,
    )
    logger.info(f"Admin '{admin.username}' logged in")
    return LoginResponse(
        token=token,
        expires_at=expires_at,
        user=AdminProfileResponse.model_validate(admin),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(_admin: TokenData = Depends(require_admin)):
    # Nothing to revoke server-side; the client drops the token
    return MessageResponse(message="Logout successful")


# ── Profile ───────────────────────────────────────────────────

@router.get("/profile")
async def get_profile(
    principal: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    admin = await _get_admin_or_404(principal.admin_id, db)
    return {"success": True, "profile": AdminProfileResponse.model_validate(admin)}


@router.put("/profile")
async def update_profile(
    data: AdminProfileUpdate,
    principal: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = Repository(db, Admin)
    admin = await _get_admin_or_404(principal.admin_id, db)
    email = data.email.lower()

    taken = await repo.exists(
        or_(Admin.username == data.username, Admin.email == email),
        Admin.id != admin.id,
    )
    if taken:
        raise ConflictError("Username or email already exists")

    admin = await repo.update(admin, username=data.username, email=email)
    return {
        "success": True,
        "message": "Profile updated successfully",
        "profile": AdminProfileResponse.model_validate(admin),
    }


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    principal: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    admin = await _get_admin_or_404(principal.admin_id, db)
    if not verify_password(data.current_password, admin.password_hash):
        raise InvalidCredentialsError("Current password is incorrect")

    await Repository(db, Admin).update(admin, password_hash=hash_password(data.new_password))
    logger.info(f"Admin '{admin.username}' changed password")
    return MessageResponse(message="Password changed successfully")


# ── Dashboard ─────────────────────────────────────────────────

@router.get("/dashboard/stats")
async def get_dashboard_stats(
    _admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Totals, back-office queue sizes and today's intake per booking kind."""
    today_start = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    bookings = Repository(db, BookingRequest)

    async def per_kind(*where) -> dict:
        counts = await bookings.count_by(BookingRequest.kind, *where)
        return {kind: counts.get(kind.value, 0) for kind in BookingKind}

    totals = await per_kind()
    today = await per_kind(BookingRequest.created_at >= today_start)
    pending = {
        kind: await bookings.count(BookingRequest.kind == kind.value, BookingRequest.status.in_(statuses))
        for kind, statuses in PENDING_STATUSES.items()
    }

    revenue = await db.scalar(
        select(func.coalesce(func.sum(BookingRequest.amount), 0)).where(
            BookingRequest.kind.in_((BookingKind.CONSULTATION.value, BookingKind.KUNDLI.value)),
            BookingRequest.status == "completed",
        )
    )

    return {
        "success": True,
        "stats": {
            "total": {
                "consultations": totals[BookingKind.CONSULTATION],
                "demoBookings": totals[BookingKind.DEMO],
                "kundliRequests": totals[BookingKind.KUNDLI],
                "testimonials": await Repository(db, Testimonial).count(),
                "blogs": await Repository(db, Blog).count(),
                "revenue": int(revenue or 0),
            },
            "pending": {
                "consultations": pending[BookingKind.CONSULTATION],
                "demos": pending[BookingKind.DEMO],
                "kundli": pending[BookingKind.KUNDLI],
            },
            "today": {
                "consultations": today[BookingKind.CONSULTATION],
                "demos": today[BookingKind.DEMO],
                "kundli": today[BookingKind.KUNDLI],
            },
        },
    }
