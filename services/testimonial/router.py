"""
services/testimonial/router.py
Client testimonials (text and/or YouTube video). Public reads see active
entries only; admins see and manage everything.
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.middleware.auth import TokenData, get_optional_token_data, require_admin
from shared.models.models import Testimonial, TestimonialStatus
from shared.schemas.schemas import (
    MessageResponse,
    TestimonialCreateRequest,
    TestimonialResponse,
    TestimonialUpdateRequest,
)
from shared.utils.exceptions import NotFoundError
from shared.utils.repository import Repository, ilike_any

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/testimonials", tags=["Testimonials"])

DISPLAY_ORDER = [Testimonial.display_order.asc(), Testimonial.created_at.desc()]


def _is_admin(principal: Optional[TokenData]) -> bool:
    return principal is not None and principal.is_admin


async def _get_testimonial_or_404(testimonial_id: UUID, db: AsyncSession, *where) -> Testimonial:
    testimonial = await Repository(db, Testimonial).get(testimonial_id, *where)
    if not testimonial:
        raise NotFoundError("Testimonial not found")
    return testimonial


# ── Public ────────────────────────────────────────────────────

@router.get("")
async def list_testimonials(
    featured: Optional[bool] = Query(None),
    status_filter: Optional[TestimonialStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    principal: Optional[TokenData] = Depends(get_optional_token_data),
    db: AsyncSession = Depends(get_db),
):
    where = []
    if not _is_admin(principal):
        where.append(Testimonial.status == TestimonialStatus.ACTIVE.value)
    elif status_filter is not None:
        where.append(Testimonial.status == TestimonialStatus(status_filter).value)
    if featured is not None:
        where.append(Testimonial.is_featured == featured)
    if search:
        where.append(ilike_any([Testimonial.name, Testimonial.description, Testimonial.location], search))

    result = await Repository(db, Testimonial).paginate(
        *where, order_by=DISPLAY_ORDER, page=page, limit=limit
    )
    return {
        "success": True,
        "testimonials": [TestimonialResponse.model_validate(t) for t in result.items],
        "pagination": result.pagination(),
    }


@router.get("/featured")
async def featured_testimonials(
    limit: int = Query(3, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
):
    testimonials = await Repository(db, Testimonial).list(
        Testimonial.is_featured.is_(True),
        Testimonial.status == TestimonialStatus.ACTIVE.value,
        order_by=DISPLAY_ORDER,
        limit=limit,
    )
    return {"success": True, "testimonials": [TestimonialResponse.model_validate(t) for t in testimonials]}


@router.get("/{testimonial_id}")
async def get_testimonial(
    testimonial_id: UUID,
    principal: Optional[TokenData] = Depends(get_optional_token_data),
    db: AsyncSession = Depends(get_db),
):
    where = [] if _is_admin(principal) else [Testimonial.status == TestimonialStatus.ACTIVE.value]
    testimonial = await _get_testimonial_or_404(testimonial_id, db, *where)
    return {"success": True, "testimonial": TestimonialResponse.model_validate(testimonial)}


# ── Admin ─────────────────────────────────────────────────────

@router.post("", status_code=201)
async def create_testimonial(
    data: TestimonialCreateRequest,
    _admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    testimonial = await Repository(db, Testimonial).insert(**data.model_dump())
    logger.info(f"Testimonial {testimonial.id} created")
    return {
        "success": True,
        "message": "Testimonial created successfully",
        "testimonial": TestimonialResponse.model_validate(testimonial),
    }


@router.put("/{testimonial_id}")
async def update_testimonial(
    testimonial_id: UUID,
    data: TestimonialUpdateRequest,
    _admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    testimonial = await _get_testimonial_or_404(testimonial_id, db)

    changes = data.model_dump(exclude_unset=True)
    # Explicit nulls only clear the optional text columns
    for key in ("name", "rating", "is_featured", "display_order", "status"):
        if key in changes and changes[key] is None:
            changes.pop(key)

    testimonial = await Repository(db, Testimonial).update(testimonial, **changes)
    return {
        "success": True,
        "message": "Testimonial updated successfully",
        "testimonial": TestimonialResponse.model_validate(testimonial),
    }


@router.delete("/{testimonial_id}", response_model=MessageResponse)
async def delete_testimonial(
    testimonial_id: UUID,
    _admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    testimonial = await _get_testimonial_or_404(testimonial_id, db)
    await Repository(db, Testimonial).delete(testimonial)
    logger.info(f"Testimonial {testimonial_id} deleted")
    return MessageResponse(message="Testimonial deleted successfully")
