"""
services/blog/router.py
Blog posts: public reading (published only) and admin CRUD.
"""

import logging
import re
import unicodedata
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import String, cast, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_db
from shared.middleware.auth import TokenData, get_optional_token_data, require_admin
from shared.models.models import Blog
from shared.schemas.schemas import (
    BlogCreateRequest,
    BlogResponse,
    BlogSummary,
    BlogUpdateRequest,
    MessageResponse,
)
from shared.utils.exceptions import ConflictError, NotFoundError, ValidationError
from shared.utils.repository import Repository, ilike_any

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/blogs", tags=["Blogs"])

EXCERPT_LENGTH = 150
RELATED_LIMIT = 3
SLUG_TAKEN_MESSAGE = "A blog with this slug already exists"


# ── Helpers ───────────────────────────────────────────────────

def slugify(value: str) -> str:
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return value[:200] or "post"


async def _unique_slug(repo: Repository[Blog], base: str, exclude_id: Optional[UUID] = None) -> str:
    slug, n = base, 2
    while True:
        where = [Blog.slug == slug]
        if exclude_id is not None:
            where.append(Blog.id != exclude_id)
        if not await repo.exists(*where):
            return slug
        slug = f"{base}-{n}"
        n += 1


def _default_excerpt(title: str) -> str:
    return title[:EXCERPT_LENGTH] + "..."


def _is_admin(principal: Optional[TokenData]) -> bool:
    return principal is not None and principal.is_admin


async def _get_blog_or_404(blog_id: UUID, db: AsyncSession) -> Blog:
    blog = await Repository(db, Blog).get(blog_id)
    if not blog:
        raise NotFoundError("Blog not found")
    return blog


# ── Public ────────────────────────────────────────────────────

@router.get("")
async def list_blogs(
    published: Optional[bool] = Query(None),
    featured: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    tag: Optional[str] = Query(None, max_length=50),
    principal: Optional[TokenData] = Depends(get_optional_token_data),
    db: AsyncSession = Depends(get_db),
):
    """
    Published posts, newest first. Admins may pass `published=false` to see
    drafts, or omit it to see everything.
    """
    where = []
    if _is_admin(principal):
        if published is not None:
            where.append(Blog.published == published)
    else:
        where.append(Blog.published.is_(True))
    if featured is not None:
        where.append(Blog.featured == featured)
    if search:
        where.append(ilike_any([Blog.title, Blog.excerpt, Blog.content], search))
    if tag:
        # Works on the JSON text form in both PostgreSQL and SQLite
        where.append(cast(Blog.tags, String).like(f'%"{tag}"%'))

    result = await Repository(db, Blog).paginate(
        *where, order_by=[Blog.created_at.desc()], page=page, limit=limit
    )
    return {
        "success": True,
        "blogs": [BlogResponse.model_validate(b) for b in result.items],
        "pagination": result.pagination(),
    }


@router.get("/featured")
async def featured_blogs(
    limit: int = Query(3, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
):
    blogs = await Repository(db, Blog).list(
        Blog.published.is_(True),
        Blog.featured.is_(True),
        order_by=[Blog.created_at.desc()],
        limit=limit,
    )
    return {"success": True, "blogs": [BlogSummary.model_validate(b) for b in blogs]}


@router.get("/search")
async def search_blogs(
    q: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    if not q or not q.strip():
        raise ValidationError(
            "Search query is required",
            errors=[{"field": "q", "message": "Search query is required"}],
        )

    result = await Repository(db, Blog).paginate(
        Blog.published.is_(True),
        ilike_any([Blog.title, Blog.excerpt, Blog.content], q.strip()),
        order_by=[Blog.created_at.desc()],
        page=page,
        limit=limit,
    )
    return {
        "success": True,
        "blogs": [BlogResponse.model_validate(b) for b in result.items],
        "pagination": result.pagination(),
    }


@router.get("/{slug}")
async def get_blog_by_slug(
    slug: str,
    principal: Optional[TokenData] = Depends(get_optional_token_data),
    db: AsyncSession = Depends(get_db),
):
    """Single post by slug. Counts a view and returns up to three recent related posts."""
    repo = Repository(db, Blog)
    where = [Blog.slug == slug]
    if not _is_admin(principal):
        where.append(Blog.published.is_(True))

    blog = await repo.get_by(*where)
    if not blog:
        raise NotFoundError("Blog not found")

    # Increment in SQL, not in Python
    await db.execute(
        update(Blog)
        .where(Blog.id == blog.id)
        .values(view_count=Blog.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(blog)

    related = await repo.list(
        Blog.id != blog.id,
        Blog.published.is_(True),
        order_by=[Blog.created_at.desc()],
        limit=RELATED_LIMIT,
    )
    return {
        "success": True,
        "blog": BlogResponse.model_validate(blog),
        "relatedBlogs": [BlogSummary.model_validate(b) for b in related],
    }


# ── Admin ─────────────────────────────────────────────────────

@router.post("", status_code=201)
async def create_blog(
    data: BlogCreateRequest,
    _admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = Repository(db, Blog)
    excerpt = data.excerpt or _default_excerpt(data.title)

    slug = await _unique_slug(repo, slugify(data.slug or data.title))
    try:
        blog = await repo.insert(
            title=data.title,
            slug=slug,
            excerpt=excerpt,
            content=data.content,
            image_url=data.image_url or None,
            image_key=data.image_key or None,
            author=data.author or "Accurate Astro",
            tags=data.tags or [],
            published=data.published,
            featured=data.featured,
            meta_title=data.meta_title or data.title,
            meta_description=data.meta_description or excerpt,
        )
    except IntegrityError:
        # Another post claimed the slug between the check and the insert
        await db.rollback()
        raise ConflictError(SLUG_TAKEN_MESSAGE)
    logger.info(f"Blog {blog.id} created ({blog.slug})")
    return {"success": True, "message": "Blog created successfully", "blog": BlogResponse.model_validate(blog)}


@router.put("/{blog_id}")
async def update_blog(
    blog_id: UUID,
    data: BlogUpdateRequest,
    _admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    repo = Repository(db, Blog)
    blog = await _get_blog_or_404(blog_id, db)

    changes = data.model_dump(exclude_unset=True)
    # Slug changes only when given explicitly
    if changes.get("slug"):
        changes["slug"] = await _unique_slug(repo, slugify(changes["slug"]), exclude_id=blog.id)
    else:
        changes.pop("slug", None)
    for key in ("title", "content", "published", "featured", "author"):
        if key in changes and changes[key] is None:
            changes.pop(key)
    if "tags" in changes and changes["tags"] is None:
        changes["tags"] = []

    try:
        blog = await repo.update(blog, **changes)
    except IntegrityError:
        await db.rollback()
        raise ConflictError(SLUG_TAKEN_MESSAGE)
    return {"success": True, "message": "Blog updated successfully", "blog": BlogResponse.model_validate(blog)}


@router.delete("/{blog_id}", response_model=MessageResponse)
async def delete_blog(
    blog_id: UUID,
    _admin: TokenData = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    blog = await _get_blog_or_404(blog_id, db)
    await Repository(db, Blog).delete(blog)
    logger.info(f"Blog {blog_id} deleted")
    return MessageResponse(message="Blog deleted successfully")
