"""
shared/utils/repository.py
Thin typed gateway over the async session: get / insert / update /
delete plus filtered, paginated selects with exact counts.
Every read is a fresh query; nothing is cached in-process.
"""

from dataclasses import dataclass
from typing import Any, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement, Select

from config.database import Base

ModelT = TypeVar("ModelT", bound=Base)


@dataclass
class Page(Generic[ModelT]):
    items: List[ModelT]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0  # ceiling division

    def pagination(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
        }


class Repository(Generic[ModelT]):
    """Query operations for one mapped model."""

    def __init__(self, db: AsyncSession, model: Type[ModelT]):
        self.db = db
        self.model = model

    # ── Reads ─────────────────────────────────────────────────
    async def get(self, pk: Any, *where: ColumnElement) -> Optional[ModelT]:
        result = await self.db.execute(
            select(self.model).where(self.model.id == pk, *where)
        )
        return result.scalar_one_or_none()

    async def get_by(self, *where: ColumnElement) -> Optional[ModelT]:
        result = await self.db.execute(select(self.model).where(*where).limit(1))
        return result.scalars().first()

    async def exists(self, *where: ColumnElement) -> bool:
        found = await self.db.scalar(select(self.model.id).where(*where).limit(1))
        return found is not None

    async def count(self, *where: ColumnElement) -> int:
        total = await self.db.scalar(
            select(func.count()).select_from(self.model).where(*where)
        )
        return total or 0

    async def list(
        self,
        *where: ColumnElement,
        order_by: Sequence[ColumnElement] = (),
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        query = select(self.model).where(*where).order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def paginate(
        self,
        *where: ColumnElement,
        order_by: Sequence[ColumnElement] = (),
        page: int = 1,
        limit: int = 10,
    ) -> Page[ModelT]:
        query: Select = select(self.model).where(*where)
        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(*order_by).offset((page - 1) * limit).limit(limit)
        )
        return Page(items=list(result.scalars().all()), total=total or 0, page=page, limit=limit)

    async def count_by(self, column: ColumnElement, *where: ColumnElement) -> dict:
        """Row counts grouped by `column`, e.g. per status."""
        result = await self.db.execute(
            select(column, func.count()).select_from(self.model).where(*where).group_by(column)
        )
        return {key: n for key, n in result.all()}

    # ── Writes ────────────────────────────────────────────────
    async def insert(self, **values: Any) -> ModelT:
        obj = self.model(**values)
        self.db.add(obj)
        await self.db.flush()
        await self.db.refresh(obj)
        return obj

    async def update(self, obj: ModelT, **values: Any) -> ModelT:
        for key, value in values.items():
            setattr(obj, key, value)
        await self.db.flush()
        await self.db.refresh(obj)
        return obj

    async def delete(self, obj: ModelT) -> None:
        await self.db.delete(obj)
        await self.db.flush()

    async def commit(self) -> None:
        await self.db.commit()


def ilike_any(columns: Iterable[ColumnElement], term: str) -> ColumnElement:
    """Case-insensitive substring match across several columns. Wildcards in `term` match literally."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    return or_(*(col.ilike(pattern, escape="\\") for col in columns))
