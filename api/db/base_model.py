"""
Base model with production-grade query patterns.

Query Standards:
- Pagination is mandatory for list queries
- Tenant-owned rows are fetched through `get_in_org`, never bare `get_by_id`
- Index usage must be explicit
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, TypeVar, Sequence
from sqlalchemy import DateTime, select, func, desc, asc, delete as sa_delete
from sqlalchemy.orm import Mapped, mapped_column, DeclarativeBase
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T", bound="BaseModel")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (some drivers drop the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models"""

    pass


class BaseModel(Base):
    """
    Abstract base model with common fields and CRUD helpers.

    All list queries enforce:
    - Explicit pagination
    - Caller-supplied filters only (no implicit tenant)
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    # CREATE OPERATIONS

    @classmethod
    async def create(
        cls: type[T], db: AsyncSession, commit: bool = True, **kwargs
    ) -> T:
        """
        Create new instance and optionally commit.
        Without commit the row is flushed so its id is usable.
        """
        instance = cls(**kwargs)
        db.add(instance)

        if commit:
            await db.commit()
            await db.refresh(instance)
        else:
            await db.flush()

        return instance

    @classmethod
    async def create_many(
        cls: type[T], db: AsyncSession, items: List[Dict[str, Any]], commit: bool = True
    ) -> List[T]:
        """
        Bulk create multiple instances.
        """
        instances = [cls(**item) for item in items]
        db.add_all(instances)

        if commit:
            await db.commit()
            for instance in instances:
                await db.refresh(instance)
        else:
            await db.flush()

        return instances

    # READ OPERATIONS

    @classmethod
    async def get_by_id(cls: type[T], db: AsyncSession, id: Any) -> Optional[T]:
        """
        Get single record by primary key.
        """
        return await db.get(cls, id)

    @classmethod
    async def get_in_org(
        cls: type[T], db: AsyncSession, id: Any, organization_id: Any
    ) -> Optional[T]:
        """
        Get by primary key, but only inside the given organization.

        Rows from another tenant come back as None, exactly like missing rows.
        """
        query = select(cls).where(
            cls.id == id,
            cls.organization_id == organization_id,  # type: ignore[attr-defined]
        )
        result = await db.execute(query)
        return result.scalars().first()

    @classmethod
    async def find_one(
        cls: type[T],
        db: AsyncSession,
        filters: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> Optional[T]:
        """
        Get first matching record.
        """
        query = select(cls)
        if filters:
            query = query.filter_by(**filters)
        if kwargs:
            query = query.filter_by(**kwargs)
        result = await db.execute(query)
        return result.scalars().first()

    @classmethod
    async def find_many(
        cls: type[T],
        db: AsyncSession,
        limit: int = 100,
        offset: int = 0,
        filters: Optional[Dict[str, Any]] = None,
        where: Sequence[Any] = (),
        order_by: Optional[str] = None,
        order_desc: bool = False,
        options: Sequence[Any] = (),
        **kwargs,
    ) -> List[T]:
        """
        Get paginated list of records.

        `filters`/kwargs are equality filters; `where` takes arbitrary
        SQLAlchemy clauses (e.g. the ticket visibility clause).
        """
        limit = min(limit, 1000)
        query = select(cls).offset(offset).limit(limit)

        if filters:
            query = query.filter_by(**filters)
        if kwargs:
            query = query.filter_by(**kwargs)
        if where:
            query = query.where(*where)
        if options:
            query = query.options(*options)

        if order_by and hasattr(cls, order_by):
            column = getattr(cls, order_by)
            query = query.order_by(desc(column) if order_desc else asc(column))
        else:
            query = query.order_by(desc(cls.created_at))

        result = await db.execute(query)
        return list(result.scalars().all())

    @classmethod
    async def find_all(
        cls: type[T],
        db: AsyncSession,
        filters: Optional[Dict[str, Any]] = None,
        order_by: str = "created_at",
        order_desc: bool = False,
    ) -> List[T]:
        """
        Every matching record, no limit.

        For children of a single parent (a ticket's comments or files) where
        dropping rows would be wrong; use `find_many`/`paginate` elsewhere.
        """
        column = getattr(cls, order_by)
        query = select(cls).filter_by(**(filters or {}))
        query = query.order_by(desc(column) if order_desc else asc(column))
        result = await db.execute(query)
        return list(result.scalars().all())

    @classmethod
    async def count(
        cls: type[T],
        db: AsyncSession,
        filters: Optional[Dict[str, Any]] = None,
        where: Sequence[Any] = (),
        **kwargs,
    ) -> int:
        """
        Count matching records.
        """
        query = select(func.count()).select_from(cls)

        if filters:
            query = query.filter_by(**filters)
        if kwargs:
            query = query.filter_by(**kwargs)
        if where:
            query = query.where(*where)

        result = await db.execute(query)
        return result.scalar_one()

    @classmethod
    async def exists(
        cls: type[T],
        db: AsyncSession,
        filters: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> bool:
        """
        Check if matching record exists.
        """
        query = select(cls.id)

        if filters:
            query = query.filter_by(**filters)
        if kwargs:
            query = query.filter_by(**kwargs)

        result = await db.execute(select(query.exists()))
        return bool(result.scalar())

    # UPDATE OPERATIONS

    async def save(self: T, db: AsyncSession, commit: bool = True) -> T:
        """
        Save changes to existing instance.
        """
        self.updated_at = utcnow()
        db.add(self)

        if commit:
            await db.commit()
            await db.refresh(self)

        return self

    # DELETE OPERATIONS

    async def delete(self, db: AsyncSession, commit: bool = True) -> None:
        """
        Delete this instance.
        """
        await db.delete(self)

        if commit:
            await db.commit()

    @classmethod
    async def delete_many(
        cls: type[T], db: AsyncSession, where: Sequence[Any], commit: bool = True
    ) -> int:
        """
        Bulk delete matching records in one statement.
        """
        result = await db.execute(sa_delete(cls).where(*where))

        if commit:
            await db.commit()

        return result.rowcount or 0

    # PAGINATION HELPERS

    @classmethod
    async def paginate(
        cls: type[T],
        db: AsyncSession,
        page: int = 1,
        per_page: int = 20,
        filters: Optional[Dict[str, Any]] = None,
        where: Sequence[Any] = (),
        order_by: Optional[str] = None,
        order_desc: bool = False,
        **kwargs,
    ) -> Dict[str, Any]:
        """
        Get paginated results with metadata.
        """
        per_page = min(max(per_page, 1), 100)
        page = max(page, 1)
        offset = (page - 1) * per_page

        total = await cls.count(db, filters=filters, where=where, **kwargs)

        items = await cls.find_many(
            db,
            filters=filters,
            where=where,
            limit=per_page,
            offset=offset,
            order_by=order_by,
            order_desc=order_desc,
            **kwargs,
        )

        pages = (total + per_page - 1) // per_page

        return {
            "items": items,
            "total": total,
            "page": page,
            "per_page": per_page,
            "pages": pages,
            "has_next": page < pages,
            "has_prev": page > 1,
        }
