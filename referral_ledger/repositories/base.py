"""
Base repository.

Generic CRUD operations for all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic CRUD operations.

    Provides async database operations for any SQLAlchemy model.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class UserRepository(BaseRepository[User]):
            def __init__(self, session: AsyncSession):
                super().__init__(User, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """
        Get entity by ID.

        Args:
            id: Entity ID

        Returns:
            Entity or None if not found
        """
        return await self.session.get(self.model, id, populate_existing=True)

    async def get_for_update(self, id: int) -> ModelType | None:
        """
        Get entity by ID with a row lock (SELECT ... FOR UPDATE).

        The returned instance is refreshed from the locked read, so values
        cached in the identity map by earlier reads are not reused.

        Args:
            id: Entity ID

        Returns:
            Entity or None if not found
        """
        stmt = (
            select(self.model)
            .where(self.model.id == id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by(
        self, **filters: Any
    ) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = (
            select(self.model)
            .filter_by(**filters)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by(
        self,
        limit: int | None = None,
        **filters: Any,
    ) -> list[ModelType]:
        """
        Find entities by filters.

        Args:
            limit: Max number of results
            **filters: Column filters

        Returns:
            List of matching entities
        """
        stmt = (
            select(self.model)
            .filter_by(**filters)
            .order_by(self.model.id)
            .execution_options(populate_existing=True)
        )
        if limit:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create(self, **data: Any) -> ModelType:
        """
        Create new entity.

        Args:
            **data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def insert_ignore(self, **data: Any) -> int | None:
        """
        Insert a row unless it violates a unique constraint.

        Emits INSERT ... ON CONFLICT DO NOTHING RETURNING id, so the
        existence check and the insert are one statement. Concurrent
        inserters of the same key block on each other in the database and
        exactly one of them gets an id back.

        Args:
            **data: Column values

        Returns:
            ID of the inserted row, or None if a conflicting row exists
        """
        dialect = self.session.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert

        stmt = (
            insert(self.model)
            .values(**data)
            .on_conflict_do_nothing()
            .returning(self.model.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching filters.

        Args:
            **filters: Column filters

        Returns:
            Count of matching entities
        """
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def exists(self, **filters: Any) -> bool:
        """
        Check if entity exists.

        Args:
            **filters: Column filters

        Returns:
            True if exists, False otherwise
        """
        count = await self.count(**filters)
        return count > 0
