"""Base repository pattern implementation for database operations.

Every SQLAlchemy failure raised inside a repository call is re-raised as
``StorageError`` with the driver exception kept as ``cause``. Callers above
this layer never see SQLAlchemy exception types.
"""

import uuid
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager

from loguru import logger
from sqlalchemy import delete as sql_delete
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taxform.core.exceptions import StorageError
from taxform.infrastructure.database.base import BaseModel


class BaseRepository[T: BaseModel]:
    """Base repository class providing common CRUD operations.

    Args:
        session: The async SQLAlchemy session to use for operations.
        model_class: The SQLAlchemy model class this repository manages.

    Example:
        class TaxRateRepository(BaseRepository[TaxRate]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, TaxRate)
    """

    def __init__(self, session: AsyncSession, model_class: type[T]) -> None:
        self.session = session
        self.model_class = model_class

    @asynccontextmanager
    async def _storage_errors(self, operation: str) -> AsyncGenerator[None]:
        """Translate SQLAlchemy failures into ``StorageError``.

        Args:
            operation: Short name of the repository call, for logs and context.
        """
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(
                "Database operation {} on {} failed: {}",
                operation,
                self.model_class.__name__,
                type(exc).__name__,
                operation=operation,
                model=self.model_class.__name__,
            )
            raise StorageError(
                f"Database operation '{operation}' failed",
                context={"operation": operation, "model": self.model_class.__name__},
                cause=exc,
            ) from exc

    async def get_by_id(self, entity_id: uuid.UUID) -> T | None:
        """Retrieve a model instance by its ID.

        Args:
            entity_id: The primary key of the row to retrieve.

        Returns:
            T | None: The model instance if found, None otherwise.
        """
        logger.debug("Fetching {} by ID: {}", self.model_class.__name__, entity_id)

        async with self._storage_errors("get_by_id"):
            stmt = select(self.model_class).where(self.model_class.id == entity_id)
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

    async def create(self, obj: T) -> T:
        """Insert ``obj`` and load its server-generated columns.

        Returns:
            T: The created model instance with populated timestamps.
        """
        async with self._storage_errors("create"):
            self.session.add(obj)
            await self.session.flush()
            await self.session.refresh(obj)

        logger.info(
            "Created {} instance with ID: {}", self.model_class.__name__, obj.id
        )
        return obj

    async def update(self, entity_id: uuid.UUID, data: Mapping[str, object]) -> T | None:
        """Update a model instance by its ID with partial data.

        Args:
            entity_id: The primary key of the row to update.
            data: Column names mapped to their new values.

        Returns:
            T | None: The updated model instance if found, None otherwise.
        """
        instance = await self.get_by_id(entity_id)
        if instance is None:
            logger.debug(
                "{} instance not found for update - ID: {}",
                self.model_class.__name__,
                entity_id,
            )
            return None

        for key, value in data.items():
            if hasattr(instance, key):
                setattr(instance, key, value)
            else:
                logger.warning(
                    "Attempted to update non-existent field '{}' on {}",
                    key,
                    self.model_class.__name__,
                )

        async with self._storage_errors("update"):
            await self.session.flush()
            await self.session.refresh(instance)

        logger.info(
            "Updated {} instance ID {} - fields: {}",
            self.model_class.__name__,
            entity_id,
            list(data.keys()),
        )
        return instance

    async def delete(self, entity_id: uuid.UUID) -> bool:
        """Delete a model instance by its ID.

        Returns:
            bool: True if a row was deleted, False if none matched.
        """
        async with self._storage_errors("delete"):
            stmt = sql_delete(self.model_class).where(self.model_class.id == entity_id)
            result = await self.session.execute(stmt)

        deleted = result.rowcount > 0
        if deleted:
            logger.info(
                "Deleted {} instance with ID: {}", self.model_class.__name__, entity_id
            )
        return deleted
