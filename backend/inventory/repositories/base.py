"""
Base Repository

Generic async data access over one SQLAlchemy model with soft-delete
awareness. Soft-deleted rows are invisible to every query unless a method
says otherwise.

Driver errors are translated at this boundary: connectivity problems become
StoreUnavailableError and unique-constraint violations become ConflictError.
Everything else propagates unchanged.
"""

from typing import Any, Dict, Optional, Type

from sqlalchemy import ColumnElement, exists, func, select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..domain.errors import ConflictError, StoreUnavailableError
from ..models import Base

logger = structlog.get_logger()

_CONNECTIVITY_ERRORS = (OperationalError, InterfaceError, OSError)


class BaseRepository:
    """
    Base repository with soft-delete filtering.

    Each repository subclass specifies its model type directly. The model
    must carry ``id``, ``is_deleted`` and ``deleted_at`` columns.
    """

    def __init__(self, session: AsyncSession, model: Type[Base]):
        """
        Initialize repository with strict input validation.

        Raises:
            TypeError: If session is not AsyncSession or model is invalid
        """
        if not isinstance(session, AsyncSession):
            raise TypeError(
                f"session must be AsyncSession instance, got {type(session).__name__}"
            )

        if not model or not hasattr(model, "__tablename__"):
            raise TypeError(
                f"model must be valid SQLAlchemy model with __tablename__, got {type(model).__name__}"
            )

        self.session = session
        self.model = model

    @property
    def entity_name(self) -> str:
        return self.model.__name__.lower()

    def _store_unavailable(self, operation: str, error: Exception, **context) -> StoreUnavailableError:
        logger.error(
            "Repository: Backing store unavailable",
            model=self.model.__name__,
            operation=operation,
            error=str(error),
            **context,
        )
        return StoreUnavailableError(
            message=f"Backing store unavailable during {operation}",
            original_error=error,
        )

    def _conflict(self, obj: Base, error: IntegrityError) -> ConflictError:
        """Map a unique-constraint violation to a ConflictError. Subclasses name the natural key."""
        return ConflictError(self.entity_name, "id", getattr(obj, "id", None))

    async def find_by_id(self, id: int, include_deleted: bool = False) -> Optional[Base]:
        """
        Get entity by primary key.

        Returns:
            Entity if found (and not soft-deleted unless requested), None otherwise
        """
        stmt = select(self.model).where(self.model.id == id)
        if not include_deleted:
            stmt = stmt.where(self.model.is_deleted.is_(False))

        try:
            result = await self.session.execute(stmt)
            entity = result.scalar_one_or_none()
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("find_by_id", e, entity_id=id) from e

        if entity:
            logger.debug(
                "Repository: Entity retrieved",
                model=self.model.__name__,
                entity_id=id,
            )
        return entity

    async def find_all(self) -> list[Base]:
        """List every non-deleted entity, ordered by id."""
        return await self.find_where()

    async def find_where(self, *conditions: ColumnElement[bool]) -> list[Base]:
        """List non-deleted entities matching every condition, ordered by id."""
        stmt = (
            select(self.model)
            .where(self.model.is_deleted.is_(False), *conditions)
            .order_by(self.model.id)
        )

        try:
            result = await self.session.execute(stmt)
            entities = list(result.scalars().all())
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("find_where", e) from e

        logger.debug(
            "Repository: Entities listed",
            model=self.model.__name__,
            count=len(entities),
        )
        return entities

    async def exists(self, *conditions: ColumnElement[bool], include_deleted: bool = False) -> bool:
        """Check whether any entity matches every condition."""
        criteria = list(conditions)
        if not include_deleted:
            criteria.append(self.model.is_deleted.is_(False))

        try:
            result = await self.session.execute(select(exists().where(*criteria)))
            return bool(result.scalar())
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("exists", e) from e

    async def count_where(self, *conditions: ColumnElement[bool]) -> int:
        """Count non-deleted entities matching every condition."""
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.is_deleted.is_(False), *conditions)
        )

        try:
            result = await self.session.execute(stmt)
            return int(result.scalar_one())
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("count_where", e) from e

    async def insert(self, obj: Base) -> Base:
        """
        Add a new entity and flush it so its id is populated.

        Raises:
            ConflictError: If a unique constraint is violated
            StoreUnavailableError: If the store cannot be reached
        """
        if obj is None:
            raise ValueError("Entity object is required (cannot be None)")

        if not isinstance(obj, self.model):
            raise TypeError(
                f"Entity must be {self.model.__name__} instance, got {type(obj).__name__}"
            )

        try:
            self.session.add(obj)
            await self.session.flush()
        except IntegrityError as e:
            conflict = self._conflict(obj, e)
            await self.session.rollback()
            logger.warning(
                "Repository: Unique constraint violated on insert",
                model=self.model.__name__,
                error=str(e.orig),
            )
            raise conflict from e
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("insert", e) from e

        logger.info(
            "Repository: Entity created",
            model=self.model.__name__,
            entity_id=obj.id,
        )
        return obj

    async def update_fields(self, obj: Base, changes: Dict[str, Any]) -> Base:
        """
        Apply column changes to a loaded entity and flush them.

        Only the keys present in ``changes`` are touched.
        """
        for field, value in changes.items():
            if not hasattr(self.model, field):
                raise ValueError(f"{self.model.__name__} has no field '{field}'")
            setattr(obj, field, value)

        try:
            await self.session.flush()
        except IntegrityError as e:
            conflict = self._conflict(obj, e)
            await self.session.rollback()
            raise conflict from e
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("update_fields", e, entity_id=obj.id) from e

        logger.info(
            "Repository: Entity updated",
            model=self.model.__name__,
            entity_id=obj.id,
            fields=sorted(changes),
        )
        return obj

    async def soft_delete(self, obj: Base, deleted_at) -> Base:
        """Flag an entity as deleted. The row stays in the table."""
        obj.is_deleted = True
        obj.deleted_at = deleted_at
        obj.updated_at = deleted_at

        try:
            await self.session.flush()
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("soft_delete", e, entity_id=obj.id) from e

        logger.info(
            "Repository: Entity soft deleted",
            model=self.model.__name__,
            entity_id=obj.id,
        )
        return obj

    async def commit(self) -> None:
        """Commit the unit of work."""
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(
                "Repository: Unique constraint violated on commit",
                model=self.model.__name__,
                error=str(e.orig),
            )
            raise ConflictError(self.entity_name, "unique key", str(e.orig)) from e
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("commit", e) from e
