"""
Shared async CRUD plumbing.
Subclasses add their own queries; writes go through save() so a subclass
can validate before anything reaches the database.
"""
from __future__ import annotations

import uuid
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from blogfiles.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    Type parameters:
        ModelType: ORM model handled by this class.
        CreateSchemaType: Pydantic schema accepted when creating.
        UpdateSchemaType: Pydantic schema accepted for partial updates.
    """

    def __init__(self, model: type[ModelType]) -> None:
        self.model = model

    async def get(self, db: AsyncSession, id: uuid.UUID) -> ModelType | None:
        return await db.get(self.model, id)

    async def save(self, db: AsyncSession, db_obj: ModelType) -> ModelType:
        """Stage the object and flush; the caller owns the transaction."""
        db.add(db_obj)
        await db.flush()
        return db_obj

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: ModelType,
        obj_in: UpdateSchemaType | dict[str, Any],
    ) -> ModelType:
        """Apply a partial update: a dict as given, a schema's explicitly set fields."""
        changes = obj_in if isinstance(obj_in, dict) else obj_in.model_dump(exclude_unset=True)
        for field, value in changes.items():
            setattr(db_obj, field, value)
        return await self.save(db, db_obj)
