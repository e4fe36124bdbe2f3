"""
Base repository with generic CRUD operations.
Repositories only flush; the UnitOfWork owns commit and rollback.
"""
from typing import TypeVar, Generic, Type, Optional, Any

from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository with CRUD operations.
    Inherit and specify the model class.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def add(self, db_obj: ModelType) -> ModelType:
        """Stage a new record and flush so generated keys are populated."""
        self.session.add(db_obj)
        await self.session.flush()
        return db_obj

    async def get(self, id: Any) -> Optional[ModelType]:
        """Get a record by primary key."""
        return await self.session.get(self.model, id)

    async def get_by_field(self, field: str, value: Any) -> Optional[ModelType]:
        """Get a record by a specific field."""
        query = select(self.model).where(getattr(self.model, field) == value)
        result = await self.session.exec(query)
        return result.first()
