from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storycraft.models.base import Base

SQLModelType = TypeVar("SQLModelType", bound=Base)


class CRUDBase(Generic[SQLModelType]):
    def __init__(self, sql_model: Type[SQLModelType], key_field: str):
        """
        Store object with default methods over a single table.
        **Parameters**
        * `sql_model`: A SQLAlchemy model class
        * `key_field`: Name of the primary-key column

        Every mutating method commits its own statement; the billing flow
        never spans a transaction across stores.
        """
        self.sql_model = sql_model
        self.key_field = key_field

    @property
    def key_column(self):
        return getattr(self.sql_model, self.key_field)

    async def get(self, db: AsyncSession, *, id: str) -> Optional[SQLModelType]:
        """Get a single object by primary key, bypassing the identity map cache."""
        stmt = (
            select(self.sql_model)
            .where(self.key_column == id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def add(self, db: AsyncSession, *, db_obj: SQLModelType) -> SQLModelType:
        """Insert a new object."""
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update_where(self, db: AsyncSession, *, id: str, conditions: List[Any], values: dict) -> bool:
        """Conditionally update one row; return whether a row matched.

        This is the compare-and-set used for state transitions: concurrent
        writers racing on the same row see exactly one winner.
        """
        stmt = (
            update(self.sql_model)
            .where(self.key_column == id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()
        return result.rowcount == 1
