import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storycraft.crud.base import CRUDBase
from storycraft.models.core import User as UserModel
from storycraft.schemas.enums import FREE_PLAN

logger = logging.getLogger(__name__)


class CRUDUser(CRUDBase[UserModel]):
    """User records and the plan/expiry cache stored on them."""

    async def get_by_user_id(self, db: AsyncSession, *, user_id: str) -> Optional[UserModel]:
        return await self.get(db, id=user_id)

    async def refresh_projection(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        user_plan: str,
        expires_at: Optional[datetime],
        now: datetime,
    ) -> bool:
        """Mirror the user's subscription onto the user record.

        Writes only when the cached values differ; returns whether it wrote.
        A user row is created when none exists yet.
        """
        user = await self.get_by_user_id(db, user_id=user_id)
        if user is None:
            try:
                await self.add(
                    db,
                    db_obj=UserModel(
                        user_id=user_id,
                        user_plan=user_plan,
                        subscription_expires_at=expires_at,
                        created_at=now,
                        updated_at=now,
                    ),
                )
                logger.info(f"Created user record {user_id} with plan {user_plan}")
                return True
            except IntegrityError:
                await db.rollback()
                user = await self.get_by_user_id(db, user_id=user_id)
                if user is None:
                    raise

        if user.user_plan == user_plan and user.subscription_expires_at == expires_at:
            return False

        await self.update_where(
            db,
            id=user_id,
            conditions=[],
            values={"user_plan": user_plan, "subscription_expires_at": expires_at, "updated_at": now},
        )
        logger.info(f"User {user_id} projection -> {user_plan} until {expires_at.isoformat() if expires_at else None}")
        return True

    async def has_active_plan(self, db: AsyncSession, *, user_id: str, now: datetime) -> bool:
        """Fast paid-plan check for other subsystems (e.g. login rewards).

        Reads only the cached projection; it never grants beyond the cached
        expiry even when the cache has not been repaired yet.
        """
        user = await self.get_by_user_id(db, user_id=user_id)
        if user is None or user.user_plan == FREE_PLAN:
            return False
        return user.subscription_expires_at is not None and user.subscription_expires_at > now


user = CRUDUser(UserModel, key_field="user_id")
