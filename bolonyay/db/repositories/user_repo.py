"""Repository for user accounts.

All database access for the users table is encapsulated here.
Services never execute raw SQL; they call repository methods.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bolonyay.models.database import UserRow


class UserRepo:
    """Async repository for petitioner and advocate accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user: UserRow) -> UserRow:
        """Insert a user and return it with generated fields populated."""
        self._session.add(user)
        await self._session.flush()
        return user

    async def get_by_id(self, user_id: str) -> UserRow | None:
        """Fetch a user by primary key."""
        stmt = select(UserRow).where(UserRow.id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
