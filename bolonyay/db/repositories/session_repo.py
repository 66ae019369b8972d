"""Repository for persisted conversation sessions."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bolonyay.models.database import ConversationSessionRow


class SessionRepo:
    """Async repository for conversation session snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, row: ConversationSessionRow) -> ConversationSessionRow:
        """Insert a session snapshot and return it."""
        self._session.add(row)
        await self._session.flush()
        return row

    async def get_by_id(self, session_id: str) -> ConversationSessionRow | None:
        """Fetch a session by primary key."""
        stmt = select(ConversationSessionRow).where(ConversationSessionRow.id == session_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_user(self, user_id: str) -> list[ConversationSessionRow]:
        """List a user's sessions, newest first."""
        stmt = (
            select(ConversationSessionRow)
            .where(ConversationSessionRow.user_id == user_id)
            .order_by(ConversationSessionRow.started_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
