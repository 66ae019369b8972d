"""Repository for filed cases.

Handles inserting case records, listing a user's cases, status updates
and the aggregate counts shown in reports.
"""

from collections import Counter
from datetime import UTC, datetime

from sqlalchemy import CursorResult, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bolonyay.models.database import CaseRow


class CaseRepo:
    """Async repository for case records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, case: CaseRow) -> CaseRow:
        """Insert a case and return it with generated fields populated."""
        self._session.add(case)
        await self._session.flush()
        return case

    async def get_by_case_number(self, case_number: str) -> CaseRow | None:
        """Fetch a case by its public case number."""
        stmt = select(CaseRow).where(CaseRow.case_number == case_number)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def case_number_exists(self, case_number: str) -> bool:
        """Check whether a case number has already been issued."""
        stmt = select(func.count(CaseRow.id)).where(CaseRow.case_number == case_number)
        result = await self._session.execute(stmt)
        return result.scalar_one() > 0

    async def list_by_user(self, user_id: str) -> list[CaseRow]:
        """List a user's cases, newest first."""
        stmt = (
            select(CaseRow)
            .where(CaseRow.user_id == user_id)
            .order_by(CaseRow.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def update_status(self, case_id: str, status: str) -> bool:
        """Update a case's status. Returns True if the row existed."""
        stmt = (
            update(CaseRow)
            .where(CaseRow.id == case_id)
            .values(status=status, updated_at=datetime.now(UTC))
        )
        cursor: CursorResult[tuple[()]] = await self._session.execute(stmt)  # type: ignore[assignment]
        return cursor.rowcount > 0

    async def statistics_for_user(self, user_id: str) -> dict[str, Counter[str]]:
        """Count a user's cases by status, type and language."""
        stmt = select(CaseRow.status, CaseRow.case_type, CaseRow.language).where(
            CaseRow.user_id == user_id
        )
        result = await self._session.execute(stmt)

        by_status: Counter[str] = Counter()
        by_type: Counter[str] = Counter()
        by_language: Counter[str] = Counter()
        for status, case_type, language in result.all():
            by_status[status] += 1
            by_type[case_type] += 1
            by_language[language] += 1

        return {"status": by_status, "type": by_type, "language": by_language}
