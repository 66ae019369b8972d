"""Record store contract and its SQLAlchemy implementation.

The Persistence Gateway only depends on the CaseStore protocol. The
SqlCaseStore keeps the current user in memory (set on create or load)
and opens one transactional session per operation, translating
SQLAlchemy failures into PersistenceError.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from bolonyay.core.exceptions import DuplicateCaseNumberError, PersistenceError, UserNotFoundError
from bolonyay.db.repositories import CaseRepo, SessionRepo, UserRepo
from bolonyay.db.session import get_session
from bolonyay.models.database import CaseRow, ConversationSessionRow, UserRow
from bolonyay.models.domain import (
    CaseRecord,
    CaseStatistics,
    CaseStatus,
    ConversationMessage,
    SessionRecord,
    User,
    UserType,
    utcnow,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


@runtime_checkable
class CaseStore(Protocol):
    """Store-side contract consumed by the Persistence Gateway."""

    def get_current_user(self) -> User | None: ...

    async def create_user(
        self,
        *,
        name: str,
        language: str,
        email: str | None = None,
        user_type: UserType = UserType.PETITIONER,
    ) -> User: ...

    async def save_conversation_session(
        self,
        messages: Sequence[ConversationMessage],
        language: str,
        conversation_id: str | None,
        case_number: str | None,
    ) -> SessionRecord: ...

    async def save_case(
        self,
        *,
        case_number: str,
        case_type: str,
        case_details: str,
        conversation_summary: str,
        filing_questions: Sequence[str],
        user_responses: Sequence[str],
        session_id: str,
        conversation_id: str | None,
        language: str,
    ) -> CaseRecord: ...

    async def get_user_cases(self) -> list[CaseRecord]: ...

    async def get_user_sessions(self) -> list[SessionRecord]: ...

    async def update_case_status(self, case_id: str, status: CaseStatus) -> None: ...

    async def case_number_exists(self, case_number: str) -> bool: ...

    async def get_case_statistics(self) -> CaseStatistics: ...


class SqlCaseStore:
    """CaseStore backed by the async SQLAlchemy repositories."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._current_user: User | None = None

    def get_current_user(self) -> User | None:
        return self._current_user

    def _require_user(self) -> User:
        if self._current_user is None:
            raise UserNotFoundError("User not found or not logged in")
        return self._current_user

    async def load_user(self, user_id: str) -> User | None:
        """Load an existing user and make it current."""
        try:
            async with get_session(self._session_factory) as session:
                row = await UserRepo(session).get_by_id(user_id)
        except SQLAlchemyError as exc:
            msg = f"Failed to load user: {exc}"
            raise PersistenceError(msg) from exc
        if row is None:
            return None
        self._current_user = _user_from_row(row)
        return self._current_user

    async def create_user(
        self,
        *,
        name: str,
        language: str,
        email: str | None = None,
        user_type: UserType = UserType.PETITIONER,
    ) -> User:
        user = User(name=name, email=email, user_type=user_type, language=language)
        row = UserRow(
            id=user.id,
            email=user.email,
            name=user.name,
            user_type=user.user_type.value,
            language=user.language,
            created_at=user.created_at,
        )
        try:
            async with get_session(self._session_factory) as session:
                await UserRepo(session).create(row)
        except SQLAlchemyError as exc:
            msg = f"Failed to create user account: {exc}"
            raise PersistenceError(msg) from exc

        self._current_user = user
        logger.info("user_created", user_id=user.id)
        return user

    async def save_conversation_session(
        self,
        messages: Sequence[ConversationMessage],
        language: str,
        conversation_id: str | None,
        case_number: str | None,
    ) -> SessionRecord:
        user = self._require_user()
        now = utcnow()
        row = ConversationSessionRow(
            user_id=user.id,
            messages=[m.model_dump(mode="json") for m in messages],
            language=language,
            conversation_id=conversation_id,
            total_messages=len(messages),
            case_number=case_number,
            started_at=messages[0].timestamp if messages else now,
            ended_at=now,
        )
        try:
            async with get_session(self._session_factory) as session:
                await SessionRepo(session).create(row)
        except SQLAlchemyError as exc:
            msg = f"Failed to save conversation session: {exc}"
            raise PersistenceError(msg) from exc

        logger.info("session_saved", session_id=row.id, messages=len(messages))
        return _session_from_row(row)

    async def save_case(
        self,
        *,
        case_number: str,
        case_type: str,
        case_details: str,
        conversation_summary: str,
        filing_questions: Sequence[str],
        user_responses: Sequence[str],
        session_id: str,
        conversation_id: str | None,
        language: str,
    ) -> CaseRecord:
        user = self._require_user()
        now = utcnow()
        row = CaseRow(
            case_number=case_number,
            user_id=user.id,
            case_type=case_type,
            case_details=case_details,
            conversation_summary=conversation_summary,
            filing_questions=list(filing_questions),
            user_responses=list(user_responses),
            status=CaseStatus.FILED.value,
            session_id=session_id,
            conversation_id=conversation_id,
            language=language,
            created_at=now,
            updated_at=now,
        )
        try:
            async with get_session(self._session_factory) as session:
                await CaseRepo(session).create(row)
        except IntegrityError as exc:
            msg = f"Case number {case_number} is already taken"
            raise DuplicateCaseNumberError(msg, details={"case_number": case_number}) from exc
        except SQLAlchemyError as exc:
            msg = f"Failed to save case: {exc}"
            raise PersistenceError(msg) from exc

        logger.info("case_saved", case_number=case_number, case_id=row.id)
        return _case_from_row(row)

    async def get_user_cases(self) -> list[CaseRecord]:
        user = self._require_user()
        try:
            async with get_session(self._session_factory) as session:
                rows = await CaseRepo(session).list_by_user(user.id)
        except SQLAlchemyError as exc:
            msg = f"Failed to load cases: {exc}"
            raise PersistenceError(msg) from exc
        return [_case_from_row(row) for row in rows]

    async def get_user_sessions(self) -> list[SessionRecord]:
        user = self._require_user()
        try:
            async with get_session(self._session_factory) as session:
                rows = await SessionRepo(session).list_by_user(user.id)
        except SQLAlchemyError as exc:
            msg = f"Failed to load sessions: {exc}"
            raise PersistenceError(msg) from exc
        return [_session_from_row(row) for row in rows]

    async def update_case_status(self, case_id: str, status: CaseStatus) -> None:
        try:
            async with get_session(self._session_factory) as session:
                found = await CaseRepo(session).update_status(case_id, status.value)
        except SQLAlchemyError as exc:
            msg = f"Failed to update case status: {exc}"
            raise PersistenceError(msg) from exc
        if not found:
            msg = f"Case {case_id} not found"
            raise PersistenceError(msg, details={"case_id": case_id})
        logger.info("case_status_updated", case_id=case_id, status=status.value)

    async def case_number_exists(self, case_number: str) -> bool:
        try:
            async with get_session(self._session_factory) as session:
                return await CaseRepo(session).case_number_exists(case_number)
        except SQLAlchemyError as exc:
            msg = f"Failed to check case number: {exc}"
            raise PersistenceError(msg) from exc

    async def get_case_statistics(self) -> CaseStatistics:
        user = self._require_user()
        try:
            async with get_session(self._session_factory) as session:
                counts = await CaseRepo(session).statistics_for_user(user.id)
        except SQLAlchemyError as exc:
            msg = f"Failed to compute case statistics: {exc}"
            raise PersistenceError(msg) from exc
        return CaseStatistics(
            total_cases=sum(counts["status"].values()),
            cases_by_status=dict(counts["status"]),
            cases_by_type=dict(counts["type"]),
            cases_by_language=dict(counts["language"]),
        )


# ---------------------------------------------------------------------------
# Row → domain mapping
# ---------------------------------------------------------------------------


def _user_from_row(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        user_type=UserType(row.user_type),
        created_at=row.created_at,
        language=row.language,
    )


def _session_from_row(row: ConversationSessionRow) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        user_id=row.user_id,
        messages=[ConversationMessage.model_validate(m) for m in row.messages],
        started_at=row.started_at,
        ended_at=row.ended_at,
        language=row.language,
        conversation_id=row.conversation_id,
        total_messages=row.total_messages,
        case_number=row.case_number,
    )


def _case_from_row(row: CaseRow) -> CaseRecord:
    return CaseRecord(
        id=row.id,
        case_number=row.case_number,
        user_id=row.user_id,
        case_type=row.case_type,
        case_details=row.case_details,
        conversation_summary=row.conversation_summary,
        filing_questions=list(row.filing_questions),
        user_responses=list(row.user_responses),
        status=CaseStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        session_id=row.session_id,
        conversation_id=row.conversation_id,
        language=row.language,
    )
