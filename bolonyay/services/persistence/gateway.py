"""Persistence gateway: case numbers, user bootstrap and filing writes.

Filing is written as two sequential store calls, the conversation
session first and then the case referencing it. The pair is not
transactional; a failed case write leaves the session row in place.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from datetime import date
from typing import TYPE_CHECKING

import structlog

from bolonyay.core.exceptions import (
    BoloNyayError,
    DuplicateCaseNumberError,
    PersistenceError,
)
from bolonyay.services.conversation.context import ConversationContextBuilder

if TYPE_CHECKING:
    from bolonyay.core.config import Settings
    from bolonyay.models.domain import (
        CaseDraft,
        CaseRecord,
        CaseStatistics,
        CaseStatus,
        ConversationMessage,
        SessionRecord,
        User,
    )
    from bolonyay.services.persistence.store import CaseStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

CASE_NUMBER_SUFFIX_RANGE = (100000, 999999)


class PersistenceGateway:
    """Adapts the record store to the filing workflow."""

    def __init__(
        self,
        store: CaseStore,
        settings: Settings,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._prefix = settings.case_number_prefix
        self._max_attempts = max(1, settings.case_number_max_attempts)
        self._default_user_name = settings.default_user_name
        self._rng = rng or random.Random()

    @property
    def store(self) -> CaseStore:
        return self._store

    # -- case numbers ------------------------------------------------------

    def generate_case_number(self, today: date | None = None) -> str:
        """Prefix + four-digit year + six random digits, e.g. ``BN2024123456``."""
        year = (today or date.today()).year
        suffix = self._rng.randint(*CASE_NUMBER_SUFFIX_RANGE)
        return f"{self._prefix}{year}{suffix}"

    async def allocate_case_number(self, today: date | None = None) -> str:
        """Draw case numbers until the store reports one as free."""
        for attempt in range(1, self._max_attempts + 1):
            candidate = self.generate_case_number(today)
            if not await self._store.case_number_exists(candidate):
                return candidate
            logger.warning("case_number_collision", case_number=candidate, attempt=attempt)
        msg = f"Could not allocate a free case number after {self._max_attempts} attempts"
        raise DuplicateCaseNumberError(msg, details={"attempts": self._max_attempts})

    # -- users -------------------------------------------------------------

    async def ensure_user_exists(self, language: str) -> User:
        """Return the current user, creating a default account when absent."""
        current = self._store.get_current_user()
        if current is not None:
            return current
        try:
            user = await self._store.create_user(name=self._default_user_name, language=language)
        except PersistenceError:
            raise
        except BoloNyayError as exc:
            msg = f"Failed to create user account: {exc.message}"
            raise PersistenceError(msg, details=exc.details) from exc
        logger.info("default_user_created", user_id=user.id, language=language)
        return user

    # -- filing ------------------------------------------------------------

    async def persist_filing(
        self,
        draft: CaseDraft,
        history: Sequence[ConversationMessage],
        language: str,
        conversation_id: str | None = None,
    ) -> CaseRecord:
        """Write the session and then the case for a completed draft."""
        await self.ensure_user_exists(language)
        case_number = await self.allocate_case_number()

        session = await self._store.save_conversation_session(
            list(history),
            language,
            conversation_id,
            case_number,
        )
        record = await self._store.save_case(
            case_number=case_number,
            case_type=draft.case_type,
            case_details=draft.case_details,
            conversation_summary=ConversationContextBuilder.build_full_transcript(history),
            filing_questions=list(draft.filing_questions),
            user_responses=list(draft.user_responses),
            session_id=session.id,
            conversation_id=conversation_id,
            language=language,
        )
        logger.info(
            "filing_persisted",
            case_number=record.case_number,
            session_id=session.id,
            case_type=record.case_type,
        )
        return record

    # -- reads and status --------------------------------------------------

    async def get_user_cases(self) -> list[CaseRecord]:
        if self._store.get_current_user() is None:
            return []
        return await self._store.get_user_cases()

    async def get_user_sessions(self) -> list[SessionRecord]:
        if self._store.get_current_user() is None:
            return []
        return await self._store.get_user_sessions()

    async def update_case_status(self, case_id: str, status: CaseStatus) -> None:
        await self._store.update_case_status(case_id, status)

    async def get_case_statistics(self) -> CaseStatistics:
        return await self._store.get_case_statistics()
