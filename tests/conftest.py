"""Shared test fixtures, fakes and factory functions.

Factories return valid domain objects with sensible defaults. Override
any field via keyword arguments to create specific test scenarios
without repeating boilerplate. The fakes stand in for the speech,
language-model and record-store boundaries.
"""

import asyncio
import os
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from bolonyay.core.config import Settings
from bolonyay.core.exceptions import (
    DuplicateCaseNumberError,
    PersistenceError,
    UserNotFoundError,
)
from bolonyay.db.session import create_engine, create_schema, create_session_factory
from bolonyay.models.domain import (
    CaseDraft,
    CaseRecord,
    CaseStatistics,
    CaseStatus,
    ConversationMessage,
    MessageRole,
    SessionRecord,
    User,
    UserType,
    new_identifier,
    utcnow,
)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

DIVORCE_ANALYSIS = """\
CASE TYPE: Family Law - Divorce
CASE DETAILS: Mutual consent divorce under Section 13B of the Hindu Marriage Act.
QUESTIONS:
- What is your full name?
- When did you marry?
"""


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings with fast timers, a local export directory and no .env lookup."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database_url=TEST_DATABASE_URL,
        recording_tick_seconds=0.01,
        audio_level_tick_seconds=0.01,
        max_recording_seconds=0.1,
        export_directory=str(tmp_path / "exports"),
        bhashini_api_key="test-bhashini-key",
        log_format="console",
        log_level="DEBUG",
    )


# ---------------------------------------------------------------------------
# Database fixtures: in-memory SQLite unless TEST_DATABASE_URL is set
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(test_settings: Settings) -> AsyncIterator[AsyncEngine]:
    engine = create_engine(test_settings)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Per-test session; the in-memory database disappears with the engine."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Domain model factories
# ---------------------------------------------------------------------------


def make_message(**overrides: object) -> ConversationMessage:
    """Build a valid ConversationMessage with sensible defaults."""
    defaults: dict[str, object] = {
        "role": MessageRole.USER,
        "content": "मेरे पति ने मुझे घर से निकाल दिया है",
        "language": "hindi",
    }
    defaults.update(overrides)
    return ConversationMessage(**defaults)  # type: ignore[arg-type]


def make_conversation(turns: int = 2) -> list[ConversationMessage]:
    """Alternating user / assistant messages, ``turns`` pairs long."""
    messages: list[ConversationMessage] = []
    for i in range(turns):
        messages.append(make_message(content=f"User utterance {i + 1}"))
        messages.append(make_message(role=MessageRole.ASSISTANT, content=f"Expert reply {i + 1}"))
    return messages


def make_draft(**overrides: object) -> CaseDraft:
    """Build a valid CaseDraft with sensible defaults."""
    defaults: dict[str, object] = {
        "case_type": "Family Law - Divorce",
        "case_details": "Mutual consent divorce under Section 13B.",
        "filing_questions": ["What is your full name?", "When did you marry?"],
    }
    defaults.update(overrides)
    return CaseDraft(**defaults)  # type: ignore[arg-type]


def make_user(**overrides: object) -> User:
    defaults: dict[str, object] = {
        "name": "Asha Devi",
        "email": "asha@example.in",
        "user_type": UserType.PETITIONER,
        "language": "hindi",
    }
    defaults.update(overrides)
    return User(**defaults)  # type: ignore[arg-type]


def make_case_record(**overrides: object) -> CaseRecord:
    """Build a valid CaseRecord with sensible defaults."""
    now = datetime(2024, 5, 1, 9, 30, tzinfo=UTC)
    defaults: dict[str, object] = {
        "id": new_identifier(),
        "case_number": "BN2024123456",
        "user_id": "user-1",
        "case_type": "Family Law - Divorce",
        "case_details": "Mutual consent divorce under Section 13B.",
        "conversation_summary": "Complete conversation summary:\n\nUser said: help",
        "filing_questions": ["What is your full name?", "When did you marry?"],
        "user_responses": ["Asha Devi", "In 2015"],
        "status": CaseStatus.FILED,
        "created_at": now,
        "updated_at": now,
        "session_id": "session-1",
        "conversation_id": "conversation-1",
        "language": "hindi",
    }
    defaults.update(overrides)
    return CaseRecord(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Fakes for external boundaries
# ---------------------------------------------------------------------------


class FakeSpeechClient:
    """SpeechTranscriptionClient returning a fixed transcript.

    Set ``gate`` to an unset asyncio.Event to hold stop_and_transcribe
    until the test releases it, or ``start_gate`` to hold start.
    """

    def __init__(
        self,
        transcript: str = "My landlord refuses to return my deposit",
        *,
        start_error: Exception | None = None,
        transcribe_error: Exception | None = None,
    ) -> None:
        self.transcript = transcript
        self.start_error = start_error
        self.transcribe_error = transcribe_error
        self.gate: asyncio.Event | None = None
        self.start_gate: asyncio.Event | None = None
        self.start_calls = 0
        self.stop_calls = 0

    async def start(self) -> None:
        self.start_calls += 1
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error is not None:
            raise self.start_error

    async def stop_and_transcribe(self) -> str:
        self.stop_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.transcribe_error is not None:
            raise self.transcribe_error
        return self.transcript


class FakeAnalysisClient:
    """LanguageAnalysisClient replaying queued replies, then a default."""

    def __init__(self, *replies: str, default: str = "Please tell me more about your case.") -> None:
        self.replies = list(replies)
        self.default = default
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[dict[str, object]] = []

    async def analyze(
        self,
        prompt: str,
        language: str,
        *,
        system_prompt: str = "",
        temperature: float = 0.2,
        max_tokens: int = 800,
    ) -> str:
        self.calls.append(
            {
                "prompt": prompt,
                "language": language,
                "system_prompt": system_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else self.default


class InMemoryCaseStore:
    """CaseStore keeping everything in dictionaries."""

    def __init__(self) -> None:
        self.current_user: User | None = None
        self.sessions: dict[str, SessionRecord] = {}
        self.cases: dict[str, CaseRecord] = {}
        self.taken_numbers: set[str] = set()
        self.create_user_error: Exception | None = None
        self.save_case_error: Exception | None = None
        self.calls: list[str] = []

    def get_current_user(self) -> User | None:
        return self.current_user

    async def create_user(
        self,
        *,
        name: str,
        language: str,
        email: str | None = None,
        user_type: UserType = UserType.PETITIONER,
    ) -> User:
        self.calls.append("create_user")
        if self.create_user_error is not None:
            raise self.create_user_error
        self.current_user = User(name=name, email=email, user_type=user_type, language=language)
        return self.current_user

    async def save_conversation_session(
        self,
        messages: Sequence[ConversationMessage],
        language: str,
        conversation_id: str | None,
        case_number: str | None,
    ) -> SessionRecord:
        self.calls.append("save_conversation_session")
        user = self._require_user()
        record = SessionRecord(
            id=new_identifier(),
            user_id=user.id,
            messages=list(messages),
            started_at=messages[0].timestamp if messages else utcnow(),
            ended_at=utcnow(),
            language=language,
            conversation_id=conversation_id,
            total_messages=len(messages),
            case_number=case_number,
        )
        self.sessions[record.id] = record
        return record

    async def save_case(self, **fields: object) -> CaseRecord:
        self.calls.append("save_case")
        if self.save_case_error is not None:
            raise self.save_case_error
        user = self._require_user()
        case_number = str(fields["case_number"])
        if case_number in self.taken_numbers:
            raise DuplicateCaseNumberError(f"Case number {case_number} is already taken")
        now = utcnow()
        record = CaseRecord(
            id=new_identifier(),
            user_id=user.id,
            status=CaseStatus.FILED,
            created_at=now,
            updated_at=now,
            **fields,  # type: ignore[arg-type]
        )
        self.cases[record.id] = record
        self.taken_numbers.add(case_number)
        return record

    async def get_user_cases(self) -> list[CaseRecord]:
        user = self._require_user()
        return [c for c in self.cases.values() if c.user_id == user.id]

    async def get_user_sessions(self) -> list[SessionRecord]:
        user = self._require_user()
        return [s for s in self.sessions.values() if s.user_id == user.id]

    async def update_case_status(self, case_id: str, status: CaseStatus) -> None:
        if case_id not in self.cases:
            raise PersistenceError(f"Case {case_id} not found")
        self.cases[case_id] = self.cases[case_id].model_copy(update={"status": status})

    async def case_number_exists(self, case_number: str) -> bool:
        return case_number in self.taken_numbers

    async def get_case_statistics(self) -> CaseStatistics:
        cases = await self.get_user_cases()
        by_status: dict[str, int] = {}
        for case in cases:
            by_status[case.status.value] = by_status.get(case.status.value, 0) + 1
        return CaseStatistics(total_cases=len(cases), cases_by_status=by_status)

    def _require_user(self) -> User:
        if self.current_user is None:
            raise UserNotFoundError("User not found or not logged in")
        return self.current_user

