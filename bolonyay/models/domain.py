"""Core domain models and enumerations.

These are the canonical data shapes for the case-filing workflow. Every
service produces or consumes these types, never raw dicts. Frozen
models are used for value objects that should be immutable once created
(conversation messages, persisted records).
"""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MessageRole(StrEnum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"


class RecordingState(StrEnum):
    """Lifecycle of a single voice recording."""

    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class CaseFilingState(StrEnum):
    """Lifecycle of the filing questionnaire."""

    NOT_STARTED = "not_started"
    ANALYZING = "analyzing"
    QUESTIONS_READY = "questions_ready"
    COLLECTING_INFO = "collecting_info"
    READY_TO_FILE = "ready_to_file"
    FILED = "filed"
    ERROR = "error"


class CaseStatus(StrEnum):
    """Status of a persisted case record."""

    FILED = "filed"
    UNDER_REVIEW = "under_review"
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class UserType(StrEnum):
    """Kind of account that owns cases."""

    PETITIONER = "petitioner"
    ADVOCATE = "advocate"


class SupportedLanguage(StrEnum):
    """Languages the speech and analysis services are configured for."""

    HINDI = "hindi"
    GUJARATI = "gujarati"
    ENGLISH = "english"
    URDU = "urdu"
    MARATHI = "marathi"

    @property
    def code(self) -> str:
        return _LANGUAGE_CODES[self]

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def resolve(cls, value: str) -> "SupportedLanguage":
        """Accept a language name or ISO code; unknown values fall back to English."""
        normalized = value.strip().lower()
        for language in cls:
            if normalized in (language.value, language.code):
                return language
        return cls.ENGLISH


_LANGUAGE_CODES: dict[SupportedLanguage, str] = {
    SupportedLanguage.HINDI: "hi",
    SupportedLanguage.GUJARATI: "gu",
    SupportedLanguage.ENGLISH: "en",
    SupportedLanguage.URDU: "ur",
    SupportedLanguage.MARATHI: "mr",
}


def new_identifier() -> str:
    """Opaque identifier used for messages, conversations and records."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ConversationMessage(BaseModel):
    """One utterance or reply in the legal conversation. Never edited."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_identifier)
    role: MessageRole
    content: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)
    language: str = SupportedLanguage.HINDI.value

    @property
    def is_user(self) -> bool:
        return self.role is MessageRole.USER


# ---------------------------------------------------------------------------
# Filing draft: the only mutable domain object
# ---------------------------------------------------------------------------


class CaseDraft(BaseModel):
    """Structured output of filing analysis plus the user's answers.

    The number of questions is fixed at creation; answers are mutated
    only through ``record_response`` so both lists stay the same length.
    """

    case_type: str = Field(..., min_length=1)
    case_details: str = ""
    filing_questions: list[str] = Field(..., min_length=1)
    user_responses: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _align_responses(self) -> "CaseDraft":
        if not self.user_responses:
            self.user_responses = [""] * len(self.filing_questions)
        if len(self.user_responses) != len(self.filing_questions):
            msg = (
                f"user_responses has {len(self.user_responses)} entries, "
                f"expected {len(self.filing_questions)}"
            )
            raise ValueError(msg)
        return self

    def record_response(self, index: int, text: str) -> bool:
        """Store a trimmed answer. Returns False when the index is out of range."""
        if not 0 <= index < len(self.user_responses):
            return False
        self.user_responses[index] = text.strip()
        return True

    @property
    def is_complete(self) -> bool:
        return all(response.strip() for response in self.user_responses)

    @property
    def unanswered_indexes(self) -> list[int]:
        return [i for i, response in enumerate(self.user_responses) if not response.strip()]


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class User(BaseModel):
    """Account that owns conversation sessions and cases."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_identifier)
    email: str | None = None
    name: str = Field(..., min_length=1)
    user_type: UserType = UserType.PETITIONER
    created_at: datetime = Field(default_factory=utcnow)
    language: str = SupportedLanguage.HINDI.value


class SessionRecord(BaseModel):
    """A persisted copy of one conversation."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    messages: list[ConversationMessage] = Field(default_factory=list)
    started_at: datetime
    ended_at: datetime | None = None
    language: str
    conversation_id: str | None = None
    total_messages: int = Field(default=0, ge=0)
    case_number: str | None = None


class CaseRecord(BaseModel):
    """A filed case, created once per successful finalize."""

    model_config = ConfigDict(frozen=True)

    id: str
    case_number: str = Field(..., min_length=1)
    user_id: str
    case_type: str
    case_details: str
    conversation_summary: str
    filing_questions: list[str]
    user_responses: list[str]
    status: CaseStatus = CaseStatus.FILED
    created_at: datetime
    updated_at: datetime
    session_id: str
    conversation_id: str | None = None
    language: str


class CaseStatistics(BaseModel):
    """Aggregate counts over a user's cases."""

    model_config = ConfigDict(frozen=True)

    total_cases: int = Field(default=0, ge=0)
    cases_by_status: dict[str, int] = Field(default_factory=dict)
    cases_by_type: dict[str, int] = Field(default_factory=dict)
    cases_by_language: dict[str, int] = Field(default_factory=dict)


class ExportArtifact(BaseModel):
    """Reference to a rendered case document."""

    model_config = ConfigDict(frozen=True)

    case_number: str
    reference: str = Field(..., min_length=1, description="Path or URI of the rendered document")
    media_type: str = "text/plain"
    created_at: datetime = Field(default_factory=utcnow)
