"""SQLAlchemy 2.0 ORM models for the record store.

Three tables mirror the store-side documents: users, conversation
sessions (messages embedded as JSON) and cases. Domain enums are stored
as VARCHAR via their StrEnum string values. Case numbers carry a unique
constraint so the store rejects collisions.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from bolonyay.models.domain import new_identifier, utcnow


class Base(DeclarativeBase):
    """Shared base for all ORM models."""


# ---------------------------------------------------------------------------
# users
# ---------------------------------------------------------------------------


class UserRow(Base):
    """Petitioner or advocate account."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_identifier)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    user_type: Mapped[str] = mapped_column(String(20), nullable=False, default="petitioner")
    language: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    cases: Mapped[list["CaseRow"]] = relationship(back_populates="user")

    def __repr__(self) -> str:
        return f"<UserRow id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# conversation_sessions
# ---------------------------------------------------------------------------


class ConversationSessionRow(Base):
    """Snapshot of a whole conversation, written before its case."""

    __tablename__ = "conversation_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_identifier)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    messages: Mapped[list[dict[str, str]]] = mapped_column(JSON, nullable=False)
    language: Mapped[str] = mapped_column(String(20), nullable=False)
    conversation_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    total_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    case_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ConversationSessionRow id={self.id} messages={self.total_messages}>"


# ---------------------------------------------------------------------------
# cases
# ---------------------------------------------------------------------------


class CaseRow(Base):
    """A filed case with its questionnaire and answers."""

    __tablename__ = "cases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_identifier)
    case_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    case_type: Mapped[str] = mapped_column(Text, nullable=False)
    case_details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    conversation_summary: Mapped[str] = mapped_column(Text, nullable=False)
    filing_questions: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    user_responses: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="filed", index=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("conversation_sessions.id"), nullable=False
    )
    conversation_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    language: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    user: Mapped["UserRow"] = relationship(back_populates="cases")

    __table_args__ = (Index("ix_cases_user_created", "user_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<CaseRow id={self.id} number={self.case_number!r} status={self.status!r}>"
