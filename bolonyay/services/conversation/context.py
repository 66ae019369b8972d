"""Conversation history and bounded prompt context.

The history is append-only for the life of a conversation; only a full
reset clears it. Context for the next per-turn call is limited to the
most recent messages so prompt size stays flat as the conversation grows.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence

from bolonyay.models.domain import ConversationMessage, MessageRole

CONTEXT_HEADER = "Previous conversation:"
SUMMARY_HEADER = "Complete conversation summary:"
DEFAULT_MAX_MESSAGES = 6

_CONTEXT_LABELS: dict[MessageRole, str] = {
    MessageRole.USER: "User",
    MessageRole.ASSISTANT: "Legal Expert",
}

_SUMMARY_LABELS: dict[MessageRole, str] = {
    MessageRole.USER: "User said",
    MessageRole.ASSISTANT: "Legal Expert responded",
}


class ConversationHistory:
    """Ordered, append-only record of one conversation."""

    def __init__(self) -> None:
        self._messages: list[ConversationMessage] = []

    def append(self, message: ConversationMessage) -> ConversationMessage:
        if self._messages and message.timestamp < self._messages[-1].timestamp:
            message = message.model_copy(update={"timestamp": self._messages[-1].timestamp})
        self._messages.append(message)
        return message

    def clear(self) -> None:
        self._messages.clear()

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ConversationMessage]:
        return iter(tuple(self._messages))

    def __bool__(self) -> bool:
        return bool(self._messages)


class ConversationContextBuilder:
    """Renders history into the text sent with the next model call."""

    def __init__(self, max_messages: int = DEFAULT_MAX_MESSAGES) -> None:
        if max_messages < 1:
            msg = f"max_messages must be at least 1, got {max_messages}"
            raise ValueError(msg)
        self._max_messages = max_messages

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def build_context(self, history: Sequence[ConversationMessage]) -> str:
        """Header plus the last ``max_messages`` messages; empty for no history."""
        if not history:
            return ""
        recent = list(history)[-self._max_messages :]
        lines = [f"{_CONTEXT_LABELS[m.role]}: {m.content}" for m in recent]
        return "\n".join([CONTEXT_HEADER, *lines])

    def build_turn_prompt(self, history: Sequence[ConversationMessage], transcript: str) -> str:
        """Context followed by the latest utterance, or the bare utterance."""
        context = self.build_context(history)
        if not context:
            return transcript
        return f"{context}\n\nLatest message: {transcript}"

    @staticmethod
    def build_full_transcript(history: Sequence[ConversationMessage]) -> str:
        """Whole conversation rendered for filing analysis and the case summary."""
        blocks = [f"{_SUMMARY_LABELS[m.role]}: {m.content}" for m in history]
        return "\n\n".join([SUMMARY_HEADER, *blocks])
