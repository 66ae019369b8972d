"""Case analysis engine.

Two invocation modes over the same LanguageAnalysisClient:

    per-turn reply    bounded context + latest transcript → assistant reply
    filing analysis   full transcript → CASE TYPE / DETAILS / QUESTIONS text

The engine builds prompts and normalises errors; it never touches the
conversation history. Appending replies is the workflow's job.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from bolonyay.core.exceptions import AnalysisError, BoloNyayError
from bolonyay.services.analysis.prompts import build_filing_prompt, build_turn_prompt
from bolonyay.services.conversation.context import ConversationContextBuilder
from bolonyay.utils.text_cleaning import clean_model_reply

if TYPE_CHECKING:
    from bolonyay.core.config import Settings
    from bolonyay.models.domain import ConversationMessage
    from bolonyay.services.analysis.llm_client import LanguageAnalysisClient

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


class CaseAnalysisEngine:
    """Builds prompts for both analysis modes and calls the model."""

    def __init__(
        self,
        client: LanguageAnalysisClient,
        settings: Settings,
        context_builder: ConversationContextBuilder | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._context = context_builder or ConversationContextBuilder(settings.context_max_messages)

    @property
    def context_builder(self) -> ConversationContextBuilder:
        return self._context

    async def respond_to_turn(
        self,
        history: Sequence[ConversationMessage],
        transcript: str,
        language: str,
    ) -> str:
        """Return a cleaned legal reply to the latest utterance."""
        conversation = self._context.build_turn_prompt(history, transcript)
        system_prompt, user_prompt = build_turn_prompt(conversation, language)

        raw = await self._call(
            user_prompt,
            language,
            system_prompt=system_prompt,
            temperature=self._settings.turn_response_temperature,
            max_tokens=self._settings.turn_response_max_tokens,
            purpose="turn_response",
        )
        reply = clean_model_reply(raw)
        if not reply:
            raise AnalysisError("No AI response received")
        return reply

    async def analyze_for_filing(
        self,
        history: Sequence[ConversationMessage],
        language: str,
    ) -> str:
        """Return raw filing analysis text for the case analysis parser."""
        summary = self._context.build_full_transcript(history)
        system_prompt, user_prompt = build_filing_prompt(summary, language)

        return await self._call(
            user_prompt,
            language,
            system_prompt=system_prompt,
            temperature=self._settings.filing_analysis_temperature,
            max_tokens=self._settings.filing_analysis_max_tokens,
            purpose="filing_analysis",
        )

    async def _call(
        self,
        prompt: str,
        language: str,
        *,
        system_prompt: str,
        temperature: float,
        max_tokens: int,
        purpose: str,
    ) -> str:
        try:
            return await self._client.analyze(
                prompt,
                language,
                system_prompt=system_prompt,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except AnalysisError:
            logger.warning("analysis_failed", purpose=purpose, language=language)
            raise
        except BoloNyayError as exc:
            raise AnalysisError(exc.message, details=exc.details) from exc
        except Exception as exc:
            logger.exception("analysis_client_crashed", purpose=purpose)
            msg = f"Language model call failed: {exc}"
            raise AnalysisError(msg) from exc
