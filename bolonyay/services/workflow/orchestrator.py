"""Top-level case-filing workflow.

FilingWorkflow is the single object a presentation layer talks to. It
owns one conversation: the history, the recording controller, the
filing state machine and the conversation id, and wires them to the
analysis engine, persistence gateway and exporter.

A voice turn runs as:

    start_voice_recording → stop_voice_recording (manual or ceiling)
        → transcript appended as a user message
        → per-turn reply appended as an assistant message

All mutating calls are expected on one event loop. ``reset()`` is
synchronous; anything still awaiting an external service when it runs
completes into a dropped result.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from bolonyay.core.events import Listener, Observable
from bolonyay.core.exceptions import BoloNyayError, ConfigurationError, InvalidStateError
from bolonyay.core.logging import bind_conversation, clear_conversation
from bolonyay.models.domain import (
    CaseFilingState,
    ConversationMessage,
    MessageRole,
    RecordingState,
    SupportedLanguage,
    new_identifier,
)
from bolonyay.services.analysis.engine import CaseAnalysisEngine
from bolonyay.services.conversation.context import ConversationHistory
from bolonyay.services.filing.parser import CaseAnalysisParser
from bolonyay.services.filing.state_machine import FilingResult, FilingStateMachine
from bolonyay.services.recording.controller import RecordingSessionController
from bolonyay.services.speech.asr_client import BhashiniASRClient

if TYPE_CHECKING:
    from bolonyay.core.config import Settings
    from bolonyay.models.domain import CaseDraft, CaseRecord, ExportArtifact
    from bolonyay.services.analysis.llm_client import LanguageAnalysisClient
    from bolonyay.services.export.exporter import CaseExporter
    from bolonyay.services.persistence.gateway import PersistenceGateway
    from bolonyay.services.speech.asr_client import AudioRecorder, SpeechTranscriptionClient

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


class FilingWorkflow(Observable):
    """Voice conversation → filing questionnaire → persisted case."""

    event_source = "workflow"

    def __init__(
        self,
        settings: Settings,
        speech_client: SpeechTranscriptionClient,
        analysis_client: LanguageAnalysisClient,
        gateway: PersistenceGateway,
        exporter: CaseExporter | None = None,
        *,
        parser: CaseAnalysisParser | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__()
        self._settings = settings
        self._speech = speech_client
        self._gateway = gateway
        self._exporter = exporter
        self._language = SupportedLanguage.resolve(settings.default_language)

        self._history = ConversationHistory()
        self._engine = CaseAnalysisEngine(analysis_client, settings)
        self._recording = RecordingSessionController(
            speech_client,
            self._history,
            settings,
            language=lambda: self._language.value,
            rng=rng,
        )
        self._recording.set_auto_stop_handler(self.stop_voice_recording)
        self._filing = FilingStateMachine(
            self._engine,
            parser or CaseAnalysisParser(min_question_length=settings.min_question_length),
            commit_mode=settings.filing_commit_mode,
        )

        self._conversation_id = new_identifier()
        self._epoch = 0
        self._analyzing_turn = False
        self._last_reply: ConversationMessage | None = None
        self._last_export: ExportArtifact | None = None
        bind_conversation(self._conversation_id)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        recorder: AudioRecorder,
        *,
        exporter: CaseExporter | None = None,
    ) -> FilingWorkflow:
        """Build a workflow over Bhashini ASR, the configured LLM and the SQL store."""
        from bolonyay.db.session import create_engine, create_session_factory
        from bolonyay.services.analysis.llm_client import LLMClient
        from bolonyay.services.export.exporter import TextCaseExporter
        from bolonyay.services.persistence.gateway import PersistenceGateway
        from bolonyay.services.persistence.store import SqlCaseStore

        session_factory = create_session_factory(create_engine(settings))
        gateway = PersistenceGateway(SqlCaseStore(session_factory), settings)
        return cls(
            settings,
            BhashiniASRClient(settings, recorder),
            LLMClient(settings),
            gateway,
            exporter or TextCaseExporter(settings),
        )

    # -- read-only views ---------------------------------------------------

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def language(self) -> SupportedLanguage:
        return self._language

    @property
    def history(self) -> tuple[ConversationMessage, ...]:
        return self._history.messages

    @property
    def recording_state(self) -> RecordingState:
        return self._recording.state

    @property
    def recording_duration(self) -> float:
        return self._recording.duration

    @property
    def audio_level(self) -> float:
        return self._recording.audio_level

    @property
    def is_analyzing(self) -> bool:
        """True while a per-turn reply is awaited."""
        return self._analyzing_turn

    @property
    def error_message(self) -> str | None:
        return self._recording.error_message or self._filing.error_message

    @property
    def filing_state(self) -> CaseFilingState:
        return self._filing.state

    @property
    def draft(self) -> CaseDraft | None:
        return self._filing.draft

    @property
    def case_record(self) -> CaseRecord | None:
        return self._filing.case_record

    @property
    def last_reply(self) -> ConversationMessage | None:
        return self._last_reply

    @property
    def last_export(self) -> ExportArtifact | None:
        return self._last_export

    @property
    def recording(self) -> RecordingSessionController:
        return self._recording

    @property
    def filing(self) -> FilingStateMachine:
        return self._filing

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Receive events from the workflow, the recorder and the filing machine."""
        unsubscribers = [
            super().subscribe(listener),
            self._recording.subscribe(listener),
            self._filing.subscribe(listener),
        ]

        def _unsubscribe() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return _unsubscribe

    def set_language(self, language: str) -> None:
        """Switch the conversation language for subsequent turns."""
        self._language = SupportedLanguage.resolve(language)
        if isinstance(self._speech, BhashiniASRClient):
            self._speech.set_language(self._language.value)
        self._emit("language_changed", language=self._language.value)

    # -- conversation ------------------------------------------------------

    async def start_voice_recording(self) -> bool:
        return await self._recording.start_recording()

    async def stop_voice_recording(self) -> ConversationMessage | None:
        """Finish the recording and answer it.

        Returns the assistant reply, or None when the stop was ignored, a
        step failed, or a reset happened while waiting.
        """
        epoch = self._epoch
        user_message = await self._recording.stop_recording()
        if user_message is None or epoch != self._epoch:
            return None

        self._analyzing_turn = True
        try:
            reply = await self._engine.respond_to_turn(
                self._history.messages,
                user_message.content,
                self._language.value,
            )
        except BoloNyayError as exc:
            if epoch == self._epoch:
                self._recording.fail(f"Failed to analyze case: {exc.message}")
                self._emit("turn_failed", error=exc.message)
            return None
        finally:
            if epoch == self._epoch:
                self._analyzing_turn = False

        if epoch != self._epoch:
            logger.info("stale_turn_reply_dropped")
            return None

        message = self._history.append(
            ConversationMessage(
                role=MessageRole.ASSISTANT,
                content=reply,
                language=self._language.value,
            )
        )
        self._last_reply = message
        logger.info("turn_completed", messages=len(self._history))
        self._emit("turn_completed", message_id=message.id, messages=len(self._history))
        return message

    def continue_conversation(self) -> None:
        self._recording.continue_conversation()

    # -- filing ------------------------------------------------------------

    async def start_case_filing(self) -> bool:
        return await self._filing.start_filing(self._history.messages, self._language.value)

    def submit_case_response(self, text: str, index: int) -> bool:
        return self._filing.submit_response(text, index)

    async def finalize_case(self) -> FilingResult:
        """Persist the completed questionnaire as a case record."""
        history = self._history.messages
        language = self._language.value
        conversation_id = self._conversation_id

        async def _persist(draft: CaseDraft) -> CaseRecord:
            return await self._gateway.persist_filing(draft, history, language, conversation_id)

        result = await self._filing.finalize(_persist)
        if result.persisted and result.case_record is not None:
            logger.info("case_filed", case_number=result.case_record.case_number)
        return result

    async def export_case(self) -> ExportArtifact:
        """Render the filed case. Only valid once the case is filed and saved."""
        record = self._filing.case_record
        if self._filing.state is not CaseFilingState.FILED or record is None:
            msg = "Case must be filed before it can be exported"
            raise InvalidStateError(msg, details={"filing_state": self._filing.state.value})
        if self._exporter is None:
            raise ConfigurationError("No case exporter configured")

        epoch = self._epoch
        artifact = await self._exporter.render(record, self._gateway.store.get_current_user())
        if epoch == self._epoch:
            self._last_export = artifact
            self._emit("case_exported", case_number=artifact.case_number, reference=artifact.reference)
        return artifact

    async def get_user_cases(self) -> list[CaseRecord]:
        return await self._gateway.get_user_cases()

    # -- lifecycle ---------------------------------------------------------

    def reset(self) -> None:
        """Discard the conversation and start a fresh one. Idempotent."""
        dirty = (
            bool(self._history)
            or self._recording.state is not RecordingState.IDLE
            or self._filing.state is not CaseFilingState.NOT_STARTED
            or self._analyzing_turn
        )
        self._epoch += 1
        self._recording.reset()
        self._filing.reset()
        self._history.clear()
        self._analyzing_turn = False
        self._last_reply = None
        self._last_export = None
        if not dirty:
            return

        self._conversation_id = new_identifier()
        bind_conversation(self._conversation_id)
        logger.info("conversation_reset")
        self._emit("reset", conversation_id=self._conversation_id)

    async def aclose(self) -> None:
        """Stop timers and release the speech client's HTTP connection."""
        self._recording.reset()
        clear_conversation()
        if isinstance(self._speech, BhashiniASRClient):
            await self._speech.close()
