"""Filing state machine.

    not_started ─start_filing→ analyzing ─parse ok→ questions_ready
        ─submit→ collecting_info ─all answered→ ready_to_file ─finalize→ filed

Any state moves to ``error`` on a failed model call, failed parse or (in
confirmed commit mode) failed persistence. ``error`` and ``filed`` are
terminal until ``reset()``. A generation counter drops completions that
arrive after a reset.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

import structlog

from bolonyay.core.events import Observable
from bolonyay.core.exceptions import BoloNyayError, CaseParseError
from bolonyay.models.domain import CaseDraft, CaseFilingState

if TYPE_CHECKING:
    from bolonyay.models.domain import CaseRecord, ConversationMessage
    from bolonyay.services.analysis.engine import CaseAnalysisEngine
    from bolonyay.services.filing.parser import CaseAnalysisParser

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

CommitMode = Literal["optimistic", "confirmed"]
PersistCallback = Callable[[CaseDraft], Awaitable["CaseRecord"]]

_ANSWERABLE = frozenset(
    {
        CaseFilingState.QUESTIONS_READY,
        CaseFilingState.COLLECTING_INFO,
        CaseFilingState.READY_TO_FILE,
    }
)


@dataclass(frozen=True)
class FilingResult:
    """Outcome of a finalize call."""

    state: CaseFilingState
    case_record: CaseRecord | None = None
    error_message: str | None = None

    @property
    def persisted(self) -> bool:
        return self.case_record is not None


class FilingStateMachine(Observable):
    """Owns the case draft and the filing lifecycle for one conversation."""

    event_source = "filing"

    def __init__(
        self,
        engine: CaseAnalysisEngine,
        parser: CaseAnalysisParser,
        *,
        commit_mode: CommitMode = "optimistic",
    ) -> None:
        super().__init__()
        self._engine = engine
        self._parser = parser
        self._commit_mode: CommitMode = commit_mode
        self._state = CaseFilingState.NOT_STARTED
        self._draft: CaseDraft | None = None
        self._analysis_text = ""
        self._error_message: str | None = None
        self._case_record: CaseRecord | None = None
        self._generation = 0
        self._persisting = False

    # -- read-only views ---------------------------------------------------

    @property
    def state(self) -> CaseFilingState:
        return self._state

    @property
    def draft(self) -> CaseDraft | None:
        return self._draft

    @property
    def analysis_text(self) -> str:
        return self._analysis_text

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def case_record(self) -> CaseRecord | None:
        return self._case_record

    @property
    def commit_mode(self) -> CommitMode:
        return self._commit_mode

    @property
    def is_persisting(self) -> bool:
        """True while a finalize call is awaiting persistence."""
        return self._persisting

    # -- transitions -------------------------------------------------------

    async def start_filing(
        self,
        history: Sequence[ConversationMessage],
        language: str,
    ) -> bool:
        """Analyse the conversation and build the questionnaire.

        Returns True when questions are ready. Ignored outside not_started
        or with an empty conversation.
        """
        if self._state is not CaseFilingState.NOT_STARTED:
            logger.info("filing_start_ignored", state=self._state.value)
            return False
        if not history:
            logger.info("filing_start_ignored", reason="empty_conversation")
            return False

        generation = self._generation
        self._error_message = None
        self._set_state(CaseFilingState.ANALYZING)

        try:
            analysis = await self._engine.analyze_for_filing(history, language)
        except BoloNyayError as exc:
            if generation == self._generation:
                self._fail(f"Failed to analyze case for filing: {exc.message}")
            return False

        if generation != self._generation:
            logger.info("stale_filing_analysis_dropped")
            return False

        self._analysis_text = analysis
        try:
            draft = self._parser.parse(analysis)
        except CaseParseError as exc:
            self._fail(exc.message)
            return False

        self._draft = draft
        self._set_state(CaseFilingState.QUESTIONS_READY, questions=len(draft.filing_questions))
        return True

    def submit_response(self, text: str, index: int) -> bool:
        """Store an answer and recompute completeness.

        Ignored (returns False) when no questionnaire is active, the draft
        is being persisted, the index is out of range or the answer is
        blank. Blank answers are refused rather than stored because an
        empty answer would count as unanswered and silently pull a
        ready_to_file case back to collecting_info.
        """
        if self._draft is None or self._state not in _ANSWERABLE:
            return False
        if self._persisting:
            logger.info("response_ignored_while_persisting", index=index)
            return False
        if not text.strip():
            logger.debug("blank_response_ignored", index=index)
            return False
        if not self._draft.record_response(index, text):
            logger.debug("response_index_out_of_range", index=index)
            return False

        if self._draft.is_complete:
            self._set_state(CaseFilingState.READY_TO_FILE)
        else:
            self._set_state(
                CaseFilingState.COLLECTING_INFO,
                remaining=len(self._draft.unanswered_indexes),
            )
        return True

    async def finalize(self, persist: PersistCallback) -> FilingResult:
        """Persist the completed draft and mark the case filed.

        In optimistic mode the state becomes ``filed`` before persistence
        and stays there if persistence fails; the failure is reported in
        the result and on ``error_message``. In confirmed mode ``filed`` is
        only entered after persistence succeeds. A second call while the
        first is still persisting is ignored, and the draft is frozen for
        the duration.
        """
        if self._persisting:
            logger.info("finalize_ignored", reason="already_persisting")
            return FilingResult(state=self._state, error_message="Case filing is already in progress")
        if self._state is not CaseFilingState.READY_TO_FILE or self._draft is None:
            logger.info("finalize_ignored", state=self._state.value)
            return FilingResult(state=self._state, error_message="Case is not ready to file")

        generation = self._generation
        draft = self._draft.model_copy(deep=True)
        self._persisting = True
        if self._commit_mode == "optimistic":
            self._set_state(CaseFilingState.FILED)

        try:
            record = await persist(draft)
        except BoloNyayError as exc:
            if generation != self._generation:
                return FilingResult(state=self._state, error_message=exc.message)
            message = f"Failed to save case: {exc.message}"
            if self._commit_mode == "optimistic":
                self._error_message = message
                logger.error("case_persist_failed_after_filed", error=exc.message)
                self._emit("persist_failed", error=message)
            else:
                self._fail(message)
            return FilingResult(state=self._state, error_message=message)
        finally:
            if generation == self._generation:
                self._persisting = False

        if generation != self._generation:
            logger.info("stale_filing_result_dropped", case_number=record.case_number)
            return FilingResult(state=self._state, case_record=record)

        self._case_record = record
        if self._state is not CaseFilingState.FILED:
            self._set_state(CaseFilingState.FILED, case_number=record.case_number)
        else:
            self._emit("case_persisted", case_number=record.case_number)
        return FilingResult(state=self._state, case_record=record)

    def reset(self) -> None:
        """Return to not_started and drop the draft. Idempotent."""
        self._generation += 1
        self._persisting = False
        changed = self._state is not CaseFilingState.NOT_STARTED
        self._state = CaseFilingState.NOT_STARTED
        self._draft = None
        self._analysis_text = ""
        self._error_message = None
        self._case_record = None
        if changed:
            self._emit("state_changed", state=self._state.value)

    # -- internals ---------------------------------------------------------

    def _set_state(self, state: CaseFilingState, **payload: object) -> None:
        previous = self._state
        self._state = state
        if previous is not state:
            logger.info("filing_state_changed", previous=previous.value, state=state.value)
        self._emit("state_changed", state=state.value, **payload)

    def _fail(self, message: str) -> None:
        self._error_message = message
        logger.error("filing_failed", error=message, state=self._state.value)
        self._set_state(CaseFilingState.ERROR, error=message)
