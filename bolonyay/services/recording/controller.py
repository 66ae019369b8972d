"""Recording session controller.

Owns the recording lifecycle for one conversation:

    idle/completed/error ─start→ recording ─stop (manual or ceiling)→ processing
        ─transcript→ completed          ─failure→ error

While recording, a duration tick auto-stops the capture at the ceiling
and a synthetic audio level is sampled for UI feedback. Each reset bumps
a generation counter; transcriptions that resolve after a reset are
dropped without touching state or history.
"""

from __future__ import annotations

import asyncio
import math
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from bolonyay.core.events import Observable
from bolonyay.core.exceptions import BoloNyayError
from bolonyay.models.domain import ConversationMessage, MessageRole, RecordingState
from bolonyay.services.clock.timer import PeriodicTimer

if TYPE_CHECKING:
    from bolonyay.core.config import Settings
    from bolonyay.services.conversation.context import ConversationHistory
    from bolonyay.services.speech.asr_client import SpeechTranscriptionClient

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

_STARTABLE = frozenset({RecordingState.IDLE, RecordingState.COMPLETED, RecordingState.ERROR})
AUDIO_LEVEL_RANGE = (0.1, 0.9)


class RecordingSessionController(Observable):
    """Drives one speech client through start / stop / transcribe."""

    event_source = "recording"

    def __init__(
        self,
        speech_client: SpeechTranscriptionClient,
        history: ConversationHistory,
        settings: Settings,
        *,
        language: Callable[[], str] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__()
        self._speech = speech_client
        self._history = history
        self._tick_seconds = settings.recording_tick_seconds
        self._max_ticks = max(1, math.ceil(round(settings.max_recording_seconds / self._tick_seconds, 6)))
        self._language = language or (lambda: settings.default_language)
        self._rng = rng or random.Random()

        self._state = RecordingState.IDLE
        self._ticks = 0
        self._audio_level = 0.0
        self._error_message: str | None = None
        self._last_transcript = ""
        self._generation = 0
        self._starting = False
        self._auto_stop_task: asyncio.Task[object] | None = None
        self._auto_stop_handler: Callable[[], Awaitable[object]] = self.stop_recording

        self._duration_timer = PeriodicTimer(
            self._tick_seconds, self._on_duration_tick, name="recording-duration"
        )
        self._level_timer = PeriodicTimer(
            settings.audio_level_tick_seconds, self._on_level_tick, name="audio-level"
        )

    # -- read-only views ---------------------------------------------------

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def duration(self) -> float:
        """Elapsed recording time in seconds."""
        return round(self._ticks * self._tick_seconds, 6)

    @property
    def max_duration(self) -> float:
        return round(self._max_ticks * self._tick_seconds, 6)

    @property
    def audio_level(self) -> float:
        return self._audio_level

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def last_transcript(self) -> str:
        return self._last_transcript

    @property
    def is_starting(self) -> bool:
        """True while the speech client is still opening the capture."""
        return self._starting

    @property
    def timers_running(self) -> bool:
        return self._duration_timer.is_running or self._level_timer.is_running

    @property
    def auto_stop_task(self) -> asyncio.Task[object] | None:
        """Stop triggered by the duration ceiling, if any is in flight."""
        return self._auto_stop_task

    # -- operations --------------------------------------------------------

    def set_auto_stop_handler(self, handler: Callable[[], Awaitable[object]]) -> None:
        """Route ceiling-triggered stops through ``handler`` instead of stop_recording."""
        self._auto_stop_handler = handler

    async def start_recording(self) -> bool:
        """Begin a recording. Ignored while starting, recording or processing."""
        if self._state not in _STARTABLE or self._starting:
            logger.info("start_recording_ignored", state=self._state.value, starting=self._starting)
            return False

        generation = self._generation
        self._starting = True
        self._error_message = None
        self._last_transcript = ""
        self._ticks = 0

        try:
            await self._speech.start()
        except BoloNyayError as exc:
            if generation == self._generation:
                self._fail(f"Failed to start recording: {exc.message}")
            return False
        except Exception as exc:
            logger.exception("speech_start_unexpected_error")
            if generation == self._generation:
                self._fail(f"Failed to start recording: {exc}")
            return False
        finally:
            if generation == self._generation:
                self._starting = False

        if generation != self._generation:
            logger.info("stale_recording_start_dropped")
            return False

        self._set_state(RecordingState.RECORDING)
        self._duration_timer.start()
        self._level_timer.start()
        logger.info("recording_started", max_duration=self.max_duration)
        return True

    async def stop_recording(self) -> ConversationMessage | None:
        """Stop capture, transcribe, and append the user's message.

        Returns the appended message, or None when ignored, failed or stale.
        """
        if self._state is not RecordingState.RECORDING:
            return None

        self._stop_timers()
        generation = self._generation
        self._set_state(RecordingState.PROCESSING, duration=self.duration)
        logger.info("recording_stopped", duration=self.duration)

        try:
            transcript = await self._speech.stop_and_transcribe()
        except BoloNyayError as exc:
            if generation == self._generation:
                self._fail(f"Voice processing failed: {exc.message}")
            return None
        except Exception as exc:
            logger.exception("speech_transcribe_unexpected_error")
            if generation == self._generation:
                self._fail(f"Voice processing failed: {exc}")
            return None

        if generation != self._generation:
            logger.info("stale_transcription_dropped")
            return None

        transcript = transcript.strip()
        if not transcript:
            self._fail("No speech was recognised")
            return None

        self._last_transcript = transcript
        message = self._history.append(
            ConversationMessage(
                role=MessageRole.USER,
                content=transcript,
                language=self._language(),
            )
        )
        self._set_state(RecordingState.COMPLETED, message_id=message.id)
        return message

    def fail(self, message: str) -> None:
        """Record a downstream failure for the current turn."""
        self._stop_timers()
        self._fail(message)

    def continue_conversation(self) -> None:
        """Clear recording-specific state while keeping the history."""
        if self._starting or self._state in (RecordingState.RECORDING, RecordingState.PROCESSING):
            self._generation += 1
        self._starting = False
        self._stop_timers()
        self._ticks = 0
        self._error_message = None
        self._last_transcript = ""
        if self._state is not RecordingState.IDLE:
            self._set_state(RecordingState.IDLE)

    def reset(self) -> None:
        """Stop timers, drop in-flight results and return to idle. Idempotent."""
        self._generation += 1
        self._starting = False
        self._stop_timers()
        self._ticks = 0
        self._error_message = None
        self._last_transcript = ""
        if self._state is not RecordingState.IDLE:
            self._set_state(RecordingState.IDLE)

    # -- timers ------------------------------------------------------------

    def _on_duration_tick(self) -> None:
        if self._state is not RecordingState.RECORDING:
            return
        self._ticks += 1
        self._emit("duration_tick", duration=self.duration)
        if self._ticks >= self._max_ticks:
            logger.info("recording_ceiling_reached", duration=self.duration)
            self._duration_timer.stop()
            self._auto_stop_task = asyncio.get_running_loop().create_task(self._auto_stop_handler())

    def _on_level_tick(self) -> None:
        if self._state is not RecordingState.RECORDING:
            return
        self._audio_level = self._rng.uniform(*AUDIO_LEVEL_RANGE)
        self._emit("audio_level", level=self._audio_level)

    def _stop_timers(self) -> None:
        self._duration_timer.stop()
        self._level_timer.stop()
        self._audio_level = 0.0

    # -- internals ---------------------------------------------------------

    def _set_state(self, state: RecordingState, **payload: object) -> None:
        self._state = state
        self._emit("state_changed", state=state.value, **payload)

    def _fail(self, message: str) -> None:
        self._error_message = message
        logger.error("recording_failed", error=message)
        self._set_state(RecordingState.ERROR, error=message)
