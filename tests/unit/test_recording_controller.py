"""Tests for the recording session controller.

Settings from conftest use a 10 ms tick and a 100 ms ceiling so the
auto-stop path runs in real time within a test.
"""

import asyncio
import random

import pytest

from bolonyay.core.config import Settings
from bolonyay.core.events import WorkflowEvent
from bolonyay.core.exceptions import TranscriptionError
from bolonyay.models.domain import MessageRole, RecordingState
from bolonyay.services.conversation.context import ConversationHistory
from bolonyay.services.recording.controller import RecordingSessionController
from tests.conftest import FakeSpeechClient


def _controller(
    settings: Settings,
    speech: FakeSpeechClient | None = None,
) -> tuple[RecordingSessionController, FakeSpeechClient, ConversationHistory]:
    speech = speech or FakeSpeechClient()
    history = ConversationHistory()
    controller = RecordingSessionController(
        speech,
        history,
        settings,
        language=lambda: "english",
        rng=random.Random(7),
    )
    return controller, speech, history


class TestStartRecording:
    async def test_start_moves_to_recording(self, test_settings: Settings) -> None:
        controller, speech, _ = _controller(test_settings)

        assert await controller.start_recording() is True

        assert controller.state is RecordingState.RECORDING
        assert controller.duration == 0
        assert controller.timers_running
        assert speech.start_calls == 1
        controller.reset()

    async def test_start_while_recording_is_ignored(self, test_settings: Settings) -> None:
        controller, speech, _ = _controller(test_settings)
        await controller.start_recording()

        assert await controller.start_recording() is False
        assert speech.start_calls == 1
        controller.reset()

    async def test_overlapping_starts_open_one_capture(self, test_settings: Settings) -> None:
        controller, speech, _ = _controller(test_settings)
        speech.start_gate = asyncio.Event()

        first = asyncio.create_task(controller.start_recording())
        await asyncio.sleep(0)
        assert controller.is_starting
        second = await controller.start_recording()
        speech.start_gate.set()

        assert await first is True
        assert second is False
        assert speech.start_calls == 1
        assert controller.state is RecordingState.RECORDING
        assert not controller.is_starting
        controller.reset()

    async def test_reset_while_starting_drops_the_start(self, test_settings: Settings) -> None:
        controller, speech, _ = _controller(test_settings)
        speech.start_gate = asyncio.Event()

        task = asyncio.create_task(controller.start_recording())
        await asyncio.sleep(0)
        controller.reset()
        speech.start_gate.set()

        assert await task is False
        assert controller.state is RecordingState.IDLE
        assert not controller.is_starting
        assert not controller.timers_running

    async def test_unexpected_start_error_moves_to_error(self, test_settings: Settings) -> None:
        speech = FakeSpeechClient(start_error=OSError("device unplugged"))
        controller, _, _ = _controller(test_settings, speech)

        assert await controller.start_recording() is False

        assert controller.state is RecordingState.ERROR
        assert controller.error_message == "Failed to start recording: device unplugged"
        assert not controller.is_starting

    async def test_start_failure_moves_to_error(self, test_settings: Settings) -> None:
        speech = FakeSpeechClient(start_error=TranscriptionError("microphone busy"))
        controller, _, _ = _controller(test_settings, speech)

        assert await controller.start_recording() is False

        assert controller.state is RecordingState.ERROR
        assert controller.error_message == "Failed to start recording: microphone busy"
        assert not controller.timers_running

    async def test_can_restart_from_error(self, test_settings: Settings) -> None:
        speech = FakeSpeechClient(start_error=TranscriptionError("microphone busy"))
        controller, _, _ = _controller(test_settings, speech)
        await controller.start_recording()
        speech.start_error = None

        assert await controller.start_recording() is True
        assert controller.error_message is None
        controller.reset()


class TestStopRecording:
    async def test_stop_appends_user_message(self, test_settings: Settings) -> None:
        controller, speech, history = _controller(test_settings)
        await controller.start_recording()

        message = await controller.stop_recording()

        assert message is not None
        assert message.role is MessageRole.USER
        assert message.content == speech.transcript
        assert message.language == "english"
        assert history.messages == (message,)
        assert controller.state is RecordingState.COMPLETED
        assert controller.last_transcript == speech.transcript
        assert not controller.timers_running
        assert controller.audio_level == 0.0

    async def test_stop_when_idle_is_a_noop(self, test_settings: Settings) -> None:
        controller, speech, history = _controller(test_settings)

        assert await controller.stop_recording() is None
        assert speech.stop_calls == 0
        assert controller.state is RecordingState.IDLE
        assert not history

    async def test_transcription_failure_moves_to_error(self, test_settings: Settings) -> None:
        speech = FakeSpeechClient(transcribe_error=TranscriptionError("HTTP 503"))
        controller, _, history = _controller(test_settings, speech)
        await controller.start_recording()

        assert await controller.stop_recording() is None

        assert controller.state is RecordingState.ERROR
        assert controller.error_message == "Voice processing failed: HTTP 503"
        assert not history

    async def test_unexpected_transcription_error_moves_to_error(
        self, test_settings: Settings
    ) -> None:
        speech = FakeSpeechClient(transcribe_error=RuntimeError("decoder crashed"))
        controller, _, history = _controller(test_settings, speech)
        await controller.start_recording()

        assert await controller.stop_recording() is None

        assert controller.state is RecordingState.ERROR
        assert controller.error_message == "Voice processing failed: decoder crashed"
        assert not history

    async def test_blank_transcript_is_a_failure(self, test_settings: Settings) -> None:
        controller, _, history = _controller(test_settings, FakeSpeechClient(transcript="   "))
        await controller.start_recording()

        assert await controller.stop_recording() is None
        assert controller.state is RecordingState.ERROR
        assert not history

    async def test_processing_state_while_transcribing(self, test_settings: Settings) -> None:
        controller, speech, _ = _controller(test_settings)
        speech.gate = asyncio.Event()
        await controller.start_recording()

        task = asyncio.create_task(controller.stop_recording())
        await asyncio.sleep(0)
        assert controller.state is RecordingState.PROCESSING
        assert await controller.start_recording() is False

        speech.gate.set()
        assert await task is not None


class TestAutoStop:
    async def test_auto_stops_at_ceiling(self, test_settings: Settings) -> None:
        controller, speech, history = _controller(test_settings)
        await controller.start_recording()

        await asyncio.wait_for(_wait_for_auto_stop(controller), timeout=2.0)

        assert controller.state is RecordingState.COMPLETED
        assert speech.stop_calls == 1
        assert len(history) == 1
        tick = test_settings.recording_tick_seconds
        assert abs(controller.duration - test_settings.max_recording_seconds) <= tick + 1e-9

    async def test_ceiling_uses_whole_ticks(self, test_settings: Settings) -> None:
        settings = test_settings.model_copy(
            update={"max_recording_seconds": 15.0, "recording_tick_seconds": 0.1}
        )
        controller, _, _ = _controller(settings)

        assert controller.max_duration == 15.0

    async def test_custom_auto_stop_handler(self, test_settings: Settings) -> None:
        controller, _, _ = _controller(test_settings)
        calls: list[str] = []

        async def handler() -> None:
            calls.append("stopped")
            await controller.stop_recording()

        controller.set_auto_stop_handler(handler)
        await controller.start_recording()
        await asyncio.wait_for(_wait_for_auto_stop(controller), timeout=2.0)

        assert calls == ["stopped"]

    async def test_audio_level_is_sampled_in_range(self, test_settings: Settings) -> None:
        controller, _, _ = _controller(test_settings)
        levels: list[float] = []
        controller.subscribe(
            lambda e: levels.append(e.payload["level"]) if e.name == "audio_level" else None
        )
        await controller.start_recording()

        await asyncio.sleep(0.05)
        controller.reset()

        assert levels
        assert all(0.1 <= level <= 0.9 for level in levels)


class TestResetAndContinue:
    async def test_reset_before_transcription_drops_result(self, test_settings: Settings) -> None:
        controller, speech, history = _controller(test_settings)
        speech.gate = asyncio.Event()
        await controller.start_recording()

        task = asyncio.create_task(controller.stop_recording())
        await asyncio.sleep(0)
        controller.reset()
        speech.gate.set()

        assert await task is None
        assert controller.state is RecordingState.IDLE
        assert not history

    async def test_reset_is_idempotent(self, test_settings: Settings) -> None:
        controller, _, _ = _controller(test_settings)
        await controller.start_recording()
        events: list[WorkflowEvent] = []
        controller.subscribe(events.append)

        controller.reset()
        controller.reset()

        assert controller.state is RecordingState.IDLE
        assert not controller.timers_running
        assert [e.name for e in events] == ["state_changed"]

    async def test_continue_keeps_history(self, test_settings: Settings) -> None:
        controller, _, history = _controller(test_settings)
        await controller.start_recording()
        await controller.stop_recording()

        controller.continue_conversation()

        assert controller.state is RecordingState.IDLE
        assert controller.last_transcript == ""
        assert len(history) == 1

    async def test_fail_records_downstream_error(self, test_settings: Settings) -> None:
        controller, _, _ = _controller(test_settings)
        await controller.start_recording()
        await controller.stop_recording()

        controller.fail("Failed to analyze case: timeout")

        assert controller.state is RecordingState.ERROR
        assert controller.error_message == "Failed to analyze case: timeout"


@pytest.mark.parametrize("interval", [0, -0.1])
def test_timer_rejects_non_positive_interval(interval: float) -> None:
    from bolonyay.services.clock.timer import PeriodicTimer

    with pytest.raises(ValueError):
        PeriodicTimer(interval, lambda: None)


async def _wait_for_auto_stop(controller: RecordingSessionController) -> None:
    while controller.auto_stop_task is None:
        await asyncio.sleep(0.005)
    await controller.auto_stop_task
