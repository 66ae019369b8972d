"""Tests for the Bhashini ASR client over a mocked HTTP transport."""

import base64
import json

import httpx
import pytest
from tenacity import wait_none

from bolonyay.core.config import Settings
from bolonyay.core.exceptions import ConfigurationError, TranscriptionError
from bolonyay.models.domain import RecordingState
from bolonyay.services.conversation.context import ConversationHistory
from bolonyay.services.recording.controller import RecordingSessionController
from bolonyay.services.speech.asr_client import BhashiniASRClient

PIPELINE_CONFIG = {
    "pipelineResponseConfig": [
        {"config": [{"serviceId": "ai4bharat/conformer-hi", "modelId": "model-123"}]}
    ],
    "pipelineInferenceAPIEndPoint": {
        "inferenceApiKey": {"name": "Authorization", "value": "inference-key"}
    },
}


class StubRecorder:
    def __init__(self, audio: bytes = b"RIFF-fake-wav") -> None:
        self.audio = audio
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> bytes:
        return self.audio


def _transcript_response(text: str) -> dict[str, object]:
    return {"pipelineResponse": [{"output": [{"source": text}]}]}


def _client(
    settings: Settings,
    handler: httpx.MockTransport,
    recorder: StubRecorder | None = None,
    language: str = "hindi",
) -> BhashiniASRClient:
    return BhashiniASRClient(
        settings,
        recorder or StubRecorder(),
        language=language,
        http_client=httpx.AsyncClient(transport=handler),
    )


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(BhashiniASRClient._post.retry, "wait", wait_none())


class TestBhashiniASRClient:
    async def test_two_step_pipeline(self, test_settings: Settings) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if str(request.url) == test_settings.bhashini_config_url:
                return httpx.Response(200, json=PIPELINE_CONFIG)
            return httpx.Response(200, json=_transcript_response("  मेरा   किराया  "))

        client = _client(test_settings, httpx.MockTransport(handler))
        await client.start()

        transcript = await client.stop_and_transcribe()

        assert transcript == "मेरा किराया"
        config_request, inference_request = requests
        assert config_request.headers["ulcaApiKey"] == test_settings.bhashini_api_key
        assert inference_request.headers["Authorization"] == "inference-key"
        body = json.loads(inference_request.content)
        task_config = body["pipelineTasks"][0]["config"]
        assert task_config["serviceId"] == "ai4bharat/conformer-hi"
        assert task_config["language"]["sourceLanguage"] == "hi"
        audio = body["inputData"]["audio"][0]["audioContent"]
        assert base64.b64decode(audio) == b"RIFF-fake-wav"

    async def test_language_change_updates_source_language(self, test_settings: Settings) -> None:
        languages: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            languages.append(body["pipelineTasks"][0]["config"]["language"]["sourceLanguage"])
            if str(request.url) == test_settings.bhashini_config_url:
                return httpx.Response(200, json=PIPELINE_CONFIG)
            return httpx.Response(200, json=_transcript_response("kem cho"))

        client = _client(test_settings, httpx.MockTransport(handler))
        client.set_language("gujarati")

        await client.transcribe(b"audio")

        assert languages == ["gu", "gu"]

    async def test_start_without_api_key(self, test_settings: Settings) -> None:
        settings = test_settings.model_copy(update={"bhashini_api_key": ""})
        client = _client(settings, httpx.MockTransport(lambda r: httpx.Response(200)))

        with pytest.raises(ConfigurationError):
            await client.start()

    async def test_stop_without_start(self, test_settings: Settings) -> None:
        client = _client(test_settings, httpx.MockTransport(lambda r: httpx.Response(200)))

        with pytest.raises(TranscriptionError, match="never started"):
            await client.stop_and_transcribe()

    async def test_empty_audio_is_rejected(self, test_settings: Settings) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200))
        client = _client(test_settings, transport, recorder=StubRecorder(audio=b""))
        await client.start()

        with pytest.raises(TranscriptionError, match="No audio"):
            await client.stop_and_transcribe()

    async def test_http_error_is_transcription_error(self, test_settings: Settings) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(503, text="unavailable"))
        client = _client(test_settings, transport)

        with pytest.raises(TranscriptionError, match="HTTP 503"):
            await client.transcribe(b"audio")

    async def test_malformed_config_is_rejected(self, test_settings: Settings) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"unexpected": True}))
        client = _client(test_settings, transport)

        with pytest.raises(TranscriptionError, match="Invalid config"):
            await client.transcribe(b"audio")

    async def test_missing_transcript_is_rejected(self, test_settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == test_settings.bhashini_config_url:
                return httpx.Response(200, json=PIPELINE_CONFIG)
            return httpx.Response(200, json={"pipelineResponse": []})

        client = _client(test_settings, httpx.MockTransport(handler))

        with pytest.raises(TranscriptionError, match="No transcript"):
            await client.transcribe(b"audio")

    async def test_transport_errors_are_retried(self, test_settings: Settings) -> None:
        attempts = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if str(request.url) == test_settings.bhashini_config_url:
                attempts["count"] += 1
                if attempts["count"] == 1:
                    raise httpx.ConnectError("connection reset", request=request)
                return httpx.Response(200, json=PIPELINE_CONFIG)
            return httpx.Response(200, json=_transcript_response("hello"))

        client = _client(test_settings, httpx.MockTransport(handler))

        assert await client.transcribe(b"audio") == "hello"
        assert attempts["count"] == 2

    async def test_exhausted_transport_retries_are_transcription_errors(
        self, test_settings: Settings
    ) -> None:
        attempts = {"count": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["count"] += 1
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(test_settings, httpx.MockTransport(handler))

        with pytest.raises(TranscriptionError, match="connection error") as exc_info:
            await client.transcribe(b"audio")

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert exc_info.value.details == {"step": "pipeline_config"}
        assert attempts["count"] == 3

    async def test_unreachable_service_leaves_recording_in_error(
        self, test_settings: Settings
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        history = ConversationHistory()
        controller = RecordingSessionController(
            _client(test_settings, httpx.MockTransport(handler)), history, test_settings
        )
        await controller.start_recording()

        assert await controller.stop_recording() is None

        assert controller.state is RecordingState.ERROR
        assert controller.error_message is not None
        assert controller.error_message.startswith("Voice processing failed: Bhashini connection error")
        assert not history
