"""Speech transcription clients.

The workflow only depends on the SpeechTranscriptionClient protocol:
``start()`` begins capturing, ``stop_and_transcribe()`` ends the capture
and returns recognised text. BhashiniASRClient implements it over the
Bhashini (ULCA / Dhruva) pipeline API:

    pipeline config request → inference request (base64 audio) → transcript

Audio capture itself is platform-specific and injected as an AudioRecorder.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bolonyay.core.exceptions import ConfigurationError, TranscriptionError
from bolonyay.models.domain import SupportedLanguage
from bolonyay.utils.text_cleaning import clean_transcript

if TYPE_CHECKING:
    from bolonyay.core.config import Settings

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


@runtime_checkable
class SpeechTranscriptionClient(Protocol):
    """Contract consumed by the recording controller."""

    async def start(self) -> None: ...

    async def stop_and_transcribe(self) -> str: ...


@runtime_checkable
class AudioRecorder(Protocol):
    """Platform audio capture (16 kHz mono PCM WAV)."""

    async def start(self) -> None: ...

    async def stop(self) -> bytes: ...


class BhashiniASRClient:
    """Async Bhashini ASR client with retry on transport errors."""

    def __init__(
        self,
        settings: Settings,
        recorder: AudioRecorder,
        *,
        language: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._recorder = recorder
        self._language = SupportedLanguage.resolve(language or settings.default_language)
        self._client = http_client or httpx.AsyncClient(timeout=settings.asr_request_timeout)
        self._owns_client = http_client is None
        self._capturing = False

    @property
    def language(self) -> SupportedLanguage:
        return self._language

    def set_language(self, language: str) -> None:
        self._language = SupportedLanguage.resolve(language)

    async def close(self) -> None:
        """Close the underlying HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    async def start(self) -> None:
        """Begin audio capture."""
        if not self._settings.bhashini_api_key:
            raise ConfigurationError("Bhashini API key is not configured")
        try:
            await self._recorder.start()
        except Exception as exc:
            msg = f"Failed to start recording: {exc}"
            raise TranscriptionError(msg) from exc
        self._capturing = True
        logger.debug("asr_capture_started", language=self._language.value)

    async def stop_and_transcribe(self) -> str:
        """Stop capture and return the recognised text."""
        if not self._capturing:
            raise TranscriptionError("Recording was never started")
        self._capturing = False

        try:
            audio = await self._recorder.stop()
        except Exception as exc:
            msg = f"Failed to finish recording: {exc}"
            raise TranscriptionError(msg) from exc
        if not audio:
            raise TranscriptionError("No audio was captured")

        return await self.transcribe(audio)

    async def transcribe(self, audio: bytes) -> str:
        """Run the two-step Bhashini pipeline on raw audio bytes."""
        try:
            config = await self._fetch_pipeline_config()
        except httpx.TransportError as exc:
            msg = f"Bhashini connection error: {exc}"
            raise TranscriptionError(msg, details={"step": "pipeline_config"}) from exc
        service_id, model_id = _extract_service(config)

        body = {
            "pipelineTasks": [
                {
                    "taskType": "asr",
                    "config": {
                        "modelId": model_id,
                        "serviceId": service_id,
                        "language": {"sourceLanguage": self._language.code},
                    },
                }
            ],
            "inputData": {"audio": [{"audioContent": base64.b64encode(audio).decode("ascii")}]},
        }
        try:
            response = await self._post(
                self._settings.bhashini_inference_url,
                body,
                headers=_inference_headers(config, self._settings.bhashini_api_key),
            )
        except httpx.TransportError as exc:
            msg = f"Bhashini connection error: {exc}"
            raise TranscriptionError(msg, details={"step": "inference"}) from exc

        transcript = clean_transcript(_extract_transcript(response))
        if not transcript:
            raise TranscriptionError("No transcript found in response")

        logger.info(
            "asr_transcript_received",
            language=self._language.value,
            characters=len(transcript),
            audio_bytes=len(audio),
        )
        return transcript

    async def _fetch_pipeline_config(self) -> dict[str, Any]:
        body = {
            "pipelineTasks": [
                {
                    "taskType": "asr",
                    "config": {"language": {"sourceLanguage": self._language.code}},
                }
            ],
            "pipelineRequestConfig": {"pipelineId": self._settings.bhashini_pipeline_id},
        }
        headers = {"ulcaApiKey": self._settings.bhashini_api_key}
        if self._settings.bhashini_user_id:
            headers["userID"] = self._settings.bhashini_user_id
        return await self._post(self._settings.bhashini_config_url, body, headers=headers)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _post(
        self,
        url: str,
        body: dict[str, Any],
        *,
        headers: dict[str, str],
    ) -> dict[str, Any]:
        logger.debug("asr_request", url=url)
        response = await self._client.post(
            url,
            json=body,
            headers={"Content-Type": "application/json", **headers},
        )
        if response.status_code != 200:
            logger.warning("asr_request_failed", url=url, status=response.status_code)
            msg = f"ASR request failed with HTTP {response.status_code}"
            raise TranscriptionError(msg, details={"body": response.text[:500]})

        try:
            data = response.json()
        except ValueError as exc:
            raise TranscriptionError("Invalid ASR response") from exc
        if not isinstance(data, dict):
            raise TranscriptionError("Invalid ASR response")
        return data


def _extract_service(config: dict[str, Any]) -> tuple[str, str]:
    """Pull (serviceId, modelId) out of a pipeline config response."""
    try:
        item = config["pipelineResponseConfig"][0]["config"][0]
        return str(item["serviceId"]), str(item["modelId"])
    except (KeyError, IndexError, TypeError) as exc:
        raise TranscriptionError("Invalid config structure") from exc


def _inference_headers(config: dict[str, Any], api_key: str) -> dict[str, str]:
    """Use the inference key returned with the config, else the static key."""
    endpoint = config.get("pipelineInferenceAPIEndPoint") or {}
    key = endpoint.get("inferenceApiKey") or {}
    name = key.get("name") or "Authorization"
    value = key.get("value") or api_key
    return {name: value}


def _extract_transcript(response: dict[str, Any]) -> str:
    try:
        source = response["pipelineResponse"][0]["output"][0]["source"]
    except (KeyError, IndexError, TypeError) as exc:
        raise TranscriptionError("No transcript found in response") from exc
    return str(source or "")
