"""
Realtime agent transports.

``AgentTransport`` is what the session talks to. ``ElevenLabsTransport``
implements it on top of the ElevenLabs Conversational AI websocket: a signed
URL is fetched over REST with the API key, then the conversation is opened
and the interview context is sent as a per-session override.
"""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx
import websockets
from pydantic import BaseModel, Field

from candidate_pipeline.errors import SessionConfigurationError, SessionConnectionError
from candidate_pipeline.pipeline.schemas import InterviewContext

logger = logging.getLogger(__name__)

_AUTH_STATUSES = (401, 403)

# Wire events with no counterpart in the session.
_IGNORED_EVENTS = {
    "conversation_initiation_metadata",
    "agent_response_correction",
    "internal_tentative_agent_response",
    "interruption",
    "vad_score",
    "client_tool_call",
}


class SessionStartPayload(BaseModel):
    """Everything an agent needs to open an interview conversation."""

    agent_id: str
    context: InterviewContext
    first_message: str
    language: str = "en"
    voice_id: str | None = None
    input_sample_rate: int = Field(default=16000, description="PCM16 rate of the microphone stream")


class AgentTransport(Protocol):
    async def connect(self, payload: SessionStartPayload) -> None: ...

    def events(self) -> AsyncIterator[dict[str, Any]]: ...

    async def send_audio(self, pcm: bytes) -> None: ...

    async def close(self) -> None: ...


class ElevenLabsTransport:
    """ElevenLabs Conversational AI over websockets."""

    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = "https://api.elevenlabs.io",
        timeout: float = 15.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._http_transport = http_transport
        self._ws = None

    async def get_signed_url(self, agent_id: str) -> str:
        """Exchange the API key for a short-lived conversation URL."""
        if not self._api_key:
            raise SessionConfigurationError("ElevenLabs API key is not configured")
        if not agent_id:
            raise SessionConfigurationError("ElevenLabs agent id is not configured")

        async with httpx.AsyncClient(
            base_url=self._api_url,
            timeout=self._timeout,
            transport=self._http_transport,
        ) as client:
            try:
                response = await client.get(
                    "/v1/convai/conversation/get-signed-url",
                    params={"agent_id": agent_id},
                    headers={"xi-api-key": self._api_key},
                )
            except httpx.HTTPError as e:
                raise SessionConnectionError(f"Could not reach ElevenLabs: {e}") from e

        if response.status_code in _AUTH_STATUSES:
            raise SessionConfigurationError(
                f"ElevenLabs rejected the API key (status {response.status_code})"
            )
        if response.is_error:
            raise SessionConnectionError(f"Signed URL request failed with status {response.status_code}")

        try:
            signed_url = response.json().get("signed_url")
        except (ValueError, AttributeError):
            signed_url = None
        if not signed_url:
            raise SessionConnectionError("Signed URL response did not include a URL")
        return signed_url

    async def connect(self, payload: SessionStartPayload) -> None:
        signed_url = await self.get_signed_url(payload.agent_id)
        try:
            self._ws = await websockets.connect(signed_url, open_timeout=self._timeout)
        except websockets.exceptions.InvalidStatus as e:
            status = e.response.status_code
            if status in _AUTH_STATUSES:
                raise SessionConfigurationError(f"Agent handshake rejected (status {status})") from e
            raise SessionConnectionError(f"Agent handshake failed (status {status})") from e
        except (OSError, TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise SessionConnectionError(f"Could not connect to agent: {e}") from e

        await self._send(self._initiation_message(payload))
        logger.info(f"[SESSION] connected to agent {payload.agent_id}")

    @staticmethod
    def _initiation_message(payload: SessionStartPayload) -> dict[str, Any]:
        agent: dict[str, Any] = {
            "prompt": {"prompt": payload.context.to_agent_json()},
            "first_message": payload.first_message,
            "language": payload.language,
        }
        override: dict[str, Any] = {"agent": agent}
        if payload.voice_id:
            override["tts"] = {"voice_id": payload.voice_id}
        return {
            "type": "conversation_initiation_client_data",
            "conversation_config_override": override,
        }

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        if self._ws is None:
            return
        try:
            async for message in self._ws:
                try:
                    data = json.loads(message)
                except (TypeError, ValueError):
                    logger.debug("[SESSION] dropping non-JSON frame")
                    continue
                event = await self._translate(data)
                if event is not None:
                    yield event
        except websockets.ConnectionClosed as e:
            logger.info(f"[SESSION] agent connection closed: {e}")
            if e.rcvd is not None and e.rcvd.code not in (1000, 1001):
                yield {"type": "error", "message": f"Connection closed ({e.rcvd.code}): {e.rcvd.reason}"}

    async def _translate(self, data: Any) -> dict[str, Any] | None:
        if not isinstance(data, dict):
            return data
        kind = data.get("type")

        if kind == "ping":
            event_id = (data.get("ping_event") or {}).get("event_id")
            await self._send({"type": "pong", "event_id": event_id})
            return None
        if kind == "user_transcript":
            text = (data.get("user_transcription_event") or {}).get("user_transcript")
            return {"type": "transcript", "source": "human", "text": text}
        if kind == "agent_response":
            text = (data.get("agent_response_event") or {}).get("agent_response")
            return {"type": "transcript", "source": "assistant", "text": text}
        if kind == "audio":
            audio = (data.get("audio_event") or {}).get("audio_base_64")
            return {"type": "audio", "audio_base64": audio}
        if kind == "error":
            return {"type": "error", "message": str(data.get("message") or data.get("error") or "agent error")}
        if kind in _IGNORED_EVENTS:
            logger.debug(f"[SESSION] skipping {kind}")
            return None
        # Anything else is passed through and rejected by validation.
        return data

    async def send_audio(self, pcm: bytes) -> None:
        if self._ws is None or not pcm:
            return
        await self._send({"user_audio_chunk": base64.b64encode(pcm).decode("ascii")})

    async def _send(self, message: dict[str, Any]) -> None:
        if self._ws is None:
            return
        await self._ws.send(json.dumps(message))

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is not None:
            await ws.close()
