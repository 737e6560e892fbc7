"""Realtime interview session (glue layer).

This module wires:
microphone -> agent transport -> transcript (+ optional agent audio playback)

It does not know about applications or storage; completion is reported
through the ``on_complete`` callback with the flushed transcript lines.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from candidate_pipeline.config import Settings
from candidate_pipeline.errors import (
    MediaCaptureError,
    SessionActiveError,
    SessionConnectionError,
    SessionError,
)
from candidate_pipeline.interview.events import (
    AgentAudioEvent,
    AgentErrorEvent,
    TranscriptEvent,
    TranscriptLog,
    parse_agent_event,
)
from candidate_pipeline.interview.transport import AgentTransport, SessionStartPayload
from candidate_pipeline.media.capture import MediaCapture
from candidate_pipeline.media.devices import AudioConstraints, AudioSource
from candidate_pipeline.pipeline.schemas import InterviewContext

logger = logging.getLogger(__name__)

CompletionHandler = Callable[[list[str]], Awaitable[None]]


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True)
class RealtimeSettings:
    agent_id: str
    language: str = "en"
    voice_id: str | None = None
    input_sample_rate: int = 16000
    output_sample_rate: int = 16000
    play_agent_audio: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "RealtimeSettings":
        return cls(
            agent_id=settings.elevenlabs_agent_id,
            language=settings.interview_language,
            voice_id=settings.agent_voice_id,
            output_sample_rate=settings.agent_output_sample_rate,
        )


class AudioSink(Protocol):
    async def open(self) -> None: ...

    async def play(self, pcm: bytes) -> None: ...

    async def close(self) -> None: ...


def build_first_message(context: InterviewContext) -> str:
    """Greeting the interviewer opens with, personalised when the name is known."""
    closing = (
        "I've reviewed your application and I'd like to ask you some questions about "
        "your experience. Are you ready to begin?"
    )
    if not context.candidate_name:
        return f"Hello! I'm your AI interviewer today. {closing}"

    greeting = f"Hello {context.first_name}! I'm your AI interviewer today."
    if context.pronunciation_note:
        greeting += (
            " Before we begin, I want to make sure I'm pronouncing your name correctly. "
            f"{context.pronunciation_note} Please let me know if I should pronounce it differently."
        )
    return f"{greeting} {closing}"


class RealtimeInterviewSession:
    """
    One live voice conversation with the interview agent.

    Lifecycle is ``idle -> connecting -> active -> ended``. Whatever ends the
    session (peer close, ``end()``, an error event or a transport failure),
    the terminal handling runs once: the microphone is released, the
    transport closed and ``on_complete`` awaited with the transcript lines.
    """

    def __init__(
        self,
        *,
        transport: AgentTransport,
        capture: MediaCapture,
        settings: RealtimeSettings,
        on_complete: CompletionHandler,
        player: AudioSink | None = None,
    ) -> None:
        self._transport = transport
        self._capture = capture
        self._settings = settings
        self._on_complete = on_complete
        self._player = player

        self._state = SessionState.IDLE
        self._transcript = TranscriptLog()
        self._pump_task: asyncio.Task | None = None
        self._mic_task: asyncio.Task | None = None
        self._finishing = False
        self._end_requested = False
        self._ended = asyncio.Event()
        self.end_reason: str | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def transcript(self) -> TranscriptLog:
        return self._transcript

    async def start(self, context: InterviewContext, first_message: str | None = None) -> None:
        """
        Open the microphone and connect to the agent.

        Raises:
            SessionActiveError: The session was already started.
            SessionConfigurationError: Credentials are missing or rejected.
            SessionConnectionError: Any other connect failure.
            MediaCaptureError: The microphone could not be opened.
        """
        if self._state is not SessionState.IDLE:
            raise SessionActiveError(f"Session already {self._state.value}")
        self._state = SessionState.CONNECTING

        payload = SessionStartPayload(
            agent_id=self._settings.agent_id,
            context=context,
            first_message=first_message or build_first_message(context),
            language=self._settings.language,
            voice_id=self._settings.voice_id,
            input_sample_rate=self._settings.input_sample_rate,
        )

        try:
            stream = await self._capture.acquire_audio(
                AudioConstraints(sample_rate=self._settings.input_sample_rate)
            )
            await self._transport.connect(payload)
            if self._player is not None and self._settings.play_agent_audio:
                await self._player.open()
        except (SessionError, MediaCaptureError) as e:
            logger.warning(f"[SESSION] start failed: {e}")
            await self._abort()
            raise
        except Exception as e:
            logger.warning(f"[SESSION] start failed: {e}")
            await self._abort()
            raise SessionConnectionError(f"Could not start interview session: {e}") from e

        if self._end_requested:
            logger.info("[SESSION] ended while connecting")
            await self._abort("cancelled")
            return

        self._state = SessionState.ACTIVE
        logger.info("[SESSION] active")
        self._pump_task = asyncio.create_task(self._pump_events())
        for track in stream.audio_tracks:
            if isinstance(track, AudioSource):
                self._mic_task = asyncio.create_task(self._stream_microphone(track))
                break

    async def end(self) -> None:
        """End the session. Later calls wait for the first one to finish."""
        if self._state is SessionState.IDLE:
            self._state = SessionState.ENDED
            self._ended.set()
            return
        if self._state is SessionState.CONNECTING:
            self._end_requested = True
            return
        await self._finish("local")

    async def wait_ended(self) -> None:
        await self._ended.wait()

    async def _pump_events(self) -> None:
        reason = "peer_closed"
        try:
            async for raw in self._transport.events():
                event = parse_agent_event(raw)
                if event is None:
                    continue
                if isinstance(event, TranscriptEvent):
                    if self._transcript.append(event):
                        logger.info(f"[SESSION] {event.line}")
                elif isinstance(event, AgentAudioEvent):
                    if self._player is not None and self._settings.play_agent_audio:
                        await self._player.play(event.pcm)
                elif isinstance(event, AgentErrorEvent):
                    logger.warning(f"[SESSION] agent error: {event.message}")
                    reason = "agent_error"
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[SESSION] transport failure: {e}")
            reason = "transport_error"

        try:
            await self._finish(reason)
        except Exception:
            logger.exception("[SESSION] completion handler failed")

    async def _stream_microphone(self, track: AudioSource) -> None:
        try:
            async for chunk in track.chunks():
                if not self.active:
                    break
                await self._transport.send_audio(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[SESSION] microphone streaming stopped: {e}")

    async def _abort(self, reason: str = "connect_failed") -> None:
        """Undo a start that never became active. ``on_complete`` is not called."""
        self._finishing = True
        self._state = SessionState.ENDED
        self.end_reason = reason
        self._capture.release()
        await self._close_transport()
        if self._player is not None:
            await self._player.close()
        self._ended.set()

    async def _finish(self, reason: str) -> None:
        if self._finishing:
            await self._ended.wait()
            return
        self._finishing = True
        self._state = SessionState.ENDED
        self.end_reason = reason
        logger.info(f"[SESSION] ending ({reason}) with {len(self._transcript)} turn(s)")

        try:
            self._capture.release()
            current = asyncio.current_task()
            for task in (self._mic_task, self._pump_task):
                if task is not None and task is not current and not task.done():
                    task.cancel()
            await self._close_transport()
            if self._player is not None:
                await self._player.close()
            await self._on_complete(self._transcript.lines())
        finally:
            self._ended.set()

    async def _close_transport(self) -> None:
        try:
            await self._transport.close()
        except Exception as e:
            logger.warning(f"[SESSION] error closing transport: {e}")
