"""
Realtime agent events and the session transcript.

Transports translate their wire format into plain dicts of the shape below;
the session validates them here and drops anything it does not recognise.
"""

from __future__ import annotations

import base64
import logging
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class Speaker(str, Enum):
    HUMAN = "human"
    ASSISTANT = "assistant"


_LINE_PREFIX = {
    Speaker.HUMAN: "Human",
    Speaker.ASSISTANT: "AI",
}


class TranscriptEvent(BaseModel):
    type: Literal["transcript"] = "transcript"
    source: Speaker
    text: str

    @property
    def line(self) -> str:
        return f"{_LINE_PREFIX[self.source]}: {self.text.strip()}"


class AgentErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str = "Agent reported an error"


class AgentAudioEvent(BaseModel):
    type: Literal["audio"] = "audio"
    audio_base64: str = Field(..., repr=False)

    @property
    def pcm(self) -> bytes:
        return base64.b64decode(self.audio_base64)


AgentEvent = Annotated[
    TranscriptEvent | AgentErrorEvent | AgentAudioEvent,
    Field(discriminator="type"),
]

_agent_event_adapter: TypeAdapter[Any] = TypeAdapter(AgentEvent)


def parse_agent_event(raw: Any) -> TranscriptEvent | AgentErrorEvent | AgentAudioEvent | None:
    """Validate an inbound event. Returns None for unknown or malformed input."""
    try:
        return _agent_event_adapter.validate_python(raw)
    except ValidationError as e:
        kind = raw.get("type") if isinstance(raw, dict) else type(raw).__name__
        logger.debug(f"[SESSION] ignoring event type={kind!r}: {e.error_count()} validation error(s)")
        return None


class TranscriptLog:
    """Ordered interview turns for one session."""

    def __init__(self) -> None:
        self._turns: list[TranscriptEvent] = []

    def append(self, event: TranscriptEvent) -> bool:
        """Record a turn. Blank text is skipped; returns whether it was kept."""
        if not event.text.strip():
            return False
        self._turns.append(event)
        return True

    @property
    def turns(self) -> list[TranscriptEvent]:
        return list(self._turns)

    def lines(self) -> list[str]:
        return [turn.line for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)
