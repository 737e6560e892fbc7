"""Realtime AI interview.

microphone -> agent (ElevenLabs Conversational AI) -> transcript

The session owns the live conversation; the pipeline owns what happens to
the transcript afterwards.
"""

from candidate_pipeline.interview.events import (
    AgentAudioEvent,
    AgentErrorEvent,
    Speaker,
    TranscriptEvent,
    TranscriptLog,
    parse_agent_event,
)
from candidate_pipeline.interview.session import (
    RealtimeInterviewSession,
    RealtimeSettings,
    SessionState,
    build_first_message,
)
from candidate_pipeline.interview.transport import (
    AgentTransport,
    ElevenLabsTransport,
    SessionStartPayload,
)

__all__ = [
    "AgentAudioEvent",
    "AgentErrorEvent",
    "AgentTransport",
    "ElevenLabsTransport",
    "RealtimeInterviewSession",
    "RealtimeSettings",
    "SessionStartPayload",
    "SessionState",
    "Speaker",
    "TranscriptEvent",
    "TranscriptLog",
    "build_first_message",
    "parse_agent_event",
]
