"""Media device abstractions.

Tracks, streams and the device protocol the recorder and the realtime session
are written against. Concrete hardware access lives in ``audio_io`` and
``camera``; tests substitute fakes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)

MIME_CANDIDATES: tuple[str, ...] = (
    "video/webm;codecs=vp8,opus",
    "video/webm;codecs=vp9,opus",
    "video/webm;codecs=h264,opus",
    "video/webm",
)
DEFAULT_MIME_TYPE = "video/webm"


@dataclass(frozen=True)
class AudioConstraints:
    sample_rate: int = 16000
    channels: int = 1
    dtype: str = "int16"
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    # Frames per callback block (100 ms at 16 kHz).
    blocksize: int = 1600


@dataclass(frozen=True)
class VideoConstraints:
    width: int = 1280
    height: int = 720
    fps: float = 30.0


class MediaTrack:
    """A single audio or video source. Stopping is idempotent."""

    def __init__(self, kind: str, label: str = "") -> None:
        self.kind = kind
        self.label = label or kind
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        logger.debug(f"[MEDIA] stopping {self.kind} track {self.label}")
        self._close()

    def _close(self) -> None:
        """Release the underlying device. Called at most once."""


class MediaStream:
    """A group of tracks acquired together."""

    def __init__(self, tracks: Sequence[MediaTrack]) -> None:
        self._tracks = list(tracks)

    @property
    def tracks(self) -> list[MediaTrack]:
        return list(self._tracks)

    @property
    def audio_tracks(self) -> list[MediaTrack]:
        return [t for t in self._tracks if t.kind == "audio"]

    @property
    def video_tracks(self) -> list[MediaTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    @property
    def active(self) -> bool:
        return any(not t.stopped for t in self._tracks)

    def release(self) -> None:
        """Stop every track. Safe to call repeatedly."""
        for track in self._tracks:
            track.stop()


@runtime_checkable
class AudioSource(Protocol):
    """An audio track whose PCM16 blocks can be read as they arrive."""

    def chunks(self) -> AsyncIterator[bytes]: ...


class MediaEncoder(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> bytes: ...


class MediaDevices(Protocol):
    async def get_user_media(
        self,
        *,
        audio: AudioConstraints | None = None,
        video: VideoConstraints | None = None,
    ) -> MediaStream: ...

    def is_type_supported(self, mime_type: str) -> bool: ...

    def create_encoder(self, stream: MediaStream, mime_type: str) -> MediaEncoder: ...


def select_mime_type(devices: MediaDevices, candidates: Sequence[str] = MIME_CANDIDATES) -> str:
    """Return the first supported recording type, falling back to plain webm."""
    for mime_type in candidates:
        if devices.is_type_supported(mime_type):
            logger.info(f"[MEDIA] recording as {mime_type}")
            return mime_type
    logger.warning(f"[MEDIA] no probed type supported, falling back to {DEFAULT_MIME_TYPE}")
    return DEFAULT_MIME_TYPE
