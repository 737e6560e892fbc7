"""Exclusive ownership of the current device stream."""

from __future__ import annotations

import logging

from candidate_pipeline.media.devices import (
    AudioConstraints,
    MediaDevices,
    MediaStream,
    VideoConstraints,
)

logger = logging.getLogger(__name__)


class MediaCapture:
    """
    Holds at most one live ``MediaStream``.

    Every acquisition releases the previously held stream before opening the
    devices again, so a microphone is never captured twice.
    """

    def __init__(self, devices: MediaDevices) -> None:
        self._devices = devices
        self._stream: MediaStream | None = None

    @property
    def devices(self) -> MediaDevices:
        return self._devices

    @property
    def current(self) -> MediaStream | None:
        return self._stream

    async def acquire(
        self,
        *,
        audio: AudioConstraints | None = None,
        video: VideoConstraints | None = None,
    ) -> MediaStream:
        self.release()
        stream = await self._devices.get_user_media(audio=audio, video=video)
        self._stream = stream
        logger.debug(f"[MEDIA] acquired {len(stream.tracks)} track(s)")
        return stream

    async def acquire_audio(self, constraints: AudioConstraints | None = None) -> MediaStream:
        return await self.acquire(audio=constraints or AudioConstraints())

    def release(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is not None:
            stream.release()
