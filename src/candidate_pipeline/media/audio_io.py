"""Microphone capture and speaker playback.

Plain hardware I/O over sounddevice: it knows nothing about interviews or
agents. Capture callbacks run on the PortAudio thread and hand PCM blocks to
the event loop through ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

import numpy as np

from candidate_pipeline.errors import (
    MediaCaptureError,
    MediaDeviceUnavailableError,
    MediaPermissionError,
)
from candidate_pipeline.media.devices import AudioConstraints, MediaTrack

logger = logging.getLogger(__name__)

_DEVICE_MISSING_HINTS = ("no default input", "no default output", "invalid device", "device unavailable")
_PERMISSION_HINTS = ("permission", "denied", "not authorized")

# About five seconds of 100 ms blocks.
MAX_BUFFERED_BLOCKS = 50


def require_sounddevice():
    try:
        import sounddevice as sd  # type: ignore

        return sd
    except OSError as e:
        raise MediaDeviceUnavailableError(
            "sounddevice could not load PortAudio. "
            "Install it (Debian/Ubuntu: sudo apt-get install portaudio19-dev)."
        ) from e
    except ModuleNotFoundError as e:
        raise MediaCaptureError(
            "sounddevice is required for audio capture. Install with: pip install -e '.[media]'"
        ) from e


def map_device_error(exc: Exception, device: str = "microphone") -> MediaCaptureError:
    """Translate a PortAudio failure into the media error hierarchy."""
    message = str(exc)
    lowered = message.lower()
    if any(hint in lowered for hint in _PERMISSION_HINTS):
        return MediaPermissionError(f"Please allow camera/microphone access ({device}: {message})")
    if any(hint in lowered for hint in _DEVICE_MISSING_HINTS):
        return MediaDeviceUnavailableError(f"No {device} available: {message}")
    return MediaCaptureError(f"Could not open {device}: {message}")


class MicrophoneTrack(MediaTrack):
    """Live microphone track streaming PCM16 blocks."""

    def __init__(self, constraints: AudioConstraints | None = None) -> None:
        super().__init__("audio", "microphone")
        self._constraints = constraints or AudioConstraints()
        self._stream = None
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=MAX_BUFFERED_BLOCKS)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._consumers = 0

    @property
    def constraints(self) -> AudioConstraints:
        return self._constraints

    async def start(self) -> None:
        sd = require_sounddevice()
        self._loop = asyncio.get_running_loop()
        c = self._constraints

        def callback(indata, frames, time, status):  # noqa: ANN001
            if status:
                logger.debug(f"[MEDIA] input status: {status}")
            self._loop.call_soon_threadsafe(self._offer, bytes(indata))

        try:
            self._stream = sd.RawInputStream(
                samplerate=c.sample_rate,
                channels=c.channels,
                dtype=c.dtype,
                blocksize=c.blocksize,
                callback=callback,
            )
            await asyncio.to_thread(self._stream.start)
        except sd.PortAudioError as e:
            self._stream = None
            self._stopped = True
            raise map_device_error(e) from e
        logger.info(f"[MEDIA] microphone open sr={c.sample_rate} ch={c.channels}")

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield PCM16 blocks until the track is stopped."""
        self._consumers += 1
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    return
                yield chunk
        finally:
            self._consumers -= 1

    def _offer(self, chunk: bytes | None) -> None:
        # Blocks nobody reads are dropped; a slow reader loses the oldest ones.
        if chunk is not None and (self._stopped or self._consumers == 0):
            return
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(chunk)

    def _close(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is not None:
            stream.stop()
            stream.close()
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._offer, None)
        else:
            self._offer(None)


class AudioPlayer:
    """Streams PCM16 audio to the default output device."""

    def __init__(self, sample_rate: int = 16000, channels: int = 1) -> None:
        self._sample_rate = sample_rate
        self._channels = channels
        self._stream = None

    async def open(self) -> None:
        sd = require_sounddevice()
        try:
            self._stream = sd.RawOutputStream(
                samplerate=self._sample_rate,
                channels=self._channels,
                dtype="int16",
            )
            await asyncio.to_thread(self._stream.start)
        except sd.PortAudioError as e:
            self._stream = None
            raise map_device_error(e, device="speaker") from e

    async def play(self, pcm: bytes) -> None:
        if self._stream is None or not pcm:
            return
        # Drop a trailing odd byte so the buffer stays whole int16 samples.
        samples = np.frombuffer(pcm[: len(pcm) - len(pcm) % 2], dtype=np.int16)
        await asyncio.to_thread(self._stream.write, samples.tobytes())

    async def close(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is not None:
            await asyncio.to_thread(stream.stop)
            await asyncio.to_thread(stream.close)
