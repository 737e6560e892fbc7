"""Bounded video introduction recorder."""

from __future__ import annotations

import asyncio
import logging

from candidate_pipeline.errors import MediaCaptureError
from candidate_pipeline.media.capture import MediaCapture
from candidate_pipeline.media.devices import (
    AudioConstraints,
    MediaEncoder,
    VideoConstraints,
    select_mime_type,
)
from candidate_pipeline.pipeline.schemas import VideoClip

logger = logging.getLogger(__name__)


class VideoRecorder:
    """
    Records a single clip from camera and microphone.

    The recording stops at ``max_duration_s`` unless ``stop()`` is called
    first. Whichever stop happens first produces the clip; later calls
    return the same clip.
    """

    def __init__(
        self,
        capture: MediaCapture,
        *,
        max_duration_s: float = 60.0,
        audio: AudioConstraints | None = None,
        video: VideoConstraints | None = None,
    ) -> None:
        self._capture = capture
        self._max_duration_s = max_duration_s
        self._audio = audio or AudioConstraints()
        self._video = video or VideoConstraints()
        self._encoder: MediaEncoder | None = None
        self._mime_type: str | None = None
        self._timer: asyncio.Task | None = None
        self._started_at: float | None = None
        self._result: asyncio.Future[VideoClip] | None = None
        self._stopping = False
        self.stopped_by: str | None = None

    @property
    def recording(self) -> bool:
        return self._encoder is not None and not self._stopping

    @property
    def mime_type(self) -> str | None:
        return self._mime_type

    async def start(self) -> None:
        if self._result is not None:
            raise MediaCaptureError("Recorder already used; create a new one to record again")

        loop = asyncio.get_running_loop()
        self._mime_type = select_mime_type(self._capture.devices)
        stream = await self._capture.acquire(audio=self._audio, video=self._video)
        try:
            encoder = self._capture.devices.create_encoder(stream, self._mime_type)
            await encoder.start()
        except BaseException:
            self._capture.release()
            raise

        self._encoder = encoder
        self._result = loop.create_future()
        self._started_at = loop.time()
        self._timer = asyncio.create_task(self._auto_stop())
        logger.info(f"[MEDIA] recording started (max {self._max_duration_s:.0f}s)")

    async def stop(self) -> VideoClip:
        """Stop recording now and return the clip."""
        return await self._finish("manual")

    async def wait(self) -> VideoClip:
        """Wait for the recording to stop and return the clip."""
        if self._result is None:
            raise MediaCaptureError("Recording has not started")
        return await asyncio.shield(self._result)

    async def _auto_stop(self) -> None:
        await asyncio.sleep(self._max_duration_s)
        logger.info("[MEDIA] maximum duration reached, stopping")
        try:
            await self._finish("auto")
        except Exception as e:
            logger.warning(f"[MEDIA] auto-stop failed: {e}")

    async def _finish(self, reason: str) -> VideoClip:
        if self._result is None or self._encoder is None:
            raise MediaCaptureError("Recording has not started")
        if self._stopping:
            return await asyncio.shield(self._result)

        self._stopping = True
        self.stopped_by = reason
        if self._timer is not None and self._timer is not asyncio.current_task():
            self._timer.cancel()

        loop = asyncio.get_running_loop()
        duration = loop.time() - (self._started_at or loop.time())
        try:
            data = await self._encoder.stop()
        except Exception as e:
            self._result.set_exception(e)
            raise
        finally:
            self._capture.release()

        if not data:
            error = MediaCaptureError("Recording produced no data")
            self._result.set_exception(error)
            raise error

        clip = VideoClip(data=data, mime_type=self._mime_type or "video/webm", duration_s=round(duration, 2))
        self._result.set_result(clip)
        logger.info(f"[MEDIA] recording stopped ({reason}) after {clip.duration_s}s, {len(data)} bytes")
        return clip
