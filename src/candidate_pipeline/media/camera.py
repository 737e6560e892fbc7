"""Camera capture and clip encoding over OpenCV.

``LocalMediaDevices`` is the hardware-backed ``MediaDevices``: microphone via
sounddevice, camera via ``cv2.VideoCapture``, clips via ``cv2.VideoWriter``.
OpenCV writes the video track only; the microphone track acquired alongside
it is held for the duration of the recording and released with the camera.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import threading
import time
from pathlib import Path

from candidate_pipeline.errors import MediaCaptureError, MediaDeviceUnavailableError
from candidate_pipeline.media.audio_io import MicrophoneTrack
from candidate_pipeline.media.devices import (
    AudioConstraints,
    MediaStream,
    MediaTrack,
    VideoConstraints,
)

logger = logging.getLogger(__name__)

_FOURCC_BY_CODEC = {
    "vp8": "VP80",
    "vp9": "VP90",
    "h264": "H264",
}


def require_cv2():
    try:
        import cv2  # type: ignore

        return cv2
    except ModuleNotFoundError as e:
        raise MediaCaptureError(
            "opencv-python is required for video capture. Install with: pip install -e '.[media]'"
        ) from e


def fourcc_for(mime_type: str) -> str | None:
    """Map a webm MIME type to an OpenCV fourcc, or None when unsupported."""
    container, _, params = mime_type.partition(";")
    if container.strip() != "video/webm":
        return None
    codecs = params.split("=", 1)[1] if "=" in params else ""
    video_codec = codecs.split(",")[0].strip().lower() if codecs else "vp8"
    return _FOURCC_BY_CODEC.get(video_codec)


class CameraTrack(MediaTrack):
    """Live camera track backed by ``cv2.VideoCapture``."""

    def __init__(self, index: int = 0, constraints: VideoConstraints | None = None) -> None:
        super().__init__("video", f"camera:{index}")
        self._index = index
        self._constraints = constraints or VideoConstraints()
        self._capture = None
        self._lock = threading.Lock()

    @property
    def constraints(self) -> VideoConstraints:
        return self._constraints

    async def start(self) -> None:
        cv2 = require_cv2()
        capture = await asyncio.to_thread(cv2.VideoCapture, self._index)
        if not capture.isOpened():
            capture.release()
            self._stopped = True
            raise MediaDeviceUnavailableError(f"Could not open camera {self._index}")
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self._constraints.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self._constraints.height)
        self._capture = capture
        logger.info(f"[MEDIA] camera {self._index} open {self._constraints.width}x{self._constraints.height}")

    def read(self):
        """Read one frame (blocking). Returns None once the track is stopped."""
        with self._lock:
            if self._capture is None:
                return None
            ok, frame = self._capture.read()
        return frame if ok else None

    def _close(self) -> None:
        with self._lock:
            capture = self._capture
            self._capture = None
        if capture is not None:
            capture.release()


class OpenCVEncoder:
    """Encodes camera frames into an in-memory clip."""

    def __init__(self, track: CameraTrack, mime_type: str) -> None:
        self._track = track
        self._mime_type = mime_type
        self._stop_event = threading.Event()
        self._task: asyncio.Task | None = None
        self._writer = None
        self._path: Path | None = None

    async def start(self) -> None:
        cv2 = require_cv2()
        fourcc = fourcc_for(self._mime_type) or "VP80"
        fd, name = tempfile.mkstemp(suffix=".webm")
        os.close(fd)
        self._path = Path(name)
        c = self._track.constraints
        writer = cv2.VideoWriter(str(self._path), cv2.VideoWriter_fourcc(*fourcc), c.fps, (c.width, c.height))
        if not writer.isOpened():
            self._path.unlink(missing_ok=True)
            raise MediaCaptureError(f"No encoder available for {self._mime_type}")
        self._writer = writer
        self._task = asyncio.create_task(asyncio.to_thread(self._run, cv2))

    def _run(self, cv2) -> None:  # noqa: ANN001
        c = self._track.constraints
        interval = 1.0 / c.fps
        while not self._stop_event.is_set():
            started = time.monotonic()
            frame = self._track.read()
            if frame is None:
                break
            if frame.shape[1] != c.width or frame.shape[0] != c.height:
                frame = cv2.resize(frame, (c.width, c.height))
            self._writer.write(frame)
            remaining = interval - (time.monotonic() - started)
            if remaining > 0:
                self._stop_event.wait(remaining)

    async def stop(self) -> bytes:
        self._stop_event.set()
        try:
            if self._task is not None:
                await self._task
        finally:
            if self._writer is not None:
                self._writer.release()
                self._writer = None
        if self._path is None:
            return b""
        try:
            return await asyncio.to_thread(self._path.read_bytes)
        finally:
            self._path.unlink(missing_ok=True)


class LocalMediaDevices:
    """Hardware-backed media devices."""

    def __init__(self, camera_index: int = 0) -> None:
        self._camera_index = camera_index
        self._supported: dict[str, bool] = {}

    async def get_user_media(
        self,
        *,
        audio: AudioConstraints | None = None,
        video: VideoConstraints | None = None,
    ) -> MediaStream:
        tracks: list[MediaTrack] = []
        try:
            if video is not None:
                camera = CameraTrack(self._camera_index, video)
                await camera.start()
                tracks.append(camera)
            if audio is not None:
                microphone = MicrophoneTrack(audio)
                await microphone.start()
                tracks.append(microphone)
        except MediaCaptureError:
            MediaStream(tracks).release()
            raise
        return MediaStream(tracks)

    def is_type_supported(self, mime_type: str) -> bool:
        if mime_type not in self._supported:
            self._supported[mime_type] = self._probe(mime_type)
        return self._supported[mime_type]

    def _probe(self, mime_type: str) -> bool:
        fourcc = fourcc_for(mime_type)
        if fourcc is None:
            return False
        cv2 = require_cv2()
        fd, name = tempfile.mkstemp(suffix=".webm")
        os.close(fd)
        try:
            writer = cv2.VideoWriter(name, cv2.VideoWriter_fourcc(*fourcc), 30.0, (64, 64))
            supported = writer.isOpened()
            writer.release()
            return supported
        finally:
            Path(name).unlink(missing_ok=True)

    def create_encoder(self, stream: MediaStream, mime_type: str) -> OpenCVEncoder:
        cameras = [t for t in stream.video_tracks if isinstance(t, CameraTrack)]
        if not cameras:
            raise MediaCaptureError("Recording needs a camera track")
        return OpenCVEncoder(cameras[0], mime_type)
