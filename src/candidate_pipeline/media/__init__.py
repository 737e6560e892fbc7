"""Media capture.

Device streams for the video introduction and the realtime interview:

camera + microphone -> recorder -> clip
microphone -> realtime session

Hardware-backed classes import sounddevice and OpenCV lazily.
"""

from candidate_pipeline.media.capture import MediaCapture
from candidate_pipeline.media.devices import (
    DEFAULT_MIME_TYPE,
    MIME_CANDIDATES,
    AudioConstraints,
    AudioSource,
    MediaDevices,
    MediaEncoder,
    MediaStream,
    MediaTrack,
    VideoConstraints,
    select_mime_type,
)
from candidate_pipeline.media.recorder import VideoRecorder

__all__ = [
    "DEFAULT_MIME_TYPE",
    "MIME_CANDIDATES",
    "AudioConstraints",
    "AudioSource",
    "MediaCapture",
    "MediaDevices",
    "MediaEncoder",
    "MediaStream",
    "MediaTrack",
    "VideoConstraints",
    "VideoRecorder",
    "select_mime_type",
]
