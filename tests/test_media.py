import asyncio

import pytest

from candidate_pipeline.errors import MediaCaptureError
from candidate_pipeline.media.audio_io import MAX_BUFFERED_BLOCKS, MicrophoneTrack
from candidate_pipeline.media.camera import fourcc_for
from candidate_pipeline.media.capture import MediaCapture
from candidate_pipeline.media.devices import (
    MIME_CANDIDATES,
    AudioSource,
    MediaStream,
    MediaTrack,
    select_mime_type,
)
from candidate_pipeline.media.recorder import VideoRecorder
from tests.fakes import FakeDevices, FakeTrack, settle


class TestMimeProbe:
    def test_picks_first_supported_in_order(self):
        devices = FakeDevices(supported={"video/webm;codecs=vp9,opus", "video/webm;codecs=h264,opus"})
        assert select_mime_type(devices) == "video/webm;codecs=vp9,opus"
        assert devices.probed == list(MIME_CANDIDATES[:2])

    def test_falls_back_to_plain_webm(self):
        devices = FakeDevices(supported=set())
        assert select_mime_type(devices) == "video/webm"

    @pytest.mark.parametrize(
        "mime,fourcc",
        [
            ("video/webm;codecs=vp8,opus", "VP80"),
            ("video/webm;codecs=vp9,opus", "VP90"),
            ("video/webm", "VP80"),
            ("video/mp4", None),
        ],
    )
    def test_fourcc_mapping(self, mime, fourcc):
        assert fourcc_for(mime) == fourcc


class TestTracks:
    def test_stop_is_idempotent(self):
        track = FakeTrack("audio")
        track.stop()
        track.stop()
        assert track.stopped
        assert track.close_count == 1

    def test_release_stops_every_track_once(self):
        tracks = [FakeTrack("audio"), FakeTrack("video")]
        stream = MediaStream(tracks)
        stream.release()
        stream.release()
        assert not stream.active
        assert [t.close_count for t in tracks] == [1, 1]

    def test_only_readable_audio_tracks_are_sources(self):
        assert isinstance(MicrophoneTrack(), AudioSource)
        assert isinstance(FakeTrack("audio"), AudioSource)
        assert not isinstance(MediaTrack("audio", "silent"), AudioSource)


@pytest.mark.asyncio
class TestMicrophoneBuffering:
    async def _reader(self, track: MicrophoneTrack, received: list[bytes]) -> asyncio.Task:
        async def read() -> None:
            async for chunk in track.chunks():
                received.append(chunk)

        task = asyncio.create_task(read())
        await settle()
        return task

    async def test_blocks_without_reader_are_dropped(self):
        track = MicrophoneTrack()
        for _ in range(MAX_BUFFERED_BLOCKS * 3):
            track._offer(b"\x00\x00")

        received: list[bytes] = []
        reader = await self._reader(track, received)
        track._offer(b"\x01\x00")
        track.stop()
        await asyncio.wait_for(reader, timeout=2)

        assert received == [b"\x01\x00"]

    async def test_slow_reader_keeps_newest_blocks(self):
        track = MicrophoneTrack()
        received: list[bytes] = []
        reader = await self._reader(track, received)

        blocks = [i.to_bytes(2, "little") for i in range(MAX_BUFFERED_BLOCKS * 2)]
        for block in blocks:
            track._offer(block)
        track.stop()
        await asyncio.wait_for(reader, timeout=2)

        assert len(received) < MAX_BUFFERED_BLOCKS
        assert received[-1] == blocks[-1]
        assert received == sorted(received, key=lambda b: int.from_bytes(b, "little"))


@pytest.mark.asyncio
class TestMediaCapture:
    async def test_acquire_releases_previous_stream(self, fake_devices):
        capture = MediaCapture(fake_devices)
        first = await capture.acquire_audio()
        second = await capture.acquire_audio()

        assert not first.active
        assert second.active
        assert capture.current is second

        capture.release()
        assert all(t.close_count == 1 for t in fake_devices.all_tracks())


@pytest.mark.asyncio
class TestVideoRecorder:
    async def test_manual_stop_wins(self, fake_devices):
        capture = MediaCapture(fake_devices)
        recorder = VideoRecorder(capture, max_duration_s=30)
        await recorder.start()

        clip = await recorder.stop()
        again = await recorder.wait()

        assert recorder.stopped_by == "manual"
        assert clip is again
        assert clip.data == b"webm-bytes"
        assert clip.mime_type == "video/webm;codecs=vp8,opus"
        assert fake_devices.encoders[0].stop_count == 1
        assert all(t.stopped for t in fake_devices.all_tracks())

    async def test_auto_stop_at_max_duration(self, fake_devices):
        capture = MediaCapture(fake_devices)
        recorder = VideoRecorder(capture, max_duration_s=0.01)
        await recorder.start()

        clip = await asyncio.wait_for(recorder.wait(), timeout=2)

        assert recorder.stopped_by == "auto"
        assert clip.extension == "webm"
        assert capture.current is None
        # A manual stop after the automatic one returns the same clip.
        assert await recorder.stop() is clip
        assert fake_devices.encoders[0].stop_count == 1

    async def test_empty_recording_raises(self):
        devices = FakeDevices(clip=b"")
        recorder = VideoRecorder(MediaCapture(devices), max_duration_s=30)
        await recorder.start()
        with pytest.raises(MediaCaptureError):
            await recorder.stop()
        assert all(t.stopped for t in devices.all_tracks())

    async def test_device_failure_propagates(self):
        devices = FakeDevices()
        devices.error = MediaCaptureError("no camera")
        recorder = VideoRecorder(MediaCapture(devices))
        with pytest.raises(MediaCaptureError):
            await recorder.start()
