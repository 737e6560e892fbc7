import asyncio
import uuid
from datetime import timedelta

import pytest

from candidate_pipeline.errors import (
    AuthenticationRequiredError,
    InvalidResumeError,
    JobNotFoundError,
    PipelineBusyError,
    PipelineStateError,
    SessionActiveError,
    SessionConfigurationError,
    UploadError,
)
from candidate_pipeline.interview.session import RealtimeSettings, SessionState
from candidate_pipeline.media.capture import MediaCapture
from candidate_pipeline.pipeline.notices import NoticeLevel, RecordingNotifier
from candidate_pipeline.pipeline.orchestrator import ApplicationPipeline
from candidate_pipeline.pipeline.schemas import ApplicationStatus, PipelineStage, ResumeFile, VideoClip
from tests.fakes import FakeDevices, FakeTransport, settle

PDF = ResumeFile(filename="Ada Résumé.pdf", content_type="application/pdf", data=b"%PDF-1.7 resume")
CLIP = VideoClip(data=b"\x1a\x45\xdf\xa3 webm", mime_type="video/webm;codecs=vp8,opus", duration_s=12.5)


class _Harness:
    def __init__(self, pipeline, notifier, transports, devices) -> None:
        self.pipeline = pipeline
        self.notifier = notifier
        self.transports = transports
        self.devices = devices


@pytest.fixture
def harness_factory(store, job, fake_storage, fake_analysis):
    def build(candidate_id, job_id=None, connect_error=None) -> _Harness:
        notifier = RecordingNotifier()
        transports: list[FakeTransport] = []
        devices = FakeDevices()

        def transport_factory():
            transport = FakeTransport(connect_error=connect_error)
            transports.append(transport)
            return transport

        pipeline = ApplicationPipeline(
            job_id=job_id or job.id,
            candidate_id=candidate_id,
            store=store,
            storage=fake_storage,
            analysis=fake_analysis,
            capture=MediaCapture(devices),
            transport_factory=transport_factory,
            realtime=RealtimeSettings(agent_id="agent-1"),
            notifier=notifier,
        )
        return _Harness(pipeline, notifier, transports, devices)

    return build


async def _walk_to_interview(pipeline: ApplicationPipeline) -> None:
    await pipeline.load()
    await pipeline.submit_resume(PDF)
    await pipeline.submit_video(CLIP)
    await pipeline.wait_for_analysis()


@pytest.mark.asyncio
class TestLoad:
    async def test_signed_out_candidate_is_redirected(self, harness_factory):
        h = harness_factory(None)
        with pytest.raises(AuthenticationRequiredError):
            await h.pipeline.load()

    async def test_unknown_job_is_redirected(self, harness_factory, candidate_id):
        h = harness_factory(candidate_id, job_id=uuid.uuid4())
        with pytest.raises(JobNotFoundError):
            await h.pipeline.load()

    async def test_new_candidate_starts_at_resume_without_creating_a_row(self, harness_factory, candidate_id, store, job):
        h = harness_factory(candidate_id)
        assert await h.pipeline.load() is PipelineStage.RESUME
        assert h.pipeline.application is None
        assert await store.list_for_job(job.id) == []

    async def test_operations_require_load(self, harness_factory, candidate_id):
        h = harness_factory(candidate_id)
        with pytest.raises(PipelineStateError):
            await h.pipeline.submit_resume(PDF)


@pytest.mark.asyncio
class TestResumeStage:
    async def test_submit_resume_uploads_and_advances(self, harness_factory, candidate_id, fake_storage, fake_analysis):
        h = harness_factory(candidate_id)
        await h.pipeline.load()

        record = await h.pipeline.submit_resume(PDF)

        assert h.pipeline.stage is PipelineStage.VIDEO
        assert record.status is ApplicationStatus.RESUME_UPLOADED
        assert record.resume_path.startswith(f"{record.id}/resume/")
        assert record.resume_path.endswith("_Ada_Resume.pdf")
        assert fake_storage.objects[record.resume_path] == (PDF.data, "application/pdf")

        await h.pipeline.wait_for_analysis()
        assert fake_analysis.called("analyze-resume")[0]["resume_path"] == record.resume_path
        assert h.pipeline.application.status is ApplicationStatus.RESUME_ANALYZED
        assert h.pipeline.application.key_attributes == {"full_name": "Ada Lovelace"}

    async def test_stage_advances_before_analysis_finishes(self, harness_factory, candidate_id, fake_analysis):
        fake_analysis.resume_gate = asyncio.Event()
        h = harness_factory(candidate_id)
        await h.pipeline.load()

        await h.pipeline.submit_resume(PDF)
        assert h.pipeline.stage is PipelineStage.VIDEO
        assert h.pipeline.application.status is ApplicationStatus.RESUME_UPLOADED

        fake_analysis.resume_gate.set()
        await h.pipeline.aclose()
        assert h.pipeline.application.status is ApplicationStatus.RESUME_ANALYZED

    async def test_failed_upload_leaves_state_unchanged(self, harness_factory, candidate_id, fake_storage, store, job):
        fake_storage.fail_uploads = True
        h = harness_factory(candidate_id)
        await h.pipeline.load()

        with pytest.raises(UploadError):
            await h.pipeline.submit_resume(PDF)

        assert h.pipeline.stage is PipelineStage.RESUME
        row = await store.find_latest(job.id, candidate_id)
        assert row.status is ApplicationStatus.IN_PROGRESS
        assert row.resume_path is None
        assert h.notifier.of_level(NoticeLevel.ERROR)[0].title == "Upload failed"

        # Retrying reuses the same row.
        fake_storage.fail_uploads = False
        record = await h.pipeline.submit_resume(PDF)
        assert record.id == row.id

    async def test_analysis_failure_is_soft(self, harness_factory, candidate_id, fake_analysis):
        fake_analysis.fail.add("analyze-resume")
        h = harness_factory(candidate_id)
        await h.pipeline.load()

        await h.pipeline.submit_resume(PDF)
        await h.pipeline.wait_for_analysis()

        assert h.pipeline.stage is PipelineStage.VIDEO
        assert h.pipeline.application.status is ApplicationStatus.RESUME_UPLOADED
        assert [n.title for n in h.notifier.of_level(NoticeLevel.WARNING)] == ["Analysis unavailable"]

    @pytest.mark.parametrize(
        "resume",
        [
            ResumeFile(filename="cv.pdf", content_type="application/pdf", data=b""),
            ResumeFile(filename="cv.png", content_type="image/png", data=b"png"),
            ResumeFile(filename="cv.pdf", content_type="text/plain", data=b"text"),
        ],
    )
    async def test_invalid_resume_is_rejected_before_any_write(
        self, harness_factory, candidate_id, resume, fake_storage, store, job
    ):
        h = harness_factory(candidate_id)
        await h.pipeline.load()
        with pytest.raises(InvalidResumeError):
            await h.pipeline.submit_resume(resume)
        assert fake_storage.objects == {}
        assert await store.list_for_job(job.id) == []

    async def test_double_submit_creates_one_row(self, harness_factory, candidate_id, store, job):
        h = harness_factory(candidate_id)
        await h.pipeline.load()

        results = await asyncio.gather(
            h.pipeline.submit_resume(PDF),
            h.pipeline.submit_resume(PDF),
            return_exceptions=True,
        )

        assert sum(isinstance(r, PipelineBusyError) for r in results) == 1
        assert len(await store.list_for_job(job.id)) == 1
        await h.pipeline.aclose()


@pytest.mark.asyncio
class TestVideoStage:
    async def test_video_requires_resume(self, harness_factory, candidate_id):
        h = harness_factory(candidate_id)
        await h.pipeline.load()
        with pytest.raises(PipelineStateError):
            await h.pipeline.submit_video(CLIP)

    async def test_submit_video_uploads_and_advances(
        self, harness_factory, candidate_id, fake_storage, fake_analysis, store
    ):
        h = harness_factory(candidate_id)
        await h.pipeline.load()
        await h.pipeline.submit_resume(PDF)

        record = await h.pipeline.submit_video(CLIP)
        await h.pipeline.wait_for_analysis()

        assert h.pipeline.stage is PipelineStage.INTERVIEW
        assert record.status is ApplicationStatus.VIDEO_UPLOADED
        assert record.video_path.startswith(f"{record.id}/video/")
        assert record.video_path.endswith("_introduction.webm")
        assert fake_storage.objects[record.video_path] == (CLIP.data, "video/webm")
        assert fake_analysis.called("analyze-video")[0]["video_path"] == record.video_path
        assert h.pipeline.application.status is ApplicationStatus.VIDEO_ANALYZED

        row = await store.get(record.id)
        assert row.video_analysis == {"transcript": "Hi, I'm Ada.", "analysis": "Confident delivery"}

    async def test_failed_video_upload_keeps_stage(self, harness_factory, candidate_id, fake_storage):
        h = harness_factory(candidate_id)
        await h.pipeline.load()
        await h.pipeline.submit_resume(PDF)

        fake_storage.fail_uploads = True
        with pytest.raises(UploadError):
            await h.pipeline.submit_video(CLIP)
        assert h.pipeline.stage is PipelineStage.VIDEO

        fake_storage.fail_uploads = False
        await h.pipeline.submit_video(CLIP)
        assert h.pipeline.stage is PipelineStage.INTERVIEW
        await h.pipeline.aclose()


@pytest.mark.asyncio
class TestInterviewStage:
    async def test_interview_requires_interview_stage(self, harness_factory, candidate_id):
        h = harness_factory(candidate_id)
        await h.pipeline.load()
        with pytest.raises(PipelineStateError):
            await h.pipeline.start_interview()

    async def test_full_interview_persists_transcript_then_scores(self, harness_factory, candidate_id, fake_analysis, store):
        h = harness_factory(candidate_id)
        await _walk_to_interview(h.pipeline)

        session = await h.pipeline.start_interview()
        transport = h.transports[0]
        assert h.pipeline.application.status is ApplicationStatus.INTERVIEW_STARTED
        assert transport.payload.first_message.startswith("Hello Ada!")
        assert transport.payload.context.resume_analysis == {"summary": "Strong backend profile"}

        transport.push({"type": "transcript", "source": "assistant", "text": "Why this role?"})
        transport.push({"type": "transcript", "source": "human", "text": "I love APIs."})
        await settle()
        await h.pipeline.end_interview()

        assert session.state is SessionState.ENDED
        row = await store.get(h.pipeline.application.id)
        assert row.status is ApplicationStatus.INTERVIEW_COMPLETED
        assert row.conversation_transcript == "AI: Why this role?\nHuman: I love APIs."
        assert row.assessment_score == 82
        assert row.interview_feedback == "Clear, structured answers"
        assert fake_analysis.called("analyze-interview")[0]["transcript"] == row.conversation_transcript
        assert all(t.stopped for t in h.devices.all_tracks())

    async def test_empty_transcript_completes_without_analysis(
        self, harness_factory, candidate_id, fake_analysis, store
    ):
        h = harness_factory(candidate_id)
        await _walk_to_interview(h.pipeline)

        await h.pipeline.start_interview()
        await h.pipeline.end_interview()

        row = await store.get(h.pipeline.application.id)
        assert row.status is ApplicationStatus.INTERVIEW_COMPLETED
        assert row.conversation_transcript is None
        assert fake_analysis.called("analyze-interview") == []

    async def test_interview_analysis_failure_keeps_completion(
        self, harness_factory, candidate_id, fake_analysis, store
    ):
        fake_analysis.fail.add("analyze-interview")
        h = harness_factory(candidate_id)
        await _walk_to_interview(h.pipeline)

        await h.pipeline.start_interview()
        h.transports[0].push({"type": "transcript", "source": "human", "text": "Hello"})
        await settle()
        await h.pipeline.end_interview()

        row = await store.get(h.pipeline.application.id)
        assert row.status is ApplicationStatus.INTERVIEW_COMPLETED
        assert row.conversation_transcript == "Human: Hello"
        assert row.assessment_score is None
        assert "Analysis pending" in [n.title for n in h.notifier.of_level(NoticeLevel.WARNING)]

    async def test_transcript_is_stored_before_analysis_runs(
        self, harness_factory, candidate_id, fake_analysis, store
    ):
        h = harness_factory(candidate_id)
        await _walk_to_interview(h.pipeline)
        seen = {}

        async def read_row(application_id, transcript):
            row = await store.get(application_id)
            seen["transcript"] = row.conversation_transcript
            seen["status"] = row.status

        fake_analysis.before_interview_analysis = read_row
        await h.pipeline.complete_interview(["Human: hi", "AI: hello"])

        assert seen == {"transcript": "Human: hi\nAI: hello", "status": ApplicationStatus.INTERVIEW_COMPLETED}
        row = await store.get(h.pipeline.application.id)
        assert row.assessment_score == 82

    async def test_empty_completion_keeps_prior_transcript(
        self, harness_factory, candidate_id, fake_analysis, store
    ):
        h = harness_factory(candidate_id)
        await _walk_to_interview(h.pipeline)
        await h.pipeline.complete_interview(["Human: first attempt"])

        await h.pipeline.complete_interview([])

        row = await store.get(h.pipeline.application.id)
        assert row.status is ApplicationStatus.INTERVIEW_COMPLETED
        assert row.conversation_transcript == "Human: first attempt"
        assert len(fake_analysis.called("analyze-interview")) == 1

    async def test_older_record_does_not_replace_current_view(self, harness_factory, candidate_id):
        h = harness_factory(candidate_id)
        await _walk_to_interview(h.pipeline)
        current = h.pipeline.application

        stale = current.model_copy(
            update={"video_path": None, "updated_at": current.updated_at - timedelta(seconds=1)}
        )
        h.pipeline._refresh(stale)

        assert h.pipeline.application.video_path == current.video_path

    async def test_second_session_is_rejected_while_active(self, harness_factory, candidate_id):
        h = harness_factory(candidate_id)
        await _walk_to_interview(h.pipeline)

        await h.pipeline.start_interview()
        with pytest.raises(SessionActiveError):
            await h.pipeline.start_interview()
        await h.pipeline.aclose()

    async def test_misconfigured_agent_leaves_status_and_media_clean(self, harness_factory, candidate_id, store):
        h = harness_factory(candidate_id, connect_error=SessionConfigurationError("missing API key"))
        await _walk_to_interview(h.pipeline)

        with pytest.raises(SessionConfigurationError):
            await h.pipeline.start_interview()

        row = await store.get(h.pipeline.application.id)
        assert row.status is ApplicationStatus.VIDEO_ANALYZED
        assert all(t.stopped for t in h.devices.all_tracks())
        assert h.notifier.of_level(NoticeLevel.ERROR)[-1].title == "Interview unavailable"


@pytest.mark.asyncio
class TestResumption:
    async def test_returning_candidate_resumes_at_video(self, harness_factory, candidate_id):
        first = harness_factory(candidate_id)
        await first.pipeline.load()
        await first.pipeline.submit_resume(PDF)
        await first.pipeline.aclose()

        second = harness_factory(candidate_id)
        assert await second.pipeline.load() is PipelineStage.VIDEO

    async def test_returning_candidate_resumes_at_interview(self, harness_factory, candidate_id):
        first = harness_factory(candidate_id)
        await _walk_to_interview(first.pipeline)

        second = harness_factory(candidate_id)
        assert await second.pipeline.load() is PipelineStage.INTERVIEW
        assert second.pipeline.application.id == first.pipeline.application.id
