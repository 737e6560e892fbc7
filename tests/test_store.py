import uuid

import pytest

from candidate_pipeline.errors import ApplicationNotFoundError, StatusRegressionError
from candidate_pipeline.pipeline.schemas import ApplicationStatus


@pytest.mark.asyncio
class TestApplicationStore:
    async def test_get_or_create_reuses_existing_row(self, store, job, candidate_id):
        first, created = await store.get_or_create(job.id, candidate_id)
        second, created_again = await store.get_or_create(job.id, candidate_id)

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert first.status is ApplicationStatus.IN_PROGRESS
        assert len(await store.list_for_job(job.id)) == 1

    async def test_pipeline_writes_advance_status_and_paths(self, store, job, candidate_id):
        app, _ = await store.get_or_create(job.id, candidate_id)

        app = await store.mark_resume_uploaded(app.id, f"{app.id}/resume/1_cv.pdf")
        assert app.status is ApplicationStatus.RESUME_UPLOADED
        assert app.resume_path.endswith("1_cv.pdf")

        app = await store.mark_video_uploaded(app.id, f"{app.id}/video/2_introduction.webm")
        assert app.status is ApplicationStatus.VIDEO_UPLOADED
        assert app.video_path.endswith("introduction.webm")

        app = await store.mark_interview_started(app.id)
        app = await store.mark_interview_completed(app.id, "Human: hi\nAI: hello")
        assert app.status is ApplicationStatus.INTERVIEW_COMPLETED
        assert app.conversation_transcript == "Human: hi\nAI: hello"

    async def test_pipeline_write_cannot_regress(self, store, job, candidate_id):
        app, _ = await store.get_or_create(job.id, candidate_id)
        await store.mark_resume_uploaded(app.id, "r")
        await store.mark_video_uploaded(app.id, "v")

        with pytest.raises(StatusRegressionError):
            await store.mark_resume_uploaded(app.id, "r2")

        reloaded = await store.get(app.id)
        assert reloaded.status is ApplicationStatus.VIDEO_UPLOADED
        assert reloaded.resume_path == "r"

    async def test_late_resume_analysis_keeps_status_but_stores_fields(self, store, job, candidate_id):
        app, _ = await store.get_or_create(job.id, candidate_id)
        await store.mark_resume_uploaded(app.id, "r")
        await store.mark_video_uploaded(app.id, "v")

        app = await store.record_resume_analysis(app.id, {"summary": "ok"}, {"full_name": "Ada"})

        assert app.status is ApplicationStatus.VIDEO_UPLOADED
        assert app.ai_analysis == {"summary": "ok"}
        assert app.key_attributes == {"full_name": "Ada"}

    async def test_resume_analysis_marks_analyzed_at_same_rank(self, store, job, candidate_id):
        app, _ = await store.get_or_create(job.id, candidate_id)
        await store.mark_resume_uploaded(app.id, "r")

        app = await store.record_resume_analysis(app.id, {"summary": "ok"})
        assert app.status is ApplicationStatus.RESUME_ANALYZED
        assert app.key_attributes is None

    async def test_completion_without_transcript_keeps_previous(self, store, job, candidate_id):
        app, _ = await store.get_or_create(job.id, candidate_id)
        await store.mark_interview_completed(app.id, "Human: first try")

        app = await store.mark_interview_completed(app.id)
        assert app.conversation_transcript == "Human: first try"

    async def test_assessment_is_stored(self, store, job, candidate_id):
        app, _ = await store.get_or_create(job.id, candidate_id)
        app = await store.record_interview_assessment(app.id, 74, "Solid")
        assert app.assessment_score == 74
        assert app.interview_feedback == "Solid"

    async def test_unknown_application_raises(self, store):
        with pytest.raises(ApplicationNotFoundError):
            await store.mark_interview_started(uuid.uuid4())

    async def test_find_latest_is_scoped_to_pair(self, store, job, candidate_id):
        await store.get_or_create(job.id, candidate_id)
        assert await store.find_latest(job.id, uuid.uuid4()) is None
        assert await store.get_job(uuid.uuid4()) is None
