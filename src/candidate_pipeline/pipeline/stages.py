"""Pipeline stage resolution."""

from __future__ import annotations

from candidate_pipeline.pipeline.schemas import ApplicationRecord, ApplicationStatus, PipelineStage

INTERVIEW_READY_STATUSES = frozenset(
    {
        ApplicationStatus.VIDEO_UPLOADED,
        ApplicationStatus.VIDEO_PROCESSED,
        ApplicationStatus.VIDEO_ANALYZED,
        ApplicationStatus.INTERVIEW_STARTED,
        ApplicationStatus.INTERVIEW_COMPLETED,
    }
)


def resolve_initial_stage(application: ApplicationRecord | None) -> PipelineStage:
    """
    Decide where a candidate resumes the pipeline.

    Args:
        application: The candidate's latest application for the job, if any.

    Returns:
        ``resume`` until a resume is stored, ``interview`` once a video is
        stored (or the status says so), ``video`` otherwise.
    """
    if application is None or not application.resume_path:
        return PipelineStage.RESUME
    if application.video_path or application.status in INTERVIEW_READY_STATUSES:
        return PipelineStage.INTERVIEW
    return PipelineStage.VIDEO
