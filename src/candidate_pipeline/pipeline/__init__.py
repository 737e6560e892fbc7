"""
Application pipeline: resume -> video introduction -> realtime interview.

The orchestrator lives in ``candidate_pipeline.pipeline.orchestrator``.
"""

from candidate_pipeline.pipeline.notices import LoggingNotifier, Notice, NoticeLevel, Notifier
from candidate_pipeline.pipeline.schemas import (
    ApplicationRecord,
    ApplicationStatus,
    ArtifactKind,
    InterviewContext,
    JobRecord,
    PipelineStage,
    ResumeFile,
    VideoClip,
)
from candidate_pipeline.pipeline.stages import resolve_initial_stage

__all__ = [
    "ApplicationRecord",
    "ApplicationStatus",
    "ArtifactKind",
    "InterviewContext",
    "JobRecord",
    "LoggingNotifier",
    "Notice",
    "NoticeLevel",
    "Notifier",
    "PipelineStage",
    "ResumeFile",
    "VideoClip",
    "resolve_initial_stage",
]
