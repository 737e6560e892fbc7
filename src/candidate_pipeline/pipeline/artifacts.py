"""Recruiter-facing artifact review."""

from __future__ import annotations

import logging

from candidate_pipeline.errors import ArtifactUnavailableError
from candidate_pipeline.pipeline.schemas import (
    ApplicationRecord,
    ArtifactContent,
    InterviewContent,
    ResumeContent,
    VideoContent,
)
from candidate_pipeline.storage.client import StorageClient

logger = logging.getLogger(__name__)

ARTIFACT_KINDS = ("resume", "video", "interview")


async def load_artifact(
    application: ApplicationRecord,
    kind: str,
    storage: StorageClient,
    expires_in: int = 3600,
) -> ArtifactContent:
    """
    Build the review payload for one artifact of an application.

    Args:
        application: Application under review.
        kind: ``resume``, ``video`` or ``interview``.
        storage: Storage client used to sign retrieval URLs.
        expires_in: Lifetime of signed URLs in seconds.

    Returns:
        The matching ``ArtifactContent`` variant.

    Raises:
        ArtifactUnavailableError: The artifact was never submitted.
        StorageError: A signed URL could not be created.
    """
    if kind == "resume":
        if not application.resume_path:
            raise ArtifactUnavailableError(f"Application {application.id} has no resume")
        url = await storage.create_signed_url(application.resume_path, expires_in=expires_in)
        return ResumeContent(path=application.resume_path, signed_url=url, analysis=application.ai_analysis)

    if kind == "video":
        if not application.video_path:
            raise ArtifactUnavailableError(f"Application {application.id} has no video introduction")
        url = await storage.create_signed_url(application.video_path, expires_in=expires_in)
        return VideoContent(path=application.video_path, signed_url=url, analysis=application.video_analysis)

    if kind == "interview":
        if not application.conversation_transcript:
            raise ArtifactUnavailableError(f"Application {application.id} has no interview transcript")
        return InterviewContent(
            transcript=application.conversation_transcript,
            score=application.assessment_score,
            feedback=application.interview_feedback,
        )

    raise ValueError(f"Unknown artifact kind {kind!r}; expected one of {', '.join(ARTIFACT_KINDS)}")
