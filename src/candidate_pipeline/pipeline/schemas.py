"""
Pydantic schemas for the application pipeline.

Defines the application record view, pipeline stages and statuses, the
submitted artifacts, analysis results and the recruiter-facing artifact
content variants.
"""

from __future__ import annotations

import json
import mimetypes
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class PipelineStage(str, Enum):
    """Position of a candidate in the application pipeline."""

    RESUME = "resume"
    VIDEO = "video"
    INTERVIEW = "interview"

    @property
    def order(self) -> int:
        return _STAGE_ORDER[self]


_STAGE_ORDER = {
    PipelineStage.RESUME: 0,
    PipelineStage.VIDEO: 1,
    PipelineStage.INTERVIEW: 2,
}


class ApplicationStatus(str, Enum):
    """Persisted application status."""

    IN_PROGRESS = "in_progress"
    RESUME_UPLOADED = "resume_uploaded"
    RESUME_ANALYZED = "resume_analyzed"
    VIDEO_UPLOADED = "video_uploaded"
    VIDEO_PROCESSED = "video_processed"
    VIDEO_ANALYZED = "video_analyzed"
    INTERVIEW_STARTED = "interview_started"
    INTERVIEW_COMPLETED = "interview_completed"

    @property
    def rank(self) -> int:
        """Position in pipeline order. Analysis statuses share their stage's rank."""
        return _STATUS_RANK[self]

    @property
    def is_analysis(self) -> bool:
        """Whether the status is only ever set by an analysis job."""
        return self in (ApplicationStatus.RESUME_ANALYZED, ApplicationStatus.VIDEO_ANALYZED)


_STATUS_RANK = {
    ApplicationStatus.IN_PROGRESS: 0,
    ApplicationStatus.RESUME_UPLOADED: 1,
    ApplicationStatus.RESUME_ANALYZED: 1,
    ApplicationStatus.VIDEO_UPLOADED: 2,
    ApplicationStatus.VIDEO_PROCESSED: 2,
    ApplicationStatus.VIDEO_ANALYZED: 2,
    ApplicationStatus.INTERVIEW_STARTED: 3,
    ApplicationStatus.INTERVIEW_COMPLETED: 4,
}


class ArtifactKind(str, Enum):
    """Kind of stored artifact, used as the path namespace."""

    RESUME = "resume"
    VIDEO = "video"


class JobStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ApplicationRecord(BaseModel):
    """Read view of one application row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Application identifier")
    job_id: UUID = Field(..., description="Job applied for")
    candidate_id: UUID = Field(..., description="Applying candidate")
    status: ApplicationStatus = Field(default=ApplicationStatus.IN_PROGRESS, description="Pipeline status")
    resume_path: str | None = Field(default=None, description="Storage path of the resume")
    video_path: str | None = Field(default=None, description="Storage path of the video introduction")
    ai_analysis: dict[str, Any] | None = Field(default=None, description="Resume analysis result")
    key_attributes: dict[str, Any] | None = Field(default=None, description="Extracted candidate attributes")
    video_analysis: dict[str, Any] | None = Field(
        default=None, description="Video introduction transcript and analysis"
    )
    conversation_transcript: str | None = Field(default=None, description="Joined interview transcript")
    assessment_score: int | None = Field(default=None, ge=0, le=100, description="Interview score (0-100)")
    interview_feedback: str | None = Field(default=None, description="Interview analysis feedback")
    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: datetime = Field(default_factory=_now_utc)


class JobRecord(BaseModel):
    """Read view of a job posting. Jobs are managed elsewhere."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recruiter_id: UUID | None = None
    title: str
    description: str = ""
    essential_attributes: list[str] = Field(default_factory=list)
    good_candidate_attributes: str | None = None
    bad_candidate_attributes: str | None = None
    status: JobStatus = JobStatus.PUBLISHED

    @field_validator("essential_attributes", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v


# Submitted artifacts

ACCEPTED_RESUME_TYPES: dict[str, tuple[str, ...]] = {
    ".pdf": ("application/pdf",),
    ".doc": ("application/msword",),
    ".docx": ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",),
    ".html": ("text/html",),
    ".htm": ("text/html",),
}


class ResumeFile(BaseModel):
    """A resume document chosen by the candidate."""

    filename: str = Field(..., description="Original file name")
    content_type: str = Field(default="application/octet-stream", description="MIME type")
    data: bytes = Field(..., repr=False, description="File contents")

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()

    @classmethod
    def from_path(cls, path: str | Path) -> "ResumeFile":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        if content_type is None:
            accepted = ACCEPTED_RESUME_TYPES.get(path.suffix.lower())
            content_type = accepted[0] if accepted else "application/octet-stream"
        return cls(filename=path.name, content_type=content_type, data=path.read_bytes())


VIDEO_EXTENSIONS: dict[str, str] = {
    "video/webm": "webm",
    "video/mp4": "mp4",
    "video/x-msvideo": "avi",
}


class VideoClip(BaseModel):
    """A recorded video introduction held in memory."""

    data: bytes = Field(..., repr=False, description="Encoded clip")
    mime_type: str = Field(default="video/webm", description="Negotiated MIME type, codecs included")
    duration_s: float | None = Field(default=None, ge=0.0, description="Recorded duration")

    @property
    def container(self) -> str:
        """MIME type without codec parameters."""
        return self.mime_type.split(";", 1)[0].strip()

    @property
    def extension(self) -> str:
        return VIDEO_EXTENSIONS.get(self.container, "webm")

    @classmethod
    def from_path(cls, path: str | Path) -> "VideoClip":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(data=path.read_bytes(), mime_type=content_type or "video/webm")


# Analysis results


class ResumeAnalysisResult(BaseModel):
    success: bool = False
    analysis: dict[str, Any] | None = None
    key_attributes: dict[str, Any] | None = None


class InterviewAnalysisResult(BaseModel):
    score: int = Field(..., ge=0, le=100)
    feedback: str = ""

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return max(0, min(100, int(round(v))))
        return v


class VideoAnalysisResult(BaseModel):
    transcript: str | None = None
    analysis: str | dict[str, Any] | None = None


class JobDocumentExtraction(BaseModel):
    """Structured job details extracted from an uploaded job document."""

    title: str | None = None
    description: str = ""
    essential_attributes: list[str] = Field(default_factory=list)
    good_candidate_attributes: str = ""
    bad_candidate_attributes: str = ""


# Realtime interview context


class InterviewContext(BaseModel):
    """Canonical context payload sent to the interview agent at session start."""

    job_title: str
    job_description: str = ""
    essential_attributes: list[str] = Field(default_factory=list)
    good_candidate_attributes: str | None = None
    bad_candidate_attributes: str | None = None
    candidate_name: str | None = None
    pronunciation_note: str | None = None
    key_attributes: dict[str, Any] = Field(default_factory=dict)
    resume_analysis: dict[str, Any] | None = None

    @classmethod
    def from_records(cls, job: JobRecord, application: ApplicationRecord) -> "InterviewContext":
        attributes = dict(application.key_attributes or {})
        name = attributes.get("full_name")
        note = attributes.get("pronunciation_note")
        return cls(
            job_title=job.title,
            job_description=job.description,
            essential_attributes=job.essential_attributes,
            good_candidate_attributes=job.good_candidate_attributes,
            bad_candidate_attributes=job.bad_candidate_attributes,
            candidate_name=name if isinstance(name, str) and name.strip() else None,
            pronunciation_note=note if isinstance(note, str) and note.strip() else None,
            key_attributes=attributes,
            resume_analysis=application.ai_analysis,
        )

    @property
    def first_name(self) -> str | None:
        if not self.candidate_name:
            return None
        return self.candidate_name.split()[0]

    def to_agent_json(self) -> str:
        """Serialize as the ``{job, candidate}`` document handed to the agent."""
        document = {
            "job": {
                "title": self.job_title,
                "description": self.job_description,
                "essential_attributes": self.essential_attributes,
                "good_candidate_attributes": self.good_candidate_attributes,
                "bad_candidate_attributes": self.bad_candidate_attributes,
            },
            "candidate": {
                "name": self.candidate_name,
                "pronunciation_note": self.pronunciation_note,
                "key_attributes": self.key_attributes,
                "resume_analysis": self.resume_analysis,
            },
        }
        return json.dumps(document, default=str)


# Recruiter-facing artifact content (tagged union on ``kind``)


class ResumeContent(BaseModel):
    kind: Literal["resume"] = "resume"
    path: str
    signed_url: str
    analysis: dict[str, Any] | None = None


class VideoContent(BaseModel):
    kind: Literal["video"] = "video"
    path: str
    signed_url: str
    analysis: dict[str, Any] | None = None


class InterviewContent(BaseModel):
    kind: Literal["interview"] = "interview"
    transcript: str
    score: int | None = None
    feedback: str | None = None

    @property
    def score_display(self) -> str:
        return "N/A" if self.score is None else f"{self.score}/100"


ArtifactContent = Annotated[
    ResumeContent | VideoContent | InterviewContent,
    Field(discriminator="kind"),
]
