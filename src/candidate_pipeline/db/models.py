"""
SQLAlchemy models for database persistence.

Defines the database schema for applications and the jobs they refer to.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class JobModel(Base):
    """Database model for job postings (read-only for the pipeline)."""

    __tablename__ = "jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    recruiter_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    essential_attributes: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    good_candidate_attributes: Mapped[str | None] = mapped_column(Text, nullable=True)
    bad_candidate_attributes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="published", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        nullable=False,
    )

    applications: Mapped[list["ApplicationModel"]] = relationship(back_populates="job")


class ApplicationModel(Base):
    """Database model for a candidate's application to one job."""

    __tablename__ = "applications"
    __table_args__ = (Index("ix_applications_job_candidate", "job_id", "candidate_id"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("jobs.id"), nullable=False)
    candidate_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="in_progress", nullable=False)

    # Artifact references
    resume_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_path: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Enrichment written by analysis
    ai_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    key_attributes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    video_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    conversation_transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    assessment_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    interview_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        nullable=False,
    )

    job: Mapped["JobModel"] = relationship(back_populates="applications")
