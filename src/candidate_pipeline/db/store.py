"""
Application state store.

Wraps the repositories in one short transaction per operation so that every
stage-advancing write has fully landed (committed) before the caller moves
on. Callers receive pydantic records, never live ORM objects.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from candidate_pipeline.db.models import ApplicationModel
from candidate_pipeline.db.repository import ApplicationRepository, JobRepository
from candidate_pipeline.errors import (
    ApplicationNotFoundError,
    ApplicationWriteError,
    StatusRegressionError,
)
from candidate_pipeline.pipeline.schemas import ApplicationRecord, ApplicationStatus, JobRecord

logger = logging.getLogger(__name__)


class ApplicationStore:
    """Persists pipeline progress and artifact references per (job, candidate)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except StatusRegressionError:
                await session.rollback()
                raise
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Application write failed: {e}")
                raise ApplicationWriteError(str(e)) from e

    # Reads

    async def get(self, application_id: UUID) -> ApplicationRecord | None:
        async with self._session_factory() as session:
            model = await ApplicationRepository(session).get_by_id(application_id)
            return ApplicationRecord.model_validate(model) if model else None

    async def find_latest(self, job_id: UUID, candidate_id: UUID) -> ApplicationRecord | None:
        async with self._session_factory() as session:
            model = await ApplicationRepository(session).get_latest_for(job_id, candidate_id)
            return ApplicationRecord.model_validate(model) if model else None

    async def list_for_job(self, job_id: UUID, limit: int = 100) -> list[ApplicationRecord]:
        async with self._session_factory() as session:
            models = await ApplicationRepository(session).list_for_job(job_id, limit=limit)
            return [ApplicationRecord.model_validate(m) for m in models]

    async def get_job(self, job_id: UUID) -> JobRecord | None:
        async with self._session_factory() as session:
            model = await JobRepository(session).get_by_id(job_id)
            return JobRecord.model_validate(model) if model else None

    # Pipeline writes

    async def get_or_create(self, job_id: UUID, candidate_id: UUID) -> tuple[ApplicationRecord, bool]:
        """
        Return the newest application for the pair, creating one if needed.

        Returns:
            Tuple of the application and whether it was created.
        """
        async with self._transaction() as session:
            repo = ApplicationRepository(session)
            model = await repo.get_latest_for(job_id, candidate_id)
            created = model is None
            if model is None:
                model = await repo.create_for(job_id, candidate_id)
                logger.info(f"Created application {model.id} for job={job_id} candidate={candidate_id}")
            return ApplicationRecord.model_validate(model), created

    async def mark_resume_uploaded(self, application_id: UUID, resume_path: str) -> ApplicationRecord:
        return await self._advance(
            application_id,
            ApplicationStatus.RESUME_UPLOADED,
            resume_path=resume_path,
        )

    async def mark_video_uploaded(self, application_id: UUID, video_path: str) -> ApplicationRecord:
        return await self._advance(
            application_id,
            ApplicationStatus.VIDEO_UPLOADED,
            video_path=video_path,
        )

    async def mark_interview_started(self, application_id: UUID) -> ApplicationRecord:
        return await self._advance(application_id, ApplicationStatus.INTERVIEW_STARTED)

    async def mark_interview_completed(
        self,
        application_id: UUID,
        transcript: str | None = None,
    ) -> ApplicationRecord:
        """
        Mark the interview complete, storing the transcript when one was captured.

        A None transcript leaves any previously stored transcript untouched.
        """
        fields: dict[str, Any] = {}
        if transcript is not None:
            fields["conversation_transcript"] = transcript
        return await self._advance(application_id, ApplicationStatus.INTERVIEW_COMPLETED, **fields)

    # Analysis writes (enrichment fields only, status never regresses)

    async def record_resume_analysis(
        self,
        application_id: UUID,
        analysis: dict[str, Any] | None,
        key_attributes: dict[str, Any] | None = None,
    ) -> ApplicationRecord:
        fields: dict[str, Any] = {"ai_analysis": analysis}
        if key_attributes is not None:
            fields["key_attributes"] = key_attributes
        return await self._advance(application_id, ApplicationStatus.RESUME_ANALYZED, **fields)

    async def record_video_analysis(
        self,
        application_id: UUID,
        analysis: dict[str, Any] | None,
    ) -> ApplicationRecord:
        return await self._advance(application_id, ApplicationStatus.VIDEO_ANALYZED, video_analysis=analysis)

    async def record_interview_assessment(
        self,
        application_id: UUID,
        score: int,
        feedback: str,
    ) -> ApplicationRecord:
        return await self._update(
            application_id,
            assessment_score=score,
            interview_feedback=feedback,
        )

    async def _advance(
        self,
        application_id: UUID,
        status: ApplicationStatus,
        **fields: Any,
    ) -> ApplicationRecord:
        async with self._transaction() as session:
            model = await self._require(session, application_id)
            if ApplicationRepository.apply_status(model, status):
                logger.info(f"Application {application_id} status -> {status.value}")
            for name, value in fields.items():
                setattr(model, name, value)
            model = await ApplicationRepository(session).update(model)
            return ApplicationRecord.model_validate(model)

    async def _update(self, application_id: UUID, **fields: Any) -> ApplicationRecord:
        async with self._transaction() as session:
            model = await self._require(session, application_id)
            for name, value in fields.items():
                setattr(model, name, value)
            model = await ApplicationRepository(session).update(model)
            return ApplicationRecord.model_validate(model)

    @staticmethod
    async def _require(session: AsyncSession, application_id: UUID) -> ApplicationModel:
        model = await ApplicationRepository(session).get_by_id(application_id)
        if model is None:
            raise ApplicationNotFoundError(f"Application {application_id} not found")
        return model
