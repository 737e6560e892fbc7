"""
Repository pattern for database operations.

Provides a clean abstraction over SQLAlchemy for CRUD operations.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from candidate_pipeline.db.models import ApplicationModel, Base, JobModel
from candidate_pipeline.errors import StatusRegressionError
from candidate_pipeline.pipeline.schemas import ApplicationStatus

T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    @property
    @abstractmethod
    def _model_class(self) -> type[T]:
        """Get the model class for this repository."""
        ...

    async def get_by_id(self, entity_id: UUID) -> T | None:
        """
        Get an entity by its ID.

        Args:
            entity_id: The entity's UUID.

        Returns:
            The entity if found, None otherwise.
        """
        return await self._session.get(self._model_class, entity_id)

    async def create(self, entity: T) -> T:
        """
        Create a new entity.

        Args:
            entity: The entity to create.

        Returns:
            The created entity.
        """
        self._session.add(entity)
        await self._session.flush()
        await self._session.refresh(entity)
        return entity

    async def update(self, entity: T) -> T:
        """
        Flush pending changes to an existing entity.

        Args:
            entity: The entity to update.

        Returns:
            The updated entity.
        """
        await self._session.flush()
        await self._session.refresh(entity)
        return entity


class JobRepository(BaseRepository[JobModel]):
    """Repository for job lookups."""

    @property
    def _model_class(self) -> type[JobModel]:
        """Get the model class."""
        return JobModel


class ApplicationRepository(BaseRepository[ApplicationModel]):
    """Repository for application operations."""

    @property
    def _model_class(self) -> type[ApplicationModel]:
        """Get the model class."""
        return ApplicationModel

    async def get_latest_for(self, job_id: UUID, candidate_id: UUID) -> ApplicationModel | None:
        """
        Get the most recent application a candidate made for a job.

        Args:
            job_id: Job UUID.
            candidate_id: Candidate UUID.

        Returns:
            The newest matching application, or None.
        """
        stmt = (
            select(ApplicationModel)
            .where(
                ApplicationModel.job_id == job_id,
                ApplicationModel.candidate_id == candidate_id,
            )
            .order_by(ApplicationModel.created_at.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_job(self, job_id: UUID, limit: int = 100, offset: int = 0) -> list[ApplicationModel]:
        """
        List applications for a job, newest first.

        Args:
            job_id: Job UUID.
            limit: Maximum number to return.
            offset: Number to skip.

        Returns:
            List of applications.
        """
        stmt = (
            select(ApplicationModel)
            .where(ApplicationModel.job_id == job_id)
            .order_by(ApplicationModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def create_for(self, job_id: UUID, candidate_id: UUID) -> ApplicationModel:
        """
        Create an in-progress application.

        Args:
            job_id: Job UUID.
            candidate_id: Candidate UUID.

        Returns:
            The created application.
        """
        application = ApplicationModel(
            job_id=job_id,
            candidate_id=candidate_id,
            status=ApplicationStatus.IN_PROGRESS.value,
        )
        return await self.create(application)

    @staticmethod
    def apply_status(application: ApplicationModel, status: ApplicationStatus) -> bool:
        """
        Move an application to a new status without ever lowering its rank.

        Analysis statuses that would lower the rank are skipped silently;
        pipeline statuses that would lower it raise.

        Args:
            application: Application to mutate (not flushed).
            status: Requested status.

        Returns:
            True if the status column changed.

        Raises:
            StatusRegressionError: A pipeline status would regress.
        """
        try:
            current = ApplicationStatus(application.status)
        except ValueError:
            current = ApplicationStatus.IN_PROGRESS

        if status.rank < current.rank:
            if status.is_analysis:
                return False
            raise StatusRegressionError(current.value, status.value)

        changed = application.status != status.value
        application.status = status.value
        return changed
