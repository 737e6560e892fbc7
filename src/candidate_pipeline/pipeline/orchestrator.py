"""
Application pipeline orchestrator.

Drives one candidate through resume upload, video introduction and the
realtime interview for one job. Stage-advancing writes are awaited in order;
analysis is best-effort and never blocks a stage.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from candidate_pipeline.analysis.gateway import AnalysisGateway
from candidate_pipeline.db.store import ApplicationStore
from candidate_pipeline.errors import (
    AnalysisError,
    ApplicationWriteError,
    AuthenticationRequiredError,
    InvalidResumeError,
    JobNotFoundError,
    MediaCaptureError,
    MediaPermissionError,
    PipelineBusyError,
    PipelineStateError,
    SessionActiveError,
    SessionConfigurationError,
    SessionError,
    UploadError,
)
from candidate_pipeline.interview.session import (
    AudioSink,
    RealtimeInterviewSession,
    RealtimeSettings,
    SessionState,
    build_first_message,
)
from candidate_pipeline.interview.transport import AgentTransport
from candidate_pipeline.media.capture import MediaCapture
from candidate_pipeline.pipeline.notices import LoggingNotifier, Notice, NoticeLevel, Notifier
from candidate_pipeline.pipeline.schemas import (
    ACCEPTED_RESUME_TYPES,
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
from candidate_pipeline.storage.client import StorageClient, build_artifact_path

logger = logging.getLogger(__name__)


class ApplicationPipeline:
    """
    Orchestrates the application pipeline for one (job, candidate) pair.

    The stage is resolved once by ``load()`` from the persisted application
    and afterwards only moves forward. Every stage-advancing call holds the
    pipeline lock; a second call while one is in flight raises
    ``PipelineBusyError``.
    """

    def __init__(
        self,
        *,
        job_id: UUID,
        candidate_id: UUID | None,
        store: ApplicationStore,
        storage: StorageClient,
        analysis: AnalysisGateway,
        capture: MediaCapture | None = None,
        transport_factory: Callable[[], AgentTransport] | None = None,
        realtime: RealtimeSettings | None = None,
        player_factory: Callable[[], AudioSink] | None = None,
        notifier: Notifier | None = None,
        analyze_video_on_upload: bool = True,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            job_id: Job being applied for.
            candidate_id: Signed-in candidate, or None when signed out.
            store: Application state store.
            storage: Artifact storage client.
            analysis: Analysis function gateway.
            capture: Media capture shared by the recorder and the interview.
            transport_factory: Builds a fresh agent transport per interview.
            realtime: Realtime agent settings.
            player_factory: Builds an agent audio sink per interview.
            notifier: Receives user-visible notices.
            analyze_video_on_upload: Schedule video analysis after upload.
        """
        self._job_id = job_id
        self._candidate_id = candidate_id
        self._store = store
        self._storage = storage
        self._analysis = analysis
        self._capture = capture
        self._transport_factory = transport_factory
        self._realtime = realtime
        self._player_factory = player_factory
        self._notifier = notifier or LoggingNotifier()
        self._analyze_video_on_upload = analyze_video_on_upload

        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._job: JobRecord | None = None
        self._application: ApplicationRecord | None = None
        self._stage: PipelineStage | None = None
        self._session: RealtimeInterviewSession | None = None

    @property
    def stage(self) -> PipelineStage:
        if self._stage is None:
            raise PipelineStateError("Pipeline has not been loaded")
        return self._stage

    @property
    def application(self) -> ApplicationRecord | None:
        return self._application

    @property
    def job(self) -> JobRecord | None:
        return self._job

    @property
    def session(self) -> RealtimeInterviewSession | None:
        return self._session

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def load(self) -> PipelineStage:
        """
        Resolve where the candidate resumes.

        Returns:
            The initial stage.

        Raises:
            AuthenticationRequiredError: No candidate is signed in.
            JobNotFoundError: The job does not exist.
        """
        if self._stage is not None:
            return self._stage
        if self._candidate_id is None:
            raise AuthenticationRequiredError("Please sign in to apply for this job")

        job = await self._store.get_job(self._job_id)
        if job is None:
            raise JobNotFoundError(f"Job {self._job_id} not found")

        self._job = job
        self._application = await self._store.find_latest(self._job_id, self._candidate_id)
        self._stage = resolve_initial_stage(self._application)
        status = self._application.status.value if self._application else "none"
        logger.info(f"Loaded pipeline job={self._job_id} candidate={self._candidate_id} stage={self._stage.value} status={status}")
        return self._stage

    # Resume

    async def submit_resume(self, file: ResumeFile) -> ApplicationRecord:
        """
        Upload a resume and advance to the video stage.

        Args:
            file: The chosen resume document.

        Returns:
            The updated application.

        Raises:
            InvalidResumeError: Empty or unsupported file.
            UploadError: The upload failed; nothing was recorded.
            ApplicationWriteError: The application row could not be written.
        """
        self._validate_resume(file)

        async with self._exclusive():
            if self.stage is PipelineStage.INTERVIEW:
                raise PipelineStateError("Resume can no longer be changed at the interview stage")

            try:
                if self._application is None:
                    self._application, _ = await self._store.get_or_create(self._job_id, self._candidate_id)
                application = self._application

                path = build_artifact_path(application.id, ArtifactKind.RESUME, file.filename)
                await self._storage.upload(path, file.data, file.content_type)
                record = await self._store.mark_resume_uploaded(application.id, path)
            except UploadError as e:
                self._notify(NoticeLevel.ERROR, "Upload failed", f"There was an error uploading your resume. {e}")
                raise
            except ApplicationWriteError as e:
                self._notify(NoticeLevel.ERROR, "Could not save application", str(e))
                raise

            self._application = record
            self._advance_to(PipelineStage.VIDEO)
            self._notify(NoticeLevel.SUCCESS, "Resume uploaded", "Your resume has been uploaded and is being analyzed.")
            self._spawn(self._analyze_resume(record))
            return record

    @staticmethod
    def _validate_resume(file: ResumeFile) -> None:
        if not file.data:
            raise InvalidResumeError(f"{file.filename} is empty")
        accepted = ACCEPTED_RESUME_TYPES.get(file.extension)
        if accepted is None:
            raise InvalidResumeError(
                f"{file.filename} is not a supported document. Please upload PDF, DOC, DOCX or HTML."
            )
        if file.content_type not in accepted:
            raise InvalidResumeError(f"{file.filename} has unexpected content type {file.content_type}")

    async def _analyze_resume(self, record: ApplicationRecord) -> None:
        try:
            result = await self._analysis.analyze_resume(record.resume_path, record.id)
            self._refresh(
                await self._store.record_resume_analysis(record.id, result.analysis, result.key_attributes)
            )
            logger.info(f"Resume analysis stored for application {record.id}")
        except (AnalysisError, ApplicationWriteError) as e:
            logger.warning(f"Resume analysis failed for application {record.id}: {e}")
            self._notify(
                NoticeLevel.WARNING,
                "Analysis unavailable",
                "Your resume was saved, but it could not be analyzed right now.",
            )

    # Video

    async def submit_video(self, clip: VideoClip) -> ApplicationRecord:
        """
        Upload the video introduction and advance to the interview stage.

        A failed upload keeps the clip with the caller for a retry.

        Raises:
            PipelineStateError: No resume has been stored yet, or the clip is empty.
            UploadError: The upload failed; nothing was recorded.
            ApplicationWriteError: The application row could not be written.
        """
        async with self._exclusive():
            application = self._application
            if application is None or not application.resume_path:
                raise PipelineStateError("Upload a resume before recording a video introduction")
            if not clip.data:
                raise PipelineStateError("The recorded clip is empty")

            try:
                path = build_artifact_path(application.id, ArtifactKind.VIDEO, f"introduction.{clip.extension}")
                await self._storage.upload(path, clip.data, clip.container)
                record = await self._store.mark_video_uploaded(application.id, path)
            except UploadError as e:
                self._notify(NoticeLevel.ERROR, "Upload failed", f"Failed to upload video. Please try again. {e}")
                raise
            except ApplicationWriteError as e:
                self._notify(NoticeLevel.ERROR, "Could not save application", str(e))
                raise

            self._application = record
            self._advance_to(PipelineStage.INTERVIEW)
            self._notify(NoticeLevel.SUCCESS, "Video uploaded", "Your video introduction has been saved.")
            if self._analyze_video_on_upload:
                self._spawn(self._analyze_video(record))
            return record

    async def _analyze_video(self, record: ApplicationRecord) -> None:
        try:
            result = await self._analysis.analyze_video(record.id, record.video_path)
            stored = await self._store.record_video_analysis(
                record.id, {"transcript": result.transcript, "analysis": result.analysis}
            )
            self._refresh(stored)
            chars = len(result.transcript or "")
            logger.info(f"Video analysis stored for application {record.id} (transcript {chars} chars)")
        except (AnalysisError, ApplicationWriteError) as e:
            logger.warning(f"Video analysis failed for application {record.id}: {e}")
            self._notify(
                NoticeLevel.WARNING,
                "Analysis unavailable",
                "Your video was saved, but it could not be analyzed right now.",
            )

    # Interview

    async def start_interview(self, first_message: str | None = None) -> RealtimeInterviewSession:
        """
        Start the realtime interview.

        Returns:
            The active session. Its terminal callback is ``complete_interview``.

        Raises:
            PipelineStateError: Not at the interview stage, or no agent configured.
            SessionActiveError: An interview is already running.
            SessionError: The session could not connect.
            MediaCaptureError: The microphone could not be opened.
        """
        async with self._exclusive():
            if self.stage is not PipelineStage.INTERVIEW:
                raise PipelineStateError("Complete the video introduction before the interview")
            if self._session is not None and self._session.state in (SessionState.CONNECTING, SessionState.ACTIVE):
                raise SessionActiveError("An interview session is already active")
            if self._capture is None or self._transport_factory is None or self._realtime is None:
                raise PipelineStateError("Interview agent is not configured")

            if self._application is None or self._job is None:
                raise PipelineStateError("No application to interview for")
            # Background analysis may have enriched the row since it was last read.
            application = await self._store.get(self._application.id) or self._application
            self._application = application

            context = InterviewContext.from_records(self._job, application)
            session = RealtimeInterviewSession(
                transport=self._transport_factory(),
                capture=self._capture,
                settings=self._realtime,
                on_complete=self.complete_interview,
                player=self._player_factory() if self._player_factory else None,
            )
            self._session = session

            try:
                await session.start(context, first_message or build_first_message(context))
            except SessionConfigurationError as e:
                self._notify(NoticeLevel.ERROR, "Interview unavailable", f"Interview agent is misconfigured: {e}")
                raise
            except MediaPermissionError as e:
                self._notify(NoticeLevel.ERROR, "Microphone access needed", str(e))
                raise
            except (SessionError, MediaCaptureError) as e:
                self._notify(NoticeLevel.ERROR, "Could not start interview", f"{e} Please try again.")
                raise

            if session.state is SessionState.ENDED and session.end_reason == "cancelled":
                return session

            if application.status.rank < ApplicationStatus.INTERVIEW_STARTED.rank:
                try:
                    self._application = await self._store.mark_interview_started(application.id)
                except ApplicationWriteError as e:
                    logger.error(f"Failed to mark interview started for {application.id}: {e}")
                    self._notify(NoticeLevel.WARNING, "Progress not saved", "The interview is running but its start was not recorded.")

            self._notify(NoticeLevel.SUCCESS, "Interview started", "The AI interviewer is ready.")
            return session

    async def complete_interview(self, lines: list[str]) -> None:
        """
        Persist the finished interview, then score it.

        An empty transcript only completes the status; the stored transcript
        is kept and analysis is skipped.
        """
        async with self._lock:
            application = self._application
            if application is None:
                logger.error("Interview completed without an application")
                return

            transcript = "\n".join(lines) if lines else None
            try:
                self._application = await self._store.mark_interview_completed(application.id, transcript)
            except ApplicationWriteError as e:
                self._notify(NoticeLevel.ERROR, "Could not save interview", str(e))
                raise

            if transcript is None:
                logger.info(f"Interview for {application.id} ended with no transcript; skipping analysis")
                self._notify(NoticeLevel.SUCCESS, "Interview completed", "Thank you for completing the interview.")
                return

            try:
                result = await self._analysis.analyze_interview(application.id, application.job_id, transcript)
                self._application = await self._store.record_interview_assessment(
                    application.id, result.score, result.feedback
                )
            except (AnalysisError, ApplicationWriteError) as e:
                logger.warning(f"Interview analysis failed for {application.id}: {e}")
                self._notify(
                    NoticeLevel.WARNING,
                    "Analysis pending",
                    "Your interview was saved, but the analysis could not be completed.",
                )
                return

            logger.info(f"Interview for {application.id} scored {result.score}")
            self._notify(NoticeLevel.SUCCESS, "Interview completed", "Thank you for completing the interview.")

    async def end_interview(self) -> None:
        if self._session is not None:
            await self._session.end()

    # Lifecycle

    async def wait_for_analysis(self) -> None:
        """Wait for scheduled background analysis to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """End any active interview and wait for background analysis."""
        await self.end_interview()
        await self.wait_for_analysis()

    # Internals

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._lock.locked():
            raise PipelineBusyError("Another step is already in progress")
        async with self._lock:
            yield

    def _advance_to(self, stage: PipelineStage) -> None:
        current = self.stage
        if stage.order > current.order:
            logger.info(f"Stage {current.value} -> {stage.value}")
            self._stage = stage

    def _refresh(self, record: ApplicationRecord) -> None:
        current = self._application
        if current is None:
            self._application = record
        elif current.id == record.id and record.updated_at > current.updated_at:
            self._application = record

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _notify(self, level: NoticeLevel, title: str, description: str = "") -> None:
        self._notifier.notify(Notice(level=level, title=title, description=description))
