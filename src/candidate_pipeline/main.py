"""
Main entry point for the candidate pipeline.
"""

import argparse
import asyncio
import logging
import os
import sys
from uuid import UUID

from candidate_pipeline.analysis.gateway import AnalysisGateway
from candidate_pipeline.config import Settings, get_settings
from candidate_pipeline.db import ApplicationStore, create_engine, create_session_factory, init_db
from candidate_pipeline.errors import (
    ApplicationNotFoundError,
    AuthenticationRequiredError,
    JobNotFoundError,
    PipelineError,
)
from candidate_pipeline.interview.session import RealtimeSettings
from candidate_pipeline.interview.transport import ElevenLabsTransport
from candidate_pipeline.media.audio_io import AudioPlayer
from candidate_pipeline.media.camera import LocalMediaDevices
from candidate_pipeline.media.capture import MediaCapture
from candidate_pipeline.media.recorder import VideoRecorder
from candidate_pipeline.pipeline.artifacts import ARTIFACT_KINDS, load_artifact
from candidate_pipeline.pipeline.orchestrator import ApplicationPipeline
from candidate_pipeline.pipeline.schemas import PipelineStage, ResumeFile, VideoClip
from candidate_pipeline.pipeline.stages import resolve_initial_stage
from candidate_pipeline.storage.client import StorageClient

EXIT_REDIRECT = 2


def setup_logging(settings: Settings) -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def _uuid_or_none(value: str | None) -> UUID | None:
    return UUID(value) if value else None


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="candidate-pipeline", description="Candidate application pipeline")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database tables")

    def add_identity(cmd: argparse.ArgumentParser) -> None:
        cmd.add_argument("--job-id", type=UUID, required=True)
        cmd.add_argument(
            "--candidate-id",
            type=_uuid_or_none,
            default=_uuid_or_none(os.getenv("CANDIDATE_ID")),
            help="Signed-in candidate (default: CANDIDATE_ID)",
        )

    status = sub.add_parser("status", help="Show where a candidate resumes the pipeline")
    add_identity(status)

    apply = sub.add_parser("apply", help="Run the remaining pipeline steps")
    add_identity(apply)
    apply.add_argument("--resume", help="Resume document (PDF, DOC, DOCX or HTML)")
    video = apply.add_mutually_exclusive_group()
    video.add_argument("--video", help="Pre-recorded video introduction")
    video.add_argument("--record", action="store_true", help="Record the video introduction from the camera")
    apply.add_argument("--interview", action="store_true", help="Start the realtime AI interview")

    review = sub.add_parser("review", help="Show a submitted artifact for an application")
    review.add_argument("--application-id", type=UUID, required=True)
    review.add_argument("--kind", choices=ARTIFACT_KINDS, required=True)

    extract = sub.add_parser("extract-job", help="Extract job details from a PDF/DOC/DOCX")
    extract.add_argument("file")

    return p


async def _wait_for_enter_or(task: asyncio.Future) -> None:
    """Return when Enter is pressed on stdin or ``task`` finishes."""
    loop = asyncio.get_running_loop()
    pressed = loop.create_future()

    def on_input() -> None:
        sys.stdin.readline()
        if not pressed.done():
            pressed.set_result(None)

    loop.add_reader(sys.stdin.fileno(), on_input)
    try:
        await asyncio.wait({pressed, task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        loop.remove_reader(sys.stdin.fileno())
        if not pressed.done():
            pressed.cancel()


async def _record_clip(capture: MediaCapture, settings: Settings) -> VideoClip:
    recorder = VideoRecorder(capture, max_duration_s=settings.video_max_duration_s)
    await recorder.start()
    print(f"Recording (max {settings.video_max_duration_s:.0f}s). Press Enter to stop.")
    waiter = asyncio.ensure_future(recorder.wait())
    await _wait_for_enter_or(waiter)
    if not waiter.done():
        return await recorder.stop()
    return waiter.result()


async def _run_apply(args: argparse.Namespace, settings: Settings, store: ApplicationStore) -> int:
    storage = StorageClient(
        settings.storage_url,
        settings.storage_bucket,
        service_key=settings.storage_service_key,
        timeout=settings.storage_timeout,
    )
    gateway = AnalysisGateway(settings.functions_url, settings.functions_key, timeout=settings.analysis_timeout)
    capture = MediaCapture(LocalMediaDevices(settings.camera_index))
    pipeline = ApplicationPipeline(
        job_id=args.job_id,
        candidate_id=args.candidate_id,
        store=store,
        storage=storage,
        analysis=gateway,
        capture=capture,
        transport_factory=lambda: ElevenLabsTransport(
            settings.elevenlabs_api_key,
            api_url=settings.elevenlabs_api_url,
        ),
        realtime=RealtimeSettings.from_settings(settings),
        player_factory=lambda: AudioPlayer(sample_rate=settings.agent_output_sample_rate),
        analyze_video_on_upload=settings.analyze_video_on_upload,
    )

    try:
        stage = await pipeline.load()
        print(f"Resuming at stage: {stage.value}")

        if pipeline.stage is PipelineStage.RESUME:
            if not args.resume:
                print("Next step: upload your resume with --resume FILE")
                return 0
            await pipeline.submit_resume(ResumeFile.from_path(args.resume))

        if pipeline.stage is PipelineStage.VIDEO:
            if args.video:
                clip = VideoClip.from_path(args.video)
            elif args.record:
                clip = await _record_clip(capture, settings)
            else:
                print("Next step: add a video introduction with --video FILE or --record")
                return 0
            await pipeline.submit_video(clip)

        if args.interview:
            session = await pipeline.start_interview()
            print("Interview in progress. Press Enter to end it.")
            ended = asyncio.ensure_future(session.wait_ended())
            await _wait_for_enter_or(ended)
            await pipeline.end_interview()
        elif pipeline.stage is PipelineStage.INTERVIEW:
            print("Next step: start the interview with --interview")
        return 0
    finally:
        await pipeline.aclose()
        capture.release()
        await storage.close()
        await gateway.close()


async def _run_review(args: argparse.Namespace, settings: Settings, store: ApplicationStore) -> int:
    application = await store.get(args.application_id)
    if application is None:
        raise ApplicationNotFoundError(f"Application {args.application_id} not found")
    storage = StorageClient(settings.storage_url, settings.storage_bucket, service_key=settings.storage_service_key)
    try:
        content = await load_artifact(application, args.kind, storage, expires_in=settings.signed_url_expiry_s)
    finally:
        await storage.close()
    print(content.model_dump_json(indent=2))
    if args.kind == "interview":
        print(f"Score: {content.score_display}")
    return 0


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Dispatch one CLI command."""
    if args.command == "extract-job":
        gateway = AnalysisGateway(settings.functions_url, settings.functions_key, timeout=settings.analysis_timeout)
        try:
            extraction = await gateway.process_job_document(args.file)
        finally:
            await gateway.close()
        print(extraction.model_dump_json(indent=2))
        return 0

    engine = create_engine(settings.database_url, echo=settings.debug)
    store = ApplicationStore(create_session_factory(engine))
    try:
        if args.command == "init-db":
            await init_db(engine)
            print("Database tables created.")
            return 0

        if args.command == "status":
            if args.candidate_id is None:
                raise AuthenticationRequiredError("Please sign in to view your application")
            if await store.get_job(args.job_id) is None:
                raise JobNotFoundError(f"Job {args.job_id} not found")
            application = await store.find_latest(args.job_id, args.candidate_id)
            print(f"Stage: {resolve_initial_stage(application).value}")
            if application is not None:
                print(f"Application: {application.id}")
                print(f"Status: {application.status.value}")
            return 0

        if args.command == "review":
            return await _run_review(args, settings, store)

        return await _run_apply(args, settings, store)
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the application."""
    settings = get_settings()
    setup_logging(settings)
    args = build_parser().parse_args(argv)

    try:
        sys.exit(asyncio.run(run_command(args, settings)))
    except KeyboardInterrupt:
        print("\nSession terminated by user.")
        sys.exit(0)
    except AuthenticationRequiredError as e:
        print(f"{e}. Sign in and try again.")
        sys.exit(EXIT_REDIRECT)
    except (JobNotFoundError, ApplicationNotFoundError) as e:
        print(f"{e}. Browse the open jobs to find another role.")
        sys.exit(EXIT_REDIRECT)
    except PipelineError as e:
        logging.error(f"{type(e).__name__}: {e}")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
