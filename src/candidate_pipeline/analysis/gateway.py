"""
Analysis gateway.

Invokes the external scoring functions over HTTP. Every call is best-effort:
failures surface as ``AnalysisError`` and callers decide how softly to treat
them. Re-invoking a function for the same application is safe; the function
simply overwrites earlier enrichment.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any
from uuid import UUID

import httpx
from pydantic import BaseModel, ValidationError

from candidate_pipeline.errors import AnalysisError
from candidate_pipeline.pipeline.schemas import (
    InterviewAnalysisResult,
    JobDocumentExtraction,
    ResumeAnalysisResult,
    VideoAnalysisResult,
)

logger = logging.getLogger(__name__)

ACCEPTED_JOB_DOCUMENTS = {".pdf", ".doc", ".docx"}


class AnalysisGateway:
    """
    Client for the analysis function endpoints.

    Endpoints live at ``{functions_url}/{name}`` and accept JSON bodies (or a
    multipart upload for job documents).
    """

    def __init__(
        self,
        functions_url: str,
        api_key: str = "",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            functions_url: Base URL of the function endpoints.
            api_key: Bearer key; omitted when empty.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._functions_url = functions_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
            self._client = httpx.AsyncClient(
                base_url=self._functions_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def analyze_resume(self, resume_path: str, application_id: UUID) -> ResumeAnalysisResult:
        """
        Score a stored resume.

        Args:
            resume_path: Storage path of the resume.
            application_id: Application the resume belongs to.

        Returns:
            The analysis result.
        """
        body = {"resumePath": resume_path, "applicationId": str(application_id)}
        data = await self._invoke("analyze-resume", json=body)
        result = self._parse("analyze-resume", ResumeAnalysisResult, data)
        if not result.success:
            raise AnalysisError("analyze-resume", "function reported failure")
        return result

    async def analyze_video(self, application_id: UUID, video_path: str) -> VideoAnalysisResult:
        """
        Transcribe and analyse a stored video introduction.

        Args:
            application_id: Application the video belongs to.
            video_path: Storage path of the clip.

        Returns:
            The analysis result.
        """
        body = {"applicationId": str(application_id), "videoPath": video_path}
        data = await self._invoke("analyze-video", json=body)
        return self._parse("analyze-video", VideoAnalysisResult, data)

    async def analyze_interview(
        self,
        application_id: UUID,
        job_id: UUID,
        transcript: str,
    ) -> InterviewAnalysisResult:
        """
        Score an interview transcript against the job.

        Args:
            application_id: Interviewed application.
            job_id: Job the interview was for.
            transcript: Newline-joined transcript.

        Returns:
            Score (0-100) and feedback.
        """
        if not transcript.strip():
            raise AnalysisError("analyze-interview", "transcript is empty")
        body = {
            "applicationId": str(application_id),
            "jobId": str(job_id),
            "transcript": transcript,
        }
        data = await self._invoke("analyze-interview", json=body)
        return self._parse("analyze-interview", InterviewAnalysisResult, data)

    async def process_job_document(self, file_path: str | Path) -> JobDocumentExtraction:
        """
        Extract structured job details from a job description document.

        Args:
            file_path: Local PDF/DOC/DOCX file.

        Returns:
            The extracted job details.
        """
        path = Path(file_path)
        if path.suffix.lower() not in ACCEPTED_JOB_DOCUMENTS:
            raise AnalysisError(
                "process-job-document",
                "Invalid file type. Please upload PDF, DOC, or DOCX files only.",
            )
        files = {"file": (path.name, path.read_bytes())}
        data = await self._invoke("process-job-document", files=files)

        # The function may nest its payload under ``extractedContent``.
        content = data.get("extractedContent", data)
        if isinstance(content, str):
            try:
                content = json.loads(content)
            except ValueError as e:
                raise AnalysisError("process-job-document", "extracted content is not JSON") from e
        return self._parse("process-job-document", JobDocumentExtraction, content)

    async def _invoke(self, function: str, **request: Any) -> dict[str, Any]:
        client = await self._get_client()
        logger.debug(f"Invoking analysis function {function}")
        try:
            response = await client.post(f"/{function}", **request)
        except httpx.HTTPError as e:
            logger.warning(f"Analysis function {function} unreachable: {e}")
            raise AnalysisError(function, f"request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            detail = data.get("error") if isinstance(data, dict) else response.text[:200]
            logger.warning(f"Analysis function {function} returned {response.status_code}: {detail}")
            raise AnalysisError(function, str(detail or "error response"), status_code=response.status_code)

        if not isinstance(data, dict):
            raise AnalysisError(function, "response body is not a JSON object", status_code=response.status_code)
        if data.get("error"):
            raise AnalysisError(function, str(data["error"]), status_code=response.status_code)
        return data

    @staticmethod
    def _parse(function: str, model: type[BaseModel], data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Analysis function {function} returned an unexpected body: {e}")
            raise AnalysisError(function, "unexpected response body") from e
