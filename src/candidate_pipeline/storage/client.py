"""
Object storage client.

Talks to a Supabase-compatible storage REST API: binary uploads keyed by a
namespaced path, and time-limited signed URLs for later retrieval.
"""

from __future__ import annotations

import logging
import re
import time
import unicodedata
from uuid import UUID

import httpx

from candidate_pipeline.errors import StorageError, UploadError
from candidate_pipeline.pipeline.schemas import ArtifactKind

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")
_REPEATED_DOTS = re.compile(r"\.{2,}")


def sanitize_filename(filename: str) -> str:
    """
    Reduce a file name to ``[A-Za-z0-9._-]``.

    Accents are folded to ASCII where possible; any other character run
    becomes a single underscore.
    """
    folded = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    cleaned = _UNSAFE_CHARS.sub("_", folded)
    cleaned = _REPEATED_DOTS.sub(".", cleaned)
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned).strip("._-")
    return cleaned or "file"


def build_artifact_path(
    application_id: UUID | str,
    kind: ArtifactKind,
    filename: str,
    timestamp_ms: int | None = None,
) -> str:
    """
    Build ``{application_id}/{kind}/{timestamp}_{sanitized_name}``.

    The millisecond timestamp keeps re-submissions from colliding.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{application_id}/{kind.value}/{timestamp_ms}_{sanitize_filename(filename)}"


class StorageClient:
    """
    Client for the artifact bucket.

    Uploads are upserts; every artifact path is unique per submission so an
    earlier object is left orphaned rather than overwritten.
    """

    def __init__(
        self,
        base_url: str,
        bucket: str,
        service_key: str = "",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the storage client.

        Args:
            base_url: Storage API base URL (e.g. ``.../storage/v1``).
            bucket: Bucket name.
            service_key: Bearer key; omitted from headers when empty.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self._base_url = base_url.rstrip("/")
        self._bucket = bucket
        self._service_key = service_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def bucket(self) -> str:
        return self._bucket

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            headers = {}
            if self._service_key:
                headers["Authorization"] = f"Bearer {self._service_key}"
                headers["apikey"] = self._service_key
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
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

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Upload an artifact.

        Args:
            path: Namespaced object path.
            data: Object contents.
            content_type: MIME type stored with the object.

        Returns:
            The stored path.

        Raises:
            UploadError: The upload did not land.
        """
        if not data:
            raise UploadError(f"Refusing to upload empty object to {path}")

        client = await self._get_client()
        try:
            response = await client.post(
                f"/object/{self._bucket}/{path}",
                content=data,
                headers={"Content-Type": content_type, "x-upsert": "true"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Upload of {path} failed: {e}")
            raise UploadError(f"Upload failed: {e}") from e

        if response.is_error:
            logger.warning(f"Upload of {path} rejected: {response.status_code} {response.text[:200]}")
            raise UploadError(
                f"Upload rejected with status {response.status_code}",
                status_code=response.status_code,
            )

        logger.info(f"Uploaded {len(data)} bytes to {self._bucket}/{path}")
        return path

    async def create_signed_url(self, path: str, expires_in: int = 3600) -> str:
        """
        Create a time-limited retrieval URL.

        Args:
            path: Stored object path.
            expires_in: Lifetime in seconds.

        Returns:
            Absolute signed URL.

        Raises:
            StorageError: The URL could not be created.
        """
        client = await self._get_client()
        try:
            response = await client.post(
                f"/object/sign/{self._bucket}/{path}",
                json={"expiresIn": expires_in},
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Signing failed: {e}") from e

        if response.is_error:
            raise StorageError(
                f"Signing rejected with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise StorageError("Signing response was not JSON") from e
        signed = body.get("signedURL") or body.get("signedUrl") if isinstance(body, dict) else None
        if not signed:
            raise StorageError("Signing response did not include a URL")

        if signed.startswith("http://") or signed.startswith("https://"):
            return signed
        return f"{self._base_url}/{signed.lstrip('/')}"
