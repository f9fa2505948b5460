"""Download, validate and archive book PDFs into bucket storage.

A book's upstream download link is fetched, checked for the ``%PDF`` header
and a size ceiling, then uploaded to ``{bucket}/{source}/{identifier}.pdf``.
The stored book points at the bucket's public URL, which is derived from the
bucket and path alone.
"""

import re

import httpx
import structlog

from libris.config import Settings
from libris.core.ingestion.metadata_mapper import NormalizedBook
from libris.core.ports import ObjectStorage
from libris.utils.exceptions import PdfValidationError, StorageError

logger = structlog.get_logger(__name__)

PDF_MAGIC_BYTES = b"%PDF"
PDF_CONTENT_TYPE = "application/pdf"
MAX_FILENAME_LENGTH = 200
DEFAULT_MAX_SIZE_BYTES = 100 * 1024 * 1024

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def sanitize_filename(identifier: str) -> str:
    """
    Turn a source identifier into a safe object name (without extension).

    Runs of anything but letters, digits, ``-`` and ``_`` collapse to one
    underscore; leading and trailing underscores are trimmed.

    Raises:
        ValueError: If identifier is empty
    """
    if not identifier:
        raise ValueError("identifier is required")
    sanitized = _UNSAFE_FILENAME_CHARS.sub("_", identifier).strip("_")
    return (sanitized or "unnamed")[:MAX_FILENAME_LENGTH]


def storage_path(source: str, identifier: str) -> str:
    return f"{source}/{sanitize_filename(identifier)}.pdf"


def is_valid_pdf(content: bytes) -> bool:
    return content.startswith(PDF_MAGIC_BYTES)


class PdfDownloader:
    """
    Streams a PDF into memory, enforcing a size ceiling.

    Args:
        client: Optional httpx.AsyncClient (tests pass one with a mock transport)
        timeout: Request timeout in seconds
        max_size_bytes: Largest accepted file
        user_agent: User-Agent header value
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        user_agent: str = "LibrisBot/1.0",
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.max_size_bytes = max_size_bytes
        self.user_agent = user_agent

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def download_and_validate(self, url: str) -> bytes:
        """
        Download a PDF and check it.

        Args:
            url: Upstream download URL

        Returns:
            The file content

        Raises:
            PdfValidationError: On HTTP errors, timeouts, oversize or non-PDF content
        """
        if not url:
            raise PdfValidationError("No PDF URL to download")

        try:
            async with self._get_client().stream("GET", url) as response:
                if response.is_error:
                    raise PdfValidationError(
                        f"PDF download failed with HTTP {response.status_code}: {url}"
                    )
                declared = response.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_size_bytes:
                    raise PdfValidationError(
                        f"PDF too large: {declared} bytes (max {self.max_size_bytes})"
                    )

                content = bytearray()
                async for chunk in response.aiter_bytes():
                    content.extend(chunk)
                    if len(content) > self.max_size_bytes:
                        raise PdfValidationError(
                            f"PDF too large: more than {self.max_size_bytes} bytes"
                        )
        except httpx.HTTPError as e:
            raise PdfValidationError(f"PDF download failed: {e}") from e

        if not content:
            raise PdfValidationError(f"Downloaded file is empty: {url}")
        if not is_valid_pdf(bytes(content)):
            raise PdfValidationError(f"Downloaded file is not a PDF: {url}")

        logger.debug("pdf_validated", url=url, size=len(content))
        return bytes(content)


class SupabaseStorage:
    """
    Object storage over the Supabase Storage REST API.

    Uploads never overwrite: when the object already exists (a concurrent or
    earlier upload) its public URL is returned instead of an error.

    Args:
        base_url: Project URL, e.g. https://xyz.supabase.co
        service_key: Service role key used as the bearer token
        bucket: Public bucket name
        client: Optional httpx.AsyncClient
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = "books",
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self._service_key = service_key
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload(
        self, path: str, content: bytes, content_type: str = PDF_CONTENT_TYPE
    ) -> str:
        """
        Upload an object and return its public URL.

        Raises:
            StorageError: If the upload is rejected or the request fails
        """
        if not content:
            raise StorageError(f"Refusing to upload empty object {path}")

        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"
        try:
            response = await self._get_client().post(
                url,
                content=content,
                headers={
                    "Authorization": f"Bearer {self._service_key}",
                    "apikey": self._service_key,
                    "Content-Type": content_type,
                    "x-upsert": "false",
                },
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Storage upload failed for {path}: {e}") from e

        if self._already_exists(response):
            logger.info("storage_object_exists", bucket=self.bucket, path=path)
            return self.public_url(path)
        if response.is_error:
            raise StorageError(
                f"Storage upload failed for {path}: HTTP {response.status_code} {response.text}"
            )

        logger.info("storage_object_uploaded", bucket=self.bucket, path=path, size=len(content))
        return self.public_url(path)

    @staticmethod
    def _already_exists(response: httpx.Response) -> bool:
        if response.status_code == 409:
            return True
        return response.status_code == 400 and "already exists" in response.text.lower()


class PdfArchiver:
    """
    Copies a book's PDF from its source into bucket storage.

    Args:
        storage: Object storage the PDF is uploaded to
        downloader: Downloads and validates the upstream file
    """

    def __init__(self, storage: ObjectStorage, downloader: PdfDownloader | None = None):
        self.storage = storage
        self.downloader = downloader or PdfDownloader()

    async def archive(self, book: NormalizedBook) -> str:
        """
        Download, validate and upload a book's PDF.

        Returns:
            Public URL of the stored copy

        Raises:
            PdfValidationError: If the upstream file is unusable
            StorageError: If the upload fails
        """
        if not book.pdf_url:
            raise PdfValidationError(f"Book {book.source_identifier} has no PDF URL")
        content = await self.downloader.download_and_validate(book.pdf_url)
        return await self.storage.upload(
            storage_path(book.source, book.source_identifier), content, PDF_CONTENT_TYPE
        )

    async def close(self) -> None:
        await self.downloader.close()
        await self.storage.close()


def create_pdf_archiver(settings: Settings) -> PdfArchiver | None:
    """Build an archiver from settings, or None when storage is not configured."""
    if not settings.storage_url or not settings.storage_service_key:
        return None
    storage = SupabaseStorage(
        base_url=settings.storage_url,
        service_key=settings.storage_service_key.get_secret_value(),
        bucket=settings.storage_bucket,
    )
    downloader = PdfDownloader(
        timeout=settings.pdf_download_timeout_seconds,
        max_size_bytes=settings.pdf_max_size_mb * 1024 * 1024,
        user_agent=settings.http_user_agent,
    )
    return PdfArchiver(storage, downloader)
