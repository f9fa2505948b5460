"""Internet Archive adapter using the advanced search API."""

from typing import Any

import structlog

from libris.core.ingestion.fetchers.base import (
    ARCHIVE_IDENTIFIER_PATTERN,
    BaseHttpFetcher,
    FetchOptions,
    RawBook,
    SourceMetadata,
)

logger = structlog.get_logger(__name__)

SEARCH_URL = "https://archive.org/advancedsearch.php"
DOWNLOAD_URL = "https://archive.org/download/{identifier}/{identifier}.{format}"
COVER_URL = "https://archive.org/services/img/{identifier}"
DEFAULT_QUERY = "mediatype:texts AND format:pdf AND date:[* TO 1927]"
SEARCH_FIELDS = ("identifier", "title", "creator", "date", "language", "description", "subject")


class InternetArchiveFetcher(BaseHttpFetcher):
    """Pages through public-domain texts on archive.org, most downloaded first."""

    @property
    def source_id(self) -> str:
        return "internet_archive"

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            source_id=self.source_id,
            display_name="Internet Archive",
            description="Public domain texts with PDF scans from archive.org",
            website="https://archive.org",
            supported_formats=("pdf",),
        )

    async def fetch_books(self, options: FetchOptions) -> list[RawBook]:
        query = options.source_specific.get("query", DEFAULT_QUERY)
        if options.language:
            query = f"{query} AND language:({options.language})"
        params: dict[str, Any] = {
            "q": query,
            "fl[]": list(SEARCH_FIELDS),
            "sort[]": "downloads desc",
            "rows": options.batch_size,
            "page": options.page,
            "output": "json",
        }
        logger.info(
            "internet_archive_fetch",
            page=options.page,
            batch_size=options.batch_size,
        )
        data = await self.fetch_json(SEARCH_URL, params=params)
        docs = (data or {}).get("response", {}).get("docs", [])
        self.next_cursor = None
        return [self.parse_book_document(doc) for doc in docs if doc.get("identifier")]

    def parse_book_document(self, doc: dict[str, Any]) -> RawBook:
        identifier = doc["identifier"]
        return {
            "identifier": identifier,
            "title": doc.get("title"),
            "creator": doc.get("creator"),
            "date": doc.get("date"),
            "language": doc.get("language"),
            "description": doc.get("description"),
            "subject": doc.get("subject"),
            "download_url": self.get_download_url(identifier),
            "cover_url": COVER_URL.format(identifier=identifier),
        }

    def get_download_url(self, identifier: str, format: str = "pdf") -> str | None:
        if not identifier or not ARCHIVE_IDENTIFIER_PATTERN.match(identifier):
            return None
        return DOWNLOAD_URL.format(identifier=identifier, format=format)
