"""Open Library adapter using the search API."""

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

SEARCH_URL = "https://openlibrary.org/search.json"
COVER_URL = "https://covers.openlibrary.org/b/id/{cover_id}-L.jpg"
ARCHIVE_DOWNLOAD_URL = "https://archive.org/download/{ia_id}/{ia_id}.{format}"
DEFAULT_QUERY = "has_fulltext:true AND public_scan_b:true"
SEARCH_FIELDS = "key,title,author_name,first_publish_year,language,subject,cover_i,ia"


class OpenLibraryFetcher(BaseHttpFetcher):
    """Pages through Open Library works that have a public scan."""

    @property
    def source_id(self) -> str:
        return "open_library"

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            source_id=self.source_id,
            display_name="Open Library",
            description="Open, editable library catalog with borrowable and public scans",
            website="https://openlibrary.org",
            supported_formats=("pdf", "epub"),
            default_rate_limit_ms=1000,
        )

    async def fetch_books(self, options: FetchOptions) -> list[RawBook]:
        params: dict[str, Any] = {
            "q": options.source_specific.get("query", DEFAULT_QUERY),
            "fields": SEARCH_FIELDS,
            "limit": options.batch_size,
            "page": options.page,
        }
        if options.language:
            params["language"] = options.language
        logger.info("open_library_fetch", page=options.page, batch_size=options.batch_size)
        data = await self.fetch_json(SEARCH_URL, params=params)
        self.next_cursor = None
        return [self.parse_book_document(doc) for doc in (data or {}).get("docs", [])]

    def parse_book_document(self, doc: dict[str, Any]) -> RawBook:
        ia_ids = doc.get("ia") or []
        cover_id = doc.get("cover_i")
        return {
            "key": doc.get("key"),
            "title": doc.get("title"),
            "author_name": doc.get("author_name"),
            "first_publish_year": doc.get("first_publish_year"),
            "language": doc.get("language"),
            "subject": doc.get("subject"),
            "download_url": self.get_download_url(ia_ids[0]) if ia_ids else None,
            "cover_url": COVER_URL.format(cover_id=cover_id) if cover_id else None,
        }

    def get_download_url(self, identifier: str, format: str = "pdf") -> str | None:
        """Open Library scans are served from the Internet Archive item (not the work key)."""
        if not identifier or not ARCHIVE_IDENTIFIER_PATTERN.match(identifier):
            return None
        return ARCHIVE_DOWNLOAD_URL.format(ia_id=identifier, format=format)
