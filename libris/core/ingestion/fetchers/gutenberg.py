"""Project Gutenberg adapter using the Gutendex JSON API.

Gutendex paginates with a ``next`` URL, so this adapter is cursor based: the
cursor is the next page URL returned by the previous call.
"""

from typing import Any

import structlog

from libris.core.ingestion.fetchers.base import (
    BaseHttpFetcher,
    FetchOptions,
    RawBook,
    SourceMetadata,
)

logger = structlog.get_logger(__name__)

BOOKS_URL = "https://gutendex.com/books"
MIME_TYPES = {
    "pdf": "application/pdf",
    "epub": "application/epub+zip",
    "txt": "text/plain; charset=utf-8",
}


class GutenbergFetcher(BaseHttpFetcher):
    """Pages through Project Gutenberg titles, most popular first."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._formats: dict[str, dict[str, str]] = {}

    @property
    def source_id(self) -> str:
        return "project_gutenberg"

    @property
    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            source_id=self.source_id,
            display_name="Project Gutenberg",
            description="Over 70,000 free public domain eBooks",
            website="https://www.gutenberg.org",
            supported_formats=("epub", "txt", "pdf"),
            default_rate_limit_ms=2000,
            default_batch_size=32,
        )

    async def fetch_books(self, options: FetchOptions) -> list[RawBook]:
        if options.cursor:
            data = await self.fetch_json(options.cursor)
        else:
            params: dict[str, Any] = {"page": options.page, "sort": "popular"}
            if options.language:
                params["languages"] = options.language
            # Gutendex answers 404 past the last page
            data = await self.fetch_json(BOOKS_URL, params=params, allow_not_found=True)
        data = data or {}
        self.next_cursor = data.get("next")
        logger.info(
            "gutenberg_fetch",
            page=options.page,
            cursor=options.cursor,
            has_next=self.next_cursor is not None,
        )
        return [self.parse_book_document(doc) for doc in data.get("results", [])]

    def parse_book_document(self, doc: dict[str, Any]) -> RawBook:
        identifier = str(doc.get("id", ""))
        formats = doc.get("formats") or {}
        self._formats[identifier] = formats
        cover_url = next(
            (url for mime, url in formats.items() if mime.startswith("image/")),
            None,
        )
        return {
            "id": identifier,
            "title": doc.get("title"),
            "author": [a.get("name") for a in doc.get("authors", []) if a.get("name")],
            "language": doc.get("languages"),
            "subject": (doc.get("bookshelves") or []) + (doc.get("subjects") or []),
            "download_url": self.get_download_url(identifier),
            "cover_url": cover_url,
        }

    def get_download_url(self, identifier: str, format: str = "pdf") -> str | None:
        """Use the format link Gutendex reported, else the canonical ebook URL."""
        if not identifier or not identifier.isdigit():
            return None
        formats = self._formats.get(identifier, {})
        mime = MIME_TYPES.get(format)
        for key, url in formats.items():
            if mime and key.startswith(mime.split(";")[0]):
                return url
        if format == "epub":
            return f"https://www.gutenberg.org/ebooks/{identifier}.epub.images"
        return f"https://www.gutenberg.org/ebooks/{identifier}"
