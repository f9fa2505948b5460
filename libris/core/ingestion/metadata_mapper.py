"""Normalize source-specific book records into the canonical catalog schema."""

import re
import time
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

import structlog

from libris.core.ingestion.taxonomy import validate_genres, validate_subgenre

logger = structlog.get_logger(__name__)

RawBook = dict[str, Any]

UNKNOWN_AUTHOR = "Unknown Author"
UNTITLED = "Untitled"

MIN_YEAR = 1000
MAX_YEAR = 2999

# Tried in order; the first match inside [MIN_YEAR, MAX_YEAR] wins.
YEAR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(\d{4})$"),
    re.compile(r"^(\d{4})-\d{2}-\d{2}"),
    re.compile(r"^(\d{4})/\d{2}/\d{2}"),
    re.compile(r"circa\s*(\d{4})", re.IGNORECASE),
    re.compile(r"c\.\s*(\d{4})", re.IGNORECASE),
    re.compile(r"\[(\d{4})\]"),
    re.compile(r"(\d{4})"),
)

# canonical field -> source field; sources not listed use canonical names as-is
SOURCE_FIELD_MAPPINGS: dict[str, dict[str, str]] = {
    "internet_archive": {
        "identifier": "identifier",
        "title": "title",
        "creator": "creator",
        "date": "date",
        "language": "language",
        "description": "description",
    },
    "project_gutenberg": {
        "identifier": "id",
        "title": "title",
        "creator": "author",
        "date": "issued",
        "language": "language",
        "description": "description",
    },
    "open_library": {
        "identifier": "key",
        "title": "title",
        "creator": "author_name",
        "date": "first_publish_year",
        "language": "language",
        "description": "description",
    },
    "standard_ebooks": {
        "identifier": "id",
        "title": "title",
        "creator": "author",
        "date": "published",
        "language": "language",
        "description": "summary",
    },
}

LANGUAGE_ALIASES: dict[str, str] = {
    "english": "eng",
    "en": "eng",
    "en-us": "eng",
    "en-gb": "eng",
    "french": "fre",
    "fr": "fre",
    "german": "ger",
    "de": "ger",
    "spanish": "spa",
    "es": "spa",
    "italian": "ita",
    "it": "ita",
    "portuguese": "por",
    "pt": "por",
    "russian": "rus",
    "ru": "rus",
    "chinese": "chi",
    "zh": "chi",
    "japanese": "jpn",
    "ja": "jpn",
}


@dataclass
class NormalizedBook:
    """A book record in the canonical schema, ready for filtering and insert."""

    title: str
    author: str
    year: int | None
    language: str | None
    description: str | None
    source: str
    source_identifier: str
    pdf_url: str | None = None
    cover_url: str | None = None
    genres: list[str] = field(default_factory=list)
    subgenre: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MetadataMapper:
    """
    Maps raw source records onto NormalizedBook.

    Each source names its fields differently (Open Library calls the author
    ``author_name``, Gutenberg calls the identifier ``id``...). The mapper
    first renames fields using SOURCE_FIELD_MAPPINGS and then cleans each
    canonical field independently, so a single malformed field degrades to
    its default instead of rejecting the whole record.

    Example:
        ```python
        mapper = MetadataMapper()
        book = mapper.normalize(
            {"key": "/works/OL1W", "title": "Walden", "author_name": ["H. D. Thoreau"]},
            "open_library",
        )
        assert book.source_identifier == "/works/OL1W"
        ```
    """

    def normalize(self, raw_book: Mapping[str, Any], source_id: str) -> NormalizedBook:
        """
        Normalize one raw record.

        Args:
            raw_book: Source-specific record
            source_id: Id of the source the record came from

        Returns:
            NormalizedBook

        Raises:
            ValueError: If raw_book or source_id is missing
            TypeError: If raw_book is not a mapping
        """
        if raw_book is None:
            raise ValueError("raw_book is required")
        if not isinstance(raw_book, Mapping):
            raise TypeError(f"raw_book must be a mapping, got {type(raw_book).__name__}")
        if not source_id:
            raise ValueError("source_id is required")

        fields = self.apply_source_transforms(raw_book, source_id)

        return NormalizedBook(
            title=self.normalize_title(fields.get("title")),
            author=self.normalize_author(fields.get("creator")),
            year=self.extract_year(fields.get("date")),
            language=self.normalize_language(fields.get("language")),
            description=self.normalize_description(fields.get("description")),
            source=source_id,
            source_identifier=self.normalize_identifier(fields.get("identifier"), source_id),
            pdf_url=fields.get("download_url") or None,
            cover_url=fields.get("cover_url") or None,
            genres=validate_genres(self._as_list(fields.get("genres"))),
            subgenre=validate_subgenre(fields.get("subgenre")),
        )

    def normalize_all(
        self, raw_books: Iterable[Mapping[str, Any] | None], source_id: str
    ) -> list[NormalizedBook]:
        """Normalize a batch, dropping (and logging) records that fail."""
        normalized: list[NormalizedBook] = []
        for index, raw_book in enumerate(raw_books):
            if raw_book is None:
                continue
            try:
                normalized.append(self.normalize(raw_book, source_id))
            except Exception as e:
                logger.warning(
                    "book_normalization_failed",
                    source_id=source_id,
                    index=index,
                    error=str(e),
                )
        return normalized

    def apply_source_transforms(
        self, raw_book: Mapping[str, Any], source_id: str
    ) -> dict[str, Any]:
        mapping = SOURCE_FIELD_MAPPINGS.get(source_id)
        if mapping is None:
            transformed = dict(raw_book)
        else:
            transformed = {}
            for canonical, source_field in mapping.items():
                value = raw_book.get(source_field)
                transformed[canonical] = value if value is not None else raw_book.get(canonical)

        for passthrough in ("download_url", "cover_url", "subgenre"):
            if passthrough in raw_book:
                transformed[passthrough] = raw_book[passthrough]
        genres = raw_book.get("genres")
        transformed["genres"] = genres if genres is not None else raw_book.get("subject")
        return transformed

    def extract_year(self, value: Any) -> int | None:
        """
        Extract a four-digit year from assorted date shapes.

        Args:
            value: Year as int, or a string such as "1850", "1850-03-01",
                "circa 1850", "c. 1850" or "[1850]"

        Returns:
            Year in [1000, 2999], or None
        """
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value if self.is_valid_year(value) else None

        text = str(value).strip()
        if not text:
            return None

        for pattern in YEAR_PATTERNS:
            match = pattern.search(text)
            if match:
                year = int(match.group(1))
                if self.is_valid_year(year):
                    return year
        return None

    @staticmethod
    def is_valid_year(year: int) -> bool:
        return MIN_YEAR <= year <= MAX_YEAR

    def normalize_author(self, creator: Any) -> str:
        if not creator:
            return UNKNOWN_AUTHOR

        if isinstance(creator, list):
            names = [
                name.strip() for name in creator if isinstance(name, str) and name.strip()
            ]
            return ", ".join(names) if names else UNKNOWN_AUTHOR

        if isinstance(creator, str):
            return creator.strip() or UNKNOWN_AUTHOR

        if isinstance(creator, Mapping):
            name = creator.get("name")
            if isinstance(name, str) and name.strip():
                return name.strip()

        return UNKNOWN_AUTHOR

    def normalize_title(self, title: Any) -> str:
        if not isinstance(title, str):
            return UNTITLED
        return title.strip() or UNTITLED

    def normalize_language(self, language: Any) -> str | None:
        if isinstance(language, list):
            language = language[0] if language else None
        if not isinstance(language, str):
            return None
        code = language.strip().lower()
        if not code:
            return None
        return LANGUAGE_ALIASES.get(code, code[:3])

    def normalize_description(self, description: Any) -> str | None:
        if isinstance(description, list):
            description = " ".join(d for d in description if isinstance(d, str))
        if not isinstance(description, str):
            return None
        return description.strip() or None

    def normalize_identifier(self, identifier: Any, source_id: str) -> str:
        if identifier is None or str(identifier).strip() == "":
            return f"{source_id}_unknown_{int(time.time() * 1000)}"
        return str(identifier).strip()

    @staticmethod
    def is_synthesized_identifier(identifier: str, source_id: str) -> bool:
        """Whether the identifier was made up because the record carried none."""
        return identifier.startswith(f"{source_id}_unknown_")

    @staticmethod
    def _as_list(value: Any) -> list[Any]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return value
        return []
