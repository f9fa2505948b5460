"""Catalog source fetcher adapters."""

from libris.core.ingestion.fetchers.base import (
    REQUIRED_CAPABILITIES,
    BaseHttpFetcher,
    BookFetcher,
    FetchOptions,
    RawBook,
    SourceMetadata,
)
from libris.core.ingestion.fetchers.gutenberg import GutenbergFetcher
from libris.core.ingestion.fetchers.internet_archive import InternetArchiveFetcher
from libris.core.ingestion.fetchers.open_library import OpenLibraryFetcher

__all__ = [
    "REQUIRED_CAPABILITIES",
    "BaseHttpFetcher",
    "BookFetcher",
    "FetchOptions",
    "GutenbergFetcher",
    "InternetArchiveFetcher",
    "OpenLibraryFetcher",
    "RawBook",
    "SourceMetadata",
]
