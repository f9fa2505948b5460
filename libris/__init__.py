"""Libris: multi-source book catalog ingestion engine."""

from libris.version import __version__

__all__ = ["__version__"]
