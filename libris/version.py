"""Version information for Libris."""

__version__ = "0.1.0"
