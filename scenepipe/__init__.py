"""Scene composition and media processing service."""

__version__ = "0.1.0"
