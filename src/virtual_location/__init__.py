"""Virtual location route replay service."""

__version__ = "0.1.0"
