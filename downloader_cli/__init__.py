"""Command line interface for the download jobs service."""

__version__ = "1.0.0"
