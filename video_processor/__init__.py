"""Inspection video merge-and-publish service."""

__version__ = "1.0.0"
