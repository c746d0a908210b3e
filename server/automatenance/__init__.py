"""Automatenance maintenance prediction service."""

__version__ = "1.0.0"
