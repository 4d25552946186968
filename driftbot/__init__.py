"""Rigour drift-analysis GitHub App."""

__version__ = "1.0.0"
