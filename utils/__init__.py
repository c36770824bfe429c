# utils/__init__.py
"""General utility helpers for the dataset generator."""

from __future__ import annotations

from .logging import setup_logging

__all__ = ["setup_logging"]
