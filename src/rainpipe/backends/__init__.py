"""Backend implementations for fetching daily artifacts."""

from __future__ import annotations

from .base import BackendError, FetchBackend
from .http_backend import HttpBackend
from .urls import build_daily_url, build_filename

__all__ = ["BackendError", "FetchBackend", "HttpBackend", "build_daily_url", "build_filename"]
