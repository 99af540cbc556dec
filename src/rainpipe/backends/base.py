"""Core interface for retrieving remote daily artifacts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class BackendError(Exception):
    """Raised when a backend cannot satisfy a request."""


class FetchBackend(ABC):
    """Abstract base class for transport backends."""

    @abstractmethod
    def download(self, url: str, out_path: Path) -> None:
        """Write the payload at ``url`` to ``out_path`` or raise :class:`BackendError`."""
