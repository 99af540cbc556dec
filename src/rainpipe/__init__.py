"""Daily rainfall acquisition, consolidation, and site extraction."""

from __future__ import annotations

__version__ = "0.1.0"
