"""Error types shared across rainpipe stages."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Raised when a failure invalidates the rest of the run."""


class ConfigError(PipelineError, ValueError):
    """Raised when the pipeline configuration is malformed."""
