"""Per-date download with validation, retries, and atomic publish."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from pathlib import Path
from typing import Callable

from rainpipe.backends.base import BackendError, FetchBackend
from rainpipe.backends.urls import build_daily_url
from rainpipe.integrity import IntegrityChecker
from rainpipe.retry import RetryPolicy

LOGGER = logging.getLogger("rainpipe.fetcher")

UrlBuilder = Callable[[date], str]


@dataclass(frozen=True)
class FetchOutcome:
    """Terminal result of fetching one date."""

    day: date
    ok: bool
    attempts: int
    path: Path | None = None
    error: str | None = None


def temp_path_for(destination: Path) -> Path:
    return destination.with_name(destination.name + ".tmp")


class RetryingFetcher:
    """Download one daily artifact, retrying until it validates or attempts run out."""

    def __init__(
        self,
        backend: FetchBackend,
        checker: IntegrityChecker,
        *,
        policy: RetryPolicy | None = None,
        url_builder: UrlBuilder | None = None,
    ) -> None:
        self.backend = backend
        self.checker = checker
        self.policy = policy or RetryPolicy()
        self.url_builder = url_builder or build_daily_url

    def fetch(self, day: date, destination: Path) -> FetchOutcome:
        """
        Retrieve ``day`` into ``destination``.

        Every attempt writes to ``<destination>.tmp``; only a copy that passes
        the integrity checker is renamed into place. A failed or invalid
        attempt leaves nothing behind.
        """

        url = self.url_builder(day)
        tmp_path = temp_path_for(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        last_error: str | None = None
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                self.backend.download(url, tmp_path)
            except (BackendError, OSError) as exc:
                last_error = str(exc)
                LOGGER.warning("Download attempt %d failed for %s: %s", attempt, destination.name, exc)
            else:
                reason = self.checker.check(tmp_path)
                if reason is None:
                    tmp_path.replace(destination)
                    LOGGER.info("Downloaded %s", destination.name)
                    return FetchOutcome(day=day, ok=True, attempts=attempt, path=destination)
                last_error = f"invalid download: {reason}"
                LOGGER.warning("Invalid download %s on attempt %d: %s", tmp_path.name, attempt, reason)
            tmp_path.unlink(missing_ok=True)
            self.policy.pause(attempt)

        LOGGER.error(
            "Giving up on %s after %d attempts: %s",
            destination.name,
            self.policy.max_attempts,
            last_error,
        )
        return FetchOutcome(
            day=day,
            ok=False,
            attempts=self.policy.max_attempts,
            error=last_error,
        )
