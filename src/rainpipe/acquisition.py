"""Walk the configured date range and make sure each daily artifact exists."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
import logging
from typing import Iterable

from rainpipe.errors import PipelineError
from rainpipe.fetcher import RetryingFetcher
from rainpipe.integrity import IntegrityChecker
from rainpipe.storage import ArtifactStore

LOGGER = logging.getLogger("rainpipe.acquisition")


@dataclass
class AcquisitionSummary:
    """Counters accumulated over one acquisition run."""

    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    failed_dates: list[date] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "downloaded": self.downloaded,
            "skipped": self.skipped,
            "failed": self.failed,
            "failed_dates": [day.isoformat() for day in self.failed_dates],
        }


class AcquisitionDriver:
    """Fetch every missing or invalid date; reuse everything that validates."""

    def __init__(self, fetcher: RetryingFetcher, checker: IntegrityChecker, store: ArtifactStore) -> None:
        self.fetcher = fetcher
        self.checker = checker
        self.store = store

    def run(self, dates: Iterable[date]) -> AcquisitionSummary:
        summary = AcquisitionSummary()
        for day in dates:
            try:
                destination = self.store.path_for(day)
            except ValueError as exc:
                LOGGER.warning("Failed to parse date %s: %s", day, exc)
                continue

            if destination.exists() and self.checker.is_valid(destination):
                summary.skipped += 1
                continue

            outcome = self.fetcher.fetch(day, destination)
            if outcome.ok:
                summary.downloaded += 1
            else:
                summary.failed += 1
                summary.failed_dates.append(day)

        LOGGER.info("Download summary:")
        LOGGER.info("- Successfully downloaded: %d", summary.downloaded)
        LOGGER.info("- Already existed: %d", summary.skipped)
        LOGGER.info("- Failed downloads: %d", summary.failed)

        if summary.downloaded == 0 and not self._has_valid_artifact():
            raise PipelineError("No valid daily files available")
        return summary

    def _has_valid_artifact(self) -> bool:
        return any(self.checker.is_valid(artifact.path) for artifact in self.store.list_artifacts())
