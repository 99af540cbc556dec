"""Build the continuous time series from the daily artifacts."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Callable, Sequence

from rainpipe.engines.base import EngineError, GridEngine
from rainpipe.integrity import IntegrityChecker
from rainpipe.storage import DailyArtifact

LOGGER = logging.getLogger("rainpipe.pipeline.consolidate")


@dataclass(frozen=True)
class MergeSettings:
    threads: int = 4
    timeout: float = 3600.0
    fallback_timeout: float = 5400.0


@dataclass(frozen=True)
class ConsolidationResult:
    ready: bool
    path: Path
    strategy: str | None = None
    reason: str | None = None


class TimeseriesConsolidator:
    """
    Merge daily artifacts into one series, trying a parallel merge first and a
    file-list merge second.

    An existing target is returned as-is without comparing it to newer daily
    files; delete the target to force a rebuild.
    """

    def __init__(
        self,
        engine: GridEngine,
        checker: IntegrityChecker,
        tmp_dir: Path,
        settings: MergeSettings | None = None,
    ) -> None:
        self.engine = engine
        self.checker = checker
        self.tmp_dir = Path(tmp_dir)
        self.settings = settings or MergeSettings()

    def consolidate(self, artifacts: Sequence[DailyArtifact | Path], target: Path) -> ConsolidationResult:
        if target.exists():
            LOGGER.info("Skipping: full timeseries already exists at %s", target)
            return ConsolidationResult(ready=True, path=target, strategy="cached")

        paths = _chronological(artifacts)
        if not paths:
            LOGGER.error("No daily files found to merge")
            return ConsolidationResult(ready=False, path=target, reason="no input")

        target.parent.mkdir(parents=True, exist_ok=True)
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        LOGGER.info("Merging %d daily files with the %s engine", len(paths), self.engine.name)

        primary_tmp = target.with_name(target.name + ".parallel.tmp")
        reason = self._attempt(
            "parallel",
            primary_tmp,
            lambda: self.engine.merge_time(
                paths, primary_tmp, threads=self.settings.threads, timeout=self.settings.timeout
            ),
        )
        if reason is None:
            return self._publish(primary_tmp, target, "parallel")

        LOGGER.warning("Standard merge failed (%s), trying file-list merge", reason)
        manifest = self.tmp_dir / "filelist.txt"
        manifest.write_text("".join(f"{path}\n" for path in paths), encoding="utf-8")
        fallback_tmp = target.with_name(target.name + ".filelist.tmp")
        reason = self._attempt(
            "filelist",
            fallback_tmp,
            lambda: self.engine.merge_time_from_list(
                manifest,
                fallback_tmp,
                threads=self.settings.threads,
                timeout=self.settings.fallback_timeout,
            ),
        )
        if reason is None:
            return self._publish(fallback_tmp, target, "filelist")

        LOGGER.error("All merge attempts failed: %s", reason)
        return ConsolidationResult(ready=False, path=target, reason=reason)

    def _attempt(self, strategy: str, tmp_path: Path, merge: Callable[[], None]) -> str | None:
        tmp_path.unlink(missing_ok=True)
        try:
            merge()
        except EngineError as exc:
            tmp_path.unlink(missing_ok=True)
            return f"{strategy} merge: {exc}"
        invalid = self.checker.check(tmp_path)
        if invalid is not None:
            tmp_path.unlink(missing_ok=True)
            return f"{strategy} merge produced an invalid file: {invalid}"
        return None

    def _publish(self, tmp_path: Path, target: Path, strategy: str) -> ConsolidationResult:
        tmp_path.replace(target)
        LOGGER.info("Created full timeseries %s (%s merge)", target, strategy)
        return ConsolidationResult(ready=True, path=target, strategy=strategy)


def _chronological(artifacts: Sequence[DailyArtifact | Path]) -> list[Path]:
    if all(isinstance(item, DailyArtifact) for item in artifacts):
        ordered = sorted(artifacts, key=lambda item: item.day)
        return [item.path for item in ordered]
    # Daily file names are zero-padded by date, so name order is chronological.
    return sorted(Path(item) for item in artifacts)
