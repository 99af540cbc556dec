"""Monthly and seasonal totals derived from the consolidated series."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

from rainpipe.engines.base import EngineError, GridEngine
from rainpipe.integrity import IntegrityChecker

LOGGER = logging.getLogger("rainpipe.pipeline.aggregate")


@dataclass(frozen=True)
class AggregateResult:
    period: str
    ok: bool
    path: Path
    cached: bool = False
    reason: str | None = None


class TemporalAggregator:
    """Write time sums of the consolidated series, skipping targets that exist."""

    def __init__(self, engine: GridEngine, checker: IntegrityChecker, *, timeout: float = 3600.0) -> None:
        self.engine = engine
        self.checker = checker
        self.timeout = timeout

    def aggregate(self, series: Path, target: Path, period: str) -> AggregateResult:
        if target.exists():
            LOGGER.info("Skipping: %s totals already exist at %s", period, target)
            return AggregateResult(period=period, ok=True, path=target, cached=True)

        target.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = target.with_name(target.name + ".tmp")
        tmp_path.unlink(missing_ok=True)
        try:
            self.engine.aggregate(series, tmp_path, period=period, timeout=self.timeout)
        except EngineError as exc:
            tmp_path.unlink(missing_ok=True)
            LOGGER.warning("Failed to build %s totals: %s", period, exc)
            return AggregateResult(period=period, ok=False, path=target, reason=str(exc))

        invalid = self.checker.check(tmp_path)
        if invalid is not None:
            tmp_path.unlink(missing_ok=True)
            LOGGER.warning("Discarding invalid %s totals: %s", period, invalid)
            return AggregateResult(period=period, ok=False, path=target, reason=invalid)

        tmp_path.replace(target)
        LOGGER.info("Created %s totals %s", period, target)
        return AggregateResult(period=period, ok=True, path=target)
