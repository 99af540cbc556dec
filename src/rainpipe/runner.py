"""Orchestrate acquisition, consolidation, extraction, and archiving."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
import json
import logging
from pathlib import Path

import pandas as pd

from rainpipe.acquisition import AcquisitionDriver, AcquisitionSummary
from rainpipe.archive import create_archive, validation_report
from rainpipe.backends.base import FetchBackend
from rainpipe.backends.http_backend import HttpBackend
from rainpipe.backends.urls import build_daily_url
from rainpipe.config import DateRange, PipelineConfig
from rainpipe.engines import build_engine
from rainpipe.engines.base import GridEngine
from rainpipe.errors import PipelineError
from rainpipe.fetcher import RetryingFetcher
from rainpipe.integrity import IntegrityChecker
from rainpipe.pipeline import (
    AggregateResult,
    ConsolidationResult,
    ExtractionResult,
    MergeSettings,
    SiteCombiner,
    SiteExtractor,
    TemporalAggregator,
    TimeseriesConsolidator,
    write_combined,
)
from rainpipe.retry import RetryPolicy
from rainpipe.storage import ArtifactStore, DailyArtifact, LocalArtifactStore

LOGGER = logging.getLogger("rainpipe.runner")
STATUS_NAME = "run_status.json"


@dataclass
class RunReport:
    """What a run produced; serialised into the status document."""

    acquisition: AcquisitionSummary | None = None
    consolidation: ConsolidationResult | None = None
    aggregates: list[AggregateResult] = field(default_factory=list)
    sites: list[ExtractionResult] = field(default_factory=list)
    combined: pd.DataFrame | None = None
    combined_path: Path | None = None
    archive_path: Path | None = None

    @property
    def skipped_sites(self) -> list[str]:
        return [result.site.name for result in self.sites if not result.ok]

    @property
    def site_tables(self) -> dict[str, pd.DataFrame]:
        return {result.site.name: result.table for result in self.sites if result.ok and result.table is not None}


class PipelineRunner:
    """Execute a full acquire → merge → aggregate → extract → combine workflow."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        backend: FetchBackend | None = None,
        engine: GridEngine | None = None,
        store: ArtifactStore | None = None,
        checker: IntegrityChecker | None = None,
        retry_policy: RetryPolicy | None = None,
        today: date | None = None,
    ) -> None:
        self.config = config
        self.layout = config.layout
        self.backend = backend or HttpBackend()
        self.engine = engine or build_engine(config.engine)
        self.store = store or LocalArtifactStore(self.layout.daily, version=config.version)
        self.checker = checker or IntegrityChecker(config.min_file_size)
        self.retry_policy = retry_policy or RetryPolicy(config.max_retries, config.retry_backoff)
        self.today = today

    def run(self) -> RunReport:
        """Run every stage; per-date and per-site failures are reported, the rest raise."""

        report = RunReport()
        date_range = self.config.date_range(today=self.today)
        self.layout.ensure()
        LOGGER.info("Processing period: %s to %s", date_range.start, date_range.end)
        try:
            self._run_stages(date_range, report)
            self._write_status(report, success=True, detail=None)
            if self.config.archive:
                report.archive_path = create_archive(self.layout)
        except PipelineError as exc:
            LOGGER.error("%s", exc)
            self._write_status(report, success=False, detail=str(exc))
            raise
        finally:
            for line in validation_report(self.layout, self.checker):
                LOGGER.info("%s", line)
        return report

    def _run_stages(self, date_range: DateRange, report: RunReport) -> None:
        LOGGER.info("=== Step 1: downloading daily data ===")
        fetcher = RetryingFetcher(
            self.backend,
            self.checker,
            policy=self.retry_policy,
            url_builder=self._url_for,
        )
        driver = AcquisitionDriver(fetcher, self.checker, self.store)
        report.acquisition = driver.run(date_range)

        LOGGER.info("=== Step 2: merging the full timeseries ===")
        artifacts = self._valid_artifacts()
        if not artifacts:
            raise PipelineError("No valid daily files found to process")
        consolidator = TimeseriesConsolidator(
            self.engine,
            self.checker,
            self.layout.tmp,
            MergeSettings(
                threads=self.config.merge_threads,
                timeout=self.config.merge_timeout,
                fallback_timeout=self.config.fallback_timeout,
            ),
        )
        report.consolidation = consolidator.consolidate(artifacts, self.layout.full_series)
        if not report.consolidation.ready:
            raise PipelineError(f"All merge attempts failed: {report.consolidation.reason}")

        series = self.layout.full_series
        invalid = self.checker.check(series)
        if invalid is not None:
            raise PipelineError(f"Cannot extract site data: full timeseries {series} is invalid ({invalid})")

        LOGGER.info("=== Step 3: monthly and seasonal totals ===")
        aggregator = TemporalAggregator(self.engine, self.checker, timeout=self.config.merge_timeout)
        report.aggregates = [
            aggregator.aggregate(series, self.layout.monthly_totals, "monthly"),
            aggregator.aggregate(series, self.layout.seasonal_totals, "seasonal"),
        ]

        LOGGER.info("=== Step 4: extracting site data ===")
        extractor = SiteExtractor(
            self.engine,
            variable=self.config.variable,
            sentinel=self.config.sentinel,
            output_dir=self.layout.sites,
        )
        report.sites = [extractor.extract(series, site) for site in self.config.sites]
        if report.skipped_sites:
            LOGGER.warning("Skipped sites: %s", ", ".join(report.skipped_sites))

        combiner = SiteCombiner(
            missing_marker=self.config.missing_marker,
            date_policy=self.config.combine_dates,
        )
        report.combined = combiner.combine(report.site_tables, self.config.sites)
        if report.combined is not None:
            report.combined_path = write_combined(report.combined, self.layout.combined_csv)
        else:
            self.layout.combined_csv.unlink(missing_ok=True)

    def _valid_artifacts(self) -> list[DailyArtifact]:
        valid = []
        for artifact in self.store.list_artifacts():
            if self.checker.is_valid(artifact.path):
                valid.append(artifact)
            else:
                LOGGER.warning("Excluding invalid daily file %s from the merge", artifact.path.name)
        return valid

    def _url_for(self, day: date) -> str:
        return build_daily_url(day, base_url=self.config.base_url, version=self.config.version)

    def _write_status(self, report: RunReport, *, success: bool, detail: str | None) -> None:
        status: dict[str, object] = {
            "generated_at": datetime.now().isoformat(timespec="seconds"),
            "success": success,
            "engine": self.engine.name,
            "acquisition": report.acquisition.as_dict() if report.acquisition else None,
            "consolidation": None,
            "aggregates": {
                result.period: {"ok": result.ok, "cached": result.cached, "reason": result.reason}
                for result in report.aggregates
            },
            "sites": {
                result.site.name: {
                    "status": result.status,
                    "records": len(result.table) if result.table is not None else 0,
                    "reason": result.reason,
                }
                for result in report.sites
            },
            "skipped_sites": report.skipped_sites,
            "combined": str(report.combined_path) if report.combined_path else None,
        }
        if report.consolidation is not None:
            status["consolidation"] = {
                "ready": report.consolidation.ready,
                "strategy": report.consolidation.strategy,
                "reason": report.consolidation.reason,
            }
        if detail:
            status["detail"] = detail
        self.layout.logs.mkdir(parents=True, exist_ok=True)
        path = self.layout.logs / STATUS_NAME
        with path.open("w", encoding="utf-8") as handle:
            json.dump(status, handle, indent=2, sort_keys=True)
