"""Point time series for configured sites."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path

import numpy as np
import pandas as pd

from rainpipe.config import Site
from rainpipe.engines.base import EngineError, GridEngine

LOGGER = logging.getLogger("rainpipe.pipeline.extract")

SITE_COLUMNS = ("date", "precipitation")
STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_EMPTY = "empty"


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of extracting one site; ``table`` is set only when ``status`` is ok."""

    site: Site
    status: str
    table: pd.DataFrame | None = None
    path: Path | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def to_site_table(raw: pd.DataFrame, sentinel: float) -> pd.DataFrame:
    """
    Reformat engine output into ``date``/``precipitation`` rows.

    Rows whose value equals ``sentinel`` or is not a number are dropped rather
    than kept as nulls.
    """

    if raw.empty:
        return pd.DataFrame(columns=list(SITE_COLUMNS))
    dates = pd.to_datetime(raw["date"], errors="coerce")
    values = pd.to_numeric(raw["value"], errors="coerce")
    table = pd.DataFrame({"date": dates, "precipitation": values.astype(float)})
    keep = table["date"].notna() & table["precipitation"].notna()
    keep &= ~np.isclose(table["precipitation"].fillna(0.0), sentinel)
    table = table.loc[keep].sort_values("date").drop_duplicates(subset="date", keep="first")
    table["date"] = table["date"].dt.strftime("%Y-%m-%d")
    return table.reset_index(drop=True)


class SiteExtractor:
    """Sample the consolidated series at one site and write its table."""

    def __init__(
        self,
        engine: GridEngine,
        *,
        variable: str = "rfe_filled",
        sentinel: float = -999.9,
        output_dir: Path | None = None,
    ) -> None:
        self.engine = engine
        self.variable = variable
        self.sentinel = sentinel
        self.output_dir = output_dir

    def extract(self, series: Path, site: Site) -> ExtractionResult:
        LOGGER.info("Extracting data for %s (lat %s, lon %s)", site.name, site.lat, site.lon)
        try:
            raw = self.engine.extract_point(series, site.lat, site.lon, self.variable)
        except EngineError as exc:
            LOGGER.warning("Failed to extract data for %s: %s", site.name, exc)
            self._discard(site)
            return ExtractionResult(site=site, status=STATUS_FAILED, reason=str(exc))

        table = to_site_table(raw, self.sentinel)
        if table.empty:
            LOGGER.warning("No valid data for %s", site.name)
            self._discard(site)
            return ExtractionResult(site=site, status=STATUS_EMPTY, reason="no valid rows")

        path = self._write(site, table)
        LOGGER.info("Extracted %s with %d valid records", site.name, len(table))
        return ExtractionResult(site=site, status=STATUS_OK, table=table, path=path)

    def _write(self, site: Site, table: pd.DataFrame) -> Path | None:
        if self.output_dir is None:
            return None
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"{site.name}.csv"
        tmp_path = path.with_name(path.name + ".tmp")
        table.to_csv(tmp_path, index=False)
        tmp_path.replace(path)
        return path

    def _discard(self, site: Site) -> None:
        # A table left over from an earlier run would no longer match the series.
        if self.output_dir is not None:
            (self.output_dir / f"{site.name}.csv").unlink(missing_ok=True)
