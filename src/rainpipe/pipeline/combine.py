"""Join per-site tables into one wide table keyed by date."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Sequence

import pandas as pd

from rainpipe.config import Site

LOGGER = logging.getLogger("rainpipe.pipeline.combine")


class SiteCombiner:
    """
    Build a ``date`` column plus one column per configured site.

    With ``date_policy="first"`` the rows follow the dates of the first site
    (in configured order) that produced a table; ``"union"`` uses every date
    seen in any table. Sites without a value for a row get ``missing_marker``.
    """

    def __init__(self, *, missing_marker: str = "NA", date_policy: str = "first") -> None:
        if date_policy not in ("first", "union"):
            raise ValueError(f"Unknown date policy: {date_policy}")
        self.missing_marker = missing_marker
        self.date_policy = date_policy

    def combine(self, site_tables: Mapping[str, pd.DataFrame], sites: Sequence[Site]) -> pd.DataFrame | None:
        tables = {site.name: site_tables[site.name] for site in sites if site.name in site_tables}
        if not tables:
            LOGGER.warning("No valid site tables found for the combined table")
            return None

        dates = self._canonical_dates(list(tables.values()))
        combined = pd.DataFrame({"date": dates})
        for site in sites:
            table = tables.get(site.name)
            if table is None:
                column = pd.Series(self.missing_marker, index=combined.index, dtype=object)
            else:
                lookup = table.drop_duplicates(subset="date", keep="first").set_index("date")["precipitation"]
                column = combined["date"].map(lookup).astype(object)
                column = column.where(column.notna(), self.missing_marker)
            combined[site.name] = column
        LOGGER.info("Combined table built with %d records and %d sites", len(combined), len(sites))
        return combined

    def _canonical_dates(self, tables: list[pd.DataFrame]) -> list[str]:
        if self.date_policy == "first":
            return list(dict.fromkeys(tables[0]["date"].tolist()))
        return sorted({day for table in tables for day in table["date"].tolist()})


def write_combined(combined: pd.DataFrame, path: Path) -> Path:
    """Write the combined table through a temporary file."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    combined.to_csv(tmp_path, index=False)
    tmp_path.replace(path)
    return path
