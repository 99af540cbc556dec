"""Pipeline stages that turn daily grids into site tables."""

from __future__ import annotations

from .aggregate import AggregateResult, TemporalAggregator
from .combine import SiteCombiner, write_combined
from .consolidate import ConsolidationResult, MergeSettings, TimeseriesConsolidator
from .extract import ExtractionResult, SiteExtractor, to_site_table

__all__ = [
    "AggregateResult",
    "ConsolidationResult",
    "ExtractionResult",
    "MergeSettings",
    "SiteCombiner",
    "SiteExtractor",
    "TemporalAggregator",
    "TimeseriesConsolidator",
    "to_site_table",
    "write_combined",
]
