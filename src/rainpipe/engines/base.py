"""Interface to the grid engine that merges, samples, and aggregates series."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

import pandas as pd

PERIOD_CHOICES = ("monthly", "seasonal")


class EngineError(Exception):
    """Raised when the grid engine fails or runs out of time."""


class GridEngine(ABC):
    """Abstract base class for grid engines."""

    name: str = "engine"

    @abstractmethod
    def merge_time(self, paths: Sequence[Path], out_path: Path, *, threads: int, timeout: float) -> None:
        """Concatenate ``paths`` along time into ``out_path`` using ``threads`` workers."""

    @abstractmethod
    def merge_time_from_list(self, list_path: Path, out_path: Path, *, threads: int, timeout: float) -> None:
        """Concatenate the files named one-per-line in ``list_path`` into ``out_path``."""

    @abstractmethod
    def extract_point(self, path: Path, lat: float, lon: float, variable: str) -> pd.DataFrame:
        """Return ``date``/``value`` rows for the grid cell nearest ``lat``/``lon``."""

    @abstractmethod
    def aggregate(self, path: Path, out_path: Path, *, period: str, timeout: float) -> None:
        """Write time sums of ``path`` over ``period`` (monthly or seasonal) to ``out_path``."""


def read_file_list(list_path: Path) -> list[Path]:
    """Return the non-blank paths named in a manifest file."""

    with list_path.open("r", encoding="utf-8") as handle:
        return [Path(line.strip()) for line in handle if line.strip()]
