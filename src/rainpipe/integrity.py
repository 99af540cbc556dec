"""Integrity checks for downloaded and derived NetCDF artifacts."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import xarray as xr

LOGGER = logging.getLogger("rainpipe.integrity")

HeaderReader = Callable[[Path], None]


def read_netcdf_header(path: Path) -> None:
    """Open ``path`` lazily so only the header and coordinates are parsed."""

    ds = xr.open_dataset(path, decode_times=False)
    ds.close()


class IntegrityChecker:
    """Validate that an artifact exists, is large enough, and parses."""

    def __init__(self, min_size: int = 1000, header_reader: HeaderReader | None = None) -> None:
        self.min_size = min_size
        self.header_reader = header_reader or read_netcdf_header

    def check(self, path: Path | str) -> str | None:
        """
        Return why ``path`` is invalid, or ``None`` when every check passes.

        The checks run in order and stop at the first failure: existence,
        minimum size (guards against empty or error-page downloads), and a
        structural header read (guards against truncated binaries).
        """

        path = Path(path)
        if not path.is_file():
            return "file missing"
        size = path.stat().st_size
        if size < self.min_size:
            return f"file too small ({size} < {self.min_size} bytes)"
        try:
            self.header_reader(path)
        except Exception as exc:  # any parser failure means the file is unusable
            return f"corrupt NetCDF ({exc})"
        return None

    def is_valid(self, path: Path | str) -> bool:
        reason = self.check(path)
        if reason is None:
            return True
        if reason == "file missing":
            LOGGER.debug("Artifact %s is missing", path)
        else:
            LOGGER.warning("Invalid artifact %s: %s", path, reason)
        return False
