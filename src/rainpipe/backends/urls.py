"""Helper utilities for constructing TAMSAT download URLs."""

from __future__ import annotations

from datetime import date

TAMSAT_BASE_URL = "https://gws-access.jasmin.ac.uk/public/tamsat/rfe/data/v3.1/daily"
FILE_PREFIX = "rfe"
FILE_EXT = "nc"


def build_filename(day: date, *, version: str = "v3.1", prefix: str = FILE_PREFIX, ext: str = FILE_EXT) -> str:
    """Return the daily file name, e.g. ``rfe2024_01_05.v3.1.nc``."""

    return f"{prefix}{day:%Y}_{day:%m}_{day:%d}.{version}.{ext}"


def build_daily_url(
    day: date,
    *,
    base_url: str = TAMSAT_BASE_URL,
    version: str = "v3.1",
    prefix: str = FILE_PREFIX,
    ext: str = FILE_EXT,
) -> str:
    """Return the URL of the daily file, laid out by year and month."""

    filename = build_filename(day, version=version, prefix=prefix, ext=ext)
    return f"{base_url.rstrip('/')}/{day:%Y}/{day:%m}/{filename}"
