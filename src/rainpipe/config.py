"""Shared configuration helpers for rainpipe."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
import logging
import math
import os
from pathlib import Path
from typing import Iterator, Mapping, Sequence

from rainpipe.backends.urls import TAMSAT_BASE_URL as DEFAULT_BASE_URL
from rainpipe.errors import ConfigError

LOGGER = logging.getLogger("rainpipe.config")

DEFAULT_DATA_DIR = Path("~/TAMSAT_Data")
DEFAULT_START_DATE = "2023-01-01"
DEFAULT_END_DATE = "2025-07-25"
DEFAULT_SITES = "Mekelle=13.50,39.47;Adigrat=14.28,39.46;Axum=14.12,38.72"

ENGINE_CHOICES = ("xarray", "cdo")
DATE_POLICIES = ("first", "union")


def _resolve_path_from_env(name: str, default: Path) -> Path:
    value = os.environ.get(name)
    candidate = Path(value) if value else default
    return candidate.expanduser()


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def _env_choice(name: str, default: str, choices: Sequence[str]) -> str:
    value = os.environ.get(name, default).strip().lower() or default
    if value not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists."""

    path.mkdir(parents=True, exist_ok=True)
    return path


def parse_date(value: str | date, *, label: str = "date") -> date:
    """Parse an ISO ``YYYY-MM-DD`` value, raising :class:`ConfigError` on bad input."""

    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value.strip())
    except (AttributeError, ValueError) as exc:
        raise ConfigError(f"Malformed {label}: {value!r}") from exc


@dataclass(frozen=True)
class Site:
    """A named point location for extraction."""

    name: str
    lat: float
    lon: float

    def __post_init__(self) -> None:
        name = self.name.strip() if isinstance(self.name, str) else ""
        if not name:
            raise ConfigError("Site names must be non-empty")
        if any(sep in name for sep in ("/", "\\", ",")) or name in {".", ".."}:
            raise ConfigError(f"Site name {name!r} cannot be used as a file name")
        for label, value in (("latitude", self.lat), ("longitude", self.lon)):
            if not isinstance(value, (int, float)) or math.isnan(value):
                raise ConfigError(f"Site {name} has a non-numeric {label}")
        if not -90.0 <= self.lat <= 90.0:
            raise ConfigError(f"Site {name} latitude {self.lat} is outside [-90, 90]")
        if not -180.0 <= self.lon <= 360.0:
            raise ConfigError(f"Site {name} longitude {self.lon} is outside [-180, 360]")
        object.__setattr__(self, "name", name)


def parse_site(entry: str) -> Site:
    """Parse a ``NAME=LAT,LON`` fragment."""

    if "=" not in entry:
        raise ConfigError(f"Site entry {entry!r} must look like NAME=LAT,LON")
    name, coords = entry.split("=", 1)
    parts = [part.strip() for part in coords.split(",")]
    if len(parts) != 2:
        raise ConfigError(f"Site entry {entry!r} must have exactly two coordinates")
    try:
        lat, lon = float(parts[0]), float(parts[1])
    except ValueError as exc:
        raise ConfigError(f"Site entry {entry!r} has non-numeric coordinates") from exc
    return Site(name=name, lat=lat, lon=lon)


def parse_sites(value: str | Sequence[str]) -> tuple[Site, ...]:
    """Parse ``;``-separated site entries, preserving order."""

    entries = value.split(";") if isinstance(value, str) else list(value)
    sites = tuple(parse_site(entry.strip()) for entry in entries if entry and entry.strip())
    return validate_sites(sites)


def validate_sites(sites: Sequence[Site] | Mapping[str, tuple[float, float]]) -> tuple[Site, ...]:
    """Return sites as an ordered tuple after checking names are unique."""

    if isinstance(sites, Mapping):
        sites = [Site(name=name, lat=lat, lon=lon) for name, (lat, lon) in sites.items()]
    seen: set[str] = set()
    for site in sites:
        if site.name in seen:
            raise ConfigError(f"Duplicate site name: {site.name}")
        seen.add(site.name)
    return tuple(sites)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range of daily artifacts to acquire."""

    start: date
    end: date

    @classmethod
    def resolve(cls, start: str | date, end: str | date, *, today: date | None = None) -> "DateRange":
        """Build a range, clamping ``end`` to today and rejecting future starts."""

        today = today or date.today()
        start_day = parse_date(start, label="start date")
        end_day = parse_date(end, label="end date")
        if start_day > today:
            raise ConfigError(f"Start date {start_day} cannot be in the future")
        if end_day > today:
            LOGGER.info("Adjusted end date %s to today: %s", end_day, today)
            end_day = today
        if start_day > end_day:
            raise ConfigError(f"Start date {start_day} is after end date {end_day}")
        return cls(start=start_day, end=end_day)

    def __iter__(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def __len__(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class DataLayout:
    """Directory structure below the data root."""

    root: Path

    @property
    def daily(self) -> Path:
        return self.root / "daily"

    @property
    def series(self) -> Path:
        return self.root / "series"

    @property
    def monthly(self) -> Path:
        return self.root / "monthly"

    @property
    def seasonal(self) -> Path:
        return self.root / "seasonal"

    @property
    def sites(self) -> Path:
        return self.root / "sites"

    @property
    def combined(self) -> Path:
        return self.root / "combined"

    @property
    def logs(self) -> Path:
        return self.root / "logs"

    @property
    def tmp(self) -> Path:
        return self.root / "tmp"

    @property
    def full_series(self) -> Path:
        return self.series / "full_timeseries.nc"

    @property
    def monthly_totals(self) -> Path:
        return self.monthly / "monthly_totals.nc"

    @property
    def seasonal_totals(self) -> Path:
        return self.seasonal / "seasonal_totals.nc"

    @property
    def combined_csv(self) -> Path:
        return self.combined / "all_sites.csv"

    def site_csv(self, name: str) -> Path:
        return self.sites / f"{name}.csv"

    def ensure(self) -> "DataLayout":
        """Create every directory in the layout."""

        try:
            for path in (
                self.daily,
                self.series,
                self.monthly,
                self.seasonal,
                self.sites,
                self.combined,
                self.logs,
                self.tmp,
            ):
                ensure_dir(path)
        except OSError as exc:
            raise ConfigError(f"Failed to create directories under {self.root}: {exc}") from exc
        return self


@dataclass(frozen=True)
class PipelineConfig:
    """Every option recognised by the pipeline."""

    data_dir: Path = DEFAULT_DATA_DIR.expanduser()
    start_date: str = DEFAULT_START_DATE
    end_date: str = DEFAULT_END_DATE
    min_file_size: int = 1000
    max_retries: int = 3
    retry_backoff: float = 5.0
    merge_threads: int = 4
    merge_timeout: float = 3600.0
    fallback_timeout: float = 5400.0
    sites: tuple[Site, ...] = field(default_factory=lambda: parse_sites(DEFAULT_SITES))
    base_url: str = DEFAULT_BASE_URL
    version: str = "v3.1"
    variable: str = "rfe_filled"
    sentinel: float = -999.9
    missing_marker: str = "NA"
    engine: str = "xarray"
    combine_dates: str = "first"
    archive: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ConfigError("max_retries must be at least 1")
        if self.merge_threads < 1:
            raise ConfigError("merge_threads must be at least 1")
        if self.min_file_size < 0:
            raise ConfigError("min_file_size cannot be negative")
        if not math.isfinite(self.retry_backoff) or self.retry_backoff < 0:
            raise ConfigError(f"retry_backoff must be a non-negative number, got {self.retry_backoff}")
        for label, value in (("merge_timeout", self.merge_timeout), ("fallback_timeout", self.fallback_timeout)):
            if not math.isfinite(value) or value <= 0:
                raise ConfigError(f"{label} must be a positive number of seconds, got {value}")
        if self.engine not in ENGINE_CHOICES:
            raise ConfigError(f"Unknown engine {self.engine!r}")
        if self.combine_dates not in DATE_POLICIES:
            raise ConfigError(f"Unknown combine date policy {self.combine_dates!r}")
        object.__setattr__(self, "sites", validate_sites(self.sites))

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        sites_raw = os.environ.get("RAINPIPE_SITES", "").strip() or DEFAULT_SITES
        return cls(
            data_dir=_resolve_path_from_env("RAINPIPE_DATA_DIR", DEFAULT_DATA_DIR),
            start_date=os.environ.get("RAINPIPE_START_DATE", DEFAULT_START_DATE),
            end_date=os.environ.get("RAINPIPE_END_DATE", DEFAULT_END_DATE),
            min_file_size=_env_int("RAINPIPE_MIN_FILE_SIZE", 1000),
            max_retries=_env_int("RAINPIPE_MAX_RETRIES", 3, minimum=1),
            retry_backoff=_env_float("RAINPIPE_RETRY_BACKOFF", 5.0),
            merge_threads=_env_int("RAINPIPE_MERGE_THREADS", 4, minimum=1),
            merge_timeout=_env_float("RAINPIPE_MERGE_TIMEOUT", 3600.0),
            fallback_timeout=_env_float("RAINPIPE_FALLBACK_TIMEOUT", 5400.0),
            sites=parse_sites(sites_raw),
            base_url=os.environ.get("RAINPIPE_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            version=os.environ.get("RAINPIPE_VERSION", "v3.1"),
            variable=os.environ.get("RAINPIPE_VARIABLE", "rfe_filled"),
            sentinel=_env_float("RAINPIPE_SENTINEL", -999.9),
            missing_marker=os.environ.get("RAINPIPE_MISSING_MARKER", "NA"),
            engine=_env_choice("RAINPIPE_ENGINE", "xarray", ENGINE_CHOICES),
            combine_dates=_env_choice("RAINPIPE_COMBINE_DATES", "first", DATE_POLICIES),
            log_level=os.environ.get("RAINPIPE_LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(self, **overrides: object) -> "PipelineConfig":
        """Return a copy with the non-``None`` overrides applied."""

        values = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **values)

    def date_range(self, *, today: date | None = None) -> DateRange:
        return DateRange.resolve(self.start_date, self.end_date, today=today)

    @property
    def layout(self) -> DataLayout:
        return DataLayout(Path(self.data_dir).expanduser())
