"""Archive bundling and the end-of-run validation report."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
import tarfile

from rainpipe.config import DataLayout
from rainpipe.errors import PipelineError
from rainpipe.integrity import IntegrityChecker

LOGGER = logging.getLogger("rainpipe.archive")

ARCHIVE_DIRS = ("daily", "monthly", "seasonal", "sites", "combined", "logs")


def _has_content(path: Path) -> bool:
    return path.is_dir() and any(path.iterdir())


def create_archive(layout: DataLayout, *, now: datetime | None = None) -> Path | None:
    """
    Bundle every non-empty output directory into ``rainpipe_<timestamp>.tar.gz``.

    Returns ``None`` when nothing has content. Raises :class:`PipelineError`
    if the archive cannot be written.
    """

    dirs = [name for name in ARCHIVE_DIRS if _has_content(layout.root / name)]
    if not dirs:
        LOGGER.warning("No directories with content to archive")
        return None

    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    archive_path = layout.root / f"rainpipe_{stamp}.tar.gz"
    LOGGER.info("Archiving: %s", " ".join(dirs))
    try:
        with tarfile.open(archive_path, "w:gz") as tar:
            for name in dirs:
                tar.add(layout.root / name, arcname=name)
    except (tarfile.TarError, OSError) as exc:
        archive_path.unlink(missing_ok=True)
        raise PipelineError(f"Failed to create archive {archive_path}: {exc}") from exc

    size_mb = archive_path.stat().st_size / 1_048_576
    LOGGER.info("Created archive %s (%.1f MB)", archive_path.name, size_mb)
    return archive_path


def validation_report(layout: DataLayout, checker: IntegrityChecker) -> list[str]:
    """Return ``[VALID]``/``[INVALID]``/``[MISSING]`` lines plus output counts."""

    checks = (
        ("Full Timeseries", layout.full_series),
        ("Monthly Totals", layout.monthly_totals),
        ("Seasonal Totals", layout.seasonal_totals),
        ("Combined CSV", layout.combined_csv),
    )
    lines: list[str] = []
    for label, path in checks:
        if not path.exists():
            lines.append(f"[MISSING] {label}: {path}")
        elif path.suffix == ".nc" and checker.check(path) is not None:
            lines.append(f"[INVALID] {label}: {path} (corrupt)")
        else:
            lines.append(f"[VALID]   {label}: {path}")

    counts = (
        ("Daily Files", layout.daily, "*.nc"),
        ("Monthly Files", layout.monthly, "*.nc"),
        ("Seasonal Files", layout.seasonal, "*.nc"),
        ("Site CSVs", layout.sites, "*.csv"),
    )
    for label, directory, pattern in counts:
        total = len(list(directory.glob(pattern))) if directory.is_dir() else 0
        lines.append(f"{label + ':':<16}{total}")
    return lines
