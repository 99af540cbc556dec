"""Command-line entry point for rainpipe."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path

import click

from rainpipe.config import ENGINE_CHOICES, PipelineConfig, parse_sites
from rainpipe.errors import PipelineError
from rainpipe.runner import PipelineRunner

LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"


def configure_logging(level: str, log_dir: Path | None = None) -> Path | None:
    """Log to stderr and, when ``log_dir`` is given, to a timestamped file in it."""

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(handler, logging.StreamHandler) for handler in root.handlers):
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(stream)
    if log_dir is None:
        return None
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"process_{datetime.now():%Y%m%d_%H%M%S}.log"
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s " + LOG_FORMAT))
    root.addHandler(file_handler)
    return log_path


@click.command()
@click.option("--start", "start_date", help="First date to fetch (YYYY-MM-DD).")
@click.option("--end", "end_date", help="Last date to fetch (YYYY-MM-DD); clamped to today.")
@click.option("--data-dir", type=click.Path(path_type=Path), help="Root data directory.")
@click.option("--engine", type=click.Choice(ENGINE_CHOICES), help="Grid engine for merge and extraction.")
@click.option("--site", "sites", multiple=True, help="Site as NAME=LAT,LON; repeat for more sites.")
@click.option("--no-archive", is_flag=True, help="Skip the final tar.gz archive.")
@click.option("--log-level", help="Logging level (default from RAINPIPE_LOG_LEVEL).")
def main(
    start_date: str | None,
    end_date: str | None,
    data_dir: Path | None,
    engine: str | None,
    sites: tuple[str, ...],
    no_archive: bool,
    log_level: str | None,
) -> None:
    """
    Download daily TAMSAT rainfall, merge it, and extract site time series.
    """

    try:
        config = PipelineConfig.from_env().with_overrides(
            start_date=start_date,
            end_date=end_date,
            data_dir=data_dir,
            engine=engine,
            sites=parse_sites(list(sites)) if sites else None,
            archive=False if no_archive else None,
            log_level=log_level.upper() if log_level else None,
        )
        layout = config.layout.ensure()
    except PipelineError as exc:
        configure_logging(log_level or "INFO")
        logging.getLogger("rainpipe.cli").error("%s", exc)
        raise SystemExit(1) from exc

    log_path = configure_logging(config.log_level, layout.logs)
    logger = logging.getLogger("rainpipe.cli")
    logger.info("=== Rainfall processing started; log file %s ===", log_path)
    try:
        report = PipelineRunner(config).run()
    except PipelineError as exc:
        logger.error("Run aborted: %s", exc)
        raise SystemExit(1) from exc

    summary = report.acquisition
    click.echo(
        f"Downloaded {summary.downloaded}, skipped {summary.skipped}, failed {summary.failed}; "
        f"{len(report.site_tables)} of {len(config.sites)} sites extracted"
    )
    if report.archive_path is not None:
        click.echo(f"Archive: {report.archive_path}")


if __name__ == "__main__":
    main()
