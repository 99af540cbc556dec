from datetime import datetime
import tarfile

import pytest

from rainpipe.archive import create_archive, validation_report
from rainpipe.config import DataLayout
from rainpipe.errors import PipelineError
from rainpipe.integrity import IntegrityChecker


def test_archive_bundles_non_empty_directories(tmp_path):
    layout = DataLayout(tmp_path).ensure()
    (layout.daily / "rfe2024_01_01.v3.1.nc").write_bytes(b"CDF")
    (layout.sites / "Axum.csv").write_text("date,precipitation\n")

    path = create_archive(layout, now=datetime(2024, 5, 1, 12, 30, 0))

    assert path == tmp_path / "rainpipe_20240501_123000.tar.gz"
    with tarfile.open(path) as tar:
        names = tar.getnames()
    assert "daily/rfe2024_01_01.v3.1.nc" in names
    assert "sites/Axum.csv" in names
    assert not any(name.startswith("monthly") for name in names)


def test_archive_skipped_without_content(tmp_path, caplog):
    layout = DataLayout(tmp_path).ensure()
    assert create_archive(layout) is None
    assert "No directories with content" in caplog.text


def test_archive_failure_is_fatal(tmp_path, monkeypatch):
    layout = DataLayout(tmp_path).ensure()
    (layout.logs / "process.log").write_text("started\n")

    def broken_open(*args, **kwargs):
        raise tarfile.TarError("disk full")

    monkeypatch.setattr("rainpipe.archive.tarfile.open", broken_open)
    with pytest.raises(PipelineError, match="disk full"):
        create_archive(layout)


def test_validation_report_flags_missing_and_invalid(tmp_path):
    layout = DataLayout(tmp_path).ensure()
    layout.full_series.write_bytes(b"\x00" * 32)
    layout.combined_csv.write_text("date,Axum\n")

    def read_header(path):
        raise ValueError("bad magic")

    lines = validation_report(layout, IntegrityChecker(min_size=8, header_reader=read_header))

    assert lines[0].startswith("[INVALID] Full Timeseries")
    assert lines[1].startswith("[MISSING] Monthly Totals")
    assert lines[3].startswith("[VALID]   Combined CSV")
    assert "Site CSVs:      0" in lines
