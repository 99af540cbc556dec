from datetime import date
import json
from pathlib import Path

import pandas as pd
import pytest

from rainpipe.backends.base import BackendError, FetchBackend
from rainpipe.config import PipelineConfig, Site
from rainpipe.engines.base import EngineError, GridEngine
from rainpipe.errors import ConfigError, PipelineError
from rainpipe.integrity import IntegrityChecker
from rainpipe.retry import RetryPolicy
from rainpipe.runner import PipelineRunner

VALID_PAYLOAD = b"CDF\x01" + b"\x00" * 64
TODAY = date(2024, 6, 1)
SITES = (Site("Mekelle", 13.5, 39.47), Site("Axum", 14.12, 38.72))


def _read_header(path: Path) -> None:
    if not path.read_bytes().startswith(b"CDF"):
        raise ValueError("not a NetCDF file")


class DummyBackend(FetchBackend):
    def __init__(self, failing_names=()):
        self.failing_names = set(failing_names)
        self.urls: list[str] = []

    def download(self, url: str, out_path: Path) -> None:
        self.urls.append(url)
        if url.rsplit("/", 1)[-1] in self.failing_names:
            raise BackendError("HTTP 503")
        out_path.write_bytes(VALID_PAYLOAD)


class DummyEngine(GridEngine):
    name = "dummy"

    def __init__(self, *, merge="ok", failing_sites=(), empty_sites=()):
        self.merge = merge
        self.failing_sites = set(failing_sites)
        self.empty_sites = set(empty_sites)
        self.merged: list[Path] = []

    def merge_time(self, paths, out_path, *, threads, timeout):
        self.merged = list(paths)
        self._produce(out_path)

    def merge_time_from_list(self, list_path, out_path, *, threads, timeout):
        self._produce(out_path)

    def extract_point(self, path, lat, lon, variable):
        if lat in self.failing_sites:
            raise EngineError(f"no grid cell near {lat}")
        if lat in self.empty_sites:
            return pd.DataFrame({"date": ["2024-01-01"], "value": [-999.9]})
        return pd.DataFrame(
            {"date": ["2024-01-01", "2024-01-02", "2024-01-03"], "value": [lat, lat + 1.0, -999.9]}
        )

    def aggregate(self, path, out_path, *, period, timeout):
        out_path.write_bytes(VALID_PAYLOAD)

    def _produce(self, out_path):
        if self.merge == "error":
            raise EngineError("mergetime exited 1")
        out_path.write_bytes(VALID_PAYLOAD)


def _config(tmp_path, **overrides):
    values = dict(
        data_dir=tmp_path,
        start_date="2024-01-01",
        end_date="2024-01-03",
        sites=SITES,
        archive=False,
    )
    values.update(overrides)
    return PipelineConfig(**values)


def _runner(config, engine=None, backend=None):
    return PipelineRunner(
        config,
        backend=backend or DummyBackend(),
        engine=engine or DummyEngine(),
        checker=IntegrityChecker(min_size=16, header_reader=_read_header),
        retry_policy=RetryPolicy(max_attempts=2, backoff_unit=5.0, sleep=lambda seconds: None),
        today=TODAY,
    )


def _status(tmp_path):
    with (tmp_path / "logs" / "run_status.json").open() as handle:
        return json.load(handle)


def test_full_run_produces_site_and_combined_tables(tmp_path):
    backend = DummyBackend()
    engine = DummyEngine()

    report = _runner(_config(tmp_path), engine=engine, backend=backend).run()

    assert report.acquisition.as_dict()["downloaded"] == 3
    assert report.acquisition.skipped == 0
    assert report.acquisition.failed == 0
    assert backend.urls[0].endswith("/2024/01/rfe2024_01_01.v3.1.nc")
    assert [path.name for path in engine.merged] == [
        "rfe2024_01_01.v3.1.nc",
        "rfe2024_01_02.v3.1.nc",
        "rfe2024_01_03.v3.1.nc",
    ]
    assert report.consolidation.strategy == "parallel"
    assert (tmp_path / "series" / "full_timeseries.nc").exists()
    assert all(result.ok for result in report.aggregates)

    assert sorted(report.site_tables) == ["Axum", "Mekelle"]
    mekelle = pd.read_csv(tmp_path / "sites" / "Mekelle.csv")
    assert list(mekelle.columns) == ["date", "precipitation"]
    assert mekelle["precipitation"].tolist() == [13.5, 14.5]

    combined = report.combined
    assert list(combined.columns) == ["date", "Mekelle", "Axum"]
    assert combined["date"].tolist() == ["2024-01-01", "2024-01-02"]
    assert report.combined_path == tmp_path / "combined" / "all_sites.csv"

    status = _status(tmp_path)
    assert status["success"] is True
    assert status["consolidation"]["strategy"] == "parallel"
    assert status["sites"]["Axum"]["records"] == 2


def test_rerun_reuses_existing_outputs(tmp_path):
    _runner(_config(tmp_path)).run()
    backend = DummyBackend()

    report = _runner(_config(tmp_path), backend=backend).run()

    assert backend.urls == []
    assert report.acquisition.skipped == 3
    assert report.consolidation.strategy == "cached"
    assert all(result.cached for result in report.aggregates)


def test_corrupt_daily_file_is_refetched(tmp_path):
    daily = tmp_path / "daily"
    daily.mkdir(parents=True)
    corrupt = daily / "rfe2024_01_02.v3.1.nc"
    corrupt.write_bytes(b"\x00" * 64)
    backend = DummyBackend()

    report = _runner(_config(tmp_path), backend=backend).run()

    assert report.acquisition.downloaded == 3
    assert any(url.endswith("rfe2024_01_02.v3.1.nc") for url in backend.urls)
    assert corrupt.read_bytes() == VALID_PAYLOAD


def test_unrecoverable_corrupt_day_is_left_out_of_the_merge(tmp_path):
    daily = tmp_path / "daily"
    daily.mkdir(parents=True)
    (daily / "rfe2024_01_02.v3.1.nc").write_bytes(b"\x00" * 64)
    backend = DummyBackend(failing_names={"rfe2024_01_02.v3.1.nc"})
    engine = DummyEngine()

    report = _runner(_config(tmp_path), engine=engine, backend=backend).run()

    assert report.acquisition.failed == 1
    assert report.consolidation.ready
    assert [path.name for path in engine.merged] == ["rfe2024_01_01.v3.1.nc", "rfe2024_01_03.v3.1.nc"]
    assert _status(tmp_path)["success"] is True


def test_failed_site_is_skipped_and_marked_missing(tmp_path):
    engine = DummyEngine(failing_sites={14.12})

    report = _runner(_config(tmp_path), engine=engine).run()

    assert report.skipped_sites == ["Axum"]
    assert not (tmp_path / "sites" / "Axum.csv").exists()
    assert report.combined["Axum"].tolist() == ["NA", "NA"]
    assert report.combined["Mekelle"].tolist() == [13.5, 14.5]
    assert _status(tmp_path)["sites"]["Axum"]["status"] == "failed"


def test_no_site_tables_skips_combined_output(tmp_path):
    engine = DummyEngine(failing_sites={13.5}, empty_sites={14.12})

    report = _runner(_config(tmp_path), engine=engine).run()

    assert report.site_tables == {}
    assert report.combined is None
    assert not (tmp_path / "combined" / "all_sites.csv").exists()
    assert _status(tmp_path)["sites"]["Axum"]["status"] == "empty"


def test_future_start_date_is_rejected(tmp_path):
    config = _config(tmp_path, start_date="2030-01-01", end_date="2030-01-05")
    with pytest.raises(ConfigError):
        _runner(config).run()


def test_end_date_is_clamped_to_today(tmp_path):
    backend = DummyBackend()
    config = _config(tmp_path, start_date="2024-05-31", end_date="2024-12-31")

    report = _runner(config, backend=backend).run()

    assert report.acquisition.downloaded == 2
    assert backend.urls[-1].endswith("rfe2024_06_01.v3.1.nc")


def test_merge_failure_aborts_and_records_status(tmp_path):
    engine = DummyEngine(merge="error")

    with pytest.raises(PipelineError, match="All merge attempts failed"):
        _runner(_config(tmp_path), engine=engine).run()

    status = _status(tmp_path)
    assert status["success"] is False
    assert status["consolidation"]["ready"] is False
    assert not (tmp_path / "series" / "full_timeseries.nc").exists()


def test_archive_written_when_enabled(tmp_path):
    report = _runner(_config(tmp_path, archive=True)).run()

    assert report.archive_path is not None
    assert report.archive_path.parent == tmp_path
    assert report.archive_path.name.endswith(".tar.gz")


def test_archive_failure_marks_run_failed(tmp_path, monkeypatch):
    def broken_archive(layout):
        raise PipelineError("Failed to create archive: disk full")

    monkeypatch.setattr("rainpipe.runner.create_archive", broken_archive)

    with pytest.raises(PipelineError, match="disk full"):
        _runner(_config(tmp_path, archive=True)).run()

    status = _status(tmp_path)
    assert status["success"] is False
    assert "disk full" in status["detail"]
