import subprocess
from pathlib import Path

import pytest

from rainpipe.engines.base import EngineError
from rainpipe.engines.cdo_engine import CdoEngine, parse_outputtab


class DummyCompleted:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_merge_time_builds_command(monkeypatch, tmp_path):
    calls = []

    def fake_run(cmd, capture_output, text, timeout, check):
        calls.append((cmd, timeout))
        return DummyCompleted()

    monkeypatch.setattr("rainpipe.engines.cdo_engine.subprocess.run", fake_run)
    CdoEngine().merge_time([Path("a.nc"), Path("b.nc")], tmp_path / "out.nc", threads=4, timeout=3600)

    cmd, timeout = calls[0]
    assert cmd == ["cdo", "-b", "F32", "-P", "4", "mergetime", "a.nc", "b.nc", str(tmp_path / "out.nc")]
    assert timeout == 3600


def test_timeout_becomes_engine_error(monkeypatch, tmp_path):
    def fake_run(cmd, capture_output, text, timeout, check):
        raise subprocess.TimeoutExpired(cmd, timeout)

    monkeypatch.setattr("rainpipe.engines.cdo_engine.subprocess.run", fake_run)
    with pytest.raises(EngineError, match="timed out"):
        CdoEngine().merge_time([Path("a.nc")], tmp_path / "out.nc", threads=1, timeout=5)


def test_nonzero_exit_becomes_engine_error(monkeypatch, tmp_path):
    monkeypatch.setattr(
        "rainpipe.engines.cdo_engine.subprocess.run",
        lambda cmd, capture_output, text, timeout, check: DummyCompleted(1, stderr="cdo mergetime: Open failed"),
    )
    with pytest.raises(EngineError, match="Open failed"):
        CdoEngine().merge_time([Path("a.nc")], tmp_path / "out.nc", threads=1, timeout=5)


def test_merge_from_list_batches_inputs(monkeypatch, tmp_path):
    monkeypatch.setattr("rainpipe.engines.cdo_engine.LIST_BATCH_SIZE", 2)
    calls = []

    def fake_run(cmd, capture_output, text, timeout, check):
        calls.append(cmd)
        Path(cmd[-1]).write_bytes(b"CDF")
        return DummyCompleted()

    monkeypatch.setattr("rainpipe.engines.cdo_engine.subprocess.run", fake_run)
    manifest = tmp_path / "filelist.txt"
    manifest.write_text("d1.nc\nd2.nc\nd3.nc\n")
    out_path = tmp_path / "out.nc"

    CdoEngine().merge_time_from_list(manifest, out_path, threads=2, timeout=60)

    assert [cmd[6:-1] for cmd in calls[:2]] == [["d1.nc", "d2.nc"], ["d3.nc"]]
    assert calls[-1][-1] == str(out_path)
    assert out_path.exists()
    assert [path.name for path in tmp_path.iterdir() if path.is_dir()] == []


def test_extract_point_parses_outputtab(monkeypatch, tmp_path):
    stdout = "#       date    value \n  2024-01-01      1.5 \n  2024-01-02   -999.9 \n"
    calls = []

    def fake_run(cmd, capture_output, text, timeout, check):
        calls.append(cmd)
        return DummyCompleted(stdout=stdout)

    monkeypatch.setattr("rainpipe.engines.cdo_engine.subprocess.run", fake_run)
    frame = CdoEngine().extract_point(tmp_path / "full.nc", 13.5, 39.47, "rfe_filled")

    assert calls[0][1:4] == ["-outputtab,date,value", "-remapnn,lon=39.47_lat=13.5", "-selname,rfe_filled"]
    assert frame["date"].tolist() == ["2024-01-01", "2024-01-02"]
    assert frame["value"].tolist() == ["1.5", "-999.9"]


def test_parse_outputtab_handles_header_only():
    assert parse_outputtab("#  date  value\n").empty
