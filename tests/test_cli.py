import logging
from pathlib import Path

from click.testing import CliRunner

from rainpipe import cli
from rainpipe.acquisition import AcquisitionSummary
from rainpipe.errors import PipelineError
from rainpipe.runner import RunReport


class DummyRunner:
    configs: list = []

    def __init__(self, config):
        DummyRunner.configs.append(config)
        self.config = config

    def run(self):
        return RunReport(acquisition=AcquisitionSummary(downloaded=2, skipped=1, failed=0))


class FailingRunner(DummyRunner):
    def run(self):
        raise PipelineError("No valid daily files available")


def test_cli_applies_overrides(monkeypatch, tmp_path):
    DummyRunner.configs = []
    monkeypatch.setattr("rainpipe.cli.PipelineRunner", DummyRunner)
    monkeypatch.setattr("rainpipe.cli.configure_logging", lambda level, log_dir=None: None)

    result = CliRunner().invoke(
        cli.main,
        [
            "--start", "2024-01-01",
            "--end", "2024-01-03",
            "--data-dir", str(tmp_path),
            "--engine", "cdo",
            "--site", "Axum=14.12,38.72",
            "--no-archive",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Downloaded 2, skipped 1, failed 0" in result.output
    config = DummyRunner.configs[0]
    assert config.engine == "cdo"
    assert config.archive is False
    assert Path(config.data_dir) == tmp_path
    assert [site.name for site in config.sites] == ["Axum"]
    assert (tmp_path / "daily").is_dir()


def test_cli_exits_nonzero_on_pipeline_error(monkeypatch, tmp_path):
    monkeypatch.setattr("rainpipe.cli.PipelineRunner", FailingRunner)
    monkeypatch.setattr("rainpipe.cli.configure_logging", lambda level, log_dir=None: None)

    result = CliRunner().invoke(cli.main, ["--data-dir", str(tmp_path)])

    assert result.exit_code == 1


def test_cli_rejects_malformed_site(monkeypatch, tmp_path):
    monkeypatch.setattr("rainpipe.cli.PipelineRunner", DummyRunner)
    monkeypatch.setattr("rainpipe.cli.configure_logging", lambda level, log_dir=None: None)

    result = CliRunner().invoke(cli.main, ["--data-dir", str(tmp_path), "--site", "Axum=north"])

    assert result.exit_code == 1


def test_configure_logging_creates_log_file(tmp_path):
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        log_path = cli.configure_logging("debug", tmp_path / "logs")
        assert log_path.parent == tmp_path / "logs"
        assert log_path.name.startswith("process_")
        assert root.level == logging.DEBUG
    finally:
        for handler in root.handlers[len(before):]:
            handler.close()
        root.handlers[:] = before
        root.setLevel(level)


def test_cli_rejects_negative_backoff(monkeypatch, tmp_path):
    monkeypatch.setattr("rainpipe.cli.PipelineRunner", DummyRunner)
    monkeypatch.setattr("rainpipe.cli.configure_logging", lambda level, log_dir=None: None)
    monkeypatch.setenv("RAINPIPE_RETRY_BACKOFF", "-1")

    result = CliRunner().invoke(cli.main, ["--data-dir", str(tmp_path)])

    assert result.exit_code == 1
