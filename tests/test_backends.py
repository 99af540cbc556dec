from datetime import date

import pytest
import requests

from rainpipe.backends import BackendError, HttpBackend, build_daily_url, build_filename


class DummyResponse:
    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}", response=self)

    def iter_content(self, chunk_size):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]


def test_build_daily_url():
    day = date(2024, 3, 7)
    assert build_filename(day) == "rfe2024_03_07.v3.1.nc"
    assert build_daily_url(day, base_url="https://tamsat.test/daily/") == (
        "https://tamsat.test/daily/2024/03/rfe2024_03_07.v3.1.nc"
    )


def test_http_backend_streams_to_file(tmp_path, monkeypatch):
    url_log: list[str] = []

    def fake_get(url, stream, timeout):
        url_log.append(url)
        return DummyResponse(b"CDF" + b"x" * 50)

    monkeypatch.setattr("rainpipe.backends.http_backend.requests.get", fake_get)

    out_path = tmp_path / "nested" / "rfe.nc.tmp"
    HttpBackend().download("https://tamsat.test/a.nc", out_path)

    assert out_path.read_bytes().startswith(b"CDF")
    assert url_log == ["https://tamsat.test/a.nc"]


def test_http_backend_maps_http_errors(tmp_path, monkeypatch):
    monkeypatch.setattr(
        "rainpipe.backends.http_backend.requests.get",
        lambda url, stream, timeout: DummyResponse(b"", status_code=404),
    )
    with pytest.raises(BackendError, match="404"):
        HttpBackend().download("https://tamsat.test/missing.nc", tmp_path / "missing.nc")


def test_http_backend_maps_connection_errors(tmp_path, monkeypatch):
    def fake_get(url, stream, timeout):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr("rainpipe.backends.http_backend.requests.get", fake_get)
    with pytest.raises(BackendError, match="refused"):
        HttpBackend().download("https://tamsat.test/a.nc", tmp_path / "a.nc")
