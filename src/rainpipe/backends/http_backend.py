"""HTTP implementation of :class:`FetchBackend` built on requests."""

from __future__ import annotations

import logging
from pathlib import Path

import requests

from rainpipe.backends.base import BackendError, FetchBackend

LOGGER = logging.getLogger("rainpipe.backends")
CHUNK_SIZE = 2**20


class HttpBackend(FetchBackend):
    """Stream files over anonymous HTTP(S)."""

    def __init__(self, *, timeout: float = 120.0, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self.session = session

    def download(self, url: str, out_path: Path) -> None:
        """
        Stream ``url`` into ``out_path``, translating transport errors to :class:`BackendError`.
        """

        getter = self.session.get if self.session is not None else requests.get
        out_path.parent.mkdir(parents=True, exist_ok=True)
        LOGGER.debug("Fetching %s", url)
        try:
            with getter(url, stream=True, timeout=self.timeout) as resp:
                resp.raise_for_status()
                with out_path.open("wb") as handle:
                    for block in resp.iter_content(chunk_size=CHUNK_SIZE):
                        if block:
                            handle.write(block)
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "?"
            raise BackendError(f"HTTP {status} for {url}") from exc
        except requests.RequestException as exc:
            raise BackendError(f"Request failed for {url}: {exc}") from exc
