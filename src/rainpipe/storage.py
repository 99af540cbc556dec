"""Discovery of daily artifacts on disk."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
import logging
from pathlib import Path
import re

from rainpipe.backends.urls import FILE_EXT, FILE_PREFIX, build_filename

LOGGER = logging.getLogger("rainpipe.storage")


@dataclass(frozen=True)
class DailyArtifact:
    """One raw file keyed by its calendar date."""

    day: date
    path: Path


class ArtifactStore(ABC):
    """Maps dates to artifact paths and lists what is already present."""

    @abstractmethod
    def path_for(self, day: date) -> Path:
        """Return where the artifact for ``day`` lives."""

    @abstractmethod
    def list_artifacts(self) -> list[DailyArtifact]:
        """Return present artifacts in chronological order."""


class LocalArtifactStore(ArtifactStore):
    """Artifacts stored flat in one directory, named by date."""

    def __init__(
        self,
        root: Path,
        *,
        version: str = "v3.1",
        prefix: str = FILE_PREFIX,
        ext: str = FILE_EXT,
    ) -> None:
        self.root = Path(root)
        self.version = version
        self.prefix = prefix
        self.ext = ext
        self._pattern = re.compile(
            rf"^{re.escape(prefix)}(\d{{4}})_(\d{{2}})_(\d{{2}})\.{re.escape(version)}\.{re.escape(ext)}$"
        )

    def path_for(self, day: date) -> Path:
        return self.root / build_filename(day, version=self.version, prefix=self.prefix, ext=self.ext)

    def parse_name(self, name: str) -> date | None:
        """Return the date encoded in ``name`` or ``None`` if it is not an artifact name."""

        match = self._pattern.match(name)
        if match is None:
            return None
        year, month, day = (int(part) for part in match.groups())
        try:
            return date(year, month, day)
        except ValueError:
            LOGGER.warning("Ignoring %s: not a valid calendar date", name)
            return None

    def list_artifacts(self) -> list[DailyArtifact]:
        if not self.root.is_dir():
            return []
        artifacts: list[DailyArtifact] = []
        for path in self.root.iterdir():
            if not path.is_file():
                continue
            day = self.parse_name(path.name)
            if day is not None:
                artifacts.append(DailyArtifact(day=day, path=path))
        return sorted(artifacts, key=lambda artifact: artifact.day)
