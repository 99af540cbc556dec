"""Grid engine that shells out to the Climate Data Operators (CDO)."""

from __future__ import annotations

import io
import logging
from pathlib import Path
import shutil
import subprocess
import tempfile
import time
from typing import Sequence

import pandas as pd

from rainpipe.engines.base import EngineError, GridEngine, read_file_list

LOGGER = logging.getLogger("rainpipe.engines.cdo")

CDO_PERIOD_OPERATORS = {"monthly": "monsum", "seasonal": "seassum"}
LIST_BATCH_SIZE = 200
EXTRACT_TIMEOUT = 600.0


class CdoEngine(GridEngine):
    """Run merge, point sampling, and aggregation through the ``cdo`` binary."""

    name = "cdo"

    def __init__(self, executable: str = "cdo", *, precision: str = "F32") -> None:
        self.executable = executable
        self.precision = precision

    def merge_time(self, paths: Sequence[Path], out_path: Path, *, threads: int, timeout: float) -> None:
        if not paths:
            raise EngineError("No input files to merge")
        cmd = [
            self.executable,
            "-b",
            self.precision,
            "-P",
            str(threads),
            "mergetime",
            *(str(path) for path in paths),
            str(out_path),
        ]
        self._run(cmd, timeout=timeout, label="mergetime")

    def merge_time_from_list(self, list_path: Path, out_path: Path, *, threads: int, timeout: float) -> None:
        """
        Merge the manifest in batches, then merge the batch outputs.

        Each ``mergetime`` call gets at most LIST_BATCH_SIZE inputs so the
        command line stays below the argument-length limit.
        """

        paths = read_file_list(list_path)
        if not paths:
            raise EngineError(f"File list {list_path} is empty")
        deadline = time.monotonic() + timeout
        work_dir = Path(tempfile.mkdtemp(prefix="mergetime_", dir=out_path.parent))
        try:
            parts: list[Path] = []
            for index, start in enumerate(range(0, len(paths), LIST_BATCH_SIZE)):
                part = work_dir / f"part_{index:04d}.nc"
                batch = paths[start : start + LIST_BATCH_SIZE]
                self.merge_time(batch, part, threads=threads, timeout=_remaining(deadline))
                parts.append(part)
            if len(parts) == 1:
                parts[0].replace(out_path)
            else:
                self.merge_time(parts, out_path, threads=threads, timeout=_remaining(deadline))
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    def extract_point(self, path: Path, lat: float, lon: float, variable: str) -> pd.DataFrame:
        cmd = [
            self.executable,
            "-outputtab,date,value",
            f"-remapnn,lon={lon}_lat={lat}",
            f"-selname,{variable}",
            str(path),
        ]
        output = self._run(cmd, timeout=EXTRACT_TIMEOUT, label="outputtab")
        return parse_outputtab(output)

    def aggregate(self, path: Path, out_path: Path, *, period: str, timeout: float) -> None:
        operator = CDO_PERIOD_OPERATORS.get(period)
        if operator is None:
            raise EngineError(f"Unknown aggregation period {period!r}")
        cmd = [self.executable, "-b", self.precision, operator, str(path), str(out_path)]
        self._run(cmd, timeout=timeout, label=operator)

    def _run(self, cmd: list[str], *, timeout: float, label: str) -> str:
        LOGGER.debug("Running %s", " ".join(cmd[:6]))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, check=False)
        except subprocess.TimeoutExpired as exc:
            raise EngineError(f"cdo {label} timed out after {timeout:.0f}s") from exc
        except OSError as exc:
            raise EngineError(f"cdo {label} could not start: {exc}") from exc
        if result.returncode != 0:
            detail = (result.stderr or "").strip().splitlines()
            raise EngineError(f"cdo {label} exited {result.returncode}: {detail[-1] if detail else 'no output'}")
        return result.stdout


def parse_outputtab(text: str) -> pd.DataFrame:
    """Parse ``cdo -outputtab,date,value`` output, dropping ``#`` header lines."""

    body = "\n".join(line for line in text.splitlines() if line.strip() and not line.lstrip().startswith("#"))
    if not body:
        return pd.DataFrame(columns=["date", "value"])
    frame = pd.read_csv(io.StringIO(body), sep=r"\s+", header=None, names=["date", "value"], dtype=str)
    return frame


def _remaining(deadline: float) -> float:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise EngineError("cdo file-list merge ran out of time")
    return remaining
