"""In-process grid engine built on xarray."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
import multiprocessing
from pathlib import Path
from typing import Callable, Sequence

import numpy as np
import pandas as pd
import xarray as xr

from rainpipe.engines.base import PERIOD_CHOICES, EngineError, GridEngine, read_file_list

LOGGER = logging.getLogger("rainpipe.engines.xarray")

RESAMPLE_RULES = {"monthly": "MS", "seasonal": "QS-DEC"}
LIST_BATCH_SIZE = 64
KEPT_ENCODING = {"_FillValue", "units", "calendar"}


def get_coord_names(ds: xr.Dataset) -> tuple[str, str]:
    """Identify the latitude/longitude coordinate names in the dataset."""

    if "latitude" in ds.coords:
        lat_name = "latitude"
    elif "lat" in ds.coords:
        lat_name = "lat"
    else:
        raise KeyError("Could not find latitude coordinate in dataset.")

    if "longitude" in ds.coords:
        lon_name = "longitude"
    elif "lon" in ds.coords:
        lon_name = "lon"
    else:
        raise KeyError("Could not find longitude coordinate in dataset.")

    return lat_name, lon_name


def _worker(conn, func: Callable[..., None], args: tuple) -> None:
    try:
        func(*args)
    except Exception as exc:  # reported to the parent, which raises EngineError
        conn.send(f"{type(exc).__name__}: {exc}")
    else:
        conn.send(None)
    finally:
        conn.close()


def run_in_process(func: Callable[..., None], args: tuple, timeout: float, label: str) -> None:
    """
    Run ``func(*args)`` in a child process, killing it after ``timeout`` seconds.

    ``func`` and ``args`` must be picklable. Any failure, including the
    timeout, is raised as :class:`EngineError` once the child is gone.
    """

    ctx = multiprocessing.get_context()
    parent_conn, child_conn = ctx.Pipe(duplex=False)
    process = ctx.Process(
        target=_worker,
        args=(child_conn, func, args),
        name=f"rainpipe-{label.replace(' ', '-')}",
        daemon=True,
    )
    process.start()
    child_conn.close()
    try:
        if not parent_conn.poll(timeout):
            raise EngineError(f"{label} timed out after {timeout:.0f}s")
        try:
            error = parent_conn.recv()
        except EOFError:
            process.join()
            error = f"worker exited with code {process.exitcode}"
    finally:
        parent_conn.close()
        if process.is_alive():
            process.terminate()
        process.join()
    if error is not None:
        raise EngineError(f"{label} failed: {error}")


def _load(path: Path) -> xr.Dataset:
    with xr.open_dataset(path) as ds:
        return ds.load()


def _concat(datasets: Sequence[xr.Dataset]) -> xr.Dataset:
    # Variables without a time axis (bounds, grid metadata) are taken from the first file.
    return xr.concat(list(datasets), dim="time", data_vars="minimal", coords="minimal", compat="override")


def _write(ds: xr.Dataset, out_path: Path) -> None:
    out_path.parent.mkdir(parents=True, exist_ok=True)
    for var in ds.variables.values():
        # Chunking and compression settings of the inputs do not fit the merged shape.
        var.encoding = {key: value for key, value in var.encoding.items() if key in KEPT_ENCODING}
    encoding = {
        name: {"dtype": "float32"}
        for name, var in ds.data_vars.items()
        if np.issubdtype(var.dtype, np.floating)
    }
    ds.to_netcdf(out_path, encoding=encoding)


def _merge_paths(paths: list[Path], out_path: Path, threads: int) -> None:
    with ThreadPoolExecutor(max_workers=max(1, threads), thread_name_prefix="rainpipe-load") as pool:
        datasets = list(pool.map(_load, paths))
    _write(_concat(datasets).sortby("time"), out_path)


def _merge_list(list_path: Path, out_path: Path) -> None:
    paths = read_file_list(list_path)
    if not paths:
        raise ValueError(f"File list {list_path} is empty")
    parts: list[xr.Dataset] = []
    for start in range(0, len(paths), LIST_BATCH_SIZE):
        batch = [_load(path) for path in paths[start : start + LIST_BATCH_SIZE]]
        parts.append(_concat(batch))
        LOGGER.debug("Merged batch %d-%d of %d", start + 1, start + len(batch), len(paths))
    _write(_concat(parts).sortby("time"), out_path)


def _resample_sum(path: Path, out_path: Path, rule: str) -> None:
    with xr.open_dataset(path) as ds:
        totals = ds.resample(time=rule).sum(min_count=1, keep_attrs=True).load()
    _write(totals, out_path)


class XarrayEngine(GridEngine):
    """Merge, sample, and resample NetCDF series with xarray."""

    name = "xarray"

    def merge_time(self, paths: Sequence[Path], out_path: Path, *, threads: int, timeout: float) -> None:
        """
        Load every file on a pool of ``threads`` workers, then concatenate by time.
        """

        paths = list(paths)
        if not paths:
            raise EngineError("No input files to merge")
        run_in_process(_merge_paths, (paths, Path(out_path), threads), timeout, "parallel merge")

    def merge_time_from_list(self, list_path: Path, out_path: Path, *, threads: int, timeout: float) -> None:
        """
        Merge the manifest in batches so only one batch of inputs is open at a time.
        """

        run_in_process(_merge_list, (Path(list_path), Path(out_path)), timeout, "file-list merge")

    def extract_point(self, path: Path, lat: float, lon: float, variable: str) -> pd.DataFrame:
        """
        Sample the nearest grid cell for ``variable``.
        """

        try:
            with xr.open_dataset(path) as ds:
                if variable not in ds.data_vars:
                    raise KeyError(f"Variable {variable} not in {path.name}")
                lat_name, lon_name = get_coord_names(ds)
                lon_vals = np.asarray(ds[lon_name])
                use_360 = float(np.nanmin(lon_vals)) >= 0.0 and float(np.nanmax(lon_vals)) > 180.0
                lon_target = lon + 360.0 if (lon < 0.0 and use_360) else lon
                point = ds[variable].sel({lat_name: lat, lon_name: lon_target}, method="nearest").load()
            if "time" not in point.dims:
                raise KeyError(f"Variable {variable} has no time dimension")
            times = pd.to_datetime(point["time"].values)
            values = np.asarray(point.values, dtype=float)
        except (OSError, ValueError, KeyError, RuntimeError, TypeError) as exc:
            # netCDF4 reports HDF read errors as RuntimeError.
            raise EngineError(f"Point extraction failed at {lat}, {lon}: {exc}") from exc

        return pd.DataFrame({"date": times.strftime("%Y-%m-%d"), "value": values})

    def aggregate(self, path: Path, out_path: Path, *, period: str, timeout: float) -> None:
        if period not in PERIOD_CHOICES:
            raise EngineError(f"Unknown aggregation period {period!r}")
        run_in_process(
            _resample_sum, (Path(path), Path(out_path), RESAMPLE_RULES[period]), timeout, f"{period} aggregation"
        )
