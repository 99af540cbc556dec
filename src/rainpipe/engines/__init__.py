"""Grid engines for merging, point sampling, and aggregation."""

from __future__ import annotations

from .base import EngineError, GridEngine
from .cdo_engine import CdoEngine
from .xarray_engine import XarrayEngine

ENGINE_CLASSES: dict[str, type[GridEngine]] = {
    "xarray": XarrayEngine,
    "cdo": CdoEngine,
}


def build_engine(name: str) -> GridEngine:
    """Instantiate the engine registered under ``name``."""

    engine_cls = ENGINE_CLASSES.get(name.lower())
    if engine_cls is None:
        raise ValueError(f"Unsupported engine: {name}")
    return engine_cls()


__all__ = ["CdoEngine", "EngineError", "GridEngine", "XarrayEngine", "build_engine"]
