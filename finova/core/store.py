from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import Protocol

from .config import Settings
from ..vision.errors import ChartNotFoundError

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9_\-.]+")


def safe_name(s: str) -> str:
    s = _SAFE_NAME_RE.sub("_", (s or "").strip())
    return s[:80] if s else "chart"


class ChartStore(Protocol):
    def put(self, data: bytes, name: str = "") -> str: ...
    def get(self, ref: str) -> bytes: ...
    def delete(self, ref: str) -> None: ...


class LocalChartStore:
    """PNG artifacts on disk. Refs look like ``/snapshots/AAPL_<id>.png``."""

    def __init__(self, root: str | Path, url_prefix: str = "/snapshots/"):
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.url_prefix = url_prefix

    def _path(self, ref: str) -> Path:
        name = ref[len(self.url_prefix):] if ref.startswith(self.url_prefix) else ref.lstrip("/")
        path = (self.root / name).resolve()
        if self.root not in path.parents:
            raise ChartNotFoundError(f"Chart reference outside the chart directory: {ref}")
        return path

    def put(self, data: bytes, name: str = "") -> str:
        filename = f"{safe_name(name)}_{uuid.uuid4().hex[:12]}.png"
        (self.root / filename).write_bytes(data)
        return f"{self.url_prefix}{filename}"

    def get(self, ref: str) -> bytes:
        path = self._path(ref)
        if not path.is_file():
            raise ChartNotFoundError(f"Chart image not found: {ref}")
        return path.read_bytes()

    def delete(self, ref: str) -> None:
        path = self._path(ref)
        path.unlink(missing_ok=True)
        logger.debug("Deleted chart artifact %s", path)


def get_chart_store(settings: Settings) -> ChartStore:
    if settings.s3_bucket:
        from .s3 import S3ChartStore

        return S3ChartStore(settings)
    return LocalChartStore(settings.chart_dir)
