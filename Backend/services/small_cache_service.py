"""
Small object cache.

Filesystem-backed key -> JSON blob store with per-call TTLs. Keys are
partitioned by namespace ("sponsor-sniff", "card-image") and hashed together
with a version tag, so a logic change only needs a new CACHE_VERSION to stop
reading stale entries.

Writes go to a temp file and are moved into place with os.replace(), so
concurrent requests see either the old or the new whole value.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Optional

from app.config import settings
from app.core.logging import get_logger

logger = get_logger().bind(module="small_cache_service")

SPONSOR_SNIFF_NAMESPACE = "sponsor-sniff"
CARD_IMAGE_NAMESPACE = "card-image"


class SmallCache:
    def __init__(
        self,
        cache_dir: str | Path = settings.CACHE_DIR,
        *,
        version: str = settings.CACHE_VERSION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.version = version
        self._clock = clock

    def physical_key(self, namespace: str, key: str) -> str:
        raw = f"{namespace}\x1f{key}\x1f{self.version}"
        return hashlib.md5(raw.encode("utf-8")).hexdigest()

    def _path(self, namespace: str, key: str) -> Path:
        return self.cache_dir / namespace / f"{self.physical_key(namespace, key)}.json"

    def get(self, namespace: str, key: str, ttl_seconds: float) -> Optional[Any]:
        """
        Return the cached value, or None on miss, expiry (age >= ttl) or a
        corrupt entry. None always means "recompute".
        """
        path = self._path(namespace, key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("small_cache_read_error", namespace=namespace, path=str(path), error=str(exc))
            return None

        try:
            entry = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("small_cache_corrupt_entry", namespace=namespace, path=str(path))
            return None

        if not isinstance(entry, dict) or "value" not in entry:
            return None
        stored_at = entry.get("storedAt")
        if not isinstance(stored_at, (int, float)):
            return None
        if self._clock() - stored_at >= ttl_seconds:
            return None
        return entry["value"]

    def set(self, namespace: str, key: str, value: Any) -> None:
        path = self._path(namespace, key)
        payload = json.dumps(
            {"key": self.physical_key(namespace, key), "value": value, "storedAt": self._clock()},
            separators=(",", ":"),
        )
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.warning("small_cache_write_error", namespace=namespace, path=str(path), error=str(exc))


_small_cache: Optional[SmallCache] = None


def get_small_cache() -> SmallCache:
    """Get or create the process-wide SmallCache."""
    global _small_cache
    if _small_cache is None:
        _small_cache = SmallCache()
    return _small_cache
