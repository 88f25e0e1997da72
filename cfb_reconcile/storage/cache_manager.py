import json
import os
import re
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional, Tuple, Union

from loguru import logger


class CacheEntry(NamedTuple):
    data: Any
    saved_at: datetime


def _sanitize_key(key: str) -> str:
    return re.sub(r"[^a-z0-9_.-]", "_", key, flags=re.IGNORECASE)


class CacheManager:
    """JSON-file cache where an entry's age is its file modification time."""

    def __init__(self, cache_dir: Union[str, Path], default_ttl: timedelta = timedelta(days=1)):
        self.cache_dir = Path(cache_dir).resolve()
        self.default_ttl = default_ttl
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def cache_path(self, key: str) -> Path:
        return self.cache_dir / f"{_sanitize_key(key)}.json"

    def is_valid(self, key: str, ttl: Optional[timedelta] = None) -> bool:
        ttl = ttl or self.default_ttl
        try:
            mtime = self.cache_path(key).stat().st_mtime
        except OSError:
            return False
        age = datetime.now(timezone.utc) - datetime.fromtimestamp(mtime, tz=timezone.utc)
        return age < ttl

    def get(self, key: str, ttl: Optional[timedelta] = None) -> Optional[CacheEntry]:
        """Returns the cached entry, or None when missing, expired or unreadable.

        Expired and corrupt files are removed.
        """
        path = self.cache_path(key)
        if not self.is_valid(key, ttl):
            if path.exists():
                logger.debug(f"Cache entry '{key}' expired, invalidating.")
            self.invalidate(key)
            return None
        return self.read(key)

    def read(self, key: str) -> Optional[CacheEntry]:
        """Returns the entry regardless of age. Only unreadable files are removed."""
        path = self.cache_path(key)
        if not path.exists():
            return None
        try:
            saved_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Cache entry '{key}' is unreadable ({e}), invalidating.")
            self.invalidate(key)
            return None
        return CacheEntry(data=data, saved_at=saved_at)

    def set(self, key: str, data: Any) -> None:
        path = self.cache_path(key)
        # Write to a sibling temp file and swap it in so readers never see half a file
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp_name, path)
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save cache for key '{key}': {e}")
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def invalidate(self, key: str) -> bool:
        path = self.cache_path(key)
        try:
            if path.exists():
                path.unlink()
                return True
        except OSError as e:
            logger.error(f"Failed to invalidate cache for key '{key}': {e}")
        return False

    def clear_all(self) -> None:
        shutil.rmtree(self.cache_dir, ignore_errors=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Cleared cache directory {self.cache_dir}")


class MemoryCache:
    """In-memory stand-in with the same interface, for tests and dry runs."""

    def __init__(self, default_ttl: timedelta = timedelta(days=1)):
        self.default_ttl = default_ttl
        self._entries: Dict[str, Tuple[Any, datetime]] = {}

    def get(self, key: str, ttl: Optional[timedelta] = None) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        data, saved_at = entry
        if datetime.now(timezone.utc) - saved_at >= (ttl or self.default_ttl):
            self.invalidate(key)
            return None
        return self.read(key)

    def read(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        data, saved_at = entry
        return CacheEntry(data=json.loads(json.dumps(data)), saved_at=saved_at)

    def set(self, key: str, data: Any) -> None:
        self._entries[key] = (json.loads(json.dumps(data, default=str)), datetime.now(timezone.utc))

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear_all(self) -> None:
        self._entries.clear()
