"""Content-addressed, file-backed cache for embedding vectors.

Each entry lives in ``<sha256(text)>.json`` inside the cache directory and
holds the original text, the vector values and the creation timestamp. The
cache is best effort: read and write failures are logged and reported as a
miss, never raised to the caller.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set, Tuple

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".json"
_MB = 1024 * 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def _atomic_write_text(path: Path, data: str) -> None:
    tmp_path = path.with_name(f".{path.stem}.{uuid.uuid4().hex}.tmp")
    async with aiofiles.open(tmp_path, "w", encoding="utf-8") as tmp:
        await tmp.write(data)
        await tmp.flush()
    try:
        await aiofiles.os.replace(tmp_path, path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


@dataclass(frozen=True)
class EmbeddingCacheOptions:
    enabled: bool = True
    cache_directory: Path = Path("Cache/Embeddings")
    expiration: timedelta = timedelta(hours=24)
    max_size_bytes: int = 100 * _MB


@dataclass
class CacheEntry:
    """Serialized form of a cached embedding."""

    text: str
    values: List[float]
    created_at: datetime

    def to_json(self) -> str:
        payload = {
            "text": self.text,
            "values": self.values,
            "created_at": self.created_at.isoformat(),
        }
        return json.dumps(payload, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("Cache entry must be a JSON object")
        values = payload["values"]
        if not isinstance(values, list):
            raise ValueError("Cache entry values must be a list")
        return cls(
            text=str(payload["text"]),
            values=[float(value) for value in values],
            created_at=_parse_timestamp(payload["created_at"]),
        )


@dataclass
class CacheStatistics:
    total_files: int = 0
    valid_files: int = 0
    expired_files: int = 0
    total_size_bytes: int = 0
    max_size_bytes: int = 0
    cache_directory: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def total_size_mb(self) -> float:
        return self.total_size_bytes / _MB

    @property
    def max_size_mb(self) -> float:
        return self.max_size_bytes / _MB

    @property
    def usage_percentage(self) -> float:
        if self.max_size_bytes <= 0:
            return 0.0
        return self.total_size_bytes / self.max_size_bytes * 100


class EmbeddingCache:
    """Filesystem cache keyed by the SHA-256 digest of the embedded text.

    Expiration is judged from the ``created_at`` stamp stored in each entry.
    After every successful write a cleanup pass enforces the size budget:
    expired entries are removed first, then the oldest remaining entries until
    the directory is back under ``max_size_bytes``.
    """

    def __init__(
        self,
        options: EmbeddingCacheOptions | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.options = options or EmbeddingCacheOptions()
        self.cache_directory = Path(self.options.cache_directory).expanduser().resolve()
        self._clock = clock or _utcnow
        if not self.cache_directory.exists():
            self.cache_directory.mkdir(parents=True, exist_ok=True)
            logger.info("Created embedding cache directory: %s", self.cache_directory)

    @staticmethod
    def cache_key(text: str) -> str:
        # Lone surrogates are hashed as-is so every str has a key.
        return hashlib.sha256(text.encode("utf-8", "surrogatepass")).hexdigest()

    def entry_path(self, text: str) -> Path:
        return self.cache_directory / f"{self.cache_key(text)}{ENTRY_SUFFIX}"

    async def get(self, text: str) -> Optional[List[float]]:
        """Return the cached vector for ``text`` or ``None`` on miss, expiry or error."""

        if not self.options.enabled:
            return None

        try:
            path = self.entry_path(text)
            async with aiofiles.open(path, "r", encoding="utf-8") as handle:
                raw = await handle.read()
            entry = CacheEntry.from_json(raw)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Failed to read cache entry for text of %d characters: %s", len(text), exc)
            return None

        if entry.text != text:
            logger.warning("Cache entry %s holds different text; ignoring it", path.name)
            return None

        if self._is_expired(entry.created_at):
            logger.debug("Cache entry expired for key: %s", path.stem)
            await self._remove(path)
            return None

        logger.debug("Cache hit for key: %s", path.stem)
        return entry.values

    async def put(self, text: str, vector: Sequence[float]) -> None:
        """Store ``vector`` for ``text`` and enforce the size budget."""

        if not self.options.enabled:
            return

        try:
            path = self.entry_path(text)
            entry = CacheEntry(
                text=text,
                values=[float(value) for value in vector],
                created_at=self._clock(),
            )
            await _atomic_write_text(path, entry.to_json())
            logger.debug("Stored embedding in cache with key: %s", path.stem)
            await asyncio.to_thread(self.cleanup_if_needed)
        except (OSError, ValueError, TypeError) as exc:
            logger.error("Error storing embedding in cache for text of %d characters: %s", len(text), exc)

    def cleanup_if_needed(self) -> int:
        """Delete entries until the cache fits its budget; return how many were removed."""

        files = self._entry_sizes()
        total_size = sum(size for _, size in files)
        max_size = self.options.max_size_bytes
        if total_size <= max_size:
            return 0

        logger.info(
            "Cache size limit exceeded. Current size: %.2fMB, Max: %.2fMB",
            total_size / _MB,
            max_size / _MB,
        )

        dated = sorted(
            ((self._created_at(path), path, size) for path, size in files),
            key=lambda item: (item[0], item[1].name),
        )

        current_size = total_size
        to_delete: List[Path] = []
        chosen: Set[Path] = set()
        for created_at, path, size in dated:
            if self._is_expired(created_at):
                to_delete.append(path)
                chosen.add(path)
                current_size -= size

        if current_size > max_size:
            for _, path, size in dated:
                if path in chosen:
                    continue
                to_delete.append(path)
                chosen.add(path)
                current_size -= size
                if current_size <= max_size:
                    break

        removed = 0
        for path in to_delete:
            try:
                path.unlink(missing_ok=True)
                removed += 1
                logger.debug("Deleted cache file: %s", path.name)
            except OSError as exc:
                logger.warning("Failed to delete cache file %s: %s", path.name, exc)

        if removed:
            logger.info(
                "Cleaned up cache files",
                extra={
                    "removed": removed,
                    "size_mb": round(current_size / _MB, 3),
                    "max_size_mb": round(max_size / _MB, 3),
                },
            )
        return removed

    def get_statistics(self) -> CacheStatistics:
        stats = CacheStatistics(
            max_size_bytes=self.options.max_size_bytes,
            cache_directory=str(self.cache_directory),
        )
        try:
            for path, size in self._entry_sizes():
                stats.total_files += 1
                stats.total_size_bytes += size
                if self._is_expired(self._created_at(path)):
                    stats.expired_files += 1
                else:
                    stats.valid_files += 1
        except OSError as exc:
            logger.error("Error getting cache statistics: %s", exc)
            return CacheStatistics(
                max_size_bytes=self.options.max_size_bytes,
                cache_directory=str(self.cache_directory),
                errors=[str(exc)],
            )
        return stats

    def clear(self) -> int:
        removed = 0
        for path, _ in self._entry_sizes():
            try:
                path.unlink(missing_ok=True)
                removed += 1
            except OSError as exc:
                logger.warning("Failed to delete cache file %s: %s", path.name, exc)
        return removed

    def _is_expired(self, created_at: datetime) -> bool:
        return self._clock() - created_at > self.options.expiration

    def _entry_sizes(self) -> List[Tuple[Path, int]]:
        entries: List[Tuple[Path, int]] = []
        for path in self.cache_directory.glob(f"*{ENTRY_SUFFIX}"):
            try:
                entries.append((path, path.stat().st_size))
            except FileNotFoundError:
                continue
        return entries

    def _created_at(self, path: Path) -> datetime:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return _parse_timestamp(payload["created_at"])
        except (OSError, ValueError, KeyError, TypeError):
            try:
                return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            except OSError:
                return datetime.min.replace(tzinfo=timezone.utc)

    async def _remove(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to delete expired cache file %s: %s", path.name, exc)


__all__ = [
    "CacheEntry",
    "CacheStatistics",
    "EmbeddingCache",
    "EmbeddingCacheOptions",
]
