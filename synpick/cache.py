"""File-backed model cache with a time-to-live."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import CacheUnavailable, RecordInvalid
from .models import ModelRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheSnapshot:
    """Models as persisted on disk, plus when they were saved."""
    records: List[ModelRecord]
    saved_at: datetime
    count: int


@dataclass(frozen=True)
class CacheInfo:
    exists: bool
    path: Path
    modified_at: Optional[datetime] = None
    size_bytes: Optional[int] = None
    record_count: Optional[int] = None
    is_valid: bool = False


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ModelCache:
    """JSON snapshot of the model catalog.

    The snapshot is stale once more than ``ttl`` has elapsed since it was
    saved. Every failure mode here is soft: reads degrade to "no cache" and
    writes report ``False``, so a broken cache never blocks a fresh fetch.
    """

    def __init__(self, path: Path, ttl: timedelta, clock: Clock = utcnow):
        self.path = Path(path)
        self.ttl = ttl
        self.clock = clock

    @classmethod
    def for_hours(cls, path: Path, hours: int, clock: Clock = utcnow) -> "ModelCache":
        return cls(path, timedelta(hours=hours), clock)

    def _read_snapshot(self) -> CacheSnapshot:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheUnavailable(f"Could not read cache file {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise CacheUnavailable("Cache file is not a JSON object")

        try:
            saved_at = parse_timestamp(data["timestamp"])
            raw_models = data["models"]
            if not isinstance(raw_models, list):
                raise CacheUnavailable("Cache 'models' is not a list")
            records = [ModelRecord.from_api_response(entry) for entry in raw_models]
        except (KeyError, TypeError, ValueError, AttributeError, RecordInvalid) as e:
            raise CacheUnavailable(f"Cache file does not match the snapshot schema: {e}") from e

        count = data.get("count", len(records))
        return CacheSnapshot(records=records, saved_at=saved_at, count=count)

    def _is_fresh(self, snapshot: CacheSnapshot) -> bool:
        return self.clock() - snapshot.saved_at <= self.ttl

    def is_valid(self) -> bool:
        """True if the snapshot exists, parses and is within its TTL."""
        try:
            return self._is_fresh(self._read_snapshot())
        except CacheUnavailable as e:
            logger.debug("Cache treated as invalid: %s", e)
            return False

    def load(self) -> List[ModelRecord]:
        """Return cached records, or an empty list if the cache is unusable."""
        try:
            snapshot = self._read_snapshot()
        except CacheUnavailable as e:
            logger.debug("Cache treated as absent: %s", e)
            return []
        if not self._is_fresh(snapshot):
            logger.debug("Cache at %s is stale (saved %s)", self.path, snapshot.saved_at.isoformat())
            return []
        logger.debug("Loaded %d models from cache", len(snapshot.records))
        return list(snapshot.records)

    def save(self, records: List[ModelRecord]) -> bool:
        """Persist records via a temp file and rename. Returns False on I/O failure."""
        payload: Dict[str, Any] = {
            "models": [record.to_dict() for record in records],
            "timestamp": self.clock().isoformat(),
            "count": len(records),
        }
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            logger.warning("Failed to save model cache to %s: %s", self.path, e)
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Could not remove temporary cache file %s", tmp_name)
        logger.debug("Saved %d models to cache at %s", len(records), self.path)
        return True

    def clear(self) -> bool:
        """Delete the snapshot. A missing file counts as cleared."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.warning("Failed to clear model cache %s: %s", self.path, e)
            return False
        return True

    def info(self) -> CacheInfo:
        """Describe the cache file for diagnostics. Never raises."""
        try:
            stat_result = self.path.stat()
        except OSError:
            return CacheInfo(exists=False, path=self.path)

        try:
            snapshot = self._read_snapshot()
        except CacheUnavailable:
            snapshot = None

        return CacheInfo(
            exists=True,
            path=self.path,
            modified_at=datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc),
            size_bytes=stat_result.st_size,
            record_count=len(snapshot.records) if snapshot else None,
            is_valid=snapshot is not None and self._is_fresh(snapshot),
        )
