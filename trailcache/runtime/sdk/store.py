from __future__ import annotations

"""JSON-file backed store of cached coverage and events."""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Iterable

from .coverage import CoverageSet
from .events import EventRecord, dedupe_events, sort_events_desc
from .exceptions import InvalidKeyError, StoreCorruptError, StoreIOError
from .interval import ONE_SECOND, Interval
from . import metrics as sdk_metrics

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

PathResolver = Callable[[str], Path]


@dataclass(frozen=True)
class Store:
    """In-memory image of one key's artifact."""

    key: str
    coverage: CoverageSet = field(default_factory=CoverageSet)
    events: tuple[EventRecord, ...] = ()

    @classmethod
    def incoming(
        cls,
        key: str,
        intervals: Iterable[Interval] = (),
        events: Iterable[EventRecord] = (),
        tolerance: timedelta = ONE_SECOND,
    ) -> "Store":
        """Build a store holding freshly fetched data for ``key``."""

        return cls(
            key=key,
            coverage=CoverageSet.from_intervals(intervals, tolerance),
            events=tuple(events),
        )

    @property
    def is_empty(self) -> bool:
        return not self.coverage and not self.events


class IntervalStore:
    """Persist one :class:`Store` per key as a JSON artifact.

    The artifact is replaced as a whole on every save: the merged state is
    written to a temporary file in the same directory, synced, then renamed
    over the target. A single writer per key is assumed; there is no locking.
    """

    def __init__(
        self,
        cache_dir: str | os.PathLike[str],
        *,
        namespace: str = "write-events",
        tolerance: timedelta = ONE_SECOND,
        path_resolver: PathResolver | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir).expanduser()
        self.namespace = namespace
        self.tolerance = tolerance
        self._path_resolver = path_resolver

    # ------------------------------------------------------------------
    def path_for(self, key: str) -> Path:
        _validate_key(key)
        if self._path_resolver is not None:
            return Path(self._path_resolver(key))
        return self.cache_dir / self.namespace / f"{key}.json"

    # ------------------------------------------------------------------
    def load(self, key: str) -> Store:
        """Read the artifact for ``key``; create an empty one on first use."""

        path = self.path_for(key)
        try:
            exists = path.exists()
            raw = path.read_bytes() if exists else None
        except OSError as exc:
            logger.error("failed to read cache file %s: %s", path, exc)
            raise StoreIOError(f"failed to read cache file {path}", path=path) from exc

        if raw is None:
            empty = Store(key=key, coverage=CoverageSet(tolerance=self.tolerance))
            self._write(path, empty)
            logger.debug("Created new cache file: %s", path)
            return empty

        try:
            # UnicodeDecodeError is a ValueError
            store = self._decode(key, json.loads(raw.decode("utf-8")))
        except (ValueError, KeyError, TypeError) as exc:
            logger.error("failed to decode cache file %s: %s", path, exc)
            raise StoreCorruptError(f"cache file {path} is corrupt", path=path) from exc

        if not store.events:
            logger.debug("Cache file is empty: %s", path)
        return store

    # ------------------------------------------------------------------
    def save_merge(self, existing: Store, incoming: Store) -> Store:
        """Combine ``existing`` with ``incoming`` and atomically persist it."""

        if incoming.key != existing.key:
            raise ValueError(
                f"cannot merge store for {incoming.key!r} into {existing.key!r}"
            )
        coverage = CoverageSet.from_intervals(
            [*existing.coverage, *incoming.coverage], self.tolerance
        )
        events = sort_events_desc(dedupe_events([*existing.events, *incoming.events]))
        merged = Store(key=existing.key, coverage=coverage, events=tuple(events))

        path = self.path_for(existing.key)
        try:
            self._write(path, merged)
        except StoreIOError:
            sdk_metrics.store_save_failures_total.inc()
            raise
        logger.debug(
            "saved %d interval(s), %d event(s) to %s",
            len(coverage),
            len(events),
            path,
        )
        return merged

    # ------------------------------------------------------------------
    def _encode(self, store: Store) -> dict[str, Any]:
        return {
            "version": FORMAT_VERSION,
            "key": store.key,
            "coverage": store.coverage.to_list(),
            "events": [event.to_dict() for event in store.events],
        }

    def _decode(self, key: str, data: Any) -> Store:
        if not isinstance(data, dict):
            raise TypeError("cache artifact must be a JSON object")
        version = data.get("version", FORMAT_VERSION)
        if version != FORMAT_VERSION:
            raise ValueError(f"unsupported cache format version {version!r}")
        raw_coverage = data.get("coverage") or []
        raw_events = data.get("events") or []
        if not isinstance(raw_coverage, list) or not isinstance(raw_events, list):
            raise TypeError("coverage and events must be lists")
        intervals = [Interval.from_dict(item) for item in raw_coverage]
        events = [EventRecord.from_dict(item) for item in raw_events]
        return Store(
            key=key,
            coverage=CoverageSet.from_intervals(intervals, self.tolerance),
            events=tuple(events),
        )

    def _write(self, path: Path, store: Store) -> None:
        payload = json.dumps(self._encode(store), indent=2)
        tmp_name: str | None = None
        try:
            path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as tf:
                tmp_name = tf.name
                tf.write(payload)
                tf.flush()
                os.fsync(tf.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            logger.error("failed to write cache file %s: %s", path, exc)
            raise StoreIOError(f"failed to write cache file {path}", path=path) from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)


def _validate_key(key: str) -> None:
    if not key or not key.strip():
        raise InvalidKeyError("cache key must be a non-empty string")
    if "/" in key or "\\" in key or key in {".", ".."} or "\x00" in key:
        raise InvalidKeyError(f"cache key {key!r} cannot be used as a file name")


__all__ = ["FORMAT_VERSION", "IntervalStore", "PathResolver", "Store"]
