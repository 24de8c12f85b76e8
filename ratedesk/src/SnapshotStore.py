"""SnapshotStore: Durable JSON snapshot of every source's records.

File layout::

    {
      "meta": {"generatedAt": "...", "cacheTtlSeconds": 60, "sources": [...]},
      "data": {"Primary": {"USD": {...}}, "BridgeFeed": {...}, ...}
    }

Readers also accept documents with the sources hoisted to the top level and
older documents that stored each source as a list of records. Anything
unreadable loads as an empty snapshot.

Saves are partial: a source missing from the update (or given an empty map)
keeps whatever was last persisted for it, so a failed fetch never erases
known values. Every save rewrites the whole file with one atomic replace.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .errors import PersistenceError
from .RateRecord import RateRecord, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 60


@dataclass
class Snapshot:
    """All sources' records at one point in time.

    :ivar sources: Source name -> (code -> RateRecord).
    :ivar generated_at: ISO-8601 UTC time of the write, None if never saved.
    :ivar cache_ttl_seconds: How long clients may treat this as fresh.
    """

    sources: dict[str, dict[str, RateRecord]] = field(default_factory=dict)
    generated_at: str | None = None
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS

    def get(self, source: str) -> dict[str, RateRecord]:
        """Return the records for a source (empty if unknown)."""
        return self.sources.get(source, {})

    @property
    def is_empty(self) -> bool:
        """True if no source holds any record."""
        return not any(self.sources.values())

    def to_document(self) -> dict[str, Any]:
        """Render the persisted document shape."""
        return {
            "meta": {
                "generatedAt": self.generated_at,
                "cacheTtlSeconds": self.cache_ttl_seconds,
                "sources": list(self.sources),
            },
            "data": {
                source: {code: record.to_dict() for code, record in records.items()}
                for source, records in self.sources.items()
            },
        }


class SnapshotStore:
    """Reads and writes the snapshot file for a fixed set of sources.

    :ivar path: Location of the JSON snapshot.
    :ivar source_names: Sources persisted, in file order.
    :ivar cache_ttl_seconds: TTL written into every save.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        source_names: list[str],
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
    ) -> None:
        """Initialize the store.

        :param path: Snapshot file path (created on first save).
        :param source_names: Fixed set of source names.
        :param cache_ttl_seconds: TTL advertised in meta.cacheTtlSeconds.
        """
        self.path = Path(path)
        self.source_names = list(source_names)
        self.cache_ttl_seconds = cache_ttl_seconds
        self._lock = threading.Lock()

    def empty(self) -> Snapshot:
        """Return a snapshot with an empty map for every source."""
        return Snapshot(
            sources={name: {} for name in self.source_names},
            cache_ttl_seconds=self.cache_ttl_seconds,
        )

    def load(self) -> Snapshot:
        """Read the snapshot file.

        :returns: Parsed snapshot, or an empty one if the file is missing or
            malformed.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"No snapshot at {self.path}, starting empty")
            return self.empty()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read snapshot {self.path}: {e}")
            return self.empty()

        try:
            document = json.loads(text)
        except ValueError as e:
            logger.warning(f"Malformed snapshot {self.path}: {e}")
            return self.empty()

        return self._parse_document(document)

    def save(self, update: Mapping[str, Mapping[str, RateRecord] | None]) -> bool:
        """Persist new maps for some sources, keeping the rest as they were.

        :param update: Source name -> new records. Missing, None or empty
            entries keep the last persisted map for that source.
        :returns: True if the file was written.
        """
        unknown = [name for name in update if name not in self.source_names]
        if unknown:
            logger.warning(f"Ignoring unknown sources in save: {unknown}")

        with self._lock:
            persisted = self.load()
            sources: dict[str, dict[str, RateRecord]] = {}
            for name in self.source_names:
                fresh = update.get(name)
                if fresh:
                    sources[name] = dict(fresh)
                else:
                    sources[name] = persisted.get(name)
                    logger.debug(
                        f"[{name}] No new data, keeping {len(sources[name])} records"
                    )

            snapshot = Snapshot(
                sources=sources,
                generated_at=utc_now_iso(),
                cache_ttl_seconds=self.cache_ttl_seconds,
            )
            try:
                self._write_atomic(snapshot.to_document())
            except PersistenceError as e:
                logger.error(f"Snapshot write failed: {e}")
                return False

        logger.info(
            f"Snapshot written to {self.path} "
            f"({', '.join(f'{n}={len(r)}' for n, r in sources.items())})"
        )
        return True

    def _parse_document(self, document: Any) -> Snapshot:
        """Accept wrapped, hoisted and pre-meta documents."""
        snapshot = self.empty()
        if not isinstance(document, dict):
            logger.warning(f"Snapshot {self.path} is not a JSON object, ignoring")
            return snapshot

        meta = document.get("meta")
        if not isinstance(meta, dict):
            meta = {}

        body = document.get("data")
        if not isinstance(body, dict):
            body = document

        for name in self.source_names:
            snapshot.sources[name] = self._parse_records(body.get(name))

        snapshot.generated_at = meta.get("generatedAt") or document.get("generatedAt")
        ttl = meta.get("cacheTtlSeconds")
        if isinstance(ttl, (int, float)) and not isinstance(ttl, bool):
            snapshot.cache_ttl_seconds = int(ttl)
        return snapshot

    @staticmethod
    def _parse_records(raw: Any) -> dict[str, RateRecord]:
        """Parse one source's records from a code map or a record list."""
        records: dict[str, RateRecord] = {}
        if isinstance(raw, dict):
            items = list(raw.items())
        elif isinstance(raw, list):
            items = [(None, value) for value in raw]
        else:
            return records

        for key, value in items:
            if not isinstance(value, dict):
                continue
            record = RateRecord.from_dict(value, code=key)
            if record is not None:
                records[record.code] = record
        return records

    def _write_atomic(self, document: dict[str, Any]) -> None:
        """Write the document to a temp file and rename it over the target.

        :raises PersistenceError: If serialization or any file operation fails.
        """
        try:
            payload = json.dumps(document, ensure_ascii=False, indent=2) + "\n"
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot serialize snapshot: {e}") from e

        tmp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e
