"""Durable per-host record store.

One JSON file per host under the database directory, plus the raw-text
swarm leader marker. Records are only ever merge-updated: a write replaces
the keys it supplies and keeps everything learned before.

Known consistency gap: ``write`` updates the in-memory cache before the file
is rewritten. If persisting fails, the cache is ahead of the disk until the
next successful write of that host.
"""

from __future__ import annotations

import asyncio
import copy
import json
from pathlib import Path
from typing import Any

from loguru import logger

from linodeswarm.constants import LEADER_MARKER_FILE
from linodeswarm.errors import PersistenceError

type Record = dict[str, Any]


class RecordStore:
    """File-backed key/value record per host with an in-memory cache."""

    def __init__(self, db_dir: Path) -> None:
        self.db_dir = db_dir
        self._cache: dict[str, Record] = {}
        self._log = logger.bind(component="records")

    def _path(self, host: str) -> Path:
        if not host or "/" in host or host in (".", "..") or host == LEADER_MARKER_FILE:
            raise PersistenceError(f"Invalid host name for record store: {host!r}")
        return self.db_dir / host

    @property
    def leader_path(self) -> Path:
        return self.db_dir / LEADER_MARKER_FILE

    def _load(self, host: str) -> Record:
        path = self._path(host)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise PersistenceError(f"Unable to read record for {host}: {e}") from e
        except UnicodeDecodeError as e:
            raise PersistenceError(f"Record for {host} is not UTF-8 text: {e}") from e
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Corrupted record for {host}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Record for {host} is not a JSON object")
        return data

    def _save(self, host: str, record: Record) -> None:
        try:
            self.db_dir.mkdir(parents=True, exist_ok=True)
            self._path(host).write_text(json.dumps(record), encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Unable to write record for {host}: {e}") from e

    async def read(self, host: str) -> Record:
        """Return a copy of the host's record; an unknown host is an empty record."""
        record = self._cache.get(host)
        if record is None:
            record = await asyncio.to_thread(self._load, host)
            self._cache[host] = record
        return copy.deepcopy(record)

    async def write(self, host: str, partial: Record) -> Record:
        """Merge ``partial`` into the record, persist it and return a copy."""
        if host not in self._cache:
            self._cache[host] = await asyncio.to_thread(self._load, host)
        record = self._cache[host]
        record.update(copy.deepcopy(partial))
        self._log.debug("Writing record {host}: {keys}", host=host, keys=sorted(partial))
        await asyncio.to_thread(self._save, host, record)
        return copy.deepcopy(record)

    async def delete(self, host: str) -> None:
        """Forget the host: drop the cache entry and remove its file."""
        self._cache.pop(host, None)
        path = self._path(host)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Unable to delete record for {host}: {e}") from e

    async def hosts(self) -> list[str]:
        """Host names with a record file, sorted, excluding the leader marker."""
        def _scan() -> list[str]:
            if not self.db_dir.is_dir():
                return []
            return sorted(
                p.name for p in self.db_dir.iterdir()
                if p.is_file() and p.name != LEADER_MARKER_FILE
            )

        try:
            return await asyncio.to_thread(_scan)
        except OSError as e:
            raise PersistenceError(f"Unable to list {self.db_dir}: {e}") from e

    # -------------------------------------------------------------------------
    # Swarm leader marker
    # -------------------------------------------------------------------------

    async def read_leader(self) -> str | None:
        """Host name that initialized the swarm, or None if never initialized."""
        try:
            text = await asyncio.to_thread(self.leader_path.read_text)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Unable to read leader marker: {e}") from e
        return text.strip() or None

    async def write_leader(self, host: str) -> None:
        """Persist the leader marker. It is written at most once."""
        def _create() -> None:
            self.db_dir.mkdir(parents=True, exist_ok=True)
            with self.leader_path.open("x") as f:
                f.write(host)

        try:
            await asyncio.to_thread(_create)
        except FileExistsError:
            raise PersistenceError(
                f"Leader marker already exists at {self.leader_path}"
            ) from None
        except OSError as e:
            raise PersistenceError(f"Unable to write leader marker: {e}") from e
        self._log.info("Swarm leader recorded: {host}", host=host)

    async def clear_leader(self) -> None:
        try:
            await asyncio.to_thread(self.leader_path.unlink, missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Unable to remove leader marker: {e}") from e
