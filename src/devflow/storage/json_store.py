"""JSON file storage backend with a self-repairing index and rolling backups.

Layout under ``state_dir``::

    <project-id>.json                 one serialized ProjectRecord per project
    projects.json                     index: project id -> record file
    backups/<project-id>_<ts>.json    read-only snapshots, newest N kept

Backup timestamps are ISO-8601 UTC with ``:`` and ``.`` replaced by ``-``,
so lexical order equals chronological order.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
import stat
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from devflow.errors import RestoreError, StoreIOError, ValidationError
from devflow.events.bus import EventBus
from devflow.events.types import EventType
from devflow.models.project import ProjectRecord
from devflow.storage.base import BackupReport, ProjectStore, RepairReport, SaveReport

logger = logging.getLogger(__name__)

INDEX_FILE = "projects.json"
BACKUP_DIR = "backups"
DEFAULT_RETENTION = 10
RECENT_LIMIT = 5

_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-][A-Za-z0-9_.\-]*$")
_TIMESTAMP_PATTERN = r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d+Z"


def backup_timestamp(moment: datetime | None = None) -> str:
    """Filesystem-safe timestamp, e.g. ``2024-01-15T10-30-00-123456Z``."""
    moment = moment or datetime.now(UTC)
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def _backup_pattern(project_id: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(project_id)}_({_TIMESTAMP_PATTERN})\.json$")


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    os.replace(tmp, path)


def _snapshot(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)
    os.chmod(target, stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH)


def _unlink_snapshot(path: Path) -> None:
    # Read-only files cannot be unlinked on every platform
    os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)
    path.unlink(missing_ok=True)


def _updated_sort_key(record: ProjectRecord) -> datetime:
    try:
        moment = datetime.fromisoformat(record.updated_at)
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)


class JsonProjectStore(ProjectStore):
    """One JSON file per project, an id -> file index and timestamped backups.

    Writes are serialized through a single lock; reads are not. All file I/O
    runs in worker threads.
    """

    def __init__(
        self,
        state_dir: Path,
        *,
        auto_backup: bool = True,
        backup_retention: int = DEFAULT_RETENTION,
        event_bus: EventBus | None = None,
    ) -> None:
        if backup_retention < 1:
            raise ValueError("backup_retention must be at least 1")
        self.state_dir = state_dir
        self.index_path = state_dir / INDEX_FILE
        self.backups_dir = state_dir / BACKUP_DIR
        self.auto_backup = auto_backup
        self.backup_retention = backup_retention
        self._event_bus = event_bus
        self._index: dict[str, Path] = {}
        self._lock = asyncio.Lock()
        self._initialized = False

    @classmethod
    def from_config(cls, config: Any, event_bus: EventBus | None = None) -> JsonProjectStore:
        return cls(
            config.state_dir,
            auto_backup=config.auto_backup,
            backup_retention=config.backup_retention,
            event_bus=event_bus,
        )

    async def initialize(self) -> None:
        """Create directories, load the index and reconcile it with disk."""
        try:
            await asyncio.to_thread(self.backups_dir.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create state directory %s: %s", self.state_dir, e)
            raise StoreIOError(f"State manager initialization failed: {e}") from e

        self._index = await self._read_index()
        self._initialized = True
        await self.repair()
        logger.info("Initialized project store at %s (%d projects)", self.state_dir, self.count())

    def count(self) -> int:
        return len(self._index)

    def _require_ready(self) -> None:
        if not self._initialized:
            raise RuntimeError("Store not initialized. Call initialize() first.")

    # --- Index ---

    def _path_for(self, project_id: str) -> Path:
        return self.state_dir / f"{project_id}.json"

    def _check_id(self, project_id: str) -> None:
        if not project_id or not _ID_PATTERN.match(project_id):
            raise ValidationError(f"Invalid project id: {project_id!r}", project_id=project_id)

    async def _read_index(self) -> dict[str, Path]:
        try:
            raw = await asyncio.to_thread(_read_json, self.index_path)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Projects index unreadable, rebuilding from record files: %s", e)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Projects index malformed, rebuilding from record files")
            return {}
        index = {str(pid): self.state_dir / str(loc) for pid, loc in raw.items()}
        logger.debug("Loaded projects index: %d projects", len(index))
        return index

    async def _persist_index(self) -> None:
        data = {}
        for pid, path in self._index.items():
            try:
                data[pid] = path.relative_to(self.state_dir).as_posix()
            except ValueError:
                data[pid] = str(path)
        await asyncio.to_thread(_write_json_atomic, self.index_path, data)

    async def _drop_entries(self, project_ids: list[str], reason: str) -> None:
        """Remove dangling index entries. Best effort: failures are only logged."""
        dropped = [pid for pid in project_ids if self._index.pop(pid, None) is not None]
        if not dropped:
            return
        logger.warning("Dropped %d index entries (%s): %s", len(dropped), reason, dropped)
        try:
            await self._persist_index()
        except OSError as e:
            logger.error("Failed to persist repaired index: %s", e)
        await self._emit(EventType.INDEX_REPAIRED, {"dropped": dropped, "reason": reason})

    async def repair(self) -> RepairReport:
        """Drop entries whose file is gone and adopt record files missing from the index."""
        self._require_ready()
        report = RepairReport()
        async with self._lock:
            for pid, path in list(self._index.items()):
                if not await asyncio.to_thread(path.is_file):
                    report.dropped.append(pid)
            for pid in report.dropped:
                del self._index[pid]

            for path in await asyncio.to_thread(self._unindexed_files):
                try:
                    record = ProjectRecord.model_validate(await asyncio.to_thread(_read_json, path))
                except (OSError, ValueError) as e:
                    logger.warning("Ignoring unreadable record file %s: %s", path, e)
                    continue
                if record.id != path.stem:
                    logger.warning("Ignoring record file %s holding project %s", path, record.id)
                    continue
                self._index[record.id] = path
                report.adopted.append(record.id)

            if report.changed:
                try:
                    await self._persist_index()
                except OSError as e:
                    logger.error("Failed to persist repaired index: %s", e)

        if report.changed:
            logger.info(
                "Index repaired: dropped %d, adopted %d", len(report.dropped), len(report.adopted)
            )
            await self._emit(
                EventType.INDEX_REPAIRED,
                {"dropped": report.dropped, "adopted": report.adopted, "reason": "repair"},
            )
        return report

    def _unindexed_files(self) -> list[Path]:
        known = set(self._index.values())
        return [
            p
            for p in sorted(self.state_dir.glob("*.json"))
            if p.name != INDEX_FILE and p not in known and p.is_file()
        ]

    # --- Records ---

    async def save(self, record: ProjectRecord) -> SaveReport:
        self._require_ready()
        self._check_id(record.id)
        path = self._path_for(record.id)

        async with self._lock:
            is_new = record.id not in self._index
            backup = None
            if self.auto_backup and await asyncio.to_thread(path.is_file):
                backup = await self._backup(record.id, path)

            record.touch()
            try:
                await asyncio.to_thread(_write_json_atomic, path, record.to_storage())
                self._index[record.id] = path
                await self._persist_index()
            except OSError as e:
                logger.error("Failed to save project state %s: %s", record.id, e)
                raise StoreIOError(
                    f"Failed to save project state: {e}", project_id=record.id
                ) from e

        logger.info("Project state saved: %s", record.id)
        await self._emit(
            EventType.PROJECT_CREATED if is_new else EventType.PROJECT_UPDATED,
            {"project_id": record.id, "phase": str(record.phase)},
        )
        return SaveReport(project_id=record.id, path=path, backup=backup)

    async def _read_record(self, project_id: str, path: Path) -> ProjectRecord:
        record = ProjectRecord.model_validate(await asyncio.to_thread(_read_json, path))
        if record.id != project_id:
            raise ValueError(f"file holds project {record.id}")
        return record

    async def load(self, project_id: str) -> ProjectRecord | None:
        self._require_ready()
        path = self._index.get(project_id)
        if path is None:
            logger.debug("Project does not exist: %s", project_id)
            return None

        try:
            record = await self._read_record(project_id, path)
        except FileNotFoundError:
            reason = "missing file"
        except (OSError, ValueError) as e:
            logger.warning("Project state file corrupted: %s (%s)", project_id, e)
            reason = "corrupt file"
        else:
            logger.debug("Project state loaded: %s", project_id)
            return record

        async with self._lock:
            await self._drop_entries([project_id], reason)
        return None

    async def delete(self, project_id: str) -> bool:
        self._require_ready()
        async with self._lock:
            path = self._index.get(project_id)
            if path is None:
                logger.warning("Project does not exist: %s", project_id)
                return False

            if self.auto_backup:
                await self._backup(project_id, path)

            try:
                await asyncio.to_thread(path.unlink, missing_ok=True)
                del self._index[project_id]
                await self._persist_index()
            except OSError as e:
                logger.error("Failed to delete project state %s: %s", project_id, e)
                raise StoreIOError(
                    f"Failed to delete project state: {e}", project_id=project_id
                ) from e

        logger.info("Project state deleted: %s", project_id)
        await self._emit(EventType.PROJECT_DELETED, {"project_id": project_id})
        return True

    async def exists(self, project_id: str) -> bool:
        self._require_ready()
        path = self._index.get(project_id)
        if path is None:
            return False
        if await asyncio.to_thread(path.is_file):
            return True
        async with self._lock:
            await self._drop_entries([project_id], "missing file")
        return False

    async def list_all(self) -> list[ProjectRecord]:
        self._require_ready()
        records: list[ProjectRecord] = []
        broken: list[str] = []
        for project_id, path in list(self._index.items()):
            try:
                records.append(await self._read_record(project_id, path))
            except (OSError, ValueError) as e:
                logger.warning("Skipping unreadable project file %s: %s", path, e)
                broken.append(project_id)

        if broken:
            async with self._lock:
                await self._drop_entries(broken, "unreadable file")

        return sorted(records, key=_updated_sort_key, reverse=True)

    async def find(self, **criteria: Any) -> list[ProjectRecord]:
        fields = {}
        for name, info in ProjectRecord.model_fields.items():
            fields[name] = name
            if info.alias:
                fields[info.alias] = name

        unknown = sorted(set(criteria) - set(fields))
        if unknown:
            raise ValidationError([f"Unknown project field: {key}" for key in unknown])

        matches = []
        for record in await self.list_all():
            if all(getattr(record, fields[key]) == value for key, value in criteria.items()):
                matches.append(record)
        return matches

    async def stats(self) -> dict[str, Any]:
        records = await self.list_all()
        by_phase = Counter(str(r.phase) for r in records)
        return {
            "total": len(records),
            "by_phase": dict(by_phase),
            "recent": records[:RECENT_LIMIT],
        }

    # --- Backups ---

    async def create_backup(self, project_id: str) -> BackupReport:
        async with self._lock:
            path = self._index.get(project_id, self._path_for(project_id))
            return await self._backup(project_id, path)

    async def _backup(self, project_id: str, source: Path) -> BackupReport:
        report = BackupReport(project_id=project_id)
        target = self.backups_dir / f"{project_id}_{backup_timestamp()}.json"
        try:
            await asyncio.to_thread(_snapshot, source, target)
        except OSError as e:
            report.error = str(e)
            logger.warning("Failed to create backup for %s: %s", project_id, e)
            await self._emit(EventType.BACKUP_FAILED, {"project_id": project_id, "error": str(e)})
            return report

        report.created = True
        report.path = target
        logger.debug("Created backup: %s", target)
        report.pruned = await self._prune_backups(project_id)
        await self._emit(
            EventType.BACKUP_CREATED,
            {"project_id": project_id, "path": str(target), "pruned": len(report.pruned)},
        )
        return report

    async def cleanup_old_backups(self, project_id: str) -> list[Path]:
        async with self._lock:
            return await self._prune_backups(project_id)

    async def _prune_backups(self, project_id: str) -> list[Path]:
        deleted: list[Path] = []
        try:
            backups = await asyncio.to_thread(self._backup_files, project_id)
            if len(backups) <= self.backup_retention:
                return deleted
            # Newest first by mtime; the name breaks ties on coarse clocks
            backups.sort(key=lambda item: (item[1], item[0].name), reverse=True)
            for path, _ in backups[self.backup_retention:]:
                await asyncio.to_thread(_unlink_snapshot, path)
                deleted.append(path)
                logger.debug("Deleted old backup: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up old backups for %s: %s", project_id, e)

        if deleted:
            await self._emit(
                EventType.BACKUPS_PRUNED,
                {"project_id": project_id, "deleted": [p.name for p in deleted]},
            )
        return deleted

    def _backup_files(self, project_id: str) -> list[tuple[Path, float]]:
        if not self.backups_dir.is_dir():
            return []
        pattern = _backup_pattern(project_id)
        return [
            (p, p.stat().st_mtime)
            for p in self.backups_dir.iterdir()
            if pattern.match(p.name)
        ]

    async def list_backups(self, project_id: str) -> list[str]:
        pattern = _backup_pattern(project_id)
        files = await asyncio.to_thread(self._backup_files, project_id)
        stamps = [m.group(1) for p, _ in files if (m := pattern.match(p.name))]
        return sorted(stamps, reverse=True)

    async def restore(self, project_id: str, timestamp: str | None = None) -> ProjectRecord:
        """Load a backup and save it as the current record.

        The save backs up whatever is current first, so a restore can itself
        be undone by restoring again.
        """
        self._require_ready()
        self._check_id(project_id)

        if timestamp is None:
            stamps = await self.list_backups(project_id)
            if not stamps:
                logger.warning("No project backup found: %s", project_id)
                raise RestoreError(
                    f"No project backup found: {project_id}", project_id=project_id
                )
            timestamp = stamps[0]
        elif not re.fullmatch(_TIMESTAMP_PATTERN, timestamp):
            raise RestoreError(f"Invalid backup timestamp: {timestamp}", project_id=project_id)

        backup_file = self.backups_dir / f"{project_id}_{timestamp}.json"
        try:
            record = await self._read_record(project_id, backup_file)
        except FileNotFoundError as e:
            raise RestoreError(
                f"Backup not found: {backup_file.name}", project_id=project_id
            ) from e
        except (OSError, ValueError) as e:
            logger.warning("Backup file corrupted: %s (%s)", backup_file, e)
            raise RestoreError(
                f"Backup file corrupted: {backup_file.name}", project_id=project_id
            ) from e

        await self.save(record)
        logger.info("Project state restored: %s from %s", project_id, backup_file.name)
        await self._emit(
            EventType.PROJECT_RESTORED,
            {"project_id": project_id, "timestamp": timestamp, "phase": str(record.phase)},
        )
        return record

    async def _emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self._event_bus is not None:
            await self._event_bus.emit(event_type, data)
