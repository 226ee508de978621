"""Abstract storage interface for devflow."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devflow.models.project import ProjectRecord


@dataclass
class BackupReport:
    """Outcome of one best-effort backup attempt."""

    project_id: str
    created: bool = False
    path: Path | None = None
    error: str | None = None
    pruned: list[Path] = field(default_factory=list)


@dataclass
class SaveReport:
    project_id: str
    path: Path
    backup: BackupReport | None = None


@dataclass
class RepairReport:
    dropped: list[str] = field(default_factory=list)
    adopted: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.dropped or self.adopted)


class ProjectStore(ABC):
    """Abstract interface for project record storage backends."""

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare storage, load the index and run a repair pass."""

    @abstractmethod
    async def save(self, record: ProjectRecord) -> SaveReport:
        """Persist a record, backing up the previous version first if enabled."""

    @abstractmethod
    async def load(self, project_id: str) -> ProjectRecord | None:
        """Load a record. Returns None if missing or unreadable."""

    @abstractmethod
    async def delete(self, project_id: str) -> bool:
        """Delete a record. Returns True if it existed."""

    @abstractmethod
    async def exists(self, project_id: str) -> bool:
        """Check the index and the backing file."""

    @abstractmethod
    async def list_all(self) -> list[ProjectRecord]:
        """All loadable records, most recently updated first."""

    @abstractmethod
    async def find(self, **criteria: Any) -> list[ProjectRecord]:
        """Records whose fields equal every given criterion."""

    @abstractmethod
    async def stats(self) -> dict[str, Any]:
        """Total count, count per phase and the most recently updated records."""

    @abstractmethod
    async def create_backup(self, project_id: str) -> BackupReport:
        """Snapshot the current record. Never raises."""

    @abstractmethod
    async def cleanup_old_backups(self, project_id: str) -> list[Path]:
        """Apply backup retention. Returns the deleted paths. Never raises."""

    @abstractmethod
    async def list_backups(self, project_id: str) -> list[str]:
        """Backup timestamps for a project, newest first."""

    @abstractmethod
    async def restore(self, project_id: str, timestamp: str | None = None) -> ProjectRecord:
        """Re-save a backup as the current record."""

    @abstractmethod
    async def repair(self) -> RepairReport:
        """Reconcile the index with the record files on disk."""

    async def cleanup(self) -> RepairReport:
        """Startup/shutdown maintenance."""
        return await self.repair()

    @abstractmethod
    def count(self) -> int:
        """Number of indexed projects."""
