"""The active-project session."""

from __future__ import annotations

import logging

from devflow.errors import NoActiveProjectError, ProjectNotFoundError
from devflow.models.project import Phase, ProjectRecord
from devflow.storage.base import ProjectStore, SaveReport

logger = logging.getLogger(__name__)


class Session:
    """Holds at most one active project and bridges the engine to the store.

    A session is a plain value: create one per client connection (or per
    test) and pass it into every ``PhaseEngine.handle`` call.
    """

    def __init__(self, store: ProjectStore) -> None:
        self._store = store
        self._active: ProjectRecord | None = None

    @property
    def store(self) -> ProjectStore:
        return self._store

    @property
    def active(self) -> ProjectRecord | None:
        return self._active

    def require_active(self, phase: Phase | str | None = None) -> ProjectRecord:
        if self._active is None:
            raise NoActiveProjectError(phase=phase)
        return self._active

    def activate(self, record: ProjectRecord) -> None:
        self._active = record

    def clear(self) -> None:
        self._active = None

    async def commit(self, record: ProjectRecord) -> SaveReport:
        """Stamp and persist a record. Does not change the active pointer."""
        record.touch()
        return await self._store.save(record)

    async def resume(self, project_id: str) -> ProjectRecord:
        """Make a stored project the active one.

        Raises:
            ProjectNotFoundError: If the store has no loadable record for the id
        """
        record = await self._store.load(project_id)
        if record is None:
            raise ProjectNotFoundError(project_id)
        self._active = record
        logger.info("Resumed project: %s (phase=%s)", record.id, record.phase)
        return record

    async def restore(self, project_id: str, timestamp: str | None = None) -> ProjectRecord:
        record = await self._store.restore(project_id, timestamp)
        if self._active is not None and self._active.id == project_id:
            self._active = record
        return record
