"""Event type constants for devflow."""

from enum import StrEnum


class EventType(StrEnum):
    PROJECT_CREATED = "project.created"
    PROJECT_UPDATED = "project.updated"
    PROJECT_DELETED = "project.deleted"
    PROJECT_RESTORED = "project.restored"
    PROJECT_FINISHED = "project.finished"

    PHASE_ADVANCED = "phase.advanced"

    BACKUP_CREATED = "backup.created"
    BACKUP_FAILED = "backup.failed"
    BACKUPS_PRUNED = "backups.pruned"

    INDEX_REPAIRED = "index.repaired"

    DOCUMENT_GENERATED = "document.generated"
