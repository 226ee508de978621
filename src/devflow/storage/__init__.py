"""devflow storage layer."""

from devflow.storage.base import BackupReport, ProjectStore, RepairReport, SaveReport
from devflow.storage.json_store import JsonProjectStore

__all__ = ["BackupReport", "JsonProjectStore", "ProjectStore", "RepairReport", "SaveReport"]
