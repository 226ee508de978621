"""Shared test fixtures for devflow."""

from __future__ import annotations

from pathlib import Path

import pytest

from devflow.config import Config
from devflow.core.documents import DocumentGenerator
from devflow.core.engine import PhaseEngine
from devflow.core.session import Session
from devflow.events.bus import EventBus
from devflow.storage.json_store import JsonProjectStore


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("DEVFLOW_PROJECTS_DIR", "DEVFLOW_LOG_LEVEL", "DEVFLOW_AUTO_BACKUP"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(projects_dir=tmp_path)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
async def store(config: Config, event_bus: EventBus) -> JsonProjectStore:
    s = JsonProjectStore.from_config(config, event_bus=event_bus)
    await s.initialize()
    return s


@pytest.fixture
def documents(config: Config, event_bus: EventBus) -> DocumentGenerator:
    return DocumentGenerator(config.docs_dir, event_bus)


@pytest.fixture
def session(store: JsonProjectStore) -> Session:
    return Session(store)


@pytest.fixture
def engine(documents: DocumentGenerator, event_bus: EventBus) -> PhaseEngine:
    return PhaseEngine(documents, event_bus)
