"""Tests for markdown document generation."""

from __future__ import annotations

from pathlib import Path

import pytest

from devflow.core.documents import DocumentGenerator
from devflow.core.validation import safe_filename
from devflow.errors import DocumentGenerationError
from devflow.events.types import EventType
from devflow.models.project import ProjectRecord, Task


@pytest.fixture
def record() -> ProjectRecord:
    return ProjectRecord(
        name="Shop API",
        description="Online shop backend",
        requirements=["Catalog", "Checkout"],
        acceptance_criteria=["Orders persist"],
        architecture="Hexagonal",
        deployment="Containers",
        tasks=[
            Task(id="t1", title="Models", estimated_hours=2, dependencies=["t0"]),
            Task(id="t2", title="Routes", priority="high"),
        ],
        completed_tasks=["t1"],
    )


async def test_requirement_document(documents, record):
    path = Path(await documents.render(record, "requirement"))

    assert path.name == "requirement.md"
    text = path.read_text()
    assert "**Project name**: Shop API" in text
    assert "- Catalog" in text
    assert "## Acceptance Criteria" in text
    assert "- Orders persist" in text


async def test_design_document(documents, record):
    text = Path(await documents.render(record, "design")).read_text()
    assert "## Architecture\nHexagonal" in text
    assert "Containers" in text


async def test_todo_document_marks_completion(documents, record):
    text = Path(await documents.render(record, "todo")).read_text()
    assert "- [x] **t1**: Models" in text
    assert "- [ ] **t2**: Routes" in text
    assert "Depends on: t0" in text
    assert "Estimated hours: 2" in text
    assert "1/2 (50%)" in text


async def test_todo_document_without_tasks(documents):
    text = Path(await documents.render(ProjectRecord(name="Empty"), "todo")).read_text()
    assert "No tasks yet" in text


async def test_done_document(documents, record):
    text = Path(await documents.render(record, "done")).read_text()
    assert "- [x] t1: Models" in text
    assert "## Incomplete Tasks" in text
    assert "- [ ] t2: Routes" in text
    assert "Completion rate: 50%" in text


async def test_per_project_directory(documents, record, config):
    path = Path(await documents.render(record, "design"))
    assert path.parent == config.docs_dir / f"shop_api_{record.id}"
    assert path.parent == documents.project_dir(record)


async def test_emits_event(documents, record, event_bus):
    path = await documents.render(record, "todo")
    events = event_bus.history(EventType.DOCUMENT_GENERATED)
    assert events[-1].data == {"project_id": record.id, "template": "todo", "path": path}


async def test_unknown_template(documents, record):
    with pytest.raises(DocumentGenerationError) as exc_info:
        await documents.render(record, "changelog")
    assert exc_info.value.code == "DOCUMENT_GENERATION_ERROR"


async def test_write_failure(tmp_path, record):
    blocker = tmp_path / "docs"
    blocker.write_text("a file, not a directory")
    generator = DocumentGenerator(blocker)

    with pytest.raises(DocumentGenerationError):
        await generator.render(record, "requirement")


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("My Project", "my_project"),
        ('a<b>c:"d"', "a_b_c__d"),
        ("Tabs\tand  spaces", "tabs_and_spaces"),
        ("...", "project"),
    ],
)
def test_safe_filename(name, expected):
    assert safe_filename(name) == expected
