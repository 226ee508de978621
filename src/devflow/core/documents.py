"""Markdown document generation for the content-producing phases."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from jinja2 import DictLoader, Environment, StrictUndefined, TemplateError

from devflow.core.validation import safe_filename
from devflow.errors import DocumentGenerationError
from devflow.events.bus import EventBus
from devflow.events.types import EventType
from devflow.models.project import ProjectRecord, utc_now

logger = logging.getLogger(__name__)

REQUIREMENT_TEMPLATE = """\
# Requirements Analysis

## Project Overview
**Project name**: {{ project.name }}
**Created**: {{ project.created_at }}
**Description**: {{ project.description or "" }}

{% for title, items in sections %}
## {{ title }}
{% for item in items %}
- {{ item }}
{% endfor %}

{% endfor %}
---
*Generated: {{ timestamp }}*
"""

DESIGN_TEMPLATE = """\
# Technical Design

## Project Information
**Project name**: {{ project.name }}
**Designed**: {{ project.updated_at }}

{% for title, body in sections %}
## {{ title }}
{% if body %}
{{ body }}
{% endif %}

{% endfor %}
---
*Generated: {{ timestamp }}*
"""

TODO_TEMPLATE = """\
# Task List

## Project Information
**Project name**: {{ project.name }}
**Updated**: {{ project.updated_at }}
**Progress**: {{ completed | length }}/{{ project.tasks | length }} ({{ rate }}%)

## Tasks
{% for task in project.tasks %}
- [{{ "x" if task.id in completed else " " }}] **{{ task.id }}**: {{ task.title }}
{% if task.description %}
  - Description: {{ task.description }}
{% endif %}
  - Priority: {{ task.priority }}
{% if task.estimated_hours %}
  - Estimated hours: {{ task.estimated_hours }}
{% endif %}
{% if task.dependencies %}
  - Depends on: {{ task.dependencies | join(", ") }}
{% endif %}
{% else %}
No tasks yet
{% endfor %}

---
*Generated: {{ timestamp }}*
"""

DONE_TEMPLATE = """\
# Project Completion Report

## Project Information
**Project name**: {{ project.name }}
**Completed**: {{ project.updated_at }}
**Duration**: {{ project.created_at }} - {{ project.updated_at }}

## Completed Tasks
{% for task in project.finished_tasks() %}
- [x] {{ task.id }}: {{ task.title }}
{% else %}
No completed tasks
{% endfor %}
{% set open = project.pending_tasks() %}
{% if open %}

## Incomplete Tasks
{% for task in open %}
- [ ] {{ task.id }}: {{ task.title }}
{% endfor %}
{% endif %}

## Statistics
- Total tasks: {{ project.tasks | length }}
- Completed: {{ project.finished_tasks() | length }}
- Completion rate: {% if project.tasks %}{{ rate }}%{% else %}N/A{% endif %}


---
*Generated: {{ timestamp }}*
"""

TEMPLATES = {
    "requirement": REQUIREMENT_TEMPLATE,
    "design": DESIGN_TEMPLATE,
    "todo": TODO_TEMPLATE,
    "done": DONE_TEMPLATE,
}


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class DocumentGenerator:
    """Renders a project into ``<docs_dir>/<name>_<id>/<template>.md``."""

    def __init__(self, docs_dir: Path, event_bus: EventBus | None = None) -> None:
        self.docs_dir = docs_dir
        self._event_bus = event_bus
        self._env = Environment(
            loader=DictLoader(TEMPLATES),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    def project_dir(self, record: ProjectRecord) -> Path:
        return self.docs_dir / f"{safe_filename(record.name)}_{record.id}"

    def _context(self, record: ProjectRecord, template: str) -> dict:
        context = {
            "project": record,
            "completed": set(record.completed_tasks),
            "rate": record.completion_rate(),
            "timestamp": utc_now(),
        }
        if template == "requirement":
            context["sections"] = [
                ("Core Requirements", record.requirements),
                ("Functional Requirements", record.functional_requirements),
                ("Technical Requirements", record.technical_requirements),
                ("Acceptance Criteria", record.acceptance_criteria),
            ]
        elif template == "design":
            context["sections"] = [
                ("Architecture", record.architecture),
                ("Implementation", record.implementation),
                ("System Design", record.system_design),
                ("Data Structures", record.data_structures),
                ("Interfaces", record.interfaces),
                ("Deployment", record.deployment),
            ]
        return context

    async def render(self, record: ProjectRecord, template: str) -> str:
        """Render and write one document.

        Returns:
            Path of the written file, as a string

        Raises:
            DocumentGenerationError: Unknown template, render failure or I/O error
        """
        if template not in TEMPLATES:
            raise DocumentGenerationError(
                f"Unknown document template: {template}", project_id=record.id
            )

        try:
            content = self._env.get_template(template).render(self._context(record, template))
        except TemplateError as e:
            raise DocumentGenerationError(
                f"Failed to render {template} document: {e}", project_id=record.id
            ) from e

        path = self.project_dir(record) / f"{template}.md"
        try:
            await asyncio.to_thread(_write_text, path, content)
        except OSError as e:
            logger.error("Failed to write %s document for %s: %s", template, record.id, e)
            raise DocumentGenerationError(
                f"Failed to write {template} document: {e}", project_id=record.id
            ) from e

        logger.info("Generated %s document: %s", template, path)
        if self._event_bus is not None:
            await self._event_bus.emit(
                EventType.DOCUMENT_GENERATED,
                {"project_id": record.id, "template": template, "path": str(path)},
            )
        return str(path)
