"""Project record, task and phase models."""

from __future__ import annotations

import random
import string
import time
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> str:
    return datetime.now(UTC).isoformat()


def new_project_id() -> str:
    """``proj_<epoch-ms>_<6 base36 chars>``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"proj_{int(time.time() * 1000)}_{suffix}"


class Phase(StrEnum):
    INIT = "init"
    REQUIREMENT = "requirement"
    CONFIRMATION = "confirmation"
    DESIGN = "design"
    TODO = "todo"
    TASK_COMPLETE = "task_complete"
    STATUS = "status"
    FINISH = "finish"

    @property
    def rank(self) -> int:
        """Position in the workflow; ``status`` is a query and has none."""
        if self is Phase.STATUS:
            raise ValueError("status is a query action and has no rank")
        return PHASE_ORDER.index(self)


PHASE_ORDER: tuple[Phase, ...] = (
    Phase.INIT,
    Phase.REQUIREMENT,
    Phase.CONFIRMATION,
    Phase.DESIGN,
    Phase.TODO,
    Phase.TASK_COMPLETE,
    Phase.FINISH,
)

# Phases whose output a confirmation can accept
CONTENT_PHASES = frozenset({Phase.REQUIREMENT, Phase.DESIGN, Phase.TODO})


class CamelModel(BaseModel):
    """Base model serialized with the camelCase keys used on disk and on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(CamelModel):
    """A unit of work created by the todo phase. Immutable once created."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9_.\-]+$")
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    priority: Literal["low", "medium", "high"] = "medium"
    estimated_hours: float | None = Field(default=None, gt=0)
    dependencies: list[str] | None = None


class ProjectRecord(CamelModel):
    """One development project and everything the phases have collected for it."""

    id: str = Field(default_factory=new_project_id, min_length=1)
    name: str = Field(min_length=1)
    phase: Phase = Phase.INIT
    created_at: str = Field(default_factory=utc_now)
    updated_at: str = Field(default_factory=utc_now)

    description: str | None = None
    requirements: list[str] = Field(default_factory=list)
    functional_requirements: list[str] = Field(default_factory=list)
    technical_requirements: list[str] = Field(default_factory=list)
    acceptance_criteria: list[str] = Field(default_factory=list)

    architecture: str | None = None
    implementation: str | None = None
    system_design: str | None = None
    data_structures: str | None = None
    interfaces: str | None = None
    deployment: str | None = None

    tasks: list[Task] = Field(default_factory=list)
    completed_tasks: list[str] = Field(default_factory=list)
    confirmed_phase: Phase | None = None

    @field_validator("phase")
    @classmethod
    def _phase_is_stored(cls, value: Phase) -> Phase:
        if value is Phase.STATUS:
            raise ValueError("status is not a storable phase")
        return value

    @field_validator("requirements", "functional_requirements", "technical_requirements",
                     "acceptance_criteria", "tasks", "completed_tasks", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("completed_tasks")
    @classmethod
    def _dedupe_completed(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _unique_task_ids(self) -> ProjectRecord:
        ids = [t.id for t in self.tasks]
        if len(ids) != len(set(ids)):
            raise ValueError("task ids must be unique within a project")
        return self

    # --- progression ---

    @property
    def effective_rank(self) -> int:
        """Rank used for forward-only checks.

        A confirmation keeps the rank of the content phase it accepted.
        """
        if self.phase is Phase.CONFIRMATION and self.confirmed_phase is not None:
            return max(self.confirmed_phase.rank, Phase.CONFIRMATION.rank)
        return self.phase.rank

    def touch(self) -> None:
        self.updated_at = utc_now()

    # --- task bookkeeping ---

    def task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def pending_tasks(self) -> list[Task]:
        done = set(self.completed_tasks)
        return [t for t in self.tasks if t.id not in done]

    def finished_tasks(self) -> list[Task]:
        done = set(self.completed_tasks)
        return [t for t in self.tasks if t.id in done]

    def completion_rate(self) -> int:
        if not self.tasks:
            return 0
        # Percent, halves round up
        total = len(self.tasks)
        return (len(self.finished_tasks()) * 200 + total) // (total * 2)

    # --- serialization ---

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_response(self, *, detail: str = "summary") -> dict[str, Any]:
        data: dict[str, Any] = {
            "_v": "1.0",
            "id": self.id,
            "name": self.name,
            "phase": str(self.phase),
            "updatedAt": self.updated_at,
        }
        if detail != "summary":
            data.update(self.to_storage())
        return data
