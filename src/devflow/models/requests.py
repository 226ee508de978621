"""Per-phase request variants.

A tool call arrives as one loosely shaped bag of fields. ``parse_request``
turns it into exactly one of the variants below, keyed by ``action``, so the
engine never has to guess which fields belong to which phase.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

import pydantic
from pydantic import Field, TypeAdapter

from devflow.errors import ValidationError
from devflow.models.project import CamelModel, Phase, Task


class InitRequest(CamelModel):
    action: Literal["init"] = "init"
    project_name: str


class RequirementRequest(CamelModel):
    action: Literal["requirement"] = "requirement"
    description: str | None = None
    requirements: list[str] | None = None
    functional_requirements: list[str] | None = None
    technical_requirements: list[str] | None = None
    acceptance_criteria: list[str] | None = None


class ConfirmationRequest(CamelModel):
    action: Literal["confirmation"] = "confirmation"
    confirmed: bool | None = None
    # Free-text label of what is being confirmed; informational only
    phase: str | None = None


class DesignRequest(CamelModel):
    action: Literal["design"] = "design"
    architecture: str | None = None
    implementation: str | None = None
    system_design: str | None = None
    data_structures: str | None = None
    interfaces: str | None = None
    deployment: str | None = None


class TodoRequest(CamelModel):
    action: Literal["todo"] = "todo"
    tasks: list[Task] | None = None


class TaskCompleteRequest(CamelModel):
    action: Literal["task_complete"] = "task_complete"
    task_id: str | None = None


class StatusRequest(CamelModel):
    action: Literal["status"] = "status"


class FinishRequest(CamelModel):
    action: Literal["finish"] = "finish"
    force: bool = False


PhaseRequest = Annotated[
    InitRequest
    | RequirementRequest
    | ConfirmationRequest
    | DesignRequest
    | TodoRequest
    | TaskCompleteRequest
    | StatusRequest
    | FinishRequest,
    Field(discriminator="action"),
]

_ADAPTER: TypeAdapter[PhaseRequest] = TypeAdapter(PhaseRequest)


def _format_error(error: dict[str, Any]) -> str:
    # First loc element is the union tag; drop it
    loc = ".".join(str(p) for p in error.get("loc", ())[1:])
    return f"{loc}: {error['msg']}" if loc else error["msg"]


def parse_request(payload: dict[str, Any]) -> PhaseRequest:
    """Validate a raw tool-call payload into its phase variant.

    ``None`` values are treated as absent. Shape errors are aggregated into a
    single ``ValidationError``.
    """
    cleaned = {k: v for k, v in payload.items() if v is not None}
    action = cleaned.get("action")
    try:
        return _ADAPTER.validate_python(cleaned)
    except pydantic.ValidationError as e:
        phase = action if isinstance(action, str) and action in set(Phase) else None
        raise ValidationError([_format_error(err) for err in e.errors()], phase=phase) from e
