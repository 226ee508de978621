"""devflow data models."""

from devflow.models.project import CONTENT_PHASES, PHASE_ORDER, Phase, ProjectRecord, Task
from devflow.models.requests import (
    ConfirmationRequest,
    DesignRequest,
    FinishRequest,
    InitRequest,
    PhaseRequest,
    RequirementRequest,
    StatusRequest,
    TaskCompleteRequest,
    TodoRequest,
    parse_request,
)
from devflow.models.result import FlowResult

__all__ = [
    "CONTENT_PHASES",
    "PHASE_ORDER",
    "ConfirmationRequest",
    "DesignRequest",
    "FinishRequest",
    "FlowResult",
    "InitRequest",
    "Phase",
    "PhaseRequest",
    "ProjectRecord",
    "RequirementRequest",
    "StatusRequest",
    "Task",
    "TaskCompleteRequest",
    "TodoRequest",
    "parse_request",
]
