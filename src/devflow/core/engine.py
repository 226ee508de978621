"""Phase engine: validates and executes one phase transition per call."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic.alias_generators import to_camel

from devflow.core.documents import DocumentGenerator
from devflow.core.session import Session
from devflow.core.validation import (
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    check_string_list,
    check_text,
    sanitize,
    validate_project_name,
    validate_task_id,
)
from devflow.errors import (
    IncompleteTasksError,
    MissingConfirmationError,
    PhaseTransitionError,
    TaskNotFoundError,
    ValidationError,
)
from devflow.events.bus import EventBus
from devflow.events.types import EventType
from devflow.models.project import CONTENT_PHASES, Phase, ProjectRecord
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

logger = logging.getLogger(__name__)

REQUIREMENT_LISTS = (
    "requirements",
    "functional_requirements",
    "technical_requirements",
    "acceptance_criteria",
)

DESIGN_FIELDS = (
    "architecture",
    "implementation",
    "system_design",
    "data_structures",
    "interfaces",
    "deployment",
)


class PhaseEngine:
    """Runs phase actions against a session's active project.

    Handlers work on a deep copy of the active record. The copy becomes the
    active record only once the store has persisted it, so a failed call
    leaves both the session and the disk unchanged.
    """

    # Confirmed content phase -> what to do next
    _AFTER_CONFIRMATION: ClassVar[dict[Phase | None, str]] = {
        None: "Proceed with design phase (action: design)",
        Phase.REQUIREMENT: "Proceed with design phase (action: design)",
        Phase.DESIGN: "Generate task list (action: todo)",
        Phase.TODO: "Start executing tasks (action: task_complete)",
    }
    _CONFIRMABLE: ClassVar[frozenset[Phase]] = CONTENT_PHASES | {Phase.INIT, Phase.CONFIRMATION}

    def __init__(
        self,
        documents: DocumentGenerator,
        event_bus: EventBus,
        *,
        max_name_length: int = MAX_NAME_LENGTH,
    ) -> None:
        self._documents = documents
        self._event_bus = event_bus
        self._max_name_length = max_name_length

    async def handle(
        self, session: Session, request: PhaseRequest | dict[str, Any]
    ) -> FlowResult:
        """Execute one phase action.

        Args:
            session: Session holding the active project
            request: A parsed phase request, or a raw payload with an ``action`` key

        Returns:
            FlowResult describing the outcome and suggested next steps

        Raises:
            DevFlowError: Any business or validation failure, unchanged
        """
        if isinstance(request, dict):
            request = parse_request(request)
        handler = getattr(self, f"_handle_{request.action}")
        return await handler(session, request)

    # --- helpers ---

    def _draft(self, session: Session, target: Phase) -> tuple[ProjectRecord, ProjectRecord]:
        """Return the active record and a mutable copy, after the progression check."""
        record = session.require_active(target)
        if target.rank < record.effective_rank:
            raise PhaseTransitionError(
                f"Cannot go back from {record.phase} to {target}; "
                "restore a backup to roll a project back",
                phase=target,
                project_id=record.id,
            )
        return record, record.model_copy(deep=True)

    async def _advance(
        self, session: Session, previous: ProjectRecord, draft: ProjectRecord, target: Phase
    ) -> None:
        draft.phase = target
        await session.commit(draft)
        session.activate(draft)
        await self._event_bus.emit(
            EventType.PHASE_ADVANCED,
            {"project_id": draft.id, "from": str(previous.phase), "to": str(target)},
        )

    # --- handlers ---

    async def _handle_init(self, session: Session, request: InitRequest) -> FlowResult:
        name = validate_project_name(request.project_name, max_length=self._max_name_length)
        record = ProjectRecord(name=name)
        await session.commit(record)
        session.activate(record)
        logger.info("Initialized project: %s (id=%s)", name, record.id)

        return FlowResult(
            message=f'Project "{name}" initialized successfully',
            project_id=record.id,
            phase=Phase.INIT,
            next_steps=["Proceed with requirement analysis (action: requirement)"],
        )

    async def _handle_requirement(
        self, session: Session, request: RequirementRequest
    ) -> FlowResult:
        previous, draft = self._draft(session, Phase.REQUIREMENT)

        errors = []
        if request.description is not None:
            errors += check_text(
                "description", request.description, max_length=MAX_DESCRIPTION_LENGTH
            )
        for field in REQUIREMENT_LISTS:
            values = getattr(request, field)
            if values is not None:
                errors += check_string_list(to_camel(field), values)
        if errors:
            raise ValidationError(errors, phase=Phase.REQUIREMENT, project_id=draft.id)

        if request.description is not None:
            draft.description = sanitize(request.description)
        for field in REQUIREMENT_LISTS:
            values = getattr(request, field)
            if values is not None:
                setattr(draft, field, [sanitize(v) for v in values])

        await self._advance(session, previous, draft, Phase.REQUIREMENT)
        path = await self._documents.render(draft, "requirement")

        return FlowResult(
            message="Requirement analysis completed",
            project_id=draft.id,
            phase=Phase.REQUIREMENT,
            next_steps=["Wait for user to confirm requirements (action: confirmation)"],
            generated_files=[path],
        )

    async def _handle_confirmation(
        self, session: Session, request: ConfirmationRequest
    ) -> FlowResult:
        record = session.require_active(Phase.CONFIRMATION)
        if request.confirmed is None:
            raise MissingConfirmationError(phase=Phase.CONFIRMATION, project_id=record.id)

        if not request.confirmed:
            return FlowResult(
                message="User not confirmed, please modify and resubmit",
                project_id=record.id,
                phase=record.phase,
                next_steps=["Modify current phase content and resubmit"],
            )

        if record.phase not in self._CONFIRMABLE:
            raise PhaseTransitionError(
                f"Nothing to confirm in phase {record.phase}",
                phase=Phase.CONFIRMATION,
                project_id=record.id,
            )

        draft = record.model_copy(deep=True)
        if record.phase in CONTENT_PHASES:
            draft.confirmed_phase = record.phase
        await self._advance(session, record, draft, Phase.CONFIRMATION)
        logger.info("Confirmed %s for project %s", draft.confirmed_phase, draft.id)

        return FlowResult(
            message="User confirmation completed, can proceed to next phase",
            project_id=draft.id,
            phase=Phase.CONFIRMATION,
            next_steps=[self._AFTER_CONFIRMATION[draft.confirmed_phase]],
        )

    async def _handle_design(self, session: Session, request: DesignRequest) -> FlowResult:
        previous, draft = self._draft(session, Phase.DESIGN)
        for field in DESIGN_FIELDS:
            value = getattr(request, field)
            if value is not None:
                setattr(draft, field, value)

        await self._advance(session, previous, draft, Phase.DESIGN)
        path = await self._documents.render(draft, "design")

        return FlowResult(
            message="Design phase completed",
            project_id=draft.id,
            phase=Phase.DESIGN,
            next_steps=[
                "Wait for user to confirm design (action: confirmation)",
                "Generate task list (action: todo)",
            ],
            generated_files=[path],
        )

    async def _handle_todo(self, session: Session, request: TodoRequest) -> FlowResult:
        previous, draft = self._draft(session, Phase.TODO)
        if request.tasks is not None:
            seen: set[str] = set()
            duplicates = []
            for task in request.tasks:
                if task.id in seen:
                    duplicates.append(f"tasks: duplicate task id {task.id!r}")
                seen.add(task.id)
            if duplicates:
                raise ValidationError(duplicates, phase=Phase.TODO, project_id=draft.id)
            draft.tasks = list(request.tasks)

        await self._advance(session, previous, draft, Phase.TODO)
        path = await self._documents.render(draft, "todo")

        return FlowResult(
            message="Task list generation completed",
            project_id=draft.id,
            phase=Phase.TODO,
            next_steps=[
                "Wait for user to confirm task list (action: confirmation)",
                "Start executing tasks (action: task_complete)",
            ],
            generated_files=[path],
            data={"totalTasks": len(draft.tasks)},
        )

    async def _handle_task_complete(
        self, session: Session, request: TaskCompleteRequest
    ) -> FlowResult:
        previous, draft = self._draft(session, Phase.TASK_COMPLETE)
        task_id = validate_task_id(
            request.task_id, phase=Phase.TASK_COMPLETE, project_id=draft.id
        )
        if draft.tasks and draft.task(task_id) is None:
            raise TaskNotFoundError(task_id, phase=Phase.TASK_COMPLETE, project_id=draft.id)

        if task_id not in draft.completed_tasks:
            draft.completed_tasks.append(task_id)
        await self._advance(session, previous, draft, Phase.TASK_COMPLETE)
        path = await self._documents.render(draft, "todo")
        logger.info("Task %s completed in project %s", task_id, draft.id)

        return FlowResult(
            message=f"Task {task_id} completed",
            project_id=draft.id,
            phase=Phase.TASK_COMPLETE,
            next_steps=["Continue executing other tasks or complete project (action: finish)"],
            generated_files=[path],
            data={
                "taskId": task_id,
                "completedTasksCount": len(draft.finished_tasks()),
                "completionRate": draft.completion_rate(),
            },
        )

    async def _handle_status(self, session: Session, request: StatusRequest) -> FlowResult:
        record = session.require_active(Phase.STATUS)
        pending = record.pending_tasks()
        finished = record.finished_tasks()

        data = {
            "projectId": record.id,
            "projectName": record.name,
            "currentPhase": str(record.phase),
            "totalTasks": len(record.tasks),
            "completedTasksCount": len(finished),
            "pendingTasksCount": len(pending),
            "completionRate": record.completion_rate(),
            "pendingTasks": [
                {
                    "id": t.id,
                    "title": t.title,
                    "description": t.description,
                    "priority": t.priority,
                }
                for t in pending
            ],
            "completedTasks": [
                {"id": t.id, "title": t.title, "description": t.description} for t in finished
            ],
        }
        if pending:
            next_steps = ["Complete remaining tasks (action: task_complete)", "View task details"]
        else:
            next_steps = ["All tasks completed, can finish project (action: finish)"]

        return FlowResult(
            message=f'Project "{record.name}" status information',
            project_id=record.id,
            phase=Phase.STATUS,
            next_steps=next_steps,
            data=data,
        )

    async def _handle_finish(self, session: Session, request: FinishRequest) -> FlowResult:
        previous, draft = self._draft(session, Phase.FINISH)
        pending = draft.pending_tasks()
        if pending and not request.force:
            raise IncompleteTasksError(pending, phase=Phase.FINISH, project_id=draft.id)

        await self._advance(session, previous, draft, Phase.FINISH)
        session.clear()
        if pending:
            logger.warning(
                "Project %s finished with %d incomplete tasks (forced)", draft.id, len(pending)
            )
        await self._event_bus.emit(
            EventType.PROJECT_FINISHED,
            {"project_id": draft.id, "forced": bool(pending)},
        )
        path = await self._documents.render(draft, "done")

        return FlowResult(
            message=f'Project "{draft.name}" completed',
            project_id=draft.id,
            phase=Phase.FINISH,
            next_steps=["Project completed"],
            generated_files=[path],
            data={
                "completionRate": draft.completion_rate(),
                "incompleteTasksCount": len(pending),
            },
        )
