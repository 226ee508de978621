"""Error taxonomy for devflow.

Every business error carries a stable machine-readable ``code``, the phase in
which it occurred and the project id when one is known. The server layer turns
them into JSON error payloads verbatim.
"""

from __future__ import annotations

from typing import Any


class DevFlowError(Exception):
    """Base class for all devflow errors."""

    code = "DEVFLOW_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        phase: str | None = None,
        project_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.phase = str(phase) if phase is not None else None
        self.project_id = project_id

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.phase:
            data["phase"] = self.phase
        if self.project_id:
            data["projectId"] = self.project_id
        return data


class ValidationError(DevFlowError):
    """Bad or missing input; field-level messages are aggregated in ``errors``."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str] | str, **kwargs: Any) -> None:
        self.errors = [errors] if isinstance(errors, str) else list(errors)
        super().__init__("Validation failed: " + "; ".join(self.errors), **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "errors": list(self.errors)}


class NoActiveProjectError(DevFlowError):
    """A phase call arrived before ``init`` or after ``finish``."""

    code = "NO_CURRENT_PROJECT"

    def __init__(self, message: str = "Please initialize project first", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class MissingConfirmationError(DevFlowError):
    code = "MISSING_CONFIRMATION"

    def __init__(self, message: str = "Please provide confirmation status", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class TaskNotFoundError(DevFlowError):
    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: str, **kwargs: Any) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}", **kwargs)


class IncompleteTasksError(DevFlowError):
    """Raised by ``finish`` when tasks remain open; ``tasks`` lists them."""

    code = "INCOMPLETE_TASKS"

    def __init__(self, tasks: list[Any], **kwargs: Any) -> None:
        self.tasks = list(tasks)
        details = "\n".join(f"- {t.id}: {t.title}" for t in self.tasks)
        message = (
            f"Please complete all tasks first. Remaining incomplete tasks:\n{details}\n\n"
            "Solutions:\n"
            '1. Use action: "task_complete" to complete tasks one by one\n'
            '2. Use action: "status" to view detailed status\n'
            "3. Use force: true to force complete project"
        )
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "incompleteTasks": [{"id": t.id, "title": t.title} for t in self.tasks],
        }


class ProjectNotFoundError(DevFlowError):
    code = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str, **kwargs: Any) -> None:
        kwargs.setdefault("project_id", project_id)
        super().__init__(f"Project does not exist: {project_id}", **kwargs)


class StoreIOError(DevFlowError):
    """Underlying filesystem failure in the project store."""

    code = "STORE_IO_ERROR"


class RestoreError(DevFlowError):
    """No backup exists for the project, or the chosen backup is corrupt."""

    code = "RESTORE_STATE_ERROR"


class PhaseTransitionError(DevFlowError):
    """The requested action would move the project backwards."""

    code = "INVALID_PHASE_TRANSITION"


class DocumentGenerationError(DevFlowError):
    code = "DOCUMENT_GENERATION_ERROR"
