"""FastMCP server: 2 tools, 2 resources, 1 prompt."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Annotated, Any, Literal

from fastmcp import FastMCP
from pydantic import Field

from devflow import __version__
from devflow.config import Config
from devflow.core.documents import DocumentGenerator
from devflow.core.engine import PhaseEngine
from devflow.core.session import Session
from devflow.errors import DevFlowError, ProjectNotFoundError, StoreIOError
from devflow.events.bus import EventBus
from devflow.models.project import PHASE_ORDER
from devflow.storage.json_store import JsonProjectStore

logger = logging.getLogger(__name__)


def _json(data: dict[str, Any]) -> str:
    return json.dumps(data, default=str, ensure_ascii=False)


def _ok(data: dict[str, Any]) -> str:
    """Return a versioned JSON success response."""
    return _json({**data, "_v": "1.0"})


def _err(msg: str) -> str:
    """Return a versioned JSON error response."""
    return _json({"_v": "1.0", "success": False, "error": msg})


def _fail(exc: DevFlowError) -> str:
    """Return a versioned JSON error response for a business error."""
    return _json({"_v": "1.0", "success": False, **exc.to_dict()})


def create_server(config: Config) -> FastMCP:
    """Create the FastMCP server for one projects directory."""
    mcp = FastMCP("devflow", version=__version__)

    state: dict[str, Any] = {}
    _lock = asyncio.Lock()

    async def _init() -> dict[str, Any]:
        async with _lock:
            if "init_failed" in state:
                raise RuntimeError(f"devflow init previously failed for {config.projects_dir}")
            if "engine" not in state:
                bus = EventBus()
                store = JsonProjectStore.from_config(config, event_bus=bus)
                try:
                    await store.initialize()
                except StoreIOError as e:
                    state["init_failed"] = True
                    logger.error("Failed to initialize project store: %s", e)
                    raise RuntimeError(f"devflow init failed: {config.projects_dir}") from e
                documents = DocumentGenerator(config.docs_dir, bus)
                state["bus"] = bus
                state["store"] = store
                state["session"] = Session(store)
                state["engine"] = PhaseEngine(
                    documents, bus, max_name_length=config.max_name_length
                )
        return state

    # ── development_flow ──────────────────────────────────────

    @mcp.tool()
    async def development_flow(
        action: Annotated[
            Literal[
                "init",
                "requirement",
                "confirmation",
                "design",
                "todo",
                "task_complete",
                "status",
                "finish",
            ],
            Field(
                description=(
                    "init | requirement | confirmation | design | todo | "
                    "task_complete | status | finish"
                )
            ),
        ],
        project_name: Annotated[
            str | None,
            Field(description="Project name (init)"),
        ] = None,
        description: Annotated[
            str | None,
            Field(description="Project description (requirement)"),
        ] = None,
        requirements: Annotated[
            list[str] | None,
            Field(description="Core requirements (requirement)"),
        ] = None,
        functional_requirements: Annotated[
            list[str] | None,
            Field(description="Functional requirements (requirement)"),
        ] = None,
        technical_requirements: Annotated[
            list[str] | None,
            Field(description="Technical requirements (requirement)"),
        ] = None,
        acceptance_criteria: Annotated[
            list[str] | None,
            Field(description="Acceptance criteria (requirement)"),
        ] = None,
        confirmed: Annotated[
            bool | None,
            Field(description="Whether the user accepted the current phase output (confirmation)"),
        ] = None,
        phase: Annotated[
            str | None,
            Field(description="Label of what is being confirmed, informational (confirmation)"),
        ] = None,
        architecture: Annotated[
            str | None,
            Field(description="Technical architecture (design)"),
        ] = None,
        implementation: Annotated[
            str | None,
            Field(description="Implementation approach (design)"),
        ] = None,
        system_design: Annotated[
            str | None,
            Field(description="System design (design)"),
        ] = None,
        data_structures: Annotated[
            str | None,
            Field(description="Data structures (design)"),
        ] = None,
        interfaces: Annotated[
            str | None,
            Field(description="Interface design (design)"),
        ] = None,
        deployment: Annotated[
            str | None,
            Field(description="Deployment plan (design)"),
        ] = None,
        tasks: Annotated[
            list[dict[str, Any]] | None,
            Field(
                description=(
                    "Tasks with id, title, description, priority (low|medium|high), "
                    "estimatedHours, dependencies (todo)"
                )
            ),
        ] = None,
        task_id: Annotated[
            str | None,
            Field(description="ID of the completed task (task_complete)"),
        ] = None,
        force: Annotated[
            bool,
            Field(description="Finish even if tasks are incomplete (finish)"),
        ] = False,
    ) -> str:
        """Drive a project through the development workflow, one phase per call.

Order: init -> requirement -> confirmation -> design -> (confirmation) -> todo -> (confirmation) -> task_complete (once per task) -> finish. status can be called at any time. Each content phase writes a markdown document and returns its path in generatedFiles."""  # noqa: E501
        s = await _init()
        payload = {
            "action": action,
            "projectName": project_name,
            "description": description,
            "requirements": requirements,
            "functionalRequirements": functional_requirements,
            "technicalRequirements": technical_requirements,
            "acceptanceCriteria": acceptance_criteria,
            "confirmed": confirmed,
            "phase": phase,
            "architecture": architecture,
            "implementation": implementation,
            "systemDesign": system_design,
            "dataStructures": data_structures,
            "interfaces": interfaces,
            "deployment": deployment,
            "tasks": tasks,
            "taskId": task_id,
            "force": force,
        }
        try:
            result = await s["engine"].handle(s["session"], payload)
        except DevFlowError as e:
            logger.warning("%s failed: [%s] %s", action, e.code, e.message)
            return _fail(e)
        return _json(result.to_response())

    # ── project_admin ─────────────────────────────────────────

    @mcp.tool()
    async def project_admin(
        action: Annotated[
            Literal["list", "stats", "resume", "delete", "backups", "restore"],
            Field(description="list | stats | resume | delete | backups | restore"),
        ],
        project_id: Annotated[
            str | None,
            Field(description="Project ID (resume, delete, backups, restore)"),
        ] = None,
        timestamp: Annotated[
            str | None,
            Field(description="Backup timestamp; latest if omitted (restore)"),
        ] = None,
        detail: Annotated[
            str,
            Field(description="summary or full (list, resume)"),
        ] = "summary",
    ) -> str:
        """Manage stored projects: list them, show stats, make one active again, delete one, and list or restore its backups.

Restoring re-saves the backup as the current record, so the pre-restore state is itself backed up and can be restored later."""  # noqa: E501
        s = await _init()
        store: JsonProjectStore = s["store"]
        session: Session = s["session"]

        if action == "list":
            records = await store.list_all()
            items = [r.to_response(detail=detail) for r in records]
            active = session.active
            return _ok({
                "count": len(items),
                "projects": items,
                "activeProjectId": active.id if active else None,
            })

        if action == "stats":
            stats = await store.stats()
            return _ok({
                "total": stats["total"],
                "byPhase": stats["by_phase"],
                "recent": [r.to_response() for r in stats["recent"]],
            })

        if not project_id or not project_id.strip():
            return _err(f"project_id is required for {action}")
        project_id = project_id.strip()

        try:
            if action == "resume":
                record = await session.resume(project_id)
                return _ok({"resumed": True, "project": record.to_response(detail=detail)})

            if action == "delete":
                if not await store.delete(project_id):
                    raise ProjectNotFoundError(project_id)
                active = session.active
                if active is not None and active.id == project_id:
                    session.clear()
                return _ok({"deleted": True, "projectId": project_id})

            if action == "backups":
                stamps = await store.list_backups(project_id)
                return _ok({"projectId": project_id, "count": len(stamps), "backups": stamps})

            if action == "restore":
                record = await session.restore(project_id, timestamp)
                return _ok({"restored": True, "project": record.to_response(detail="full")})
        except DevFlowError as e:
            logger.warning("project_admin %s failed: [%s] %s", action, e.code, e.message)
            return _fail(e)

        return _err(f"Unknown action: {action}")

    # ── Resources (2) ────────────────────────────────────────

    @mcp.resource("devflow://status")
    async def status_resource() -> str:
        """Active project and store overview."""
        s = await _init()
        active = s["session"].active
        project = None
        if active is not None:
            project = {
                **active.to_response(),
                "totalTasks": len(active.tasks),
                "completionRate": active.completion_rate(),
            }
        return _ok({
            "version": __version__,
            "projectsDir": str(config.projects_dir),
            "projectCount": s["store"].count(),
            "activeProject": project,
        })

    @mcp.resource("devflow://projects")
    async def projects_resource() -> str:
        """All stored projects, most recently updated first."""
        s = await _init()
        records = await s["store"].list_all()
        items = [r.to_response() for r in records]
        return _ok({"count": len(items), "projects": items})

    # ── Prompts (1) ──────────────────────────────────────────

    @mcp.prompt()
    async def workflow_guide() -> str:
        """Explain the development workflow and where the active project stands."""
        s = await _init()
        active = s["session"].active

        parts = ["# Development Workflow\n"]
        parts.append("Phases, in order:")
        for i, p in enumerate(PHASE_ORDER, start=1):
            parts.append(f"  {i}. {p}")
        parts.append("Use development_flow(action=\"status\") at any time for a progress report.")
        parts.append(
            "Use development_flow(action=\"confirmation\", confirmed=true) "
            "after requirement, design and todo."
        )

        if active is not None:
            parts.append(f"\n## Active Project: {active.name}")
            parts.append(f"ID: {active.id}")
            parts.append(f"Phase: {active.phase}")
            if active.tasks:
                pending = active.pending_tasks()
                parts.append(
                    f"Tasks: {len(active.tasks) - len(pending)}/{len(active.tasks)} done"
                )
                for task in pending[:5]:
                    parts.append(f"  - [ ] {task.id}: {task.title}")
        else:
            parts.append(
                "\nNo active project. Use development_flow(action=\"init\", project_name=...) "
                "to start one, or project_admin(action=\"resume\", project_id=...) "
                "to continue a stored one."
            )

        return "\n".join(parts)

    return mcp
