"""Structured result returned by every phase action."""

from __future__ import annotations

from typing import Any

from devflow.models.project import CamelModel, Phase


class FlowResult(CamelModel):
    success: bool = True
    message: str
    project_id: str | None = None
    phase: Phase | None = None
    next_steps: list[str] = []
    generated_files: list[str] | None = None
    data: dict[str, Any] | None = None

    def to_response(self) -> dict[str, Any]:
        return {**self.model_dump(mode="json", by_alias=True, exclude_none=True), "_v": "1.0"}
