"""devflow core: session, phase engine and document generation."""

from devflow.core.documents import DocumentGenerator
from devflow.core.engine import PhaseEngine
from devflow.core.session import Session

__all__ = ["DocumentGenerator", "PhaseEngine", "Session"]
