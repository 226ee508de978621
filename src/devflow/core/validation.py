"""Input checks and sanitizers shared by the phase handlers.

The ``check_*`` helpers return a list of messages instead of raising, so a
handler can validate every field of a request and report all problems at once.
"""

from __future__ import annotations

import re

from devflow.errors import ValidationError

MAX_NAME_LENGTH = 100
MAX_LIST_ITEMS = 50
MAX_ITEM_LENGTH = 1000
MAX_DESCRIPTION_LENGTH = 5000
MAX_TASK_ID_LENGTH = 64

NAME_PUNCTUATION = frozenset(" _-.()")

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TASK_ID = re.compile(r"^[A-Za-z0-9_.\-]+$")
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize(text: str) -> str:
    """Strip control characters (keeping tabs and newlines) and surrounding whitespace."""
    return _CONTROL_CHARS.sub("", text).strip()


def validate_project_name(name: str | None, *, max_length: int = MAX_NAME_LENGTH) -> str:
    """Return the cleaned project name or raise ``ValidationError``."""
    cleaned = sanitize(name or "")
    errors = []
    if not cleaned:
        errors.append("projectName: Project name cannot be empty")
    else:
        if len(cleaned) > max_length:
            errors.append(f"projectName: must be at most {max_length} characters")
        bad = sorted({ch for ch in cleaned if not (ch.isalnum() or ch in NAME_PUNCTUATION)})
        if bad:
            errors.append(f"projectName: contains invalid characters: {''.join(bad)!r}")
    if errors:
        raise ValidationError(errors, phase="init")
    return cleaned


def check_text(field: str, value: str, *, max_length: int) -> list[str]:
    if len(value) > max_length:
        return [f"{field}: must be at most {max_length} characters"]
    return []


def check_string_list(
    field: str,
    values: list[str],
    *,
    max_items: int = MAX_LIST_ITEMS,
    max_length: int = MAX_ITEM_LENGTH,
) -> list[str]:
    errors = []
    if len(values) > max_items:
        errors.append(f"{field}: at most {max_items} items allowed, got {len(values)}")
    for i, item in enumerate(values):
        if not sanitize(item):
            errors.append(f"{field}[{i}]: must be a non-empty string")
        elif len(item) > max_length:
            errors.append(f"{field}[{i}]: must be at most {max_length} characters")
    return errors


def validate_task_id(task_id: str | None, **context: str | None) -> str:
    """Return the stripped task id or raise ``ValidationError``.

    ``context`` is forwarded to the error (``phase``, ``project_id``).
    """
    cleaned = (task_id or "").strip()
    if not cleaned:
        raise ValidationError("taskId: Please provide task ID", **context)
    if len(cleaned) > MAX_TASK_ID_LENGTH:
        raise ValidationError(
            f"taskId: must be at most {MAX_TASK_ID_LENGTH} characters", **context
        )
    if not _TASK_ID.match(cleaned):
        raise ValidationError(
            "taskId: may only contain letters, digits, '_', '-' and '.'", **context
        )
    return cleaned


def safe_filename(name: str) -> str:
    """Lowercase, filesystem-safe version of a project name."""
    slug = _UNSAFE_FILENAME_CHARS.sub("_", name)
    slug = re.sub(r"\s+", "_", slug).strip("._").lower()
    return slug or "project"
