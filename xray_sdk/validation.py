"""
Parameter validation for SDK entry points
"""

from typing import Any

from .errors import ValidationError


def _require_name(value: Any, what: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{what} must be a non-empty string")


def validate_execution_id(execution_id: Any) -> None:
    _require_name(execution_id, "Execution ID")


def validate_execution_name(name: Any) -> None:
    _require_name(name, "Execution name")


def validate_step_name(name: Any) -> None:
    _require_name(name, "Step name")


def validate_tags(tags: Any) -> None:
    """Tags are optional; when given they must be a list of strings"""
    if tags is None:
        return
    if not isinstance(tags, (list, tuple)):
        raise ValidationError("Tags must be a list")
    if not all(isinstance(tag, str) for tag in tags):
        raise ValidationError("All tags must be strings")


def validate_notes(notes: Any) -> None:
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("Notes must be a string")
