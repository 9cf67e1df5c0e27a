"""
Required-field enforcement.

A pure function over the registry and a candidate value set. It runs before any
custom validate stage, so pipeline validators never re-implement required-ness.
"""
from typing import Any, Dict, List, Mapping, Optional

from formstate.field_state import FieldStateRegistry
from formstate.snapshot_model import FieldMessages, FormMessages, ValidationResult

REQUIRED_FIELD_MESSAGE = "Field is required"
REQUIRED_FORM_MESSAGE = "Please fill in the required fields"

_ABSENT = object()


def is_missing(value: Any) -> bool:
    """None, empty string, empty list/tuple and boolean False all count as missing."""
    if value is None or value is False:
        return True
    if isinstance(value, str) and value == "":
        return True
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return True
    return False


def check_required(registry: FieldStateRegistry, candidate_values: Mapping[str, Any]) -> Optional[ValidationResult]:
    """Check every required field against candidate_values.

    The value is read by submission name, falling back to the record's own
    value when the candidate set has no such key.

    Returns:
        None if nothing is missing, otherwise an invalid ValidationResult with
        one error entry per missing field and the human labels as form details.
    """
    field_messages: Dict[str, FieldMessages] = {}
    labels: List[str] = []

    for record in registry.records():
        if not record.required:
            continue
        value = candidate_values.get(record.name, _ABSENT)
        if value is _ABSENT:
            value = record.value
        if not is_missing(value):
            continue
        field_messages[record.field_id] = FieldMessages(
            status="error",
            messages={'error': [REQUIRED_FIELD_MESSAGE]},
        )
        labels.append(record.label or record.field_id)

    if not field_messages:
        return None

    return ValidationResult(
        valid=False,
        field_messages=field_messages,
        form_messages=FormMessages(message=REQUIRED_FORM_MESSAGE, details=tuple(labels)),
    )
