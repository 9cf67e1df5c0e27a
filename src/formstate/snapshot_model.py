"""
Immutable value objects exchanged between the registry, the orchestrator and the host.

This module provides typed data structures for the aggregated form view, the
form-level status and validation results, replacing loosely-typed dicts.

Design Philosophy: Correct by Construction
- Immutable snapshots (frozen dataclass)
- Wire-shape conversion only at the edges (from_dict / to_dict / coerce)
- Direct attribute access (no getattr fallbacks)
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class StatusType(str, Enum):
    """Display state of the whole form."""
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class FieldSummary:
    """Immutable summary of a single field at the time of aggregation."""
    field_id: str
    name: str
    value: Any
    status: str
    messages: Optional[Dict[str, list]]
    touched: bool
    dirty: bool
    required: bool
    label: Optional[str] = None

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'fieldId': self.field_id,
            'name': self.name,
            'value': self.value,
            'status': self.status,
            'messages': self.messages,
            'touched': self.touched,
            'dirty': self.dirty,
            'required': self.required,
            'label': self.label,
        }


@dataclass(frozen=True)
class AggregatedState:
    """Snapshot of ALL fields of one form at a point in time.

    values maps submission name -> value; fields keeps first-observation order.
    """
    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    fields: Tuple[FieldSummary, ...] = ()

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'values': dict(self.values),
            'fields': [summary.to_dict() for summary in self.fields],
        }


@dataclass(frozen=True)
class FormStatus:
    """The single current display state of a form."""
    type: StatusType = StatusType.IDLE
    message: Optional[str] = None
    details: Tuple[str, ...] = ()

    @classmethod
    def create(cls, type: StatusType, message: Optional[str] = None, details=None) -> 'FormStatus':
        """Create a status, normalizing details to a tuple of strings."""
        return cls(
            type=StatusType(type),
            message=message or None,
            details=tuple(str(item) for item in (details or ())),
        )

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'type': self.type.value,
            'message': self.message,
            'details': list(self.details),
        }


@dataclass(frozen=True)
class FieldMessages:
    """Status and messages a validator assigns to one field."""
    status: str = "default"
    messages: Optional[Dict[str, list]] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> 'FieldMessages':
        """Import from the wire shape {status, messages}."""
        data = data or {}
        messages = data.get('messages')
        return cls(
            status=data.get('status') or "default",
            messages={k: list(v) for k, v in messages.items()} if messages else None,
        )

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {'status': self.status, 'messages': self.messages}


@dataclass(frozen=True)
class FormMessages:
    """Form-level message produced by a validator."""
    message: Optional[str] = None
    details: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> 'FormMessages':
        """Import from the wire shape {message, details}."""
        return cls(
            message=data.get('message') or None,
            details=tuple(data.get('details') or ()),
        )

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {'message': self.message, 'details': list(self.details)}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of the required-field check or of a custom validate stage.

    valid is tri-state: None means the producer did not say, and validity is
    then derived from the field messages (see is_valid).
    """
    valid: Optional[bool] = None
    field_messages: Mapping[str, FieldMessages] = field(default_factory=dict)
    form_messages: Optional[FormMessages] = None

    @property
    def is_valid(self) -> bool:
        """Invalid if explicitly flagged, or if any field carries an error status."""
        if self.valid is False:
            return False
        return not any(info.status == "error" for info in self.field_messages.values())

    @classmethod
    def from_dict(cls, data: Mapping) -> 'ValidationResult':
        """Import from the wire shape {valid, fieldMessages, formMessages}."""
        raw_fields = data.get('fieldMessages', data.get('field_messages')) or {}
        raw_form = data.get('formMessages', data.get('form_messages'))
        valid = data.get('valid')
        return cls(
            valid=None if valid is None else bool(valid),
            field_messages={
                field_id: info if isinstance(info, FieldMessages) else FieldMessages.from_dict(info)
                for field_id, info in raw_fields.items()
            },
            form_messages=(
                raw_form if isinstance(raw_form, FormMessages)
                else FormMessages.from_dict(raw_form) if raw_form else None
            ),
        )

    @classmethod
    def coerce(cls, result: Any) -> Optional['ValidationResult']:
        """Normalize whatever a validate handler returned.

        None stays None (nothing to apply), a bool becomes a bare verdict,
        mappings go through from_dict.
        """
        if result is None or isinstance(result, ValidationResult):
            return result
        if isinstance(result, bool):
            return cls(valid=result)
        if isinstance(result, Mapping):
            return cls.from_dict(result)
        raise TypeError(f"Unsupported validation result type: {type(result).__name__}")

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict."""
        return {
            'valid': self.valid,
            'fieldMessages': {k: v.to_dict() for k, v in self.field_messages.items()},
            'formMessages': self.form_messages.to_dict() if self.form_messages else None,
        }
