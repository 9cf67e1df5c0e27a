"""
FieldStateRegistry: authoritative per-field state for one form controller.

The registry holds field state independently of the UI widgets that report it.
Widgets push FieldNotifications; the registry merges them into FieldRecords,
re-derives the AggregatedState and republishes it to subscribers.

Lifecycle: one registry per FormController. Records are created lazily on the
first notification for an unseen field_id (or by declare() from host config),
are never removed, and are restored to their initial value by reset().
"""
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Set

from formstate.config import FieldConfig
from formstate.snapshot_model import AggregatedState, FieldSummary

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "default"


class NotificationKind(str, Enum):
    """Lifecycle notification kinds a field widget can emit."""
    INIT = "init"
    ATTACH = "attach"
    INPUT = "input"
    CHANGE = "change"
    SELECT = "select"
    DESELECT = "deselect"
    OPEN = "open"
    CLOSE = "close"
    SEARCH = "search"
    BLUR = "blur"
    FOCUS = "focus"
    VALIDATION = "validation"
    CLEAR = "clear"
    INCREMENT = "increment"
    DECREMENT = "decrement"


# Flag updates implied by each kind. Every NotificationKind has an entry so
# adding a kind without deciding its flags fails the registry test suite.
_KIND_FLAGS: Dict[NotificationKind, Dict[str, bool]] = {
    NotificationKind.INIT: {},
    NotificationKind.ATTACH: {},
    NotificationKind.INPUT: {'dirty': True},
    NotificationKind.CHANGE: {'touched': True},
    NotificationKind.SELECT: {'dirty': True},
    NotificationKind.DESELECT: {},
    NotificationKind.OPEN: {},
    NotificationKind.CLOSE: {},
    NotificationKind.SEARCH: {},
    NotificationKind.BLUR: {'touched': True},
    NotificationKind.FOCUS: {},
    NotificationKind.VALIDATION: {},
    NotificationKind.CLEAR: {},
    NotificationKind.INCREMENT: {'dirty': True},
    NotificationKind.DECREMENT: {'dirty': True},
}

# Kinds whose value is the widget's own starting value
_BASELINE_KINDS = frozenset({NotificationKind.INIT, NotificationKind.ATTACH})

# Record attributes a notification may carry, keyed by wire name
_MERGEABLE_KEYS = {
    'name': 'name',
    'label': 'label',
    'value': 'value',
    'rawValue': 'raw_value',
    'raw_value': 'raw_value',
    'formatted': 'formatted',
    'status': 'status',
    'messages': 'messages',
    'touched': 'touched',
    'dirty': 'dirty',
    'required': 'required',
}


class FieldWidget(Protocol):
    """What the engine needs from a field widget it pushes state back onto."""

    def set_value(self, value: Any) -> None: ...

    def set_status(self, status: str, messages: Optional[Dict[str, list]]) -> None: ...


@dataclass(frozen=True)
class FieldNotification:
    """A discrete, tagged report of a field widget's lifecycle or value change.

    changes holds only the keys the widget actually reported, so merging is a
    partial update: absent keys leave the record untouched.
    """
    kind: NotificationKind
    field_id: Optional[str]
    changes: Mapping[str, Any] = field(default_factory=dict)
    control: Optional[Any] = None
    original_event: Optional[Any] = None

    @classmethod
    def create(
        cls,
        kind,
        field_id: Optional[str] = None,
        *,
        control: Optional[Any] = None,
        original_event: Optional[Any] = None,
        **changes: Any,
    ) -> 'FieldNotification':
        """Create a notification from keyword changes (value=..., status=...)."""
        unknown = set(changes) - set(_MERGEABLE_KEYS.values())
        if unknown:
            raise TypeError(f"Unknown field notification keys: {sorted(unknown)}")
        return cls(
            kind=NotificationKind(kind),
            field_id=field_id,
            changes=MappingProxyType(dict(changes)),
            control=control,
            original_event=original_event,
        )

    @classmethod
    def from_detail(cls, kind, detail: Mapping[str, Any], control: Optional[Any] = None) -> 'FieldNotification':
        """Import from a widget's event detail in wire shape ({fieldId, rawValue, ...}).

        Unknown keys are ignored; they belong to the widget, not to the engine.
        """
        changes = {
            _MERGEABLE_KEYS[key]: value
            for key, value in detail.items()
            if key in _MERGEABLE_KEYS
        }
        return cls(
            kind=NotificationKind(kind),
            field_id=detail.get('fieldId', detail.get('field_id')),
            changes=MappingProxyType(changes),
            control=control if control is not None else detail.get('control'),
            original_event=detail.get('originalEvent', detail.get('original_event')),
        )


@dataclass
class FieldRecord:
    """Authoritative state of one field.

    Core attributes:
    - field_id: identity (registry key)
    - name: submission key, defaults to field_id and never becomes None
    - control: owning widget reference (may be None for declared-only fields)
    - value / initial_value: last reported value and the value reset() restores
    - baseline_open: declared record whose initial_value a widget's init/attach
      report may still replace (no explicit default, no value reported yet)

    Everything else mirrors what the widget last reported.
    """
    field_id: str
    name: str
    control: Optional[FieldWidget] = None
    value: Any = None
    initial_value: Any = None
    status: str = DEFAULT_STATUS
    messages: Optional[Dict[str, list]] = None
    touched: bool = False
    dirty: bool = False
    required: bool = False
    label: Optional[str] = None
    raw_value: Any = None
    formatted: Any = None
    baseline_open: bool = False

    def summary(self) -> FieldSummary:
        return FieldSummary(
            field_id=self.field_id,
            name=self.name,
            value=self.value,
            status=self.status,
            messages=self.messages,
            touched=self.touched,
            dirty=self.dirty,
            required=self.required,
            label=self.label,
        )

    def push_to_control(self) -> None:
        """Push value and status back onto the owning widget (best-effort)."""
        if self.control is None:
            return
        try:
            self.control.set_value(self.value)
            self.control.set_status(self.status, self.messages)
        except Exception as e:
            logger.warning(f"Failed to push state to widget for field {self.field_id!r}: {e}")

    def push_status_to_control(self) -> None:
        """Forward status/messages only, so the widget can re-render its feedback."""
        if self.control is None:
            return
        try:
            self.control.set_status(self.status, self.messages)
        except Exception as e:
            logger.warning(f"Failed to push status to widget for field {self.field_id!r}: {e}")


class FieldStateRegistry:
    """Registry of FieldRecords for one form, keyed by field_id.

    Thread safety: Not thread-safe (all operations expected on the event loop thread).
    Mutations are synchronous, so every subscriber sees a complete AggregatedState.
    """

    def __init__(self):
        self._records: Dict[str, FieldRecord] = {}
        self._aggregated: AggregatedState = AggregatedState()

        # State callbacks receive the freshly recomputed AggregatedState
        self._on_state_changed_callbacks: List[Callable[[AggregatedState], None]] = []
        # Notification callbacks receive (notification, record) after the merge
        self._on_notification_callbacks: List[Callable[[FieldNotification, FieldRecord], None]] = []

    # === Subscription ===

    def on_state_changed(self, callback: Callable[[AggregatedState], None]) -> None:
        """Subscribe to aggregated state republication."""
        if callback not in self._on_state_changed_callbacks:
            self._on_state_changed_callbacks.append(callback)

    def off_state_changed(self, callback: Callable[[AggregatedState], None]) -> None:
        """Unsubscribe from aggregated state republication."""
        if callback in self._on_state_changed_callbacks:
            self._on_state_changed_callbacks.remove(callback)

    def on_notification(self, callback: Callable[[FieldNotification, FieldRecord], None]) -> None:
        """Subscribe to merged field notifications."""
        if callback not in self._on_notification_callbacks:
            self._on_notification_callbacks.append(callback)

    def off_notification(self, callback: Callable[[FieldNotification, FieldRecord], None]) -> None:
        """Unsubscribe from merged field notifications."""
        if callback in self._on_notification_callbacks:
            self._on_notification_callbacks.remove(callback)

    def _fire_state_changed(self) -> None:
        for callback in list(self._on_state_changed_callbacks):
            try:
                callback(self._aggregated)
            except Exception as e:
                logger.warning(f"Error in state_changed callback: {e}")

    def _fire_notification(self, notification: FieldNotification, record: FieldRecord) -> None:
        for callback in list(self._on_notification_callbacks):
            try:
                callback(notification, record)
            except Exception as e:
                logger.warning(f"Error in notification callback: {e}")

    # === Read access ===

    @property
    def state(self) -> AggregatedState:
        """Latest AggregatedState (consistent with the records at the last mutation)."""
        return self._aggregated

    @property
    def values(self) -> Mapping[str, Any]:
        return self._aggregated.values

    def records(self) -> List[FieldRecord]:
        """All records in first-observation order."""
        return list(self._records.values())

    def get(self, field_id: str) -> Optional[FieldRecord]:
        return self._records.get(field_id)

    def get_by_name(self, name: str) -> Optional[FieldRecord]:
        for record in self._records.values():
            if record.name == name:
                return record
        return None

    def find(self, key: str) -> Optional[FieldRecord]:
        """Look a record up by field_id, falling back to submission name."""
        return self._records.get(key) or self.get_by_name(key)

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def is_valid(self) -> bool:
        """True if no field currently reports an error status."""
        return all(record.status != "error" for record in self._records.values())

    def is_dirty(self) -> bool:
        return any(record.dirty for record in self._records.values())

    def dirty_fields(self) -> Set[str]:
        return {record.field_id for record in self._records.values() if record.dirty}

    # === Mutation ===

    def observe(self, notification: FieldNotification) -> Optional[FieldRecord]:
        """Merge a widget notification into the registry.

        Returns the updated record, or None if the notification was dropped.
        A notification without field_id is a contract violation of the widget:
        it is logged and dropped, never raised.
        """
        field_id = notification.field_id
        if not field_id:
            logger.warning(f"Dropping {notification.kind.value!r} notification without fieldId")
            return None

        changes = notification.changes
        record = self._records.get(field_id)
        if record is None:
            value = changes.get('value')
            record = FieldRecord(
                field_id=field_id,
                name=changes.get('name') or field_id,
                value=value,
                initial_value=copy.deepcopy(value),
            )
            self._records[field_id] = record
            logger.debug(f"Created FieldRecord: field={field_id!r} initial={value!r}")
        elif record.baseline_open and 'value' in changes:
            if notification.kind in _BASELINE_KINDS:
                # widget prefill replaces the configured type default
                record.initial_value = copy.deepcopy(changes['value'])
            record.baseline_open = False

        if notification.control is not None:
            record.control = notification.control

        for key, value in changes.items():
            if key == 'name' and not value:
                # name never becomes empty once observed
                continue
            setattr(record, key, value)

        for flag, flag_value in _KIND_FLAGS[notification.kind].items():
            setattr(record, flag, flag_value)

        self._recompute()
        self._fire_notification(notification, record)
        return record

    def declare(self, config: FieldConfig) -> FieldRecord:
        """Seed or update a record from host configuration before any widget reports."""
        record = self._records.get(config.id)
        initial = config.initial_value()
        if record is None:
            record = FieldRecord(
                field_id=config.id,
                name=config.name or config.id,
                value=copy.deepcopy(initial),
                initial_value=copy.deepcopy(initial),
                baseline_open=not config.has_default,
            )
            self._records[config.id] = record
        elif config.name:
            record.name = config.name
        record.required = config.required
        if config.label is not None:
            record.label = config.label
        self._recompute()
        return record

    def set_value(self, field_id: str, value: Any) -> Optional[FieldRecord]:
        """Programmatically set a field's value and push it onto the widget."""
        record = self._records.get(field_id)
        if record is None:
            logger.warning(f"set_value({field_id!r}) called for unknown field")
            return None
        record.value = value
        if record.control is not None:
            try:
                record.control.set_value(value)
            except Exception as e:
                logger.warning(f"Failed to push value to widget for field {field_id!r}: {e}")
        self._recompute()
        return record

    def set_status(self, field_id: str, status: str, messages: Optional[Dict[str, list]] = None,
                   recompute: bool = True) -> Optional[FieldRecord]:
        """Set a field's status/messages and forward them to the widget."""
        record = self.find(field_id)
        if record is None:
            logger.debug(f"set_status({field_id!r}) ignored: unknown field")
            return None
        record.status = status or DEFAULT_STATUS
        record.messages = copy.deepcopy(messages) if messages else None
        record.push_status_to_control()
        if recompute:
            self._recompute()
        return record

    def reset(self) -> Dict[str, Any]:
        """Restore every record to its initial value and clear status and flags.

        Pushes the restored state onto the widgets and republishes once.
        Idempotent: reset(); reset() leaves the same records as a single reset().

        Returns:
            The reset values (name -> value).
        """
        for record in self._records.values():
            record.value = copy.deepcopy(record.initial_value)
            record.status = DEFAULT_STATUS
            record.messages = None
            record.touched = False
            record.dirty = False
            record.push_to_control()
        self._recompute()
        logger.debug(f"Reset {len(self._records)} field(s)")
        return dict(self._aggregated.values)

    def refresh(self) -> None:
        """Recompute and republish after a batch of recompute=False mutations."""
        self._recompute()

    def _recompute(self) -> None:
        """Single point where AggregatedState is re-derived and republished."""
        values = {record.name: record.value for record in self._records.values()}
        self._aggregated = AggregatedState(
            values=MappingProxyType(values),
            fields=tuple(record.summary() for record in self._records.values()),
        )
        self._fire_state_changed()
