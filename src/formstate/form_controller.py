"""
FormController: orchestrates a declarative, multi-stage asynchronous form.

The controller owns one FieldStateRegistry and one FormStatus. Field widgets
report into the registry; submit() drives the staged pipeline

    sanitize -> required check -> validate -> submit -> on_success | on_error

and reflects every transition onto FormStatus, the fields and the submit
control. The controller never touches widget internals beyond set_value and
set_status, and never lets a pipeline handler's exception escape submit().

Lifecycle:
- Created with a FormConfig and a HandlerRegistry (or configured later)
- mount(shell) renders the shell and binds its action controls
- close() cancels timers and unbinds; an in-flight submit handler is not aborted
"""
import asyncio
import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from formstate.actions import ActionBinder, ActionControl, FormShell, values_as_text
from formstate.autosubmit import AutosubmitScheduler
from formstate.config import FormConfig
from formstate.errors import ConfigError, HandlerResolutionError
from formstate.field_state import FieldNotification, FieldRecord, FieldStateRegistry
from formstate.pipeline_resolver import HandlerRegistry, invoke_handler
from formstate.required import check_required
from formstate.snapshot_model import FieldSummary, FormStatus, StatusType, ValidationResult

logger = logging.getLogger(__name__)

# Seconds the submit control keeps its success visual before reverting
SUCCESS_REVERT_DELAY = 1.5

MESSAGE_VALIDATING = "Checking data..."
MESSAGE_SUBMITTING = "Sending data..."
MESSAGE_SUCCESS = "Form submitted successfully"
MESSAGE_INVALID = "Please correct the highlighted fields"
MESSAGE_ERROR = "Form submission failed"


class SubmissionState(str, Enum):
    """Orchestrator state. Only VALIDATING and SUBMITTING count as in flight."""
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


_IN_FLIGHT_STATES = frozenset({SubmissionState.VALIDATING, SubmissionState.SUBMITTING})


@dataclass(frozen=True)
class StageContext:
    """Argument passed to every pipeline stage handler."""
    controller: 'FormController'
    values: Mapping[str, Any]
    result: Any = None
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class FormEvent:
    """Outbound notification for the host page, analytics and other collaborators."""
    name: str
    form_id: str
    controller: 'FormController'
    values: Mapping[str, Any]
    detail: Mapping[str, Any] = field(default_factory=dict)


class FormController:
    """
    Turns a FormConfig into a working form.

    Core Attributes:
    - registry: FieldStateRegistry fed by field widgets
    - status: current FormStatus (display state)
    - state: SubmissionState (orchestrator state, the re-entrancy guard)
    - handlers: HandlerRegistry used to resolve dotted handler names

    Everything else is derived:
    - values / fields → registry.state
    - is_submitting → state in {VALIDATING, SUBMITTING}
    """

    def __init__(self, config: Optional[FormConfig] = None, handlers: Optional[HandlerRegistry] = None):
        self._handlers = handlers if handlers is not None else HandlerRegistry()
        self._config = FormConfig()
        self._registry = FieldStateRegistry()
        self._status = FormStatus()
        self._state = SubmissionState.IDLE

        self._binder = ActionBinder(self)
        self._autosubmit = AutosubmitScheduler(self.submit)
        self._shell: Optional[FormShell] = None
        self._success_timer: Optional[asyncio.TimerHandle] = None

        self._on_event_callbacks: List[Callable[[FormEvent], None]] = []
        self._on_status_changed_callbacks: List[Callable[[FormStatus], None]] = []

        self._registry.on_notification(self._on_field_notification)

        if config is not None:
            self.configure(config)

    @classmethod
    def from_config_path(cls, path: str, handlers: HandlerRegistry) -> 'FormController':
        """Build a controller from a form definition stored in the handler registry."""
        config = handlers.load_config(path)
        if config is None:
            raise ConfigError(f"No form config registered under {path!r}")
        return cls(config, handlers)

    # ==================== PROPERTIES ====================

    @property
    def config(self) -> FormConfig:
        return self._config

    @property
    def handlers(self) -> HandlerRegistry:
        return self._handlers

    @property
    def registry(self) -> FieldStateRegistry:
        return self._registry

    @property
    def form_id(self) -> str:
        return self._config.form_id

    @property
    def status(self) -> FormStatus:
        return self._status

    @property
    def state(self) -> SubmissionState:
        return self._state

    @property
    def is_submitting(self) -> bool:
        return self._state in _IN_FLIGHT_STATES

    @property
    def values(self) -> Mapping[str, Any]:
        return self._registry.values

    @property
    def fields(self) -> Tuple[FieldSummary, ...]:
        return self._registry.state.fields

    @property
    def submit_control(self) -> Optional[ActionControl]:
        return self._binder.submit_control

    @property
    def autosubmit(self) -> AutosubmitScheduler:
        return self._autosubmit

    # ==================== CONFIGURATION & LIFECYCLE ====================

    def configure(self, config: FormConfig) -> None:
        """Apply a (new) configuration.

        Declared fields are seeded into the registry, autosubmit settings are
        swapped, and a mounted shell is re-rendered and re-bound when the
        action configuration changed.
        """
        previous = self._config
        self._config = copy.copy(config)
        for field_config in config.fields:
            self._registry.declare(field_config)
        self._autosubmit.configure(config.autosubmit)
        self._trace(f"configured ({len(config.fields)} declared field(s))")

        if self._shell is not None and config.actions != previous.actions:
            self._render()

    def mount(self, shell: FormShell) -> None:
        """Render into a shell and bind its action controls."""
        self._shell = shell
        self._render()

    def close(self) -> None:
        """Tear down: cancel timers and unbind actions. An in-flight handler keeps running."""
        self._autosubmit.cancel()
        self._cancel_success_timer()
        self._binder.unbind()
        self._shell = None
        self._trace("closed")

    def _render(self) -> None:
        shell = self._shell
        if shell is None:
            return
        shell.render(self._config)
        self._binder.bind(shell)

    # ==================== SUBSCRIPTIONS ====================

    def on_event(self, callback: Callable[[FormEvent], None]) -> None:
        """Subscribe to outbound form events (clear, copy, invalid, success, error, field echoes)."""
        if callback not in self._on_event_callbacks:
            self._on_event_callbacks.append(callback)

    def off_event(self, callback: Callable[[FormEvent], None]) -> None:
        if callback in self._on_event_callbacks:
            self._on_event_callbacks.remove(callback)

    def on_status_changed(self, callback: Callable[[FormStatus], None]) -> None:
        """Subscribe to FormStatus replacement (for status regions and overlays)."""
        if callback not in self._on_status_changed_callbacks:
            self._on_status_changed_callbacks.append(callback)

    def off_status_changed(self, callback: Callable[[FormStatus], None]) -> None:
        if callback in self._on_status_changed_callbacks:
            self._on_status_changed_callbacks.remove(callback)

    def _emit(self, event_name: str, **detail: Any) -> None:
        event = FormEvent(
            name=event_name,
            form_id=self.form_id,
            controller=self,
            values=dict(self.values),
            detail=detail,
        )
        for callback in list(self._on_event_callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Error in form event callback for {event_name!r}: {e}")

    def set_status(self, status_type: StatusType, message: Optional[str] = None, details=None) -> None:
        """Replace the FormStatus and notify status subscribers."""
        self._status = FormStatus.create(status_type, message, details)
        for callback in list(self._on_status_changed_callbacks):
            try:
                callback(self._status)
            except Exception as e:
                logger.warning(f"Error in status_changed callback: {e}")

    def _set_state(self, state: SubmissionState) -> None:
        if state != self._state:
            self._trace(f"state {self._state.value} -> {state.value}")
        self._state = state

    def _trace(self, message: str) -> None:
        level = logging.INFO if self._config.debug else logging.DEBUG
        logger.log(level, f"[{self.form_id or 'form'}] {message}")

    # ==================== FIELD INPUT ====================

    def observe(self, notification: FieldNotification) -> Optional[FieldRecord]:
        """Entry point for field widgets."""
        return self._registry.observe(notification)

    def handle_field_event(self, kind, detail: Mapping[str, Any], control: Optional[Any] = None) -> Optional[FieldRecord]:
        """Entry point for widgets reporting in wire shape ({fieldId, value, ...})."""
        return self._registry.observe(FieldNotification.from_detail(kind, detail, control))

    def _on_field_notification(self, notification: FieldNotification, record: FieldRecord) -> None:
        self._autosubmit.notify(notification)
        self._emit(
            notification.kind.value,
            field_id=record.field_id,
            name=record.name,
            value=record.value,
            status=record.status,
            messages=record.messages,
        )

    # ==================== PUBLIC API ====================

    def get_values(self) -> Dict[str, Any]:
        return dict(self.values)

    def get_field_value(self, field_id: str) -> Any:
        record = self._registry.get(field_id)
        return record.value if record else None

    def set_field_value(self, field_id: str, value: Any) -> 'FormController':
        self._registry.set_value(field_id, value)
        return self

    def is_valid(self) -> bool:
        return self._registry.is_valid()

    def is_dirty(self) -> bool:
        return self._registry.is_dirty()

    def reset(self) -> 'FormController':
        """Restore every field to its initial value and clear the form status."""
        values = self._registry.reset()
        self.set_status(StatusType.IDLE)
        self._emit('clear', values=values)
        return self

    clear = reset

    def run_action(self, action_id: str) -> Any:
        """Run an extra action by id, as if its control had been clicked."""
        return self._binder.run_action(action_id)

    def copy_values_as_text(self) -> str:
        """Render the current values as JSON text and announce it with a 'copy' event."""
        values = self.get_values()
        text = values_as_text(values)
        self._emit('copy', text=text)
        return text

    def apply_validation_result(self, result: Any, show_status: bool = True) -> bool:
        """Apply a ValidationResult (or its wire shape) to fields and FormStatus.

        Idempotent: applying the same result twice leaves the same records and
        status as applying it once.

        Returns:
            Validity: False if the result is flagged invalid or any field
            message carries an error status; True for None.
        """
        result = ValidationResult.coerce(result)
        if result is None:
            return True
        valid = result.is_valid

        if result.field_messages:
            for field_key, info in result.field_messages.items():
                self._registry.set_status(field_key, info.status, info.messages, recompute=False)
            self._registry.refresh()

        if show_status and result.form_messages is not None:
            self.set_status(
                StatusType.SUCCESS if valid else StatusType.ERROR,
                result.form_messages.message,
                result.form_messages.details,
            )
        return valid

    async def validate(self) -> bool:
        """Run sanitize, required check and validate without submitting.

        Field messages are applied; FormStatus is left alone. A failing
        sanitize/validate handler or an unusable validate result is logged
        and reported as invalid, never raised.
        """
        values = copy.deepcopy(dict(self.values))
        try:
            sanitized = await self._sanitize(values)

            required_result = check_required(self._registry, sanitized)
            if not self.apply_validation_result(required_result, show_status=False):
                self._emit('invalid', values=sanitized, validation=required_result)
                return False

            result = ValidationResult.coerce(
                await invoke_handler(self._stage_handler('validate'), StageContext(self, sanitized))
            )
        except Exception as e:
            logger.exception(f"[{self.form_id or 'form'}] validate error: {e}")
            return False

        if not self.apply_validation_result(result, show_status=False):
            self._emit('invalid', values=sanitized, validation=result)
            return False
        return True

    async def submit(self) -> None:
        """Run the submission pipeline once.

        Always cancels a pending autosubmit timer. A call while a submission
        is in flight is otherwise a no-op. Never raises for handler failures;
        those end in FormStatus 'error' and the on_error stage.
        """
        self._autosubmit.cancel()
        if self.is_submitting:
            self._trace("submit ignored: submission already in flight")
            return
        await self._run_submission()

    # ==================== ORCHESTRATION ====================

    async def _run_submission(self) -> None:
        if self._state == SubmissionState.ERROR:
            self._set_state(SubmissionState.IDLE)
        self._cancel_success_timer()
        self._binder.set_submit_success(False)

        snapshot = copy.deepcopy(dict(self.values))
        values: Mapping[str, Any] = snapshot

        try:
            self._set_state(SubmissionState.VALIDATING)
            self._binder.set_submit_loading(True)
            self.set_status(StatusType.VALIDATING, MESSAGE_VALIDATING)

            values = await self._sanitize(snapshot)

            required_result = check_required(self._registry, values)
            if not self.apply_validation_result(required_result):
                self._finish_invalid(values, required_result)
                return

            result = ValidationResult.coerce(
                await invoke_handler(self._stage_handler('validate'), StageContext(self, values))
            )
            if not self.apply_validation_result(result):
                self._finish_invalid(values, result)
                return

            submit_handler = self._stage_handler('submit')
            if submit_handler is None:
                raise HandlerResolutionError('submit', self._config.pipeline.submit)

            self._set_state(SubmissionState.SUBMITTING)
            self.set_status(StatusType.SUBMITTING, MESSAGE_SUBMITTING)
            submission_result = await invoke_handler(submit_handler, StageContext(self, values))

            self._set_state(SubmissionState.SUCCESS)
            self.set_status(StatusType.SUCCESS, MESSAGE_SUCCESS)
            self._emit('success', values=values, result=submission_result)
            await invoke_handler(
                self._stage_handler('on_success'),
                StageContext(self, values, result=submission_result),
            )
            self._binder.set_submit_success(True)
            self._schedule_success_revert()

        except Exception as error:
            await self._finish_error(values, error)

        finally:
            if self._state in _IN_FLIGHT_STATES:
                self._set_state(SubmissionState.IDLE)
            self._binder.set_submit_loading(False)

    def _finish_invalid(self, values: Mapping[str, Any], result: Optional[ValidationResult]) -> None:
        if result is None or result.form_messages is None:
            self.set_status(StatusType.ERROR, MESSAGE_INVALID)
        else:
            self.set_status(StatusType.ERROR, result.form_messages.message, result.form_messages.details)
        self._emit('invalid', values=values, validation=result)
        self._set_state(SubmissionState.IDLE)

    async def _finish_error(self, values: Mapping[str, Any], error: Exception) -> None:
        logger.exception(f"[{self.form_id or 'form'}] submit error: {error}")
        self._set_state(SubmissionState.ERROR)
        self.set_status(StatusType.ERROR, str(error) or MESSAGE_ERROR)
        self._emit('error', values=values, error=error)
        try:
            await invoke_handler(self._stage_handler('on_error'), StageContext(self, values, error=error))
        except Exception as e:
            logger.warning(f"[{self.form_id or 'form'}] on_error handler failed: {e}")

    async def _sanitize(self, values: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = await invoke_handler(self._stage_handler('sanitize'), StageContext(self, values), values)
        return values if sanitized is None else dict(sanitized)

    def _stage_handler(self, stage: str) -> Optional[Callable[..., Any]]:
        return self._handlers.resolve(self._config.pipeline.handler(stage))

    def _schedule_success_revert(self) -> None:
        self._cancel_success_timer()
        loop = asyncio.get_running_loop()
        self._success_timer = loop.call_later(SUCCESS_REVERT_DELAY, self._revert_success)

    def _cancel_success_timer(self) -> None:
        if self._success_timer is not None:
            self._success_timer.cancel()
            self._success_timer = None

    def _revert_success(self) -> None:
        self._success_timer = None
        if self._state == SubmissionState.SUCCESS:
            self._set_state(SubmissionState.IDLE)
        self._binder.set_submit_success(False)
