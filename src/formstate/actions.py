"""
Action binding between a rendered form shell and a FormController.

After every render of the shell the binder drops the listeners it attached to
the previous control instances and attaches fresh ones, because a re-render
may replace every control.
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Protocol, Set

if TYPE_CHECKING:
    from formstate.config import FormConfig
    from formstate.form_controller import FormController

logger = logging.getLogger(__name__)

ROLE_SUBMIT = "submit"
ROLE_EXTRA = "extra"

ACTION_CLEAR = "clear"
ACTION_COPY = "copy-values-as-text"
ACTION_COPY_JSON = "copy-json"


class ActionControl(Protocol):
    """A button-like control reachable by role tag."""
    action_id: Optional[str]

    def set_loading(self, loading: bool) -> None: ...

    def set_disabled(self, disabled: bool) -> None: ...

    def set_success(self, success: bool) -> None: ...

    def add_click_listener(self, listener: Callable[[Any], None]) -> None: ...

    def remove_click_listener(self, listener: Callable[[Any], None]) -> None: ...


class FormShell(Protocol):
    """The rendered form container hosting the action controls."""

    def render(self, config: 'FormConfig') -> None: ...

    def find_controls(self, role: str) -> List[ActionControl]: ...


@dataclass(frozen=True)
class ActionContext:
    """Argument passed to a custom extra-action handler."""
    action_id: str
    controller: 'FormController'
    values: Mapping[str, Any]


def values_as_text(values: Mapping[str, Any]) -> str:
    """Human-readable JSON rendering of form values."""
    return json.dumps(dict(values), indent=2, ensure_ascii=False, default=str)


class ActionBinder:
    """Wires submit/extra controls of a shell to a controller's entry points."""

    def __init__(self, controller: 'FormController'):
        self._controller = controller
        self._submit_control: Optional[ActionControl] = None
        self._extra_controls: List[ActionControl] = []
        self._listeners: Dict[int, Callable[[Any], None]] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def submit_control(self) -> Optional[ActionControl]:
        return self._submit_control

    @property
    def extra_controls(self) -> List[ActionControl]:
        return list(self._extra_controls)

    def bind(self, shell: FormShell) -> None:
        """Detach listeners from the previous controls and attach to the current ones."""
        self.unbind()

        submit_controls = shell.find_controls(ROLE_SUBMIT)
        if len(submit_controls) > 1:
            logger.warning(f"Form shell has {len(submit_controls)} submit controls; binding the first")
        self._submit_control = submit_controls[0] if submit_controls else None
        self._extra_controls = list(shell.find_controls(ROLE_EXTRA))

        if self._submit_control is not None:
            self._attach(self._submit_control, self._on_submit_click)
        for control in self._extra_controls:
            self._attach(control, self._make_extra_listener(control))

        logger.debug(
            f"Bound actions: submit={self._submit_control is not None}, extra={len(self._extra_controls)}"
        )

    def unbind(self) -> None:
        controls = ([self._submit_control] if self._submit_control is not None else []) + self._extra_controls
        for control in controls:
            listener = self._listeners.pop(id(control), None)
            if listener is None:
                continue
            try:
                control.remove_click_listener(listener)
            except Exception as e:
                logger.warning(f"Failed to detach click listener: {e}")
        self._listeners.clear()
        self._submit_control = None
        self._extra_controls = []

    def _attach(self, control: ActionControl, listener: Callable[[Any], None]) -> None:
        control.add_click_listener(listener)
        self._listeners[id(control)] = listener

    def _make_extra_listener(self, control: ActionControl) -> Callable[[Any], None]:
        def listener(_event: Any = None) -> None:
            self.run_action(control.action_id)
        return listener

    def _on_submit_click(self, _event: Any = None) -> None:
        self._spawn(self._controller.submit())

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # === Extra actions ===

    def run_action(self, action_id: Optional[str]) -> Any:
        """Dispatch an extra action: built-ins first, then configured handlers."""
        if not action_id:
            logger.debug("Ignoring click on extra control without action id")
            return None

        controller = self._controller
        if action_id == ACTION_CLEAR:
            controller.reset()
            return None
        if action_id in (ACTION_COPY, ACTION_COPY_JSON):
            return controller.copy_values_as_text()

        action = controller.config.actions.find_extra(action_id)
        handler = controller.handlers.resolve(action.handler) if action else None
        if handler is None:
            logger.warning(f"No handler for extra action {action_id!r}")
            return None

        context = ActionContext(action_id=action_id, controller=controller, values=dict(controller.values))
        try:
            result = handler(context)
        except Exception as e:
            logger.warning(f"Extra action {action_id!r} failed: {e}")
            return None
        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            self._spawn(self._guard(action_id, result))
            return None
        return result

    async def _guard(self, action_id: str, awaitable) -> None:
        try:
            await awaitable
        except Exception as e:
            logger.warning(f"Extra action {action_id!r} failed: {e}")

    # === Submit control visuals ===

    def set_submit_loading(self, loading: bool) -> None:
        control = self._submit_control
        if control is None:
            return
        self._drive(control, 'set_loading', loading)
        self._drive(control, 'set_disabled', loading)

    def set_submit_success(self, success: bool) -> None:
        control = self._submit_control
        if control is None:
            return
        if success:
            self._drive(control, 'set_loading', False)
            self._drive(control, 'set_disabled', False)
        self._drive(control, 'set_success', success)

    def _drive(self, control: ActionControl, method: str, flag: bool) -> None:
        """Best-effort visual update; a failing control never affects the submission."""
        try:
            getattr(control, method)(flag)
        except Exception as e:
            logger.warning(f"Failed to {method}({flag}) on submit control: {e}")
