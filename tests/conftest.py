"""Pytest configuration and shared fixtures."""
import pytest
from typing import Any, Callable, Dict, List, Optional

from formstate import FieldNotification, FormConfig, FormController, HandlerRegistry


class FakeWidget:
    """Test field widget - records everything the engine pushes back onto it."""

    def __init__(self, field_id: str):
        self.field_id = field_id
        self.value: Any = None
        self.status: str = "default"
        self.messages: Optional[Dict[str, list]] = None
        self.set_value_calls: List[Any] = []
        self.set_status_calls: List[tuple] = []

    def set_value(self, value: Any) -> None:
        self.value = value
        self.set_value_calls.append(value)

    def set_status(self, status: str, messages: Optional[Dict[str, list]]) -> None:
        self.status = status
        self.messages = messages
        self.set_status_calls.append((status, messages))

    def emit(self, kind: str, **changes: Any) -> FieldNotification:
        """Build a notification the way a real widget would report itself."""
        return FieldNotification.create(kind, self.field_id, control=self, **changes)


class FakeControl:
    """Test action control (button)."""

    def __init__(self, action_id: Optional[str] = None):
        self.action_id = action_id
        self.loading = False
        self.disabled = False
        self.success = False
        self.listeners: List[Callable[[Any], None]] = []
        self.history: List[tuple] = []

    def set_loading(self, loading: bool) -> None:
        self.loading = loading
        self.history.append(('loading', loading))

    def set_disabled(self, disabled: bool) -> None:
        self.disabled = disabled
        self.history.append(('disabled', disabled))

    def set_success(self, success: bool) -> None:
        self.success = success
        self.history.append(('success', success))

    def add_click_listener(self, listener: Callable[[Any], None]) -> None:
        self.listeners.append(listener)

    def remove_click_listener(self, listener: Callable[[Any], None]) -> None:
        self.listeners.remove(listener)

    def click(self) -> None:
        for listener in list(self.listeners):
            listener(self)


class FakeShell:
    """Test form shell - every render replaces all control instances."""

    def __init__(self):
        self.render_count = 0
        self.controls: Dict[str, List[FakeControl]] = {'submit': [], 'extra': []}

    def render(self, config: FormConfig) -> None:
        self.render_count += 1
        self.controls = {
            'submit': [FakeControl()] if config.actions.submit is not None else [],
            'extra': [FakeControl(action.id) for action in config.actions.extra],
        }

    def find_controls(self, role: str) -> List[FakeControl]:
        return list(self.controls.get(role, []))

    @property
    def submit(self) -> FakeControl:
        return self.controls['submit'][0]

    def extra(self, action_id: str) -> FakeControl:
        for control in self.controls['extra']:
            if control.action_id == action_id:
                return control
        raise KeyError(action_id)


class EventRecorder:
    """Collects outbound FormEvents."""

    def __init__(self):
        self.events = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def named(self, name: str) -> list:
        return [event for event in self.events if event.name == name]


@pytest.fixture
def handlers():
    """Provide an empty handler registry."""
    return HandlerRegistry()


@pytest.fixture
def shell():
    return FakeShell()


@pytest.fixture
def events():
    return EventRecorder()


@pytest.fixture
def make_controller(handlers, events):
    """Factory building a controller from a camelCase form definition."""
    created = []

    def factory(definition: Optional[dict] = None, **pipeline) -> FormController:
        definition = dict(definition or {})
        if pipeline:
            definition['pipeline'] = {**definition.get('pipeline', {}), **pipeline}
        definition.setdefault('formId', 'test-form')
        controller = FormController(FormConfig.from_dict(definition), handlers)
        controller.on_event(events)
        created.append(controller)
        return controller

    yield factory

    for controller in created:
        controller.close()


@pytest.fixture
def widgets():
    """Lazily created FakeWidgets keyed by field id."""
    class WidgetSet(dict):
        def __missing__(self, field_id):
            widget = FakeWidget(field_id)
            self[field_id] = widget
            return widget
    return WidgetSet()
