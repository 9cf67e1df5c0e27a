"""
Host configuration structs for a form controller.

Configuration is explicit: the host builds a FormConfig (directly or from the
camelCase mapping shape used by serialized form definitions) and hands it to
FormController.configure(). The controller keeps its own copy.

Pipeline handlers are stored as references: either a callable or a dotted
name that is resolved later against a HandlerRegistry, so a configuration can
be built before the implementing code is loaded.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from formstate.errors import ConfigError

logger = logging.getLogger(__name__)

HandlerRef = Union[Callable[..., Any], str, None]

STAGES = ('sanitize', 'validate', 'submit', 'on_success', 'on_error')

# Wire names used by serialized pipelines
_STAGE_ALIASES = {
    'sanitize': 'sanitize',
    'validate': 'validate',
    'submit': 'submit',
    'onSuccess': 'on_success',
    'on_success': 'on_success',
    'onError': 'on_error',
    'on_error': 'on_error',
}


@dataclass(frozen=True)
class FieldConfig:
    """Declarative description of one field, used to seed the registry."""
    id: str
    type: str = "text"
    label: Optional[str] = None
    name: Optional[str] = None
    required: bool = False
    default_value: Any = None
    has_default: bool = False
    # Input constraints applied by the sanitize stage
    max_length: Optional[int] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    precision: Optional[int] = None
    max_selections: Optional[int] = None
    options: Tuple[Any, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping) -> 'FieldConfig':
        """Import from the wire shape {id, type, label, required, defaultValue, ...}."""
        if not data.get('id'):
            raise ConfigError(f"Field config without id: {dict(data)!r}")
        has_default = 'defaultValue' in data or 'default_value' in data
        return cls(
            id=data['id'],
            type=data.get('type') or "text",
            label=data.get('label'),
            name=data.get('name'),
            required=bool(data.get('required', False)),
            default_value=data.get('defaultValue', data.get('default_value')),
            has_default=has_default,
            max_length=data.get('maxLength', data.get('max_length')),
            min_value=data.get('min', data.get('min_value')),
            max_value=data.get('max', data.get('max_value')),
            precision=data.get('precision'),
            max_selections=data.get('maxSelections', data.get('max_selections')),
            options=tuple(
                option.get('value', option) if isinstance(option, Mapping) else option
                for option in (data.get('options') or ())
            ),
        )

    def initial_value(self) -> Any:
        """Value a freshly declared field starts with."""
        if self.has_default:
            return self.default_value
        if self.type in ('checkbox', 'boolean'):
            return False
        if self.type == 'range':
            return {'min': None, 'max': None}
        if self.type == 'select-multi':
            return []
        return None


@dataclass(frozen=True)
class ExtraAction:
    """Extra action button descriptor."""
    id: str
    label: Optional[str] = None
    handler: HandlerRef = None

    @classmethod
    def from_dict(cls, data: Mapping) -> 'ExtraAction':
        if not data.get('id'):
            raise ConfigError(f"Extra action without id: {dict(data)!r}")
        return cls(id=data['id'], label=data.get('label'), handler=data.get('handler'))


@dataclass(frozen=True)
class ActionsConfig:
    """Submit button descriptor plus extra action buttons."""
    submit: Optional[Mapping[str, Any]] = None
    extra: Tuple[ExtraAction, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> 'ActionsConfig':
        data = data or {}
        return cls(
            submit=dict(data['submit']) if data.get('submit') else None,
            extra=tuple(
                item if isinstance(item, ExtraAction) else ExtraAction.from_dict(item)
                for item in (data.get('extra') or ())
            ),
        )

    def find_extra(self, action_id: str) -> Optional[ExtraAction]:
        for action in self.extra:
            if action.id == action_id:
                return action
        return None


@dataclass(frozen=True)
class AutosubmitConfig:
    """Debounced autosubmit settings. Disabled unless explicitly enabled with a positive delay."""
    enabled: bool = False
    events: FrozenSet[str] = frozenset({'change'})
    debounce_ms: int = 0
    exclude_fields: FrozenSet[str] = frozenset()

    @property
    def active(self) -> bool:
        return self.enabled and self.debounce_ms > 0

    @classmethod
    def from_dict(cls, data: Optional[Mapping]) -> 'AutosubmitConfig':
        if not data:
            return cls()
        return cls(
            enabled=bool(data.get('enabled', False)),
            events=frozenset(data.get('events') or ('change',)),
            debounce_ms=int(data.get('debounceMs', data.get('debounce_ms')) or 0),
            exclude_fields=frozenset(data.get('excludeFields', data.get('exclude_fields')) or ()),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """The five stage handlers plus actions and autosubmit.

    Immutable for the lifetime of one configuration; reconfigure by passing a
    new instance to FormController.configure().
    """
    sanitize: HandlerRef = None
    validate: HandlerRef = None
    submit: HandlerRef = None
    on_success: HandlerRef = None
    on_error: HandlerRef = None
    actions: ActionsConfig = field(default_factory=ActionsConfig)
    autosubmit: AutosubmitConfig = field(default_factory=AutosubmitConfig)

    def handler(self, stage: str) -> HandlerRef:
        """Get the raw handler reference for a stage."""
        if stage not in STAGES:
            raise KeyError(f"Unknown pipeline stage: {stage!r}")
        return getattr(self, stage)

    @classmethod
    def from_dict(cls, handlers: Optional[Mapping], actions=None, autosubmit=None) -> 'PipelineConfig':
        """Import from the wire shape; unknown stage names are logged and ignored."""
        kwargs: Dict[str, Any] = {}
        for key, ref in (handlers or {}).items():
            stage = _STAGE_ALIASES.get(key)
            if stage is None:
                logger.warning(f"Ignoring unknown pipeline stage {key!r}")
                continue
            kwargs[stage] = ref
        return cls(
            actions=actions if isinstance(actions, ActionsConfig) else ActionsConfig.from_dict(actions),
            autosubmit=(
                autosubmit if isinstance(autosubmit, AutosubmitConfig)
                else AutosubmitConfig.from_dict(autosubmit)
            ),
            **kwargs,
        )


@dataclass(frozen=True)
class FormConfig:
    """Everything a host supplies to a controller at construction/reconfiguration time."""
    form_id: str = ""
    title: str = ""
    description: str = ""
    icon: Optional[Mapping[str, Any]] = None
    layout: Optional[Any] = None
    debug: bool = False
    fields: Tuple[FieldConfig, ...] = ()
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    @property
    def actions(self) -> ActionsConfig:
        return self.pipeline.actions

    @property
    def autosubmit(self) -> AutosubmitConfig:
        return self.pipeline.autosubmit

    @classmethod
    def from_dict(cls, data: Mapping) -> 'FormConfig':
        """Import from the camelCase mapping shape of a serialized form definition.

        Example:
            FormConfig.from_dict({
                'formId': 'auth-login-form',
                'fields': [{'id': 'username', 'required': True}],
                'actions': {'submit': {'label': 'Sign in'}},
                'pipeline': {'submit': 'auth.login', 'onSuccess': 'auth.redirect'},
                'autosubmit': {'enabled': True, 'debounceMs': 500},
            })
        """
        if not isinstance(data, Mapping):
            raise ConfigError(f"Form config must be a mapping, got {type(data).__name__}")
        return cls(
            form_id=data.get('formId', data.get('form_id')) or "",
            title=data.get('title') or "",
            description=data.get('description') or "",
            icon=data.get('icon'),
            layout=data.get('layout'),
            debug=bool(data.get('debug', False)),
            fields=tuple(
                item if isinstance(item, FieldConfig) else FieldConfig.from_dict(item)
                for item in (data.get('fields') or ())
            ),
            pipeline=PipelineConfig.from_dict(
                data.get('pipeline'),
                actions=data.get('actions'),
                autosubmit=data.get('autosubmit'),
            ),
        )

    def with_pipeline(self, **changes) -> 'FormConfig':
        """Copy with some pipeline attributes replaced."""
        return replace(self, pipeline=replace(self.pipeline, **changes))
