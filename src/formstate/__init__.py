"""
Form orchestration engine.

Turns a declarative form configuration (fields, required flags, a staged
submission pipeline, action buttons, optional autosubmit) into a working
multi-stage asynchronous form, decoupled from the widgets holding the values.

Key Features:
- Field state aggregation from independent widget notifications
- Staged submission: sanitize → required check → validate → submit → success/error
- Field-level and form-level error reporting
- Debounced autosubmit
- Action binding that survives shell re-renders

Quick Start:
    >>> from formstate import FormController, FormConfig, HandlerRegistry, FieldNotification
    >>>
    >>> handlers = HandlerRegistry()
    >>> handlers.register('auth.login', login)
    >>>
    >>> controller = FormController(
    ...     FormConfig.from_dict({
    ...         'formId': 'auth-login-form',
    ...         'fields': [{'id': 'email', 'required': True}],
    ...         'pipeline': {'submit': 'auth.login'},
    ...     }),
    ...     handlers,
    ... )
    >>> controller.observe(FieldNotification.create('change', 'email', value='a@b.com'))
    >>> await controller.submit()

Modules:
    - field_state: field notifications, FieldRecord and FieldStateRegistry
    - snapshot_model: AggregatedState, FormStatus, ValidationResult
    - required: required-field enforcement
    - pipeline_resolver: HandlerRegistry and stage invocation
    - form_controller: the submission orchestrator
    - autosubmit: debounced autosubmit scheduling
    - actions: action binding for submit/extra controls
    - pipeline_presets: retry/error handler factories
    - sanitizer: per-type sanitize stage
    - config: host configuration structs
"""

# Configuration
from formstate.config import (
    FormConfig,
    PipelineConfig,
    ActionsConfig,
    AutosubmitConfig,
    ExtraAction,
    FieldConfig,
)

# Errors
from formstate.errors import FormStateError, ConfigError, HandlerResolutionError

# Snapshot model
from formstate.snapshot_model import (
    AggregatedState,
    FieldSummary,
    FormStatus,
    StatusType,
    FieldMessages,
    FormMessages,
    ValidationResult,
)

# Field state
from formstate.field_state import (
    NotificationKind,
    FieldNotification,
    FieldRecord,
    FieldStateRegistry,
    FieldWidget,
)

# Required-field enforcement
from formstate.required import check_required, is_missing

# Resolver
from formstate.pipeline_resolver import HandlerRegistry, invoke_handler

# Orchestration
from formstate.form_controller import FormController, FormEvent, StageContext, SubmissionState
from formstate.autosubmit import AutosubmitScheduler
from formstate.actions import ActionBinder, ActionContext, ActionControl, FormShell

# Presets
from formstate.pipeline_presets import create_pipeline, create_retry_handler, create_error_handler
from formstate.sanitizer import (
    SanitizeOptions,
    SANITIZE_PRESETS,
    sanitize_field,
    sanitize_form,
    create_sanitize_handler,
)

__all__ = [
    # Configuration
    'FormConfig',
    'PipelineConfig',
    'ActionsConfig',
    'AutosubmitConfig',
    'ExtraAction',
    'FieldConfig',
    # Errors
    'FormStateError',
    'ConfigError',
    'HandlerResolutionError',
    # Snapshot model
    'AggregatedState',
    'FieldSummary',
    'FormStatus',
    'StatusType',
    'FieldMessages',
    'FormMessages',
    'ValidationResult',
    # Field state
    'NotificationKind',
    'FieldNotification',
    'FieldRecord',
    'FieldStateRegistry',
    'FieldWidget',
    # Required-field enforcement
    'check_required',
    'is_missing',
    # Resolver
    'HandlerRegistry',
    'invoke_handler',
    # Orchestration
    'FormController',
    'FormEvent',
    'StageContext',
    'SubmissionState',
    'AutosubmitScheduler',
    'ActionBinder',
    'ActionContext',
    'ActionControl',
    'FormShell',
    # Presets
    'create_pipeline',
    'create_retry_handler',
    'create_error_handler',
    'SanitizeOptions',
    'SANITIZE_PRESETS',
    'sanitize_field',
    'sanitize_form',
    'create_sanitize_handler',
]

__version__ = '1.0.0'
__description__ = 'Declarative multi-stage asynchronous form orchestration'
