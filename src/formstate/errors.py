"""
Exception hierarchy for the form orchestration engine.

Only configuration and handler-resolution problems are raised as exceptions.
Failures inside pipeline handlers are contained by FormController.submit()
and reported through FormStatus and the on_error stage instead.
"""


class FormStateError(Exception):
    """Base class for all formstate errors."""


class ConfigError(FormStateError, ValueError):
    """Raised when a host configuration mapping cannot be turned into a FormConfig."""


class HandlerResolutionError(FormStateError, LookupError):
    """Raised when a required pipeline stage has no resolvable handler."""

    def __init__(self, stage: str, ref=None):
        self.stage = stage
        self.ref = ref
        if ref is None:
            message = f"No '{stage}' handler configured"
        else:
            message = f"'{stage}' handler {ref!r} could not be resolved"
        super().__init__(message)
