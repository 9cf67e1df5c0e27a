"""
Reusable pipeline handler factories.

Ready-made building blocks for the sanitize -> validate -> submit -> respond
pipeline: a retry wrapper for flaky submit handlers, a logging error handler
and create_pipeline() to assemble a PipelineConfig from them.
"""

import asyncio
import logging
from typing import Any, Callable, Mapping, Optional

from formstate.config import ActionsConfig, AutosubmitConfig, HandlerRef, PipelineConfig
from formstate.pipeline_resolver import invoke_handler
from formstate.snapshot_model import StatusType

logger = logging.getLogger(__name__)


def _default_should_retry(error: BaseException) -> bool:
    """Retry on connection problems and 5xx-style errors carrying a status attribute."""
    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    status = getattr(error, 'status', None)
    return isinstance(status, int) and status >= 500


def create_retry_handler(
    handler: Callable[..., Any],
    max_retries: int = 3,
    delay: float = 1.0,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
) -> Callable[..., Any]:
    """Wrap a submit handler with exponential back-off retries.

    Args:
        handler: Original submit handler (sync or async)
        max_retries: Attempts after the first one
        delay: Seconds before the first retry; doubles on every further retry
        should_retry: Predicate deciding whether an error is worth retrying

    Returns:
        Async handler with the same contract as the original.
    """
    should_retry = should_retry or _default_should_retry

    async def retrying_handler(context: Any) -> Any:
        attempt = 0
        while True:
            try:
                return await invoke_handler(handler, context)
            except Exception as error:
                if attempt >= max_retries or not should_retry(error):
                    raise
                wait = delay * (2 ** attempt)
                attempt += 1
                logger.info(f"Submit attempt {attempt} failed ({error}); retrying in {wait:.2f}s")
                await asyncio.sleep(wait)

    return retrying_handler


def create_error_handler(
    log: Optional[Callable[[BaseException, Any], None]] = None,
    show_to_user: bool = False,
) -> Callable[[Any], None]:
    """on_error handler that logs the failure and optionally rewrites the form status.

    Args:
        log: Callable receiving (error, context); defaults to logger.error
        show_to_user: Write the error message into the controller's FormStatus
    """
    def error_handler(context: Any) -> None:
        error = context.error
        if log is not None:
            log(error, context)
        else:
            logger.error(f"Submit error: {error}")

        if show_to_user and context.controller is not None:
            context.controller.set_status(StatusType.ERROR, str(error) or None)

    return error_handler


def create_pipeline(
    sanitize: HandlerRef = None,
    validate: HandlerRef = None,
    submit: HandlerRef = None,
    on_success: HandlerRef = None,
    on_error: HandlerRef = None,
    retry: Optional[Mapping[str, Any]] = None,
    error_handler_options: Optional[Mapping[str, Any]] = None,
    actions: Optional[ActionsConfig] = None,
    autosubmit: Optional[AutosubmitConfig] = None,
) -> PipelineConfig:
    """Assemble a PipelineConfig.

    A callable submit handler is wrapped with create_retry_handler() when a
    retry policy is given ({max_retries, delay, should_retry}). Without an
    explicit on_error a logging error handler is installed.
    """
    if retry is not None and submit is not None:
        if callable(submit):
            submit = create_retry_handler(submit, **retry)
        else:
            logger.warning(f"Retry policy ignored for named submit handler {submit!r}")

    if on_error is None:
        on_error = create_error_handler(**(error_handler_options or {}))

    return PipelineConfig(
        sanitize=sanitize,
        validate=validate,
        submit=submit,
        on_success=on_success,
        on_error=on_error,
        actions=actions or ActionsConfig(),
        autosubmit=autosubmit or AutosubmitConfig(),
    )
