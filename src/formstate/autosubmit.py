"""
Debounced autosubmit scheduling.

The scheduler observes merged field notifications and, when configured, arms a
single timer on the event loop. Every qualifying notification restarts the
timer; when it fires the controller's submit coroutine runs as a task.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from formstate.config import AutosubmitConfig
from formstate.field_state import FieldNotification

logger = logging.getLogger(__name__)


class AutosubmitScheduler:
    """One pending timer at most; cancelled on new qualifying input, manual submit and teardown."""

    def __init__(self, submit: Callable[[], Awaitable[Any]], config: Optional[AutosubmitConfig] = None):
        self._submit = submit
        self._config = config or AutosubmitConfig()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def config(self) -> AutosubmitConfig:
        return self._config

    @property
    def pending(self) -> bool:
        """True while a timer is armed and has not fired yet."""
        return self._timer is not None

    def configure(self, config: AutosubmitConfig) -> None:
        """Swap settings; a pending timer is cancelled when autosubmit gets disabled."""
        self._config = config
        if not config.active:
            self.cancel()

    def notify(self, notification: FieldNotification, *_: Any) -> None:
        """Observe a field notification and (re)arm the timer if it qualifies."""
        config = self._config
        if not config.active:
            return
        if notification.kind.value not in config.events:
            return
        if notification.field_id in config.exclude_fields:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Autosubmit skipped for {notification.field_id!r}: no running event loop")
            return

        self.cancel()
        self._timer = loop.call_later(config.debounce_ms / 1000.0, self._fire)
        logger.debug(f"Autosubmit armed: {config.debounce_ms}ms after {notification.kind.value!r} on {notification.field_id!r}")

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("Autosubmit timer cancelled")

    def _fire(self) -> None:
        self._timer = None
        logger.debug("Autosubmit timer fired")
        task = asyncio.ensure_future(self._submit())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
