"""
Pipeline handler resolution.

HandlerRegistry is an explicit namespace of named handlers (and stored form
configs) that is passed into a FormController at construction. Stage handlers
may be configured as inline callables or as dotted names resolved against it
lazily, so a configuration serialized before its implementing code is loaded
still works once the code registers itself.

Resolution is read-only: many controllers may resolve from one registry.
"""

import inspect
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from formstate.config import FormConfig, HandlerRef
from formstate.errors import ConfigError

logger = logging.getLogger(__name__)

_MISSING = object()


class HandlerRegistry:
    """Dotted-path namespace of pipeline handlers.

    Example:
        handlers = HandlerRegistry()
        handlers.register('auth.login.submit', login)
        handlers.resolve('auth.login.submit')  # -> login
        handlers.resolve(login)                # -> login
        handlers.resolve('auth.missing')       # -> None
    """

    def __init__(self, namespace: Optional[Mapping[str, Any]] = None):
        self._namespace: Dict[str, Any] = {}
        if namespace:
            for path, value in namespace.items():
                self.register(path, value)

    def register(self, path: str, value: Any) -> None:
        """Store value under a dotted path, creating intermediate namespaces."""
        if not path:
            raise ValueError("Handler path must be a non-empty dotted name")
        *parents, leaf = path.split('.')
        node = self._namespace
        for segment in parents:
            child = node.get(segment)
            if child is None:
                child = {}
                node[segment] = child
            elif not isinstance(child, dict):
                raise ValueError(f"Cannot register {path!r}: {segment!r} is not a namespace")
            node = child
        if leaf in node:
            logger.warning(f"Overwriting existing handler registration: {path}")
        node[leaf] = value
        logger.debug(f"Registered handler: {path}")

    def unregister(self, path: str) -> None:
        """Remove a registration; unknown paths are ignored."""
        *parents, leaf = path.split('.')
        node: Any = self._namespace
        for segment in parents:
            node = node.get(segment) if isinstance(node, dict) else None
            if node is None:
                return
        if isinstance(node, dict):
            node.pop(leaf, None)

    def lookup(self, path: str) -> Any:
        """Walk a dotted path through nested mappings and attributes.

        Returns:
            The stored value, or None when any segment is missing.
        """
        if not path:
            return None
        node: Any = self._namespace
        for segment in str(path).split('.'):
            if isinstance(node, Mapping):
                node = node.get(segment, _MISSING)
            else:
                node = getattr(node, segment, _MISSING)
            if node is _MISSING or node is None:
                return None
        return node

    def resolve(self, ref: HandlerRef) -> Optional[Callable[..., Any]]:
        """Resolve an inline callable or a dotted name to a callable.

        Returns:
            ref itself when already callable, the looked-up value when the
            dotted name resolves to a callable, None otherwise.
        """
        if ref is None:
            return None
        if callable(ref):
            return ref
        if isinstance(ref, str):
            value = self.lookup(ref)
            if callable(value):
                return value
            logger.debug(f"Handler path {ref!r} did not resolve to a callable")
            return None
        logger.warning(f"Unsupported handler reference type: {type(ref).__name__}")
        return None

    def load_config(self, path: str) -> Optional[FormConfig]:
        """Load a form definition stored under a dotted path.

        Mappings are converted with FormConfig.from_dict; a missing path
        returns None so the host can fall back to inline configuration.
        """
        value = self.lookup(path)
        if value is None:
            logger.warning(f"Config path {path!r} not found")
            return None
        if isinstance(value, FormConfig):
            return value
        if isinstance(value, Mapping):
            return FormConfig.from_dict(value)
        raise ConfigError(f"Config path {path!r} holds {type(value).__name__}, not a form config")


async def invoke_handler(handler: Optional[Callable[..., Any]], context: Any, fallback: Any = None) -> Any:
    """Call a stage handler and await its result when it suspends.

    A missing handler returns fallback without calling anything.
    """
    if handler is None:
        return fallback
    result = handler(context)
    if inspect.isawaitable(result):
        result = await result
    return result
