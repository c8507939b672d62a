from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Callable
from typing import Any

from scopewire.exceptions import DisposalError

logger = logging.getLogger(__name__)


def find_dispose_method(instance: Any) -> Callable[[], Any] | None:
    """Return the disposal step of an instance, if any.

    ``close()`` is preferred; context managers without ``close`` are exited
    with ``__exit__(None, None, None)``. Classes are never disposable, even
    when they define ``close``.
    """
    if isinstance(instance, type):
        return None
    close = getattr(instance, "close", None)
    if callable(close):
        return close
    exit_ = getattr(instance, "__exit__", None)
    if callable(exit_):
        return functools.partial(exit_, None, None, None)
    return None


class DisposalTracker:
    """Ordered list of disposal steps owned by one scope.

    Steps run in reverse registration order. Every step runs even when an
    earlier one raises; failures are collected and raised together as a
    :class:`DisposalError`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._steps: list[tuple[Any, Callable[[], Any]]] = []

    def __len__(self) -> int:
        return len(self._steps)

    def track(self, instance: Any, dispose: Callable[[], Any] | None = None) -> bool:
        """Register ``instance`` for disposal.

        Returns ``False`` when nothing was registered, which happens for
        instances with neither ``close`` nor ``__exit__`` and no explicit ``dispose``.
        """
        step = dispose or find_dispose_method(instance)
        if step is None:
            return False
        with self._lock:
            self._steps.append((instance, step))
        return True

    def add_callback(self, callback: Callable[[], Any]) -> None:
        with self._lock:
            self._steps.append((callback, callback))

    def dispose(self) -> list[BaseException]:
        """Run every step in reverse order and return the collected failures."""
        with self._lock:
            steps = self._steps
            self._steps = []

        errors: list[BaseException] = []
        for instance, step in reversed(steps):
            try:
                step()
            except Exception as error:  # noqa: BLE001
                logger.warning("Disposing %r failed: %s", instance, error)
                errors.append(error)
        return errors

    def dispose_or_raise(self) -> None:
        errors = self.dispose()
        if errors:
            raise DisposalError(errors)
