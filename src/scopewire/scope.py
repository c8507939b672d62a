from __future__ import annotations

import functools
import logging
import threading
from collections.abc import Callable, Hashable
from types import TracebackType
from typing import TYPE_CHECKING, Any

from scopewire.disposal import DisposalTracker
from scopewire.exceptions import ClosedScopeError, CyclicDependencyError, DisposalError
from scopewire.markers import (
    AllMarker,
    LazyMarker,
    LazyValue,
    ProviderMarker,
    find_marker,
    is_maybe_annotation,
    strip_maybe_annotation,
)
from scopewire.plan_cache import PlanKey, RequestShape
from scopewire.service_key import ServiceKey

if TYPE_CHECKING:
    from typing_extensions import Self

    from scopewire.container import Container
    from scopewire.plans import Plan, ServiceSequence

logger = logging.getLogger(__name__)

_MISSING = object()


class Scope:
    """A node of the scope tree.

    Each scope owns a slot table for the instances reused within it and a
    disposal tracker for the instances it must tear down. Scopes are opened
    with :meth:`open_scope` and must be closed explicitly, preferably with a
    ``with`` block:

    .. code-block:: python

        with container.open_scope("request") as scope:
            handler = scope.resolve(RequestHandler)

    Closing a scope first closes its still-open children (most recently opened
    first), then disposes its own instances in reverse creation order.
    """

    def __init__(
        self,
        container: Container,
        parent: Scope | None = None,
        name: Hashable | None = None,
    ) -> None:
        self._container = container
        self._parent = parent
        self._name = name
        self._root: Scope = parent.root if parent is not None else self
        self._depth = parent.depth + 1 if parent is not None else 0

        self._slots: dict[Hashable, Any] = {}
        self._slot_locks: dict[Hashable, threading.RLock] = {}
        self._slot_locks_lock = threading.Lock()
        self._building: set[Hashable] = set()

        self._tracker = DisposalTracker()
        self._children: dict[int, Scope] = {}
        self._state_lock = threading.Lock()
        self._closed = False

    # region Tree

    @property
    def container(self) -> Container:
        return self._container

    @property
    def parent(self) -> Scope | None:
        return self._parent

    @property
    def name(self) -> Hashable | None:
        return self._name

    @property
    def root(self) -> Scope:
        return self._root

    @property
    def is_root(self) -> bool:
        return self._parent is None

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def children(self) -> tuple[Scope, ...]:
        """Still-open child scopes in opening order."""
        with self._state_lock:
            return tuple(self._children.values())

    def open_scope(self, name: Hashable | None = None) -> Scope:
        """Open a child scope.

        Raises:
            ClosedScopeError: If this scope is closed.

        """
        child = Scope(self._container, parent=self, name=name)
        with self._state_lock:
            self.ensure_open()
            self._children[id(child)] = child
        logger.debug("Opened scope %r at depth %d", name, child.depth)
        return child

    # endregion Tree

    # region Resolution

    def resolve(
        self,
        service: Any,
        key: Hashable | None = None,
        *,
        allow_absent: bool = False,
        metadata: Any = None,
    ) -> Any:
        """Resolve ``service`` against this scope.

        ``service`` may be a type, a :class:`ServiceKey`, an ``Annotated``
        component token, or one of the ``Provider``/``Lazy``/``All``/``Maybe``
        wrappers.

        Args:
            service: The requested service.
            key: Discriminator of the requested registration.
            allow_absent: Return ``None`` instead of raising
                ``UnresolvedServiceError`` when the service itself is not
                registered. Errors of its dependencies are still raised.
            metadata: Only consider registrations carrying this metadata.

        Raises:
            ClosedScopeError: If this scope is closed.

        """
        self.ensure_open()

        all_marker = find_marker(service, AllMarker)
        if all_marker is not None:
            return self.resolve_all(all_marker.dependency_key, metadata=metadata)
        provider_marker = find_marker(service, ProviderMarker)
        if provider_marker is not None:
            return functools.partial(self.resolve, ServiceKey.from_value(service, key))
        lazy_marker = find_marker(service, LazyMarker)
        if lazy_marker is not None:
            return LazyValue(functools.partial(self.resolve, ServiceKey.from_value(service, key)))
        if is_maybe_annotation(service):
            service = strip_maybe_annotation(service)
            allow_absent = True

        shape = RequestShape.OPTIONAL if allow_absent else RequestShape.SERVICE
        plan_key = PlanKey(ServiceKey.from_value(service, key), shape, metadata)
        return self._container.execute(self, plan_key)

    def resolve_all(
        self,
        service: Any,
        *,
        metadata: Any = None,
        bypass_decorators: bool = False,
    ) -> ServiceSequence[Any]:
        """Return every registration of ``service`` in registration order.

        Keyed and unkeyed registrations are included. With
        ``bypass_decorators`` the undecorated instances are produced.
        """
        self.ensure_open()
        shape = RequestShape.ALL_UNDECORATED if bypass_decorators else RequestShape.ALL
        service_key = ServiceKey.from_value(service).with_key(None)
        return self._container.execute(self, PlanKey(service_key, shape, metadata))

    def get_or_build(self, slot_id: Hashable, service_key: ServiceKey, plan: Plan) -> Any:
        """Return the instance stored in ``slot_id``, building it with ``plan`` once.

        Concurrent callers of the same slot wait for the single build. A slot,
        once filled, is never overwritten.

        Raises:
            CyclicDependencyError: If the build of this slot re-enters itself.
            ClosedScopeError: If this scope is closed.

        """
        value = self._slots.get(slot_id, _MISSING)
        if value is not _MISSING:
            return value

        self.ensure_open()
        with self._get_slot_lock(slot_id):
            value = self._slots.get(slot_id, _MISSING)
            if value is not _MISSING:
                return value
            # the lock is reentrant, so a hit here comes from the building thread
            if slot_id in self._building:
                raise CyclicDependencyError([service_key, service_key])
            self._building.add(slot_id)
            try:
                value = plan.execute(self)
            finally:
                self._building.discard(slot_id)
            return self._slots.setdefault(slot_id, value)

    def _get_slot_lock(self, slot_id: Hashable) -> threading.RLock:
        if slot_id not in self._slot_locks:
            with self._slot_locks_lock:
                if slot_id not in self._slot_locks:
                    self._slot_locks[slot_id] = threading.RLock()
        return self._slot_locks[slot_id]

    # endregion Resolution

    # region Disposal

    def track(self, instance: Any, dispose: Callable[[], Any] | None = None) -> bool:
        """Dispose ``instance`` when this scope closes.

        Returns ``False`` when the instance is not disposable and no ``dispose``
        callback was given.
        """
        self.ensure_open()
        return self._tracker.track(instance, dispose)

    def add_disposal_callback(self, callback: Callable[[], Any]) -> None:
        self.ensure_open()
        self._tracker.add_callback(callback)

    def close(self) -> None:
        """Close child scopes, then dispose this scope's instances.

        Closing an already closed scope does nothing.

        Raises:
            DisposalError: If any disposal step failed; every step is still
                attempted.

        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            children = list(self._children.values())
            self._children.clear()

        errors: list[BaseException] = []
        for child in reversed(children):
            try:
                child.close()
            except DisposalError as error:
                errors.extend(error.errors)

        errors.extend(self._tracker.dispose())
        self._slots.clear()
        if self._parent is not None:
            self._parent._detach(self)
        logger.debug("Closed scope %r at depth %d", self._name, self._depth)

        if errors:
            raise DisposalError(errors)

    def _detach(self, child: Scope) -> None:
        with self._state_lock:
            self._children.pop(id(child), None)

    def ensure_open(self) -> None:
        """Raise :class:`ClosedScopeError` if this scope is closed."""
        if self._closed:
            msg = f"Scope {self._name!r} at depth {self._depth} is closed."
            raise ClosedScopeError(msg)

    # endregion Disposal

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Scope(name={self._name!r}, depth={self._depth}, {state})"
