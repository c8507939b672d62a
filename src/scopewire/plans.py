"""Executable resolution plans.

A plan is a tree of small nodes compiled once per service shape and executed
for every resolution. Nodes are immutable and hold everything they need, so
executing a plan never touches the registry.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Hashable, Iterator, Sequence
from typing import TYPE_CHECKING, Any, TypeVar, overload

from scopewire.exceptions import ConstructorSelectionError
from scopewire.markers import LazyValue
from scopewire.service_key import describe_type

if TYPE_CHECKING:
    from scopewire.reuse import Reuse
    from scopewire.scope import Scope
    from scopewire.service_key import ServiceKey

T = TypeVar("T")


class Plan:
    """Base class for plan nodes."""

    __slots__ = ()

    def execute(self, scope: Scope) -> Any:
        raise NotImplementedError


class InstancePlan(Plan):
    """Return a registered instance as is."""

    __slots__ = ("_instance",)

    def __init__(self, instance: Any) -> None:
        self._instance = instance

    def execute(self, scope: Scope) -> Any:
        return self._instance

    def __repr__(self) -> str:
        return f"InstancePlan({self._instance!r})"


class ValuePlan(InstancePlan):
    """Return a fixed argument value (``Value`` overrides, generic arguments)."""

    __slots__ = ()


class AbsentPlan(Plan):
    """Produce ``None`` for an optional service that has no registration."""

    __slots__ = ()

    def execute(self, scope: Scope) -> None:
        return None

    def __repr__(self) -> str:
        return "AbsentPlan()"


ABSENT = AbsentPlan()


class CurrentScopePlan(Plan):
    """Inject the scope the plan executes against."""

    __slots__ = ()

    def execute(self, scope: Scope) -> Scope:
        return scope


class ContainerPlan(Plan):
    """Inject the container that owns the executing scope."""

    __slots__ = ()

    def execute(self, scope: Scope) -> Any:
        return scope.container


class ConstructPlan(Plan):
    """Call an implementation class or a factory with planned arguments.

    Generator factories are advanced to their first ``yield``; the rest of the
    generator runs as a disposal step of the executing scope. Other products
    are handed to the scope's disposal tracker when ``track`` is set.
    """

    __slots__ = ("_args", "_dispose", "_is_generator", "_kwargs", "_target", "_track")

    def __init__(
        self,
        target: Callable[..., Any],
        *,
        args: Sequence[Plan] = (),
        kwargs: Sequence[tuple[str, Plan]] = (),
        track: bool = False,
        dispose: Callable[[Any], Any] | None = None,
    ) -> None:
        self._target = target
        self._args = tuple(args)
        self._kwargs = tuple(kwargs)
        self._track = track
        self._dispose = dispose
        self._is_generator = inspect.isgeneratorfunction(target)

    @property
    def target(self) -> Callable[..., Any]:
        return self._target

    def execute(self, scope: Scope) -> Any:
        args = [plan.execute(scope) for plan in self._args]
        kwargs = {name: plan.execute(scope) for name, plan in self._kwargs}

        if self._is_generator:
            generator = self._target(*args, **kwargs)
            try:
                instance = next(generator)
            except StopIteration as error:
                msg = f"Generator factory '{describe_type(self._target)}' did not yield a value."
                raise ConstructorSelectionError(msg) from error
            scope.add_disposal_callback(functools.partial(_finish_generator, generator))
            return instance

        instance = self._target(*args, **kwargs)
        if self._track:
            if self._dispose is not None:
                scope.track(instance, functools.partial(self._dispose, instance))
            else:
                scope.track(instance)
        return instance

    def __repr__(self) -> str:
        return f"{type(self).__name__}({describe_type(self._target)})"


class DecoratorPlan(ConstructPlan):
    """Construct a decorator around the product of ``inner``."""

    __slots__ = ("inner",)

    def __init__(self, target: Callable[..., Any], *, inner: Plan, **kwargs: Any) -> None:
        super().__init__(target, **kwargs)
        self.inner = inner


class ReusePlan(Plan):
    """Store the product of ``inner`` in the slot table of the storage scope.

    ``inner`` runs against the storage scope rather than the resolving one,
    so a long-lived instance can only receive dependencies that live at least
    as long as it does.
    """

    __slots__ = ("_implicit_root_scope", "_inner", "_reuse", "_service_key", "_slot_id")

    def __init__(
        self,
        inner: Plan,
        *,
        reuse: Reuse,
        slot_id: Hashable,
        service_key: ServiceKey,
        implicit_root_scope: bool = False,
    ) -> None:
        self._inner = inner
        self._reuse = reuse
        self._slot_id = slot_id
        self._service_key = service_key
        self._implicit_root_scope = implicit_root_scope

    @property
    def inner(self) -> Plan:
        return self._inner

    @property
    def reuse(self) -> Reuse:
        return self._reuse

    def execute(self, scope: Scope) -> Any:
        storage = self._reuse.storage_scope(
            scope,
            self._service_key,
            implicit_root_scope=self._implicit_root_scope,
        )
        return storage.get_or_build(self._slot_id, self._service_key, self._inner)

    def __repr__(self) -> str:
        return f"ReusePlan({self._reuse}, {self._inner!r})"


class ProviderPlan(Plan):
    """Inject a zero-argument callable that resolves the service when called.

    Nothing is planned until the first call, which goes through the plan cache
    of the executing scope like any other resolution.
    """

    __slots__ = ("_service_key",)

    def __init__(self, service_key: ServiceKey) -> None:
        self._service_key = service_key

    def execute(self, scope: Scope) -> Callable[[], Any]:
        return functools.partial(scope.resolve, self._service_key)


class LazyPlan(ProviderPlan):
    """Inject a :class:`LazyValue` that resolves the service on first access."""

    __slots__ = ()

    def execute(self, scope: Scope) -> LazyValue[Any]:
        return LazyValue(super().execute(scope))


class AllPlan(Plan):
    """Produce a :class:`ServiceSequence` over one element plan per descriptor."""

    __slots__ = ("_elements",)

    def __init__(self, elements: Sequence[Plan]) -> None:
        self._elements = tuple(elements)

    @property
    def elements(self) -> tuple[Plan, ...]:
        return self._elements

    def execute(self, scope: Scope) -> ServiceSequence[Any]:
        return ServiceSequence(self._elements, scope)


class ServiceSequence(Sequence[T]):
    """Finite, restartable sequence of every registration of a service.

    Elements are built on access in registration order. Every iteration
    executes the element plans again, so transient elements are rebuilt while
    reused ones come back from their slots. Accessing elements after the
    scope closed raises :class:`ClosedScopeError`.
    """

    __slots__ = ("_plans", "_scope")

    def __init__(self, plans: tuple[Plan, ...], scope: Scope) -> None:
        self._plans = plans
        self._scope = scope

    def __len__(self) -> int:
        return len(self._plans)

    @overload
    def __getitem__(self, index: int) -> T: ...

    @overload
    def __getitem__(self, index: slice) -> ServiceSequence[T]: ...

    def __getitem__(self, index: int | slice) -> T | ServiceSequence[T]:
        if isinstance(index, slice):
            return ServiceSequence(self._plans[index], self._scope)
        self._scope.ensure_open()
        return self._plans[index].execute(self._scope)

    def __iter__(self) -> Iterator[T]:
        for plan in self._plans:
            self._scope.ensure_open()
            yield plan.execute(self._scope)

    def __repr__(self) -> str:
        return f"ServiceSequence(<{len(self._plans)} element(s)>)"


def _finish_generator(generator: Any) -> None:
    try:
        next(generator)
    except StopIteration:
        return
    generator.close()
    msg = "Generator factory yielded more than once."
    raise ConstructorSelectionError(msg)
