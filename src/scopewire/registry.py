from __future__ import annotations

import dataclasses
from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

from scopewire.open_generics import (
    find_best_match,
    is_open_generic,
    iter_matches,
    open_template,
    substitute_typevars,
)
from scopewire.reuse import Reuse
from scopewire.service_key import ServiceKey, describe_type

if TYPE_CHECKING:
    from scopewire.planner import Request

_EMPTY_MAPPING: Mapping[Any, Any] = MappingProxyType({})


class DescriptorKind(Enum):
    """What a descriptor produces instances from."""

    IMPLEMENTATION = "implementation"
    FACTORY = "factory"
    INSTANCE = "instance"


@dataclass(frozen=True, slots=True, eq=False)
class Descriptor:
    """An immutable registration recipe.

    Descriptors compare by identity. Re-registering a service appends a new
    descriptor with a higher ``registration_order``; existing ones never change.
    """

    service_key: ServiceKey
    """The key the descriptor is registered under."""

    kind: DescriptorKind
    """Whether ``target`` is an implementation class, a factory, or an instance."""

    target: Any
    """Implementation class, factory callable, or the fixed instance."""

    reuse: Reuse = Reuse.TRANSIENT
    """Where produced instances are stored and how long they are reused."""

    registration_order: int = 0
    """Monotonic counter value assigned at registration time."""

    metadata: Any = None
    """Arbitrary value used for filtering and selection."""

    condition: Callable[[Request], bool] | None = None
    """Restricts the requests the descriptor may serve."""

    dependencies: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_MAPPING)
    """Per-parameter overrides: a dependency key or a ``Value``."""

    is_decorator: bool = False
    """Whether the descriptor wraps another service instead of providing it."""

    inner_parameter: str | None = None
    """Decorator parameter that receives the wrapped instance."""

    prevent_disposal: bool = False
    """Never register produced instances with a disposal tracker."""

    dispose: Callable[[Any], Any] | None = None
    """Custom disposal callback receiving the produced instance."""

    is_implicit: bool = False
    """Synthesized by autowiring rather than registered."""

    typevar_map: Mapping[TypeVar, Any] = field(default_factory=lambda: _EMPTY_MAPPING)
    """TypeVar bindings of a specialized open-generic descriptor."""

    slot_id: Hashable | None = field(default=None)
    """Storage slot identity; defaults to ``registration_order``."""

    @property
    def storage_id(self) -> Hashable:
        if self.slot_id is not None:
            return self.slot_id
        return ("descriptor", self.registration_order)

    @property
    def is_open_generic(self) -> bool:
        return is_open_generic(self.service_key.service_type)

    def describe(self) -> str:
        if self.kind is DescriptorKind.INSTANCE:
            source = f"instance of {describe_type(type(self.target))}"
        else:
            source = describe_type(self.target)
        return f"{source} ({self.reuse}, #{self.registration_order})"

    def specialize(self, closed_key: ServiceKey, typevar_map: Mapping[TypeVar, Any]) -> Descriptor:
        """Return the closed descriptor serving ``closed_key`` from this open one."""
        target = self.target
        if self.kind is DescriptorKind.IMPLEMENTATION:
            target = substitute_typevars(open_template(target), typevar_map)
        return dataclasses.replace(
            self,
            service_key=closed_key,
            target=target,
            typevar_map=MappingProxyType(dict(typevar_map)),
            slot_id=("generic", self.registration_order, closed_key),
        )


class Registry:
    """Copy-on-write snapshot of all registrations.

    A snapshot is never mutated once published: ``register``, ``unregister``
    and ``replace`` return a new snapshot, so plans that are executing against
    an older snapshot keep a consistent view.

    The only mutable state is the specialization cache for open generics,
    which is append-only and filled with ``dict.setdefault``.
    """

    __slots__ = ("_by_key", "_by_type", "_decorators", "_open", "_specializations")

    def __init__(
        self,
        by_key: dict[ServiceKey, tuple[Descriptor, ...]] | None = None,
        decorators: dict[Any, tuple[Descriptor, ...]] | None = None,
        open_generics: tuple[Descriptor, ...] = (),
    ) -> None:
        self._by_key = by_key or {}
        self._decorators = decorators or {}
        self._open = open_generics
        self._by_type: dict[Any, tuple[Descriptor, ...]] = {}
        for descriptors in self._by_key.values():
            for descriptor in descriptors:
                service_type = descriptor.service_key.service_type
                self._by_type[service_type] = (*self._by_type.get(service_type, ()), descriptor)
        for service_type, descriptors in self._by_type.items():
            self._by_type[service_type] = tuple(
                sorted(descriptors, key=lambda descriptor: descriptor.registration_order),
            )
        self._specializations: dict[tuple[int, ServiceKey], Descriptor] = {}

    def __len__(self) -> int:
        explicit = sum(len(descriptors) for descriptors in self._by_key.values())
        decorators = sum(len(descriptors) for descriptors in self._decorators.values())
        return explicit + decorators + len(self._open)

    def __contains__(self, service_key: object) -> bool:
        return service_key in self._by_key

    # region Mutation (copy-on-write)

    def register(self, descriptor: Descriptor) -> Registry:
        """Return a new snapshot with ``descriptor`` appended."""
        if descriptor.is_decorator:
            service_type = descriptor.service_key.service_type
            decorators = dict(self._decorators)
            decorators[service_type] = (*decorators.get(service_type, ()), descriptor)
            return Registry(dict(self._by_key), decorators, self._open)

        if descriptor.is_open_generic:
            return Registry(dict(self._by_key), dict(self._decorators), (*self._open, descriptor))

        by_key = dict(self._by_key)
        by_key[descriptor.service_key] = (*by_key.get(descriptor.service_key, ()), descriptor)
        return Registry(by_key, dict(self._decorators), self._open)

    def unregister(
        self,
        service_key: ServiceKey,
        *,
        predicate: Callable[[Descriptor], bool] | None = None,
    ) -> Registry:
        """Return a new snapshot without the descriptors registered under ``service_key``.

        With ``predicate``, only the matching descriptors are removed. Open
        generic registrations are removed by their open key.
        """

        def keep(descriptor: Descriptor) -> bool:
            if descriptor.service_key != service_key:
                return True
            return predicate is not None and not predicate(descriptor)

        by_key = {
            key: kept
            for key, descriptors in self._by_key.items()
            if (kept := tuple(descriptor for descriptor in descriptors if keep(descriptor)))
        }
        open_generics = tuple(descriptor for descriptor in self._open if keep(descriptor))
        return Registry(by_key, dict(self._decorators), open_generics)

    def unregister_decorator(self, descriptor: Descriptor) -> Registry:
        service_type = descriptor.service_key.service_type
        decorators = dict(self._decorators)
        remaining = tuple(
            item for item in decorators.get(service_type, ()) if item is not descriptor
        )
        if remaining:
            decorators[service_type] = remaining
        else:
            decorators.pop(service_type, None)
        return Registry(dict(self._by_key), decorators, self._open)

    def fork(self) -> Registry:
        """Return an equal snapshot with its own specialization cache."""
        return Registry(dict(self._by_key), dict(self._decorators), self._open)

    def replace(self, descriptor: Descriptor) -> Registry:
        """Return a new snapshot where ``descriptor`` is the only one for its key."""
        return self.unregister(descriptor.service_key).register(descriptor)

    # endregion Mutation (copy-on-write)

    # region Lookup

    def lookup(self, service_key: ServiceKey) -> tuple[Descriptor, ...]:
        """Return the descriptors for ``service_key`` in registration order.

        When nothing is registered under a closed generic key, the most
        specific matching open registration is specialized and returned.
        """
        explicit = self._by_key.get(service_key)
        if explicit:
            return explicit
        if not self._open:
            return ()

        candidates = [
            descriptor
            for descriptor in self._open
            if descriptor.service_key.key == service_key.key
        ]
        match = find_best_match(candidates, service_key.service_type)
        if match is None:
            return ()
        return (self._specialize(match.descriptor, service_key, match.typevar_map),)

    def lookup_all(self, service_type: Any) -> dict[Hashable | None, tuple[Descriptor, ...]]:
        """Return every descriptor for ``service_type`` grouped by discriminator.

        Groups follow the registration order of their first descriptor.
        """
        grouped: dict[Hashable | None, tuple[Descriptor, ...]] = {}
        for descriptor in self.all_descriptors(service_type):
            key = descriptor.service_key.key
            grouped[key] = (*grouped.get(key, ()), descriptor)
        return grouped

    def all_descriptors(self, service_type: Any) -> tuple[Descriptor, ...]:
        """Return every descriptor serving ``service_type`` in registration order."""
        explicit = self._by_type.get(service_type, ())
        if not self._open:
            return explicit

        specialized = [
            self._specialize(
                match.descriptor,
                ServiceKey(service_type, match.descriptor.service_key.key),
                match.typevar_map,
            )
            for match in iter_matches(self._open, service_type)
        ]
        if not specialized:
            return explicit
        return tuple(
            sorted(
                (*explicit, *specialized),
                key=lambda descriptor: descriptor.registration_order,
            ),
        )

    def decorators_for(self, service_key: ServiceKey) -> tuple[Descriptor, ...]:
        """Return decorators applying to ``service_key`` in ascending registration order.

        Decorators registered without a key apply to every key of the type.
        """
        return tuple(
            decorator
            for decorator in self._decorators.get(service_key.service_type, ())
            if decorator.service_key.key is None or decorator.service_key.key == service_key.key
        )

    def descriptors(self) -> tuple[Descriptor, ...]:
        """Return every non-decorator descriptor, open generics included, in order."""
        explicit = [descriptor for items in self._by_key.values() for descriptor in items]
        return tuple(
            sorted(
                (*explicit, *self._open),
                key=lambda descriptor: descriptor.registration_order,
            ),
        )

    # endregion Lookup

    def _specialize(
        self,
        descriptor: Descriptor,
        closed_key: ServiceKey,
        typevar_map: Mapping[TypeVar, Any],
    ) -> Descriptor:
        cache_key = (descriptor.registration_order, closed_key)
        cached = self._specializations.get(cache_key)
        if cached is not None:
            return cached
        return self._specializations.setdefault(
            cache_key,
            descriptor.specialize(closed_key, typevar_map),
        )
