"""Bridge between scopewire and service-descriptor based host frameworks.

Host frameworks describe services as flat ``(service, implementation |
factory | instance, lifetime)`` records and consume them through a
``get_service``/``dispose`` style provider. This module maps those records onto
container registrations and exposes scopes through that provider interface.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from enum import Enum
from types import TracebackType
from typing import TYPE_CHECKING, Any, NamedTuple

from scopewire.container import Container
from scopewire.exceptions import InvalidRegistrationError
from scopewire.reuse import Reuse
from scopewire.rules import select_last_registered
from scopewire.scope import Scope

if TYPE_CHECKING:
    from typing_extensions import Self

logger = logging.getLogger(__name__)


class ServiceLifetime(str, Enum):
    """Lifetimes understood by host frameworks."""

    SINGLETON = "singleton"
    SCOPED = "scoped"
    TRANSIENT = "transient"


_REUSE_BY_LIFETIME = {
    ServiceLifetime.SINGLETON: Reuse.SINGLETON,
    ServiceLifetime.SCOPED: Reuse.SCOPED,
    ServiceLifetime.TRANSIENT: Reuse.TRANSIENT,
}


class ServiceDescriptor(NamedTuple):
    """One host-framework service record.

    Exactly one of ``implementation``, ``factory`` and ``instance`` is set. A
    ``factory`` receives the :class:`ServiceProvider` of the resolving scope.
    """

    service: Any
    lifetime: ServiceLifetime = ServiceLifetime.TRANSIENT
    implementation: Any = None
    factory: Callable[[ServiceProvider], Any] | None = None
    instance: Any = None

    @classmethod
    def singleton(cls, service: Any, implementation: Any = None, **kwargs: Any) -> Self:
        return cls(service, ServiceLifetime.SINGLETON, implementation, **kwargs)

    @classmethod
    def scoped(cls, service: Any, implementation: Any = None, **kwargs: Any) -> Self:
        return cls(service, ServiceLifetime.SCOPED, implementation, **kwargs)

    @classmethod
    def transient(cls, service: Any, implementation: Any = None, **kwargs: Any) -> Self:
        return cls(service, ServiceLifetime.TRANSIENT, implementation, **kwargs)


RegisterDescriptor = Callable[[Container, ServiceDescriptor], bool]
"""Custom registration hook; return ``True`` when it registered the descriptor."""


class ServiceProvider:
    """``get_service``/``dispose`` facade over one scope."""

    def __init__(self, scope: Scope) -> None:
        self._scope = scope

    @property
    def scope(self) -> Scope:
        return self._scope

    def get_service(self, service: Any) -> Any:
        """Return the service, or ``None`` when it is not registered.

        Misconfiguration errors (ambiguity, cycles, scope mismatches) are
        raised as usual.
        """
        return self._scope.resolve(service, allow_absent=True)

    def get_required_service(self, service: Any) -> Any:
        return self._scope.resolve(service)

    def get_services(self, service: Any) -> list[Any]:
        return list(self._scope.resolve_all(service))

    def create_scope(self) -> ServiceProvider:
        return ServiceScopeFactory(self._scope).create_scope()

    def dispose(self) -> None:
        """Close the wrapped scope."""
        self._scope.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.dispose()


class ServiceScopeFactory:
    """Open child scopes for host-framework units of work."""

    def __init__(self, scope: Scope) -> None:
        self._scope = scope

    def create_scope(self) -> ServiceProvider:
        return self._scope.open_scope().resolve(ServiceProvider)


def populate(
    container: Container,
    descriptors: Iterable[ServiceDescriptor],
    register_descriptor: RegisterDescriptor | None = None,
) -> int:
    """Register host-framework descriptors in ``container``.

    Lifetimes map one to one onto ``Reuse.SINGLETON``, ``Reuse.SCOPED`` and
    ``Reuse.TRANSIENT``. Calling this again with another batch adds those
    registrations; with ``select_last_registered`` configured, later batches
    win for single resolution while ``resolve_all`` returns every record.

    Args:
        container: Target container.
        descriptors: Records to register.
        register_descriptor: Optional hook tried first for each record.

    Returns:
        The number of records registered by scopewire itself.

    """
    registered = 0
    for descriptor in descriptors:
        if register_descriptor is not None and register_descriptor(container, descriptor):
            continue
        _register_descriptor(container, descriptor)
        registered += 1
    logger.debug("Populated %d service descriptor(s)", registered)
    return registered


def _register_descriptor(container: Container, descriptor: ServiceDescriptor) -> None:
    try:
        reuse = _REUSE_BY_LIFETIME[ServiceLifetime(descriptor.lifetime)]
    except ValueError as error:
        msg = f"Unknown service lifetime {descriptor.lifetime!r} for {descriptor.service!r}."
        raise InvalidRegistrationError(msg) from error

    if descriptor.instance is not None:
        container.register(descriptor.service, instance=descriptor.instance)
    elif descriptor.factory is not None:
        factory = descriptor.factory

        def build(provider: ServiceProvider) -> Any:
            return factory(provider)

        container.register(descriptor.service, factory=build, lifetime=reuse)
    else:
        container.register(descriptor.service, descriptor.implementation, lifetime=reuse)


def with_service_provider_adapter(
    container: Container,
    descriptors: Iterable[ServiceDescriptor] | None = None,
    register_descriptor: RegisterDescriptor | None = None,
) -> Container:
    """Return a fork of ``container`` configured for host-framework conventions.

    The fork selects the last registered descriptor when several compete,
    tracks disposable transients, allows scoped services at the root, and
    registers :class:`ServiceProvider` and :class:`ServiceScopeFactory` bound
    to the resolving scope.
    """
    rules = container.rules.with_factory_selector(select_last_registered).with_(
        track_disposable_transients=True,
        implicit_root_scope=True,
    )
    adapted = container.with_rules(rules)
    adapted.register(ServiceProvider, lifetime=Reuse.SCOPED, prevent_disposal=True)
    adapted.register(ServiceScopeFactory, lifetime=Reuse.SCOPED, prevent_disposal=True)
    if descriptors is not None:
        populate(adapted, descriptors, register_descriptor)
    return adapted
