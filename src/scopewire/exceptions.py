from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from scopewire.registry import Descriptor
    from scopewire.service_key import ServiceKey


class ScopewireError(Exception):
    """Represent a base class for all scopewire-specific failures.

    Catch this type when you want to handle any scopewire error path without
    matching each concrete exception class individually.
    """


class InvalidRegistrationError(ScopewireError):
    """Signal an invalid registration call.

    Raised by ``Container.register`` and friends when the combination of
    arguments cannot describe a service, for example when none or more than one
    of ``implementation``/``factory``/``instance`` is given, or when a
    dependency override names a parameter the target does not accept.
    """


class UnresolvedServiceError(ScopewireError):
    """Signal that a service key has no descriptor and cannot be autowired.

    Raised by ``resolve`` when no registration matches the requested key, no
    open-generic registration can be specialized for it, and the requested type
    is not an eligible concrete class.

    Typical fixes include registering the service explicitly, enabling
    ``Rules.autowire_concrete_types``, or resolving with ``allow_absent=True``
    when the service is genuinely optional.
    """

    def __init__(self, service_key: ServiceKey, chain: Sequence[ServiceKey] = ()) -> None:
        self.service_key = service_key
        self.chain = list(chain)
        msg = f"No registration found for {service_key}"
        if self.chain:
            path = " -> ".join(str(item) for item in self.chain)
            msg = f"{msg} (required by {path})"
        super().__init__(msg)


class AmbiguousRegistrationError(ScopewireError):
    """Signal that several descriptors compete for one service key.

    Raised by ``resolve`` when more than one registration matches, no
    discriminator narrows the set, and no configured selector rule picks a
    winner.

    Typical fixes include resolving with ``key=...``, registering the services
    under distinct keys, or configuring ``Rules.factory_selectors``.
    """

    def __init__(self, service_key: ServiceKey, candidates: Sequence[Descriptor]) -> None:
        self.service_key = service_key
        self.candidates = list(candidates)
        listed = ", ".join(descriptor.describe() for descriptor in self.candidates)
        super().__init__(
            f"Ambiguous registrations for {service_key}: {listed}",
        )


class CyclicDependencyError(ScopewireError):
    """Signal a dependency cycle that is not broken by a deferred wrapper.

    The ``chain`` attribute holds the full cycle, starting and ending with the
    same service key.

    Typical fixes include injecting one side as ``Provider[T]`` or ``Lazy[T]``
    so its construction is deferred until first use.
    """

    def __init__(self, chain: Sequence[ServiceKey]) -> None:
        self.chain = list(chain)
        self.service_key = self.chain[-1] if self.chain else None
        path = " -> ".join(str(item) for item in self.chain)
        super().__init__(f"Circular dependency detected: {path}")


class ScopeMismatchError(ScopewireError):
    """Signal that a service needs a scope that is not open.

    Raised when a scoped service is resolved from the root scope (and
    ``Rules.implicit_root_scope`` is disabled) or when a service bound to a
    named scope is resolved outside of any scope with that name.

    Typical fix is opening the required scope first, for example
    ``with container.open_scope("request") as scope: ...``.
    """

    def __init__(self, service_key: ServiceKey, msg: str, scope_name: Any = None) -> None:
        self.service_key = service_key
        self.scope_name = scope_name
        super().__init__(msg)


class ClosedScopeError(ScopewireError):
    """Signal an operation against a scope that was already closed."""


class ConstructorSelectionError(ScopewireError):
    """Signal that a target cannot be constructed.

    Common triggers are abstract classes, protocols, and required constructor
    parameters without a usable type annotation.

    Typical fixes include registering a concrete implementation or a factory,
    annotating every required parameter, or passing ``dependencies=...``.
    """


class InvalidGenericTypeArgumentError(ScopewireError):
    """Signal invalid closed-generic arguments for an open registration.

    Raised while matching open-generic registrations when a closed key violates
    TypeVar bounds or constraints.
    """


class DisposalError(ScopewireError):
    """Aggregate every failure raised while closing a scope.

    Closing always attempts each disposal step; the collected exceptions are
    available in ``errors`` in the order they happened.
    """

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors = list(errors)
        details = "; ".join(f"{type(error).__name__}: {error}" for error in self.errors)
        super().__init__(f"{len(self.errors)} error(s) during disposal: {details}")
