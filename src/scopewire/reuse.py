from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

from scopewire.exceptions import ScopeMismatchError

if TYPE_CHECKING:
    from scopewire.scope import Scope
    from scopewire.service_key import ServiceKey


class Lifetime(str, Enum):
    """Define how long a produced instance is reused."""

    TRANSIENT = "transient"
    """Build a new instance for every resolution."""

    SINGLETON = "singleton"
    """Build once per container and store the instance in the root scope."""

    SCOPED = "scoped"
    """Build once per scope.

    Without ``scope_name`` the instance lives in the scope the request resolves
    against. With ``scope_name`` it lives in the nearest scope with that name.
    """


@dataclass(frozen=True, slots=True)
class Reuse:
    """A lifetime plus, for named scoping, the target scope name.

    Use the class constants for the common policies and :meth:`in_scope` to bind
    a service to the nearest scope opened with a given name.

    Examples:
        .. code-block:: python

            container.register(Clock, lifetime=Reuse.SINGLETON)
            container.register(UnitOfWork, lifetime=Reuse.SCOPED)
            container.register(Transaction, lifetime=Reuse.in_scope("request"))

    """

    lifetime: Lifetime
    scope_name: Hashable | None = None

    TRANSIENT: ClassVar[Reuse]
    SINGLETON: ClassVar[Reuse]
    SCOPED: ClassVar[Reuse]

    @classmethod
    def in_scope(cls, name: Hashable) -> Reuse:
        return cls(Lifetime.SCOPED, scope_name=name)

    @classmethod
    def coerce(cls, value: Reuse | Lifetime | str) -> Reuse:
        if isinstance(value, Reuse):
            return value
        return cls(Lifetime(value))

    @property
    def is_stored(self) -> bool:
        return self.lifetime is not Lifetime.TRANSIENT

    def storage_scope(
        self,
        scope: Scope,
        service_key: ServiceKey,
        *,
        implicit_root_scope: bool = False,
    ) -> Scope:
        """Return the scope whose slot table holds instances under this policy.

        Raises:
            ScopeMismatchError: If no compatible scope is open.

        """
        if self.lifetime is Lifetime.SINGLETON:
            return scope.root
        if self.scope_name is not None:
            current: Scope | None = scope
            while current is not None:
                if current.name == self.scope_name:
                    return current
                current = current.parent
            msg = (
                f"{service_key} is bound to scope {self.scope_name!r}, but no open scope "
                f"with that name encloses the resolving scope {scope.name!r}."
            )
            raise ScopeMismatchError(service_key, msg, scope_name=self.scope_name)
        if scope.is_root and not implicit_root_scope:
            msg = (
                f"{service_key} is scoped, but it was resolved from the root scope. "
                "Open a scope with `container.open_scope()` first."
            )
            raise ScopeMismatchError(service_key, msg)
        return scope

    def __str__(self) -> str:
        if self.scope_name is not None:
            return f"scoped({self.scope_name!r})"
        return self.lifetime.value


Reuse.TRANSIENT = Reuse(Lifetime.TRANSIENT)
Reuse.SINGLETON = Reuse(Lifetime.SINGLETON)
Reuse.SCOPED = Reuse(Lifetime.SCOPED)
