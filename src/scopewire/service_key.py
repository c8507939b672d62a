from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from typing import Annotated, Any, get_args, get_origin

from scopewire.markers import Component


@dataclass(frozen=True, slots=True)
class ServiceKey:
    """Identity of a registration: a service type plus an optional discriminator.

    ``key`` may be any hashable value (strings, enums, tuples, ...). ``None``
    denotes the unkeyed registration.
    """

    service_type: Any
    key: Hashable | None = None

    @classmethod
    def from_value(cls, value: Any, key: Hashable | None = None) -> ServiceKey:
        """Build a key from a type, an existing key, or ``Annotated[T, Component(k)]``.

        An explicit ``key`` argument takes precedence over a ``Component``
        found in the annotation.
        """
        if isinstance(value, ServiceKey):
            if key is None or key == value.key:
                return value
            return cls(value.service_type, key)

        if get_origin(value) is Annotated:
            args = get_args(value)
            component = next((item for item in args[1:] if isinstance(item, Component)), None)
            if key is None and component is not None:
                key = component.value
            value = args[0]

        return cls(value, key)

    @property
    def is_keyed(self) -> bool:
        return self.key is not None

    def with_key(self, key: Hashable | None) -> ServiceKey:
        return ServiceKey(self.service_type, key)

    def __str__(self) -> str:
        name = describe_type(self.service_type)
        if self.key is None:
            return name
        return f"{name}[key={self.key!r}]"


def describe_type(value: Any) -> str:
    """Return a short human-readable name for a type or type expression."""
    if isinstance(value, type) and get_origin(value) is None:
        return value.__qualname__
    if get_origin(value) is not None:
        return repr(value).replace("typing.", "")
    return getattr(value, "__qualname__", None) or repr(value)
