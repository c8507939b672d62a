from __future__ import annotations

import datetime
import decimal
import enum
import inspect
import pathlib
import types
import uuid
from dataclasses import dataclass
from typing import Any, TypeGuard, get_origin


def is_runtime_class(candidate: object) -> TypeGuard[type[Any]]:
    """Return true when candidate is a class rather than a generic alias."""
    return isinstance(candidate, type) and not isinstance(candidate, types.GenericAlias)


@dataclass(frozen=True, slots=True)
class ConcreteTypePolicy:
    """Decide which unregistered types may be built from their constructor."""

    ignored_base_types: tuple[type[Any], ...] = (
        pathlib.PurePath,
        datetime.datetime,
        datetime.date,
        datetime.time,
        datetime.timedelta,
        uuid.UUID,
        decimal.Decimal,
        enum.Enum,
        BaseException,
    )

    def is_eligible_concrete(self, candidate: object) -> bool:
        """Return true when ``candidate`` (or the origin of a closed alias) can be autowired.

        Builtins, value types, abstract classes, protocols and metaclasses are
        never autowired.
        """
        origin = get_origin(candidate)
        if origin is not None:
            candidate = origin
        if not is_runtime_class(candidate):
            return False
        if candidate.__module__ == "builtins":
            return False
        if inspect.isabstract(candidate) or getattr(candidate, "_is_protocol", False):
            return False
        if issubclass(candidate, type):
            return False
        return not issubclass(candidate, self.ignored_base_types)
