from __future__ import annotations

from enum import Enum
from typing import Any, NamedTuple

from scopewire.plans import Plan
from scopewire.service_key import ServiceKey


class RequestShape(Enum):
    """How the caller asked for a service; part of the plan cache key."""

    SERVICE = "service"
    """Exactly one instance; unresolved services are errors."""

    OPTIONAL = "optional"
    """One instance or ``None`` when the service itself is not registered."""

    ALL = "all"
    """Every registration, decorators applied."""

    ALL_UNDECORATED = "all_undecorated"
    """Every registration, bypassing decorators."""


class PlanKey(NamedTuple):
    service_key: ServiceKey
    shape: RequestShape
    metadata: Any = None

    @property
    def is_cacheable(self) -> bool:
        """Whether the key can be stored; unhashable metadata filters are planned per call."""
        try:
            hash(self.metadata)
        except TypeError:
            return False
        return True


class PlanCache:
    """Memoized root-request plans of one registry snapshot.

    Two threads may plan the same key concurrently; the first insert is kept
    and returned to both, the other plan is dropped. Planning has no side
    effects, so dropping is safe.
    """

    __slots__ = ("_plans",)

    def __init__(self) -> None:
        self._plans: dict[PlanKey, Plan] = {}

    def __len__(self) -> int:
        return len(self._plans)

    def __contains__(self, plan_key: object) -> bool:
        return plan_key in self._plans

    def get(self, plan_key: PlanKey) -> Plan | None:
        return self._plans.get(plan_key)

    def add(self, plan_key: PlanKey, plan: Plan) -> Plan:
        """Insert ``plan`` unless a plan for ``plan_key`` exists; return the kept one."""
        return self._plans.setdefault(plan_key, plan)
