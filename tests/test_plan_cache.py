"""Tests for plan caching and the planner."""

from __future__ import annotations

from dataclasses import dataclass

from scopewire import Container, Lifetime, Rules, ServiceKey
from scopewire.dependencies import DependenciesExtractor
from scopewire.plan_cache import PlanCache, PlanKey, RequestShape
from scopewire.planner import Planner
from scopewire.plans import (
    ABSENT,
    AllPlan,
    ConstructPlan,
    InstancePlan,
    ReusePlan,
)
from scopewire.registry import Descriptor, DescriptorKind, Registry
from scopewire.reuse import Reuse


class Clock:
    pass


@dataclass
class Scheduler:
    clock: Clock


def _implementation(service_key: ServiceKey, reuse: Reuse = Reuse.TRANSIENT) -> Descriptor:
    return Descriptor(
        service_key=service_key,
        kind=DescriptorKind.IMPLEMENTATION,
        target=service_key.service_type,
        reuse=reuse,
    )


def _registry(*descriptors: Descriptor) -> Registry:
    registry = Registry()
    for order, descriptor in enumerate(descriptors, start=1):
        registry = registry.register(
            Descriptor(
                service_key=descriptor.service_key,
                kind=descriptor.kind,
                target=descriptor.target,
                reuse=descriptor.reuse,
                registration_order=order,
            ),
        )
    return registry


def _planner(registry: Registry, rules: Rules | None = None) -> Planner:
    return Planner(registry, rules or Rules(), DependenciesExtractor())


class TestPlanCache:
    def test_first_insert_wins(self) -> None:
        cache = PlanCache()
        key = PlanKey(ServiceKey(Clock), RequestShape.SERVICE)
        first = InstancePlan(Clock())
        second = InstancePlan(Clock())

        assert cache.add(key, first) is first
        assert cache.add(key, second) is first
        assert cache.get(key) is first
        assert len(cache) == 1

    def test_shape_and_metadata_are_part_of_the_key(self) -> None:
        cache = PlanCache()
        service_key = ServiceKey(Clock)
        cache.add(PlanKey(service_key, RequestShape.SERVICE), InstancePlan(1))

        assert PlanKey(service_key, RequestShape.OPTIONAL) not in cache
        assert PlanKey(service_key, RequestShape.SERVICE, "meta") not in cache
        assert PlanKey(service_key, RequestShape.SERVICE) in cache


class TestPlanner:
    def test_transient_plan_constructs(self) -> None:
        registry = _registry(_implementation(ServiceKey(Clock)))

        plan = _planner(registry).plan(ServiceKey(Clock), RequestShape.SERVICE)

        assert isinstance(plan, ConstructPlan)
        assert plan.target is Clock

    def test_stored_plan_is_wrapped_for_reuse(self) -> None:
        registry = _registry(_implementation(ServiceKey(Clock), Reuse.SINGLETON))

        plan = _planner(registry).plan(ServiceKey(Clock), RequestShape.SERVICE)

        assert isinstance(plan, ReusePlan)
        assert plan.reuse == Reuse.SINGLETON
        assert isinstance(plan.inner, ConstructPlan)

    def test_optional_request_plans_absent(self) -> None:
        plan = _planner(Registry(), Rules(autowire_concrete_types=False)).plan(
            ServiceKey(Clock),
            RequestShape.OPTIONAL,
        )

        assert plan is ABSENT

    def test_all_request(self) -> None:
        registry = _registry(
            _implementation(ServiceKey(Clock)),
            Descriptor(
                service_key=ServiceKey(Clock, "b"),
                kind=DescriptorKind.INSTANCE,
                target=Clock(),
            ),
        )

        plan = _planner(registry).plan(ServiceKey(Clock), RequestShape.ALL)

        assert isinstance(plan, AllPlan)
        assert len(plan.elements) == 2


class TestContainerCaching:
    def test_plans_are_reused_between_resolutions(self, container: Container) -> None:
        container.register(Scheduler)
        container.resolve(Scheduler)
        state = container._state  # noqa: SLF001
        plan = state.plans.get(PlanKey(ServiceKey(Scheduler), RequestShape.SERVICE))

        container.resolve(Scheduler)

        assert plan is not None
        assert state.plans.get(PlanKey(ServiceKey(Scheduler), RequestShape.SERVICE)) is plan

    def test_registration_publishes_a_fresh_cache(self, container: Container) -> None:
        container.resolve(Scheduler)
        before = container._state.plans  # noqa: SLF001

        container.register(Clock, lifetime=Lifetime.SINGLETON)

        assert container._state.plans is not before  # noqa: SLF001
        assert len(container._state.plans) == 0  # noqa: SLF001
        assert container.resolve(Scheduler).clock is container.resolve(Clock)


class TestWithRules:
    def test_fork_copies_registrations_and_changes_rules(self, container: Container) -> None:
        container.register(Clock, lifetime=Lifetime.SINGLETON)

        forked = container.with_rules(autowire_concrete_types=False)

        assert forked.rules.autowire_concrete_types is False
        assert container.rules.autowire_concrete_types is True
        assert forked.is_registered(Clock)
        assert forked.resolve(Clock) is not container.resolve(Clock)
        forked.close()

    def test_fork_registrations_are_independent(self, container: Container) -> None:
        forked = container.with_rules()
        forked.register(Clock, key="forked")

        assert not container.is_registered(Clock, "forked")
        forked.close()
