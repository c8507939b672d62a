"""Tests for decorator registrations."""

from __future__ import annotations

from typing import Annotated

import pytest

from scopewire import Component, Container, Lifetime, Request
from scopewire.exceptions import InvalidRegistrationError


class Service:
    pass


class ServiceImpl(Service):
    pass


class OtherImpl(Service):
    pass


class Tracer:
    pass


class FirstLayer(Service):
    def __init__(self, inner: Service) -> None:
        self.inner = inner


class SecondLayer(Service):
    def __init__(self, inner: Service) -> None:
        self.inner = inner


class TracedLayer(Service):
    def __init__(self, inner: Service, tracer: Tracer) -> None:
        self.inner = inner
        self.tracer = tracer


class AmbiguousLayer(Service):
    def __init__(self, first: Service, second: Service) -> None:
        self.first = first
        self.second = second


class TestDecoratorOrder:
    def test_single_decorator_wraps_the_service(self, container: Container) -> None:
        container.register(Service, ServiceImpl)
        container.register_decorator(Service, FirstLayer)

        resolved = container.resolve(Service)

        assert isinstance(resolved, FirstLayer)
        assert isinstance(resolved.inner, ServiceImpl)

    def test_last_registered_decorator_is_outermost(self, container: Container) -> None:
        container.register(Service, ServiceImpl)
        container.register_decorator(Service, FirstLayer)
        container.register_decorator(Service, SecondLayer)

        resolved = container.resolve(Service)

        assert isinstance(resolved, SecondLayer)
        assert isinstance(resolved.inner, FirstLayer)
        assert isinstance(resolved.inner.inner, ServiceImpl)

    def test_decorator_registered_before_the_service(self, container: Container) -> None:
        container.register_decorator(Service, FirstLayer)
        container.register(Service, ServiceImpl)

        assert isinstance(container.resolve(Service), FirstLayer)

    def test_decorators_survive_replacing_the_service(self, container: Container) -> None:
        container.register(Service, ServiceImpl)
        container.register_decorator(Service, FirstLayer)
        container.replace(Service, OtherImpl)

        resolved = container.resolve(Service)

        assert isinstance(resolved, FirstLayer)
        assert isinstance(resolved.inner, OtherImpl)

    def test_decorator_dependencies_are_resolved(self, container: Container) -> None:
        container.register(Service, ServiceImpl)
        container.register(Tracer, lifetime=Lifetime.SINGLETON)
        container.register_decorator(Service, TracedLayer)

        resolved = container.resolve(Service)

        assert resolved.tracer is container.resolve(Tracer)

    def test_factory_decorator(self, container: Container) -> None:
        calls: list[Service] = []

        def record(inner: Service) -> Service:
            calls.append(inner)
            return inner

        container.register(Service, ServiceImpl)
        container.register_decorator(Service, record)

        resolved = container.resolve(Service)

        assert calls == [resolved]

    def test_unregistering_a_decorator(self, container: Container) -> None:
        container.register(Service, ServiceImpl)
        handle = container.register_decorator(Service, FirstLayer)

        handle.unregister()

        assert isinstance(container.resolve(Service), ServiceImpl)


class TestDecoratorReuse:
    def test_decorated_singleton_is_built_once(self, container: Container) -> None:
        container.register(Service, ServiceImpl, lifetime=Lifetime.SINGLETON)
        container.register_decorator(Service, FirstLayer)

        first = container.resolve(Service)

        assert container.resolve(Service) is first

    def test_decorated_transient_is_rebuilt(self, container: Container) -> None:
        container.register(Service, ServiceImpl)
        container.register_decorator(Service, FirstLayer)

        assert container.resolve(Service) is not container.resolve(Service)

    def test_decorated_instance_is_built_once(self, container: Container) -> None:
        instance = ServiceImpl()
        container.register_instance(Service, instance)
        container.register_decorator(Service, FirstLayer)

        first = container.resolve(Service)

        assert first.inner is instance
        assert container.resolve(Service) is first


class TestDecoratorKeysAndConditions:
    def test_unkeyed_decorator_applies_to_every_key(self, container: Container) -> None:
        container.register(Service, ServiceImpl, key="a")
        container.register(Service, OtherImpl, key="b")
        container.register_decorator(Service, FirstLayer)

        assert isinstance(container.resolve(Service, "a"), FirstLayer)
        assert isinstance(container.resolve(Service, "b"), FirstLayer)

    def test_keyed_decorator_applies_to_its_key_only(self, container: Container) -> None:
        container.register(Service, ServiceImpl, key="a")
        container.register(Service, OtherImpl, key="b")
        container.register_decorator(Service, FirstLayer, key="a")

        assert isinstance(container.resolve(Annotated[Service, Component("a")]), FirstLayer)
        assert isinstance(container.resolve(Service, "b"), OtherImpl)

    def test_decorator_condition(self, container: Container) -> None:
        def keyed_only(request: Request) -> bool:
            return request.service_key.key is not None

        container.register(Service, ServiceImpl)
        container.register(Service, OtherImpl, key="b")
        container.register_decorator(Service, FirstLayer, condition=keyed_only)

        assert isinstance(container.resolve(Service), ServiceImpl)
        assert isinstance(container.resolve(Service, "b"), FirstLayer)


class TestDecoratorBypass:
    def test_resolve_all_applies_decorators(self, container: Container) -> None:
        container.register(Service, ServiceImpl)
        container.register(Service, OtherImpl, key="b")
        container.register_decorator(Service, FirstLayer)

        resolved = list(container.resolve_all(Service))

        assert [type(item) for item in resolved] == [FirstLayer, FirstLayer]
        assert [type(item.inner) for item in resolved] == [ServiceImpl, OtherImpl]

    def test_resolve_all_can_bypass_decorators(self, container: Container) -> None:
        container.register(Service, ServiceImpl)
        container.register(Service, OtherImpl, key="b")
        container.register_decorator(Service, FirstLayer)

        resolved = list(container.resolve_all(Service, bypass_decorators=True))

        assert [type(item) for item in resolved] == [ServiceImpl, OtherImpl]


class TestDecoratorValidation:
    def test_inner_parameter_is_inferred(self, container: Container) -> None:
        handle = container.register_decorator(Service, TracedLayer)

        assert handle.descriptor.inner_parameter == "inner"

    def test_ambiguous_inner_parameter_requires_explicit_name(
        self,
        container: Container,
    ) -> None:
        with pytest.raises(InvalidRegistrationError, match="inner_parameter"):
            container.register_decorator(Service, AmbiguousLayer)

    def test_explicit_inner_parameter(self, container: Container) -> None:
        container.register(Service, ServiceImpl, key="other")
        container.register(Service, ServiceImpl)
        container.register_decorator(
            Service,
            AmbiguousLayer,
            key="other",
            inner_parameter="second",
        )

        resolved = container.resolve(Service, "other")

        assert isinstance(resolved, AmbiguousLayer)
        assert isinstance(resolved.first, ServiceImpl)
        assert isinstance(resolved.second, ServiceImpl)

    def test_unknown_inner_parameter(self, container: Container) -> None:
        with pytest.raises(InvalidRegistrationError, match="'missing'"):
            container.register_decorator(Service, FirstLayer, inner_parameter="missing")

    def test_generator_decorators_are_rejected(self, container: Container) -> None:
        def wrap(inner: Service):  # type: ignore[no-untyped-def]  # noqa: ANN202
            yield inner

        with pytest.raises(InvalidRegistrationError, match="generator"):
            container.register_decorator(Service, wrap)
