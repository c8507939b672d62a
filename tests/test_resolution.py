"""Tests for planning and resolving object graphs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Annotated, Protocol

import pytest

from scopewire import (
    Component,
    Container,
    Lifetime,
    Maybe,
    Request,
    Rules,
    prefer_metadata,
    select_first_registered,
    select_last_registered,
)
from scopewire.exceptions import (
    AmbiguousRegistrationError,
    ConstructorSelectionError,
    CyclicDependencyError,
    UnresolvedServiceError,
)


class Logger(ABC):
    @abstractmethod
    def log(self, message: str) -> None: ...


class FileLogger(Logger):
    def log(self, message: str) -> None:
        pass


class ConsoleLogger(Logger):
    def log(self, message: str) -> None:
        pass


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


@dataclass
class Database:
    logger: Logger


@dataclass
class UserRepository:
    database: Database


@dataclass
class UserService:
    repository: UserRepository
    logger: Logger


@dataclass
class Primary:
    logger: Annotated[Logger, Component("file")]


@dataclass
class Mailer:
    notifier: Maybe[Notifier]


@dataclass
class Reporter:
    notifier: Notifier | None = None
    retries: int = 3


@dataclass
class Sink:
    logger: FileLogger | ConsoleLogger | None = None


@dataclass
class Audit:
    logger: Logger


@dataclass
class Billing:
    logger: Logger


class Untyped:
    def __init__(self, value) -> None:  # type: ignore[no-untyped-def]  # noqa: ANN001
        self.value = value


class PositionalOnly:
    def __init__(self, logger: Logger, /, label: str = "default") -> None:
        self.logger = logger
        self.label = label


class CycleA:
    def __init__(self, b: CycleB) -> None:
        self.b = b


class CycleB:
    def __init__(self, a: CycleA) -> None:
        self.a = a


class SelfReferencing:
    def __init__(self, other: SelfReferencing) -> None:
        self.other = other


class TestGraphResolution:
    def test_transitive_dependencies_are_built(self, container: Container) -> None:
        container.register(Logger, FileLogger, lifetime=Lifetime.SINGLETON)
        container.register(Database)
        container.register(UserRepository)
        container.register(UserService)

        service = container.resolve(UserService)

        assert isinstance(service.logger, FileLogger)
        assert service.repository.database.logger is service.logger

    def test_unregistered_concrete_classes_are_autowired(self, container: Container) -> None:
        container.register(Logger, ConsoleLogger)

        service = container.resolve(UserService)

        assert isinstance(service.repository.database.logger, ConsoleLogger)

    def test_autowiring_can_be_disabled(self, strict_container: Container) -> None:
        strict_container.register(Logger, ConsoleLogger)

        with pytest.raises(UnresolvedServiceError) as exc_info:
            strict_container.resolve(Database)

        assert exc_info.value.chain == []

    def test_unresolved_dependency_reports_the_chain(self, container: Container) -> None:
        with pytest.raises(UnresolvedServiceError) as exc_info:
            container.resolve(UserService)

        assert str(exc_info.value) == (
            "No registration found for Logger "
            "(required by UserService -> UserRepository -> Database)"
        )

    def test_component_annotation_selects_keyed_registration(self, container: Container) -> None:
        container.register(Logger, FileLogger, key="file")
        container.register(Logger, ConsoleLogger, key="console")

        assert isinstance(container.resolve(Primary).logger, FileLogger)

    def test_missing_annotation_raises(self, container: Container) -> None:
        with pytest.raises(ConstructorSelectionError, match="no type annotation"):
            container.resolve(Untyped)

    def test_positional_only_parameters(self, container: Container) -> None:
        container.register(Logger, FileLogger)

        built = container.resolve(PositionalOnly)

        assert isinstance(built.logger, FileLogger)
        assert built.label == "default"


class TestOptionalDependencies:
    def test_maybe_resolves_to_none(self, container: Container) -> None:
        assert container.resolve(Mailer).notifier is None

    def test_maybe_resolves_registered_service(self, container: Container) -> None:
        class EmailNotifier:
            def notify(self, message: str) -> None:
                pass

        container.register(Notifier, EmailNotifier)

        assert isinstance(container.resolve(Mailer).notifier, EmailNotifier)

    def test_defaults_are_used_when_unregistered(self, container: Container) -> None:
        reporter = container.resolve(Reporter)

        assert reporter.notifier is None
        assert reporter.retries == 3

    def test_registered_values_override_defaults(self, container: Container) -> None:
        container.register(int, instance=5)

        assert container.resolve(Reporter).retries == 5

    def test_optional_union_prefers_registration_over_default(
        self,
        container: Container,
    ) -> None:
        class EmailNotifier:
            def notify(self, message: str) -> None:
                pass

        container.register(Notifier, EmailNotifier, lifetime=Lifetime.SINGLETON)

        assert container.resolve(Reporter).notifier is container.resolve(Notifier)

    def test_wider_union_with_default_uses_default(self, container: Container) -> None:
        container.register(FileLogger)

        assert container.resolve(Sink).logger is None

    def test_allow_absent(self, container: Container) -> None:
        assert container.resolve(Notifier, allow_absent=True) is None
        assert container.resolve(Maybe[Notifier]) is None

    def test_allow_absent_still_reports_missing_dependencies(self, container: Container) -> None:
        container.register(Database)

        with pytest.raises(UnresolvedServiceError) as exc_info:
            container.resolve(Database, allow_absent=True)

        assert exc_info.value.service_key.service_type is Logger


class TestAmbiguity:
    def test_competing_registrations_raise(self, container: Container) -> None:
        container.register(Logger, FileLogger)
        container.register(Logger, ConsoleLogger)

        with pytest.raises(AmbiguousRegistrationError):
            container.resolve(Logger)

    def test_select_last_registered(self) -> None:
        with Container(Rules(factory_selectors=(select_last_registered,))) as container:
            container.register(Logger, FileLogger)
            container.register(Logger, ConsoleLogger)

            assert isinstance(container.resolve(Logger), ConsoleLogger)

    def test_select_first_registered(self) -> None:
        with Container(Rules(factory_selectors=(select_first_registered,))) as container:
            container.register(Logger, FileLogger)
            container.register(Logger, ConsoleLogger)

            assert isinstance(container.resolve(Logger), FileLogger)

    def test_selectors_are_tried_in_order(self) -> None:
        rules = Rules().with_factory_selector(prefer_metadata("console"))
        rules = rules.with_factory_selector(select_first_registered)

        with Container(rules) as container:
            container.register(Logger, FileLogger)
            container.register(Logger, ConsoleLogger, metadata="console")

            assert isinstance(container.resolve(Logger), ConsoleLogger)

    def test_passing_selector_falls_through(self) -> None:
        rules = Rules(factory_selectors=(prefer_metadata("missing"), select_last_registered))

        with Container(rules) as container:
            container.register(Logger, ConsoleLogger)
            container.register(Logger, FileLogger)

            assert isinstance(container.resolve(Logger), FileLogger)

    def test_metadata_filter(self, container: Container) -> None:
        container.register(Logger, FileLogger, metadata="file")
        container.register(Logger, ConsoleLogger, metadata="console")

        assert isinstance(container.resolve(Logger, metadata="console"), ConsoleLogger)

    def test_unhashable_metadata_filter(self, container: Container) -> None:
        container.register(Logger, FileLogger, metadata={"sink": "file"})
        container.register(Logger, ConsoleLogger, metadata={"sink": "console"})

        logger = container.resolve(Logger, metadata={"sink": "console"})
        loggers = container.resolve_all(Logger, metadata={"sink": "file"})

        assert isinstance(logger, ConsoleLogger)
        assert [type(item) for item in loggers] == [FileLogger]
        assert len(container._state.plans) == 0  # noqa: SLF001


class TestConditions:
    def test_condition_selects_by_consumer(self, container: Container) -> None:
        def for_audit(request: Request) -> bool:
            return request.consumer is Audit

        def not_for_audit(request: Request) -> bool:
            return request.consumer is not Audit

        container.register(Logger, FileLogger, condition=for_audit)
        container.register(Logger, ConsoleLogger, condition=not_for_audit)

        assert isinstance(container.resolve(Audit).logger, FileLogger)
        assert isinstance(container.resolve(Billing).logger, ConsoleLogger)
        assert isinstance(container.resolve(Logger), ConsoleLogger)

    def test_condition_sees_parameter_name_and_depth(self, container: Container) -> None:
        seen: list[tuple[str | None, int]] = []

        def record(request: Request) -> bool:
            seen.append((request.parameter_name, request.depth))
            return True

        container.register(Logger, FileLogger, condition=record)
        container.resolve(Database)

        assert seen == [("logger", 1)]


class TestCycles:
    def test_two_service_cycle(self, container: Container) -> None:
        with pytest.raises(CyclicDependencyError) as exc_info:
            container.resolve(CycleA)

        keys = [key.service_type for key in exc_info.value.chain]
        assert keys == [CycleA, CycleB, CycleA]
        assert "CycleA -> CycleB -> CycleA" in str(exc_info.value)

    def test_self_cycle(self, container: Container) -> None:
        with pytest.raises(CyclicDependencyError) as exc_info:
            container.resolve(SelfReferencing)

        assert [key.service_type for key in exc_info.value.chain] == [
            SelfReferencing,
            SelfReferencing,
        ]

    def test_validate_reports_cycles_eagerly(self, container: Container) -> None:
        container.register(CycleA)

        with pytest.raises(CyclicDependencyError):
            container.validate()

    def test_validate_passes_for_complete_graphs(self, container: Container) -> None:
        container.register(Logger, FileLogger)
        container.register(UserService)

        container.validate()
