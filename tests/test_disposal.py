"""Tests for scope disposal."""

from __future__ import annotations

from collections.abc import Iterator
from types import TracebackType

import pytest

from scopewire import Container, Lifetime, Rules
from scopewire.disposal import DisposalTracker, find_dispose_method
from scopewire.exceptions import ConstructorSelectionError, DisposalError

events: list[str] = []


class Resource:
    name = "resource"

    def close(self) -> None:
        events.append(f"close:{self.name}")


class Database(Resource):
    name = "database"


class Cache(Resource):
    name = "cache"


class Session(Resource):
    name = "session"

    def __init__(self, database: Database) -> None:
        self.database = database


class Broken(Resource):
    name = "broken"

    def close(self) -> None:
        events.append("close:broken")
        msg = "cannot close"
        raise RuntimeError(msg)


class Handle:
    def release(self) -> None:
        events.append("release:handle")


class Pool:
    def __enter__(self) -> Pool:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        events.append("exit:pool")


class Connection:
    def __init__(self) -> None:
        self.open = True


def open_connection() -> Iterator[Connection]:
    connection = Connection()
    events.append("open:connection")
    yield connection
    connection.open = False
    events.append("close:connection")


def twice() -> Iterator[Connection]:
    yield Connection()
    yield Connection()


def never() -> Iterator[Connection]:
    return
    yield Connection()


@pytest.fixture(autouse=True)
def _reset_events() -> None:
    events.clear()


class TestDisposalOrder:
    def test_scoped_instances_are_disposed_in_reverse_creation_order(
        self,
        container: Container,
    ) -> None:
        container.register(Database, lifetime=Lifetime.SCOPED)
        container.register(Session, lifetime=Lifetime.SCOPED)
        container.register(Cache, lifetime=Lifetime.SCOPED)

        with container.open_scope() as scope:
            scope.resolve(Session)
            scope.resolve(Cache)

        assert events == ["close:cache", "close:session", "close:database"]

    def test_singletons_are_disposed_with_the_container(self) -> None:
        container = Container()
        container.register(Database, lifetime=Lifetime.SINGLETON)

        with container.open_scope() as scope:
            scope.resolve(Database)
        assert events == []

        container.close()
        assert events == ["close:database"]

    def test_children_close_before_parent(self, container: Container) -> None:
        container.register(Database, lifetime=Lifetime.SCOPED)
        container.register(Cache, lifetime=Lifetime.SCOPED)

        outer = container.open_scope()
        outer.resolve(Database)
        inner = outer.open_scope()
        inner.resolve(Cache)

        outer.close()

        assert events == ["close:cache", "close:database"]

    def test_sibling_scopes_are_isolated(self, container: Container) -> None:
        container.register(Database, lifetime=Lifetime.SCOPED)

        first = container.open_scope()
        second = container.open_scope()
        first.resolve(Database)
        second.resolve(Database)

        first.close()

        assert events == ["close:database"]
        assert not second.is_closed
        second.close()
        assert events == ["close:database", "close:database"]


class TestDisposalPolicies:
    def test_transients_are_not_tracked_by_default(self, container: Container) -> None:
        container.register(Database)

        with container.open_scope() as scope:
            scope.resolve(Database)

        assert events == []

    def test_tracking_disposable_transients(self) -> None:
        with Container(Rules(track_disposable_transients=True)) as container:
            container.register(Database)

            with container.open_scope() as scope:
                scope.resolve(Database)
                scope.resolve(Database)

            assert events == ["close:database", "close:database"]

    def test_instances_are_never_disposed(self) -> None:
        container = Container()
        container.register_instance(Database, Database())
        container.resolve(Database)

        container.close()

        assert events == []

    def test_prevent_disposal(self, container: Container) -> None:
        container.register(Database, lifetime=Lifetime.SCOPED, prevent_disposal=True)

        with container.open_scope() as scope:
            scope.resolve(Database)

        assert events == []

    def test_custom_dispose_callback(self, container: Container) -> None:
        container.register(Handle, lifetime=Lifetime.SCOPED, dispose=Handle.release)

        with container.open_scope() as scope:
            scope.resolve(Handle)

        assert events == ["release:handle"]

    def test_custom_dispose_callback_on_transients(self, container: Container) -> None:
        container.register(Handle, dispose=Handle.release)

        with container.open_scope() as scope:
            scope.resolve(Handle)
            scope.resolve(Handle)

        assert events == ["release:handle", "release:handle"]

    def test_context_managers_are_exited(self, container: Container) -> None:
        container.register(Pool, lifetime=Lifetime.SCOPED)

        with container.open_scope() as scope:
            scope.resolve(Pool)
            assert events == []

        assert events == ["exit:pool"]


class TestGeneratorFactories:
    def test_generator_teardown_runs_on_scope_close(self, container: Container) -> None:
        container.register(Connection, factory=open_connection, lifetime=Lifetime.SCOPED)

        with container.open_scope() as scope:
            connection = scope.resolve(Connection)
            assert connection.open
            assert events == ["open:connection"]

        assert not connection.open
        assert events == ["open:connection", "close:connection"]

    def test_generator_yielding_twice_fails_on_close(self) -> None:
        container = Container()
        container.register(Connection, factory=twice, lifetime=Lifetime.SCOPED)
        scope = container.open_scope()
        scope.resolve(Connection)

        with pytest.raises(DisposalError) as exc_info:
            scope.close()

        assert isinstance(exc_info.value.errors[0], ConstructorSelectionError)

    def test_generator_without_yield_fails_on_resolve(self, container: Container) -> None:
        container.register(Connection, factory=never)

        with pytest.raises(ConstructorSelectionError, match="did not yield"):
            container.resolve(Connection)


class TestDisposalErrors:
    def test_failures_are_aggregated_and_every_step_runs(self) -> None:
        container = Container()
        container.register(Database, lifetime=Lifetime.SCOPED)
        container.register(Broken, lifetime=Lifetime.SCOPED)
        container.register(Cache, lifetime=Lifetime.SCOPED)
        scope = container.open_scope()
        scope.resolve(Database)
        scope.resolve(Broken)
        scope.resolve(Cache)

        with pytest.raises(DisposalError) as exc_info:
            scope.close()

        assert events == ["close:cache", "close:broken", "close:database"]
        assert len(exc_info.value.errors) == 1
        assert isinstance(exc_info.value.errors[0], RuntimeError)
        assert scope.is_closed

    def test_child_failures_are_reported_by_the_parent(self) -> None:
        container = Container()
        container.register(Broken, lifetime=Lifetime.SCOPED)
        scope = container.open_scope()
        scope.open_scope().resolve(Broken)

        with pytest.raises(DisposalError, match="cannot close"):
            scope.close()


class TestDisposalTracker:
    def test_find_dispose_method(self) -> None:
        database = Database()

        assert find_dispose_method(database) == database.close
        assert find_dispose_method(Database) is None
        assert find_dispose_method(Connection()) is None

        exit_pool = find_dispose_method(Pool())
        assert exit_pool is not None
        exit_pool()
        assert events == ["exit:pool"]

    def test_tracker_runs_steps_in_reverse(self) -> None:
        tracker = DisposalTracker()
        tracker.track(Database())
        tracker.add_callback(lambda: events.append("callback"))
        tracker.track(Cache())

        assert tracker.track(Connection()) is False
        assert len(tracker) == 3

        tracker.dispose_or_raise()

        assert events == ["close:cache", "callback", "close:database"]
