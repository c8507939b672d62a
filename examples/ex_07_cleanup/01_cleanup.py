"""Cleanup: scopes dispose what they created when they close.

Instances with a ``close()`` method and generator factories are torn down in
reverse creation order. Closing a scope closes its open child scopes first.
"""

from __future__ import annotations

from collections.abc import Iterator

from scopewire import Container, Lifetime

events: list[str] = []


class Database:
    def close(self) -> None:
        events.append("database")


class Connection:
    def __init__(self, database: Database) -> None:
        self.database = database


def open_connection(database: Database) -> Iterator[Connection]:
    events.append("connect")
    yield Connection(database)
    events.append("disconnect")


class Cache:
    def close(self) -> None:
        events.append("cache")


def main() -> None:
    container = Container()
    container.register(Database, lifetime=Lifetime.SINGLETON)
    container.register(Connection, factory=open_connection, lifetime=Lifetime.SCOPED)
    container.register(Cache, lifetime=Lifetime.SCOPED)

    with container.open_scope("request") as request_scope:
        request_scope.resolve(Connection)
        with request_scope.open_scope() as inner_scope:
            inner_scope.resolve(Cache)
        print(f"after_inner={events}")  # => after_inner=['connect', 'cache']

    print(f"after_request={events}")  # => after_request=['connect', 'cache', 'disconnect']

    container.close()
    print(f"after_container={events[-1]}")  # => after_container=database


if __name__ == "__main__":
    main()
