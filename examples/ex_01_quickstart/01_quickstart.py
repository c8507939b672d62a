"""Quickstart: register a few services and resolve a wired object graph.

Unregistered concrete classes are built from their constructor annotations,
so only the abstractions need explicit registrations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from scopewire import Container, Lifetime


class Database(ABC):
    @abstractmethod
    def host(self) -> str: ...


class PostgresDatabase(Database):
    def host(self) -> str:
        return "localhost"


class UserRepository:
    def __init__(self, database: Database) -> None:
        self.database = database


class UserService:
    def __init__(self, repository: UserRepository) -> None:
        self.repository = repository


def main() -> None:
    container = Container()
    container.register(Database, PostgresDatabase, lifetime=Lifetime.SINGLETON)

    service = container.resolve(UserService)
    print(f"db_host={service.repository.database.host()}")  # => db_host=localhost

    chain = (
        f"{type(service).__name__}"
        f">{type(service.repository).__name__}"
        f">{type(service.repository.database).__name__}"
    )
    print(f"chain={chain}")  # => chain=UserService>UserRepository>PostgresDatabase

    same_db = service.repository.database is container.resolve(Database)
    print(f"singleton_db={same_db}")  # => singleton_db=True


if __name__ == "__main__":
    main()
