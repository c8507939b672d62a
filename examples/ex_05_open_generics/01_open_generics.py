"""Open generics: one registration serving every closed form of a generic service.

``Repository[T]`` registered once serves ``Repository[User]`` and
``Repository[Order]``. A closed registration for a specific argument wins over
the open one, and ``type[T]`` parameters receive the bound argument.
"""

from __future__ import annotations

from typing import Generic, TypeVar

from scopewire import Container

T = TypeVar("T")


class User:
    pass


class Order:
    pass


class Repository(Generic[T]):
    pass


class SqlRepository(Repository[T]):
    def __init__(self, model: type[T]) -> None:
        self.model = model


class CachedUserRepository(Repository[User]):
    pass


def main() -> None:
    container = Container()
    container.register(Repository[T], SqlRepository)

    orders = container.resolve(Repository[Order])
    print(f"orders={type(orders).__name__}")  # => orders=SqlRepository
    print(f"model={orders.model.__name__}")  # => model=Order

    container.register(Repository[User], CachedUserRepository)
    users = container.resolve(Repository[User])
    print(f"users={type(users).__name__}")  # => users=CachedUserRepository

    every = [type(item).__name__ for item in container.resolve_all(Repository[User])]
    print(f"all={every}")  # => all=['SqlRepository', 'CachedUserRepository']


if __name__ == "__main__":
    main()
