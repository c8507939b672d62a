"""Keys and selection: discriminators, selector rules, metadata and conditions.

Several registrations of one service type are told apart by a key, picked by
``Rules.factory_selectors`` when no key is given, or filtered per consumer
with a ``condition``.
"""

from __future__ import annotations

from typing import Annotated, Protocol

from scopewire import (
    AmbiguousRegistrationError,
    Component,
    Container,
    Request,
    Rules,
    select_last_registered,
)


class Cache(Protocol):
    def name(self) -> str: ...


class MemoryCache:
    def name(self) -> str:
        return "memory"


class RedisCache:
    def name(self) -> str:
        return "redis"


class SessionStore:
    def __init__(self, cache: Annotated[Cache, Component("redis")]) -> None:
        self.cache = cache


class AdminPanel:
    def __init__(self, cache: Cache) -> None:
        self.cache = cache


def main() -> None:
    container = Container()
    container.register(Cache, MemoryCache, key="memory")
    container.register(Cache, RedisCache, key="redis")

    print(f"keyed={container.resolve(Cache, 'memory').name()}")  # => keyed=memory
    print(f"component={container.resolve(SessionStore).cache.name()}")  # => component=redis

    plain = Container()
    plain.register(Cache, MemoryCache)
    plain.register(Cache, RedisCache)
    try:
        plain.resolve(Cache)
    except AmbiguousRegistrationError as error:
        print(f"ambiguous={type(error).__name__}")  # => ambiguous=AmbiguousRegistrationError

    last_wins = plain.with_rules(Rules(factory_selectors=(select_last_registered,)))
    print(f"last_wins={last_wins.resolve(Cache).name()}")  # => last_wins=redis

    tagged = Container()
    tagged.register(Cache, MemoryCache, metadata="local")
    tagged.register(Cache, RedisCache, metadata="shared")
    print(f"metadata={tagged.resolve(Cache, metadata='shared').name()}")  # => metadata=redis

    def for_admin(request: Request) -> bool:
        return request.consumer is AdminPanel

    def not_for_admin(request: Request) -> bool:
        return request.consumer is not AdminPanel

    conditional = Container()
    conditional.register(Cache, RedisCache, condition=for_admin)
    conditional.register(Cache, MemoryCache, condition=not_for_admin)

    print(f"admin_cache={conditional.resolve(AdminPanel).cache.name()}")  # => admin_cache=redis
    print(f"root_cache={conditional.resolve(Cache).name()}")  # => root_cache=memory


if __name__ == "__main__":
    main()
