"""Lifetimes and scopes: ``TRANSIENT``, ``SINGLETON``, ``SCOPED`` and named scopes.

Singletons live in the root scope, scoped services live in the scope they are
resolved from, and ``Reuse.in_scope(name)`` pins a service to the nearest
enclosing scope with that name.
"""

from __future__ import annotations

from scopewire import Container, Lifetime, Reuse, ScopeMismatchError


class TransientService:
    pass


class SingletonService:
    pass


class ScopedService:
    pass


class RequestContext:
    pass


def main() -> None:
    container = Container()
    container.register(TransientService)
    container.register(SingletonService, lifetime=Lifetime.SINGLETON)
    container.register(ScopedService, lifetime=Lifetime.SCOPED)
    container.register(RequestContext, lifetime=Reuse.in_scope("request"))

    transient_new = container.resolve(TransientService) is not container.resolve(TransientService)
    print(f"transient_new={transient_new}")  # => transient_new=True

    with container.open_scope() as first, container.open_scope() as second:
        singleton_shared = first.resolve(SingletonService) is second.resolve(SingletonService)
        scoped_within = first.resolve(ScopedService) is first.resolve(ScopedService)
        scoped_across = first.resolve(ScopedService) is not second.resolve(ScopedService)

    print(f"singleton_shared={singleton_shared}")  # => singleton_shared=True
    print(f"scoped_same_within={scoped_within}")  # => scoped_same_within=True
    print(f"scoped_diff_across={scoped_across}")  # => scoped_diff_across=True

    with container.open_scope("request") as request_scope:
        with request_scope.open_scope("unit") as unit_scope:
            from_unit = unit_scope.resolve(RequestContext)
        from_request = request_scope.resolve(RequestContext)

    print(f"named_scope_shared={from_unit is from_request}")  # => named_scope_shared=True

    try:
        container.resolve(ScopedService)
    except ScopeMismatchError as error:
        print(f"root_error={type(error).__name__}")  # => root_error=ScopeMismatchError

    container.close()


if __name__ == "__main__":
    main()
