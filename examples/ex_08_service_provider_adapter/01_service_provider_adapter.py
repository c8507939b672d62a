"""Service-provider adapter: plug the container into descriptor-based hosts.

``with_service_provider_adapter`` forks a container with host conventions
(last registration wins, disposable transients are tracked, scoped services
may resolve from the root) and registers host-style service descriptors.
"""

from __future__ import annotations

from scopewire import (
    Container,
    ServiceDescriptor,
    ServiceProvider,
    ServiceScopeFactory,
    populate,
    with_service_provider_adapter,
)


class Clock:
    pass


class UnitOfWork:
    pass


class Greeter:
    def __init__(self, greeting: str) -> None:
        self.greeting = greeting


class FriendlyGreeter(Greeter):
    pass


def main() -> None:
    container = with_service_provider_adapter(
        Container(),
        [
            ServiceDescriptor.singleton(Clock),
            ServiceDescriptor.scoped(UnitOfWork),
            ServiceDescriptor(Greeter, factory=lambda provider: Greeter("hello")),
        ],
    )
    populate(
        container,
        [ServiceDescriptor(Greeter, factory=lambda provider: FriendlyGreeter("hi there"))],
    )

    provider = container.resolve(ServiceProvider)
    print(f"greeting={provider.get_required_service(Greeter).greeting}")  # => greeting=hi there
    print(f"greeters={len(provider.get_services(Greeter))}")  # => greeters=2
    print(f"missing={provider.get_service(int)}")  # => missing=None

    factory = container.resolve(ServiceScopeFactory)
    with factory.create_scope() as first, factory.create_scope() as second:
        shared_clock = first.get_service(Clock) is second.get_service(Clock)
        own_unit = first.get_service(UnitOfWork) is not second.get_service(UnitOfWork)

    print(f"shared_clock={shared_clock}")  # => shared_clock=True
    print(f"own_unit_of_work={own_unit}")  # => own_unit_of_work=True

    container.close()


if __name__ == "__main__":
    main()
