"""Deferred dependencies: ``Provider[T]``, ``Lazy[T]``, ``All[T]`` and ``Maybe[T]``.

Providers and lazy handles postpone building a dependency until it is used,
which also breaks constructor cycles. ``All[T]`` collects every registration
and ``Maybe[T]`` resolves to ``None`` when nothing is registered.
"""

from __future__ import annotations

from typing import Protocol

from scopewire import All, Container, Lazy, Maybe, Provider


class Plugin:
    name = "plugin"


class AuthPlugin(Plugin):
    name = "auth"


class MetricsPlugin(Plugin):
    name = "metrics"


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


class Parent:
    def __init__(self, child: Child) -> None:
        self.child = child


class Child:
    def __init__(self, parent: Provider[Parent]) -> None:
        self.parent = parent


class Application:
    def __init__(
        self,
        plugins: All[Plugin],
        notifier: Maybe[Notifier],
        report: Lazy[Plugin],
    ) -> None:
        self.plugins = plugins
        self.notifier = notifier
        self.report = report


def main() -> None:
    container = Container()
    container.register(Plugin, AuthPlugin, key="auth")
    container.register(Plugin, MetricsPlugin)

    app = container.resolve(Application)
    print(f"plugins={[plugin.name for plugin in app.plugins]}")  # => plugins=['auth', 'metrics']
    print(f"notifier={app.notifier}")  # => notifier=None
    print(f"lazy_created={app.report.is_value_created}")  # => lazy_created=False
    print(f"lazy_value={app.report.value.name}")  # => lazy_value=metrics

    parent = container.resolve(Parent)
    rebuilt = parent.child.parent()
    print(f"cycle_broken={type(rebuilt).__name__}")  # => cycle_broken=Parent


if __name__ == "__main__":
    main()
