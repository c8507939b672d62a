"""Decorators: wrap resolved services without touching their registrations.

Decorators apply in registration order, so the last registered decorator is
the outermost layer. ``resolve_all(..., bypass_decorators=True)`` returns the
undecorated instances.
"""

from __future__ import annotations

from typing import Protocol

from scopewire import Container, Lifetime


class HttpClient(Protocol):
    def get(self, path: str) -> str: ...


class RequestsHttpClient:
    def get(self, path: str) -> str:
        return f"requests:{path}"


class Tracer:
    def __init__(self) -> None:
        self.spans: list[str] = []


class TracedHttpClient:
    def __init__(self, inner: HttpClient, tracer: Tracer) -> None:
        self.inner = inner
        self.tracer = tracer

    def get(self, path: str) -> str:
        self.tracer.spans.append(path)
        return self.inner.get(path)


class RetryingHttpClient:
    def __init__(self, inner: HttpClient) -> None:
        self.inner = inner

    def get(self, path: str) -> str:
        return self.inner.get(path)


def main() -> None:
    container = Container()
    container.register(Tracer, lifetime=Lifetime.SINGLETON)
    container.register(HttpClient, RequestsHttpClient)
    container.register_decorator(HttpClient, TracedHttpClient)
    container.register_decorator(HttpClient, RetryingHttpClient)

    client = container.resolve(HttpClient)
    result = client.get("/health")

    print(f"outer={type(client).__name__}")  # => outer=RetryingHttpClient
    print(f"middle={type(client.inner).__name__}")  # => middle=TracedHttpClient
    print(f"result={result}")  # => result=requests:/health
    print(f"spans={container.resolve(Tracer).spans}")  # => spans=['/health']

    undecorated = container.resolve_all(HttpClient, bypass_decorators=True)
    bypass_names = [type(item).__name__ for item in undecorated]
    print(f"bypass={bypass_names}")  # => bypass=['RequestsHttpClient']


if __name__ == "__main__":
    main()
