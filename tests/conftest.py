"""Shared pytest fixtures for scopewire tests."""

from collections.abc import Iterator

import pytest

from scopewire.container import Container
from scopewire.dependencies import DependenciesExtractor
from scopewire.rules import Rules

pytest_plugins = ["scopewire.integrations.pytest_plugin"]


@pytest.fixture()
def container() -> Iterator[Container]:
    """Default container with autowiring of concrete classes."""
    container = Container()
    yield container
    container.close()


@pytest.fixture()
def strict_container() -> Iterator[Container]:
    """Container that only resolves explicit registrations."""
    container = Container(Rules(autowire_concrete_types=False))
    yield container
    container.close()


@pytest.fixture()
def dependencies_extractor() -> DependenciesExtractor:
    """DependenciesExtractor instance."""
    return DependenciesExtractor()
