"""Pytest fixtures for tests that build scopewire containers.

Enable the plugin in a test module or ``conftest.py``:

.. code-block:: python

    pytest_plugins = ["scopewire.integrations.pytest_plugin"]

Both fixtures are function-scoped and close what they open on teardown.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from scopewire.container import Container
from scopewire.scope import Scope


@pytest.fixture()
def scopewire_container() -> Iterator[Container]:
    """Create a per-test container and close it after the test.

    Override this fixture to customize rules or pre-register services for a
    module.
    """
    container = Container()
    yield container
    container.close()


@pytest.fixture()
def scopewire_scope(scopewire_container: Container) -> Iterator[Scope]:
    """Open a child scope of ``scopewire_container`` for the duration of a test."""
    with scopewire_container.open_scope() as scope:
        yield scope
