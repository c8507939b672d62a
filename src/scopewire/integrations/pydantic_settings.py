from __future__ import annotations

import functools
import importlib
from collections.abc import Callable
from typing import Any

from scopewire.autowiring import is_runtime_class


def _load_base_settings(module_name: str) -> type[Any] | None:
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None
    base_settings = getattr(module, "BaseSettings", None)
    if isinstance(base_settings, type):
        return base_settings
    return None


def _build_settings_bases() -> tuple[type[Any], ...]:
    base = _load_base_settings("pydantic_settings")
    if base is None:
        return ()
    return (base,)


SETTINGS_BASES: tuple[type[Any], ...] = _build_settings_bases()


def is_pydantic_settings_subclass(candidate: object) -> bool:
    """Return whether ``candidate`` is a ``pydantic_settings.BaseSettings`` subclass.

    Always ``False`` when ``pydantic-settings`` is not installed.

    Settings classes are autowired as singletons through a zero-argument
    factory, so they are read from the environment once per container.
    """
    if not is_runtime_class(candidate):
        return False
    try:
        return any(issubclass(candidate, base) for base in SETTINGS_BASES)
    except TypeError:
        return False


@functools.cache
def settings_factory(settings_type: type[Any]) -> Callable[[], Any]:
    """Return the zero-argument factory used to build ``settings_type``."""

    def build_settings() -> Any:
        return settings_type()

    build_settings.__qualname__ = f"{settings_type.__qualname__}()"
    return build_settings


__all__ = [
    "SETTINGS_BASES",
    "is_pydantic_settings_subclass",
    "settings_factory",
]
