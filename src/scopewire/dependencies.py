from __future__ import annotations

import inspect
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from inspect import Parameter
from typing import Any, get_origin, get_type_hints

from scopewire.exceptions import ConstructorSelectionError, InvalidRegistrationError

_MISSING_ANNOTATION = object()


@dataclass(frozen=True, slots=True)
class ParameterInfo:
    """A constructor or factory parameter and the annotation it is resolved from."""

    name: str
    annotation: Any
    kind: Any
    default: Any = Parameter.empty

    @property
    def has_default(self) -> bool:
        return self.default is not Parameter.empty

    @property
    def is_positional_only(self) -> bool:
        return self.kind is Parameter.POSITIONAL_ONLY

    @property
    def has_annotation(self) -> bool:
        return self.annotation is not _MISSING_ANNOTATION


class DependenciesExtractor:
    """Extract annotated parameters from classes and factory callables.

    Results are cached per target; the cache is shared by every registry
    snapshot of a container.
    """

    def __init__(self) -> None:
        self._cache: dict[Any, tuple[ParameterInfo, ...]] = {}
        self._lock = threading.Lock()

    def parameters(self, target: Any) -> tuple[ParameterInfo, ...]:
        """Return the injectable parameters of ``target``.

        ``target`` may be a class, a closed generic alias of a class, or any
        callable. ``*args``/``**kwargs`` are skipped.

        Raises:
            ConstructorSelectionError: If the target is abstract or a required
                parameter has no usable annotation.

        """
        cached = self._cache.get(target)
        if cached is not None:
            return cached

        inspected = get_origin(target) or target
        name = _target_name(inspected)
        if inspect.isclass(inspected):
            ensure_constructible(inspected)

        try:
            signature = inspect.signature(inspected)
        except (TypeError, ValueError) as error:
            msg = f"Cannot inspect the signature of '{name}': {error}"
            raise ConstructorSelectionError(msg) from error

        annotations, annotation_error = self._resolved_type_hints(inspected)
        result: list[ParameterInfo] = []
        for parameter in signature.parameters.values():
            if parameter.kind in (Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD):
                continue
            annotation = self._resolve_parameter_annotation(
                parameter=parameter,
                annotations=annotations,
                annotation_error=annotation_error,
                target_name=name,
            )
            result.append(
                ParameterInfo(
                    name=parameter.name,
                    annotation=annotation,
                    kind=parameter.kind,
                    default=parameter.default,
                ),
            )

        parameters = tuple(result)
        with self._lock:
            return self._cache.setdefault(target, parameters)

    def validate_overrides(self, target: Any, overrides: Mapping[str, Any]) -> None:
        """Check that every override names a parameter of ``target``."""
        known = {parameter.name for parameter in self.parameters(target)}
        unknown = [name for name in overrides if name not in known]
        if unknown:
            listed = ", ".join(f"'{name}'" for name in unknown)
            msg = (
                f"Dependency overrides for unknown parameter(s) {listed} in "
                f"'{_target_name(get_origin(target) or target)}'."
            )
            raise InvalidRegistrationError(msg)

    def _resolve_parameter_annotation(
        self,
        *,
        parameter: Parameter,
        annotations: dict[str, Any],
        annotation_error: Exception | None,
        target_name: str,
    ) -> Any:
        annotation = annotations.get(parameter.name, _MISSING_ANNOTATION)
        if annotation is not _MISSING_ANNOTATION:
            return annotation

        raw_annotation = parameter.annotation
        if raw_annotation is not Parameter.empty and not isinstance(raw_annotation, str):
            return raw_annotation

        if parameter.default is not Parameter.empty:
            return _MISSING_ANNOTATION

        # required parameters may still be satisfied by an override
        if annotation_error is not None and isinstance(raw_annotation, str):
            msg = (
                f"Unable to evaluate the annotation of parameter '{parameter.name}' "
                f"in '{target_name}': {annotation_error}"
            )
            raise ConstructorSelectionError(msg) from annotation_error
        return _MISSING_ANNOTATION

    def _resolved_type_hints(
        self,
        target: Callable[..., Any],
    ) -> tuple[dict[str, Any], Exception | None]:
        annotations: dict[str, Any] = {}
        annotation_error: Exception | None = None

        if not inspect.isclass(target):
            try:
                annotations = get_type_hints(target, include_extras=True)
            except (AttributeError, NameError, TypeError) as error:
                annotation_error = error
            return annotations, annotation_error

        for member_name in ("__init__", "__new__"):
            member = getattr(target, member_name)
            if member in (object.__init__, object.__new__):
                continue
            try:
                member_annotations = get_type_hints(member, include_extras=True)
            except (AttributeError, NameError, TypeError) as error:
                if annotation_error is None:
                    annotation_error = error
                continue
            for parameter_name, parameter_annotation in member_annotations.items():
                annotations.setdefault(parameter_name, parameter_annotation)

        return annotations, annotation_error


def ensure_constructible(cls: type[Any]) -> None:
    """Raise :class:`ConstructorSelectionError` for abstract classes and protocols."""
    if getattr(cls, "_is_protocol", False):
        msg = (
            f"'{cls.__qualname__}' is a protocol and cannot be constructed; "
            "register an implementation."
        )
        raise ConstructorSelectionError(msg)
    if inspect.isabstract(cls):
        abstract = ", ".join(sorted(getattr(cls, "__abstractmethods__", ())))
        msg = (
            f"'{cls.__qualname__}' is abstract (unimplemented: {abstract}) and cannot be "
            "constructed; register a concrete implementation or a factory."
        )
        raise ConstructorSelectionError(msg)


def _target_name(target: Any) -> str:
    return getattr(target, "__qualname__", None) or repr(target)
