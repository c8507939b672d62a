from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar, get_args, get_origin

from scopewire.exceptions import InvalidGenericTypeArgumentError

if TYPE_CHECKING:
    from scopewire.registry import Descriptor


@dataclass(frozen=True, slots=True)
class OpenGenericMatch:
    """An open registration that can serve a closed request."""

    descriptor: Descriptor
    typevar_map: Mapping[TypeVar, Any]
    specificity: int


def is_open_generic(service_type: Any) -> bool:
    """Return whether ``service_type`` is a subscripted alias that still has TypeVars.

    ``Repository[T]`` is open; ``Repository`` and ``Repository[User]`` are not.
    """
    return get_origin(service_type) is not None and contains_typevar(service_type)


def is_closed_generic(service_type: Any) -> bool:
    if get_origin(service_type) is None or not get_args(service_type):
        return False
    return not contains_typevar(service_type)


def contains_typevar(value: Any) -> bool:
    """Return whether a type expression still contains a ``TypeVar``."""
    if isinstance(value, TypeVar):
        return True
    if get_origin(value) is not None:
        return any(contains_typevar(argument) for argument in get_args(value))
    parameters = getattr(value, "__parameters__", ())
    return any(isinstance(parameter, TypeVar) for parameter in parameters)


def open_template(value: Any) -> Any:
    """Return ``value`` parametrized by its own TypeVars when it is a bare generic class.

    ``SqlRepository`` becomes ``SqlRepository[T]``; everything else is returned
    unchanged.
    """
    if get_origin(value) is not None:
        return value
    parameters = tuple(
        parameter
        for parameter in getattr(value, "__parameters__", ())
        if isinstance(parameter, TypeVar)
    )
    if not parameters:
        return value
    return _rebuild_alias(origin=value, args=parameters, fallback=value)


def substitute_typevars(value: Any, mapping: Mapping[TypeVar, Any]) -> Any:
    """Replace TypeVars in a type expression with their mapped arguments."""
    if isinstance(value, TypeVar):
        return mapping.get(value, value)

    origin = get_origin(value)
    arguments = get_args(value)
    if origin is None or not arguments:
        return value

    substituted = tuple(substitute_typevars(argument, mapping) for argument in arguments)
    if substituted == arguments:
        return value
    return _rebuild_alias(origin=origin, args=substituted, fallback=value)


def match_typevars(template: Any, concrete: Any) -> dict[TypeVar, Any] | None:
    """Unify an open template with a closed type; ``None`` when they do not match."""
    mapping: dict[TypeVar, Any] = {}
    if _match_node(template, concrete, mapping):
        return mapping
    return None


def validate_typevar_arguments(typevar_map: Mapping[TypeVar, Any]) -> None:
    """Check closed arguments against TypeVar constraints and bounds.

    Raises:
        InvalidGenericTypeArgumentError: If an argument violates its TypeVar.

    """
    for typevar, argument in typevar_map.items():
        if _is_type_argument_valid(typevar, argument):
            continue
        constraints = typevar.__constraints__
        bound = typevar.__bound__
        if constraints:
            allowed = ", ".join(repr(item) for item in constraints)
            msg = (
                f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must be "
                f"one of: {allowed}."
            )
        else:
            msg = (
                f"Generic argument {argument!r} for TypeVar '{typevar.__name__}' must satisfy "
                f"bound {bound!r}."
            )
        raise InvalidGenericTypeArgumentError(msg)


def iter_matches(
    descriptors: Iterable[Descriptor],
    closed_type: Any,
) -> Iterator[OpenGenericMatch]:
    """Yield the open descriptors able to serve ``closed_type`` in registration order.

    Raises:
        InvalidGenericTypeArgumentError: If some registration matches the shape
            of ``closed_type`` but every such registration rejects its arguments.

    """
    if not is_closed_generic(closed_type):
        return

    validation_error: InvalidGenericTypeArgumentError | None = None
    matched = False
    for descriptor in descriptors:
        template = descriptor.service_key.service_type
        typevar_map = match_typevars(template, closed_type)
        if typevar_map is None:
            continue
        try:
            validate_typevar_arguments(typevar_map)
        except InvalidGenericTypeArgumentError as error:
            validation_error = validation_error or error
            continue
        matched = True
        yield OpenGenericMatch(
            descriptor=descriptor,
            typevar_map=typevar_map,
            specificity=specificity_score(template),
        )

    if not matched and validation_error is not None:
        raise validation_error


def find_best_match(
    descriptors: Iterable[Descriptor],
    closed_type: Any,
) -> OpenGenericMatch | None:
    """Return the most specific match; later registrations win ties."""
    matches = list(iter_matches(descriptors, closed_type))
    if not matches:
        return None
    return max(
        matches,
        key=lambda match: (match.specificity, match.descriptor.registration_order),
    )


def specificity_score(value: Any) -> int:
    """Score how much of a template is fixed; bare TypeVars score zero."""
    if isinstance(value, TypeVar):
        return 0
    arguments = get_args(value)
    if get_origin(value) is None or not arguments:
        return 2
    return 1 + sum(specificity_score(argument) for argument in arguments)


def _match_node(template: Any, concrete: Any, mapping: dict[TypeVar, Any]) -> bool:
    if isinstance(template, TypeVar):
        known = mapping.setdefault(template, concrete)
        return known == concrete

    template_origin = get_origin(template)
    if template_origin is None:
        opened = open_template(template)
        if opened is not template:
            return _match_node(opened, concrete, mapping)
        return template == concrete

    if get_origin(concrete) != template_origin:
        return False

    template_arguments = get_args(template)
    concrete_arguments = get_args(concrete)
    if len(template_arguments) != len(concrete_arguments):
        return False

    return all(
        _match_node(template_argument, concrete_argument, mapping)
        for template_argument, concrete_argument in zip(
            template_arguments,
            concrete_arguments,
            strict=True,
        )
    )


def _rebuild_alias(*, origin: Any, args: tuple[Any, ...], fallback: Any) -> Any:
    try:
        if len(args) == 1:
            return origin[args[0]]
        return origin[args]
    except TypeError:
        return fallback


def _is_type_argument_valid(typevar: TypeVar, argument: Any) -> bool:
    constraints = typevar.__constraints__
    if constraints:
        return any(_matches_type_constraint(argument, constraint) for constraint in constraints)
    bound = typevar.__bound__
    if bound is None:
        return True
    return _matches_type_constraint(argument, bound)


def _matches_type_constraint(argument: Any, constraint: Any) -> bool:
    if constraint is Any:
        return True
    argument_type = get_origin(argument) or argument
    constraint_type = get_origin(constraint) or constraint
    if isinstance(argument_type, type) and isinstance(constraint_type, type):
        try:
            return issubclass(argument_type, constraint_type)
        except TypeError:
            return False
    return argument == constraint
