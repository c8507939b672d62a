import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, Generic, NamedTuple, TypeVar, get_args, get_origin

T = TypeVar("T")
_ANNOTATED_MARKER_MIN_ARGS = 2


class Component(NamedTuple):
    """Attach a discriminator to a dependency annotation.

    ``Annotated[Database, Component("replica")]`` requests the ``Database``
    registered with ``key="replica"``.

    Examples:
        .. code-block:: python

            from typing import Annotated, TypeAlias


            class Database: ...


            ReplicaDb: TypeAlias = Annotated[Database, Component("replica")]
            PrimaryDb: TypeAlias = Annotated[Database, Component("primary")]

    """

    value: Any


@dataclass(frozen=True, slots=True)
class Value:
    """A fixed argument value used in registration overrides.

    ``container.register(Client, dependencies={"timeout": Value(5)})`` passes
    ``timeout=5`` instead of resolving the parameter's annotation.
    """

    value: Any


class MaybeMarker:
    """Marker that indicates a dependency may resolve to ``None``."""


class ProviderMarker(NamedTuple):
    """Marker for zero-argument provider callables."""

    dependency_key: Any


class LazyMarker(NamedTuple):
    """Marker for lazily built value handles."""

    dependency_key: Any


class AllMarker(NamedTuple):
    """Marker for collecting every registration of a service type."""

    dependency_key: Any


class LazyValue(Generic[T]):
    """Handle that builds its service on first access to ``value``.

    The build happens at most once per handle, also when several threads read
    ``value`` at the same time; later reads return the cached instance.
    """

    __slots__ = ("_build", "_built", "_lock", "_value")

    def __init__(self, build: Callable[[], T]) -> None:
        self._build = build
        self._built = False
        self._lock = threading.Lock()
        self._value: T | None = None

    @property
    def is_value_created(self) -> bool:
        return self._built

    @property
    def value(self) -> T:
        if not self._built:
            with self._lock:
                if not self._built:
                    self._value = self._build()
                    self._built = True
        return self._value  # type: ignore[return-value]

    def __repr__(self) -> str:
        state = repr(self._value) if self._built else "<not created>"
        return f"LazyValue({state})"


if TYPE_CHECKING:
    Provider = Callable[[], T]
    """Inject a zero-argument callable that resolves ``T`` when called.

    At runtime ``Provider[T]`` becomes ``Annotated[T, ProviderMarker(T)]``.
    """

    Lazy = LazyValue
    """Inject a handle that resolves ``T`` on first ``.value`` access."""

    All = Sequence[T]
    """Resolve every registration of ``T`` as a sequence in registration order."""

    Maybe = T | None  # type: ignore[misc]
    """Mark a dependency as optional; it resolves to ``None`` when unregistered."""

else:

    class Provider:
        """Inject a zero-argument callable that resolves ``T`` when called.

        Planning of ``T`` is deferred until the first call, so providers break
        dependency cycles and may refer to services registered later.
        """

        def __class_getitem__(cls, item: T) -> Annotated[T, ProviderMarker]:
            return _wrap_annotation(item, ProviderMarker(dependency_key=item))

    class Lazy:
        """Inject a :class:`LazyValue` handle that resolves ``T`` on first access."""

        def __class_getitem__(cls, item: T) -> Annotated[T, LazyMarker]:
            return _wrap_annotation(item, LazyMarker(dependency_key=item))

    class All:
        """Resolve every registration of ``T`` in registration order.

        ``All[T]`` collects keyed and unkeyed registrations alike. Passing an
        ``Annotated`` token strips it to its base type.
        """

        def __class_getitem__(cls, item: Any) -> Any:
            base_key = item
            if get_origin(item) is Annotated:
                base_key = get_args(item)[0]
            return build_annotated_key((base_key, AllMarker(dependency_key=base_key)))

    class Maybe:
        """Mark a dependency as optional.

        At runtime ``Maybe[T]`` resolves to ``Annotated[T, MaybeMarker()]``.
        """

        def __class_getitem__(cls, item: T) -> Annotated[T, MaybeMarker]:
            return _wrap_annotation(item, MaybeMarker())


def find_marker(annotation: Any, marker_type: type[Any]) -> Any | None:
    """Return the first metadata item of ``marker_type`` in an ``Annotated`` token."""
    if get_origin(annotation) is not Annotated:
        return None
    annotation_args = get_args(annotation)
    if len(annotation_args) < _ANNOTATED_MARKER_MIN_ARGS:
        return None
    return next(
        (item for item in annotation_args[1:] if isinstance(item, marker_type)),
        None,
    )


def is_maybe_annotation(annotation: Any) -> bool:
    return find_marker(annotation, MaybeMarker) is not None


def strip_maybe_annotation(annotation: Any) -> Any:
    """Strip the Maybe marker while preserving other ``Annotated`` metadata."""
    if not is_maybe_annotation(annotation):
        return annotation

    annotation_args = get_args(annotation)
    filtered = tuple(item for item in annotation_args[1:] if not isinstance(item, MaybeMarker))
    if not filtered:
        return annotation_args[0]
    return build_annotated_key((annotation_args[0], *filtered))


def build_annotated_key(params: tuple[object, ...]) -> Any:
    """Return ``Annotated[...]`` from a pre-built params tuple."""
    return Annotated[params]  # type: ignore[valid-type]


def _wrap_annotation(item: Any, marker: object) -> Any:
    if get_origin(item) is Annotated:
        args = get_args(item)
        return build_annotated_key((args[0], *args[1:], marker))
    return build_annotated_key((item, marker))
