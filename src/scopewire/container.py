from __future__ import annotations

import dataclasses
import inspect
import logging
import threading
from collections.abc import Callable, Hashable, Mapping
from dataclasses import dataclass
from types import MappingProxyType, TracebackType
from typing import TYPE_CHECKING, Any, TypeVar, get_origin, overload

from scopewire.dependencies import DependenciesExtractor, ensure_constructible
from scopewire.exceptions import InvalidRegistrationError
from scopewire.open_generics import is_open_generic
from scopewire.plan_cache import PlanCache, PlanKey
from scopewire.planner import Planner, Request
from scopewire.plans import ContainerPlan, CurrentScopePlan, ServiceSequence
from scopewire.registry import Descriptor, DescriptorKind, Registry
from scopewire.reuse import Lifetime, Reuse
from scopewire.rules import Rules
from scopewire.scope import Scope
from scopewire.service_key import ServiceKey

if TYPE_CHECKING:
    from typing_extensions import Self

T = TypeVar("T")

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True, slots=True)
class _ContainerState:
    """A registry snapshot together with the planner and plans derived from it."""

    registry: Registry
    planner: Planner
    plans: PlanCache


@dataclass(frozen=True, slots=True)
class RegistrationHandle:
    """Returned by registration calls; removes exactly that registration."""

    descriptor: Descriptor
    container: Container

    def unregister(self) -> None:
        self.container._remove_descriptor(self.descriptor)  # noqa: SLF001


class Container:
    """Register services and resolve fully wired object graphs.

    The container owns the registry, the plan cache, and the root of the scope
    tree. Resolving from the container resolves against the root scope; open
    child scopes with :meth:`open_scope` to share and dispose scoped services
    per unit of work.

    Registrations may happen at any time. Each one publishes a new registry
    snapshot with an empty plan cache; resolutions already in flight finish
    against the snapshot they started with.
    """

    def __init__(self, rules: Rules | None = None) -> None:
        """Initialize an empty container.

        Args:
            rules: Resolution rules. Defaults to ``Rules()``: no selectors,
                autowiring of concrete classes, transient tracking disabled and
                no implicit root scope.

        Examples:
            .. code-block:: python

                container = Container()

                strict_container = Container(Rules(autowire_concrete_types=False))

                last_wins = Container(Rules(factory_selectors=(select_last_registered,)))

        """
        self._rules = rules or Rules()
        self._extractor = DependenciesExtractor()
        self._registration_lock = threading.Lock()
        self._next_order = 1
        self._state = self._create_state(Registry())
        self._root = Scope(self)

    @property
    def rules(self) -> Rules:
        return self._rules

    @property
    def root_scope(self) -> Scope:
        return self._root

    @property
    def registry(self) -> Registry:
        """The current registry snapshot."""
        return self._state.registry

    @property
    def is_closed(self) -> bool:
        return self._root.is_closed

    # region Registration

    def register(  # noqa: PLR0913
        self,
        service: Any,
        implementation: Any = None,
        *,
        factory: Callable[..., Any] | None = None,
        instance: Any = _MISSING,
        lifetime: Lifetime | Reuse | str = Lifetime.TRANSIENT,
        scope_name: Hashable | None = None,
        key: Hashable | None = None,
        metadata: Any = None,
        condition: Callable[[Request], bool] | None = None,
        dependencies: Mapping[str, Any] | None = None,
        prevent_disposal: bool = False,
        dispose: Callable[[Any], Any] | None = None,
    ) -> RegistrationHandle:
        """Register a service.

        Exactly one of ``implementation``, ``factory`` or ``instance`` may be
        given; with none of them the service type is its own implementation.
        Registering a key again adds a registration, it does not replace the
        existing ones (see :meth:`replace`).

        Args:
            service: Service type, ``Annotated[T, Component(key)]`` token, or an
                open generic alias such as ``Repository[T]``.
            implementation: Class constructed for the service.
            factory: Callable whose parameters are resolved and whose return
                value is the service. Generator factories yield the service and
                run the rest of their body when the owning scope closes.
            instance: Pre-built instance. The container never disposes it.
            lifetime: ``Lifetime`` or ``Reuse`` policy.
            scope_name: Store the instance in the nearest scope with this name.
            key: Discriminator between registrations of the same service type.
            metadata: Value used by ``resolve(..., metadata=...)`` filters and
                by ``prefer_metadata`` selectors.
            condition: Predicate receiving the :class:`Request`; the
                registration only serves requests it accepts.
            dependencies: Per-parameter overrides mapping a parameter name to a
                dependency key or a ``Value``.
            prevent_disposal: Never dispose instances produced by this
                registration.
            dispose: Custom disposal callback receiving the instance. Transient
                instances are tracked by the resolving scope when it is given.

        Raises:
            InvalidRegistrationError: If the arguments do not describe a service.
            ConstructorSelectionError: If the implementation is abstract.

        """
        descriptor = self._build_descriptor(
            service,
            implementation,
            factory=factory,
            instance=instance,
            reuse=self._coerce_reuse(lifetime, scope_name),
            key=key,
            metadata=metadata,
            condition=condition,
            dependencies=dependencies,
            prevent_disposal=prevent_disposal,
            dispose=dispose,
        )
        return self._add_descriptor(descriptor, replace=False)

    def register_instance(
        self,
        service: Any,
        instance: Any,
        *,
        key: Hashable | None = None,
        metadata: Any = None,
    ) -> RegistrationHandle:
        """Register a pre-built ``instance`` for ``service``."""
        return self.register(service, instance=instance, key=key, metadata=metadata)

    def replace(
        self,
        service: Any,
        implementation: Any = None,
        **options: Any,
    ) -> RegistrationHandle:
        """Register like :meth:`register`, removing previous registrations of the key."""
        lifetime = options.pop("lifetime", Lifetime.TRANSIENT)
        scope_name = options.pop("scope_name", None)
        descriptor = self._build_descriptor(
            service,
            implementation,
            reuse=self._coerce_reuse(lifetime, scope_name),
            **options,
        )
        return self._add_descriptor(descriptor, replace=True)

    def register_decorator(
        self,
        service: Any,
        decorator: Callable[..., Any],
        *,
        key: Hashable | None = None,
        inner_parameter: str | None = None,
        condition: Callable[[Request], bool] | None = None,
        dependencies: Mapping[str, Any] | None = None,
        prevent_disposal: bool = False,
    ) -> RegistrationHandle:
        """Wrap every resolved instance of ``service`` with ``decorator``.

        Decorators apply in registration order, so the last registered one is
        the outermost wrapper. A decorator registered without ``key`` applies
        to every key of the service type.

        Args:
            service: Service type being decorated.
            decorator: Class or callable receiving the inner instance.
            key: Only decorate the registrations with this discriminator.
            inner_parameter: Parameter receiving the inner instance. Inferred
                from the single parameter annotated with the service type when
                omitted.
            condition: Predicate receiving the :class:`Request` of the
                decorated service.
            dependencies: Per-parameter overrides for the other parameters.
            prevent_disposal: Never dispose decorator instances.

        Raises:
            InvalidRegistrationError: If the inner parameter cannot be determined.

        """
        if not callable(decorator):
            msg = "register_decorator() parameter 'decorator' must be callable."
            raise InvalidRegistrationError(msg)
        if inspect.isgeneratorfunction(decorator):
            msg = "register_decorator() does not accept generator functions."
            raise InvalidRegistrationError(msg)

        service_key = ServiceKey.from_value(service, key)
        if inspect.isclass(decorator):
            ensure_constructible(decorator)
        overrides = self._normalize_dependencies(decorator, dependencies)
        inner_name = self._resolve_inner_parameter(service_key, decorator, inner_parameter)
        descriptor = Descriptor(
            service_key=service_key,
            kind=(
                DescriptorKind.IMPLEMENTATION
                if inspect.isclass(decorator)
                else DescriptorKind.FACTORY
            ),
            target=decorator,
            condition=condition,
            dependencies=overrides,
            is_decorator=True,
            inner_parameter=inner_name,
            prevent_disposal=prevent_disposal,
        )
        return self._add_descriptor(descriptor, replace=False)

    def unregister(self, service: Any, key: Hashable | None = None) -> bool:
        """Remove every registration of the key; return whether any existed."""
        service_key = ServiceKey.from_value(service, key)
        with self._registration_lock:
            registry = self._state.registry
            updated = registry.unregister(service_key)
            if len(updated) == len(registry):
                return False
            self._publish(updated)
        logger.debug("Unregistered %s", service_key)
        return True

    def is_registered(self, service: Any, key: Hashable | None = None) -> bool:
        """Return whether an explicit or open-generic registration serves the key."""
        return bool(self._state.registry.lookup(ServiceKey.from_value(service, key)))

    def _remove_descriptor(self, descriptor: Descriptor) -> None:
        with self._registration_lock:
            registry = self._state.registry
            if descriptor.is_decorator:
                updated = registry.unregister_decorator(descriptor)
            else:
                updated = registry.unregister(
                    descriptor.service_key,
                    predicate=lambda item: item is descriptor,
                )
            self._publish(updated)

    def _add_descriptor(self, descriptor: Descriptor, *, replace: bool) -> RegistrationHandle:
        with self._registration_lock:
            descriptor = dataclasses.replace(descriptor, registration_order=self._next_order)
            self._next_order += 1
            registry = self._state.registry
            if replace:
                self._publish(registry.replace(descriptor))
            else:
                self._publish(registry.register(descriptor))
        logger.debug("Registered %s as %s", descriptor.service_key, descriptor.describe())
        return RegistrationHandle(descriptor=descriptor, container=self)

    def _publish(self, registry: Registry) -> None:
        self._state = self._create_state(registry)

    def _create_state(self, registry: Registry) -> _ContainerState:
        planner = Planner(
            registry,
            self._rules,
            self._extractor,
            builtins={Scope: CurrentScopePlan(), Container: ContainerPlan()},
        )
        return _ContainerState(registry=registry, planner=planner, plans=PlanCache())

    def _build_descriptor(  # noqa: PLR0913
        self,
        service: Any,
        implementation: Any = None,
        *,
        factory: Callable[..., Any] | None = None,
        instance: Any = _MISSING,
        reuse: Reuse,
        key: Hashable | None = None,
        metadata: Any = None,
        condition: Callable[[Request], bool] | None = None,
        dependencies: Mapping[str, Any] | None = None,
        prevent_disposal: bool = False,
        dispose: Callable[[Any], Any] | None = None,
    ) -> Descriptor:
        if service is None:
            msg = "register() parameter 'service' must not be None."
            raise InvalidRegistrationError(msg)
        service_key = ServiceKey.from_value(service, key)

        given = [
            name
            for name, present in (
                ("implementation", implementation is not None),
                ("factory", factory is not None),
                ("instance", instance is not _MISSING),
            )
            if present
        ]
        if len(given) > 1:
            msg = (
                f"register() accepts only one of implementation/factory/instance for "
                f"{service_key}, got: {', '.join(given)}."
            )
            raise InvalidRegistrationError(msg)

        if instance is not _MISSING:
            if is_open_generic(service_key.service_type):
                msg = f"Open generic service {service_key} cannot be bound to an instance."
                raise InvalidRegistrationError(msg)
            if dependencies:
                msg = f"Instance registration of {service_key} cannot have dependency overrides."
                raise InvalidRegistrationError(msg)
            return Descriptor(
                service_key=service_key,
                kind=DescriptorKind.INSTANCE,
                target=instance,
                metadata=metadata,
                condition=condition,
                prevent_disposal=True,
            )

        if factory is not None:
            if not callable(factory):
                msg = f"register() parameter 'factory' for {service_key} must be callable."
                raise InvalidRegistrationError(msg)
            kind = DescriptorKind.FACTORY
            target: Any = factory
        else:
            target = implementation if implementation is not None else service_key.service_type
            if not inspect.isclass(target) and not inspect.isclass(_origin(target)):
                msg = (
                    f"Implementation {target!r} for {service_key} must be a class; "
                    "use `factory=` for callables and `instance=` for objects."
                )
                raise InvalidRegistrationError(msg)
            ensure_constructible(_origin(target))
            kind = DescriptorKind.IMPLEMENTATION

        return Descriptor(
            service_key=service_key,
            kind=kind,
            target=target,
            reuse=reuse,
            metadata=metadata,
            condition=condition,
            dependencies=self._normalize_dependencies(target, dependencies),
            prevent_disposal=prevent_disposal,
            dispose=dispose,
        )

    def _coerce_reuse(self, lifetime: Lifetime | Reuse | str, scope_name: Hashable | None) -> Reuse:
        if isinstance(lifetime, Reuse):
            if scope_name is not None and scope_name != lifetime.scope_name:
                msg = "Pass either a Reuse with a scope name or `scope_name=`, not both."
                raise InvalidRegistrationError(msg)
            return lifetime
        try:
            resolved = Lifetime(lifetime)
        except ValueError as error:
            msg = f"Unknown lifetime {lifetime!r}."
            raise InvalidRegistrationError(msg) from error
        if scope_name is not None:
            if resolved is not Lifetime.SCOPED:
                msg = f"`scope_name=` requires Lifetime.SCOPED, got {resolved.value!r}."
                raise InvalidRegistrationError(msg)
            return Reuse.in_scope(scope_name)
        return Reuse(resolved)

    def _normalize_dependencies(
        self,
        target: Any,
        dependencies: Mapping[str, Any] | None,
    ) -> Mapping[str, Any]:
        if not dependencies:
            return MappingProxyType({})
        self._extractor.validate_overrides(target, dependencies)
        return MappingProxyType(dict(dependencies))

    def _resolve_inner_parameter(
        self,
        service_key: ServiceKey,
        decorator: Callable[..., Any],
        inner_parameter: str | None,
    ) -> str:
        parameters = self._extractor.parameters(decorator)
        name = getattr(decorator, "__qualname__", repr(decorator))
        if inner_parameter is not None:
            if any(parameter.name == inner_parameter for parameter in parameters):
                return inner_parameter
            msg = (
                f"register_decorator() parameter 'inner_parameter' must name a parameter of "
                f"'{name}', got {inner_parameter!r}."
            )
            raise InvalidRegistrationError(msg)

        matched = [
            parameter.name
            for parameter in parameters
            if parameter.has_annotation
            and ServiceKey.from_value(parameter.annotation).service_type
            == service_key.service_type
        ]
        if len(matched) == 1:
            return matched[0]
        problem = "could not infer" if not matched else "found several candidates for"
        msg = (
            f"register_decorator() {problem} the inner parameter of '{name}' decorating "
            f"{service_key}. Pass inner_parameter='...'."
        )
        raise InvalidRegistrationError(msg)

    # endregion Registration

    # region Resolution

    @overload
    def resolve(
        self,
        service: type[T],
        key: Hashable | None = None,
        *,
        allow_absent: bool = False,
        metadata: Any = None,
    ) -> T: ...

    @overload
    def resolve(
        self,
        service: Any,
        key: Hashable | None = None,
        *,
        allow_absent: bool = False,
        metadata: Any = None,
    ) -> Any: ...

    def resolve(
        self,
        service: Any,
        key: Hashable | None = None,
        *,
        allow_absent: bool = False,
        metadata: Any = None,
    ) -> Any:
        """Resolve ``service`` from the root scope.

        See :meth:`Scope.resolve` for the accepted arguments. Scoped services
        need an open scope unless ``Rules.implicit_root_scope`` is enabled.
        """
        return self._root.resolve(service, key, allow_absent=allow_absent, metadata=metadata)

    def resolve_all(
        self,
        service: Any,
        *,
        metadata: Any = None,
        bypass_decorators: bool = False,
    ) -> ServiceSequence[Any]:
        """Return every registration of ``service`` in registration order."""
        return self._root.resolve_all(
            service,
            metadata=metadata,
            bypass_decorators=bypass_decorators,
        )

    def open_scope(self, name: Hashable | None = None) -> Scope:
        """Open a child of the root scope."""
        return self._root.open_scope(name)

    def execute(self, scope: Scope, plan_key: PlanKey) -> Any:
        """Run the cached plan for ``plan_key`` against ``scope``, planning on a miss."""
        state = self._state
        if not plan_key.is_cacheable:
            plan = state.planner.plan(plan_key.service_key, plan_key.shape, plan_key.metadata)
            return plan.execute(scope)
        plan = state.plans.get(plan_key)
        if plan is None:
            plan = state.plans.add(
                plan_key,
                state.planner.plan(plan_key.service_key, plan_key.shape, plan_key.metadata),
            )
        return plan.execute(scope)

    def validate(self) -> None:
        """Plan every explicit registration now and raise the first planning error."""
        state = self._state
        for descriptor in state.registry.descriptors():
            if descriptor.is_open_generic:
                continue
            state.planner.plan_descriptor(descriptor)

    # endregion Resolution

    # region Lifecycle

    def with_rules(self, rules: Rules | None = None, **changes: Any) -> Container:
        """Return a new container with changed rules and a copy of the registrations.

        The new container has its own plan cache and its own scope tree, so
        singletons are not shared with this container.
        """
        new_rules = (rules or self._rules).with_(**changes)
        forked = Container(new_rules)
        with self._registration_lock:
            registry = self._state.registry
            forked._next_order = self._next_order  # noqa: SLF001
        forked._publish(registry.fork())  # noqa: SLF001
        logger.debug("Forked container with rules %r", new_rules)
        return forked

    def close(self) -> None:
        """Close the root scope and with it the whole scope tree."""
        self._root.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    # endregion Lifecycle


def _origin(value: Any) -> Any:
    return get_origin(value) or value
