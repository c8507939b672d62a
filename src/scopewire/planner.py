from __future__ import annotations

import dataclasses
import logging
import types
from collections.abc import Hashable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar, Union, get_args, get_origin

from scopewire.autowiring import ConcreteTypePolicy
from scopewire.dependencies import DependenciesExtractor, ParameterInfo
from scopewire.exceptions import (
    AmbiguousRegistrationError,
    ConstructorSelectionError,
    CyclicDependencyError,
    UnresolvedServiceError,
)
from scopewire.integrations.pydantic_settings import (
    is_pydantic_settings_subclass,
    settings_factory,
)
from scopewire.markers import (
    AllMarker,
    LazyMarker,
    ProviderMarker,
    Value,
    find_marker,
    is_maybe_annotation,
    strip_maybe_annotation,
)
from scopewire.open_generics import substitute_typevars
from scopewire.plan_cache import RequestShape
from scopewire.plans import (
    ABSENT,
    AllPlan,
    ConstructPlan,
    DecoratorPlan,
    InstancePlan,
    LazyPlan,
    Plan,
    ProviderPlan,
    ReusePlan,
    ValuePlan,
)
from scopewire.registry import Descriptor, DescriptorKind, Registry
from scopewire.reuse import Reuse
from scopewire.rules import Rules
from scopewire.service_key import ServiceKey

logger = logging.getLogger(__name__)

_NO_OVERRIDE = object()


@dataclass(frozen=True, slots=True)
class Request:
    """One node of the chain of services being planned.

    Conditions receive the request they are evaluated for; ``parent`` is the
    request of the consumer, whose ``implementation`` is the class or factory
    being built.
    """

    service_key: ServiceKey
    parent: Request | None = None
    implementation: Any = None
    parameter_name: str | None = None

    @property
    def consumer(self) -> Any:
        """Implementation the service is injected into, ``None`` for root requests."""
        if self.parent is None:
            return None
        return self.parent.implementation

    @property
    def depth(self) -> int:
        return sum(1 for _ in self.ancestors())

    def ancestors(self) -> Iterator[Request]:
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def chain(self) -> list[ServiceKey]:
        """Service keys from the root request down to this one."""
        keys = [self.service_key]
        keys.extend(ancestor.service_key for ancestor in self.ancestors())
        keys.reverse()
        return keys


class Planner:
    """Compile service requests into executable plans.

    A planner reads a single registry snapshot and has no side effects apart
    from the open-generic specialization cache of that snapshot, so plans may
    be computed concurrently and discarded freely.
    """

    def __init__(
        self,
        registry: Registry,
        rules: Rules,
        extractor: DependenciesExtractor,
        builtins: Mapping[Any, Plan] | None = None,
    ) -> None:
        self._registry = registry
        self._rules = rules
        self._extractor = extractor
        self._builtins = dict(builtins or {})
        self._concrete_policy = ConcreteTypePolicy()

    @property
    def registry(self) -> Registry:
        return self._registry

    def plan(self, service_key: ServiceKey, shape: RequestShape, metadata: Any = None) -> Plan:
        """Build the plan for a root request of the given shape."""
        if shape in (RequestShape.ALL, RequestShape.ALL_UNDECORATED):
            plan: Plan = self._plan_all(
                None,
                service_key.service_type,
                decorate=shape is RequestShape.ALL,
                metadata=metadata,
            )
        else:
            plan = self._plan_request(
                Request(service_key),
                optional=shape is RequestShape.OPTIONAL,
                metadata=metadata,
            )
        logger.debug("Planned %s (%s): %r", service_key, shape.value, plan)
        return plan

    def plan_descriptor(self, descriptor: Descriptor) -> Plan:
        """Build the plan of one specific descriptor, as used by validation."""
        return self._plan_descriptor(Request(descriptor.service_key), descriptor, decorate=True)

    # region Selection

    def _plan_request(
        self,
        request: Request,
        *,
        optional: bool = False,
        allow_autowire: bool = True,
        metadata: Any = None,
    ) -> Plan:
        builtin = self._builtins.get(request.service_key.service_type)
        if builtin is not None and request.service_key.key is None:
            return builtin

        candidates = self._candidates(request, metadata)
        if candidates:
            descriptor = self._select(request.service_key, candidates)
        else:
            implicit = self._implicit_descriptor(request.service_key) if allow_autowire else None
            if implicit is None:
                if optional:
                    return ABSENT
                raise UnresolvedServiceError(request.service_key, request.chain()[:-1])
            descriptor = implicit

        return self._plan_descriptor(request, descriptor, decorate=True)

    def _candidates(self, request: Request, metadata: Any) -> list[Descriptor]:
        return [
            descriptor
            for descriptor in self._registry.lookup(request.service_key)
            if self._accepts(descriptor, request, metadata)
        ]

    def _accepts(self, descriptor: Descriptor, request: Request, metadata: Any) -> bool:
        if metadata is not None and descriptor.metadata != metadata:
            return False
        return descriptor.condition is None or bool(descriptor.condition(request))

    def _select(self, service_key: ServiceKey, candidates: Sequence[Descriptor]) -> Descriptor:
        if len(candidates) == 1:
            return candidates[0]
        selected = self._rules.select(candidates)
        if selected is None:
            raise AmbiguousRegistrationError(service_key, candidates)
        return selected

    def _implicit_descriptor(self, service_key: ServiceKey) -> Descriptor | None:
        if service_key.key is not None:
            return None
        service_type = service_key.service_type

        if is_pydantic_settings_subclass(service_type):
            return Descriptor(
                service_key=service_key,
                kind=DescriptorKind.FACTORY,
                target=settings_factory(service_type),
                reuse=Reuse.SINGLETON,
                is_implicit=True,
                slot_id=("auto", service_key),
            )

        if not self._rules.autowire_concrete_types:
            return None
        if not self._concrete_policy.is_eligible_concrete(service_type):
            return None

        return Descriptor(
            service_key=service_key,
            kind=DescriptorKind.IMPLEMENTATION,
            target=service_type,
            reuse=self._rules.autowire_reuse,
            is_implicit=True,
            typevar_map=_alias_typevar_map(service_type),
            slot_id=("auto", service_key),
        )

    # endregion Selection

    # region Descriptors

    def _plan_descriptor(self, request: Request, descriptor: Descriptor, *, decorate: bool) -> Plan:
        self._check_cycle(request)
        request = dataclasses.replace(request, implementation=descriptor.target)

        if descriptor.kind is DescriptorKind.INSTANCE:
            plan: Plan = InstancePlan(descriptor.target)
        else:
            args, kwargs = self._plan_arguments(request, descriptor)
            plan = ConstructPlan(
                descriptor.target,
                args=args,
                kwargs=kwargs,
                track=self._tracks(descriptor),
                dispose=descriptor.dispose,
            )
            plan = self._attach_reuse(plan, descriptor, descriptor.storage_id)

        decorators = self._decorators(request, descriptor) if decorate else ()
        if not decorators:
            return plan

        for decorator in decorators:
            plan = self._plan_decorator(request, decorator, descriptor, plan)
        return self._attach_reuse(plan, descriptor, (descriptor.storage_id, "decorated"))

    def _check_cycle(self, request: Request) -> None:
        for ancestor in request.ancestors():
            if ancestor.service_key == request.service_key:
                raise CyclicDependencyError(request.chain())

    def _tracks(self, descriptor: Descriptor) -> bool:
        if descriptor.prevent_disposal:
            return False
        # an explicit dispose callback is honored for every lifetime
        if descriptor.dispose is not None:
            return True
        return descriptor.reuse.is_stored or self._rules.track_disposable_transients

    def _attach_reuse(self, plan: Plan, descriptor: Descriptor, slot_id: Hashable) -> Plan:
        reuse = descriptor.reuse
        # decorated instances are built once, like the instance itself
        if descriptor.kind is DescriptorKind.INSTANCE:
            reuse = Reuse.SINGLETON
        if not reuse.is_stored:
            return plan
        return ReusePlan(
            plan,
            reuse=reuse,
            slot_id=slot_id,
            service_key=descriptor.service_key,
            implicit_root_scope=self._rules.implicit_root_scope,
        )

    def _decorators(self, request: Request, descriptor: Descriptor) -> tuple[Descriptor, ...]:
        return tuple(
            decorator
            for decorator in self._registry.decorators_for(descriptor.service_key)
            if decorator.condition is None or decorator.condition(request)
        )

    def _plan_decorator(
        self,
        request: Request,
        decorator: Descriptor,
        decorated: Descriptor,
        inner: Plan,
    ) -> Plan:
        decorator_request = dataclasses.replace(request, implementation=decorator.target)
        args, kwargs = self._plan_arguments(
            decorator_request,
            decorator,
            inner=(decorator.inner_parameter, inner),
        )
        return DecoratorPlan(
            decorator.target,
            inner=inner,
            args=args,
            kwargs=kwargs,
            track=not decorator.prevent_disposal
            and (decorator.dispose is not None or self._tracks(decorated)),
            dispose=decorator.dispose,
        )

    # endregion Descriptors

    # region Parameters

    def _plan_arguments(
        self,
        request: Request,
        descriptor: Descriptor,
        inner: tuple[str | None, Plan] | None = None,
    ) -> tuple[list[Plan], list[tuple[str, Plan]]]:
        args: list[Plan] = []
        kwargs: list[tuple[str, Plan]] = []
        for parameter in self._extractor.parameters(descriptor.target):
            if inner is not None and parameter.name == inner[0]:
                plan: Plan | None = inner[1]
            else:
                plan = self._plan_parameter(request, descriptor, parameter)
            if parameter.is_positional_only:
                args.append(plan if plan is not None else ValuePlan(parameter.default))
            elif plan is not None:
                kwargs.append((parameter.name, plan))
        return args, kwargs

    def _plan_parameter(
        self,
        request: Request,
        descriptor: Descriptor,
        parameter: ParameterInfo,
    ) -> Plan | None:
        """Plan one parameter; ``None`` means its default value is used."""
        annotation = descriptor.dependencies.get(parameter.name, _NO_OVERRIDE)
        if isinstance(annotation, Value):
            return ValuePlan(annotation.value)
        if annotation is _NO_OVERRIDE:
            if not parameter.has_annotation:
                if parameter.has_default:
                    return None
                msg = (
                    f"Cannot resolve required parameter '{parameter.name}' of "
                    f"'{descriptor.describe()}': it has no type annotation. Annotate it or "
                    "pass `dependencies=...` when registering."
                )
                raise ConstructorSelectionError(msg)
            annotation = parameter.annotation

        if descriptor.typevar_map:
            generic_argument = _generic_argument(annotation, descriptor.typevar_map)
            if generic_argument is not _NO_OVERRIDE:
                return ValuePlan(generic_argument)
            annotation = substitute_typevars(annotation, descriptor.typevar_map)

        return self._plan_annotation(
            request,
            parameter.name,
            annotation,
            has_default=parameter.has_default,
        )

    def _plan_annotation(
        self,
        request: Request,
        parameter_name: str,
        annotation: Any,
        *,
        has_default: bool,
    ) -> Plan | None:
        provider_marker = find_marker(annotation, ProviderMarker)
        if provider_marker is not None:
            return ProviderPlan(ServiceKey.from_value(provider_marker.dependency_key))
        lazy_marker = find_marker(annotation, LazyMarker)
        if lazy_marker is not None:
            return LazyPlan(ServiceKey.from_value(lazy_marker.dependency_key))
        all_marker = find_marker(annotation, AllMarker)
        if all_marker is not None:
            return self._plan_all(request, all_marker.dependency_key, decorate=True)

        optional = has_default
        if is_maybe_annotation(annotation):
            annotation = strip_maybe_annotation(annotation)
            optional = True
        if has_default and _is_union(annotation):
            annotation = _optional_member(annotation)
            if annotation is _NO_OVERRIDE:
                return None

        child = Request(
            ServiceKey.from_value(annotation),
            parent=request,
            parameter_name=parameter_name,
        )
        plan = self._plan_request(child, optional=optional, allow_autowire=not has_default)
        if plan is ABSENT and has_default:
            return None
        return plan

    def _plan_all(
        self,
        request: Request | None,
        service_type: Any,
        *,
        decorate: bool,
        metadata: Any = None,
    ) -> AllPlan:
        elements = []
        for descriptor in self._registry.all_descriptors(service_type):
            element_request = Request(descriptor.service_key, parent=request)
            if not self._accepts(descriptor, element_request, metadata):
                continue
            elements.append(self._plan_descriptor(element_request, descriptor, decorate=decorate))
        return AllPlan(elements)

    # endregion Parameters


def _generic_argument(annotation: Any, typevar_map: Mapping[TypeVar, Any]) -> Any:
    """Return the bound argument for ``type[T]`` annotations of a specialized generic."""
    if get_origin(annotation) is not type:
        return _NO_OVERRIDE
    arguments = get_args(annotation)
    if len(arguments) == 1 and isinstance(arguments[0], TypeVar) and arguments[0] in typevar_map:
        return typevar_map[arguments[0]]
    return _NO_OVERRIDE


def _alias_typevar_map(service_type: Any) -> Mapping[TypeVar, Any]:
    origin = get_origin(service_type)
    if origin is None:
        return {}
    parameters = getattr(origin, "__parameters__", ())
    return dict(zip(parameters, get_args(service_type), strict=False))


def _is_union(annotation: Any) -> bool:
    return get_origin(annotation) in (Union, types.UnionType)


def _optional_member(annotation: Any) -> Any:
    """Return ``X`` for ``X | None``; other unions yield ``_NO_OVERRIDE``."""
    members = [member for member in get_args(annotation) if member is not type(None)]
    if len(members) != 1:
        return _NO_OVERRIDE
    return members[0]
