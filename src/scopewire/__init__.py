from scopewire.container import Container, RegistrationHandle
from scopewire.exceptions import (
    AmbiguousRegistrationError,
    ClosedScopeError,
    ConstructorSelectionError,
    CyclicDependencyError,
    DisposalError,
    InvalidGenericTypeArgumentError,
    InvalidRegistrationError,
    ScopeMismatchError,
    ScopewireError,
    UnresolvedServiceError,
)
from scopewire.markers import All, Component, Lazy, LazyValue, Maybe, Provider, Value
from scopewire.planner import Request
from scopewire.plans import ServiceSequence
from scopewire.provider import (
    ServiceDescriptor,
    ServiceLifetime,
    ServiceProvider,
    ServiceScopeFactory,
    populate,
    with_service_provider_adapter,
)
from scopewire.reuse import Lifetime, Reuse
from scopewire.rules import Rules, prefer_metadata, select_first_registered, select_last_registered
from scopewire.scope import Scope
from scopewire.service_key import ServiceKey

__all__ = [
    "All",
    "AmbiguousRegistrationError",
    "ClosedScopeError",
    "Component",
    "ConstructorSelectionError",
    "Container",
    "CyclicDependencyError",
    "DisposalError",
    "InvalidGenericTypeArgumentError",
    "InvalidRegistrationError",
    "Lazy",
    "LazyValue",
    "Lifetime",
    "Maybe",
    "Provider",
    "RegistrationHandle",
    "Request",
    "Reuse",
    "Rules",
    "Scope",
    "ScopeMismatchError",
    "ScopewireError",
    "ServiceDescriptor",
    "ServiceKey",
    "ServiceLifetime",
    "ServiceProvider",
    "ServiceScopeFactory",
    "ServiceSequence",
    "UnresolvedServiceError",
    "Value",
    "populate",
    "prefer_metadata",
    "select_first_registered",
    "select_last_registered",
    "with_service_provider_adapter",
]
