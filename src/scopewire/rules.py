from __future__ import annotations

import dataclasses
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from scopewire.reuse import Reuse

if TYPE_CHECKING:
    from typing_extensions import Self

    from scopewire.registry import Descriptor

FactorySelector = Callable[[Sequence["Descriptor"]], "Descriptor | None"]
"""Pick one descriptor out of several candidates, or return ``None`` to pass."""


def select_last_registered(candidates: Sequence[Descriptor]) -> Descriptor | None:
    """Pick the candidate with the highest registration order."""
    if not candidates:
        return None
    return max(candidates, key=lambda descriptor: descriptor.registration_order)


def select_first_registered(candidates: Sequence[Descriptor]) -> Descriptor | None:
    """Pick the candidate with the lowest registration order."""
    if not candidates:
        return None
    return min(candidates, key=lambda descriptor: descriptor.registration_order)


def prefer_metadata(value: Any) -> FactorySelector:
    """Build a selector that picks the only candidate whose metadata equals ``value``.

    The selector passes (returns ``None``) when zero or several candidates
    carry that metadata, so later selectors in the chain get their turn.
    """

    def selector(candidates: Sequence[Descriptor]) -> Descriptor | None:
        matching = [descriptor for descriptor in candidates if descriptor.metadata == value]
        if len(matching) == 1:
            return matching[0]
        return None

    selector.__name__ = f"prefer_metadata({value!r})"
    return selector


@dataclass(frozen=True, slots=True)
class Rules:
    """Container-wide resolution rules.

    Rules are immutable; use :meth:`with_` (or ``Container.with_rules``) to
    derive a changed copy.
    """

    factory_selectors: tuple[FactorySelector, ...] = ()
    """Selectors tried in order when several descriptors compete for a key.

    The first selector returning a descriptor wins. With no selectors, or when
    all of them pass, competing descriptors raise ``AmbiguousRegistrationError``.
    """

    track_disposable_transients: bool = False
    """Register disposable transient instances with the resolving scope."""

    implicit_root_scope: bool = False
    """Allow scoped services to be resolved from the root scope."""

    autowire_concrete_types: bool = True
    """Build unregistered concrete classes from their constructor annotations."""

    autowire_reuse: Reuse = Reuse.TRANSIENT
    """Reuse policy applied to autowired concrete classes."""

    def with_(self, **changes: Any) -> Self:
        return dataclasses.replace(self, **changes)

    def with_factory_selector(self, selector: FactorySelector) -> Self:
        """Append ``selector`` after the already configured ones."""
        return dataclasses.replace(self, factory_selectors=(*self.factory_selectors, selector))

    def select(self, candidates: Sequence[Descriptor]) -> Descriptor | None:
        for selector in self.factory_selectors:
            selected = selector(candidates)
            if selected is not None:
                return selected
        return None
