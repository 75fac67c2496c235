"""
Target resolution for rule predicates and actions.

Turns a free-form target spec (alias, item name, thing/channel UID, or a
label optionally qualified by location and channel) into exactly one
device reference.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from home_rules.core.devices import DeviceKind, DeviceReference
from home_rules.core.errors import ResolutionError, ResolutionStatus
from home_rules.core.values import ValueType

from .aliases import AliasRegistry

if TYPE_CHECKING:
    from .adapter import PlatformAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Result of a lookup, with the reason when unresolved."""

    status: ResolutionStatus
    reference: Optional[DeviceReference] = None
    candidates: Tuple[DeviceReference, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.status == ResolutionStatus.RESOLVED


class TargetResolver:
    """
    Resolves target specs in a fixed order.

    Order:
    1. Alias
    2. Exact item name
    3. Exact thing or channel UID
    4. Label match ("Label", "Location.Label", "Label.channel",
       "Location.Label.channel")

    Label matches that leave several candidate channels go through a
    tie-break: channels accepting the requested value type, then the
    unique default/catch-all channel, then the unique remaining channel.
    Anything still ambiguous is unresolved; ambiguity never raises.

    Results are cached per (spec, value type). The cache is dropped when
    the alias registry or the device catalog changes.
    """

    def __init__(self, aliases: AliasRegistry, platform: "PlatformAdapter") -> None:
        self._aliases = aliases
        self._platform = platform
        self._cache: Dict[Tuple[str, Optional[ValueType]], Resolution] = {}
        self._cache_versions: Tuple[int, int] = self._versions()

    def _versions(self) -> Tuple[int, int]:
        return (self._aliases.version, self._platform.catalog.version)

    def invalidate(self) -> None:
        """Drop all cached resolutions."""
        self._cache.clear()
        self._cache_versions = self._versions()

    # =========================================================================
    # Public API
    # =========================================================================

    def resolve(
        self, spec: str, value_type: Optional[ValueType] = None
    ) -> Optional[DeviceReference]:
        """
        Resolve a spec to one device.

        Args:
            spec: Target spec string
            value_type: Type of the value the target will be used with

        Returns:
            The device reference, or None if not found or ambiguous
        """
        return self.lookup(spec, value_type).reference

    def resolve_strict(
        self, spec: str, value_type: Optional[ValueType] = None
    ) -> DeviceReference:
        """
        Resolve a spec, raising when it doesn't resolve.

        Raises:
            ResolutionError: With status NOT_FOUND or AMBIGUOUS
        """
        resolution = self.lookup(spec, value_type)
        if not resolution.resolved:
            raise ResolutionError(spec, resolution.status)
        return resolution.reference

    def lookup(self, spec: str, value_type: Optional[ValueType] = None) -> Resolution:
        """
        Resolve a spec and report how it went.

        Args:
            spec: Target spec string
            value_type: Type of the value the target will be used with

        Returns:
            Resolution with status and (when resolved) the reference
        """
        if self._cache_versions != self._versions():
            logger.debug("Alias registry or catalog changed, clearing resolution cache")
            self.invalidate()

        key = (spec, value_type)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        resolution = self._lookup(spec, value_type)
        if resolution.status == ResolutionStatus.AMBIGUOUS:
            logger.debug(
                f"Target '{spec}' is ambiguous: {[str(c) for c in resolution.candidates]}"
            )
        elif resolution.status == ResolutionStatus.NOT_FOUND:
            logger.debug(f"Target '{spec}' not found")
        self._cache[key] = resolution
        return resolution

    # =========================================================================
    # Resolution Chain
    # =========================================================================

    def _lookup(self, spec: str, value_type: Optional[ValueType]) -> Resolution:
        catalog = self._platform.catalog

        # 1. Alias
        aliased = self._aliases.lookup(spec)
        if aliased is not None:
            ref = catalog.reference_for(aliased.kind, aliased.canonical_id)
            if ref is None:
                return Resolution(ResolutionStatus.NOT_FOUND)
            return self._resolved(ref, value_type)

        # 2. Exact item name
        if catalog.get_item(spec):
            return self._resolved(catalog.reference_for(DeviceKind.ITEM, spec), value_type)

        # 3. Exact thing / channel UID
        if catalog.get_thing(spec):
            return self._resolved(catalog.reference_for(DeviceKind.THING, spec), value_type)
        if catalog.get_channel(spec):
            return self._resolved(catalog.reference_for(DeviceKind.CHANNEL, spec), value_type)

        # 4. Label match
        candidates = self._platform.resolve_catalog_entry(spec)
        if not candidates:
            return Resolution(ResolutionStatus.NOT_FOUND)

        if value_type == ValueType.STATUS:
            things: List[DeviceReference] = []
            for candidate in candidates:
                thing = catalog.thing_of(candidate)
                if thing and thing not in things:
                    things.append(thing)
            if len(things) == 1:
                return Resolution(ResolutionStatus.RESOLVED, things[0])
            return Resolution(ResolutionStatus.AMBIGUOUS, candidates=tuple(things))

        expanded: List[DeviceReference] = []
        for candidate in candidates:
            if candidate.kind == DeviceKind.THING:
                channels = [
                    catalog.reference_for(DeviceKind.CHANNEL, c.uid)
                    for c in catalog.channels_of(candidate.canonical_id)
                ]
                members = channels or [candidate]
            else:
                members = [candidate]
            for member in members:
                if member not in expanded:
                    expanded.append(member)

        chosen = self._tie_break(expanded, value_type)
        if chosen is None:
            return Resolution(ResolutionStatus.AMBIGUOUS, candidates=tuple(expanded))
        return Resolution(ResolutionStatus.RESOLVED, chosen)

    def _resolved(self, ref: DeviceReference, value_type: Optional[ValueType]) -> Resolution:
        # Connectivity applies to things: re-target a channel to its owner
        if value_type == ValueType.STATUS and ref.kind == DeviceKind.CHANNEL:
            thing = self._platform.catalog.thing_of(ref)
            if thing:
                ref = thing
        return Resolution(ResolutionStatus.RESOLVED, ref)

    def _tie_break(
        self, candidates: List[DeviceReference], value_type: Optional[ValueType]
    ) -> Optional[DeviceReference]:
        if len(candidates) == 1:
            return candidates[0]

        catalog = self._platform.catalog
        pool = candidates
        if value_type is not None:
            compatible = [c for c in candidates if value_type in (catalog.accepted_types(c) or ())]
            if compatible:
                pool = compatible

        defaults = [c for c in pool if catalog.is_default_channel(c)]
        if len(defaults) == 1:
            return defaults[0]

        if len(pool) == 1:
            return pool[0]

        return None
