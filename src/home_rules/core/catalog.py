"""
DeviceCatalog for items, things and channels.

The DeviceCatalog owns the device registry, not the behavior.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional
import logging

from home_rules.core.devices import (
    Channel,
    DeviceKind,
    DeviceReference,
    Item,
    Thing,
)
from home_rules.core.values import ValueType

logger = logging.getLogger(__name__)


class DeviceCatalog:
    """
    Registry of the devices a rule set can address.

    Responsibilities:
    - Store things, their channels, and items
    - Provide exact lookups by item name and thing/channel UID
    - Provide raw label lookups (optionally location- and channel-qualified)
    - Report the value types a device accepts

    Does NOT hold device state or dispatch commands.
    """

    def __init__(self) -> None:
        """Initialize an empty catalog."""
        self._things: Dict[str, Thing] = {}
        self._channels: Dict[str, Channel] = {}
        self._items: Dict[str, Item] = {}
        self._version = 0

    @property
    def version(self) -> int:
        """Counter that increases on every catalog change."""
        return self._version

    def _changed(self) -> None:
        self._version += 1

    # =========================================================================
    # Registration
    # =========================================================================

    def add_thing(
        self,
        uid: str,
        label: Optional[str] = None,
        location: Optional[str] = None,
        thing_type: Optional[str] = None,
    ) -> Thing:
        """
        Add a thing to the catalog.

        Args:
            uid: Fully-qualified thing UID
            label: Human-friendly label
            location: Optional location name
            thing_type: Optional thing type UID

        Returns:
            The created Thing

        Raises:
            ValueError: If the UID is empty or already registered
        """
        if not uid:
            raise ValueError("Thing UID must not be empty")
        if uid in self._things or uid in self._channels:
            raise ValueError(f"Device with uid '{uid}' already exists")

        thing = Thing(uid=uid, label=label, location=location, thing_type=thing_type)
        self._things[uid] = thing
        self._changed()
        logger.info(f"Added thing: {uid} ({label})")
        return thing

    def add_channel(
        self,
        thing_uid: str,
        name: str,
        accepted_types: Iterable[ValueType],
        is_default: bool = False,
    ) -> Channel:
        """
        Add a channel to an existing thing.

        Args:
            thing_uid: UID of the owning thing
            name: Short channel name
            accepted_types: Value types the channel accepts
            is_default: True if this is the catch-all channel for its thing type

        Returns:
            The created Channel

        Raises:
            ValueError: If the thing doesn't exist or the channel already exists
        """
        thing = self._things.get(thing_uid)
        if not thing:
            raise ValueError(f"Thing '{thing_uid}' does not exist")

        uid = f"{thing_uid}:{name}"
        if uid in self._channels:
            raise ValueError(f"Channel '{uid}' already exists")

        channel = Channel(
            uid=uid,
            thing_uid=thing_uid,
            name=name,
            accepted_types=frozenset(accepted_types),
            is_default=is_default,
        )
        self._channels[uid] = channel
        thing.channel_uids.append(uid)
        self._changed()
        logger.debug(f"Added channel: {uid}")
        return channel

    def add_item(
        self,
        name: str,
        accepted_types: Iterable[ValueType],
        channel_uid: Optional[str] = None,
    ) -> Item:
        """
        Add an item to the catalog.

        Args:
            name: Unique item name
            accepted_types: Value types the item accepts
            channel_uid: Optional channel the item is bound to

        Returns:
            The created Item

        Raises:
            ValueError: If the name is taken or the channel doesn't exist
        """
        if not name:
            raise ValueError("Item name must not be empty")
        if name in self._items:
            raise ValueError(f"Item '{name}' already exists")
        if channel_uid and channel_uid not in self._channels:
            raise ValueError(f"Channel '{channel_uid}' does not exist")

        item = Item(name=name, accepted_types=frozenset(accepted_types), channel_uid=channel_uid)
        self._items[name] = item
        self._changed()
        logger.info(f"Added item: {name}")
        return item

    def remove_thing(self, uid: str) -> bool:
        """
        Remove a thing and its channels.

        Args:
            uid: The thing UID

        Returns:
            True if the thing was removed, False if not found
        """
        thing = self._things.pop(uid, None)
        if not thing:
            return False

        for channel_uid in thing.channel_uids:
            self._channels.pop(channel_uid, None)
        self._changed()
        logger.info(f"Removed thing: {uid}")
        return True

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_thing(self, uid: str) -> Optional[Thing]:
        """Get a thing by UID."""
        return self._things.get(uid)

    def get_channel(self, uid: str) -> Optional[Channel]:
        """Get a channel by UID."""
        return self._channels.get(uid)

    def get_item(self, name: str) -> Optional[Item]:
        """Get an item by name."""
        return self._items.get(name)

    def all_things(self) -> List[Thing]:
        """Get all things."""
        return list(self._things.values())

    def channels_of(self, thing_uid: str) -> List[Channel]:
        """
        Get the channels of a thing.

        Args:
            thing_uid: The thing UID

        Returns:
            List of Channels (empty if the thing doesn't exist)
        """
        thing = self._things.get(thing_uid)
        if not thing:
            return []
        return [self._channels[uid] for uid in thing.channel_uids if uid in self._channels]

    def reference_for(self, kind: DeviceKind, canonical_id: str) -> Optional[DeviceReference]:
        """
        Build a fully-described reference for a registered device.

        Args:
            kind: Device kind
            canonical_id: Item name, thing UID or channel UID

        Returns:
            DeviceReference with location/label filled in, or None if unknown
        """
        if kind == DeviceKind.ITEM:
            if canonical_id not in self._items:
                return None
            return DeviceReference(kind, canonical_id)

        if kind == DeviceKind.THING:
            thing = self._things.get(canonical_id)
            if not thing:
                return None
            return DeviceReference(kind, canonical_id, location=thing.location, label=thing.label)

        channel = self._channels.get(canonical_id)
        if not channel:
            return None
        thing = self._things.get(channel.thing_uid)
        return DeviceReference(
            kind,
            canonical_id,
            location=thing.location if thing else None,
            label=thing.label if thing else None,
        )

    def thing_of(self, ref: DeviceReference) -> Optional[DeviceReference]:
        """
        Get the thing that owns a channel (or the thing itself).

        Args:
            ref: A thing or channel reference

        Returns:
            Reference to the owning thing, or None
        """
        if ref.kind == DeviceKind.THING:
            return self.reference_for(DeviceKind.THING, ref.canonical_id)
        if ref.kind == DeviceKind.CHANNEL:
            channel = self._channels.get(ref.canonical_id)
            if channel:
                return self.reference_for(DeviceKind.THING, channel.thing_uid)
        return None

    def is_default_channel(self, ref: DeviceReference) -> bool:
        """Check if a reference points at a default/catch-all channel."""
        if ref.kind != DeviceKind.CHANNEL:
            return False
        channel = self._channels.get(ref.canonical_id)
        return bool(channel and channel.is_default)

    def accepted_types(self, ref: DeviceReference) -> Optional[FrozenSet[ValueType]]:
        """
        Get the value types a device accepts.

        Things only carry connectivity status.

        Args:
            ref: The device reference

        Returns:
            Frozen set of ValueTypes, or None if the device is unknown
        """
        if ref.kind == DeviceKind.THING:
            if ref.canonical_id not in self._things:
                return None
            return frozenset({ValueType.STATUS})
        if ref.kind == DeviceKind.CHANNEL:
            channel = self._channels.get(ref.canonical_id)
            return channel.accepted_types if channel else None
        item = self._items.get(ref.canonical_id)
        return item.accepted_types if item else None

    def resolve_catalog_entry(self, spec: str) -> List[DeviceReference]:
        """
        Raw label lookup, before any tie-break.

        Supported shapes:
            "Label"                       -> things labelled "Label"
            "Location.Label"              -> things in Location labelled "Label"
            "Label.channel"               -> that channel of things labelled "Label"
            "Location.Label.channel"      -> that channel, location-qualified

        Args:
            spec: Target spec string

        Returns:
            Candidate thing and channel references (may be empty or several)
        """
        parts = spec.split(".")
        candidates: List[DeviceReference] = []

        def add(kind: DeviceKind, canonical_id: str) -> None:
            ref = self.reference_for(kind, canonical_id)
            if ref and ref not in candidates:
                candidates.append(ref)

        for thing in self._things.values():
            if thing.label == spec:
                add(DeviceKind.THING, thing.uid)

            if len(parts) == 2:
                first, second = parts
                if thing.location == first and thing.label == second:
                    add(DeviceKind.THING, thing.uid)
                if thing.label == first:
                    channel_uid = f"{thing.uid}:{second}"
                    if channel_uid in self._channels:
                        add(DeviceKind.CHANNEL, channel_uid)

            elif len(parts) == 3:
                location, label, channel_name = parts
                if thing.location == location and thing.label == label:
                    channel_uid = f"{thing.uid}:{channel_name}"
                    if channel_uid in self._channels:
                        add(DeviceKind.CHANNEL, channel_uid)

        return candidates
