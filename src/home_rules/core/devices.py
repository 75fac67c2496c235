"""
Device dataclasses and references.

An Item, Thing or Channel is an addressable automation entity. A Thing
exposes Channels; Items bind to Channels. A DeviceReference is the
resolved, immutable handle the rule engine works with.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional

from home_rules.core.values import ValueType


class DeviceKind(Enum):
    """The kind of entity a reference points to."""

    ITEM = "item"
    THING = "thing"
    CHANNEL = "channel"


@dataclass(frozen=True)
class DeviceReference:
    """
    A resolved reference to one device.

    Identity is (kind, canonical_id); location and label are descriptive
    and do not take part in equality.

    Attributes:
        kind: Item, Thing or Channel
        canonical_id: Item name, Thing UID or Channel UID
        location: Optional location of the owning Thing
        label: Optional human-readable label
    """

    kind: DeviceKind
    canonical_id: str
    location: Optional[str] = field(default=None, compare=False)
    label: Optional[str] = field(default=None, compare=False)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.canonical_id}"


def item_ref(name: str) -> DeviceReference:
    """Reference to an item by name."""
    return DeviceReference(DeviceKind.ITEM, name)


def thing_ref(uid: str) -> DeviceReference:
    """Reference to a thing by UID."""
    return DeviceReference(DeviceKind.THING, uid)


def channel_ref(uid: str) -> DeviceReference:
    """Reference to a channel by UID."""
    return DeviceReference(DeviceKind.CHANNEL, uid)


@dataclass
class Channel:
    """
    A channel exposed by a Thing.

    Attributes:
        uid: Full channel UID ("<thing uid>:<name>")
        thing_uid: UID of the owning thing
        name: Short channel name (e.g., "power", "volume")
        accepted_types: Value types this channel accepts
        is_default: True if this is the catch-all channel for its thing type
    """

    uid: str
    thing_uid: str
    name: str
    accepted_types: FrozenSet[ValueType] = field(default_factory=frozenset)
    is_default: bool = False


@dataclass
class Thing:
    """
    A physical or virtual device.

    Attributes:
        uid: Fully-qualified thing UID (e.g., "binding:gateway:motion:1")
        label: Human-friendly label (e.g., "Internet Radio1")
        location: Optional location (e.g., "Bedroom1")
        thing_type: Optional thing type UID
        channel_uids: UIDs of the channels this thing exposes
    """

    uid: str
    label: Optional[str] = None
    location: Optional[str] = None
    thing_type: Optional[str] = None
    channel_uids: List[str] = field(default_factory=list)


@dataclass
class Item:
    """
    A named state holder, optionally bound to a channel.

    Attributes:
        name: Unique item name
        accepted_types: Value types this item accepts
        channel_uid: Optional bound channel UID
    """

    name: str
    accepted_types: FrozenSet[ValueType] = field(default_factory=frozenset)
    channel_uid: Optional[str] = None
