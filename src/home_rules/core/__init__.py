"""
Core components of the home-rules engine.

This package contains:
- values: Typed state values and their ValueType tags
- devices: Items, things, channels and device references
- catalog: DeviceCatalog registry and raw label lookup
- bus: Event Bus for device state-change events
- errors: Rule engine error taxonomy
"""

from home_rules.core.values import (
    ValueType,
    OnOffType,
    OpenClosedType,
    ThingStatus,
    Quantity,
    ON,
    OFF,
    OPEN,
    CLOSED,
    ONLINE,
    OFFLINE,
    percent,
    parse_value,
    value_type_of,
)
from home_rules.core.devices import (
    DeviceKind,
    DeviceReference,
    Channel,
    Thing,
    Item,
    item_ref,
    thing_ref,
    channel_ref,
)
from home_rules.core.catalog import DeviceCatalog
from home_rules.core.bus import EventBus, EventFilter, EventKind, StateChangeEvent
from home_rules.core.errors import (
    RuleEngineError,
    AliasConflictError,
    ResolutionError,
    ResolutionStatus,
    TypeMismatchError,
    ScheduleConfigError,
    HarnessError,
    HarnessSetupError,
)

__all__ = [
    # Values
    "ValueType",
    "OnOffType",
    "OpenClosedType",
    "ThingStatus",
    "Quantity",
    "ON",
    "OFF",
    "OPEN",
    "CLOSED",
    "ONLINE",
    "OFFLINE",
    "percent",
    "parse_value",
    "value_type_of",
    # Devices
    "DeviceKind",
    "DeviceReference",
    "Channel",
    "Thing",
    "Item",
    "item_ref",
    "thing_ref",
    "channel_ref",
    "DeviceCatalog",
    # Bus
    "EventBus",
    "EventFilter",
    "EventKind",
    "StateChangeEvent",
    # Errors
    "RuleEngineError",
    "AliasConflictError",
    "ResolutionError",
    "ResolutionStatus",
    "TypeMismatchError",
    "ScheduleConfigError",
    "HarnessError",
    "HarnessSetupError",
]
