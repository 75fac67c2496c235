"""
Typed state values.

Items, channels and things carry typed values. Every value maps to a
ValueType tag so the rule engine can check that a predicate or command
makes sense for the device it targets.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ValueType(Enum):
    """Tags for the kinds of values a device accepts."""

    ON_OFF = "on_off"
    OPEN_CLOSED = "open_closed"
    STATUS = "status"  # Thing connectivity (ONLINE/OFFLINE)
    PERCENT = "percent"
    QUANTITY = "quantity"  # Number with a unit (e.g., 21.5 °C)
    DECIMAL = "decimal"
    STRING = "string"


class OnOffType(Enum):
    ON = "ON"
    OFF = "OFF"


class OpenClosedType(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class ThingStatus(Enum):
    """Connectivity status of a Thing."""

    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    UNKNOWN = "UNKNOWN"


ON = OnOffType.ON
OFF = OnOffType.OFF
OPEN = OpenClosedType.OPEN
CLOSED = OpenClosedType.CLOSED
ONLINE = ThingStatus.ONLINE
OFFLINE = ThingStatus.OFFLINE


@dataclass(frozen=True)
class Quantity:
    """A numeric value with a unit ("%" makes it a percentage)."""

    value: float
    unit: str = ""

    def __str__(self) -> str:
        if self.unit == "%":
            return f"{self.value:g}%"
        return f"{self.value:g} {self.unit}".strip()


def percent(value: float) -> Quantity:
    """Shorthand for a percentage quantity."""
    return Quantity(float(value), "%")


# Unit is a single token; ordinals ("2nd") stay text
_QUANTITY_PATTERN = re.compile(
    r"^\s*(-?\d+(?:\.\d+)?)\s*(%|(?!(?:st|nd|rd|th)\s*$)[^\d\s]\S*)?\s*$"
)

_ENUM_LOOKUP = {
    **{m.value: m for m in OnOffType},
    **{m.value: m for m in OpenClosedType},
    **{m.value: m for m in ThingStatus},
}


def value_type_of(value: Any) -> Optional[ValueType]:
    """
    Get the ValueType tag for a value.

    Args:
        value: A typed state value

    Returns:
        The matching ValueType, or None for None
    """
    if value is None:
        return None
    if isinstance(value, OnOffType):
        return ValueType.ON_OFF
    if isinstance(value, OpenClosedType):
        return ValueType.OPEN_CLOSED
    if isinstance(value, ThingStatus):
        return ValueType.STATUS
    if isinstance(value, Quantity):
        return ValueType.PERCENT if value.unit == "%" else ValueType.QUANTITY
    if isinstance(value, bool):
        # bool is an int subclass; treat it as a switch value
        return ValueType.ON_OFF
    if isinstance(value, (int, float)):
        return ValueType.DECIMAL
    if isinstance(value, str):
        return ValueType.STRING
    raise ValueError(f"Unsupported value: {value!r}")


def parse_value(raw: Any, value_type: Optional[ValueType] = None) -> Any:
    """
    Parse a configuration value into a typed state value.

    Accepts enum names ("ON", "OPEN", "ONLINE"), percentages ("60%"),
    quantities ("21.5 °C"), plain numbers and strings. Already typed
    values are returned unchanged.

    Args:
        raw: The raw value (usually from a config dict)
        value_type: Optional explicit type to force

    Returns:
        Typed value

    Raises:
        ValueError: If the value cannot be parsed as the requested type
    """
    if raw is None or isinstance(raw, (OnOffType, OpenClosedType, ThingStatus, Quantity)):
        return raw

    if isinstance(raw, bool):
        return ON if raw else OFF

    if value_type == ValueType.STRING:
        return str(raw)

    if value_type == ValueType.ON_OFF:
        return OnOffType(str(raw).upper())
    if value_type == ValueType.OPEN_CLOSED:
        return OpenClosedType(str(raw).upper())
    if value_type == ValueType.STATUS:
        return ThingStatus(str(raw).upper())

    if isinstance(raw, (int, float)):
        if value_type == ValueType.PERCENT:
            return percent(raw)
        return raw

    text = str(raw).strip()
    if value_type is None and text.upper() in _ENUM_LOOKUP:
        return _ENUM_LOOKUP[text.upper()]

    match = _QUANTITY_PATTERN.match(text)
    if match:
        number = float(match.group(1))
        unit = (match.group(2) or "").strip()
        if unit == "%" or value_type == ValueType.PERCENT:
            return percent(number)
        if unit:
            return Quantity(number, unit)
        if value_type == ValueType.QUANTITY:
            return Quantity(number)
        return int(number) if number.is_integer() and "." not in text else number

    if value_type in (ValueType.PERCENT, ValueType.QUANTITY, ValueType.DECIMAL):
        raise ValueError(f"Cannot parse {raw!r} as {value_type.value}")

    return text
