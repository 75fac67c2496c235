"""
Data models for the rule engine.

Defines rules, trigger/suppress expressions, schedule windows and
retrigger specs, plus the runtime records the engine produces.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from enum import Enum, IntEnum
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Tuple,
)

from home_rules.core.bus import StateChangeEvent
from home_rules.core.devices import DeviceKind, DeviceReference
from home_rules.core.errors import RuleEngineError, ScheduleConfigError
from home_rules.core.values import OFF, ON, ValueType, parse_value, value_type_of

if TYPE_CHECKING:
    from .engine import FiringContext


DEFAULT_DONT_RETRIGGER_WITHIN = timedelta(seconds=3)
DAY = timedelta(hours=24)


# =============================================================================
# Enums
# =============================================================================


class PredicateKind(Enum):
    """How a device predicate matches an event."""

    IS = "is"  # Current value equals
    GOES = "goes"  # Transitions into value
    GOES_FROM = "goes_from"  # Transitions from one value into another
    RECEIVES_COMMAND = "receives_command"  # Command message with value
    RECEIVES_UPDATE = "receives_update"  # Update message with value


class SolarAnchor(Enum):
    """Time anchors resolved per calendar day."""

    SUNRISE = "SUNRISE"
    SUNSET = "SUNSET"
    NOON = "NOON"
    MIDNIGHT = "MIDNIGHT"  # Day boundary: 00:00 as a start, 24:00 as an end


class Weekday(IntEnum):
    """Days of the week, numbered like datetime.weekday()."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6


class WindowState(Enum):
    """Schedule classification of a timestamp."""

    ALLOWED = "allowed"
    FORBIDDEN = "forbidden"
    DEFAULT = "default"


class RuleState(Enum):
    """States of a rule's state machine."""

    IDLE = "idle"
    EVALUATING = "evaluating"
    FIRING = "firing"
    SUPPRESSED = "suppressed"
    ERRORED = "errored"


# =============================================================================
# Time bounds and schedules
# =============================================================================


@dataclass(frozen=True)
class TimeBound:
    """A time-of-day bound: a clock time or an anchor, plus an offset.

    Examples:
    - TimeBound(clock=time(15, 30))                 -> 15:30
    - TimeBound(anchor=SolarAnchor.SUNRISE,
                offset=timedelta(minutes=30))       -> sunrise + 30 min
    """

    clock: Optional[time] = None
    anchor: Optional[SolarAnchor] = None
    offset: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if (self.clock is None) == (self.anchor is None):
            raise ScheduleConfigError("A time bound needs exactly one of clock or anchor")

    @property
    def is_solar(self) -> bool:
        """True if the bound depends on the solar calendar."""
        return self.anchor is not None and self.anchor != SolarAnchor.MIDNIGHT

    def fixed_offset(self, is_end: bool = False) -> Optional[timedelta]:
        """
        Offset from the start of the day for non-solar bounds.

        Args:
            is_end: True if the bound closes a range (MIDNIGHT becomes 24:00)

        Returns:
            timedelta since 00:00, or None for solar bounds
        """
        if self.is_solar:
            return None
        if self.anchor == SolarAnchor.MIDNIGHT:
            base = DAY if is_end else timedelta(0)
        else:
            base = timedelta(
                hours=self.clock.hour, minutes=self.clock.minute, seconds=self.clock.second
            )
        return base + self.offset

    def __str__(self) -> str:
        text = self.clock.strftime("%H:%M") if self.clock else self.anchor.value
        if self.offset:
            sign = "-" if self.offset < timedelta(0) else "+"
            text += f"{sign}{abs(self.offset)}"
        return text


MIDNIGHT = TimeBound(anchor=SolarAnchor.MIDNIGHT)


@dataclass(frozen=True)
class TimeRange:
    """Half-open time-of-day range [start, end)."""

    start: TimeBound
    end: TimeBound

    def __post_init__(self) -> None:
        start = self.start.fixed_offset(is_end=False)
        end = self.end.fixed_offset(is_end=True)
        for bound, offset in ((self.start, start), (self.end, end)):
            if offset is not None and not timedelta(0) <= offset <= DAY:
                raise ScheduleConfigError(
                    f"Time bound {bound} falls outside its day; split the range at midnight"
                )
        if start is not None and end is not None and end < start:
            raise ScheduleConfigError(
                f"Time range {self.start}..{self.end} crosses midnight; split it into same-day ranges"
            )


FULL_DAY = TimeRange(MIDNIGHT, MIDNIGHT)


@dataclass(frozen=True)
class ScheduleEntry:
    """A set of days, each covered by the given ranges (whole day if none)."""

    days: FrozenSet[Weekday]
    ranges: Tuple[TimeRange, ...] = ()

    def __post_init__(self) -> None:
        if not self.days:
            raise ScheduleConfigError("A schedule entry needs at least one day")

    @property
    def effective_ranges(self) -> Tuple[TimeRange, ...]:
        return self.ranges or (FULL_DAY,)


@dataclass(frozen=True)
class Schedule:
    """Weekly enabled/forbidden windows of a rule."""

    enabled: Tuple[ScheduleEntry, ...] = ()
    forbidden: Tuple[ScheduleEntry, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], split_overnight: bool = False) -> "Schedule":
        """Deserialize from dict with "enabled_at" / "forbidden_at" entry lists."""
        return cls(
            enabled=tuple(_parse_entries(data.get("enabled_at", []), split_overnight)),
            forbidden=tuple(_parse_entries(data.get("forbidden_at", []), split_overnight)),
        )


# =============================================================================
# Expressions
# =============================================================================


@dataclass(frozen=True)
class DeviceStatePredicate:
    """A predicate over one device's state or messages.

    The target is a free-form spec string (alias, item name, UID or label)
    resolved at evaluation time. value_type is inferred from the value when
    not given.
    """

    target: str
    kind: PredicateKind
    value: Any = None
    from_value: Any = None  # GOES_FROM only
    value_type: Optional[ValueType] = None

    def __post_init__(self) -> None:
        if not self.target:
            raise ValueError("Predicate target must not be empty")
        for attr in ("value", "from_value"):
            raw = getattr(self, attr)
            if isinstance(raw, bool):
                object.__setattr__(self, attr, ON if raw else OFF)
        if self.kind in (PredicateKind.IS, PredicateKind.GOES, PredicateKind.GOES_FROM):
            if self.value is None:
                raise ValueError(f"{self.kind.value} predicate on '{self.target}' needs a value")
        if self.kind == PredicateKind.GOES_FROM and self.from_value is None:
            raise ValueError(f"goes_from predicate on '{self.target}' needs a from value")
        if self.value_type is None:
            inferred = value_type_of(self.value)
            if inferred is None:
                inferred = value_type_of(self.from_value)
            object.__setattr__(self, "value_type", inferred)


@dataclass(frozen=True)
class TimeOfDayPredicate:
    """True when the evaluation time is within [after, before) of the day."""

    after: Optional[TimeBound] = None
    before: Optional[TimeBound] = None


@dataclass(frozen=True)
class AndNode:
    children: Tuple["ExpressionNode", ...]


@dataclass(frozen=True)
class OrNode:
    children: Tuple["ExpressionNode", ...]


@dataclass(frozen=True)
class NotNode:
    child: "ExpressionNode"


ExpressionNode = AndNode | OrNode | NotNode | DeviceStatePredicate | TimeOfDayPredicate


def is_(target: str, value: Any, value_type: Optional[ValueType] = None) -> DeviceStatePredicate:
    return DeviceStatePredicate(target, PredicateKind.IS, value, value_type=value_type)


def goes(target: str, value: Any, value_type: Optional[ValueType] = None) -> DeviceStatePredicate:
    return DeviceStatePredicate(target, PredicateKind.GOES, value, value_type=value_type)


def goes_from(
    target: str, from_value: Any, to_value: Any, value_type: Optional[ValueType] = None
) -> DeviceStatePredicate:
    return DeviceStatePredicate(
        target, PredicateKind.GOES_FROM, to_value, from_value=from_value, value_type=value_type
    )


def receives_command(target: str, value: Any = None) -> DeviceStatePredicate:
    return DeviceStatePredicate(target, PredicateKind.RECEIVES_COMMAND, value)


def receives_update(target: str, value: Any = None) -> DeviceStatePredicate:
    return DeviceStatePredicate(target, PredicateKind.RECEIVES_UPDATE, value)


def all_of(*children: ExpressionNode) -> AndNode:
    return AndNode(tuple(children))


def any_of(*children: ExpressionNode) -> OrNode:
    return OrNode(tuple(children))


def not_(child: ExpressionNode) -> NotNode:
    return NotNode(child)


# =============================================================================
# Retrigger Specs
# =============================================================================


@dataclass(frozen=True)
class IntervalRetrigger:
    """Re-fire every fixed interval (e.g., every 2 hours)."""

    every: timedelta

    def __post_init__(self) -> None:
        if self.every <= timedelta(0):
            raise ValueError("Retrigger interval must be positive")


@dataclass(frozen=True)
class WeeklyRetrigger:
    """Re-fire at a time of day, on one weekday or every day (weekday=None)."""

    at: TimeBound
    weekday: Optional[Weekday] = None


RetriggerSpec = IntervalRetrigger | WeeklyRetrigger


# =============================================================================
# Rule
# =============================================================================


RuleAction = Callable[[str, "FiringContext"], None]


@dataclass
class Rule:
    """A complete rule.

    Consists of:
    - name: Unique rule name
    - trigger_clauses: OR of clauses; each clause is its own expression tree
    - suppress_clauses: OR of clauses; any true clause blocks the rule
    - schedule: Weekly enabled/forbidden windows
    - enabled_by_default: Whether the rule runs outside every window
    - dont_retrigger_within: Cooldown between two fires
    - retrigger_every: Periodic re-fire specs
    - continue_on_errors: Treat failing predicates as false instead of aborting
    - actions: Callbacks invoked in order when the rule fires
    - aliases: Rule-local aliases, registered into the rule set's registry
    """

    name: str
    trigger_clauses: List[ExpressionNode] = field(default_factory=list)
    suppress_clauses: List[ExpressionNode] = field(default_factory=list)
    schedule: Schedule = field(default_factory=Schedule)
    enabled_by_default: bool = True
    dont_retrigger_within: timedelta = DEFAULT_DONT_RETRIGGER_WITHIN
    retrigger_every: List[RetriggerSpec] = field(default_factory=list)
    continue_on_errors: bool = False
    actions: List[RuleAction] = field(default_factory=list)
    aliases: Dict[str, DeviceReference] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Rule name must not be empty")
        if self.dont_retrigger_within < timedelta(0):
            raise ValueError(f"Rule '{self.name}': dont_retrigger_within must be >= 0")

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        actions: Optional[Dict[str, RuleAction]] = None,
    ) -> "Rule":
        """
        Deserialize from dict.

        Args:
            data: Rule configuration
            actions: Registry of named action callbacks

        Returns:
            Parsed Rule

        Raises:
            ValueError: On unknown expression types or action names
            ScheduleConfigError: On malformed schedule windows
        """
        if not isinstance(data, dict):
            raise ValueError(f"Rule config must be a dict: {data!r}")
        if not data.get("name"):
            raise ValueError(f"Rule config needs 'name': {data!r}")

        registry = actions or {}
        action_list: List[RuleAction] = []
        for action_name in data.get("actions", []):
            if action_name not in registry:
                raise ValueError(f"Unknown action: {action_name}")
            action_list.append(registry[action_name])

        cooldown = data.get("dont_retrigger_within")

        return cls(
            name=data["name"],
            trigger_clauses=[parse_expression(c) for c in data.get("trigger_when", [])],
            suppress_clauses=[parse_expression(c) for c in data.get("suppress_when", [])],
            schedule=Schedule.from_dict(data, split_overnight=data.get("split_overnight", False)),
            enabled_by_default=data.get("enabled_by_default", True),
            dont_retrigger_within=(
                DEFAULT_DONT_RETRIGGER_WITHIN if cooldown is None else parse_duration(cooldown)
            ),
            retrigger_every=[parse_retrigger(r) for r in data.get("retrigger_every", [])],
            continue_on_errors=data.get("continue_on_errors", False),
            actions=action_list,
            aliases=parse_aliases(data.get("aliases", {})),
        )


@dataclass
class RuleSet:
    """Aliases and rules loaded (and reloaded) as one unit."""

    rules: List[Rule] = field(default_factory=list)
    aliases: Dict[str, DeviceReference] = field(default_factory=dict)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        actions: Optional[Dict[str, RuleAction]] = None,
    ) -> "RuleSet":
        """Deserialize from dict."""
        return cls(
            rules=[Rule.from_dict(r, actions) for r in data.get("rules", [])],
            aliases=parse_aliases(data.get("aliases", {})),
        )


# =============================================================================
# Runtime Records
# =============================================================================


@dataclass
class RuleRuntimeState:
    """Mutable per-rule state, owned by exactly one state machine."""

    last_fired_at: Optional[datetime] = None
    previous_value_cache: Dict[DeviceReference, Any] = field(default_factory=dict)


@dataclass
class EvaluationOutcome:
    """Result of running one event (or tick) through a rule."""

    rule_name: str
    state: RuleState  # Terminal state: FIRING, SUPPRESSED, ERRORED or IDLE
    timestamp: datetime
    event: Optional[StateChangeEvent] = None
    reason: str = ""
    error: Optional[RuleEngineError] = None
    absorbed_errors: List[RuleEngineError] = field(default_factory=list)  # continue_on_errors

    @property
    def fired(self) -> bool:
        return self.state == RuleState.FIRING


@dataclass
class FiringRecord:
    """Record of a rule fire (for history/debugging)."""

    rule_name: str
    timestamp: datetime
    event_kind: str
    target: Optional[str]
    actions_invoked: int
    action_errors: List[str] = field(default_factory=list)


# =============================================================================
# Parsing Helpers
# =============================================================================


_ANCHOR_PATTERN = re.compile(r"^(SUNRISE|SUNSET|NOON|MIDNIGHT)\s*(?:([+-])\s*(\S+))?$")
_DURATION_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|d)$")

_DURATION_UNITS = {
    "s": "seconds",
    "sec": "seconds",
    "m": "minutes",
    "min": "minutes",
    "h": "hours",
    "d": "days",
}

_DAY_NAMES: Dict[str, Weekday] = {}
for _day in Weekday:
    _DAY_NAMES[_day.name.lower()] = _day
    _DAY_NAMES[_day.name.lower()[:3]] = _day

_DAY_GROUPS = {
    "weekdays": frozenset(Weekday(d) for d in range(5)),
    "weekend": frozenset({Weekday.SATURDAY, Weekday.SUNDAY}),
    "daily": frozenset(Weekday),
    "all": frozenset(Weekday),
}


def parse_duration(raw: Any) -> timedelta:
    """
    Parse a duration.

    Accepts timedelta, seconds as a number, "30m" / "23h" / "3s" / "1d"
    style strings, and "HH:MM[:SS]".

    Raises:
        ValueError: If the duration cannot be parsed
    """
    if isinstance(raw, timedelta):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return timedelta(seconds=raw)

    text = str(raw).strip().lower()
    match = _DURATION_PATTERN.match(text)
    if match:
        return timedelta(**{_DURATION_UNITS[match.group(2)]: float(match.group(1))})

    parts = text.split(":")
    if len(parts) in (2, 3) and all(p.isdigit() for p in parts):
        hours, minutes = int(parts[0]), int(parts[1])
        seconds = int(parts[2]) if len(parts) == 3 else 0
        return timedelta(hours=hours, minutes=minutes, seconds=seconds)

    raise ValueError(f"Invalid duration: {raw!r}")


def _military_time(value: int) -> TimeBound:
    hours, minutes = divmod(value, 100)
    if hours == 24 and minutes == 0:
        return MIDNIGHT
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ScheduleConfigError(f"Invalid military time: {value}")
    return TimeBound(clock=time(hours, minutes))


def parse_time_bound(raw: Any) -> TimeBound:
    """
    Parse a time bound.

    Accepts:
    - TimeBound or datetime.time
    - Military-time integers (1530 = 15:30, 2400 = end of day)
    - "HH:MM" / "HH:MM:SS" strings (and "24:00")
    - Anchors with optional offsets: "SUNRISE", "sunset-01:00", "SUNRISE+30m"

    Raises:
        ScheduleConfigError: If the value is malformed
    """
    if isinstance(raw, TimeBound):
        return raw
    if isinstance(raw, time):
        return TimeBound(clock=raw)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return _military_time(raw)

    text = str(raw).strip()
    match = _ANCHOR_PATTERN.match(text.upper())
    if match:
        offset = timedelta(0)
        if match.group(2):
            try:
                offset = parse_duration(match.group(3))
            except ValueError as e:
                raise ScheduleConfigError(f"Invalid offset in {raw!r}") from e
            if match.group(2) == "-":
                offset = -offset
        return TimeBound(anchor=SolarAnchor(match.group(1)), offset=offset)

    if text.isdigit():
        return _military_time(int(text))
    if text in ("24:00", "24:00:00"):
        return MIDNIGHT

    try:
        return TimeBound(clock=time.fromisoformat(text))
    except ValueError as e:
        raise ScheduleConfigError(f"Invalid time: {raw!r}") from e


def parse_days(raw: Any) -> FrozenSet[Weekday]:
    """
    Parse a day set.

    Accepts Weekday values, day numbers, names ("mon", "Monday"), ranges
    ("mon-fri", "MONDAY..FRIDAY", wrapping like "fri-mon"), the groups
    "weekdays", "weekend", "daily", and lists of any of these.

    Raises:
        ScheduleConfigError: If a day is unknown
    """
    if isinstance(raw, (list, tuple, set, frozenset)):
        days: FrozenSet[Weekday] = frozenset()
        for part in raw:
            days |= parse_days(part)
        return days

    if isinstance(raw, Weekday):
        return frozenset({raw})
    if isinstance(raw, int) and not isinstance(raw, bool):
        if not 0 <= raw <= 6:
            raise ScheduleConfigError(f"Invalid day number: {raw}")
        return frozenset({Weekday(raw)})

    text = str(raw).strip().lower()
    if text in _DAY_GROUPS:
        return _DAY_GROUPS[text]

    for separator in ("..", "-"):
        if separator in text:
            first, _, last = text.partition(separator)
            start, end = _day_by_name(first), _day_by_name(last)
            span = (end - start) % 7
            return frozenset(Weekday((start + i) % 7) for i in range(span + 1))

    return frozenset({_day_by_name(text)})


def _day_by_name(name: str) -> Weekday:
    day = _DAY_NAMES.get(name.strip().lower())
    if day is None:
        raise ScheduleConfigError(f"Unknown day: {name!r}")
    return day


def split_overnight(
    days: FrozenSet[Weekday], start: TimeBound, end: TimeBound
) -> List[ScheduleEntry]:
    """
    Build schedule entries for a span, splitting it at midnight if needed.

    A fixed span like 22:00..06:00 (or 22:00..MIDNIGHT+6h) on Monday becomes
    Monday [22:00, 24:00) plus Tuesday [00:00, 06:00). Spans with solar
    bounds are never split.

    Args:
        days: Days on which the span starts
        start: Start bound
        end: End bound

    Returns:
        One or two ScheduleEntries
    """
    start_offset = start.fixed_offset(is_end=False)
    end_offset = end.fixed_offset(is_end=True)
    if start_offset is None or end_offset is None:
        return [ScheduleEntry(days, (TimeRange(start, end),))]
    if end_offset < start_offset:
        tail_end = end
    elif end_offset > DAY:
        tail_end = _clock_bound(end_offset - DAY)
    else:
        return [ScheduleEntry(days, (TimeRange(start, end),))]

    next_days = frozenset(Weekday((d + 1) % 7) for d in days)
    return [
        ScheduleEntry(days, (TimeRange(start, MIDNIGHT),)),
        ScheduleEntry(next_days, (TimeRange(MIDNIGHT, tail_end),)),
    ]


def _clock_bound(offset: timedelta) -> TimeBound:
    if not timedelta(0) <= offset < DAY:
        raise ScheduleConfigError(f"Range end {offset} after midnight spans more than a day")
    seconds = int(offset.total_seconds())
    return TimeBound(clock=time(seconds // 3600, seconds % 3600 // 60, seconds % 60))


def _parse_entries(raw_entries: Iterable[Dict[str, Any]], split: bool) -> List[ScheduleEntry]:
    entries: List[ScheduleEntry] = []
    for raw in raw_entries:
        if not isinstance(raw, dict):
            raise ScheduleConfigError(f"Schedule entry must be a dict: {raw!r}")
        day_spec = raw.get("days", raw.get("day"))
        if day_spec is None:
            raise ScheduleConfigError(f"Schedule entry without days: {raw}")
        days = parse_days(day_spec)

        spans = raw.get("during", [])
        if not spans:
            entries.append(ScheduleEntry(days))
            continue

        ranges: List[TimeRange] = []
        for span in spans:
            if len(span) != 2:
                raise ScheduleConfigError(f"A time range needs a start and an end: {span}")
            start, end = parse_time_bound(span[0]), parse_time_bound(span[1])
            if split:
                pieces = split_overnight(days, start, end)
                if len(pieces) > 1:
                    entries.extend(pieces)
                    continue
            ranges.append(TimeRange(start, end))
        if ranges:
            entries.append(ScheduleEntry(days, tuple(ranges)))
    return entries


def parse_expression(data: Dict[str, Any]) -> ExpressionNode:
    """
    Parse an expression tree from dict.

    Each node is a single-key dict:
        {"and": [...]}, {"or": [...]}, {"not": {...}},
        {"is": {"target": ..., "value": ...}},
        {"goes": {...}}, {"goes_from": {"target": ..., "from": ..., "to": ...}},
        {"receives_command": {...}}, {"receives_update": {...}},
        {"time": {"after": ..., "before": ...}}

    Raises:
        ValueError: On unknown node types or missing keys
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f"Expression must be a single-key dict: {data!r}")

    node_type, body = next(iter(data.items()))

    if node_type in ("and", "or"):
        if not isinstance(body, (list, tuple)):
            raise ValueError(f"'{node_type}' needs a list of expressions: {body!r}")
        children = tuple(parse_expression(c) for c in body)
        return AndNode(children) if node_type == "and" else OrNode(children)
    elif node_type == "not":
        return NotNode(parse_expression(body))
    elif node_type == "time":
        if not isinstance(body, dict):
            raise ValueError(f"'time' needs a dict with after/before: {body!r}")
        return TimeOfDayPredicate(
            after=parse_time_bound(body["after"]) if body.get("after") is not None else None,
            before=parse_time_bound(body["before"]) if body.get("before") is not None else None,
        )

    try:
        kind = PredicateKind(node_type)
    except ValueError:
        raise ValueError(f"Unknown expression type: {node_type}") from None

    if not isinstance(body, dict):
        raise ValueError(f"'{node_type}' needs a dict with a target: {body!r}")
    value_type = ValueType(body["value_type"]) if body.get("value_type") else None
    if kind == PredicateKind.GOES_FROM:
        return DeviceStatePredicate(
            target=_required(body, "target", node_type),
            kind=kind,
            value=parse_value(_required(body, "to", node_type), value_type),
            from_value=parse_value(_required(body, "from", node_type), value_type),
            value_type=value_type,
        )
    return DeviceStatePredicate(
        target=_required(body, "target", node_type),
        kind=kind,
        value=parse_value(body.get("value"), value_type),
        value_type=value_type,
    )


def _required(data: Dict[str, Any], key: str, context: str) -> Any:
    if data.get(key) is None:
        raise ValueError(f"'{context}' needs '{key}': {data!r}")
    return data[key]


def parse_retrigger(data: Dict[str, Any]) -> RetriggerSpec:
    """
    Parse a retrigger spec from dict.

    {"every": "2h"} -> IntervalRetrigger
    {"day": "sun", "at": "NOON"} -> WeeklyRetrigger on Sunday
    {"at": "SUNRISE+30m"} -> WeeklyRetrigger every day
    """
    if "every" in data:
        return IntervalRetrigger(every=parse_duration(data["every"]))
    if "at" in data:
        weekday = None
        if data.get("day") is not None:
            days = parse_days(data["day"])
            if len(days) != 1:
                raise ValueError(f"Retrigger needs a single day: {data['day']!r}")
            weekday = next(iter(days))
        return WeeklyRetrigger(at=parse_time_bound(data["at"]), weekday=weekday)
    raise ValueError(f"Unknown retrigger spec: {data!r}")


def parse_aliases(data: Dict[str, Any]) -> Dict[str, DeviceReference]:
    """
    Parse alias declarations.

    {"Light1": {"item": "very_long_item_name"},
     "Door1": {"channel": "binding:thing:1:contact"},
     "MotionSensor1": {"thing": "binding:gateway:motion:1"}}
    """
    aliases: Dict[str, DeviceReference] = {}
    for alias, target in data.items():
        if isinstance(target, DeviceReference):
            aliases[alias] = target
            continue
        if not isinstance(target, dict) or len(target) != 1:
            raise ValueError(f"Alias '{alias}' needs exactly one of item/thing/channel")
        kind_name, canonical_id = next(iter(target.items()))
        try:
            kind = DeviceKind(kind_name)
        except ValueError:
            raise ValueError(f"Unknown alias kind for '{alias}': {kind_name}") from None
        aliases[alias] = DeviceReference(kind, canonical_id)
    return aliases
