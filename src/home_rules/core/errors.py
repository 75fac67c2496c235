"""
Error taxonomy for the rule engine.

Load-time errors (AliasConflictError, ScheduleConfigError) abort loading a
rule set. Evaluation-time errors (ResolutionError, TypeMismatchError) are
either absorbed or reported, depending on a rule's continue_on_errors flag.
"""

from enum import Enum
from typing import FrozenSet, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from home_rules.core.devices import DeviceReference
    from home_rules.core.values import ValueType


class RuleEngineError(Exception):
    """Base class for all rule engine errors."""


class AliasConflictError(RuleEngineError):
    """An alias is already bound to a different device reference."""

    def __init__(
        self,
        alias: str,
        existing: "DeviceReference",
        requested: "DeviceReference",
    ) -> None:
        self.alias = alias
        self.existing = existing
        self.requested = requested
        super().__init__(
            f"Alias '{alias}' already refers to {existing.kind.value} "
            f"'{existing.canonical_id}', cannot rebind to {requested.kind.value} "
            f"'{requested.canonical_id}'"
        )


class ResolutionStatus(Enum):
    """Outcome of resolving a target spec."""

    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"


class ResolutionError(RuleEngineError):
    """A target spec did not resolve to exactly one device."""

    def __init__(self, spec: str, status: ResolutionStatus) -> None:
        self.spec = spec
        self.status = status
        super().__init__(f"Cannot resolve '{spec}': {status.value}")


class TypeMismatchError(RuleEngineError):
    """A predicate value does not fit the resolved target's declared type."""

    def __init__(
        self,
        spec: str,
        value_type: Optional["ValueType"],
        accepted: FrozenSet["ValueType"],
    ) -> None:
        self.spec = spec
        self.value_type = value_type
        self.accepted = accepted
        accepted_names = ", ".join(sorted(t.value for t in accepted)) or "nothing"
        type_name = value_type.value if value_type else "none"
        super().__init__(f"'{spec}' accepts {accepted_names}, not {type_name}")


class ScheduleConfigError(RuleEngineError):
    """A schedule window is malformed (e.g., an unsplit overnight range)."""


class HarnessError(RuleEngineError):
    """Base class for offline test harness errors."""


class HarnessSetupError(HarnessError):
    """A scenario refers to a malformed or unknown test target."""
