"""
Rule engine for home-rules.

Evaluates declarative rules against device state-change events.

Features:
- Trigger and suppress clauses over item/thing/channel states
- Alias registry and ordered target resolution with tie-break
- Weekly enabled/forbidden schedule windows with solar anchors
- Per-rule cooldown and periodic retrigger
- Fire history for debugging and offline tests

Pipeline:
    event -> suppress clauses -> schedule window -> cooldown
          -> trigger clauses -> actions
"""

from .module import RulesModule
from .models import (
    # Enums
    PredicateKind,
    SolarAnchor,
    Weekday,
    WindowState,
    RuleState,
    # Schedule
    TimeBound,
    TimeRange,
    ScheduleEntry,
    Schedule,
    MIDNIGHT,
    FULL_DAY,
    # Expressions
    DeviceStatePredicate,
    TimeOfDayPredicate,
    AndNode,
    OrNode,
    NotNode,
    ExpressionNode,
    is_,
    goes,
    goes_from,
    receives_command,
    receives_update,
    all_of,
    any_of,
    not_,
    # Retrigger
    IntervalRetrigger,
    WeeklyRetrigger,
    RetriggerSpec,
    # Rule
    DEFAULT_DONT_RETRIGGER_WITHIN,
    RuleAction,
    Rule,
    RuleSet,
    RuleRuntimeState,
    EvaluationOutcome,
    FiringRecord,
    # Parsing
    parse_duration,
    parse_time_bound,
    parse_days,
    parse_expression,
    split_overnight,
)
from .aliases import AliasRegistry
from .resolver import Resolution, TargetResolver
from .adapter import (
    PlatformAdapter,
    MockPlatformAdapter,
    FixedSolarCalendar,
    InMemoryStorageService,
    RecordingNotifier,
)
from .engine import EngineResult, FiringContext, RuleEngine, RuleStateMachine
from .evaluators import ConditionEvaluator, EvaluationContext
from .retrigger import RetriggerController
from .schedule import ScheduleWindow

from .presets import (
    command_action,
    update_action,
    notify_action,
    increment_counter,
    sequence,
)

__all__ = [
    # Main module
    "RulesModule",
    # Engine
    "RuleEngine",
    "RuleStateMachine",
    "EngineResult",
    "FiringContext",
    # Resolution
    "AliasRegistry",
    "TargetResolver",
    "Resolution",
    # Adapter
    "PlatformAdapter",
    "MockPlatformAdapter",
    "FixedSolarCalendar",
    "InMemoryStorageService",
    "RecordingNotifier",
    # Evaluation
    "ConditionEvaluator",
    "EvaluationContext",
    "ScheduleWindow",
    "RetriggerController",
    # Enums
    "PredicateKind",
    "SolarAnchor",
    "Weekday",
    "WindowState",
    "RuleState",
    # Schedule
    "TimeBound",
    "TimeRange",
    "ScheduleEntry",
    "Schedule",
    "MIDNIGHT",
    "FULL_DAY",
    # Expressions
    "DeviceStatePredicate",
    "TimeOfDayPredicate",
    "AndNode",
    "OrNode",
    "NotNode",
    "ExpressionNode",
    "is_",
    "goes",
    "goes_from",
    "receives_command",
    "receives_update",
    "all_of",
    "any_of",
    "not_",
    # Retrigger
    "IntervalRetrigger",
    "WeeklyRetrigger",
    "RetriggerSpec",
    # Rule
    "DEFAULT_DONT_RETRIGGER_WITHIN",
    "RuleAction",
    "Rule",
    "RuleSet",
    "RuleRuntimeState",
    "EvaluationOutcome",
    "FiringRecord",
    # Parsing
    "parse_duration",
    "parse_time_bound",
    "parse_days",
    "parse_expression",
    "split_overnight",
    # Presets
    "command_action",
    "update_action",
    "notify_action",
    "increment_counter",
    "sequence",
]
