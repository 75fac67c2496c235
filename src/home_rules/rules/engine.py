"""
Rule engine - core rule processing logic.

Handles suppression, schedule gating, cooldown, trigger matching and
action invocation for every loaded rule.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional, Union

from home_rules.core.bus import EventKind, StateChangeEvent
from home_rules.core.devices import DeviceReference
from home_rules.core.errors import ResolutionStatus, RuleEngineError
from home_rules.core.values import ValueType, value_type_of

from .aliases import AliasRegistry
from .evaluators import ConditionEvaluator, EvaluationContext, previous_value
from .models import (
    EvaluationOutcome,
    FiringRecord,
    Rule,
    RuleRuntimeState,
    RuleSet,
    RuleState,
    WindowState,
)
from .resolver import TargetResolver
from .retrigger import RetriggerController
from .schedule import ScheduleWindow

if TYPE_CHECKING:
    from .adapter import PlatformAdapter

logger = logging.getLogger(__name__)


@dataclass
class EngineResult:
    """Result of processing an event or a scheduler tick."""

    rules_evaluated: int = 0
    rules_triggered: int = 0
    actions_executed: int = 0
    errors: List[str] = field(default_factory=list)
    outcomes: List[EvaluationOutcome] = field(default_factory=list)

    def merge(self, other: "EngineResult") -> None:
        self.rules_evaluated += other.rules_evaluated
        self.rules_triggered += other.rules_triggered
        self.actions_executed += other.actions_executed
        self.errors.extend(other.errors)
        self.outcomes.extend(other.outcomes)


class FiringContext:
    """
    What an action callback gets when its rule fires.

    Targets given to send_command/update_state resolve exactly like
    predicate targets. A target that doesn't resolve (not found or
    ambiguous) is dropped without raising.
    """

    def __init__(
        self,
        rule_name: str,
        event: StateChangeEvent,
        now: datetime,
        resolver: TargetResolver,
        platform: "PlatformAdapter",
    ) -> None:
        self.rule_name = rule_name
        self.event = event
        self.now = now
        self._resolver = resolver
        self._platform = platform
        self.storage = platform.storage
        self.notification = platform.notification

    def resolve(
        self, spec: str, value_type: Optional[ValueType] = None
    ) -> Optional[DeviceReference]:
        """Resolve a target spec (None if not found or ambiguous)."""
        return self._resolver.resolve(spec, value_type)

    def send_command(self, target: Union[str, DeviceReference], value: Any) -> bool:
        """
        Send a command to a target.

        Returns:
            True if dispatched, False if the target was dropped
        """
        ref = self._target(target, value)
        if ref is None:
            return False
        logger.info(f"Rule '{self.rule_name}': command {value} -> {ref}")
        return self._platform.send_command(ref, value)

    def update_state(self, target: Union[str, DeviceReference], value: Any) -> bool:
        """
        Update a target's state at the platform.

        Returns:
            True if applied, False if the target was dropped
        """
        ref = self._target(target, value)
        if ref is None:
            return False
        logger.info(f"Rule '{self.rule_name}': update {value} -> {ref}")
        return self._platform.update_state(ref, value)

    def _target(
        self, target: Union[str, DeviceReference], value: Any
    ) -> Optional[DeviceReference]:
        if isinstance(target, DeviceReference):
            return target

        resolution = self._resolver.lookup(target, value_type_of(value))
        if resolution.resolved:
            return resolution.reference

        if resolution.status == ResolutionStatus.AMBIGUOUS:
            logger.debug(f"Rule '{self.rule_name}': '{target}' is ambiguous, dropping action")
        else:
            logger.warning(f"Rule '{self.rule_name}': '{target}' not found, dropping action")
        return None


class RuleStateMachine:
    """
    Decides, per event or tick, whether one rule fires.

    Steps:
    1. Suppress clauses (any true -> SUPPRESSED)
    2. Schedule (FORBIDDEN, or DEFAULT with enabled_by_default=False -> SUPPRESSED)
    3. Cooldown (active -> SUPPRESSED)
    4. Trigger clauses (none true -> IDLE; periodic ticks skip this step)
    5. Invoke actions, record the fire (FIRING)

    The machine always returns to IDLE; the returned outcome carries the
    terminal state of the pass.
    """

    def __init__(
        self,
        rule: Rule,
        platform: "PlatformAdapter",
        resolver: TargetResolver,
        evaluator: ConditionEvaluator,
        on_fire: Optional[Callable[[FiringRecord], None]] = None,
    ) -> None:
        self.rule = rule
        self.runtime = RuleRuntimeState()
        self.state = RuleState.IDLE
        self._platform = platform
        self._resolver = resolver
        self._evaluator = evaluator
        self._on_fire = on_fire
        self._window = ScheduleWindow(rule.schedule, platform.get_solar_time)
        self._retrigger = RetriggerController(
            self.runtime,
            rule.dont_retrigger_within,
            rule.retrigger_every,
            platform.get_solar_time,
        )
        self._lock = threading.Lock()

    @property
    def retrigger(self) -> RetriggerController:
        return self._retrigger

    @property
    def window(self) -> ScheduleWindow:
        return self._window

    def arm(self, now: datetime) -> Optional[datetime]:
        """Start periodic retrigger scheduling."""
        return self._retrigger.arm(now)

    # =========================================================================
    # Event Processing
    # =========================================================================

    def handle_event(self, event: StateChangeEvent, now: datetime) -> EvaluationOutcome:
        """
        Run one event through the rule.

        Args:
            event: The state-change event (or periodic tick)
            now: Current time

        Returns:
            Outcome with the terminal state of this pass
        """
        with self._lock:
            return self._handle(event, now)

    def _handle(self, event: StateChangeEvent, now: datetime) -> EvaluationOutcome:
        old_value = previous_value(event, self.runtime)
        if event.changes_state and event.ref is not None:
            self.runtime.previous_value_cache[event.ref] = event.new_value

        self.state = RuleState.EVALUATING
        try:
            outcome = self._evaluate(event, now, old_value)
        finally:
            self.state = RuleState.IDLE

        logger.debug(
            f"Rule '{self.rule.name}': {outcome.state.value}"
            + (f" ({outcome.reason})" if outcome.reason else "")
        )
        return outcome

    def handle_tick(self, now: datetime) -> Optional[EvaluationOutcome]:
        """
        Deliver a periodic tick if one is due.

        Args:
            now: Current time

        Returns:
            Outcome of the tick, or None if no tick was due
        """
        with self._lock:
            if not self._retrigger.due(now):
                return None

            tick = StateChangeEvent(
                ref=None, kind=EventKind.PERIODIC, timestamp=now, source="retrigger"
            )
            outcome = self._handle(tick, now)
            if not outcome.fired:
                self._retrigger.consume(now)
            return outcome

    def _evaluate(
        self, event: StateChangeEvent, now: datetime, old_value: Any
    ) -> EvaluationOutcome:
        rule = self.rule
        ctx = EvaluationContext(
            event=event,
            state=self.runtime,
            now=now,
            old_value=old_value,
            continue_on_errors=rule.continue_on_errors,
        )

        # 1. Suppression
        try:
            if self._evaluator.evaluate_any(rule.suppress_clauses, ctx):
                return self._outcome(RuleState.SUPPRESSED, event, now, ctx, "suppress clause matched")
        except RuleEngineError as e:
            return self._errored(event, now, ctx, e)

        # 2. Schedule
        window = self._window.classify(now)
        if window == WindowState.FORBIDDEN:
            return self._outcome(RuleState.SUPPRESSED, event, now, ctx, "forbidden by schedule")
        if window == WindowState.DEFAULT and not rule.enabled_by_default:
            return self._outcome(RuleState.SUPPRESSED, event, now, ctx, "outside enabled windows")

        # 3. Cooldown
        if not self._retrigger.may_fire_now(now):
            remaining = self._retrigger.cooldown_remaining(now)
            return self._outcome(
                RuleState.SUPPRESSED, event, now, ctx, f"cooldown ({remaining} remaining)"
            )

        # 4. Triggers (a periodic tick is its own trigger)
        if event.kind != EventKind.PERIODIC:
            try:
                triggered = self._evaluator.evaluate_any(rule.trigger_clauses, ctx)
            except RuleEngineError as e:
                return self._errored(event, now, ctx, e)
            if not triggered:
                return self._outcome(RuleState.IDLE, event, now, ctx, "no trigger clause matched")

        # 5. Fire
        self._fire(event, now)
        return self._outcome(RuleState.FIRING, event, now, ctx)

    def _fire(self, event: StateChangeEvent, now: datetime) -> None:
        self.state = RuleState.FIRING
        context = FiringContext(self.rule.name, event, now, self._resolver, self._platform)
        action_errors: List[str] = []
        invoked = 0

        for action in self.rule.actions:
            invoked += 1
            try:
                action(self.rule.name, context)
            except Exception as e:
                action_errors.append(str(e))
                logger.error(f"Error in action of rule '{self.rule.name}': {e}", exc_info=True)

        self._retrigger.record_fired(now)
        logger.info(
            f"Rule '{self.rule.name}' fired on {event.kind.value}"
            + (f" of {event.ref}" if event.ref else "")
        )

        if self._on_fire:
            self._on_fire(
                FiringRecord(
                    rule_name=self.rule.name,
                    timestamp=now,
                    event_kind=event.kind.value,
                    target=str(event.ref) if event.ref else None,
                    actions_invoked=invoked,
                    action_errors=action_errors,
                )
            )

    def _outcome(
        self,
        state: RuleState,
        event: StateChangeEvent,
        now: datetime,
        ctx: EvaluationContext,
        reason: str = "",
        error: Optional[RuleEngineError] = None,
    ) -> EvaluationOutcome:
        return EvaluationOutcome(
            rule_name=self.rule.name,
            state=state,
            timestamp=now,
            event=event,
            reason=reason,
            error=error,
            absorbed_errors=list(ctx.absorbed_errors),
        )

    def _errored(
        self,
        event: StateChangeEvent,
        now: datetime,
        ctx: EvaluationContext,
        error: RuleEngineError,
    ) -> EvaluationOutcome:
        logger.warning(f"Rule '{self.rule.name}' evaluation aborted: {error}")
        return self._outcome(RuleState.ERRORED, event, now, ctx, str(error), error)


class RuleEngine:
    """
    Core engine for rule processing.

    Responsibilities:
    - Load rule sets atomically (aliases, resolver, fresh runtime state)
    - Run every event through every rule, one event at a time
    - Deliver periodic retrigger ticks
    - Track fire history
    """

    HISTORY_SIZE = 100  # Number of fire records to keep in history

    def __init__(self, platform: "PlatformAdapter") -> None:
        self._platform = platform
        self._aliases = AliasRegistry()
        self._resolver = TargetResolver(self._aliases, platform)
        self._machines: Dict[str, RuleStateMachine] = {}

        # Events are processed to completion, one at a time
        self._lock = threading.RLock()
        self._pending: Deque[StateChangeEvent] = deque()
        self._draining = False

        # Fire history (ring buffer) and counts since last reset
        self._history: Deque[FiringRecord] = deque(maxlen=self.HISTORY_SIZE)
        self._fire_counts: Dict[str, int] = {}

    # =========================================================================
    # Configuration
    # =========================================================================

    def load_rule_set(self, rule_set: RuleSet, now: Optional[datetime] = None) -> None:
        """
        Load (or reload) a rule set as one unit.

        Everything is built before the swap; on error the previous rule set
        stays active. Runtime state and periodic timers start fresh.

        Args:
            rule_set: Aliases and rules
            now: Arming time for periodic retriggers (for testing)

        Raises:
            AliasConflictError: If two aliases collide
            ValueError: If two rules share a name
        """
        aliases = AliasRegistry()
        aliases.register_all(rule_set.aliases)
        for rule in rule_set.rules:
            aliases.register_all(rule.aliases)
        aliases.freeze()

        resolver = TargetResolver(aliases, self._platform)
        evaluator = ConditionEvaluator(resolver, self._platform)

        machines: Dict[str, RuleStateMachine] = {}
        for rule in rule_set.rules:
            if rule.name in machines:
                raise ValueError(f"Duplicate rule name: {rule.name}")
            machines[rule.name] = RuleStateMachine(
                rule, self._platform, resolver, evaluator, on_fire=self._record_fire
            )

        if now is None:
            now = self._platform.get_current_time()
        for machine in machines.values():
            machine.arm(now)

        with self._lock:
            self._aliases = aliases
            self._resolver = resolver
            self._machines = machines
            self._pending.clear()

        logger.info(f"Loaded {len(machines)} rules with {len(aliases)} aliases")

    def clear(self) -> None:
        """Unload all rules."""
        self.load_rule_set(RuleSet())

    @property
    def aliases(self) -> AliasRegistry:
        return self._aliases

    @property
    def resolver(self) -> TargetResolver:
        return self._resolver

    def get_rule_names(self) -> List[str]:
        """Get the names of the loaded rules."""
        return list(self._machines)

    def get_machine(self, rule_name: str) -> Optional[RuleStateMachine]:
        """Get the state machine of a loaded rule."""
        return self._machines.get(rule_name)

    # =========================================================================
    # Event Processing
    # =========================================================================

    def process_event(self, event: StateChangeEvent) -> EngineResult:
        """
        Process an incoming event against all rules.

        Events submitted while another event is being processed (e.g., by
        an action) are queued and processed afterwards; their results are
        folded into the outer call's result.

        Args:
            event: The event to process

        Returns:
            Result with counts of rules evaluated/triggered
        """
        with self._lock:
            self._pending.append(event)
            if self._draining:
                return EngineResult()

            self._draining = True
            try:
                return self._drain(EngineResult())
            finally:
                self._draining = False

    def _drain(self, result: EngineResult) -> EngineResult:
        while self._pending:
            result.merge(self._process_one(self._pending.popleft()))
        return result

    def _process_one(self, event: StateChangeEvent) -> EngineResult:
        now = self._platform.get_current_time()
        result = EngineResult()

        for machine in list(self._machines.values()):
            result.rules_evaluated += 1
            self._collect(result, machine, machine.handle_event(event, now))

        return result

    def tick(self, now: Optional[datetime] = None) -> EngineResult:
        """
        Deliver due periodic retrigger ticks.

        Args:
            now: Current time (defaults to the platform clock)

        Returns:
            Result of the delivered ticks
        """
        if now is None:
            now = self._platform.get_current_time()

        result = EngineResult()
        with self._lock:
            if self._draining:
                return result

            self._draining = True
            try:
                for machine in list(self._machines.values()):
                    outcome = machine.handle_tick(now)
                    if outcome is None:
                        continue
                    result.rules_evaluated += 1
                    self._collect(result, machine, outcome)
                # Events published by the fired actions
                return self._drain(result)
            finally:
                self._draining = False

    def next_wakeup(self) -> Optional[datetime]:
        """Earliest pending periodic tick across all rules."""
        ticks = [m.retrigger.next_tick for m in self._machines.values() if m.retrigger.next_tick]
        return min(ticks) if ticks else None

    def _collect(
        self, result: EngineResult, machine: RuleStateMachine, outcome: EvaluationOutcome
    ) -> None:
        result.outcomes.append(outcome)
        if outcome.fired:
            result.rules_triggered += 1
            result.actions_executed += len(machine.rule.actions)
        if outcome.error is not None:
            result.errors.append(f"{outcome.rule_name}: {outcome.error}")

    # =========================================================================
    # History
    # =========================================================================

    def _record_fire(self, record: FiringRecord) -> None:
        self._history.append(record)
        self._fire_counts[record.rule_name] = self._fire_counts.get(record.rule_name, 0) + 1

    def fired_count(self, rule_name: str) -> int:
        """Number of fires of a rule since the last history reset."""
        return self._fire_counts.get(rule_name, 0)

    def is_triggered(self, rule_name: str) -> bool:
        """True if the rule fired since the last history reset."""
        return self.fired_count(rule_name) > 0

    def is_not_triggered(self, rule_name: str) -> bool:
        """True if the rule has not fired since the last history reset."""
        return self.fired_count(rule_name) == 0

    def reset_history(self) -> None:
        """Forget fire history and counts."""
        self._history.clear()
        self._fire_counts.clear()

    def get_history(
        self,
        rule_name: Optional[str] = None,
        limit: int = 20,
    ) -> List[FiringRecord]:
        """
        Get fire history.

        Args:
            rule_name: Filter by rule (optional)
            limit: Maximum entries to return

        Returns:
            List of FiringRecords (newest first)
        """
        result = []
        for record in reversed(self._history):
            if rule_name and record.rule_name != rule_name:
                continue
            result.append(record)
            if len(result) >= limit:
                break
        return result
