"""
Condition evaluators for the rule engine.

Evaluates trigger/suppress expression trees against the event being
processed and the rule's cache of previously seen values.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Optional

from home_rules.core.bus import EventKind, StateChangeEvent
from home_rules.core.devices import DeviceReference
from home_rules.core.errors import (
    ResolutionError,
    ResolutionStatus,
    RuleEngineError,
    TypeMismatchError,
)

from .models import (
    AndNode,
    DeviceStatePredicate,
    ExpressionNode,
    NotNode,
    OrNode,
    PredicateKind,
    RuleRuntimeState,
    TimeOfDayPredicate,
)
from .resolver import TargetResolver
from .schedule import within_time_of_day

if TYPE_CHECKING:
    from .adapter import PlatformAdapter

logger = logging.getLogger(__name__)


@dataclass
class EvaluationContext:
    """Everything one evaluation pass looks at."""

    event: StateChangeEvent
    state: RuleRuntimeState
    now: datetime
    old_value: Any = None  # Value of event.ref before this event
    continue_on_errors: bool = False
    absorbed_errors: List[RuleEngineError] = field(default_factory=list)


class ConditionEvaluator:
    """
    Evaluates expression trees for rules.

    Uses the target resolver for predicate targets, the platform for
    current states and solar times, and the rule's runtime state for
    cached values.
    """

    def __init__(self, resolver: TargetResolver, platform: "PlatformAdapter") -> None:
        self._resolver = resolver
        self._platform = platform

    def evaluate(self, node: ExpressionNode, ctx: EvaluationContext) -> bool:
        """
        Evaluate an expression tree.

        Args:
            node: Root of the tree
            ctx: Evaluation context

        Returns:
            True if the expression holds

        Raises:
            ResolutionError: Unresolvable target (continue_on_errors=False)
            TypeMismatchError: Value type not accepted (continue_on_errors=False)
        """
        if isinstance(node, AndNode):
            return all(self.evaluate(child, ctx) for child in node.children)
        elif isinstance(node, OrNode):
            return any(self.evaluate(child, ctx) for child in node.children)
        elif isinstance(node, NotNode):
            return not self.evaluate(node.child, ctx)
        elif isinstance(node, TimeOfDayPredicate):
            return within_time_of_day(
                ctx.now, node.after, node.before, self._platform.get_solar_time
            )
        elif isinstance(node, DeviceStatePredicate):
            return self._evaluate_predicate(node, ctx)
        else:
            logger.warning(f"Unknown expression node: {type(node)}")
            return False

    def evaluate_any(self, clauses: List[ExpressionNode], ctx: EvaluationContext) -> bool:
        """
        Evaluate clauses (OR logic).

        Args:
            clauses: Clauses to evaluate

        Returns:
            True if ANY clause holds
        """
        for clause in clauses:
            if self.evaluate(clause, ctx):
                return True
        return False

    # =========================================================================
    # Predicate Implementations
    # =========================================================================

    def _evaluate_predicate(self, predicate: DeviceStatePredicate, ctx: EvaluationContext) -> bool:
        try:
            ref = self._resolver.resolve_strict(predicate.target, predicate.value_type)
            self._check_type(predicate, ref)
        except (ResolutionError, TypeMismatchError) as e:
            if not ctx.continue_on_errors:
                raise
            logger.warning(f"Treating predicate on '{predicate.target}' as false: {e}")
            ctx.absorbed_errors.append(e)
            return False

        if predicate.kind == PredicateKind.IS:
            return self._current_value(ref, ctx) == predicate.value
        elif predicate.kind == PredicateKind.GOES:
            return self._check_goes(predicate, ref, ctx)
        elif predicate.kind == PredicateKind.GOES_FROM:
            return self._check_goes_from(predicate, ref, ctx)
        elif predicate.kind == PredicateKind.RECEIVES_COMMAND:
            return self._check_message(predicate, ref, ctx, EventKind.COMMAND)
        elif predicate.kind == PredicateKind.RECEIVES_UPDATE:
            return self._check_message(predicate, ref, ctx, EventKind.UPDATE)
        return False

    def _check_type(self, predicate: DeviceStatePredicate, ref: DeviceReference) -> None:
        """Raise if the predicate's value type isn't accepted by the target."""
        accepted = self._platform.catalog.accepted_types(ref)
        if accepted is None:
            raise ResolutionError(predicate.target, ResolutionStatus.NOT_FOUND)
        if predicate.value_type is not None and predicate.value_type not in accepted:
            raise TypeMismatchError(predicate.target, predicate.value_type, accepted)

    def _current_value(self, ref: DeviceReference, ctx: EvaluationContext) -> Any:
        cache = ctx.state.previous_value_cache
        if ref in cache:
            return cache[ref]
        return self._platform.get_state(ref)

    def _check_goes(
        self, predicate: DeviceStatePredicate, ref: DeviceReference, ctx: EvaluationContext
    ) -> bool:
        """Event moves the target into the value."""
        event = ctx.event
        if event.ref != ref or not event.changes_state:
            return False
        return event.new_value == predicate.value and ctx.old_value != predicate.value

    def _check_goes_from(
        self, predicate: DeviceStatePredicate, ref: DeviceReference, ctx: EvaluationContext
    ) -> bool:
        """Event moves the target from one value into another."""
        event = ctx.event
        if event.ref != ref or not event.changes_state:
            return False
        return ctx.old_value == predicate.from_value and event.new_value == predicate.value

    def _check_message(
        self,
        predicate: DeviceStatePredicate,
        ref: DeviceReference,
        ctx: EvaluationContext,
        kind: EventKind,
    ) -> bool:
        """Event is a message of the given kind, optionally with the value."""
        event = ctx.event
        if event.kind != kind or event.ref != ref:
            return False
        return predicate.value is None or event.new_value == predicate.value


def previous_value(
    event: StateChangeEvent, state: RuleRuntimeState
) -> Optional[Any]:
    """
    Value of the event's device before the event.

    Prefers the value carried by the event; falls back to the rule's cache.
    """
    if event.old_value is not None:
        return event.old_value
    if event.ref is None:
        return None
    return state.previous_value_cache.get(event.ref)
