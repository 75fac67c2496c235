"""
Cooldown and periodic re-fire control for one rule.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from .models import (
    IntervalRetrigger,
    RetriggerSpec,
    RuleRuntimeState,
    WeeklyRetrigger,
)
from .schedule import SolarProvider, next_occurrence

logger = logging.getLogger(__name__)


class RetriggerController:
    """
    Enforces a rule's cooldown and schedules its periodic ticks.

    The controller works on the rule's RuleRuntimeState; record_fired() is
    the only place that changes last_fired_at.

    Interval specs count from the later of the arming time and the last
    fire, so a rule fired by its triggers postpones its next periodic tick.
    Weekly specs fire at their next occurrence (solar bounds resolved per
    day).
    """

    def __init__(
        self,
        state: RuleRuntimeState,
        dont_retrigger_within: timedelta,
        specs: List[RetriggerSpec],
        solar: SolarProvider,
    ) -> None:
        if dont_retrigger_within < timedelta(0):
            raise ValueError("dont_retrigger_within must be >= 0")
        self._state = state
        self._cooldown = dont_retrigger_within
        self._specs = list(specs)
        self._solar = solar
        self._armed_at: Optional[datetime] = None
        self._next_tick: Optional[datetime] = None

    @property
    def last_fired_at(self) -> Optional[datetime]:
        return self._state.last_fired_at

    @property
    def next_tick(self) -> Optional[datetime]:
        """When the next periodic tick is due (None without periodic specs)."""
        return self._next_tick

    # =========================================================================
    # Cooldown
    # =========================================================================

    def may_fire_now(self, now: datetime) -> bool:
        """
        Check if the cooldown has elapsed.

        Args:
            now: Current time

        Returns:
            False while now - last_fired_at < dont_retrigger_within
        """
        last = self._state.last_fired_at
        if last is None:
            return True
        return now - last >= self._cooldown

    def cooldown_remaining(self, now: datetime) -> timedelta:
        """Time left until the rule may fire again (zero if it may)."""
        last = self._state.last_fired_at
        if last is None:
            return timedelta(0)
        return max(timedelta(0), self._cooldown - (now - last))

    def record_fired(self, now: datetime) -> None:
        """
        Record a fire.

        Args:
            now: Fire time
        """
        self._state.last_fired_at = now
        if self._armed_at is not None:
            self._next_tick = self._compute_next(now)

    # =========================================================================
    # Periodic Ticks
    # =========================================================================

    def arm(self, now: datetime) -> Optional[datetime]:
        """
        Start periodic scheduling.

        Args:
            now: Arming time (rule-set load time)

        Returns:
            The first tick time, or None without periodic specs
        """
        self._armed_at = now
        self._next_tick = self._compute_next(now)
        if self._next_tick:
            logger.debug(f"Armed periodic retrigger, next tick at {self._next_tick}")
        return self._next_tick

    def due(self, now: datetime) -> bool:
        """Check if the next periodic tick has been reached."""
        return self._next_tick is not None and now >= self._next_tick

    def consume(self, now: datetime) -> Optional[datetime]:
        """
        Acknowledge a due tick and schedule the following one.

        Args:
            now: Current time

        Returns:
            The next tick time
        """
        self._next_tick = self._compute_next(now)
        return self._next_tick

    def _compute_next(self, now: datetime) -> Optional[datetime]:
        candidates: List[datetime] = []
        for spec in self._specs:
            if isinstance(spec, IntervalRetrigger):
                base = self._armed_at or now
                last = self._state.last_fired_at
                if last is not None and last > base:
                    base = last
                tick = base + spec.every
                while tick <= now:
                    tick += spec.every
                candidates.append(tick)
            elif isinstance(spec, WeeklyRetrigger):
                candidates.append(next_occurrence(spec.at, now, self._solar, spec.weekday))
        return min(candidates) if candidates else None
