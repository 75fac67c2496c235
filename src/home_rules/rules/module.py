"""
RulesModule implementation.

Connects a RuleEngine to an EventBus and loads rule sets from dict
configuration.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from home_rules.core.bus import EventBus, EventFilter, EventKind, StateChangeEvent

from .engine import EngineResult, RuleEngine
from .models import RuleAction, RuleSet

if TYPE_CHECKING:
    from .adapter import PlatformAdapter

logger = logging.getLogger(__name__)


class RulesModule:
    """
    Module that runs rules against device state-change events.

    Features:
    - Dict configuration with named actions
    - Atomic rule-set reload
    - Periodic retrigger ticks driven by the host scheduler
    - Fire history for debugging
    """

    def __init__(self, platform: Optional["PlatformAdapter"] = None) -> None:
        """
        Initialize the rules module.

        Args:
            platform: Platform adapter for state queries, commands and time.
                     Required for rule evaluation. Can be set later via
                     set_platform().
        """
        self._bus: Optional[EventBus] = None
        self._platform: Optional["PlatformAdapter"] = platform
        self._engine: Optional[RuleEngine] = None
        self._actions: Dict[str, RuleAction] = {}
        self._rule_set: Optional[RuleSet] = None
        self._result_listeners: List[Callable[[EngineResult], None]] = []
        self._subscribed = False

    @property
    def id(self) -> str:
        return "rules"

    @property
    def CURRENT_CONFIG_VERSION(self) -> int:
        return 1

    @property
    def engine(self) -> Optional[RuleEngine]:
        return self._engine

    def set_platform(self, platform: "PlatformAdapter") -> None:
        """
        Set the platform adapter.

        If the module is already attached, the engine is (re)created with
        the new platform and the current rule set is loaded again.
        """
        self._platform = platform
        if self._bus:
            self._start()

    def attach(self, bus: EventBus) -> None:
        """
        Attach the module to an event bus.

        Subscribes to device events and initializes the engine.
        """
        logger.info("Attaching RulesModule")
        self._bus = bus

        if not self._platform:
            logger.warning(
                "RulesModule attached without platform adapter. "
                "Rules will not run until set_platform() is called."
            )
            return

        self._start()

    def _start(self) -> None:
        # Mock platforms publish their outgoing messages on the bus
        attach_bus = getattr(self._platform, "attach_bus", None)
        if attach_bus:
            attach_bus(self._bus)

        self._engine = RuleEngine(self._platform)
        if self._rule_set:
            self._engine.load_rule_set(self._rule_set)

        if not self._subscribed:
            self._bus.subscribe(
                self._on_device_event,
                EventFilter(kinds=[EventKind.COMMAND, EventKind.UPDATE, EventKind.STATUS_CHANGE]),
            )
            self._subscribed = True

        logger.info("RulesModule ready")

    # =========================================================================
    # Configuration
    # =========================================================================

    def register_action(self, name: str, action: RuleAction) -> None:
        """
        Register a named action for dict configuration.

        Args:
            name: Name used in a rule's "actions" list
            action: Callback invoked as action(rule_name, context)
        """
        if not name:
            raise ValueError("Action name must not be empty")
        self._actions[name] = action

    def load_config(self, config: Dict[str, Any]) -> RuleSet:
        """
        Parse and load a rule set from a config dict.

        Args:
            config: Dict shaped like default_config()

        Returns:
            The parsed RuleSet

        Raises:
            ValueError: On malformed configuration or unknown action names
            ScheduleConfigError: On malformed schedule windows
            AliasConflictError: On colliding aliases
        """
        if not config.get("enabled", True):
            logger.info("Rules disabled by configuration")
            rule_set = RuleSet()
        else:
            rule_set = RuleSet.from_dict(config, self._actions)

        self.load_rule_set(rule_set)
        return rule_set

    def load_rule_set(self, rule_set: RuleSet) -> None:
        """
        Load (or reload) a rule set.

        Before attach() the rule set is kept and loaded on attach.
        """
        if self._engine:
            self._engine.load_rule_set(rule_set)
        self._rule_set = rule_set
        logger.debug(f"Rule set with {len(rule_set.rules)} rules stored")

    def reload(self) -> None:
        """Reload the current rule set, resetting all runtime state."""
        if self._engine and self._rule_set:
            self._engine.load_rule_set(self._rule_set)

    # =========================================================================
    # Event Handling
    # =========================================================================

    def _on_device_event(self, event: StateChangeEvent) -> None:
        """Handle device events."""
        if not self._engine:
            logger.debug("No engine, skipping event")
            return

        result = self._engine.process_event(event)
        self._report(f"{event.kind.value} of {event.ref}", result)

    def tick(self, now: Optional[datetime] = None) -> EngineResult:
        """
        Deliver due periodic retrigger ticks.

        The host scheduler calls this at (or after) next_wakeup().
        """
        if not self._engine:
            return EngineResult()

        result = self._engine.tick(now)
        self._report("periodic tick", result)
        return result

    def next_wakeup(self) -> Optional[datetime]:
        """When tick() should be called next (None if nothing is scheduled)."""
        if not self._engine:
            return None
        return self._engine.next_wakeup()

    def add_result_listener(self, listener: Callable[[EngineResult], None]) -> None:
        """Get notified of every EngineResult (for observability)."""
        self._result_listeners.append(listener)

    def _report(self, what: str, result: EngineResult) -> None:
        if result.rules_triggered > 0:
            logger.info(
                f"Processed {what}: "
                f"{result.rules_triggered}/{result.rules_evaluated} rules triggered, "
                f"{result.actions_executed} actions executed"
            )
        for error in result.errors:
            logger.warning(f"Rule evaluation error: {error}")
        for listener in self._result_listeners:
            listener(result)

    # =========================================================================
    # Public API
    # =========================================================================

    def get_rule_names(self) -> List[str]:
        """Get the names of the loaded rules."""
        if not self._engine:
            return []
        return self._engine.get_rule_names()

    def get_history(
        self,
        rule_name: Optional[str] = None,
        limit: int = 20,
    ) -> List[Dict]:
        """
        Get rule fire history.

        Args:
            rule_name: Filter by rule (optional)
            limit: Maximum entries to return

        Returns:
            List of fire records
        """
        if not self._engine:
            return []

        history = self._engine.get_history(rule_name, limit)
        return [
            {
                "rule_name": h.rule_name,
                "event_kind": h.event_kind,
                "target": h.target,
                "actions_invoked": h.actions_invoked,
                "action_errors": h.action_errors,
                "timestamp": h.timestamp.isoformat(),
            }
            for h in history
        ]

    def default_config(self) -> Dict:
        """Get default rules configuration."""
        return {
            "version": self.CURRENT_CONFIG_VERSION,
            "enabled": True,
            "aliases": {},
            "rules": [],
        }

    def config_schema(self) -> Dict:
        """
        Get configuration schema for the rules module.

        Returns a JSON-schema-like structure for UI rendering.
        """
        alias_target = {
            "type": "object",
            "properties": {
                "item": {"type": "string"},
                "thing": {"type": "string"},
                "channel": {"type": "string"},
            },
            "minProperties": 1,
            "maxProperties": 1,
        }
        window = {
            "type": "object",
            "properties": {
                "days": {
                    "description": "Day names, ranges (mon-fri), weekdays, weekend or daily",
                },
                "during": {
                    "type": "array",
                    "description": "[start, end] pairs: HH:MM, 1530, 24:00, SUNRISE+30m",
                    "items": {"type": "array", "minItems": 2, "maxItems": 2},
                },
            },
        }
        return {
            "type": "object",
            "properties": {
                "version": {
                    "type": "integer",
                    "title": "Config Version",
                    "readOnly": True,
                },
                "enabled": {
                    "type": "boolean",
                    "title": "Enable Rules",
                    "default": True,
                },
                "aliases": {
                    "type": "object",
                    "title": "Aliases",
                    "description": "Short names for items, things and channels",
                    "additionalProperties": alias_target,
                },
                "rules": {
                    "type": "array",
                    "title": "Rules",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string", "title": "Rule Name"},
                            "aliases": {
                                "type": "object",
                                "additionalProperties": alias_target,
                            },
                            "trigger_when": {
                                "type": "array",
                                "title": "Trigger Clauses",
                                "description": "Rule fires if any clause holds",
                                "items": {"type": "object"},
                            },
                            "suppress_when": {
                                "type": "array",
                                "title": "Suppress Clauses",
                                "description": "Rule doesn't fire if any clause holds",
                                "items": {"type": "object"},
                            },
                            "enabled_at": {"type": "array", "items": window},
                            "forbidden_at": {"type": "array", "items": window},
                            "split_overnight": {
                                "type": "boolean",
                                "description": "Split ranges crossing midnight into two days",
                                "default": False,
                            },
                            "enabled_by_default": {
                                "type": "boolean",
                                "default": True,
                            },
                            "dont_retrigger_within": {
                                "description": "Cooldown (seconds, 3s, 5m, HH:MM:SS)",
                                "default": 3,
                            },
                            "retrigger_every": {
                                "type": "array",
                                "items": {"type": "object"},
                            },
                            "continue_on_errors": {
                                "type": "boolean",
                                "default": False,
                            },
                            "actions": {
                                "type": "array",
                                "title": "Actions",
                                "description": "Names of registered actions",
                                "items": {"type": "string"},
                            },
                        },
                        "required": ["name"],
                    },
                },
            },
            "required": ["version", "enabled"],
        }
