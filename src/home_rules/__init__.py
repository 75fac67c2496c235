"""
home-rules: A platform-agnostic rule engine for home automation.

This library evaluates declarative rules against device events:
- Typed device model (items, things, channels) and aliases
- Trigger/suppress clauses with ordered target resolution
- Weekly schedule windows, cooldown and periodic retrigger
- Offline scenario testing against a virtual clock
"""

from home_rules.core.bus import EventBus, EventFilter, StateChangeEvent
from home_rules.core.catalog import DeviceCatalog
from home_rules.rules.engine import RuleEngine
from home_rules.rules.models import Rule, RuleSet
from home_rules.rules.module import RulesModule

__version__ = "0.1.0-alpha"

__all__ = [
    "EventBus",
    "EventFilter",
    "StateChangeEvent",
    "DeviceCatalog",
    "RuleEngine",
    "Rule",
    "RuleSet",
    "RulesModule",
]
