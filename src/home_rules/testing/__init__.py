"""
Offline scenario testing for rule sets.

Scenarios seed mock devices, feed scripted events and virtual delays,
then assert which rules fired.
"""

from .harness import (
    DEFAULT_START_TIME,
    VirtualClock,
    HarnessDriver,
    ScenarioView,
    UpdateState,
    UpdateStatus,
    SendCommand,
    Delay,
    Assertion,
    triggered,
    not_triggered,
    fired_times,
    command_sent,
    state_is,
    cooldown_engaged,
    Scenario,
    ScenarioResult,
    OfflineTestHarness,
)

__all__ = [
    "DEFAULT_START_TIME",
    "VirtualClock",
    "HarnessDriver",
    "ScenarioView",
    # Steps
    "UpdateState",
    "UpdateStatus",
    "SendCommand",
    "Delay",
    # Assertions
    "Assertion",
    "triggered",
    "not_triggered",
    "fired_times",
    "command_sent",
    "state_is",
    "cooldown_engaged",
    # Scenarios
    "Scenario",
    "ScenarioResult",
    "OfflineTestHarness",
]
