"""Tests for the rule engine and rule state machine."""

import pytest
from datetime import datetime, timedelta, UTC

from home_rules.core.bus import EventBus, EventKind, StateChangeEvent
from home_rules.core.catalog import DeviceCatalog
from home_rules.core.devices import channel_ref, item_ref, thing_ref
from home_rules.core.errors import AliasConflictError, ResolutionError
from home_rules.core.values import CLOSED, OFF, OFFLINE, ON, ONLINE, OPEN, ValueType, percent
from home_rules.rules import (
    IntervalRetrigger,
    MockPlatformAdapter,
    Rule,
    RuleEngine,
    RuleSet,
    RuleState,
    Schedule,
    all_of,
    goes,
    goes_from,
    is_,
    not_,
    receives_command,
)

DOOR = channel_ref("zwave:door:1:contact")
MOTION = thing_ref("zwave:motion:1")
LIGHT1 = item_ref("Light1")
LIGHT2 = item_ref("Light2")

T0 = datetime(2025, 1, 6, 16, 0, 0, tzinfo=UTC)  # Monday


@pytest.fixture
def platform():
    """Create a mock platform with a door, motion sensor, lights and a radio."""
    catalog = DeviceCatalog()
    catalog.add_thing("zwave:door:1", label="Door1")
    catalog.add_channel("zwave:door:1", "contact", [ValueType.OPEN_CLOSED])
    catalog.add_thing("zwave:motion:1", label="MotionSensor1")
    catalog.add_item("Light1", [ValueType.ON_OFF])
    catalog.add_item("Light2", [ValueType.ON_OFF])
    catalog.add_thing("upnp:radio:1", label="Internet Radio1")
    catalog.add_channel("upnp:radio:1", "power", [ValueType.ON_OFF], is_default=True)
    catalog.add_channel("upnp:radio:1", "volume", [ValueType.PERCENT])

    adapter = MockPlatformAdapter(catalog)
    adapter.set_current_time(T0)
    return adapter


@pytest.fixture
def engine(platform):
    """Create a rule engine with mock platform."""
    return RuleEngine(platform)


class Recorder:
    """Action that records its invocations."""

    def __init__(self):
        self.calls = []

    def __call__(self, rule_name, context):
        self.calls.append((rule_name, context.event.ref, context.now))


def door(platform, value, old=None):
    """Update the door at the platform and build the matching event."""
    platform.set_state(DOOR, value)
    return StateChangeEvent(
        ref=DOOR, kind=EventKind.UPDATE, new_value=value, old_value=old, timestamp=platform.get_current_time()
    )


def door_rule(name="door_opens", **kwargs):
    kwargs.setdefault("trigger_clauses", [goes_from("Door1", CLOSED, OPEN)])
    return Rule(name=name, **kwargs)


class TestEventProcessing:
    """Tests for event processing."""

    def test_no_rules(self, engine, platform):
        """Test processing an event with no rules."""
        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert result.rules_evaluated == 0
        assert result.rules_triggered == 0
        assert result.actions_executed == 0

    def test_transition_fires(self, engine, platform):
        """Test a CLOSED -> OPEN transition fires the rule."""
        action = Recorder()
        engine.load_rule_set(RuleSet(rules=[door_rule(actions=[action])]))

        result = engine.process_event(door(platform, CLOSED))
        assert result.rules_triggered == 0

        result = engine.process_event(door(platform, OPEN, CLOSED))
        assert result.rules_evaluated == 1
        assert result.rules_triggered == 1
        assert result.actions_executed == 1
        assert action.calls == [("door_opens", DOOR, T0)]
        assert engine.is_triggered("door_opens")
        assert engine.fired_count("door_opens") == 1

    def test_old_value_from_cache(self, engine, platform):
        """Test transitions use the rule's cache when events carry no old value."""
        engine.load_rule_set(RuleSet(rules=[door_rule()]))

        engine.process_event(door(platform, CLOSED))
        result = engine.process_event(door(platform, OPEN))

        assert result.rules_triggered == 1

    def test_no_transition_no_fire(self, engine, platform):
        """Test a plain CLOSED update doesn't fire a goes_from rule."""
        engine.load_rule_set(RuleSet(rules=[door_rule()]))

        engine.process_event(door(platform, CLOSED))

        assert engine.is_not_triggered("door_opens")

    def test_outcomes(self, engine, platform):
        """Test each rule reports an outcome and returns to IDLE."""
        engine.load_rule_set(RuleSet(rules=[door_rule()]))

        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert [o.state for o in result.outcomes] == [RuleState.FIRING]
        assert engine.get_machine("door_opens").state == RuleState.IDLE

    def test_history(self, engine, platform):
        """Test fires are recorded in history."""
        engine.load_rule_set(RuleSet(rules=[door_rule()]))
        engine.process_event(door(platform, OPEN, CLOSED))

        history = engine.get_history()
        assert len(history) == 1
        assert history[0].rule_name == "door_opens"
        assert history[0].event_kind == "update"
        assert history[0].target == str(DOOR)

        engine.reset_history()
        assert engine.get_history() == []
        assert engine.is_not_triggered("door_opens")


class TestClauseLogic:
    """Tests for clause OR and predicate AND."""

    @pytest.mark.parametrize(
        "light, motion, door_old, expected",
        [
            (ON, OFFLINE, OPEN, True),  # A and B
            (ON, ONLINE, OPEN, False),  # A only
            (OFF, OFFLINE, OPEN, False),  # B only
            (OFF, ONLINE, CLOSED, True),  # D only
            (ON, OFFLINE, CLOSED, True),  # both clauses
        ],
    )
    def test_a_and_b_or_d(self, engine, platform, light, motion, door_old, expected):
        """Test the rule fires iff (A and B) or D."""
        platform.set_state(LIGHT1, light)
        platform.set_state(MOTION, motion)
        engine.load_rule_set(
            RuleSet(
                rules=[
                    Rule(
                        name="combo",
                        trigger_clauses=[
                            all_of(is_("Light1", ON), is_("MotionSensor1", OFFLINE)),
                            goes("Door1", OPEN),
                        ],
                    )
                ]
            )
        )

        result = engine.process_event(door(platform, OPEN, door_old))

        assert (result.rules_triggered == 1) is expected


class TestSuppression:
    """Tests for suppress clauses and schedule gating."""

    def test_suppress_wins_over_trigger(self, engine, platform):
        """Test a true suppress clause blocks a true trigger clause."""
        platform.set_state(LIGHT1, ON)
        engine.load_rule_set(
            RuleSet(rules=[door_rule(suppress_clauses=[is_("Light1", ON)])])
        )

        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert result.rules_triggered == 0
        assert result.outcomes[0].state == RuleState.SUPPRESSED

    def test_forbidden_window(self, engine, platform):
        """Test a forbidden window suppresses the rule."""
        schedule = Schedule.from_dict({"forbidden_at": [{"day": "monday"}]})
        engine.load_rule_set(RuleSet(rules=[door_rule(schedule=schedule)]))

        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert result.outcomes[0].state == RuleState.SUPPRESSED
        assert "forbidden" in result.outcomes[0].reason

    def test_disabled_by_default_outside_windows(self, engine, platform):
        """Test enabled_by_default=False blocks outside enabled windows."""
        schedule = Schedule.from_dict({"enabled_at": [{"days": "weekend"}]})
        engine.load_rule_set(
            RuleSet(rules=[door_rule(schedule=schedule, enabled_by_default=False)])
        )

        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert result.outcomes[0].state == RuleState.SUPPRESSED

    def test_enabled_window(self, engine, platform):
        """Test enabled windows allow the rule."""
        schedule = Schedule.from_dict(
            {"enabled_at": [{"days": "mon-fri", "during": [[1530, "MIDNIGHT"]]}]}
        )
        engine.load_rule_set(
            RuleSet(rules=[door_rule(schedule=schedule, enabled_by_default=False)])
        )

        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert result.rules_triggered == 1


class TestCooldown:
    """Tests for dont_retrigger_within."""

    def test_cooldown_blocks_refire(self, engine, platform):
        """Test no fire within the cooldown window."""
        engine.load_rule_set(
            RuleSet(rules=[door_rule(dont_retrigger_within=timedelta(minutes=30))])
        )
        engine.process_event(door(platform, OPEN, CLOSED))

        platform.set_current_time(T0 + timedelta(minutes=10))
        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert result.outcomes[0].state == RuleState.SUPPRESSED
        assert "cooldown" in result.outcomes[0].reason
        assert engine.fired_count("door_opens") == 1

    def test_fires_after_cooldown(self, engine, platform):
        """Test the rule fires again once the cooldown elapsed."""
        engine.load_rule_set(
            RuleSet(rules=[door_rule(dont_retrigger_within=timedelta(minutes=30))])
        )
        engine.process_event(door(platform, OPEN, CLOSED))

        platform.set_current_time(T0 + timedelta(minutes=30))
        engine.process_event(door(platform, OPEN, CLOSED))

        assert engine.fired_count("door_opens") == 2

    def test_default_cooldown(self, engine, platform):
        """Test the default cooldown is three seconds."""
        engine.load_rule_set(RuleSet(rules=[door_rule()]))
        engine.process_event(door(platform, OPEN, CLOSED))

        platform.set_current_time(T0 + timedelta(seconds=2))
        engine.process_event(door(platform, OPEN, CLOSED))
        assert engine.fired_count("door_opens") == 1

        platform.set_current_time(T0 + timedelta(seconds=3))
        engine.process_event(door(platform, OPEN, CLOSED))
        assert engine.fired_count("door_opens") == 2


class TestErrors:
    """Tests for evaluation errors."""

    def test_unresolvable_target_errors(self, engine, platform):
        """Test an unknown target aborts the pass with an ERRORED outcome."""
        action = Recorder()
        rule = Rule(
            name="broken",
            trigger_clauses=[all_of(goes("Door1", OPEN), is_("Motion1", ONLINE))],
            actions=[action],
        )
        engine.load_rule_set(RuleSet(rules=[rule]))

        result = engine.process_event(door(platform, OPEN, CLOSED))

        outcome = result.outcomes[0]
        assert outcome.state == RuleState.ERRORED
        assert isinstance(outcome.error, ResolutionError)
        assert len(result.errors) == 1
        assert action.calls == []
        assert engine.get_machine("broken").state == RuleState.IDLE

        # Next event is evaluated fresh
        result = engine.process_event(door(platform, OPEN, CLOSED))
        assert result.outcomes[0].state == RuleState.ERRORED

    def test_continue_on_errors(self, engine, platform):
        """Test failing predicates count as false with continue_on_errors."""
        rule = Rule(
            name="tolerant",
            trigger_clauses=[is_("Motion1", ONLINE), goes("Door1", OPEN)],
            continue_on_errors=True,
        )
        engine.load_rule_set(RuleSet(rules=[rule]))

        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert result.rules_triggered == 1
        assert len(result.outcomes[0].absorbed_errors) == 1
        assert result.errors == []

    def test_action_error_does_not_undo_fire(self, engine, platform):
        """Test a failing action is logged and the fire still counts."""

        def broken(rule_name, context):
            raise RuntimeError("boom")

        after = Recorder()
        engine.load_rule_set(RuleSet(rules=[door_rule(actions=[broken, after])]))

        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert result.rules_triggered == 1
        assert len(after.calls) == 1
        assert engine.get_history()[0].action_errors == ["boom"]
        assert not engine.get_machine("door_opens").retrigger.may_fire_now(T0)


class TestFiringContext:
    """Tests for what actions can do."""

    def test_send_command_resolves_target(self, engine, platform):
        """Test commands go to the channel matching the value type."""

        def set_volume(rule_name, context):
            context.send_command("Internet Radio1", percent(60))
            context.send_command("Internet Radio1", ON)

        engine.load_rule_set(RuleSet(rules=[door_rule(actions=[set_volume])]))
        engine.process_event(door(platform, OPEN, CLOSED))

        assert platform.get_commands() == [
            (channel_ref("upnp:radio:1:volume"), percent(60)),
            (channel_ref("upnp:radio:1:power"), ON),
        ]

    def test_unresolved_target_dropped(self, engine, platform):
        """Test an unknown action target is dropped without raising."""
        sent = []

        def command_unknown(rule_name, context):
            sent.append(context.send_command("Garage.Opener", ON))

        engine.load_rule_set(RuleSet(rules=[door_rule(actions=[command_unknown])]))
        result = engine.process_event(door(platform, OPEN, CLOSED))

        assert sent == [False]
        assert platform.get_commands() == []
        assert engine.get_history()[0].action_errors == []
        assert result.rules_triggered == 1

    def test_update_state(self, engine, platform):
        """Test actions can update state without a command."""

        def mark(rule_name, context):
            context.update_state("Light2", OFF)

        engine.load_rule_set(RuleSet(rules=[door_rule(actions=[mark])]))
        engine.process_event(door(platform, OPEN, CLOSED))

        assert platform.get_state(LIGHT2) is OFF
        assert platform.get_commands() == []

    def test_services_passed_through(self, engine, platform):
        """Test storage and notification come from the platform."""
        seen = []

        def inspect(rule_name, context):
            seen.append((context.storage, context.notification))

        engine.load_rule_set(RuleSet(rules=[door_rule(actions=[inspect])]))
        engine.process_event(door(platform, OPEN, CLOSED))

        assert seen == [(platform.storage, platform.notification)]


class TestCascading:
    """Tests for events produced by actions."""

    def test_command_triggers_other_rule(self, engine, platform):
        """Test a command sent by one rule can trigger another, after the first completes."""
        bus = EventBus()
        platform.attach_bus(bus)
        bus.subscribe(engine.process_event)
        order = []

        def turn_on_light2(rule_name, context):
            context.send_command("Light2", ON)
            order.append(rule_name)

        def record(rule_name, context):
            order.append(rule_name)

        engine.load_rule_set(
            RuleSet(
                rules=[
                    door_rule(actions=[turn_on_light2]),
                    Rule(
                        name="light2_commanded",
                        trigger_clauses=[receives_command("Light2", ON)],
                        actions=[record],
                    ),
                ]
            )
        )

        platform.update_state(DOOR, CLOSED)
        platform.update_state(DOOR, OPEN)

        assert order == ["door_opens", "light2_commanded"]
        assert platform.get_state(LIGHT2) is None  # commands don't change state


class TestLoading:
    """Tests for rule-set loading and reload."""

    def test_reload_resets_runtime_state(self, engine, platform):
        """Test reloading gives every rule fresh runtime state."""
        rule_set = RuleSet(rules=[door_rule(dont_retrigger_within=timedelta(hours=1))])
        engine.load_rule_set(rule_set)
        engine.process_event(door(platform, OPEN, CLOSED))
        old_machine = engine.get_machine("door_opens")

        engine.load_rule_set(rule_set)

        machine = engine.get_machine("door_opens")
        assert machine is not old_machine
        assert machine.runtime.last_fired_at is None
        assert machine.runtime.previous_value_cache == {}

        engine.process_event(door(platform, OPEN, CLOSED))
        assert engine.fired_count("door_opens") == 2

    def test_alias_conflict_aborts_load(self, engine, platform):
        """Test a conflicting alias keeps the previous rule set active."""
        engine.load_rule_set(RuleSet(rules=[door_rule()]))

        bad = RuleSet(
            rules=[
                Rule(name="a", aliases={"Lamp": LIGHT1}),
                Rule(name="b", aliases={"Lamp": LIGHT2}),
            ]
        )
        with pytest.raises(AliasConflictError):
            engine.load_rule_set(bad)

        assert engine.get_rule_names() == ["door_opens"]

    def test_duplicate_rule_names(self, engine):
        """Test rule names must be unique."""
        with pytest.raises(ValueError):
            engine.load_rule_set(RuleSet(rules=[door_rule(), door_rule()]))

    def test_aliases_resolve(self, engine, platform):
        """Test rule-set and rule aliases are used for targets."""
        rule = Rule(
            name="aliased",
            trigger_clauses=[all_of(goes("FrontDoor", OPEN), not_(is_("Lamp", ON)))],
            aliases={"Lamp": LIGHT1},
        )
        engine.load_rule_set(RuleSet(rules=[rule], aliases={"FrontDoor": DOOR}))

        assert engine.aliases.frozen
        result = engine.process_event(door(platform, OPEN, CLOSED))
        assert result.rules_triggered == 1


class TestPeriodicRetrigger:
    """Tests for scheduler ticks."""

    def test_tick_fires_rule(self, engine, platform):
        """Test a due tick fires the rule without trigger clauses."""
        action = Recorder()
        rule = Rule(
            name="every_hour",
            retrigger_every=[IntervalRetrigger(timedelta(hours=1))],
            actions=[action],
        )
        engine.load_rule_set(RuleSet(rules=[rule]))

        assert engine.next_wakeup() == T0 + timedelta(hours=1)
        assert engine.tick(T0 + timedelta(minutes=30)).rules_evaluated == 0

        result = engine.tick(T0 + timedelta(hours=1))
        assert result.rules_triggered == 1
        assert action.calls == [("every_hour", None, T0 + timedelta(hours=1))]
        assert engine.next_wakeup() == T0 + timedelta(hours=2)

    def test_tick_honors_suppression(self, engine, platform):
        """Test ticks still pass through suppress clauses."""
        platform.set_state(LIGHT1, ON)
        rule = Rule(
            name="every_hour",
            suppress_clauses=[is_("Light1", ON)],
            retrigger_every=[IntervalRetrigger(timedelta(hours=1))],
        )
        engine.load_rule_set(RuleSet(rules=[rule]))

        result = engine.tick(T0 + timedelta(hours=1))

        assert result.outcomes[0].state == RuleState.SUPPRESSED
        assert engine.next_wakeup() == T0 + timedelta(hours=2)

    def test_reload_discards_pending_ticks(self, engine, platform):
        """Test reload recomputes periodic ticks from the load time."""
        rule_set = RuleSet(
            rules=[Rule(name="every_hour", retrigger_every=[IntervalRetrigger(timedelta(hours=1))])]
        )
        engine.load_rule_set(rule_set)

        platform.set_current_time(T0 + timedelta(minutes=45))
        engine.load_rule_set(rule_set)

        assert engine.next_wakeup() == T0 + timedelta(minutes=105)
