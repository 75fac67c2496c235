"""Tests for rule models and config parsing."""

import pytest
from datetime import time, timedelta

from home_rules.core.devices import DeviceKind, channel_ref, item_ref, thing_ref
from home_rules.core.errors import ScheduleConfigError
from home_rules.core.values import CLOSED, OFFLINE, ON, OPEN, ValueType, percent
from home_rules.rules import (
    DEFAULT_DONT_RETRIGGER_WITHIN,
    MIDNIGHT,
    AndNode,
    DeviceStatePredicate,
    IntervalRetrigger,
    NotNode,
    OrNode,
    PredicateKind,
    Rule,
    RuleSet,
    SolarAnchor,
    TimeOfDayPredicate,
    Weekday,
    WeeklyRetrigger,
    parse_days,
    parse_duration,
    parse_expression,
    parse_time_bound,
)
from home_rules.rules.models import parse_aliases, parse_retrigger


def noop(rule_name, context):
    pass


class TestParseDuration:
    """Tests for duration parsing."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (3, timedelta(seconds=3)),
            (0.5, timedelta(milliseconds=500)),
            ("3s", timedelta(seconds=3)),
            ("30m", timedelta(minutes=30)),
            ("23h", timedelta(hours=23)),
            ("1d", timedelta(days=1)),
            ("01:30", timedelta(hours=1, minutes=30)),
            ("00:00:45", timedelta(seconds=45)),
            (timedelta(minutes=2), timedelta(minutes=2)),
        ],
    )
    def test_formats(self, raw, expected):
        assert parse_duration(raw) == expected

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_duration("soon")


class TestParseTimeBound:
    """Tests for time bound parsing."""

    def test_military_time(self):
        assert parse_time_bound(1530).clock == time(15, 30)
        assert parse_time_bound(630).clock == time(6, 30)
        assert parse_time_bound("0630").clock == time(6, 30)

    def test_end_of_day(self):
        assert parse_time_bound(2400) == MIDNIGHT
        assert parse_time_bound("24:00") == MIDNIGHT

    def test_clock_string(self):
        assert parse_time_bound("07:15").clock == time(7, 15)

    def test_anchor_with_offset(self):
        bound = parse_time_bound("SUNRISE+30m")
        assert bound.anchor == SolarAnchor.SUNRISE
        assert bound.offset == timedelta(minutes=30)
        assert bound.is_solar

    def test_noon_is_solar(self):
        assert parse_time_bound("NOON").is_solar
        assert not MIDNIGHT.is_solar

    @pytest.mark.parametrize("raw", [2460, "25:00", "later", "SUNRISE+x"])
    def test_invalid(self, raw):
        with pytest.raises(ScheduleConfigError):
            parse_time_bound(raw)


class TestParseDays:
    """Tests for day-set parsing."""

    def test_single_day(self):
        assert parse_days("Sunday") == {Weekday.SUNDAY}
        assert parse_days("wed") == {Weekday.WEDNESDAY}

    def test_range(self):
        assert parse_days("MONDAY..FRIDAY") == parse_days("weekdays")
        assert parse_days("mon-fri") == parse_days("weekdays")

    def test_wrapping_range(self):
        assert parse_days("fri-mon") == {
            Weekday.FRIDAY,
            Weekday.SATURDAY,
            Weekday.SUNDAY,
            Weekday.MONDAY,
        }

    def test_list(self):
        assert parse_days(["sat", "sun"]) == parse_days("weekend")

    def test_unknown_day(self):
        with pytest.raises(ScheduleConfigError):
            parse_days("someday")


class TestParseExpression:
    """Tests for expression parsing."""

    def test_is(self):
        node = parse_expression({"is": {"target": "Light1", "value": "ON"}})

        assert node == DeviceStatePredicate("Light1", PredicateKind.IS, ON)
        assert node.value_type == ValueType.ON_OFF

    def test_goes_from(self):
        node = parse_expression({"goes_from": {"target": "Door1", "from": "CLOSED", "to": "OPEN"}})

        assert node.kind == PredicateKind.GOES_FROM
        assert node.from_value is CLOSED
        assert node.value is OPEN

    def test_status_value(self):
        node = parse_expression({"is": {"target": "MotionSensor1", "value": "OFFLINE"}})

        assert node.value is OFFLINE
        assert node.value_type == ValueType.STATUS

    def test_explicit_value_type(self):
        node = parse_expression(
            {"is": {"target": "Radio", "value": 60, "value_type": "percent"}}
        )

        assert node.value == percent(60)

    def test_receives_command_any_value(self):
        node = parse_expression({"receives_command": {"target": "Light2"}})

        assert node.kind == PredicateKind.RECEIVES_COMMAND
        assert node.value is None

    def test_nested(self):
        node = parse_expression(
            {
                "and": [
                    {"is": {"target": "MotionSensor1", "value": "OFFLINE"}},
                    {"not": {"is": {"target": "Light1", "value": "ON"}}},
                    {"or": [{"time": {"after": "SUNSET"}}, {"time": {"before": 630}}]},
                ]
            }
        )

        assert isinstance(node, AndNode)
        assert isinstance(node.children[1], NotNode)
        assert isinstance(node.children[2], OrNode)
        assert node.children[2].children[1] == TimeOfDayPredicate(before=parse_time_bound(630))

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown expression type"):
            parse_expression({"becomes": {"target": "Light1", "value": "ON"}})

    def test_multi_key_dict(self):
        with pytest.raises(ValueError):
            parse_expression({"is": {}, "goes": {}})

    def test_is_needs_value(self):
        with pytest.raises(ValueError):
            parse_expression({"is": {"target": "Light1"}})

    @pytest.mark.parametrize(
        "data",
        [
            {"is": {"value": "ON"}},
            {"is": "Light1"},
            {"goes_from": {"target": "Door1", "to": "OPEN"}},
            {"goes_from": {"target": "Door1", "from": "CLOSED"}},
            {"and": {"is": {"target": "Light1", "value": "ON"}}},
            {"time": "SUNSET"},
        ],
    )
    def test_malformed_body(self, data):
        with pytest.raises(ValueError):
            parse_expression(data)

    def test_bool_value_normalised(self):
        node = DeviceStatePredicate("Light1", PredicateKind.IS, True)

        assert node.value is ON
        assert node.value_type == ValueType.ON_OFF
        assert DeviceStatePredicate("Light1", PredicateKind.GOES_FROM, False, True).from_value is ON


class TestParseRetrigger:
    """Tests for retrigger spec parsing."""

    def test_interval(self):
        assert parse_retrigger({"every": "2h"}) == IntervalRetrigger(timedelta(hours=2))

    def test_weekly(self):
        spec = parse_retrigger({"day": "sun", "at": "NOON"})

        assert spec == WeeklyRetrigger(parse_time_bound("NOON"), Weekday.SUNDAY)

    def test_daily(self):
        assert parse_retrigger({"at": "SUNRISE+30m"}).weekday is None

    def test_several_days_rejected(self):
        with pytest.raises(ValueError):
            parse_retrigger({"day": "weekend", "at": 1200})

    def test_non_positive_interval(self):
        with pytest.raises(ValueError):
            parse_retrigger({"every": 0})


class TestParseAliases:
    """Tests for alias declarations."""

    def test_kinds(self):
        aliases = parse_aliases(
            {
                "Light1": {"item": "very_very_long_item_name1"},
                "Door1": {"channel": "very:very:long:channel:uid1"},
                "MotionSensor1": {"thing": "binding2:gateway1:motion:MotionSensor1"},
            }
        )

        assert aliases["Light1"] == item_ref("very_very_long_item_name1")
        assert aliases["Door1"] == channel_ref("very:very:long:channel:uid1")
        assert aliases["MotionSensor1"].kind == DeviceKind.THING

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            parse_aliases({"X": {"widget": "w1"}})

    def test_needs_one_kind(self):
        with pytest.raises(ValueError):
            parse_aliases({"X": {"item": "a", "thing": "b"}})


class TestRule:
    """Tests for Rule construction and from_dict."""

    def test_defaults(self):
        rule = Rule(name="r")

        assert rule.enabled_by_default is True
        assert rule.continue_on_errors is False
        assert rule.dont_retrigger_within == DEFAULT_DONT_RETRIGGER_WITHIN == timedelta(seconds=3)

    def test_empty_name(self):
        with pytest.raises(ValueError):
            Rule(name="")

    def test_negative_cooldown(self):
        with pytest.raises(ValueError):
            Rule(name="r", dont_retrigger_within=timedelta(seconds=-1))

    def test_from_dict(self):
        rule = Rule.from_dict(
            {
                "name": "Intrusion",
                "aliases": {"MotionSensor1": {"thing": "zwave:motion:1"}},
                "trigger_when": [{"is": {"target": "MotionSensor1", "value": "OFFLINE"}}],
                "suppress_when": [{"is": {"target": "Door1", "value": "CLOSED"}}],
                "enabled_at": [{"days": "mon-fri", "during": [[1530, "MIDNIGHT"]]}],
                "forbidden_at": [{"day": "wednesday"}],
                "enabled_by_default": False,
                "dont_retrigger_within": "30m",
                "retrigger_every": [{"every": "23h"}],
                "continue_on_errors": True,
                "actions": ["noop"],
            },
            {"noop": noop},
        )

        assert rule.name == "Intrusion"
        assert rule.aliases == {"MotionSensor1": thing_ref("zwave:motion:1")}
        assert len(rule.trigger_clauses) == 1
        assert len(rule.suppress_clauses) == 1
        assert len(rule.schedule.enabled) == 1
        assert rule.schedule.forbidden[0].days == {Weekday.WEDNESDAY}
        assert rule.enabled_by_default is False
        assert rule.dont_retrigger_within == timedelta(minutes=30)
        assert rule.retrigger_every == [IntervalRetrigger(timedelta(hours=23))]
        assert rule.continue_on_errors is True
        assert rule.actions == [noop]

    def test_from_dict_split_overnight(self):
        rule = Rule.from_dict(
            {
                "name": "night",
                "split_overnight": True,
                "enabled_at": [{"day": "friday", "during": [["22:00", "06:00"]]}],
            }
        )

        assert [set(e.days) for e in rule.schedule.enabled] == [
            {Weekday.FRIDAY},
            {Weekday.SATURDAY},
        ]

    def test_from_dict_inverted_range(self):
        with pytest.raises(ScheduleConfigError):
            Rule.from_dict(
                {"name": "night", "enabled_at": [{"day": "friday", "during": [[2200, 600]]}]}
            )

    def test_unknown_action(self):
        with pytest.raises(ValueError, match="Unknown action"):
            Rule.from_dict({"name": "r", "actions": ["missing"]}, {})

    def test_from_dict_needs_name(self):
        with pytest.raises(ValueError, match="name"):
            Rule.from_dict({"trigger_when": []})
        with pytest.raises(ValueError):
            Rule.from_dict(["name", "r"])

    def test_from_dict_malformed_schedule_entry(self):
        with pytest.raises(ScheduleConfigError):
            Rule.from_dict({"name": "r", "enabled_at": ["monday"]})


class TestRuleSet:
    """Tests for RuleSet.from_dict."""

    def test_from_dict(self):
        rule_set = RuleSet.from_dict(
            {
                "aliases": {"Light1": {"item": "Light1_long"}},
                "rules": [{"name": "a"}, {"name": "b"}],
            }
        )

        assert [r.name for r in rule_set.rules] == ["a", "b"]
        assert rule_set.aliases == {"Light1": item_ref("Light1_long")}

    def test_empty(self):
        rule_set = RuleSet.from_dict({})

        assert rule_set.rules == []
        assert rule_set.aliases == {}
