#!/usr/bin/env python3
"""
Quick example demonstrating home-rules basic usage.

Run with: python3 -c "import sys; sys.path.insert(0, 'src'); exec(open('example.py').read())"
Or set PYTHONPATH: PYTHONPATH=src python3 example.py
"""

from datetime import datetime, timedelta, UTC
from home_rules.core import DeviceCatalog, EventBus, ValueType, CLOSED, OPEN, OFFLINE, ON
from home_rules.core import channel_ref, thing_ref
from home_rules.rules import (
    MockPlatformAdapter,
    RulesModule,
    command_action,
    increment_counter,
    notify_action,
)

print("=" * 60)
print("home-rules Example")
print("=" * 60)

# 1. Devices
print("\n1. Registering devices...")
catalog = DeviceCatalog()
catalog.add_thing("zwave:gateway:motion1", label="MotionSensor1", location="Hallway")
catalog.add_thing("zwave:door:front", label="Front Door", location="Hallway")
catalog.add_channel("zwave:door:front", "contact", [ValueType.OPEN_CLOSED], is_default=True)
catalog.add_item("Hallway_Light", [ValueType.ON_OFF])
print("   ✓ Motion sensor, front door and hallway light registered")

# 2. Kernel components
print("\n2. Creating platform and event bus...")
platform = MockPlatformAdapter(catalog)
platform.set_current_time(datetime(2025, 1, 6, 22, 0, tzinfo=UTC))  # Monday night
bus = EventBus()
print("   ✓ MockPlatformAdapter and EventBus created")

# 3. Attach the rules module
print("\n3. Attaching rules module...")
rules = RulesModule(platform)
rules.register_action("light_on", command_action("Light", ON))
rules.register_action("alert", notify_action("Door opened near {target} ({rule})"))
rules.register_action("count", increment_counter("AlarmStore", "AlertCount"))
rules.attach(bus)
print(f"   ✓ Module '{rules.id}' attached")

# 4. Configure a rule
print("\n4. Loading rules...")
rules.load_config(
    {
        "version": rules.CURRENT_CONFIG_VERSION,
        "enabled": True,
        "aliases": {
            "Light": {"item": "Hallway_Light"},
            "Door": {"channel": "zwave:door:front:contact"},
        },
        "rules": [
            {
                "name": "Night intrusion",
                "trigger_when": [
                    {
                        "and": [
                            {"is": {"target": "Hallway.MotionSensor1", "value": "OFFLINE"}},
                            {"goes_from": {"target": "Door", "from": "CLOSED", "to": "OPEN"}},
                        ]
                    }
                ],
                "enabled_at": [{"days": "weekdays", "during": [["SUNSET", "MIDNIGHT"]]}],
                "enabled_by_default": False,
                "dont_retrigger_within": "30m",
                "actions": ["light_on", "alert", "count"],
            }
        ],
    }
)
print(f"   ✓ Loaded rules: {rules.get_rule_names()}")

# 5. Feed device events
print("\n5. Publishing device events...")
platform.update_state(thing_ref("zwave:gateway:motion1"), OFFLINE)
platform.update_state(channel_ref("zwave:door:front:contact"), CLOSED)
platform.update_state(channel_ref("zwave:door:front:contact"), OPEN)
print("   ✓ Motion sensor went offline, front door opened")

print(f"   ✓ Commands sent: {[(str(ref), str(value.value)) for ref, value in platform.get_commands()]}")
print(f"   ✓ Notifications: {platform.notification.messages}")
print(f"   ✓ Alert count: {platform.storage.get_storage('AlarmStore').get('AlertCount')}")

# 6. Cooldown
print("\n6. Opening the door again 10 minutes later...")
platform.set_current_time(datetime(2025, 1, 6, 22, 10, tzinfo=UTC))
platform.update_state(channel_ref("zwave:door:front:contact"), CLOSED)
platform.update_state(channel_ref("zwave:door:front:contact"), OPEN)
history = rules.get_history()
print(f"   ✓ Rule fired {len(history)} time(s); cooldown kept it quiet")
print(f"   ✓ Last fire: {history[0]['rule_name']} at {history[0]['timestamp']}")

next_allowed = datetime(2025, 1, 6, 22, 0, tzinfo=UTC) + timedelta(minutes=30)
print(f"   ✓ May fire again from {next_allowed.isoformat()}")

print("\n" + "=" * 60)
print("Example complete!")
print("=" * 60)
