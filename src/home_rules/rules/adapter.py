"""
Platform adapter interface for the rule engine.

The adapter provides an abstraction layer between the rule engine and the
host platform (device registry, event source, command dispatch, clock and
solar calendar). The integration layer provides a concrete implementation.

Design Principle:
    The adapter is intentionally minimal. Solar calculations, device
    discovery, and service lookup belong in the integration layer. The
    engine only consumes results: a populated DeviceCatalog, current
    states, the current time, and per-day solar times.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, time, UTC
from typing import Any, Dict, List, Optional, Tuple

from home_rules.core.bus import EventBus, EventKind, StateChangeEvent
from home_rules.core.catalog import DeviceCatalog
from home_rules.core.devices import DeviceKind, DeviceReference
from home_rules.core.values import ThingStatus

from .models import SolarAnchor


class PlatformAdapter(ABC):
    """
    Abstract interface for platform operations.

    The host platform provides a concrete implementation that translates
    these calls to platform-specific operations.

    This interface is intentionally minimal:
    - catalog: Registry of addressable devices
    - get_state: Current state of a device
    - send_command / update_state: Outgoing messages
    - get_current_time / get_solar_time: Time sources

    storage and notification are passed through to actions unmodified.
    """

    storage: Any = None
    notification: Any = None

    @property
    @abstractmethod
    def catalog(self) -> DeviceCatalog:
        """Device catalog used for target resolution."""
        pass

    def resolve_catalog_entry(self, spec: str) -> List[DeviceReference]:
        """
        Raw label lookup before tie-break.

        Args:
            spec: Target spec string

        Returns:
            Candidate references
        """
        return self.catalog.resolve_catalog_entry(spec)

    @abstractmethod
    def get_state(self, ref: DeviceReference) -> Any:
        """
        Get the current state of a device.

        Args:
            ref: Device to query

        Returns:
            Current typed value, or None if unknown
        """
        pass

    @abstractmethod
    def send_command(self, ref: DeviceReference, value: Any) -> bool:
        """
        Send a command to a device.

        Args:
            ref: Target device
            value: Command value

        Returns:
            True if the command was dispatched
        """
        pass

    @abstractmethod
    def update_state(self, ref: DeviceReference, value: Any) -> bool:
        """
        Update a device's state at the platform without commanding hardware.

        Args:
            ref: Target device
            value: New state

        Returns:
            True if the update was applied
        """
        pass

    @abstractmethod
    def get_current_time(self) -> datetime:
        """
        Get current time from platform.

        Returns:
            Current datetime (timezone-aware)
        """
        pass

    @abstractmethod
    def get_solar_time(self, day: date, anchor: SolarAnchor) -> datetime:
        """
        Get the time of a solar anchor on a calendar day.

        Args:
            day: Calendar day
            anchor: SUNRISE, SUNSET or NOON

        Returns:
            Timezone-aware datetime on that day
        """
        pass


class FixedSolarCalendar:
    """
    Solar calendar with the same sunrise/noon/sunset every day.

    Suitable for tests and for installations that prefer fixed times.
    """

    def __init__(
        self,
        sunrise: time = time(6, 0),
        noon: time = time(12, 0),
        sunset: time = time(18, 0),
        tz=UTC,
    ) -> None:
        self._times = {
            SolarAnchor.SUNRISE: sunrise,
            SolarAnchor.NOON: noon,
            SolarAnchor.SUNSET: sunset,
            SolarAnchor.MIDNIGHT: time(0, 0),
        }
        self._tz = tz

    def solar_time(self, day: date, anchor: SolarAnchor) -> datetime:
        return datetime.combine(day, self._times[anchor], tzinfo=self._tz)


class InMemoryStorage:
    """Key-value storage handed to actions."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def put(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> Any:
        return self._data.pop(key, None)


class InMemoryStorageService:
    """Named storages, created on first use."""

    def __init__(self) -> None:
        self._storages: Dict[str, InMemoryStorage] = {}

    def get_storage(self, name: str) -> InMemoryStorage:
        if name not in self._storages:
            self._storages[name] = InMemoryStorage()
        return self._storages[name]


class RecordingNotifier:
    """Notification service that records messages."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def send(self, message: str) -> None:
        self.messages.append(message)


class MockPlatformAdapter(PlatformAdapter):
    """
    Mock adapter for testing.

    Holds a catalog and device states, records commands and updates, and
    (when attached to a bus) publishes them as state-change events.

    Commands do not change state unless autoupdate is enabled.
    """

    def __init__(
        self,
        catalog: Optional[DeviceCatalog] = None,
        solar: Optional[FixedSolarCalendar] = None,
        autoupdate: bool = False,
    ) -> None:
        self._catalog = catalog or DeviceCatalog()
        self._solar = solar or FixedSolarCalendar()
        self._autoupdate = autoupdate
        self._states: Dict[DeviceReference, Any] = {}
        self._commands: list[Tuple[DeviceReference, Any]] = []
        self._updates: list[Tuple[DeviceReference, Any]] = []
        self._current_time: Optional[datetime] = None
        self._bus: Optional[EventBus] = None
        self.storage = InMemoryStorageService()
        self.notification = RecordingNotifier()

    @property
    def catalog(self) -> DeviceCatalog:
        return self._catalog

    def attach_bus(self, bus: EventBus) -> None:
        """Publish outgoing commands and updates on this bus."""
        self._bus = bus

    def set_state(self, ref: DeviceReference, value: Any) -> None:
        """Set device state for testing (no event)."""
        self._states[ref] = value

    def set_current_time(self, dt: datetime) -> None:
        """Set current time for testing."""
        self._current_time = dt

    def get_commands(self) -> list[Tuple[DeviceReference, Any]]:
        """Get recorded commands."""
        return self._commands.copy()

    def get_updates(self) -> list[Tuple[DeviceReference, Any]]:
        """Get recorded state updates."""
        return self._updates.copy()

    def clear_recorded(self) -> None:
        """Clear recorded commands and updates."""
        self._commands.clear()
        self._updates.clear()

    # PlatformAdapter implementation

    def get_state(self, ref: DeviceReference) -> Any:
        return self._states.get(ref)

    def send_command(self, ref: DeviceReference, value: Any, source: str = "platform") -> bool:
        self._commands.append((ref, value))
        self._publish(ref, EventKind.COMMAND, value, self._states.get(ref), source)
        if self._autoupdate:
            self.update_state(ref, value, source=source)
        return True

    def update_state(self, ref: DeviceReference, value: Any, source: str = "platform") -> bool:
        old_value = self._states.get(ref)
        self._states[ref] = value
        self._updates.append((ref, value))
        kind = EventKind.UPDATE
        if ref.kind == DeviceKind.THING or isinstance(value, ThingStatus):
            kind = EventKind.STATUS_CHANGE
        self._publish(ref, kind, value, old_value, source)
        return True

    def get_current_time(self) -> datetime:
        if self._current_time:
            return self._current_time
        return datetime.now(UTC)

    def get_solar_time(self, day: date, anchor: SolarAnchor) -> datetime:
        return self._solar.solar_time(day, anchor)

    def _publish(
        self,
        ref: DeviceReference,
        kind: EventKind,
        new_value: Any,
        old_value: Any,
        source: str,
    ) -> None:
        if not self._bus:
            return
        self._bus.publish(
            StateChangeEvent(
                ref=ref,
                kind=kind,
                new_value=new_value,
                old_value=old_value,
                timestamp=self.get_current_time(),
                source=source,
            )
        )
