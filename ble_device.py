"""
Connection state for the sensor peripheral.

The connector never mutates its handles in place; every platform event is
applied through advance(), which returns a new SensorLink.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional


class LinkPhase(Enum):
    """Phases of the connect/subscribe sequence"""
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    DISCOVERING_SERVICES = "discovering_services"
    DISCOVERING_CHARACTERISTICS = "discovering_characteristics"
    SUBSCRIBED = "subscribed"


class LinkEvent(Enum):
    """Platform events that drive the connector"""
    ADAPTER_READY = "adapter_ready"
    ADAPTER_UNAVAILABLE = "adapter_unavailable"
    PERIPHERAL_FOUND = "peripheral_found"
    CONNECTED = "connected"
    SERVICE_FOUND = "service_found"
    CHARACTERISTIC_FOUND = "characteristic_found"
    NOTIFICATION = "notification"
    DISCONNECTED = "disconnected"


class LinkTransitionError(ValueError):
    """Raised when an event is not valid in the current phase."""


# Events accepted in any phase; both drop back to IDLE and release handles
_RESET_EVENTS = (LinkEvent.ADAPTER_UNAVAILABLE, LinkEvent.DISCONNECTED)

_TRANSITIONS = {
    (LinkPhase.IDLE, LinkEvent.ADAPTER_READY): LinkPhase.SCANNING,
    (LinkPhase.SCANNING, LinkEvent.PERIPHERAL_FOUND): LinkPhase.CONNECTING,
    (LinkPhase.CONNECTING, LinkEvent.CONNECTED): LinkPhase.DISCOVERING_SERVICES,
    (LinkPhase.DISCOVERING_SERVICES, LinkEvent.SERVICE_FOUND): LinkPhase.DISCOVERING_CHARACTERISTICS,
    (LinkPhase.DISCOVERING_CHARACTERISTICS, LinkEvent.CHARACTERISTIC_FOUND): LinkPhase.SUBSCRIBED,
    (LinkPhase.SUBSCRIBED, LinkEvent.NOTIFICATION): LinkPhase.SUBSCRIBED,
}

_CONNECTED_PHASES = (
    LinkPhase.DISCOVERING_SERVICES,
    LinkPhase.DISCOVERING_CHARACTERISTICS,
    LinkPhase.SUBSCRIBED,
)


@dataclass(frozen=True)
class SensorLink:
    """Represents the connector's view of the sensor peripheral."""

    phase: LinkPhase = LinkPhase.IDLE
    peripheral: Optional[Any] = None        # bleak BLEDevice, set on discovery
    characteristic: Optional[Any] = None    # notifying characteristic, set once subscribed

    @property
    def connected(self) -> bool:
        return self.phase in _CONNECTED_PHASES

    @property
    def address(self) -> Optional[str]:
        return getattr(self.peripheral, "address", None)

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "connected": self.connected,
            "address": self.address,
        }


def advance(link: SensorLink, event: LinkEvent, handle: Any = None) -> SensorLink:
    """
    Apply a platform event to the link state.

    Args:
        link: Current state
        event: Event reported by the BLE stack
        handle: Peripheral for PERIPHERAL_FOUND, characteristic for
                CHARACTERISTIC_FOUND; ignored otherwise

    Returns:
        The new SensorLink

    Raises:
        LinkTransitionError: If the event is not valid in link.phase
    """
    if event in _RESET_EVENTS:
        return SensorLink()

    target = _TRANSITIONS.get((link.phase, event))
    if target is None:
        raise LinkTransitionError(f"{event.value} not valid while {link.phase.value}")

    if event == LinkEvent.PERIPHERAL_FOUND:
        return SensorLink(phase=target, peripheral=handle)
    if event == LinkEvent.CHARACTERISTIC_FOUND:
        return replace(link, phase=target, characteristic=handle)
    if target == link.phase:
        return link
    return replace(link, phase=target)
