"""Core data structures for the doorbell service.

Contains the decoded button event and the set of actions a wireless button
can report.
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

UINT16_MAX = (1 << 16) - 1
UINT64_MAX = (1 << 64) - 1


class DecodeError(ValueError):
    """Raised when a bus payload cannot be turned into a DeviceEvent."""


class ButtonAction(Enum):
    """Actions reported by a wireless button."""

    SINGLE = "single"
    DOUBLE = "double"
    TRIPLE = "triple"
    QUADRUPLE = "quadruple"
    HOLD = "hold"
    RELEASE = "release"
    MANY = "many"

    @classmethod
    def parse(cls, value: str) -> Optional["ButtonAction"]:
        """Return the matching action, or None for empty/unknown values."""
        try:
            return cls(value)
        except ValueError:
            return None


# JSON key (lower-cased) -> (JSON key, attribute, maximum value); None marks the string field
_FIELDS = {
    "action": ("Action", "action", None),
    "battery": ("Battery", "battery", UINT16_MAX),
    "lastseen": ("Lastseen", "last_seen", UINT64_MAX),
    "linkquality": ("Linkquality", "link_quality", UINT16_MAX),
}


class _Members(list):
    """Object members in document order, duplicates kept."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _parse(payload: bytes) -> Any:
    try:
        return json.loads(payload, object_pairs_hook=_Members, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        # ValueError covers JSONDecodeError and UnicodeDecodeError
        raise DecodeError(f"invalid JSON: {exc}") from exc


@dataclass(slots=True, frozen=True)
class DeviceEvent:
    """A single decoded button press plus device telemetry."""

    action: str = ""
    battery: int = 0
    last_seen: int = 0
    link_quality: int = 0

    @property
    def button_action(self) -> Optional[ButtonAction]:
        return ButtonAction.parse(self.action)

    @classmethod
    def from_payload(cls, payload: bytes) -> "DeviceEvent":
        """
        Decode a raw bus payload.

        Keys match the field names case-insensitively. Every matching member
        is checked in document order and the last one wins; ``null`` members
        leave the field unchanged.

        Args:
            payload: JSON object bytes as published by the button bridge

        Returns:
            The decoded event

        Raises:
            DecodeError: payload is not a JSON object or a field has the
                wrong type or is out of range
        """
        data = _parse(payload)
        if not isinstance(data, _Members):
            raise DecodeError(f"expected a JSON object, got {type(data).__name__}")

        values: Dict[str, Any] = {}
        for name, value in data:
            field = _FIELDS.get(name.lower())
            if field is None or value is None:
                continue
            key, attr, maximum = field
            if maximum is None:
                if not isinstance(value, str):
                    raise DecodeError(f"{key} must be a string, got {value!r}")
            elif isinstance(value, bool) or not isinstance(value, int):
                raise DecodeError(f"{key} must be an integer, got {value!r}")
            elif not 0 <= value <= maximum:
                raise DecodeError(f"{key} out of range: {value}")
            values[attr] = value

        return cls(**values)

    def describe(self) -> str:
        """Notification text for this press."""
        return f"ding dong! (link quality {self.link_quality}; battery {self.battery})"
