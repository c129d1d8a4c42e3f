"""Data models for the Nest exporter."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Union

from .const import DEVICE_ASSIGNEE_RE, DEVICE_NAME_RE, METRIC_DOCS, METRIC_TYPES
from .exceptions import ShapeMismatchError

Number = Union[int, float]


@dataclass(frozen=True)
class AccessToken:
    """A bearer token and the loop time at which it stops being valid."""

    value: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class Device:
    """One device from the device listing, with its location parsed out."""

    id: str
    structure_id: str
    room_id: str
    parent_display_name: str
    traits: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> Device:
        """Build a device from an upstream device object.

        Raises ShapeMismatchError when ``name`` or ``assignee`` do not look like
        SDM resource paths.
        """
        if not isinstance(raw, dict):
            raise ShapeMismatchError(f"device entry is not an object: {raw!r}")

        name = raw.get("name")
        m = DEVICE_NAME_RE.match(name) if isinstance(name, str) else None
        if m is None:
            raise ShapeMismatchError(f"unexpected device name: {name!r}")
        device_id = m.group(1)

        assignee = raw.get("assignee")
        m = DEVICE_ASSIGNEE_RE.match(assignee) if isinstance(assignee, str) else None
        if m is None:
            raise ShapeMismatchError(f"unexpected device assignee: {assignee!r}")
        structure_id, room_id = m.group(1), m.group(2)

        parent = ""
        relations = raw.get("parentRelations")
        if isinstance(relations, list) and relations and isinstance(relations[0], dict):
            parent = str(relations[0].get("displayName", ""))

        traits = raw.get("traits")
        if not isinstance(traits, dict):
            traits = {}

        return cls(
            id=device_id,
            structure_id=structure_id,
            room_id=room_id,
            parent_display_name=parent,
            traits=traits,
        )

    def base_labels(self) -> Dict[str, str]:
        return {"device": self.id, "room": self.room_id, "parent": self.parent_display_name}


@dataclass
class MetricSample:
    name: str
    value: Number
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricDefinition:
    """HELP and TYPE metadata for one metric name."""

    name: str
    help: str
    type: str

    def __post_init__(self) -> None:
        if self.type not in METRIC_TYPES:
            raise ValueError(f"metric {self.name}: invalid type {self.type!r}")


METRIC_DEFINITIONS: Dict[str, MetricDefinition] = {
    name: MetricDefinition(name, help_text, typ) for name, (help_text, typ) in METRIC_DOCS.items()
}
