"""
Ports: typed, directional attachment points of a node.

- id (unique within the node), type, direction (source/target), label, connectable.
- Optional children: structured ports exposing sub-fields of a mapping value.
- Compatibility when connecting a source port to a target port.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterator, Mapping, Optional, Tuple, Union

# Fallback when a port spec carries no type; not a valid operating mode.
UNKNOWN_PORT_TYPE = "unknown port type"


class PortDirection(str, Enum):
    SOURCE = "source"  # output of a node, fans out
    TARGET = "target"  # input of a node, single writer unless the operator merges


class StatePortType(str, Enum):
    STATE = "State"
    UPDATE_HANDLER = "UpdateHandler"


class InputPortType(str, Enum):
    """Kinds of external input a graph accepts."""

    EVENT = "Event"          # every write propagates, even an equal value
    STATE = "State"
    LIFECYCLE = "LifeCycle"  # receives mount / unmount notifications


class OutputPortType(str, Enum):
    STATE = "State"
    EVENT = "Event"


def _new_port_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class NodePort:
    """
    Single port. Value object addressed by id; never reassigned to another node.

    Children share the parent's direction. A source child carries
    ``value[child.key]`` of the parent's mapping value.
    """

    direction: PortDirection
    id: str = field(default_factory=_new_port_id)
    type: str = UNKNOWN_PORT_TYPE
    label: str = ""
    connectable: bool = True
    children: Tuple["NodePort", ...] = ()

    def __post_init__(self) -> None:
        if not self.id or not str(self.id).strip():
            raise ValueError("Port id must be non-empty")
        if not isinstance(self.direction, PortDirection):
            object.__setattr__(self, "direction", PortDirection(self.direction))
        for child in self.children:
            if child.direction != self.direction:
                raise ValueError(
                    f"Child port {child.id!r} direction {child.direction.value} "
                    f"differs from parent {self.id!r} ({self.direction.value})"
                )

    @classmethod
    def create(
        cls,
        spec: Union["NodePort", str, Mapping[str, Any]],
        direction: Optional[Union[PortDirection, str]] = None,
    ) -> "NodePort":
        """
        Build a port from a description, filling defaults.

        spec may be an existing port (returned as is when the direction agrees),
        a bare string (used as the id), or a mapping with id/type/label/
        connectable (or isConnectable)/children/direction.
        """
        if isinstance(spec, NodePort):
            if direction is not None and spec.direction != PortDirection(direction):
                raise ValueError(f"Port {spec.id!r} is a {spec.direction.value} port")
            return spec
        if isinstance(spec, str):
            spec = {"id": spec}
        raw_direction = spec.get("direction", direction)
        if raw_direction is None:
            raise ValueError("Port direction must be given (source or target)")
        port_direction = PortDirection(raw_direction)
        if direction is not None and PortDirection(direction) != port_direction:
            raise ValueError(f"Port {spec.get('id')!r} declared as {port_direction.value}")
        connectable = spec.get("connectable", spec.get("isConnectable", True))
        children = tuple(cls.create(c, port_direction) for c in spec.get("children") or ())
        port_type = spec.get("type") or UNKNOWN_PORT_TYPE
        if isinstance(port_type, Enum):
            port_type = port_type.value
        kwargs = {}
        if spec.get("id"):
            kwargs["id"] = str(spec["id"])
        return cls(
            direction=port_direction,
            type=str(port_type),
            label=spec.get("label") or "",
            connectable=bool(connectable),
            children=children,
            **kwargs,
        )

    @property
    def key(self) -> str:
        """Field name of a child port inside its parent's mapping: last dotted segment of id."""
        return self.id.rsplit(".", 1)[-1]

    @property
    def is_source(self) -> bool:
        return self.direction == PortDirection.SOURCE

    @property
    def is_target(self) -> bool:
        return self.direction == PortDirection.TARGET

    def compatible_with(self, other: NodePort) -> bool:
        """
        True if self (source) can connect to other (target).
        Port types describe roles (State -> UpdateHandler), so only direction
        and the connectable flag are checked.
        """
        if not self.is_source or not other.is_target:
            return False
        return self.connectable and other.connectable

    def walk(self) -> Iterator[Tuple["NodePort", Optional["NodePort"]]]:
        """Yield (port, parent) for this port and all nested children, parents first."""
        yield self, None
        for child in self.children:
            for port, parent in child.walk():
                yield port, parent if parent is not None else self

    def with_children(self, children: Tuple["NodePort", ...]) -> "NodePort":
        return replace(self, children=tuple(children))

    def to_config(self) -> dict:
        out: dict = {"id": self.id, "type": self.type, "direction": self.direction.value}
        if self.label:
            out["label"] = self.label
        if not self.connectable:
            out["connectable"] = False
        if self.children:
            out["children"] = [c.to_config() for c in self.children]
        return out
