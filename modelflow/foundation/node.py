"""
Node: template-level description of a graph vertex.

- id (unique in the template), bound operator type id, read-only config.
- source_ports / target_ports, fully determined by the operator plus config.
- Runtime state lives in the ModelBlock, never here.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple

from modelflow.foundation.port import NodePort, PortDirection


def _frozen_config(config: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(config or {}))


@dataclass(frozen=True, eq=False)
class Node:
    """Place in the template: id, operator type, config and ports."""

    id: str
    operator_type: str
    config: Mapping[str, Any] = field(default_factory=dict)
    label: str = ""
    source_ports: Tuple[NodePort, ...] = ()
    target_ports: Tuple[NodePort, ...] = ()

    def __post_init__(self) -> None:
        if not self.id or not str(self.id).strip():
            raise ValueError("node id must be non-empty")
        if "." in self.id:
            raise ValueError(f"node id {self.id!r} must not contain '.'")
        if not self.operator_type or not str(self.operator_type).strip():
            raise ValueError(f"node {self.id!r}: operator_type must be non-empty")
        object.__setattr__(self, "config", _frozen_config(self.config))
        object.__setattr__(
            self, "source_ports",
            tuple(NodePort.create(p, PortDirection.SOURCE) for p in self.source_ports),
        )
        object.__setattr__(
            self, "target_ports",
            tuple(NodePort.create(p, PortDirection.TARGET) for p in self.target_ports),
        )
        seen = set()
        for port, _parent in self.walk_ports():
            if port.id in seen:
                raise ValueError(f"node {self.id!r}: duplicate port id {port.id!r}")
            seen.add(port.id)

    def walk_ports(self) -> Iterator[Tuple[NodePort, Optional[NodePort]]]:
        """All ports including nested children, as (port, parent) pairs."""
        for port in self.source_ports + self.target_ports:
            yield from port.walk()

    def get_port(self, port_id: str) -> Optional[NodePort]:
        for port, _parent in self.walk_ports():
            if port.id == port_id:
                return port
        return None

    def get_parent_port(self, port_id: str) -> Optional[NodePort]:
        """Parent of a child port, None for a top-level (or unknown) port."""
        for port, parent in self.walk_ports():
            if port.id == port_id:
                return parent
        return None

    @property
    def source_port_ids(self) -> Tuple[str, ...]:
        return tuple(p.id for p in self.source_ports)

    @property
    def target_port_ids(self) -> Tuple[str, ...]:
        return tuple(p.id for p in self.target_ports)

    def with_target_port(self, port: NodePort) -> "Node":
        return replace(self, target_ports=self.target_ports + (NodePort.create(port, PortDirection.TARGET),))

    def with_ports(self, source_ports: Iterable[Any], target_ports: Iterable[Any]) -> "Node":
        return replace(self, source_ports=tuple(source_ports), target_ports=tuple(target_ports))

    def to_config(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "operatorType": self.operator_type,
            "config": dict(self.config),
            "sourcePorts": [p.to_config() for p in self.source_ports],
            "targetPorts": [p.to_config() for p in self.target_ports],
        }
        if self.label:
            out["label"] = self.label
        return out

    def __repr__(self) -> str:
        return f"Node(id={self.id!r}, operator_type={self.operator_type!r})"
