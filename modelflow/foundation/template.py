"""
ModelTemplate: immutable declarative description of a graph.

- Nodes (id -> Node with operator type and ports), edges
  (source_node, source_port) -> (target_node, target_port).
- IOInterface: external input fields (Input node source ports) and output
  fields (Output node target ports).
- validate() reports structural problems; from_config()/to_config() map to the
  editor's template description. Edits return new templates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from omegaconf import DictConfig, OmegaConf

from modelflow.foundation.errors import (
    DanglingEdge,
    DuplicateNodeId,
    GraphValidationError,
    PortArityMismatch,
    UnboundInterfaceField,
)
from modelflow.foundation.node import Node
from modelflow.foundation.port import NodePort, PortDirection
from modelflow.foundation.registry import OperatorMap

logger = logging.getLogger(__name__)

# Schema version of to_config() output
TEMPLATE_CONFIG_SCHEMA_VERSION = "1.0"


def _split_endpoint(ref: Any) -> Tuple[str, str]:
    """'node.port' or {'node': ..., 'port': ...} -> (node, port)."""
    if isinstance(ref, Mapping):
        return str(ref.get("node", "")), str(ref.get("port", ""))
    node_id, _, port_id = str(ref).partition(".")
    return node_id, port_id


@dataclass(frozen=True)
class Edge:
    """Single edge: (source_node, source_port) -> (target_node, target_port)."""

    source_node: str
    source_port: str
    target_node: str
    target_port: str

    def __post_init__(self) -> None:
        for name in ("source_node", "source_port", "target_node", "target_port"):
            v = getattr(self, name)
            if not v or (isinstance(v, str) and not v.strip()):
                raise ValueError(f"{name} must be non-empty")

    @property
    def source(self) -> Tuple[str, str]:
        return self.source_node, self.source_port

    @property
    def target(self) -> Tuple[str, str]:
        return self.target_node, self.target_port

    @classmethod
    def from_config(cls, entry: Mapping[str, Any]) -> "Edge":
        if "from" in entry or "to" in entry:
            sn, sp = _split_endpoint(entry.get("from", ""))
            tn, tp = _split_endpoint(entry.get("to", ""))
            return cls(sn, sp, tn, tp)
        return cls(entry["source_node"], entry["source_port"], entry["target_node"], entry["target_port"])

    def to_config(self) -> Dict[str, str]:
        return {"from": f"{self.source_node}.{self.source_port}", "to": f"{self.target_node}.{self.target_port}"}

    def __str__(self) -> str:
        return f"{self.source_node}.{self.source_port} -> {self.target_node}.{self.target_port}"


def _field_name(spec: Any) -> str:
    if isinstance(spec, Mapping):
        return str(spec["id"])
    if isinstance(spec, NodePort):
        return spec.id
    return str(spec)


@dataclass(frozen=True)
class IOInterface:
    """Names of the fields a graph exposes to the outside."""

    input_fields: Tuple[str, ...] = ()
    output_fields: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_fields", tuple(_field_name(f) for f in self.input_fields))
        object.__setattr__(self, "output_fields", tuple(_field_name(f) for f in self.output_fields))

    @classmethod
    def from_config(cls, entry: Mapping[str, Any]) -> "IOInterface":
        inputs = entry.get("inputFields", entry.get("input_fields")) or ()
        outputs = entry.get("outputFields", entry.get("output_fields")) or ()
        return cls(tuple(inputs), tuple(outputs))

    def to_config(self) -> Dict[str, List[str]]:
        return {"inputFields": list(self.input_fields), "outputFields": list(self.output_fields)}


@dataclass
class ValidationResult:
    """Result of template validation: errors (blocking) and warnings (informational)."""

    errors: List[GraphValidationError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def raise_first(self) -> None:
        if self.errors:
            raise self.errors[0]


class ModelTemplate:
    """
    Template = nodes + edges + external IOInterface. Never mutated after construction.
    When io is omitted it is derived from the Input/Output nodes' ports.
    """

    def __init__(
        self,
        nodes: Iterable[Node] = (),
        edges: Iterable[Edge] = (),
        io: Optional[IOInterface] = None,
        template_id: str = "template",
    ) -> None:
        self._template_id = template_id or "template"
        self._nodes: Tuple[Node, ...] = tuple(nodes)
        self._edges: Tuple[Edge, ...] = tuple(edges)
        self._by_id: Dict[str, Node] = {}
        for node in self._nodes:
            self._by_id.setdefault(node.id, node)  # duplicates are reported by validate()
        self._in_edges_by_node: Dict[str, List[Edge]] = {}
        self._out_edges_by_node: Dict[str, List[Edge]] = {}
        for e in self._edges:
            self._out_edges_by_node.setdefault(e.source_node, []).append(e)
            self._in_edges_by_node.setdefault(e.target_node, []).append(e)
        self._io = io if io is not None else self._derive_io()

    def _derive_io(self) -> IOInterface:
        from modelflow.operators.io import INPUT, OUTPUT

        inputs = [p.id for n in self._nodes if n.operator_type == INPUT for p in n.source_ports]
        outputs = [p.id for n in self._nodes if n.operator_type == OUTPUT for p in n.target_ports]
        return IOInterface(tuple(inputs), tuple(outputs))

    # --- Accessors ---

    @property
    def template_id(self) -> str:
        return self._template_id

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return self._nodes

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return self._edges

    @property
    def io(self) -> IOInterface:
        return self._io

    @property
    def node_ids(self) -> List[str]:
        return [n.id for n in self._nodes]

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._by_id.get(node_id)

    def get_edges_in(self, node_id: str) -> List[Edge]:
        return list(self._in_edges_by_node.get(node_id, []))

    def get_edges_out(self, node_id: str) -> List[Edge]:
        return list(self._out_edges_by_node.get(node_id, []))

    def _interface_ports(self, operator_type: str, direction: PortDirection) -> Dict[str, List[Tuple[str, str]]]:
        found: Dict[str, List[Tuple[str, str]]] = {}
        for node in self._nodes:
            if node.operator_type != operator_type:
                continue
            ports = node.source_ports if direction == PortDirection.SOURCE else node.target_ports
            for port in ports:
                found.setdefault(port.id, []).append((node.id, port.id))
        return found

    def input_bindings(self) -> Dict[str, Tuple[str, str]]:
        """Input field -> (Input node id, port id), for fields bound exactly once."""
        from modelflow.operators.io import INPUT

        found = self._interface_ports(INPUT, PortDirection.SOURCE)
        return {f: found[f][0] for f in self._io.input_fields if len(found.get(f, ())) == 1}

    def output_bindings(self) -> Dict[str, Tuple[str, str]]:
        """Output field -> (Output node id, port id), for fields bound exactly once."""
        from modelflow.operators.io import OUTPUT

        found = self._interface_ports(OUTPUT, PortDirection.TARGET)
        return {f: found[f][0] for f in self._io.output_fields if len(found.get(f, ())) == 1}

    # --- Validation ---

    def validate(self, operator_map: Optional[OperatorMap] = None, strict: bool = True) -> ValidationResult:
        """
        Check ids, edges, port arity and the interface contract.
        strict=True raises the first error; otherwise all problems are returned.
        """
        from modelflow.operators.io import INPUT, OUTPUT

        reg = operator_map if operator_map is not None else OperatorMap.default()
        result = ValidationResult()

        seen = set()
        for node in self._nodes:
            if node.id in seen:
                result.errors.append(DuplicateNodeId(f"Duplicate node id {node.id!r}"))
            seen.add(node.id)

        for node in self._nodes:
            op = reg.get(node.operator_type)
            if op is None:
                result.warnings.append(f"Node {node.id!r}: operator type {node.operator_type!r} is not registered")
                continue
            counts = (
                ("target", len(node.target_ports), op.min_targets, op.max_targets),
                ("source", len(node.source_ports), op.min_sources, op.max_sources),
            )
            for kind, n, lo, hi in counts:
                if n < lo or (hi is not None and n > hi):
                    bound = f"{lo}+" if hi is None else (f"{lo}" if lo == hi else f"{lo}..{hi}")
                    result.errors.append(PortArityMismatch(
                        f"Node {node.id!r} ({node.operator_type}) has {n} {kind} ports, expected {bound}"
                    ))

        incoming: Dict[Tuple[str, str], int] = {}
        for e in self._edges:
            src_node = self._by_id.get(e.source_node)
            dst_node = self._by_id.get(e.target_node)
            if src_node is None or dst_node is None:
                missing = e.source_node if src_node is None else e.target_node
                result.errors.append(DanglingEdge(f"Edge {e}: node {missing!r} not found"))
                continue
            src = src_node.get_port(e.source_port)
            dst = dst_node.get_port(e.target_port)
            if src is None or dst is None:
                missing = e.source_port if src is None else e.target_port
                result.errors.append(DanglingEdge(f"Edge {e}: port {missing!r} not found"))
                continue
            if not src.is_source or not dst.is_target:
                result.errors.append(DanglingEdge(f"Edge {e}: must run from a source port to a target port"))
                continue
            if not src.compatible_with(dst):
                result.errors.append(DanglingEdge(f"Edge {e}: port is not connectable"))
                continue
            incoming[e.target] = incoming.get(e.target, 0) + 1

        for (node_id, port_id), count in incoming.items():
            if count < 2:
                continue
            op = reg.get(self._by_id[node_id].operator_type)
            if op is None or not op.multi_input:
                result.errors.append(PortArityMismatch(
                    f"Target port {node_id}.{port_id} has {count} incoming edges; only one is allowed"
                ))

        for fields, op_type, direction in (
            (self._io.input_fields, INPUT, PortDirection.SOURCE),
            (self._io.output_fields, OUTPUT, PortDirection.TARGET),
        ):
            found = self._interface_ports(op_type, direction)
            for f in fields:
                bound = found.get(f, [])
                if not bound:
                    result.errors.append(UnboundInterfaceField(f"Field {f!r} has no {op_type} port"))
                elif len(bound) > 1:
                    result.errors.append(UnboundInterfaceField(
                        f"Field {f!r} is bound by several {op_type} ports: {bound}"
                    ))
            if len(set(fields)) != len(fields):
                result.warnings.append(f"Duplicate {op_type.lower()} fields in interface: {list(fields)}")

        for node in self._nodes:
            for port in node.target_ports:
                if (node.id, port.id) not in incoming and not any(
                    (node.id, c.id) in incoming for c, _ in port.walk()
                ):
                    result.warnings.append(f"Target port {node.id}.{port.id} is not connected")

        for w in result.warnings:
            logger.debug(f"Template {self._template_id!r}: {w}")
        if strict:
            result.raise_first()
        return result

    # --- Edits (each returns a new template) ---

    def _replace(self, nodes: Sequence[Node], edges: Sequence[Edge], io: Optional[IOInterface]) -> "ModelTemplate":
        return ModelTemplate(nodes, edges, io, template_id=self._template_id)

    def with_node(self, node: Node) -> "ModelTemplate":
        """Add node, or replace the node with the same id."""
        if node.id in self._by_id:
            nodes = [node if n.id == node.id else n for n in self._nodes]
        else:
            nodes = list(self._nodes) + [node]
        return self._replace(nodes, self._edges, self._io)

    def with_edge(self, edge: Edge) -> "ModelTemplate":
        return self._replace(self._nodes, list(self._edges) + [edge], self._io)

    def without_edge(self, edge: Edge) -> "ModelTemplate":
        return self._replace(self._nodes, [e for e in self._edges if e != edge], self._io)

    def with_target_port(
        self,
        node_id: str,
        port: Optional[Any] = None,
        operator_map: Optional[OperatorMap] = None,
    ) -> "ModelTemplate":
        """Extend a variable-arity node (allow_add_target_port) with one more target port."""
        node = self._by_id.get(node_id)
        if node is None:
            raise KeyError(f"Node {node_id!r} not found")
        reg = operator_map if operator_map is not None else OperatorMap.default()
        op = reg.get_operator_from_node(node)
        if not op.allow_add_target_port:
            raise PortArityMismatch(f"Node {node_id!r} ({node.operator_type}) does not accept extra target ports")
        return self.with_node(node.with_target_port(next_target_port(node, port)))

    # --- Serialization ---

    @classmethod
    def from_config(
        cls,
        description: Any,
        operator_map: Optional[OperatorMap] = None,
    ) -> "ModelTemplate":
        """
        Build a template from a description (dict or OmegaConf DictConfig):
        {id, nodes: [{id, operatorType, config, label, sourcePorts?, targetPorts?}],
         edges: [{from: "node.port", to: "node.port"}], io: {inputFields, outputFields}}.
        Nodes without explicit ports get them from their operator's describe_ports.
        """
        if isinstance(description, DictConfig):
            description = OmegaConf.to_container(description, resolve=True)
        reg = operator_map if operator_map is not None else OperatorMap.default()
        io = IOInterface.from_config(description["io"]) if description.get("io") else None
        nodes = []
        for nc in description.get("nodes", []):
            node_id = nc.get("id", nc.get("node_id"))
            op_type = nc.get("operatorType") or nc.get("operator_type") or nc.get("operatorName")
            config = dict(nc.get("config") or {})
            sources = nc.get("sourcePorts", nc.get("source_ports"))
            targets = nc.get("targetPorts", nc.get("target_ports"))
            if sources is None or targets is None:
                described_sources, described_targets = reg.get_operator_from_operator_type(op_type).ports_for(config, io)
                sources = described_sources if sources is None else sources
                targets = described_targets if targets is None else targets
            nodes.append(Node(
                id=node_id,
                operator_type=op_type,
                config=config,
                label=nc.get("label") or "",
                source_ports=tuple(sources),
                target_ports=tuple(targets),
            ))
        edges = [Edge.from_config(ec) for ec in description.get("edges", [])]
        template_id = description.get("id", description.get("template_id", "template"))
        return cls(nodes, edges, io, template_id=template_id)

    @classmethod
    def from_nodes(
        cls,
        nodes: Iterable[Mapping[str, Any]],
        edges: Iterable[Any] = (),
        io: Optional[Mapping[str, Any]] = None,
        operator_map: Optional[OperatorMap] = None,
        template_id: str = "template",
    ) -> "ModelTemplate":
        """Shorthand for from_config; edges may also be ("a.out", "b.in") pairs."""
        edge_cfg = [e if isinstance(e, Mapping) else {"from": e[0], "to": e[1]} for e in edges]
        description: Dict[str, Any] = {"id": template_id, "nodes": list(nodes), "edges": edge_cfg}
        if io is not None:
            description["io"] = io
        return cls.from_config(description, operator_map=operator_map)

    def to_config(self) -> Dict[str, Any]:
        """Serialize structure; callables in node configs are kept as they are."""
        return {
            "schema_version": TEMPLATE_CONFIG_SCHEMA_VERSION,
            "id": self._template_id,
            "nodes": [n.to_config() for n in self._nodes],
            "edges": [e.to_config() for e in self._edges],
            "io": self._io.to_config(),
        }

    def __repr__(self) -> str:
        return f"ModelTemplate(id={self._template_id!r}, nodes={len(self._nodes)}, edges={len(self._edges)})"


def next_target_port(node: Node, port: Optional[Any] = None) -> NodePort:
    """Port to append to node: port as given, or the first free id in0, in1, ..."""
    existing = {p.id for p, _ in node.walk_ports()}
    if port is not None:
        new_port = NodePort.create(port, PortDirection.TARGET)
        taken = [p.id for p, _ in new_port.walk() if p.id in existing]
        if taken:
            raise PortArityMismatch(f"Node {node.id!r} already has port(s) {taken}")
        return new_port
    i = len(node.target_ports)
    while f"in{i}" in existing:
        i += 1
    template_port = node.target_ports[0] if node.target_ports else None
    spec: Dict[str, Any] = {"id": f"in{i}"}
    if template_port is not None:
        spec["type"] = template_port.type
    return NodePort.create(spec, PortDirection.TARGET)
