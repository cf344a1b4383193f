"""
Propagation: one pass from a trigger to quiescence.

A pass works on a copy of the block state and is committed by the caller only
when run() returns. Steps:
1. Seeds (external writes, mount emissions) mark source ports dirty.
2. Dirty ports are popped in FIFO order; the value is delivered along each
   outgoing edge and the target node is evaluated. Source values that differ
   (by value equality) from the last observed value become dirty.
3. Every emitted value remembers which feedback-deferring nodes (State) it
   descends from in this pass. A delivery to such a node that descends from
   the node itself is its own feedback: it is held for the next pass (latest
   value wins). Any other delivery, including external writes, is evaluated
   at once. Held deliveries run after the trigger settles and are dropped when
   the node already fired in the new pass.
4. More than `limit` evaluations raises PropagationDivergedError.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from modelflow.foundation.errors import OperatorEvaluationError, PropagationDivergedError
from modelflow.foundation.node import Node
from modelflow.foundation.port import NodePort
from modelflow.foundation.template import Edge
from modelflow.operators.base import UNSET, Evaluation, Operator
from modelflow.operators.io import is_event_port

logger = logging.getLogger(__name__)

PortKey = Tuple[str, str]  # (node_id, port_id)
Origins = FrozenSet[str]  # feedback-deferring nodes a value descends from

NO_ORIGINS: Origins = frozenset()


def values_equal(a: Any, b: Any) -> bool:
    """Value equality; objects whose == is ambiguous (arrays) compare unequal unless identical."""
    if a is b:
        return True
    if a is UNSET or b is UNSET:
        return False
    # a bool never equals a number here (True == 1 in Python)
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class SideEffectFailure:
    node_id: str
    error: BaseException


class NodeInstance:
    """Live node: template node, bound operator and a port index. State lives in BlockState."""

    __slots__ = ("_node", "_operator", "_ports", "_parents", "_children")

    def __init__(self, node: Node, operator: Operator) -> None:
        self._operator = operator
        self.set_node(node)

    def set_node(self, node: Node) -> None:
        self._node = node
        self._ports: Dict[str, NodePort] = {}
        self._parents: Dict[str, NodePort] = {}
        self._children: Dict[str, Tuple[NodePort, ...]] = {}
        for port, parent in node.walk_ports():
            self._ports[port.id] = port
            self._children[port.id] = port.children
            if parent is not None:
                self._parents[port.id] = parent

    @property
    def node(self) -> Node:
        return self._node

    @property
    def operator(self) -> Operator:
        return self._operator

    @property
    def node_id(self) -> str:
        return self._node.id

    def port(self, port_id: str) -> Optional[NodePort]:
        return self._ports.get(port_id)

    def parent_of(self, port_id: str) -> Optional[NodePort]:
        return self._parents.get(port_id)

    def children_of(self, port_id: str) -> Tuple[NodePort, ...]:
        return self._children.get(port_id, ())

    def __repr__(self) -> str:
        return f"NodeInstance({self._node.id!r}, {self._operator.operator_type!r})"


@dataclass
class BlockState:
    """Everything a pass may change. copy() is cheap: values themselves are shared."""

    node_states: Dict[str, Any] = field(default_factory=dict)
    target_values: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    source_values: Dict[PortKey, Any] = field(default_factory=dict)
    deferred: Dict[PortKey, Any] = field(default_factory=dict)

    def copy(self) -> "BlockState":
        return BlockState(
            node_states=dict(self.node_states),
            target_values={nid: dict(v) for nid, v in self.target_values.items()},
            source_values=dict(self.source_values),
            deferred=dict(self.deferred),
        )


def build_edge_index(edges: Iterable[Edge]) -> Dict[PortKey, List[Edge]]:
    """(source node, source port) -> outgoing edges, in template order."""
    index: Dict[PortKey, List[Edge]] = {}
    for e in edges:
        index.setdefault(e.source, []).append(e)
    return index


Hook = Callable[..., None]


class PropagationPass:
    """One pass over a working copy of the block state."""

    def __init__(
        self,
        instances: Mapping[str, NodeInstance],
        edge_index: Mapping[PortKey, Sequence[Edge]],
        state: BlockState,
        limit: int,
        *,
        callbacks: Sequence[Hook] = (),
        label: str = "pass",
    ) -> None:
        self.instances = instances
        self.edge_index = edge_index
        self.state = state.copy()
        self.limit = limit
        self.label = label
        self.hooks = list(callbacks)
        self.frontier: Deque[PortKey] = deque()
        self.carried: Deque[Tuple[PortKey, Any]] = deque(self.state.deferred.items())
        self.state.deferred = {}
        self.fired: Set[str] = set()
        self.origins: Dict[PortKey, Origins] = {}
        self.evaluations = 0
        self.failures: List[SideEffectFailure] = []

    # --- Seeding ---

    def inject(self, node_id: str, values: Mapping[str, Any]) -> None:
        """External write into a node without target ports (Input): evaluate with the given values."""
        if values:
            self._evaluate(node_id, dict(values), tuple(values), NO_ORIGINS)

    def mount_node(self, node_id: str) -> None:
        """Run the operator's mount hook, if any (ConstState, defaulted State)."""
        inst = self.instances[node_id]
        if inst.operator.on_mount is None:
            return
        result = inst.operator.on_mount(inst.node, self.state.node_states.get(node_id))
        if result is None:
            return
        if inst.operator.defers_feedback:
            self.fired.add(node_id)
        self._apply(node_id, result, NO_ORIGINS)

    # --- Main loop ---

    def run(self) -> BlockState:
        while self.frontier or self.carried:
            if self.frontier:
                key = self.frontier.popleft()
                value = self.state.source_values[key]
                origins = self.origins.get(key, NO_ORIGINS)
                for edge in self.edge_index.get(key, ()):
                    self._deliver(edge.target_node, edge.target_port, value, origins)
                continue
            (node_id, port_id), value = self.carried.popleft()
            if node_id in self.fired or node_id not in self.instances:
                logger.debug(f"[{self.label}] dropping stale feedback for {node_id}.{port_id}")
                continue
            self._deliver(node_id, port_id, value, NO_ORIGINS)
        logger.debug(
            f"[{self.label}] settled after {self.evaluations} evaluations, "
            f"{len(self.state.deferred)} deliveries deferred"
        )
        return self.state

    def _deliver(self, node_id: str, port_id: str, value: Any, origins: Origins) -> None:
        inst = self.instances[node_id]
        if inst.operator.defers_feedback and node_id in origins:
            # own feedback: honored on the next pass
            key = (node_id, port_id)
            self.state.deferred.pop(key, None)
            self.state.deferred[key] = value
            logger.debug(f"[{self.label}] feedback into {node_id}.{port_id}; deferring to next pass")
            return
        targets = self.state.target_values.setdefault(node_id, {})
        top = self._assign(inst, targets, port_id, value)
        self._evaluate(node_id, targets, (top,), origins)

    def _assign(self, inst: NodeInstance, targets: Dict[str, Any], port_id: str, value: Any) -> str:
        """Write value into a target port; a child port writes its key inside the parent's mapping."""
        parent = inst.parent_of(port_id)
        if parent is None:
            targets[port_id] = value
            return port_id
        current = self._current_target(inst, targets, parent.id)
        merged = dict(current) if isinstance(current, Mapping) else {}
        merged[inst.port(port_id).key] = value
        return self._assign(inst, targets, parent.id, merged)

    def _current_target(self, inst: NodeInstance, targets: Mapping[str, Any], port_id: str) -> Any:
        parent = inst.parent_of(port_id)
        if parent is None:
            return targets.get(port_id, UNSET)
        container = self._current_target(inst, targets, parent.id)
        if isinstance(container, Mapping):
            return container.get(inst.port(port_id).key, UNSET)
        return UNSET

    def _evaluate(
        self, node_id: str, inputs: Mapping[str, Any], changed: Tuple[str, ...], origins: Origins
    ) -> None:
        self.evaluations += 1
        if self.evaluations > self.limit:
            raise PropagationDivergedError(self.limit, last_node=node_id)
        inst = self.instances[node_id]
        prior = self.state.node_states.get(node_id)
        self._call_hooks(node_id, "before", inputs=inputs, changed=changed)
        try:
            result = inst.operator.evaluate(inst.node, dict(inputs), prior, changed)
        except OperatorEvaluationError:
            raise
        except Exception as e:
            raise OperatorEvaluationError(
                f"{type(e).__name__}: {e}", node_id=node_id, operator_type=inst.operator.operator_type
            ) from e
        if not isinstance(result, Evaluation):
            raise OperatorEvaluationError(
                f"evaluate returned {type(result).__name__}, expected Evaluation",
                node_id=node_id, operator_type=inst.operator.operator_type,
            )
        if inst.operator.defers_feedback:
            self.fired.add(node_id)
        self._call_hooks(node_id, "after", inputs=inputs, outputs=result.outputs)
        self._apply(node_id, result, origins)

    def _apply(self, node_id: str, result: Evaluation, origins: Origins) -> None:
        inst = self.instances[node_id]
        if inst.operator.defers_feedback:
            origins = origins | {node_id}
        self.state.node_states[node_id] = result.state
        if result.error is not None:
            self.failures.append(SideEffectFailure(node_id, result.error))
        top_level = {p.id for p in inst.node.source_ports}
        for port_id, value in result.outputs.items():
            if port_id not in top_level:
                raise OperatorEvaluationError(
                    f"output for unknown source port {port_id!r}",
                    node_id=node_id, operator_type=inst.operator.operator_type,
                )
            self._emit(inst, port_id, value, origins)

    def _emit(self, inst: NodeInstance, port_id: str, value: Any, origins: Origins) -> None:
        key = (inst.node_id, port_id)
        port = inst.port(port_id)
        force = port is not None and is_event_port(port)
        if not force and values_equal(self.state.source_values.get(key, UNSET), value):
            return
        self.state.source_values[key] = value
        self.origins[key] = origins
        self.frontier.append(key)
        if not isinstance(value, Mapping):
            return
        for child in inst.children_of(port_id):
            if child.key in value:
                self._emit(inst, child.id, value[child.key], origins)

    def _call_hooks(self, node_id: str, phase: str, **kwargs: Any) -> None:
        for h in self.hooks:
            try:
                h(node_id, phase, **kwargs)
            except Exception:
                logger.exception(f"[{self.label}] callback failed for {node_id!r} ({phase})")
