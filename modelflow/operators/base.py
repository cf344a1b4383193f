"""
Operator: the computation rule bound to a node.

An operator is a plain record of functions plus capability flags, dispatched by
operator_type through the OperatorMap. It never holds per-node state; the
running ModelBlock keeps that and hands it back to evaluate().

    evaluate(node, inputs, state, changed) -> Evaluation

- inputs: target port id -> latest value, only for ports that received a value.
- state: the node's private state from the previous evaluation.
- changed: target port ids whose delivery triggered this call (arrival order).
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Mapping, Optional, Tuple

from modelflow.foundation.errors import OperatorConfigError
from modelflow.foundation.node import Node
from modelflow.foundation.port import NodePort, PortDirection

if TYPE_CHECKING:
    from modelflow.foundation.template import IOInterface


class _Unset:
    """Marker for a port or state that never received a value."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


@dataclass(frozen=True)
class Evaluation:
    """Result of one evaluate() call: new source port values and the node's new state."""

    outputs: Mapping[str, Any] = field(default_factory=dict)
    state: Any = None
    # Side-effect failure reported by Effect; the pass continues without it.
    error: Optional[BaseException] = None


PortShape = Tuple[List[NodePort], List[NodePort]]
DescribePorts = Callable[[Mapping[str, Any], Optional["IOInterface"]], PortShape]
Evaluate = Callable[[Node, Mapping[str, Any], Any, Tuple[str, ...]], Evaluation]


def _no_state(node: Node) -> Any:
    return None


@dataclass(frozen=True)
class Operator:
    """
    One operator variant: port shape, evaluation, optional mount hook.

    Arity bounds are checked by ModelTemplate.validate(); max_* None means unbounded.
    """

    operator_type: str
    describe_ports: DescribePorts
    evaluate: Evaluate
    initial_state: Callable[[Node], Any] = _no_state
    on_mount: Optional[Callable[[Node, Any], Optional[Evaluation]]] = None
    check_config: Optional[Callable[[Node], None]] = None
    min_targets: int = 0
    max_targets: Optional[int] = None
    min_sources: int = 0
    max_sources: Optional[int] = None
    allow_add_target_port: bool = False
    multi_input: bool = False
    defers_feedback: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if not self.operator_type or not self.operator_type.strip():
            raise ValueError("operator_type must be non-empty")

    def ports_for(self, config: Mapping[str, Any], io: Optional["IOInterface"] = None) -> PortShape:
        sources, targets = self.describe_ports(config, io)
        return list(sources), list(targets)

    def __repr__(self) -> str:
        return f"Operator({self.operator_type!r})"


def make_ports(
    specs: Iterable[Any],
    direction: PortDirection,
    port_type: Optional[str] = None,
) -> List[NodePort]:
    """Ports from ids or mappings; port_type fills in where a spec has none."""
    out = []
    for spec in specs:
        if isinstance(spec, str):
            spec = {"id": spec}
        if port_type is not None and isinstance(spec, Mapping) and not spec.get("type"):
            spec = {**spec, "type": port_type}
        out.append(NodePort.create(spec, direction))
    return out


def resolve_callable(ref: Any, *, node_id: str, key: str) -> Callable[..., Any]:
    """
    Return ref if callable, else import "package.module:attr" (dotted attr allowed).
    """
    if callable(ref):
        return ref
    if not isinstance(ref, str) or ":" not in ref:
        raise OperatorConfigError(
            f"Node {node_id!r}: config[{key!r}] must be a callable or 'module:attr', got {ref!r}"
        )
    module_name, _, attr_path = ref.partition(":")
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise OperatorConfigError(f"Node {node_id!r}: cannot import {module_name!r} for {key!r}") from e
    for part in attr_path.split("."):
        if not hasattr(obj, part):
            raise OperatorConfigError(f"Node {node_id!r}: {ref!r} has no attribute {part!r}")
        obj = getattr(obj, part)
    if not callable(obj):
        raise OperatorConfigError(f"Node {node_id!r}: {ref!r} is not callable")
    return obj


def require_callable(key: str) -> Callable[[Node], None]:
    """check_config hook: node.config[key] must resolve to a callable."""

    def check(node: Node) -> None:
        if key not in node.config:
            raise OperatorConfigError(f"Node {node.id!r} ({node.operator_type}) needs config[{key!r}]")
        resolve_callable(node.config[key], node_id=node.id, key=key)

    return check
