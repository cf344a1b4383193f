"""Input and Output operators: the external interface of a graph."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from modelflow.foundation.node import Node
from modelflow.foundation.port import InputPortType, NodePort, OutputPortType, PortDirection
from modelflow.operators.base import Evaluation, Operator, make_ports

INPUT = "Input"
OUTPUT = "Output"


class LifecycleEvent(str, Enum):
    """Value written to LifeCycle-typed Input ports."""

    MOUNTED = "mounted"
    UNMOUNTING = "unmounting"


def is_event_port(port: NodePort) -> bool:
    return port.type == InputPortType.EVENT.value


def is_lifecycle_port(port: NodePort) -> bool:
    return port.type == InputPortType.LIFECYCLE.value


def _input_ports(config: Mapping[str, Any], io: Optional[Any]):
    fields = config.get("fields")
    if fields is None:
        fields = io.input_fields if io is not None else ()
    return make_ports(fields, PortDirection.SOURCE, InputPortType.STATE.value), []


def _input_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    # inputs here are the external writes of this pass
    return Evaluation(outputs={field: inputs[field] for field in changed}, state=state)


def _output_ports(config: Mapping[str, Any], io: Optional[Any]):
    fields = config.get("fields")
    if fields is None:
        fields = io.output_fields if io is not None else ()
    return [], make_ports(fields, PortDirection.TARGET, OutputPortType.STATE.value)


def _output_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    collected = dict(state or {})
    for port_id in changed:
        collected[port_id] = inputs[port_id]
    return Evaluation(state=collected)


InputOperator = Operator(
    operator_type=INPUT,
    describe_ports=_input_ports,
    evaluate=_input_evaluate,
    max_targets=0,
    min_sources=1,
    description="Injects external input values into the graph",
)

OutputOperator = Operator(
    operator_type=OUTPUT,
    describe_ports=_output_ports,
    evaluate=_output_evaluate,
    initial_state=lambda node: {},
    min_targets=1,
    max_sources=0,
    description="Collects values into the graph's external output",
)
