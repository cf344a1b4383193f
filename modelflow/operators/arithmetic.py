"""Sum and Combine: operators over all of a node's target values."""

from __future__ import annotations

import numbers
from typing import Any, List, Mapping, Optional, Tuple

from modelflow.foundation.errors import OperatorConfigError, OperatorEvaluationError
from modelflow.foundation.node import Node
from modelflow.foundation.port import NodePort, PortDirection
from modelflow.operators.base import Evaluation, Operator, make_ports

SUM = "Sum"
COMBINE = "Combine"

OUT_PORT = "out"


def target_ids_from_config(config: Mapping[str, Any], default_arity: int = 2) -> List[Any]:
    """config["inputs"] (ids or port specs) or config["arity"] generated ids in0..inN-1."""
    if config.get("inputs") is not None:
        return list(config["inputs"])
    arity = config.get("arity", default_arity)
    if not isinstance(arity, int) or isinstance(arity, bool) or arity < 0:
        raise OperatorConfigError(f"arity must be a non-negative int, got {arity!r}")
    return [f"in{i}" for i in range(arity)]


def _sum_ports(config: Mapping[str, Any], io: Optional[Any]):
    sources = make_ports([OUT_PORT], PortDirection.SOURCE, "number")
    targets = make_ports(target_ids_from_config(config), PortDirection.TARGET, "number")
    return sources, targets


def _sum_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    total: Any = 0
    for port_id in node.target_port_ids:
        value = inputs.get(port_id, 0)  # never-set target counts as 0
        if not isinstance(value, numbers.Number):
            raise OperatorEvaluationError(
                f"target {port_id!r} is not numeric: {value!r}",
                node_id=node.id, operator_type=node.operator_type,
            )
        total = total + value
    return Evaluation(outputs={OUT_PORT: total}, state=state)


def _combine_ports(config: Mapping[str, Any], io: Optional[Any]):
    targets = make_ports(target_ids_from_config(config), PortDirection.TARGET)
    # one child per target so downstream nodes can pick a single field
    children = tuple(
        NodePort.create({"id": f"{OUT_PORT}.{t.id}", "type": t.type, "label": t.label}, PortDirection.SOURCE)
        for t in targets
    )
    out = NodePort.create({"id": OUT_PORT, "type": "object"}, PortDirection.SOURCE).with_children(children)
    return [out], targets


def _combine_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    combined = {port_id: inputs[port_id] for port_id in node.target_port_ids if port_id in inputs}
    return Evaluation(outputs={OUT_PORT: combined}, state=state)


SumOperator = Operator(
    operator_type=SUM,
    describe_ports=_sum_ports,
    evaluate=_sum_evaluate,
    min_targets=2,
    min_sources=1,
    max_sources=1,
    description="Arithmetic sum of all target values",
)

CombineOperator = Operator(
    operator_type=COMBINE,
    describe_ports=_combine_ports,
    evaluate=_combine_evaluate,
    min_targets=2,
    min_sources=1,
    max_sources=1,
    description="Mapping of the latest value of every target port",
)
