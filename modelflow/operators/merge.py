"""Merge: last-write-wins over a variable number of target ports."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Tuple

from modelflow.foundation.errors import OperatorEvaluationError
from modelflow.foundation.node import Node
from modelflow.foundation.port import PortDirection
from modelflow.operators.arithmetic import target_ids_from_config
from modelflow.operators.base import Evaluation, Operator, make_ports

MERGE = "Merge"

OUT_PORT = "out"


def _merge_ports(config: Mapping[str, Any], io: Optional[Any]):
    return (
        make_ports([OUT_PORT], PortDirection.SOURCE),
        make_ports(target_ids_from_config(config), PortDirection.TARGET),
    )


def _merge_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    if not changed:
        raise OperatorEvaluationError("evaluated without a changed target", node_id=node.id, operator_type=node.operator_type)
    # arrival order within the pass decides; the latest delivery wins
    latest = changed[-1]
    return Evaluation(outputs={OUT_PORT: inputs[latest]}, state=latest)


MergeOperator = Operator(
    operator_type=MERGE,
    describe_ports=_merge_ports,
    evaluate=_merge_evaluate,
    min_targets=2,
    min_sources=1,
    max_sources=1,
    allow_add_target_port=True,
    multi_input=True,
    description="Emits whichever target value arrived most recently",
)
