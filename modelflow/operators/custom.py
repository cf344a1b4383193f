"""
Custom operator: arity and behaviour defined by the template.

config:
    evaluate      callable(inputs: dict, state) or "module:attr"; returns
                  a mapping of outputs, an (outputs, state) tuple, an
                  Evaluation, or None for no outputs
    target_ports  port ids or specs (camelCase targetPorts accepted)
    source_ports  port ids or specs (camelCase sourcePorts accepted)
    state         initial private state (copied per block); evaluate receives
                  a copy, so in-place changes are kept only when the pass commits
"""

from __future__ import annotations

import copy
from typing import Any, Mapping, Optional, Tuple

from modelflow.foundation.errors import OperatorEvaluationError
from modelflow.foundation.node import Node
from modelflow.foundation.port import PortDirection
from modelflow.operators.base import Evaluation, Operator, make_ports, require_callable, resolve_callable

CUSTOM = "Custom"


def _custom_ports(config: Mapping[str, Any], io: Optional[Any]):
    sources = config.get("source_ports", config.get("sourcePorts")) or ()
    targets = config.get("target_ports", config.get("targetPorts")) or ()
    return make_ports(sources, PortDirection.SOURCE), make_ports(targets, PortDirection.TARGET)


def _custom_initial_state(node: Node) -> Any:
    return copy.deepcopy(node.config.get("state"))


def _custom_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    fn = resolve_callable(node.config["evaluate"], node_id=node.id, key="evaluate")
    # in-place changes must not reach the committed state of an aborted pass
    state = copy.deepcopy(state)
    try:
        result = fn(dict(inputs), state)
    except OperatorEvaluationError:
        raise
    except Exception as e:
        raise OperatorEvaluationError(
            f"evaluate raised {type(e).__name__}: {e}", node_id=node.id, operator_type=node.operator_type
        ) from e
    if result is None:
        return Evaluation(state=state)
    if isinstance(result, Evaluation):
        return result
    if isinstance(result, tuple) and len(result) == 2:
        outputs, new_state = result
        return Evaluation(outputs=dict(outputs or {}), state=new_state)
    if isinstance(result, Mapping):
        return Evaluation(outputs=dict(result), state=state)
    raise OperatorEvaluationError(
        f"evaluate returned {type(result).__name__}; expected mapping, tuple, Evaluation or None",
        node_id=node.id, operator_type=node.operator_type,
    )


CustomOperator = Operator(
    operator_type=CUSTOM,
    describe_ports=_custom_ports,
    evaluate=_custom_evaluate,
    initial_state=_custom_initial_state,
    check_config=require_callable("evaluate"),
    description="User-supplied evaluate function with template-defined ports",
)
