"""
Transform and Effect: single-input operators around a template-supplied function.

config["fn"] is a callable or a "package.module:attr" reference.
Transform emits fn(value). Effect calls fn(value) for its side effect and, with
config["forward"], passes the value on. A failing effect is reported through
Evaluation.error; it is neither retried nor rolled back.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Tuple

from modelflow.foundation.errors import OperatorEvaluationError
from modelflow.foundation.node import Node
from modelflow.foundation.port import PortDirection
from modelflow.operators.base import Evaluation, Operator, make_ports, require_callable, resolve_callable

logger = logging.getLogger(__name__)

TRANSFORM = "Transform"
EFFECT = "Effect"

IN_PORT = "in"
OUT_PORT = "out"


def _single_input(node: Node, inputs: Mapping[str, Any]) -> Any:
    if IN_PORT not in inputs:
        raise OperatorEvaluationError(
            f"target {IN_PORT!r} has never fired", node_id=node.id, operator_type=node.operator_type
        )
    return inputs[IN_PORT]


def _transform_ports(config: Mapping[str, Any], io: Optional[Any]):
    return make_ports([OUT_PORT], PortDirection.SOURCE), make_ports([IN_PORT], PortDirection.TARGET)


def _transform_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    value = _single_input(node, inputs)
    fn = resolve_callable(node.config["fn"], node_id=node.id, key="fn")
    try:
        result = fn(value)
    except Exception as e:
        raise OperatorEvaluationError(
            f"fn raised {type(e).__name__}: {e}", node_id=node.id, operator_type=node.operator_type
        ) from e
    return Evaluation(outputs={OUT_PORT: result}, state=state)


def _effect_ports(config: Mapping[str, Any], io: Optional[Any]):
    sources = make_ports([OUT_PORT], PortDirection.SOURCE) if config.get("forward", False) else []
    return sources, make_ports([IN_PORT], PortDirection.TARGET)


def _effect_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    value = _single_input(node, inputs)
    fn = resolve_callable(node.config["fn"], node_id=node.id, key="fn")
    try:
        fn(value)
    except Exception as e:
        logger.warning(f"Effect {node.id!r} failed: {type(e).__name__}: {e}")
        return Evaluation(state=state, error=e)
    outputs = {OUT_PORT: value} if node.source_ports else {}
    return Evaluation(outputs=outputs, state=state)


TransformOperator = Operator(
    operator_type=TRANSFORM,
    describe_ports=_transform_ports,
    evaluate=_transform_evaluate,
    check_config=require_callable("fn"),
    min_targets=1,
    max_targets=1,
    min_sources=1,
    max_sources=1,
    description="Emits fn(value) for a pure function fn",
)

EffectOperator = Operator(
    operator_type=EFFECT,
    describe_ports=_effect_ports,
    evaluate=_effect_evaluate,
    check_config=require_callable("fn"),
    min_targets=1,
    max_targets=1,
    max_sources=1,
    description="Calls fn(value) for its side effect; optionally forwards the value",
)
