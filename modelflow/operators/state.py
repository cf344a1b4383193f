"""
State and ConstState operators.

State holds a value. A delivery on UpdateHandler replaces it and re-emits it on
State. Its output is usually wired back into its own UpdateHandler (directly or
through other nodes); the propagation pass holds a delivery that descends from
the node's own emission for the next pass (defers_feedback). Other deliveries,
external writes included, are evaluated at once.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from modelflow.foundation.errors import OperatorConfigError, OperatorEvaluationError
from modelflow.foundation.node import Node
from modelflow.foundation.port import PortDirection, StatePortType
from modelflow.operators.base import UNSET, Evaluation, Operator, make_ports

STATE = "State"
CONST_STATE = "ConstState"

STATE_PORT = StatePortType.STATE.value
UPDATE_HANDLER_PORT = StatePortType.UPDATE_HANDLER.value


class StateValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"


_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off", ""}


def coerce_value(value: Any, value_type: Optional[str], *, node_id: str = "?") -> Any:
    """Convert a configured value to its declared type. None type keeps the value as is."""
    if value_type is None or value is None:
        return value
    try:
        kind = StateValueType(value_type)
    except ValueError:
        raise OperatorConfigError(f"Node {node_id!r}: unknown valueType {value_type!r}") from None
    if kind is StateValueType.STRING:
        return value if isinstance(value, str) else str(value)
    if kind is StateValueType.NUMBER:
        if isinstance(value, bool):
            raise OperatorConfigError(f"Node {node_id!r}: boolean is not a number")
        if isinstance(value, (int, float)):
            return value
        text = str(value).strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise OperatorConfigError(f"Node {node_id!r}: {value!r} is not a number") from None
    if kind is StateValueType.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise OperatorConfigError(f"Node {node_id!r}: {value!r} is not a boolean")
    # OBJECT
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise OperatorConfigError(f"Node {node_id!r}: invalid JSON object value") from e
    return value


def _configured_value(node: Node) -> Any:
    if "value" not in node.config:
        return UNSET
    value_type = node.config.get("valueType", node.config.get("value_type"))
    return coerce_value(node.config["value"], value_type, node_id=node.id)


def _check_value(node: Node) -> None:
    _configured_value(node)


def _state_ports(config: Mapping[str, Any], io: Optional[Any]):
    sources = make_ports([STATE_PORT], PortDirection.SOURCE, STATE_PORT)
    targets = make_ports([UPDATE_HANDLER_PORT], PortDirection.TARGET, UPDATE_HANDLER_PORT)
    return sources, targets


def _state_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    if UPDATE_HANDLER_PORT not in inputs:
        raise OperatorEvaluationError(
            f"{UPDATE_HANDLER_PORT} has no value", node_id=node.id, operator_type=node.operator_type
        )
    value = inputs[UPDATE_HANDLER_PORT]
    return Evaluation(outputs={STATE_PORT: value}, state=value)


def _emit_stored(node: Node, state: Any) -> Optional[Evaluation]:
    if state is UNSET:
        return None
    return Evaluation(outputs={STATE_PORT: state}, state=state)


def _const_ports(config: Mapping[str, Any], io: Optional[Any]):
    return make_ports([STATE_PORT], PortDirection.SOURCE, STATE_PORT), []


def _const_evaluate(node: Node, inputs: Mapping[str, Any], state: Any, changed: Tuple[str, ...]) -> Evaluation:
    # no target ports, so the engine never delivers here
    return Evaluation(state=state)


def _check_const(node: Node) -> None:
    if "value" not in node.config:
        raise OperatorConfigError(f"Node {node.id!r} ({CONST_STATE}) needs config['value']")
    _configured_value(node)


StateOperator = Operator(
    operator_type=STATE,
    describe_ports=_state_ports,
    evaluate=_state_evaluate,
    initial_state=_configured_value,
    on_mount=_emit_stored,
    check_config=_check_value,
    min_targets=1,
    max_targets=1,
    min_sources=1,
    max_sources=1,
    multi_input=True,
    defers_feedback=True,
    description="Holds a mutable value; feedback is honored on the next pass",
)

ConstStateOperator = Operator(
    operator_type=CONST_STATE,
    describe_ports=_const_ports,
    evaluate=_const_evaluate,
    initial_state=_configured_value,
    on_mount=_emit_stored,
    check_config=_check_const,
    max_targets=0,
    min_sources=1,
    max_sources=1,
    description="Emits a fixed value once at mount",
)
