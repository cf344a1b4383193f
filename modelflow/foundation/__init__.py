"""
Foundation level: ports, nodes, templates, operator registry, errors.
"""

from modelflow.foundation.port import (
    UNKNOWN_PORT_TYPE,
    InputPortType,
    NodePort,
    OutputPortType,
    PortDirection,
    StatePortType,
)
from modelflow.foundation.node import Node
from modelflow.foundation.registry import (
    OperatorMap,
    get_operator_from_node,
    get_operator_from_operator_type,
    register_operator,
    register_operators,
)
from modelflow.foundation.template import Edge, IOInterface, ModelTemplate, ValidationResult

__all__ = [
    "UNKNOWN_PORT_TYPE",
    "InputPortType",
    "NodePort",
    "OutputPortType",
    "PortDirection",
    "StatePortType",
    "Node",
    "OperatorMap",
    "get_operator_from_node",
    "get_operator_from_operator_type",
    "register_operator",
    "register_operators",
    "Edge",
    "IOInterface",
    "ModelTemplate",
    "ValidationResult",
]
