"""
modelflow: declarative, typed dataflow graphs with reactive propagation.

Levels: foundation (ports, nodes, templates, registry) -> operators -> runtime (blocks).
"""

__version__ = "0.1.0"

from modelflow.foundation import (
    Edge,
    IOInterface,
    ModelTemplate,
    Node,
    NodePort,
    OperatorMap,
    PortDirection,
    ValidationResult,
    get_operator_from_node,
    get_operator_from_operator_type,
    register_operators,
)
from modelflow.foundation.errors import (
    AlreadyMountedError,
    DanglingEdge,
    DuplicateNodeId,
    DuplicateOperatorType,
    GraphValidationError,
    ModelFlowError,
    NotMountedError,
    OperatorEvaluationError,
    PortArityMismatch,
    PropagationDivergedError,
    SideEffectError,
    TemplateBindingError,
    TornDownError,
    UnknownOperatorType,
)
from modelflow.operators import UNSET, BUILTIN_OPERATORS, Evaluation, LifecycleEvent, Operator
from modelflow.runtime import BlockStatus, ModelBlock, start
from modelflow.config import RuntimeConfig, load_config

__all__ = [
    "__version__",
    "Edge",
    "IOInterface",
    "ModelTemplate",
    "Node",
    "NodePort",
    "OperatorMap",
    "PortDirection",
    "ValidationResult",
    "get_operator_from_node",
    "get_operator_from_operator_type",
    "register_operators",
    "AlreadyMountedError",
    "DanglingEdge",
    "DuplicateNodeId",
    "DuplicateOperatorType",
    "GraphValidationError",
    "ModelFlowError",
    "NotMountedError",
    "OperatorEvaluationError",
    "PortArityMismatch",
    "PropagationDivergedError",
    "SideEffectError",
    "TemplateBindingError",
    "TornDownError",
    "UnknownOperatorType",
    "UNSET",
    "BUILTIN_OPERATORS",
    "Evaluation",
    "LifecycleEvent",
    "Operator",
    "BlockStatus",
    "ModelBlock",
    "start",
    "RuntimeConfig",
    "load_config",
]
