"""
Error taxonomy for templates, the operator registry and running blocks.

- Structural problems of a template: GraphValidationError and its subkinds.
- Registry and binding mismatches: DuplicateOperatorType, UnknownOperatorType,
  OperatorConfigError (fatal to ModelBlock construction).
- Runtime: OperatorEvaluationError, SideEffectError, PropagationDivergedError.
- Lifecycle misuse: AlreadyMountedError, NotMountedError, TornDownError.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class ModelFlowError(Exception):
    """Base class of every error raised by modelflow."""


# --- Template structure ---


class GraphValidationError(ModelFlowError):
    """Template is structurally invalid."""


class DanglingEdge(GraphValidationError):
    """Edge references a missing node or port, or connects ports of the wrong direction."""


class PortArityMismatch(GraphValidationError):
    """Port count or incoming edge count does not fit the operator's contract."""


class DuplicateNodeId(GraphValidationError):
    """Two nodes in one template share an id."""


class UnboundInterfaceField(GraphValidationError):
    """Declared input/output field has no matching Input/Output port."""


# --- Registry / binding ---


class DuplicateOperatorType(ModelFlowError):
    """An operator with the same type id is already registered."""


class RegistryFrozenError(ModelFlowError):
    """Registration attempted after the OperatorMap was frozen."""


class TemplateBindingError(ModelFlowError):
    """A template node cannot be bound to an operator."""


class UnknownOperatorType(TemplateBindingError):
    """No operator registered under the requested type id."""

    def __init__(self, operator_type: str, known: Sequence[str] = (), suggestions: Sequence[str] = ()) -> None:
        msg = f"Operator type {operator_type!r} is not registered."
        if suggestions:
            msg += f" Did you mean: {', '.join(suggestions)}?"
        if known:
            msg += f" Registered: {', '.join(sorted(known))}"
        super().__init__(msg)
        self.operator_type = operator_type


class OperatorConfigError(TemplateBindingError):
    """Node config is not acceptable for its operator (bad callable, bad value type, ...)."""


# --- Runtime ---


class OperatorEvaluationError(ModelFlowError):
    """A single operator violated its contract or its function raised."""

    def __init__(self, message: str, *, node_id: Optional[str] = None, operator_type: Optional[str] = None) -> None:
        if node_id is not None:
            message = f"Node {node_id!r} ({operator_type}): {message}"
        super().__init__(message)
        self.node_id = node_id
        self.operator_type = operator_type


class SideEffectError(ModelFlowError):
    """One or more Effect functions failed during a pass. The pass itself was applied."""

    def __init__(self, failures: List[Any]) -> None:
        names = ", ".join(repr(f.node_id) for f in failures)
        super().__init__(f"{len(failures)} side effect(s) failed: {names}")
        self.failures = list(failures)


class PropagationDivergedError(ModelFlowError):
    """Pass exceeded its evaluation bound without reaching quiescence."""

    def __init__(self, limit: int, last_node: Optional[str] = None) -> None:
        msg = f"Propagation did not settle within {limit} evaluations"
        if last_node is not None:
            msg += f" (last evaluated node: {last_node!r})"
        super().__init__(msg)
        self.limit = limit
        self.last_node = last_node


class UnknownFieldError(ModelFlowError):
    """External input field is not part of the template's interface."""


# --- Lifecycle ---


class LifecycleError(ModelFlowError):
    """Operation is not legal in the block's current lifecycle state."""


class AlreadyMountedError(LifecycleError):
    pass


class NotMountedError(LifecycleError):
    pass


class TornDownError(LifecycleError):
    pass
