"""
Operator registry: operator_type -> Operator.

- register(operator) rejects a type id that is already present.
- get_operator_from_node(node) / get_operator_from_operator_type(type_id).
- Populated at startup, then frozen; ModelBlock construction freezes the map it uses.
"""

from __future__ import annotations

import logging
from difflib import get_close_matches
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Optional

from modelflow.foundation.errors import DuplicateOperatorType, RegistryFrozenError, UnknownOperatorType

if TYPE_CHECKING:
    from modelflow.foundation.node import Node
    from modelflow.operators.base import Operator

logger = logging.getLogger(__name__)


class OperatorMap:
    """
    Maps operator_type (str) to an Operator.
    Tests should build their own map (with_builtins()) instead of sharing default().
    """

    _default: Optional["OperatorMap"] = None

    def __init__(self) -> None:
        self._operators: Dict[str, "Operator"] = {}
        self._frozen = False

    @classmethod
    def default(cls) -> OperatorMap:
        """Process-wide map with the built-in operators installed on first use."""
        if cls._default is None:
            cls._default = cls.with_builtins()
        return cls._default

    @classmethod
    def with_builtins(cls) -> OperatorMap:
        from modelflow.operators import register_builtin_operators

        return register_builtin_operators(cls())

    @classmethod
    def reset_default(cls) -> None:
        """Drop the process-wide map (for testing)."""
        cls._default = None

    # --- Registration ---

    def register(self, operator: "Operator") -> "Operator":
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register {operator.operator_type!r}: operator map is frozen"
            )
        key = operator.operator_type
        if key in self._operators:
            raise DuplicateOperatorType(f"Operator type {key!r} is already registered")
        self._operators[key] = operator
        logger.debug(f"Registered operator {key!r}")
        return operator

    def register_all(self, operators: Iterable["Operator"]) -> None:
        for op in operators:
            self.register(op)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # --- Lookup ---

    def get(self, operator_type: str) -> Optional["Operator"]:
        return self._operators.get(operator_type)

    def get_operator_from_operator_type(self, operator_type: str) -> "Operator":
        op = self._operators.get(operator_type)
        if op is None:
            similar = get_close_matches(str(operator_type), list(self._operators), n=3, cutoff=0.5)
            raise UnknownOperatorType(operator_type, known=list(self._operators), suggestions=similar)
        return op

    def get_operator_from_node(self, node: "Node") -> "Operator":
        return self.get_operator_from_operator_type(node.operator_type)

    @property
    def operator_types(self) -> List[str]:
        return list(self._operators)

    def __contains__(self, operator_type: object) -> bool:
        return operator_type in self._operators

    def __iter__(self) -> Iterator["Operator"]:
        return iter(list(self._operators.values()))

    def __len__(self) -> int:
        return len(self._operators)

    def __repr__(self) -> str:
        state = ", frozen" if self._frozen else ""
        return f"OperatorMap({self.operator_types}{state})"


def register_operators(operators: Iterable["Operator"], operator_map: Optional[OperatorMap] = None) -> None:
    """Register several operators in order (default: the process-wide map)."""
    reg = operator_map if operator_map is not None else OperatorMap.default()
    reg.register_all(operators)


def register_operator(operator: "Operator", operator_map: Optional[OperatorMap] = None) -> "Operator":
    reg = operator_map if operator_map is not None else OperatorMap.default()
    return reg.register(operator)


def get_operator_from_node(node: "Node", operator_map: Optional[OperatorMap] = None) -> "Operator":
    reg = operator_map if operator_map is not None else OperatorMap.default()
    return reg.get_operator_from_node(node)


def get_operator_from_operator_type(operator_type: str, operator_map: Optional[OperatorMap] = None) -> "Operator":
    reg = operator_map if operator_map is not None else OperatorMap.default()
    return reg.get_operator_from_operator_type(operator_type)
