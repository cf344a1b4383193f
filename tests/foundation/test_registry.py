"""Tests for foundation.OperatorMap."""

import pytest

from modelflow.foundation.errors import (
    DuplicateOperatorType,
    RegistryFrozenError,
    TemplateBindingError,
    UnknownOperatorType,
)
from modelflow.foundation.node import Node
from modelflow.foundation.registry import (
    OperatorMap,
    get_operator_from_operator_type,
    register_operator,
    register_operators,
)
from modelflow.operators import BUILTIN_OPERATORS, Evaluation, Operator, SumOperator


def _noop_operator(operator_type: str) -> Operator:
    return Operator(
        operator_type=operator_type,
        describe_ports=lambda config, io: ([], []),
        evaluate=lambda node, inputs, state, changed: Evaluation(state=state),
    )


def test_builtins_registered_in_order(operator_map: OperatorMap) -> None:
    assert operator_map.operator_types == [
        "Input", "Output", "Custom", "State", "ConstState",
        "Sum", "Combine", "Transform", "Effect", "Merge",
    ]
    assert len(operator_map) == len(BUILTIN_OPERATORS) == 10
    assert "Sum" in operator_map
    assert list(operator_map)[5] is SumOperator


def test_duplicate_type_rejected(operator_map: OperatorMap) -> None:
    with pytest.raises(DuplicateOperatorType, match="Sum"):
        operator_map.register(_noop_operator("Sum"))


def test_lookup_by_node(operator_map: OperatorMap) -> None:
    node = Node("s", "Sum", source_ports=("out",), target_ports=("in0", "in1"))
    assert operator_map.get_operator_from_node(node) is SumOperator


def test_unknown_type_suggests_close_match(operator_map: OperatorMap) -> None:
    with pytest.raises(UnknownOperatorType, match="Did you mean: Sum") as exc_info:
        operator_map.get_operator_from_operator_type("Summ")
    assert isinstance(exc_info.value, TemplateBindingError)
    assert exc_info.value.operator_type == "Summ"
    assert operator_map.get("Summ") is None


def test_frozen_map_rejects_registration(operator_map: OperatorMap) -> None:
    operator_map.freeze()
    assert operator_map.frozen is True
    with pytest.raises(RegistryFrozenError):
        operator_map.register(_noop_operator("Late"))
    assert operator_map.get_operator_from_operator_type("Merge").operator_type == "Merge"


def test_module_level_helpers_use_given_map() -> None:
    m = OperatorMap()
    register_operators([_noop_operator("A"), _noop_operator("B")], m)
    register_operator(_noop_operator("C"), m)
    assert m.operator_types == ["A", "B", "C"]
    assert get_operator_from_operator_type("B", m).operator_type == "B"


def test_default_map_is_shared_until_reset() -> None:
    first = OperatorMap.default()
    assert OperatorMap.default() is first
    assert "Merge" in first
    OperatorMap.reset_default()
    assert OperatorMap.default() is not first


def test_operator_needs_type() -> None:
    with pytest.raises(ValueError, match="non-empty"):
        _noop_operator(" ")
