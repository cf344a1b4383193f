"""Template builders shared by the test modules."""

from typing import Any, Callable, Dict, List, Sequence

from modelflow.foundation.registry import OperatorMap
from modelflow.foundation.template import ModelTemplate


def increment(value: Any) -> Any:
    return value + 1


def double(value: Any) -> Any:
    return value * 2


def sum_template(operator_map: OperatorMap) -> ModelTemplate:
    """in.a, in.b -> sum -> out.total"""
    return ModelTemplate.from_nodes(
        [
            {"id": "in", "operatorType": "Input", "config": {"fields": ["a", "b"]}},
            {"id": "sum", "operatorType": "Sum"},
            {"id": "out", "operatorType": "Output", "config": {"fields": ["total"]}},
        ],
        [("in.a", "sum.in0"), ("in.b", "sum.in1"), ("sum.out", "out.total")],
        operator_map=operator_map,
        template_id="sum",
    )


def sum_description() -> Dict[str, Any]:
    """Editor-style description of the sum graph (no callables, OmegaConf safe)."""
    return {
        "id": "sum",
        "nodes": [
            {"id": "in", "operatorType": "Input", "config": {"fields": ["a", "b"]}},
            {"id": "sum", "operatorType": "Sum"},
            {"id": "out", "operatorType": "Output", "config": {"fields": ["total"]}},
        ],
        "edges": [
            {"from": "in.a", "to": "sum.in0"},
            {"from": "in.b", "to": "sum.in1"},
            {"from": "sum.out", "to": "out.total"},
        ],
        "io": {"inputFields": ["a", "b"], "outputFields": ["total"]},
    }


def state_loop_template(
    operator_map: OperatorMap,
    fields: Sequence[str] = ("x",),
    default: Any = None,
    self_loop: bool = True,
) -> ModelTemplate:
    """Every input field -> state.UpdateHandler; state.State fed back into its own UpdateHandler."""
    state_config = {} if default is None else {"value": default}
    edges = [(f"in.{f}", "state.UpdateHandler") for f in fields]
    if self_loop:
        edges.append(("state.State", "state.UpdateHandler"))
    edges.append(("state.State", "out.value"))
    return ModelTemplate.from_nodes(
        [
            {"id": "in", "operatorType": "Input", "config": {"fields": list(fields)}},
            {"id": "state", "operatorType": "State", "config": state_config},
            {"id": "out", "operatorType": "Output", "config": {"fields": ["value"]}},
        ],
        edges,
        operator_map=operator_map,
        template_id="state-loop",
    )


def counter_template(operator_map: OperatorMap, start: Any = 0) -> ModelTemplate:
    """State -> Transform(+1) -> back into the State: advances by one per tick."""
    return ModelTemplate.from_nodes(
        [
            {"id": "count", "operatorType": "State", "config": {"value": start, "valueType": "number"}},
            {"id": "inc", "operatorType": "Transform", "config": {"fn": increment}},
            {"id": "out", "operatorType": "Output", "config": {"fields": ["count"]}},
        ],
        [
            ("count.State", "inc.in"),
            ("inc.out", "count.UpdateHandler"),
            ("count.State", "out.count"),
        ],
        operator_map=operator_map,
        template_id="counter",
    )


def diverging_template(operator_map: OperatorMap) -> ModelTemplate:
    """Merge <-> Transform(+1) cycle with no State node to break it."""
    return ModelTemplate.from_nodes(
        [
            {"id": "seed", "operatorType": "ConstState", "config": {"value": 0}},
            {"id": "merge", "operatorType": "Merge"},
            {"id": "inc", "operatorType": "Transform", "config": {"fn": increment}},
        ],
        [
            ("seed.State", "merge.in0"),
            ("inc.out", "merge.in1"),
            ("merge.out", "inc.in"),
        ],
        operator_map=operator_map,
        template_id="diverging",
    )


def merge_template(operator_map: OperatorMap) -> ModelTemplate:
    """in.a, in.b -> merge -> out.latest"""
    return ModelTemplate.from_nodes(
        [
            {"id": "in", "operatorType": "Input", "config": {"fields": ["a", "b"]}},
            {"id": "merge", "operatorType": "Merge"},
            {"id": "out", "operatorType": "Output", "config": {"fields": ["latest"]}},
        ],
        [("in.a", "merge.in0"), ("in.b", "merge.in1"), ("merge.out", "out.latest")],
        operator_map=operator_map,
        template_id="merge",
    )


def effect_template(
    operator_map: OperatorMap,
    fn: Callable[[Any], Any],
    fields: List[Any] = ("x",),
) -> ModelTemplate:
    """Input -> Effect(fn) for the first field; every plain field is also mirrored to Output."""
    fields = list(fields)
    first = fields[0]["id"] if isinstance(fields[0], dict) else fields[0]
    mirrored = [f for f in fields if isinstance(f, str)]
    nodes = [
        {"id": "in", "operatorType": "Input", "config": {"fields": fields}},
        {"id": "fx", "operatorType": "Effect", "config": {"fn": fn}},
    ]
    edges = [(f"in.{first}", "fx.in")]
    if mirrored:
        nodes.append({"id": "out", "operatorType": "Output", "config": {"fields": mirrored}})
        edges.extend((f"in.{f}", f"out.{f}") for f in mirrored)
    return ModelTemplate.from_nodes(nodes, edges, operator_map=operator_map, template_id="effect")


class Recorder:
    """Callable that remembers every value it is called with."""

    def __init__(self, fail_on: Any = None) -> None:
        self.calls: List[Any] = []
        self.fail_on = fail_on

    def __call__(self, value: Any) -> None:
        self.calls.append(value)
        if self.fail_on is not None and value == self.fail_on:
            raise ValueError(f"refusing {value!r}")
