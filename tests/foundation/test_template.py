"""Tests for foundation.ModelTemplate: building, validation, edits, serialization."""

import pytest
from omegaconf import OmegaConf

from modelflow.foundation.errors import (
    DanglingEdge,
    DuplicateNodeId,
    GraphValidationError,
    PortArityMismatch,
    UnboundInterfaceField,
    UnknownOperatorType,
)
from modelflow.foundation.registry import OperatorMap
from modelflow.foundation.template import TEMPLATE_CONFIG_SCHEMA_VERSION, Edge, IOInterface, ModelTemplate

from tests.helpers import counter_template, merge_template, sum_description, sum_template


def _with_edges(description, *edges):
    description = dict(description)
    description["edges"] = list(description["edges"]) + [{"from": a, "to": b} for a, b in edges]
    return description


def test_from_config_derives_ports(operator_map: OperatorMap) -> None:
    t = ModelTemplate.from_config(sum_description(), operator_map)
    assert t.template_id == "sum"
    assert t.node_ids == ["in", "sum", "out"]
    assert t.get_node("sum").target_port_ids == ("in0", "in1")
    assert t.get_node("sum").source_port_ids == ("out",)
    assert t.get_node("in").source_port_ids == ("a", "b")
    assert t.io == IOInterface(("a", "b"), ("total",))
    assert [str(e) for e in t.get_edges_in("sum")] == ["in.a -> sum.in0", "in.b -> sum.in1"]
    assert len(t.get_edges_out("sum")) == 1


def test_from_omegaconf_description(operator_map: OperatorMap) -> None:
    t = ModelTemplate.from_config(OmegaConf.create(sum_description()), operator_map)
    assert t.get_node("out").target_port_ids == ("total",)
    assert t.validate(operator_map).is_valid


def test_input_fields_come_from_interface_when_unconfigured(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["nodes"][0] = {"id": "in", "operatorType": "Input"}
    t = ModelTemplate.from_config(description, operator_map)
    assert t.get_node("in").source_port_ids == ("a", "b")


def test_io_derived_from_interface_nodes(operator_map: OperatorMap) -> None:
    t = sum_template(operator_map)
    assert t.io.input_fields == ("a", "b")
    assert t.io.output_fields == ("total",)
    assert t.input_bindings() == {"a": ("in", "a"), "b": ("in", "b")}
    assert t.output_bindings() == {"total": ("out", "total")}


def test_valid_templates(operator_map: OperatorMap) -> None:
    for t in (sum_template(operator_map), counter_template(operator_map), merge_template(operator_map)):
        result = t.validate(operator_map)
        assert result.is_valid, result.errors


def test_duplicate_node_id(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["nodes"].append({"id": "sum", "operatorType": "Sum"})
    t = ModelTemplate.from_config(description, operator_map)
    with pytest.raises(DuplicateNodeId, match="'sum'"):
        t.validate(operator_map)


def test_dangling_edges(operator_map: OperatorMap) -> None:
    cases = [
        ("in.a", "nowhere.in0"),   # missing node
        ("in.zzz", "sum.in0"),     # missing port
        ("sum.in0", "out.total"),  # target port used as source
    ]
    for edge in cases:
        t = ModelTemplate.from_config(_with_edges(sum_description(), edge), operator_map)
        result = t.validate(operator_map, strict=False)
        assert any(isinstance(e, DanglingEdge) for e in result.errors), edge


def test_not_connectable_port_is_dangling(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["nodes"][1] = {
        "id": "sum",
        "operatorType": "Sum",
        "sourcePorts": ["out"],
        "targetPorts": [{"id": "in0", "connectable": False}, "in1"],
    }
    t = ModelTemplate.from_config(description, operator_map)
    with pytest.raises(DanglingEdge, match="not connectable"):
        t.validate(operator_map)


def test_two_writers_on_single_input_port(operator_map: OperatorMap) -> None:
    t = ModelTemplate.from_config(_with_edges(sum_description(), ("in.b", "sum.in0")), operator_map)
    with pytest.raises(PortArityMismatch, match="sum.in0"):
        t.validate(operator_map)


def test_merge_accepts_several_writers(operator_map: OperatorMap) -> None:
    t = merge_template(operator_map).with_edge(Edge("in", "b", "merge", "in0"))
    assert t.validate(operator_map).is_valid


def test_operator_arity(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["nodes"][1] = {"id": "sum", "operatorType": "Sum", "config": {"arity": 1}}
    description["edges"] = [e for e in description["edges"] if e["to"] != "sum.in1"]
    t = ModelTemplate.from_config(description, operator_map)
    with pytest.raises(PortArityMismatch, match="expected 2\\+"):
        t.validate(operator_map)


def test_unbound_interface_field(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["io"] = {"inputFields": ["a", "b"], "outputFields": ["total", "extra"]}
    t = ModelTemplate.from_config(description, operator_map)
    with pytest.raises(UnboundInterfaceField, match="'extra'"):
        t.validate(operator_map)
    assert "extra" not in t.output_bindings()


def test_non_strict_collects_all_problems(operator_map: OperatorMap) -> None:
    description = _with_edges(sum_description(), ("in.a", "ghost.in"), ("in.b", "sum.in0"))
    description["nodes"].append({"id": "in", "operatorType": "Input", "config": {"fields": ["c"]}})
    t = ModelTemplate.from_config(description, operator_map)
    result = t.validate(operator_map, strict=False)
    kinds = {type(e) for e in result.errors}
    assert {DuplicateNodeId, DanglingEdge, PortArityMismatch} <= kinds
    assert all(isinstance(e, GraphValidationError) for e in result.errors)
    with pytest.raises(GraphValidationError):
        result.raise_first()


def test_unconnected_target_port_is_a_warning(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["edges"] = [e for e in description["edges"] if e["to"] != "sum.in1"]
    result = ModelTemplate.from_config(description, operator_map).validate(operator_map)
    assert result.is_valid
    assert any("sum.in1" in w for w in result.warnings)


def test_unregistered_type_is_a_warning(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["nodes"].append({"id": "x", "operatorType": "Mystery", "sourcePorts": [], "targetPorts": []})
    result = ModelTemplate.from_config(description, operator_map).validate(operator_map)
    assert any("Mystery" in w for w in result.warnings)


def test_from_config_unknown_type_without_ports(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["nodes"].append({"id": "x", "operatorType": "Mystery"})
    with pytest.raises(UnknownOperatorType):
        ModelTemplate.from_config(description, operator_map)


def test_operator_name_key_is_accepted(operator_map: OperatorMap) -> None:
    description = sum_description()
    description["nodes"][1] = {"id": "sum", "operatorName": "Sum"}
    t = ModelTemplate.from_config(description, operator_map)
    assert t.get_node("sum").operator_type == "Sum"


def test_edge_config_forms() -> None:
    a = Edge.from_config({"from": "n.out", "to": "m.in"})
    b = Edge.from_config({"from": {"node": "n", "port": "out"}, "to": {"node": "m", "port": "in"}})
    c = Edge.from_config({"source_node": "n", "source_port": "out", "target_node": "m", "target_port": "in"})
    assert a == b == c
    assert a.source == ("n", "out")
    assert a.target == ("m", "in")
    assert a.to_config() == {"from": "n.out", "to": "m.in"}
    # child ports keep their dotted ids
    assert Edge.from_config({"from": "c.out.x", "to": "o.x"}).source_port == "out.x"
    with pytest.raises(ValueError, match="non-empty"):
        Edge.from_config({"from": "n", "to": "m.in"})


def test_edits_return_new_templates(operator_map: OperatorMap) -> None:
    t = merge_template(operator_map)
    extended = t.with_target_port("merge", operator_map=operator_map)
    assert extended.get_node("merge").target_port_ids == ("in0", "in1", "in2")
    assert t.get_node("merge").target_port_ids == ("in0", "in1")

    named = t.with_target_port("merge", "late", operator_map=operator_map)
    assert named.get_node("merge").target_port_ids[-1] == "late"
    with pytest.raises(PortArityMismatch, match="already has port"):
        t.with_target_port("merge", "in1", operator_map=operator_map)
    with pytest.raises(PortArityMismatch, match="already has port"):
        t.with_target_port("merge", {"id": "p", "children": ["out"]}, operator_map=operator_map)

    edge = Edge("in", "a", "merge", "in0")
    assert edge not in t.without_edge(edge).edges
    assert len(t.with_edge(Edge("in", "b", "merge", "in0")).edges) == len(t.edges) + 1


def test_with_target_port_needs_variable_arity(operator_map: OperatorMap) -> None:
    t = sum_template(operator_map)
    with pytest.raises(PortArityMismatch, match="extra target ports"):
        t.with_target_port("sum", operator_map=operator_map)
    with pytest.raises(KeyError):
        t.with_target_port("ghost", operator_map=operator_map)


def test_to_config_round_trip(operator_map: OperatorMap) -> None:
    t = sum_template(operator_map)
    cfg = t.to_config()
    assert cfg["schema_version"] == TEMPLATE_CONFIG_SCHEMA_VERSION
    assert cfg["io"] == {"inputFields": ["a", "b"], "outputFields": ["total"]}
    again = ModelTemplate.from_config(cfg, operator_map)
    assert again.node_ids == t.node_ids
    assert again.edges == t.edges
    assert again.io == t.io
    for node in t.nodes:
        assert again.get_node(node.id).target_ports == node.target_ports
        assert again.get_node(node.id).source_ports == node.source_ports
