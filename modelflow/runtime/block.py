"""
ModelBlock: live instance of a ModelTemplate.

Lifecycle: UNMOUNTED -> MOUNTED -> TORN_DOWN.
- construct: bind nodes to operators, freeze the operator map, validate, build
  the edge index; no evaluation.
- mount(): seed Input ports, LifeCycle ports and mount emissions; run one pass.
- set_input()/set_inputs()/tick(): one pass each. Calls made while a pass runs
  (from an Effect function) are queued and run afterwards in order.
- get_output(): settled values of every declared output field.
- teardown(): final LifeCycle pass, then release all node state.
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from modelflow.config import ConfigSource, RuntimeConfig, load_config
from modelflow.foundation.errors import (
    AlreadyMountedError,
    ModelFlowError,
    NotMountedError,
    PortArityMismatch,
    SideEffectError,
    TornDownError,
    UnknownFieldError,
)
from modelflow.foundation.port import NodePort
from modelflow.foundation.registry import OperatorMap
from modelflow.foundation.template import ModelTemplate, next_target_port
from modelflow.operators.base import UNSET
from modelflow.operators.io import INPUT, LifecycleEvent, is_lifecycle_port
from modelflow.runtime.propagation import (
    BlockState,
    Hook,
    NodeInstance,
    PropagationPass,
    SideEffectFailure,
    build_edge_index,
    values_equal,
)

logger = logging.getLogger(__name__)

Seed = Callable[[PropagationPass], None]
OutputListener = Callable[[Dict[str, Any]], None]


class BlockStatus(str, Enum):
    UNMOUNTED = "unmounted"
    MOUNTED = "mounted"
    TORN_DOWN = "torn_down"


class ModelBlock:
    """
    Running graph built from a template plus an optional initial external input.

    callbacks: hooks called as hook(node_id, phase, **kwargs) around every
    evaluation, phase in ("before", "after"); failures are logged.
    """

    def __init__(
        self,
        template: ModelTemplate,
        input: Optional[Mapping[str, Any]] = None,
        *,
        operator_map: Optional[OperatorMap] = None,
        config: Optional[Union[RuntimeConfig, ConfigSource]] = None,
        callbacks: Optional[Sequence[Hook]] = None,
    ) -> None:
        self._template = template
        self._operator_map = operator_map if operator_map is not None else OperatorMap.default()
        self._config = config if isinstance(config, RuntimeConfig) else load_config(config)
        self._callbacks: List[Hook] = list(callbacks or [])
        self._status = BlockStatus.UNMOUNTED

        self._instances: Dict[str, NodeInstance] = {}
        for node in template.nodes:
            op = self._operator_map.get_operator_from_node(node)
            if op.check_config is not None:
                op.check_config(node)
            self._instances.setdefault(node.id, NodeInstance(node, op))
        self._operator_map.freeze()

        if self._config.validate_on_construct:
            result = template.validate(self._operator_map, strict=self._config.strict_validation)
            for err in result.errors:
                logger.warning(f"Template {template.template_id!r}: {err}")

        self._input_bindings = template.input_bindings()
        self._output_bindings = template.output_bindings()
        self._initial_input = dict(input or {})
        self._check_fields(self._initial_input)

        self._edge_index = build_edge_index(
            e for e in template.edges if e.source_node in self._instances and e.target_node in self._instances
        )
        self._state = BlockState(
            node_states={nid: inst.operator.initial_state(inst.node) for nid, inst in self._instances.items()}
        )
        self._running = False
        self._pending: Deque[Tuple[str, Seed]] = deque()
        self._listeners: List[OutputListener] = []
        self._last_output: Optional[Dict[str, Any]] = None
        logger.debug(f"Constructed block for {template!r} with {len(self._instances)} nodes")

    # --- Properties ---

    @property
    def template(self) -> ModelTemplate:
        return self._template

    @property
    def status(self) -> BlockStatus:
        return self._status

    @property
    def is_mounted(self) -> bool:
        return self._status == BlockStatus.MOUNTED

    @property
    def config(self) -> RuntimeConfig:
        return self._config

    @property
    def operator_map(self) -> OperatorMap:
        return self._operator_map

    # --- Lifecycle ---

    def mount(self) -> "ModelBlock":
        self._check_not_torn_down()
        if self._status == BlockStatus.MOUNTED:
            raise AlreadyMountedError(f"Block for {self._template.template_id!r} is already mounted")

        def seed(p: PropagationPass) -> None:
            self._seed_inputs(p, self._initial_input)
            self._seed_lifecycle(p, LifecycleEvent.MOUNTED)
            for node_id in self._instances:
                p.mount_node(node_id)

        self._status = BlockStatus.MOUNTED
        try:
            failures = self._run_single("mount", seed)
        except ModelFlowError:
            self._status = BlockStatus.UNMOUNTED
            raise
        self._drain(failures)
        return self

    def teardown(self) -> None:
        self._check_not_torn_down()
        try:
            if self._status == BlockStatus.MOUNTED and self._lifecycle_ports():
                self._run("teardown", lambda p: self._seed_lifecycle(p, LifecycleEvent.UNMOUNTING))
        finally:
            self._status = BlockStatus.TORN_DOWN
            self._instances = {}
            self._edge_index = {}
            self._state = BlockState()
            self._pending.clear()
            self._listeners.clear()
            logger.debug(f"Block for {self._template.template_id!r} torn down")

    # --- External writes ---

    def set_input(self, field: str, value: Any) -> None:
        self.set_inputs({field: value})

    def set_inputs(self, values: Mapping[str, Any]) -> None:
        """Write several input fields in one pass, in the given order."""
        self._check_mounted()
        values = dict(values)
        self._check_fields(values)
        self._submit("input", lambda p: self._seed_inputs(p, values))

    def tick(self) -> None:
        """Run a pass that only honors feedback deferred by the previous pass."""
        self._check_mounted()
        self._submit("tick", lambda p: None)

    def add_target_port(self, node_id: str, port: Optional[Any] = None) -> NodePort:
        """
        Extend a variable-arity node (e.g. Merge) with one more target port.

        The edge index is fixed at construction, so the new port has no
        incoming edges and receives no values in this block. To wire it, use
        ModelTemplate.with_target_port() and build a new block.
        """
        self._check_not_torn_down()
        inst = self._instances.get(node_id)
        if inst is None:
            raise KeyError(f"Node {node_id!r} not found")
        if not inst.operator.allow_add_target_port:
            raise PortArityMismatch(
                f"Node {node_id!r} ({inst.operator.operator_type}) does not accept extra target ports"
            )
        new_port = next_target_port(inst.node, port)
        inst.set_node(inst.node.with_target_port(new_port))
        logger.debug(f"Added target port {new_port.id!r} to {node_id!r}")
        return new_port

    # --- Reading ---

    def get_output(self) -> Dict[str, Any]:
        self._check_mounted()
        return self._collect_output()

    def get_value(self, node_id: str, port_id: str, default: Any = None) -> Any:
        """Last value seen on a source or target port."""
        self._check_not_torn_down()
        value = self._state.source_values.get((node_id, port_id), UNSET)
        if value is UNSET:
            value = self._state.target_values.get(node_id, {}).get(port_id, UNSET)
        return default if value is UNSET else value

    def get_state(self, node_id: str) -> Any:
        """Operator-private state of a node (UNSET for a State node never written)."""
        self._check_not_torn_down()
        if node_id not in self._instances:
            raise KeyError(f"Node {node_id!r} not found")
        return self._state.node_states.get(node_id)

    def subscribe(self, listener: OutputListener) -> Callable[[], None]:
        """Call listener(output) after every pass that changed the output; returns unsubscribe."""
        self._check_not_torn_down()
        self._listeners.append(listener)
        if self._status == BlockStatus.MOUNTED:
            self._last_output = self._collect_output()

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Internals ---

    def _check_not_torn_down(self) -> None:
        if self._status == BlockStatus.TORN_DOWN:
            raise TornDownError(f"Block for {self._template.template_id!r} has been torn down")

    def _check_mounted(self) -> None:
        self._check_not_torn_down()
        if self._status != BlockStatus.MOUNTED:
            raise NotMountedError(f"Block for {self._template.template_id!r} is not mounted")

    def _check_fields(self, values: Mapping[str, Any]) -> None:
        unknown = [f for f in values if f not in self._input_bindings]
        if unknown:
            raise UnknownFieldError(
                f"Unknown input field(s) {unknown}; known: {sorted(self._input_bindings)}"
            )

    def _seed_inputs(self, p: PropagationPass, values: Mapping[str, Any]) -> None:
        by_node: Dict[str, Dict[str, Any]] = {}
        for f, value in values.items():
            node_id, port_id = self._input_bindings[f]
            by_node.setdefault(node_id, {})[port_id] = value
        for node_id, ports in by_node.items():
            p.inject(node_id, ports)

    def _lifecycle_ports(self) -> List[Tuple[str, str]]:
        return [
            (inst.node_id, port.id)
            for inst in self._instances.values()
            if inst.operator.operator_type == INPUT
            for port in inst.node.source_ports
            if is_lifecycle_port(port)
        ]

    def _seed_lifecycle(self, p: PropagationPass, event: LifecycleEvent) -> None:
        for node_id, port_id in self._lifecycle_ports():
            p.inject(node_id, {port_id: event})

    def _submit(self, label: str, seed: Seed) -> None:
        if self._running:
            logger.debug(f"Pass in progress; queueing {label}")
            self._pending.append((label, seed))
            return
        self._run(label, seed)

    def _run(self, label: str, seed: Seed) -> None:
        """Run a pass, then every pass queued during it; report effect failures at the end."""
        self._drain(self._run_single(label, seed))

    def _drain(self, failures: List[SideEffectFailure]) -> None:
        while self._pending:
            queued_label, queued_seed = self._pending.popleft()
            failures.extend(self._run_single(f"queued {queued_label}", queued_seed))
        if failures:
            raise SideEffectError(failures)

    def _run_single(self, label: str, seed: Seed) -> List[SideEffectFailure]:
        limit = self._config.evaluation_limit(len(self._instances))
        p = PropagationPass(
            self._instances, self._edge_index, self._state, limit,
            callbacks=self._callbacks, label=label,
        )
        self._running = True
        try:
            seed(p)
            new_state = p.run()
        except ModelFlowError as e:
            dropped = len(self._pending)
            self._pending.clear()
            logger.warning(
                f"Pass {label!r} on {self._template.template_id!r} aborted, state kept at last settled values: {e}"
                + (f" ({dropped} queued writes dropped)" if dropped else "")
            )
            raise
        finally:
            self._running = False
        self._state = new_state
        log = logger.info if self._config.log_passes else logger.debug
        log(f"Pass {label!r} on {self._template.template_id!r}: {p.evaluations} evaluations")
        self._notify()
        return p.failures

    def _collect_output(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in self._template.io.output_fields:
            binding = self._output_bindings.get(f)
            if binding is None:
                out[f] = None
                continue
            node_id, port_id = binding
            collected = self._state.node_states.get(node_id) or {}
            out[f] = collected.get(port_id)
        return out

    def _notify(self) -> None:
        if not self._listeners:
            return
        output = self._collect_output()
        if self._last_output is not None and output.keys() == self._last_output.keys() and all(
            values_equal(v, self._last_output[k]) for k, v in output.items()
        ):
            return
        self._last_output = output
        for listener in list(self._listeners):
            try:
                listener(dict(output))
            except Exception:
                logger.exception(f"Output listener failed on {self._template.template_id!r}")

    def __repr__(self) -> str:
        return f"ModelBlock(template={self._template.template_id!r}, status={self._status.value})"


def start(
    template: ModelTemplate,
    input: Optional[Mapping[str, Any]] = None,
    **kwargs: Any,
) -> ModelBlock:
    """Construct a ModelBlock and mount it."""
    block = ModelBlock(template, input, **kwargs)
    block.mount()
    return block
