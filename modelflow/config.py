"""
Runtime configuration, loaded and merged with OmegaConf.

A config source is a YAML path, a dict or a DictConfig. `_base_` names another
source to inherit from; keys in the child win.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from omegaconf import DictConfig, OmegaConf

ConfigSource = Union[str, Path, Mapping[str, Any], DictConfig, "RuntimeConfig"]


@dataclass
class RuntimeConfig:
    """Settings of a ModelBlock and its propagation passes."""

    # Evaluation bound per pass = max(1, node count) * iterations_per_node
    iterations_per_node: int = 100
    validate_on_construct: bool = True
    # False: validation problems are logged, construction continues
    strict_validation: bool = True
    # Log every pass at INFO instead of DEBUG
    log_passes: bool = False

    def evaluation_limit(self, node_count: int) -> int:
        return max(1, node_count) * self.iterations_per_node


def _load_raw(source: ConfigSource) -> DictConfig:
    if isinstance(source, RuntimeConfig):
        return OmegaConf.structured(source)
    if isinstance(source, (str, Path)):
        cfg = OmegaConf.load(source)
    elif isinstance(source, DictConfig):
        cfg = source
    else:
        cfg = OmegaConf.create(dict(source))
    if "_base_" in cfg:
        base = _load_raw(cfg._base_)
        cfg = OmegaConf.merge(base, cfg)
        del cfg["_base_"]
    return cfg


def merge_configs(*configs: ConfigSource) -> DictConfig:
    """Merge several config sources (the last one wins)."""
    return OmegaConf.merge(*(_load_raw(c) for c in configs))


def load_config(source: Optional[ConfigSource] = None, **overrides: Any) -> RuntimeConfig:
    """
    RuntimeConfig from defaults, then source, then keyword overrides.
    Unknown keys and wrongly typed values are rejected by OmegaConf.
    """
    schema = OmegaConf.structured(RuntimeConfig)
    layers = [schema]
    if source is not None:
        layers.append(_load_raw(source))
    if overrides:
        layers.append(OmegaConf.create(overrides))
    merged = OmegaConf.merge(*layers)
    return OmegaConf.to_object(merged)


def save_config(config: RuntimeConfig, path: Union[str, Path]) -> None:
    OmegaConf.save(OmegaConf.structured(config), path)
