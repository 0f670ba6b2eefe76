"""
Engine configuration loaded from ``configs/engine.yaml``.

Every section maps onto a dataclass whose defaults match the shipped YAML,
so a missing file or a missing key falls back to the built-in values.
Unknown sections or keys are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from tamper_engine.aggregator import MISSING_METADATA_PENALTY, WARNING_PENALTY
from tamper_engine.copy_move import DEFAULT_BLOCK_SIZE as CM_BLOCK_SIZE, SIMILARITY_THRESHOLD
from tamper_engine.ela import DEFAULT_BLOCK_SIZE as ELA_BLOCK_SIZE, DEFAULT_QUALITY, REGION_THRESHOLD, SATURATION


CONFIG_PATH = Path(__file__).parent.parent / "configs" / "engine.yaml"


@dataclass
class ELAConfig:
    quality: float = DEFAULT_QUALITY
    block_size: int = ELA_BLOCK_SIZE
    saturation: float = SATURATION
    region_threshold: float = REGION_THRESHOLD
    timeout: Optional[float] = 30.0


@dataclass
class CopyMoveConfig:
    block_size: int = CM_BLOCK_SIZE
    similarity_threshold: float = SIMILARITY_THRESHOLD
    min_separation: Optional[float] = None
    workers: int = 1


@dataclass
class AggregatorConfig:
    missing_metadata_penalty: float = MISSING_METADATA_PENALTY
    warning_penalty: float = WARNING_PENALTY


@dataclass
class OutputConfig:
    dir: Optional[str] = None
    save_images: bool = True


@dataclass
class EngineConfig:
    ela: ELAConfig = field(default_factory=ELAConfig)
    copy_move: CopyMoveConfig = field(default_factory=CopyMoveConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_dict(cls, cfg: Optional[Dict[str, Any]]) -> "EngineConfig":
        cfg = cfg or {}
        sections = {f.name: f for f in fields(cls)}
        unknown = set(cfg) - set(sections)
        if unknown:
            raise ValueError(f"Unknown config section(s): {sorted(unknown)}")

        kwargs = {}
        for name, f in sections.items():
            section_cls = f.default_factory
            values = cfg.get(name) or {}
            try:
                kwargs[name] = section_cls(**values)
            except TypeError as exc:
                raise ValueError(f"Invalid keys in config section '{name}': {exc}") from exc
        return cls(**kwargs)


def load_config(config_path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """Load an ``EngineConfig`` from YAML.

    With no argument the shipped ``configs/engine.yaml`` is used when it
    exists, otherwise the built-in defaults.  An explicit path that does
    not exist raises ``FileNotFoundError``.
    """
    if config_path is None:
        if not CONFIG_PATH.exists():
            return EngineConfig()
        config_path = CONFIG_PATH

    with open(config_path, encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    return EngineConfig.from_dict(cfg)
