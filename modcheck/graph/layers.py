"""
Layer configuration for dependency analysis.

The layer order is always an explicit list, top to bottom. A module's
ordinal is the index of its layer in that list; dependencies are expected
to point at the next layer down.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..errors import RuleConfigurationError
from ..governance.models import Severity, coerce_enum


# Layering used when no configuration is supplied
DEFAULT_LAYERS = ["application", "feature", "domain", "foundation", "core"]


@dataclass
class ArchitectureConfig:
    """
    Complete layering configuration.

    Attributes:
        layers: Layer names ordered top to bottom
        strict_layers: Layers whose outgoing edges are checked (None = all)
        core_layers: Layers that make a cycle CRITICAL
        module_layers: Module id or directory name -> layer (manifest `layer` wins)
        max_layer_distance: Largest allowed downward step before skip_layer
        upward_severity: Severity for upward_dependency
        peer_severity: Severity for peer_dependency
        skip_layer_severity: Severity for skip_layer
        long_cycle_threshold: Cycles longer than this are downgraded one level
    """
    layers: List[str] = field(default_factory=lambda: list(DEFAULT_LAYERS))
    strict_layers: Optional[Set[str]] = None
    core_layers: Set[str] = field(default_factory=lambda: {"core"})
    module_layers: Dict[str, str] = field(default_factory=dict)
    max_layer_distance: int = 1
    upward_severity: Severity = Severity.ERROR
    peer_severity: Severity = Severity.INFO
    skip_layer_severity: Severity = Severity.WARNING
    long_cycle_threshold: int = 4

    def __post_init__(self):
        if len(set(self.layers)) != len(self.layers):
            raise RuleConfigurationError(f"Duplicate layer names in {self.layers}")
        if self.max_layer_distance < 1:
            raise RuleConfigurationError("max_layer_distance must be at least 1")
        unknown = {layer for layer in self.module_layers.values() if layer not in self.layers}
        if unknown:
            raise RuleConfigurationError(f"module_layers refers to undeclared layers: {sorted(unknown)}")

    def ordinal(self, layer: Optional[str]) -> Optional[int]:
        if layer is None or layer not in self.layers:
            return None
        return self.layers.index(layer)

    def is_strict(self, layer: Optional[str]) -> bool:
        if layer is None:
            return False
        return self.strict_layers is None or layer in self.strict_layers

    def is_core(self, layer: Optional[str]) -> bool:
        return layer is not None and layer in self.core_layers

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ArchitectureConfig":
        if not isinstance(raw, dict):
            raise RuleConfigurationError("Architecture config must be a mapping")

        strict = raw.get("strict_layers")
        return cls(
            layers=list(raw.get("layers") or DEFAULT_LAYERS),
            strict_layers=set(strict) if strict is not None else None,
            core_layers=set(raw.get("core_layers") or {"core"}),
            module_layers=dict(raw.get("module_layers") or {}),
            max_layer_distance=int(raw.get("max_layer_distance", 1)),
            upward_severity=coerce_enum(Severity, raw.get("upward_severity", "ERROR"), "severity"),
            peer_severity=coerce_enum(Severity, raw.get("peer_severity", "INFO"), "severity"),
            skip_layer_severity=coerce_enum(Severity, raw.get("skip_layer_severity", "WARNING"), "severity"),
            long_cycle_threshold=int(raw.get("long_cycle_threshold", 4)),
        )

    @classmethod
    def from_yaml(cls, config_path: str) -> "ArchitectureConfig":
        """
        Load layering from a YAML configuration file.

        Args:
            config_path: Path to .modcheck/architecture.yaml

        Returns:
            ArchitectureConfig instance
        """
        try:
            import yaml
        except ImportError:
            raise ImportError("PyYAML is required for YAML config. Install with: pip install pyyaml")

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                raw_config = yaml.safe_load(f) or {}
        except OSError as e:
            raise RuleConfigurationError(f"Cannot read architecture file {config_path}: {e}")
        except yaml.YAMLError as e:
            raise RuleConfigurationError(f"Invalid YAML in {config_path}: {e}")

        return cls.from_dict(raw_config)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layers": list(self.layers),
            "strict_layers": sorted(self.strict_layers) if self.strict_layers is not None else None,
            "core_layers": sorted(self.core_layers),
            "module_layers": dict(self.module_layers),
            "max_layer_distance": self.max_layer_distance,
            "skip_layer_severity": self.skip_layer_severity.value,
            "long_cycle_threshold": self.long_cycle_threshold,
        }
