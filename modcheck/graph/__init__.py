"""
Graph module - Module dependency graph analysis.

Builds the inter-module dependency graph from manifests and reports
cycles, layer violations, unresolved dependencies and build order.
"""

from .models import (
    EdgeType,
    LayerViolationType,
    DependencyNode,
    DependencyEdge,
    DependencyCycle,
    LayerViolation,
    UnresolvedDependency,
    DependencyGraph,
    GraphAnalysisResult
)

from .layers import (
    DEFAULT_LAYERS,
    ArchitectureConfig
)

from .analyzer import (
    DependencyGraphAnalyzer,
    declared_edges,
    strip_scope
)

__all__ = [
    # Models
    "EdgeType",
    "LayerViolationType",
    "DependencyNode",
    "DependencyEdge",
    "DependencyCycle",
    "LayerViolation",
    "UnresolvedDependency",
    "DependencyGraph",
    "GraphAnalysisResult",
    # Layers
    "DEFAULT_LAYERS",
    "ArchitectureConfig",
    # Analyzer
    "DependencyGraphAnalyzer",
    "declared_edges",
    "strip_scope",
]
