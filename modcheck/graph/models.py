"""
Dependency graph types and models.

Nodes are modules, edges are declared manifest dependencies between
in-scope modules. Cycles, layer violations and unresolved dependencies
are the findings the analyzer reports on top of the graph.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import networkx as nx

from ..governance.models import Severity


class EdgeType(Enum):
    """Which manifest section declared a dependency."""
    RUNTIME = "runtime"         # dependencies
    PEER = "peer"               # peerDependencies
    DEV = "dev"                 # devDependencies
    EXTERNAL = "external"       # edge to a module outside the analyzed set


EDGE_WEIGHTS = {
    EdgeType.RUNTIME: 1.0,
    EdgeType.PEER: 0.75,
    EdgeType.DEV: 0.5,
    EdgeType.EXTERNAL: 0.25,
}


class LayerViolationType(Enum):
    """Ways a dependency edge can break the layer ordering."""
    UPWARD_DEPENDENCY = "upward_dependency"
    PEER_DEPENDENCY = "peer_dependency"
    SKIP_LAYER = "skip_layer"


@dataclass(frozen=True)
class DependencyNode:
    """A module in the dependency graph."""
    id: str
    module_path: str
    layer: Optional[str] = None
    type: str = "module"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "module_path": self.module_path,
            "layer": self.layer,
            "type": self.type,
        }


@dataclass(frozen=True)
class DependencyEdge:
    """A directed dependency: source depends on target."""
    source: str
    target: str
    type: EdgeType = EdgeType.RUNTIME
    weight: float = 1.0
    version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "target": self.target,
            "type": self.type.value,
            "weight": self.weight,
            "version": self.version,
        }


@dataclass(frozen=True)
class DependencyCycle:
    """
    A dependency cycle found by DFS.

    Attributes:
        modules: Node sequence from the back-edge target to the node that
                 closes the cycle; the implicit closing edge is modules[-1] -> modules[0]
        severity: CRITICAL when a member is in a core layer, downgraded for long cycles
    """
    modules: List[str]
    severity: Severity

    def __len__(self) -> int:
        return len(self.modules)

    @property
    def back_edge(self):
        return (self.modules[-1], self.modules[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modules": list(self.modules),
            "length": len(self.modules),
            "severity": self.severity.value,
            "path": " -> ".join(self.modules + self.modules[:1]),
        }


@dataclass(frozen=True)
class LayerViolation:
    """A dependency edge that breaks the declared layer ordering."""
    violation_type: LayerViolationType
    source: str
    target: str
    source_layer: str
    target_layer: str
    severity: Severity
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.violation_type.value,
            "source": self.source,
            "target": self.target,
            "source_layer": self.source_layer,
            "target_layer": self.target_layer,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass(frozen=True)
class UnresolvedDependency:
    """A declared dependency that is not one of the analyzed modules."""
    source: str
    dependency: str
    version: str = ""
    reason: str = "not an in-scope module"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "dependency": self.dependency,
            "version": self.version,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class DependencyGraph:
    """
    Read-only module dependency graph.

    Nodes and edges are sorted by module path.
    """
    nodes: List[DependencyNode] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)

    def node(self, node_id: str) -> Optional[DependencyNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def successors(self, node_id: str) -> List[str]:
        return [e.target for e in self.edges if e.source == node_id]

    def predecessors(self, node_id: str) -> List[str]:
        return [e.source for e in self.edges if e.target == node_id]

    def to_networkx(self) -> nx.DiGraph:
        g = nx.DiGraph()
        for node in self.nodes:
            g.add_node(node.id, module_path=node.module_path, layer=node.layer, type=node.type)
        for edge in self.edges:
            g.add_edge(edge.source, edge.target, type=edge.type.value, weight=edge.weight)
        return g

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


@dataclass
class GraphAnalysisResult:
    """Everything the dependency analyzer found for one set of modules."""
    graph: DependencyGraph
    cycles: List[DependencyCycle] = field(default_factory=list)
    violations: List[LayerViolation] = field(default_factory=list)
    unresolved: List[UnresolvedDependency] = field(default_factory=list)
    build_order: List[List[str]] = field(default_factory=list)
    truncated: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return len(self.cycles) > 0

    def cycles_for(self, module_id: str) -> List[DependencyCycle]:
        return [c for c in self.cycles if module_id in c.modules]

    def violations_for(self, module_id: str) -> List[LayerViolation]:
        return [v for v in self.violations if v.source == module_id]

    def unresolved_for(self, module_id: str) -> List[UnresolvedDependency]:
        return [u for u in self.unresolved if u.source == module_id]

    def get_statistics(self) -> Dict[str, Any]:
        """Get graph statistics."""
        in_scope = [n for n in self.graph.nodes if n.type != "external"]
        return {
            "total_modules": len(in_scope),
            "total_nodes": len(self.graph.nodes),
            "total_edges": len(self.graph.edges),
            "cycles": len(self.cycles),
            "layer_violations": len(self.violations),
            "unresolved_dependencies": len(self.unresolved),
            "truncated": self.truncated,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "graph": self.graph.to_dict(),
            "cycles": [c.to_dict() for c in self.cycles],
            "violations": [v.to_dict() for v in self.violations],
            "unresolved": [u.to_dict() for u in self.unresolved],
            "build_order": [list(level) for level in self.build_order],
            "truncated": self.truncated,
            "warnings": list(self.warnings),
            "statistics": self.get_statistics(),
        }
