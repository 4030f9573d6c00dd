"""
Dependency Graph Analyzer

Builds a directed module dependency graph from manifests and analyzes it:
- cycle detection (white/gray/black DFS in module-path order)
- layer violations against an explicit layer ordering
- build order from the condensation of the graph
- optional, depth-bounded expansion into external packages
"""

import os
import logging
from collections import deque
from typing import Deque, Dict, Iterator, List, Optional, Sequence, Set, Tuple

import networkx as nx

from ..core.facts import ModuleFacts
from ..core.filesystem import FileSystem, LocalFileSystem
from ..core.manifest import MANIFEST_FILENAME, parse_manifest
from ..errors import GraphConstructionError
from ..governance.models import Severity
from .layers import ArchitectureConfig
from .models import (
    EDGE_WEIGHTS,
    DependencyCycle,
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    EdgeType,
    GraphAnalysisResult,
    LayerViolation,
    LayerViolationType,
    UnresolvedDependency,
)

logger = logging.getLogger(__name__)

WHITE, GRAY, BLACK = 0, 1, 2

# Manifest sections in precedence order; the first section naming a dependency wins.
DEPENDENCY_SECTIONS = [
    ("dependencies", EdgeType.RUNTIME),
    ("peerDependencies", EdgeType.PEER),
    ("devDependencies", EdgeType.DEV),
]

WORKSPACE_PREFIXES = ("workspace:", "file:", "link:")


def strip_scope(name: str) -> str:
    """'@org/auth' -> 'auth'"""
    if name.startswith("@") and "/" in name:
        return name.split("/", 1)[1]
    return name


def declared_edges(manifest: Dict, include_dev: bool = True) -> Iterator[Tuple[str, str, EdgeType]]:
    """Yield (name, version, edge type) for each declared dependency."""
    seen: Set[str] = set()
    for section, edge_type in DEPENDENCY_SECTIONS:
        if edge_type == EdgeType.DEV and not include_dev:
            continue
        entries = manifest.get(section)
        if not isinstance(entries, dict):
            continue
        for name in sorted(entries):
            if not isinstance(name, str) or not name or name in seen:
                continue
            seen.add(name)
            version = entries[name]
            yield name, version if isinstance(version, str) else "", edge_type


class DependencyGraphAnalyzer:
    """
    Analyzes dependencies between a set of modules.

    Usage:
        analyzer = DependencyGraphAnalyzer(ArchitectureConfig(layers=["app", "domain", "core"]))
        result = analyzer.analyze([probe.probe(p) for p in module_paths])
        for cycle in result.cycles:
            print(cycle.modules, cycle.severity)
    """

    def __init__(
        self,
        config: Optional[ArchitectureConfig] = None,
        filesystem: Optional[FileSystem] = None,
        include_dev: bool = True
    ):
        """
        Initialize the analyzer.

        Args:
            config: Layer ordering and severities. If None, uses the defaults.
            filesystem: Used to read external package manifests
            include_dev: Whether devDependencies create edges
        """
        self.config = config or ArchitectureConfig()
        self.fs = filesystem or LocalFileSystem()
        self.include_dev = include_dev

    def analyze(
        self,
        modules: Sequence[ModuleFacts],
        include_external: bool = False,
        max_depth: Optional[int] = None
    ) -> GraphAnalysisResult:
        """
        Build the graph and run every analysis on it.

        Args:
            modules: Facts for every in-scope module
            include_external: Add nodes for dependencies outside the module set
            max_depth: How many hops to follow into external packages (None = unbounded)

        Returns:
            GraphAnalysisResult
        """
        ordered = sorted(modules, key=lambda f: (f.module_path, f.module_id))
        warnings: List[str] = []

        nodes = self._build_nodes(ordered, warnings)
        facts_by_id = {node.id: facts for node, facts in zip(nodes, ordered)}
        name_index = self._build_name_index(nodes, ordered)

        edges: Dict[Tuple[str, str], DependencyEdge] = {}
        unresolved: List[UnresolvedDependency] = []
        for node in nodes:
            self._collect_edges(node, facts_by_id[node.id], name_index, edges, unresolved, warnings)

        g = nx.DiGraph()
        for node in nodes:
            g.add_node(node.id, module_path=node.module_path, layer=node.layer, type=node.type)
        for edge in edges.values():
            g.add_edge(edge.source, edge.target, type=edge.type.value, weight=edge.weight)

        path_of = {node.id: node.module_path for node in nodes}
        cycles = self.find_cycles(g, path_of)
        violations = self.find_layer_violations(nodes, list(edges.values()))
        build_order = self._build_order(g, path_of)

        external_nodes: List[DependencyNode] = []
        external_edges: List[DependencyEdge] = []
        truncated = False
        if include_external:
            external_nodes, external_edges, truncated = self._expand_external(
                unresolved, facts_by_id, name_index, max_depth
            )

        all_nodes = sorted(
            nodes + external_nodes,
            key=lambda n: (n.type == "external", n.module_path, n.id)
        )
        node_path = {n.id: n.module_path for n in all_nodes}
        all_edges = sorted(
            list(edges.values()) + external_edges,
            key=lambda e: (node_path.get(e.source, ""), node_path.get(e.target, ""), e.source, e.target)
        )

        result = GraphAnalysisResult(
            graph=DependencyGraph(nodes=all_nodes, edges=all_edges),
            cycles=cycles,
            violations=violations,
            unresolved=unresolved,
            build_order=build_order,
            truncated=truncated,
            warnings=warnings,
        )
        logger.debug("Dependency analysis: %s", result.get_statistics())
        return result

    # ─── Graph construction ───────────────────────

    def _layer_for(self, facts: ModuleFacts, module_id: str) -> Optional[str]:
        declared = facts.manifest.get("layer")
        if isinstance(declared, str) and declared:
            return declared
        return self.config.module_layers.get(module_id) or self.config.module_layers.get(facts.name)

    def _build_nodes(self, ordered: List[ModuleFacts], warnings: List[str]) -> List[DependencyNode]:
        nodes: List[DependencyNode] = []
        used: Set[str] = set()
        for facts in ordered:
            node_id = facts.module_id
            if node_id in used:
                suffix = 2
                while f"{facts.module_id}#{suffix}" in used:
                    suffix += 1
                node_id = f"{facts.module_id}#{suffix}"
                warnings.append(f"Duplicate module id '{facts.module_id}' at {facts.module_path}; using '{node_id}'")
            used.add(node_id)

            layer = self._layer_for(facts, facts.module_id)
            if layer is not None and layer not in self.config.layers:
                warnings.append(f"Module {node_id} declares unknown layer '{layer}'")
            nodes.append(DependencyNode(
                id=node_id,
                module_path=facts.module_path,
                layer=layer,
                type=facts.module_type,
            ))
        return nodes

    def _build_name_index(self, nodes: List[DependencyNode], ordered: List[ModuleFacts]) -> Dict[str, str]:
        """Dependency name -> node id, by exact name, then scope-stripped name, then directory."""
        index: Dict[str, str] = {}
        for node, facts in zip(nodes, ordered):
            index.setdefault(facts.module_id, node.id)
        for node, facts in zip(nodes, ordered):
            index.setdefault(strip_scope(facts.module_id), node.id)
        for node, facts in zip(nodes, ordered):
            index.setdefault(facts.name, node.id)
        return index

    def _resolve(self, name: str, name_index: Dict[str, str]) -> Optional[str]:
        return name_index.get(name) or name_index.get(strip_scope(name))

    def _collect_edges(
        self,
        node: DependencyNode,
        facts: ModuleFacts,
        name_index: Dict[str, str],
        edges: Dict[Tuple[str, str], DependencyEdge],
        unresolved: List[UnresolvedDependency],
        warnings: List[str]
    ) -> None:
        for name, version, edge_type in declared_edges(facts.manifest, self.include_dev):
            target = self._resolve(name, name_index)
            if target == node.id:
                warnings.append(f"Module {node.id} declares a dependency on itself")
                continue
            if target is None:
                if version.startswith(WORKSPACE_PREFIXES):
                    error = GraphConstructionError(node.id, name, "workspace dependency is not among the analyzed modules")
                    warnings.append(str(error))
                    reason = error.reason
                else:
                    reason = "not an in-scope module"
                unresolved.append(UnresolvedDependency(node.id, name, version, reason))
                continue
            key = (node.id, target)
            if key not in edges:
                edges[key] = DependencyEdge(
                    source=node.id,
                    target=target,
                    type=edge_type,
                    weight=EDGE_WEIGHTS[edge_type],
                    version=version,
                )

    # ─── Cycles ───────────────────────────────────

    def find_cycles(self, g: nx.DiGraph, path_of: Dict[str, str]) -> List[DependencyCycle]:
        """
        Find cycles with a colored DFS.

        Nodes and successors are visited in module-path order, so the same
        graph always yields the same cycles in the same order. Each back
        edge u -> v to a gray node reports the path from v to u.
        """
        def key(node_id: str):
            return (path_of.get(node_id, ""), node_id)

        order = sorted(g.nodes, key=key)
        successors = {
            n: sorted((s for s in g.successors(n) if s != n), key=key)
            for n in order
        }
        color = {n: WHITE for n in order}
        cycles: List[DependencyCycle] = []

        for root in order:
            if color[root] != WHITE:
                continue
            color[root] = GRAY
            path = [root]
            stack: List[Tuple[str, Iterator[str]]] = [(root, iter(successors[root]))]

            while stack:
                node, remaining = stack[-1]
                descended = False
                for nxt in remaining:
                    if color[nxt] == WHITE:
                        color[nxt] = GRAY
                        path.append(nxt)
                        stack.append((nxt, iter(successors[nxt])))
                        descended = True
                        break
                    if color[nxt] == GRAY:
                        members = path[path.index(nxt):]
                        cycles.append(DependencyCycle(members, self._cycle_severity(g, members)))
                if not descended:
                    color[node] = BLACK
                    path.pop()
                    stack.pop()

        return cycles

    def _cycle_severity(self, g: nx.DiGraph, members: List[str]) -> Severity:
        core = any(self.config.is_core(g.nodes[m].get("layer")) for m in members)
        severity = Severity.CRITICAL if core else Severity.WARNING
        if len(members) > self.config.long_cycle_threshold:
            severity = severity.downgraded()
        return severity

    # ─── Layers ───────────────────────────────────

    def find_layer_violations(
        self,
        nodes: List[DependencyNode],
        edges: List[DependencyEdge]
    ) -> List[LayerViolation]:
        """Check every in-scope edge against the layer ordering."""
        by_id = {n.id: n for n in nodes}
        violations: List[LayerViolation] = []

        for edge in sorted(edges, key=lambda e: (by_id[e.source].module_path, by_id[e.target].module_path)):
            source, target = by_id[edge.source], by_id[edge.target]
            if not self.config.is_strict(source.layer):
                continue
            s_ord = self.config.ordinal(source.layer)
            t_ord = self.config.ordinal(target.layer)
            if s_ord is None or t_ord is None:
                continue

            if t_ord < s_ord:
                kind, severity = LayerViolationType.UPWARD_DEPENDENCY, self.config.upward_severity
                message = f"{source.id} ({source.layer}) depends upward on {target.id} ({target.layer})"
            elif t_ord == s_ord:
                kind, severity = LayerViolationType.PEER_DEPENDENCY, self.config.peer_severity
                message = f"{source.id} depends on peer {target.id} in layer {source.layer}"
            elif t_ord - s_ord > self.config.max_layer_distance:
                kind, severity = LayerViolationType.SKIP_LAYER, self.config.skip_layer_severity
                message = (
                    f"{source.id} ({source.layer}) skips {t_ord - s_ord - 1} layer(s) "
                    f"to depend on {target.id} ({target.layer})"
                )
            else:
                continue

            violations.append(LayerViolation(
                violation_type=kind,
                source=source.id,
                target=target.id,
                source_layer=source.layer,
                target_layer=target.layer,
                severity=severity,
                message=message,
            ))
        return violations

    # ─── Build order ──────────────────────────────

    def _build_order(self, g: nx.DiGraph, path_of: Dict[str, str]) -> List[List[str]]:
        """Groups of modules, dependencies first; cycle members share a group."""
        if g.number_of_nodes() == 0:
            return []
        condensed = nx.condensation(g)
        generations = list(nx.topological_generations(condensed))
        order: List[List[str]] = []
        for generation in reversed(generations):
            members = [m for c in generation for m in condensed.nodes[c]["members"]]
            order.append(sorted(members, key=lambda m: (path_of.get(m, ""), m)))
        return order

    # ─── External expansion ───────────────────────

    def _read_external_manifest(self, base_path: str, name: str) -> Tuple[str, Dict]:
        package_dir = os.path.join(base_path, "node_modules", *name.split("/"))
        manifest_path = os.path.join(package_dir, MANIFEST_FILENAME)
        try:
            if not self.fs.is_file(manifest_path):
                return "", {}
            manifest, _ = parse_manifest(self.fs.read_text(manifest_path), manifest_path)
        except OSError as e:
            logger.debug("Cannot read external manifest %s: %s", manifest_path, e)
            return "", {}
        return package_dir, manifest

    def _expand_external(
        self,
        unresolved: List[UnresolvedDependency],
        facts_by_id: Dict[str, ModuleFacts],
        name_index: Dict[str, str],
        max_depth: Optional[int]
    ) -> Tuple[List[DependencyNode], List[DependencyEdge], bool]:
        """
        Breadth-first walk into external packages via node_modules manifests.

        Hops beyond max_depth are dropped and the result is marked truncated.
        """
        queue: Deque[Tuple[str, str, str, int, str]] = deque(
            (u.source, u.dependency, u.version, 1, facts_by_id[u.source].module_path)
            for u in unresolved
        )
        nodes: Dict[str, DependencyNode] = {}
        edges: Dict[Tuple[str, str], DependencyEdge] = {}
        truncated = False

        while queue:
            source, name, version, depth, base_path = queue.popleft()
            if max_depth is not None and depth > max_depth:
                truncated = True
                continue

            ext_id = f"external:{name}"
            edges.setdefault((source, ext_id), DependencyEdge(
                source=source,
                target=ext_id,
                type=EdgeType.EXTERNAL,
                weight=EDGE_WEIGHTS[EdgeType.EXTERNAL],
                version=version,
            ))
            if ext_id in nodes:
                continue

            package_dir, manifest = self._read_external_manifest(base_path, name)
            nodes[ext_id] = DependencyNode(id=ext_id, module_path=package_dir, type="external")
            for dep_name, dep_version, _ in declared_edges(manifest, include_dev=False):
                if self._resolve(dep_name, name_index) is not None:
                    continue
                queue.append((ext_id, dep_name, dep_version, depth + 1, base_path))

        return list(nodes.values()), list(edges.values()), truncated
