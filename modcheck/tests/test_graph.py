"""
Tests for dependency graph analysis.
"""

import json

import pytest

from modcheck.core import ModuleFacts
from modcheck.errors import RuleConfigurationError
from modcheck.governance import Severity
from modcheck.graph import (
    ArchitectureConfig,
    DependencyGraphAnalyzer,
    EdgeType,
    LayerViolationType,
    strip_scope,
)


def module(name, layer=None, deps=None, dev_deps=None, path=None):
    manifest = {"name": name}
    if layer:
        manifest["layer"] = layer
    if deps:
        manifest["dependencies"] = deps
    if dev_deps:
        manifest["devDependencies"] = dev_deps
    return ModuleFacts(
        module_path=path or f"/modules/{strip_scope(name)}",
        module_id=name,
        name=strip_scope(name),
        manifest=manifest,
        manifest_present=True,
    )


def test_core_cycle_is_critical():
    """Test a -> b -> a in the core layer is one CRITICAL cycle."""
    result = DependencyGraphAnalyzer().analyze([
        module("a", layer="core", deps={"b": "1.0.0"}),
        module("b", layer="core", deps={"a": "1.0.0"}),
    ])

    assert len(result.cycles) == 1
    cycle = result.cycles[0]
    assert cycle.modules == ["a", "b"]
    assert cycle.severity == Severity.CRITICAL
    assert cycle.to_dict()["path"] == "a -> b -> a"
    # cycle members share a build-order group
    assert result.build_order == [["a", "b"]]


def test_non_core_cycle_is_warning():
    result = DependencyGraphAnalyzer().analyze([
        module("a", layer="feature", deps={"b": "1.0.0"}),
        module("b", layer="feature", deps={"a": "1.0.0"}),
    ])

    assert [c.severity for c in result.cycles] == [Severity.WARNING]


def test_long_cycles_downgraded():
    names = ["m1", "m2", "m3", "m4", "m5"]
    modules = [
        module(name, layer="core", deps={names[(i + 1) % len(names)]: "1.0.0"})
        for i, name in enumerate(names)
    ]

    result = DependencyGraphAnalyzer().analyze(modules)

    assert len(result.cycles) == 1
    assert len(result.cycles[0]) == 5
    assert result.cycles[0].severity == Severity.ERROR


def test_cycles_independent_of_input_order():
    modules = [
        module("a", deps={"b": "1"}),
        module("b", deps={"c": "1"}),
        module("c", deps={"a": "1"}),
        module("d", deps={"a": "1"}),
    ]
    analyzer = DependencyGraphAnalyzer()

    forward = analyzer.analyze(modules).to_dict()
    backward = analyzer.analyze(list(reversed(modules))).to_dict()

    assert forward == backward
    assert forward["cycles"][0]["modules"] == ["a", "b", "c"]


def test_layer_violations():
    config = ArchitectureConfig(layers=["app", "domain", "core"])
    result = DependencyGraphAnalyzer(config).analyze([
        module("web", layer="app", deps={"kernel": "1", "orders": "1"}),
        module("orders", layer="domain", deps={"billing": "1"}),
        module("billing", layer="domain"),
        module("kernel", layer="core", deps={"web": "1"}),
    ])

    found = {(v.source, v.target): v for v in result.violations}

    assert found[("web", "kernel")].violation_type == LayerViolationType.SKIP_LAYER
    assert found[("web", "kernel")].severity == Severity.WARNING
    assert found[("kernel", "web")].violation_type == LayerViolationType.UPWARD_DEPENDENCY
    assert found[("kernel", "web")].severity == Severity.ERROR
    assert found[("orders", "billing")].violation_type == LayerViolationType.PEER_DEPENDENCY
    assert found[("orders", "billing")].severity == Severity.INFO
    # the next layer down is always allowed
    assert ("web", "orders") not in found


def test_non_strict_layers_not_checked():
    config = ArchitectureConfig(layers=["app", "core"], strict_layers={"app"})
    result = DependencyGraphAnalyzer(config).analyze([
        module("web", layer="app"),
        module("kernel", layer="core", deps={"web": "1"}),
    ])

    assert result.violations == []


def test_layer_from_config_mapping():
    config = ArchitectureConfig(layers=["app", "core"], module_layers={"kernel": "core", "web": "app"})
    result = DependencyGraphAnalyzer(config).analyze([
        module("web"),
        module("kernel", deps={"web": "1"}),
    ])

    assert [v.violation_type for v in result.violations] == [LayerViolationType.UPWARD_DEPENDENCY]


def test_unresolved_and_scoped_names():
    result = DependencyGraphAnalyzer().analyze([
        module("@org/api", deps={"@org/db": "workspace:*", "react": "^18.0.0"}),
        module("@org/db"),
    ])

    assert [(e.source, e.target) for e in result.graph.edges] == [("@org/api", "@org/db")]
    assert [u.dependency for u in result.unresolved] == ["react"]
    assert result.build_order == [["@org/db"], ["@org/api"]]


def test_edge_types_and_dev_dependencies():
    modules = [
        module("app", deps={"lib": "1"}, dev_deps={"tools": "1"}),
        module("lib"),
        module("tools"),
    ]

    with_dev = DependencyGraphAnalyzer().analyze(modules)
    without_dev = DependencyGraphAnalyzer(include_dev=False).analyze(modules)

    types = {e.target: e.type for e in with_dev.graph.edges}
    assert types == {"lib": EdgeType.RUNTIME, "tools": EdgeType.DEV}
    assert [e.target for e in without_dev.graph.edges] == ["lib"]


def test_duplicate_module_ids_get_suffix():
    result = DependencyGraphAnalyzer().analyze([
        module("shared", path="/modules/a/shared"),
        module("shared", path="/modules/b/shared"),
    ])

    assert [n.id for n in result.graph.nodes] == ["shared", "shared#2"]
    assert any("Duplicate module id" in w for w in result.warnings)


def test_external_expansion_respects_depth(tmp_path):
    app_dir = tmp_path / "app"
    for name, deps in (("express", {"body-parser": "1.0.0"}), ("body-parser", {"bytes": "3.0.0"})):
        package_dir = app_dir / "node_modules" / name
        package_dir.mkdir(parents=True)
        (package_dir / "package.json").write_text(json.dumps({"name": name, "dependencies": deps}))

    app = module("app", deps={"express": "^4.18.0"}, path=str(app_dir))

    shallow = DependencyGraphAnalyzer().analyze([app], include_external=True, max_depth=1)
    deep = DependencyGraphAnalyzer().analyze([app], include_external=True)

    assert [n.id for n in shallow.graph.nodes] == ["app", "external:express"]
    assert shallow.truncated
    assert {n.id for n in deep.graph.nodes} == {"app", "external:express", "external:body-parser", "external:bytes"}
    assert not deep.truncated
    assert deep.get_statistics()["total_modules"] == 1


def test_architecture_config_validation():
    with pytest.raises(RuleConfigurationError):
        ArchitectureConfig(layers=["app", "app"])
    with pytest.raises(RuleConfigurationError):
        ArchitectureConfig(layers=["app"], module_layers={"x": "missing"})

    config = ArchitectureConfig.from_dict({"layers": ["ui", "core"], "upward_severity": "critical"})
    assert config.ordinal("core") == 1
    assert config.upward_severity == Severity.CRITICAL
