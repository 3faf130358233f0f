"""
Tests for cross-stack wiring and the dependency graph.

Stacks are mocks here; only the bookkeeping is under test. Real synthesis
is covered in test_stacks.py.
"""
import pytest
from unittest.mock import MagicMock


def _network_outputs(groups=("alb", "ecs")):
    from llm_platform.contracts import NetworkOutputs

    return NetworkOutputs(
        vpc=MagicMock(name="vpc"),
        security_groups={name: MagicMock(name=f"sg-{name}") for name in groups},
        load_balancer=MagicMock(name="alb"),
        listener=MagicMock(name="listener"),
        target_groups={},
    )


def _stack(name: str) -> MagicMock:
    stack = MagicMock(name=name)
    stack.stack_name = name
    return stack


# ── DependencyGraph ──────────────────────────────────────────────────────────

def test_graph_order_is_deterministic():
    from llm_platform.wiring import DependencyGraph

    graph = DependencyGraph()
    graph.add_edge("registry", "compute")
    graph.add_edge("network", "data")
    graph.add_edge("network", "compute")
    graph.add_edge("data", "compute")

    assert graph.order() == ["network", "registry", "data", "compute"]
    assert graph.predecessors("compute") == ["data", "network", "registry"]
    assert graph.successors("network") == ["compute", "data"]


def test_graph_cycle_is_rejected():
    from llm_platform.errors import DependencyCycleError
    from llm_platform.wiring import DependencyGraph

    graph = DependencyGraph()
    graph.add_edge("a", "b")
    graph.add_edge("b", "c")
    graph.add_edge("c", "a")

    with pytest.raises(DependencyCycleError, match="cycle"):
        graph.order()


def test_graph_self_edge_is_rejected():
    from llm_platform.errors import DependencyCycleError
    from llm_platform.wiring import DependencyGraph

    with pytest.raises(DependencyCycleError):
        DependencyGraph().add_edge("data", "data")


def test_graph_has_path():
    from llm_platform.wiring import DependencyGraph

    graph = DependencyGraph()
    graph.add_edge("filesystem", "filesystem/mount-targets")
    graph.add_edge("filesystem/mount-targets", "compute/open-webui")

    assert graph.has_path("filesystem", "compute/open-webui")
    assert not graph.has_path("compute/open-webui", "filesystem")
    assert not graph.has_path("unknown", "filesystem")


def test_graph_to_dict():
    from llm_platform.wiring import DependencyGraph

    graph = DependencyGraph()
    graph.add_edge("network", "data", ["vpc", "security_groups.db"])

    assert graph.to_dict() == {
        "nodes": [{"name": "data", "kind": "stack"}, {"name": "network", "kind": "stack"}],
        "edges": [{"from": "network", "to": "data", "names": ["security_groups.db", "vpc"]}],
    }


# ── Outputs / inputs contracts ───────────────────────────────────────────────

def test_outputs_export_flattened_names():
    outputs = _network_outputs()

    assert outputs.names() == {
        "vpc", "security_groups.alb", "security_groups.ecs", "load_balancer", "listener",
    }


def test_outputs_mappings_are_read_only():
    outputs = _network_outputs()

    with pytest.raises(TypeError):
        outputs.security_groups["db"] = MagicMock()


def test_outputs_lookup_unknown_name():
    outputs = _network_outputs()

    with pytest.raises(KeyError):
        outputs.lookup("security_groups.db")
    with pytest.raises(KeyError):
        outputs.lookup("security_groups")
    with pytest.raises(KeyError):
        outputs.lookup("subnets")


def test_inputs_reject_missing_required_field():
    from llm_platform.contracts import DataInputs
    from llm_platform.errors import MissingStackInputError

    with pytest.raises(MissingStackInputError, match="DataInputs requires 'vpc'"):
        DataInputs(vpc=None, security_group=MagicMock())


def test_compute_inputs_filesystem_is_optional():
    from llm_platform.contracts import ComputeInputs

    inputs = ComputeInputs(
        vpc=MagicMock(), security_groups={}, target_groups={}, repositories={}, secrets={},
    )
    assert inputs.file_system is None
    assert inputs.mount_targets_ready is None


# ── Wiring ───────────────────────────────────────────────────────────────────

def test_consumed_outputs_become_stack_dependency():
    from llm_platform.wiring import Wiring

    wiring = Wiring()
    network, compute = _stack("network"), _stack("compute")
    outputs = wiring.register("network", network, _network_outputs())

    wiring.output("compute", "network", "vpc")
    wiring.outputs("compute", "network", "security_groups", ["ecs"])
    wiring.register("compute", compute, MagicMock())

    compute.add_dependency.assert_called_once_with(network)
    network.add_dependency.assert_not_called()
    declared = wiring.declared_inputs("compute", "network")
    assert declared == {"vpc", "security_groups.ecs"}
    assert declared <= outputs.names()
    assert wiring.graph.order() == ["network", "compute"]


def test_missing_security_group_output_fails():
    from llm_platform.errors import MissingStackInputError
    from llm_platform.wiring import Wiring

    wiring = Wiring()
    wiring.register("network", _stack("network"), _network_outputs(groups=("alb",)))

    with pytest.raises(MissingStackInputError) as excinfo:
        wiring.output("compute", "network", "security_groups.ecs")

    assert excinfo.value.consumer == "compute"
    assert excinfo.value.producer == "network"
    assert excinfo.value.name == "security_groups.ecs"
    assert "does not export it" in str(excinfo.value)


def test_unbuilt_producer_fails():
    from llm_platform.errors import MissingStackInputError
    from llm_platform.wiring import Wiring

    with pytest.raises(MissingStackInputError, match="has not been built"):
        Wiring().output("compute", "data", "secrets.database")


def test_built_consumer_cannot_consume_more():
    from llm_platform.errors import SynthesisError
    from llm_platform.wiring import Wiring

    wiring = Wiring()
    wiring.register("network", _stack("network"), _network_outputs())
    wiring.register("compute", _stack("compute"), MagicMock())

    with pytest.raises(SynthesisError, match="already built"):
        wiring.output("compute", "network", "vpc")


def test_role_registered_twice_fails():
    from llm_platform.errors import SynthesisError
    from llm_platform.wiring import Wiring

    wiring = Wiring()
    wiring.register("network", _stack("network"), _network_outputs())

    with pytest.raises(SynthesisError, match="registered twice"):
        wiring.register("network", _stack("network"), _network_outputs())


def test_readiness_probe_is_lifted_into_graph():
    from llm_platform.contracts import FilesystemOutputs
    from llm_platform.readiness import ReadinessProbe
    from llm_platform.wiring import Wiring

    probe = ReadinessProbe("filesystem/mount-targets", MagicMock(name="mount-targets"))
    wiring = Wiring()
    wiring.register(
        "filesystem",
        _stack("filesystem"),
        FilesystemOutputs(file_system=MagicMock(), access_points={}, mount_targets_ready=probe),
    )

    ready = wiring.output("compute", "filesystem", "mount_targets_ready")
    service = MagicMock(name="service")
    ready.gate(service, label="compute/open-webui")
    wiring.register("compute", _stack("compute"), MagicMock())

    service.node.add_dependency.assert_called_once_with(probe.dependable)
    graph = wiring.graph
    assert graph.kind("filesystem/mount-targets") == "probe"
    assert graph.kind("compute/open-webui") == "resource"
    assert graph.has_path("filesystem", "compute/open-webui")


def test_probe_gate_records_label_once():
    from llm_platform.readiness import ReadinessProbe

    probe = ReadinessProbe("filesystem/mount-targets", MagicMock())
    service = MagicMock()
    probe.gate(service, label="compute/open-webui")
    probe.gate(service, label="compute/open-webui")

    assert probe.gated == ["compute/open-webui"]
