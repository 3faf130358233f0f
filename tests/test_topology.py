"""
Tests for topology validation.

Every structural mistake must be rejected while the model is validated,
before a single construct is created.
"""
import ipaddress
import json

import pytest
from pydantic import ValidationError


def _default_dump() -> dict:
    from llm_platform.topology import default_topology

    return default_topology().model_dump()


def _webui_container(data: dict) -> dict:
    return data["services"][0]["containers"][0]


# ── Default topology ─────────────────────────────────────────────────────────

def test_default_topology_is_valid():
    from llm_platform.topology import default_topology

    topology = default_topology()

    assert [s.name for s in topology.services] == ["open-webui", "llm-gateway"]
    assert [g.name for g in topology.security_groups] == ["alb", "ecs", "db", "efs", "gateway"]
    assert topology.load_balanced_services() == ["open-webui"]
    assert topology.mounts_filesystem() is True


def test_default_topology_lookups_are_sorted():
    from llm_platform.topology import default_topology

    topology = default_topology()

    assert topology.service_security_groups() == ["ecs", "gateway"]
    assert topology.service_repositories() == ["llm-platform/llm-gateway", "llm-platform/open-webui"]
    assert topology.service_secrets() == ["database", "gateway-master-key", "webui-secret-key"]
    assert topology.service_access_points() == ["open-webui-data"]


def test_default_containers_carry_no_plaintext_secrets():
    from llm_platform.topology import default_topology

    for service in default_topology().services:
        for container in service.containers:
            assert not any("PASSWORD" in key or "SECRET" in key for key in container.environment)


def test_roundtrip_through_json_document(tmp_path):
    from llm_platform.topology import default_topology, load_topology

    path = tmp_path / "topology.json"
    path.write_text(default_topology().model_dump_json())

    assert load_topology(path) == default_topology()


def test_load_topology_without_path_returns_default():
    from llm_platform.topology import default_topology, load_topology

    assert load_topology(None) == default_topology()
    assert load_topology("") == default_topology()


def test_load_topology_missing_file(tmp_path):
    from llm_platform.errors import TopologyError
    from llm_platform.topology import load_topology

    with pytest.raises(TopologyError, match="not found"):
        load_topology(tmp_path / "missing.json")


def test_load_topology_rejects_invalid_document(tmp_path):
    from llm_platform.topology import load_topology

    data = _default_dump()
    data["database"]["subnet_group"] = "Private"
    path = tmp_path / "topology.json"
    path.write_text(json.dumps(data))

    with pytest.raises(ValidationError, match="isolated"):
        load_topology(path)


# ── Network ──────────────────────────────────────────────────────────────────

def test_subnet_plan_is_contained_and_disjoint():
    from llm_platform.topology import NetworkSpec

    network = NetworkSpec()
    plan = network.plan_subnets()
    vpc = ipaddress.ip_network(network.cidr)
    blocks = [ipaddress.ip_network(s.cidr) for s in plan]

    assert len(plan) == 9
    assert all(block.subnet_of(vpc) for block in blocks)
    for i, a in enumerate(blocks):
        for b in blocks[i + 1:]:
            assert not a.overlaps(b)


def test_subnet_plan_follows_group_order():
    from llm_platform.topology import NetworkSpec

    plan = NetworkSpec(max_azs=2).plan_subnets()

    assert [s.group for s in plan] == ["Public", "Public", "Private", "Private", "Isolated", "Isolated"]
    assert plan[0].cidr == "10.0.0.0/24"
    assert plan[-1].cidr == "10.0.5.0/24"


def test_subnet_plan_overflow_is_rejected():
    from llm_platform.topology import NetworkSpec

    with pytest.raises(ValidationError, match="does not fit"):
        NetworkSpec(cidr="10.0.0.0/23")


def test_invalid_vpc_cidr_is_rejected():
    from llm_platform.topology import NetworkSpec

    with pytest.raises(ValidationError, match="Invalid CIDR"):
        NetworkSpec(cidr="10.0.0.1/16")


def test_private_subnets_require_nat():
    from llm_platform.topology import NetworkSpec

    with pytest.raises(ValidationError, match="NAT gateway"):
        NetworkSpec(nat_gateways=0)


# ── Security groups ──────────────────────────────────────────────────────────

def test_forward_security_group_reference_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["security_groups"][0]["ingress"].append({"peer": "ecs", "port": 443})

    with pytest.raises(ValidationError, match="not declared before it"):
        PlatformSpec.model_validate(data)


def test_self_reference_is_allowed():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["security_groups"][1]["ingress"].append({"peer": "ecs", "port": 9000})

    topology = PlatformSpec.model_validate(data)
    assert topology.security_group("ecs").ingress[-1].peer == "ecs"


def test_duplicate_security_group_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["security_groups"].append(dict(data["security_groups"][0]))

    with pytest.raises(ValidationError, match="declared twice"):
        PlatformSpec.model_validate(data)


def test_security_group_name_with_slash_is_rejected():
    from llm_platform.topology import SecurityGroupSpec

    with pytest.raises(ValidationError, match="Security group name 'web/ecs'"):
        SecurityGroupSpec(name="web/ecs", description="tasks")


def test_inverted_port_range_is_rejected():
    from llm_platform.topology import IngressRuleSpec

    with pytest.raises(ValidationError, match="inverted"):
        IngressRuleSpec(peer="10.0.0.0/8", port=9000, to_port=8000)


# ── Placement ────────────────────────────────────────────────────────────────

def test_database_outside_isolated_tier_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["database"]["subnet_group"] = "Public"

    with pytest.raises(ValidationError, match="isolated"):
        PlatformSpec.model_validate(data)


def test_load_balancer_outside_public_tier_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["load_balancer"]["subnet_group"] = "Private"

    with pytest.raises(ValidationError, match="public"):
        PlatformSpec.model_validate(data)


def test_unknown_subnet_group_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["services"][1]["subnet_group"] = "Nowhere"

    with pytest.raises(ValidationError, match="unknown subnet group 'Nowhere'"):
        PlatformSpec.model_validate(data)


# ── Routing ──────────────────────────────────────────────────────────────────

def test_duplicate_listener_priority_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["load_balancer"]["listener"]["rules"].append(
        {"priority": 1, "path_patterns": ["/other*"], "target": "open-webui"}
    )

    with pytest.raises(ValidationError, match="priority 1 is used by both"):
        PlatformSpec.model_validate(data)


def test_route_to_unbalanced_service_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["load_balancer"]["listener"]["rules"].append(
        {"priority": 2, "path_patterns": ["/v1/*"], "target": "llm-gateway"}
    )

    with pytest.raises(ValidationError, match="not a load-balanced service"):
        PlatformSpec.model_validate(data)


def test_unrouted_load_balanced_service_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["load_balancer"]["listener"]["default_target"] = None
    data["load_balancer"]["listener"]["rules"] = []

    with pytest.raises(ValidationError, match="not reachable"):
        PlatformSpec.model_validate(data)


# ── Containers and secrets ───────────────────────────────────────────────────

@pytest.mark.parametrize(
    "environment",
    [
        {"DATABASE_PASSWORD": "hunter2"},
        {"WEBUI_SECRET_KEY": "abc"},
        {"DATABASE_URL": "postgresql://db:5432/app"},
        {"DB": "postgresql://postgres:hunter2@db:5432/app"},
    ],
)
def test_plaintext_secret_in_environment_is_rejected(environment):
    from llm_platform.topology import ContainerSpec, ImageSpec

    with pytest.raises(ValidationError, match="Secrets Manager"):
        ContainerSpec(name="app", image=ImageSpec(registry="nginx"), environment=environment)


@pytest.mark.parametrize(
    "name",
    ["MAX_TOKENS", "TOKENIZERS_PARALLELISM", "SECRETS_DIR_MODE", "KEYCLOAK_REALM", "OPENAI_API_BASE_URL"],
)
def test_plain_names_resembling_secrets_are_allowed(name):
    from llm_platform.topology import ContainerSpec, ImageSpec

    container = ContainerSpec(name="app", image=ImageSpec(registry="nginx"), environment={name: "1"})
    assert container.environment == {name: "1"}


def test_env_and_secret_overlap_is_rejected():
    from llm_platform.topology import ContainerSpec, ImageSpec, SecretRef

    with pytest.raises(ValidationError, match="both env and secret"):
        ContainerSpec(
            name="app",
            image=ImageSpec(registry="nginx"),
            environment={"MODE": "a"},
            secrets={"MODE": SecretRef(secret="mode")},
        )


def test_image_needs_exactly_one_source():
    from llm_platform.topology import ImageSpec

    with pytest.raises(ValidationError, match="exactly one"):
        ImageSpec()
    with pytest.raises(ValidationError, match="exactly one"):
        ImageSpec(repository="llm-platform/open-webui", registry="ghcr.io/open-webui/open-webui")


def test_unknown_secret_reference_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    _webui_container(data)["secrets"]["EXTRA_TOKEN"] = {"secret": "nope", "field": None}

    with pytest.raises(ValidationError, match="unknown secret 'nope'"):
        PlatformSpec.model_validate(data)


def test_unknown_database_secret_field_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    _webui_container(data)["secrets"]["DATABASE_URL"] = {"secret": "database", "field": "url"}

    with pytest.raises(ValidationError, match="database secret field 'url'"):
        PlatformSpec.model_validate(data)


def test_undeclared_repository_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["repositories"] = data["repositories"][:1]

    with pytest.raises(ValidationError, match="undeclared repository"):
        PlatformSpec.model_validate(data)


def test_mount_without_filesystem_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["filesystem"] = None

    with pytest.raises(ValidationError, match="none is declared"):
        PlatformSpec.model_validate(data)


def test_mount_of_unknown_access_point_is_rejected():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    _webui_container(data)["mounts"][0]["access_point"] = "other-data"

    with pytest.raises(ValidationError, match="unknown access point 'other-data'"):
        PlatformSpec.model_validate(data)


def test_database_secret_name_is_reserved():
    from llm_platform.topology import PlatformSpec

    data = _default_dump()
    data["app_secrets"].append({"name": "database", "description": "", "length": 32})

    with pytest.raises(ValidationError, match="may not be 'database'"):
        PlatformSpec.model_validate(data)


# ── Helpers ──────────────────────────────────────────────────────────────────

def test_logical_id():
    from llm_platform.topology import logical_id

    assert logical_id("open-webui") == "OpenWebui"
    assert logical_id("llm-platform/open-webui") == "LlmPlatformOpenWebui"
    assert logical_id("ECR_DOCKER") == "EcrDocker"
