"""
Declarative platform topology.

The topology describes every component the stacks provision: the network
partition, the ordered security groups and their ingress edges, registries,
the database, the shared filesystem, the load balancer routing table and the
Fargate services. It is validated as a whole before any construct exists, so
structural mistakes (forward security-group references, duplicate listener
priorities, a database outside the isolated tier, plaintext secrets) abort
synthesis instead of surfacing mid-deployment.

Default topology (Open WebUI + LLM gateway):

    alb SG      ← 80 from 0.0.0.0/0
    ecs SG      ← 8080 from alb
    db SG       ← 5432 from ecs
    efs SG      ← 2049 from ecs
    gateway SG  ← 4000 from ecs

A JSON document with the same shape can replace it (see load_topology).
"""
import ipaddress
import re
from pathlib import Path
from typing import Literal, NamedTuple

from pydantic import BaseModel, Field, field_validator, model_validator

from llm_platform.errors import TopologyError

SubnetTier = Literal["public", "private", "isolated"]

ANY_IPV4 = "0.0.0.0/0"

# Secret exported by the data stack for the database credentials. RDS attaches
# these JSON fields to the secret once the instance exists.
DATABASE_SECRET = "database"
DATABASE_SECRET_FIELDS = frozenset({"username", "password", "host", "port", "dbname", "engine"})

_SECRET_NAME = re.compile(
    r"(^|_)(SECRET|PASSWORD|PASSWD|TOKEN|CREDENTIALS?)($|_)"
    r"|_KEY$|(^|_)DATABASE_URL$|(^|_)CONNECTION_STRING$|_DSN$"
)
_CREDENTIALS_IN_URL = re.compile(r"://[^/\s:@]+:[^@\s/]+@")
_RESOURCE_NAME = re.compile(r"^[a-z][a-z0-9-]*$")


def logical_id(name: str) -> str:
    """'open-webui' → 'OpenWebui' (stable CloudFormation logical-id fragment)."""
    return name.replace("-", "_").replace("/", "_").title().replace("_", "")


def is_cidr(peer: str) -> bool:
    return "/" in peer


def _parse_cidr(value: str) -> ipaddress.IPv4Network:
    try:
        network = ipaddress.ip_network(value, strict=True)
    except ValueError as exc:
        raise TopologyError(f"Invalid CIDR '{value}': {exc}") from exc
    if network.version != 4:
        raise TopologyError(f"Only IPv4 CIDRs are supported, got '{value}'")
    return network


def _check_resource_name(kind: str, value: str) -> str:
    if not _RESOURCE_NAME.match(value):
        raise TopologyError(
            f"{kind} name '{value}' must start with a letter and contain only a-z, 0-9 and '-'"
        )
    return value


# ── Network ───────────────────────────────────────────────────────────────────

class SubnetGroupSpec(BaseModel):
    name: str
    tier: SubnetTier
    cidr_mask: int = Field(24, ge=16, le=28)


class PlannedSubnet(NamedTuple):
    group: str
    tier: str
    az_index: int
    cidr: str


class NetworkSpec(BaseModel):
    vpc_name: str = "llm-platform-vpc"
    cidr: str = "10.0.0.0/16"
    max_azs: int = Field(3, ge=1, le=6)
    nat_gateways: int = Field(1, ge=0)
    subnet_groups: list[SubnetGroupSpec] = Field(default_factory=lambda: [
        SubnetGroupSpec(name="Public", tier="public", cidr_mask=24),
        SubnetGroupSpec(name="Private", tier="private", cidr_mask=24),
        SubnetGroupSpec(name="Isolated", tier="isolated", cidr_mask=24),
    ])
    interface_endpoints: list[str] = Field(default_factory=lambda: [
        "ECR",
        "ECR_DOCKER",
        "SECRETS_MANAGER",
        "ECS",
        "ECS_AGENT",
        "ECS_TELEMETRY",
        "CLOUDWATCH_LOGS",
        "ELASTIC_FILESYSTEM",
    ])
    gateway_endpoints: list[str] = Field(default_factory=lambda: ["S3"])

    @field_validator("cidr")
    @classmethod
    def _valid_cidr(cls, value: str) -> str:
        network = _parse_cidr(value)
        if not 16 <= network.prefixlen <= 28:
            raise TopologyError(f"VPC CIDR '{value}' must have a prefix between /16 and /28")
        return value

    @model_validator(mode="after")
    def _check_partition(self) -> "NetworkSpec":
        names = [g.name for g in self.subnet_groups]
        if len(names) != len(set(names)):
            raise TopologyError(f"Duplicate subnet group names: {names}")
        if not self.subnet_groups:
            raise TopologyError("At least one subnet group is required")

        prefix = _parse_cidr(self.cidr).prefixlen
        for group in self.subnet_groups:
            if group.cidr_mask < prefix:
                raise TopologyError(
                    f"Subnet group '{group.name}' mask /{group.cidr_mask} is larger than VPC {self.cidr}"
                )

        tiers = {g.tier for g in self.subnet_groups}
        if self.nat_gateways and "public" not in tiers:
            raise TopologyError("NAT gateways need a public subnet group")
        if "private" in tiers and not self.nat_gateways:
            raise TopologyError("Private (egress) subnet groups need at least one NAT gateway")
        if self.nat_gateways > self.max_azs:
            raise TopologyError(
                f"nat_gateways ({self.nat_gateways}) cannot exceed max_azs ({self.max_azs})"
            )

        self.plan_subnets()
        return self

    def group(self, name: str) -> SubnetGroupSpec | None:
        return next((g for g in self.subnet_groups if g.name == name), None)

    def plan_subnets(self) -> list[PlannedSubnet]:
        """
        Partition the VPC block: groups in declaration order, one subnet per AZ,
        each aligned to its own size. Raises TopologyError if the partition
        overflows the VPC block.
        """
        vpc = _parse_cidr(self.cidr)
        cursor = int(vpc.network_address)
        last = int(vpc.broadcast_address)
        planned: list[PlannedSubnet] = []

        for group in self.subnet_groups:
            size = 2 ** (32 - group.cidr_mask)
            for az in range(self.max_azs):
                start = -(-cursor // size) * size
                if start + size - 1 > last:
                    raise TopologyError(
                        f"Subnet group '{group.name}' (/{group.cidr_mask} x {self.max_azs} AZs) "
                        f"does not fit in {self.cidr}"
                    )
                network = ipaddress.ip_network((start, group.cidr_mask))
                planned.append(PlannedSubnet(group.name, group.tier, az, str(network)))
                cursor = start + size

        return planned


# ── Security groups ───────────────────────────────────────────────────────────

class IngressRuleSpec(BaseModel):
    peer: str  # name of a security group declared earlier, or a CIDR
    port: int = Field(ge=0, le=65535)
    to_port: int | None = Field(None, ge=0, le=65535)
    description: str = ""

    @field_validator("peer")
    @classmethod
    def _valid_peer(cls, value: str) -> str:
        if is_cidr(value):
            _parse_cidr(value)
        return value

    @model_validator(mode="after")
    def _check_range(self) -> "IngressRuleSpec":
        if self.to_port is not None and self.to_port < self.port:
            raise TopologyError(f"Port range {self.port}-{self.to_port} is inverted")
        return self


class SecurityGroupSpec(BaseModel):
    name: str
    description: str
    group_name: str | None = None
    allow_all_outbound: bool = True
    ingress: list[IngressRuleSpec] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return _check_resource_name("Security group", value)


# ── Registry ──────────────────────────────────────────────────────────────────

class RepositorySpec(BaseModel):
    name: str = Field(pattern=r"^[a-z0-9]+(?:[._-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)*$")
    max_image_count: int = Field(5, ge=1)
    untagged_expiry_days: int | None = Field(7, ge=1)
    scan_on_push: bool = True
    mutable_tags: bool = True
    removal: Literal["destroy", "retain"] = "destroy"


# ── Data ──────────────────────────────────────────────────────────────────────

class DatabaseSpec(BaseModel):
    identifier: str = "openwebui-db"
    database_name: str = "openwebui_db"
    engine_version: str = "16"
    instance_type: str = "t3.small"
    allocated_storage: int = Field(20, ge=20)
    max_allocated_storage: int | None = 100
    port: int = 5432
    username: str = "postgres"
    subnet_group: str = "Isolated"
    security_group: str = "db"
    multi_az: bool = False
    backup_retention_days: int = Field(7, ge=0, le=35)
    deletion_protection: bool = False
    removal: Literal["destroy", "retain", "snapshot"] = "destroy"

    @model_validator(mode="after")
    def _check_storage(self) -> "DatabaseSpec":
        if self.max_allocated_storage is not None and self.max_allocated_storage < self.allocated_storage:
            raise TopologyError("max_allocated_storage must be >= allocated_storage")
        return self


class AppSecretSpec(BaseModel):
    name: str
    description: str = ""
    length: int = Field(48, ge=16, le=4096)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return _check_resource_name("Secret", value)


# ── Filesystem ────────────────────────────────────────────────────────────────

class AccessPointSpec(BaseModel):
    name: str
    path: str
    uid: int = Field(1000, ge=0)
    gid: int = Field(1000, ge=0)
    permissions: str = Field("750", pattern=r"^[0-7]{3,4}$")

    @field_validator("path")
    @classmethod
    def _absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise TopologyError(f"Access point path '{value}' must be absolute")
        return value


class FilesystemSpec(BaseModel):
    subnet_group: str = "Private"
    security_group: str = "efs"
    encrypted: bool = True
    lifecycle: Literal[
        "AFTER_7_DAYS", "AFTER_14_DAYS", "AFTER_30_DAYS", "AFTER_60_DAYS", "AFTER_90_DAYS"
    ] | None = "AFTER_30_DAYS"
    removal: Literal["destroy", "retain"] = "destroy"
    access_points: list[AccessPointSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_access_points(self) -> "FilesystemSpec":
        names = [ap.name for ap in self.access_points]
        if len(names) != len(set(names)):
            raise TopologyError(f"Duplicate access point names: {names}")
        return self

    def access_point(self, name: str) -> AccessPointSpec | None:
        return next((ap for ap in self.access_points if ap.name == name), None)


# ── Compute ───────────────────────────────────────────────────────────────────

class ImageSpec(BaseModel):
    repository: str | None = None  # ECR repository declared in the topology
    registry: str | None = None    # public image reference, e.g. "ollama/ollama"
    tag: str | None = None         # None → deployment image tag (CDK_IMAGE_TAG)

    @model_validator(mode="after")
    def _one_source(self) -> "ImageSpec":
        if (self.repository is None) == (self.registry is None):
            raise TopologyError("An image needs exactly one of 'repository' or 'registry'")
        return self


class SecretRef(BaseModel):
    secret: str
    field: str | None = None


class ContainerHealthCheckSpec(BaseModel):
    command: list[str]
    interval: int = 30
    timeout: int = 10
    retries: int = 3
    start_period: int = 60


class MountSpec(BaseModel):
    access_point: str
    container_path: str
    read_only: bool = False


class ContainerSpec(BaseModel):
    name: str
    image: ImageSpec
    environment: dict[str, str] = Field(default_factory=dict)
    secrets: dict[str, SecretRef] = Field(default_factory=dict)
    port: int | None = Field(None, ge=1, le=65535)
    essential: bool = True
    command: list[str] | None = None
    health_check: ContainerHealthCheckSpec | None = None
    mounts: list[MountSpec] = Field(default_factory=list)

    @field_validator("environment")
    @classmethod
    def _no_plaintext_secrets(cls, value: dict[str, str]) -> dict[str, str]:
        for key, item in value.items():
            if _SECRET_NAME.search(key.upper()):
                raise TopologyError(
                    f"Environment variable '{key}' looks like a secret; inject it from Secrets Manager"
                )
            if _CREDENTIALS_IN_URL.search(item):
                raise TopologyError(
                    f"Environment variable '{key}' embeds credentials in a URL; inject it from Secrets Manager"
                )
        return value

    @model_validator(mode="after")
    def _no_overlap(self) -> "ContainerSpec":
        both = set(self.environment) & set(self.secrets)
        if both:
            raise TopologyError(f"Container '{self.name}' declares {sorted(both)} as both env and secret")
        return self


class TargetSpec(BaseModel):
    container: str | None = None  # None → first container exposing a port
    health_check_path: str = "/"
    healthy_http_codes: str = "200"
    interval: int = 30
    timeout: int = 10
    deregistration_delay: int = 30


class ScalingSpec(BaseModel):
    min_capacity: int = Field(1, ge=0)
    max_capacity: int = Field(4, ge=1)
    cpu_target: int = Field(70, ge=1, le=100)
    scale_in_cooldown: int = 300
    scale_out_cooldown: int = 60

    @model_validator(mode="after")
    def _bounds(self) -> "ScalingSpec":
        if self.min_capacity > self.max_capacity:
            raise TopologyError("Scaling min_capacity exceeds max_capacity")
        return self


class ServiceSpec(BaseModel):
    name: str
    cpu: int = 256
    memory: int = 512
    architecture: Literal["x86_64", "arm64"] = "x86_64"
    desired_count: int = Field(1, ge=0)
    security_groups: list[str] = Field(default_factory=lambda: ["ecs"])
    subnet_group: str = "Private"
    discovery_name: str | None = None
    target: TargetSpec | None = None
    scaling: ScalingSpec | None = None
    task_actions: list[str] = Field(default_factory=list)
    containers: list[ContainerSpec] = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, value: str) -> str:
        return _check_resource_name("Service", value)

    @model_validator(mode="after")
    def _check_containers(self) -> "ServiceSpec":
        names = [c.name for c in self.containers]
        if len(names) != len(set(names)):
            raise TopologyError(f"Service '{self.name}' has duplicate container names: {names}")
        if self.target is not None and self.target_container() is None:
            raise TopologyError(
                f"Service '{self.name}' is load balanced but no matching container exposes a port"
            )
        return self

    def target_container(self) -> ContainerSpec | None:
        if self.target is None:
            return None
        for container in self.containers:
            if container.port is None:
                continue
            if self.target.container in (None, container.name):
                return container
        return None

    @property
    def mounts_filesystem(self) -> bool:
        return any(c.mounts for c in self.containers)


# ── Load balancer ─────────────────────────────────────────────────────────────

class ListenerRuleSpec(BaseModel):
    priority: int = Field(ge=1, le=50000)
    path_patterns: list[str] = Field(min_length=1, max_length=5)
    target: str


class ListenerSpec(BaseModel):
    port: int = 80
    default_target: str | None = None  # None → fixed 404
    rules: list[ListenerRuleSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_priorities(self) -> "ListenerSpec":
        seen: dict[int, list[str]] = {}
        for rule in self.rules:
            if rule.priority in seen:
                raise TopologyError(
                    f"Listener rule priority {rule.priority} is used by both "
                    f"{seen[rule.priority]} and {rule.path_patterns}"
                )
            seen[rule.priority] = rule.path_patterns
        return self


class LoadBalancerSpec(BaseModel):
    name: str = "llm-platform-alb"
    internet_facing: bool = True
    subnet_group: str = "Public"
    security_group: str = "alb"
    idle_timeout: int = 60
    listener: ListenerSpec = Field(default_factory=ListenerSpec)


# ── Whole platform ────────────────────────────────────────────────────────────

class PlatformSpec(BaseModel):
    network: NetworkSpec = Field(default_factory=NetworkSpec)
    security_groups: list[SecurityGroupSpec]
    repositories: list[RepositorySpec] = Field(default_factory=list)
    database: DatabaseSpec = Field(default_factory=DatabaseSpec)
    app_secrets: list[AppSecretSpec] = Field(default_factory=list)
    filesystem: FilesystemSpec | None = None
    load_balancer: LoadBalancerSpec = Field(default_factory=LoadBalancerSpec)
    namespace: str = "openwebui.local"
    services: list[ServiceSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_references(self) -> "PlatformSpec":
        self._check_security_groups()
        self._check_placement()
        self._check_services()
        self._check_routing()
        return self

    def _check_security_groups(self) -> None:
        declared: set[str] = set()
        for group in self.security_groups:
            if group.name in declared:
                raise TopologyError(f"Security group '{group.name}' is declared twice")
            for rule in group.ingress:
                if is_cidr(rule.peer) or rule.peer == group.name:
                    continue
                if rule.peer not in declared:
                    raise TopologyError(
                        f"Security group '{group.name}' allows ingress from '{rule.peer}', "
                        f"which is not declared before it"
                    )
            declared.add(group.name)

    def _require_group(self, owner: str, name: str) -> None:
        if self.security_group(name) is None:
            raise TopologyError(f"{owner} references unknown security group '{name}'")

    def _require_subnets(self, owner: str, name: str, tiers: set[str]) -> None:
        group = self.network.group(name)
        if group is None:
            raise TopologyError(f"{owner} references unknown subnet group '{name}'")
        if group.tier not in tiers:
            raise TopologyError(
                f"{owner} must be placed in a {' or '.join(sorted(tiers))} subnet group, "
                f"'{name}' is {group.tier}"
            )

    def _check_placement(self) -> None:
        self._require_subnets("Database", self.database.subnet_group, {"isolated"})
        self._require_group("Database", self.database.security_group)
        self._require_subnets("Load balancer", self.load_balancer.subnet_group, {"public"})
        self._require_group("Load balancer", self.load_balancer.security_group)
        if self.filesystem is not None:
            self._require_subnets("Filesystem", self.filesystem.subnet_group, {"private", "isolated"})
            self._require_group("Filesystem", self.filesystem.security_group)

        repos = [r.name for r in self.repositories]
        if len(repos) != len(set(repos)):
            raise TopologyError(f"Duplicate repository names: {repos}")
        secrets = [s.name for s in self.app_secrets]
        if len(secrets) != len(set(secrets)) or DATABASE_SECRET in secrets:
            raise TopologyError(
                f"App secret names must be unique and may not be '{DATABASE_SECRET}': {secrets}"
            )

    def _check_services(self) -> None:
        names = [s.name for s in self.services]
        if len(names) != len(set(names)):
            raise TopologyError(f"Duplicate service names: {names}")
        discovery = [s.discovery_name for s in self.services if s.discovery_name]
        if len(discovery) != len(set(discovery)):
            raise TopologyError(f"Duplicate discovery names: {discovery}")

        repos = {r.name for r in self.repositories}
        secrets = self.secret_names()
        for service in self.services:
            owner = f"Service '{service.name}'"
            self._require_subnets(owner, service.subnet_group, {"private", "isolated"})
            for group in service.security_groups:
                self._require_group(owner, group)
            for container in service.containers:
                if container.image.repository and container.image.repository not in repos:
                    raise TopologyError(
                        f"{owner} uses undeclared repository '{container.image.repository}'"
                    )
                for env_name, ref in container.secrets.items():
                    if ref.secret not in secrets:
                        raise TopologyError(
                            f"{owner} injects {env_name} from unknown secret '{ref.secret}'"
                        )
                    if ref.secret == DATABASE_SECRET and ref.field not in DATABASE_SECRET_FIELDS:
                        raise TopologyError(
                            f"{owner} injects {env_name} from database secret field '{ref.field}'; "
                            f"expected one of {sorted(DATABASE_SECRET_FIELDS)}"
                        )
                for mount in container.mounts:
                    if self.filesystem is None:
                        raise TopologyError(f"{owner} mounts a filesystem but none is declared")
                    if self.filesystem.access_point(mount.access_point) is None:
                        raise TopologyError(
                            f"{owner} mounts unknown access point '{mount.access_point}'"
                        )

    def _check_routing(self) -> None:
        listener = self.load_balancer.listener
        balanced = set(self.load_balanced_services())
        routed: set[str] = set()

        targets = [r.target for r in listener.rules]
        if listener.default_target is not None:
            targets.append(listener.default_target)
        for target in targets:
            if target not in balanced:
                raise TopologyError(
                    f"Listener routes to '{target}', which is not a load-balanced service"
                )
            routed.add(target)

        unrouted = balanced - routed
        if unrouted:
            raise TopologyError(
                f"Load-balanced services {sorted(unrouted)} are not reachable from the listener"
            )

    # ── Lookups used by the composition layer ────────────────────────────────

    def security_group(self, name: str) -> SecurityGroupSpec | None:
        return next((g for g in self.security_groups if g.name == name), None)

    def secret_names(self) -> set[str]:
        return {DATABASE_SECRET} | {s.name for s in self.app_secrets}

    def load_balanced_services(self) -> list[str]:
        return [s.name for s in self.services if s.target is not None]

    def service_security_groups(self) -> list[str]:
        return sorted({g for s in self.services for g in s.security_groups})

    def service_repositories(self) -> list[str]:
        return sorted({
            c.image.repository
            for s in self.services for c in s.containers
            if c.image.repository
        })

    def service_secrets(self) -> list[str]:
        return sorted({
            ref.secret
            for s in self.services for c in s.containers
            for ref in c.secrets.values()
        })

    def service_access_points(self) -> list[str]:
        return sorted({
            m.access_point
            for s in self.services for c in s.containers
            for m in c.mounts
        })

    def mounts_filesystem(self) -> bool:
        return any(s.mounts_filesystem for s in self.services)


# ── Default topology: Open WebUI + LLM gateway ────────────────────────────────

WEBUI_PORT = 8080
GATEWAY_PORT = 4000


def default_topology() -> PlatformSpec:
    namespace = "openwebui.local"
    return PlatformSpec(
        security_groups=[
            SecurityGroupSpec(
                name="alb",
                description="Security group for ALB",
                group_name="openwebui-alb-sg",
                ingress=[IngressRuleSpec(peer=ANY_IPV4, port=80, description="Allow HTTP traffic")],
            ),
            SecurityGroupSpec(
                name="ecs",
                description="Security group for OpenWebUI ECS tasks",
                group_name="openwebui-ecs-sg",
                ingress=[IngressRuleSpec(peer="alb", port=WEBUI_PORT, description="Allow traffic from ALB")],
            ),
            SecurityGroupSpec(
                name="db",
                description="Security group for OpenWebUI RDS instance",
                group_name="openwebui-db-sg",
                ingress=[IngressRuleSpec(peer="ecs", port=5432, description="Allow PostgreSQL access from ECS tasks")],
            ),
            SecurityGroupSpec(
                name="efs",
                description="Security group for OpenWebUI EFS mount targets",
                group_name="openwebui-efs-sg",
                allow_all_outbound=False,
                ingress=[IngressRuleSpec(peer="ecs", port=2049, description="Allow NFS from ECS tasks")],
            ),
            SecurityGroupSpec(
                name="gateway",
                description="Security group for the LLM gateway tasks",
                group_name="openwebui-gateway-sg",
                ingress=[IngressRuleSpec(peer="ecs", port=GATEWAY_PORT, description="Allow gateway calls from OpenWebUI")],
            ),
        ],
        repositories=[
            RepositorySpec(name="llm-platform/open-webui"),
            RepositorySpec(name="llm-platform/llm-gateway"),
        ],
        app_secrets=[
            AppSecretSpec(name="webui-secret-key", description="OpenWebUI session signing key"),
            AppSecretSpec(name="gateway-master-key", description="LLM gateway master API key"),
        ],
        filesystem=FilesystemSpec(
            access_points=[
                AccessPointSpec(name="open-webui-data", path="/open-webui", uid=1000, gid=1000),
            ],
        ),
        load_balancer=LoadBalancerSpec(
            listener=ListenerSpec(
                port=80,
                default_target="open-webui",
                rules=[
                    ListenerRuleSpec(priority=1, path_patterns=["/openwebui*"], target="open-webui"),
                ],
            ),
        ),
        namespace=namespace,
        services=[
            ServiceSpec(
                name="open-webui",
                cpu=256,
                memory=512,
                architecture="arm64",
                security_groups=["ecs"],
                discovery_name="open-webui",
                target=TargetSpec(health_check_path="/health"),
                scaling=ScalingSpec(min_capacity=1, max_capacity=4),
                containers=[
                    ContainerSpec(
                        name="open-webui",
                        image=ImageSpec(repository="llm-platform/open-webui"),
                        port=WEBUI_PORT,
                        environment={
                            "DEBUG": "false",
                            "DATABASE_TYPE": "postgres",
                            "DATA_DIR": "/app/backend/data",
                            "ENABLE_OLLAMA_API": "false",
                            "OPENAI_API_BASE_URL": f"http://llm-gateway.{namespace}:{GATEWAY_PORT}/v1",
                        },
                        secrets={
                            "WEBUI_SECRET_KEY": SecretRef(secret="webui-secret-key"),
                            "OPENAI_API_KEY": SecretRef(secret="gateway-master-key"),
                            "DATABASE_HOST": SecretRef(secret=DATABASE_SECRET, field="host"),
                            "DATABASE_PORT": SecretRef(secret=DATABASE_SECRET, field="port"),
                            "DATABASE_NAME": SecretRef(secret=DATABASE_SECRET, field="dbname"),
                            "DATABASE_USER": SecretRef(secret=DATABASE_SECRET, field="username"),
                            "DATABASE_PASSWORD": SecretRef(secret=DATABASE_SECRET, field="password"),
                        },
                        health_check=ContainerHealthCheckSpec(
                            command=["CMD-SHELL", f"curl -f http://localhost:{WEBUI_PORT}/health || exit 1"],
                        ),
                        mounts=[MountSpec(access_point="open-webui-data", container_path="/app/backend/data")],
                    ),
                ],
            ),
            ServiceSpec(
                name="llm-gateway",
                cpu=512,
                memory=1024,
                security_groups=["gateway"],
                discovery_name="llm-gateway",
                task_actions=[
                    "bedrock:InvokeModel",
                    "bedrock:InvokeModelWithResponseStream",
                ],
                containers=[
                    ContainerSpec(
                        name="llm-gateway",
                        image=ImageSpec(repository="llm-platform/llm-gateway"),
                        port=GATEWAY_PORT,
                        environment={"PORT": str(GATEWAY_PORT), "LITELLM_LOG": "INFO"},
                        secrets={"LITELLM_MASTER_KEY": SecretRef(secret="gateway-master-key")},
                        health_check=ContainerHealthCheckSpec(
                            command=[
                                "CMD-SHELL",
                                f"curl -f http://localhost:{GATEWAY_PORT}/health/liveliness || exit 1",
                            ],
                        ),
                    ),
                ],
            ),
        ],
    )


def load_topology(path: str | Path | None = None) -> PlatformSpec:
    """Load a JSON topology document, or the built-in default when no path is given."""
    if not path:
        return default_topology()
    source = Path(path)
    if not source.is_file():
        raise TopologyError(f"Topology file not found: {source}")
    return PlatformSpec.model_validate_json(source.read_text())
