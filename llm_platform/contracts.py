"""
Cross-stack contract — one outputs struct per producing stack, one inputs
struct per consuming stack.

Outputs are frozen dataclasses addressed by name: plain fields export their
own name ("vpc"), mapping fields export one name per key
("security_groups.ecs"). Inputs are frozen dataclasses whose required fields
must all be present at construction, so a consumer can never be built around
a missing reference.
"""
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field, fields
from types import MappingProxyType
from typing import Any

from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecr as ecr,
    aws_ecs as ecs,
    aws_efs as efs,
    aws_elasticloadbalancingv2 as elbv2,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
    aws_servicediscovery as servicediscovery,
)

from llm_platform.errors import MissingStackInputError
from llm_platform.readiness import ReadinessProbe


class StackOutputs:
    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Mapping) and not isinstance(value, MappingProxyType):
                object.__setattr__(self, f.name, MappingProxyType(dict(value)))

    def names(self) -> frozenset[str]:
        exported: set[str] = set()
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Mapping):
                exported.update(f"{f.name}.{key}" for key in value)
            else:
                exported.add(f.name)
        return frozenset(exported)

    def lookup(self, name: str) -> Any:
        """Resolve an exported name; raises KeyError when it is not exported."""
        attr, _, key = name.partition(".")
        if attr not in {f.name for f in fields(self)}:
            raise KeyError(name)
        value = getattr(self, attr)
        if isinstance(value, Mapping):
            if not key:
                raise KeyError(name)
            value = value.get(key)
        elif key:
            raise KeyError(name)
        if value is None:
            raise KeyError(name)
        return value


class StackInputs:
    def __post_init__(self) -> None:
        for f in fields(self):
            required = f.default is MISSING and f.default_factory is MISSING
            if required and getattr(self, f.name) is None:
                raise MissingStackInputError(type(self).__name__, None, f.name, "input is None")


# ── Outputs ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NetworkOutputs(StackOutputs):
    vpc: ec2.IVpc
    security_groups: Mapping[str, ec2.ISecurityGroup]
    load_balancer: elbv2.IApplicationLoadBalancer
    listener: elbv2.IApplicationListener
    target_groups: Mapping[str, elbv2.IApplicationTargetGroup]


@dataclass(frozen=True)
class RegistryOutputs(StackOutputs):
    repositories: Mapping[str, ecr.IRepository]


@dataclass(frozen=True)
class DataOutputs(StackOutputs):
    database: rds.IDatabaseInstance
    secrets: Mapping[str, secretsmanager.ISecret]


@dataclass(frozen=True)
class FilesystemOutputs(StackOutputs):
    file_system: efs.IFileSystem
    access_points: Mapping[str, efs.IAccessPoint]
    mount_targets_ready: ReadinessProbe


@dataclass(frozen=True)
class ComputeOutputs(StackOutputs):
    cluster: ecs.ICluster
    namespace: servicediscovery.INamespace
    services: Mapping[str, ecs.FargateService]


# ── Inputs ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DataInputs(StackInputs):
    vpc: ec2.IVpc
    security_group: ec2.ISecurityGroup


@dataclass(frozen=True)
class FilesystemInputs(StackInputs):
    vpc: ec2.IVpc
    security_group: ec2.ISecurityGroup


@dataclass(frozen=True)
class ComputeInputs(StackInputs):
    vpc: ec2.IVpc
    security_groups: Mapping[str, ec2.ISecurityGroup]
    target_groups: Mapping[str, elbv2.IApplicationTargetGroup]
    repositories: Mapping[str, ecr.IRepository]
    secrets: Mapping[str, secretsmanager.ISecret]
    file_system: efs.IFileSystem | None = None
    access_points: Mapping[str, efs.IAccessPoint] = field(default_factory=dict)
    mount_targets_ready: ReadinessProbe | None = None
