"""
Deployment composition — builds every stack of the platform in dependency
order and wires them through explicit input structs.

Stacks:
  Network     → VPC, subnets, endpoints, security groups, ALB + target groups
  Registry    → ECR repositories (one per container image)
  Data        → RDS PostgreSQL, generated secrets
  Filesystem  → EFS + access points (only when a service mounts it)
  Compute     → ECS cluster, Cloud Map namespace, Fargate services

Build order (derived from consumed outputs, never declared by hand):

  Network ─┬─→ Data ───────┐
           ├─→ Filesystem ─┼─→ Compute
  Registry ────────────────┘
"""
import logging
from dataclasses import dataclass, field

import aws_cdk as cdk
from constructs import Construct

from llm_platform.contracts import ComputeInputs, DataInputs, FilesystemInputs
from llm_platform.errors import UngatedMountError
from llm_platform.stacks.data_stack import DataStack
from llm_platform.stacks.ecr_stack import EcrStack
from llm_platform.stacks.ecs_stack import EcsStack
from llm_platform.stacks.filesystem_stack import MOUNT_TARGETS_PROBE, FilesystemStack
from llm_platform.stacks.network_stack import NetworkStack
from llm_platform.topology import PlatformSpec
from llm_platform.wiring import DependencyGraph, Wiring

logger = logging.getLogger(__name__)


@dataclass
class Deployment:
    topology: PlatformSpec
    wiring: Wiring
    stacks: dict[str, cdk.Stack] = field(default_factory=dict)

    @property
    def graph(self) -> DependencyGraph:
        return self.wiring.graph

    def verify(self) -> None:
        """Structural checks that need the fully wired graph."""
        self.graph.order()

        for service in self.topology.services:
            if not service.mounts_filesystem:
                continue
            label = f"compute/{service.name}"
            if not self.graph.has_path(MOUNT_TARGETS_PROBE, label):
                raise UngatedMountError(
                    f"Service '{service.name}' mounts the shared filesystem but does not wait "
                    f"for '{MOUNT_TARGETS_PROBE}'"
                )


def build_deployment(
    scope: Construct,
    topology: PlatformSpec,
    *,
    prefix: str,
    env: cdk.Environment | None = None,
    image_tag: str = "latest",
) -> Deployment:
    wiring = Wiring()
    deployment = Deployment(topology=topology, wiring=wiring)

    # ── Stack 1: Network ──────────────────────────────────────────────────────
    network = NetworkStack(scope, f"{prefix}-Network", topology=topology, env=env)
    wiring.register("network", network, network.outputs)
    deployment.stacks["network"] = network

    # ── Stack 2: ECR repositories ─────────────────────────────────────────────
    registry = EcrStack(scope, f"{prefix}-Registry", repositories=topology.repositories, env=env)
    wiring.register("registry", registry, registry.outputs)
    deployment.stacks["registry"] = registry

    # ── Stack 3: Data layer ───────────────────────────────────────────────────
    data = DataStack(
        scope,
        f"{prefix}-Data",
        inputs=DataInputs(
            vpc=wiring.output("data", "network", "vpc"),
            security_group=wiring.output(
                "data", "network", f"security_groups.{topology.database.security_group}"
            ),
        ),
        database=topology.database,
        app_secrets=topology.app_secrets,
        env=env,
    )
    wiring.register("data", data, data.outputs)
    deployment.stacks["data"] = data

    # ── Stack 4: Shared filesystem ────────────────────────────────────────────
    filesystem_inputs = {}
    if topology.filesystem is not None and topology.mounts_filesystem():
        filesystem = FilesystemStack(
            scope,
            f"{prefix}-Filesystem",
            inputs=FilesystemInputs(
                vpc=wiring.output("filesystem", "network", "vpc"),
                security_group=wiring.output(
                    "filesystem", "network", f"security_groups.{topology.filesystem.security_group}"
                ),
            ),
            filesystem=topology.filesystem,
            env=env,
        )
        wiring.register("filesystem", filesystem, filesystem.outputs)
        deployment.stacks["filesystem"] = filesystem

        filesystem_inputs = {
            "file_system": wiring.output("compute", "filesystem", "file_system"),
            "access_points": wiring.outputs(
                "compute", "filesystem", "access_points", topology.service_access_points()
            ),
            "mount_targets_ready": wiring.output("compute", "filesystem", "mount_targets_ready"),
        }

    # ── Stack 5: ECS cluster + services ───────────────────────────────────────
    compute = EcsStack(
        scope,
        f"{prefix}-Compute",
        inputs=ComputeInputs(
            vpc=wiring.output("compute", "network", "vpc"),
            security_groups=wiring.outputs(
                "compute", "network", "security_groups", topology.service_security_groups()
            ),
            target_groups=wiring.outputs(
                "compute", "network", "target_groups", topology.load_balanced_services()
            ),
            repositories=wiring.outputs(
                "compute", "registry", "repositories", topology.service_repositories()
            ),
            secrets=wiring.outputs("compute", "data", "secrets", topology.service_secrets()),
            **filesystem_inputs,
        ),
        topology=topology,
        image_tag=image_tag,
        env=env,
    )
    wiring.register("compute", compute, compute.outputs)
    deployment.stacks["compute"] = compute

    deployment.verify()
    logger.info(f"[deployment] build order: {' → '.join(wiring.graph.order())}")
    return deployment
