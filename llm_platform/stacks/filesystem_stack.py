"""
FilesystemStack — shared EFS file system for stateful containers.

Resources:
  EFS file system
    - One mount target per subnet of the selected group (one per AZ)
    - Encrypted at rest; IA lifecycle transition
    - Reachable on 2049 from the ECS security group only

  Access points
    - One per declared data directory, each with its own POSIX owner so
      containers never run as root on the share

Readiness:
  The file system resource reports CREATE_COMPLETE before its mount targets
  are usable. `mount_targets_ready` is the probe every service that mounts the
  share is gated on.
"""
import aws_cdk as cdk
from aws_cdk import (
    aws_ec2 as ec2,
    aws_efs as efs,
)
from constructs import Construct

from llm_platform.contracts import FilesystemInputs, FilesystemOutputs
from llm_platform.readiness import ReadinessProbe
from llm_platform.topology import FilesystemSpec, logical_id

MOUNT_TARGETS_PROBE = "filesystem/mount-targets"

_REMOVAL = {
    "destroy": cdk.RemovalPolicy.DESTROY,
    "retain": cdk.RemovalPolicy.RETAIN,
}


class FilesystemStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        inputs: FilesystemInputs,
        filesystem: FilesystemSpec,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.file_system = efs.FileSystem(
            self,
            "FileSystem",
            vpc=inputs.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_group_name=filesystem.subnet_group),
            security_group=inputs.security_group,
            encrypted=filesystem.encrypted,
            lifecycle_policy=(
                getattr(efs.LifecyclePolicy, filesystem.lifecycle) if filesystem.lifecycle else None
            ),
            performance_mode=efs.PerformanceMode.GENERAL_PURPOSE,
            throughput_mode=efs.ThroughputMode.BURSTING,
            removal_policy=_REMOVAL[filesystem.removal],
        )

        self.access_points: dict[str, efs.AccessPoint] = {}
        for spec in filesystem.access_points:
            self.access_points[spec.name] = self.file_system.add_access_point(
                f"{logical_id(spec.name)}AccessPoint",
                path=spec.path,
                create_acl=efs.Acl(
                    owner_uid=str(spec.uid),
                    owner_gid=str(spec.gid),
                    permissions=spec.permissions,
                ),
                posix_user=efs.PosixUser(uid=str(spec.uid), gid=str(spec.gid)),
            )

        # Completes once a mount target exists in every selected subnet
        self.mount_targets_ready = ReadinessProbe(
            MOUNT_TARGETS_PROBE, self.file_system.mount_targets_available,
        )

        self.outputs = FilesystemOutputs(
            file_system=self.file_system,
            access_points=self.access_points,
            mount_targets_ready=self.mount_targets_ready,
        )

        # ── Outputs ───────────────────────────────────────────────────────────
        cdk.CfnOutput(
            self, "FileSystemId",
            value=self.file_system.file_system_id,
            export_name=f"{self.stack_name}-FileSystemId",
        )
        for name, access_point in self.access_points.items():
            cdk.CfnOutput(
                self, f"{logical_id(name)}AccessPointId",
                value=access_point.access_point_id,
                export_name=f"{self.stack_name}-{logical_id(name)}AccessPointId",
            )
