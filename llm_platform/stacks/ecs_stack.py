"""
EcsStack — ECS Fargate cluster, service discovery and one service per
declared service spec.

Services (default):
  open-webui    → Open WebUI, ALB-facing, port 8080, ARM64
                  Data directory on EFS (gated on mount-target readiness)
                  Auto-scales 1–4 tasks on CPU utilization
  llm-gateway   → LLM gateway, private, port 4000
                  Reached by open-webui via Cloud Map: llm-gateway.openwebui.local

Roles (per service):
  task_role       → what the running container may do (extra actions such as
                    bedrock:InvokeModel, EFS client mount/write)
  execution_role  → ECS control plane: pull image, write logs, read exactly the
                    secrets the service injects

Image:
  ECR images are pulled by the tag passed in (CDK_IMAGE_TAG, default "latest")
  unless the topology pins one.

Secrets:
  Every secret reaches the container through Secrets Manager injection.
"""
import logging

import aws_cdk as cdk
from aws_cdk import (
    aws_ec2 as ec2,
    aws_ecs as ecs,
    aws_iam as iam,
    aws_logs as logs,
    aws_servicediscovery as servicediscovery,
)
from constructs import Construct

from llm_platform.contracts import ComputeInputs, ComputeOutputs
from llm_platform.errors import MissingStackInputError
from llm_platform.topology import (
    ContainerSpec,
    PlatformSpec,
    ServiceSpec,
    logical_id,
)

logger = logging.getLogger(__name__)

_ARCHITECTURES = {
    "x86_64": ecs.CpuArchitecture.X86_64,
    "arm64": ecs.CpuArchitecture.ARM64,
}


class EcsStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        inputs: ComputeInputs,
        topology: PlatformSpec,
        image_tag: str = "latest",
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.inputs = inputs
        self.image_tag = image_tag

        # ── ECS Cluster ────────────────────────────────────────────────────────
        self.cluster = ecs.Cluster(
            self, "Cluster",
            vpc=inputs.vpc,
            container_insights=True,
        )

        # ── Service Discovery Namespace ────────────────────────────────────────
        self.namespace = servicediscovery.PrivateDnsNamespace(
            self, "Namespace",
            vpc=inputs.vpc,
            name=topology.namespace,
            description="Service discovery namespace for LLM platform services",
        )

        self.services: dict[str, ecs.FargateService] = {}
        for spec in topology.services:
            self.services[spec.name] = self._build_service(spec)

        self.outputs = ComputeOutputs(
            cluster=self.cluster,
            namespace=self.namespace,
            services=self.services,
        )

        # ── Outputs ────────────────────────────────────────────────────────────
        cdk.CfnOutput(
            self, "ClusterName",
            value=self.cluster.cluster_name,
            export_name=f"{self.stack_name}-ClusterName",
        )
        cdk.CfnOutput(
            self, "NamespaceName",
            value=self.namespace.namespace_name,
            export_name=f"{self.stack_name}-NamespaceName",
        )
        for name, service in self.services.items():
            cdk.CfnOutput(
                self, f"{logical_id(name)}ServiceName",
                value=service.service_name,
                export_name=f"{self.stack_name}-{logical_id(name)}ServiceName",
            )

    # ── Per-service construction ──────────────────────────────────────────────

    def _require(self, mapping, key: str, what: str):
        value = mapping.get(key)
        if value is None:
            raise MissingStackInputError(
                type(self).__name__, None, f"{what}.{key}", "not provided in ComputeInputs",
            )
        return value

    def _build_service(self, spec: ServiceSpec) -> ecs.FargateService:
        sid = logical_id(spec.name)

        task_role = iam.Role(
            self, f"{sid}TaskRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            description=f"Task role for {spec.name}",
        )
        if spec.task_actions:
            task_role.add_to_policy(
                iam.PolicyStatement(
                    effect=iam.Effect.ALLOW,
                    actions=spec.task_actions,
                    resources=["*"],
                )
            )

        execution_role = iam.Role(
            self, f"{sid}ExecutionRole",
            assumed_by=iam.ServicePrincipal("ecs-tasks.amazonaws.com"),
            managed_policies=[
                iam.ManagedPolicy.from_aws_managed_policy_name(
                    "service-role/AmazonECSTaskExecutionRolePolicy"
                ),
            ],
        )

        task_def = ecs.FargateTaskDefinition(
            self, f"{sid}TaskDef",
            family=f"{self.stack_name.lower()}-{spec.name}",
            cpu=spec.cpu,
            memory_limit_mib=spec.memory,
            task_role=task_role,
            execution_role=execution_role,
            runtime_platform=ecs.RuntimePlatform(
                cpu_architecture=_ARCHITECTURES[spec.architecture],
                operating_system_family=ecs.OperatingSystemFamily.LINUX,
            ),
        )

        log_group = logs.LogGroup(
            self, f"{sid}Logs",
            retention=logs.RetentionDays.ONE_WEEK,
            removal_policy=cdk.RemovalPolicy.DESTROY,
        )

        volumes: set[str] = set()
        for container_spec in spec.containers:
            self._add_container(spec, container_spec, task_def, log_group, volumes)

        if volumes:
            self.inputs.file_system.grant(
                task_role,
                "elasticfilesystem:ClientMount",
                "elasticfilesystem:ClientWrite",
            )

        # ── Fargate Service ────────────────────────────────────────────────────
        service = ecs.FargateService(
            self, f"{sid}Service",
            cluster=self.cluster,
            task_definition=task_def,
            desired_count=spec.desired_count,
            min_healthy_percent=100,
            max_healthy_percent=200,
            assign_public_ip=False,
            security_groups=[
                self._require(self.inputs.security_groups, name, "security_groups")
                for name in spec.security_groups
            ],
            vpc_subnets=ec2.SubnetSelection(subnet_group_name=spec.subnet_group),
            circuit_breaker=ecs.DeploymentCircuitBreaker(rollback=True),
            cloud_map_options=(
                ecs.CloudMapOptions(cloud_map_namespace=self.namespace, name=spec.discovery_name)
                if spec.discovery_name else None
            ),
        )

        if volumes:
            self.inputs.mount_targets_ready.gate(service, label=f"compute/{spec.name}")

        # ── Load balancer attachment ───────────────────────────────────────────
        if spec.target is not None:
            container = spec.target_container()
            target_group = self._require(self.inputs.target_groups, spec.name, "target_groups")
            service.load_balancer_target(
                container_name=container.name,
                container_port=container.port,
            ).attach_to_application_target_group(target_group)

        # ── Auto-scaling ───────────────────────────────────────────────────────
        if spec.scaling is not None:
            scaling = service.auto_scale_task_count(
                min_capacity=spec.scaling.min_capacity,
                max_capacity=spec.scaling.max_capacity,
            )
            scaling.scale_on_cpu_utilization(
                "ScaleOnCpu",
                target_utilization_percent=spec.scaling.cpu_target,
                scale_in_cooldown=cdk.Duration.seconds(spec.scaling.scale_in_cooldown),
                scale_out_cooldown=cdk.Duration.seconds(spec.scaling.scale_out_cooldown),
            )

        logger.info(f"[compute] service {spec.name} ({len(spec.containers)} container(s))")
        return service

    def _image(self, container: ContainerSpec) -> ecs.ContainerImage:
        image = container.image
        if image.registry is not None:
            reference = f"{image.registry}:{image.tag}" if image.tag else image.registry
            return ecs.ContainerImage.from_registry(reference)
        repository = self._require(self.inputs.repositories, image.repository, "repositories")
        return ecs.ContainerImage.from_ecr_repository(repository, tag=image.tag or self.image_tag)

    def _add_container(
        self,
        spec: ServiceSpec,
        container: ContainerSpec,
        task_def: ecs.FargateTaskDefinition,
        log_group: logs.ILogGroup,
        volumes: set[str],
    ) -> ecs.ContainerDefinition:
        secrets = {}
        for env_name, ref in sorted(container.secrets.items()):
            secret = self._require(self.inputs.secrets, ref.secret, "secrets")
            # ecs.Secret grants the execution role read access to this secret only
            secrets[env_name] = ecs.Secret.from_secrets_manager(secret, ref.field)

        health_check = None
        if container.health_check is not None:
            hc = container.health_check
            health_check = ecs.HealthCheck(
                command=hc.command,
                interval=cdk.Duration.seconds(hc.interval),
                timeout=cdk.Duration.seconds(hc.timeout),
                retries=hc.retries,
                start_period=cdk.Duration.seconds(hc.start_period),
            )

        definition = task_def.add_container(
            container.name,
            image=self._image(container),
            essential=container.essential,
            command=container.command,
            environment=dict(sorted(container.environment.items())),
            secrets=secrets,
            logging=ecs.LogDrivers.aws_logs(
                stream_prefix=container.name,
                log_group=log_group,
            ),
            port_mappings=(
                [ecs.PortMapping(container_port=container.port, protocol=ecs.Protocol.TCP)]
                if container.port else None
            ),
            health_check=health_check,
        )

        for mount in container.mounts:
            if self.inputs.file_system is None or self.inputs.mount_targets_ready is None:
                raise MissingStackInputError(
                    type(self).__name__, None, "file_system",
                    f"service '{spec.name}' mounts '{mount.access_point}'",
                )
            access_point = self._require(self.inputs.access_points, mount.access_point, "access_points")
            volume_name = f"{mount.access_point}-volume"
            if volume_name not in volumes:
                task_def.add_volume(
                    name=volume_name,
                    efs_volume_configuration=ecs.EfsVolumeConfiguration(
                        file_system_id=self.inputs.file_system.file_system_id,
                        transit_encryption="ENABLED",
                        authorization_config=ecs.AuthorizationConfig(
                            access_point_id=access_point.access_point_id,
                            iam="ENABLED",
                        ),
                    ),
                )
                volumes.add(volume_name)
            definition.add_mount_points(
                ecs.MountPoint(
                    container_path=mount.container_path,
                    source_volume=volume_name,
                    read_only=mount.read_only,
                )
            )

        return definition
