"""
NetworkStack — VPC, subnets, endpoints, security groups and the public ALB.

Topology (default):
  - 3 Availability Zones, 1 NAT gateway
  - Public subnets   → ALB only
  - Private subnets  → ECS tasks, EFS mount targets (NAT for outbound)
  - Isolated subnets → RDS (no internet access)

Security groups are created in declaration order; every ingress edge points
at a group created before it (or at the group itself), so no rule ever needs
a group that does not exist yet.

Load balancer:
  One target group per load-balanced service (IP targets, Fargate awsvpc).
  The listener's default action and its path rules forward to those target
  groups; the compute stack only attaches services to them.
"""
import logging

import aws_cdk as cdk
from aws_cdk import (
    aws_ec2 as ec2,
    aws_elasticloadbalancingv2 as elbv2,
)
from constructs import Construct

from llm_platform.contracts import NetworkOutputs
from llm_platform.errors import TopologyError
from llm_platform.topology import (
    ANY_IPV4,
    IngressRuleSpec,
    PlatformSpec,
    is_cidr,
    logical_id,
)

logger = logging.getLogger(__name__)

_SUBNET_TYPES = {
    "public": ec2.SubnetType.PUBLIC,
    "private": ec2.SubnetType.PRIVATE_WITH_EGRESS,
    "isolated": ec2.SubnetType.PRIVATE_ISOLATED,
}


def _port(rule: IngressRuleSpec) -> ec2.Port:
    if rule.to_port is not None and rule.to_port != rule.port:
        return ec2.Port.tcp_range(rule.port, rule.to_port)
    return ec2.Port.tcp(rule.port)


def _endpoint_service(kind, name: str):
    service = getattr(kind, name, None)
    if service is None:
        raise TopologyError(f"Unknown VPC endpoint service '{name}'")
    return service


class NetworkStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        topology: PlatformSpec,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        network = topology.network

        # ── VPC ───────────────────────────────────────────────────────────────
        self.vpc = ec2.Vpc(
            self,
            "Vpc",
            vpc_name=network.vpc_name,
            ip_addresses=ec2.IpAddresses.cidr(network.cidr),
            max_azs=network.max_azs,
            nat_gateways=network.nat_gateways,
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name=group.name,
                    subnet_type=_SUBNET_TYPES[group.tier],
                    cidr_mask=group.cidr_mask,
                )
                for group in network.subnet_groups
            ],
        )

        # ── VPC Endpoints (pull images / read secrets without NAT) ───────────
        for name in network.interface_endpoints:
            self.vpc.add_interface_endpoint(
                f"{logical_id(name)}Endpoint",
                service=_endpoint_service(ec2.InterfaceVpcEndpointAwsService, name),
            )
        for name in network.gateway_endpoints:
            self.vpc.add_gateway_endpoint(
                f"{logical_id(name)}Endpoint",
                service=_endpoint_service(ec2.GatewayVpcEndpointAwsService, name),
            )

        # ── Security groups ───────────────────────────────────────────────────
        self.security_groups: dict[str, ec2.SecurityGroup] = {}
        for spec in topology.security_groups:
            group = ec2.SecurityGroup(
                self, f"{logical_id(spec.name)}Sg",
                vpc=self.vpc,
                description=spec.description,
                allow_all_outbound=spec.allow_all_outbound,
                security_group_name=spec.group_name,
            )
            self.security_groups[spec.name] = group

            for rule in spec.ingress:
                group.add_ingress_rule(self._peer(rule.peer), _port(rule), rule.description)
                logger.debug(f"[network] {spec.name} ← {rule.peer}:{rule.port}")

        # ── Application Load Balancer ─────────────────────────────────────────
        lb_spec = topology.load_balancer
        self.alb = elbv2.ApplicationLoadBalancer(
            self, "Alb",
            load_balancer_name=lb_spec.name,
            vpc=self.vpc,
            internet_facing=lb_spec.internet_facing,
            security_group=self.security_groups[lb_spec.security_group],
            vpc_subnets=ec2.SubnetSelection(subnet_group_name=lb_spec.subnet_group),
            idle_timeout=cdk.Duration.seconds(lb_spec.idle_timeout),
        )

        self.target_groups: dict[str, elbv2.ApplicationTargetGroup] = {}
        for service in topology.services:
            if service.target is None:
                continue
            target = service.target
            self.target_groups[service.name] = elbv2.ApplicationTargetGroup(
                self, f"{logical_id(service.name)}Targets",
                vpc=self.vpc,
                port=service.target_container().port,
                protocol=elbv2.ApplicationProtocol.HTTP,
                target_type=elbv2.TargetType.IP,
                health_check=elbv2.HealthCheck(
                    path=target.health_check_path,
                    interval=cdk.Duration.seconds(target.interval),
                    timeout=cdk.Duration.seconds(target.timeout),
                    healthy_http_codes=target.healthy_http_codes,
                ),
                deregistration_delay=cdk.Duration.seconds(target.deregistration_delay),
            )

        listener_spec = lb_spec.listener
        if listener_spec.default_target is not None:
            default_action = elbv2.ListenerAction.forward(
                [self.target_groups[listener_spec.default_target]]
            )
        else:
            default_action = elbv2.ListenerAction.fixed_response(
                404, content_type="text/plain", message_body="Not Found",
            )

        # open=False: ingress on the ALB is declared explicitly on its security group
        self.listener = self.alb.add_listener(
            "HttpListener",
            port=listener_spec.port,
            open=False,
            default_action=default_action,
        )

        for rule in sorted(listener_spec.rules, key=lambda r: r.priority):
            self.listener.add_action(
                f"{logical_id(rule.target)}Priority{rule.priority}",
                priority=rule.priority,
                conditions=[elbv2.ListenerCondition.path_patterns(rule.path_patterns)],
                action=elbv2.ListenerAction.forward([self.target_groups[rule.target]]),
            )

        self.outputs = NetworkOutputs(
            vpc=self.vpc,
            security_groups=self.security_groups,
            load_balancer=self.alb,
            listener=self.listener,
            target_groups=self.target_groups,
        )

        # ── Outputs ───────────────────────────────────────────────────────────
        cdk.CfnOutput(self, "VpcId", value=self.vpc.vpc_id, export_name=f"{self.stack_name}-VpcId")
        for group in network.subnet_groups:
            subnets = self.vpc.select_subnets(subnet_group_name=group.name)
            cdk.CfnOutput(
                self, f"{logical_id(group.name)}SubnetIds",
                value=cdk.Fn.join(",", subnets.subnet_ids),
                export_name=f"{self.stack_name}-{logical_id(group.name)}SubnetIds",
            )
        for name, group in self.security_groups.items():
            cdk.CfnOutput(
                self, f"{logical_id(name)}SgId",
                value=group.security_group_id,
                export_name=f"{self.stack_name}-{logical_id(name)}SgId",
            )
        cdk.CfnOutput(
            self, "AlbDnsName",
            value=self.alb.load_balancer_dns_name,
            description="ALB DNS Name",
            export_name=f"{self.stack_name}-AlbDnsName",
        )

    def _peer(self, peer: str) -> ec2.IPeer:
        if peer == ANY_IPV4:
            return ec2.Peer.any_ipv4()
        if is_cidr(peer):
            return ec2.Peer.ipv4(peer)
        return self.security_groups[peer]
