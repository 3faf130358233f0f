#!/usr/bin/env python3
"""
LLM Platform — AWS CDK Application

Hosts Open WebUI and an LLM gateway on ECS Fargate behind a public ALB,
with RDS PostgreSQL for state and EFS for the web UI's data directory.

Stacks:
  NetworkStack     → VPC, subnets, endpoints, security groups, ALB
  EcrStack         → ECR repositories (one per container image)
  DataStack        → RDS PostgreSQL, generated Secrets Manager secrets
  FilesystemStack  → EFS file system + access points
  EcsStack         → ECS cluster, Cloud Map namespace, Fargate services

Usage:
  pip install -e .
  cdk bootstrap aws://ACCOUNT_ID/REGION
  llm-platform synth
  llm-platform deploy

  # Or drive the CDK CLI directly (cdk.json points here):
  cdk diff --all
  cdk deploy LlmPlatform-Staging-Network

Environment variables (set before cdk deploy):
  CDK_DEFAULT_ACCOUNT     → your AWS account ID
  CDK_DEFAULT_REGION      → target region (unset → environment-agnostic)
  APP_ENV                 → "staging" | "production" (default: staging)
  CDK_IMAGE_TAG           → image tag to run (default: latest)
  PLATFORM_TOPOLOGY_FILE  → JSON topology replacing the built-in one
"""
import aws_cdk as cdk

from llm_platform.config import config
from llm_platform.deployment import build_deployment
from llm_platform.topology import load_topology

config.validate()

app = cdk.App()

build_deployment(
    app,
    load_topology(config.TOPOLOGY_FILE),
    prefix=config.stack_prefix(),
    env=config.environment(),
    image_tag=config.IMAGE_TAG,
)

app.synth()
