"""
DataStack — Persistent data layer and generated secrets.

Resources:
  RDS PostgreSQL instance
    - Isolated subnets only (no route to the internet)
    - Reachable on 5432 from the ECS security group only
    - Credentials generated into Secrets Manager; RDS attaches the
      host / port / dbname fields to the same secret

  Secrets Manager — application secrets
    - One generated secret per declared app secret (session keys, gateway
      master key, ...)
    - Injected into ECS tasks by the execution role, never passed as
      plaintext environment variables
"""
import aws_cdk as cdk
from aws_cdk import (
    aws_ec2 as ec2,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
)
from constructs import Construct

from llm_platform.contracts import DataInputs, DataOutputs
from llm_platform.errors import TopologyError
from llm_platform.topology import DATABASE_SECRET, AppSecretSpec, DatabaseSpec, logical_id

_REMOVAL = {
    "destroy": cdk.RemovalPolicy.DESTROY,
    "retain": cdk.RemovalPolicy.RETAIN,
    "snapshot": cdk.RemovalPolicy.SNAPSHOT,
}


def _postgres_version(version: str) -> rds.PostgresEngineVersion:
    engine_version = getattr(rds.PostgresEngineVersion, f"VER_{version.replace('.', '_')}", None)
    if engine_version is None:
        raise TopologyError(f"Unsupported PostgreSQL version '{version}'")
    return engine_version


class DataStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        inputs: DataInputs,
        database: DatabaseSpec,
        app_secrets: list[AppSecretSpec],
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        prefix = self.stack_name.lower()

        # ── RDS PostgreSQL ────────────────────────────────────────────────────
        db_secret = rds.DatabaseSecret(
            self, "DatabaseCredentials",
            username=database.username,
            secret_name=f"/{prefix}/database/credentials",
        )
        self.database = rds.DatabaseInstance(
            self,
            "Database",
            engine=rds.DatabaseInstanceEngine.postgres(
                version=_postgres_version(database.engine_version),
            ),
            instance_type=ec2.InstanceType(database.instance_type),
            instance_identifier=database.identifier,
            vpc=inputs.vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_group_name=database.subnet_group),
            security_groups=[inputs.security_group],
            credentials=rds.Credentials.from_secret(db_secret),
            database_name=database.database_name,
            port=database.port,
            allocated_storage=database.allocated_storage,
            max_allocated_storage=database.max_allocated_storage,
            storage_encrypted=True,
            multi_az=database.multi_az,
            backup_retention=cdk.Duration.days(database.backup_retention_days),
            deletion_protection=database.deletion_protection,
            removal_policy=_REMOVAL[database.removal],
        )

        # ── Secrets Manager — app secrets ─────────────────────────────────────
        self.secrets: dict[str, secretsmanager.ISecret] = {DATABASE_SECRET: self.database.secret}
        for spec in app_secrets:
            self.secrets[spec.name] = secretsmanager.Secret(
                self,
                f"{logical_id(spec.name)}Secret",
                secret_name=f"/{prefix}/{spec.name}",
                description=spec.description or None,
                generate_secret_string=secretsmanager.SecretStringGenerator(
                    password_length=spec.length,
                    exclude_punctuation=True,
                ),
                removal_policy=cdk.RemovalPolicy.DESTROY,
            )

        self.outputs = DataOutputs(database=self.database, secrets=self.secrets)

        # ── Outputs ───────────────────────────────────────────────────────────
        cdk.CfnOutput(
            self, "DBEndpoint",
            value=self.database.instance_endpoint.hostname,
            description="RDS instance endpoint",
            export_name=f"{self.stack_name}-DbEndpoint",
        )
        cdk.CfnOutput(
            self, "DatabaseSecretArn",
            value=self.database.secret.secret_arn,
            export_name=f"{self.stack_name}-DatabaseSecretArn",
        )
