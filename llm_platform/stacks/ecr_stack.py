"""
EcrStack — ECR repositories, one per container image.

Repositories (default):
  llm-platform/open-webui   → Open WebUI image
  llm-platform/llm-gateway  → LLM gateway image

Images are pushed by the external build pipeline; the compute stack pulls
them by tag (CDK_IMAGE_TAG).

Image lifecycle:
  - Untagged (intermediate build layers) expire after 7 days
  - Keep only the last 5 images
"""
import aws_cdk as cdk
from aws_cdk import aws_ecr as ecr
from constructs import Construct

from llm_platform.contracts import RegistryOutputs
from llm_platform.topology import RepositorySpec, logical_id

_REMOVAL = {
    "destroy": cdk.RemovalPolicy.DESTROY,
    "retain": cdk.RemovalPolicy.RETAIN,
}


class EcrStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        repositories: list[RepositorySpec],
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.repos: dict[str, ecr.Repository] = {}

        for spec in repositories:
            lifecycle_rules = []
            if spec.untagged_expiry_days:
                lifecycle_rules.append(
                    ecr.LifecycleRule(
                        description=f"Expire untagged layers after {spec.untagged_expiry_days} days",
                        tag_status=ecr.TagStatus.UNTAGGED,
                        max_image_age=cdk.Duration.days(spec.untagged_expiry_days),
                    )
                )
            # TagStatus.ANY must carry the highest priority; CDK orders it last
            lifecycle_rules.append(
                ecr.LifecycleRule(
                    description=f"Keep only {spec.max_image_count} images",
                    tag_status=ecr.TagStatus.ANY,
                    max_image_count=spec.max_image_count,
                )
            )

            repo = ecr.Repository(
                self,
                f"{logical_id(spec.name)}Repository",
                repository_name=spec.name,
                removal_policy=_REMOVAL[spec.removal],
                empty_on_delete=spec.removal == "destroy",
                image_scan_on_push=spec.scan_on_push,
                image_tag_mutability=(
                    ecr.TagMutability.MUTABLE if spec.mutable_tags else ecr.TagMutability.IMMUTABLE
                ),
                lifecycle_rules=lifecycle_rules,
            )
            self.repos[spec.name] = repo
            cdk.CfnOutput(
                self, f"{logical_id(spec.name)}Uri",
                value=repo.repository_uri,
                description="ECR Repository URI",
                export_name=f"{self.stack_name}-{logical_id(spec.name)}Uri",
            )

        self.outputs = RegistryOutputs(repositories=self.repos)
