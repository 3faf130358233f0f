"""Central configuration loaded from environment variables."""
import os

import aws_cdk as cdk
from dotenv import load_dotenv

load_dotenv()


class Config:
    # Environment
    APP_ENV: str = os.getenv("APP_ENV", "staging")
    PLATFORM_NAME: str = os.getenv("PLATFORM_NAME", "LlmPlatform")

    # AWS target (never hard-coded; unset → environment-agnostic stacks)
    AWS_ACCOUNT: str = os.getenv("CDK_DEFAULT_ACCOUNT", os.getenv("AWS_ACCOUNT_ID", ""))
    AWS_REGION: str = os.getenv("CDK_DEFAULT_REGION", os.getenv("AWS_DEFAULT_REGION", ""))

    # Images (CI sets CDK_IMAGE_TAG=$(git rev-parse --short HEAD))
    IMAGE_TAG: str = os.getenv("CDK_IMAGE_TAG", "latest")

    # Topology document (JSON); empty → built-in default topology
    TOPOLOGY_FILE: str = os.getenv("PLATFORM_TOPOLOGY_FILE", "")

    # CDK CLI
    CDK_OUTDIR: str = os.getenv("CDK_OUTDIR", "cdk.out")
    CDK_COMMAND: str = os.getenv("CDK_COMMAND", "npx cdk")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def stack_prefix(cls) -> str:
        return f"{cls.PLATFORM_NAME}-{cls.APP_ENV.capitalize()}"

    @classmethod
    def environment(cls) -> cdk.Environment | None:
        if not cls.AWS_ACCOUNT and not cls.AWS_REGION:
            return None
        return cdk.Environment(
            account=cls.AWS_ACCOUNT or None,
            region=cls.AWS_REGION or None,
        )

    @classmethod
    def validate(cls) -> None:
        if cls.APP_ENV not in {"staging", "production"}:
            raise ValueError(
                f"APP_ENV must be 'staging' or 'production', got '{cls.APP_ENV}'."
            )
        if not cls.PLATFORM_NAME.replace("-", "").isalnum():
            raise ValueError(
                f"PLATFORM_NAME may only contain letters, digits and '-', got '{cls.PLATFORM_NAME}'."
            )
        if not cls.IMAGE_TAG:
            raise ValueError("CDK_IMAGE_TAG must not be empty.")


config = Config()
