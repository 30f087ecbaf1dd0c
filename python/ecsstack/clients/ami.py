"""
ecsstack/clients/ami.py

Machine-image resolution for `up` when no --image-id was supplied.

  - ImageResolver: abstract `get(region) -> image id`.
  - StaticImageResolver: fixed region -> ECS-optimized AMI table.
  - SsmImageResolver: reads the recommended ECS-optimized Amazon Linux 2 AMI
    from the public SSM parameters, picking the arm64 or GPU variant from the
    instance type.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional

from ecsstack.errors import ImageResolutionError
from ecsstack.utils.aws_cli import AwsRunner, AwsServiceError, run_aws

logger = logging.getLogger(__name__)

AMAZON_LINUX_2_X86_RECOMMENDED = "/aws/service/ecs/optimized-ami/amazon-linux-2/recommended"
AMAZON_LINUX_2_ARM64_RECOMMENDED = (
    "/aws/service/ecs/optimized-ami/amazon-linux-2/arm64/recommended"
)
AMAZON_LINUX_2_GPU_RECOMMENDED = (
    "/aws/service/ecs/optimized-ami/amazon-linux-2/gpu/recommended"
)

# amzn-ami-2015.09.d-amazon-ecs-optimized
DEFAULT_REGION_IMAGE_IDS: Dict[str, str] = {
    "us-east-1": "ami-2b3b6041",
    "us-west-1": "ami-bfe095df",
    "us-west-2": "ami-ac6872cd",
    "eu-west-1": "ami-03238b70",
    "eu-central-1": "ami-e1e6f88d",
    "ap-northeast-1": "ami-fb2f1295",
    "ap-southeast-1": "ami-c78f43a4",
    "ap-southeast-2": "ami-43547120",
}

_ARM64_INSTANCE = re.compile(r"a1\.(medium|\d*x?large)")
_GPU_PREFIXES = ("p2.", "p3.", "p3dn.")


class ImageResolver(ABC):
    """Resolves a default machine image id for a region."""

    @abstractmethod
    async def get(self, region: str) -> str:
        """Return the image id for `region`.

        Raises:
            ImageResolutionError: If no image is known for the region.
        """


class StaticImageResolver(ImageResolver):
    """Looks the region up in a fixed table."""

    def __init__(self, region_to_id: Optional[Mapping[str, str]] = None) -> None:
        self._region_to_id = dict(region_to_id or DEFAULT_REGION_IMAGE_IDS)

    async def get(self, region: str) -> str:
        try:
            return self._region_to_id[region]
        except KeyError:
            raise ImageResolutionError(
                f"Could not find ami id for region '{region}'"
            ) from None


def recommended_parameter_name(instance_type: Optional[str]) -> str:
    """Pick the SSM parameter holding the recommended AMI for an instance type."""
    if instance_type and _ARM64_INSTANCE.search(instance_type):
        logger.info(
            "Using Arm ecs-optimized AMI because instance type was %s", instance_type
        )
        return AMAZON_LINUX_2_ARM64_RECOMMENDED
    if instance_type and instance_type.startswith(_GPU_PREFIXES):
        logger.info(
            "Using GPU ecs-optimized AMI because instance type was %s", instance_type
        )
        return AMAZON_LINUX_2_GPU_RECOMMENDED
    return AMAZON_LINUX_2_X86_RECOMMENDED


class SsmImageResolver(ImageResolver):
    """Reads the recommended ECS-optimized AMI from SSM public parameters."""

    def __init__(
        self,
        instance_type: Optional[str] = None,
        profile: Optional[str] = None,
        runner: AwsRunner = run_aws,
    ) -> None:
        """
        Args:
            instance_type: Instance type the AMI must support; selects the
                x86, arm64 or GPU parameter.
            profile: Named AWS CLI profile, if any.
            runner: The CLI runner; replaceable in tests.
        """
        self.instance_type = instance_type
        self.profile = profile
        self._runner = runner

    async def get(self, region: str) -> str:
        name = recommended_parameter_name(self.instance_type)
        try:
            response = await self._runner(
                "ssm",
                "get-parameter",
                ["--name", name],
                region=region,
                profile=self.profile,
            )
        except AwsServiceError as exc:
            if exc.code == "ParameterNotFound":
                raise ImageResolutionError(
                    f"Could not find Recommended Amazon Linux 2 AMI {name} in {region}; "
                    "the AMI may not be supported in this region"
                ) from exc
            raise

        try:
            metadata = json.loads(response["Parameter"]["Value"])
            return str(metadata["image_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ImageResolutionError(
                f"Unexpected value for SSM parameter {name}: {exc}"
            ) from exc
