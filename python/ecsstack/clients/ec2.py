"""
ecsstack/clients/ec2.py

Compute-layer boundary used by `ps` to find the public IP of the instances that
host a cluster's tasks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ecsstack.utils.aws_cli import AwsRunner, AwsServiceError, run_aws


class InstanceService(ABC):
    """Abstract EC2 instance lookups."""

    @abstractmethod
    async def describe_instances(
        self, instance_ids: List[str]
    ) -> Dict[str, Optional[str]]:
        """Map EC2 instance id -> public IP address (None when it has none)."""


class AwsCliInstanceService(InstanceService):
    """InstanceService backed by `aws ec2 describe-instances`."""

    def __init__(
        self,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        runner: AwsRunner = run_aws,
    ) -> None:
        self.region = region
        self.profile = profile
        self._runner = runner

    async def describe_instances(
        self, instance_ids: List[str]
    ) -> Dict[str, Optional[str]]:
        if not instance_ids:
            return {}
        response = await self._runner(
            "ec2",
            "describe-instances",
            ["--instance-ids", *instance_ids],
            region=self.region,
            profile=self.profile,
        )
        reservations: List[Dict[str, Any]] = response.get("Reservations") or []
        if not reservations:
            raise AwsServiceError(
                "InvalidResponse", "No EC2 reservations found", "describe-instances"
            )
        return {
            instance["InstanceId"]: instance.get("PublicIpAddress")
            for reservation in reservations
            for instance in reservation.get("Instances") or []
            if instance.get("InstanceId")
        }
