"""
ecsstack/models/cluster_commands.py

Inputs to the cluster orchestrator's `up`, `down` and `scale` commands. These
are the CLI-equivalent flag values; the orchestrator turns them into stack
parameters and guards.
"""

from __future__ import annotations

from typing import Dict, Optional
from pydantic import BaseModel

from ecsstack.models.stack_params import (
    PARAMETER_KEY_AMI_ID,
    PARAMETER_KEY_ASG_MAX_SIZE,
    PARAMETER_KEY_ECS_PORT,
    PARAMETER_KEY_INSTANCE_TYPE,
    PARAMETER_KEY_KEY_PAIR_NAME,
    PARAMETER_KEY_SECURITY_GROUP,
    PARAMETER_KEY_SOURCE_CIDR,
    PARAMETER_KEY_SUBNET_IDS,
    PARAMETER_KEY_VPC_AZS,
    PARAMETER_KEY_VPC_ID,
)

# CLI flag name -> stack parameter key, for flags that map one-to-one.
FLAG_TO_PARAMETER_KEY: Dict[str, str] = {
    "size": PARAMETER_KEY_ASG_MAX_SIZE,
    "azs": PARAMETER_KEY_VPC_AZS,
    "security_group": PARAMETER_KEY_SECURITY_GROUP,
    "cidr": PARAMETER_KEY_SOURCE_CIDR,
    "port": PARAMETER_KEY_ECS_PORT,
    "subnets": PARAMETER_KEY_SUBNET_IDS,
    "vpc": PARAMETER_KEY_VPC_ID,
    "instance_type": PARAMETER_KEY_INSTANCE_TYPE,
    "keypair": PARAMETER_KEY_KEY_PAIR_NAME,
    "image_id": PARAMETER_KEY_AMI_ID,
}


class UpOptions(BaseModel):
    """Flags for `up`.

    Attributes:
        capability_iam: Caller acknowledges the stack may create IAM resources.
        force: Replace an existing stack for the cluster instead of failing.
        keypair: EC2 key pair name for the container instances.
        image_id: AMI id; resolved per region when omitted.
        size: Number of instances (auto scaling group max size).
        azs: Two comma-separated availability zones for a new VPC.
        security_group: Existing security group id (requires vpc).
        cidr: Source CIDR allowed to reach the instances.
        port: Port opened on the security group.
        subnets: Two comma-separated subnet ids (requires vpc).
        vpc: Existing VPC id (requires subnets).
        instance_type: EC2 instance type.
        no_associate_public_ip_address: Do not give instances a public IP.
    """

    capability_iam: bool = False
    force: bool = False
    keypair: Optional[str] = None
    image_id: Optional[str] = None
    size: Optional[str] = None
    azs: Optional[str] = None
    security_group: Optional[str] = None
    cidr: Optional[str] = None
    port: Optional[str] = None
    subnets: Optional[str] = None
    vpc: Optional[str] = None
    instance_type: Optional[str] = None
    no_associate_public_ip_address: bool = False

    def flag_parameters(self) -> Dict[str, str]:
        """Stack parameter key -> value for every non-empty mapped flag."""
        values = self.model_dump()
        return {
            key: values[flag]
            for flag, key in FLAG_TO_PARAMETER_KEY.items()
            if values[flag]
        }


class DownOptions(BaseModel):
    """Flags for `down`. `force` acknowledges the destructive operation."""

    force: bool = False


class ScaleOptions(BaseModel):
    """Flags for `scale`."""

    capability_iam: bool = False
    size: Optional[str] = None
