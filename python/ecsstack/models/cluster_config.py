"""
ecsstack/models/cluster_config.py

Cluster identity and environment-driven settings.

 - ClusterConfig: immutable cluster name + region/profile context; derives the
   CloudFormation stack name deterministically from the cluster name.
 - ClusterSettings: pydantic-settings model read from ECSSTACK_* environment
   variables, which CLI flags override before building a ClusterConfig.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STACK_NAME_PREFIX = "amazon-ecs-cli-setup-"


class ClusterConfig(BaseModel):
    """Logical identity of a cluster, fixed for the duration of a command.

    Attributes:
        cluster (str): ECS cluster name. May be empty; commands that need it
            raise a precondition error naming the missing --cluster flag.
        region (Optional[str]): AWS region for every remote call.
        profile (Optional[str]): Named AWS CLI profile, if any.
        stack_name_prefix (str): Prefix joined to the cluster name to form the
            stack name.
    """

    model_config = ConfigDict(frozen=True)

    cluster: str = ""
    region: Optional[str] = None
    profile: Optional[str] = None
    stack_name_prefix: str = DEFAULT_STACK_NAME_PREFIX

    @field_validator("cluster")
    @classmethod
    def validate_cluster(cls, value: str) -> str:
        """Cluster names may not contain whitespace or slashes."""
        if any(ch.isspace() for ch in value) or "/" in value:
            raise ValueError("Whitespace/slash not allowed in 'cluster'.")
        return value

    @property
    def stack_name(self) -> str:
        """The CloudFormation stack name for this cluster."""
        return f"{self.stack_name_prefix}{self.cluster}"


class ClusterSettings(BaseSettings):
    """
    Settings for cluster commands. Fields map to environment variables prefixed
    with `ECSSTACK_`, e.g. `ECSSTACK_CLUSTER`, `ECSSTACK_REGION`.
    """

    model_config = SettingsConfigDict(env_prefix="ECSSTACK_")

    cluster: str = ""
    region: Optional[str] = None
    profile: Optional[str] = None
    stack_name_prefix: str = DEFAULT_STACK_NAME_PREFIX

    def to_cluster_config(
        self,
        cluster: Optional[str] = None,
        region: Optional[str] = None,
        profile: Optional[str] = None,
    ) -> ClusterConfig:
        """Build a ClusterConfig, letting non-empty arguments override settings.

        Args:
            cluster: Cluster name from the command line, if given.
            region: Region from the command line, if given.
            profile: Profile from the command line, if given.
        """
        return ClusterConfig(
            cluster=cluster or self.cluster,
            region=region or self.region,
            profile=profile or self.profile,
            stack_name_prefix=self.stack_name_prefix,
        )
