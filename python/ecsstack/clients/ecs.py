"""
ecsstack/clients/ecs.py

Container-orchestration boundary used by the cluster orchestrator:
  - ClusterService: abstract ECS cluster and task operations.
  - AwsCliClusterService: implementation on top of the `aws ecs` CLI.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ecsstack.models.ecs import CLUSTER_STATUS_ACTIVE, EcsTask
from ecsstack.models.validator import validate_response
from ecsstack.utils.aws_cli import AwsRunner, AwsServiceError, run_aws

logger = logging.getLogger(__name__)

# DescribeTasks and DescribeContainerInstances accept at most 100 ids per call.
ECS_CHUNK_SIZE = 100


def _chunks(items: List[str], size: int) -> List[List[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class ClusterService(ABC):
    """Abstract ECS operations consumed by the cluster orchestrator."""

    @abstractmethod
    async def create_cluster(self, cluster_name: str) -> str:
        """Create (or return the existing) cluster and return its name."""

    @abstractmethod
    async def delete_cluster(self, cluster_name: str) -> str:
        """Delete the cluster and return its name."""

    @abstractmethod
    async def is_active_cluster(self, cluster_name: str) -> bool:
        """True if the cluster exists and is ACTIVE."""

    @abstractmethod
    async def list_tasks(self, cluster_name: str, desired_status: str) -> List[str]:
        """Return the ARNs of all tasks with the given desired status."""

    @abstractmethod
    async def describe_tasks(
        self, cluster_name: str, task_arns: List[str]
    ) -> List[EcsTask]:
        """Describe the given tasks."""

    @abstractmethod
    async def get_ec2_instance_ids(
        self, cluster_name: str, container_instance_arns: List[str]
    ) -> Dict[str, str]:
        """Map container instance ARN -> EC2 instance id."""


class AwsCliClusterService(ClusterService):
    """ClusterService backed by `aws ecs`."""

    def __init__(
        self,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        runner: AwsRunner = run_aws,
    ) -> None:
        self.region = region
        self.profile = profile
        self._runner = runner

    async def _call(self, operation: str, *args: str) -> Dict[str, Any]:
        return await self._runner(
            "ecs", operation, list(args), region=self.region, profile=self.profile
        )

    async def create_cluster(self, cluster_name: str) -> str:
        response = await self._call("create-cluster", "--cluster-name", cluster_name)
        cluster = validate_response(response, "cluster", dict, "create-cluster")
        name = cluster.get("clusterName", cluster_name)
        logger.info("Created cluster %s", name)
        return name

    async def delete_cluster(self, cluster_name: str) -> str:
        response = await self._call("delete-cluster", "--cluster", cluster_name)
        cluster = validate_response(response, "cluster", dict, "delete-cluster")
        name = cluster.get("clusterName", cluster_name)
        logger.info("Deleted cluster %s", name)
        return name

    async def is_active_cluster(self, cluster_name: str) -> bool:
        response = await self._call("describe-clusters", "--clusters", cluster_name)
        if response.get("failures"):
            return False
        clusters = response.get("clusters") or []
        if not clusters:
            raise AwsServiceError(
                "InvalidResponse",
                f"Got an empty list of clusters while describing the cluster '{cluster_name}'",
                "describe-clusters",
            )
        status = clusters[0].get("status")
        if status == CLUSTER_STATUS_ACTIVE:
            return True
        logger.debug("Cluster %s status: %s", cluster_name, status)
        return False

    async def list_tasks(self, cluster_name: str, desired_status: str) -> List[str]:
        response = await self._call(
            "list-tasks",
            "--cluster",
            cluster_name,
            "--desired-status",
            desired_status,
        )
        return list(response.get("taskArns") or [])

    async def describe_tasks(
        self, cluster_name: str, task_arns: List[str]
    ) -> List[EcsTask]:
        tasks: List[EcsTask] = []
        for chunk in _chunks(task_arns, ECS_CHUNK_SIZE):
            response = await self._call(
                "describe-tasks", "--cluster", cluster_name, "--tasks", *chunk
            )
            tasks += validate_response(response, "tasks", List[EcsTask], "describe-tasks")
        return tasks

    async def get_ec2_instance_ids(
        self, cluster_name: str, container_instance_arns: List[str]
    ) -> Dict[str, str]:
        mapping: Dict[str, str] = {}
        for chunk in _chunks(container_instance_arns, ECS_CHUNK_SIZE):
            response = await self._call(
                "describe-container-instances",
                "--cluster",
                cluster_name,
                "--container-instances",
                *chunk,
            )
            instances = response.get("containerInstances") or []
            mapping.update(
                {
                    ci["containerInstanceArn"]: ci["ec2InstanceId"]
                    for ci in instances
                    if ci.get("containerInstanceArn") and ci.get("ec2InstanceId")
                }
            )
        return mapping
