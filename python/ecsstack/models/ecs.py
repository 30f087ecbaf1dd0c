"""
ecsstack/models/ecs.py

Pydantic models for ECS tasks and containers as returned by DescribeTasks, plus
ContainerInfo: the flat, display-ready row produced by `ps` after joining a
task's containers with the public IP of the EC2 instance they run on.
"""

from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

DESIRED_STATUS_RUNNING = "RUNNING"
DESIRED_STATUS_STOPPED = "STOPPED"
CLUSTER_STATUS_ACTIVE = "ACTIVE"

CONTAINER_INFO_COLUMNS = ["Name", "State", "Ports", "TaskDefinition", "Health"]


def id_from_arn(arn: str) -> str:
    """Return the trailing id of an ARN, e.g. "arn:...:task/demo/abc" -> "abc"."""
    return arn.rsplit("/", 1)[-1]


class NetworkBinding(BaseModel):
    """A host-to-container port binding."""

    model_config = ConfigDict(populate_by_name=True)

    bind_ip: Optional[str] = Field(default=None, alias="bindIP")
    container_port: Optional[int] = Field(default=None, alias="containerPort")
    host_port: Optional[int] = Field(default=None, alias="hostPort")
    protocol: Optional[str] = Field(default=None, alias="protocol")


class EcsContainer(BaseModel):
    """A container within an ECS task."""

    model_config = ConfigDict(populate_by_name=True)

    container_arn: Optional[str] = Field(default=None, alias="containerArn")
    name: str = Field(default="", alias="name")
    last_status: Optional[str] = Field(default=None, alias="lastStatus")
    exit_code: Optional[int] = Field(default=None, alias="exitCode")
    reason: Optional[str] = Field(default=None, alias="reason")
    health_status: Optional[str] = Field(default=None, alias="healthStatus")
    network_bindings: List[NetworkBinding] = Field(
        default_factory=list, alias="networkBindings"
    )


class EcsTask(BaseModel):
    """An ECS task with its containers."""

    model_config = ConfigDict(populate_by_name=True)

    task_arn: str = Field(alias="taskArn")
    task_definition_arn: Optional[str] = Field(default=None, alias="taskDefinitionArn")
    container_instance_arn: Optional[str] = Field(
        default=None, alias="containerInstanceArn"
    )
    last_status: Optional[str] = Field(default=None, alias="lastStatus")
    desired_status: Optional[str] = Field(default=None, alias="desiredStatus")
    containers: List[EcsContainer] = Field(default_factory=list, alias="containers")


class ContainerInfo(BaseModel):
    """One row of `ps` output."""

    name: str
    state: str
    ports: str
    task_definition: str
    health: str

    @classmethod
    def from_task(
        cls, task: EcsTask, container: EcsContainer, ec2_ip_address: str = ""
    ) -> ContainerInfo:
        """Build a row for `container` of `task`.

        Args:
            task: The owning task.
            container: The container to describe.
            ec2_ip_address: Public IP of the hosting instance, or "" if unknown.
        """
        return cls(
            name=f"{id_from_arn(task.task_arn)}/{container.name}",
            state=_container_state(container),
            ports=_port_string(container.network_bindings, ec2_ip_address),
            task_definition=id_from_arn(task.task_definition_arn or ""),
            health=container.health_status or "",
        )

    def as_row(self) -> List[str]:
        """Values in CONTAINER_INFO_COLUMNS order."""
        return [self.name, self.state, self.ports, self.task_definition, self.health]


def _container_state(container: EcsContainer) -> str:
    status = container.last_status or ""
    if status != DESIRED_STATUS_STOPPED:
        return status
    # stopped containers carry their exit code and reason when present
    if container.exit_code is not None:
        status = f"{status} ExitCode: {container.exit_code}"
    if container.reason is not None:
        status = f"{status} Reason: {container.reason}"
    return status


def _port_string(bindings: List[NetworkBinding], ec2_ip_address: str) -> str:
    def _one(binding: NetworkBinding) -> str:
        protocol = binding.protocol or "tcp"
        ip_addr = ec2_ip_address or binding.bind_ip or ""
        mapping = f"{binding.host_port or 0}->{binding.container_port or 0}/{protocol}"
        return f"{ip_addr}:{mapping}" if ip_addr else mapping

    return ", ".join(_one(b) for b in bindings)
