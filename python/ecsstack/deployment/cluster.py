"""
filename: ecsstack/deployment/cluster.py

Use-case layer for cluster commands. Sequences calls to the ECS cluster service
and the stack lifecycle controller so that `up`, `down` and `scale` read as one
operation to the user, even though each is several non-transactional calls.

Every command is a fixed series of guards followed by remote calls. A failed
guard raises before any later step runs. There is no compensating rollback: if
`up` fails after the ECS cluster was created, the cluster stays and the user
can retry `up --force` or run `down`.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from ecsstack.clients.ami import ImageResolver
from ecsstack.clients.ec2 import InstanceService
from ecsstack.clients.ecs import ClusterService
from ecsstack.deployment.stack_lifecycle import StackLifecycleController
from ecsstack.deployment.template import TemplateProvider, read_cluster_template
from ecsstack.errors import (
    ClusterPreconditionError,
    ParameterValidationError,
    RemoteCallError,
)
from ecsstack.models.cluster_commands import DownOptions, ScaleOptions, UpOptions
from ecsstack.models.cluster_config import ClusterConfig
from ecsstack.models.ecs import (
    DESIRED_STATUS_RUNNING,
    DESIRED_STATUS_STOPPED,
    ContainerInfo,
    EcsTask,
)
from ecsstack.models.stack_params import (
    PARAMETER_KEY_AMI_ID,
    PARAMETER_KEY_ASG_MAX_SIZE,
    PARAMETER_KEY_ASSOCIATE_PUBLIC_IP_ADDRESS,
    PARAMETER_KEY_CLUSTER,
    PARAMETER_KEY_KEY_PAIR_NAME,
    PARAMETER_KEY_SECURITY_GROUP,
    PARAMETER_KEY_SUBNET_IDS,
    PARAMETER_KEY_VPC_AZS,
    PARAMETER_KEY_VPC_ID,
    ParameterSet,
)
from ecsstack.utils.remote import is_stack_missing, remote_call

logger = logging.getLogger(__name__)

_ASCII_DIGITS = re.compile(r"[0-9]+")


def parse_cluster_size(size: str) -> int:
    """Parse the --size flag as a positive integer.

    Raises:
        ParameterValidationError: Naming AsgMaxSize if `size` is malformed.
    """
    stripped = size.strip()
    if not _ASCII_DIGITS.fullmatch(stripped) or int(stripped) <= 0:
        raise ParameterValidationError(
            PARAMETER_KEY_ASG_MAX_SIZE,
            f"Invalid value '{size}' for '--size': expected a positive integer",
        )
    return int(stripped)


def _has(params: ParameterSet, key: str) -> bool:
    return key in params


def _comma_count(params: ParameterSet, key: str) -> int:
    return len((params.get(key).value or "").split(","))


class ClusterOrchestrator:
    """Implements `up`, `down`, `scale` and `ps` for one cluster.

    Args:
        config: Cluster identity and region.
        cluster_service: ECS boundary.
        instance_service: EC2 boundary, used by `ps`.
        stacks: Stack lifecycle controller.
        image_resolver: Default AMI lookup for `up`.
        template_provider: Returns the stack template body.
    """

    def __init__(
        self,
        config: ClusterConfig,
        cluster_service: ClusterService,
        instance_service: InstanceService,
        stacks: StackLifecycleController,
        image_resolver: ImageResolver,
        template_provider: TemplateProvider = read_cluster_template,
    ) -> None:
        self.config = config
        self._clusters = cluster_service
        self._instances = instance_service
        self._stacks = stacks
        self._images = image_resolver
        self._template_provider = template_provider

    # ------------------------------------------------------------------
    # up
    # ------------------------------------------------------------------

    async def up(self, options: UpOptions) -> str:
        """Create the ECS cluster and its CloudFormation stack.

        Steps:
          1) Guards: IAM acknowledged, cluster configured, size well formed.
          2) Build stack parameters from the flags plus the cluster name.
          3) Guard: no stack exists for the cluster (unless --force).
          4) Guards: key pair given, network flags consistent.
          5) Resolve the AMI if none was given, then validate the parameters.
          6) Create the ECS cluster, replace any old stack (--force), create the
             stack and wait for it.

        Returns:
            The id of the created stack.
        """
        if not options.capability_iam:
            raise ClusterPreconditionError(
                "Please acknowledge that this command may create IAM resources "
                "with the '--capability-iam' flag"
            )
        cluster = self._require_cluster()
        size = parse_cluster_size(options.size) if options.size else None

        params = self._up_parameters(options, cluster)
        if size is not None:
            params.add(PARAMETER_KEY_ASG_MAX_SIZE, str(size))
        stack_name = self.config.stack_name

        replace_stack = False
        if await self._stack_exists(stack_name):
            if not options.force:
                raise ClusterPreconditionError(
                    f"A CloudFormation stack already exists for the cluster '{cluster}'. "
                    "Please specify '--force' to clean up your existing resources"
                )
            replace_stack = True

        if not _has(params, PARAMETER_KEY_KEY_PAIR_NAME):
            raise ClusterPreconditionError(
                "Please specify the keypair name with '--keypair' flag"
            )
        self._check_network_flags(params)

        if not _has(params, PARAMETER_KEY_AMI_ID):
            params.add(PARAMETER_KEY_AMI_ID, await self._resolve_image_id())
        params.validate()

        with remote_call("CreateCluster", cluster):
            await self._clusters.create_cluster(cluster)

        if replace_stack:
            await self._stacks.delete_stack(stack_name)
            logger.info("Waiting for your CloudFormation stack resources to be deleted...")
            await self._stacks.wait_until_delete_complete(stack_name)

        with remote_call("ReadTemplate", stack_name):
            template = await self._template_provider()
        stack_id = await self._stacks.create_stack(template, stack_name, params)

        logger.info("Waiting for your cluster resources to be created...")
        await self._stacks.wait_until_create_complete(stack_name)
        return stack_id

    def _up_parameters(self, options: UpOptions, cluster: str) -> ParameterSet:
        params = ParameterSet.new()
        for key, value in options.flag_parameters().items():
            params.add(key, value)
        params.add(PARAMETER_KEY_CLUSTER, cluster)
        if options.no_associate_public_ip_address:
            params.add(PARAMETER_KEY_ASSOCIATE_PUBLIC_IP_ADDRESS, "false")
        return params

    @staticmethod
    def _check_network_flags(params: ParameterSet) -> None:
        has_vpc = _has(params, PARAMETER_KEY_VPC_ID)
        if _has(params, PARAMETER_KEY_VPC_AZS) and has_vpc:
            raise ClusterPreconditionError("You can only specify '--vpc' or '--azs'")
        if _has(params, PARAMETER_KEY_VPC_AZS) and _comma_count(
            params, PARAMETER_KEY_VPC_AZS
        ) != 2:
            raise ClusterPreconditionError(
                "You must specify 2 comma-separated availability zones with the '--azs' flag"
            )
        if _has(params, PARAMETER_KEY_SECURITY_GROUP) and not has_vpc:
            raise ClusterPreconditionError(
                "You have selected a security group. Please specify a VPC with the '--vpc' flag"
            )
        if has_vpc and not _has(params, PARAMETER_KEY_SUBNET_IDS):
            raise ClusterPreconditionError(
                "You have selected a VPC. Please specify 2 comma-separated subnets "
                "with the '--subnets' flag"
            )
        if _has(params, PARAMETER_KEY_SUBNET_IDS) and not has_vpc:
            raise ClusterPreconditionError(
                "You have selected subnets. Please specify a VPC with the '--vpc' flag"
            )

    async def _resolve_image_id(self) -> str:
        region = self.config.region
        if not region:
            raise ClusterPreconditionError(
                "Please specify '--image-id' or configure a region with the '--region' flag"
            )
        with remote_call("ResolveImageId", region):
            image_id = await self._images.get(region)
        logger.debug("Resolved default image %s for region %s", image_id, region)
        return image_id

    # ------------------------------------------------------------------
    # down
    # ------------------------------------------------------------------

    async def down(self, options: DownOptions) -> None:
        """Delete the cluster's stack, wait for it, then delete the ECS cluster.

        The ECS cluster is deleted last, after the stack has released its
        container instances.
        """
        if not options.force:
            raise ClusterPreconditionError(
                "Aborted cluster deletion. To delete your cluster, re-run this "
                "command and specify the '--force' flag"
            )
        cluster = self._require_cluster()
        await self._require_active_cluster(cluster)
        stack_name = await self._require_stack(cluster)

        await self._stacks.delete_stack(stack_name)
        logger.info("Waiting for your cluster resources to be deleted...")
        await self._stacks.wait_until_delete_complete(stack_name)

        with remote_call("DeleteCluster", cluster):
            await self._clusters.delete_cluster(cluster)

    # ------------------------------------------------------------------
    # scale
    # ------------------------------------------------------------------

    async def scale(self, options: ScaleOptions) -> None:
        """Change the number of container instances via a stack update.

        Only AsgMaxSize is overridden; every other stack parameter keeps its
        current value.
        """
        if not options.capability_iam:
            raise ClusterPreconditionError(
                "Please acknowledge that this command may create IAM resources "
                "with the '--capability-iam' flag"
            )
        if not options.size:
            raise ClusterPreconditionError("Missing required flag '--size'")
        size = parse_cluster_size(options.size)

        cluster = self._require_cluster()
        await self._require_active_cluster(cluster)
        stack_name = await self._require_stack(cluster)

        params = ParameterSet.new_for_update()
        params.add(PARAMETER_KEY_ASG_MAX_SIZE, str(size))

        await self._stacks.update_stack(stack_name, params)
        logger.info("Waiting for your cluster resources to be updated...")
        await self._stacks.wait_until_update_complete(stack_name)

    # ------------------------------------------------------------------
    # ps
    # ------------------------------------------------------------------

    async def ps(self) -> List[ContainerInfo]:
        """List the containers of every RUNNING and STOPPED task in the cluster.

        Tasks are joined with the EC2 instances that host them to show the
        instance's public IP in the port mappings.
        """
        cluster = self._require_cluster()
        await self._require_active_cluster(cluster)

        tasks: List[EcsTask] = []
        for status in (DESIRED_STATUS_RUNNING, DESIRED_STATUS_STOPPED):
            with remote_call("ListTasks", cluster):
                arns = await self._clusters.list_tasks(cluster, status)
            if arns:
                with remote_call("DescribeTasks", cluster):
                    tasks += await self._clusters.describe_tasks(cluster, arns)

        ip_by_container_instance = await self._public_ips(cluster, tasks)
        return [
            ContainerInfo.from_task(
                task,
                container,
                ip_by_container_instance.get(task.container_instance_arn or "") or "",
            )
            for task in tasks
            for container in task.containers
        ]

    async def _public_ips(
        self, cluster: str, tasks: List[EcsTask]
    ) -> Dict[str, Optional[str]]:
        """Map container instance ARN -> public IP of its EC2 instance."""
        container_instance_arns = sorted(
            {t.container_instance_arn for t in tasks if t.container_instance_arn}
        )
        if not container_instance_arns:
            return {}

        with remote_call("DescribeContainerInstances", cluster):
            ec2_ids = await self._clusters.get_ec2_instance_ids(
                cluster, container_instance_arns
            )
        with remote_call("DescribeInstances", cluster):
            public_ips = await self._instances.describe_instances(
                sorted(set(ec2_ids.values()))
            )
        return {arn: public_ips.get(ec2_id) for arn, ec2_id in ec2_ids.items()}

    # ------------------------------------------------------------------
    # shared guards
    # ------------------------------------------------------------------

    def _require_cluster(self) -> str:
        if not self.config.cluster:
            raise ClusterPreconditionError(
                "Please configure a cluster using the ECSSTACK_CLUSTER environment "
                "variable or the '--cluster' flag"
            )
        return self.config.cluster

    async def _require_active_cluster(self, cluster: str) -> None:
        with remote_call("DescribeClusters", cluster):
            active = await self._clusters.is_active_cluster(cluster)
        if not active:
            raise ClusterPreconditionError(
                f"Cluster '{cluster}' is not active. Ensure that it exists"
            )

    async def _require_stack(self, cluster: str) -> str:
        stack_name = self.config.stack_name
        if not await self._stack_exists(stack_name):
            raise ClusterPreconditionError(
                f"CloudFormation stack not found for cluster '{cluster}'"
            )
        return stack_name

    async def _stack_exists(self, stack_name: str) -> bool:
        try:
            await self._stacks.validate_stack_exists(stack_name)
        except RemoteCallError as exc:
            if is_stack_missing(exc):
                return False
            raise
        return True


