#!/usr/bin/env python3
"""
ecsstack/cli/cluster.py

CLI offering four subcommands for an ECS cluster and its CloudFormation stack:

  1) "up": Create the ECS cluster and the stack of container instances.
  2) "down": Delete the stack, then the ECS cluster.
  3) "scale": Change the number of container instances.
  4) "ps": List the containers of running and stopped tasks.

The cluster, region and profile default to ECSSTACK_CLUSTER, ECSSTACK_REGION and
ECSSTACK_PROFILE; the global flags override them.
"""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Sequence

from pydantic import ValidationError

from ecsstack.clients.ami import SsmImageResolver
from ecsstack.clients.cloudformation import AwsCliStackService
from ecsstack.clients.ec2 import AwsCliInstanceService
from ecsstack.clients.ecs import AwsCliClusterService
from ecsstack.deployment.cluster import ClusterOrchestrator
from ecsstack.deployment.stack_lifecycle import StackLifecycleController
from ecsstack.errors import EcsStackError
from ecsstack.models.cluster_commands import DownOptions, ScaleOptions, UpOptions
from ecsstack.models.cluster_config import ClusterConfig, ClusterSettings
from ecsstack.models.ecs import CONTAINER_INFO_COLUMNS, ContainerInfo

logger = logging.getLogger(__name__)


def build_orchestrator(
    config: ClusterConfig, instance_type: Optional[str] = None
) -> ClusterOrchestrator:
    """Wire the AWS CLI backed services into a ClusterOrchestrator."""
    stack_service = AwsCliStackService(region=config.region, profile=config.profile)
    return ClusterOrchestrator(
        config=config,
        cluster_service=AwsCliClusterService(
            region=config.region, profile=config.profile
        ),
        instance_service=AwsCliInstanceService(
            region=config.region, profile=config.profile
        ),
        stacks=StackLifecycleController(stack_service),
        image_resolver=SsmImageResolver(
            instance_type=instance_type, profile=config.profile
        ),
    )


def format_container_table(containers: Sequence[ContainerInfo]) -> str:
    """Render `ps` rows as a left-aligned table with a header line."""
    rows: List[List[str]] = [list(CONTAINER_INFO_COLUMNS)]
    rows += [c.as_row() for c in containers]
    widths = [max(len(row[i]) for row in rows) for i in range(len(CONTAINER_INFO_COLUMNS))]
    return "\n".join(
        "  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
        for row in rows
    )


def confirm_deletion(cluster: str) -> bool:
    """Ask on stdin before deleting; only 'y' or 'yes' confirms.

    A closed or empty stdin counts as a refusal.
    """
    try:
        answer = input(
            f"Are you sure you want to delete your cluster '{cluster}'? [y/N]\n"
        )
    except EOFError:
        logger.debug("No answer on stdin; not deleting cluster %s", cluster)
        return False
    return answer.strip().lower() in ("y", "yes")


async def _run_up(args: argparse.Namespace, config: ClusterConfig) -> None:
    """Handle the 'up' subcommand."""
    options = UpOptions(
        capability_iam=args.capability_iam,
        force=args.force,
        keypair=args.keypair,
        image_id=args.image_id,
        size=args.size,
        azs=args.azs,
        security_group=args.security_group,
        cidr=args.cidr,
        port=args.port,
        subnets=args.subnets,
        vpc=args.vpc,
        instance_type=args.instance_type,
        no_associate_public_ip_address=args.no_associate_public_ip_address,
    )
    orchestrator = build_orchestrator(config, instance_type=args.instance_type)
    stack_id = await orchestrator.up(options)
    logger.info("Cluster creation succeeded. Stack: %s", stack_id)


async def _run_down(args: argparse.Namespace, config: ClusterConfig) -> None:
    """Handle the 'down' subcommand; `args.force` is already confirmed by main."""
    await build_orchestrator(config).down(DownOptions(force=args.force))
    logger.info("Cluster deletion succeeded")


async def _run_scale(args: argparse.Namespace, config: ClusterConfig) -> None:
    """Handle the 'scale' subcommand."""
    options = ScaleOptions(capability_iam=args.capability_iam, size=args.size)
    await build_orchestrator(config).scale(options)
    logger.info("Cluster scaling succeeded")


async def _run_ps(args: argparse.Namespace, config: ClusterConfig) -> None:
    """Handle the 'ps' subcommand."""
    containers = await build_orchestrator(config).ps()
    print(format_container_table(containers))


def build_parser() -> argparse.ArgumentParser:
    """Build the `ecsstack` argument parser."""
    parser = argparse.ArgumentParser(
        prog="ecsstack",
        description="Create, scale and delete ECS clusters backed by CloudFormation.",
    )
    parser.add_argument(
        "--cluster",
        default=None,
        help="ECS cluster name (default: $ECSSTACK_CLUSTER).",
    )
    parser.add_argument(
        "--region",
        default=None,
        help="AWS region (default: $ECSSTACK_REGION or the AWS CLI default).",
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Named AWS CLI profile (default: $ECSSTACK_PROFILE).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # "up" subcommand
    up_parser = subparsers.add_parser(
        "up", help="Create the ECS cluster and the CloudFormation stack."
    )
    up_parser.add_argument(
        "--capability-iam",
        action="store_true",
        default=False,
        help="Acknowledge that this command may create IAM resources.",
    )
    up_parser.add_argument(
        "--keypair",
        default=None,
        help="EC2 key pair name for SSH access to the container instances.",
    )
    up_parser.add_argument(
        "--image-id",
        default=None,
        help="AMI id for the container instances (default: recommended ECS-optimized AMI).",
    )
    up_parser.add_argument(
        "--size",
        default=None,
        help="Number of container instances to launch.",
    )
    up_parser.add_argument(
        "--azs",
        default=None,
        help="Two comma-separated availability zones for a new VPC.",
    )
    up_parser.add_argument(
        "--security-group",
        default=None,
        help="Existing security group id (requires --vpc).",
    )
    up_parser.add_argument(
        "--cidr",
        default=None,
        help="CIDR/IP range allowed to reach --port (default: 0.0.0.0/0).",
    )
    up_parser.add_argument(
        "--port",
        default=None,
        help="Port opened on the security group (default: 80).",
    )
    up_parser.add_argument(
        "--subnets",
        default=None,
        help="Two comma-separated subnet ids (requires --vpc).",
    )
    up_parser.add_argument(
        "--vpc",
        default=None,
        help="Existing VPC id (requires --subnets).",
    )
    up_parser.add_argument(
        "--instance-type",
        default=None,
        help="EC2 instance type (default: t2.micro).",
    )
    up_parser.add_argument(
        "--no-associate-public-ip-address",
        action="store_true",
        default=False,
        help="Do not assign public IP addresses to the container instances.",
    )
    up_parser.add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Replace an existing CloudFormation stack for the cluster.",
    )
    up_parser.set_defaults(func=_run_up)

    # "down" subcommand
    down_parser = subparsers.add_parser(
        "down", help="Delete the CloudFormation stack and the ECS cluster."
    )
    down_parser.add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Delete without asking for confirmation.",
    )
    down_parser.set_defaults(func=_run_down)

    # "scale" subcommand
    scale_parser = subparsers.add_parser(
        "scale", help="Change the number of container instances."
    )
    scale_parser.add_argument(
        "--capability-iam",
        action="store_true",
        default=False,
        help="Acknowledge that this command may create IAM resources.",
    )
    scale_parser.add_argument(
        "--size",
        default=None,
        help="New number of container instances.",
    )
    scale_parser.set_defaults(func=_run_scale)

    # "ps" subcommand
    ps_parser = subparsers.add_parser(
        "ps", help="List containers of running and stopped tasks."
    )
    ps_parser.set_defaults(func=_run_ps)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )

    try:
        config = ClusterSettings().to_cluster_config(
            cluster=args.cluster, region=args.region, profile=args.profile
        )
        if args.command == "down" and not args.force:
            args.force = confirm_deletion(config.cluster)
        asyncio.run(args.func(args, config))
    except (EcsStackError, ValidationError) as exc:
        print(f"Error executing '{args.command}': {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
