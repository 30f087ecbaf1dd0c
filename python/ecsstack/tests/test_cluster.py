"""Tests for ClusterOrchestrator: guards, call ordering and ps output."""

import pytest

from ecsstack.deployment.cluster import ClusterOrchestrator, parse_cluster_size
from ecsstack.errors import (
    ClusterPreconditionError,
    ImageResolutionError,
    ParameterValidationError,
    RemoteCallError,
    StackFailedError,
)
from ecsstack.models.cluster_commands import DownOptions, ScaleOptions, UpOptions
from ecsstack.models.cluster_config import ClusterConfig
from ecsstack.models.ecs import EcsContainer, EcsTask, NetworkBinding
from ecsstack.models.stack_params import KNOWN_PARAMETER_KEYS
from ecsstack.tests.fakes import make_event, make_page, stack_missing_error
from ecsstack.utils.aws_cli import AwsServiceError

STACK = "amazon-ecs-cli-setup-demo"


def _operations(log):
    return [entry[0] for entry in log]


def _up(**overrides) -> UpOptions:
    values = {"capability_iam": True, "keypair": "default", "image_id": "ami-12345"}
    values.update(overrides)
    return UpOptions(**values)


def _with_config(orchestrator: ClusterOrchestrator, **config) -> ClusterOrchestrator:
    orchestrator.config = ClusterConfig(**config)
    return orchestrator


class TestParseClusterSize:
    def test_positive_integer(self):
        assert parse_cluster_size("3") == 3

    def test_surrounding_whitespace(self):
        assert parse_cluster_size(" 7 ") == 7

    @pytest.mark.parametrize("size", ["0", "-1", "abc", "1.5", "", "\u00b2", "\u0663", "\uff13"])
    def test_rejected(self, size):
        with pytest.raises(ParameterValidationError) as exc_info:
            parse_cluster_size(size)
        assert exc_info.value.key == "AsgMaxSize"


class TestClusterUp:
    @pytest.mark.asyncio
    async def test_creates_cluster_then_stack(self, orchestrator, stack_service, call_log):
        stack_service.script(statuses=[stack_missing_error(), "CREATE_COMPLETE"])

        stack_id = await orchestrator.up(_up())

        assert stack_id == stack_service.stack_id
        assert _operations(call_log) == [
            "describe_stack_status",
            "create_cluster",
            "create_stack",
            "describe_stack_events",
            "describe_stack_status",
        ]
        assert call_log[1] == ("create_cluster", "demo")
        assert call_log[2] == ("create_stack", STACK)

        submitted = stack_service.submitted["create"]
        assert submitted.get("KeyName").value == "default"
        assert submitted.get("EcsCluster").value == "demo"
        assert submitted.get("EcsAmiId").value == "ami-12345"
        assert stack_service.templates == ['{"Parameters": {}}']

    @pytest.mark.asyncio
    async def test_flags_become_parameters(self, orchestrator, stack_service):
        stack_service.script(statuses=[stack_missing_error(), "CREATE_COMPLETE"])

        await orchestrator.up(
            _up(
                size="3",
                instance_type="t3.small",
                port="8080",
                cidr="10.0.0.0/8",
                azs="us-west-2a,us-west-2b",
                no_associate_public_ip_address=True,
            )
        )

        submitted = stack_service.submitted["create"]
        assert submitted.get("AsgMaxSize").value == "3"
        assert submitted.get("EcsInstanceType").value == "t3.small"
        assert submitted.get("EcsPort").value == "8080"
        assert submitted.get("SourceCidr").value == "10.0.0.0/8"
        assert submitted.get("VpcAvailabilityZones").value == "us-west-2a,us-west-2b"
        assert submitted.get("AssociatePublicIpAddress").value == "false"
        assert "VpcId" not in submitted

    @pytest.mark.asyncio
    async def test_resolves_image_for_region(self, orchestrator, stack_service, image_resolver, call_log):
        stack_service.script(statuses=[stack_missing_error(), "CREATE_COMPLETE"])

        await orchestrator.up(_up(image_id=None))

        assert ("resolve_image", "us-west-2") in call_log
        assert stack_service.submitted["create"].get("EcsAmiId").value == "ami-resolved"

    @pytest.mark.asyncio
    async def test_image_resolution_failure(self, orchestrator, stack_service, image_resolver, call_log):
        stack_service.script(statuses=[stack_missing_error()])
        image_resolver.error = ImageResolutionError("Could not find ami id for region 'us-west-2'")

        with pytest.raises(ImageResolutionError):
            await orchestrator.up(_up(image_id=None))

        assert "create_cluster" not in _operations(call_log)

    @pytest.mark.asyncio
    async def test_no_region_and_no_image(self, orchestrator, stack_service, call_log):
        _with_config(orchestrator, cluster="demo")
        stack_service.script(statuses=[stack_missing_error()])

        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.up(_up(image_id=None))

        assert "--region" in str(exc_info.value)
        assert "create_cluster" not in _operations(call_log)

    @pytest.mark.asyncio
    async def test_requires_iam_acknowledgement(self, orchestrator, call_log):
        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.up(_up(capability_iam=False))
        assert "--capability-iam" in str(exc_info.value)
        assert call_log == []

    @pytest.mark.asyncio
    async def test_requires_cluster_name(self, orchestrator, call_log):
        _with_config(orchestrator, cluster="", region="us-west-2")
        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.up(_up())
        assert "--cluster" in str(exc_info.value)
        assert call_log == []

    @pytest.mark.asyncio
    async def test_invalid_size(self, orchestrator, call_log):
        with pytest.raises(ParameterValidationError) as exc_info:
            await orchestrator.up(_up(size="zero"))
        assert exc_info.value.key == "AsgMaxSize"
        assert call_log == []

    @pytest.mark.asyncio
    async def test_requires_keypair(self, orchestrator, stack_service, call_log):
        stack_service.script(statuses=[stack_missing_error()])
        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.up(_up(keypair=None))
        assert "--keypair" in str(exc_info.value)
        assert _operations(call_log) == ["describe_stack_status"]

    @pytest.mark.asyncio
    async def test_existing_stack_reported_before_missing_keypair(
        self, orchestrator, stack_service, call_log
    ):
        stack_service.script(statuses=["CREATE_COMPLETE"])

        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.up(_up(keypair=None, vpc="vpc-1234abcd"))

        assert "already exists" in str(exc_info.value)
        assert _operations(call_log) == ["describe_stack_status"]

    @pytest.mark.parametrize(
        "flags, flag_named",
        [
            ({"vpc": "vpc-1234abcd", "azs": "a,b", "subnets": "s1,s2"}, "--azs"),
            ({"azs": "us-west-2a"}, "--azs"),
            ({"azs": "a,b,c"}, "--azs"),
            ({"security_group": "sg-1"}, "--vpc"),
            ({"vpc": "vpc-1234abcd"}, "--subnets"),
            ({"subnets": "subnet-1,subnet-2"}, "--vpc"),
        ],
    )
    @pytest.mark.asyncio
    async def test_network_flag_combinations(
        self, orchestrator, stack_service, call_log, flags, flag_named
    ):
        stack_service.script(statuses=[stack_missing_error()])
        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.up(_up(**flags))
        assert flag_named in str(exc_info.value)
        assert _operations(call_log) == ["describe_stack_status"]

    @pytest.mark.asyncio
    async def test_existing_vpc(self, orchestrator, stack_service):
        stack_service.script(statuses=[stack_missing_error(), "CREATE_COMPLETE"])
        await orchestrator.up(
            _up(vpc="vpc-1234abcd", subnets="subnet-1,subnet-2", security_group="sg-1")
        )
        submitted = stack_service.submitted["create"]
        assert submitted.get("VpcId").value == "vpc-1234abcd"
        assert submitted.get("SubnetIds").value == "subnet-1,subnet-2"
        assert submitted.get("SecurityGroup").value == "sg-1"

    @pytest.mark.asyncio
    async def test_size_submitted_normalized(self, orchestrator, stack_service):
        stack_service.script(statuses=[stack_missing_error(), "CREATE_COMPLETE"])
        await orchestrator.up(_up(size=" 03 "))
        assert stack_service.submitted["create"].get("AsgMaxSize").value == "3"

    @pytest.mark.asyncio
    async def test_non_ascii_digit_size(self, orchestrator, call_log):
        with pytest.raises(ParameterValidationError) as exc_info:
            await orchestrator.up(_up(size="\u00b2"))
        assert exc_info.value.key == "AsgMaxSize"
        assert call_log == []

    @pytest.mark.asyncio
    async def test_existing_stack_without_force(self, orchestrator, stack_service, call_log):
        stack_service.script(statuses=["CREATE_COMPLETE"])

        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.up(_up())

        assert "--force" in str(exc_info.value)
        assert _operations(call_log) == ["describe_stack_status"]

    @pytest.mark.asyncio
    async def test_force_replaces_existing_stack(self, orchestrator, stack_service, call_log):
        stack_service.script(
            statuses=["CREATE_COMPLETE", stack_missing_error(), "CREATE_COMPLETE"]
        )

        await orchestrator.up(_up(force=True))

        operations = _operations(call_log)
        assert operations.index("create_cluster") < operations.index("delete_stack")
        assert operations.index("delete_stack") < operations.index("create_stack")

    @pytest.mark.asyncio
    async def test_stack_lookup_error_propagates(self, orchestrator, stack_service, call_log):
        stack_service.script(
            statuses=[AwsServiceError("AccessDenied", "denied", "describe-stacks")]
        )
        with pytest.raises(RemoteCallError):
            await orchestrator.up(_up())
        assert "create_cluster" not in _operations(call_log)

    @pytest.mark.asyncio
    async def test_create_cluster_failure(self, orchestrator, stack_service, cluster_service, call_log):
        stack_service.script(statuses=[stack_missing_error()])
        cluster_service.errors["create_cluster"] = AwsServiceError(
            "ClientException", "boom", "create-cluster"
        )

        with pytest.raises(RemoteCallError) as exc_info:
            await orchestrator.up(_up())

        assert exc_info.value.operation == "CreateCluster"
        assert "create_stack" not in _operations(call_log)

    @pytest.mark.asyncio
    async def test_stack_failure_leaves_cluster(self, orchestrator, stack_service, call_log):
        stack_service.script(
            statuses=[stack_missing_error()],
            events=[make_page(make_event("CREATE_FAILED", "Instance limit"))],
        )

        with pytest.raises(StackFailedError):
            await orchestrator.up(_up())

        operations = _operations(call_log)
        assert "create_cluster" in operations
        assert "delete_cluster" not in operations
        assert "delete_stack" not in operations


class TestClusterDown:
    @pytest.mark.asyncio
    async def test_requires_force(self, orchestrator, call_log):
        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.down(DownOptions(force=False))
        assert "--force" in str(exc_info.value)
        assert call_log == []

    @pytest.mark.asyncio
    async def test_deletes_stack_then_cluster(self, orchestrator, stack_service, call_log):
        stack_service.script(statuses=["CREATE_COMPLETE", stack_missing_error()])

        await orchestrator.down(DownOptions(force=True))

        operations = _operations(call_log)
        assert operations[:3] == ["is_active_cluster", "describe_stack_status", "delete_stack"]
        assert operations[-1] == "delete_cluster"
        assert call_log[-1] == ("delete_cluster", "demo")

    @pytest.mark.asyncio
    async def test_inactive_cluster(self, orchestrator, cluster_service, call_log):
        cluster_service.active = False
        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.down(DownOptions(force=True))
        assert "demo" in str(exc_info.value)
        assert _operations(call_log) == ["is_active_cluster"]

    @pytest.mark.asyncio
    async def test_missing_stack(self, orchestrator, stack_service, call_log):
        stack_service.script(statuses=[stack_missing_error()])
        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.down(DownOptions(force=True))
        assert str(exc_info.value) == "CloudFormation stack not found for cluster 'demo'"
        assert "delete_stack" not in _operations(call_log)

    @pytest.mark.asyncio
    async def test_delete_failure_keeps_cluster(self, orchestrator, stack_service, call_log):
        stack_service.script(statuses=["CREATE_COMPLETE", "DELETE_FAILED"])

        with pytest.raises(StackFailedError):
            await orchestrator.down(DownOptions(force=True))

        assert "delete_cluster" not in _operations(call_log)


class TestClusterScale:
    @pytest.mark.asyncio
    async def test_updates_only_size(self, orchestrator, stack_service, call_log):
        stack_service.script(statuses=["CREATE_COMPLETE", "UPDATE_COMPLETE"])

        await orchestrator.scale(ScaleOptions(capability_iam=True, size="4"))

        submitted = stack_service.submitted["update"]
        assert len(submitted) == len(KNOWN_PARAMETER_KEYS)
        assert submitted.get("AsgMaxSize").value == "4"
        assert not submitted.get("AsgMaxSize").use_previous_value
        assert all(
            p.use_previous_value for p in submitted if p.key != "AsgMaxSize"
        )
        assert "update_stack" in _operations(call_log)

    @pytest.mark.asyncio
    async def test_requires_iam_acknowledgement(self, orchestrator, call_log):
        with pytest.raises(ClusterPreconditionError):
            await orchestrator.scale(ScaleOptions(size="2"))
        assert call_log == []

    @pytest.mark.asyncio
    async def test_requires_size(self, orchestrator, call_log):
        with pytest.raises(ClusterPreconditionError) as exc_info:
            await orchestrator.scale(ScaleOptions(capability_iam=True))
        assert str(exc_info.value) == "Missing required flag '--size'"
        assert call_log == []

    @pytest.mark.asyncio
    async def test_invalid_size(self, orchestrator, call_log):
        with pytest.raises(ParameterValidationError) as exc_info:
            await orchestrator.scale(ScaleOptions(capability_iam=True, size="-2"))
        assert exc_info.value.key == "AsgMaxSize"
        assert call_log == []

    @pytest.mark.asyncio
    async def test_superscript_size(self, orchestrator, call_log):
        with pytest.raises(ParameterValidationError) as exc_info:
            await orchestrator.scale(ScaleOptions(capability_iam=True, size="\u00b2"))
        assert exc_info.value.key == "AsgMaxSize"
        assert call_log == []

    @pytest.mark.asyncio
    async def test_missing_stack(self, orchestrator, stack_service, call_log):
        stack_service.script(statuses=[stack_missing_error()])
        with pytest.raises(ClusterPreconditionError):
            await orchestrator.scale(ScaleOptions(capability_iam=True, size="2"))
        assert "update_stack" not in _operations(call_log)

    @pytest.mark.asyncio
    async def test_update_rollback(self, orchestrator, stack_service):
        stack_service.script(statuses=["CREATE_COMPLETE", "UPDATE_ROLLBACK_COMPLETE"])
        with pytest.raises(StackFailedError):
            await orchestrator.scale(ScaleOptions(capability_iam=True, size="2"))


def _task(arn_suffix, container_instance_arn=None, **container):
    return EcsTask(
        task_arn=f"arn:aws:ecs:us-west-2:123456789012:task/demo/{arn_suffix}",
        task_definition_arn="arn:aws:ecs:us-west-2:123456789012:task-definition/web:3",
        container_instance_arn=container_instance_arn,
        containers=[EcsContainer(**container)],
    )


class TestClusterPs:
    @pytest.mark.asyncio
    async def test_joins_tasks_with_public_ips(self, orchestrator, cluster_service, instance_service, call_log):
        ci_arn = "arn:aws:ecs:us-west-2:123456789012:container-instance/demo/ci1"
        cluster_service.add_task(
            _task(
                "t1",
                ci_arn,
                name="web",
                last_status="RUNNING",
                health_status="HEALTHY",
                network_bindings=[
                    NetworkBinding(bind_ip="0.0.0.0", container_port=80, host_port=8080)
                ],
            ),
            "RUNNING",
        )
        cluster_service.add_task(
            _task("t2", name="job", last_status="STOPPED", exit_code=1, reason="OOM"),
            "STOPPED",
        )
        cluster_service.ec2_ids[ci_arn] = "i-0abc"
        instance_service.public_ips["i-0abc"] = "54.1.2.3"

        containers = await orchestrator.ps()

        assert [c.as_row() for c in containers] == [
            ["t1/web", "RUNNING", "54.1.2.3:8080->80/tcp", "web:3", "HEALTHY"],
            ["t2/job", "STOPPED ExitCode: 1 Reason: OOM", "", "web:3", ""],
        ]
        assert ("describe_instances", ("i-0abc",)) in call_log

    @pytest.mark.asyncio
    async def test_no_container_instances_skips_ec2(self, orchestrator, cluster_service, call_log):
        cluster_service.add_task(
            _task(
                "t1",
                name="web",
                last_status="RUNNING",
                network_bindings=[
                    NetworkBinding(bind_ip="10.0.0.5", container_port=80, host_port=80, protocol="udp")
                ],
            ),
            "RUNNING",
        )

        containers = await orchestrator.ps()

        assert containers[0].ports == "10.0.0.5:80->80/udp"
        operations = _operations(call_log)
        assert "get_ec2_instance_ids" not in operations
        assert "describe_instances" not in operations

    @pytest.mark.asyncio
    async def test_empty_cluster(self, orchestrator, call_log):
        assert await orchestrator.ps() == []
        assert _operations(call_log) == ["is_active_cluster", "list_tasks", "list_tasks"]

    @pytest.mark.asyncio
    async def test_inactive_cluster(self, orchestrator, cluster_service):
        cluster_service.active = False
        with pytest.raises(ClusterPreconditionError):
            await orchestrator.ps()

    @pytest.mark.asyncio
    async def test_list_tasks_failure_wrapped(self, orchestrator, cluster_service):
        cluster_service.errors["list_tasks"] = AwsServiceError(
            "ClusterNotFoundException", "Cluster not found.", "list-tasks"
        )
        with pytest.raises(RemoteCallError) as exc_info:
            await orchestrator.ps()
        assert exc_info.value.operation == "ListTasks"
        assert exc_info.value.resource == "demo"
