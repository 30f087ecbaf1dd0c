"""Shared pytest fixtures for ecsstack tests."""

import pytest

from ecsstack.deployment.cluster import ClusterOrchestrator
from ecsstack.deployment.stack_lifecycle import StackLifecycleController
from ecsstack.models.cluster_config import ClusterConfig
from ecsstack.tests.fakes import (
    CallLog,
    FakeClusterService,
    FakeImageResolver,
    FakeInstanceService,
    FakeStackService,
    RecordingSleep,
)

TEST_TEMPLATE = '{"Parameters": {}}'


@pytest.fixture
def call_log() -> CallLog:
    """Shared log of every remote call made by the fakes, in order."""
    return []


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def stack_service(call_log: CallLog) -> FakeStackService:
    return FakeStackService(call_log)


@pytest.fixture
def cluster_service(call_log: CallLog) -> FakeClusterService:
    return FakeClusterService(call_log)


@pytest.fixture
def instance_service(call_log: CallLog) -> FakeInstanceService:
    return FakeInstanceService(call_log)


@pytest.fixture
def image_resolver(call_log: CallLog) -> FakeImageResolver:
    return FakeImageResolver(call_log)


@pytest.fixture
def controller(
    stack_service: FakeStackService, sleep: RecordingSleep
) -> StackLifecycleController:
    """Lifecycle controller over the fake stack service with a no-op sleep."""
    return StackLifecycleController(stack_service, sleep=sleep)


@pytest.fixture
def cluster_config() -> ClusterConfig:
    return ClusterConfig(cluster="demo", region="us-west-2")


@pytest.fixture
def orchestrator(
    cluster_config: ClusterConfig,
    cluster_service: FakeClusterService,
    instance_service: FakeInstanceService,
    controller: StackLifecycleController,
    image_resolver: FakeImageResolver,
) -> ClusterOrchestrator:
    """Orchestrator for cluster 'demo' in us-west-2 wired to the fakes."""

    async def template_provider() -> str:
        return TEST_TEMPLATE

    return ClusterOrchestrator(
        config=cluster_config,
        cluster_service=cluster_service,
        instance_service=instance_service,
        stacks=controller,
        image_resolver=image_resolver,
        template_provider=template_provider,
    )
