"""
ecsstack/clients/__init__.py

Provides a convenient import interface for the remote service boundaries:

- cloudformation.py for stack operations
- ecs.py for cluster and task operations
- ec2.py for instance lookups
- ami.py for default machine image resolution
"""

from .ami import ImageResolver, SsmImageResolver, StaticImageResolver
from .cloudformation import AwsCliStackService, StackService
from .ec2 import AwsCliInstanceService, InstanceService
from .ecs import AwsCliClusterService, ClusterService

__all__ = [
    "ImageResolver",
    "SsmImageResolver",
    "StaticImageResolver",
    "StackService",
    "AwsCliStackService",
    "ClusterService",
    "AwsCliClusterService",
    "InstanceService",
    "AwsCliInstanceService",
]
