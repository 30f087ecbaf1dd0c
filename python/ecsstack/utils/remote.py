"""
ecsstack/utils/remote.py

Context manager that tags collaborator failures with the remote operation and
resource they concern. The original exception stays available via `.cause` and
`__cause__`.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from ecsstack.errors import EcsStackError, RemoteCallError
from ecsstack.utils.aws_cli import AwsServiceError


@contextmanager
def remote_call(operation: str, resource: str) -> Iterator[None]:
    """Wrap failures raised inside the block in RemoteCallError.

    ecsstack's own errors (e.g. ImageResolutionError) pass through untouched.

    Args:
        operation: The remote operation, e.g. "DescribeStacks".
        resource: The stack or cluster name.
    """
    try:
        yield
    except EcsStackError:
        raise
    except (AwsServiceError, OSError, ValueError) as exc:
        raise RemoteCallError(operation, resource, exc) from exc


def is_stack_missing(error: BaseException) -> bool:
    """True if `error` reports that a stack does not exist.

    CloudFormation answers describe calls on an unknown or deleted stack with a
    ValidationError whose message contains "does not exist".
    """
    cause = error.cause if isinstance(error, RemoteCallError) else error
    return (
        isinstance(cause, AwsServiceError)
        and cause.code == "ValidationError"
        and "does not exist" in cause.message
    )
