"""
ecsstack/errors.py

Exception hierarchy shared by the parameter set, the stack lifecycle controller
and the cluster orchestrator. Everything derives from EcsStackError so the CLI
can report any failure uniformly, while tests and callers can still tell a
rejected operation (precondition, validation, remote call) apart from an
accepted one that failed or did not finish in time.
"""

from __future__ import annotations

from typing import Optional


class EcsStackError(Exception):
    """Base class for every error raised by ecsstack."""


class ClusterPreconditionError(EcsStackError):
    """A guard failed before (or between) state-changing calls.

    The message always names the missing flag or resource.
    """


class ParameterValidationError(EcsStackError):
    """A stack parameter set is malformed or incomplete.

    Attributes:
        key (str): The offending parameter key.
    """

    def __init__(self, key: str, message: str) -> None:
        super().__init__(message)
        self.key = key


class ParameterNotFoundError(ParameterValidationError):
    """The key was never added to the parameter set."""

    def __init__(self, key: str) -> None:
        super().__init__(key, f"Parameter not found: '{key}'")


class InvalidKeyError(ParameterValidationError):
    """A parameter key was empty or blank."""

    def __init__(self, key: str) -> None:
        super().__init__(key, f"Invalid parameter key: {key!r}")


class RemoteCallError(EcsStackError):
    """A call to a remote service failed.

    Attributes:
        operation (str): The remote operation, e.g. "DescribeStacks".
        resource (str): The stack or cluster the call was about.
        cause (Exception): The original error, also chained as __cause__.
    """

    def __init__(self, operation: str, resource: str, cause: Exception) -> None:
        super().__init__(f"{operation} failed for '{resource}': {cause}")
        self.operation = operation
        self.resource = resource
        self.cause = cause


class StackOperationError(EcsStackError):
    """Base class for errors produced while waiting on a stack operation."""

    def __init__(self, stack_name: str, message: str) -> None:
        super().__init__(message)
        self.stack_name = stack_name


class StackFailedError(StackOperationError):
    """The stack service reported a terminal failure.

    Attributes:
        status (Optional[str]): The aggregate stack status, when the failure was
            detected from it.
        reason (Optional[str]): The failing event's reason, when the failure was
            detected from a stack event.
    """

    def __init__(
        self,
        stack_name: str,
        message: str,
        status: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(stack_name, message)
        self.status = status
        self.reason = reason


class StackTimeoutError(StackOperationError):
    """The retry budget ran out before the stack reached a terminal state."""

    def __init__(self, stack_name: str, success_status: str, retries: int) -> None:
        super().__init__(
            stack_name,
            f"Timeout waiting for stack '{stack_name}' to reach '{success_status}' "
            f"after {retries} attempts",
        )
        self.success_status = success_status
        self.retries = retries


class ImageResolutionError(EcsStackError):
    """No default machine image could be resolved for a region."""
