"""
ecsstack/deployment/stack_lifecycle.py

Drives CloudFormation stack create/update/delete to completion.

The controller issues the request, then polls until the stack reaches its
success status, reports a terminal failure, or the per-operation retry budget
runs out. A single routine, `_wait_until_complete`, implements the polling for
all three operations; each operation only supplies its success status, its set
of failure statuses and its event-level failure predicate.

Each iteration:
  1) Fetch the most recent stack event. If it shows a resource failure for this
     operation, fail at once with the event's reason.
  2) Fetch the stack status. Success status => done.
  3) Failure status => log the first failing event from the full history
     (best effort), then fail naming the status.
  4) Otherwise sleep DELAY_WAIT and try again.

Remote-call errors are never retried; they abort the wait.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, FrozenSet, List, Optional

from ecsstack.clients.cloudformation import StackService
from ecsstack.errors import (
    RemoteCallError,
    StackFailedError,
    StackOperationError,
    StackTimeoutError,
)
from ecsstack.models.cloudformation import (
    RESOURCE_STATUS_CREATE_FAILED,
    RESOURCE_STATUS_DELETE_FAILED,
    RESOURCE_STATUS_UPDATE_FAILED,
    STACK_STATUS_CREATE_COMPLETE,
    STACK_STATUS_CREATE_FAILED,
    STACK_STATUS_DELETE_COMPLETE,
    STACK_STATUS_DELETE_FAILED,
    STACK_STATUS_ROLLBACK_COMPLETE,
    STACK_STATUS_ROLLBACK_IN_PROGRESS,
    STACK_STATUS_UPDATE_COMPLETE,
    STACK_STATUS_UPDATE_ROLLBACK_COMPLETE,
    STACK_STATUS_UPDATE_ROLLBACK_FAILED,
    StackEvent,
)
from ecsstack.models.stack_params import ParameterSet
from ecsstack.utils.remote import is_stack_missing, remote_call

logger = logging.getLogger(__name__)

# Retry budgets and delay follow the CloudFormation waiter definitions shipped
# with the AWS SDKs (stack_create_complete, stack_delete_complete,
# stack_update_complete).
MAX_RETRIES_CREATE = 50
MAX_RETRIES_DELETE = 25
MAX_RETRIES_UPDATE = 5
DELAY_WAIT = 30.0

CREATE_STACK_FAILURES: FrozenSet[str] = frozenset(
    {
        STACK_STATUS_CREATE_FAILED,
        STACK_STATUS_ROLLBACK_IN_PROGRESS,
        STACK_STATUS_ROLLBACK_COMPLETE,
        STACK_STATUS_UPDATE_ROLLBACK_FAILED,
    }
)
DELETE_STACK_FAILURES: FrozenSet[str] = frozenset({STACK_STATUS_DELETE_FAILED})
UPDATE_STACK_FAILURES: FrozenSet[str] = frozenset(
    {STACK_STATUS_UPDATE_ROLLBACK_COMPLETE, STACK_STATUS_UPDATE_ROLLBACK_FAILED}
)

Sleeper = Callable[[float], Awaitable[None]]
EventFailurePredicate = Callable[[StackEvent], bool]


def _failure_in_event(event: StackEvent, failed_status: str, action: str) -> bool:
    logger.debug(
        "Parsing event: status=%s resource=%s",
        event.resource_status,
        event.physical_resource_id,
    )
    if event.resource_status != failed_status:
        return False
    logger.error(
        "Error %s cloudformation stack for cluster: status=%s resource=%s reason=%s",
        action,
        event.resource_status,
        event.physical_resource_id,
        event.resource_status_reason,
    )
    return True


def failure_in_create_event(event: StackEvent) -> bool:
    """True if the event reports a resource that failed to create."""
    return _failure_in_event(event, RESOURCE_STATUS_CREATE_FAILED, "creating")


def failure_in_update_event(event: StackEvent) -> bool:
    """True if the event reports a resource that failed to update."""
    return _failure_in_event(event, RESOURCE_STATUS_UPDATE_FAILED, "updating")


def failure_in_delete_event(event: StackEvent) -> bool:
    """True if the event reports a resource that failed to delete."""
    return _failure_in_event(event, RESOURCE_STATUS_DELETE_FAILED, "deleting")


class StackLifecycleController:
    """Creates, updates and deletes stacks and waits for them to settle.

    Args:
        stack_service: The CloudFormation boundary.
        sleep: Awaitable delay between polls; tests pass a no-op.
    """

    def __init__(
        self, stack_service: StackService, sleep: Sleeper = asyncio.sleep
    ) -> None:
        self._stacks = stack_service
        self._sleep = sleep

    async def create_stack(
        self, template: str, stack_name: str, params: ParameterSet
    ) -> str:
        """Create the stack from `template` and return its stack id."""
        with remote_call("CreateStack", stack_name):
            return await self._stacks.create_stack(stack_name, template, params)

    async def update_stack(self, stack_name: str, params: ParameterSet) -> str:
        """Update the stack, keeping its previous template, and return its stack id."""
        with remote_call("UpdateStack", stack_name):
            return await self._stacks.update_stack(stack_name, params)

    async def delete_stack(self, stack_name: str) -> None:
        """Request deletion of the stack."""
        with remote_call("DeleteStack", stack_name):
            await self._stacks.delete_stack(stack_name)

    async def validate_stack_exists(self, stack_name: str) -> None:
        """Raise RemoteCallError if the stack cannot be described."""
        await self._describe_stack(stack_name)

    async def wait_until_create_complete(self, stack_name: str) -> None:
        """Wait for CREATE_COMPLETE.

        Raises:
            StackFailedError: A resource failed or the stack rolled back.
            StackTimeoutError: MAX_RETRIES_CREATE polls without a terminal state.
            RemoteCallError: A describe call failed.
        """
        await self._wait_until_complete(
            stack_name,
            failure_in_create_event,
            STACK_STATUS_CREATE_COMPLETE,
            CREATE_STACK_FAILURES,
            MAX_RETRIES_CREATE,
        )

    async def wait_until_update_complete(self, stack_name: str) -> None:
        """Wait for UPDATE_COMPLETE; see wait_until_create_complete for errors."""
        await self._wait_until_complete(
            stack_name,
            failure_in_update_event,
            STACK_STATUS_UPDATE_COMPLETE,
            UPDATE_STACK_FAILURES,
            MAX_RETRIES_UPDATE,
        )

    async def wait_until_delete_complete(self, stack_name: str) -> None:
        """Wait for the stack to be deleted.

        The stack vanishing (describe calls answering "does not exist") counts as
        completion.
        """
        try:
            await self._wait_until_complete(
                stack_name,
                failure_in_delete_event,
                STACK_STATUS_DELETE_COMPLETE,
                DELETE_STACK_FAILURES,
                MAX_RETRIES_DELETE,
            )
        except RemoteCallError as exc:
            if is_stack_missing(exc):
                logger.debug("Stack %s no longer exists", stack_name)
                return
            raise

    async def _wait_until_complete(
        self,
        stack_name: str,
        has_failed: EventFailurePredicate,
        success_status: str,
        failure_statuses: FrozenSet[str],
        max_retries: int,
    ) -> None:
        for retry_count in range(max_retries):
            event = await self._latest_stack_event(stack_name)
            if has_failed(event):
                reason = event.resource_status_reason or ""
                raise StackFailedError(
                    stack_name,
                    f"Cloudformation failure waiting for '{success_status}'. "
                    f"Reason: '{reason}'",
                    reason=reason,
                )

            status = await self._describe_stack(stack_name)
            if status == success_status:
                return

            if status in failure_statuses:
                logger.debug("Stack operation failed. Getting first failed event")
                await self._log_first_failure_event(stack_name, failure_statuses)
                raise StackFailedError(
                    stack_name,
                    f"Cloudformation failure waiting for '{success_status}'. "
                    f"State is '{status}'",
                    status=status,
                )

            level = logging.INFO if retry_count % 2 == 0 else logging.DEBUG
            logger.log(level, "Cloudformation stack status: %s", status)
            await self._sleep(DELAY_WAIT)

        raise StackTimeoutError(stack_name, success_status, max_retries)

    async def _latest_stack_event(self, stack_name: str) -> StackEvent:
        with remote_call("DescribeStackEvents", stack_name):
            page = await self._stacks.describe_stack_events(stack_name)
        event = page.latest()
        if event is None:
            raise StackOperationError(
                stack_name, f"Could not describe stack events for '{stack_name}'"
            )
        return event

    async def _describe_stack(self, stack_name: str) -> str:
        with remote_call("DescribeStacks", stack_name):
            return await self._stacks.describe_stack_status(stack_name)

    async def _all_stack_events(self, stack_name: str) -> List[StackEvent]:
        """Every event of the stack, newest first, across all pages."""
        events: List[StackEvent] = []
        next_token: Optional[str] = None
        while True:
            with remote_call("DescribeStackEvents", stack_name):
                page = await self._stacks.describe_stack_events(stack_name, next_token)
            events += page.events
            next_token = page.next_token
            if not next_token:
                return events

    async def first_stack_event_with_failure(
        self, stack_name: str, failure_statuses: FrozenSet[str]
    ) -> StackEvent:
        """Return the chronologically first event whose status is a failure.

        Raises:
            StackOperationError: No failing event exists in the history.
            RemoteCallError: A describe call failed.
        """
        events = await self._all_stack_events(stack_name)
        for event in reversed(events):
            logger.debug(
                "Parsing event: status=%s reason=%s id=%s resourceType=%s",
                event.resource_status,
                event.resource_status_reason,
                event.event_id,
                event.resource_type,
            )
            if event.resource_status in failure_statuses:
                return event
        raise StackOperationError(
            stack_name, f"Unable to find failure event in stack '{stack_name}'"
        )

    async def _log_first_failure_event(
        self, stack_name: str, failure_statuses: FrozenSet[str]
    ) -> None:
        try:
            event = await self.first_stack_event_with_failure(
                stack_name, failure_statuses
            )
        except (RemoteCallError, StackOperationError) as exc:
            logger.debug("Could not locate the first failure event: %s", exc)
            return
        logger.error(
            "Failure event: resourceType=%s reason=%s",
            event.resource_type,
            event.resource_status_reason,
        )
