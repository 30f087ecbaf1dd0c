"""
ecsstack/clients/cloudformation.py

Defines the stack-service boundary used by the stack lifecycle controller:
  - StackService: abstract request/response operations on a CloudFormation stack.
  - AwsCliStackService: implementation on top of the `aws cloudformation` CLI.

Errors from the CLI surface as AwsServiceError; the controller wraps them with
operation and stack context.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ecsstack.models.cloudformation import CAPABILITY_IAM, StackEventsPage
from ecsstack.models.stack_params import ParameterSet
from ecsstack.models.validator import validate_response
from ecsstack.utils.aws_cli import AwsRunner, AwsServiceError, run_aws

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_PAGE_SIZE = 100


class StackService(ABC):
    """Abstract CloudFormation operations consumed by the lifecycle controller."""

    @abstractmethod
    async def create_stack(
        self, stack_name: str, template: str, parameters: ParameterSet
    ) -> str:
        """Create a stack with the IAM capability and return its stack id."""

    @abstractmethod
    async def update_stack(self, stack_name: str, parameters: ParameterSet) -> str:
        """Update a stack with its previous template and return its stack id."""

    @abstractmethod
    async def delete_stack(self, stack_name: str) -> None:
        """Request deletion of a stack."""

    @abstractmethod
    async def describe_stack_status(self, stack_name: str) -> str:
        """Return the aggregate status of a stack, e.g. "CREATE_IN_PROGRESS"."""

    @abstractmethod
    async def describe_stack_events(
        self, stack_name: str, next_token: Optional[str] = None
    ) -> StackEventsPage:
        """Return one page of stack events, newest first.

        Args:
            stack_name: The stack to describe.
            next_token: Token of the page to fetch; None for the newest page.
        """


class AwsCliStackService(StackService):
    """StackService backed by `aws cloudformation`."""

    def __init__(
        self,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        runner: AwsRunner = run_aws,
        events_page_size: int = DEFAULT_EVENTS_PAGE_SIZE,
    ) -> None:
        """
        Args:
            region: Region for every call.
            profile: Named AWS CLI profile, if any.
            runner: The CLI runner; replaceable in tests.
            events_page_size: --max-items used for DescribeStackEvents pages.
        """
        self.region = region
        self.profile = profile
        self._runner = runner
        self._events_page_size = events_page_size

    async def _call(self, operation: str, *args: str) -> dict:
        return await self._runner(
            "cloudformation",
            operation,
            list(args),
            region=self.region,
            profile=self.profile,
        )

    async def create_stack(
        self, stack_name: str, template: str, parameters: ParameterSet
    ) -> str:
        response = await self._call(
            "create-stack",
            "--stack-name",
            stack_name,
            "--template-body",
            template,
            "--capabilities",
            CAPABILITY_IAM,
            "--parameters",
            json.dumps(parameters.to_request()),
        )
        stack_id = validate_response(response, "StackId", str, "create-stack")
        logger.debug("Cloudformation create stack call succeeded, stackId=%s", stack_id)
        return stack_id

    async def update_stack(self, stack_name: str, parameters: ParameterSet) -> str:
        response = await self._call(
            "update-stack",
            "--stack-name",
            stack_name,
            "--use-previous-template",
            "--capabilities",
            CAPABILITY_IAM,
            "--parameters",
            json.dumps(parameters.to_request()),
        )
        stack_id = validate_response(response, "StackId", str, "update-stack")
        logger.debug("Cloudformation update stack call succeeded, stackId=%s", stack_id)
        return stack_id

    async def delete_stack(self, stack_name: str) -> None:
        await self._call("delete-stack", "--stack-name", stack_name)

    async def describe_stack_status(self, stack_name: str) -> str:
        response = await self._call("describe-stacks", "--stack-name", stack_name)
        stacks = validate_response(response, "Stacks", list, "describe-stacks")
        if not stacks:
            raise AwsServiceError(
                "ValidationError",
                f"Could not describe stack '{stack_name}'",
                "describe-stacks",
            )
        return validate_response(stacks[0], "StackStatus", str, "describe-stacks")

    async def describe_stack_events(
        self, stack_name: str, next_token: Optional[str] = None
    ) -> StackEventsPage:
        token_args = ["--starting-token", next_token] if next_token else []
        response = await self._call(
            "describe-stack-events",
            "--stack-name",
            stack_name,
            "--max-items",
            str(self._events_page_size),
            *token_args,
        )
        try:
            return StackEventsPage.model_validate(response)
        except ValueError as exc:
            raise AwsServiceError(
                "InvalidResponse", str(exc), "describe-stack-events"
            ) from exc
