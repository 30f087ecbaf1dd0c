"""
ecsstack/utils/aws_cli.py

Runs `aws <service> <operation>` in an asynchronous subprocess and returns the
parsed JSON response. A failed invocation raises AwsServiceError carrying the
service error code and message parsed from the CLI's stderr, e.g.

    An error occurred (ValidationError) when calling the DescribeStacks
    operation: Stack with id amazon-ecs-cli-setup-demo does not exist

No retries happen here: the only retried work in ecsstack is the stack status
polling loop, which never retries failed remote calls.

Usage example:
    from ecsstack.utils.aws_cli import run_aws, AwsServiceError

    try:
        response = await run_aws(
            "cloudformation",
            "describe-stacks",
            ["--stack-name", "amazon-ecs-cli-setup-demo"],
            region="us-west-2",
        )
    except AwsServiceError as err:
        print(err.code, err.message)
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

AwsRunner = Callable[..., Awaitable[Dict[str, Any]]]

_ERROR_PATTERN = re.compile(
    r"An error occurred \((?P<code>[^)]+)\)(?: when calling the (?P<op>\w+) operation)?"
    r"(?: \(reached max retries: \d+\))?: (?P<message>.*)",
    re.DOTALL,
)


class AwsServiceError(Exception):
    """Represents a failed AWS CLI call.

    Attributes:
        code (str): The service error code, e.g. "ValidationError". Falls back to
            "Unknown" when stderr does not carry a recognizable error line.
        message (str): The service error message.
        operation (str): The CLI operation, e.g. "describe-stacks".
        return_code (Optional[int]): The exit code if available.
    """

    def __init__(
        self,
        code: str,
        message: str,
        operation: str,
        return_code: Optional[int] = None,
    ) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.operation = operation
        self.return_code = return_code


def parse_aws_error(stderr: str) -> Tuple[str, str]:
    """Extract (code, message) from AWS CLI stderr.

    Args:
        stderr (str): Standard error output of a failed `aws` invocation.

    Returns:
        Tuple[str, str]: The error code and message. If no error line is found,
            returns ("Unknown", <stripped stderr>).
    """
    match = _ERROR_PATTERN.search(stderr)
    if match is None:
        return "Unknown", stderr.strip()
    return match.group("code"), match.group("message").strip()


def build_aws_command(
    service: str,
    operation: str,
    args: List[str],
    region: Optional[str],
    profile: Optional[str],
) -> List[str]:
    """Build the argv for an AWS CLI call, always requesting JSON output."""
    base = ["aws", service, operation] + args + ["--output", "json"]
    region_flags = ["--region", region] if region else []
    profile_flags = ["--profile", profile] if profile else []
    return base + region_flags + profile_flags


async def run_aws(
    service: str,
    operation: str,
    args: List[str],
    *,
    region: Optional[str] = None,
    profile: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Executes one AWS CLI operation and returns its JSON response as a dict.

    Args:
        service (str):
            The CLI service namespace, e.g. "cloudformation", "ecs", "ec2", "ssm".
        operation (str):
            The CLI operation, e.g. "describe-stacks".
        args (List[str]):
            Operation arguments, e.g. ["--stack-name", "demo"].
        region (Optional[str]):
            Region passed as --region when set.
        profile (Optional[str]):
            Named profile passed as --profile when set.

    Returns:
        Dict[str, Any]: The parsed JSON response. Operations with no output
            (e.g. delete-stack) yield an empty dict.

    Raises:
        AwsServiceError: If the CLI exits non-zero or prints invalid JSON.
    """
    command = build_aws_command(service, operation, args, region, profile)

    proc = await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout_bytes, stderr_bytes = await proc.communicate()
    stdout_str = stdout_bytes.decode(errors="replace").strip()
    stderr_str = stderr_bytes.decode(errors="replace").strip()

    if proc.returncode != 0:
        code, message = parse_aws_error(stderr_str)
        raise AwsServiceError(code, message, operation, proc.returncode)

    if not stdout_str:
        return {}

    try:
        parsed = json.loads(stdout_str)
    except json.JSONDecodeError as exc:
        raise AwsServiceError(
            "InvalidResponse", f"Could not parse JSON output: {exc}", operation
        ) from exc

    if not isinstance(parsed, dict):
        raise AwsServiceError(
            "InvalidResponse", "Expected a JSON object in the response", operation
        )
    return parsed
