"""
ecsstack/models/validator.py

Utility for pulling typed fields out of AWS CLI JSON responses, validated with a
pydantic TypeAdapter.
"""

from typing import Any, Type, TypeVar
from pydantic import ValidationError, TypeAdapter

from ecsstack.utils.aws_cli import AwsServiceError

T = TypeVar("T")


def validate_response(
    payload: Any, key: str, expected_type: Type[T], operation: str
) -> T:
    """
    Reads `payload[key]` and validates it against `expected_type`.

    Args:
        payload (Any): A decoded JSON object from the AWS CLI.
        key (str): The top-level field to read, e.g. "StackId".
        expected_type (Type[T]): The type (pydantic or otherwise) to validate against.
        operation (str): The CLI operation, for error context.

    Returns:
        T: The validated field value.

    Raises:
        AwsServiceError: With code "InvalidResponse" if the field is missing or
            has the wrong shape.
    """
    if not isinstance(payload, dict) or key not in payload:
        raise AwsServiceError(
            "InvalidResponse", f"Response is missing '{key}'", operation
        )
    try:
        adapter = TypeAdapter(expected_type)
        return adapter.validate_python(payload[key])
    except ValidationError as e:
        raise AwsServiceError(
            "InvalidResponse", f"Unexpected '{key}' in response: {e}", operation
        ) from e
