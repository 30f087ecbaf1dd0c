"""
ecsstack/models/stack_params.py

Defines the typed parameter set submitted to the cluster CloudFormation stack:
 - StackParameter: one named input, carrying either an explicit value or the
   "use previous value" flag.
 - ParameterSet: an ordered, key-unique collection of StackParameters with
   create-time and update-time constructors and submission validation.

The distinction between an explicit value and UsePreviousValue mirrors the two
stack-service semantics: full replacement on create versus selective override
on update. An update that drops the flag resets unrelated stack inputs to the
template defaults.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from pydantic import BaseModel

from ecsstack.errors import (
    InvalidKeyError,
    ParameterNotFoundError,
    ParameterValidationError,
)

# Parameter key names used by the cluster template.
PARAMETER_KEY_ASG_MAX_SIZE = "AsgMaxSize"
PARAMETER_KEY_VPC_AZS = "VpcAvailabilityZones"
PARAMETER_KEY_SECURITY_GROUP = "SecurityGroup"
PARAMETER_KEY_SOURCE_CIDR = "SourceCidr"
PARAMETER_KEY_ECS_PORT = "EcsPort"
PARAMETER_KEY_SUBNET_IDS = "SubnetIds"
PARAMETER_KEY_VPC_ID = "VpcId"
PARAMETER_KEY_INSTANCE_TYPE = "EcsInstanceType"
PARAMETER_KEY_KEY_PAIR_NAME = "KeyName"
PARAMETER_KEY_CLUSTER = "EcsCluster"
PARAMETER_KEY_AMI_ID = "EcsAmiId"
PARAMETER_KEY_ASSOCIATE_PUBLIC_IP_ADDRESS = "AssociatePublicIpAddress"

REQUIRED_PARAMETER_KEYS: Tuple[str, ...] = (
    PARAMETER_KEY_KEY_PAIR_NAME,
    PARAMETER_KEY_CLUSTER,
    PARAMETER_KEY_AMI_ID,
)

KNOWN_PARAMETER_KEYS: Tuple[str, ...] = (
    PARAMETER_KEY_ASG_MAX_SIZE,
    PARAMETER_KEY_VPC_AZS,
    PARAMETER_KEY_SECURITY_GROUP,
    PARAMETER_KEY_SOURCE_CIDR,
    PARAMETER_KEY_ECS_PORT,
    PARAMETER_KEY_SUBNET_IDS,
    PARAMETER_KEY_VPC_ID,
    PARAMETER_KEY_INSTANCE_TYPE,
    PARAMETER_KEY_KEY_PAIR_NAME,
    PARAMETER_KEY_CLUSTER,
    PARAMETER_KEY_AMI_ID,
    PARAMETER_KEY_ASSOCIATE_PUBLIC_IP_ADDRESS,
)


class StackParameter(BaseModel):
    """One CloudFormation stack parameter.

    Attributes:
        key (str): Parameter key, unique within a ParameterSet.
        value (Optional[str]): Explicit value; None when inheriting.
        use_previous_value (bool): Reuse the value currently in effect on the stack.
    """

    key: str
    value: Optional[str] = None
    use_previous_value: bool = False

    def is_valid(self) -> bool:
        """True if the parameter has a non-empty value or inherits the previous one."""
        return bool(self.value) or self.use_previous_value

    def to_request(self) -> Dict[str, Any]:
        """Render as a CloudFormation `Parameters` list item."""
        item: Dict[str, Any] = {"ParameterKey": self.key}
        if self.value is not None:
            item["ParameterValue"] = self.value
        item["UsePreviousValue"] = self.use_previous_value
        return item


def _check_key(key: str) -> None:
    if not key or not key.strip():
        raise InvalidKeyError(key)


class ParameterSet:
    """An ordered set of stack parameters keyed by name.

    Iteration follows first-insertion order; re-adding a key replaces the
    parameter in place without moving it.
    """

    def __init__(self) -> None:
        self._params: Dict[str, StackParameter] = {}

    @classmethod
    def new(cls) -> ParameterSet:
        """Create an empty set, used for stack creation."""
        return cls()

    @classmethod
    def new_for_update(
        cls, known_keys: Iterable[str] = KNOWN_PARAMETER_KEYS
    ) -> ParameterSet:
        """Create a set for stack update with every known key inheriting its value.

        Args:
            known_keys: The keys to pre-populate. Defaults to every key of the
                cluster template.

        Returns:
            A ParameterSet where each key has use_previous_value=True; callers
            then override only the keys being changed.
        """
        params = cls()
        for key in known_keys:
            params.add_with_use_previous_value(key, True)
        return params

    def add(self, key: str, value: str) -> None:
        """Insert or replace `key` with an explicit value, clearing use_previous_value.

        Raises:
            InvalidKeyError: If `key` is empty or blank.
        """
        _check_key(key)
        self._params[key] = StackParameter(
            key=key, value=value, use_previous_value=False
        )

    def add_with_use_previous_value(self, key: str, use_previous_value: bool) -> None:
        """Insert or replace `key` with no explicit value and the given flag.

        Raises:
            InvalidKeyError: If `key` is empty or blank.
        """
        _check_key(key)
        self._params[key] = StackParameter(
            key=key, value=None, use_previous_value=use_previous_value
        )

    def get(self, key: str) -> StackParameter:
        """Return the parameter for `key`.

        Raises:
            ParameterNotFoundError: If `key` was never added to this set.
        """
        try:
            return self._params[key]
        except KeyError:
            raise ParameterNotFoundError(key) from None

    def validate(self) -> None:
        """Check the set is fit for submission.

        Required keys are checked first, in REQUIRED_PARAMETER_KEYS order, then
        every other present parameter in insertion order. The first violation is
        raised and names the offending key.

        Raises:
            ParameterNotFoundError: A required key is absent.
            ParameterValidationError: A parameter has neither a value nor
                use_previous_value.
        """
        for key in REQUIRED_PARAMETER_KEYS:
            _validate_param(self.get(key))

        for param in self._params.values():
            if param.key not in REQUIRED_PARAMETER_KEYS:
                _validate_param(param)

    def all(self) -> List[StackParameter]:
        """Return the parameters in stable iteration order."""
        return list(self._params.values())

    def to_request(self) -> List[Dict[str, Any]]:
        """Render the set as the CloudFormation `Parameters` payload."""
        return [param.to_request() for param in self._params.values()]

    def __contains__(self, key: object) -> bool:
        return key in self._params

    def __len__(self) -> int:
        return len(self._params)

    def __iter__(self) -> Iterator[StackParameter]:
        return iter(self.all())

    def __repr__(self) -> str:
        return f"ParameterSet({self.all()!r})"


def _validate_param(param: StackParameter) -> None:
    if not param.is_valid():
        raise ParameterValidationError(
            param.key,
            f"ParameterValue and UsePreviousValue not set for parameter key '{param.key}'",
        )


__all__ = [
    "StackParameter",
    "ParameterSet",
    "REQUIRED_PARAMETER_KEYS",
    "KNOWN_PARAMETER_KEYS",
]
