"""
ecsstack/models/cloudformation.py

Pydantic models for the parts of the CloudFormation API that the stack
lifecycle controller reads:
 - StackEvent: one resource-level status transition.
 - StackEventsPage: one page of DescribeStackEvents output, newest first.

Also defines the stack and resource status names used for classification.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

# Aggregate stack statuses.
STACK_STATUS_CREATE_COMPLETE = "CREATE_COMPLETE"
STACK_STATUS_CREATE_FAILED = "CREATE_FAILED"
STACK_STATUS_CREATE_IN_PROGRESS = "CREATE_IN_PROGRESS"
STACK_STATUS_ROLLBACK_IN_PROGRESS = "ROLLBACK_IN_PROGRESS"
STACK_STATUS_ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"
STACK_STATUS_DELETE_IN_PROGRESS = "DELETE_IN_PROGRESS"
STACK_STATUS_DELETE_COMPLETE = "DELETE_COMPLETE"
STACK_STATUS_DELETE_FAILED = "DELETE_FAILED"
STACK_STATUS_UPDATE_IN_PROGRESS = "UPDATE_IN_PROGRESS"
STACK_STATUS_UPDATE_COMPLETE = "UPDATE_COMPLETE"
STACK_STATUS_UPDATE_ROLLBACK_COMPLETE = "UPDATE_ROLLBACK_COMPLETE"
STACK_STATUS_UPDATE_ROLLBACK_FAILED = "UPDATE_ROLLBACK_FAILED"

# Resource-level statuses reported in stack events.
RESOURCE_STATUS_CREATE_FAILED = "CREATE_FAILED"
RESOURCE_STATUS_DELETE_FAILED = "DELETE_FAILED"
RESOURCE_STATUS_UPDATE_FAILED = "UPDATE_FAILED"

CAPABILITY_IAM = "CAPABILITY_IAM"


class StackEvent(BaseModel):
    """A single CloudFormation stack event, as returned by DescribeStackEvents.

    Attributes:
        event_id: Unique event id.
        resource_type: e.g. "AWS::AutoScaling::AutoScalingGroup".
        resource_status: e.g. "CREATE_FAILED".
        resource_status_reason: Human-readable reason, mostly set on failures.
        physical_resource_id: Physical id of the resource, if any.
        logical_resource_id: Logical id of the resource in the template.
        timestamp: When the transition happened.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    event_id: Optional[str] = Field(default=None, alias="EventId")
    resource_type: Optional[str] = Field(default=None, alias="ResourceType")
    resource_status: Optional[str] = Field(default=None, alias="ResourceStatus")
    resource_status_reason: Optional[str] = Field(
        default=None, alias="ResourceStatusReason"
    )
    physical_resource_id: Optional[str] = Field(
        default=None, alias="PhysicalResourceId"
    )
    logical_resource_id: Optional[str] = Field(default=None, alias="LogicalResourceId")
    timestamp: Optional[datetime] = Field(default=None, alias="Timestamp")


class StackEventsPage(BaseModel):
    """One page of stack events.

    Events are ordered newest first: index 0 is the most recent event. Pages
    whose timestamps break that order are rejected.
    """

    model_config = ConfigDict(populate_by_name=True)

    events: List[StackEvent] = Field(default_factory=list, alias="StackEvents")
    next_token: Optional[str] = Field(default=None, alias="NextToken")

    @model_validator(mode="after")
    def check_newest_first(self) -> StackEventsPage:
        """Ensure timestamps, where present, are in non-increasing order."""
        stamps = [e.timestamp for e in self.events if e.timestamp is not None]
        if any(newer < older for newer, older in zip(stamps, stamps[1:])):
            raise ValueError("Stack events must be ordered newest first.")
        return self

    def latest(self) -> Optional[StackEvent]:
        """Return the most recent event on this page, or None if the page is empty."""
        return self.events[0] if self.events else None
