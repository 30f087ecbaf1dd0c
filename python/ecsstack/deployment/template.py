"""
ecsstack/deployment/template.py

Provides the CloudFormation template body for the cluster stack. The body is
packaged as `templates/ecs_cluster.json` and passed to CreateStack as an opaque
string; `template_parameter_keys` lets callers and tests check that every
parameter key the orchestrator submits is declared by the template.
"""

from __future__ import annotations

import json
import os
from typing import Awaitable, Callable, List

import aiofiles

TEMPLATE_PATH = os.path.join(os.path.dirname(__file__), "templates", "ecs_cluster.json")

TemplateProvider = Callable[[], Awaitable[str]]


async def read_cluster_template(path: str = TEMPLATE_PATH) -> str:
    """Read the cluster stack template body.

    Args:
        path: Template location; defaults to the packaged template.

    Returns:
        The template body as a string.

    Raises:
        OSError: If the template cannot be read.
    """
    async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
        return await f.read()


def template_parameter_keys(template_body: str) -> List[str]:
    """Return the parameter keys declared by a JSON template, in declaration order."""
    parsed = json.loads(template_body)
    return list(parsed.get("Parameters", {}).keys())
