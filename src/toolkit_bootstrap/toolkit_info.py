"""
toolkit_bootstrap.toolkit_info — Read the deployed bootstrap stack's state.

A stack that does not exist, has been deleted, or has only ever had a change
set created for it (REVIEW_IN_PROGRESS) is reported as not found.
"""

from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger
from botocore.exceptions import ClientError

from toolkit_bootstrap.models import (
    BOOTSTRAP_VARIANT_PARAMETER,
    BOOTSTRAP_VERSION_OUTPUT,
    DEFAULT_BOOTSTRAP_VARIANT,
    DEFAULT_TOOLKIT_STACK_NAME,
    BootstrapStackInfo,
)

logger = Logger(service="toolkit-bootstrap")

_ABSENT_STATUSES = frozenset({"DELETE_COMPLETE", "REVIEW_IN_PROGRESS"})


def _is_stack_missing(error: ClientError) -> bool:
    err = error.response.get("Error", {})
    return err.get("Code") == "ValidationError" and "does not exist" in str(err.get("Message", ""))


def _parse_version(raw: str | None) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return 0


def describe_stack(cloudformation_client: Any, stack_name: str) -> dict[str, Any] | None:
    """Return the DescribeStacks entry for a live stack, or None."""
    try:
        response = cloudformation_client.describe_stacks(StackName=stack_name)
    except ClientError as exc:
        if _is_stack_missing(exc):
            return None
        raise

    stacks = response.get("Stacks", [])
    if not stacks:
        return None
    stack = stacks[0]
    if stack.get("StackStatus") in _ABSENT_STATUSES:
        return None
    return stack


def lookup_toolkit_info(
    cloudformation_client: Any, stack_name: str | None = None
) -> BootstrapStackInfo:
    """Describe the bootstrap stack and summarize it as a BootstrapStackInfo."""
    stack_name = stack_name or DEFAULT_TOOLKIT_STACK_NAME
    stack = describe_stack(cloudformation_client, stack_name)
    if stack is None:
        logger.debug("Bootstrap stack not found", extra={"stack_name": stack_name})
        return BootstrapStackInfo.not_found(stack_name)

    parameters = {
        str(p["ParameterKey"]): str(p.get("ParameterValue", ""))
        for p in stack.get("Parameters", [])
    }
    outputs = {str(o["OutputKey"]): str(o.get("OutputValue", "")) for o in stack.get("Outputs", [])}

    info = BootstrapStackInfo(
        found=True,
        stack_name=stack_name,
        version=_parse_version(outputs.get(BOOTSTRAP_VERSION_OUTPUT)),
        variant=parameters.get(BOOTSTRAP_VARIANT_PARAMETER) or DEFAULT_BOOTSTRAP_VARIANT,
        parameters=parameters,
        outputs=outputs,
        stack_id=str(stack.get("StackId", "")),
        termination_protection=bool(stack.get("EnableTerminationProtection", False)),
        bucket_name=outputs.get("BucketName"),
    )
    logger.debug(
        "Bootstrap stack found",
        extra={"stack_name": stack_name, "version": info.version, "variant": info.variant},
    )
    return info
