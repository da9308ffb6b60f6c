"""
toolkit_bootstrap.deployments — Change-set based stack deployer.

Deploys one template to one stack:
  1. Create a CREATE or UPDATE change set and wait for it.
  2. A change set that contains no changes is deleted and reported as a no-op.
  3. Execute the change set (unless told not to) and wait for the stack.
  4. Bring termination protection in line with the requested value.

Parameters set to None keep their previously deployed value.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from aws_lambda_powertools import Logger
from botocore.exceptions import WaiterError

from toolkit_bootstrap.exceptions import DeploymentFailedError
from toolkit_bootstrap.models import DeployStackResult
from toolkit_bootstrap.notify import Notifier
from toolkit_bootstrap.sdk import Sdk
from toolkit_bootstrap.toolkit_info import describe_stack

logger = Logger(service="toolkit-bootstrap")

CHANGE_SET_NAME = "cdk-deploy-change-set"
CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]

_EMPTY_CHANGE_SET_REASONS = (
    "didn't contain changes",
    "No updates are to be performed",
)


@dataclass(frozen=True)
class DeployStackOptions:
    termination_protection: bool = False
    role_arn: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    execute: bool = True
    use_previous_parameters: bool = True


class StackDeployer(Protocol):
    def deploy(
        self,
        *,
        stack_name: str,
        template: dict[str, Any],
        parameters: dict[str, str | None],
        options: DeployStackOptions,
    ) -> DeployStackResult: ...


def stack_parameters(
    template: dict[str, Any],
    parameters: dict[str, str | None],
    existing: dict[str, Any] | None,
    *,
    use_previous_parameters: bool,
) -> list[dict[str, Any]]:
    """Build the CloudFormation Parameters list for the template's declared parameters."""
    declared = template.get("Parameters") or {}
    existing_keys = {str(p["ParameterKey"]) for p in (existing or {}).get("Parameters", [])}

    undeclared = sorted(k for k, v in parameters.items() if v is not None and k not in declared)
    if undeclared:
        logger.debug("Dropping parameters the template does not declare", extra={"keys": undeclared})

    result: list[dict[str, Any]] = []
    for key in declared:
        value = parameters.get(key)
        if value is not None:
            result.append({"ParameterKey": key, "ParameterValue": value})
        elif key in existing_keys and (use_previous_parameters or key in parameters):
            result.append({"ParameterKey": key, "UsePreviousValue": True})
    return result


def _is_empty_change_set(reason: str) -> bool:
    return any(marker in reason for marker in _EMPTY_CHANGE_SET_REASONS)


def _outputs(stack: dict[str, Any] | None) -> dict[str, str]:
    if not stack:
        return {}
    return {str(o["OutputKey"]): str(o.get("OutputValue", "")) for o in stack.get("Outputs", [])}


class CloudFormationDeployer:
    def __init__(self, sdk: Sdk, notifier: Notifier) -> None:
        self._sdk = sdk
        self._notifier = notifier

    def deploy(
        self,
        *,
        stack_name: str,
        template: dict[str, Any],
        parameters: dict[str, str | None],
        options: DeployStackOptions,
    ) -> DeployStackResult:
        cfn = self._sdk.cloudformation()
        existing = describe_stack(cfn, stack_name)
        change_set_type = "UPDATE" if existing else "CREATE"

        request: dict[str, Any] = {
            "StackName": stack_name,
            "ChangeSetName": CHANGE_SET_NAME,
            "ChangeSetType": change_set_type,
            "TemplateBody": json.dumps(template),
            "Parameters": stack_parameters(
                template,
                parameters,
                existing,
                use_previous_parameters=options.use_previous_parameters,
            ),
            "Capabilities": CAPABILITIES,
            "Tags": [{"Key": k, "Value": v} for k, v in sorted(options.tags.items())],
        }
        if options.role_arn:
            request["RoleARN"] = options.role_arn

        self._notifier.debug(f"{stack_name}: creating {change_set_type} change set")
        created = cfn.create_change_set(**request)
        stack_arn = str(created.get("StackId") or (existing or {}).get("StackId", ""))

        try:
            cfn.get_waiter("change_set_create_complete").wait(
                StackName=stack_name, ChangeSetName=CHANGE_SET_NAME
            )
        except WaiterError as exc:
            described = cfn.describe_change_set(StackName=stack_name, ChangeSetName=CHANGE_SET_NAME)
            reason = str(described.get("StatusReason", ""))
            if existing and _is_empty_change_set(reason):
                self._notifier.debug(f"{stack_name}: no changes are to be performed")
                cfn.delete_change_set(StackName=stack_name, ChangeSetName=CHANGE_SET_NAME)
                self._sync_termination_protection(cfn, stack_name, existing, options)
                return DeployStackResult(noop=True, outputs=_outputs(existing), stack_arn=stack_arn)
            raise DeploymentFailedError(
                f"Failed to create ChangeSet {CHANGE_SET_NAME} on {stack_name}: {reason or exc}"
            ) from exc

        if not options.execute:
            self._notifier.info(
                f"Changeset {CHANGE_SET_NAME} created and waiting in review for manual execution"
            )
            return DeployStackResult(noop=False, outputs=_outputs(existing), stack_arn=stack_arn)

        self._notifier.debug(f"{stack_name}: executing change set")
        cfn.execute_change_set(StackName=stack_name, ChangeSetName=CHANGE_SET_NAME)
        waiter_name = "stack_update_complete" if existing else "stack_create_complete"
        try:
            cfn.get_waiter(waiter_name).wait(StackName=stack_name)
        except WaiterError as exc:
            raise DeploymentFailedError(f"Stack {stack_name} deployment failed: {exc}") from exc

        deployed = describe_stack(cfn, stack_name)
        if deployed is None:
            raise DeploymentFailedError(f"Stack {stack_name} disappeared during deployment")
        self._sync_termination_protection(cfn, stack_name, deployed, options)
        return DeployStackResult(
            noop=False,
            outputs=_outputs(deployed),
            stack_arn=str(deployed.get("StackId", stack_arn)),
        )

    def _sync_termination_protection(
        self, cfn: Any, stack_name: str, stack: dict[str, Any], options: DeployStackOptions
    ) -> None:
        current = bool(stack.get("EnableTerminationProtection", False))
        if current == options.termination_protection:
            return
        self._notifier.debug(
            f"{stack_name}: "
            f"{'enabling' if options.termination_protection else 'disabling'} termination protection"
        )
        cfn.update_termination_protection(
            StackName=stack_name,
            EnableTerminationProtection=options.termination_protection,
        )
