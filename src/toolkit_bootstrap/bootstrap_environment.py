"""
toolkit_bootstrap.bootstrap_environment — Bootstrap an account/region.

Three flavors:
  legacy   — the pre-versioning single-bucket template; modern-only settings
             are rejected before anything is looked up.
  default  — the modern template: trust relationships, execution policies,
             KMS key and permissions boundary are derived from the caller's
             settings plus what the existing stack already has deployed.
  custom   — a template file; declared version 0 is treated as legacy,
             anything else as modern.

Order of operations for the modern flavor (nothing may be reordered):
  static validation → stack lookup → parameter derivation → safety check
  → permissions boundary creation → deployment.
"""

from __future__ import annotations

import json
import re
from typing import Any

from botocore.exceptions import ClientError

from toolkit_bootstrap.config import ToolkitSettings
from toolkit_bootstrap.deploy_bootstrap import BootstrapStack, bootstrap_version_from_template
from toolkit_bootstrap.deployments import StackDeployer
from toolkit_bootstrap.exceptions import ConfigurationError, ToolkitError
from toolkit_bootstrap.models import (
    CREATE_NEW_KEY,
    DEFAULT_QUALIFIER,
    USE_AWS_MANAGED_KEY,
    BootstrapEnvironmentOptions,
    BootstrappingParameters,
    BootstrapSource,
    BootstrapSourceKind,
    DeployStackResult,
    Environment,
)
from toolkit_bootstrap.notify import LoggerNotifier, Notifier
from toolkit_bootstrap.sdk import Sdk
from toolkit_bootstrap.templates import (
    legacy_bootstrap_template,
    load_structured_file,
    serialize_structure,
)

_POLICY_NAME_PATTERN = re.compile(r"[\w+/=,.@-]+")


class Bootstrapper:
    def __init__(
        self,
        source: BootstrapSource | None = None,
        notifier: Notifier | None = None,
        *,
        deployer: StackDeployer | None = None,
        settings: ToolkitSettings | None = None,
    ) -> None:
        self._source = source or BootstrapSource.default()
        self._notifier: Notifier = notifier or LoggerNotifier()
        self._deployer = deployer
        self._settings = settings

    def bootstrap_environment(
        self,
        environment: Environment,
        sdk: Sdk,
        options: BootstrapEnvironmentOptions | None = None,
    ) -> DeployStackResult:
        options = options or BootstrapEnvironmentOptions()
        if self._source.kind == BootstrapSourceKind.LEGACY:
            return self._legacy_bootstrap(environment, sdk, options)
        if self._source.kind == BootstrapSourceKind.CUSTOM:
            return self._custom_bootstrap(environment, sdk, options)
        return self._modern_bootstrap(environment, sdk, options)

    def show_template(self, as_json: bool) -> str:
        return serialize_structure(self._load_template(), as_json)

    # -----------------------------------------------------------------------
    # Flavors
    # -----------------------------------------------------------------------

    def _legacy_bootstrap(
        self, environment: Environment, sdk: Sdk, options: BootstrapEnvironmentOptions
    ) -> DeployStackResult:
        params = options.parameters

        if params.trusted_accounts:
            raise ConfigurationError(
                "--trust can only be passed for the modern bootstrap experience."
            )
        if params.cloudformation_execution_policies:
            raise ConfigurationError(
                "--cloudformation-execution-policies can only be passed "
                "for the modern bootstrap experience."
            )
        if params.create_customer_master_key is not None:
            raise ConfigurationError(
                "--bootstrap-customer-key can only be passed for the modern bootstrap experience."
            )
        if params.qualifier:
            raise ConfigurationError(
                "--qualifier can only be passed for the modern bootstrap experience."
            )

        current = self._lookup(environment, sdk, options)
        return current.update(self._load_template(params), {}, options)

    def _custom_bootstrap(
        self, environment: Environment, sdk: Sdk, options: BootstrapEnvironmentOptions
    ) -> DeployStackResult:
        if bootstrap_version_from_template(self._load_template()) == 0:
            return self._legacy_bootstrap(environment, sdk, options)
        return self._modern_bootstrap(environment, sdk, options)

    def _modern_bootstrap(
        self, environment: Environment, sdk: Sdk, options: BootstrapEnvironmentOptions
    ) -> DeployStackResult:
        params = options.parameters
        _validate_modern_parameters(params)

        bootstrap_template = self._load_template()
        current = self._lookup(environment, sdk, options)
        partition = current.partition()

        # Existing values are reused on re-bootstrap, so validation must look
        # at the combination of new settings and what is already deployed.
        untrusted = {str(a) for a in params.untrusted_accounts or []}

        def remove_untrusted(accounts: list[str]) -> list[str]:
            return [a for a in accounts if str(a) not in untrusted]

        trusted_accounts = remove_untrusted(
            params.trusted_accounts
            if params.trusted_accounts is not None
            else split_cfn_array(current.parameters.get("TrustedAccounts"))
        )
        self._notifier.info(
            f"Trusted accounts for deployment: {', '.join(trusted_accounts) or '(none)'}"
        )

        trusted_accounts_for_lookup = remove_untrusted(
            params.trusted_accounts_for_lookup
            if params.trusted_accounts_for_lookup is not None
            else split_cfn_array(current.parameters.get("TrustedAccountsForLookup"))
        )
        self._notifier.info(
            f"Trusted accounts for lookup: {', '.join(trusted_accounts_for_lookup) or '(none)'}"
        )

        execution_policies = (
            params.cloudformation_execution_policies
            if params.cloudformation_execution_policies is not None
            else split_cfn_array(current.parameters.get("CloudFormationExecutionPolicies"))
        )
        if not trusted_accounts and not execution_policies:
            # The template infers this default itself; it is not passed as a
            # parameter so that a later --trust cannot silently inherit it.
            implicit_policy = f"arn:{partition}:iam::aws:policy/AdministratorAccess"
            self._notifier.warn(
                f"Using default execution policy of '{implicit_policy}'. "
                "Pass '--cloudformation-execution-policies' to customize."
            )
        elif not execution_policies:
            raise ConfigurationError(
                "Please pass '--cloudformation-execution-policies' when using '--trust' to "
                "specify deployment permissions. Try a managed policy of the form "
                f"'arn:{partition}:iam::aws:policy/<PolicyName>'."
            )
        else:
            self._notifier.info(f"Execution policies: {', '.join(execution_policies)}")

        kms_key_id = kms_key_directive(params, current.parameters.get("FileAssetsBucketKmsKeyId"))
        qualifier = params.qualifier or self._resolved_settings().qualifier

        abort = current.safety_check(bootstrap_template, options)
        if abort is not None:
            return abort

        # InputPermissionsBoundary is an empty string when unset
        current_boundary = current.parameters.get("InputPermissionsBoundary") or None
        policy_name: str | None = None
        if params.example_permissions_boundary:
            policy_name = self._example_permissions_boundary(
                sdk, environment, qualifier or DEFAULT_QUALIFIER, partition
            )
        elif params.custom_permissions_boundary:
            policy_name = params.custom_permissions_boundary

        if current_boundary != policy_name:
            if not current_boundary:
                self._notifier.warn(f"Adding new permissions boundary {policy_name}")
            elif not policy_name:
                self._notifier.warn(f"Removing existing permissions boundary {current_boundary}")
            else:
                self._notifier.warn(
                    f"Changing permissions boundary from {current_boundary} to {policy_name}"
                )

        block_public_access = params.public_access_block_configuration in (None, True)
        return current.deploy(
            bootstrap_template,
            {
                "FileAssetsBucketName": params.bucket_name,
                "FileAssetsBucketKmsKeyId": kms_key_id,
                # Empty list becomes empty string
                "TrustedAccounts": ",".join(trusted_accounts),
                "TrustedAccountsForLookup": ",".join(trusted_accounts_for_lookup),
                "CloudFormationExecutionPolicies": ",".join(execution_policies),
                "Qualifier": qualifier,
                "PublicAccessBlockConfiguration": "true" if block_public_access else "false",
                "InputPermissionsBoundary": policy_name or "",
            },
            options,
        )

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _resolved_settings(self) -> ToolkitSettings:
        return self._settings or ToolkitSettings.from_env()

    def _lookup(
        self, environment: Environment, sdk: Sdk, options: BootstrapEnvironmentOptions
    ) -> BootstrapStack:
        stack_name = options.toolkit_stack_name or self._resolved_settings().toolkit_stack_name
        return BootstrapStack.lookup(
            sdk, environment, stack_name, self._notifier, deployer=self._deployer
        )

    def _load_template(self, params: BootstrappingParameters | None = None) -> dict[str, Any]:
        if self._source.kind == BootstrapSourceKind.LEGACY:
            return legacy_bootstrap_template(params or BootstrappingParameters())

        template_file = self._source.template_file or self._resolved_settings().bootstrap_template
        if template_file is None:
            raise ConfigurationError(
                "No bootstrap template configured. Pass --template or set CDK_BOOTSTRAP_TEMPLATE."
            )
        return load_structured_file(template_file)

    def _example_permissions_boundary(
        self, sdk: Sdk, environment: Environment, qualifier: str, partition: str
    ) -> str:
        """Return the example boundary's policy name, creating the policy if needed."""
        iam = sdk.iam()
        policy_name = f"cdk-{qualifier}-permissions-boundary"
        arn = f"arn:{partition}:iam::{environment.account}:policy/{policy_name}"

        try:
            response = iam.get_policy(PolicyArn=arn)
            if response.get("Policy"):
                return policy_name
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code", "") != "NoSuchEntity":
                raise

        self._notifier.debug(f"Creating example permissions boundary {policy_name}")
        created = iam.create_policy(
            PolicyName=policy_name,
            PolicyDocument=json.dumps(
                example_permissions_boundary_document(partition, environment.account, qualifier)
            ),
        )
        created_arn = created.get("Policy", {}).get("Arn")
        if not created_arn:
            raise ToolkitError(f"Could not retrieve the example permission boundary {arn}!")
        return str(created_arn).split("/")[-1]


# ---------------------------------------------------------------------------
# Parameter derivation
# ---------------------------------------------------------------------------


def _validate_modern_parameters(params: BootstrappingParameters) -> None:
    """Reject setting combinations that can be judged without any AWS call."""
    if params.create_customer_master_key is not None and params.kms_key_id:
        raise ConfigurationError(
            "You cannot pass '--bootstrap-kms-key-id' and '--bootstrap-customer-key' together. "
            "Specify one or the other"
        )

    all_trusted = {
        str(a) for a in [*(params.trusted_accounts or []), *(params.trusted_accounts_for_lookup or [])]
    }
    overlap = sorted(all_trusted & {str(a) for a in params.untrusted_accounts or []})
    if overlap:
        raise ConfigurationError(
            f"Accounts cannot be both trusted and untrusted. Found: {','.join(overlap)}",
            accounts=tuple(overlap),
        )

    if params.example_permissions_boundary and params.custom_permissions_boundary:
        raise ConfigurationError(
            "You cannot pass '--example-permissions-boundary' and "
            "'--custom-permissions-boundary' together. Specify one or the other"
        )
    if params.custom_permissions_boundary:
        validate_policy_name(params.custom_permissions_boundary)


def validate_policy_name(policy_name: str) -> None:
    """IAM policy names, optionally with a path."""
    if not _POLICY_NAME_PATTERN.fullmatch(policy_name):
        raise ConfigurationError(
            f"The permissions boundary name {policy_name} does not match the IAM conventions."
        )


def split_cfn_array(value: str | None) -> list[str]:
    """Split a comma-separated CloudFormation list parameter; "" is the empty list."""
    if not value:
        return []
    return value.split(",")


def kms_key_directive(params: BootstrappingParameters, current_kms_key_id: str | None) -> str | None:
    """
    FileAssetsBucketKmsKeyId for the modern template:
      - the explicit key id if given, otherwise
      - CREATE_NEW_KEY if a customer key was requested,
      - USE_AWS_MANAGED_KEY if it was declined or nothing is deployed yet,
      - None (keep the deployed value) otherwise.
    """
    if params.kms_key_id:
        return params.kms_key_id
    if params.create_customer_master_key is True:
        return CREATE_NEW_KEY
    if params.create_customer_master_key is False or current_kms_key_id is None:
        return USE_AWS_MANAGED_KEY
    return None


def example_permissions_boundary_document(
    partition: str, account: str, qualifier: str
) -> dict[str, Any]:
    boundary_arn = f"arn:{partition}:iam::{account}:policy/cdk-{qualifier}-permissions-boundary"
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": ["*"],
                "Resource": "*",
                "Effect": "Allow",
                "Sid": "ExplicitAllowAll",
            },
            {
                "Condition": {"StringEquals": {"iam:PermissionsBoundary": boundary_arn}},
                "Action": [
                    "iam:CreateUser",
                    "iam:CreateRole",
                    "iam:PutRolePermissionsBoundary",
                    "iam:PutUserPermissionsBoundary",
                ],
                "Resource": "*",
                "Effect": "Allow",
                "Sid": "DenyAccessIfRequiredPermBoundaryIsNotBeingApplied",
            },
            {
                "Action": [
                    "iam:CreatePolicyVersion",
                    "iam:DeletePolicy",
                    "iam:DeletePolicyVersion",
                    "iam:SetDefaultPolicyVersion",
                ],
                "Resource": boundary_arn,
                "Effect": "Deny",
                "Sid": "DenyPermBoundaryIAMPolicyAlteration",
            },
            {
                "Action": ["iam:DeleteUserPermissionsBoundary", "iam:DeleteRolePermissionsBoundary"],
                "Resource": "*",
                "Effect": "Deny",
                "Sid": "DenyRemovalOfPermBoundaryFromAnyUserOrRole",
            },
        ],
    }
