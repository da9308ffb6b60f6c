"""
toolkit_bootstrap.deploy_bootstrap — Two-phase access to the bootstrap stack.

    current = BootstrapStack.lookup(...)
    # inspect current.parameters, derive new parameters
    current.update(new_template, parameters, options)

The update refuses, as a no-op with a warning, to replace a stack of a
different variant or to downgrade it to a lower version, unless forced.
"""

from __future__ import annotations

from typing import Any

from toolkit_bootstrap.deployments import CloudFormationDeployer, DeployStackOptions, StackDeployer
from toolkit_bootstrap.models import (
    BOOTSTRAP_VARIANT_PARAMETER,
    BOOTSTRAP_VERSION_OUTPUT,
    BOOTSTRAP_VERSION_RESOURCE,
    DEFAULT_BOOTSTRAP_VARIANT,
    DEFAULT_TOOLKIT_STACK_NAME,
    BootstrapEnvironmentOptions,
    BootstrapStackInfo,
    DeployStackResult,
    Environment,
)
from toolkit_bootstrap.notify import Notifier
from toolkit_bootstrap.sdk import Sdk
from toolkit_bootstrap.toolkit_info import lookup_toolkit_info


class BootstrapStack:
    @classmethod
    def lookup(
        cls,
        sdk: Sdk,
        environment: Environment,
        toolkit_stack_name: str | None,
        notifier: Notifier,
        *,
        deployer: StackDeployer | None = None,
    ) -> BootstrapStack:
        stack_name = toolkit_stack_name or DEFAULT_TOOLKIT_STACK_NAME
        current = lookup_toolkit_info(sdk.cloudformation(), stack_name)
        return cls(
            sdk,
            environment,
            stack_name,
            current,
            notifier,
            deployer=deployer or CloudFormationDeployer(sdk, notifier),
        )

    def __init__(
        self,
        sdk: Sdk,
        environment: Environment,
        toolkit_stack_name: str,
        current: BootstrapStackInfo,
        notifier: Notifier,
        *,
        deployer: StackDeployer,
    ) -> None:
        self._sdk = sdk
        self.environment = environment
        self.toolkit_stack_name = toolkit_stack_name
        self.current = current
        self._notifier = notifier
        self._deployer = deployer

    @property
    def parameters(self) -> dict[str, str]:
        return self.current.parameters if self.current.found else {}

    @property
    def termination_protection(self) -> bool | None:
        return self.current.termination_protection if self.current.found else None

    def partition(self) -> str:
        return self._sdk.current_account().partition

    def safety_check(
        self, template: dict[str, Any], options: BootstrapEnvironmentOptions
    ) -> DeployStackResult | None:
        """Return a no-op result if replacing the current stack would be unsafe, else None."""
        if not self.current.found or options.force_deployment:
            return None

        abort = DeployStackResult(noop=True, outputs={}, stack_arn=self.current.stack_id)

        current_variant = self.current.variant
        new_variant = bootstrap_variant_from_template(template)
        if current_variant != new_variant:
            self._notifier.warn(
                f"Bootstrap stack already exists, containing '{current_variant}'. "
                f"Not overwriting it with a template containing '{new_variant}' "
                "(use --force if you intend to overwrite)"
            )
            return abort

        new_version = bootstrap_version_from_template(template)
        current_version = self.current.version
        if new_version < current_version:
            self._notifier.warn(
                f"Bootstrap stack already at version {current_version}. "
                f"Not downgrading it to version {new_version} (use --force if you intend to downgrade)"
            )
            if new_version == 0:
                # An old-style template against a new-style stack: the flag is usually missing
                self._notifier.warn(
                    "(Did you set the '@aws-cdk/core:newStyleStackSynthesis' feature flag in cdk.json?)"
                )
            return abort

        return None

    def update(
        self,
        template: dict[str, Any],
        parameters: dict[str, str | None],
        options: BootstrapEnvironmentOptions,
    ) -> DeployStackResult:
        """Run the safety check, then deploy the template."""
        abort = self.safety_check(template, options)
        if abort is not None:
            return abort
        return self.deploy(template, parameters, options)

    def deploy(
        self,
        template: dict[str, Any],
        parameters: dict[str, str | None],
        options: BootstrapEnvironmentOptions,
    ) -> DeployStackResult:
        """Deploy without the safety check; callers must have run safety_check first."""
        termination_protection = options.termination_protection
        if termination_protection is None:
            termination_protection = bool(self.termination_protection)

        return self._deployer.deploy(
            stack_name=self.toolkit_stack_name,
            template=template,
            parameters=parameters,
            options=DeployStackOptions(
                termination_protection=termination_protection,
                role_arn=options.role_arn,
                tags=options.tags,
                execute=options.execute,
                use_previous_parameters=options.use_previous_parameters,
            ),
        )


def bootstrap_version_from_template(template: dict[str, Any]) -> int:
    """Version declared by a bootstrap template, 0 if it declares none."""
    outputs = template.get("Outputs") or {}
    resource = (template.get("Resources") or {}).get(BOOTSTRAP_VERSION_RESOURCE) or {}
    sources = [
        (outputs.get(BOOTSTRAP_VERSION_OUTPUT) or {}).get("Value"),
        (resource.get("Properties") or {}).get("Value"),
    ]
    for source in sources:
        if isinstance(source, bool):
            continue
        if isinstance(source, int):
            return source
        if isinstance(source, str):
            try:
                return int(source.strip())
            except ValueError:
                continue
    return 0


def bootstrap_variant_from_template(template: dict[str, Any]) -> str:
    parameter = (template.get("Parameters") or {}).get(BOOTSTRAP_VARIANT_PARAMETER) or {}
    return str(parameter.get("Default", DEFAULT_BOOTSTRAP_VARIANT))
