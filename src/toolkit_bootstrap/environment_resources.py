"""
toolkit_bootstrap.environment_resources — Cached bootstrap lookups per environment.

A multi-artifact deployment checks the bootstrap version once per artifact.
Without caching that is one DescribeStacks and one GetParameter per artifact
for identical data, so lookups are memoized per environment.

The cached data lives in EnvironmentResourcesRegistry, not in the
EnvironmentResources objects it hands out: resources objects are cheap and
short-lived (they hold an Sdk and a Notifier for one flow), while the
registry's EnvironmentCache records are shared by reference for as long as
the registry lives.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from botocore.exceptions import ClientError

from toolkit_bootstrap.exceptions import (
    BootstrapVersionError,
    ParameterAccessDeniedError,
    ParameterNotFoundError,
    ToolkitError,
)
from toolkit_bootstrap.models import (
    BOOTSTRAP_TEMPLATE_VERSION_INTRODUCING_GETPARAMETER,
    BootstrapStackInfo,
    EcrRepositoryInfo,
    Environment,
)
from toolkit_bootstrap.notices import NoticesRegistry
from toolkit_bootstrap.notify import Notifier
from toolkit_bootstrap.sdk import Sdk
from toolkit_bootstrap.toolkit_info import lookup_toolkit_info

ToolkitLookup = Callable[[Any, str | None], BootstrapStackInfo]


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _error_message(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Message", "")) or str(error)


@dataclass
class EnvironmentCache:
    """Data cached per environment, shared by every resources object for it."""

    ssm_parameters: dict[str, int] = field(default_factory=dict)
    toolkit_info: BootstrapStackInfo | None = None


class EnvironmentResourcesRegistry:
    def __init__(
        self,
        toolkit_stack_name: str | None = None,
        *,
        notices: NoticesRegistry | None = None,
        toolkit_lookup: ToolkitLookup = lookup_toolkit_info,
        getparameter_version_threshold: int = BOOTSTRAP_TEMPLATE_VERSION_INTRODUCING_GETPARAMETER,
    ) -> None:
        self._toolkit_stack_name = toolkit_stack_name
        self._notices = notices
        self._toolkit_lookup = toolkit_lookup
        self._threshold = getparameter_version_threshold
        self._cache: dict[str, EnvironmentCache] = {}

    def for_environment(
        self, environment: Environment, sdk: Sdk, notifier: Notifier
    ) -> EnvironmentResources:
        env_cache = self._cache.get(environment.key)
        if env_cache is None:
            env_cache = EnvironmentCache()
            self._cache[environment.key] = env_cache
        return EnvironmentResources(
            environment,
            sdk,
            notifier,
            env_cache,
            toolkit_stack_name=self._toolkit_stack_name,
            notices=self._notices,
            toolkit_lookup=self._toolkit_lookup,
            getparameter_version_threshold=self._threshold,
        )


class EnvironmentResources:
    """
    Bootstrap-related lookups for one account/region.

    Obtain instances from EnvironmentResourcesRegistry.for_environment so
    that repeated lookups share one EnvironmentCache.
    """

    def __init__(
        self,
        environment: Environment,
        sdk: Sdk,
        notifier: Notifier,
        cache: EnvironmentCache,
        *,
        toolkit_stack_name: str | None = None,
        notices: NoticesRegistry | None = None,
        toolkit_lookup: ToolkitLookup = lookup_toolkit_info,
        getparameter_version_threshold: int = BOOTSTRAP_TEMPLATE_VERSION_INTRODUCING_GETPARAMETER,
    ) -> None:
        self.environment = environment
        self._sdk = sdk
        self._notifier = notifier
        self._cache = cache
        self._toolkit_stack_name = toolkit_stack_name
        self._notices = notices
        self._toolkit_lookup = toolkit_lookup
        self._threshold = getparameter_version_threshold

    def lookup_toolkit(self) -> BootstrapStackInfo:
        """Look up the bootstrap stack; remote only on the first call per environment."""
        if self._cache.toolkit_info is None:
            self._cache.toolkit_info = self._toolkit_lookup(
                self._sdk.cloudformation(), self._toolkit_stack_name
            )
        return self._cache.toolkit_info

    def validate_version(self, expected_version: int | None, ssm_parameter_name: str | None) -> None:
        """Validate that the bootstrap stack version meets ``expected_version``.

        Reads the version from the SSM parameter when a name is given,
        otherwise from the bootstrap stack outputs. If the SSM read is denied
        and the stack is older than the version that granted
        ssm:GetParameter, the stack outputs are used instead; any newer stack
        with a denied read is a real permission problem and fails.
        """
        if expected_version is None:
            return

        if ssm_parameter_name is not None:
            try:
                version = self.version_from_ssm_parameter(ssm_parameter_name)
            except ParameterAccessDeniedError as exc:
                bootstrap_stack = self.lookup_toolkit()
                if not (bootstrap_stack.found and bootstrap_stack.version < self._threshold):
                    raise ToolkitError(
                        f"This CDK deployment requires bootstrap stack version '{expected_version}', "
                        f"but during the confirmation via SSM parameter {ssm_parameter_name} "
                        f"the following error occurred: {exc}"
                    ) from exc

                self._notifier.warn(
                    f"Could not read SSM parameter {ssm_parameter_name}: {exc.detail}, "
                    f"falling back to version from {bootstrap_stack}"
                )
                version = bootstrap_stack.version
        else:
            version = self.lookup_toolkit().version

        self._check_version(expected_version, version)

    def _check_version(self, expected_version: int, version: int) -> None:
        if self._notices is not None:
            self._notices.add_bootstrapped_environment(self.environment, version)
        if expected_version > version:
            raise BootstrapVersionError(required=expected_version, found=version)

    def version_from_ssm_parameter(self, parameter_name: str) -> int:
        """Read a bootstrap version from an SSM parameter, cached per environment."""
        existing = self._cache.ssm_parameters.get(parameter_name)
        if existing is not None:
            return existing

        try:
            response = self._sdk.ssm().get_parameter(Name=parameter_name)
        except ClientError as exc:
            code = _error_code(exc)
            if code == "ParameterNotFound":
                raise ParameterNotFoundError(parameter_name) from exc
            if code == "AccessDeniedException":
                raise ParameterAccessDeniedError(parameter_name, _error_message(exc)) from exc
            raise

        raw = response.get("Parameter", {}).get("Value")
        try:
            version = int(str(raw).strip())
        except ValueError:
            raise ToolkitError(f"SSM parameter {parameter_name} not a number: {raw}") from None

        self._cache.ssm_parameters[parameter_name] = version
        return version

    def prepare_ecr_repository(self, repository_name: str) -> EcrRepositoryInfo:
        """Return the repository URI, creating the repository if it does not exist."""
        ecr = self._sdk.ecr()

        self._notifier.debug(f"{repository_name}: checking if ECR repository already exists")
        try:
            response = ecr.describe_repositories(repositoryNames=[repository_name])
            repositories = response.get("repositories", [])
            if repositories and repositories[0].get("repositoryUri"):
                return EcrRepositoryInfo(repository_uri=str(repositories[0]["repositoryUri"]))
        except ClientError as exc:
            if _error_code(exc) != "RepositoryNotFoundException":
                raise

        self._notifier.debug(f"{repository_name}: creating ECR repository")
        created = ecr.create_repository(
            repositoryName=repository_name,
            tags=[{"Key": "awscdk:asset", "Value": "true"}],
        )
        repository_uri = created.get("repository", {}).get("repositoryUri")
        if not repository_uri:
            raise ToolkitError(
                f"CreateRepository did not return a repository URI for {repository_name}"
            )

        self._notifier.debug(f"{repository_name}: enable image scanning")
        ecr.put_image_scanning_configuration(
            repositoryName=repository_name,
            imageScanningConfiguration={"scanOnPush": True},
        )
        return EcrRepositoryInfo(repository_uri=str(repository_uri))


class NoBootstrapStackEnvironmentResources(EnvironmentResources):
    """Resources for deploying the bootstrap stack itself, which cannot need one.

    ``CloudFormationDeployer`` never consults environment resources. This class
    is the public hook for external deployment executors that take an
    ``EnvironmentResources`` and are asked to deploy the toolkit stack: handing
    them this instance turns any accidental toolkit lookup into a ``ToolkitError``.
    """

    def __init__(self, environment: Environment, sdk: Sdk, notifier: Notifier) -> None:
        super().__init__(environment, sdk, notifier, EnvironmentCache())

    def lookup_toolkit(self) -> BootstrapStackInfo:
        raise ToolkitError(
            "Trying to perform an operation that requires a bootstrap stack; "
            "you should not see this error, this is a bug in the toolkit."
        )
