"""
toolkit_bootstrap — Bootstrap-stack lifecycle and pre-deployment checks.

Bootstraps an AWS account/region with a versioned toolkit stack, refuses
unsafe replacements of it, validates bootstrap versions with cached lookups,
caches account identity on disk, and evaluates the CloudFormation
intrinsics needed to resolve cross-stack values.
"""

from toolkit_bootstrap.account_cache import AccountAccessKeyCache
from toolkit_bootstrap.bootstrap_environment import Bootstrapper
from toolkit_bootstrap.environment_resources import (
    EnvironmentResources,
    EnvironmentResourcesRegistry,
    NoBootstrapStackEnvironmentResources,
)
from toolkit_bootstrap.evaluate_template import EvaluateCloudFormationTemplate
from toolkit_bootstrap.exceptions import (
    BootstrapVersionError,
    CfnEvaluationError,
    ConfigurationError,
    ExportNotFoundError,
    ParameterAccessDeniedError,
    ParameterNotFoundError,
    ToolkitError,
)
from toolkit_bootstrap.models import (
    AccountIdentity,
    BootstrapEnvironmentOptions,
    BootstrappingParameters,
    BootstrapSource,
    BootstrapStackInfo,
    DeployStackResult,
    Environment,
)
from toolkit_bootstrap.sdk import Sdk

__all__ = [
    "AccountAccessKeyCache",
    "AccountIdentity",
    "BootstrapEnvironmentOptions",
    "BootstrappingParameters",
    "BootstrapSource",
    "BootstrapStackInfo",
    "Bootstrapper",
    "BootstrapVersionError",
    "CfnEvaluationError",
    "ConfigurationError",
    "DeployStackResult",
    "Environment",
    "EnvironmentResources",
    "EnvironmentResourcesRegistry",
    "EvaluateCloudFormationTemplate",
    "ExportNotFoundError",
    "NoBootstrapStackEnvironmentResources",
    "ParameterAccessDeniedError",
    "ParameterNotFoundError",
    "Sdk",
    "ToolkitError",
]
