"""
toolkit_bootstrap.models — Value types shared by the bootstrap components.

Environment is the cache key everywhere: one (account, region) pair maps to
at most one bootstrap stack, one SSM version parameter cache and one set of
deployment results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# ---------------------------------------------------------------------------
# Bootstrap template contract
# ---------------------------------------------------------------------------

DEFAULT_TOOLKIT_STACK_NAME = "CDKToolkit"
DEFAULT_QUALIFIER = "hnb659fds"
DEFAULT_BOOTSTRAP_VARIANT = "AWS CDK: Default Resources"

BOOTSTRAP_VARIANT_PARAMETER = "BootstrapVariant"
BOOTSTRAP_VERSION_OUTPUT = "BootstrapVersion"
BOOTSTRAP_VERSION_RESOURCE = "CdkBootstrapVersion"

# FileAssetsBucketKmsKeyId magic values understood by the modern template
USE_AWS_MANAGED_KEY = "AWS_MANAGED_KEY"
CREATE_NEW_KEY = ""

# Template version that granted ssm:GetParameter to the deploy role
BOOTSTRAP_TEMPLATE_VERSION_INTRODUCING_GETPARAMETER = 5

_ENV_URL_PREFIX = "aws://"


# ---------------------------------------------------------------------------
# Environment / identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Environment:
    account: str
    region: str

    @property
    def key(self) -> str:
        return f"{self.account}:{self.region}"

    @property
    def name(self) -> str:
        return f"{_ENV_URL_PREFIX}{self.account}/{self.region}"

    @classmethod
    def parse(cls, value: str) -> Environment:
        """Parse an ``aws://ACCOUNT/REGION`` string."""
        if not value.startswith(_ENV_URL_PREFIX):
            raise ValueError(f"Environment must look like aws://ACCOUNT/REGION, got {value!r}")
        account, _, region = value.removeprefix(_ENV_URL_PREFIX).partition("/")
        if not account or not region or "/" in region:
            raise ValueError(f"Environment must look like aws://ACCOUNT/REGION, got {value!r}")
        return cls(account=account, region=region)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class AccountIdentity:
    account_id: str
    partition: str

    def to_json(self) -> dict[str, str]:
        return {"accountId": self.account_id, "partition": self.partition}

    @classmethod
    def from_json(cls, data: Any) -> AccountIdentity | None:
        if not isinstance(data, dict):
            return None
        account_id = data.get("accountId")
        partition = data.get("partition")
        if not isinstance(account_id, str) or not isinstance(partition, str):
            return None
        return cls(account_id=account_id, partition=partition)


# ---------------------------------------------------------------------------
# Bootstrap stack state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BootstrapStackInfo:
    """Last known state of the deployed bootstrap stack.

    ``found=False`` means the stack does not exist yet; version is then 0 and
    parameters are empty.
    """

    found: bool
    stack_name: str
    version: int = 0
    variant: str = DEFAULT_BOOTSTRAP_VARIANT
    parameters: dict[str, str] = field(default_factory=dict)
    outputs: dict[str, str] = field(default_factory=dict)
    stack_id: str = ""
    termination_protection: bool | None = None
    bucket_name: str | None = None

    @classmethod
    def not_found(cls, stack_name: str) -> BootstrapStackInfo:
        return cls(found=False, stack_name=stack_name)

    def __str__(self) -> str:
        if not self.found:
            return f"bootstrap stack {self.stack_name} (not found)"
        return f"bootstrap stack {self.stack_name} (version {self.version})"


@dataclass(frozen=True)
class EcrRepositoryInfo:
    repository_uri: str


# ---------------------------------------------------------------------------
# Bootstrap inputs
# ---------------------------------------------------------------------------


class BootstrapSourceKind(StrEnum):
    LEGACY = "legacy"
    DEFAULT = "default"
    CUSTOM = "custom"


@dataclass(frozen=True)
class BootstrapSource:
    kind: BootstrapSourceKind = BootstrapSourceKind.DEFAULT
    template_file: str | None = None

    @classmethod
    def legacy(cls) -> BootstrapSource:
        return cls(kind=BootstrapSourceKind.LEGACY)

    @classmethod
    def default(cls, template_file: str | None = None) -> BootstrapSource:
        return cls(kind=BootstrapSourceKind.DEFAULT, template_file=template_file)

    @classmethod
    def custom(cls, template_file: str) -> BootstrapSource:
        return cls(kind=BootstrapSourceKind.CUSTOM, template_file=template_file)


@dataclass(frozen=True)
class BootstrappingParameters:
    """Caller-supplied bootstrap settings.

    ``None`` always means "not given": list settings then fall back to what
    the existing stack has deployed, tri-state booleans to their defaults.
    """

    bucket_name: str | None = None
    kms_key_id: str | None = None
    create_customer_master_key: bool | None = None
    public_access_block_configuration: bool | None = None
    qualifier: str | None = None
    trusted_accounts: list[str] | None = None
    trusted_accounts_for_lookup: list[str] | None = None
    untrusted_accounts: list[str] | None = None
    cloudformation_execution_policies: list[str] | None = None
    example_permissions_boundary: bool = False
    custom_permissions_boundary: str | None = None


@dataclass(frozen=True)
class BootstrapEnvironmentOptions:
    toolkit_stack_name: str | None = None
    role_arn: str | None = None
    tags: dict[str, str] = field(default_factory=dict)
    execute: bool = True
    force_deployment: bool = False
    termination_protection: bool | None = None
    use_previous_parameters: bool = True
    parameters: BootstrappingParameters = field(default_factory=BootstrappingParameters)


# ---------------------------------------------------------------------------
# Deployment results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeployStackResult:
    noop: bool
    outputs: dict[str, str]
    stack_arn: str
