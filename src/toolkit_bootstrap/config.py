"""
toolkit_bootstrap.config — Environment-variable driven settings.

Every value has a default except the modern bootstrap template location,
which is only required when the default bootstrap source is used, and the
qualifier: unset means the deployed (or template default) qualifier is kept.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from toolkit_bootstrap.models import DEFAULT_TOOLKIT_STACK_NAME

ACCOUNT_CACHE_FILE_NAME = "accounts_partitions.json"


def cdk_home_dir() -> Path:
    """Return $CDK_HOME, falling back to ~/.cdk."""
    explicit = os.environ.get("CDK_HOME", "").strip()
    if explicit:
        return Path(explicit)
    return Path.home() / ".cdk"


def cdk_cache_dir() -> Path:
    return cdk_home_dir() / "cache"


def default_account_cache_file() -> Path:
    return cdk_cache_dir() / ACCOUNT_CACHE_FILE_NAME


@dataclass(frozen=True)
class ToolkitSettings:
    toolkit_stack_name: str
    qualifier: str | None
    bootstrap_template: str | None
    aws_region: str | None
    account_cache_file: Path

    @classmethod
    def from_env(cls) -> ToolkitSettings:
        """Read settings from the process environment."""
        return cls(
            toolkit_stack_name=os.environ.get("CDK_TOOLKIT_STACK_NAME", DEFAULT_TOOLKIT_STACK_NAME),
            qualifier=os.environ.get("CDK_BOOTSTRAP_QUALIFIER", "").strip() or None,
            bootstrap_template=os.environ.get("CDK_BOOTSTRAP_TEMPLATE", "").strip() or None,
            aws_region=os.environ.get("AWS_REGION", "").strip() or None,
            account_cache_file=default_account_cache_file(),
        )
