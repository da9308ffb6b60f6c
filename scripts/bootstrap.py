"""
bootstrap.py — Bootstrap one or more AWS environments with the toolkit stack.

Deploys (or safely refreshes) the bootstrap stack in each target
account/region. Idempotent and safe to re-run: an existing stack of another
variant or a newer version is left untouched unless --force is given.

Usage:
    uv run python scripts/bootstrap.py aws://111122223333/eu-west-2 \
        --trust 444455556666 \
        --cloudformation-execution-policies arn:aws:iam::aws:policy/AdministratorAccess

    uv run python scripts/bootstrap.py --show-template --template bootstrap-template.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

import boto3

from toolkit_bootstrap import (
    AccountAccessKeyCache,
    Bootstrapper,
    BootstrapEnvironmentOptions,
    BootstrappingParameters,
    BootstrapSource,
    Environment,
    Sdk,
    ToolkitError,
)
from toolkit_bootstrap.config import ToolkitSettings
from toolkit_bootstrap.models import BootstrapSourceKind, DeployStackResult

logger = logging.getLogger("bootstrap")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


class LoggingNotifier:
    """Notifier that writes toolkit messages to this script's log."""

    def debug(self, message: str) -> None:
        logger.debug(message)

    def info(self, message: str) -> None:
        logger.info(message)

    def warn(self, message: str) -> None:
        logger.warning(message)


def _comma_list(values: list[str] | None) -> list[str] | None:
    """Flatten repeated and comma-separated flag values; None when never given."""
    if values is None:
        return None
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


def _bool_flag(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"true", "yes", "1"}:
        return True
    if lowered in {"false", "no", "0"}:
        return False
    raise argparse.ArgumentTypeError(f"Expected true or false, got {value!r}")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(description="Bootstrap AWS environments for deployment")
    parser.add_argument(
        "environments",
        nargs="*",
        help="Target environments as aws://ACCOUNT/REGION (default: current credentials)",
    )
    parser.add_argument("--bootstrap-bucket-name", dest="bucket_name")
    parser.add_argument("--bootstrap-kms-key-id", dest="kms_key_id")
    parser.add_argument(
        "--bootstrap-customer-key",
        dest="create_customer_master_key",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Create a customer managed KMS key for the assets bucket",
    )
    parser.add_argument("--qualifier")
    parser.add_argument(
        "--public-access-block-configuration",
        type=_bool_flag,
        default=None,
        help="Block public access on the assets bucket (default: true)",
    )
    parser.add_argument("--trust", dest="trusted_accounts", action="append", default=None)
    parser.add_argument(
        "--trust-for-lookup", dest="trusted_accounts_for_lookup", action="append", default=None
    )
    parser.add_argument("--untrust", dest="untrusted_accounts", action="append", default=None)
    parser.add_argument(
        "--cloudformation-execution-policies",
        dest="cloudformation_execution_policies",
        action="append",
        default=None,
    )
    parser.add_argument("--example-permissions-boundary", action="store_true")
    parser.add_argument("--custom-permissions-boundary")
    parser.add_argument("--toolkit-stack-name")
    parser.add_argument(
        "--termination-protection",
        action=argparse.BooleanOptionalAction,
        default=None,
    )
    parser.add_argument("--force", action="store_true", help="Skip variant/version safety checks")
    parser.add_argument(
        "--no-execute",
        dest="execute",
        action="store_false",
        help="Create the change set but do not execute it",
    )
    parser.add_argument("--role-arn")
    parser.add_argument("--tags", action="append", default=[], help="KEY=VALUE stack tag")

    source = parser.add_mutually_exclusive_group()
    source.add_argument("--template", help="Use a custom bootstrap template file")
    source.add_argument("--legacy", action="store_true", help="Deploy the legacy template")

    parser.add_argument("--show-template", action="store_true")
    parser.add_argument("--json", action="store_true", help="Show the template as JSON")
    return parser.parse_args(argv)


def _parse_tags(raw_tags: list[str]) -> dict[str, str]:
    tags: dict[str, str] = {}
    for raw in raw_tags:
        key, sep, value = raw.partition("=")
        if not sep or not key:
            raise ToolkitError(f"Tags must look like KEY=VALUE, got {raw!r}")
        tags[key] = value
    return tags


def build_source(args: argparse.Namespace) -> BootstrapSource:
    if args.legacy:
        return BootstrapSource.legacy()
    if args.template:
        return BootstrapSource.custom(args.template)
    return BootstrapSource.default()


def build_options(args: argparse.Namespace) -> BootstrapEnvironmentOptions:
    return BootstrapEnvironmentOptions(
        toolkit_stack_name=args.toolkit_stack_name,
        role_arn=args.role_arn,
        tags=_parse_tags(args.tags),
        execute=args.execute,
        force_deployment=args.force,
        termination_protection=args.termination_protection,
        parameters=BootstrappingParameters(
            bucket_name=args.bucket_name,
            kms_key_id=args.kms_key_id,
            create_customer_master_key=args.create_customer_master_key,
            public_access_block_configuration=args.public_access_block_configuration,
            qualifier=args.qualifier,
            trusted_accounts=_comma_list(args.trusted_accounts),
            trusted_accounts_for_lookup=_comma_list(args.trusted_accounts_for_lookup),
            untrusted_accounts=_comma_list(args.untrusted_accounts),
            cloudformation_execution_policies=_comma_list(args.cloudformation_execution_policies),
            example_permissions_boundary=args.example_permissions_boundary,
            custom_permissions_boundary=args.custom_permissions_boundary,
        ),
    )


def resolve_environments(
    raw: list[str], settings: ToolkitSettings, account_cache: AccountAccessKeyCache
) -> list[Environment]:
    """Parse explicit targets, or derive one from the current credentials."""
    if raw:
        return [Environment.parse(value) for value in raw]

    if not settings.aws_region:
        raise ToolkitError("AWS_REGION must be set when no environment is given")
    caller_sdk = Sdk(
        Environment(account="unknown", region=settings.aws_region),
        account_cache=account_cache,
    )
    identity = caller_sdk.current_account()
    return [Environment(account=identity.account_id, region=settings.aws_region)]


def bootstrap_all(
    environments: list[Environment],
    bootstrapper: Bootstrapper,
    options: BootstrapEnvironmentOptions,
    *,
    account_cache: AccountAccessKeyCache,
    session_factory: Any = boto3.Session,
) -> dict[str, DeployStackResult]:
    """Bootstrap each environment in turn; stops at the first failure."""
    results: dict[str, DeployStackResult] = {}
    for environment in environments:
        logger.info("==> Bootstrapping %s", environment)
        sdk = Sdk(
            environment,
            session=session_factory(region_name=environment.region),
            account_cache=account_cache,
        )
        result = bootstrapper.bootstrap_environment(environment, sdk, options)
        if result.noop:
            logger.info("%s: bootstrap stack unchanged (%s)", environment, result.stack_arn)
        else:
            logger.info("%s: bootstrapped (%s)", environment, result.stack_arn)
        results[environment.name] = result
    return results


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    settings = ToolkitSettings.from_env()
    notifier = LoggingNotifier()
    source = build_source(args)

    try:
        bootstrapper = Bootstrapper(source, notifier, settings=settings)
        if args.show_template:
            if source.kind == BootstrapSourceKind.DEFAULT and not settings.bootstrap_template:
                raise ToolkitError("Set CDK_BOOTSTRAP_TEMPLATE or pass --template")
            sys.stdout.write(bootstrapper.show_template(args.json) + "\n")
            return 0

        account_cache = AccountAccessKeyCache(settings.account_cache_file, notifier)
        environments = resolve_environments(args.environments, settings, account_cache)
        bootstrap_all(
            environments,
            bootstrapper,
            build_options(args),
            account_cache=account_cache,
        )
    except Exception as exc:
        logger.error("Bootstrap failed: %s", exc)
        return 1

    logger.info("Bootstrap completed for %d environment(s)", len(environments))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
