"""Unit tests for scripts/bootstrap.py."""

from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from toolkit_bootstrap import (
    AccountAccessKeyCache,
    BootstrapEnvironmentOptions,
    DeployStackResult,
    Environment,
    ToolkitError,
)
from toolkit_bootstrap.config import ToolkitSettings
from toolkit_bootstrap.models import BootstrapSourceKind


def _load_bootstrap_module() -> object:
    repo_root = Path(__file__).resolve().parents[2]
    spec = importlib.util.spec_from_file_location(
        "bootstrap_script", repo_root / "scripts" / "bootstrap.py"
    )
    assert spec and spec.loader
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)  # type: ignore[union-attr]
    return module


bootstrap: Any = _load_bootstrap_module()
_REGION = "eu-west-2"


def test_parse_args_collects_trust_lists() -> None:
    args = bootstrap.parse_args(
        [
            "aws://111122223333/eu-west-2",
            "--trust",
            "444455556666,777788889999",
            "--trust",
            "121212121212",
            "--cloudformation-execution-policies",
            "arn:aws:iam::aws:policy/AdministratorAccess",
            "--no-execute",
            "--force",
        ]
    )
    options = bootstrap.build_options(args)

    assert args.environments == ["aws://111122223333/eu-west-2"]
    assert options.parameters.trusted_accounts == ["444455556666", "777788889999", "121212121212"]
    assert options.parameters.trusted_accounts_for_lookup is None
    assert options.parameters.cloudformation_execution_policies == [
        "arn:aws:iam::aws:policy/AdministratorAccess"
    ]
    assert options.execute is False
    assert options.force_deployment is True


def test_parse_args_tri_state_flags() -> None:
    unset = bootstrap.build_options(bootstrap.parse_args([]))
    assert unset.termination_protection is None
    assert unset.parameters.create_customer_master_key is None
    assert unset.parameters.public_access_block_configuration is None

    options = bootstrap.build_options(
        bootstrap.parse_args(
            [
                "--no-termination-protection",
                "--bootstrap-customer-key",
                "--public-access-block-configuration",
                "false",
            ]
        )
    )
    assert options.termination_protection is False
    assert options.parameters.create_customer_master_key is True
    assert options.parameters.public_access_block_configuration is False


def test_parse_args_template_and_legacy_are_exclusive() -> None:
    with pytest.raises(SystemExit):
        bootstrap.parse_args(["--template", "t.yaml", "--legacy"])


def test_build_source() -> None:
    assert bootstrap.build_source(bootstrap.parse_args(["--legacy"])).kind == BootstrapSourceKind.LEGACY
    custom = bootstrap.build_source(bootstrap.parse_args(["--template", "t.yaml"]))
    assert (custom.kind, custom.template_file) == (BootstrapSourceKind.CUSTOM, "t.yaml")
    assert bootstrap.build_source(bootstrap.parse_args([])).kind == BootstrapSourceKind.DEFAULT


def test_tags() -> None:
    options = bootstrap.build_options(bootstrap.parse_args(["--tags", "team=platform", "--tags", "cost=1"]))
    assert options.tags == {"team": "platform", "cost": "1"}

    with pytest.raises(ToolkitError, match="KEY=VALUE"):
        bootstrap.build_options(bootstrap.parse_args(["--tags", "novalue"]))


def test_resolve_environments_explicit(tmp_path: Path) -> None:
    environments = bootstrap.resolve_environments(
        ["aws://111122223333/eu-west-2", "aws://111122223333/us-east-1"],
        ToolkitSettings.from_env(),
        AccountAccessKeyCache(tmp_path / "accounts.json"),
    )
    assert [e.region for e in environments] == ["eu-west-2", "us-east-1"]


@mock_aws
def test_resolve_environments_from_credentials(tmp_path: Path) -> None:
    [environment] = bootstrap.resolve_environments(
        [], ToolkitSettings.from_env(), AccountAccessKeyCache(tmp_path / "accounts.json")
    )
    assert environment == Environment(account="123456789012", region=_REGION)


def test_bootstrap_all_runs_each_environment(tmp_path: Path) -> None:
    bootstrapper = MagicMock()
    bootstrapper.bootstrap_environment.return_value = DeployStackResult(
        noop=True, outputs={}, stack_arn="arn"
    )
    session_factory = MagicMock()
    environments = [Environment("111122223333", "eu-west-2"), Environment("111122223333", "us-east-1")]

    results = bootstrap.bootstrap_all(
        environments,
        bootstrapper,
        BootstrapEnvironmentOptions(),
        account_cache=AccountAccessKeyCache(tmp_path / "accounts.json"),
        session_factory=session_factory,
    )

    assert list(results) == ["aws://111122223333/eu-west-2", "aws://111122223333/us-east-1"]
    assert bootstrapper.bootstrap_environment.call_count == 2
    session_factory.assert_any_call(region_name="us-east-1")


def test_main_show_template_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    template = {"Outputs": {"BootstrapVersion": {"Value": "21"}}}
    path = tmp_path / "template.yaml"
    path.write_text("Outputs:\n  BootstrapVersion:\n    Value: '21'\n", encoding="utf-8")

    assert bootstrap.main(["--show-template", "--json", "--template", str(path)]) == 0
    assert json.loads(capsys.readouterr().out) == template


def test_main_show_template_needs_a_template() -> None:
    assert bootstrap.main(["--show-template"]) == 1


def test_main_reports_configuration_errors() -> None:
    assert bootstrap.main(["aws://111122223333/eu-west-2", "--legacy", "--trust", "444455556666"]) == 1


def test_main_reports_aws_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    def _denied(*_args: object, **_kwargs: object) -> None:
        raise ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "GetCallerIdentity")

    monkeypatch.setattr(bootstrap, "resolve_environments", _denied)

    assert bootstrap.main(["aws://111122223333/eu-west-2"]) == 1


def test_main_rejects_malformed_environments() -> None:
    assert bootstrap.main(["not-an-environment"]) == 1
