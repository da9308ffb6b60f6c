"""Unit tests for toolkit_bootstrap.templates."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from toolkit_bootstrap.deploy_bootstrap import bootstrap_version_from_template
from toolkit_bootstrap.exceptions import ConfigurationError
from toolkit_bootstrap.models import BootstrappingParameters
from toolkit_bootstrap.templates import (
    legacy_bootstrap_template,
    load_structured_file,
    parse_structured,
    serialize_structure,
)

_YAML_TEMPLATE = """
Description: Bootstrap stack
Parameters:
  Qualifier:
    Type: String
    Default: hnb659fds
Resources:
  StagingBucket:
    Type: AWS::S3::Bucket
    Properties:
      BucketName: !Sub "cdk-${Qualifier}-assets-${AWS::AccountId}"
      Tags:
        - Key: created
          Value: 2024-01-01
  Policy:
    Type: AWS::S3::BucketPolicy
    Condition: HasBucket
    Properties:
      Bucket: !Ref StagingBucket
      Arn: !GetAtt StagingBucket.Arn
      Joined: !Join [",", [a, b]]
Outputs:
  BootstrapVersion:
    Value: "21"
"""


def test_yaml_short_form_tags_are_expanded() -> None:
    parsed = parse_structured(_YAML_TEMPLATE)
    resources = parsed["Resources"]

    assert resources["StagingBucket"]["Properties"]["BucketName"] == {
        "Fn::Sub": "cdk-${Qualifier}-assets-${AWS::AccountId}"
    }
    policy = resources["Policy"]["Properties"]
    assert policy["Bucket"] == {"Ref": "StagingBucket"}
    assert policy["Arn"] == {"Fn::GetAtt": ["StagingBucket", "Arn"]}
    assert policy["Joined"] == {"Fn::Join": [",", ["a", "b"]]}


def test_yaml_dates_stay_strings() -> None:
    parsed = parse_structured(_YAML_TEMPLATE)
    tags = parsed["Resources"]["StagingBucket"]["Properties"]["Tags"]
    assert tags[0]["Value"] == "2024-01-01"


def test_condition_tag_keeps_its_name() -> None:
    assert parse_structured("Cond: !Condition IsProd") == {"Cond": {"Condition": "IsProd"}}


def test_json_is_parsed_as_json() -> None:
    assert parse_structured('{"Resources": {}}') == {"Resources": {}}


def test_load_structured_file(tmp_path: Path) -> None:
    path = tmp_path / "bootstrap-template.yaml"
    path.write_text(_YAML_TEMPLATE, encoding="utf-8")

    template = load_structured_file(path)

    assert bootstrap_version_from_template(template) == 21


def test_load_structured_file_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        load_structured_file(tmp_path / "nope.yaml")


def test_load_structured_file_rejects_non_mappings(tmp_path: Path) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="not a mapping"):
        load_structured_file(path)


def test_serialize_structure() -> None:
    data = {"Resources": {"Bucket": {"Type": "AWS::S3::Bucket"}}}

    assert json.loads(serialize_structure(data, as_json=True)) == data
    assert yaml.safe_load(serialize_structure(data, as_json=False)) == data


# ---------------------------------------------------------------------------
# Legacy template
# ---------------------------------------------------------------------------


def test_legacy_template_has_no_version() -> None:
    template = legacy_bootstrap_template(BootstrappingParameters())

    assert bootstrap_version_from_template(template) == 0
    assert set(template["Outputs"]) == {"BucketName", "BucketDomainName"}


def test_legacy_template_defaults() -> None:
    template = legacy_bootstrap_template(BootstrappingParameters())
    bucket = template["Resources"]["StagingBucket"]["Properties"]

    assert "BucketName" not in bucket
    encryption = bucket["BucketEncryption"]["ServerSideEncryptionConfiguration"][0]
    assert encryption["ServerSideEncryptionByDefault"] == {"SSEAlgorithm": "aws:kms"}
    assert template["Conditions"]["UsePublicAccessBlockConfiguration"] == {
        "Fn::Equals": ["true", "true"]
    }


def test_legacy_template_applies_bucket_settings() -> None:
    template = legacy_bootstrap_template(
        BootstrappingParameters(
            bucket_name="my-staging",
            kms_key_id="alias/staging",
            public_access_block_configuration=False,
        )
    )
    bucket = template["Resources"]["StagingBucket"]["Properties"]

    assert bucket["BucketName"] == "my-staging"
    encryption = bucket["BucketEncryption"]["ServerSideEncryptionConfiguration"][0]
    assert encryption["ServerSideEncryptionByDefault"]["KMSMasterKeyID"] == "alias/staging"
    assert template["Conditions"]["UsePublicAccessBlockConfiguration"] == {
        "Fn::Equals": ["false", "true"]
    }
