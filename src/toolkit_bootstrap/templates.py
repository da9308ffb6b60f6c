"""
toolkit_bootstrap.templates — Template loading, serialization and the legacy template.

Templates are plain dict trees. YAML files may use CloudFormation short-form
tags (!Ref, !Sub, !GetAtt ...); they are expanded to their long form on load
so the rest of the package only ever sees JSON-shaped data.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from toolkit_bootstrap.exceptions import ConfigurationError
from toolkit_bootstrap.models import BootstrappingParameters

_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class CfnYamlLoader(yaml.SafeLoader):
    """SafeLoader that understands CloudFormation tags and keeps dates as strings."""


CfnYamlLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != _TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def _construct_cfn_tag(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> dict[str, Any]:
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)

    if tag_suffix in ("Ref", "Condition"):
        return {tag_suffix: value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        resource, _, attribute = value.partition(".")
        return {"Fn::GetAtt": [resource, attribute]}
    return {f"Fn::{tag_suffix}": value}


CfnYamlLoader.add_multi_constructor("!", _construct_cfn_tag)


def parse_structured(text: str) -> Any:
    """Parse JSON, falling back to CloudFormation-flavored YAML."""
    try:
        return json.loads(text)
    except ValueError:
        return yaml.load(text, Loader=CfnYamlLoader)  # noqa: S506 (SafeLoader subclass)


def load_structured_file(file_path: str | Path) -> dict[str, Any]:
    path = Path(file_path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigurationError(f"Bootstrap template not found: {path}") from None

    parsed = parse_structured(text)
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"Bootstrap template is not a mapping: {path}")
    return parsed


def serialize_structure(data: Any, as_json: bool) -> str:
    if as_json:
        return json.dumps(data, indent=2)
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


# ---------------------------------------------------------------------------
# Legacy bootstrap template
# ---------------------------------------------------------------------------


def legacy_bootstrap_template(params: BootstrappingParameters) -> dict[str, Any]:
    """Build the pre-versioning bootstrap template: a single staging bucket.

    The template deliberately has no BootstrapVersion output, so it reads as
    version 0.
    """
    block_public_access = params.public_access_block_configuration in (None, True)

    encryption: dict[str, Any] = {"SSEAlgorithm": "aws:kms"}
    if params.kms_key_id:
        encryption["KMSMasterKeyID"] = params.kms_key_id

    bucket_properties: dict[str, Any] = {
        "AccessControl": "Private",
        "BucketEncryption": {
            "ServerSideEncryptionConfiguration": [
                {"ServerSideEncryptionByDefault": encryption},
            ],
        },
        "PublicAccessBlockConfiguration": {
            "Fn::If": [
                "UsePublicAccessBlockConfiguration",
                {
                    "BlockPublicAcls": True,
                    "BlockPublicPolicy": True,
                    "IgnorePublicAcls": True,
                    "RestrictPublicBuckets": True,
                },
                {"Ref": "AWS::NoValue"},
            ],
        },
    }
    if params.bucket_name:
        bucket_properties["BucketName"] = params.bucket_name

    return {
        "Description": (
            "The CDK Toolkit Stack. It was created by `cdk bootstrap` and manages "
            "resources necessary for managing your Cloud Applications with AWS CDK."
        ),
        "Conditions": {
            "UsePublicAccessBlockConfiguration": {
                "Fn::Equals": ["true" if block_public_access else "false", "true"],
            },
        },
        "Resources": {
            "StagingBucket": {
                "Type": "AWS::S3::Bucket",
                "Properties": bucket_properties,
                "UpdateReplacePolicy": "Retain",
                "DeletionPolicy": "Retain",
            },
            "StagingBucketPolicy": {
                "Type": "AWS::S3::BucketPolicy",
                "Properties": {
                    "Bucket": {"Ref": "StagingBucket"},
                    "PolicyDocument": {
                        "Id": "AccessControl",
                        "Version": "2012-10-17",
                        "Statement": [
                            {
                                "Sid": "AllowSSLRequestsOnly",
                                "Action": "s3:*",
                                "Effect": "Deny",
                                "Resource": [
                                    {"Fn::Sub": "${StagingBucket.Arn}"},
                                    {"Fn::Sub": "${StagingBucket.Arn}/*"},
                                ],
                                "Condition": {"Bool": {"aws:SecureTransport": "false"}},
                                "Principal": "*",
                            },
                        ],
                    },
                },
            },
        },
        "Outputs": {
            "BucketName": {
                "Description": "The name of the S3 bucket owned by the CDK toolkit stack",
                "Value": {"Ref": "StagingBucket"},
            },
            "BucketDomainName": {
                "Description": "The domain name of the S3 bucket owned by the CDK toolkit stack",
                "Value": {"Fn::GetAtt": ["StagingBucket", "RegionalDomainName"]},
            },
        },
    }
