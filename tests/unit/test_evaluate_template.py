"""Unit tests for toolkit_bootstrap.evaluate_template."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from toolkit_bootstrap.evaluate_template import EvaluateCloudFormationTemplate
from toolkit_bootstrap.exceptions import CfnEvaluationError, ExportNotFoundError
from toolkit_bootstrap.models import Environment
from toolkit_bootstrap.sdk import Sdk

_ENV = Environment(account="0123456789", region="ap-south-east-2")


def _evaluator(
    cfn: MagicMock | None = None,
    *,
    template: dict[str, Any] | None = None,
    parameters: dict[str, Any] | None = None,
) -> EvaluateCloudFormationTemplate:
    return EvaluateCloudFormationTemplate(
        template=template or {},
        stack_name="test-stack",
        parameters=parameters or {},
        account="0123456789",
        region="ap-south-east-2",
        partition="aws",
        sdk=Sdk(_ENV, clients={"cloudformation": cfn or MagicMock()}),
    )


def _paged_exports() -> MagicMock:
    cfn = MagicMock()
    cfn.list_exports.side_effect = [
        {"Exports": [{"Name": "first", "Value": "one"}], "NextToken": "page-2"},
        {"Exports": [{"Name": "second", "Value": "two"}]},
    ]
    return cfn


def test_join() -> None:
    assert _evaluator().evaluate_cfn_expression({"Fn::Join": [",", ["a", "b", "c"]]}) == "a,b,c"


def test_split() -> None:
    assert _evaluator().evaluate_cfn_expression({"Fn::Split": ["|", "a|b|c"]}) == ["a", "b", "c"]


def test_select() -> None:
    assert _evaluator().evaluate_cfn_expression({"Fn::Select": [1, ["apples", "grapes", "oranges"]]}) == "grapes"


def test_select_of_split_of_join() -> None:
    expression = {
        "Fn::Select": [2, {"Fn::Split": ["-", {"Fn::Join": ["-", ["x", "y", "z"]]}]}],
    }
    assert _evaluator().evaluate_cfn_expression(expression) == "z"


def test_select_out_of_range() -> None:
    with pytest.raises(CfnEvaluationError, match="out of range"):
        _evaluator().evaluate_cfn_expression({"Fn::Select": [5, ["a"]]})


def test_malformed_join() -> None:
    with pytest.raises(CfnEvaluationError, match="expects exactly two arguments"):
        _evaluator().evaluate_cfn_expression({"Fn::Join": ["only-one"]})


def test_sub_with_variables() -> None:
    expression = {"Fn::Sub": ["${a}-${b}", {"a": "1", "b": "2"}]}
    assert _evaluator().evaluate_cfn_expression(expression) == "1-2"


def test_sub_with_parameters_and_pseudo_parameters() -> None:
    evaluator = _evaluator(parameters={"Stage": "prod"})
    expression = {"Fn::Sub": "${Stage}-${AWS::Region}-${AWS::AccountId}"}
    assert evaluator.evaluate_cfn_expression(expression) == "prod-ap-south-east-2-0123456789"


def test_sub_escape_is_kept_literal() -> None:
    assert _evaluator().evaluate_cfn_expression({"Fn::Sub": "${!Literal}"}) == "${Literal}"


def test_sub_variables_can_be_expressions() -> None:
    expression = {"Fn::Sub": ["${joined}", {"joined": {"Fn::Join": ["/", ["a", "b"]]}}]}
    assert _evaluator().evaluate_cfn_expression(expression) == "a/b"


def test_ref_to_parameter_and_pseudo_parameter() -> None:
    evaluator = _evaluator(parameters={"Qualifier": "hnb659fds"})

    assert evaluator.evaluate_cfn_expression({"Ref": "Qualifier"}) == "hnb659fds"
    assert evaluator.evaluate_cfn_expression({"Ref": "AWS::Partition"}) == "aws"
    assert evaluator.evaluate_cfn_expression({"Ref": "AWS::StackName"}) == "test-stack"
    assert evaluator.evaluate_cfn_expression({"Ref": "AWS::URLSuffix"}) == "amazonaws.com"


def test_ref_to_resource_lists_stack_resources_once() -> None:
    cfn = MagicMock()
    cfn.list_stack_resources.side_effect = [
        {
            "StackResourceSummaries": [
                {"LogicalResourceId": "Bucket", "PhysicalResourceId": "my-bucket"},
            ],
            "NextToken": "page-2",
        },
        {
            "StackResourceSummaries": [
                {"LogicalResourceId": "Queue", "PhysicalResourceId": "https://sqs/q"},
            ],
        },
    ]
    evaluator = _evaluator(cfn, template={"Resources": {"Bucket": {}, "Queue": {}}})

    assert evaluator.evaluate_cfn_expression({"Ref": "Bucket"}) == "my-bucket"
    assert evaluator.evaluate_cfn_expression({"Ref": "Queue"}) == "https://sqs/q"
    assert cfn.list_stack_resources.call_count == 2
    cfn.list_stack_resources.assert_any_call(StackName="test-stack", NextToken="page-2")


def test_unknown_ref() -> None:
    with pytest.raises(CfnEvaluationError, match="'Missing' could not be found"):
        _evaluator().evaluate_cfn_expression({"Ref": "Missing"})


def test_import_value_pages_exports_once() -> None:
    cfn = _paged_exports()
    evaluator = _evaluator(cfn)

    assert evaluator.evaluate_cfn_expression({"Fn::ImportValue": "second"}) == "two"
    assert evaluator.evaluate_cfn_expression({"Fn::ImportValue": "first"}) == "one"
    assert cfn.list_exports.call_count == 2
    cfn.list_exports.assert_any_call(NextToken="page-2")


def test_import_value_unknown_export() -> None:
    cfn = _paged_exports()

    with pytest.raises(ExportNotFoundError, match="'third' could not be found"):
        _evaluator(cfn).evaluate_cfn_expression({"Fn::ImportValue": "third"})


def test_unsupported_intrinsics_pass_through() -> None:
    expression = {"Fn::GetAtt": ["Bucket", "Arn"]}
    assert _evaluator().evaluate_cfn_expression(expression) == expression


def test_nested_structures_are_evaluated() -> None:
    evaluator = _evaluator(parameters={"Env": "dev"})
    expression = {
        "Name": {"Fn::Join": ["-", ["svc", {"Ref": "Env"}]]},
        "Tags": [{"Ref": "AWS::Region"}, "static"],
        "Count": 3,
    }
    assert evaluator.evaluate_cfn_expression(expression) == {
        "Name": "svc-dev",
        "Tags": ["ap-south-east-2", "static"],
        "Count": 3,
    }


def test_booleans_render_in_lowercase() -> None:
    assert _evaluator().evaluate_cfn_expression({"Fn::Join": ["=", ["enabled", True]]}) == "enabled=true"
