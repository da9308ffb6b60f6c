"""
toolkit_bootstrap.evaluate_template — Partial evaluator for CloudFormation expressions.

Resolves the intrinsics deployment orchestration needs to turn into concrete
values: Ref, Fn::Join, Fn::Split, Fn::Select, Fn::Sub and Fn::ImportValue.
Anything else (Fn::GetAtt, Fn::If, ...) is left as a plain mapping for the
template consumer.

Remote data is fetched lazily and at most once per evaluator:
  - exports: every ListExports page, on the first Fn::ImportValue;
  - stack resources: every ListStackResources page, on the first Ref to a
    template resource.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from toolkit_bootstrap.exceptions import CfnEvaluationError, ExportNotFoundError
from toolkit_bootstrap.sdk import Sdk

_SUB_TOKEN = re.compile(r"\$\{([^}]*)\}")


class LazyLookupExport:
    """All exports visible in the region, listed on first use."""

    def __init__(self, sdk: Sdk) -> None:
        self._sdk = sdk
        self._exports: dict[str, str] | None = None

    def lookup_export(self, name: str) -> str:
        exports = self._list_exports()
        if name not in exports:
            raise ExportNotFoundError(name)
        return exports[name]

    def _list_exports(self) -> dict[str, str]:
        if self._exports is None:
            cfn = self._sdk.cloudformation()
            exports: dict[str, str] = {}
            next_token: str | None = None
            while True:
                request = {"NextToken": next_token} if next_token else {}
                response = cfn.list_exports(**request)
                for item in response.get("Exports", []):
                    exports[str(item["Name"])] = str(item.get("Value", ""))
                next_token = response.get("NextToken")
                if not next_token:
                    break
            self._exports = exports
        return self._exports


class LazyListStackResources:
    """Logical id → physical id for one deployed stack, listed on first use."""

    def __init__(self, sdk: Sdk, stack_name: str) -> None:
        self._sdk = sdk
        self._stack_name = stack_name
        self._resources: dict[str, str] | None = None

    def list_stack_resources(self) -> dict[str, str]:
        if self._resources is None:
            cfn = self._sdk.cloudformation()
            resources: dict[str, str] = {}
            next_token: str | None = None
            while True:
                request: dict[str, Any] = {"StackName": self._stack_name}
                if next_token:
                    request["NextToken"] = next_token
                response = cfn.list_stack_resources(**request)
                for summary in response.get("StackResourceSummaries", []):
                    physical_id = summary.get("PhysicalResourceId")
                    if physical_id:
                        resources[str(summary["LogicalResourceId"])] = str(physical_id)
                next_token = response.get("NextToken")
                if not next_token:
                    break
            self._resources = resources
        return self._resources


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class EvaluateCloudFormationTemplate:
    def __init__(
        self,
        *,
        template: dict[str, Any],
        stack_name: str,
        parameters: dict[str, Any],
        account: str,
        region: str,
        partition: str,
        sdk: Sdk,
        url_suffix: str | None = None,
    ) -> None:
        self.template = template
        self.stack_name = stack_name
        self._parameters = dict(parameters)
        self._pseudo_parameters: dict[str, str] = {
            "AWS::AccountId": account,
            "AWS::Region": region,
            "AWS::Partition": partition,
            "AWS::URLSuffix": url_suffix or _url_suffix(partition),
            "AWS::StackName": stack_name,
        }
        self._exports = LazyLookupExport(sdk)
        self._stack_resources = LazyListStackResources(sdk, stack_name)
        self._functions: dict[str, Callable[[Any], Any]] = {
            "Ref": self._ref,
            "Fn::Join": self._fn_join,
            "Fn::Split": self._fn_split,
            "Fn::Select": self._fn_select,
            "Fn::Sub": self._fn_sub,
            "Fn::ImportValue": self._fn_import_value,
        }

    def evaluate_cfn_expression(self, expression: Any) -> Any:
        if isinstance(expression, list):
            return [self.evaluate_cfn_expression(item) for item in expression]

        if isinstance(expression, dict):
            if len(expression) == 1:
                key, argument = next(iter(expression.items()))
                function = self._functions.get(key)
                if function is not None:
                    return function(self.evaluate_cfn_expression(argument))
            return {key: self.evaluate_cfn_expression(value) for key, value in expression.items()}

        return expression

    # -----------------------------------------------------------------------
    # Intrinsics
    # -----------------------------------------------------------------------

    def _ref(self, name: Any) -> Any:
        return self._resolve_name(str(name))

    def _fn_join(self, args: Any) -> str:
        delimiter, items = _two_args("Fn::Join", args)
        if not isinstance(items, list):
            raise CfnEvaluationError(f"Fn::Join expects a list of values, got {items!r}")
        return _stringify(delimiter).join(_stringify(item) for item in items)

    def _fn_split(self, args: Any) -> list[str]:
        delimiter, value = _two_args("Fn::Split", args)
        if not delimiter:
            raise CfnEvaluationError("Fn::Split requires a non-empty delimiter")
        return _stringify(value).split(_stringify(delimiter))

    def _fn_select(self, args: Any) -> Any:
        raw_index, items = _two_args("Fn::Select", args)
        try:
            index = int(raw_index)
        except (TypeError, ValueError):
            raise CfnEvaluationError(f"Fn::Select index must be an integer, got {raw_index!r}") from None
        if not isinstance(items, list) or not 0 <= index < len(items):
            raise CfnEvaluationError(f"Fn::Select index {index} out of range for {items!r}")
        return items[index]

    def _fn_sub(self, args: Any) -> str:
        if isinstance(args, str):
            template, variables = args, {}
        else:
            template, variables = _two_args("Fn::Sub", args)
            if not isinstance(variables, dict):
                raise CfnEvaluationError(f"Fn::Sub variables must be a mapping, got {variables!r}")

        def _substitute(match: re.Match[str]) -> str:
            name = match.group(1)
            if name.startswith("!"):
                return "${" + name[1:] + "}"
            if name in variables:
                return _stringify(variables[name])
            return _stringify(self._resolve_name(name))

        return _SUB_TOKEN.sub(_substitute, _stringify(template))

    def _fn_import_value(self, name: Any) -> str:
        return self._exports.lookup_export(_stringify(name))

    def _resolve_name(self, name: str) -> Any:
        if name in self._parameters:
            return self._parameters[name]
        if name in self._pseudo_parameters:
            return self._pseudo_parameters[name]
        if name in (self.template.get("Resources") or {}):
            physical_id = self._stack_resources.list_stack_resources().get(name)
            if physical_id is not None:
                return physical_id
        raise CfnEvaluationError(f"Parameter or resource '{name}' could not be found for evaluation")


def _two_args(function_name: str, args: Any) -> tuple[Any, Any]:
    if not isinstance(args, list) or len(args) != 2:
        raise CfnEvaluationError(f"{function_name} expects exactly two arguments, got {args!r}")
    return args[0], args[1]


def _url_suffix(partition: str) -> str:
    if partition == "aws-cn":
        return "amazonaws.com.cn"
    return "amazonaws.com"
