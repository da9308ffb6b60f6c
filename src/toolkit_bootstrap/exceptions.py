"""
toolkit_bootstrap.exceptions — Error taxonomy for bootstrap and deployment checks.

Every error raised to a caller of this package is a ToolkitError subclass,
except unclassified botocore ClientErrors, which propagate unchanged.
"""

from __future__ import annotations


class ToolkitError(Exception):
    """Terminal, user-facing failure. The message must be actionable on its own."""


class ConfigurationError(ToolkitError):
    """
    Raised for an invalid combination of caller-supplied bootstrap settings.

    Always detected before the remote call it would have affected.

    Attributes:
        accounts: Offending account ids, when the error is a trust overlap.
    """

    def __init__(self, message: str, *, accounts: tuple[str, ...] = ()) -> None:
        self.accounts = accounts
        super().__init__(message)


class ParameterNotFoundError(ToolkitError):
    """Raised when the bootstrap version SSM parameter does not exist."""

    def __init__(self, parameter_name: str) -> None:
        self.parameter_name = parameter_name
        super().__init__(
            f"SSM parameter {parameter_name} not found. Has the environment been bootstrapped? "
            "Please run 'cdk bootstrap' "
            "(see https://docs.aws.amazon.com/cdk/latest/guide/bootstrapping.html)"
        )


class ParameterAccessDeniedError(ToolkitError):
    """Raised when the caller may not read the bootstrap version SSM parameter."""

    def __init__(self, parameter_name: str, detail: str) -> None:
        self.parameter_name = parameter_name
        self.detail = detail
        super().__init__(f"Access denied reading SSM parameter {parameter_name}: {detail}")


class BootstrapVersionError(ToolkitError):
    """
    Raised when the bootstrap stack is older than a deployment requires.

    Attributes:
        required: Minimum bootstrap version the deployment needs.
        found:    Version discovered in the environment.
    """

    def __init__(self, *, required: int, found: int) -> None:
        self.required = required
        self.found = found
        super().__init__(
            f"This CDK deployment requires bootstrap stack version '{required}', "
            f"found '{found}'. Please run 'cdk bootstrap'."
        )


class CfnEvaluationError(ToolkitError):
    """Raised when a CloudFormation expression cannot be evaluated."""


class ExportNotFoundError(CfnEvaluationError):
    """Raised when Fn::ImportValue names an export that no stack publishes."""

    def __init__(self, export_name: str) -> None:
        self.export_name = export_name
        super().__init__(f"Export {export_name!r} could not be found for evaluation")


class DeploymentFailedError(ToolkitError):
    """Raised when the bootstrap stack deployment does not reach a complete state."""
