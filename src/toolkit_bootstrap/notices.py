"""
toolkit_bootstrap.notices — Record of environments whose bootstrap version is known.

Advisory notices are matched against bootstrap versions after a deployment;
this registry only collects the (environment, version) pairs. It is an
optional collaborator: components hold ``NoticesRegistry | None`` and skip
reporting when it is absent.
"""

from __future__ import annotations

from dataclasses import dataclass

from toolkit_bootstrap.models import Environment


@dataclass(frozen=True)
class BootstrappedEnvironment:
    environment: Environment
    bootstrap_stack_version: int


class NoticesRegistry:
    def __init__(self) -> None:
        self._environments: dict[str, BootstrappedEnvironment] = {}

    def add_bootstrapped_environment(self, environment: Environment, version: int) -> None:
        """Remember the latest known bootstrap version for an environment."""
        self._environments[environment.key] = BootstrappedEnvironment(
            environment=environment,
            bootstrap_stack_version=version,
        )

    @property
    def bootstrapped_environments(self) -> list[BootstrappedEnvironment]:
        return list(self._environments.values())
