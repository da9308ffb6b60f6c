"""Shared fixtures for the toolkit_bootstrap unit tests."""

from __future__ import annotations

from pathlib import Path

import pytest


class RecordingNotifier:
    """Notifier that keeps every message for assertions."""

    def __init__(self) -> None:
        self.debugs: list[str] = []
        self.infos: list[str] = []
        self.warnings: list[str] = []

    def debug(self, message: str) -> None:
        self.debugs.append(message)

    def info(self, message: str) -> None:
        self.infos.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)


@pytest.fixture(autouse=True)
def aws_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Fake credentials for moto and a private CDK_HOME per test."""
    monkeypatch.setenv("AWS_REGION", "eu-west-2")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-2")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")  # pragma: allowlist secret
    monkeypatch.delenv("AWS_SESSION_TOKEN", raising=False)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.setenv("CDK_HOME", str(tmp_path / "cdk-home"))
    monkeypatch.delenv("CDK_BOOTSTRAP_TEMPLATE", raising=False)
    monkeypatch.delenv("CDK_TOOLKIT_STACK_NAME", raising=False)
    monkeypatch.delenv("CDK_BOOTSTRAP_QUALIFIER", raising=False)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
