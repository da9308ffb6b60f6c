"""
toolkit_bootstrap.sdk — boto3 clients bound to one environment.

Clients are created lazily and reused for the life of the Sdk object.
Tests pass either a moto-backed boto3.Session or pre-built clients.
"""

from __future__ import annotations

from typing import Any

import boto3

from toolkit_bootstrap.account_cache import (
    AccountAccessKeyCache,
    credentials_fingerprint,
    resolve_account,
)
from toolkit_bootstrap.models import AccountIdentity, Environment


class Sdk:
    def __init__(
        self,
        environment: Environment,
        *,
        session: Any = None,
        account_cache: AccountAccessKeyCache | None = None,
        clients: dict[str, Any] | None = None,
    ) -> None:
        self.environment = environment
        self._session: Any = session or boto3.Session(region_name=environment.region)
        self._account_cache = account_cache
        self._clients: dict[str, Any] = dict(clients or {})

    def client(self, service_name: str) -> Any:
        if service_name not in self._clients:
            self._clients[service_name] = self._session.client(
                service_name, region_name=self.environment.region
            )
        return self._clients[service_name]

    def cloudformation(self) -> Any:
        return self.client("cloudformation")

    def ssm(self) -> Any:
        return self.client("ssm")

    def iam(self) -> Any:
        return self.client("iam")

    def ecr(self) -> Any:
        return self.client("ecr")

    def sts(self) -> Any:
        return self.client("sts")

    def current_account(self) -> AccountIdentity:
        """Resolve the account and partition the credentials belong to."""
        cache = self._account_cache or AccountAccessKeyCache()
        return resolve_account(self.sts(), cache, self._fingerprint())

    def _fingerprint(self) -> str:
        credentials = self._session.get_credentials()
        if credentials is None:
            return f"anonymous:{self.environment.key}"
        frozen = credentials.get_frozen_credentials()
        return credentials_fingerprint(frozen.access_key, frozen.token)
