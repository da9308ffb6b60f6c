"""
toolkit_bootstrap.account_cache — Disk cache of credential → account identity.

Resolving the account behind a set of credentials costs an STS round trip.
The answer never changes for a given access key, so it is cached in a single
JSON file shared by every process on the machine:

    { "<fingerprint>": {"accountId": "...", "partition": "aws"}, ... }

Guarantees:
  - At most ``max_entries`` keys. When full, the whole file is reset before
    the next write (rotation of credentials would otherwise grow it forever).
  - A missing, empty, corrupt or unreadable file reads as an empty cache.
  - Writes go to a temp file in the same directory and are renamed into
    place, so readers see either the old or the new file.
  - A write that fails (read-only home, permission denied) is reported at
    debug level and otherwise ignored; the cache degrades to pass-through.
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

from toolkit_bootstrap.config import default_account_cache_file
from toolkit_bootstrap.models import AccountIdentity
from toolkit_bootstrap.notify import LoggerNotifier, Notifier


class AccountAccessKeyCache:
    MAX_ENTRIES = 1000

    def __init__(
        self,
        file_path: str | Path | None = None,
        notifier: Notifier | None = None,
        *,
        max_entries: int = MAX_ENTRIES,
    ) -> None:
        self.cache_file = Path(file_path) if file_path else default_account_cache_file()
        self._notifier: Notifier = notifier or LoggerNotifier()
        self._max_entries = max_entries

    def fetch(self, key: str, resolver: Callable[[], AccountIdentity]) -> AccountIdentity:
        """Return the cached identity for ``key``, resolving and storing it on a miss."""
        cached = self.get(key)
        if cached is not None:
            return cached

        value = resolver()
        self.put(key, value)
        return value

    def get(self, key: str) -> AccountIdentity | None:
        return AccountIdentity.from_json(self._load_map().get(key))

    def put(self, key: str, value: AccountIdentity) -> None:
        entries = self._load_map()
        if len(entries) >= self._max_entries:
            entries = {}
        entries[key] = value.to_json()
        self._save_map(entries)

    def _load_map(self) -> dict[str, Any]:
        try:
            raw = self.cache_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            self._notifier.debug(f"Failed to read account cache {self.cache_file}: {exc}")
            return {}

        try:
            parsed = json.loads(raw)
        except ValueError:
            return {}
        if not isinstance(parsed, dict):
            return {}
        return parsed

    def _save_map(self, entries: dict[str, Any]) -> None:
        directory = self.cache_file.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self.cache_file.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(entries, handle, indent=2)
                os.replace(tmp_name, self.cache_file)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            self._notifier.debug(f"Failed to store account cache {self.cache_file}: {exc}")


def credentials_fingerprint(access_key_id: str, session_token: str | None = None) -> str:
    """Derive a cache key from credentials without storing the session token."""
    if not session_token:
        return access_key_id
    digest = hashlib.sha256(session_token.encode("utf-8")).hexdigest()
    return f"{access_key_id}:{digest[:16]}"


def partition_from_arn(arn: str) -> str:
    parts = arn.split(":")
    if len(parts) < 6 or parts[0] != "arn" or not parts[1]:
        raise ValueError(f"Not an ARN: {arn!r}")
    return parts[1]


def resolve_account(sts_client: Any, cache: AccountAccessKeyCache, fingerprint: str) -> AccountIdentity:
    """Resolve the caller's account via STS GetCallerIdentity, through the cache."""

    def _caller_identity() -> AccountIdentity:
        identity = sts_client.get_caller_identity()
        return AccountIdentity(
            account_id=str(identity["Account"]),
            partition=partition_from_arn(str(identity["Arn"])),
        )

    return cache.fetch(fingerprint, _caller_identity)
