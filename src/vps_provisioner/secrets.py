from __future__ import annotations

import base64
import json
import os
from typing import Any, Optional

try:  # pragma: no cover
    import boto3  # type: ignore
except Exception:  # pragma: no cover
    boto3 = None


class SecretError(ValueError):
    """Raised when a secret reference cannot be resolved."""


class SecretResolver:
    """Resolves secret references used in place of literal config values.

    A value may be a plain string, ``{env = "NAME"}`` to read an environment
    variable, or ``{aws_secret = "name", key = "field"}`` to read from AWS
    Secrets Manager. Resolved AWS secrets are cached per resolver.
    """

    def __init__(self):
        self._cache: dict[tuple[str, Optional[str]], Any] = {}

    def resolve(self, value: Any) -> Any:
        if isinstance(value, dict):
            if "aws_secret" in value:
                return self._resolve_aws_secret(value)
            if "env" in value:
                return self._resolve_env(value)
            raise SecretError(f"unsupported secret reference keys: {', '.join(sorted(value))}")
        return value

    @staticmethod
    def _resolve_env(spec: dict[str, Any]) -> str:
        name = str(spec["env"])
        try:
            return os.environ[name]
        except KeyError:
            raise SecretError(f"environment variable {name} is not set") from None

    def _resolve_aws_secret(self, spec: dict[str, Any]) -> Any:
        if boto3 is None:
            raise SecretError("boto3 is required to resolve aws_secret references (pip install boto3)")
        name = str(spec["aws_secret"])
        key = spec.get("key")
        cache_key = (name, key if key is None else str(key))
        if cache_key in self._cache:
            return self._cache[cache_key]

        try:
            client = boto3.client("secretsmanager")
            response = client.get_secret_value(SecretId=name)
        except Exception as exc:  # noqa: BLE001
            raise SecretError(f"Unable to read secret {name}: {exc}") from exc
        secret_str = response.get("SecretString")
        if secret_str is None:
            binary = response.get("SecretBinary")
            if binary is None:
                raise SecretError(f"Secret {name} has no SecretString or SecretBinary")
            secret_str = base64.b64decode(binary).decode()

        value: Any = secret_str
        if key is not None:
            try:
                payload = json.loads(secret_str)
            except json.JSONDecodeError:
                payload = None
            if not isinstance(payload, dict):
                raise SecretError(f"Secret {name} is not a JSON object; cannot look up key '{key}'")
            try:
                value = payload[str(key)]
            except KeyError:
                raise SecretError(f"Secret {name} has no key '{key}'") from None

        self._cache[cache_key] = value
        return value
