from __future__ import annotations

import dataclasses
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, SecretBytes, SecretStr

REDACTED = "**REDACTED**"


def _to_tree(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="python", by_alias=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    return value


def _walk(value: Any, leaf, placeholder: str = REDACTED) -> Any:
    value = _to_tree(value)
    if isinstance(value, (SecretStr, SecretBytes)):
        return placeholder
    if isinstance(value, str):
        return leaf(value)
    if isinstance(value, Mapping):
        return {
            leaf(k) if isinstance(k, str) else k: _walk(v, leaf, placeholder)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_walk(v, leaf, placeholder) for v in value]
    return value


def mask_sensitive_fields(value: Any) -> Any:
    """Copy of ``value`` as plain containers with SecretStr/SecretBytes redacted."""
    return _walk(value, lambda s: s)


class SecretsMask:
    """
    Set of literal secret values (tokens, passwords) to keep out of logs.
    - mask_string() for already-serialized text
    - mask() for structured data before serialization
    """

    def __init__(self, secrets: Iterable[str] = (), placeholder: str = REDACTED):
        self.placeholder = placeholder
        self._secrets: set[str] = set()
        for secret in secrets:
            self.add(secret)

    def add(self, secret: str | None) -> None:
        if secret:
            self._secrets.add(secret)

    def __contains__(self, secret: object) -> bool:
        return secret in self._secrets

    def __len__(self) -> int:
        return len(self._secrets)

    def mask_string(self, text: str) -> str:
        # Longest first so a secret containing another is never half-replaced.
        for secret in sorted(self._secrets, key=len, reverse=True):
            text = text.replace(secret, self.placeholder)
        return text

    def mask(self, value: Any) -> Any:
        return _walk(value, self.mask_string, self.placeholder)


__all__ = ["REDACTED", "SecretsMask", "mask_sensitive_fields"]
