from __future__ import annotations

import asyncio
import enum
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol
from urllib.parse import urlsplit

import httpx
from dotenv import load_dotenv

from .errors import AuthorizationError, ClientConfigError
from .observability import AUTH_AUTHORIZE, AUTH_CACHED, log_event
from .retry import RetryPolicy

DEFAULT_API_VERSION = "2.0"
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_USER_AGENT = "controlplane-python-client-sdk"

log = logging.getLogger("controlplane_client.config")


class AuthType(str, enum.Enum):
    BASIC = "BASIC"
    BEARER = "BEARER"


class CloudServiceProvider(str, enum.Enum):
    """Clouds the control plane is hosted on."""

    AWS = "AmazonWebServices"
    AZURE = "Azure"


class Authorizer(Protocol):
    """Fills ``config.token`` in place when no token is set yet."""

    async def authorize(self, config: "ClientConfig") -> None: ...


class NullAuthorizer:
    async def authorize(self, config: "ClientConfig") -> None:
        return None


class FunctionAuthorizer:
    """Adapts a plain ``async def fn(config)`` to the Authorizer protocol."""

    def __init__(self, fn: Callable[["ClientConfig"], Awaitable[None]]):
        self.fn = fn

    async def authorize(self, config: "ClientConfig") -> None:
        await self.fn(config)


@dataclass
class ClientConfig:
    """
    Connection settings shared by every request made with this config.
    - The httpx transport is built once, lazily, and reused
    - Re-authorization is serialized by a lock owned by the config
    """

    host: str
    token: Optional[str] = field(default=None, repr=False)
    # Epoch seconds, recorded by authorizers that know the token lifetime.
    token_create_time: Optional[int] = None
    token_expiry_time: Optional[int] = None
    auth_type: AuthType = AuthType.BEARER
    authorizer: Authorizer = field(default_factory=NullAuthorizer, repr=False)
    default_headers: Dict[str, str] = field(default_factory=dict)
    user_agent: Optional[str] = None
    insecure_skip_verify: bool = False
    timeout_seconds: Optional[float] = None
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    http: Optional[httpx.AsyncClient] = field(default=None, repr=False, compare=False)

    _owns_http: bool = field(default=False, init=False, repr=False, compare=False)
    _auth_lock: asyncio.Lock = field(
        default_factory=asyncio.Lock, init=False, repr=False, compare=False
    )

    def setup(self) -> None:
        """Build the transport on first use; later calls are no-ops."""
        if self.http is not None:
            return
        if not self.timeout_seconds:
            self.timeout_seconds = DEFAULT_TIMEOUT_SECONDS
        self._owns_http = True
        self.http = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds),
            verify=not self.insecure_skip_verify,
        )

    @property
    def transport(self) -> httpx.AsyncClient:
        self.setup()
        assert self.http is not None
        return self.http

    async def aclose(self) -> None:
        if self._owns_http and self.http is not None:
            await self.http.aclose()
            self.http = None
            self._owns_http = False

    async def get_or_create_token(self) -> None:
        if isinstance(self.authorizer, NullAuthorizer):
            return
        # Several tasks may share one config; only one refreshes the token.
        async with self._auth_lock:
            if self.token:
                log_event(log, AUTH_CACHED, level=logging.DEBUG)
                return
            log_event(log, AUTH_AUTHORIZE)
            try:
                await self.authorizer.authorize(self)
            except Exception as exc:
                raise AuthorizationError(f"Authorization failed: {exc}") from exc

    def get_auth_header(self) -> Dict[str, str]:
        scheme = "Basic" if self.auth_type == AuthType.BASIC else "Bearer"
        return {
            "Authorization": f"{scheme} {self.token or ''}",
            "Content-Type": "application/json",
        }

    def get_user_agent_header(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent or DEFAULT_USER_AGENT}

    def get_default_headers(self) -> Dict[str, str]:
        # Later entries win: a caller default header named "User-Agent" is
        # replaced by the user agent header.
        headers: Dict[str, str] = {}
        headers.update(self.get_auth_header())
        headers.update(self.default_headers)
        headers.update(self.get_user_agent_header())
        return headers

    def get_request_uri(self, path: str, api_version: str = "") -> str:
        version = api_version or DEFAULT_API_VERSION
        try:
            parts = urlsplit(self.host)
        except ValueError as exc:
            raise ClientConfigError(f"Invalid host {self.host!r}: {exc}") from exc
        if not parts.scheme or not parts.netloc:
            raise ClientConfigError(
                f"Invalid host {self.host!r}: expected scheme://host"
            )
        netloc = parts.netloc.rpartition("@")[2]
        return f"{parts.scheme}://{netloc}/api/{version}{path}"


def _get_bool_env(name: str, default: bool) -> bool:
    """Parse a boolean environment variable with a safe default."""
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if val in {"0", "false", "f", "no", "n", "off"}:
        return False
    return default


def load_env_config(*, use_dotenv: bool = True) -> Dict[str, Any]:
    """Read ClientConfig keyword arguments from environment (optional .env)."""
    if use_dotenv:
        load_dotenv()
    values: Dict[str, Any] = {
        "host": os.getenv("CONTROLPLANE_HOST", "").strip(),
        "token": os.getenv("CONTROLPLANE_TOKEN", "").strip() or None,
        "insecure_skip_verify": _get_bool_env("CONTROLPLANE_INSECURE", False),
    }
    auth_type = os.getenv("CONTROLPLANE_AUTH_TYPE", "").strip().upper()
    if auth_type:
        try:
            values["auth_type"] = AuthType(auth_type)
        except ValueError as exc:
            raise ValueError(
                f"CONTROLPLANE_AUTH_TYPE must be BASIC or BEARER, got {auth_type!r}"
            ) from exc
    user_agent = os.getenv("CONTROLPLANE_USER_AGENT", "").strip()
    if user_agent:
        values["user_agent"] = user_agent
    timeout = os.getenv("CONTROLPLANE_TIMEOUT_SECONDS", "").strip()
    if timeout:
        try:
            values["timeout_seconds"] = float(timeout)
        except ValueError as exc:
            raise ValueError(
                f"CONTROLPLANE_TIMEOUT_SECONDS must be a number, got {timeout!r}"
            ) from exc
    return values


def config_from_env(**overrides: Any) -> ClientConfig:
    """Create a ClientConfig from environment variables."""
    values = load_env_config()
    values.update(overrides)
    has_authorizer = overrides.get("authorizer") is not None
    if not values.get("host") or not (values.get("token") or has_authorizer):
        raise ValueError(
            "Missing CONTROLPLANE_HOST or CONTROLPLANE_TOKEN in environment."
        )
    return ClientConfig(**values)


__all__ = [
    "AuthType",
    "Authorizer",
    "ClientConfig",
    "CloudServiceProvider",
    "DEFAULT_API_VERSION",
    "DEFAULT_TIMEOUT_SECONDS",
    "DEFAULT_USER_AGENT",
    "FunctionAuthorizer",
    "NullAuthorizer",
    "config_from_env",
    "load_env_config",
]
