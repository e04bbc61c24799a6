"""controlplane_client package exports."""

from .audit import AUDIT_MAX_BYTES, audit_get_payload, audit_non_get_payload
from .client import (
    ControlPlaneClient,
    JSONPayload,
    RawPayload,
    build_request,
    encode_query,
    perform_query,
)
from .config import (
    AuthType,
    Authorizer,
    ClientConfig,
    CloudServiceProvider,
    FunctionAuthorizer,
    NullAuthorizer,
    config_from_env,
    load_env_config,
)
from .errors import (
    APIError,
    APIErrorBody,
    AuthorizationError,
    ClientConfigError,
    ControlPlaneClientError,
    ModelValidationError,
    PayloadError,
    ResponseCloseError,
    ResponseParseError,
    TransportError,
    parse_api_error,
)
from .masking import REDACTED, SecretsMask
from .retry import RetryDecision, RetryPolicy, decide_retry, is_transient

__all__ = [
    # Client
    "ControlPlaneClient",
    "perform_query",
    "build_request",
    "encode_query",
    "JSONPayload",
    "RawPayload",
    # Config
    "ClientConfig",
    "AuthType",
    "CloudServiceProvider",
    "Authorizer",
    "NullAuthorizer",
    "FunctionAuthorizer",
    "config_from_env",
    "load_env_config",
    # Retry
    "RetryPolicy",
    "RetryDecision",
    "decide_retry",
    "is_transient",
    # Exceptions
    "ControlPlaneClientError",
    "APIError",
    "APIErrorBody",
    "AuthorizationError",
    "ClientConfigError",
    "PayloadError",
    "TransportError",
    "ResponseCloseError",
    "ResponseParseError",
    "ModelValidationError",
    "parse_api_error",
    # Audit
    "SecretsMask",
    "REDACTED",
    "AUDIT_MAX_BYTES",
    "audit_get_payload",
    "audit_non_get_payload",
]
