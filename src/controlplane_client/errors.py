from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError

DOCS_BASE_URL = "https://docs.databricks.com/dev-tools/api/latest"

_ENDPOINT_RE = re.compile(r"/api/2.0/([^/]+)/([^/]+)$")
_PRE_RE = re.compile(r"<pre>(.*)</pre>")


class ControlPlaneClientError(Exception):
    """Base error for client failures."""


class ClientConfigError(ControlPlaneClientError, ValueError):
    """Raised when the configured host cannot be turned into a request URL."""


class PayloadError(ControlPlaneClientError, TypeError):
    """Raised when a payload cannot be encoded for the requested body mode."""


class TransportError(ControlPlaneClientError):
    """No response was received; the httpx exception is the __cause__."""


class ResponseCloseError(ControlPlaneClientError):
    """Closing the response failed after the body was read."""


class AuthorizationError(ControlPlaneClientError):
    """The configured authorizer failed to produce a token."""


class ResponseParseError(ControlPlaneClientError):
    pass


class ModelValidationError(ControlPlaneClientError):
    pass


class APIErrorBody(BaseModel):
    """Error payload as returned by the REST API.

    ``detail``/``status`` are only sent by the SCIM endpoints (RFC 7644 3.7.3).
    """

    error_code: Optional[str] = None
    message: Optional[str] = None
    detail: Optional[str] = None
    status: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class APIError(ControlPlaneClientError):
    """Normalized error for any non-success API response."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str = "",
        resource: str = "",
        status_code: int = 0,
    ):
        self.message = message
        self.error_code = error_code
        self.resource = resource
        self.status_code = status_code
        super().__init__(message)

    def __str__(self) -> str:
        docs = self.documentation_url()
        if not docs:
            return f"{self.message}\n({self.status_code} on {self.resource})"
        return f"{self.message}\nPlease consult API docs at {docs} for details."

    def __repr__(self) -> str:
        return (
            f"APIError(error_code={self.error_code!r}, message={self.message!r}, "
            f"resource={self.resource!r}, status_code={self.status_code})"
        )

    def is_missing(self) -> bool:
        return self.status_code == 404

    def documentation_url(self) -> str:
        """Guess the docs page for ``/api/2.0/<category>/<action>`` resources."""
        match = _ENDPOINT_RE.search(self.resource or "")
        if not match:
            return ""
        return f"{DOCS_BASE_URL}/{match.group(1)}.html#{match.group(2)}"


def error_code_from_reason(reason_phrase: Optional[str]) -> str:
    """'Bad Gateway.' -> 'BAD_GATEWAY'; missing reason -> 'UNKNOWN'."""
    reason = (reason_phrase or "").strip(" .")
    if not reason:
        return "UNKNOWN"
    return reason.upper().replace(" ", "_")


def _decode_error_body(body: bytes) -> APIErrorBody:
    # JSON null decodes to an empty body rather than failing validation.
    if body.strip() == b"null":
        return APIErrorBody()
    return APIErrorBody.model_validate_json(body)


def parse_api_error(
    body: bytes,
    *,
    status_code: int,
    resource: str,
    reason_phrase: Optional[str] = None,
) -> APIError:
    """
    Normalize an error response body into an APIError.
    - JSON bodies map onto APIErrorBody
    - HTML bodies (usually from a proxy) use the first <pre> block as message
    - Anything else becomes a generic error carrying status and raw body
    - SCIM errors fill message/error_code from detail/status
    """
    try:
        error_body = _decode_error_body(body)
    except ValidationError as exc:
        error_code = error_code_from_reason(reason_phrase)
        text = body.decode("utf-8", errors="replace")
        match = _PRE_RE.search(text)
        if not match:
            return APIError(
                message=f"Response from server ({status_code}) {text}: {exc}",
                error_code=error_code,
                resource=resource,
                status_code=status_code,
            )
        error_body = APIErrorBody(
            error_code=error_code, message=match.group(1).strip(" .")
        )

    error = APIError(
        message=error_body.message or "",
        error_code=error_body.error_code or "",
        resource=resource,
        status_code=status_code,
    )
    if not error.message and error_body.detail:
        if error_body.detail == "null":
            error.message = "SCIM API Internal Error"
        else:
            error.message = error_body.detail
        error.error_code = f"SCIM_{error_body.status or ''}"
    return error


__all__ = [
    "APIError",
    "APIErrorBody",
    "AuthorizationError",
    "ClientConfigError",
    "ControlPlaneClientError",
    "DOCS_BASE_URL",
    "ModelValidationError",
    "PayloadError",
    "ResponseCloseError",
    "ResponseParseError",
    "TransportError",
    "error_code_from_reason",
    "parse_api_error",
]
