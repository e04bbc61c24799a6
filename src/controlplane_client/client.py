import asyncio
import dataclasses
import enum
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError

from .audit import audit_get_payload, audit_non_get_payload
from .config import ClientConfig, config_from_env
from .errors import (
    APIError,
    ModelValidationError,
    PayloadError,
    ResponseCloseError,
    ResponseParseError,
    TransportError,
    parse_api_error,
)
from .masking import SecretsMask
from .observability import (
    REQUEST_COMPLETE,
    REQUEST_FAILED,
    REQUEST_RETRY,
    log_event,
)
from .retry import RetryDecision, RetryState, decide_retry

T = TypeVar("T", bound=BaseModel)

log = logging.getLogger("controlplane_client.client")


@dataclass(frozen=True)
class JSONPayload:
    """Value sent as a JSON body (or as query parameters for GET)."""

    value: Any


@dataclass(frozen=True)
class RawPayload:
    """Already-serialized request body, sent verbatim."""

    content: Union[str, bytes]


RequestPayload = Union[JSONPayload, RawPayload]


def as_payload(data: Any, marshal_json: bool = True) -> Optional[RequestPayload]:
    if data is None or isinstance(data, (JSONPayload, RawPayload)):
        return data
    if marshal_json:
        return JSONPayload(data)
    if not isinstance(data, (str, bytes)):
        raise PayloadError(
            f"Raw request body must be str or bytes, got {type(data).__name__}"
        )
    return RawPayload(data)


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _flatten(key: str, value: Any, pairs: List[Tuple[str, str]]) -> None:
    value = _plain(value)
    if value is None:
        return
    if isinstance(value, bool):
        pairs.append((key, "true" if value else "false"))
    elif isinstance(value, Mapping):
        for k, v in value.items():
            _flatten(f"{key}[{k}]" if key else str(k), v, pairs)
    elif isinstance(value, (list, tuple, set, frozenset)):
        for item in value:
            _flatten(key, item, pairs)
    elif isinstance(value, enum.Enum):
        pairs.append((key, str(value.value)))
    else:
        pairs.append((key, str(value)))


def encode_query(data: Any) -> List[Tuple[str, str]]:
    """
    Turn a pydantic model, dataclass or mapping into query parameters.
    - Field aliases are used as keys; None fields are left out
    - Sequences repeat the key, nested mappings become parent[child]
    """
    if isinstance(data, JSONPayload):
        data = data.value
    if data is None:
        return []
    values = _plain(data)
    if not isinstance(values, Mapping):
        raise PayloadError(
            f"Query parameters need a model, dataclass or mapping, "
            f"got {type(data).__name__}"
        )
    pairs: List[Tuple[str, str]] = []
    _flatten("", values, pairs)
    return pairs


def _json_body(value: Any) -> bytes:
    try:
        return json.dumps(_plain(value)).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"Payload is not JSON serializable: {exc}") from exc


def build_request(
    config: ClientConfig,
    method: str,
    path: str,
    *,
    api_version: str = "",
    headers: Optional[Mapping[str, str]] = None,
    payload: Optional[RequestPayload] = None,
    use_raw_path: bool = False,
    secrets_mask: Optional[SecretsMask] = None,
) -> httpx.Request:
    """Resolve URL, headers and body for one call and write its audit record."""
    method = method.upper()
    url = path if use_raw_path else config.get_request_uri(path, api_version)

    request_headers = config.get_default_headers()
    if headers:
        request_headers.update(headers)

    http = config.transport

    if method == "GET":
        if isinstance(payload, RawPayload):
            raise PayloadError("GET requests take query parameters, not a raw body")
        params = encode_query(payload)
        if params:
            url = str(httpx.URL(url).copy_merge_params(params))
        audit_get_payload(url, secrets_mask)
        return http.build_request(method, url, headers=request_headers)

    if payload is None:
        content = b""
        logged: Any = None
    elif isinstance(payload, RawPayload):
        content = payload.content
        logged = payload.content
    else:
        content = _json_body(payload.value)
        logged = payload.value
    audit_non_get_payload(method, url, logged, secrets_mask)
    return http.build_request(method, url, headers=request_headers, content=content)


async def _read_and_close(response: httpx.Response) -> bytes:
    try:
        body = await response.aread()
    except httpx.HTTPError as exc:
        try:
            await response.aclose()
        except httpx.HTTPError:
            log.debug("response close failed after read error", exc_info=True)
        raise TransportError(
            f"Error reading response from {response.request.url}: {exc}"
        ) from exc

    try:
        await response.aclose()
    except httpx.HTTPError as exc:
        raise ResponseCloseError(
            f"Error closing response from {response.request.url}: {exc}"
        ) from exc
    return body


async def _classify(response: httpx.Response) -> RetryDecision:
    if response.status_code < 400:
        return decide_retry(None)

    log_event(log, REQUEST_FAILED, level=logging.WARNING, status=response.status_code)
    # The body is consumed here; callers only ever see the APIError.
    body = await _read_and_close(response)
    error = parse_api_error(
        body,
        status_code=response.status_code,
        resource=response.request.url.path,
        reason_phrase=response.reason_phrase,
    )
    return decide_retry(error)


async def send_with_retry(
    config: ClientConfig, request: httpx.Request
) -> httpx.Response:
    """
    Send ``request`` until it succeeds or fails terminally.
    - No response at all: TransportError, never retried
    - Status < 400: the open (streamed) response is returned
    - Transient API errors wait the policy backoff and are sent again
    - Other API errors, or an exhausted budget, raise the last APIError
    """
    http = config.transport
    policy = config.retry_policy
    attempt = 0
    response: Optional[httpx.Response] = None
    decision = RetryDecision(should_retry=False)
    state = RetryState.SENDING

    while True:
        if state is RetryState.SENDING:
            try:
                response = await http.send(request, stream=True)
            except httpx.HTTPError as exc:
                raise TransportError(
                    f"Error calling {request.method} {request.url}: {exc}"
                ) from exc
            state = RetryState.EVALUATING

        elif state is RetryState.EVALUATING:
            assert response is not None
            decision = await _classify(response)
            if decision.error is None:
                state = RetryState.SUCCESS
            elif decision.should_retry and attempt < policy.max_retries:
                state = RetryState.RETRYING
            else:
                state = RetryState.FAILURE

        elif state is RetryState.RETRYING:
            wait = policy.backoff(attempt)
            attempt += 1
            log_event(
                log,
                REQUEST_RETRY,
                method=request.method,
                resource=request.url.path,
                error_code=decision.error.error_code if decision.error else None,
                attempt=attempt,
                wait_seconds=wait,
            )
            await asyncio.sleep(wait)
            state = RetryState.SENDING

        elif state is RetryState.SUCCESS:
            assert response is not None
            return response

        else:
            assert isinstance(decision.error, APIError)
            raise decision.error


async def perform_query(
    config: ClientConfig,
    method: str,
    path: str,
    api_version: str = "",
    headers: Optional[Mapping[str, str]] = None,
    marshal_json: bool = True,
    use_raw_path: bool = False,
    data: Any = None,
    secrets_mask: Optional[SecretsMask] = None,
) -> bytes:
    """
    Perform one API call and return the raw response body.
    - GET ``data`` becomes query parameters; other verbs send it as the body
    - ``marshal_json=False`` sends ``data`` (str/bytes) verbatim
    - ``use_raw_path`` treats ``path`` as a complete URL
    """
    method = method.upper()
    await config.get_or_create_token()
    payload = as_payload(data, marshal_json or method == "GET")
    request = build_request(
        config,
        method,
        path,
        api_version=api_version,
        headers=headers,
        payload=payload,
        use_raw_path=use_raw_path,
        secrets_mask=secrets_mask,
    )

    start = time.perf_counter()
    response = await send_with_retry(config, request)
    body = await _read_and_close(response)
    log_event(
        log,
        REQUEST_COMPLETE,
        level=logging.DEBUG,
        method=method,
        resource=request.url.path,
        status=response.status_code,
        duration_ms=int((time.perf_counter() - start) * 1000),
    )
    return body


class ControlPlaneClient:
    """
    Async client bound to one ClientConfig.
    - Adds the config token to its secrets mask before every call
    - Returns raw bytes, decoded JSON dicts or Pydantic-validated models
    - Owns no resource semantics; API wrappers build on top of it
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        secrets_mask: Optional[SecretsMask] = None,
        api_version: str = "",
    ):
        self.config = config
        self.secrets_mask = secrets_mask if secrets_mask is not None else SecretsMask()
        self.api_version = api_version

    @classmethod
    def from_env(cls, **kwargs: Any) -> "ControlPlaneClient":
        return cls(config_from_env(**kwargs))

    async def aclose(self) -> None:
        await self.config.aclose()

    async def __aenter__(self) -> "ControlPlaneClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        data: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        api_version: Optional[str] = None,
        marshal_json: bool = True,
        use_raw_path: bool = False,
    ) -> bytes:
        await self.config.get_or_create_token()
        self.secrets_mask.add(self.config.token)
        return await perform_query(
            self.config,
            method,
            path,
            api_version=self.api_version if api_version is None else api_version,
            headers=headers,
            marshal_json=marshal_json,
            use_raw_path=use_raw_path,
            data=data,
            secrets_mask=self.secrets_mask,
        )

    async def request_json(
        self, method: str, path: str, **kwargs: Any
    ) -> Dict[str, Any]:
        body = await self.request(method, path, **kwargs)
        # Handle empty responses (204 No Content, etc.)
        if not body.strip():
            return {}
        try:
            data = json.loads(body)
        except ValueError as exc:
            snippet = body[:500].decode("utf-8", errors="replace")
            raise ResponseParseError(
                f"Expected JSON from {method.upper()} {path}, "
                f"got non-JSON body snippet: {snippet!r}"
            ) from exc
        if not isinstance(data, dict):
            raise ResponseParseError(
                f"Expected top-level JSON object from {method.upper()} {path}, "
                f"got {type(data).__name__}"
            )
        return data

    async def request_model(
        self, model: Type[T], method: str, path: str, **kwargs: Any
    ) -> T:
        payload = await self.request_json(method, path, **kwargs)
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise ModelValidationError(
                f"Response did not match model {model.__name__}: {exc}"
            ) from exc

    async def get(
        self, path: str, *, params: Any = None, **kwargs: Any
    ) -> Dict[str, Any]:
        return await self.request_json("GET", path, data=params, **kwargs)

    async def post(
        self, path: str, *, json: Any = None, **kwargs: Any
    ) -> Dict[str, Any]:
        return await self.request_json("POST", path, data=json, **kwargs)

    async def put(
        self, path: str, *, json: Any = None, **kwargs: Any
    ) -> Dict[str, Any]:
        return await self.request_json("PUT", path, data=json, **kwargs)

    async def patch(
        self, path: str, *, json: Any = None, **kwargs: Any
    ) -> Dict[str, Any]:
        return await self.request_json("PATCH", path, data=json, **kwargs)

    async def delete(
        self, path: str, *, json: Any = None, **kwargs: Any
    ) -> Dict[str, Any]:
        return await self.request_json("DELETE", path, data=json, **kwargs)


__all__ = [
    "ControlPlaneClient",
    "JSONPayload",
    "RawPayload",
    "RequestPayload",
    "as_payload",
    "build_request",
    "encode_query",
    "perform_query",
    "send_with_retry",
]
