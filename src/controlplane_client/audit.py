from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .masking import SecretsMask, mask_sensitive_fields
from .observability import REQUEST_AUDIT, log_event

AUDIT_MAX_BYTES = 1000

log = logging.getLogger("controlplane_client.audit")


def only_n_bytes(text: str, num_bytes: int) -> str:
    """Cut ``text`` to ``num_bytes`` of UTF-8; a split trailing character is dropped."""
    raw = text.encode("utf-8")
    if len(raw) <= num_bytes:
        return text
    return raw[:num_bytes].decode("utf-8", errors="ignore")


def mask_uri(uri: str, mask: SecretsMask) -> str:
    """
    Mask secrets in ``uri``, including query values that are only
    recognizable once percent/plus decoding is undone.
    """
    parts = urlsplit(uri)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    masked = [(mask.mask_string(k), mask.mask_string(v)) for k, v in pairs]
    if masked != pairs:
        query = urlencode(masked, safe=mask.placeholder)
        uri = urlunsplit(parts._replace(query=query))
    return mask.mask_string(uri)


def _emit(record: Dict[str, Any], mask: Optional[SecretsMask]) -> str:
    if mask is None:
        tree = mask_sensitive_fields(record)
    else:
        record["uri"] = mask_uri(record["uri"], mask)
        # json.dumps escapes non-ASCII, quotes and backslashes, so mask first.
        tree = mask.mask(record)
    line = json.dumps(tree, default=str)
    if mask is not None:
        line = mask.mask_string(line)
    line = only_n_bytes(line, AUDIT_MAX_BYTES)
    log_event(log, REQUEST_AUDIT, message=line, method=record["method"])
    return line


def audit_get_payload(uri: str, mask: Optional[SecretsMask] = None) -> str:
    # query parameters are already part of the uri
    return _emit({"method": "GET", "uri": uri}, mask)


def audit_non_get_payload(
    method: str, uri: str, payload: Any, mask: Optional[SecretsMask] = None
) -> str:
    if isinstance(payload, (bytes, bytearray)):
        payload = bytes(payload).decode("utf-8", errors="replace")
    return _emit({"method": method, "uri": uri, "payload": payload}, mask)


__all__ = [
    "AUDIT_MAX_BYTES",
    "audit_get_payload",
    "audit_non_get_payload",
    "mask_uri",
    "only_n_bytes",
]
