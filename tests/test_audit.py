import json
import logging

import pytest
from controlplane_client.audit import (
    AUDIT_MAX_BYTES,
    audit_get_payload,
    audit_non_get_payload,
    mask_uri,
    only_n_bytes,
)
from controlplane_client.masking import REDACTED, SecretsMask
from pydantic import BaseModel, SecretStr


class NewUser(BaseModel):
    name: str
    password: SecretStr


def _audit_lines(caplog):
    return [
        r.getMessage()
        for r in caplog.records
        if r.name == "controlplane_client.audit"
    ]


def test_get_audit_has_method_and_uri_only(caplog):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    audit_get_payload("https://x.example.com/api/2.0/clusters/list?limit=5")

    record = json.loads(_audit_lines(caplog)[0])
    assert record == {
        "method": "GET",
        "uri": "https://x.example.com/api/2.0/clusters/list?limit=5",
    }


def test_non_get_audit_includes_payload(caplog):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    audit_non_get_payload(
        "POST", "https://x.example.com/api/2.0/clusters/create", {"num_workers": 2}
    )

    record = json.loads(_audit_lines(caplog)[0])
    assert record["method"] == "POST"
    assert record["payload"] == {"num_workers": 2}


def test_audit_masks_literal_secrets(caplog):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    mask = SecretsMask(["dapi-abc"])
    audit_non_get_payload(
        "POST",
        "https://x.example.com/api/2.0/token/create",
        {"token_value": "dapi-abc"},
        mask,
    )

    line = _audit_lines(caplog)[0]
    assert "dapi-abc" not in line
    assert REDACTED in line


def test_audit_redacts_secret_fields_without_mask(caplog):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    audit_non_get_payload(
        "POST",
        "https://x.example.com/api/2.0/preview/scim/v2/Users",
        NewUser(name="ada", password="pa55"),
    )

    line = _audit_lines(caplog)[0]
    assert "pa55" not in line
    assert json.loads(line)["payload"] == {"name": "ada", "password": REDACTED}


def test_raw_string_payload_is_logged_as_text(caplog):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    audit_non_get_payload("PUT", "https://x.example.com/api/2.0/dbfs/put", b"raw")

    assert json.loads(_audit_lines(caplog)[0])["payload"] == "raw"


def test_audit_record_truncated_to_budget(caplog):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    line = audit_non_get_payload(
        "POST",
        "https://x.example.com/api/2.0/workspace/import",
        {"content": "a" * 5000},
    )

    assert len(line.encode("utf-8")) == AUDIT_MAX_BYTES
    assert _audit_lines(caplog)[0] == line


def test_only_n_bytes_counts_bytes_not_characters():
    assert only_n_bytes("short", 10) == "short"
    assert only_n_bytes("abcdef", 3) == "abc"
    # "é" is two bytes; cutting inside it drops the partial sequence
    assert only_n_bytes("aé", 2) == "a"
    assert len(only_n_bytes("é" * 600, AUDIT_MAX_BYTES).encode("utf-8")) <= 1000


@pytest.mark.parametrize(
    "secret",
    ["pässwörd", 'ab"cd', "back\\slash", "two words", "tab\tnew\nline"],
)
def test_audit_masks_secrets_that_json_escapes(caplog, secret):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    audit_non_get_payload(
        "POST",
        "https://x.example.com/api/2.0/secrets/put",
        {"scope": "s", "string_value": secret, "nested": [f"prefix-{secret}"]},
        SecretsMask([secret]),
    )

    line = _audit_lines(caplog)[0]
    record = json.loads(line)
    assert record["payload"] == {
        "scope": "s",
        "string_value": REDACTED,
        "nested": [f"prefix-{REDACTED}"],
    }
    assert json.dumps(secret)[1:-1] not in line
    assert secret not in line


def test_audit_masks_secret_used_as_key(caplog):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    audit_non_get_payload(
        "POST",
        "https://x.example.com/api/2.0/secrets/acls",
        {"dapi-abc": "MANAGE"},
        SecretsMask(["dapi-abc"]),
    )

    assert json.loads(_audit_lines(caplog)[0])["payload"] == {REDACTED: "MANAGE"}


@pytest.mark.parametrize(
    "encoded",
    ["my+secret", "my%20secret", "p%C3%A4ssw%C3%B6rd", "ab%22cd"],
)
def test_get_audit_masks_url_encoded_query_values(caplog, encoded):
    caplog.set_level(logging.INFO, logger="controlplane_client.audit")
    mask = SecretsMask(["my secret", "pässwörd", 'ab"cd'])
    audit_get_payload(
        f"https://x.example.com/api/2.0/secrets/get?scope=s&key={encoded}", mask
    )

    line = _audit_lines(caplog)[0]
    assert encoded not in line
    assert json.loads(line)["uri"] == (
        f"https://x.example.com/api/2.0/secrets/get?scope=s&key={REDACTED}"
    )


def test_mask_uri_leaves_clean_uri_untouched():
    uri = "https://x.example.com/api/2.0/clusters/list?names=a+b&limit=5"
    assert mask_uri(uri, SecretsMask(["dapi-abc"])) == uri
