import json
from dataclasses import dataclass

from controlplane_client.masking import REDACTED, SecretsMask, mask_sensitive_fields
from pydantic import BaseModel, SecretStr


class Credentials(BaseModel):
    user: str
    password: SecretStr


@dataclass
class Token:
    comment: str
    value: str


def test_mask_string_replaces_every_occurrence():
    mask = SecretsMask(["dapi-secret"])
    text = json.dumps({"token": "dapi-secret", "note": "uses dapi-secret twice"})
    masked = mask.mask_string(text)
    assert "dapi-secret" not in masked
    assert masked.count(REDACTED) == 2


def test_mask_string_is_idempotent():
    mask = SecretsMask(["s3cr3t", "other"])
    once = mask.mask_string('{"a": "s3cr3t", "b": "other-s3cr3t"}')
    assert mask.mask_string(once) == once


def test_longer_secret_masked_before_contained_one():
    mask = SecretsMask(["abc", "abcdef"])
    assert mask.mask_string("xabcdefx") == f"x{REDACTED}x"


def test_empty_secrets_are_ignored():
    mask = SecretsMask(["", None])
    assert len(mask) == 0
    assert mask.mask_string("unchanged") == "unchanged"


def test_mask_walks_nested_structures():
    mask = SecretsMask(["hunter2"])
    masked = mask.mask(
        {
            "list": ["hunter2", 1, {"deep": "pw=hunter2"}],
            "tuple": ("hunter2",),
            "num": 3,
        }
    )
    assert masked == {
        "list": [REDACTED, 1, {"deep": f"pw={REDACTED}"}],
        "tuple": [REDACTED],
        "num": 3,
    }


def test_mask_handles_models_and_dataclasses():
    mask = SecretsMask(["tok-123"], placeholder="***")
    masked = mask.mask(
        [
            Credentials(user="tok-123", password="pw"),
            Token(comment="c", value="tok-123"),
        ]
    )
    assert masked == [
        {"user": "***", "password": "***"},
        {"comment": "c", "value": "***"},
    ]


def test_mask_sensitive_fields_redacts_secret_types_only():
    value = {"creds": Credentials(user="admin", password="pw"), "plain": "pw"}
    assert mask_sensitive_fields(value) == {
        "creds": {"user": "admin", "password": REDACTED},
        "plain": "pw",
    }


def test_add_registers_secret():
    mask = SecretsMask()
    mask.add("late-token")
    assert "late-token" in mask
    assert mask.mask_string("late-token") == REDACTED
