"""Tests for EIP-712 payload preparation."""

import json

import pytest

from keevo_keyring.typed_data import (
    SUPPORTED_TYPED_DATA_VERSION,
    SignTypedDataVersion,
    sanitize_typed_data,
    to_canonical_json,
)

MAIL_TYPES = {"Mail": [{"name": "contents", "type": "string"}]}


def test_only_v4_supported():
    assert SUPPORTED_TYPED_DATA_VERSION == SignTypedDataVersion.V4
    assert SUPPORTED_TYPED_DATA_VERSION == "V4"


def test_drops_unknown_and_empty_members():
    sanitized = sanitize_typed_data({
        "types": MAIL_TYPES,
        "primaryType": "Mail",
        "domain": {},
        "message": {"contents": "hi"},
        "signature": "0x00",
    })

    assert list(sanitized) == ["types", "primaryType", "message"]


def test_declares_domain_type_first():
    sanitized = sanitize_typed_data({"types": MAIL_TYPES})

    assert list(sanitized["types"]) == ["EIP712Domain", "Mail"]
    assert sanitized["types"]["EIP712Domain"] == []


def test_keeps_existing_domain_type():
    domain_fields = [{"name": "name", "type": "string"}]
    sanitized = sanitize_typed_data({"types": {**MAIL_TYPES, "EIP712Domain": domain_fields}})

    assert sanitized["types"]["EIP712Domain"] == domain_fields


def test_accepts_json_string():
    assert sanitize_typed_data(json.dumps({"primaryType": "Mail"})) == {"primaryType": "Mail"}


def test_rejects_malformed_types():
    with pytest.raises(ValueError):
        sanitize_typed_data({"types": {"Mail": "contents"}})


def test_canonical_json_is_compact_and_ordered():
    payload = to_canonical_json({
        "message": {"contents": "hi"},
        "primaryType": "Mail",
        "types": MAIL_TYPES,
    })

    assert payload == (
        '{"types":{"EIP712Domain":[],"Mail":[{"name":"contents","type":"string"}]},'
        '"primaryType":"Mail","message":{"contents":"hi"}}'
    )
