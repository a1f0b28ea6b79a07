from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from onepassword_connect.errors import DeserializationError
from onepassword_connect.models import (
    ApiRequest,
    ApiRequestAction,
    FieldPurpose,
    FieldType,
    File,
    FullItem,
    ItemCategory,
    ItemField,
    PatchOp,
    PatchOperation,
    Vault,
    VaultReference,
    VaultType,
)
from onepassword_connect.serialization import decode_payload, encode_body, to_wire


def test_vault_decodes_field_names_case_insensitively() -> None:
    payload = b"""{
        "ID": "v1",
        "Name": "Production",
        "CONTENTVERSION": 7,
        "type": "USER_CREATED",
        "createdAt": "2024-01-02T03:04:05Z"
    }"""

    vault = decode_payload(payload, Vault)

    assert vault.id == "v1"
    assert vault.name == "Production"
    assert vault.content_version == 7
    assert vault.type is VaultType.USER_CREATED
    assert vault.created_at is not None
    assert vault.created_at.year == 2024


def test_unknown_fields_are_ignored() -> None:
    vault = decode_payload(b'{"id": "v1", "futureField": true}', Vault)

    assert vault.id == "v1"


def test_full_item_reads_fields_and_files() -> None:
    payload = {
        "id": "i1",
        "title": "db",
        "vault": {"id": "v1"},
        "category": "DATABASE",
        "fields": [
            {"id": "username", "type": "STRING", "purpose": "USERNAME", "value": "u"},
            {"id": "notes", "type": "STRING", "purpose": "", "value": "n"},
        ],
        "files": [{"id": "f1", "name": "a.txt", "size": 3, "content_path": "/x"}],
    }

    item = decode_payload(json.dumps(payload).encode(), FullItem)

    assert item.category is ItemCategory.DATABASE
    assert item.vault.id == "v1"
    assert item.item_fields is not None
    assert item.item_fields[0].purpose is FieldPurpose.USERNAME
    assert item.item_fields[1].purpose is FieldPurpose.NONE
    assert item.files == [File(id="f1", name="a.txt", size=3, content_path="/x")]


def test_wire_form_omits_unset_fields_and_writes_enum_tokens() -> None:
    item = FullItem(
        title="db",
        vault=VaultReference(id="v1"),
        category=ItemCategory.DATABASE,
        item_fields=[
            ItemField(
                id="password",
                type=FieldType.CONCEALED,
                purpose=FieldPurpose.PASSWORD,
                value="s3cret",
            )
        ],
    )

    wire = to_wire(item)

    assert wire == {
        "title": "db",
        "vault": {"id": "v1"},
        "category": "DATABASE",
        "fields": [
            {
                "id": "password",
                "type": "CONCEALED",
                "purpose": "PASSWORD",
                "value": "s3cret",
            }
        ],
    }


def test_encoded_item_decodes_to_equal_value() -> None:
    item = FullItem(
        title="api",
        vault=VaultReference(id="v1"),
        category=ItemCategory.API_CREDENTIAL,
        tags=["prod"],
    )

    decoded = decode_payload(encode_body(item) or b"", FullItem)

    assert decoded.model_dump() == item.model_dump()
    assert decoded.category is ItemCategory.API_CREDENTIAL


def test_encode_body_handles_lists_of_models_and_none() -> None:
    operations = [PatchOperation(op=PatchOp.REPLACE, path="/title", value="new")]

    assert encode_body(None) is None
    assert json.loads(encode_body(operations) or b"") == [
        {"op": "replace", "path": "/title", "value": "new"}
    ]


def test_patch_path_must_be_json_pointer() -> None:
    with pytest.raises(ValidationError, match="forward slash"):
        PatchOperation(op=PatchOp.ADD, path="title", value="x")


def test_activity_record_decodes_nested_resource() -> None:
    payload = b"""[{
        "requestId": "r1",
        "action": "READ",
        "result": "SUCCESS",
        "actor": {"id": "a1", "userAgent": "cli"},
        "resource": {"type": "ITEM", "vault": {"id": "v1"}, "itemVersion": 2}
    }]"""

    records = decode_payload(payload, list[ApiRequest])

    assert records[0].action is ApiRequestAction.READ
    assert records[0].actor is not None
    assert records[0].actor.user_agent == "cli"
    assert records[0].resource is not None
    assert records[0].resource.item_version == 2


def test_invalid_json_raises_deserialization_error() -> None:
    with pytest.raises(DeserializationError) as excinfo:
        decode_payload(b"<html>", Vault, http_status=200)

    assert excinfo.value.http_status == 200
    assert excinfo.value.target == "Vault"


def test_shape_mismatch_raises_deserialization_error() -> None:
    with pytest.raises(DeserializationError, match="does not match"):
        decode_payload(b'{"items": "many"}', Vault)
