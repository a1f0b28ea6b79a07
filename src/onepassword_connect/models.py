"""Wire models for the Connect API.

Every model matches incoming field names case-insensitively, serializes by its
camelCase wire alias, and writes enumerations as their wire token.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ConnectModel(BaseModel):
    """Base model with case-insensitive field matching."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _match_keys_case_insensitively(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            alias = field.alias or name
            known[name.lower()] = alias
            known[alias.lower()] = alias
        matched: dict[str, Any] = {}
        for key, value in data.items():
            target = known.get(str(key).lower(), key) if isinstance(key, str) else key
            matched.setdefault(target, value)
        return matched


class VaultType(StrEnum):
    USER_CREATED = "USER_CREATED"
    PERSONAL = "PERSONAL"
    EVERYONE = "EVERYONE"
    TRANSFER = "TRANSFER"


class ItemCategory(StrEnum):
    LOGIN = "LOGIN"
    PASSWORD = "PASSWORD"
    API_CREDENTIAL = "API_CREDENTIAL"
    SERVER = "SERVER"
    DATABASE = "DATABASE"
    CREDIT_CARD = "CREDIT_CARD"
    MEMBERSHIP = "MEMBERSHIP"
    PASSPORT = "PASSPORT"
    SOFTWARE_LICENSE = "SOFTWARE_LICENSE"
    OUTDOOR_LICENSE = "OUTDOOR_LICENSE"
    SECURE_NOTE = "SECURE_NOTE"
    WIRELESS_ROUTER = "WIRELESS_ROUTER"
    BANK_ACCOUNT = "BANK_ACCOUNT"
    DRIVER_LICENSE = "DRIVER_LICENSE"
    IDENTITY = "IDENTITY"
    REWARD_PROGRAM = "REWARD_PROGRAM"
    DOCUMENT = "DOCUMENT"
    EMAIL_ACCOUNT = "EMAIL_ACCOUNT"
    SOCIAL_SECURITY_NUMBER = "SOCIAL_SECURITY_NUMBER"
    MEDICAL_RECORD = "MEDICAL_RECORD"
    SSH_KEY = "SSH_KEY"
    CUSTOM = "CUSTOM"


class ItemState(StrEnum):
    ARCHIVED = "ARCHIVED"
    DELETED = "DELETED"


class FieldType(StrEnum):
    STRING = "STRING"
    EMAIL = "EMAIL"
    CONCEALED = "CONCEALED"
    URL = "URL"
    OTP = "OTP"
    DATE = "DATE"
    MONTH_YEAR = "MONTH_YEAR"
    MENU = "MENU"


class FieldPurpose(StrEnum):
    # The server sends an empty string for fields without a purpose.
    NONE = ""
    USERNAME = "USERNAME"
    PASSWORD = "PASSWORD"
    NOTES = "NOTES"


class CharacterSet(StrEnum):
    LETTERS = "LETTERS"
    DIGITS = "DIGITS"
    SYMBOLS = "SYMBOLS"


class PatchOp(StrEnum):
    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"


class ApiRequestAction(StrEnum):
    READ = "READ"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ApiRequestResult(StrEnum):
    SUCCESS = "SUCCESS"
    DENY = "DENY"


class ResourceType(StrEnum):
    ITEM = "ITEM"
    VAULT = "VAULT"


class Vault(ConnectModel):
    id: str | None = None
    name: str | None = None
    description: str | None = None
    attribute_version: int | None = None
    content_version: int | None = None
    items: int | None = None
    type: VaultType | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class VaultReference(ConnectModel):
    id: str = ""


class Section(ConnectModel):
    id: str | None = None
    label: str | None = None


class GeneratorRecipe(ConnectModel):
    length: int = 32
    character_sets: list[CharacterSet] | None = None
    exclude_characters: str | None = None


class ItemField(ConnectModel):
    id: str = ""
    section: Section | None = None
    type: FieldType = FieldType.STRING
    purpose: FieldPurpose | None = None
    label: str | None = None
    value: str | None = None
    generate: bool | None = None
    recipe: GeneratorRecipe | None = None
    entropy: float | None = None


class ItemUrl(ConnectModel):
    label: str | None = None
    primary: bool | None = None
    href: str = ""


class File(ConnectModel):
    id: str | None = None
    name: str | None = None
    size: int | None = None
    content_path: str | None = Field(default=None, alias="content_path")
    section: Section | None = None
    content: str | None = None


class Item(ConnectModel):
    id: str | None = None
    title: str | None = None
    vault: VaultReference = Field(default_factory=VaultReference)
    category: ItemCategory = ItemCategory.LOGIN
    urls: list[ItemUrl] | None = None
    favorite: bool | None = None
    tags: list[str] | None = None
    version: int | None = None
    state: ItemState | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_edited_by: str | None = None


class FullItem(Item):
    sections: list[Section] | None = None
    item_fields: list[ItemField] | None = Field(default=None, alias="fields")
    files: list[File] | None = None


class PatchOperation(ConnectModel):
    """One RFC 6902 operation applied to an item."""

    op: PatchOp
    path: str
    value: Any | None = None

    @field_validator("path")
    @classmethod
    def _validate_pointer(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(
                "path must start with a forward slash (/) as per RFC6901 "
                "JSON Pointer syntax"
            )
        return value


class ServiceDependency(ConnectModel):
    service: str | None = None
    status: str | None = None
    message: str | None = None


class ServerHealth(ConnectModel):
    name: str | None = None
    version: str | None = None
    dependencies: list[ServiceDependency] | None = None


class Actor(ConnectModel):
    id: str | None = None
    account: str | None = None
    jti: str | None = None
    user_agent: str | None = None
    request_ip: str | None = None


class ResourceReference(ConnectModel):
    id: str | None = None


class Resource(ConnectModel):
    type: ResourceType | None = None
    vault: ResourceReference | None = None
    item: ResourceReference | None = None
    item_version: int | None = None


class ApiRequest(ConnectModel):
    request_id: str | None = None
    timestamp: datetime | None = None
    action: ApiRequestAction | None = None
    result: ApiRequestResult | None = None
    actor: Actor | None = None
    resource: Resource | None = None
