"""EIP-712 typed data preparation.

Only ``V4`` typed data can be signed on the device. The payload is reduced to
the four EIP-712 members and serialised as compact JSON before transport.
"""

import json
from enum import Enum
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field

TYPED_MESSAGE_KEYS = ("types", "primaryType", "domain", "message")


class SignTypedDataVersion(str, Enum):
    V1 = "V1"
    V3 = "V3"
    V4 = "V4"


SUPPORTED_TYPED_DATA_VERSION = SignTypedDataVersion.V4


class TypedField(BaseModel):
    name: str
    type: str


class TypedMessage(BaseModel):
    """Shape check for a sanitized typed message."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    types: dict[str, list[TypedField]] = Field(default_factory=dict)
    primary_type: str = Field(default="", alias="primaryType")
    domain: dict[str, Any] = Field(default_factory=dict)
    message: dict[str, Any] = Field(default_factory=dict)


def sanitize_typed_data(typed_data: Union[Mapping, str]) -> dict:
    """Keep the EIP-712 members and make sure EIP712Domain is declared.

    Empty members are dropped. Raises ``ValueError`` (pydantic ValidationError)
    if the remaining members have the wrong shape.
    """
    if isinstance(typed_data, str):
        typed_data = json.loads(typed_data)

    sanitized = {key: typed_data[key] for key in TYPED_MESSAGE_KEYS if typed_data.get(key)}
    if "types" in sanitized:
        sanitized["types"] = {"EIP712Domain": [], **sanitized["types"]}

    TypedMessage.model_validate(sanitized)
    return sanitized


def to_canonical_json(typed_data: Union[Mapping, str]) -> str:
    """Sanitized typed data as compact JSON, member order preserved."""
    return json.dumps(sanitize_typed_data(typed_data), separators=(",", ":"), ensure_ascii=False)
