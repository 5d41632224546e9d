"""Transaction handling for the Keevo device.

The device signs legacy (type 0) transactions only. Fee-market input is
narrowed before it is sent: ``maxFeePerGas`` becomes the gas price and the
priority fee and access list are dropped. The signed envelope returned by the
device is decoded for v/r/s, which are merged back into the narrowed fields.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import rlp
from eth_utils import big_endian_to_int, keccak, to_bytes, to_checksum_address
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from rlp.exceptions import RLPException

from keevo_keyring.errors import MalformedDeviceResponseError
from keevo_keyring.hdwallet.eth import add_hex_prefix, remove_hex_prefix

logger = logging.getLogger(__name__)

LEGACY_TRANSACTION_TYPE = 0
LEGACY_ENVELOPE_FIELDS = 9  # nonce, gasPrice, gas, to, value, data, v, r, s


def to_quantity(value: int) -> str:
    """Hex quantity as used in JSON transactions (0 -> '0x0')."""
    return hex(value)


class TransactionFields(BaseModel):
    """Unsigned transaction fields as handed over by the wallet.

    Quantities may be ints or hex strings; keys may be camelCase or snake_case.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    nonce: int = 0
    gas_price: Optional[int] = Field(default=None, alias="gasPrice")
    gas_limit: int = Field(
        default=0, validation_alias=AliasChoices("gasLimit", "gas", "gas_limit")
    )
    to: Optional[str] = None
    value: int = 0
    data: str = "0x"
    chain_id: Optional[int] = Field(default=None, alias="chainId")
    max_fee_per_gas: Optional[int] = Field(default=None, alias="maxFeePerGas")
    max_priority_fee_per_gas: Optional[int] = Field(default=None, alias="maxPriorityFeePerGas")
    access_list: Optional[list] = Field(default=None, alias="accessList")
    type: Optional[int] = None

    @field_validator(
        "nonce", "gas_price", "gas_limit", "value", "chain_id",
        "max_fee_per_gas", "max_priority_fee_per_gas", "type",
        mode="before",
    )
    @classmethod
    def parse_quantity(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            return int(text, 16) if text.lower().startswith("0x") else int(text)
        return value

    @field_validator("to", mode="before")
    @classmethod
    def parse_address(cls, value: Any) -> Any:
        if value in (None, "", "0x"):
            return None
        if isinstance(value, bytes):
            return add_hex_prefix(value.hex())
        return value

    @field_validator("data", mode="before")
    @classmethod
    def parse_data(cls, value: Any) -> Any:
        if value is None:
            return "0x"
        if isinstance(value, bytes):
            return add_hex_prefix(value.hex())
        return add_hex_prefix(value)

    @property
    def is_fee_market(self) -> bool:
        return self.max_fee_per_gas is not None or (self.type is not None and self.type >= 2)

    @property
    def legacy_gas_price(self) -> int:
        """Gas price used for the legacy envelope."""
        if self.gas_price is not None:
            return self.gas_price
        if self.max_fee_per_gas is not None:
            return self.max_fee_per_gas
        raise ValueError("Transaction has neither gasPrice nor maxFeePerGas")

    def to_device_payload(self) -> dict:
        """JSON fields sent to the popup, already narrowed to a legacy transaction."""
        if self.is_fee_market:
            logger.info("Converting fee-market transaction to legacy gas price for the device")

        payload = {
            "type": to_quantity(LEGACY_TRANSACTION_TYPE),
            "nonce": to_quantity(self.nonce),
            "gasPrice": to_quantity(self.legacy_gas_price),
            "gasLimit": to_quantity(self.gas_limit),
            "value": to_quantity(self.value),
            "data": self.data,
        }
        if self.to is not None:
            payload["to"] = self.to
        if self.chain_id is not None:
            payload["chainId"] = to_quantity(self.chain_id)
        return payload


@dataclass(frozen=True)
class SignedTransaction:
    """Signed legacy transaction."""
    nonce: int
    gas_price: int
    gas_limit: int
    to: Optional[str]
    value: int
    data: str
    v: int
    r: int
    s: int
    chain_id: Optional[int] = None

    @property
    def type(self) -> int:
        return LEGACY_TRANSACTION_TYPE

    def _rlp_fields(self) -> list:
        return [
            self.nonce,
            self.gas_price,
            self.gas_limit,
            to_bytes(hexstr=self.to) if self.to else b"",
            self.value,
            to_bytes(hexstr=self.data),
            self.v,
            self.r,
            self.s,
        ]

    @property
    def raw_transaction(self) -> bytes:
        return rlp.encode(self._rlp_fields())

    @property
    def hash(self) -> bytes:
        return keccak(self.raw_transaction)

    def to_json(self) -> dict:
        result = {
            "type": to_quantity(self.type),
            "nonce": to_quantity(self.nonce),
            "gasPrice": to_quantity(self.gas_price),
            "gasLimit": to_quantity(self.gas_limit),
            "to": to_checksum_address(self.to) if self.to else None,
            "value": to_quantity(self.value),
            "data": self.data,
            "v": to_quantity(self.v),
            "r": to_quantity(self.r),
            "s": to_quantity(self.s),
        }
        if self.chain_id is not None:
            result["chainId"] = to_quantity(self.chain_id)
        return result


def decode_signed_transaction(encoded: str) -> tuple[int, int, int]:
    """Extract (v, r, s) from a hex encoded signed legacy transaction.

    Raises:
        MalformedDeviceResponseError: If the bytes are not a legacy envelope
    """
    try:
        items = rlp.decode(bytes.fromhex(remove_hex_prefix(encoded)))
    except (ValueError, RLPException) as e:
        raise MalformedDeviceResponseError(f"Cannot decode signed transaction: {e}") from e

    if not isinstance(items, (list, tuple)) or len(items) != LEGACY_ENVELOPE_FIELDS:
        raise MalformedDeviceResponseError("Device did not return a legacy transaction envelope")

    signature = items[6:]
    if not all(isinstance(item, bytes) for item in signature):
        raise MalformedDeviceResponseError("Device returned a malformed signature")

    v, r, s = (big_endian_to_int(item) for item in signature)
    return v, r, s


def build_signed_transaction(fields: TransactionFields, v: int, r: int, s: int) -> SignedTransaction:
    """Merge the device signature with the (narrowed) unsigned fields."""
    return SignedTransaction(
        nonce=fields.nonce,
        gas_price=fields.legacy_gas_price,
        gas_limit=fields.gas_limit,
        to=fields.to,
        value=fields.value,
        data=fields.data,
        v=v,
        r=r,
        s=s,
        chain_id=fields.chain_id,
    )
