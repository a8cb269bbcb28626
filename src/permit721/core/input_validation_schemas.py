from __future__ import annotations

from typing import Any, Literal

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, conint, constr, field_validator

from permit721.core.typed_signing import PERMIT_TYPES

Uint256 = conint(ge=0, lt=2**256)


def _checksummed(value: str) -> str:
    if not is_address(value):
        raise ValueError(f"invalid address: {value!r}")
    return to_checksum_address(value)


class PermitDomainInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: constr(min_length=1)
    version: str = "1"
    chain_id: conint(gt=0) = Field(alias="chainId")
    verifying_contract: str = Field(alias="verifyingContract")

    @field_validator("verifying_contract")
    @classmethod
    def check_contract(cls, value: str) -> str:
        return _checksummed(value)


class PermitMessageInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    spender: str
    token_id: Uint256 = Field(alias="tokenId")
    nonce: Uint256
    deadline: Uint256

    @field_validator("spender")
    @classmethod
    def check_spender(cls, value: str) -> str:
        return _checksummed(value)


class PermitTypedDataInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    types: dict[str, list[dict[str, str]]]
    primary_type: Literal["Permit"] = Field(alias="primaryType")
    domain: PermitDomainInput
    message: PermitMessageInput

    @field_validator("types")
    @classmethod
    def check_permit_type(cls, value: dict[str, list[dict[str, str]]]) -> dict[str, list[dict[str, str]]]:
        if value.get("Permit") != PERMIT_TYPES["Permit"]:
            raise ValueError("types.Permit does not match Permit(address spender,uint256 tokenId,uint256 nonce,uint256 deadline)")
        if "EIP712Domain" not in value:
            raise ValueError("types.EIP712Domain is required")
        return value

    def to_typed_data(self) -> dict[str, Any]:
        """Normalized eth_signTypedData_v4 payload."""
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.model_dump(by_alias=True),
            "message": self.message.model_dump(by_alias=True),
        }
