from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TokenTransferRow(BaseModel):
    """One ERC-20 transfer as reported by the transfer-history provider.

    Numeric fields stay raw strings; parsing them is the normalizer's job.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True, coerce_numbers_to_str=True)

    hash: str
    timestamp: str = Field(default="", alias="timeStamp")
    from_address: str = Field(default="", alias="from")
    to_address: str = Field(default="", alias="to")
    contract_address: str = Field(default="", alias="contractAddress")
    value: str = "0"
    token_decimal: str | None = Field(default=None, alias="tokenDecimal")
    token_symbol: str | None = Field(default=None, alias="tokenSymbol")


class NativeTransferRow(BaseModel):
    """One native-currency transaction (value in wei)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True, coerce_numbers_to_str=True)

    hash: str
    timestamp: str = Field(default="", alias="timeStamp")
    from_address: str = Field(default="", alias="from")
    to_address: str = Field(default="", alias="to")
    value: str = "0"


__all__ = ["NativeTransferRow", "TokenTransferRow"]
