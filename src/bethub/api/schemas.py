from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from bethub.signing import ApiCreds


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignPayload(_Payload):
    method: str = Field(min_length=1)
    request_path: str = Field(alias="requestPath", min_length=1)
    body: str = ""
    timestamp: Optional[int] = None
    address: str = Field(min_length=1)


class BuilderSignPayload(_Payload):
    path: str = Field(min_length=1)
    method: str = Field(min_length=1)
    body: str = ""
    timestamp: Optional[int] = None


class _UserCredsPayload(_Payload):
    wallet_address: str = Field(alias="walletAddress", min_length=1)
    api_key: str = Field(alias="apiKey", min_length=1)
    api_secret: str = Field(alias="apiSecret", min_length=1)
    api_passphrase: str = Field(alias="apiPassphrase", min_length=1)

    def creds(self) -> ApiCreds:
        return ApiCreds(key=self.api_key, secret=self.api_secret, passphrase=self.api_passphrase)


class PlaceOrderPayload(_UserCredsPayload):
    signed_order: dict[str, Any] = Field(alias="signedOrder")
    order_type: Literal["GTC", "GTD", "FOK", "FAK"] = Field(default="GTC", alias="orderType")


class CancelOrderPayload(_UserCredsPayload):
    order_id: str = Field(alias="orderId", min_length=1)


class DeriveApiKeyPayload(_Payload):
    address: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    timestamp: int | str
    nonce: int = 0


class EstimatePayload(_Payload):
    side: Literal["BUY", "SELL"]
    amount: Decimal = Field(gt=0)
    limit_price: Optional[Decimal] = Field(default=None, alias="limitPrice", gt=0)
    token_id: Optional[str] = Field(default=None, alias="tokenId")
    # Levels stay untyped here so malformed entries surface as InvalidBookLevel.
    bids: Optional[list[Any]] = None
    asks: Optional[list[Any]] = None

    def has_book(self) -> bool:
        return self.bids is not None or self.asks is not None
