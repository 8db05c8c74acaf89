from __future__ import annotations

import base64
import binascii
import hmac
import re
import time
from dataclasses import dataclass, field
from hashlib import sha256

SECRET_NUM_BYTES = 32

_HEX_SECRET = re.compile(r"[a-f0-9]{64}", re.IGNORECASE)
# Standard or URL-safe alphabet, never a mix of the two.
_BASE64_SECRET = re.compile(r"[A-Za-z0-9+/]{43}=|[A-Za-z0-9\-_]{43}=")


class InvalidSecretFormat(ValueError):
    pass


def decode_secret(secret: str) -> bytes:
    """
    Decode an API secret into raw HMAC key bytes.

    64 hex characters are tried first, then 44 base64 characters. Anything
    else raises `InvalidSecretFormat` instead of silently producing a key
    that would sign every request wrongly.
    """
    if _HEX_SECRET.fullmatch(secret):
        return bytes.fromhex(secret)
    if _BASE64_SECRET.fullmatch(secret):
        normalized = secret.replace("-", "+").replace("_", "/")
        try:
            key = base64.b64decode(normalized, validate=True)
        except binascii.Error as e:
            raise InvalidSecretFormat("secret is not valid base64") from e
        if len(key) != SECRET_NUM_BYTES:
            raise InvalidSecretFormat(f"secret must decode to {SECRET_NUM_BYTES} bytes")
        return key
    raise InvalidSecretFormat(
        f"secret must be 64 hex characters or 44 base64 characters (got {len(secret)} characters)"
    )


def build_signed_message(
    timestamp: str | int,
    method: str,
    request_path: str,
    body: str = "",
) -> str:
    # The method is used exactly as given; the exchange compares it case-sensitively.
    if not request_path.startswith("/"):
        raise ValueError(f"request_path must start with '/': {request_path!r}")
    if "?" in request_path:
        raise ValueError("request_path must not include a query string")
    return f"{timestamp}{method}{request_path}{body}"


def sign_request(
    secret: str,
    timestamp: str | int,
    method: str,
    request_path: str,
    body: str = "",
) -> str:
    """Base64 HMAC-SHA256 of `timestamp + method + request_path + body`."""
    key = decode_secret(secret)
    message = build_signed_message(timestamp, method, request_path, body)
    mac = hmac.new(key, message.encode("utf-8"), sha256)
    return base64.b64encode(mac.digest()).decode("ascii")


def current_timestamp() -> str:
    return str(int(time.time()))


@dataclass(frozen=True)
class ApiCreds:
    key: str
    secret: str = field(repr=False)
    passphrase: str = field(repr=False)

    def complete(self) -> bool:
        return bool(self.key and self.secret and self.passphrase)


def build_l2_headers(
    *,
    address: str,
    creds: ApiCreds,
    method: str,
    request_path: str,
    body: str = "",
    timestamp: str | int | None = None,
) -> dict[str, str]:
    ts = str(timestamp) if timestamp is not None else current_timestamp()
    signature = sign_request(creds.secret, ts, method, request_path, body)
    return {
        "POLY_ADDRESS": address,
        "POLY_SIGNATURE": signature,
        "POLY_TIMESTAMP": ts,
        "POLY_API_KEY": creds.key,
        "POLY_PASSPHRASE": creds.passphrase,
    }


@dataclass(frozen=True)
class L1Auth:
    """Wallet-signed (EIP-712) headers used to create or derive API keys."""

    address: str
    signature: str
    timestamp: str | int
    nonce: int = 0

    def to_headers(self) -> dict[str, str]:
        return {
            "POLY_ADDRESS": self.address,
            "POLY_SIGNATURE": self.signature,
            "POLY_TIMESTAMP": str(self.timestamp),
            "POLY_NONCE": str(self.nonce),
        }
