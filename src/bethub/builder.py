from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

import httpx

from bethub.signing import ApiCreds, current_timestamp, sign_request

if TYPE_CHECKING:
    from bethub.settings import Settings

logger = logging.getLogger("bethub.builder")

SigningMode = Literal["local", "remote", "none"]

BUILDER_HEADER_KEYS = (
    "POLY_BUILDER_API_KEY",
    "POLY_BUILDER_SIGNATURE",
    "POLY_BUILDER_TIMESTAMP",
    "POLY_BUILDER_PASSPHRASE",
)


class BuilderSigningError(RuntimeError):
    pass


@dataclass(frozen=True)
class BuilderConfig:
    mode: SigningMode = "none"
    creds: ApiCreds | None = None
    remote_url: str = ""
    remote_token: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> BuilderConfig:
        creds = settings.builder_creds()
        if creds is not None:
            return cls(mode="local", creds=creds)
        if settings.poly_signing_server_url:
            return cls(
                mode="remote",
                remote_url=settings.poly_signing_server_url,
                remote_token=settings.poly_signing_server_token,
            )
        return cls()

    def key_prefix(self) -> str | None:
        if self.creds is None or not self.creds.key:
            return None
        return self.creds.key[:8] + "..."


class BuilderSigner:
    """Produces builder attribution headers for order requests."""

    def __init__(
        self,
        config: BuilderConfig,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if config.mode == "local" and (config.creds is None or not config.creds.complete()):
            raise BuilderSigningError("local builder signing requires key, secret and passphrase")
        if config.mode == "remote" and not config.remote_url:
            raise BuilderSigningError("remote builder signing requires a signing server url")
        self._config = config
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @property
    def config(self) -> BuilderConfig:
        return self._config

    def enabled(self) -> bool:
        return self._config.mode != "none"

    async def aclose(self) -> None:
        await self._client.aclose()

    def local_headers(
        self,
        *,
        method: str,
        request_path: str,
        body: str = "",
        timestamp: str | int | None = None,
    ) -> dict[str, str]:
        creds = self._config.creds
        if self._config.mode != "local" or creds is None:
            raise BuilderSigningError("builder credentials are not configured")
        ts = str(timestamp) if timestamp is not None else current_timestamp()
        return {
            "POLY_BUILDER_API_KEY": creds.key,
            "POLY_BUILDER_SIGNATURE": sign_request(creds.secret, ts, method, request_path, body),
            "POLY_BUILDER_TIMESTAMP": ts,
            "POLY_BUILDER_PASSPHRASE": creds.passphrase,
        }

    async def headers(
        self,
        *,
        method: str,
        request_path: str,
        body: str = "",
        timestamp: str | int | None = None,
    ) -> dict[str, str]:
        if self._config.mode == "none":
            return {}
        if self._config.mode == "local":
            return self.local_headers(
                method=method,
                request_path=request_path,
                body=body,
                timestamp=timestamp,
            )
        return await self._remote_headers(method=method, request_path=request_path, body=body)

    async def _remote_headers(self, *, method: str, request_path: str, body: str) -> dict[str, str]:
        request_headers: dict[str, str] = {}
        if self._config.remote_token:
            request_headers["Authorization"] = f"Bearer {self._config.remote_token}"
        payload: dict[str, Any] = {"method": method, "path": request_path, "body": body}
        resp = await self._client.post(
            self._config.remote_url,
            json=payload,
            headers=request_headers,
        )
        if resp.status_code >= 400:
            raise BuilderSigningError(
                f"signing server returned status={resp.status_code} body={resp.text!r}"
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise BuilderSigningError("signing server returned invalid JSON") from e
        if not isinstance(data, dict):
            raise BuilderSigningError("signing server returned an unexpected payload")
        missing = [k for k in BUILDER_HEADER_KEYS if not data.get(k)]
        if missing:
            raise BuilderSigningError(f"signing server response is missing {', '.join(missing)}")
        logger.debug("builder_headers_signed", extra={"method": method, "path": request_path})
        return {k: str(data[k]) for k in BUILDER_HEADER_KEYS}
