from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Literal, cast

import httpx

from bethub.book import parse_order_book
from bethub.builder import BuilderSigner
from bethub.signing import ApiCreds, L1Auth, build_l2_headers
from bethub.types import OrderBook, OrderType, PricePoint

logger = logging.getLogger("bethub.clob")

DEFAULT_CLOB_URL = "https://clob.polymarket.com"

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_RETRY_BASE_SECONDS = 0.5
_DEFAULT_RETRY_MAX_SECONDS = 8.0

# Reported when the exchange answers 2xx with a body that cannot be used.
BAD_UPSTREAM_STATUS = 502

AuthLevel = Literal["none", "l1", "l2"]


class ClobApiError(RuntimeError):
    def __init__(self, *, status_code: int, payload: Any):
        super().__init__(f"CLOB API error: status={status_code} payload={payload!r}")
        self.status_code = status_code
        self.payload = payload


def serialize_body(payload: Any) -> str:
    """Compact JSON; the returned string is both signed and sent verbatim."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _compact_params(params: Mapping[str, Any] | None) -> dict[str, Any]:
    if not params:
        return {}
    return {k: v for k, v in params.items() if v is not None}


def _creds_from_payload(data: Any) -> ApiCreds:
    if not isinstance(data, dict):
        raise ClobApiError(status_code=BAD_UPSTREAM_STATUS, payload=data)
    creds = ApiCreds(
        key=str(data.get("apiKey") or ""),
        secret=str(data.get("secret") or ""),
        passphrase=str(data.get("passphrase") or ""),
    )
    if not creds.complete():
        raise ClobApiError(status_code=BAD_UPSTREAM_STATUS, payload=data)
    return creds


class ClobClient:
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_CLOB_URL,
        address: str = "",
        creds: ApiCreds | None = None,
        builder: BuilderSigner | None = None,
        timeout_seconds: float = 10.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_base_seconds: float = _DEFAULT_RETRY_BASE_SECONDS,
        retry_max_seconds: float = _DEFAULT_RETRY_MAX_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._address = address
        self._creds = creds
        self._builder = builder
        self._base_url = base_url.rstrip("/")
        self._max_retries = int(max(0, max_retries))
        self._retry_base_seconds = float(max(0.0, retry_base_seconds))
        self._retry_max_seconds = float(max(self._retry_base_seconds, retry_max_seconds))
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def server_time(self) -> int:
        data = await self._request("GET", "/time")
        return int(data)

    async def order_book(self, token_id: str) -> OrderBook:
        data = await self._request("GET", "/book", params={"token_id": token_id})
        return parse_order_book(cast(dict[str, Any], data), sort_levels=True)

    async def order_books(self, token_ids: list[str]) -> list[OrderBook]:
        return list(await asyncio.gather(*(self.order_book(t) for t in token_ids)))

    async def last_trade_price(self, token_id: str) -> Decimal:
        data = await self._request("GET", "/last-trade-price", params={"token_id": token_id})
        return Decimal(str(data["price"]))

    async def price_history(
        self,
        *,
        market: str,
        interval: str | None = None,
        fidelity: int | None = None,
    ) -> list[PricePoint]:
        data = await self._request(
            "GET",
            "/prices-history",
            params={"market": market, "interval": interval, "fidelity": fidelity},
        )
        return [
            PricePoint(t=int(row["t"]), p=Decimal(str(row["p"])))
            for row in data.get("history", [])
        ]

    async def post_order(
        self,
        order: dict[str, Any],
        *,
        order_type: OrderType = "GTC",
    ) -> dict[str, Any]:
        creds = self._require_creds()
        body = {"order": order, "owner": creds.key, "orderType": order_type}
        data = await self._request("POST", "/order", json_body=body, auth="l2", builder=True)
        logger.info(
            "order_posted",
            extra={"order_id": data.get("orderID"), "side": order.get("side")},
        )
        return cast(dict[str, Any], data)

    async def cancel_order(self, order_id: str) -> dict[str, Any]:
        data = await self._request("DELETE", "/order", json_body={"orderID": order_id}, auth="l2")
        logger.info("order_cancelled", extra={"order_id": order_id})
        return cast(dict[str, Any], data)

    async def cancel_orders(self, order_ids: list[str]) -> dict[str, Any]:
        data = await self._request("DELETE", "/orders", json_body=list(order_ids), auth="l2")
        return cast(dict[str, Any], data)

    async def cancel_all(self) -> dict[str, Any]:
        data = await self._request("DELETE", "/cancel-all", auth="l2")
        return cast(dict[str, Any], data)

    async def cancel_market_orders(
        self,
        *,
        market: str = "",
        asset_id: str = "",
    ) -> dict[str, Any]:
        data = await self._request(
            "DELETE",
            "/cancel-market-orders",
            json_body={"market": market, "asset_id": asset_id},
            auth="l2",
        )
        return cast(dict[str, Any], data)

    async def open_orders(
        self,
        *,
        market: str | None = None,
        asset_id: str | None = None,
    ) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "/data/orders",
            params={"market": market, "asset_id": asset_id},
            auth="l2",
        )
        return cast(list[dict[str, Any]], data.get("data", data) if isinstance(data, dict) else data)

    async def trades(
        self,
        *,
        market: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            "/data/trades",
            params={"market": market, "limit": limit},
            auth="l2",
        )
        return cast(list[dict[str, Any]], data.get("data", data) if isinstance(data, dict) else data)

    async def balance_allowance(
        self,
        *,
        asset_type: Literal["COLLATERAL", "CONDITIONAL"] = "COLLATERAL",
        token_id: str | None = None,
        signature_type: int | None = None,
    ) -> dict[str, Any]:
        data = await self._request(
            "GET",
            "/balance-allowance",
            params={
                "asset_type": asset_type,
                "token_id": token_id,
                "signature_type": signature_type,
            },
            auth="l2",
        )
        return cast(dict[str, Any], data)

    async def create_api_key(self, l1: L1Auth) -> ApiCreds:
        data = await self._request("POST", "/auth/api-key", auth="l1", l1=l1)
        return _creds_from_payload(data)

    async def derive_api_key(self, l1: L1Auth) -> ApiCreds:
        """Derive the wallet's existing API key, creating one if none exists."""
        try:
            data = await self._request("GET", "/auth/derive-api-key", auth="l1", l1=l1)
            return _creds_from_payload(data)
        except ClobApiError as e:
            logger.info(
                "derive_api_key_failed_creating",
                extra={"address": l1.address, "status_code": e.status_code},
            )
            return await self.create_api_key(l1)

    def _require_creds(self) -> ApiCreds:
        if self._creds is None or not self._creds.complete():
            raise RuntimeError("API key, secret and passphrase are required for authenticated endpoints")
        return self._creds

    async def _headers(
        self,
        *,
        method: str,
        path: str,
        body: str,
        auth: AuthLevel,
        l1: L1Auth | None,
        builder: bool,
    ) -> dict[str, str]:
        headers: dict[str, str] = {}
        if body:
            headers["Content-Type"] = "application/json"
        if auth == "l1":
            if l1 is None:
                raise RuntimeError("L1 auth headers are required for this endpoint")
            headers.update(l1.to_headers())
        elif auth == "l2":
            headers.update(
                build_l2_headers(
                    address=self._address,
                    creds=self._require_creds(),
                    method=method,
                    request_path=path,
                    body=body,
                )
            )
        if builder and self._builder is not None and self._builder.enabled():
            headers.update(
                await self._builder.headers(method=method, request_path=path, body=body)
            )
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        auth: AuthLevel = "none",
        l1: L1Auth | None = None,
        builder: bool = False,
    ) -> Any:
        method = method.upper()
        body = serialize_body(json_body) if json_body is not None else ""
        request_params = _compact_params(params)
        # Order mutations are only replayed on 429, never after a timeout or 5xx.
        replayable = method == "GET"
        attempt = 0
        while True:
            # Fresh timestamp per attempt.
            headers = await self._headers(
                method=method,
                path=path,
                body=body,
                auth=auth,
                l1=l1,
                builder=builder,
            )
            try:
                response = await self._client.request(
                    method,
                    path,
                    params=request_params,
                    content=body.encode("utf-8") if body else None,
                    headers=headers,
                )
            except (httpx.TimeoutException, httpx.TransportError):
                if not replayable or attempt >= self._max_retries:
                    raise
                await asyncio.sleep(self._retry_delay_seconds(attempt=attempt, response=None))
                attempt += 1
                continue

            if response.status_code >= 400:
                payload: Any
                try:
                    payload = response.json()
                except ValueError:
                    payload = response.text

                if (
                    _should_retry_http_error(status_code=response.status_code, replayable=replayable)
                    and attempt < self._max_retries
                ):
                    await asyncio.sleep(
                        self._retry_delay_seconds(attempt=attempt, response=response)
                    )
                    attempt += 1
                    continue

                logger.warning(
                    "clob_request_failed",
                    extra={"method": method, "path": path, "status_code": response.status_code},
                )
                raise ClobApiError(status_code=response.status_code, payload=payload)

            try:
                return response.json()
            except ValueError as e:
                logger.warning(
                    "clob_response_not_json",
                    extra={"method": method, "path": path, "status_code": response.status_code},
                )
                raise ClobApiError(status_code=BAD_UPSTREAM_STATUS, payload=response.text) from e

    def _retry_delay_seconds(
        self,
        *,
        attempt: int,
        response: httpx.Response | None,
    ) -> float:
        if response is not None:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    value = float(retry_after)
                    if value > 0:
                        return value
                except ValueError:
                    pass
        delay = self._retry_base_seconds * (2**attempt)
        return float(min(delay, self._retry_max_seconds))


def _should_retry_http_error(*, status_code: int, replayable: bool) -> bool:
    if status_code == 429:
        return True
    return replayable and status_code >= 500
