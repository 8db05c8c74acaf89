from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from bethub.book import book_to_payload, market_price, parse_order_book
from bethub.builder import BuilderSigner
from bethub.estimator import estimate_trade
from bethub.exchange import ClobClient
from bethub.settings import Settings
from bethub.signing import ApiCreds, L1Auth, build_l2_headers

from .schemas import (
    BuilderSignPayload,
    CancelOrderPayload,
    DeriveApiKeyPayload,
    EstimatePayload,
    PlaceOrderPayload,
    SignPayload,
)

logger = logging.getLogger("bethub.api")

router = APIRouter()

FORWARDED_AUTH_HEADERS = (
    "POLY_ADDRESS",
    "POLY_SIGNATURE",
    "POLY_TIMESTAMP",
    "POLY_NONCE",
    "POLY_API_KEY",
    "POLY_PASSPHRASE",
)


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _builder(request: Request) -> BuilderSigner:
    return request.app.state.builder


@asynccontextmanager
async def _clob(
    request: Request,
    *,
    address: str = "",
    creds: ApiCreds | None = None,
    with_builder: bool = False,
) -> AsyncIterator[ClobClient]:
    settings = _settings(request)
    client = ClobClient(
        base_url=settings.clob_api_url,
        address=address,
        creds=creds,
        builder=_builder(request) if with_builder else None,
        timeout_seconds=settings.http_timeout_seconds,
        max_retries=settings.max_retries,
        transport=request.app.state.transport,
    )
    try:
        yield client
    finally:
        await client.aclose()


@router.get("/api/health")
async def health():
    return {"status": "ok"}


@router.get("/api/sign")
async def sign_status(request: Request):
    config = _builder(request).config
    configured = config.mode == "local"
    return {
        "status": "ok" if configured else "not_configured",
        "service": "bethub-signing-server",
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "configured": configured,
        "keyPrefix": config.key_prefix() if configured else None,
    }


@router.post("/api/sign")
async def sign(payload: SignPayload, request: Request):
    creds = _builder(request).config.creds
    if creds is None:
        return JSONResponse(
            {
                "error": "Signing server not configured",
                "message": (
                    "Builder credentials are not set. Set POLY_BUILDER_API_KEY, "
                    "POLY_BUILDER_SECRET, POLY_BUILDER_PASSPHRASE in .env"
                ),
            },
            status_code=500,
        )
    headers = build_l2_headers(
        address=payload.address,
        creds=creds,
        method=payload.method.upper(),
        request_path=payload.request_path,
        body=payload.body,
        timestamp=payload.timestamp,
    )
    logger.info(
        "l2_headers_signed",
        extra={"method": payload.method.upper(), "path": payload.request_path},
    )
    return {"headers": headers}


@router.get("/api/builder/sign")
async def builder_sign_status(request: Request):
    return {"status": "ok", "mode": _builder(request).config.mode}


@router.post("/api/builder/sign")
async def builder_sign(payload: BuilderSignPayload, request: Request):
    signer = _builder(request)
    if signer.config.mode != "local":
        return JSONResponse(
            {"error": "Builder signing not configured", "mode": signer.config.mode},
            status_code=500,
        )
    return signer.local_headers(
        method=payload.method.upper(),
        request_path=payload.path,
        body=payload.body,
        timestamp=payload.timestamp,
    )


@router.post("/api/trading/place-order")
async def place_order(payload: PlaceOrderPayload, request: Request):
    logger.info("placing_order", extra={"address": payload.wallet_address})
    async with _clob(
        request,
        address=payload.wallet_address,
        creds=payload.creds(),
        with_builder=True,
    ) as client:
        result = await client.post_order(payload.signed_order, order_type=payload.order_type)
    return {"success": True, **result}


@router.post("/api/polymarket/cancel-order")
async def cancel_order(payload: CancelOrderPayload, request: Request):
    async with _clob(request, address=payload.wallet_address, creds=payload.creds()) as client:
        result = await client.cancel_order(payload.order_id)
    return {"success": True, "response": result}


@router.post("/api/auth/derive-api-key")
async def derive_api_key(payload: DeriveApiKeyPayload, request: Request):
    l1 = L1Auth(
        address=payload.address,
        signature=payload.signature,
        timestamp=payload.timestamp,
        nonce=payload.nonce,
    )
    async with _clob(request) as client:
        creds = await client.derive_api_key(l1)
    return {"apiKey": creds.key, "secret": creds.secret, "passphrase": creds.passphrase}


@router.get("/api/book/{token_id}")
async def order_book(token_id: str, request: Request):
    async with _clob(request) as client:
        book = await client.order_book(token_id)
    return {"book": book_to_payload(book), "marketPrice": market_price(book).to_payload()}


@router.post("/api/estimate")
async def estimate(payload: EstimatePayload, request: Request):
    if payload.has_book():
        book = parse_order_book({"bids": payload.bids, "asks": payload.asks})
    elif payload.token_id:
        async with _clob(request) as client:
            book = await client.order_book(payload.token_id)
    else:
        raise HTTPException(status_code=400, detail="either bids/asks or tokenId is required")
    result = estimate_trade(book, payload.side, payload.amount, payload.limit_price)
    return result.to_payload()


@router.api_route("/api/polymarket/{api_type}/{path:path}", methods=["GET", "POST", "DELETE"])
async def proxy(api_type: str, path: str, request: Request):
    targets = _settings(request).proxy_targets()
    if api_type not in targets:
        return JSONResponse(
            {"error": "Invalid API type", "validTypes": list(targets)},
            status_code=400,
        )

    headers: dict[str, str] = {"Content-Type": "application/json"}
    for name in FORWARDED_AUTH_HEADERS:
        value = request.headers.get(name)
        if value:
            headers[name] = value

    content: bytes | None = None
    if request.method not in ("GET", "HEAD"):
        content = await request.body() or None

    url = f"{targets[api_type].rstrip('/')}/{path}"
    upstream = await request.app.state.http.request(
        request.method,
        url,
        params=dict(request.query_params),
        headers=headers,
        content=content,
    )
    logger.debug(
        "proxied",
        extra={"api": api_type, "path": f"/{path}", "status_code": upstream.status_code},
    )
    try:
        data: Any = upstream.json()
    except ValueError:
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            media_type=upstream.headers.get("content-type"),
        )
    return JSONResponse(data, status_code=upstream.status_code)
