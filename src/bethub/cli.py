from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Optional

import typer

from bethub.book import InvalidBookLevel, book_to_payload, market_price, parse_order_book
from bethub.estimator import REMAINING_EPSILON, estimate_trade
from bethub.exchange import ClobClient
from bethub.logging_utils import configure_logging
from bethub.settings import Settings
from bethub.signing import InvalidSecretFormat, current_timestamp, sign_request
from bethub.types import OrderBook, Side, TradeEstimate

app = typer.Typer(no_args_is_help=True, add_completion=False)
logger = logging.getLogger("bethub")


def _parse_decimal(value: str, *, option_name: str) -> Decimal:
    try:
        result = Decimal(value.strip())
    except InvalidOperation as e:
        raise typer.BadParameter(f"{option_name} must be a number", param_hint=option_name) from e
    if not result.is_finite() or result <= 0:
        raise typer.BadParameter(f"{option_name} must be > 0", param_hint=option_name)
    return result


def _parse_side(value: str) -> Side:
    side = value.strip().upper()
    if side == "BUY":
        return "BUY"
    if side == "SELL":
        return "SELL"
    raise typer.BadParameter("side must be BUY or SELL", param_hint="--side")


def _load_book_file(path: Path) -> OrderBook:
    if not path.exists():
        raise typer.BadParameter(f"book file not found: {path}", param_hint="--book-file")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"book file is not valid JSON: {e}", param_hint="--book-file") from e
    if not isinstance(raw, dict):
        raise typer.BadParameter("book file must hold an object", param_hint="--book-file")
    try:
        return parse_order_book(raw)
    except InvalidBookLevel as e:
        raise typer.BadParameter(str(e), param_hint="--book-file") from e


def _clob_client(settings: Settings) -> ClobClient:
    return ClobClient(
        base_url=settings.clob_api_url,
        address=settings.poly_address,
        creds=settings.user_creds(),
        timeout_seconds=settings.http_timeout_seconds,
        max_retries=settings.max_retries,
    )


def _estimate_output(estimate: TradeEstimate, *, amount: Decimal) -> dict[str, Any]:
    filled = estimate.cost if estimate.side == "BUY" else estimate.shares
    payload = estimate.to_payload()
    payload["partial"] = amount - filled > REMAINING_EPSILON
    return payload


@app.command()
def show_config() -> None:
    settings = Settings()
    configure_logging(settings.log_level, settings.log_format)
    typer.echo(settings.redacted())


@app.command()
def health() -> None:
    """
    Ping the CLOB and print its server time.
    """
    settings = Settings()
    configure_logging(settings.log_level, settings.log_format)

    async def _run() -> None:
        client = _clob_client(settings)
        try:
            server_time = await client.server_time()
            typer.echo({"ok": True, "server_time": server_time, "clob": settings.clob_api_url})
        finally:
            await client.aclose()

    asyncio.run(_run())


@app.command()
def sign(
    method: str = typer.Option(..., help="HTTP method, signed exactly as given."),
    path: str = typer.Option(..., help="Request path without query string, e.g. /order."),
    body: str = typer.Option("", help="Exact request body that will be sent."),
    timestamp: Optional[str] = typer.Option(None, help="Unix seconds; defaults to now."),
    secret: Optional[str] = typer.Option(
        None,
        help="API secret (hex or base64); defaults to POLY_API_SECRET.",
    ),
) -> None:
    """
    Print the L2 HMAC signature for one request.
    """
    settings = Settings()
    configure_logging(settings.log_level, settings.log_format)
    key = secret if secret is not None else settings.poly_api_secret
    if not key:
        raise typer.BadParameter("no secret given and POLY_API_SECRET is empty", param_hint="--secret")
    ts = timestamp if timestamp is not None else current_timestamp()
    try:
        signature = sign_request(key, ts, method, path, body)
    except InvalidSecretFormat as e:
        raise typer.BadParameter(str(e), param_hint="--secret") from e
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--path") from e
    typer.echo(json.dumps({"timestamp": ts, "signature": signature}))


@app.command()
def book(token_id: str = typer.Option(..., help="Outcome token id.")) -> None:
    """
    Print the normalized order book and best prices for a token.
    """
    settings = Settings()
    configure_logging(settings.log_level, settings.log_format)

    async def _run() -> None:
        client = _clob_client(settings)
        try:
            ob = await client.order_book(token_id)
        finally:
            await client.aclose()
        typer.echo(
            json.dumps({"book": book_to_payload(ob), "marketPrice": market_price(ob).to_payload()})
        )

    asyncio.run(_run())


@app.command()
def estimate(
    side: str = typer.Option(..., help="BUY or SELL."),
    amount: str = typer.Option(..., help="USD to spend (BUY) or shares to sell (SELL)."),
    limit_price: Optional[str] = typer.Option(None, help="Worst acceptable level price."),
    book_file: Optional[Path] = typer.Option(None, help="Order book JSON (bids/asks best-first)."),
    token_id: Optional[str] = typer.Option(None, help="Fetch the live book for this token."),
    watch: bool = typer.Option(False, "--watch", help="Re-estimate on every book refresh."),
    iterations: int = typer.Option(0, help="Stop watching after N estimates (0 = forever)."),
) -> None:
    """
    Estimate cost, average price and slippage of a market order.
    """
    settings = Settings()
    configure_logging(settings.log_level, settings.log_format)

    order_side = _parse_side(side)
    order_amount = _parse_decimal(amount, option_name="--amount")
    limit = (
        _parse_decimal(limit_price, option_name="--limit-price") if limit_price is not None else None
    )

    if (book_file is None) == (token_id is None):
        raise typer.BadParameter("exactly one of --book-file or --token-id is required")
    if watch and token_id is None:
        raise typer.BadParameter("--watch needs --token-id", param_hint="--watch")

    if book_file is not None:
        result = estimate_trade(_load_book_file(book_file), order_side, order_amount, limit)
        typer.echo(json.dumps(_estimate_output(result, amount=order_amount)))
        return

    live_token_id = token_id or ""

    async def _run() -> None:
        client = _clob_client(settings)
        count = 0
        try:
            while True:
                ob = await client.order_book(live_token_id)
                logger.debug("book_refreshed", extra={"token_id": live_token_id})
                result = estimate_trade(ob, order_side, order_amount, limit)
                typer.echo(json.dumps(_estimate_output(result, amount=order_amount)))
                count += 1
                if not watch or (iterations > 0 and count >= iterations):
                    return
                await asyncio.sleep(settings.book_refresh_seconds)
        finally:
            await client.aclose()

    asyncio.run(_run())


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
) -> None:
    """
    Run the signing and proxy API server.
    """
    import uvicorn

    from bethub.api import create_app_from_env

    uvicorn.run(create_app_from_env(), host=host, port=port)

