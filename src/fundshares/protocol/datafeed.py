"""
Datafeed price ticks.

Fetches live MLN quotes from CryptoCompare and pushes them to the DataFeed
contract. The feed stores how many units of each asset one unit of the
reference asset (MLN) costs, so each quote is inverted and scaled by the
asset's decimals before being sent.
"""

from __future__ import annotations

import logging
import time
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Iterable, Optional, Sequence

import httpx

from ..chain.contract import Contract, TxResult
from ..errors import PriceFeedError

logger = logging.getLogger(__name__)

PRICE_API_URL = "https://min-api.cryptocompare.com/data/price"
REFERENCE_SYMBOL = "MLN"
QUOTE_SYMBOLS = ("ETH", "EUR", "MLN")

# The feed rejects updates inside its minimum interval.
DEFAULT_SETTLE_DELAY = 3.0

INVERSE_PLACES = Decimal("1e-15")
PRECISION = 60


def fetch_quotes(
    from_symbol: str = REFERENCE_SYMBOL,
    to_symbols: Iterable[str] = QUOTE_SYMBOLS,
    client: Optional[httpx.Client] = None,
    url: str = PRICE_API_URL,
) -> dict[str, Decimal]:
    """
    Query the price of ``from_symbol`` in each of ``to_symbols``.

    Returns:
        Mapping of symbol to price

    Raises:
        PriceFeedError: If a requested symbol is missing from the answer
    """
    to_symbols = list(to_symbols)
    params = {"fsym": from_symbol, "tsyms": ",".join(to_symbols), "sign": "true"}

    if client is None:
        with httpx.Client(timeout=30) as owned:
            response = owned.get(url, params=params)
    else:
        response = client.get(url, params=params)
    response.raise_for_status()
    payload = response.json()

    if payload.get("Response") == "Error":
        raise PriceFeedError(f"Price API error: {payload.get('Message', 'unknown')}")

    quotes = {}
    for symbol in to_symbols:
        if symbol not in payload:
            raise PriceFeedError(f"Price API returned no {from_symbol}/{symbol} quote")
        quotes[symbol] = Decimal(str(payload[symbol]))
    return quotes


def convert_price(quote: Decimal | float | str, decimals: int, reference_decimals: int) -> int:
    """
    Convert a reference/asset quote to the feed's integer price.

    The inverse of the quote is rounded to 15 decimal places, rescaled by
    the difference in decimals between asset and reference, and expressed in
    the asset's base units. The inverse is rounded half-even, only the
    final scaled value is truncated.

    Raises:
        PriceFeedError: If the quote is non-positive, or so small that its
            inverse does not fit the working precision (below about 1e-45)
    """
    quote = Decimal(str(quote))
    if quote <= 0:
        raise PriceFeedError(f"Cannot invert non-positive quote {quote}")

    with localcontext() as ctx:
        ctx.prec = PRECISION
        try:
            inverse = (Decimal(1) / quote).quantize(INVERSE_PLACES)
        except InvalidOperation as exc:
            raise PriceFeedError(f"Quote {quote} is too small to invert") from exc
        scaled = inverse / (Decimal(10) ** (decimals - reference_decimals)) * (Decimal(10) ** decimals)
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def update_datafeed(
    datafeed: Contract,
    assets: Sequence[str],
    prices: Sequence[int],
    sender: str,
    gas: Optional[int] = None,
    gas_price: Optional[int] = None,
    settle_delay: float = DEFAULT_SETTLE_DELAY,
) -> TxResult:
    """Send ``DataFeed.update(assets, prices)`` after waiting ``settle_delay`` seconds."""
    if len(assets) != len(prices):
        raise ValueError(f"Got {len(assets)} assets but {len(prices)} prices")

    if settle_delay > 0:
        time.sleep(settle_delay)

    logger.info("datafeed update %s", dict(zip(assets, prices)))
    return datafeed.transact(
        "update",
        list(assets),
        [int(p) for p in prices],
        sender=sender,
        gas=gas,
        gas_price=gas_price,
    )
