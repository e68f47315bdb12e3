"""Aave USDT supply rate collector.

Endpoints:
    - https://aave-api-v2.aave.com/data/markets-data
      ``{"reserves": [{"symbol": "USDT", "liquidityRate": "0.055"}]}``
      where ``liquidityRate`` is a fraction (0.055 = 5.5%)
    - https://yields.llama.fi/pools (DefiLlama, ``apy`` already in percent)
Fallback: 6.00%
"""

from typing import Any

from ..RateSource import RateSourceId
from .base import Endpoint, SourceCollector, register_collector, to_finite_float


def parse_aave_markets(data: Any) -> float | None:
    """Extract the USDT supply rate from Aave markets data."""
    for reserve in data.get("reserves") or []:
        if str(reserve.get("symbol", "")).upper() != "USDT":
            continue
        rate = to_finite_float(reserve.get("liquidityRate"))
        if rate is not None:
            return rate * 100
    return None


def llama_pool_parser(project: str, symbol: str, chain: str | None = None):
    """Build a parser selecting one pool from a DefiLlama ``/pools`` response.

    :param project: DefiLlama project slug (e.g., "aave-v3").
    :param symbol: Pool symbol (e.g., "USDT").
    :param chain: Optional chain name filter (e.g., "Ethereum").
    :returns: Parser returning the pool's APY in percent.
    """

    def parse(data: Any) -> float | None:
        for pool in data.get("data") or []:
            if pool.get("project") != project:
                continue
            if str(pool.get("symbol", "")).upper() != symbol.upper():
                continue
            if chain is not None and pool.get("chain") != chain:
                continue
            rate = to_finite_float(pool.get("apy"))
            if rate is not None:
                return rate
        return None

    return parse


@register_collector
class AaveUSDTCollector(SourceCollector):
    """Collector for the Aave USDT supply rate."""

    source_id = RateSourceId.AAVE_USDT
    ENDPOINTS = [
        Endpoint("https://aave-api-v2.aave.com/data/markets-data", parse_aave_markets),
        Endpoint(
            "https://yields.llama.fi/pools",
            llama_pool_parser("aave-v3", "USDT", chain="Ethereum"),
        ),
    ]
