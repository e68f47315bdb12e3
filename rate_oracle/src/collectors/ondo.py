"""Ondo USDY yield collector.

Endpoints:
    - https://api.ondo.finance/v1/products/usdy
      (``currentYield``, ``apy`` or ``yield`` in percent)
    - https://yields.llama.fi/pools (DefiLlama ``ondo-yield-assets`` USDY pool)
Fallback: 5.00%
"""

from typing import Any

from ..RateSource import RateSourceId
from .aave import llama_pool_parser
from .base import Endpoint, SourceCollector, first_numeric_field, register_collector

USDY_FIELDS = ("currentYield", "apy", "yield")


def parse_ondo(data: Any) -> float | None:
    """Extract the USDY yield from an Ondo products response."""
    return first_numeric_field(data, USDY_FIELDS)


@register_collector
class OndoUSDYCollector(SourceCollector):
    """Collector for the Ondo USDY yield."""

    source_id = RateSourceId.ONDO_USDY
    ENDPOINTS = [
        Endpoint("https://api.ondo.finance/v1/products/usdy", parse_ondo),
        Endpoint(
            "https://yields.llama.fi/pools",
            llama_pool_parser("ondo-yield-assets", "USDY"),
        ),
    ]
