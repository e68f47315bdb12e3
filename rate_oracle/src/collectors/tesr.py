"""TESR collector (Treehouse Ethereum Staking Rate).

Endpoints:
    - https://api.treehouse.finance/v1/rates/tesr
    - https://api.treehouse.finance/v1/tesr/latest
Response: JSON object with the rate in percent under ``rate``, ``tesr`` or
``apy`` (optionally wrapped in ``data``).
Fallback: 3.50%
"""

from typing import Any

from ..RateSource import RateSourceId
from .base import Endpoint, SourceCollector, first_numeric_field, register_collector

TESR_FIELDS = ("rate", "tesr", "apy")


def parse_tesr(data: Any) -> float | None:
    """Extract the TESR percentage from a Treehouse response."""
    return first_numeric_field(data, TESR_FIELDS)


@register_collector
class TESRCollector(SourceCollector):
    """Collector for the Treehouse Ethereum Staking Rate."""

    source_id = RateSourceId.TESR
    ENDPOINTS = [
        Endpoint("https://api.treehouse.finance/v1/rates/tesr", parse_tesr),
        Endpoint("https://api.treehouse.finance/v1/tesr/latest", parse_tesr),
    ]
