"""SOFR collector (Federal Reserve Bank of New York).

Endpoints:
    - https://markets.newyorkfed.org/api/rates/secured/sofr/last/1.json
    - https://markets.newyorkfed.org/api/rates/all/latest.json
Response: ``{"refRates": [{"type": "SOFR", "percentRate": 4.6, ...}]}``
Fallback: 4.60%
"""

from typing import Any

from ..RateSource import RateSourceId
from .base import Endpoint, SourceCollector, register_collector, to_finite_float


def parse_sofr(data: Any) -> float | None:
    """Extract SOFR from a NY Fed reference rates response.

    Entries carrying a ``type`` other than SOFR are skipped, so the same
    parser serves both the SOFR-only and the all-rates endpoints.
    """
    for entry in data.get("refRates") or []:
        if entry.get("type", "SOFR").upper() != "SOFR":
            continue
        rate = to_finite_float(entry.get("percentRate"))
        if rate is not None:
            return rate
    return None


@register_collector
class SOFRCollector(SourceCollector):
    """Collector for the Secured Overnight Financing Rate."""

    source_id = RateSourceId.SOFR
    ENDPOINTS = [
        Endpoint(
            "https://markets.newyorkfed.org/api/rates/secured/sofr/last/1.json",
            parse_sofr,
        ),
        Endpoint(
            "https://markets.newyorkfed.org/api/rates/all/latest.json",
            parse_sofr,
        ),
    ]
