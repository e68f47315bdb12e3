"""mETH staking rate collector (Mantle liquid staked ETH).

Endpoints:
    - https://meth.mantle.xyz/api/stats/apy
    - https://api.mantle.xyz/meth/v1/apy
Response: JSON object with the staking APY in percent under ``apy``,
``ethAPY`` or ``stakingApy``.
Fallback: 4.50%
"""

from typing import Any

from ..RateSource import RateSourceId
from .base import Endpoint, SourceCollector, first_numeric_field, register_collector

METH_FIELDS = ("apy", "ethAPY", "stakingApy")


def parse_meth(data: Any) -> float | None:
    """Extract the mETH staking APY from a Mantle response."""
    return first_numeric_field(data, METH_FIELDS)


@register_collector
class METHCollector(SourceCollector):
    """Collector for the mETH staking APY."""

    source_id = RateSourceId.METH
    ENDPOINTS = [
        Endpoint("https://meth.mantle.xyz/api/stats/apy", parse_meth),
        Endpoint("https://api.mantle.xyz/meth/v1/apy", parse_meth),
    ]
