"""RateSource: The closed set of rate sources and the per-source observation.

Every source has a fixed on-chain id, display name, aggregation weight and a
conservative fallback rate used when no live endpoint answers. Weights are in
basis points and sum to 10,000.

.. code-block:: python

    >>> RateSourceId.SOFR.weight
    2500
    >>> RateSourceId.METH.display_name
    'mETH'
    >>> obs = RateObservation.fallback(RateSourceId.TESR)
    >>> obs.rate_bps, obs.is_live, obs.origin
    (350, False, 'fallback')
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import IntEnum

# Origin marker for observations that were not sourced live.
FALLBACK_ORIGIN = "fallback"

# Sum of all source weights.
TOTAL_WEIGHT_BPS = 10_000


class RateSourceId(IntEnum):
    """On-chain rate source identifiers.

    The integer values must match the source ids of the registry contract.
    """

    TESR = 0
    METH = 1
    SOFR = 2
    AAVE_USDT = 3
    ONDO_USDY = 4

    @property
    def display_name(self) -> str:
        """Return the human readable source name."""
        return _DISPLAY_NAMES[self]

    @property
    def weight(self) -> int:
        """Return the aggregation weight in basis points."""
        return SOURCE_WEIGHTS[self]

    @property
    def fallback_bps(self) -> int:
        """Return the conservative static rate used when collection fails."""
        return FALLBACK_RATES[self]


_DISPLAY_NAMES: dict[RateSourceId, str] = {
    RateSourceId.TESR: "TESR",
    RateSourceId.METH: "mETH",
    RateSourceId.SOFR: "SOFR",
    RateSourceId.AAVE_USDT: "Aave_USDT",
    RateSourceId.ONDO_USDY: "Ondo_USDY",
}

SOURCE_WEIGHTS: dict[RateSourceId, int] = {
    RateSourceId.TESR: 2000,  # 20%
    RateSourceId.METH: 3000,  # 30%
    RateSourceId.SOFR: 2500,  # 25%
    RateSourceId.AAVE_USDT: 1500,  # 15%
    RateSourceId.ONDO_USDY: 1000,  # 10%
}

FALLBACK_RATES: dict[RateSourceId, int] = {
    RateSourceId.TESR: 350,  # 3.50%
    RateSourceId.METH: 450,  # 4.50%
    RateSourceId.SOFR: 460,  # 4.60%
    RateSourceId.AAVE_USDT: 600,  # 6.00%
    RateSourceId.ONDO_USDY: 500,  # 5.00%
}


def percent_to_bps(percent: float) -> int:
    """Convert a percentage to integer basis points, rounding half up.

    :param percent: Rate in percent (e.g., 4.5 for 4.50%).
    :returns: Rate in basis points (e.g., 450).
    """
    return int(percent * 100 + 0.5) if percent >= 0 else -int(-percent * 100 + 0.5)


@dataclass(frozen=True)
class RateObservation:
    """One source's reading for a collection cycle.

    :ivar source_id: Which source produced the reading.
    :ivar rate_bps: Rate in basis points.
    :ivar observed_at: Unix timestamp of capture.
    :ivar origin: Hostname of the endpoint, or ``"fallback"``.
    :ivar is_live: True if the value came from a live endpoint.
    """

    source_id: RateSourceId
    rate_bps: int
    origin: str
    is_live: bool
    observed_at: float = field(default_factory=time.time)

    @property
    def name(self) -> str:
        """Return the display name of the source."""
        return self.source_id.display_name

    @classmethod
    def fallback(cls, source_id: RateSourceId) -> RateObservation:
        """Build the static fallback observation for a source.

        :param source_id: Source to build the fallback for.
        :returns: Non-live observation carrying the source's fallback rate.
        """
        return cls(
            source_id=source_id,
            rate_bps=source_id.fallback_bps,
            origin=FALLBACK_ORIGIN,
            is_live=False,
        )

    def to_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        return {
            "source_id": int(self.source_id),
            "name": self.name,
            "rate_bps": self.rate_bps,
            "observed_at": self.observed_at,
            "origin": self.origin,
            "is_live": self.is_live,
        }
