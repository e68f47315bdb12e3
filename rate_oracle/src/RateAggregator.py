"""RateAggregator: Weighted DOR calculation and observation set validation.

Algorithm:
    1. Keep the latest observation per source id
    2. Multiply each rate by the source's fixed weight
    3. Divide by the sum of the weights of the sources present
    4. Round half up to the nearest basis point

A source missing from the set (not even a fallback observation) drops out of
the denominator, so the remaining weights renormalise.

.. code-block:: python

    >>> observations = [
    ...     RateObservation(RateSourceId.TESR, 350, "api", True),
    ...     RateObservation(RateSourceId.METH, 450, "api", True),
    ...     RateObservation(RateSourceId.SOFR, 460, "api", True),
    ...     RateObservation(RateSourceId.AAVE_USDT, 550, "api", True),
    ...     RateObservation(RateSourceId.ONDO_USDY, 500, "api", True),
    ... ]
    >>> aggregate(observations).dor_bps
    453
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from .RateSource import RateObservation, RateSourceId

# Validation thresholds.
MIN_SOURCES = 3
MAX_PLAUSIBLE_BPS = 5000  # 50%
MAX_OBSERVATION_AGE_SECONDS = 24 * 60 * 60
MAX_FALLBACK_SOURCES = 2


@dataclass(frozen=True)
class ReferenceRate:
    """Aggregation result for one cycle.

    :ivar dor_bps: Weighted DOR in basis points.
    :ivar observations: Observations the DOR was computed from, in source order.
    """

    dor_bps: int
    observations: tuple[RateObservation, ...]

    @property
    def live_count(self) -> int:
        """Number of observations sourced from a live endpoint."""
        return sum(1 for o in self.observations if o.is_live)

    @property
    def fallback_count(self) -> int:
        """Number of observations that used the static fallback."""
        return sum(1 for o in self.observations if not o.is_live)


@dataclass
class ValidationResult:
    """Outcome of validating an observation set.

    :ivar warnings: Non-fatal anomalies, logged only.
    :ivar errors: Fatal problems; the cycle must not push.
    """

    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        """Check if the observation set may be pushed."""
        return not self.errors


def _latest_by_source(
    observations: Iterable[RateObservation],
) -> dict[RateSourceId, RateObservation]:
    by_source: dict[RateSourceId, RateObservation] = {}
    for observation in observations:
        by_source[observation.source_id] = observation
    return dict(sorted(by_source.items()))


def calculate_dor(observations: Iterable[RateObservation]) -> int:
    """Compute the weighted DOR in basis points.

    :param observations: Observations to aggregate.
    :returns: DOR rounded half up to the nearest basis point.
    :raises ValueError: If no observations are given.
    """
    by_source = _latest_by_source(observations)
    if not by_source:
        raise ValueError("Cannot aggregate an empty observation set")

    weighted_sum = sum(o.rate_bps * sid.weight for sid, o in by_source.items())
    total_weight = sum(sid.weight for sid in by_source)

    # floor(weighted_sum / total_weight + 0.5) in exact integer arithmetic
    return (2 * weighted_sum + total_weight) // (2 * total_weight)


def aggregate(observations: Iterable[RateObservation]) -> ReferenceRate:
    """Aggregate observations into a ReferenceRate.

    :param observations: Observations to aggregate.
    :returns: ReferenceRate with the DOR and the observations used.
    :raises ValueError: If no observations are given.
    """
    by_source = _latest_by_source(observations)
    dor_bps = calculate_dor(by_source.values())
    return ReferenceRate(dor_bps=dor_bps, observations=tuple(by_source.values()))


def validate(
    observations: Iterable[RateObservation],
    *,
    now: float | None = None,
) -> ValidationResult:
    """Check an observation set for fatal errors and anomalies.

    :param observations: Observations collected this cycle.
    :param now: Reference time for the staleness check (default: current time).
    :returns: ValidationResult listing warnings and errors.
    """
    by_source = _latest_by_source(observations)
    now = time.time() if now is None else now
    result = ValidationResult()

    if len(by_source) < MIN_SOURCES:
        result.errors.append(
            f"Insufficient sources: {len(by_source)}/{len(RateSourceId)} present, "
            f"need at least {MIN_SOURCES}"
        )

    for observation in by_source.values():
        name = observation.name
        if observation.rate_bps < 0:
            result.errors.append(f"{name}: negative rate {observation.rate_bps} bps")
        elif observation.rate_bps > MAX_PLAUSIBLE_BPS:
            result.warnings.append(
                f"{name}: implausible rate {observation.rate_bps} bps "
                f"(> {MAX_PLAUSIBLE_BPS} bps)"
            )

        age = now - observation.observed_at
        if age > MAX_OBSERVATION_AGE_SECONDS:
            result.warnings.append(f"{name}: stale observation ({age / 3600:.1f}h old)")

    fallback_count = sum(1 for o in by_source.values() if not o.is_live)
    if fallback_count > MAX_FALLBACK_SOURCES:
        result.warnings.append(
            f"Too many fallback sources: {fallback_count}/{len(RateSourceId)}"
        )

    return result
