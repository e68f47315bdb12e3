"""RatePusher: Submits collected rates to the on-chain registry.

A push runs as ``breaker.execute(with_retry(submit_once))``:
    1. Read the current on-chain DOR and compute the local DOR
    2. Warn if the DOR would move by more than 2%
    3. Estimate gas (falling back to a fixed default)
    4. Reject if the gas price exceeds the configured cap
    5. Submit the batched update and wait for one confirmation
    6. Treat a reverted receipt as a retryable failure
    7. Read back the DOR and warn if it differs from the local value

Authorization and gas price cap violations are policy failures: they are
never retried. The registry client is blocking, so every call runs in a worker
thread.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass

from .CircuitBreaker import CircuitBreaker
from .RateAggregator import aggregate
from .RateSource import RateObservation
from .RegistryClient import RegistryClient
from .RetryExecutor import RetryPolicy, with_retry

logger = logging.getLogger(__name__)


class PushError(Exception):
    """Base exception for push failures."""

    pass


class PushPolicyError(PushError):
    """A push rejected by policy. Never retried."""

    pass


class NotAuthorizedError(PushPolicyError):
    """Raised when the signing account may not update the registry."""

    pass


class GasPriceTooHighError(PushPolicyError):
    """Raised when the current gas price exceeds the configured cap.

    :ivar gas_price: Current gas price in wei.
    :ivar max_gas_price: Configured cap in wei.
    """

    def __init__(self, gas_price: int, max_gas_price: int):
        """Initialize the error.

        :param gas_price: Current gas price in wei.
        :param max_gas_price: Configured cap in wei.
        """
        self.gas_price = gas_price
        self.max_gas_price = max_gas_price
        super().__init__(f"Gas price too high: {gas_price} > {max_gas_price}")


class TransactionFailedError(PushError):
    """Raised when a confirmed transaction reports failure status.

    :ivar tx_hash: Hash of the failed transaction.
    """

    def __init__(self, tx_hash: str):
        """Initialize the error.

        :param tx_hash: Hash of the failed transaction.
        """
        self.tx_hash = tx_hash
        super().__init__(f"Transaction failed: {tx_hash}")


@dataclass(frozen=True)
class PushOutcome:
    """Result of a successful push.

    :ivar tx_hash: Transaction hash.
    :ivar block_number: Block the update was included in.
    :ivar gas_used: Gas consumed.
    :ivar prior_dor_bps: On-chain DOR before the update.
    :ivar new_dor_bps: On-chain DOR read back after the update, or None if
        the read-back failed.
    :ivar locally_computed_dor_bps: DOR computed from the pushed observations.
    """

    tx_hash: str
    block_number: int
    gas_used: int
    prior_dor_bps: int
    new_dor_bps: int | None
    locally_computed_dor_bps: int

    def to_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        return {
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "prior_dor_bps": self.prior_dor_bps,
            "new_dor_bps": self.new_dor_bps,
            "locally_computed_dor_bps": self.locally_computed_dor_bps,
        }


@dataclass(frozen=True)
class SourceProjection:
    """Projected change of one source's on-chain rate."""

    name: str
    current_bps: int
    proposed_bps: int

    @property
    def change_bps(self) -> int:
        return self.proposed_bps - self.current_bps


@dataclass(frozen=True)
class DryRunReport:
    """Projected state transition of a push that was not submitted.

    :ivar authorized: Whether the signing account may push.
    :ivar prior_dor_bps: Current on-chain DOR.
    :ivar projected_dor_bps: DOR the push would produce.
    :ivar gas_estimate: Gas limit the push would use.
    :ivar sources: Per-source current and proposed rates.
    """

    authorized: bool
    prior_dor_bps: int
    projected_dor_bps: int
    gas_estimate: int
    sources: tuple[SourceProjection, ...]

    @property
    def delta_bps(self) -> int:
        return self.projected_dor_bps - self.prior_dor_bps

    def to_dict(self) -> dict:
        """Return a JSON-serialisable representation."""
        return {
            "authorized": self.authorized,
            "prior_dor_bps": self.prior_dor_bps,
            "projected_dor_bps": self.projected_dor_bps,
            "gas_estimate": self.gas_estimate,
            "sources": [
                {
                    "name": s.name,
                    "current_bps": s.current_bps,
                    "proposed_bps": s.proposed_bps,
                }
                for s in self.sources
            ],
        }


class RatePusher:
    """Pushes rate observations to the registry contract.

    :ivar registry: Chain registry client.
    :ivar circuit_breaker: Breaker guarding the push path.
    :ivar retry_policy: Retry parameters for transient failures.
    :ivar gas_limit_multiplier: Safety factor applied to the gas estimate.
    :ivar max_gas_price: Gas price cap in wei, or None for no cap.
    """

    LARGE_CHANGE_BPS = 200  # 2%
    MISMATCH_TOLERANCE_BPS = 5
    DEFAULT_GAS_LIMIT = 500_000
    DEFAULT_GAS_LIMIT_MULTIPLIER = 1.2
    DEFAULT_RETRY_POLICY = RetryPolicy(
        max_attempts=3, base_delay=2.0, max_delay=30.0, multiplier=2.0
    )

    def __init__(
        self,
        registry: RegistryClient,
        circuit_breaker: CircuitBreaker,
        retry_policy: RetryPolicy | None = None,
        gas_limit_multiplier: float = DEFAULT_GAS_LIMIT_MULTIPLIER,
        max_gas_price: int | None = None,
    ) -> None:
        """Initialize the pusher.

        :param registry: Chain registry client.
        :param circuit_breaker: Breaker guarding the push path.
        :param retry_policy: Retry parameters (default: 3 attempts, 2s base
            delay, doubling, 30s cap).
        :param gas_limit_multiplier: Factor applied to the gas estimate
            (default: 1.2).
        :param max_gas_price: Gas price cap in wei (default: no cap).
        """
        self.registry = registry
        self.circuit_breaker = circuit_breaker
        self.retry_policy = retry_policy or self.DEFAULT_RETRY_POLICY
        self.gas_limit_multiplier = gas_limit_multiplier
        self.max_gas_price = max_gas_price

    async def is_authorized(self) -> bool:
        """Check whether the signing account may push updates."""
        return await asyncio.to_thread(self.registry.is_authorized)

    async def push(self, observations: Iterable[RateObservation]) -> PushOutcome:
        """Push observations on-chain.

        :param observations: Validated observations to submit.
        :returns: PushOutcome of the confirmed update.
        :raises NotAuthorizedError: If the account may not update rates.
        :raises CircuitBreakerOpenError: If the breaker rejects the push.
        :raises PushError: If the push fails after retries.
        """
        observations = list(observations)
        if not await self.is_authorized():
            raise NotAuthorizedError(
                f"Account {self.registry.address} is not authorized to update rates"
            )

        logger.info(f"Pushing {len(observations)} rates in batch...")
        return await self.circuit_breaker.execute(
            lambda: with_retry(
                lambda: self._submit_once(observations),
                self.retry_policy,
                non_retryable=(PushPolicyError,),
                on_retry=self._log_retry,
            )
        )

    async def dry_run(self, observations: Iterable[RateObservation]) -> DryRunReport:
        """Project a push without submitting anything.

        :param observations: Observations that would be submitted.
        :returns: DryRunReport describing the projected state transition.
        """
        reference = aggregate(observations)
        source_ids, rates = self._encode(reference.observations)

        try:
            authorized = await self.is_authorized()
        except Exception as e:
            logger.error(f"Failed to check authorization: {e}")
            authorized = False

        prior_dor = await asyncio.to_thread(self.registry.get_dor)
        on_chain = await asyncio.to_thread(self.registry.get_all_sources)
        gas_estimate = await self._estimate_gas(source_ids, rates)

        projections = []
        for observation in reference.observations:
            sid = int(observation.source_id)
            current = on_chain[sid].rate if sid < len(on_chain) else 0
            projections.append(
                SourceProjection(
                    name=observation.name,
                    current_bps=current,
                    proposed_bps=observation.rate_bps,
                )
            )

        report = DryRunReport(
            authorized=authorized,
            prior_dor_bps=prior_dor,
            projected_dor_bps=reference.dor_bps,
            gas_estimate=gas_estimate,
            sources=tuple(projections),
        )
        logger.info(
            f"Dry run: DOR {prior_dor / 100:.2f}% -> {reference.dor_bps / 100:.2f}% "
            f"(gas estimate {gas_estimate}, authorized={authorized})"
        )
        return report

    async def _submit_once(self, observations: list[RateObservation]) -> PushOutcome:
        """Run one submission attempt.

        :param observations: Observations to submit.
        :returns: PushOutcome of the confirmed update.
        :raises GasPriceTooHighError: If the gas price exceeds the cap.
        :raises TransactionFailedError: If the receipt reports failure.
        """
        reference = aggregate(observations)
        local_dor = reference.dor_bps

        prior_dor = await asyncio.to_thread(self.registry.get_dor)
        logger.info(
            f"Current DOR: {prior_dor / 100:.2f}%, expected DOR: {local_dor / 100:.2f}%"
        )

        dor_change = abs(local_dor - prior_dor)
        if dor_change > self.LARGE_CHANGE_BPS:
            logger.warning(f"Large DOR change detected: {dor_change / 100:.2f}%")

        source_ids, rates = self._encode(reference.observations)
        gas_limit = await self._estimate_gas(source_ids, rates)

        gas_price = await asyncio.to_thread(self.registry.gas_price)
        if self.max_gas_price is not None and gas_price > self.max_gas_price:
            raise GasPriceTooHighError(gas_price, self.max_gas_price)
        logger.info(f"Gas limit: {gas_limit}, gas price: {gas_price}")

        tx = await asyncio.to_thread(
            self.registry.submit_batch, source_ids, rates, gas_limit
        )
        if not tx.succeeded:
            raise TransactionFailedError(tx.tx_hash)
        logger.info(f"TX {tx.tx_hash} confirmed in block {tx.block_number}")

        # The update is confirmed; a failed read-back must not resubmit it
        try:
            new_dor = await asyncio.to_thread(self.registry.get_dor)
        except Exception as e:
            logger.warning(f"Failed to read back DOR after {tx.tx_hash}: {e}")
            new_dor = None

        if (
            new_dor is not None
            and abs(new_dor - local_dor) > self.MISMATCH_TOLERANCE_BPS
        ):
            logger.warning(
                f"DOR mismatch: expected {local_dor / 100:.2f}%, "
                f"got {new_dor / 100:.2f}%"
            )

        return PushOutcome(
            tx_hash=tx.tx_hash,
            block_number=tx.block_number,
            gas_used=tx.gas_used,
            prior_dor_bps=prior_dor,
            new_dor_bps=new_dor,
            locally_computed_dor_bps=local_dor,
        )

    async def _estimate_gas(self, source_ids: list[int], rates: list[int]) -> int:
        """Estimate the gas limit, falling back to the default on failure."""
        try:
            estimate = await asyncio.to_thread(
                self.registry.estimate_gas, source_ids, rates
            )
        except Exception as e:
            logger.warning(
                f"Gas estimation failed, using default {self.DEFAULT_GAS_LIMIT}: {e}"
            )
            return self.DEFAULT_GAS_LIMIT
        return math.ceil(estimate * self.gas_limit_multiplier)

    @staticmethod
    def _encode(
        observations: Iterable[RateObservation],
    ) -> tuple[list[int], list[int]]:
        source_ids: list[int] = []
        rates: list[int] = []
        for observation in observations:
            source_ids.append(int(observation.source_id))
            rates.append(observation.rate_bps)
        return source_ids, rates

    @staticmethod
    def _log_retry(attempt: int, error: Exception) -> None:
        logger.warning(f"Push attempt {attempt} failed, retrying: {error}")
