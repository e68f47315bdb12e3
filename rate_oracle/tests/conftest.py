"""Shared fixtures for the rate oracle tests."""

import time

import pytest

from rate_oracle.src.RateSource import RateObservation, RateSourceId
from rate_oracle.src.RegistryClient import OnChainSource, RegistryClient, SubmittedTx


class FakeRegistry(RegistryClient):
    """In-memory registry that applies submitted rates to its own DOR.

    ``dor_after_push`` overrides the value read back after a submission, and
    ``submit_errors`` / ``receipt_statuses`` are consumed one per submission.
    """

    def __init__(self, dor: int = 400, authorized: bool = True) -> None:
        self.dor = dor
        self.authorized = authorized
        self.gas_estimate: int | Exception = 100_000
        self.current_gas_price = 1_000_000_000
        self.dor_after_push: int | None = None
        self.submit_errors: list[Exception | None] = []
        self.receipt_statuses: list[int] = []
        self.submissions: list[tuple[list[int], list[int], int]] = []
        self.sources = [
            OnChainSource(sid.display_name, sid.weight, 400, 0, True)
            for sid in RateSourceId
        ]

    @property
    def address(self) -> str | None:
        return "0x0000000000000000000000000000000000000001"

    def get_dor(self) -> int:
        return self.dor

    def get_all_sources(self) -> list[OnChainSource]:
        return list(self.sources)

    def is_authorized(self) -> bool:
        return self.authorized

    def estimate_gas(self, source_ids: list[int], rates: list[int]) -> int:
        if isinstance(self.gas_estimate, Exception):
            raise self.gas_estimate
        return self.gas_estimate

    def gas_price(self) -> int:
        return self.current_gas_price

    def submit_batch(
        self, source_ids: list[int], rates: list[int], gas_limit: int
    ) -> SubmittedTx:
        self.submissions.append((source_ids, rates, gas_limit))
        if self.submit_errors:
            error = self.submit_errors.pop(0)
            if error is not None:
                raise error

        status = self.receipt_statuses.pop(0) if self.receipt_statuses else 1
        if status == 1:
            total = sum(RateSourceId(s).weight for s in source_ids)
            weighted = sum(r * RateSourceId(s).weight for s, r in zip(source_ids, rates))
            self.dor = (2 * weighted + total) // (2 * total)
            if self.dor_after_push is not None:
                self.dor = self.dor_after_push

        return SubmittedTx(
            tx_hash=f"0x{len(self.submissions):064x}",
            block_number=1000 + len(self.submissions),
            gas_used=90_000,
            status=status,
        )


def make_observation(
    source_id: RateSourceId,
    rate_bps: int,
    is_live: bool = True,
    observed_at: float | None = None,
) -> RateObservation:
    """Build an observation with a plausible origin."""
    return RateObservation(
        source_id=source_id,
        rate_bps=rate_bps,
        origin="api.example.com" if is_live else "fallback",
        is_live=is_live,
        observed_at=time.time() if observed_at is None else observed_at,
    )


@pytest.fixture
def registry() -> FakeRegistry:
    """Authorized fake registry with a DOR of 4.00%."""
    return FakeRegistry()


@pytest.fixture
def observations() -> list[RateObservation]:
    """Five live observations whose weighted DOR is 453 bps (452.5 rounded up)."""
    return [
        make_observation(RateSourceId.TESR, 350),
        make_observation(RateSourceId.METH, 450),
        make_observation(RateSourceId.SOFR, 460),
        make_observation(RateSourceId.AAVE_USDT, 550),
        make_observation(RateSourceId.ONDO_USDY, 500),
    ]
