"""Unit tests for OracleRunner."""

import logging
import threading
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeRegistry, make_observation
from rate_oracle.src.CircuitBreaker import CircuitBreaker
from rate_oracle.src.OracleRunner import (
    MODE_DRY_RUN,
    MODE_RUN,
    OracleContext,
    OracleRunner,
)
from rate_oracle.src.RatePusher import RatePusher
from rate_oracle.src.RateSource import RateObservation, RateSourceId
from rate_oracle.src.RateStore import MemoryRateStore
from rate_oracle.src.RetryExecutor import RetryPolicy

NO_WAIT = RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0)


class StubCollector:
    """Collector returning a fixed observation or raising."""

    def __init__(
        self,
        source_id: RateSourceId,
        observation: RateObservation | None = None,
        error: Exception | None = None,
    ) -> None:
        self.source_id = source_id
        self.observation = observation
        self.error = error
        self.calls = 0

    @property
    def name(self) -> str:
        return self.source_id.display_name

    async def collect(self) -> RateObservation:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.observation


class BrokenStore(MemoryRateStore):
    def save_cycle(self, record) -> None:
        raise OSError("disk full")


class ThreadRecordingStore(MemoryRateStore):
    """Store remembering which thread each save ran on."""

    def __init__(self) -> None:
        super().__init__()
        self.threads: list[int] = []

    def save_cycle(self, record) -> None:
        self.threads.append(threading.get_ident())
        super().save_cycle(record)


def stub_collectors(observations: list[RateObservation]) -> list[StubCollector]:
    return [StubCollector(o.source_id, o) for o in observations]


def make_runner(
    registry: FakeRegistry,
    collectors: list,
    store=None,
) -> OracleRunner:
    context = OracleContext(registry=registry, store=store or MemoryRateStore())
    pusher = RatePusher(registry, context.circuit_breaker, retry_policy=NO_WAIT)
    return OracleRunner(context, collectors, pusher=pusher)


class TestCollectAll:
    """Test concurrent collection."""

    @pytest.mark.asyncio
    async def test_collects_every_source(self, registry, observations) -> None:
        """Every collector should be called once, results kept in order."""
        collectors = stub_collectors(observations)
        runner = make_runner(registry, collectors)

        collected = await runner.collect_all()

        assert collected == observations
        assert all(c.calls == 1 for c in collectors)

    @pytest.mark.asyncio
    async def test_raising_collector_dropped(
        self, registry, observations, caplog
    ) -> None:
        """A collector that raises should be left out and logged."""
        caplog.set_level(logging.ERROR)
        collectors = stub_collectors(observations)
        collectors[1] = StubCollector(RateSourceId.METH, error=RuntimeError("boom"))
        runner = make_runner(registry, collectors)

        collected = await runner.collect_all()

        assert [o.source_id for o in collected] == [
            RateSourceId.TESR,
            RateSourceId.SOFR,
            RateSourceId.AAVE_USDT,
            RateSourceId.ONDO_USDY,
        ]
        assert "[mETH] Collector raised" in caplog.text


class TestRunCycle:
    """Test a single oracle cycle."""

    @pytest.mark.asyncio
    async def test_successful_push(self, registry, observations) -> None:
        """A full cycle should push and record the result."""
        store = MemoryRateStore()
        runner = make_runner(registry, stub_collectors(observations), store=store)

        result = await runner.run_cycle()

        assert result.success
        assert result.mode == MODE_RUN
        assert result.reference.dor_bps == 453
        assert result.outcome.new_dor_bps == 453
        assert result.stage is None
        assert len(registry.submissions) == 1

        record = store.get_recent_cycles(limit=1)[0]
        assert record.success
        assert record.dor_bps == 453
        assert record.live_count == 5
        assert record.outcome["tx_hash"] == result.outcome.tx_hash

    @pytest.mark.asyncio
    async def test_insufficient_sources_not_pushed(self, registry) -> None:
        """Fewer than three sources should abort before pushing."""
        collectors = stub_collectors([
            make_observation(RateSourceId.TESR, 350),
            make_observation(RateSourceId.SOFR, 460),
        ])
        store = MemoryRateStore()
        runner = make_runner(registry, collectors, store=store)

        result = await runner.run_cycle()

        assert not result.success
        assert result.stage == "validation"
        assert "Insufficient sources" in result.message
        assert result.reference is None
        assert registry.submissions == []
        assert store.get_recent_cycles()[0].stage == "validation"

    @pytest.mark.asyncio
    async def test_negative_rate_not_pushed(self, registry, observations) -> None:
        """A negative rate should abort the cycle."""
        observations[2] = make_observation(RateSourceId.SOFR, -10)
        runner = make_runner(registry, stub_collectors(observations))

        result = await runner.run_cycle()

        assert not result.success
        assert result.stage == "validation"
        assert registry.submissions == []

    @pytest.mark.asyncio
    async def test_fallback_warning_still_pushes(self, registry) -> None:
        """Too many fallbacks should warn without blocking the push."""
        collectors = stub_collectors([
            RateObservation.fallback(RateSourceId.TESR),
            RateObservation.fallback(RateSourceId.METH),
            RateObservation.fallback(RateSourceId.SOFR),
            make_observation(RateSourceId.AAVE_USDT, 550),
            make_observation(RateSourceId.ONDO_USDY, 500),
        ])
        runner = make_runner(registry, collectors)

        result = await runner.run_cycle()

        assert result.success
        assert any("Too many fallback" in w for w in result.validation.warnings)
        assert result.reference.fallback_count == 3

    @pytest.mark.asyncio
    async def test_dry_run(self, registry, observations) -> None:
        """Dry runs should project without submitting."""
        store = MemoryRateStore()
        runner = make_runner(registry, stub_collectors(observations), store=store)

        result = await runner.run_cycle(dry_run=True)

        assert result.success
        assert result.mode == MODE_DRY_RUN
        assert result.dry_run_report.projected_dor_bps == 453
        assert result.outcome is None
        assert registry.submissions == []
        assert store.get_recent_cycles()[0].outcome["projected_dor_bps"] == 453

    @pytest.mark.asyncio
    async def test_not_authorized(self, observations) -> None:
        """Missing authorization should fail at its own stage."""
        registry = FakeRegistry(authorized=False)
        runner = make_runner(registry, stub_collectors(observations))

        result = await runner.run_cycle()

        assert not result.success
        assert result.stage == "authorization"
        assert registry.submissions == []

    @pytest.mark.asyncio
    async def test_push_failure(self, registry, observations) -> None:
        """A failed push should be reported, not raised."""
        registry.receipt_statuses = [0, 0]
        runner = make_runner(registry, stub_collectors(observations))

        result = await runner.run_cycle()

        assert not result.success
        assert result.stage == "push"
        assert "Transaction failed" in result.message
        assert result.reference.dor_bps == 453

    @pytest.mark.asyncio
    async def test_store_failure_ignored(
        self, registry, observations, caplog
    ) -> None:
        """A failing store should not fail the cycle."""
        caplog.set_level(logging.WARNING)
        runner = make_runner(
            registry, stub_collectors(observations), store=BrokenStore()
        )

        result = await runner.run_cycle()

        assert result.success
        assert "Failed to persist cycle record" in caplog.text

    @pytest.mark.asyncio
    async def test_without_store(self, registry, observations) -> None:
        """A context without a store should still run."""
        context = OracleContext(registry=registry)
        runner = OracleRunner(context, stub_collectors(observations))

        result = await runner.run_cycle(dry_run=True)

        assert result.success


class TestRunCycleWithoutRegistry:
    """Test cycles when no oracle address is configured."""

    @pytest.mark.asyncio
    async def test_dry_run_collects_and_reports(self, observations, caplog) -> None:
        """A dry run should still compute and log the DOR report."""
        caplog.set_level(logging.INFO)
        store = MemoryRateStore()
        collectors = stub_collectors(observations)
        runner = OracleRunner(OracleContext(registry=None, store=store), collectors)

        result = await runner.run_cycle(dry_run=True)

        assert runner.pusher is None
        assert result.success
        assert result.reference.dor_bps == 453
        assert result.dry_run_report is None
        assert all(c.calls == 1 for c in collectors)
        assert "DOR Rate Oracle Update Report" in caplog.text
        assert "cannot simulate the push" in caplog.text
        assert store.get_recent_cycles()[0].dor_bps == 453

    @pytest.mark.asyncio
    async def test_push_fails(self, observations) -> None:
        """A push without a registry should fail at the push stage."""
        runner = OracleRunner(
            OracleContext(registry=None), stub_collectors(observations)
        )

        result = await runner.run_cycle()

        assert not result.success
        assert result.stage == "push"
        assert "Oracle address not set" in result.message


class TestStoreReporting:
    """Test how cycle records reach the store."""

    @pytest.mark.asyncio
    async def test_save_runs_off_event_loop(self, registry, observations) -> None:
        """Saving should happen in a worker thread."""
        store = ThreadRecordingStore()
        runner = make_runner(registry, stub_collectors(observations), store=store)

        await runner.run_cycle(dry_run=True)

        assert store.threads
        assert store.threads[0] != threading.get_ident()


class TestRunForever:
    """Test scheduled cycles."""

    @pytest.mark.asyncio
    @patch("rate_oracle.src.OracleRunner.asyncio.sleep", new_callable=AsyncMock)
    async def test_max_cycles(self, mock_sleep, registry, observations) -> None:
        """The schedule should run the requested number of cycles."""
        store = MemoryRateStore()
        runner = make_runner(registry, stub_collectors(observations), store=store)

        await runner.run_forever(period=60, max_cycles=3)

        assert len(store.get_recent_cycles()) == 3
        # No wait after the last cycle
        assert mock_sleep.await_count == 2
        assert 0 <= mock_sleep.await_args.args[0] <= 60

    @pytest.mark.asyncio
    @patch("rate_oracle.src.OracleRunner.asyncio.sleep", new_callable=AsyncMock)
    async def test_failures_do_not_stop_schedule(self, mock_sleep, observations) -> None:
        """Failed cycles should not end the schedule."""
        registry = FakeRegistry(authorized=False)
        store = MemoryRateStore()
        runner = make_runner(registry, stub_collectors(observations), store=store)

        await runner.run_forever(period=60, max_cycles=2)

        records = store.get_recent_cycles()
        assert len(records) == 2
        assert not any(r.success for r in records)


class TestOracleContext:
    """Test collaborator isolation."""

    def test_independent_breakers(self, registry) -> None:
        """Each context should get its own circuit breaker."""
        first = OracleContext(registry=registry)
        second = OracleContext(registry=registry)
        assert first.circuit_breaker is not second.circuit_breaker

    def test_runner_uses_context_breaker(self, registry) -> None:
        """The default pusher should share the context's breaker."""
        breaker = CircuitBreaker(failure_threshold=1)
        runner = OracleRunner(OracleContext(registry, breaker), [])
        assert runner.pusher.circuit_breaker is breaker
        assert runner.pusher.registry is registry
