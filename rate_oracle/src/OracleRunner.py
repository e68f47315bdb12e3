"""OracleRunner: Drives DOR oracle cycles.

One cycle:
    - Collect all sources concurrently (each collector falls back on its own)
    - Validate the observation set, aborting on errors
    - Aggregate the weighted DOR and log the report
    - Dry run (projection only) or push on-chain
    - Hand the result to the rate store

Process-wide collaborators (registry client, circuit breaker, store) live in
an explicit ``OracleContext`` so independent runners never share state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from .CircuitBreaker import CircuitBreaker
from .collectors import SourceCollector
from .RateAggregator import ReferenceRate, ValidationResult, aggregate, validate
from .RatePusher import DryRunReport, NotAuthorizedError, PushOutcome, RatePusher
from .RateSource import RateObservation
from .RateStore import CycleRecord, RateStore
from .RegistryClient import RegistryClient
from .report import format_dry_run, format_rate, format_report

logger = logging.getLogger(__name__)

MODE_RUN = "run"
MODE_DRY_RUN = "dry-run"


@dataclass
class OracleContext:
    """Process-wide collaborators of the oracle.

    :ivar registry: Chain registry client (holds the signing credential), or
        None when no oracle address is configured. A dry run then reports the
        computed DOR without a push projection.
    :ivar circuit_breaker: Breaker guarding the push path.
    :ivar store: Optional cycle record store.
    """

    registry: RegistryClient | None
    circuit_breaker: CircuitBreaker = field(default_factory=CircuitBreaker)
    store: RateStore | None = None


@dataclass
class CycleResult:
    """Outcome of one oracle cycle.

    :ivar mode: ``"run"`` or ``"dry-run"``.
    :ivar success: Whether the cycle completed.
    :ivar observations: Observations collected this cycle.
    :ivar validation: Validation result of the observations.
    :ivar reference: Aggregated DOR, if validation passed.
    :ivar outcome: PushOutcome of a successful push.
    :ivar dry_run_report: Projection of a dry run.
    :ivar stage: Failing stage (validation, authorization, push, dry-run).
    :ivar message: Failure message.
    """

    mode: str
    success: bool
    observations: list[RateObservation] = field(default_factory=list)
    validation: ValidationResult | None = None
    reference: ReferenceRate | None = None
    outcome: PushOutcome | None = None
    dry_run_report: DryRunReport | None = None
    stage: str | None = None
    message: str | None = None

    def to_record(self) -> CycleRecord:
        """Flatten the result into a store record."""
        outcome = None
        if self.outcome is not None:
            outcome = self.outcome.to_dict()
        elif self.dry_run_report is not None:
            outcome = self.dry_run_report.to_dict()

        return CycleRecord(
            mode=self.mode,
            success=self.success,
            dor_bps=self.reference.dor_bps if self.reference else None,
            observations=[o.to_dict() for o in self.observations],
            live_count=sum(1 for o in self.observations if o.is_live),
            fallback_count=sum(1 for o in self.observations if not o.is_live),
            stage=self.stage,
            error=self.message,
            warnings=list(self.validation.warnings) if self.validation else [],
            outcome=outcome,
        )


class OracleRunner:
    """Runs oracle cycles once or on a fixed schedule.

    :ivar context: Process-wide collaborators.
    :ivar collectors: One collector per rate source.
    :ivar pusher: Pusher bound to the context's registry and breaker.
    """

    DEFAULT_UPDATE_PERIOD = 6 * 60 * 60  # 6 hours

    def __init__(
        self,
        context: OracleContext,
        collectors: list[SourceCollector],
        pusher: RatePusher | None = None,
    ) -> None:
        """Initialize the runner.

        :param context: Process-wide collaborators.
        :param collectors: Collectors to run each cycle.
        :param pusher: Optional pre-configured pusher. Built from the context
            with default settings if omitted and a registry is configured.
        """
        self.context = context
        self.collectors = collectors
        if pusher is None and context.registry is not None:
            pusher = RatePusher(context.registry, context.circuit_breaker)
        self.pusher = pusher

    async def collect_all(self) -> list[RateObservation]:
        """Collect from every source concurrently.

        A collector that raises despite its fallback is logged and left out.

        :returns: Observations in collector order.
        """
        logger.info(f"Collecting rates from {len(self.collectors)} sources...")
        results = await asyncio.gather(
            *(collector.collect() for collector in self.collectors),
            return_exceptions=True,
        )

        observations: list[RateObservation] = []
        for collector, result in zip(self.collectors, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"[{collector.name}] Collector raised: {result!r}")
            else:
                observations.append(result)
        return observations

    async def run_cycle(self, dry_run: bool = False) -> CycleResult:
        """Run one collect -> validate -> aggregate -> push cycle.

        :param dry_run: Project the push instead of submitting it.
        :returns: CycleResult describing success or the failing stage.
        """
        mode = MODE_DRY_RUN if dry_run else MODE_RUN
        logger.info(f"DOR oracle cycle starting (mode: {mode})")

        observations = await self.collect_all()
        validation = validate(observations)
        for warning in validation.warnings:
            logger.warning(f"Validation warning: {warning}")

        result = CycleResult(
            mode=mode,
            success=False,
            observations=observations,
            validation=validation,
        )

        if not validation.valid:
            for error in validation.errors:
                logger.error(f"Validation error: {error}")
            result.stage = "validation"
            result.message = "; ".join(validation.errors)
            await self._report(result)
            return result

        reference = aggregate(observations)
        result.reference = reference
        logger.info(f"Calculated DOR: {format_rate(reference.dor_bps)}")
        logger.info("\n" + format_report(reference))

        if self.pusher is None:
            if dry_run:
                logger.warning("Oracle address not set, cannot simulate the push")
                result.success = True
            else:
                result.stage = "push"
                result.message = "Oracle address not set, cannot push"
                logger.error(f"Cycle failed at push: {result.message}")
            await self._report(result)
            return result

        try:
            if dry_run:
                result.dry_run_report = await self.pusher.dry_run(reference.observations)
                logger.info("\n" + format_dry_run(result.dry_run_report))
            else:
                outcome = await self.pusher.push(reference.observations)
                result.outcome = outcome
                new_dor = (
                    "unknown"
                    if outcome.new_dor_bps is None
                    else format_rate(outcome.new_dor_bps)
                )
                logger.info(
                    f"Update complete: tx {outcome.tx_hash}, DOR "
                    f"{format_rate(outcome.prior_dor_bps)} -> {new_dor}"
                )
        except NotAuthorizedError as e:
            result.stage = "authorization"
            result.message = str(e)
        except Exception as e:
            result.stage = mode if dry_run else "push"
            result.message = str(e) or type(e).__name__
        else:
            result.success = True

        if not result.success:
            logger.error(f"Cycle failed at {result.stage}: {result.message}")

        await self._report(result)
        return result

    async def run_forever(
        self,
        period: float = DEFAULT_UPDATE_PERIOD,
        max_cycles: int | None = None,
    ) -> None:
        """Run cycles on a fixed schedule.

        Cycles run back to back in this task, so they never overlap; a failed
        cycle does not stop the schedule.

        :param period: Seconds between cycle starts (default: 6 hours).
        :param max_cycles: Stop after this many cycles (default: run forever).
        """
        logger.info(f"Starting scheduled updates every {period}s")
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            started = time.monotonic()
            await self.run_cycle()
            cycles += 1

            if max_cycles is not None and cycles >= max_cycles:
                break
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, period - elapsed))

    async def _report(self, result: CycleResult) -> None:
        """Hand a cycle result to the store, ignoring store failures.

        Stores may block on file I/O, so the save runs in a worker thread.
        """
        store = self.context.store
        if store is None:
            return
        try:
            await asyncio.to_thread(store.save_cycle, result.to_record())
        except Exception as e:
            logger.warning(f"Failed to persist cycle record: {e}")
