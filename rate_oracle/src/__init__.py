"""
DOR Rate Oracle - Collection, Aggregation and On-Chain Push

This module provides the rate oracle pipeline:
- RateSource: Source ids, weights, fallbacks and the per-source observation
- RateAggregator: Weighted DOR calculation and validation
- CircuitBreaker: Failure guard for the on-chain push
- RetryExecutor: Exponential backoff retries
- RatePusher: Gas estimation, submission and verification
- OracleRunner: Cycle orchestration, once or on a schedule
- collectors: Per-source rate collectors with endpoint fallback
"""

from .CircuitBreaker import CircuitBreaker, CircuitBreakerOpenError, CircuitState
from .OracleRunner import CycleResult, OracleContext, OracleRunner
from .RateAggregator import (
    ReferenceRate,
    ValidationResult,
    aggregate,
    calculate_dor,
    validate,
)
from .RatePusher import (
    DryRunReport,
    GasPriceTooHighError,
    NotAuthorizedError,
    PushError,
    PushOutcome,
    RatePusher,
    TransactionFailedError,
)
from .RateSource import RateObservation, RateSourceId
from .RateStore import CycleRecord, JsonlRateStore, MemoryRateStore, RateStore
from .RetryExecutor import RetryPolicy, with_retry

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "CycleRecord",
    "CycleResult",
    "DryRunReport",
    "GasPriceTooHighError",
    "JsonlRateStore",
    "MemoryRateStore",
    "NotAuthorizedError",
    "OracleContext",
    "OracleRunner",
    "PushError",
    "PushOutcome",
    "RateObservation",
    "RatePusher",
    "RateSourceId",
    "RateStore",
    "ReferenceRate",
    "RetryPolicy",
    "TransactionFailedError",
    "ValidationResult",
    "aggregate",
    "calculate_dor",
    "validate",
    "with_retry",
]
