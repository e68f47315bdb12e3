"""
Rate collectors for the DOR sources.

Each collector fetches one source's rate from an ordered list of endpoints and
falls back to a static conservative value when none of them answers.

Usage:
    from rate_oracle.src.collectors import get_all_collectors, get_collector

    collectors = get_all_collectors(timeout=5.0)
    observation = await get_collector(RateSourceId.SOFR).collect()
"""

# Import base classes and utilities
from .base import (
    COLLECTOR_REGISTRY,
    CollectorError,
    CollectorHTTPError,
    CollectorParseError,
    Endpoint,
    SourceCollector,
    first_numeric_field,
    get_all_collectors,
    get_collector,
    register_collector,
    to_finite_float,
)

# Import all collector implementations to trigger registration
from .aave import AaveUSDTCollector
from .meth import METHCollector
from .ondo import OndoUSDYCollector
from .sofr import SOFRCollector
from .tesr import TESRCollector

__all__ = [
    # Base classes
    "SourceCollector",
    "Endpoint",
    "CollectorError",
    "CollectorHTTPError",
    "CollectorParseError",
    # Registry functions
    "register_collector",
    "get_collector",
    "get_all_collectors",
    "COLLECTOR_REGISTRY",
    # Parser helpers
    "first_numeric_field",
    "to_finite_float",
    # Collector implementations
    "AaveUSDTCollector",
    "METHCollector",
    "OndoUSDYCollector",
    "SOFRCollector",
    "TESRCollector",
]
