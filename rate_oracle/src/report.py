"""Plain-text reports of oracle cycles for logs and the CLI."""

from __future__ import annotations

import time

from .RateAggregator import ReferenceRate
from .RatePusher import DryRunReport

# The senior tranche targets DOR + 1%.
SENIOR_SPREAD_BPS = 100

_WIDTH = 43


def format_rate(bps: int) -> str:
    """Format basis points as a percentage string (450 -> "4.50%")."""
    return f"{bps / 100:.2f}%"


def format_report(reference: ReferenceRate, timestamp: float | None = None) -> str:
    """Render the rate table of a cycle.

    :param reference: Aggregation result to render.
    :param timestamp: Report time (default: now).
    :returns: Multi-line report.
    """
    timestamp = time.time() if timestamp is None else timestamp
    rule = "-" * _WIDTH
    lines = [
        "=" * _WIDTH,
        "DOR Rate Oracle Update Report".center(_WIDTH),
        "=" * _WIDTH,
        "",
        f"Timestamp: {time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(timestamp))}",
        "",
        "Rate Sources:",
        rule,
    ]

    for obs in reference.observations:
        status = "*" if obs.is_live else "o"
        lines.append(
            f"  {status} {obs.name:<12} {format_rate(obs.rate_bps):>7}  ({obs.origin})"
        )

    lines += [
        rule,
        f"  DOR (Weighted)  {format_rate(reference.dor_bps):>7}",
        f"  Senior Target   {format_rate(reference.dor_bps + SENIOR_SPREAD_BPS):>7}"
        "  (DOR + 1%)",
        rule,
        f"  Sources: {reference.live_count} live, {reference.fallback_count} fallback",
        "=" * _WIDTH,
    ]
    return "\n".join(lines)


def format_dry_run(report: DryRunReport) -> str:
    """Render the projected state transition of a dry run.

    :param report: Dry run result.
    :returns: Multi-line report.
    """
    lines = [
        "Dry Run Mode - no transaction was sent",
        f"Authorization: {'authorized' if report.authorized else 'NOT authorized'}",
        "",
        "Proposed Changes:",
    ]
    for source in report.sources:
        arrow = "^" if source.change_bps > 0 else "v" if source.change_bps < 0 else "="
        lines.append(
            f"  {source.name:<12} {format_rate(source.current_bps):>7} {arrow} "
            f"{format_rate(source.proposed_bps)}"
        )
    lines += [
        "",
        f"DOR Change: {format_rate(report.prior_dor_bps)} -> "
        f"{format_rate(report.projected_dor_bps)}",
        f"  Delta: {format_rate(report.delta_bps)}",
        f"Gas Estimate: {report.gas_estimate}",
    ]
    return "\n".join(lines)
