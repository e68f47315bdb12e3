"""Unit tests for report formatting."""

from conftest import make_observation
from rate_oracle.src.RateAggregator import aggregate
from rate_oracle.src.RatePusher import DryRunReport, SourceProjection
from rate_oracle.src.RateSource import RateObservation, RateSourceId
from rate_oracle.src.report import format_dry_run, format_rate, format_report


class TestFormatRate:
    """Test basis point formatting."""

    def test_format(self) -> None:
        assert format_rate(450) == "4.50%"
        assert format_rate(5) == "0.05%"
        assert format_rate(-25) == "-0.25%"


class TestFormatReport:
    """Test the cycle rate table."""

    def test_contains_sources_and_dor(self, observations) -> None:
        """The report should list every source, the DOR and senior target."""
        report = format_report(aggregate(observations), timestamp=0)

        assert "Timestamp: 1970-01-01T00:00:00Z" in report
        for name in ("TESR", "mETH", "SOFR", "Aave_USDT", "Ondo_USDY"):
            assert name in report
        assert "DOR (Weighted)    4.53%" in report
        assert "5.53%  (DOR + 1%)" in report
        assert "Sources: 5 live, 0 fallback" in report

    def test_marks_fallbacks(self) -> None:
        """Fallback sources should be marked and counted."""
        reference = aggregate([
            make_observation(RateSourceId.TESR, 360),
            RateObservation.fallback(RateSourceId.METH),
            make_observation(RateSourceId.SOFR, 460),
        ])
        report = format_report(reference)

        assert "o mETH" in report
        assert "(fallback)" in report
        assert "Sources: 2 live, 1 fallback" in report


class TestFormatDryRun:
    """Test the dry run projection."""

    def test_projection(self) -> None:
        """Arrows should show the direction of each change."""
        report = DryRunReport(
            authorized=False,
            prior_dor_bps=400,
            projected_dor_bps=453,
            gas_estimate=120_000,
            sources=(
                SourceProjection("TESR", 400, 350),
                SourceProjection("mETH", 400, 450),
                SourceProjection("SOFR", 460, 460),
            ),
        )
        text = format_dry_run(report)

        assert "no transaction was sent" in text
        assert "Authorization: NOT authorized" in text
        assert "4.00% v 3.50%" in text
        assert "4.00% ^ 4.50%" in text
        assert "4.60% = 4.60%" in text
        assert "DOR Change: 4.00% -> 4.53%" in text
        assert "Delta: 0.53%" in text
        assert "Gas Estimate: 120000" in text
