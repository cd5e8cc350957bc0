"""
Scan orchestration.

Fetches each unique pair's order book once per batch, evaluates every
path against that shared snapshot set, and ranks the results.
"""

import logging
from collections.abc import Callable, Sequence
from decimal import Decimal
from typing import Any

from triarb.core.errors import DataUnavailableError
from triarb.core.types import ExecutionSink, Opportunity, TriangularPath
from triarb.market.gateway import MarketDataGateway
from triarb.strategy.calculator import EvaluationOptions, OpportunityCalculator
from triarb.utils.time import LatencyTimer, format_duration_us


logger = logging.getLogger(__name__)

# Per-path threshold override, e.g. from the path set a path belongs to
ThresholdLookup = Callable[[TriangularPath], Decimal | None]


def ranking_key(opportunity: Opportunity) -> tuple[bool, Decimal, int]:
    """Profitable first, then higher net percent, then lower risk."""
    return (
        not opportunity.profitable,
        -opportunity.net_profit_pct,
        opportunity.risk_level.rank,
    )


class ScanOrchestrator:
    """
    Evaluates a batch of paths against one round of market data.

    Features:
    - One order-book fetch per unique pair across the batch
    - Paths with unavailable data are skipped, never fatal
    - Optional per-path profit threshold override
    - Optional audit of every computed opportunity
    """

    def __init__(
        self,
        gateway: MarketDataGateway,
        calculator: OpportunityCalculator,
        sink: ExecutionSink | None = None,
        threshold_lookup: ThresholdLookup | None = None,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            gateway: Order-book source.
            calculator: Opportunity calculator.
            sink: Optional collaborator receiving every opportunity.
            threshold_lookup: Optional per-path threshold override.
        """
        self._gateway = gateway
        self._calculator = calculator
        self._sink = sink
        self._threshold_lookup = threshold_lookup

        self._scan_count = 0
        self._evaluated_count = 0
        self._skipped_count = 0
        self._last_scan_us = 0
        self._audit_failures = 0

    async def scan_all(
        self,
        paths: Sequence[TriangularPath],
        start_amount: Decimal,
        options: EvaluationOptions | None = None,
    ) -> list[Opportunity]:
        """
        Evaluate every path and rank the results.

        Args:
            paths: Paths to evaluate.
            start_amount: Amount of each path's start currency.
            options: Overrides applied to every path.

        Returns:
            Opportunities sorted profitable first, then by descending net
            percent, then by ascending risk.

        Raises:
            ValidationError: If start_amount is outside the configured bounds.
        """
        self._calculator.validate_amount(start_amount)

        with LatencyTimer() as timer:
            pairs = list(dict.fromkeys(pair for path in paths for pair in path.pairs))
            books = await self._gateway.get_order_books(pairs)

            opportunities: list[Opportunity] = []
            skipped = 0
            for path in paths:
                try:
                    opportunity = self._calculator.evaluate(
                        path, books, start_amount, self._options_for(path, options)
                    )
                except DataUnavailableError as e:
                    skipped += 1
                    logger.debug(f"Skipping {path.id}: {e}")
                    continue
                opportunities.append(opportunity)

            opportunities.sort(key=ranking_key)

        self._scan_count += 1
        self._evaluated_count += len(opportunities)
        self._skipped_count += skipped
        self._last_scan_us = timer.latency_us

        if skipped:
            logger.warning(f"Skipped {skipped}/{len(paths)} paths with unavailable data")

        profitable = sum(1 for o in opportunities if o.profitable)
        logger.info(
            f"Scanned {len(paths)} paths over {len(books)}/{len(pairs)} books: "
            f"{profitable} profitable ({format_duration_us(timer.latency_us)})"
        )

        if self._sink is not None:
            self._audit(self._sink, opportunities)

        return opportunities

    def _audit(self, sink: ExecutionSink, opportunities: list[Opportunity]) -> None:
        """Record opportunities; a failing sink never fails the scan."""
        for opportunity in opportunities:
            try:
                sink.record_opportunity(opportunity)
            except Exception:
                logger.exception(f"Failed to audit opportunity {opportunity.path.id}")
                self._audit_failures += 1
                return

    def _options_for(
        self,
        path: TriangularPath,
        options: EvaluationOptions | None,
    ) -> EvaluationOptions | None:
        """Apply the per-path threshold unless the caller set one."""
        if self._threshold_lookup is None:
            return options
        if options is not None and options.min_profit_threshold is not None:
            return options

        threshold = self._threshold_lookup(path)
        if threshold is None:
            return options
        fee_rate = options.fee_rate if options else None
        return EvaluationOptions(fee_rate=fee_rate, min_profit_threshold=threshold)

    @property
    def stats(self) -> dict[str, Any]:
        """Get scan statistics."""
        return {
            "scans": self._scan_count,
            "evaluated": self._evaluated_count,
            "skipped": self._skipped_count,
            "last_scan_ms": self._last_scan_us / 1000,
            "audit_failures": self._audit_failures,
        }
