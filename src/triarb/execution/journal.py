"""
Execution journals.

Persistence collaborators receiving every finalized execution result and,
optionally, every computed opportunity for audit.
"""

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

import orjson

from triarb.core.types import ExecutionResult, LegResult, Opportunity, RollbackAttempt


logger = logging.getLogger(__name__)


def _default(obj: Any) -> Any:
    """orjson fallback for types it does not serialize natively."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if isinstance(obj, BaseException):
        return {"type": type(obj).__name__, "message": str(obj)}
    raise TypeError(f"Cannot serialize {type(obj).__name__}")


def leg_to_dict(leg: LegResult) -> dict[str, Any]:
    """Flatten a leg result for storage or display."""
    return {
        "pair": leg.step.pair,
        "side": leg.step.side.value,
        "from": leg.step.from_currency,
        "to": leg.step.to_currency,
        "input_amount": leg.input_amount,
        "output_amount": leg.output_amount,
        "price": leg.price,
        "fee": leg.fee,
        "slippage_pct": leg.slippage_pct,
        "available_liquidity": leg.available_liquidity,
        "depth_risk": leg.depth_risk,
        "order_id": leg.order_id,
        "status": leg.status.value if leg.status else None,
        "simulated": leg.simulated,
        "latency_us": leg.latency_us,
        "error": leg.error,
    }


def rollback_to_dict(attempt: RollbackAttempt) -> dict[str, Any]:
    """Flatten a rollback attempt for storage or display."""
    return {
        "leg_index": attempt.leg_index,
        "pair": attempt.pair,
        "side": attempt.side.value,
        "amount": attempt.amount,
        "success": attempt.success,
        "order_id": attempt.order_id,
        "status": attempt.status.value,
        "simulated": attempt.simulated,
        "latency_us": attempt.latency_us,
        "error": attempt.error,
    }


def execution_to_dict(result: ExecutionResult) -> dict[str, Any]:
    """Flatten an execution result for storage or display."""
    return {
        "id": result.id,
        "path_id": result.path_id,
        "sequence": result.opportunity.path.sequence,
        "status": result.status,
        "success": result.success,
        "dry_run": result.dry_run,
        "start_currency": result.start_currency,
        "start_amount": result.start_amount,
        "end_amount": result.end_amount,
        "net_profit": result.net_profit,
        "net_profit_pct": result.net_profit_pct,
        "expected_net_profit": result.opportunity.net_profit,
        "legs": [leg_to_dict(leg) for leg in result.legs],
        "failed_leg": leg_to_dict(result.failed_leg) if result.failed_leg else None,
        "rollbacks": [rollback_to_dict(r) for r in result.rollbacks],
        "error": str(result.error) if result.error else None,
        "error_type": result.error_type or None,
        "rollback_error": str(result.rollback_error) if result.rollback_error else None,
        "requires_manual_intervention": result.requires_manual_intervention,
        "state": result.state.value,
        "transitions": list(result.transitions),
        "started_at_us": result.started_at_us,
        "finished_at_us": result.finished_at_us,
        "total_latency_us": result.total_latency_us,
    }


def opportunity_to_dict(opportunity: Opportunity) -> dict[str, Any]:
    """Flatten an opportunity for storage or display."""
    return {
        "path_id": opportunity.path.id,
        "sequence": opportunity.path.sequence,
        "exchange": opportunity.path.exchange,
        "start_currency": opportunity.start_currency,
        "start_amount": opportunity.start_amount,
        "end_amount": opportunity.end_amount,
        "gross_profit": opportunity.gross_profit,
        "net_profit": opportunity.net_profit,
        "net_profit_pct": opportunity.net_profit_pct,
        "total_fees": opportunity.total_fees,
        "total_slippage": opportunity.total_slippage,
        "risk_level": opportunity.risk_level.value,
        "risk_factors": list(opportunity.risk_factors),
        "recommendation": opportunity.recommendation.value,
        "profitable": opportunity.profitable,
        "legs": [leg_to_dict(leg) for leg in opportunity.legs],
        "depth": {
            pair: {
                "levels_consumed": report.levels_consumed,
                "price_impact_pct": report.price_impact_pct,
                "liquidity_risk": report.liquidity_risk,
            }
            for pair, report in opportunity.order_book_depth.items()
        },
        "as_of_us": opportunity.as_of_us,
    }


def dumps(record: dict[str, Any]) -> bytes:
    """Serialize a flattened record, rendering Decimal as strings."""
    return orjson.dumps(record, default=_default)


class MemoryJournal:
    """In-memory sink, used by tests and the dashboard."""

    def __init__(self, keep_opportunities: bool = False) -> None:
        """
        Initialize journal.

        Args:
            keep_opportunities: Whether to retain audited opportunities.
        """
        self.executions: list[ExecutionResult] = []
        self.opportunities: list[Opportunity] = []
        self._keep_opportunities = keep_opportunities

    def record_execution(self, result: ExecutionResult) -> None:
        """Store a finalized execution result."""
        self.executions.append(result)

    def record_opportunity(self, opportunity: Opportunity) -> None:
        """Store a computed opportunity when auditing is on."""
        if self._keep_opportunities:
            self.opportunities.append(opportunity)


class JsonLinesJournal:
    """
    Append-only JSON-lines journal.

    Features:
    - One orjson line per record, Decimal rendered as strings
    - Execution status as completed, rolled_back or failed
    - Optional opportunity audit trail
    """

    def __init__(self, file_path: Path, audit_opportunities: bool = False) -> None:
        """
        Initialize journal.

        Args:
            file_path: Journal file, created with its directory on first write.
            audit_opportunities: Whether to also log every opportunity.
        """
        self._path = file_path
        self._audit = audit_opportunities
        self._records = 0

    @property
    def path(self) -> Path:
        """Journal file location."""
        return self._path

    def record_execution(self, result: ExecutionResult) -> None:
        """Append a finalized execution result."""
        self._append({"type": "execution", **execution_to_dict(result)})
        logger.debug(f"Journaled execution {result.id} ({result.status})")

    def record_opportunity(self, opportunity: Opportunity) -> None:
        """Append an opportunity when auditing is on."""
        if self._audit:
            self._append({"type": "opportunity", **opportunity_to_dict(opportunity)})

    def read_records(self) -> list[dict[str, Any]]:
        """Load every record written so far."""
        if not self._path.exists():
            return []
        with self._path.open("rb") as f:
            return [orjson.loads(line) for line in f if line.strip()]

    def _append(self, record: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("ab") as f:
            f.write(dumps(record) + b"\n")
        self._records += 1

    @property
    def records_written(self) -> int:
        """Records appended by this instance."""
        return self._records
