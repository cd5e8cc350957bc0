"""
Main engine orchestrator.

Composition root: builds every component from settings, owns the
subscriber registry and event bus, and runs the scan loop with optional
auto-execution.
"""

import asyncio
import logging
import signal
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from decimal import Decimal
from typing import Any

from triarb.config.settings import Settings
from triarb.core.errors import DataUnavailableError, TriArbError, ValidationError
from triarb.core.event_bus import Event, EventBus, EventType
from triarb.core.types import (
    ExchangeClient,
    ExecutionResult,
    ExecutionSink,
    Opportunity,
    Recommendation,
    TriangularPath,
)
from triarb.exchange.client import BinanceClient
from triarb.execution.balance import BalanceValidator
from triarb.execution.coordinator import CoordinatorConfig, ExecutionCoordinator, ExecutionOptions
from triarb.execution.guard import AccountExecutionGuard
from triarb.execution.journal import JsonLinesJournal, MemoryJournal
from triarb.market.distribution import PriceDistributor, SubscriberRegistry
from triarb.market.gateway import MarketDataGateway, RetryPolicy
from triarb.strategy.calculator import CalculatorConfig, EvaluationOptions, OpportunityCalculator
from triarb.strategy.catalog import StaticPathCatalog
from triarb.strategy.scanner import ScanOrchestrator
from triarb.telemetry.metrics import MetricsCollector
from triarb.utils.time import LatencyTimer


logger = logging.getLogger(__name__)

RECENT_EXECUTIONS = 50


class TriArbEngine:
    """
    Main engine orchestrator.

    Manages the complete lifecycle of:
    - Exchange connectivity
    - Path catalog and market data
    - Opportunity scanning
    - Execution with rollback
    - Price distribution to subscribers
    - Telemetry
    """

    def __init__(
        self,
        settings: Settings,
        client: ExchangeClient | None = None,
        catalog: StaticPathCatalog | None = None,
        sink: ExecutionSink | None = None,
    ) -> None:
        """
        Build all components. No network I/O happens here.

        Args:
            settings: Application settings.
            client: Exchange client; a BinanceClient is built when omitted.
            catalog: Path catalog; loaded from settings when omitted.
            sink: Execution journal; built from settings when omitted.

        Raises:
            ValidationError: If no client is available for the exchange.
        """
        self._settings = settings
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._closed = False

        self._client = client or self._build_client(settings)
        self._owns_client = client is None

        if catalog is not None:
            self._catalog = catalog
        elif settings.catalog_file is not None:
            self._catalog = StaticPathCatalog.from_file(settings.catalog_file)
        else:
            self._catalog = StaticPathCatalog.default()

        if sink is not None:
            self._journal: ExecutionSink = sink
        elif settings.journal_file is not None:
            self._journal = JsonLinesJournal(settings.journal_file)
        else:
            self._journal = MemoryJournal()

        # Infrastructure
        self._event_bus = EventBus()
        self._metrics = MetricsCollector()

        # Market data
        self._gateway = MarketDataGateway(
            self._client,
            retry_policy=RetryPolicy(max_attempts=settings.market_data_max_attempts),
        )
        self._registry = SubscriberRegistry(idle_timeout_s=settings.subscriber_idle_timeout_s)
        self._distributor = PriceDistributor(
            self._gateway, self._registry, interval_s=settings.distribution_interval_s
        )

        # Strategy
        self._calculator = OpportunityCalculator(CalculatorConfig.from_settings(settings))
        self._scanner = ScanOrchestrator(
            self._gateway,
            self._calculator,
            sink=self._journal,
            threshold_lookup=lambda path: self._catalog.threshold_for(path.exchange, path.id),
        )

        # Execution
        self._coordinator = ExecutionCoordinator(
            self._gateway,
            validator=BalanceValidator(
                settings.balance_fee_buffer, max_portfolio_pct=settings.max_portfolio_pct
            ),
            guard=AccountExecutionGuard(settings.execution_cooldown_s),
            sink=self._journal,
            config=CoordinatorConfig.from_settings(settings),
            event_bus=self._event_bus,
        )
        self._execution_options = ExecutionOptions.from_settings(settings)

        # State
        self._last_opportunities: list[Opportunity] = []
        self._recent_executions: deque[ExecutionResult] = deque(maxlen=RECENT_EXECUTIONS)

        self._event_bus.subscribe(EventType.EXECUTION_COMPLETE, self._on_execution_complete)

    @staticmethod
    def _build_client(settings: Settings) -> ExchangeClient:
        if settings.exchange != "binance":
            raise ValidationError(
                f"No built-in client for exchange '{settings.exchange}'; inject one"
            )
        key = settings.binance_api_key
        secret = settings.binance_api_secret
        return BinanceClient(
            api_key=key.get_secret_value() if key else None,
            api_secret=secret.get_secret_value() if secret else None,
            use_testnet=settings.use_testnet,
        )

    def _on_execution_complete(self, event: Event[ExecutionResult]) -> None:
        """Handle a finalized execution."""
        self._metrics.record_execution(event.payload)
        self._recent_executions.appendleft(event.payload)

    # =========================================================================
    # Operations
    # =========================================================================

    def paths(self) -> list[TriangularPath]:
        """Paths selected by the configured exchange and path set."""
        return self._catalog.get_paths(self._settings.exchange, self._settings.path_set)

    async def scan_once(self, start_amount: Decimal | None = None) -> list[Opportunity]:
        """
        Scan every configured path once.

        Args:
            start_amount: Amount to evaluate; the configured amount when omitted.

        Returns:
            Ranked opportunities.
        """
        amount = start_amount if start_amount is not None else self._settings.start_amount

        with LatencyTimer() as timer:
            opportunities = await self._scanner.scan_all(self.paths(), amount)

        self._last_opportunities = opportunities
        self._metrics.record_scan(opportunities, timer.latency_us)

        await self._event_bus.publish(EventType.SCAN_COMPLETE, opportunities, source="engine")
        for opportunity in opportunities:
            if opportunity.profitable:
                await self._event_bus.publish(
                    EventType.OPPORTUNITY_FOUND, opportunity, source="engine"
                )
        return opportunities

    async def execute(
        self,
        opportunity: Opportunity,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """Execute an opportunity with configured or given options."""
        return await self._coordinator.execute(
            opportunity, self._client, options or self._execution_options
        )

    async def execute_path(
        self,
        path_id: str,
        start_amount: Decimal | None = None,
        dry_run: bool | None = None,
    ) -> ExecutionResult:
        """
        Re-evaluate one path on fresh books, then execute it.

        Args:
            path_id: Catalog path id.
            start_amount: Amount to cycle; the configured amount when omitted.
            dry_run: Override of the configured mode.

        Raises:
            ValidationError: If the path is unknown or the amount out of bounds.
            DataUnavailableError: If a book for the path cannot be read.
        """
        path = self._catalog.get_path(self._settings.exchange, path_id)
        if path is None:
            raise ValidationError(f"Unknown path: {path_id}")

        amount = start_amount if start_amount is not None else self._settings.start_amount
        self._calculator.validate_amount(amount)

        books = await self._gateway.get_order_books(path.pairs)
        missing = [pair for pair in path.pairs if pair not in books]
        if missing:
            raise DataUnavailableError(missing[0])

        threshold = self._catalog.threshold_for(path.exchange, path.id)
        options_override = (
            EvaluationOptions(min_profit_threshold=threshold) if threshold is not None else None
        )
        opportunity = self._calculator.evaluate(path, books, amount, options_override)
        self._warn_if_profit_dropped(opportunity)

        options = self._execution_options
        if dry_run is not None and dry_run != options.dry_run:
            options = ExecutionOptions(
                max_slippage_pct=options.max_slippage_pct,
                leg_timeout_ms=options.leg_timeout_ms,
                poll_interval_ms=options.poll_interval_ms,
                dry_run=dry_run,
                skip_balance_check=dry_run and not self._settings.has_credentials,
            )
        return await self.execute(opportunity, options)

    def _warn_if_profit_dropped(self, opportunity: Opportunity) -> None:
        """Compare a fresh evaluation with the last scan of the same path."""
        scanned = next(
            (o for o in self._last_opportunities if o.path.id == opportunity.path.id), None
        )
        if scanned is None or opportunity.net_profit_pct >= scanned.net_profit_pct:
            return

        change = opportunity.net_profit_pct - scanned.net_profit_pct
        logger.warning(
            f"Profit on {opportunity.path.id} decreased {change:.4f}% since scan "
            f"({scanned.net_profit_pct:.4f}% -> {opportunity.net_profit_pct:.4f}%)"
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def run(self) -> None:
        """Run the scan loop until shutdown is requested."""
        self._running = True

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.add_signal_handler(sig, self.request_shutdown)

        self._distributor.start()
        paths = self.paths()
        logger.info(
            f"Engine running: {len(paths)} paths on {self._settings.exchange}, "
            f"scan every {self._settings.scan_interval_s}s, "
            f"{'DRY RUN' if self._settings.dry_run else 'LIVE'}"
            f"{', auto-execute' if self._settings.auto_execute else ''}"
        )

        try:
            while not self._shutdown_event.is_set():
                await self._cycle()
                with suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(
                        self._shutdown_event.wait(), timeout=self._settings.scan_interval_s
                    )
        finally:
            await self.shutdown()

    async def _cycle(self) -> None:
        """One scan, followed by auto-execution of the best candidate."""
        try:
            opportunities = await self.scan_once()
        except ValidationError as e:
            logger.error(f"Scan rejected: {e}")
            return
        except (TriArbError, OSError):
            logger.exception("Scan cycle failed, continuing with the next one")
            return

        if not self._settings.auto_execute:
            return

        best = next(
            (o for o in opportunities if o.recommendation is Recommendation.EXECUTE), None
        )
        if best is not None:
            logger.info(f"Auto-executing {best.path.id} (net {best.net_profit_pct:.4f}%)")
            try:
                await self.execute(best)
            except (TriArbError, OSError):
                logger.exception(f"Auto-execution of {best.path.id} failed")

    def request_shutdown(self) -> None:
        """Handle shutdown signal."""
        logger.info("Shutdown signal received")
        self._running = False
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Gracefully shut down the engine. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._running = False
        logger.info("Shutting down engine...")

        await self._distributor.stop()
        self._registry.clear()
        await self._event_bus.publish(EventType.SHUTDOWN, None, source="engine")

        close = getattr(self._client, "close", None)
        if self._owns_client and close is not None:
            await close()

        logger.info("Engine shutdown complete")

    # =========================================================================
    # Introspection
    # =========================================================================

    def status(self) -> dict[str, Any]:
        """Snapshot of engine state for the dashboard."""
        return {
            "running": self._running,
            "exchange": self._settings.exchange,
            "path_set": self._settings.path_set,
            "dry_run": self._settings.dry_run,
            "auto_execute": self._settings.auto_execute,
            "paths": len(self.paths()),
            "scanner": self._scanner.stats,
            "gateway": self._gateway.stats,
            "executions": self._coordinator.stats,
            "subscribers": self._registry.stats,
            "metrics": self._metrics.to_dict(),
        }

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    @property
    def client(self) -> ExchangeClient:
        """Get exchange client."""
        return self._client

    @property
    def catalog(self) -> StaticPathCatalog:
        """Get path catalog."""
        return self._catalog

    @property
    def gateway(self) -> MarketDataGateway:
        """Get market data gateway."""
        return self._gateway

    @property
    def registry(self) -> SubscriberRegistry:
        """Get subscriber registry."""
        return self._registry

    @property
    def distributor(self) -> PriceDistributor:
        """Get price distributor."""
        return self._distributor

    @property
    def event_bus(self) -> EventBus:
        """Get event bus."""
        return self._event_bus

    @property
    def metrics(self) -> MetricsCollector:
        """Get metrics collector."""
        return self._metrics

    @property
    def journal(self) -> ExecutionSink:
        """Get execution journal."""
        return self._journal

    @property
    def last_opportunities(self) -> list[Opportunity]:
        """Result of the most recent scan."""
        return list(self._last_opportunities)

    @property
    def recent_executions(self) -> list[ExecutionResult]:
        """Most recent executions, newest first."""
        return list(self._recent_executions)

    @property
    def is_running(self) -> bool:
        """Check if engine is running."""
        return self._running


@asynccontextmanager
async def create_engine(settings: Settings, **kwargs: Any) -> AsyncIterator[TriArbEngine]:
    """
    Create and manage engine lifecycle.

    Usage:
        async with create_engine(settings) as engine:
            await engine.run()
    """
    engine = TriArbEngine(settings, **kwargs)
    try:
        yield engine
    finally:
        await engine.shutdown()
