"""
FastAPI server for the engine dashboard.

The app is built around an injected engine; all state lives on the
engine and its subscriber registry, none at module level.
"""

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

import orjson
from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from triarb import __version__
from triarb.core.engine import TriArbEngine
from triarb.core.errors import DataUnavailableError, ValidationError
from triarb.execution.journal import dumps, execution_to_dict, opportunity_to_dict


logger = logging.getLogger(__name__)


class DecimalJSONResponse(JSONResponse):
    """orjson response rendering Decimal values as strings."""

    def render(self, content: Any) -> bytes:
        return dumps(content)


class ExecuteRequest(BaseModel):
    """Body of an execution request."""

    path_id: str = Field(description="Catalog path id")
    amount: Decimal | None = Field(default=None, gt=0, description="Start amount")
    dry_run: bool | None = Field(default=None, description="Override configured mode")


class WebSocketSubscriber:
    """Adapts a FastAPI WebSocket to the registry's subscriber interface."""

    __slots__ = ("_id", "_websocket")

    def __init__(self, websocket: WebSocket) -> None:
        self._id = uuid.uuid4().hex
        self._websocket = websocket

    @property
    def id(self) -> str:
        return self._id

    async def send(self, message: str) -> None:
        await self._websocket.send_text(message)


def _message(message_type: str, data: Any) -> str:
    return dumps({"type": message_type, "data": data}).decode()


def _is_pair_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(pair, str) for pair in value)


def create_app(engine: TriArbEngine) -> FastAPI:
    """
    Build the dashboard application.

    Args:
        engine: Engine whose state the dashboard exposes.

    Returns:
        FastAPI app; its lifespan starts price distribution and shuts the
        engine down on exit.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine.distributor.start()
        yield
        await engine.shutdown()

    app = FastAPI(
        title="Triangular Arbitrage Engine",
        version=__version__,
        lifespan=lifespan,
        default_response_class=DecimalJSONResponse,
    )
    app.state.engine = engine

    @app.get("/api/status")
    async def get_status() -> DecimalJSONResponse:
        return DecimalJSONResponse(engine.status())

    @app.get("/api/paths")
    async def get_paths() -> DecimalJSONResponse:
        return DecimalJSONResponse(
            [
                {
                    "id": path.id,
                    "sequence": path.sequence,
                    "exchange": path.exchange,
                    "pairs": list(path.pairs),
                    "steps": [
                        {"pair": s.pair, "side": s.side.value, "base": s.base, "quote": s.quote}
                        for s in path.steps
                    ],
                }
                for path in engine.paths()
            ]
        )

    @app.get("/api/opportunities")
    async def get_opportunities(
        amount: Decimal | None = Query(default=None, gt=0),
        profitable_only: bool = False,
    ) -> DecimalJSONResponse:
        try:
            opportunities = await engine.scan_once(amount)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        if profitable_only:
            opportunities = [o for o in opportunities if o.profitable]
        return DecimalJSONResponse([opportunity_to_dict(o) for o in opportunities])

    @app.get("/api/executions")
    async def get_executions() -> DecimalJSONResponse:
        return DecimalJSONResponse([execution_to_dict(r) for r in engine.recent_executions])

    @app.post("/api/execute")
    async def post_execute(request: ExecuteRequest) -> DecimalJSONResponse:
        if request.dry_run is False and engine.settings.dry_run:
            raise HTTPException(
                status_code=403, detail="Live execution is disabled (dry_run is configured)"
            )

        if engine.catalog.get_path(engine.settings.exchange, request.path_id) is None:
            raise HTTPException(status_code=404, detail=f"Unknown path: {request.path_id}")

        try:
            result = await engine.execute_path(request.path_id, request.amount, request.dry_run)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except DataUnavailableError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

        return DecimalJSONResponse(execution_to_dict(result))

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        subscriber = WebSocketSubscriber(websocket)
        registry = engine.registry
        registry.add(subscriber)

        available = sorted({pair for path in engine.paths() for pair in path.pairs})
        await websocket.send_text(
            _message("init", {"id": subscriber.id, "pairs": available})
        )

        try:
            while True:
                raw = await websocket.receive_text()
                if subscriber.id not in registry:
                    registry.add(subscriber)
                registry.touch(subscriber.id)
                try:
                    msg = orjson.loads(raw)
                    action = msg.get("action")
                except (orjson.JSONDecodeError, AttributeError):
                    await websocket.send_text(_message("error", {"message": "invalid message"}))
                    continue

                requested = msg.get("pairs", [])
                if action in ("subscribe", "unsubscribe") and not _is_pair_list(requested):
                    await websocket.send_text(
                        _message("error", {"message": "pairs must be a list of strings"})
                    )
                    continue

                if action == "subscribe":
                    pairs = registry.subscribe(subscriber.id, requested)
                    await websocket.send_text(_message("subscribed", {"pairs": sorted(pairs)}))
                elif action == "unsubscribe":
                    pairs = registry.unsubscribe(subscriber.id, requested)
                    await websocket.send_text(_message("unsubscribed", {"pairs": sorted(pairs)}))
                elif action == "ping":
                    await websocket.send_text(_message("pong", {}))
                else:
                    await websocket.send_text(
                        _message("error", {"message": f"unknown action: {action}"})
                    )
        except WebSocketDisconnect:
            pass
        finally:
            registry.remove(subscriber.id)

    return app


def main() -> None:
    """Run the dashboard with uvicorn."""
    import uvicorn

    from triarb.config.settings import get_settings
    from triarb.telemetry.logger import setup_logging

    settings = get_settings()
    async_logger = setup_logging(level=settings.log_level, log_file=settings.log_file)

    print(
        f"""
╔═══════════════════════════════════════════════════════════════╗
║              TRIARB ENGINE - DASHBOARD                        ║
╚═══════════════════════════════════════════════════════════════╝

Dashboard API: http://{settings.dashboard_host}:{settings.dashboard_port}
Press Ctrl+C to stop.
    """
    )

    try:
        uvicorn.run(
            create_app(TriArbEngine(settings)),
            host=settings.dashboard_host,
            port=settings.dashboard_port,
            loop="uvloop" if settings.use_uvloop else "asyncio",
            log_level="warning",
        )
    finally:
        async_logger.stop()


if __name__ == "__main__":
    main()
