"""
Inbound RPC endpoint.

Endpoints:
    POST /api    : ``{action, payload}`` with an optional bearer credential
    GET  /health : liveness check

Successful calls return the action's result as JSON. Failures return
``{"error": message, "category": category}`` with the error's status so the
caller can tell rate limits and overload apart from other failures.
Request-rate refusals also carry a ``Retry-After`` header.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config.loader import GatewayConfig, load_gateway_config
from ..core.errors import GatewayError
from ..core.orchestrator import RequestOrchestrator, build_orchestrator

logger = logging.getLogger(__name__)


def load_config_from_env() -> GatewayConfig:
    """Load ``LUMINA_CONFIG`` if set, otherwise the defaults."""
    path = os.getenv("LUMINA_CONFIG")
    return load_gateway_config(path) if path else GatewayConfig()


def _retry_headers(exc: GatewayError) -> Optional[Dict[str, str]]:
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is None:
        return None
    return {"Retry-After": str(retry_after)}


def create_app(orchestrator: Optional[RequestOrchestrator] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        orchestrator: Orchestrator to serve; built from the environment on the
            first request when omitted

    Returns:
        Configured FastAPI app
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Flush detached cache stores and quota increments on shutdown."""
        yield
        if app.state.orchestrator is not None:
            logger.info("Draining background persistence before shutdown")
            await app.state.orchestrator.drain()

    app = FastAPI(title="Lumina Gateway", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.state.orchestrator = orchestrator

    def get_orchestrator() -> RequestOrchestrator:
        if app.state.orchestrator is None:
            app.state.orchestrator = build_orchestrator(load_config_from_env())
        return app.state.orchestrator

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "category": exc.category},
            headers=_retry_headers(exc),
        )

    @app.get("/health")
    def health() -> Dict[str, str]:
        """Return a simple liveness check."""
        return {"status": "ok"}

    @app.post("/api")
    async def rpc(request: Request) -> Any:
        """Dispatch one ``{action, payload}`` call to the orchestrator."""
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(
                status_code=400,
                content={"error": "Request body must be JSON", "category": "invalid_action"},
            )
        if not isinstance(body, dict):
            return JSONResponse(
                status_code=400,
                content={"error": "Request body must be an object", "category": "invalid_action"},
            )

        action = body.get("action")
        try:
            return await get_orchestrator().handle(
                action,
                body.get("payload"),
                credential=request.headers.get("authorization"),
                client_id=request.client.host if request.client else None,
            )
        except GatewayError:
            raise
        except Exception:
            logger.exception("API error [%s]", action)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error", "category": "internal"},
            )

    return app


# For ``uvicorn lumina_gateway.api.server:app``; the orchestrator is built on first request.
app = create_app()
