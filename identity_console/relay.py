"""CORS relay forwarding the three list endpoints to the Spectro Cloud API.

The browser-facing dashboard cannot call the upstream API directly; this
service forwards GETs with the API key attached and answers with permissive
CORS headers. ``GET /`` doubles as the health check used by relay discovery.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from identity_console.config import RelayConfig

logger = logging.getLogger("console.relay")

UPSTREAM_PATHS = {
    "/spectro/users": "/users",
    "/spectro/roles": "/roles",
    "/spectro/teams": "/teams/summary",
}

USER_AGENT = "IdentityConsoleRelay/1.0"

# Upstream headers that must not be copied onto the relayed response
_DROPPED_HEADERS = {
    "access-control-allow-origin",
    "access-control-allow-methods",
    "access-control-allow-headers",
    "content-length",
    "content-encoding",
    "transfer-encoding",
    "connection",
}


def cors_headers(origin: Optional[str]) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, ApiKey, Authorization, Accept, X-Requested-With",
        "Access-Control-Allow-Private-Network": "true",
        "Access-Control-Max-Age": "86400",
    }


def create_app(config: RelayConfig, client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """Build the relay app. Pass ``client`` to reuse an existing HTTP client."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if client is not None:
            yield
            return
        app.state.client = httpx.AsyncClient(timeout=30.0)
        try:
            yield
        finally:
            await app.state.client.aclose()

    app = FastAPI(title="Identity Console Relay", lifespan=lifespan)
    app.state.client = client

    @app.middleware("http")
    async def add_cors(request: Request, call_next):
        headers = cors_headers(request.headers.get("origin"))
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)
        response = await call_next(request)
        response.headers.update(headers)
        return response

    @app.get("/")
    async def health() -> PlainTextResponse:
        return PlainTextResponse("Spectro Proxy Active")

    @app.api_route("/{path:path}", methods=["GET", "HEAD"])
    async def forward(path: str, request: Request) -> Response:
        upstream_path = UPSTREAM_PATHS.get(f"/{path}")
        if upstream_path is None or request.method != "GET":
            return PlainTextResponse("Endpoint Not Found", status_code=404)

        target = f"{config.api_base_url}{upstream_path}"
        try:
            upstream = await request.app.state.client.get(
                target,
                params=list(request.query_params.multi_items()),
                headers={
                    "Accept": "application/json",
                    "ApiKey": config.api_key,
                    "User-Agent": USER_AGENT,
                },
            )
        except httpx.HTTPError as exc:
            logger.error("Upstream error for %s: %s", upstream_path, exc)
            return JSONResponse(
                {"error": "Backend Connection Failed", "details": str(exc)},
                status_code=502,
            )

        headers = {
            k: v for k, v in upstream.headers.items() if k.lower() not in _DROPPED_HEADERS
        }
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=headers,
        )

    return app


def run_relay(config: RelayConfig) -> None:
    """Serve the relay with uvicorn (blocking)."""
    import uvicorn

    logger.info("Relay listening on %s:%d", config.host, config.port)
    uvicorn.run(create_app(config), host=config.host, port=config.port, log_config=None)
