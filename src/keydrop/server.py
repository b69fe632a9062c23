"""FastMCP server: public claim/key routes, admin routes and admin MCP tools."""

import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastmcp import FastMCP
from loguru import logger
from starlette.requests import Request
from starlette.responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from starlette.routing import Route

from servers.admin_tools import admin_server

from .auth import ADMIN_TOKEN_HEADER, verify_admin_token
from .audit import audit_logger
from .config import Config
from .errors import AlreadyConsumed, LinkNotFound, NoInventory, StoreError, Unauthorized
from .presentation import NO_STORE_HEADERS, render_key_page
from .ratelimit import RateLimitExceeded
from .runtime import get_runtime, shutdown_runtime

# Constants
SERVER_NAME = "KeyDrop"
HOST = Config.HOST
PORT = Config.PORT


@asynccontextmanager
async def lifespan(server):
    """
    Server lifecycle.

    Startup acquires the Redis client and ledger engine and reports their
    health without refusing to start; requests fail with a server fault
    until the stores come back. Shutdown releases both.
    """
    logger.info(f"Starting {SERVER_NAME} server...")
    try:
        Config.validate()
    except ValueError as e:
        logger.error(str(e))
        raise

    try:
        runtime = await get_runtime()
        health = await runtime.health()
        if health["ok"]:
            logger.info("Stores healthy (redis={}, database={})", health["redis"], health["database"])
        else:
            logger.warning(
                "Stores degraded (redis={}, database={})", health["redis"], health["database"]
            )
    except Exception as e:
        logger.warning(f"Store startup failed: {e}. Will retry on first request.")

    logger.info(f"{SERVER_NAME} startup complete, listening on {HOST}:{PORT}")

    yield

    logger.info(f"{SERVER_NAME} shutting down...")
    await shutdown_runtime()


mcp = FastMCP(name=SERVER_NAME, lifespan=lifespan)
mcp.mount(admin_server)


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _text(body: str, status_code: int) -> PlainTextResponse:
    return PlainTextResponse(body, status_code=status_code, headers=NO_STORE_HEADERS)


def _server_fault() -> PlainTextResponse:
    return _text("Server error", 500)


# ============================================================================
# PUBLIC ROUTES
# ============================================================================


async def health(request: Request) -> Response:
    try:
        runtime = await get_runtime()
        status = await runtime.health()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        status = {"ok": False, "redis": "unavailable", "database": "unavailable"}
    return JSONResponse(status, status_code=200 if status["ok"] else 503)


async def claim(request: Request) -> Response:
    """Issue a link and redirect to its one-time page."""
    try:
        runtime = await get_runtime()
    except Exception as e:
        logger.error(f"claim error: stores unavailable: {e}")
        return _server_fault()

    ip = _client_ip(request)
    try:
        await runtime.rate_limiter.check(ip or "unknown")
    except RateLimitExceeded:
        return _text("Too many requests, please try again later.", 429)

    try:
        link = await runtime.issuance.issue()
    except NoInventory:
        return _text("No keys available", 404)
    except StoreError:
        return _server_fault()

    return RedirectResponse(
        url=f"/key/{link.link_id}", status_code=302, headers=NO_STORE_HEADERS
    )


async def serve_key(request: Request) -> Response:
    """Show the bound key once."""
    link_id = request.path_params["link_id"]
    try:
        runtime = await get_runtime()
    except Exception as e:
        logger.error(f"key serve error: stores unavailable: {e}")
        return _server_fault()

    try:
        key_value = await runtime.redemption.redeem(
            link_id,
            requester_ip=_client_ip(request),
            requester_agent=request.headers.get("user-agent", ""),
        )
    except LinkNotFound:
        return _text("Invalid or expired link", 404)
    except AlreadyConsumed:
        return _text("This key has already been claimed", 410)
    except StoreError:
        return _server_fault()

    return HTMLResponse(render_key_page(key_value), headers=NO_STORE_HEADERS)


# ============================================================================
# ADMIN ROUTES
# ============================================================================


async def _admin_token(request: Request, allow_body: bool = False) -> Optional[str]:
    token = request.headers.get(ADMIN_TOKEN_HEADER)
    if token or not allow_body:
        return token
    try:
        body = await request.json()
    except ValueError:
        return None
    return body.get("token") if isinstance(body, dict) else None


def _unauthorized(action: str, request: Request) -> Response:
    audit_logger.log_admin_denied(action, _client_ip(request))
    return _text("unauthorized", 401)


async def admin_refill(request: Request) -> Response:
    try:
        verify_admin_token(await _admin_token(request, allow_body=True))
    except Unauthorized:
        return _unauthorized("refill", request)

    try:
        runtime = await get_runtime()
        count = await runtime.inventory.refill_pool()
    except StoreError as e:
        logger.error(f"refill error: {e}")
        return _text("server error", 500)

    if count == 0:
        return _text("no keys in DB", 200)
    return _text(f"seeded {count} keys to redis set {runtime.pool.set_key}", 200)


async def admin_issued(request: Request) -> Response:
    try:
        verify_admin_token(await _admin_token(request))
    except Unauthorized:
        return _unauthorized("inspect", request)

    try:
        limit = int(request.query_params.get("limit", Config.INSPECT_LIMIT))
    except ValueError:
        return _text("limit must be an integer", 400)
    limit = max(1, min(limit, Config.INSPECT_LIMIT_MAX))

    try:
        runtime = await get_runtime()
        entries = await runtime.inventory.inspect(limit)
    except StoreError as e:
        logger.error(f"inspect error: {e}")
        return _text("server error", 500)

    return JSONResponse(entries, headers=NO_STORE_HEADERS)


def http_routes() -> list[Route]:
    """Every HTTP route the server exposes besides the MCP transport."""
    return [
        Route("/_health", health, methods=["GET"]),
        Route("/claim", claim, methods=["GET"]),
        Route("/key/{link_id}", serve_key, methods=["GET"]),
        Route("/admin/refill", admin_refill, methods=["POST"]),
        Route("/admin/issued", admin_issued, methods=["GET"]),
    ]


for _route in http_routes():
    mcp.custom_route(_route.path, methods=sorted(_route.methods - {"HEAD"}))(_route.endpoint)


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================


def configure_logging() -> None:
    """Console sink plus a rotating file sink."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>",
        level=Config.LOG_LEVEL,
    )
    if Config.LOG_FILE:
        logger.add(
            Config.LOG_FILE,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            level="DEBUG",
        )


def main():
    """Run the HTTP server (custom routes plus the MCP SSE transport)."""
    configure_logging()
    logger.info(f"Starting {SERVER_NAME}...")

    try:
        mcp.run(transport="sse", host=HOST, port=PORT)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
