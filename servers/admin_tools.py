"""Admin MCP tools for keydrop inventory control.

Every tool takes the shared ``admin_token`` and rejects the call before
touching Redis or the ledger when it does not match ADMIN_TOKEN.

Tools:
- refill_pool: Copy non-deprecated catalog keys into the Redis pool
- get_inventory_status: Pool size and catalog size
- list_issued_links: Most recent issued links (unconsumed keys masked)
"""

import json

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from loguru import logger

from keydrop.audit import audit_logger
from keydrop.auth import verify_admin_token
from keydrop.config import Config
from keydrop.errors import StoreError, Unauthorized
from keydrop.runtime import get_runtime

admin_server = FastMCP("AdminTools")


def _authorize(action: str, admin_token: str) -> None:
    try:
        verify_admin_token(admin_token)
    except Unauthorized:
        audit_logger.log_admin_denied(action, requester_ip=None)
        raise ToolError("unauthorized")


async def refill_pool_command(admin_token: str) -> str:
    _authorize("refill", admin_token)
    try:
        runtime = await get_runtime()
        count = await runtime.inventory.refill_pool()
    except StoreError as e:
        logger.error(f"refill_pool tool failed: {e}")
        raise ToolError("refill failed, see server logs")
    if count == 0:
        return "No keys in catalog; pool unchanged."
    return f"Pushed {count} catalog keys into {runtime.pool.set_key}."


async def inventory_status_command(admin_token: str) -> str:
    _authorize("status", admin_token)
    try:
        runtime = await get_runtime()
        status = await runtime.inventory.status()
    except StoreError as e:
        logger.error(f"get_inventory_status tool failed: {e}")
        raise ToolError("status unavailable, see server logs")
    return "\n".join(
        [
            "# Inventory Status",
            "",
            f"**Pool ({runtime.pool.set_key}):** {status.pool_size}",
            f"**Catalog (non-deprecated):** {status.catalog_size}",
        ]
    )


async def list_issued_command(admin_token: str, limit: int = Config.INSPECT_LIMIT) -> str:
    _authorize("inspect", admin_token)
    limit = max(1, min(limit, Config.INSPECT_LIMIT_MAX))
    try:
        runtime = await get_runtime()
        entries = await runtime.inventory.inspect(limit)
    except StoreError as e:
        logger.error(f"list_issued_links tool failed: {e}")
        raise ToolError("inspect failed, see server logs")
    return json.dumps(entries, indent=2)


@admin_server.tool()
async def refill_pool(admin_token: str) -> str:
    """
    Copy every non-deprecated catalog key into the Redis pool.

    Idempotent: keys already pooled are left alone.

    Args:
        admin_token: Shared admin secret

    Returns:
        Number of catalog keys pushed
    """
    return await refill_pool_command(admin_token)


@admin_server.tool()
async def get_inventory_status(admin_token: str) -> str:
    """
    Report how many keys remain in the pool and in the catalog.

    Args:
        admin_token: Shared admin secret
    """
    return await inventory_status_command(admin_token)


@admin_server.tool()
async def list_issued_links(admin_token: str, limit: int = Config.INSPECT_LIMIT) -> str:
    """
    List the most recently issued links, newest first.

    Key values of links that have not been redeemed are masked.

    Args:
        admin_token: Shared admin secret
        limit: Number of links to return (1-1000)

    Returns:
        JSON array of issued link records
    """
    return await list_issued_command(admin_token, limit)
