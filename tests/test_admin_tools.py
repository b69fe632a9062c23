"""Tests for the admin MCP tools."""

import json

import pytest
from fastmcp.exceptions import ToolError

from keydrop.config import Config
from servers import admin_tools


def test_admin_tools_docstring_mentions_token_requirement():
    """Admin tools should document that every call needs the shared token."""
    doc = admin_tools.__doc__ or ""
    assert "admin_token" in doc
    assert "refill_pool" in doc


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "command",
    [
        admin_tools.refill_pool_command,
        admin_tools.inventory_status_command,
        admin_tools.list_issued_command,
    ],
)
async def test_wrong_token_raises_tool_error_before_store_access(command, runtime):
    await runtime.pool.add_many(["K1"])

    with pytest.raises(ToolError, match="unauthorized"):
        await command("wrong-token")

    assert await runtime.pool.size() == 1


@pytest.mark.asyncio
async def test_refill_pool_tool(runtime, inventory):
    await inventory.seed_catalog(["K1", "K2"])

    message = await admin_tools.refill_pool_command(Config.ADMIN_TOKEN)

    assert message == "Pushed 2 catalog keys into unused_keys."
    assert await runtime.pool.size() == 2


@pytest.mark.asyncio
async def test_refill_pool_tool_with_empty_catalog(runtime):
    message = await admin_tools.refill_pool_command(Config.ADMIN_TOKEN)
    assert message == "No keys in catalog; pool unchanged."


@pytest.mark.asyncio
async def test_inventory_status_tool(runtime, seeded_pool):
    report = await admin_tools.inventory_status_command(Config.ADMIN_TOKEN)

    assert "**Pool (unused_keys):** 3" in report
    assert "**Catalog (non-deprecated):** 3" in report


@pytest.mark.asyncio
async def test_list_issued_links_tool(runtime, seeded_pool):
    link = await runtime.issuance.issue()

    payload = json.loads(await admin_tools.list_issued_command(Config.ADMIN_TOKEN, limit=5))

    assert payload[0]["link_id"] == link.link_id
    assert payload[0]["key_value"] is None


@pytest.mark.asyncio
async def test_store_failure_surfaces_as_tool_error(runtime, monkeypatch):
    from unittest.mock import AsyncMock

    from keydrop.errors import StoreError

    monkeypatch.setattr(
        runtime.inventory, "refill_pool", AsyncMock(side_effect=StoreError("ledger down"))
    )
    with pytest.raises(ToolError, match="refill failed"):
        await admin_tools.refill_pool_command(Config.ADMIN_TOKEN)
