"""
Tests for IssuanceService.

Covers the pop → persist → arm sequence, NoInventory, best-effort marker
arming, the lost-key trade-off on ledger failure, and concurrent claims.
"""

import asyncio
import uuid
from unittest.mock import AsyncMock, patch

import pytest

from keydrop.errors import NoInventory, StoreError


@pytest.mark.asyncio
async def test_issue_binds_popped_key_to_new_link(issuance, pool, ledger, redis_client):
    await pool.add_many(["K1"])

    link = await issuance.issue()

    assert uuid.UUID(link.link_id).version == 4
    assert link.key_value == "K1"
    assert link.consumed is False
    assert await pool.size() == 0

    stored = await ledger.get_link(link.link_id)
    assert stored.key_value == "K1"

    ttl = await redis_client.ttl(f"page_ttl:{link.link_id}")
    assert 0 < ttl <= 600


@pytest.mark.asyncio
async def test_issue_on_empty_pool_raises_no_inventory(issuance):
    with pytest.raises(NoInventory):
        await issuance.issue()


@pytest.mark.asyncio
async def test_issue_succeeds_when_marker_cannot_be_armed(issuance, pool, markers, ledger):
    """Expiry markers are advisory; failing to arm one never fails the claim."""
    await pool.add_many(["K1"])

    with patch.object(markers, "arm", AsyncMock(side_effect=StoreError("marker arm failed"))):
        link = await issuance.issue()

    assert link.key_value == "K1"
    assert (await ledger.get_link(link.link_id)).consumed is False


@pytest.mark.asyncio
async def test_ledger_failure_keeps_key_out_of_pool(issuance, pool, ledger):
    """A popped key is never pushed back; a re-seed is the only way back in."""
    await pool.add_many(["K1"])

    with patch.object(
        ledger, "record_issue", AsyncMock(side_effect=StoreError("ledger record issue failed"))
    ):
        with pytest.raises(StoreError):
            await issuance.issue()

    assert await pool.size() == 0
    with pytest.raises(NoInventory):
        await issuance.issue()


@pytest.mark.asyncio
async def test_issue_writes_audit_record_without_key(issuance, pool, audit_entries):
    await pool.add_many(["SECRET-VALUE"])

    link = await issuance.issue()

    entries = audit_entries()
    assert entries[-1]["event"] == "link_issued"
    assert entries[-1]["link_id"] == link.link_id
    assert all("SECRET-VALUE" not in str(entry) for entry in entries)


@pytest.mark.asyncio
async def test_concurrent_issues_drain_pool_exactly_once(issuance, pool):
    """K pool entries and N > K racing claims: K links, distinct keys, N-K NoInventory."""
    values = [f"K{i}" for i in range(5)]
    await pool.add_many(values)

    results = await asyncio.gather(
        *(issuance.issue() for _ in range(12)), return_exceptions=True
    )
    links = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]

    assert len(links) == 5
    assert sorted(link.key_value for link in links) == sorted(values)
    assert len({link.link_id for link in links}) == 5
    assert len(failures) == 7
    assert all(isinstance(f, NoInventory) for f in failures)


@pytest.mark.asyncio
async def test_two_racing_claims_on_single_key(issuance, pool):
    await pool.add_many(["K1"])

    results = await asyncio.gather(issuance.issue(), issuance.issue(), return_exceptions=True)

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert winners[0].key_value == "K1"
    assert len(losers) == 1
    assert isinstance(losers[0], NoInventory)
