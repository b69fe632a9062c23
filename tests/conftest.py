"""Pytest fixtures for the keydrop test suite."""

import json
from pathlib import Path
from typing import Any, Callable, Dict

import fakeredis
import pytest

from keydrop.audit import AuditLogger, audit_logger
from keydrop.config import Config
from keydrop.database import create_engine, create_schema, make_session_factory
from keydrop.inventory import InventoryAdmin
from keydrop.issuance import IssuanceService
from keydrop.ledger import Ledger
from keydrop.pool import ExpiryMarkers, KeyPool
from keydrop.redemption import RedemptionService
from keydrop.runtime import Runtime, set_runtime

ADMIN_TOKEN = "test-admin-token-0123456789"


# ============================================================================
# ISOLATION
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """
    Point the module-level audit logger at a temp file and pin the admin token.

    Nothing a test does should write ./audit.jsonl or depend on the
    developer's environment.
    """
    monkeypatch.setattr(audit_logger, "log_path", tmp_path / "module-audit.jsonl")
    monkeypatch.setattr(Config, "ADMIN_TOKEN", ADMIN_TOKEN)
    yield
    set_runtime(None)


# ============================================================================
# STORE FIXTURES
# ============================================================================


@pytest.fixture
async def redis_client():
    """
    Provide an in-process Redis with its own server, flushed after the test.

    Yields:
        fakeredis FakeAsyncRedis speaking the redis.asyncio API
    """
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()
        await client.aclose()


@pytest.fixture
async def engine(tmp_path):
    """
    Provide a file-backed SQLite ledger with the schema created.

    File-backed so that concurrent sessions get separate connections and
    contend on the database lock the way PostgreSQL sessions contend on rows.
    """
    db_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await create_schema(db_engine)
    try:
        yield db_engine
    finally:
        await db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def audit_log_path(tmp_path) -> Path:
    return tmp_path / "audit.jsonl"


@pytest.fixture
def audit(audit_log_path) -> AuditLogger:
    return AuditLogger(str(audit_log_path))


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def pool(redis_client) -> KeyPool:
    return KeyPool(redis_client, set_key="unused_keys", timeout=2)


@pytest.fixture
def markers(redis_client) -> ExpiryMarkers:
    return ExpiryMarkers(redis_client, timeout=2)


@pytest.fixture
def ledger(session_factory) -> Ledger:
    return Ledger(session_factory, timeout=10)


@pytest.fixture
def issuance(pool, ledger, markers, audit) -> IssuanceService:
    return IssuanceService(pool, ledger, markers, claim_ttl=600, audit=audit)


@pytest.fixture
def redemption(ledger, markers, audit) -> RedemptionService:
    return RedemptionService(ledger, markers, audit=audit)


@pytest.fixture
def inventory(pool, ledger, markers, audit) -> InventoryAdmin:
    return InventoryAdmin(pool, ledger, markers, audit=audit)


@pytest.fixture
def runtime(redis_client, session_factory, engine, audit) -> Runtime:
    """Install a Runtime over the test stores for route and tool tests."""
    rt = Runtime(redis_client, session_factory, engine=engine, audit=audit)
    set_runtime(rt)
    yield rt
    set_runtime(None)


@pytest.fixture
async def seeded_pool(inventory):
    """
    Seed the catalog with K1..K3 and copy them into the pool.

    Returns:
        The seeded key values
    """
    values = ["K1", "K2", "K3"]
    await inventory.seed_catalog(values)
    await inventory.refill_pool()
    return values


# ============================================================================
# HELPER UTILITIES
# ============================================================================


def read_audit_log(log_path: Path) -> list[Dict[str, Any]]:
    """Read and parse a JSON Lines audit file."""
    if not log_path.exists():
        return []

    entries = []
    with open(log_path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                entries.append(json.loads(line))
    return entries


@pytest.fixture
def audit_entries(audit_log_path) -> Callable[[], list[Dict[str, Any]]]:
    """Callable returning the audit records written so far."""
    return lambda: read_audit_log(audit_log_path)
