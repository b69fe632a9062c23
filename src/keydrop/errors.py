"""Error taxonomy for the claim → issue → redeem flow."""

import asyncio
from typing import Awaitable, Tuple, Type, TypeVar

from loguru import logger

T = TypeVar("T")


class KeyDropError(Exception):
    """Base class for all keydrop failures."""


class NoInventory(KeyDropError):
    """The pool is empty. Retriable once an admin refills it."""


class LinkNotFound(KeyDropError):
    """The link id does not resolve to any issued link."""


class AlreadyConsumed(KeyDropError):
    """The link was redeemed before. Not a bug condition."""


class StoreError(KeyDropError):
    """
    A pool or ledger round-trip failed or timed out.

    Any unit of work that raises this has been rolled back; retrying the
    whole request is safe.
    """


class Unauthorized(KeyDropError):
    """Admin credential missing or wrong."""


async def guarded(
    store: str,
    operation: str,
    awaitable: Awaitable[T],
    timeout: float,
    catch: Tuple[Type[BaseException], ...],
) -> T:
    """
    Await a store round-trip with a deadline.

    Timeouts and any exception in ``catch`` are logged and re-raised as
    StoreError. A timeout cancels the awaitable, so transaction blocks
    inside it roll back before the StoreError surfaces.

    Args:
        store: Store name for log lines ("Redis", "Ledger")
        operation: What was being attempted, e.g. "pool pop"
        awaitable: The round-trip to bound
        timeout: Deadline in seconds
        catch: Driver exception types that mean the store failed
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error(f"{store} {operation} timed out after {timeout}s")
        raise StoreError(f"{operation} timed out") from exc
    except catch as exc:
        logger.error(f"{store} failure in {operation}: {exc.__class__.__name__}: {exc}")
        raise StoreError(f"{operation} failed") from exc
