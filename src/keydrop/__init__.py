"""keydrop - single-use key distribution over a Redis pool and a SQL ledger."""

__version__ = "0.1.0"

from .errors import AlreadyConsumed, KeyDropError, LinkNotFound, NoInventory, StoreError

__all__ = [
    "AlreadyConsumed",
    "KeyDropError",
    "LinkNotFound",
    "NoInventory",
    "StoreError",
    "__version__",
]
