"""Shared-secret check for admin operations."""

import hmac
from typing import Optional

from .config import Config
from .errors import Unauthorized

ADMIN_TOKEN_HEADER = "x-admin-token"


def verify_admin_token(supplied: Optional[str], expected: Optional[str] = None) -> None:
    """
    Compare an admin credential in constant time.

    An empty configured secret rejects everything, so a missing
    ``ADMIN_TOKEN`` can never be matched by an empty header.

    Raises:
        Unauthorized: Missing, empty or mismatching credential
    """
    expected = Config.ADMIN_TOKEN if expected is None else expected
    if not expected or not supplied:
        raise Unauthorized("admin credential required")
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise Unauthorized("admin credential rejected")
