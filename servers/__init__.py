"""Server tools package - admin tools."""

from .admin_tools import admin_server

__all__ = ["admin_server"]
