"""Read-only session status output."""

from .status_server import StatusServer

__all__ = ['StatusServer']
