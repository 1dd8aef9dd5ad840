"""
API route modules.
"""

from contractguard.api.routes import contracts, search

__all__ = ["contracts", "search"]
