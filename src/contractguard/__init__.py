"""
ContractGuard: contract risk analysis and semantic search.

Turns uploaded legal documents into extracted clauses, a risk score, a
plain-language summary and a vector index searchable across a tenant's
contracts.
"""

__version__ = "0.1.0"

from contractguard.config import get_settings

__all__ = ["get_settings", "__version__"]
