"""
HTTP endpoints
"""

from . import health, integrations, permits

__all__ = ["health", "integrations", "permits"]
