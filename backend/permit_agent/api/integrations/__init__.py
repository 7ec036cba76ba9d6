"""
Permitting System Integrations

Vendor configuration, authentication, declarative field mapping and the
integrator that fetches canonical permit data from Accela, Tyler and EnerGov.
"""

from .authentication import AuthenticationHandler
from .field_mapper import FieldMapper, PermittingSystemsConfig, unwrap_items, unwrap_single
from .permitting_apis import PermittingAPIIntegrator

__all__ = [
    "AuthenticationHandler",
    "FieldMapper",
    "PermittingSystemsConfig",
    "unwrap_items",
    "unwrap_single",
    "PermittingAPIIntegrator",
]
