"""
Key providers: where the verifier gets its keys from.

- ``RemoteJWKSProvider`` fetches and caches a remote JSON Web Key Set.
- ``StaticKeyProvider`` and ``CallableKeyProvider`` inject keys directly
  (tests, pre-shared keys, custom resolution).
"""

from .jwks import RemoteJWKSProvider
from .static import CallableKeyProvider, StaticKeyProvider

__all__ = ["CallableKeyProvider", "RemoteJWKSProvider", "StaticKeyProvider"]
