"""HTTP server mode for leaf-ca.

Provides a lightweight stdlib-based HTTP API for certificate issuance
without requiring any additional web framework dependencies.
"""
from __future__ import annotations

from leaf_ca.server.app import LeafCAHandler, create_server, run_server

__all__ = ["LeafCAHandler", "create_server", "run_server"]
