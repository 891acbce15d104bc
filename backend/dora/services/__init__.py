# dora/services/__init__.py
"""
Read-only JSON API over the inventory store.

Endpoints:
    GET /services/search?service=&entitlement=&library=&symbol=
    GET /services/<label>
"""

from dora.services.routes import services_bp

__all__ = ["services_bp"]
