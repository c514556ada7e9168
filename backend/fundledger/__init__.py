# backend/fundledger/__init__.py
"""
Fund-unit accounting and cash-flow ledger engine.

The package is organised in layers:
- models / database: SQLAlchemy persistence
- services: business rules (no HTTP knowledge)
- schemas: Pydantic request/response contracts
- routers: FastAPI endpoints that translate HTTP to service calls
"""

__version__ = "0.1.0"
