# backend/fundledger/routers/__init__.py
"""API routers, one module per resource."""
