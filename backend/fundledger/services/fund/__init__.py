# backend/fundledger/services/fund/__init__.py
"""
Unitized fund engine.

Modules:
    calculators.py  - Pure Decimal math for NAV, units and holding state
    types.py        - Result dataclasses returned by the services
    valuation.py    - Fund value (positions × prices + cash) as of a date
    holdings.py     - Rebuilds investor holdings from the unit transaction log
    service.py      - Conversion, NAV refresh, subscribe and redeem

Import from the modules directly; the ledger and the fund engine reference
each other, so this package re-exports nothing.
"""
