"""
Ledger Engine - Source Package

Aggregation and budget evaluation for a personal-finance ledger.

DESIGN PRINCIPLES:
1. The engine is pure: snapshot in, report out
2. Money is Decimal, never float
3. Fail early on bad input, never compute on it
4. Every write is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Engine Team"
