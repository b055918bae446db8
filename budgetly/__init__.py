"""
Budgetly - Source Package

Monthly budget ledger and purchase affordability scoring for households.

DESIGN PRINCIPLES:
1. Ledgers are always canonical once read (legacy shapes are migrated)
2. Every write is a full, version-checked replace of one month
3. The assistant suggests; deterministic rules check what it says
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budgetly Team"
