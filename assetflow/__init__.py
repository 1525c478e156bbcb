"""
AssetFlow - Source Package

A personal finance tracker: accounts, income/expenditure/transfer
transactions, categories, statements and AI spending insights.

DESIGN PRINCIPLES:
1. Balances always agree with the transaction log
2. History survives account deletion
3. In-memory state is the source of truth; storage is a mirror
4. Storage layer is swappable
5. Every mutation is auditable
"""

__version__ = "1.0.0"
__author__ = "AssetFlow Team"
