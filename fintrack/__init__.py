"""
Finance Tracker - Source Package

Personal income/expense tracking with recurring transactions that are
materialized into concrete records whenever the user opens the
recurring-transactions view.

DESIGN PRINCIPLES:
1. Storage layer is swappable (hosted spreadsheet or in-memory)
2. Background catch-up never double-records a transaction
3. Partial failures are resumed on the next pass, never lost
4. Every step must be auditable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
