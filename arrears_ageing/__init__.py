"""
Loan Arrears Ageing

Keeps a derived per-loan arrears aggregate (overdue principal, interest,
fees and penalties plus the overdue-since date) consistent with the lending
ledger, through a scheduled batch rebuild and synchronous event-driven updates.
"""

__version__ = "1.0.0"
