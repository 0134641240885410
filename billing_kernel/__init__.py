"""
Billing Kernel

Pure domain layer for commercial documents (invoices, quotes, delivery
notes, purchase orders) and their tax configuration:
- Decimal-only Money with currency-derived rounding
- Immutable tax rules, tax groups and configuration snapshots
- Immutable documents whose totals are always derived
"""

__version__ = "0.1.0"
