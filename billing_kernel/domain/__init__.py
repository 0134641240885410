"""
Pure domain layer.

This module contains immutable value objects and data shapes with NO
dependencies on storage, time, or I/O. All domain objects are immutable
and deterministic.
"""

from billing_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from billing_kernel.domain.document_types import (
    ALL_DOCUMENT_TYPES,
    DocumentStatus,
    DocumentType,
)
from billing_kernel.domain.documents import (
    Document,
    DocumentLine,
    DocumentTotals,
    Product,
    TaxBreakdownEntry,
    TaxSource,
    TaxSummaryRow,
    TaxWarning,
    sum_money,
)
from billing_kernel.domain.tax_rules import (
    TaxBase,
    TaxConfiguration,
    TaxGroup,
    TaxGroupMember,
    TaxKind,
    TaxRule,
    TaxScope,
)
from billing_kernel.domain.values import Currency, Money

__all__ = [
    "ALL_DOCUMENT_TYPES",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "Document",
    "DocumentLine",
    "DocumentStatus",
    "DocumentTotals",
    "DocumentType",
    "Money",
    "Product",
    "TaxBase",
    "TaxBreakdownEntry",
    "TaxConfiguration",
    "TaxGroup",
    "TaxGroupMember",
    "TaxKind",
    "TaxRule",
    "TaxScope",
    "TaxSource",
    "TaxSummaryRow",
    "TaxWarning",
    "sum_money",
]
