"""
Document Tax Aggregator -- merges line breakdowns and applies document rules.

Pure functions with no I/O.

Two tax sources are merged into one ordered summary:

- Product-level: every line's breakdown entries, grouped by ``(name, rate)``
  across lines. Rows are ordered ascending by rate; fixed-kind rows (no
  rate) come last; ties keep first-seen order.
- Document-level: active rules applicable to the document type, sorted by
  ``order`` and cascaded against the document subtotal with the same
  algorithm as a single line. Rows keep the configured order.

The summary ordering is cosmetic; no amount depends on it.

Usage:
    from billing_engines.document_tax import aggregate

    totals = aggregate(resolved.lines, DocumentType.INVOICE, config.document_level_rules)
    print(totals.grand_total)
"""

from __future__ import annotations

import time
from decimal import Decimal
from typing import Iterable

from billing_kernel.domain.currency import CurrencyRegistry
from billing_kernel.domain.document_types import DocumentType
from billing_kernel.domain.documents import (
    DocumentLine,
    DocumentTotals,
    TaxSource,
    TaxSummaryRow,
    TaxWarning,
    sum_money,
)
from billing_kernel.domain.tax_rules import TaxKind, TaxRule
from billing_kernel.domain.values import Currency, Money
from billing_kernel.logging_config import get_logger
from billing_engines.line_tax import apply_cascade, order_rules

logger = get_logger("engines.document_tax")


def _rate_sort_key(row: TaxSummaryRow) -> tuple[bool, Decimal]:
    return (row.rate is None, row.rate if row.rate is not None else Decimal("0"))


def summarize_product_taxes(lines: Iterable[DocumentLine]) -> tuple[TaxSummaryRow, ...]:
    """Group line breakdown entries by ``(name, rate)``, ascending by rate."""
    kinds: dict[tuple[str, Decimal | None], TaxKind] = {}
    bases: dict[tuple[str, Decimal | None], Money | None] = {}
    amounts: dict[tuple[str, Decimal | None], Money] = {}

    for line in lines:
        for entry in line.tax_breakdown:
            key = entry.group_key
            if key not in amounts:
                kinds[key] = entry.kind
                bases[key] = entry.base
                amounts[key] = entry.amount
                continue
            amounts[key] = amounts[key] + entry.amount
            if entry.base is not None:
                current = bases[key]
                bases[key] = entry.base if current is None else current + entry.base

    rows = [
        TaxSummaryRow(
            name=name,
            kind=kinds[(name, rate)],
            rate=rate,
            base_amount=bases[(name, rate)],
            amount=amounts[(name, rate)],
            source=TaxSource.PRODUCT,
        )
        for (name, rate) in amounts
    ]
    return tuple(sorted(rows, key=_rate_sort_key))


def aggregate(
    lines: Iterable[DocumentLine],
    document_type: DocumentType,
    document_level_rules: Iterable[TaxRule],
    *,
    currency: Currency | str | None = None,
    reversal: bool = False,
    warnings: Iterable[TaxWarning] = (),
    config_fingerprint: str | None = None,
) -> DocumentTotals:
    """
    Combine resolved lines into document totals.

    Args:
        lines: Lines whose ``tax_breakdown`` has already been resolved.
        document_type: Selects which document-level rules apply.
        document_level_rules: Candidate document-scoped rules.
        currency: Document currency; defaults to the lines' currency.
        reversal: Negate fixed document-level amounts (credit notes).
        warnings: Diagnostics from line resolution, carried on the totals.
        config_fingerprint: Fingerprint of the configuration used.

    Returns:
        DocumentTotals whose rows are product-level rows followed by
        document-level rows.

    Fixed rules already charged on a line are not charged again at document
    level. The set of charged fixed rules is rebuilt from ``lines`` on every
    call; nothing is kept between calls.

    A document with no lines charges no document-level rules, fixed ones
    included; an empty draft totals zero.
    """
    t0 = time.monotonic()
    lines = tuple(lines)
    document_type = DocumentType(document_type)

    if currency is None:
        currency = lines[0].currency if lines else Currency(CurrencyRegistry.DEFAULT_CURRENCY)
    elif isinstance(currency, str):
        currency = Currency(currency)

    logger.info("tax_aggregation_started", extra={
        "document_type": document_type.value,
        "line_count": len(lines),
        "reversal": reversal,
    })

    subtotal = sum_money((line.pre_tax_amount for line in lines), currency)
    product_rows = summarize_product_taxes(lines)

    applied_fixed = {
        entry.rule_id
        for line in lines
        for entry in line.tax_breakdown
        if entry.kind == TaxKind.FIXED
    }

    document_rows: tuple[TaxSummaryRow, ...] = ()
    if lines:
        applicable = order_rules(
            r for r in document_level_rules if r.applies_to(document_type)
        )
        entries = apply_cascade(subtotal, applicable, applied_fixed, reversal=reversal)
        document_rows = tuple(
            TaxSummaryRow(
                name=entry.name,
                kind=entry.kind,
                rate=entry.rate,
                base_amount=entry.base,
                amount=entry.amount,
                source=TaxSource.DOCUMENT,
            )
            for entry in entries
        )
    else:
        logger.debug("tax_aggregation_no_lines", extra={})

    totals = DocumentTotals(
        subtotal=subtotal,
        tax_summary=product_rows + document_rows,
        warnings=tuple(warnings),
        config_fingerprint=config_fingerprint,
    )

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("tax_aggregation_completed", extra={
        "document_type": document_type.value,
        "subtotal": str(totals.subtotal.amount),
        "total_taxes": str(totals.total_taxes.amount),
        "grand_total": str(totals.grand_total.amount),
        "product_row_count": len(product_rows),
        "document_row_count": len(document_rows),
        "warning_count": len(totals.warnings),
        "duration_ms": duration_ms,
    })

    return totals
