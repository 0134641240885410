"""
Totals Calculator -- the full, side-effect-free recomputation of a document.

Pure functions with no I/O and no caching. Callers recompute after every
line add/edit/remove and after every tax configuration reload; each call
starts from scratch (fresh fixed-rule set, fresh summary), so totals can
never drift from the current lines and configuration.

Usage:
    from billing_engines.totals import compute_totals

    computation = compute_totals(lines, DocumentType.INVOICE, config)
    computation.totals.grand_total
    computation.lines  # lines with their resolved tax breakdown
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from billing_kernel.domain.document_types import DocumentType
from billing_kernel.domain.documents import (
    Document,
    DocumentLine,
    DocumentTotals,
    TaxWarning,
)
from billing_kernel.domain.tax_rules import TaxConfiguration
from billing_kernel.domain.values import Currency
from billing_kernel.logging_config import LogContext, get_logger
from billing_engines.document_tax import aggregate
from billing_engines.line_tax import LineTaxResult, resolve_lines
from billing_engines.tracer import traced_engine

logger = get_logger("engines.totals")


@dataclass(frozen=True)
class DocumentComputation:
    """Resolved lines together with the totals computed from them."""

    lines: tuple[DocumentLine, ...]
    line_results: tuple[LineTaxResult, ...]
    totals: DocumentTotals

    @property
    def warnings(self) -> tuple[TaxWarning, ...]:
        return self.totals.warnings


@traced_engine("totals", "1.0", fingerprint_fields=("document_type", "config", "reversal"))
def compute_totals(
    lines: Iterable[DocumentLine],
    document_type: DocumentType,
    config: TaxConfiguration,
    *,
    currency: Currency | str | None = None,
    reversal: bool = False,
) -> DocumentComputation:
    """
    Resolve every line and aggregate the document totals.

    Args:
        lines: Current document lines (any previous breakdown is ignored).
        document_type: The document's type; selects applicable rules.
        config: Tax configuration snapshot.
        currency: Document currency; defaults to the configuration currency.
        reversal: Negate fixed amounts (credit notes).
    """
    document_type = DocumentType(document_type)
    if currency is None:
        currency = config.currency

    resolved = resolve_lines(lines, config, document_type, reversal=reversal)
    totals = aggregate(
        resolved.lines,
        document_type,
        config.document_level_rules,
        currency=currency,
        reversal=reversal,
        warnings=resolved.warnings,
        config_fingerprint=config.fingerprint,
    )
    return DocumentComputation(
        lines=resolved.lines,
        line_results=resolved.results,
        totals=totals,
    )


def recompute_document(document: Document, config: TaxConfiguration) -> Document:
    """Return ``document`` with lines and totals recomputed under ``config``."""
    with LogContext.bind(
        document_id=document.document_id,
        document_type=document.document_type.value,
    ):
        computation = compute_totals(
            document.lines,
            document.document_type,
            config,
            currency=document.currency,
            reversal=document.is_credit_note,
        )
        if computation.warnings:
            logger.warning("document_totals_incomplete", extra={
                "warning_count": len(computation.warnings),
            })
    return replace(document, lines=computation.lines, totals=computation.totals)
