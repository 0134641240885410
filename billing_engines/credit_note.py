"""
Credit-Note Transform -- reverse an invoice by negating its lines.

Pure functions with no I/O. Identifier generation is injectable so the
transform stays deterministic under test.

Each source line becomes a new line with a fresh id and a negated quantity
(hence a negated pre-tax amount). The negated lines are run through the same
resolver and aggregator as any other document, with fixed amounts negated,
so that under an unchanged configuration:

    credit_note.totals.grand_total == -source.totals.grand_total

A configuration change between issuance and credit legitimately breaks that
equality; it is tolerated, not treated as an error.

Usage:
    from billing_engines.credit_note import to_credit_note

    credit_note = to_credit_note(invoice, config)
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable
from uuid import uuid4

from billing_kernel.domain.document_types import DocumentStatus, DocumentType
from billing_kernel.domain.documents import Document, DocumentLine
from billing_kernel.domain.tax_rules import TaxConfiguration
from billing_kernel.exceptions import CreditNoteSourceError
from billing_kernel.logging_config import LogContext, get_logger
from billing_engines.totals import compute_totals
from billing_engines.tracer import traced_engine

logger = get_logger("engines.credit_note")


def _new_id() -> str:
    return str(uuid4())


def negate_lines(
    lines: Iterable[DocumentLine],
    id_factory: Callable[[], str] = _new_id,
) -> tuple[DocumentLine, ...]:
    """Copies of ``lines`` with fresh ids, negated quantities and no breakdown."""
    return tuple(
        replace(
            line,
            line_id=id_factory(),
            quantity=-line.quantity,
            tax_breakdown=(),
        )
        for line in lines
    )


@traced_engine("credit_note", "1.0", fingerprint_fields=("config",))
def to_credit_note(
    source: Document,
    config: TaxConfiguration,
    *,
    id_factory: Callable[[], str] = _new_id,
) -> Document:
    """
    Derive a draft credit note from an invoice.

    Raises:
        CreditNoteSourceError: If ``source`` is not an invoice, is itself a
            credit note, or has been cancelled.
    """
    if source.document_type != DocumentType.INVOICE:
        raise CreditNoteSourceError(
            source.document_id, f"a {source.document_type.value} cannot be credited"
        )
    if source.is_credit_note:
        raise CreditNoteSourceError(source.document_id, "document is already a credit note")
    if source.status == DocumentStatus.CANCELLED:
        raise CreditNoteSourceError(source.document_id, "invoice is cancelled")

    credit_note_id = id_factory()

    with LogContext.bind(document_id=credit_note_id, document_type=DocumentType.INVOICE.value):
        logger.info("credit_note_started", extra={
            "source_document_id": source.document_id,
            "line_count": len(source.lines),
        })

        computation = compute_totals(
            negate_lines(source.lines, id_factory),
            DocumentType.INVOICE,
            config,
            currency=source.currency,
            reversal=True,
        )

        credit_note = Document(
            document_id=credit_note_id,
            document_type=DocumentType.INVOICE,
            lines=computation.lines,
            totals=computation.totals,
            status=DocumentStatus.DRAFT,
            currency=source.currency,
            party_id=source.party_id,
            credit_note_of=source.document_id,
        )

        mirrors_source = credit_note.totals.grand_total == -source.totals.grand_total
        if not mirrors_source:
            # Expected when the configuration changed since the invoice was issued
            logger.warning("credit_note_total_diverges", extra={
                "source_document_id": source.document_id,
                "source_grand_total": str(source.totals.grand_total.amount),
                "credit_grand_total": str(credit_note.totals.grand_total.amount),
                "source_fingerprint": source.totals.config_fingerprint,
                "credit_fingerprint": credit_note.totals.config_fingerprint,
            })

        logger.info("credit_note_completed", extra={
            "source_document_id": source.document_id,
            "grand_total": str(credit_note.totals.grand_total.amount),
            "mirrors_source": mirrors_source,
        })

    return credit_note
