"""
Tests for the Credit-Note Transform.

Covers:
- Negated lines with fresh ids
- Grand total mirroring the source invoice
- Fixed amounts negated
- Source validation
"""

from decimal import Decimal
from itertools import count

import pytest

from billing_engines.credit_note import negate_lines, to_credit_note
from billing_engines.document_lines import create_document
from billing_kernel.domain.document_types import DocumentStatus, DocumentType
from billing_kernel.domain.documents import Product, TaxSource
from billing_kernel.domain.tax_rules import TaxConfiguration, TaxRule
from billing_kernel.domain.values import Money
from billing_kernel.exceptions import CreditNoteSourceError


def _tnd(amount: str) -> Money:
    return Money.of(amount, "TND")


def _ids(prefix="CN"):
    counter = count(1)
    return lambda: f"{prefix}-{next(counter)}"


class TestNegateLines:

    def test_quantities_negated_and_ids_fresh(self, make_line, standard_product):
        source = (make_line(standard_product, quantity="2", line_id="L1"),)

        negated = negate_lines(source, _ids("N"))

        assert negated[0].line_id == "N-1"
        assert negated[0].quantity == Decimal("-2")
        assert negated[0].unit_price == source[0].unit_price
        assert negated[0].tax_breakdown == ()
        assert source[0].quantity == Decimal("2")  # source untouched


class TestToCreditNote:
    """Credit notes mirror the invoice they reverse."""

    def _invoice(self, config, lines, **kwargs):
        return create_document("INV-001", DocumentType.INVOICE, config, lines=lines, **kwargs)

    def test_single_line_invoice_mirrored(self, tax_config, make_line, standard_product):
        config = TaxConfiguration.of(rules=[r for r in tax_config.rules if r.rule_id != "stamp"],
                                     groups=tax_config.groups)
        invoice = self._invoice(config, [make_line(standard_product)], party_id="C-42")
        assert invoice.totals.subtotal == _tnd("1000.000")
        assert invoice.totals.total_taxes == _tnd("190.000")

        credit = to_credit_note(invoice, config, id_factory=_ids())

        assert credit.document_id == "CN-1"
        assert credit.document_type == DocumentType.INVOICE
        assert credit.status == DocumentStatus.DRAFT
        assert credit.credit_note_of == "INV-001"
        assert credit.party_id == "C-42"
        assert credit.is_credit_note
        assert credit.totals.subtotal == _tnd("-1000.000")
        assert credit.totals.total_taxes == _tnd("-190.000")
        assert credit.totals.grand_total == _tnd("-1190.000")

    def test_line_ids_are_new(self, tax_config, make_line, standard_product):
        invoice = self._invoice(tax_config, [make_line(standard_product, line_id="L1")])

        credit = to_credit_note(invoice, tax_config)

        assert credit.lines[0].line_id != "L1"
        assert credit.lines[0].quantity == Decimal("-1")

    def test_fixed_amounts_negated(self, tax_config, make_line, standard_product):
        invoice = self._invoice(tax_config, [make_line(standard_product)])

        credit = to_credit_note(invoice, tax_config)

        stamp_row = credit.totals.rows_from(TaxSource.DOCUMENT)[0]
        assert stamp_row.amount == _tnd("-1.000")
        assert credit.totals.grand_total == -invoice.totals.grand_total

    def test_compound_multi_line_invoice_mirrored(
        self, tax_config, make_line, industrial_product, standard_product,
    ):
        invoice = self._invoice(
            tax_config,
            [
                make_line(industrial_product, quantity="3", unit_price="33.333"),
                make_line(standard_product, quantity="7", unit_price="0.125", discount_percent="12.5"),
            ],
        )

        credit = to_credit_note(invoice, tax_config)

        assert credit.totals.grand_total == -invoice.totals.grand_total
        assert credit.totals.subtotal == -invoice.totals.subtotal
        for source_line, credit_line in zip(invoice.lines, credit.lines):
            assert credit_line.post_tax_amount == -source_line.post_tax_amount

    def test_source_untouched(self, tax_config, make_line, standard_product):
        invoice = self._invoice(tax_config, [make_line(standard_product)])
        before = invoice.totals

        to_credit_note(invoice, tax_config)

        assert invoice.totals == before
        assert invoice.status == DocumentStatus.DRAFT

    def test_configuration_change_tolerated(self, make_line, captured_logs):
        product = Product("A", "A", unit_price="100", default_rate="19")
        invoice = self._invoice(TaxConfiguration(), [make_line(product)])

        credit = to_credit_note(invoice, TaxConfiguration.of(
            rules=[TaxRule.fixed("new", "New levy", "5", scope="document")],
        ))

        assert credit.totals.grand_total == _tnd("-124.000")
        assert credit.totals.grand_total != -invoice.totals.grand_total
        assert any(r["message"] == "credit_note_total_diverges" for r in captured_logs())

    @pytest.mark.parametrize(
        "document_type",
        [DocumentType.QUOTE, DocumentType.DELIVERY_NOTE, DocumentType.PURCHASE_ORDER],
    )
    def test_only_invoices_can_be_credited(self, tax_config, document_type):
        document = create_document("D-1", document_type, tax_config)

        with pytest.raises(CreditNoteSourceError) as exc_info:
            to_credit_note(document, tax_config)
        assert exc_info.value.document_id == "D-1"
        assert exc_info.value.code == "CREDIT_NOTE_SOURCE"

    def test_credit_note_cannot_be_credited(self, tax_config, make_line, standard_product):
        invoice = self._invoice(tax_config, [make_line(standard_product)])
        credit = to_credit_note(invoice, tax_config)

        with pytest.raises(CreditNoteSourceError, match="already a credit note"):
            to_credit_note(credit, tax_config)

    def test_cancelled_invoice_rejected(self, tax_config):
        invoice = self._invoice(tax_config, [], status=DocumentStatus.CANCELLED)

        with pytest.raises(CreditNoteSourceError, match="cancelled"):
            to_credit_note(invoice, tax_config)
