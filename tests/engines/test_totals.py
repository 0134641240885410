"""
Tests for the Totals Calculator.

Covers the end-to-end scenarios of the tax engine:
- FODEC then VAT on a running base
- Grouping across lines
- Fixed rules charged once per document
- Idempotent recomputation
- Recomputation after a configuration change
"""

from decimal import Decimal

import pytest

from billing_engines.totals import compute_totals, recompute_document
from billing_kernel.domain.document_types import DocumentType
from billing_kernel.domain.documents import Document, DocumentTotals, Product, TaxSource
from billing_kernel.domain.tax_rules import (
    TaxConfiguration,
    TaxGroup,
    TaxGroupMember,
    TaxRule,
    TaxScope,
)
from billing_kernel.domain.values import Money


def _tnd(amount: str) -> Money:
    return Money.of(amount, "TND")


class TestComputeTotals:
    """Full pipeline scenarios."""

    def test_fodec_then_vat(self, tax_config, make_line, industrial_product):
        computation = compute_totals(
            [make_line(industrial_product, unit_price="100")],
            DocumentType.QUOTE,
            tax_config,
        )

        line = computation.lines[0]
        assert [e.amount for e in line.tax_breakdown] == [_tnd("1.000"), _tnd("19.190")]
        assert line.post_tax_amount == _tnd("120.190")
        assert computation.totals.grand_total == _tnd("120.190")

    def test_two_lines_grouped_in_summary(self, tax_config, make_line, standard_product):
        computation = compute_totals(
            [
                make_line(standard_product, unit_price="100"),
                make_line(standard_product, unit_price="200"),
            ],
            DocumentType.QUOTE,
            tax_config,
        )

        rows = computation.totals.tax_summary
        assert len(rows) == 1
        assert rows[0].amount == _tnd("57.000")
        assert computation.totals.grand_total == _tnd("357.000")

    @pytest.mark.parametrize("line_count", [1, 5])
    def test_fixed_rule_once_regardless_of_line_count(self, make_line, line_count):
        stamp = TaxRule.fixed("stamp", "Stamp", "1")
        config = TaxConfiguration.of(
            rules=[stamp],
            groups=[TaxGroup("g", "G", members=(TaxGroupMember("stamp"),))],
        )
        product = Product("A", "A", unit_price="10", tax_group_id="g")

        computation = compute_totals(
            [make_line(product) for _ in range(line_count)], DocumentType.INVOICE, config,
        )

        assert computation.totals.total_taxes == _tnd("1.000")
        assert computation.totals.subtotal == _tnd(str(10 * line_count))

    def test_document_scoped_rule_in_group_charged_once(self, make_line):
        levy = TaxRule.percentage("levy", "Levy", "10", scope=TaxScope.DOCUMENT)
        config = TaxConfiguration.of(
            rules=[levy],
            groups=[TaxGroup("g", "G", members=(TaxGroupMember("levy"),))],
        )
        product = Product("A", "A", unit_price="100", tax_group_id="g")

        computation = compute_totals([make_line(product)], DocumentType.INVOICE, config)

        assert computation.totals.total_taxes == _tnd("10.000")
        assert [row.source for row in computation.totals.tax_summary] == [TaxSource.DOCUMENT]
        assert computation.totals.warnings[0].rule_id == "levy"

    def test_idempotent(self, tax_config, make_line, industrial_product, standard_product):
        lines = [
            make_line(industrial_product, quantity="3", unit_price="33.333"),
            make_line(standard_product, quantity="2", unit_price="12.345", discount_percent="7.5"),
        ]

        first = compute_totals(lines, DocumentType.INVOICE, tax_config)
        second = compute_totals(lines, DocumentType.INVOICE, tax_config)
        third = compute_totals(first.lines, DocumentType.INVOICE, tax_config)

        assert first == second
        assert first.totals == third.totals

    def test_sum_invariants(self, tax_config, make_line, industrial_product, standard_product):
        computation = compute_totals(
            [
                make_line(industrial_product, quantity="3", unit_price="33.333"),
                make_line(standard_product, quantity="2", unit_price="12.345", discount_percent="7.5"),
            ],
            DocumentType.INVOICE,
            tax_config,
        )
        totals = computation.totals

        for line in computation.lines:
            assert line.post_tax_amount.amount == line.pre_tax_amount.amount + sum(
                (e.amount.amount for e in line.tax_breakdown), Decimal("0")
            )
        assert totals.subtotal.amount == sum(
            (line.pre_tax_amount.amount for line in computation.lines), Decimal("0")
        )
        assert totals.grand_total.amount == totals.subtotal.amount + sum(
            (row.amount.amount for row in totals.tax_summary), Decimal("0")
        )

    def test_empty_document(self, tax_config):
        computation = compute_totals([], DocumentType.INVOICE, tax_config)

        assert computation.lines == ()
        assert computation.totals.grand_total.is_zero
        assert computation.totals.tax_summary == ()

    def test_warnings_surface_on_totals(self, tax_config, make_line):
        product = Product("A", "A", unit_price="10", default_rate="19", tax_group_id="ghost")

        computation = compute_totals([make_line(product)], DocumentType.INVOICE, tax_config)

        assert computation.warnings[0].code == "TAX_GROUP_NOT_FOUND"
        # falls back to the default rate
        assert computation.lines[0].tax_breakdown[0].amount == _tnd("1.900")

    def test_fingerprint_recorded(self, tax_config):
        computation = compute_totals([], DocumentType.INVOICE, tax_config)
        assert computation.totals.config_fingerprint == tax_config.fingerprint

    def test_configuration_currency_used_by_default(self):
        computation = compute_totals([], DocumentType.INVOICE, TaxConfiguration(currency="EUR"))
        assert computation.totals.currency.code == "EUR"

    def test_string_document_type_accepted(self, tax_config):
        computation = compute_totals([], "quote", tax_config)
        assert computation.totals.grand_total.is_zero

    def test_engine_trace_emitted(self, tax_config, captured_logs):
        compute_totals([], DocumentType.INVOICE, tax_config)

        traces = [r for r in captured_logs() if r["message"] == "BILLING_ENGINE_TRACE"]
        assert traces
        assert traces[0]["engine_name"] == "totals"
        assert len(traces[0]["input_fingerprint"]) == 16


class TestRecomputeDocument:
    """Recomputation of a stored document."""

    def _document(self, lines):
        return Document(
            document_id="INV-001",
            document_type=DocumentType.INVOICE,
            lines=lines,
            totals=DocumentTotals.empty("TND"),
        )

    def test_stale_totals_replaced(self, tax_config, make_line, standard_product):
        document = self._document([make_line(standard_product)])

        recomputed = recompute_document(document, tax_config)

        assert recomputed.totals.grand_total == _tnd("1191.000")
        assert recomputed.document_id == document.document_id
        assert document.totals.grand_total.is_zero  # input untouched

    def test_rate_change_reflected(self, make_line):
        product = Product("A", "A", unit_price="100", tax_group_id="vat")

        def config_with(rate):
            return TaxConfiguration.of(
                rules=[TaxRule.percentage("vat", "VAT", rate)],
                groups=[TaxGroup("vat", "VAT", members=(TaxGroupMember("vat"),))],
            )

        document = self._document([make_line(product)])
        at_19 = recompute_document(document, config_with("19"))
        at_7 = recompute_document(at_19, config_with("7"))

        assert at_19.totals.grand_total == _tnd("119.000")
        assert at_7.totals.grand_total == _tnd("107.000")
        assert at_7.totals.config_fingerprint != at_19.totals.config_fingerprint

    def test_deactivated_rule_disappears(self, make_line):
        product = Product("A", "A", unit_price="100")
        levy = TaxRule.fixed("levy", "Levy", "2", scope=TaxScope.DOCUMENT)
        document = self._document([make_line(product)])

        with_levy = recompute_document(document, TaxConfiguration.of(rules=[levy]))
        without = recompute_document(
            with_levy,
            TaxConfiguration.of(rules=[TaxRule.fixed("levy", "Levy", "2", scope=TaxScope.DOCUMENT, active=False)]),
        )

        assert with_levy.totals.rows_from(TaxSource.DOCUMENT)[0].amount == _tnd("2.000")
        assert without.totals.rows_from(TaxSource.DOCUMENT) == ()

    def test_logs_incomplete_totals(self, tax_config, make_line, captured_logs):
        product = Product("A", "A", unit_price="10", tax_group_id="ghost")

        recompute_document(self._document([make_line(product)]), tax_config)

        logs = captured_logs()
        incomplete = [r for r in logs if r["message"] == "document_totals_incomplete"]
        assert incomplete[0]["document_id"] == "INV-001"
        assert incomplete[0]["warning_count"] == 1
