"""
Hypothesis property tests for the tax engine.

Properties checked over generated documents and configurations:
- Line post-tax amount is the pre-tax amount plus its breakdown
- Grand total is the subtotal plus every summary row
- Product summary rows account for every line breakdown entry
- Recomputation is idempotent
- A credit note mirrors its invoice under an unchanged configuration
- A fixed rule is charged at most once per document
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from billing_engines.credit_note import to_credit_note
from billing_engines.document_lines import create_document
from billing_engines.totals import compute_totals
from billing_kernel.domain.document_types import DocumentType
from billing_kernel.domain.documents import DocumentLine, Product, TaxSource
from billing_kernel.domain.tax_rules import (
    TaxBase,
    TaxConfiguration,
    TaxGroup,
    TaxGroupMember,
    TaxKind,
    TaxRule,
    TaxScope,
)

FUZZ_SETTINGS = settings(
    max_examples=75,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)

quantities = st.decimals(min_value=0, max_value=1000, places=3, allow_nan=False, allow_infinity=False)
prices = st.decimals(min_value=0, max_value=100000, places=3, allow_nan=False, allow_infinity=False)
discounts = st.decimals(min_value=0, max_value=100, places=2, allow_nan=False, allow_infinity=False)
rates = st.decimals(min_value=0, max_value=100, places=2, allow_nan=False, allow_infinity=False)
fixed_amounts = st.decimals(min_value=0, max_value=50, places=3, allow_nan=False, allow_infinity=False)
document_types = st.sampled_from(list(DocumentType))


@st.composite
def rules(draw, rule_id, scope=TaxScope.PRODUCT):
    order = draw(st.integers(min_value=0, max_value=5))
    if draw(st.booleans()):
        return TaxRule.percentage(
            rule_id,
            draw(st.sampled_from(["VAT", "FODEC", "Levy"])),
            draw(rates),
            base=draw(st.sampled_from(list(TaxBase))),
            order=order,
            scope=scope,
        )
    return TaxRule.fixed(
        rule_id, f"Fixed {rule_id}", draw(fixed_amounts), order=order, scope=scope,
    )


@st.composite
def configurations(draw):
    """A group of 0-4 product rules, plus 0-2 document-level rules."""
    member_count = draw(st.integers(min_value=0, max_value=4))
    product_rules = [draw(rules(f"r{i}")) for i in range(member_count)]
    document_rules = [
        draw(rules(f"d{i}", TaxScope.DOCUMENT))
        for i in range(draw(st.integers(min_value=0, max_value=2)))
    ]
    group = TaxGroup("g", "G", members=tuple(TaxGroupMember(r.rule_id) for r in product_rules))
    return TaxConfiguration.of(rules=product_rules + document_rules, groups=[group])


@st.composite
def document_lines(draw, min_size=0, max_size=6):
    count = draw(st.integers(min_value=min_size, max_value=max_size))
    product = Product("P", "Product", tax_group_id="g")
    return [
        DocumentLine(
            line_id=f"L{i}",
            product=product,
            quantity=draw(quantities),
            unit_price=draw(prices),
            discount_percent=draw(discounts),
        )
        for i in range(count)
    ]


class TestTotalsProperties:
    """Sum invariants and determinism."""

    @FUZZ_SETTINGS
    @given(lines=document_lines(), config=configurations(), document_type=document_types)
    def test_line_post_tax_is_pre_tax_plus_breakdown(self, lines, config, document_type):
        computation = compute_totals(lines, document_type, config)

        for line in computation.lines:
            breakdown = sum((e.amount.amount for e in line.tax_breakdown), Decimal("0"))
            assert line.post_tax_amount.amount == line.pre_tax_amount.amount + breakdown

    @FUZZ_SETTINGS
    @given(lines=document_lines(), config=configurations(), document_type=document_types)
    def test_grand_total_is_subtotal_plus_rows(self, lines, config, document_type):
        totals = compute_totals(lines, document_type, config).totals

        rows = sum((row.amount.amount for row in totals.tax_summary), Decimal("0"))
        assert totals.grand_total.amount == totals.subtotal.amount + rows
        assert totals.subtotal.amount == sum(
            (line.pre_tax_amount.amount for line in lines), Decimal("0")
        )

    @FUZZ_SETTINGS
    @given(lines=document_lines(), config=configurations(), document_type=document_types)
    def test_product_rows_account_for_every_breakdown_entry(self, lines, config, document_type):
        computation = compute_totals(lines, document_type, config)

        from_lines = sum(
            (e.amount.amount for line in computation.lines for e in line.tax_breakdown),
            Decimal("0"),
        )
        from_rows = sum(
            (row.amount.amount for row in computation.totals.rows_from(TaxSource.PRODUCT)),
            Decimal("0"),
        )
        assert from_rows == from_lines

    @FUZZ_SETTINGS
    @given(lines=document_lines(), config=configurations(), document_type=document_types)
    def test_recomputation_is_idempotent(self, lines, config, document_type):
        first = compute_totals(lines, document_type, config)
        second = compute_totals(first.lines, document_type, config)

        assert first.totals == second.totals
        assert first.lines == second.lines

    @FUZZ_SETTINGS
    @given(lines=document_lines(), config=configurations(), document_type=document_types)
    def test_amounts_stored_at_currency_precision(self, lines, config, document_type):
        totals = compute_totals(lines, document_type, config).totals

        for row in totals.tax_summary:
            assert row.amount.amount == row.amount.round().amount
        assert totals.grand_total.amount == totals.grand_total.round().amount


class TestFixedRuleProperties:

    @FUZZ_SETTINGS
    @given(lines=document_lines(min_size=1), config=configurations(), document_type=document_types)
    def test_fixed_rule_charged_at_most_once(self, lines, config, document_type):
        computation = compute_totals(lines, document_type, config)

        charged = [
            e.rule_id
            for line in computation.lines
            for e in line.tax_breakdown
            if e.kind == TaxKind.FIXED
        ]
        assert len(charged) == len(set(charged))

        # with at least one line every fixed rule in the group and at document
        # level is applicable, so each is charged exactly once
        fixed_rows = [row for row in computation.totals.tax_summary if row.kind == TaxKind.FIXED]
        assert sum((row.amount.amount for row in fixed_rows), Decimal("0")) == sum(
            (r.amount for r in config.rules if r.kind == TaxKind.FIXED), Decimal("0")
        )


class TestCreditNoteProperties:

    @FUZZ_SETTINGS
    @given(lines=document_lines(), config=configurations())
    def test_credit_note_mirrors_invoice(self, lines, config):
        invoice = create_document("INV-1", DocumentType.INVOICE, config, lines=lines)

        credit = to_credit_note(invoice, config)

        assert credit.totals.grand_total == -invoice.totals.grand_total
        assert credit.totals.subtotal == -invoice.totals.subtotal
        assert credit.totals.total_taxes == -invoice.totals.total_taxes
