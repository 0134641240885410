"""
Line Tax Resolver -- per-line tax breakdown from an ordered rule cascade.

Pure functions with no I/O. Rules are provided as parameters.

Usage:
    from billing_engines.line_tax import resolve_line, rules_for_product

    rules, warnings = rules_for_product(line.product, config, DocumentType.INVOICE)
    result = resolve_line(line, rules)
    print(result.post_tax_amount)

Algorithm (per line):
    1. Keep active rules; stable-sort by ``order``.
    2. The running base starts at the line's pre-tax amount.
    3. Fixed rules contribute their flat amount, at most once per document:
       the caller shares one ``applied_fixed_rule_ids`` set across every
       line of the same computation.
    4. Percentage rules are calculated on the pre-tax amount (RAW_SUBTOTAL)
       or on the running base (RUNNING_TOTAL); the unrounded amount is
       added to the running base.
    5. post-tax = pre-tax + sum of the rounded breakdown amounts.

Configuration gaps (missing or inactive groups/rules) are skipped and
reported as ``TaxWarning`` values; they never abort the computation.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from billing_kernel.domain.document_types import DocumentType
from billing_kernel.domain.documents import (
    DocumentLine,
    Product,
    TaxBreakdownEntry,
    TaxWarning,
    sum_money,
)
from billing_kernel.domain.tax_rules import (
    TaxBase,
    TaxConfiguration,
    TaxGroup,
    TaxKind,
    TaxRule,
    TaxScope,
)
from billing_kernel.domain.values import Money
from billing_kernel.logging_config import get_logger
from billing_engines.monetary import apply_percentage, round_amount, signed

logger = get_logger("engines.line_tax")


# Warning codes
TAX_GROUP_NOT_FOUND = "TAX_GROUP_NOT_FOUND"
TAX_GROUP_INACTIVE = "TAX_GROUP_INACTIVE"
TAX_RULE_NOT_FOUND = "TAX_RULE_NOT_FOUND"
TAX_RULE_INACTIVE = "TAX_RULE_INACTIVE"
TAX_RULE_DOCUMENT_SCOPED = "TAX_RULE_DOCUMENT_SCOPED"


@dataclass(frozen=True)
class LineTaxResult:
    """Tax breakdown and post-tax amount of one line."""

    line_id: str
    pre_tax_amount: Money
    tax_breakdown: tuple[TaxBreakdownEntry, ...]
    post_tax_amount: Money
    warnings: tuple[TaxWarning, ...] = ()

    @property
    def total_taxes(self) -> Money:
        return sum_money((e.amount for e in self.tax_breakdown), self.pre_tax_amount.currency)


@dataclass(frozen=True)
class ResolvedLines:
    """Every line of one document, resolved in a single pass."""

    lines: tuple[DocumentLine, ...]
    results: tuple[LineTaxResult, ...]
    warnings: tuple[TaxWarning, ...]
    applied_fixed_rule_ids: frozenset[str]


def order_rules(rules: Iterable[TaxRule]) -> list[TaxRule]:
    """Active rules, stable-sorted by ``order`` (ties keep input order)."""
    return sorted((r for r in rules if r.active), key=lambda r: r.order)


def apply_cascade(
    base: Money,
    rules: Sequence[TaxRule],
    applied_fixed_rule_ids: set[str],
    *,
    reversal: bool = False,
) -> tuple[TaxBreakdownEntry, ...]:
    """
    Apply already-ordered ``rules`` to ``base``.

    Shared by the line resolver (base = line pre-tax amount) and the
    document aggregator (base = document subtotal). Fixed rules found in
    ``applied_fixed_rule_ids`` are skipped; the others are recorded in it.
    """
    running = base
    entries: list[TaxBreakdownEntry] = []

    for rule in rules:
        if rule.kind == TaxKind.FIXED:
            if rule.rule_id in applied_fixed_rule_ids:
                logger.debug("fixed_tax_already_applied", extra={
                    "rule_id": rule.rule_id,
                })
                continue
            applied_fixed_rule_ids.add(rule.rule_id)
            amount = signed(Money(amount=rule.amount, currency=base.currency), reversal)
            entries.append(
                TaxBreakdownEntry(
                    rule_id=rule.rule_id,
                    name=rule.name,
                    kind=TaxKind.FIXED,
                    rate=None,
                    base=None,
                    amount=round_amount(amount),
                )
            )
            continue

        tax_base = base if rule.base == TaxBase.RAW_SUBTOTAL else running
        amount = apply_percentage(tax_base, rule.rate)
        running = running + amount

        entries.append(
            TaxBreakdownEntry(
                rule_id=rule.rule_id,
                name=rule.name,
                kind=TaxKind.PERCENTAGE,
                rate=rule.rate,
                base=round_amount(tax_base),
                amount=round_amount(amount),
            )
        )

    return tuple(entries)


def resolve_line(
    line: DocumentLine,
    rules: Iterable[TaxRule],
    applied_fixed_rule_ids: set[str] | None = None,
    *,
    reversal: bool = False,
) -> LineTaxResult:
    """
    Compute the tax breakdown of a single line.

    Args:
        line: The line; only its pre-tax amount is used.
        rules: The line's rule set (a resolved group, or the default rule).
        applied_fixed_rule_ids: Set shared across all lines of the same
            document. A fresh set is used when omitted (single-line use).
        reversal: Negate fixed amounts (credit notes).

    Returns:
        LineTaxResult with rounded breakdown amounts.
    """
    applied = set() if applied_fixed_rule_ids is None else applied_fixed_rule_ids
    pre_tax = line.pre_tax_amount

    breakdown = apply_cascade(pre_tax, order_rules(rules), applied, reversal=reversal)
    total_taxes = sum_money((e.amount for e in breakdown), pre_tax.currency)

    return LineTaxResult(
        line_id=line.line_id,
        pre_tax_amount=pre_tax,
        tax_breakdown=breakdown,
        post_tax_amount=pre_tax + total_taxes,
    )


def default_rules(product: Product, config: TaxConfiguration) -> tuple[TaxRule, ...]:
    """The implicit single percentage rule derived from a product's default rate."""
    if product.default_rate == 0:
        return ()
    rate = product.default_rate
    return (
        TaxRule.percentage(
            rule_id=f"default-rate-{rate.normalize():f}",
            name=config.default_rate_name,
            rate=rate,
            base=TaxBase.RAW_SUBTOTAL,
        ),
    )


def _warn(warning: TaxWarning) -> TaxWarning:
    logger.warning("tax_configuration_gap", extra={
        "warning_code": warning.code,
        "line_id": warning.line_id,
        "rule_id": warning.rule_id,
        "group_id": warning.group_id,
    })
    return warning


def _group_rules(
    group: TaxGroup,
    config: TaxConfiguration,
    document_type: DocumentType,
    line_id: str | None,
) -> tuple[tuple[TaxRule, ...], tuple[TaxWarning, ...]]:
    rules: list[TaxRule] = []
    warnings: list[TaxWarning] = []

    for member in group.members:
        rule = config.rule(member.rule_id)
        if rule is None:
            warnings.append(_warn(TaxWarning(
                code=TAX_RULE_NOT_FOUND,
                message=f"Tax group {group.name!r} references unknown tax rule {member.rule_id!r}",
                line_id=line_id,
                rule_id=member.rule_id,
                group_id=group.group_id,
            )))
            continue
        if not rule.active:
            warnings.append(_warn(TaxWarning(
                code=TAX_RULE_INACTIVE,
                message=f"Tax group {group.name!r} references inactive tax rule {rule.name!r}",
                line_id=line_id,
                rule_id=rule.rule_id,
                group_id=group.group_id,
            )))
            continue
        if rule.scope == TaxScope.DOCUMENT:
            warnings.append(_warn(TaxWarning(
                code=TAX_RULE_DOCUMENT_SCOPED,
                message=(
                    f"Tax group {group.name!r} references document-level tax rule "
                    f"{rule.name!r}; it is charged on the document subtotal only"
                ),
                line_id=line_id,
                rule_id=rule.rule_id,
                group_id=group.group_id,
            )))
            continue
        if document_type not in rule.applicable_document_types:
            continue
        rules.append(rule.with_overrides(order=member.order, base=member.base))

    return tuple(order_rules(rules)), tuple(warnings)


def rules_for_product(
    product: Product,
    config: TaxConfiguration,
    document_type: DocumentType,
    line_id: str | None = None,
) -> tuple[tuple[TaxRule, ...], tuple[TaxWarning, ...]]:
    """
    Resolve the ordered rule set of a product for a given document type.

    A product with a usable tax group gets the group's cascade (member
    overrides applied). Members that are unknown, inactive or document-scoped
    are skipped with a warning. A missing or inactive group is reported and
    the product falls back to its default rate.
    """
    if product.tax_group_id is None:
        return default_rules(product, config), ()

    group = config.group(product.tax_group_id)
    if group is None:
        warning = _warn(TaxWarning(
            code=TAX_GROUP_NOT_FOUND,
            message=(
                f"Product {product.name!r} references unknown tax group "
                f"{product.tax_group_id!r}; using its default rate"
            ),
            line_id=line_id,
            group_id=product.tax_group_id,
        ))
        return default_rules(product, config), (warning,)

    if not group.active:
        warning = _warn(TaxWarning(
            code=TAX_GROUP_INACTIVE,
            message=(
                f"Product {product.name!r} references inactive tax group "
                f"{group.name!r}; using its default rate"
            ),
            line_id=line_id,
            group_id=group.group_id,
        ))
        return default_rules(product, config), (warning,)

    return _group_rules(group, config, document_type, line_id)


def resolve_lines(
    lines: Iterable[DocumentLine],
    config: TaxConfiguration,
    document_type: DocumentType,
    *,
    reversal: bool = False,
) -> ResolvedLines:
    """
    Resolve every line of one document.

    A fresh fixed-rule set is created for each call and shared by all the
    lines, so a fixed rule is charged once per document whatever the line
    count.
    """
    applied: set[str] = set()
    resolved: list[DocumentLine] = []
    results: list[LineTaxResult] = []
    warnings: list[TaxWarning] = []

    for line in lines:
        rules, line_warnings = rules_for_product(
            line.product, config, document_type, line_id=line.line_id
        )
        result = resolve_line(line, rules, applied, reversal=reversal)
        if line_warnings:
            result = replace(result, warnings=line_warnings)
        resolved.append(line.with_tax_breakdown(result.tax_breakdown))
        results.append(result)
        warnings.extend(line_warnings)

    return ResolvedLines(
        lines=tuple(resolved),
        results=tuple(results),
        warnings=tuple(warnings),
        applied_fixed_rule_ids=frozenset(applied),
    )
