"""
Documents -- lines, tax breakdowns, totals and the document envelope.

Responsibility:
    Plain, immutable data exchanged between the engines and their callers
    (forms, persistence, PDF rendering). Derived amounts are properties so
    they can never drift from the values they are derived from.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Built by ``billing_engines``.

Invariants enforced:
    - ``DocumentLine.post_tax_amount == pre_tax_amount + sum(breakdown amounts)``
    - ``DocumentTotals.grand_total == subtotal + total_taxes``
    - ``DocumentTotals.total_taxes == sum(tax_summary amounts)``
    - A Document owns its lines and totals; nothing is shared across documents
      because everything is immutable.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable

from billing_kernel.domain.currency import CurrencyRegistry
from billing_kernel.domain.document_types import DocumentStatus, DocumentType
from billing_kernel.domain.tax_rules import TaxKind
from billing_kernel.domain.values import Currency, Money

_HUNDRED = Decimal("100")


def _decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid numeric value: {value!r}") from e


def sum_money(amounts: Iterable[Money], currency: Currency) -> Money:
    """Sum Money values; the empty sum is zero in ``currency``."""
    total = Money.zero(currency)
    for amount in amounts:
        total = total + amount
    return total


class TaxSource(str, Enum):
    """Where a summary row came from."""

    PRODUCT = "product"
    DOCUMENT = "document"


@dataclass(frozen=True)
class TaxWarning:
    """
    Non-fatal configuration diagnostic.

    Returned alongside computed results so the surrounding UI can tell the
    user that a total was computed with part of the configuration missing.
    """

    code: str
    message: str
    line_id: str | None = None
    rule_id: str | None = None
    group_id: str | None = None


@dataclass(frozen=True)
class Product:
    """
    Product snapshot carried by a line.

    A product either references a tax group (preferred) or falls back to a
    single implicit percentage rule derived from ``default_rate``.
    """

    product_id: str
    name: str
    unit_price: Decimal = Decimal("0")
    default_rate: Decimal = Decimal("0")
    tax_group_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit_price", _decimal(self.unit_price))
        object.__setattr__(self, "default_rate", _decimal(self.default_rate))


@dataclass(frozen=True)
class TaxBreakdownEntry:
    """One applied tax on a line (or on the document subtotal)."""

    rule_id: str
    name: str
    kind: TaxKind
    rate: Decimal | None
    base: Money | None  # None for fixed-kind taxes
    amount: Money

    @property
    def group_key(self) -> tuple[str, Decimal | None]:
        return (self.name, self.rate)


@dataclass(frozen=True)
class DocumentLine:
    """
    A product line.

    ``pre_tax_amount`` is rounded once, to the currency precision, from
    ``quantity * unit_price * (1 - discount_percent / 100)``. The tax
    breakdown is only ever set by the line tax resolver.
    """

    line_id: str
    product: Product
    quantity: Decimal
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    currency: Currency = Currency(CurrencyRegistry.DEFAULT_CURRENCY)
    tax_breakdown: tuple[TaxBreakdownEntry, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", _decimal(self.quantity))
        object.__setattr__(self, "unit_price", _decimal(self.unit_price))
        object.__setattr__(self, "discount_percent", _decimal(self.discount_percent))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        object.__setattr__(self, "tax_breakdown", tuple(self.tax_breakdown))

    @property
    def pre_tax_amount(self) -> Money:
        gross = self.quantity * self.unit_price
        net = gross * (1 - self.discount_percent / _HUNDRED)
        return Money(amount=net, currency=self.currency).round()

    @property
    def total_taxes(self) -> Money:
        return sum_money((e.amount for e in self.tax_breakdown), self.currency)

    @property
    def post_tax_amount(self) -> Money:
        return self.pre_tax_amount + self.total_taxes

    def with_tax_breakdown(self, entries: Iterable[TaxBreakdownEntry]) -> DocumentLine:
        return replace(self, tax_breakdown=tuple(entries))


@dataclass(frozen=True)
class TaxSummaryRow:
    """One row of the document tax summary."""

    name: str
    kind: TaxKind
    rate: Decimal | None
    base_amount: Money | None
    amount: Money
    source: TaxSource = TaxSource.PRODUCT


@dataclass(frozen=True)
class DocumentTotals:
    """
    Final numbers of a document.

    ``total_taxes`` and ``grand_total`` are derived so their invariants hold
    by construction.
    """

    subtotal: Money
    tax_summary: tuple[TaxSummaryRow, ...] = ()
    warnings: tuple[TaxWarning, ...] = ()
    config_fingerprint: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tax_summary", tuple(self.tax_summary))
        object.__setattr__(self, "warnings", tuple(self.warnings))

    @classmethod
    def empty(cls, currency: str | Currency) -> DocumentTotals:
        return cls(subtotal=Money.zero(currency))

    @property
    def currency(self) -> Currency:
        return self.subtotal.currency

    @property
    def total_taxes(self) -> Money:
        return sum_money((row.amount for row in self.tax_summary), self.currency)

    @property
    def grand_total(self) -> Money:
        return self.subtotal + self.total_taxes

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def rows_from(self, source: TaxSource) -> tuple[TaxSummaryRow, ...]:
        return tuple(row for row in self.tax_summary if row.source == source)


@dataclass(frozen=True)
class Document:
    """
    Invoice, quote, delivery note or purchase order.

    A credit note is an invoice whose ``credit_note_of`` points at the
    invoice it reverses.
    """

    document_id: str
    document_type: DocumentType
    lines: tuple[DocumentLine, ...]
    totals: DocumentTotals
    status: DocumentStatus = DocumentStatus.DRAFT
    currency: Currency = Currency(CurrencyRegistry.DEFAULT_CURRENCY)
    party_id: str | None = None  # client or supplier
    credit_note_of: str | None = None
    converted_from: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "document_type", DocumentType(self.document_type))
        object.__setattr__(self, "status", DocumentStatus(self.status))
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        object.__setattr__(self, "lines", tuple(self.lines))

    @property
    def is_credit_note(self) -> bool:
        return self.credit_note_of is not None

    @property
    def is_locked(self) -> bool:
        return self.status.is_terminal

    def line(self, line_id: str) -> DocumentLine | None:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None
