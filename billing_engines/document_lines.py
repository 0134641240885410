"""
Document Lines -- the mutation boundary of a document.

Every way a caller can change a document's lines goes through this module:
create, add, update, remove, and conversion into another document type.
Each operation validates its numeric input, refuses to touch a document in a
terminal status, and returns a NEW ``Document`` whose totals were recomputed
from scratch. Documents are never mutated in place.

Usage:
    from billing_engines.document_lines import add_line, create_document

    doc = create_document("INV-001", DocumentType.INVOICE, config)
    doc = add_line(doc, product, quantity=2, config=config)
    doc.totals.grand_total
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable
from uuid import uuid4

from billing_kernel.domain.document_types import DocumentStatus, DocumentType
from billing_kernel.domain.documents import Document, DocumentLine, DocumentTotals, Product
from billing_kernel.domain.tax_rules import TaxConfiguration
from billing_kernel.domain.values import Currency
from billing_kernel.exceptions import (
    DocumentLockedError,
    InvalidDiscountError,
    InvalidQuantityError,
    InvalidUnitPriceError,
    LineNotFoundError,
    UnsupportedConversionError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_engines.totals import recompute_document
from billing_engines.tracer import traced_engine

logger = get_logger("engines.document_lines")


# Allowed conversions: source type -> target types
_CONVERSIONS: dict[DocumentType, frozenset[DocumentType]] = {
    DocumentType.QUOTE: frozenset({DocumentType.INVOICE, DocumentType.DELIVERY_NOTE}),
    DocumentType.DELIVERY_NOTE: frozenset({DocumentType.INVOICE}),
}

_MAX_DISCOUNT = Decimal("100")

_UNSET: Any = object()


def _new_id() -> str:
    return str(uuid4())


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def validate_line_input(
    quantity: Any,
    unit_price: Any,
    discount_percent: Any = Decimal("0"),
    *,
    allow_negative_quantity: bool = False,
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Check and coerce the numeric fields of a line.

    Returns:
        ``(quantity, unit_price, discount_percent)`` as Decimals.

    Raises:
        InvalidQuantityError: Not a finite number, or negative when the
            document is not a credit note.
        InvalidUnitPriceError: Not a finite, non-negative number.
        InvalidDiscountError: Outside [0, 100].
    """
    qty = _as_decimal(quantity)
    if qty is None or not qty.is_finite():
        raise InvalidQuantityError(quantity, "must be a finite number")
    if qty < 0 and not allow_negative_quantity:
        raise InvalidQuantityError(quantity, "cannot be negative outside a credit note")

    price = _as_decimal(unit_price)
    if price is None or not price.is_finite():
        raise InvalidUnitPriceError(unit_price, "must be a finite number")
    if price < 0:
        raise InvalidUnitPriceError(unit_price, "cannot be negative")

    discount = _as_decimal(discount_percent)
    if discount is None or not discount.is_finite() or not 0 <= discount <= _MAX_DISCOUNT:
        raise InvalidDiscountError(discount_percent)

    return qty, price, discount


def build_line(
    product: Product,
    quantity: Any,
    *,
    unit_price: Any = None,
    discount_percent: Any = Decimal("0"),
    currency: Currency | str | None = None,
    line_id: str | None = None,
    allow_negative_quantity: bool = False,
) -> DocumentLine:
    """
    Build a validated line for ``product``.

    ``unit_price`` defaults to the product's catalogue price. The line carries
    no tax breakdown until it goes through a recomputation.
    """
    if unit_price is None:
        unit_price = product.unit_price
    qty, price, discount = validate_line_input(
        quantity,
        unit_price,
        discount_percent,
        allow_negative_quantity=allow_negative_quantity,
    )
    kwargs: dict[str, Any] = {}
    if currency is not None:
        kwargs["currency"] = currency
    return DocumentLine(
        line_id=line_id or _new_id(),
        product=product,
        quantity=qty,
        unit_price=price,
        discount_percent=discount,
        **kwargs,
    )


def _ensure_mutable(document: Document) -> None:
    if document.is_locked:
        raise DocumentLockedError(document.document_id, document.status.value)


def _apply(
    document: Document,
    lines: Iterable[DocumentLine],
    config: TaxConfiguration,
    event: str,
    **fields: Any,
) -> Document:
    updated = recompute_document(replace(document, lines=tuple(lines)), config)
    with LogContext.bind(
        document_id=document.document_id,
        document_type=document.document_type.value,
    ):
        logger.info(event, extra={
            **fields,
            "line_count": len(updated.lines),
            "grand_total": str(updated.totals.grand_total.amount),
        })
    return updated


def create_document(
    document_id: str,
    document_type: DocumentType,
    config: TaxConfiguration,
    *,
    lines: Iterable[DocumentLine] = (),
    currency: Currency | str | None = None,
    party_id: str | None = None,
    status: DocumentStatus = DocumentStatus.DRAFT,
) -> Document:
    """A new document with its totals computed under ``config``."""
    currency = Currency(config.currency) if currency is None else currency
    document = Document(
        document_id=document_id,
        document_type=document_type,
        lines=tuple(lines),
        totals=DocumentTotals.empty(currency),
        status=status,
        currency=currency,
        party_id=party_id,
    )
    return recompute_document(document, config)


def add_line(
    document: Document,
    product: Product,
    quantity: Any,
    config: TaxConfiguration,
    *,
    unit_price: Any = None,
    discount_percent: Any = Decimal("0"),
    line_id: str | None = None,
) -> Document:
    """Append a line for ``product`` and recompute."""
    _ensure_mutable(document)
    line = build_line(
        product,
        quantity,
        unit_price=unit_price,
        discount_percent=discount_percent,
        currency=document.currency,
        line_id=line_id,
        allow_negative_quantity=document.is_credit_note,
    )
    return _apply(
        document,
        document.lines + (line,),
        config,
        "document_line_added",
        line_id=line.line_id,
        product_id=product.product_id,
    )


def update_line(
    document: Document,
    line_id: str,
    config: TaxConfiguration,
    *,
    product: Product | None = None,
    quantity: Any = _UNSET,
    unit_price: Any = _UNSET,
    discount_percent: Any = _UNSET,
) -> Document:
    """
    Change one line and recompute.

    Only the fields passed are changed. Switching ``product`` keeps the
    line's current unit price unless a new ``unit_price`` is also given.
    """
    _ensure_mutable(document)
    current = document.line(line_id)
    if current is None:
        raise LineNotFoundError(document.document_id, line_id)

    qty, price, discount = validate_line_input(
        current.quantity if quantity is _UNSET else quantity,
        current.unit_price if unit_price is _UNSET else unit_price,
        current.discount_percent if discount_percent is _UNSET else discount_percent,
        allow_negative_quantity=document.is_credit_note,
    )
    changed = replace(
        current,
        product=current.product if product is None else product,
        quantity=qty,
        unit_price=price,
        discount_percent=discount,
        tax_breakdown=(),
    )
    lines = tuple(changed if line.line_id == line_id else line for line in document.lines)
    return _apply(document, lines, config, "document_line_updated", line_id=line_id)


def remove_line(document: Document, line_id: str, config: TaxConfiguration) -> Document:
    """Drop one line and recompute."""
    _ensure_mutable(document)
    if document.line(line_id) is None:
        raise LineNotFoundError(document.document_id, line_id)
    lines = tuple(line for line in document.lines if line.line_id != line_id)
    return _apply(document, lines, config, "document_line_removed", line_id=line_id)


def _fresh_ids(lines: Iterable[DocumentLine], id_factory: Callable[[], str]) -> tuple[DocumentLine, ...]:
    return tuple(replace(line, line_id=id_factory(), tax_breakdown=()) for line in lines)


@traced_engine("document_conversion", "1.0", fingerprint_fields=("target_type", "config"))
def convert_document(
    source: Document,
    target_type: DocumentType,
    config: TaxConfiguration,
    *,
    document_id: str | None = None,
    id_factory: Callable[[], str] = _new_id,
) -> Document:
    """
    Turn a quote into an invoice or delivery note, or a delivery note into
    an invoice.

    The new document belongs to the same party, starts as a draft and gets
    copies of the source lines under fresh ids. Its totals are recomputed
    under the target type, so document-level rules scoped to one type and
    not the other are picked up or dropped.

    Raises:
        UnsupportedConversionError: No conversion path between the types.
    """
    target_type = DocumentType(target_type)
    if target_type not in _CONVERSIONS.get(source.document_type, frozenset()):
        raise UnsupportedConversionError(source.document_type.value, target_type.value)

    target = Document(
        document_id=document_id or id_factory(),
        document_type=target_type,
        lines=_fresh_ids(source.lines, id_factory),
        totals=DocumentTotals.empty(source.currency),
        status=DocumentStatus.DRAFT,
        currency=source.currency,
        party_id=source.party_id,
        converted_from=source.document_id,
    )
    converted = recompute_document(target, config)

    logger.info("document_converted", extra={
        "source_document_id": source.document_id,
        "source_type": source.document_type.value,
        "target_document_id": converted.document_id,
        "target_type": target_type.value,
        "grand_total": str(converted.totals.grand_total.amount),
    })
    return converted


__all__ = [
    "add_line",
    "build_line",
    "convert_document",
    "create_document",
    "remove_line",
    "update_line",
    "validate_line_input",
]
