"""
Typed Exception Hierarchy for the Billing Kernel.

Every error has a typed class, a machine-readable ``code`` class attribute,
and carries its context as structured attributes rather than only in the
message string.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- TaxRuleError
    |   +-- InvalidTaxRuleError
    |   +-- InvalidTaxGroupError
    |
    +-- LineError
    |   +-- InvalidQuantityError
    |   +-- InvalidUnitPriceError
    |   +-- InvalidDiscountError
    |   +-- LineNotFoundError
    |
    +-- DocumentError
    |   +-- DocumentLockedError
    |   +-- UnsupportedConversionError
    |   +-- CreditNoteSourceError
    |
    +-- CurrencyError
        +-- CurrencyMismatchError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                      | When Raised
-----------|---------------------------|-------------------------------------------
Tax rule   | INVALID_TAX_RULE          | Kind/rate/amount combination is invalid
           | INVALID_TAX_GROUP         | Group has no id or duplicate members
-----------|---------------------------|-------------------------------------------
Line       | INVALID_QUANTITY          | Quantity not finite, or negative outside
           |                           | a credit note
           | INVALID_UNIT_PRICE        | Unit price NaN, infinite or negative
           | INVALID_DISCOUNT          | Discount outside [0, 100]
           | LINE_NOT_FOUND            | Line id not on the document
-----------|---------------------------|-------------------------------------------
Document   | DOCUMENT_LOCKED           | Mutating a paid/cancelled document
           | UNSUPPORTED_CONVERSION    | No conversion path between the two types
           | CREDIT_NOTE_SOURCE        | Crediting something that is not an invoice
-----------|---------------------------|-------------------------------------------
Currency   | CURRENCY_MISMATCH         | Mixed currencies in one operation

Configuration gaps (a product pointing at a missing group, a group member
pointing at an inactive rule) are NOT exceptions. The engines report them
as ``TaxWarning`` values on the computed result and keep going.
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Tax rule exceptions


class TaxRuleError(BillingKernelError):
    """Base exception for tax configuration objects."""

    code: str = "TAX_RULE_ERROR"


class InvalidTaxRuleError(TaxRuleError):
    """A tax rule was constructed with an inconsistent definition."""

    code: str = "INVALID_TAX_RULE"

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Invalid tax rule {rule_id!r}: {reason}")


class InvalidTaxGroupError(TaxRuleError):
    """A tax group was constructed with an inconsistent definition."""

    code: str = "INVALID_TAX_GROUP"

    def __init__(self, group_id: str, reason: str):
        self.group_id = group_id
        self.reason = reason
        super().__init__(f"Invalid tax group {group_id!r}: {reason}")


# Line exceptions


class LineError(BillingKernelError):
    """Base exception for document line mutations."""

    code: str = "LINE_ERROR"


class InvalidQuantityError(LineError):
    """Quantity is not a usable number for this document."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object, reason: str):
        self.quantity = str(quantity)
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity}: {reason}")


class InvalidUnitPriceError(LineError):
    """Unit price is missing, not finite, or negative."""

    code: str = "INVALID_UNIT_PRICE"

    def __init__(self, unit_price: object, reason: str):
        self.unit_price = str(unit_price)
        self.reason = reason
        super().__init__(f"Invalid unit price {unit_price}: {reason}")


class InvalidDiscountError(LineError):
    """Discount percentage outside the [0, 100] range."""

    code: str = "INVALID_DISCOUNT"

    def __init__(self, discount_percent: object):
        self.discount_percent = str(discount_percent)
        super().__init__(
            f"Discount must be between 0 and 100 percent, got {discount_percent}"
        )


class LineNotFoundError(LineError):
    """The referenced line does not belong to the document."""

    code: str = "LINE_NOT_FOUND"

    def __init__(self, document_id: str, line_id: str):
        self.document_id = document_id
        self.line_id = line_id
        super().__init__(f"Line {line_id} not found on document {document_id}")


# Document exceptions


class DocumentError(BillingKernelError):
    """Base exception for document-level operations."""

    code: str = "DOCUMENT_ERROR"


class DocumentLockedError(DocumentError):
    """The document is in a terminal status and its lines can't change."""

    code: str = "DOCUMENT_LOCKED"

    def __init__(self, document_id: str, status: str):
        self.document_id = document_id
        self.status = status
        super().__init__(f"Document {document_id} is {status} and cannot be modified")


class UnsupportedConversionError(DocumentError):
    """There is no conversion path between the two document types."""

    code: str = "UNSUPPORTED_CONVERSION"

    def __init__(self, source_type: str, target_type: str):
        self.source_type = source_type
        self.target_type = target_type
        super().__init__(f"Cannot convert a {source_type} into a {target_type}")


class CreditNoteSourceError(DocumentError):
    """Credit notes can only be derived from issued invoices."""

    code: str = "CREDIT_NOTE_SOURCE"

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Cannot credit document {document_id}: {reason}")


# Currency exceptions


class CurrencyError(BillingKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class CurrencyMismatchError(CurrencyError):
    """Attempted operation on mismatched currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str):
        self.currency1 = currency1
        self.currency2 = currency2
        super().__init__(f"Currency mismatch: {currency1} vs {currency2}")
