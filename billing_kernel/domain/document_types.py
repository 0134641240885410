"""Document type and status enumerations shared by rules and documents."""

from enum import Enum


class DocumentType(str, Enum):
    """Commercial document kinds. Fixed at document creation."""

    INVOICE = "invoice"
    QUOTE = "quote"
    DELIVERY_NOTE = "delivery_note"
    PURCHASE_ORDER = "purchase_order"


class DocumentStatus(str, Enum):
    """Lifecycle status of a document."""

    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    DELIVERED = "delivered"
    RECEIVED = "received"
    PAID = "paid"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Paid and cancelled documents are frozen."""
        return self in (DocumentStatus.PAID, DocumentStatus.CANCELLED)


ALL_DOCUMENT_TYPES: frozenset[DocumentType] = frozenset(DocumentType)
