"""
Module: billing_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure tax
    calculation engines. This is the import surface for callers (document
    forms, persistence, PDF rendering).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel (and sibling engine modules).

Invariants enforced:
    - Decimal-only arithmetic: all monetary amounts use ``Decimal``; floats
      are never produced.
    - Determinism: identical lines, document type and configuration always
      produce identical totals.
    - No hidden state: every computation receives its configuration
      snapshot explicitly and keeps nothing between calls.

Failure modes:
    - Typed ``billing_kernel.exceptions`` errors on invalid line input,
      locked documents, unsupported conversions and bad credit note sources.
    - Configuration gaps never raise; they come back as ``TaxWarning``.

Audit relevance:
    Entry points are traced via ``@traced_engine`` (see
    ``billing_engines.tracer``), emitting BILLING_ENGINE_TRACE log records
    with engine name, version, input fingerprint and duration.

Usage:
    from billing_engines import compute_totals, to_credit_note
    from billing_engines.line_tax import resolve_line
"""

from billing_kernel.logging_config import get_logger

logger = get_logger("engines")

from billing_engines.credit_note import negate_lines, to_credit_note
from billing_engines.document_lines import (
    add_line,
    build_line,
    convert_document,
    create_document,
    remove_line,
    update_line,
    validate_line_input,
)
from billing_engines.document_tax import aggregate, summarize_product_taxes
from billing_engines.line_tax import (
    LineTaxResult,
    ResolvedLines,
    apply_cascade,
    default_rules,
    order_rules,
    resolve_line,
    resolve_lines,
    rules_for_product,
)
from billing_engines.monetary import apply_percentage, round_amount
from billing_engines.totals import DocumentComputation, compute_totals, recompute_document
from billing_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "DocumentComputation",
    "LineTaxResult",
    "ResolvedLines",
    "add_line",
    "aggregate",
    "apply_cascade",
    "apply_percentage",
    "build_line",
    "compute_input_fingerprint",
    "compute_totals",
    "convert_document",
    "create_document",
    "default_rules",
    "negate_lines",
    "order_rules",
    "recompute_document",
    "remove_line",
    "resolve_line",
    "resolve_lines",
    "round_amount",
    "rules_for_product",
    "summarize_product_taxes",
    "to_credit_note",
    "traced_engine",
    "update_line",
    "validate_line_input",
]
