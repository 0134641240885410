"""
Pytest fixtures for the billing tax engine test suite.

Provides:
- Structured logging configured for every test session
- A ``captured_logs`` fixture returning parsed JSON log records
- Common tax configurations, products and line builders
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from pathlib import Path

import pytest

from billing_kernel.domain.document_types import DocumentType
from billing_kernel.domain.documents import DocumentLine, Product
from billing_kernel.domain.tax_rules import (
    TaxBase,
    TaxConfiguration,
    TaxGroup,
    TaxGroupMember,
    TaxRule,
    TaxScope,
)
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

SAMPLE_CONFIG_PATH = (
    Path(__file__).resolve().parent.parent / "billing_config" / "sets" / "tn_default.yaml"
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            compute_totals(...)
            logs = captured_logs()
            assert any(r["message"] == "tax_aggregation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Tax configuration fixtures
# =============================================================================


@pytest.fixture
def fodec():
    return TaxRule.percentage("fodec", "FODEC", "1", order=1)


@pytest.fixture
def vat_19_running():
    return TaxRule.percentage("vat-19", "VAT", "19", base=TaxBase.RUNNING_TOTAL, order=2)


@pytest.fixture
def stamp():
    return TaxRule.fixed(
        "stamp",
        "Stamp duty",
        "1.000",
        order=10,
        scope=TaxScope.DOCUMENT,
        applicable_document_types={DocumentType.INVOICE},
    )


@pytest.fixture
def tax_config(fodec, vat_19_running, stamp):
    """FODEC then VAT on the running base, a plain 19% group, and a stamp duty."""
    return TaxConfiguration.of(
        rules=[fodec, vat_19_running, stamp],
        groups=[
            TaxGroup(
                group_id="fodec-vat",
                name="FODEC + VAT",
                members=(TaxGroupMember("fodec"), TaxGroupMember("vat-19")),
            ),
            TaxGroup(
                group_id="vat-19",
                name="VAT 19%",
                members=(TaxGroupMember("vat-19", base=TaxBase.RAW_SUBTOTAL),),
            ),
        ],
    )


@pytest.fixture
def industrial_product():
    return Product("P-IND", "Steel beam", unit_price="100.000", tax_group_id="fodec-vat")


@pytest.fixture
def standard_product():
    return Product("P-STD", "Office chair", unit_price="1000.000", tax_group_id="vat-19")


@pytest.fixture
def untaxed_product():
    return Product("P-ZERO", "Export service", unit_price="50.000")


@pytest.fixture
def make_line():
    """Factory for DocumentLine values with sensible defaults."""
    counter = iter(range(1, 10_000))

    def _make(product, quantity="1", unit_price=None, discount_percent="0", line_id=None):
        return DocumentLine(
            line_id=line_id or f"L{next(counter)}",
            product=product,
            quantity=Decimal(str(quantity)),
            unit_price=product.unit_price if unit_price is None else Decimal(str(unit_price)),
            discount_percent=Decimal(str(discount_percent)),
        )

    return _make


@pytest.fixture
def sample_config_path():
    return SAMPLE_CONFIG_PATH
