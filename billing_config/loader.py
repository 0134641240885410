"""
Configuration Loader (``billing_config.loader``).

Responsibility
--------------
Loads a YAML tax configuration file and parses it into the frozen
``billing_kernel.domain.tax_rules`` dataclasses, producing one read-only
``TaxConfiguration`` snapshot for the engines.

Architecture position
---------------------
**Config layer** -- infrastructure tooling. Depends on the kernel domain
only; the engines never import it and receive the parsed snapshot as an
explicit argument.

File format
-----------
::

    currency: TND
    default_rate_name: TVA
    rules:
      - id: fodec
        name: FODEC
        kind: percentage
        rate: 1
        order: 1
      - id: vat-19
        name: TVA
        kind: percentage
        rate: 19
        base: running_total
        order: 2
      - id: stamp
        name: Timbre fiscal
        kind: fixed
        amount: 1.000
        scope: document
        applicable_document_types: [invoice]
    groups:
      - id: fodec-vat
        name: FODEC + TVA 19%
        members:
          - rule_id: fodec
          - rule_id: vat-19

Values written by earlier versions of the application are accepted as
aliases: bases ``HT`` / ``totalHT`` and ``HT_plus_taxes_precedentes`` /
``totalHTWithPreviousTaxes``, document kinds ``factures``, ``devis``,
``bonsLivraison`` and ``commandesFournisseur``, and the field names
``nom``, ``valeur``, ``ordre``, ``actif``, ``calculationBase`` and
``applicableDocuments``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown enum values or unparsable numbers  -> ``ValueError``.
* Inconsistent rule definitions  -> ``InvalidTaxRuleError``.

Audit relevance
---------------
``compute_checksum`` identifies the raw file contents; the parsed
``TaxConfiguration.fingerprint`` identifies the semantic configuration and
is stamped on every computed ``DocumentTotals``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from billing_kernel.domain.currency import CurrencyRegistry
from billing_kernel.domain.document_types import ALL_DOCUMENT_TYPES, DocumentType
from billing_kernel.domain.tax_rules import (
    TaxBase,
    TaxConfiguration,
    TaxGroup,
    TaxGroupMember,
    TaxKind,
    TaxRule,
    TaxScope,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("config.loader")


BASE_ALIASES: dict[str, TaxBase] = {
    "HT": TaxBase.RAW_SUBTOTAL,
    "totalHT": TaxBase.RAW_SUBTOTAL,
    "HT_plus_taxes_precedentes": TaxBase.RUNNING_TOTAL,
    "totalHTWithPreviousTaxes": TaxBase.RUNNING_TOTAL,
}

DOCUMENT_TYPE_ALIASES: dict[str, DocumentType] = {
    "factures": DocumentType.INVOICE,
    "devis": DocumentType.QUOTE,
    "bonsLivraison": DocumentType.DELIVERY_NOTE,
    "commandesFournisseur": DocumentType.PURCHASE_ORDER,
}

# canonical key -> accepted legacy keys
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "rule_id": ("id",),
    "group_id": ("id",),
    "name": ("nom",),
    "order": ("ordre",),
    "active": ("actif",),
    "base": ("calculationBase",),
    "applicable_document_types": ("applicableDocuments",),
    "kind": ("type",),
}


def _get(data: dict[str, Any], key: str, default: Any = None) -> Any:
    if key in data:
        return data[key]
    for alias in _FIELD_ALIASES.get(key, ()):
        if alias in data:
            return data[alias]
    return default


def _require(data: dict[str, Any], key: str) -> Any:
    value = _get(data, key)
    if value is None:
        raise KeyError(key)
    return value


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal:
    """Parse a YAML number or numeric string into a Decimal."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Cannot parse decimal from {value!r}")
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Cannot parse decimal from {value!r}") from e


def parse_base(value: Any) -> TaxBase:
    if isinstance(value, TaxBase):
        return value
    if value in BASE_ALIASES:
        return BASE_ALIASES[value]
    return TaxBase(value)


def parse_document_type(value: Any) -> DocumentType:
    if isinstance(value, DocumentType):
        return value
    if value in DOCUMENT_TYPE_ALIASES:
        return DOCUMENT_TYPE_ALIASES[value]
    return DocumentType(value)


def parse_rule(data: dict[str, Any]) -> TaxRule:
    """
    Parse a ``TaxRule`` from a dict.

    ``rate`` and ``amount`` may both be given as ``valeur`` in legacy files;
    the rule kind decides which one it is.
    """
    kind = TaxKind(_require(data, "kind"))
    rate = data.get("rate")
    amount = data.get("amount")
    legacy_value = data.get("valeur")
    if legacy_value is not None:
        if kind == TaxKind.PERCENTAGE and rate is None:
            rate = legacy_value
        elif kind == TaxKind.FIXED and amount is None:
            amount = legacy_value

    raw_types = _get(data, "applicable_document_types")
    applicable = (
        ALL_DOCUMENT_TYPES
        if raw_types is None
        else frozenset(parse_document_type(t) for t in raw_types)
    )

    return TaxRule(
        rule_id=str(_require(data, "rule_id")),
        name=str(_require(data, "name")),
        kind=kind,
        rate=None if rate is None else parse_decimal(rate),
        amount=None if amount is None else parse_decimal(amount),
        base=parse_base(_get(data, "base", TaxBase.RAW_SUBTOTAL)),
        order=int(_get(data, "order", 0)),
        applicable_document_types=applicable,
        active=bool(_get(data, "active", True)),
        scope=TaxScope(data.get("scope", TaxScope.PRODUCT)),
    )


def parse_member(data: Any) -> TaxGroupMember:
    """Parse a group member; a bare string is a rule id without overrides."""
    if isinstance(data, str):
        return TaxGroupMember(rule_id=data)
    rule_id = data.get("rule_id", data.get("rule"))
    if rule_id is None:
        raise KeyError("rule_id")
    order = _get(data, "order")
    base = _get(data, "base")
    return TaxGroupMember(
        rule_id=str(rule_id),
        order=None if order is None else int(order),
        base=None if base is None else parse_base(base),
    )


def parse_group(data: dict[str, Any]) -> TaxGroup:
    """Parse a ``TaxGroup`` from a dict."""
    return TaxGroup(
        group_id=str(_require(data, "group_id")),
        name=str(_get(data, "name", "")),
        members=tuple(parse_member(m) for m in data.get("members", [])),
        active=bool(_get(data, "active", True)),
    )


def parse_configuration(data: dict[str, Any]) -> TaxConfiguration:
    """
    Parse a whole configuration mapping.

    Postconditions:
        - Returns a ``TaxConfiguration`` with rules and groups in file order.
    """
    currency = data.get("currency", CurrencyRegistry.DEFAULT_CURRENCY)
    return TaxConfiguration(
        rules=tuple(parse_rule(r) for r in data.get("rules", [])),
        groups=tuple(parse_group(g) for g in data.get("groups", [])),
        currency=str(currency),
        default_rate_name=str(data.get("default_rate_name", "VAT")),
    )


def load_configuration(path: Path | str) -> TaxConfiguration:
    """Load and parse a YAML tax configuration file."""
    path = Path(path)
    data = load_yaml_file(path)
    config = parse_configuration(data)
    logger.info("tax_configuration_loaded", extra={
        "path": str(path),
        "checksum": compute_checksum(data),
        "fingerprint": config.fingerprint,
        "rule_count": len(config.rules),
        "group_count": len(config.groups),
    })
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
