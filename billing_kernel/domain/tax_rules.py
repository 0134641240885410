"""
Tax Rule Model -- the shapes of configured taxes.

Responsibility:
    Defines a single ``TaxRule`` (percentage or fixed, its calculation base,
    application order, document-type scope, active flag), the reusable
    ``TaxGroup`` cascade attachable to a product, and ``TaxConfiguration``,
    the read-only snapshot of all rules and groups handed to the engines.

Architecture position:
    Kernel > Domain -- pure, zero I/O. Loaded from YAML by
    ``billing_config.loader``; consumed by ``billing_engines``.

Invariants enforced:
    - ``rate`` is present iff ``kind`` is PERCENTAGE; ``amount`` iff FIXED.
    - Rates and fixed amounts are non-negative Decimals.
    - The engines never mutate rules, groups or configurations.

Failure modes:
    - InvalidTaxRuleError / InvalidTaxGroupError on inconsistent construction.
    - Lookups of unknown ids return None; deciding what a gap means is the
      resolver's job (it warns and carries on).
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from functools import cached_property
from typing import Any, Iterable

from billing_kernel.domain.currency import CurrencyRegistry
from billing_kernel.domain.document_types import ALL_DOCUMENT_TYPES, DocumentType
from billing_kernel.exceptions import InvalidTaxGroupError, InvalidTaxRuleError


class TaxKind(str, Enum):
    """How the tax amount is obtained."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"


class TaxBase(str, Enum):
    """What a percentage tax is calculated on."""

    RAW_SUBTOTAL = "raw_subtotal"  # pre-tax amount
    RUNNING_TOTAL = "running_total"  # pre-tax amount plus previously applied taxes


class TaxScope(str, Enum):
    """Where a rule is attached."""

    PRODUCT = "product"  # through a tax group or a product default rate
    DOCUMENT = "document"  # applied once to the document subtotal


def _to_decimal(rule_id: str, label: str, value: Any) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise InvalidTaxRuleError(rule_id, f"{label} is not a number: {value!r}") from e
    if not result.is_finite():
        raise InvalidTaxRuleError(rule_id, f"{label} must be finite")
    if result < 0:
        raise InvalidTaxRuleError(rule_id, f"{label} cannot be negative")
    return result


@dataclass(frozen=True)
class TaxRule:
    """
    A single configured tax.

    ``order`` ties are broken by the position of the rule in the sequence
    being sorted (stable sort), never by id or name.
    """

    rule_id: str
    name: str
    kind: TaxKind
    rate: Decimal | None = None  # percentage, e.g. 19 for 19%
    amount: Decimal | None = None  # flat amount in document currency
    base: TaxBase = TaxBase.RAW_SUBTOTAL
    order: int = 0
    applicable_document_types: frozenset[DocumentType] = ALL_DOCUMENT_TYPES
    active: bool = True
    scope: TaxScope = TaxScope.PRODUCT

    def __post_init__(self) -> None:
        if not self.rule_id:
            raise InvalidTaxRuleError(str(self.rule_id), "rule id is required")
        if not self.name or not self.name.strip():
            raise InvalidTaxRuleError(self.rule_id, "name is required")

        object.__setattr__(self, "kind", TaxKind(self.kind))
        object.__setattr__(self, "base", TaxBase(self.base))
        object.__setattr__(self, "scope", TaxScope(self.scope))
        object.__setattr__(
            self,
            "applicable_document_types",
            frozenset(DocumentType(t) for t in self.applicable_document_types),
        )

        if self.kind == TaxKind.PERCENTAGE:
            if self.rate is None:
                raise InvalidTaxRuleError(self.rule_id, "percentage rule needs a rate")
            if self.amount is not None:
                raise InvalidTaxRuleError(self.rule_id, "percentage rule cannot carry an amount")
            object.__setattr__(self, "rate", _to_decimal(self.rule_id, "rate", self.rate))
        else:
            if self.amount is None:
                raise InvalidTaxRuleError(self.rule_id, "fixed rule needs an amount")
            if self.rate is not None:
                raise InvalidTaxRuleError(self.rule_id, "fixed rule cannot carry a rate")
            object.__setattr__(self, "amount", _to_decimal(self.rule_id, "amount", self.amount))

    @classmethod
    def percentage(
        cls,
        rule_id: str,
        name: str,
        rate: Decimal | str | int,
        **kwargs: Any,
    ) -> TaxRule:
        """Factory for a percentage rule."""
        return cls(rule_id=rule_id, name=name, kind=TaxKind.PERCENTAGE, rate=rate, **kwargs)

    @classmethod
    def fixed(
        cls,
        rule_id: str,
        name: str,
        amount: Decimal | str | int,
        **kwargs: Any,
    ) -> TaxRule:
        """Factory for a fixed-amount rule."""
        return cls(rule_id=rule_id, name=name, kind=TaxKind.FIXED, amount=amount, **kwargs)

    @property
    def is_fixed(self) -> bool:
        return self.kind == TaxKind.FIXED

    def applies_to(self, document_type: DocumentType) -> bool:
        return self.active and document_type in self.applicable_document_types

    def with_overrides(
        self,
        order: int | None = None,
        base: TaxBase | None = None,
    ) -> TaxRule:
        """Copy of this rule as it behaves inside a group."""
        if order is None and base is None:
            return self
        return replace(
            self,
            order=self.order if order is None else order,
            base=self.base if base is None else base,
        )

    def canonical(self) -> dict[str, Any]:
        """Stable, JSON-ready representation used for fingerprinting."""
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "kind": self.kind.value,
            "rate": None if self.rate is None else str(self.rate),
            "amount": None if self.amount is None else str(self.amount),
            "base": self.base.value,
            "order": self.order,
            "applicable_document_types": sorted(t.value for t in self.applicable_document_types),
            "active": self.active,
            "scope": self.scope.value,
        }


@dataclass(frozen=True)
class TaxGroupMember:
    """
    One rule inside a group. ``None`` overrides fall back to the rule's own
    ``order`` / ``base``.
    """

    rule_id: str
    order: int | None = None
    base: TaxBase | None = None

    def __post_init__(self) -> None:
        if self.base is not None:
            object.__setattr__(self, "base", TaxBase(self.base))


@dataclass(frozen=True)
class TaxGroup:
    """A named, ordered, reusable cascade of rules attachable to a product."""

    group_id: str
    name: str
    members: tuple[TaxGroupMember, ...] = ()
    active: bool = True

    def __post_init__(self) -> None:
        if not self.group_id:
            raise InvalidTaxGroupError(str(self.group_id), "group id is required")
        object.__setattr__(self, "members", tuple(self.members))

    def canonical(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "name": self.name,
            "active": self.active,
            "members": [
                {
                    "rule_id": m.rule_id,
                    "order": m.order,
                    "base": None if m.base is None else m.base.value,
                }
                for m in self.members
            ],
        }


@dataclass(frozen=True)
class TaxConfiguration:
    """
    Read-only snapshot of the tax setup, passed explicitly to every engine call.

    When ids are duplicated the first definition wins for lookups; the
    configuration validator reports duplicates as errors.
    """

    rules: tuple[TaxRule, ...] = ()
    groups: tuple[TaxGroup, ...] = ()
    currency: str = CurrencyRegistry.DEFAULT_CURRENCY
    default_rate_name: str = "VAT"
    _rules_by_id: dict[str, TaxRule] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )
    _groups_by_id: dict[str, TaxGroup] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "groups", tuple(self.groups))
        object.__setattr__(self, "currency", CurrencyRegistry.validate(self.currency))
        for rule in self.rules:
            self._rules_by_id.setdefault(rule.rule_id, rule)
        for group in self.groups:
            self._groups_by_id.setdefault(group.group_id, group)

    @classmethod
    def of(
        cls,
        rules: Iterable[TaxRule] = (),
        groups: Iterable[TaxGroup] = (),
        **kwargs: Any,
    ) -> TaxConfiguration:
        return cls(rules=tuple(rules), groups=tuple(groups), **kwargs)

    def rule(self, rule_id: str) -> TaxRule | None:
        return self._rules_by_id.get(rule_id)

    def group(self, group_id: str) -> TaxGroup | None:
        return self._groups_by_id.get(group_id)

    @property
    def document_level_rules(self) -> tuple[TaxRule, ...]:
        """Document-scoped rules in configuration order (active or not)."""
        return tuple(r for r in self.rules if r.scope == TaxScope.DOCUMENT)

    @cached_property
    def fingerprint(self) -> str:
        """
        SHA-256 of the canonical serialization.

        Identical configurations always produce identical fingerprints, so a
        stored total can be traced back to the exact setup that produced it.
        """
        canonical = {
            "currency": self.currency,
            "default_rate_name": self.default_rate_name,
            "rules": [r.canonical() for r in self.rules],
            "groups": [g.canonical() for g in self.groups],
        }
        payload = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()
