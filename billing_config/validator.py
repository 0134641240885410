"""
Configuration Validator (``billing_config.validator``).

Responsibility
--------------
Checks a parsed ``TaxConfiguration`` for structural problems before it is
handed to the engines.

Architecture position
---------------------
**Config layer** -- load-time validation. Called after
``billing_config.loader`` has produced a snapshot. Has no dependency on
the engines.

Invariants enforced
-------------------
* Rule id uniqueness and group id uniqueness -- duplicates are errors,
  because lookups would silently ignore the later definition.
* Group members should reference existing, active, product-scoped rules.
* Percentage rates above 100 are suspicious but legal.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``)  -> the
  configuration MUST NOT be used to compute documents.
* Validation warnings (``ConfigValidationResult.warnings``)  -> the
  configuration is usable; the engines will skip the offending references
  and report them as ``TaxWarning`` on every affected document.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal

from billing_kernel.domain.tax_rules import TaxConfiguration, TaxKind, TaxScope

_MAX_SENSIBLE_RATE = Decimal("100")


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    * Warnings do not block use but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: TaxConfiguration) -> ConfigValidationResult:
    """
    Validate a tax configuration snapshot.

    Postconditions:
        - Returns a ``ConfigValidationResult`` with errors and warnings.
    """
    result = ConfigValidationResult()

    _validate_rule_uniqueness(config, result)
    _validate_group_uniqueness(config, result)
    _validate_rates(config, result)
    _validate_group_members(config, result)

    return result


def _validate_rule_uniqueness(config: TaxConfiguration, result: ConfigValidationResult) -> None:
    counts = Counter(rule.rule_id for rule in config.rules)
    for rule_id, count in counts.items():
        if count > 1:
            result.add_error(f"Duplicate tax rule: '{rule_id}' appears {count} times")


def _validate_group_uniqueness(config: TaxConfiguration, result: ConfigValidationResult) -> None:
    counts = Counter(group.group_id for group in config.groups)
    for group_id, count in counts.items():
        if count > 1:
            result.add_error(f"Duplicate tax group: '{group_id}' appears {count} times")


def _validate_rates(config: TaxConfiguration, result: ConfigValidationResult) -> None:
    for rule in config.rules:
        if rule.kind == TaxKind.PERCENTAGE and rule.rate > _MAX_SENSIBLE_RATE:
            result.add_warning(
                f"Tax rule '{rule.rule_id}' has a rate of {rule.rate}%, above 100%"
            )
        if rule.scope == TaxScope.DOCUMENT and not rule.applicable_document_types:
            result.add_warning(
                f"Document-level tax rule '{rule.rule_id}' applies to no document type"
            )


def _validate_group_members(config: TaxConfiguration, result: ConfigValidationResult) -> None:
    """Check that group members point at usable product-level rules."""
    for group in config.groups:
        if not group.members:
            result.add_warning(f"Tax group '{group.group_id}' has no members")

        seen: set[str] = set()
        for member in group.members:
            if member.rule_id in seen:
                result.add_warning(
                    f"Tax group '{group.group_id}' lists rule '{member.rule_id}' more than once"
                )
            seen.add(member.rule_id)

            rule = config.rule(member.rule_id)
            if rule is None:
                result.add_warning(
                    f"Tax group '{group.group_id}' references unknown rule '{member.rule_id}'"
                )
                continue
            if not rule.active:
                result.add_warning(
                    f"Tax group '{group.group_id}' references inactive rule '{member.rule_id}'"
                )
            if rule.scope == TaxScope.DOCUMENT:
                result.add_warning(
                    f"Tax group '{group.group_id}' references document-level rule "
                    f"'{member.rule_id}'; it is skipped on lines and charged on the "
                    "document subtotal only"
                )
