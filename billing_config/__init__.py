"""
billing_config -- YAML tax configuration for the billing engines.

Responsibility:
    Turns a YAML file (or an already-parsed mapping) into a validated,
    read-only ``TaxConfiguration`` snapshot. The engines never read files;
    callers load a snapshot here and pass it to every engine call, reloading
    and recomputing whenever the configuration changes.

Architecture position:
    Configuration -- sits above ``billing_kernel``. The kernel and the
    engines MUST NEVER import from ``billing_config``.

Failure modes:
    - ``FileNotFoundError`` / ``yaml.YAMLError`` from the loader.
    - ``ConfigurationInvalidError`` when validation reports errors.

Audit relevance:
    Every successful ``get_configuration()`` call emits a
    ``BILLING_CONFIG_TRACE`` log entry with the file checksum and the
    configuration fingerprint stamped on computed totals.
"""

from __future__ import annotations

from pathlib import Path

from billing_config.loader import (
    compute_checksum,
    load_configuration,
    load_yaml_file,
    parse_configuration,
)
from billing_config.validator import ConfigValidationResult, validate_configuration
from billing_kernel.domain.tax_rules import TaxConfiguration
from billing_kernel.exceptions import BillingKernelError
from billing_kernel.logging_config import get_logger

_logger = get_logger("config")


class ConfigurationInvalidError(BillingKernelError):
    """A tax configuration failed validation."""

    code: str = "CONFIGURATION_INVALID"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            f"Tax configuration has {len(self.errors)} error(s): " + "; ".join(self.errors)
        )


def get_configuration(path: Path | str) -> TaxConfiguration:
    """
    Load, validate and return the tax configuration stored at ``path``.

    Warnings are logged; errors raise ``ConfigurationInvalidError``.
    """
    path = Path(path)
    data = load_yaml_file(path)
    config = parse_configuration(data)

    result = validate_configuration(config)
    for warning in result.warnings:
        _logger.warning("tax_configuration_warning", extra={"detail": warning})
    if not result.is_valid:
        raise ConfigurationInvalidError(result.errors)

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "path": str(path),
            "checksum": compute_checksum(data),
            "fingerprint": config.fingerprint,
            "currency": config.currency,
            "rule_count": len(config.rules),
            "group_count": len(config.groups),
            "warning_count": len(result.warnings),
        },
    )
    return config


__all__ = [
    "ConfigValidationResult",
    "ConfigurationInvalidError",
    "compute_checksum",
    "get_configuration",
    "load_configuration",
    "load_yaml_file",
    "parse_configuration",
    "validate_configuration",
]
