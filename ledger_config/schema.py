"""
Configuration schema (``ledger_config.schema``).

Frozen dataclasses produced by ``ledger_config.loader``.  The kernel part
of the configuration is the kernel's own ``KernelSettings``; this package
only adds what the outer services read.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from ledger_kernel.domain.settings import KernelSettings


@dataclass(frozen=True)
class SeverityThresholds:
    """Variance amounts above which a reconciliation variance is critical."""

    trial_balance_critical_above: Decimal = Decimal("100")
    inventory_critical_above: Decimal = Decimal("1000")
    subledger_critical_above: Decimal = Decimal("1000")


@dataclass(frozen=True)
class LedgerConfig:
    """
    The complete runtime configuration.

    Guarantees:
        - ``checksum`` identifies the parsed source document.
    """

    config_id: str
    version: int
    kernel: KernelSettings = field(default_factory=KernelSettings)
    severity: SeverityThresholds = field(default_factory=SeverityThresholds)
    checksum: str = ""
