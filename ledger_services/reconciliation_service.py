"""
ledger_services.reconciliation_service -- trial balance, inventory-GL and
AR/AP reconciliation with persisted variances.

Responsibility:
    Re-derives balances independently of the posting path and records any
    disagreement as a Variance for human review.  Three checks run on every
    reconciliation:

    * Trial balance: total debits vs total credits across all journal
      lines; when off, every individual unbalanced journal is surfaced.
    * Inventory vs GL: layer value net of open negative-inventory
      shortfalls vs the balance of accounts flagged ``inventory``, with a
      per-warehouse breakdown.
    * AR / AP: open customer / vendor balances vs the receivable / payable
      control accounts.

Architecture position:
    Services -- stateful orchestration over the kernel.  Reads through the
    narrow ``ReconciliationReader`` interface so a test double can stand in
    for the database.

Invariants enforced:
    - Side-effect-free apart from its own run and variance rows.  A
      variance is reported, never auto-corrected.
    - Each check runs in its own savepoint; a failing check is recorded
      with status ``error`` and a critical variance, and the other checks
      still run.
    - One tolerance (the configured balance epsilon) for every comparison.
    - Flush-only: the caller commits.

Failure modes:
    - VarianceNotFoundError / VarianceAlreadyResolvedError on resolve.

Audit relevance:
    ``reconciliation_started`` / ``reconciliation_completed`` bracket every
    run; ``critical_variance_alert`` is raised for scheduled runs that find
    critical variances; ``variance_resolved`` records who resolved what.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig, SeverityThresholds
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.settings import KernelSettings
from ledger_kernel.exceptions import (
    VarianceAlreadyResolvedError,
    VarianceNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountSubtype
from ledger_kernel.models.reconciliation import (
    SEVERITY_RANK,
    CheckStatus,
    ReconciliationRun,
    ReconciliationTrigger,
    RunStatus,
    Variance,
    VarianceSeverity,
    VarianceType,
)
from ledger_kernel.selectors.reconciliation_selector import (
    ReconciliationReader,
    SqlReconciliationReader,
)
from ledger_kernel.utils.hashing import to_json_safe

logger = get_logger("services.reconciliation")

ZERO = Decimal("0")

# Actor recorded on runs started by the scheduler
SYSTEM_ACTOR_ID = UUID(int=0)


@dataclass
class VarianceSpec:
    variance_type: VarianceType
    amount: Decimal
    severity: VarianceSeverity
    description: str
    expected_amount: Decimal | None = None
    actual_amount: Decimal | None = None
    reference_id: str | None = None
    details: dict[str, Any] | None = None


@dataclass
class CheckOutcome:
    """Result of one reconciliation check before it is persisted."""

    status: CheckStatus
    figures: dict[str, Any] = field(default_factory=dict)
    variances: list[VarianceSpec] = field(default_factory=list)


class ReconciliationService:
    """
    Runs reconciliations and manages their variances.

    Contract:
        ``run_reconciliation`` returns the flushed ReconciliationRun with its
        variances loaded.

    Non-goals:
        - Does NOT post correcting journals.
        - Does NOT call ``session.commit()``.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
        reader: ReconciliationReader | None = None,
    ):
        self._session = session
        self._kernel: KernelSettings = config.kernel if config else KernelSettings()
        self._severity: SeverityThresholds = (
            config.severity if config else SeverityThresholds()
        )
        self._clock = clock or SystemClock()
        self._reader = reader or SqlReconciliationReader(session)

    @property
    def _epsilon(self) -> Decimal:
        return self._kernel.balance_epsilon

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def check_trial_balance(self, organization_id: UUID) -> CheckOutcome:
        debits, credits = self._reader.total_debits_credits(organization_id)
        difference = abs(debits - credits)
        figures = {
            "total_debits": debits,
            "total_credits": credits,
            "difference": difference,
        }
        if difference < self._epsilon:
            return CheckOutcome(CheckStatus.BALANCED, figures)

        severity = (
            VarianceSeverity.CRITICAL
            if difference > self._severity.trial_balance_critical_above
            else VarianceSeverity.HIGH
        )
        variances = [
            VarianceSpec(
                variance_type=VarianceType.TRIAL_BALANCE,
                amount=difference,
                severity=severity,
                description=(
                    f"Trial balance out of balance by {difference}: "
                    f"debits {debits}, credits {credits}"
                ),
                expected_amount=debits,
                actual_amount=credits,
            )
        ]
        for journal in self._reader.unbalanced_journals(organization_id, self._epsilon):
            variances.append(
                VarianceSpec(
                    variance_type=VarianceType.TRIAL_BALANCE,
                    amount=journal.difference,
                    severity=VarianceSeverity.HIGH,
                    description=f"Journal {journal.journal_number} is unbalanced",
                    expected_amount=journal.total_debits,
                    actual_amount=journal.total_credits,
                    reference_id=str(journal.journal_id),
                    details={"journal_number": journal.journal_number},
                )
            )
        figures["unbalanced_journal_count"] = len(variances) - 1
        return CheckOutcome(CheckStatus.UNBALANCED, figures, variances)

    def check_inventory(self, organization_id: UUID) -> CheckOutcome:
        layer_value = self._reader.inventory_layer_value(organization_id)
        gl_balance = self._reader.control_account_balance(
            organization_id, AccountSubtype.INVENTORY
        )
        difference = abs(layer_value - gl_balance)
        figures = {
            "layer_value": layer_value,
            "gl_balance": gl_balance,
            "difference": difference,
        }
        if difference < self._epsilon:
            return CheckOutcome(CheckStatus.MATCHED, figures)

        severity = (
            VarianceSeverity.CRITICAL
            if difference > self._severity.inventory_critical_above
            else VarianceSeverity.HIGH
        )
        by_warehouse = self._reader.inventory_value_by_warehouse(organization_id)
        return CheckOutcome(
            CheckStatus.VARIANCE,
            figures,
            [
                VarianceSpec(
                    variance_type=VarianceType.INVENTORY,
                    amount=difference,
                    severity=severity,
                    description=(
                        f"Inventory layers ({layer_value}) differ from GL "
                        f"inventory ({gl_balance}) by {difference}"
                    ),
                    expected_amount=gl_balance,
                    actual_amount=layer_value,
                    details={"by_warehouse": by_warehouse},
                )
            ],
        )

    def _check_subledger(
        self,
        variance_type: VarianceType,
        gl_balance: Decimal,
        subledger_balance: Decimal,
        label: str,
    ) -> CheckOutcome:
        difference = abs(gl_balance - subledger_balance)
        figures = {
            "gl_balance": gl_balance,
            "subledger_balance": subledger_balance,
            "difference": difference,
        }
        if difference < self._epsilon:
            return CheckOutcome(CheckStatus.MATCHED, figures)

        severity = (
            VarianceSeverity.CRITICAL
            if difference > self._severity.subledger_critical_above
            else VarianceSeverity.MEDIUM
        )
        return CheckOutcome(
            CheckStatus.VARIANCE,
            figures,
            [
                VarianceSpec(
                    variance_type=variance_type,
                    amount=difference,
                    severity=severity,
                    description=(
                        f"{label} control account ({gl_balance}) differs from "
                        f"open {label} ({subledger_balance}) by {difference}"
                    ),
                    expected_amount=gl_balance,
                    actual_amount=subledger_balance,
                )
            ],
        )

    def check_receivables(self, organization_id: UUID) -> CheckOutcome:
        return self._check_subledger(
            VarianceType.AR,
            self._reader.control_account_balance(
                organization_id, AccountSubtype.ACCOUNTS_RECEIVABLE
            ),
            self._reader.open_receivables(organization_id),
            "AR",
        )

    def check_payables(self, organization_id: UUID) -> CheckOutcome:
        # AP is credit-normal
        return self._check_subledger(
            VarianceType.AP,
            -self._reader.control_account_balance(
                organization_id, AccountSubtype.ACCOUNTS_PAYABLE
            ),
            self._reader.open_payables(organization_id),
            "AP",
        )

    def _run_check(
        self,
        name: str,
        variance_type: VarianceType,
        check: Callable[[UUID], CheckOutcome],
        organization_id: UUID,
    ) -> CheckOutcome:
        try:
            with self._session.begin_nested():
                return check(organization_id)
        except Exception as exc:
            logger.error(
                "reconciliation_check_failed",
                extra={"check": name},
                exc_info=True,
            )
            return CheckOutcome(
                CheckStatus.ERROR,
                {"error": f"{type(exc).__name__}: {exc}"},
                [
                    VarianceSpec(
                        variance_type=variance_type,
                        amount=ZERO,
                        severity=VarianceSeverity.CRITICAL,
                        description=f"{name} check failed: {type(exc).__name__}: {exc}",
                    )
                ],
            )

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run_reconciliation(
        self,
        organization_id: UUID,
        trigger: ReconciliationTrigger = ReconciliationTrigger.MANUAL,
        user_id: UUID | None = None,
    ) -> ReconciliationRun:
        """
        Run all checks and persist the run with its variances.

        Postconditions:
            - run.status is ``error`` iff at least one check failed.
            - run.summary["overall"] is ``balanced`` (no variances),
              ``critical`` (a critical variance) or ``variances``.
        """
        trigger = ReconciliationTrigger(trigger)
        actor_id = user_id or SYSTEM_ACTOR_ID
        started_at = self._clock.now()
        logger.info(
            "reconciliation_started",
            extra={"organization_id": str(organization_id), "trigger": trigger.value},
        )

        outcomes = {
            "trial_balance": self._run_check(
                "trial_balance", VarianceType.TRIAL_BALANCE,
                self.check_trial_balance, organization_id,
            ),
            "inventory": self._run_check(
                "inventory", VarianceType.INVENTORY,
                self.check_inventory, organization_id,
            ),
            "ar": self._run_check(
                "ar", VarianceType.AR, self.check_receivables, organization_id,
            ),
            "ap": self._run_check(
                "ap", VarianceType.AP, self.check_payables, organization_id,
            ),
        }

        specs = [spec for outcome in outcomes.values() for spec in outcome.variances]
        errored = any(o.status == CheckStatus.ERROR for o in outcomes.values())
        if any(s.severity == VarianceSeverity.CRITICAL for s in specs):
            overall = "critical"
        elif specs:
            overall = "variances"
        else:
            overall = "balanced"

        summary = {
            name: {"status": outcome.status.value, **outcome.figures}
            for name, outcome in outcomes.items()
        }
        summary["overall"] = overall
        summary["variance_count"] = len(specs)

        run = ReconciliationRun(
            organization_id=organization_id,
            trigger=trigger.value,
            status=(RunStatus.ERROR if errored else RunStatus.COMPLETED).value,
            started_at=started_at,
            completed_at=self._clock.now(),
            trial_balance_status=outcomes["trial_balance"].status.value,
            inventory_status=outcomes["inventory"].status.value,
            ar_status=outcomes["ar"].status.value,
            ap_status=outcomes["ap"].status.value,
            summary=to_json_safe(summary),
            created_by_id=actor_id,
        )
        run.variances = [
            Variance(
                organization_id=organization_id,
                variance_type=spec.variance_type.value,
                amount=spec.amount,
                expected_amount=spec.expected_amount,
                actual_amount=spec.actual_amount,
                severity=spec.severity.value,
                description=spec.description,
                reference_id=spec.reference_id,
                details=to_json_safe(spec.details) if spec.details else None,
                resolved=False,
                created_by_id=actor_id,
            )
            for spec in specs
        ]
        self._session.add(run)
        self._session.flush()

        logger.info(
            "reconciliation_completed",
            extra={
                "run_id": str(run.id),
                "status": run.status,
                "overall": overall,
                "variance_count": len(specs),
            },
        )
        return run

    def run_scheduled_reconciliation(self, organization_id: UUID) -> ReconciliationRun:
        """Scheduler entry point; alerts when critical variances are found."""
        run = self.run_reconciliation(
            organization_id, ReconciliationTrigger.SCHEDULED, SYSTEM_ACTOR_ID
        )
        critical = [v for v in run.variances if v.severity == VarianceSeverity.CRITICAL]
        if critical:
            logger.warning(
                "critical_variance_alert",
                extra={
                    "run_id": str(run.id),
                    "critical_count": len(critical),
                    "variance_types": sorted({v.variance_type for v in critical}),
                },
            )
        return run

    # ------------------------------------------------------------------
    # Variances
    # ------------------------------------------------------------------

    def resolve_variance(
        self,
        organization_id: UUID,
        variance_id: UUID,
        user_id: UUID,
        notes: str,
    ) -> Variance:
        variance = self._session.execute(
            select(Variance)
            .where(
                Variance.organization_id == organization_id,
                Variance.id == variance_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if variance is None:
            raise VarianceNotFoundError(str(variance_id))
        if variance.resolved:
            raise VarianceAlreadyResolvedError(str(variance_id))

        variance.resolved = True
        variance.resolved_by_id = user_id
        variance.resolved_at = self._clock.now()
        variance.resolution_notes = notes
        variance.updated_by_id = user_id
        self._session.flush()

        logger.info(
            "variance_resolved",
            extra={
                "variance_id": str(variance_id),
                "severity": variance.severity,
                "resolved_by": str(user_id),
            },
        )
        return variance

    def get_unresolved_variances(self, organization_id: UUID) -> list[Variance]:
        """Unresolved variances, most severe first, then newest first."""
        variances = list(
            self._session.execute(
                select(Variance)
                .where(
                    Variance.organization_id == organization_id,
                    Variance.resolved.is_(False),
                )
                .order_by(Variance.created_at.desc())
            ).scalars()
        )
        # Stable sort keeps newest-first inside each severity
        variances.sort(key=lambda v: SEVERITY_RANK[VarianceSeverity(v.severity)])
        return variances

    def get_reconciliation_history(
        self, organization_id: UUID, limit: int = 20
    ) -> list[ReconciliationRun]:
        return list(
            self._session.execute(
                select(ReconciliationRun)
                .where(ReconciliationRun.organization_id == organization_id)
                .order_by(ReconciliationRun.started_at.desc())
                .limit(limit)
            ).scalars()
        )

    def get_dashboard_summary(self, organization_id: UUID) -> dict[str, Any]:
        """
        Monitoring summary.

        ``books_balanced`` is False while any unresolved critical variance
        exists, whatever the latest run reported.
        """
        rows = self._session.execute(
            select(Variance.severity, func.count(Variance.id))
            .where(
                Variance.organization_id == organization_id,
                Variance.resolved.is_(False),
            )
            .group_by(Variance.severity)
        ).all()
        counts = {severity.value: 0 for severity in VarianceSeverity}
        for severity, count in rows:
            counts[VarianceSeverity(severity).value] = count

        history = self.get_reconciliation_history(organization_id, limit=1)
        last_run = history[0] if history else None

        return {
            "unresolved_variance_count": sum(counts.values()),
            "critical_count": counts[VarianceSeverity.CRITICAL.value],
            "last_run_status": last_run.status if last_run else None,
            "last_run_at": last_run.started_at.isoformat() if last_run else None,
            "counts_by_severity": counts,
            "books_balanced": counts[VarianceSeverity.CRITICAL.value] == 0,
        }
