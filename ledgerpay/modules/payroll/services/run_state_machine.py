"""
Payroll run lifecycle.

Every legal status edge is listed in ``RUN_TRANSITIONS``. Status changes
are applied as a single guarded UPDATE (``WHERE status IN expected``), so
two callers racing for the same transition cannot both win: the loser
sees zero affected rows. The ``calculating`` and ``posting`` statuses
double as the run-scoped lock for the long-running actions.
"""

import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from ..enums.payroll_enums import PayrollRunStatus
from ..exceptions import ConcurrencyError, InvalidTransitionError, RunStateConflictError
from ..models.payroll_models import PayrollRun

logger = logging.getLogger(__name__)

S = PayrollRunStatus


@dataclass(frozen=True)
class RunTransition:
    """
    One caller-visible action.

    ``in_progress`` is set for actions that hold the run while they work;
    those move allowed_from -> in_progress -> target, and revert to the
    prior status on failure.
    """

    action: str
    allowed_from: Tuple[PayrollRunStatus, ...]
    target: PayrollRunStatus
    in_progress: Optional[PayrollRunStatus] = None


RUN_TRANSITIONS: Dict[str, RunTransition] = {
    "calculate": RunTransition(
        "calculate", (S.DRAFT, S.CALCULATED), S.CALCULATED, in_progress=S.CALCULATING
    ),
    "review": RunTransition("review", (S.CALCULATED,), S.REVIEWING),
    "approve": RunTransition("approve", (S.CALCULATED, S.REVIEWING), S.APPROVED),
    "post": RunTransition("post", (S.APPROVED,), S.POSTED, in_progress=S.POSTING),
    "cancel": RunTransition(
        "cancel", (S.DRAFT, S.CALCULATED, S.REVIEWING, S.APPROVED), S.CANCELLED
    ),
}

TERMINAL_STATUSES: FrozenSet[PayrollRunStatus] = frozenset({S.POSTED, S.CANCELLED})


def _build_edges() -> FrozenSet[Tuple[PayrollRunStatus, PayrollRunStatus]]:
    edges = set()
    for transition in RUN_TRANSITIONS.values():
        for source in transition.allowed_from:
            if transition.in_progress is None:
                edges.add((source, transition.target))
            else:
                edges.add((source, transition.in_progress))
                edges.add((transition.in_progress, source))
        if transition.in_progress is not None:
            edges.add((transition.in_progress, transition.target))
    return frozenset(edges)


LEGAL_EDGES = _build_edges()


def allowed_actions(status: PayrollRunStatus) -> Tuple[str, ...]:
    status = PayrollRunStatus(status)
    return tuple(
        name for name, transition in RUN_TRANSITIONS.items()
        if status in transition.allowed_from
    )


class RunStateMachine:
    """Applies RUN_TRANSITIONS to persisted runs."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def transition_for(action: str) -> RunTransition:
        try:
            return RUN_TRANSITIONS[action]
        except KeyError:
            raise ValueError(f"Unknown payroll run action: {action}")

    def require(self, run: PayrollRun, action: str) -> RunTransition:
        """Raise RunStateConflictError unless ``action`` is legal from the run's status."""
        transition = self.transition_for(action)
        current = PayrollRunStatus(run.status)
        if current not in transition.allowed_from:
            logger.warning(
                f"Rejected {action} on payroll run {run.id}: status is {current.value}"
            )
            raise RunStateConflictError(action, current, transition.allowed_from)
        return transition

    def compare_and_swap(
        self,
        run: PayrollRun,
        expected: Iterable[PayrollRunStatus],
        target: PayrollRunStatus,
        **values,
    ) -> bool:
        """
        Set ``status = target`` (plus ``values``) only if the stored status
        is still one of ``expected``.

        Returns:
            True when exactly one row was updated
        """
        expected = tuple(PayrollRunStatus(s) for s in expected)
        for source in expected:
            if (source, target) not in LEGAL_EDGES:
                raise InvalidTransitionError(source.value, target.value)

        updated = (
            self.db.query(PayrollRun)
            .filter(
                PayrollRun.id == run.id,
                PayrollRun.tenant_id == run.tenant_id,
                PayrollRun.status.in_(expected),
            )
            .update({"status": target, **values}, synchronize_session=False)
        )
        self.db.expire(run)
        return updated == 1

    def current_status(self, run: PayrollRun) -> PayrollRunStatus:
        self.db.expire(run)
        return PayrollRunStatus(run.status)

    def apply(self, run: PayrollRun, action: str, **values) -> PayrollRunStatus:
        """
        Single-step action (review, approve, cancel). Does not commit.

        Returns:
            The status the run left
        """
        transition = self.require(run, action)
        prior = PayrollRunStatus(run.status)
        if not self.compare_and_swap(run, (prior,), transition.target, **values):
            self.db.rollback()
            current = self.current_status(run)
            raise RunStateConflictError(action, current, transition.allowed_from)
        logger.info(f"Payroll run {run.id}: {prior.value} -> {transition.target.value}")
        return prior

    def begin(self, run: PayrollRun, action: str) -> PayrollRunStatus:
        """
        Claim the run for a long-running action and commit the claim.

        Returns:
            The prior status, needed to revert on failure
        """
        transition = self.require(run, action)
        prior = PayrollRunStatus(run.status)
        if not self.compare_and_swap(run, (prior,), transition.in_progress):
            self.db.rollback()
            current = self.current_status(run)
            logger.warning(
                f"Lost race to {action} payroll run {run.id}; status is now {current.value}"
            )
            raise RunStateConflictError(action, current, transition.allowed_from)
        self.db.commit()
        logger.info(f"Payroll run {run.id}: {prior.value} -> {transition.in_progress.value}")
        return prior

    def complete(self, run: PayrollRun, action: str, **values) -> None:
        """Move a claimed run to its target status. Does not commit."""
        transition = self.transition_for(action)
        if not self.compare_and_swap(run, (transition.in_progress,), transition.target, **values):
            raise ConcurrencyError("Payroll run", run.id)
        logger.info(
            f"Payroll run {run.id}: {transition.in_progress.value} -> {transition.target.value}"
        )

    def revert(self, run: PayrollRun, action: str, prior: PayrollRunStatus) -> None:
        """Return a claimed run to ``prior`` after a failure, and commit."""
        transition = self.transition_for(action)
        if self.compare_and_swap(run, (transition.in_progress,), prior):
            self.db.commit()
            logger.info(
                f"Payroll run {run.id}: reverted {transition.in_progress.value} -> {prior.value}"
            )
        else:
            self.db.rollback()
            logger.error(f"Could not revert payroll run {run.id} to {prior.value}")
