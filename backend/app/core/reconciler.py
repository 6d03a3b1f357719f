"""
Batch reconciliation of rally statuses.

Every active rally is evaluated against a single ``now`` captured by the
caller, and only rallies whose stored status differs from the computed one
are written. A rally that cannot be resolved or written is recorded in the
report and the batch carries on with the next one; only a failure to list
the rallies aborts the run.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from app.core.lifecycle import RallyStatus, as_utc, resolve_status
from app.services.rally_store import RallySnapshot, RallyStore, StoreError

logger = logging.getLogger(__name__)


class ReconcileOutcome(Enum):
    """Overall result of a reconciliation run that produced a report."""
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"


@dataclass
class StatusTransition:
    """A rally whose status was changed during a run."""
    rally_id: int
    rally_name: str
    old_status: str
    new_status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rally_id": self.rally_id,
            "name": self.rally_name,
            "old_status": self.old_status,
            "new_status": self.new_status,
        }


@dataclass
class TransitionFailure:
    """A rally whose status update could not be persisted."""
    rally_id: int
    rally_name: str
    error_message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rally_id": self.rally_id,
            "name": self.rally_name,
            "error": self.error_message,
        }


@dataclass
class TransitionReport:
    """
    Summary of one reconciliation run.

    ``len(transitions) + len(failures) + unchanged_count`` always equals
    ``total_evaluated``.
    """
    generated_at: datetime
    total_evaluated: int = 0
    transitions: List[StatusTransition] = field(default_factory=list)
    failures: List[TransitionFailure] = field(default_factory=list)
    unchanged_count: int = 0

    @property
    def updated(self) -> int:
        return len(self.transitions)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    @property
    def outcome(self) -> ReconcileOutcome:
        if self.failures:
            return ReconcileOutcome.PARTIAL_FAILURE
        return ReconcileOutcome.SUCCESS

    def summary(self) -> str:
        """Human-readable one-line summary for operators."""
        message = f"Updated {self.updated}/{self.total_evaluated} rallies"
        if self.failures:
            message += f" ({len(self.failures)} errors)"
        return message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.generated_at.isoformat(),
            "total": self.total_evaluated,
            "updated": self.updated,
            "unchanged": self.unchanged_count,
            "errors": len(self.failures),
            "updates": [t.to_dict() for t in self.transitions],
            "error_details": [f.to_dict() for f in self.failures],
        }


@dataclass
class StatusPreview:
    """Read-only comparison of a rally's stored and expected status."""
    rally_id: int
    name: str
    current_status: str
    expected_status: str
    competition_date: datetime
    registration_deadline: datetime

    @property
    def needs_update(self) -> bool:
        return self.current_status != self.expected_status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rally_id": self.rally_id,
            "name": self.name,
            "current_status": self.current_status,
            "expected_status": self.expected_status,
            "needs_update": self.needs_update,
            "competition_date": as_utc(self.competition_date).isoformat(),
            "registration_deadline": as_utc(self.registration_deadline).isoformat(),
        }


def _expected_status(rally: RallySnapshot, now: datetime) -> str:
    # Cancelled rallies are frozen; the clock never moves them
    if rally.status == RallyStatus.CANCELLED.value:
        return rally.status
    return resolve_status(rally.competition_date, rally.registration_deadline, now).value


def reconcile_rally_statuses(store: RallyStore, now: datetime) -> TransitionReport:
    """
    Bring the status of every active rally in line with ``now``.

    Args:
        store: Rally store to read from and write to
        now: Instant every rally in this run is evaluated against

    Returns:
        TransitionReport describing what changed and what failed

    Raises:
        StoreError: If the active rallies cannot be listed
    """
    rallies = store.list_active_rallies()
    report = TransitionReport(generated_at=now, total_evaluated=len(rallies))

    if not rallies:
        logger.info("No active rallies to update")
        return report

    for rally in rallies:
        try:
            desired = _expected_status(rally, now)
        except Exception as e:
            logger.error(f"Error processing rally {rally.id}: {str(e)}")
            report.failures.append(TransitionFailure(
                rally_id=rally.id,
                rally_name=rally.name,
                error_message=str(e) or type(e).__name__,
            ))
            continue

        if desired == rally.status:
            logger.debug(f"Rally '{rally.name}' status already correct: {rally.status}")
            report.unchanged_count += 1
            continue

        try:
            store.update_rally_status(rally.id, RallyStatus(desired), now)
        except StoreError as e:
            logger.error(f"Error updating rally {rally.id}: {str(e)}")
            report.failures.append(TransitionFailure(
                rally_id=rally.id,
                rally_name=rally.name,
                error_message=str(e),
            ))
            continue

        logger.info(f"Updated rally '{rally.name}' ({rally.id}): {rally.status} -> {desired}")
        report.transitions.append(StatusTransition(
            rally_id=rally.id,
            rally_name=rally.name,
            old_status=rally.status,
            new_status=desired,
        ))

    logger.info(
        f"Rally status update complete. Updated {report.updated}/{report.total_evaluated} rallies, "
        f"{len(report.failures)} errors"
    )
    return report


def preview_rally_statuses(
    store: RallyStore,
    now: datetime,
    limit: Optional[int] = None
) -> List[StatusPreview]:
    """
    Show which active rallies are out of date without writing anything.

    Args:
        store: Rally store to read from
        now: Instant to evaluate against
        limit: Maximum number of rallies to include (all if None)

    Returns:
        One StatusPreview per rally, newest competition first

    Raises:
        StoreError: If the active rallies cannot be listed
    """
    rallies = store.list_active_rallies()
    if limit is not None:
        rallies = rallies[:limit]

    return [
        StatusPreview(
            rally_id=rally.id,
            name=rally.name,
            current_status=rally.status,
            expected_status=_expected_status(rally, now),
            competition_date=rally.competition_date,
            registration_deadline=rally.registration_deadline,
        )
        for rally in rallies
    ]
