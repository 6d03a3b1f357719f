"""
Unit tests for the rally status reconciler.

Uses an in-memory rally store that records every write and can be told
to fail specific updates or the initial listing.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Set

import pytest

from app.core.lifecycle import RallyStatus
from app.core.reconciler import (
    ReconcileOutcome,
    preview_rally_statuses,
    reconcile_rally_statuses,
)
from app.services.rally_store import RallySnapshot, RallyStore, StoreError


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryRallyStore(RallyStore):
    """Rally store double that records writes and injects failures."""

    def __init__(self, rallies: List[RallySnapshot]):
        self.rallies: Dict[int, RallySnapshot] = {r.id: r for r in rallies}
        self.updates: List[tuple] = []
        self.failing_ids: Set[int] = set()
        self.fail_listing = False

    def list_active_rallies(self) -> List[RallySnapshot]:
        if self.fail_listing:
            raise StoreError("connection refused")
        # Rallies with a missing date sort last
        return sorted(
            self.rallies.values(),
            key=lambda r: r.competition_date or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )

    def update_rally_status(self, rally_id, new_status, updated_at) -> None:
        self.updates.append((rally_id, new_status, updated_at))
        if rally_id in self.failing_ids:
            raise StoreError(f"Rally {rally_id} not found")
        old = self.rallies[rally_id]
        self.rallies[rally_id] = RallySnapshot(
            id=old.id,
            name=old.name,
            competition_date=old.competition_date,
            registration_deadline=old.registration_deadline,
            status=new_status.value,
        )


def make_rally(rally_id: int, starts_in: timedelta, status: str, name: str = None) -> RallySnapshot:
    """Build a rally starting ``starts_in`` from NOW with a deadline one hour earlier."""
    competition = NOW + starts_in
    return RallySnapshot(
        id=rally_id,
        name=name or f"Rally {rally_id}",
        competition_date=competition,
        registration_deadline=competition - timedelta(hours=1),
        status=status,
    )


class TestReconcile:
    """Test reconcile_rally_statuses behaviour."""

    def test_empty_store(self):
        """No active rallies yields an empty, successful report."""
        store = InMemoryRallyStore([])

        report = reconcile_rally_statuses(store, NOW)

        assert report.total_evaluated == 0
        assert report.transitions == []
        assert report.failures == []
        assert report.outcome is ReconcileOutcome.SUCCESS
        assert store.updates == []

    def test_transitions_are_written(self):
        """Out-of-date rallies are moved to their computed status."""
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=2), "upcoming"),
            make_rally(2, timedelta(minutes=30), "registration_open"),
            make_rally(3, timedelta(minutes=-10), "registration_closed"),
            make_rally(4, timedelta(hours=-2), "active"),
        ])

        report = reconcile_rally_statuses(store, NOW)

        new_statuses = {t.rally_id: t.new_status for t in report.transitions}
        assert new_statuses == {
            1: "registration_open",
            2: "registration_closed",
            3: "active",
            4: "completed",
        }
        assert report.total_evaluated == 4
        assert report.failures == []

    def test_report_ordered_by_competition_date_desc(self):
        """Transitions follow the listing order."""
        store = InMemoryRallyStore([
            make_rally(1, timedelta(hours=-5), "active"),
            make_rally(2, timedelta(days=3), "upcoming"),
        ])

        report = reconcile_rally_statuses(store, NOW)

        assert [t.rally_id for t in report.transitions] == [2, 1]

    def test_transition_records_old_status(self):
        store = InMemoryRallyStore([make_rally(7, timedelta(minutes=-5), "registration_closed", name="Estonia Rally")])

        report = reconcile_rally_statuses(store, NOW)

        transition = report.transitions[0]
        assert transition.rally_name == "Estonia Rally"
        assert transition.old_status == "registration_closed"
        assert transition.new_status == "active"

    def test_no_write_for_correct_status(self):
        """A rally already in the right state is never written."""
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=1), "registration_open"),
            make_rally(2, timedelta(minutes=-10), "registration_closed"),
        ])

        report = reconcile_rally_statuses(store, NOW)

        assert [u[0] for u in store.updates] == [2]
        assert [t.rally_id for t in report.transitions] == [2]
        assert report.unchanged_count == 1

    def test_every_write_uses_the_same_now(self):
        """All rallies in one run are evaluated and stamped with one instant."""
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=2), "upcoming"),
            make_rally(2, timedelta(hours=-3), "active"),
        ])

        report = reconcile_rally_statuses(store, NOW)

        assert {u[2] for u in store.updates} == {NOW}
        assert report.generated_at == NOW

    def test_idempotent(self):
        """A second run at the same instant changes nothing."""
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=2), "upcoming"),
            make_rally(2, timedelta(minutes=30), "registration_open"),
            make_rally(3, timedelta(hours=-2), "registration_open"),
        ])

        first = reconcile_rally_statuses(store, NOW)
        writes_after_first = len(store.updates)
        second = reconcile_rally_statuses(store, NOW)

        assert len(first.transitions) == 3
        assert second.transitions == []
        assert second.unchanged_count == 3
        assert len(store.updates) == writes_after_first

    def test_partial_failure_isolation(self):
        """A failing rally is reported and the others are still updated."""
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=3), "upcoming"),
            make_rally(2, timedelta(days=2), "upcoming"),
            make_rally(3, timedelta(days=1), "upcoming"),
        ])
        store.failing_ids.add(2)

        report = reconcile_rally_statuses(store, NOW)

        assert sorted(t.rally_id for t in report.transitions) == [1, 3]
        assert [f.rally_id for f in report.failures] == [2]
        assert "not found" in report.failures[0].error_message
        assert report.outcome is ReconcileOutcome.PARTIAL_FAILURE
        assert report.has_failures

    def test_fetch_failure_propagates(self):
        """A failed listing raises and produces no report."""
        store = InMemoryRallyStore([make_rally(1, timedelta(days=1), "upcoming")])
        store.fail_listing = True

        with pytest.raises(StoreError):
            reconcile_rally_statuses(store, NOW)

        assert store.updates == []

    def test_unresolvable_rally_does_not_abort_batch(self):
        """A rally whose status cannot be computed is reported, the rest still update."""
        broken = RallySnapshot(
            id=2,
            name="Broken",
            competition_date=None,
            registration_deadline=None,
            status="upcoming",
        )
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=2), "upcoming"),
            make_rally(3, timedelta(hours=-3), "active"),
        ])
        store.rallies[2] = broken

        report = reconcile_rally_statuses(store, NOW)

        assert sorted(t.rally_id for t in report.transitions) == [1, 3]
        assert [f.rally_id for f in report.failures] == [2]
        assert report.failures[0].rally_name == "Broken"
        assert 2 not in [u[0] for u in store.updates]
        assert len(report.transitions) + len(report.failures) + report.unchanged_count == 3

    def test_far_future_rally_is_processed(self):
        """A competition date next to datetime.max is resolved, not reported as failed."""
        far_future = datetime(9999, 12, 31, 23, 30, tzinfo=timezone.utc)
        store = InMemoryRallyStore([
            RallySnapshot(
                id=1,
                name="Someday",
                competition_date=far_future,
                registration_deadline=far_future - timedelta(hours=1),
                status="upcoming",
            ),
            make_rally(2, timedelta(days=1), "upcoming"),
        ])

        report = reconcile_rally_statuses(store, NOW)

        assert report.failures == []
        assert {t.rally_id: t.new_status for t in report.transitions} == {
            1: "registration_open",
            2: "registration_open",
        }

    def test_cancelled_rally_is_untouched(self):
        """Cancelled rallies are counted but never written."""
        store = InMemoryRallyStore([make_rally(1, timedelta(hours=-5), "cancelled")])

        report = reconcile_rally_statuses(store, NOW)

        assert store.updates == []
        assert report.transitions == []
        assert report.unchanged_count == 1

    def test_count_invariant(self):
        """transitions + failures + unchanged == total_evaluated."""
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=3), "upcoming"),
            make_rally(2, timedelta(days=2), "registration_open"),
            make_rally(3, timedelta(hours=-4), "active"),
            make_rally(4, timedelta(hours=-4), "cancelled"),
        ])
        store.failing_ids.add(3)

        report = reconcile_rally_statuses(store, NOW)

        assert len(report.transitions) + len(report.failures) + report.unchanged_count == report.total_evaluated
        assert report.total_evaluated == 4

    def test_failed_rally_is_retried_next_run(self):
        """A rally that failed to update is picked up again later."""
        store = InMemoryRallyStore([make_rally(1, timedelta(days=1), "upcoming")])
        store.failing_ids.add(1)
        reconcile_rally_statuses(store, NOW)

        store.failing_ids.clear()
        report = reconcile_rally_statuses(store, NOW)

        assert [t.rally_id for t in report.transitions] == [1]


class TestReportRendering:
    """Test report summary and dict output."""

    def test_summary_and_dict(self):
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=3), "upcoming"),
            make_rally(2, timedelta(days=2), "upcoming"),
            make_rally(3, timedelta(days=1), "registration_open"),
        ])
        store.failing_ids.add(2)

        report = reconcile_rally_statuses(store, NOW)
        data = report.to_dict()

        assert report.summary() == "Updated 1/3 rallies (1 errors)"
        assert data["total"] == 3
        assert data["updated"] == 1
        assert data["unchanged"] == 1
        assert data["errors"] == 1
        assert data["updates"][0] == {
            "rally_id": 1,
            "name": "Rally 1",
            "old_status": "upcoming",
            "new_status": "registration_open",
        }
        assert data["error_details"][0]["rally_id"] == 2
        assert data["timestamp"] == NOW.isoformat()


class TestPreview:
    """Test the read-only status preview."""

    def test_preview_does_not_write(self):
        store = InMemoryRallyStore([
            make_rally(1, timedelta(days=1), "registration_open"),
            make_rally(2, timedelta(hours=-3), "active"),
        ])

        previews = preview_rally_statuses(store, NOW)

        assert store.updates == []
        by_id = {p.rally_id: p for p in previews}
        assert not by_id[1].needs_update
        assert by_id[2].needs_update
        assert by_id[2].expected_status == "completed"

    def test_preview_limit(self):
        store = InMemoryRallyStore([make_rally(i, timedelta(days=i), "upcoming") for i in range(1, 6)])

        previews = preview_rally_statuses(store, NOW, limit=2)

        assert [p.rally_id for p in previews] == [5, 4]

    def test_preview_cancelled_needs_no_update(self):
        store = InMemoryRallyStore([make_rally(1, timedelta(hours=-3), "cancelled")])

        previews = preview_rally_statuses(store, NOW)

        assert previews[0].expected_status == "cancelled"
        assert not previews[0].needs_update

    def test_preview_fetch_failure_propagates(self):
        store = InMemoryRallyStore([])
        store.fail_listing = True

        with pytest.raises(StoreError):
            preview_rally_statuses(store, NOW)
