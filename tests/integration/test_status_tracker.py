"""
Integration tests for the refresh status tracker and the advisory lock.
"""

from datetime import datetime, timezone

import pytest

from geonames_refresh.core.errors import StateError
from geonames_refresh.core.models import RefreshState
from geonames_refresh.status.tracker import RefreshStatusTracker


@pytest.fixture
def tracker(clean_db):
    tracker = RefreshStatusTracker(clean_db)
    tracker.ensure_table()
    return tracker


@pytest.mark.integration
def test_not_installed_without_row(tracker):
    status = tracker.get()

    assert status.state is RefreshState.NOT_INSTALLED
    assert status.first_installed_at is None


@pytest.mark.integration
def test_install_lifecycle(tracker):
    first = datetime(2024, 1, 1, tzinfo=timezone.utc)
    second = datetime(2024, 2, 1, tzinfo=timezone.utc)

    tracker.begin()
    assert tracker.get().state is RefreshState.INSTALLING

    tracker.mark_live(at=first)
    tracker.begin()
    tracker.mark_live(at=second)

    status = tracker.get()
    assert status.state is RefreshState.LIVE
    assert status.first_installed_at == first
    assert status.last_installed_at == second


@pytest.mark.integration
def test_error_is_recorded_and_cleared(tracker):
    tracker.begin()
    tracker.mark_error("Bulk load failed")

    status = tracker.get()
    assert status.state is RefreshState.ERROR
    assert status.last_error == "Bulk load failed"
    assert status.last_installed_at is None

    tracker.begin()
    assert tracker.get().last_error is None


@pytest.mark.integration
def test_invalid_transition_leaves_row_unchanged(tracker):
    with pytest.raises(StateError):
        tracker.mark_live()

    assert tracker.get().state is RefreshState.NOT_INSTALLED


@pytest.mark.integration
def test_second_begin_requires_recovery(tracker):
    tracker.begin()

    with pytest.raises(StateError):
        tracker.begin()

    tracker.begin(recover_stale=True)
    assert tracker.get().state is RefreshState.INSTALLING


@pytest.mark.integration
def test_datasets_are_independent(clean_db, tracker):
    other = RefreshStatusTracker(clean_db, dataset="geonames_postal")

    tracker.begin()

    assert other.get().state is RefreshState.NOT_INSTALLED


@pytest.mark.integration
def test_advisory_lock_is_exclusive(clean_db):
    with clean_db.advisory_lock("geonames_refresh"):
        with pytest.raises(StateError):
            with clean_db.advisory_lock("geonames_refresh"):
                pass

    with clean_db.advisory_lock("geonames_refresh"):
        pass
