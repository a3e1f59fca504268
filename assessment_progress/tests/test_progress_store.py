"""Tests for ProgressStore driven through the push and polling channels."""
from __future__ import annotations

import logging
import time

import pytest

from assessment_progress.adapters.progress import PollingUpdateChannel, PushUpdateChannel
from assessment_progress.app.progress import ProgressFetcher, ProgressStore, TrackingState
from assessment_progress.domain.progress import DomainStatus, NotFound, NotTracked, ProgressUpdate, TransportError
from assessment_progress.ports.progress.transport_port import snapshot_path
from assessment_progress.retry import RetryPolicy

from fakes import FakeTransport, domain_payload, snapshot_payload, update_payload

FAST_RETRY = RetryPolicy(max_retries=1, initial_delay_seconds=0.001, max_delay_seconds=0.005)


@pytest.fixture()
def transport():
    fake = FakeTransport()
    fake.respond(snapshot_path("A1"), snapshot_payload("A1", domain_payload("d1"), domain_payload("d2")))
    return fake


@pytest.fixture()
def channel():
    return PushUpdateChannel()


@pytest.fixture()
def store(transport, channel):
    with ProgressStore(ProgressFetcher(transport, channel)) as instance:
        yield instance


def test_two_domain_completion_scenario(store, channel):
    subscription = store.track("A1")
    assert store.state("A1") is TrackingState.TRACKING

    channel.publish(update_payload("A1", "d1", "completed", 100, 1))
    assert store.get_current("A1").overall_status is DomainStatus.IN_PROGRESS
    assert store.get_stats("A1").percent_complete == 50

    channel.publish(update_payload("A1", "d2", "completed", 100, 1))
    assert store.get_current("A1").overall_status is DomainStatus.COMPLETED
    assert store.get_stats("A1").percent_complete == 100
    assert store.state("A1") is TrackingState.TERMINAL
    assert subscription.cancelled
    assert channel.subscriber_count("A1") == 0


def test_out_of_order_updates_keep_latest_sequence(store, channel):
    store.track("A1")
    channel.publish(update_payload("A1", "d1", "in_progress", 40, 5))
    channel.publish(update_payload("A1", "d1", "in_progress", 30, 3))
    assert store.get_current("A1").domains["d1"].percent_complete.value == 40


def test_untrack_unknown_id_is_noop(store):
    store.untrack("never-tracked")
    assert store.state("never-tracked") is TrackingState.UNINITIALIZED


def test_track_is_idempotent(store, transport):
    first = store.track("A1")
    second = store.track("A1")
    assert first is second
    assert len(transport.get_calls) == 1


def test_failed_snapshot_leaves_assessment_uninitialized(channel):
    transport = FakeTransport()
    transport.respond(
        snapshot_path("A1"),
        NotFound("missing", status_code=404),
        snapshot_payload("A1", domain_payload("d1")),
    )
    store = ProgressStore(ProgressFetcher(transport, channel))

    with pytest.raises(NotFound):
        store.track("A1")
    assert store.state("A1") is TrackingState.UNINITIALIZED
    with pytest.raises(NotTracked):
        store.get_current("A1")

    store.track("A1")
    assert store.state("A1") is TrackingState.TRACKING
    store.close()


def test_get_current_on_untracked_raises(store):
    with pytest.raises(NotTracked) as excinfo:
        store.get_current("A1")
    assert excinfo.value.code == "NOT_TRACKED"


def test_listener_errors_are_logged_not_propagated(store, channel, caplog):
    received = []

    def broken(event):
        raise RuntimeError("listener exploded")

    store.on_change("A1", broken)
    store.on_change("A1", received.append)
    store.track("A1")

    with caplog.at_level(logging.ERROR, logger="assessment_progress.store"):
        channel.publish(update_payload("A1", "d1", "in_progress", 10, 1))

    assert [event.update.domain_id for event in received] == ["d1"]
    assert received[0].progress.domains["d1"].percent_complete.value == 10
    assert any("listener failed" in record.getMessage() for record in caplog.records)


def test_listeners_only_fire_on_state_change(store, channel):
    received = []
    remove = store.on_change("A1", received.append)
    store.track("A1")

    channel.publish(update_payload("A1", "d1", "in_progress", 10, 1))
    channel.publish(update_payload("A1", "d1", "in_progress", 10, 1))
    assert len(received) == 1

    remove()
    channel.publish(update_payload("A1", "d1", "in_progress", 20, 2))
    assert len(received) == 1


def test_unknown_domain_updates_are_dropped(store, channel, caplog):
    received = []
    store.on_change("A1", received.append)
    store.track("A1")
    before = store.get_current("A1")

    with caplog.at_level(logging.WARNING, logger="assessment_progress.store"):
        channel.publish(update_payload("A1", "d9", "in_progress", 10, 1))

    assert store.get_current("A1") is before
    assert received == []
    assert any("d9" in record.getMessage() for record in caplog.records)


def test_late_updates_after_terminal_are_discarded(store, channel):
    subscription = store.track("A1")
    # capture the delivery callback before the subscription closes itself
    late_delivery = subscription.on_update
    channel.publish(update_payload("A1", "d1", "completed", 100, 1))
    channel.publish(update_payload("A1", "d2", "completed", 100, 1))
    completed = store.get_current("A1")

    late_delivery(ProgressUpdate.from_payload(update_payload("A1", "d2", "blocked", 10, 9)))
    assert store.get_current("A1") is completed


def test_untrack_cancels_subscription_and_forgets_state(store, channel):
    subscription = store.track("A1")
    store.untrack("A1")
    assert subscription.cancelled
    assert store.state("A1") is TrackingState.UNINITIALIZED
    assert store.tracked_ids() == []
    assert channel.publish(update_payload("A1", "d1", "in_progress", 10, 1)) == 0
    with pytest.raises(NotTracked):
        store.get_current("A1")


def test_channel_failure_marks_assessment_degraded(store, channel):
    store.track("A1")
    channel.publish(update_payload("A1", "d1", "in_progress", 25, 1))
    channel.fail("A1", TransportError("connection reset"))

    assert store.is_degraded("A1")
    assert store.get_current("A1").domains["d1"].percent_complete.value == 25


def test_already_completed_snapshot_goes_terminal(channel):
    transport = FakeTransport()
    transport.respond(snapshot_path("A2"), snapshot_payload("A2", domain_payload("d1", "completed", 100, 3)))
    store = ProgressStore(ProgressFetcher(transport, channel))

    subscription = store.track("A2")
    assert store.state("A2") is TrackingState.TERMINAL
    assert subscription.cancelled
    store.close()


def test_terminal_grace_period_evicts_assessment(transport, channel):
    store = ProgressStore(ProgressFetcher(transport, channel), terminal_grace_seconds=0.01)
    store.track("A1")
    channel.publish(update_payload("A1", "d1", "completed", 100, 1))
    channel.publish(update_payload("A1", "d2", "completed", 100, 1))

    deadline = time.monotonic() + 2.0
    while store.tracked_ids() and time.monotonic() < deadline:
        time.sleep(0.01)
    assert store.tracked_ids() == []


def test_degraded_listeners_receive_the_channel_failure(store, channel):
    errors = []
    store.on_degraded("A1", errors.append)
    store.track("A1")
    channel.fail("A1", TransportError("connection reset"))
    assert store.is_degraded("A1")
    assert [error.code for error in errors] == ["NETWORK_ERROR"]


def test_close_drops_listeners_of_never_tracked_ids(store, channel):
    received = []
    store.on_change("A1", received.append)
    store.close()

    store.track("A1")
    channel.publish(update_payload("A1", "d1", "in_progress", 10, 1))
    assert received == []


def _wait_for(condition, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not condition() and time.monotonic() < deadline:
        time.sleep(0.01)
    return condition()


@pytest.fixture()
def polling_store():
    transport = FakeTransport()
    channel = PollingUpdateChannel(transport, interval_seconds=0.01, retry_policy=FAST_RETRY)
    with ProgressStore(ProgressFetcher(transport, channel)) as instance:
        yield transport, instance


def test_polled_snapshots_advance_the_store(polling_store):
    transport, store = polling_store
    transport.respond(
        snapshot_path("A1"),
        snapshot_payload("A1", domain_payload("d1"), domain_payload("d2")),
        snapshot_payload("A1", domain_payload("d1", "in_progress", 60, 1), domain_payload("d2")),
    )
    received = []
    store.on_change("A1", received.append)
    store.track("A1")

    assert _wait_for(lambda: store.get_current("A1").domains["d1"].percent_complete.value == 60)
    polls = len(transport.get_calls)
    assert _wait_for(lambda: len(transport.get_calls) >= polls + 3)
    # repeated polls carry the same version and are discarded as stale
    assert len(received) == 1
    assert store.state("A1") is TrackingState.TRACKING


def test_polling_orders_by_timestamp_when_sequence_is_absent(polling_store):
    transport, store = polling_store
    transport.respond(
        snapshot_path("A1"),
        {"assessmentId": "A1", "domains": [{"domainId": "d1", "status": "not_started",
                                            "lastUpdated": "2025-03-01T09:00:00Z"}]},
        {"assessmentId": "A1", "domains": [{"domainId": "d1", "status": "completed",
                                            "lastUpdated": "2025-03-01T09:30:00Z"}]},
    )
    store.track("A1")
    assert _wait_for(lambda: store.state("A1") is TrackingState.TERMINAL)
    assert store.get_current("A1").is_complete


def test_changed_content_with_same_version_is_reported(polling_store, caplog):
    transport, store = polling_store
    transport.respond(
        snapshot_path("A1"),
        snapshot_payload("A1", domain_payload("d1")),
        snapshot_payload("A1", domain_payload("d1", "in_progress", 60, 0)),
    )
    with caplog.at_level(logging.WARNING, logger="assessment_progress.store"):
        store.track("A1")
        assert _wait_for(lambda: any("already applied" in record.getMessage() for record in caplog.records))
    assert store.get_current("A1").domains["d1"].status is DomainStatus.NOT_STARTED


def test_exhausted_polling_retries_degrade_but_keep_state(polling_store):
    transport, store = polling_store
    transport.respond(
        snapshot_path("A1"),
        snapshot_payload("A1", domain_payload("d1"), domain_payload("d2")),
        snapshot_payload("A1", domain_payload("d1", "in_progress", 40, 2), domain_payload("d2")),
        TransportError("backend down"),
    )
    degraded = []
    store.on_degraded("A1", degraded.append)
    store.track("A1")

    assert _wait_for(lambda: store.is_degraded("A1"))
    assert isinstance(degraded[0], TransportError)
    assert store.get_current("A1").domains["d1"].percent_complete.value == 40
    assert store.state("A1") is TrackingState.TRACKING
