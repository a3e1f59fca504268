import pytest

from assessment_progress.adapters.progress import PushUpdateChannel
from assessment_progress.app.progress import ProgressFetcher
from assessment_progress.domain.progress import DomainStatus, NotFound, TransportError
from assessment_progress.ports.progress.transport_port import domain_path, history_path, snapshot_path

from fakes import FakeTransport, domain_payload, snapshot_payload, update_payload


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def fetcher(transport):
    return ProgressFetcher(transport, PushUpdateChannel())


def test_fetch_snapshot_decodes_progress(fetcher, transport):
    transport.respond(snapshot_path("A1"), snapshot_payload("A1", domain_payload("d1", "blocked", 15, 2)))
    progress = fetcher.fetch_snapshot("A1")
    assert progress.domains["d1"].status is DomainStatus.BLOCKED
    assert progress.overall_status is DomainStatus.BLOCKED


def test_fetch_snapshot_propagates_not_found(fetcher, transport):
    transport.respond(snapshot_path("A1"), NotFound("gone", status_code=404))
    with pytest.raises(NotFound):
        fetcher.fetch_snapshot("A1")


def test_fetch_snapshot_rejects_foreign_or_malformed_payload(fetcher, transport):
    transport.respond(snapshot_path("A1"), snapshot_payload("A2", domain_payload("d1")))
    with pytest.raises(TransportError):
        fetcher.fetch_snapshot("A1")

    transport.respond(snapshot_path("B1"), {"assessmentId": "B1", "domains": [{"domainId": "d1", "status": "??"}]})
    with pytest.raises(TransportError) as excinfo:
        fetcher.fetch_snapshot("B1")
    assert excinfo.value.code == "INVALID_RESPONSE"


def test_paths_quote_identifiers():
    assert snapshot_path("a/b") == "/assessments/a%2Fb/progress"
    assert domain_path("A1", "ops team") == "/assessments/A1/progress/domains/ops%20team"


def test_fetch_domain(fetcher, transport):
    transport.respond(domain_path("A1", "d1"), {"status": "in_progress", "percentComplete": 70, "sequence": 9})
    domain = fetcher.fetch_domain("A1", "d1")
    assert domain.domain_id == "d1"
    assert domain.percent_complete.value == 70
    assert domain.sequence == 9


def test_fetch_history_sends_filters(fetcher, transport):
    transport.respond(history_path("u1"), [snapshot_payload("A1", domain_payload("d1")), snapshot_payload("A2")])
    history = fetcher.fetch_history("u1", limit=10, date_from="2025-01-01")
    assert [item.assessment_id for item in history] == ["A1", "A2"]
    assert transport.get_calls[-1] == (history_path("u1"), {"limit": "10", "dateFrom": "2025-01-01"})


def test_subscribe_delegates_to_channel(transport):
    channel = PushUpdateChannel()
    fetcher = ProgressFetcher(transport, channel)
    received = []
    subscription = fetcher.subscribe("A1", received.append)
    channel.publish(update_payload("A1", "d1", "in_progress", 5, 1))
    subscription.cancel()
    channel.publish(update_payload("A1", "d1", "in_progress", 6, 2))
    assert [update.sequence for update in received] == [1]
