import threading
import unittest

from assessment_progress.adapters.progress import PollingUpdateChannel
from assessment_progress.domain.progress import ProgressError, TransportError, Unauthorized
from assessment_progress.ports.progress.transport_port import snapshot_path
from assessment_progress.retry import RetryPolicy

from fakes import FakeTransport, domain_payload, snapshot_payload

FAST_RETRY = RetryPolicy(max_retries=2, initial_delay_seconds=0.001, max_delay_seconds=0.005)


class PollingChannelTests(unittest.TestCase):
    def setUp(self) -> None:
        self.transport = FakeTransport()
        self.channel = PollingUpdateChannel(self.transport, interval_seconds=0.01, retry_policy=FAST_RETRY)

    def test_emits_one_fragment_per_domain(self) -> None:
        self.transport.respond(
            snapshot_path("A1"),
            snapshot_payload("A1", domain_payload("d1", "in_progress", 40, 2), domain_payload("d2")),
        )
        received = []
        done = threading.Event()

        def on_update(update):
            received.append(update)
            if len(received) >= 2:
                done.set()

        subscription = self.channel.open("A1", on_update)
        self.assertTrue(done.wait(2.0))
        subscription.cancel()
        self.assertEqual({update.domain_id for update in received[:2]}, {"d1", "d2"})
        self.assertEqual(received[0].sequence, 2)

    def test_cancel_is_idempotent_and_stops_polling(self) -> None:
        self.transport.respond(snapshot_path("A1"), snapshot_payload("A1", domain_payload("d1")))
        first = threading.Event()
        subscription = self.channel.open("A1", lambda update: first.set())
        self.assertTrue(first.wait(2.0))

        subscription.cancel()
        subscription.cancel()
        self.assertTrue(subscription.cancelled)
        subscription.thread.join(2.0)
        self.assertFalse(subscription.thread.is_alive())

    def test_recovers_after_transient_failure(self) -> None:
        self.transport.respond(
            snapshot_path("A1"),
            TransportError("flaky"),
            snapshot_payload("A1", domain_payload("d1", "in_progress", 10, 1)),
        )
        delivered = threading.Event()
        failures = []
        subscription = self.channel.open("A1", lambda update: delivered.set(), failures.append)
        self.assertTrue(delivered.wait(2.0))
        subscription.cancel()
        self.assertEqual(failures, [])

    def test_reports_failure_after_retries_exhausted(self) -> None:
        self.transport.respond(snapshot_path("A1"), TransportError("down"))
        failed = threading.Event()
        errors = []

        def on_failure(error):
            errors.append(error)
            failed.set()

        subscription = self.channel.open("A1", lambda update: None, on_failure)
        self.assertTrue(failed.wait(2.0))
        subscription.thread.join(2.0)
        self.assertIsInstance(errors[0], TransportError)
        # one initial attempt plus two retries
        self.assertEqual(len(self.transport.get_calls), 3)

    def test_unauthorized_is_not_retried(self) -> None:
        self.transport.respond(snapshot_path("A1"), Unauthorized("denied", status_code=401))
        failed = threading.Event()
        errors = []

        def on_failure(error):
            errors.append(error)
            failed.set()

        self.channel.open("A1", lambda update: None, on_failure)
        self.assertTrue(failed.wait(2.0))
        self.assertIsInstance(errors[0], Unauthorized)
        self.assertEqual(len(self.transport.get_calls), 1)

    def test_non_finite_percentages_are_clamped(self) -> None:
        self.transport.respond(
            snapshot_path("A1"),
            snapshot_payload("A1", domain_payload("d1", "in_progress", float("inf"), 1)),
        )
        received = []
        delivered = threading.Event()

        def on_update(update):
            received.append(update)
            delivered.set()

        subscription = self.channel.open("A1", on_update)
        self.assertTrue(delivered.wait(2.0))
        subscription.cancel()
        self.assertEqual(received[0].percent_complete.value, 100)

    def test_unexpected_errors_stop_polling_and_report_failure(self) -> None:
        self.transport.respond(snapshot_path("A1"), snapshot_payload("A1", domain_payload("d1", "in_progress", 5, 1)))
        failed = threading.Event()
        errors = []

        def on_update(update):
            raise RuntimeError("consumer exploded")

        def on_failure(error):
            errors.append(error)
            failed.set()

        with self.assertLogs("assessment_progress.polling", level="ERROR"):
            subscription = self.channel.open("A1", on_update, on_failure)
            self.assertTrue(failed.wait(2.0))
            subscription.thread.join(2.0)

        self.assertFalse(subscription.thread.is_alive())
        self.assertIsInstance(errors[0], ProgressError)
        self.assertIn("consumer exploded", str(errors[0]))

    def test_rejects_non_positive_interval(self) -> None:
        with self.assertRaises(ValueError):
            PollingUpdateChannel(self.transport, interval_seconds=0)


if __name__ == "__main__":
    unittest.main()
