import threading
import time
import unittest
from unittest import mock

import serial

from fakes import FakeSerial, ScriptedValidator, make_link, wait_until
from serialbridge.config import BridgeConfig
from serialbridge.mailbox import EntryKind, Mailbox
from serialbridge.transport import HandshakeValidator, LinkWorker, PortEnumerator, WorkerState


def _drain(mailbox):
    entries = []
    while (entry := mailbox.pop()) is not None:
        entries.append(entry)
    return entries


class LinkWorkerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.mailbox = Mailbox(capacity=8)
        self.enumerator = PortEnumerator(source=lambda: ["/dev/ttyACM0"], predicate=lambda _n: True)
        self.threads = []

    def tearDown(self) -> None:
        for worker, thread in self.threads:
            worker.request_stop()
            thread.join(timeout=2.0)

    def _start(self, validator, link=None, delay=0.01) -> LinkWorker:
        worker = LinkWorker(
            self.mailbox,
            validator,
            self.enumerator,
            reconnection_delay=delay,
            link=link,
        )
        thread = threading.Thread(target=worker.run_forever, daemon=True)
        self.threads.append((worker, thread))
        thread.start()
        return worker

    def _stop(self, worker) -> None:
        for candidate, thread in self.threads:
            if candidate is worker:
                worker.request_stop()
                thread.join(timeout=2.0)
                self.assertFalse(thread.is_alive())

    def test_adopted_link_streams_connected_then_payloads(self) -> None:
        link = make_link(lines=[b"1;2;3\r\n", b"4;5;6\n"])
        worker = self._start(ScriptedValidator(), link=link)

        self.assertTrue(wait_until(lambda: len(self.mailbox) == 3))
        entries = _drain(self.mailbox)
        self.assertEqual(entries[0].kind, EntryKind.CONNECTED)
        self.assertEqual([e.payload for e in entries[1:]], ["1;2;3", "4;5;6"])
        self.assertEqual(worker.state, WorkerState.STREAMING)

    def test_partial_lines_are_joined_across_read_timeouts(self) -> None:
        link = make_link(lines=[b"12", b"", b"34\n"])
        self._start(ScriptedValidator(), link=link)
        self.assertTrue(wait_until(lambda: self.mailbox.payload_count == 1))
        entries = _drain(self.mailbox)
        self.assertEqual(entries[-1].payload, "1234")

    def test_outbound_commands_are_written_with_terminator(self) -> None:
        link = make_link()
        self.mailbox.push_outbound("r")
        self.mailbox.push_outbound("f")
        self._start(ScriptedValidator(), link=link)
        self.assertTrue(wait_until(lambda: len(link.handle.written) == 2))
        self.assertEqual(link.handle.written, [b"r\n", b"f\n"])

    def test_io_failure_reconnects_with_single_disconnected(self) -> None:
        first = make_link("/dev/ttyACM0")
        second = make_link("/dev/ttyACM1", lines=[b"back\n"])
        # Two failed attempts before the device re-enumerates.
        validator = ScriptedValidator(None, None, second)
        worker = self._start(validator, link=first)

        self.assertTrue(wait_until(lambda: worker.state is WorkerState.STREAMING))
        first.handle.unplug()

        self.assertTrue(wait_until(lambda: worker.port == "/dev/ttyACM1"))
        self.assertTrue(wait_until(lambda: self.mailbox.payload_count == 1))
        kinds = [entry.kind for entry in _drain(self.mailbox)]
        self.assertEqual(
            kinds,
            [EntryKind.CONNECTED, EntryKind.DISCONNECTED, EntryKind.CONNECTED, EntryKind.PAYLOAD],
        )
        self.assertTrue(first.handle.closed)
        self.assertEqual(validator.calls, 3)

    def test_without_initial_link_keeps_retrying_until_found(self) -> None:
        validator = ScriptedValidator(None, None, make_link())
        worker = self._start(validator)
        self.assertTrue(wait_until(lambda: worker.state is WorkerState.STREAMING))
        kinds = [entry.kind for entry in _drain(self.mailbox)]
        self.assertEqual(kinds, [EntryKind.CONNECTED])

    def test_stop_while_streaming_flushes_outbound_and_closes(self) -> None:
        link = make_link()
        worker = self._start(ScriptedValidator(), link=link)
        self.assertTrue(wait_until(lambda: worker.state is WorkerState.STREAMING))

        for command in ("a", "b", "c"):
            self.mailbox.push_outbound(command)
        self._stop(worker)

        self.assertEqual(worker.state, WorkerState.STOPPED)
        self.assertTrue(link.handle.closed)
        self.assertEqual(b"".join(link.handle.written), b"a\nb\nc\n")

    def test_stop_while_reconnecting_exits_promptly(self) -> None:
        validator = ScriptedValidator()
        worker = self._start(validator, delay=30.0)
        self.assertTrue(wait_until(lambda: validator.calls == 1))
        self._stop(worker)
        self.assertEqual(worker.state, WorkerState.STOPPED)
        self.assertEqual(_drain(self.mailbox), [])

    def test_no_mailbox_writes_after_stop(self) -> None:
        link = make_link()
        worker = self._start(ScriptedValidator(), link=link)
        self.assertTrue(wait_until(lambda: worker.state is WorkerState.STREAMING))
        self._stop(worker)
        _drain(self.mailbox)
        link.handle.feed(b"late\n")
        self.assertIsNone(self.mailbox.pop())

    def test_write_timeout_drops_command_and_keeps_streaming(self) -> None:
        link = make_link()
        link.handle.write_errors.append(serial.SerialTimeoutException("Write timeout"))
        worker = self._start(ScriptedValidator(), link=link)
        self.assertTrue(wait_until(lambda: worker.state is WorkerState.STREAMING))

        self.mailbox.push_outbound("lost")
        self.mailbox.push_outbound("kept")

        self.assertTrue(wait_until(lambda: link.handle.written == [b"kept\n"]))
        self.assertEqual(worker.state, WorkerState.STREAMING)
        self.assertFalse(link.handle.closed)
        kinds = [entry.kind for entry in _drain(self.mailbox)]
        self.assertEqual(kinds, [EntryKind.CONNECTED])

    @mock.patch("serialbridge.transport.handshake.serial.Serial")
    def test_stop_interrupts_candidate_scan(self, mock_serial) -> None:
        mock_serial.side_effect = lambda port, *args, **kwargs: FakeSerial(port, [b"nope\n"])
        config = BridgeConfig(settle_delay_ms=500, read_timeout_ms=10)
        self.enumerator = PortEnumerator(
            config, source=lambda: ["A", "B", "C", "D"], predicate=lambda _n: True
        )
        worker = self._start(HandshakeValidator(config), delay=0.01)
        self.assertTrue(wait_until(lambda: mock_serial.call_count >= 1))

        started = time.monotonic()
        self._stop(worker)
        elapsed = time.monotonic() - started

        self.assertLess(elapsed, 0.5)
        self.assertEqual(mock_serial.call_count, 1)
        self.assertEqual(worker.state, WorkerState.STOPPED)
        self.assertEqual(_drain(self.mailbox), [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
