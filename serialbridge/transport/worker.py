"""Background link worker: streaming loop and reconnection state machine."""

from __future__ import annotations

import enum
import logging
import threading
from typing import Optional

import serial

from ..errors import LinkIOFailure, NoDeviceFound
from ..mailbox import EntryKind, Mailbox
from .handshake import DeviceLink, HandshakeValidator
from .ports import PortEnumerator

_LOGGER = logging.getLogger(__name__)

LINE_TERMINATOR = "\n"


class WorkerState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


class LinkWorker:
    """Owns the device port for the lifetime of one connection session.

    :meth:`run_forever` is the target of a dedicated thread. It never calls
    consumer callbacks; every observable event goes through the mailbox.
    Stopping is cooperative: :meth:`request_stop` sets a flag that the loop
    checks once per iteration and that interrupts retry sleeps.
    """

    def __init__(
        self,
        mailbox: Mailbox,
        validator: HandshakeValidator,
        enumerator: PortEnumerator,
        *,
        reconnection_delay: float = 1.0,
        link: Optional[DeviceLink] = None,
    ) -> None:
        self.mailbox = mailbox
        self.validator = validator
        self.enumerator = enumerator
        self.reconnection_delay = reconnection_delay
        self._link = link
        self._stop = threading.Event()
        self._buffer = bytearray()
        self.state = WorkerState.IDLE

    @property
    def port(self) -> Optional[str]:
        link = self._link
        return link.descriptor.path if link else None

    def request_stop(self) -> None:
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def run_forever(self) -> None:
        self.state = WorkerState.CONNECTING
        try:
            while not self._stop.is_set():
                if self._link is None and not self._attempt_connection():
                    self._stop.wait(self.reconnection_delay)
                    continue
                if self._stop.is_set():
                    break

                self.mailbox.push_sentinel(EntryKind.CONNECTED)
                self.state = WorkerState.STREAMING
                try:
                    self._stream()
                except LinkIOFailure as exc:
                    _LOGGER.warning("%s. Reconnecting.", exc)
                    self._close_link()
                    self.mailbox.push_sentinel(EntryKind.DISCONNECTED)
                    self.state = WorkerState.RECONNECTING
                    self._stop.wait(self.reconnection_delay)
            if self.state is WorkerState.STREAMING:
                self._flush_outbound()
        finally:
            self._close_link()
            self.state = WorkerState.STOPPED

    def _attempt_connection(self) -> bool:
        try:
            self._link = self.validator.find_device(
                self.enumerator.list_candidates(), stop=self._stop
            )
        except NoDeviceFound as exc:
            _LOGGER.debug("Reconnect attempt failed: %s", exc)
            return False
        return True

    def _stream(self) -> None:
        """Run the read/write loop until a stop is requested."""

        while not self._stop.is_set():
            command = self.mailbox.pop_outbound()
            if command is not None:
                self._write(command)
            line = self._read_line()
            if line is not None:
                self.mailbox.push_payload(line)

    def _write(self, command: str) -> None:
        assert self._link is not None
        data = f"{command}{LINE_TERMINATOR}".encode("ascii", errors="replace")
        try:
            self._link.handle.write(data)
            self._link.handle.flush()
        except serial.SerialTimeoutException:
            _LOGGER.debug("Write timed out on %s. Dropping command: %s", self.port, command)
        except (serial.SerialException, OSError) as exc:
            raise LinkIOFailure(self._link.descriptor.path, exc) from exc

    def _read_line(self) -> Optional[str]:
        """Return one complete line, or ``None`` when the read timed out."""

        assert self._link is not None
        try:
            chunk = self._link.handle.readline()
        except (serial.SerialException, OSError) as exc:
            raise LinkIOFailure(self._link.descriptor.path, exc) from exc
        if not chunk:
            return None
        self._buffer.extend(chunk)
        if not self._buffer.endswith(b"\n"):
            return None
        line = self._buffer.decode("ascii", errors="replace").rstrip("\r\n")
        self._buffer.clear()
        return line

    def _flush_outbound(self) -> None:
        """Write commands still queued at stop time, best effort."""

        while True:
            command = self.mailbox.pop_outbound()
            if command is None:
                return
            try:
                self._write(command)
            except LinkIOFailure as exc:
                _LOGGER.debug("Could not flush outbound commands: %s", exc)
                return

    def _close_link(self) -> None:
        link, self._link = self._link, None
        self._buffer.clear()
        if link is not None:
            link.close()
