"""Handshake-based device validation."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

import serial

from ..config import BridgeConfig
from ..errors import HandshakeMismatch, HandshakeTimeout, NoDeviceFound, ProbeError
from .ports import PortDescriptor

_LOGGER = logging.getLogger(__name__)


@dataclass
class DeviceLink:
    """A port that answered the handshake, still open."""

    descriptor: PortDescriptor
    handle: serial.Serial

    def close(self) -> None:
        _discard(self.handle)


def open_port(descriptor: PortDescriptor) -> serial.Serial:
    """Open *descriptor* with its timeouts, flow control and control lines."""

    ser = serial.Serial(
        descriptor.path,
        descriptor.baudrate,
        timeout=descriptor.read_timeout,
        write_timeout=descriptor.write_timeout,
        rtscts=descriptor.rtscts,
        xonxoff=descriptor.xonxoff,
    )
    try:
        ser.dtr = descriptor.dtr
        ser.rts = descriptor.rts
    except Exception:
        _LOGGER.debug("Failed to set control lines on %s", descriptor.path, exc_info=True)
    return ser


def _discard(ser: serial.Serial) -> None:
    try:
        ser.close()
    except Exception:
        _LOGGER.debug("Failed to release %s", getattr(ser, "port", "?"), exc_info=True)


class HandshakeValidator:
    """Confirm that a candidate port is the expected device.

    The device resets when the port opens, so every probe waits
    ``settle_delay`` before writing the probe byte. A probe succeeds when the
    first line read back contains ``token``.
    """

    def __init__(self, config: Optional[BridgeConfig] = None) -> None:
        config = config or BridgeConfig()
        self.device_name = config.device_name
        self.settle_delay = config.settle_delay
        self.probe_byte = config.handshake_probe.encode("ascii")[:1]
        self.token = config.handshake_token

    def probe(
        self, descriptor: PortDescriptor, *, stop: Optional[threading.Event] = None
    ) -> DeviceLink:
        """Open and validate *descriptor*, returning the open link.

        When *stop* is given the settle delay ends early once it is set, and
        the probe fails with :class:`ProbeError`.

        Raises:
            HandshakeTimeout: No line came back within the read timeout.
            HandshakeMismatch: The reply did not contain the token.
            ProbeError: The port could not be opened or written.
        """

        try:
            ser = open_port(descriptor)
        except (serial.SerialException, OSError, ValueError) as exc:
            raise ProbeError(descriptor.path, f"Could not open {descriptor.path}: {exc}") from exc

        try:
            if stop is None:
                time.sleep(self.settle_delay)
            elif stop.wait(self.settle_delay):
                raise ProbeError(descriptor.path, f"Probe of {descriptor.path} cancelled")
            ser.write(self.probe_byte)
            ser.flush()
            raw = ser.readline()
            if not raw:
                raise HandshakeTimeout(descriptor.path)
            reply = raw.decode("ascii", errors="ignore").strip()
            if self.token not in reply:
                raise HandshakeMismatch(descriptor.path, reply)
        except ProbeError:
            _discard(ser)
            raise
        except Exception as exc:
            _discard(ser)
            raise ProbeError(descriptor.path, f"Handshake failed on {descriptor.path}: {exc}") from exc
        return DeviceLink(descriptor, ser)

    def find_device(
        self,
        candidates: Iterable[PortDescriptor],
        *,
        stop: Optional[threading.Event] = None,
    ) -> DeviceLink:
        """Probe *candidates* in order and return the first confirmed link.

        Setting *stop* abandons the scan before the next candidate.

        Raises:
            NoDeviceFound: Every candidate failed, there were none, or *stop*
                was set.
        """

        tried: List[str] = []
        for descriptor in candidates:
            if stop is not None and stop.is_set():
                break
            tried.append(descriptor.path)
            try:
                link = self.probe(descriptor, stop=stop)
            except ProbeError as exc:
                if stop is not None and stop.is_set():
                    break
                _LOGGER.warning(
                    "Unable to connect %s:%s:%s. %s: %s",
                    descriptor.path,
                    descriptor.baudrate,
                    self.device_name,
                    type(exc).__name__,
                    exc,
                )
                continue
            _LOGGER.debug("Handshake succeeded on %s", descriptor.path)
            return link
        raise NoDeviceFound(tried)
