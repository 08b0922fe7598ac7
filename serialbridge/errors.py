"""Exceptions raised by the serial bridge."""

from __future__ import annotations

from typing import Optional, Sequence


class BridgeError(Exception):
    """Base class for every serialbridge error."""


class ProbeError(BridgeError):
    """A single candidate port failed validation."""

    def __init__(self, port: str, message: str = "") -> None:
        super().__init__(message or f"Probe failed on {port}")
        self.port = port


class HandshakeTimeout(ProbeError):
    """The candidate did not answer the probe within the read timeout."""

    def __init__(self, port: str) -> None:
        super().__init__(port, f"No response from device on {port}")


class HandshakeMismatch(ProbeError):
    """The candidate answered, but without the expected token."""

    def __init__(self, port: str, reply: str) -> None:
        super().__init__(port, f"Unexpected handshake reply on {port}: {reply!r}")
        self.reply = reply


class NoDeviceFound(BridgeError):
    """No candidate port passed the handshake."""

    def __init__(self, candidates: Optional[Sequence[str]] = None) -> None:
        self.candidates = list(candidates or [])
        if self.candidates:
            message = f"No device answered the handshake on {', '.join(self.candidates)}"
        else:
            message = "No candidate serial ports found"
        super().__init__(message)


class LinkIOFailure(BridgeError):
    """Reading from or writing to an established link failed."""

    def __init__(self, port: str, cause: BaseException) -> None:
        super().__init__(f"I/O failure on {port}: {cause}")
        self.port = port
