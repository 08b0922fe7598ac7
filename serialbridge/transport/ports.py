"""Candidate port discovery."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

import serial.tools.list_ports

from ..config import BridgeConfig

PortSource = Callable[[], Iterable[str]]
PortPredicate = Callable[[str], bool]

_LOGGER = logging.getLogger(__name__)
_DEV_DIR = "/dev"


@dataclass(frozen=True)
class PortDescriptor:
    """Everything needed to open one serial port."""

    path: str
    baudrate: int = 115200
    read_timeout: float = 1.0
    write_timeout: float = 1.0
    dtr: bool = True
    rts: bool = True
    rtscts: bool = False
    xonxoff: bool = False

    @classmethod
    def from_config(cls, path: str, config: BridgeConfig) -> "PortDescriptor":
        return cls(
            path=path,
            baudrate=config.baud_rate,
            read_timeout=config.read_timeout,
            write_timeout=config.write_timeout,
            dtr=config.dtr,
            rts=config.rts,
            rtscts=config.rtscts,
            xonxoff=config.xonxoff,
        )


def _accept_all(_path: str) -> bool:
    return True


def prefix_predicate(prefixes: Sequence[str]) -> PortPredicate:
    """Return a predicate accepting paths that start with one of *prefixes*.

    An empty *prefixes* accepts every path.
    """

    allowed = tuple(prefixes)
    if not allowed:
        return _accept_all

    def predicate(path: str) -> bool:
        return path.startswith(allowed)

    return predicate


def system_port_names() -> List[str]:
    """List serial device names visible on this machine."""

    names: List[str] = []
    if not sys.platform.startswith("win") and os.path.isdir(_DEV_DIR):
        try:
            names.extend(
                sorted(os.path.join(_DEV_DIR, entry) for entry in os.listdir(_DEV_DIR))
            )
        except OSError:
            _LOGGER.debug("Could not scan %s", _DEV_DIR, exc_info=True)
    try:
        for info in serial.tools.list_ports.comports():
            device = getattr(info, "device", None)
            if device:
                names.append(device)
    except Exception:
        _LOGGER.debug("pyserial port enumeration failed", exc_info=True)
    return names


class PortEnumerator:
    """Produce the ordered list of ports worth probing.

    Args:
        config: Supplies the serial settings stamped on every descriptor and
            the POSIX device-name prefixes.
        source: Callable returning raw device names. Defaults to
            :func:`system_port_names`.
        predicate: Filter applied to each name. Defaults to the configured
            prefixes on POSIX and to accepting everything on Windows.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        source: Optional[PortSource] = None,
        predicate: Optional[PortPredicate] = None,
    ) -> None:
        self.config = config or BridgeConfig()
        self._source = source or system_port_names
        if predicate is None:
            if sys.platform.startswith("win"):
                predicate = _accept_all
            else:
                predicate = prefix_predicate(self.config.port_prefixes)
        self._predicate = predicate

    def list_candidates(self) -> List[PortDescriptor]:
        try:
            names = list(self._source())
        except Exception:
            _LOGGER.warning("Port enumeration failed", exc_info=True)
            return []

        seen = set()
        candidates: List[PortDescriptor] = []
        for name in names:
            if not name or name in seen or not self._predicate(name):
                continue
            seen.add(name)
            candidates.append(PortDescriptor.from_config(name, self.config))
        return candidates
