"""Configuration helpers for serialbridge."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, List

logger = logging.getLogger(__name__)

CONFIG_FILE = "serialbridge.json"
DEFAULT_PORT_PREFIXES = ["/dev/ttyACM", "/dev/tty.usb", "/dev/ttyUSB"]


def _coerce_int(value: Any, default: int, minimum: int = 0) -> int:
    try:
        return max(minimum, int(value))
    except (TypeError, ValueError):
        return default


def _coerce_prefixes(value: Any, default: List[str]) -> List[str]:
    if not isinstance(value, list):
        return list(default)
    return [str(item) for item in value if item]


@dataclass
class BridgeConfig:
    device_name: str = "CINTA"
    baud_rate: int = 115200
    settle_delay_ms: int = 3000
    read_timeout_ms: int = 1000
    write_timeout_ms: int = 1000
    reconnection_delay_ms: int = 1000
    max_unread_messages: int = 1
    handshake_probe: str = "e"
    handshake_token: str = "echoc"
    dtr: bool = True
    rts: bool = True
    rtscts: bool = False
    xonxoff: bool = False
    port_prefixes: List[str] = field(default_factory=lambda: list(DEFAULT_PORT_PREFIXES))

    @property
    def settle_delay(self) -> float:
        return self.settle_delay_ms / 1000.0

    @property
    def read_timeout(self) -> float:
        return self.read_timeout_ms / 1000.0

    @property
    def write_timeout(self) -> float:
        return self.write_timeout_ms / 1000.0

    @property
    def reconnection_delay(self) -> float:
        return self.reconnection_delay_ms / 1000.0


def load_config(path: str | Path = CONFIG_FILE) -> BridgeConfig:
    """Load configuration data from *path* or return defaults on failure."""

    defaults = BridgeConfig()
    cfg_path = Path(path)
    if not cfg_path.exists():
        return defaults

    try:
        raw = json.loads(cfg_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.error("Config file %s contains invalid JSON: %s", cfg_path, exc)
        return defaults
    except OSError as exc:
        logger.error("Could not read config file %s: %s", cfg_path, exc)
        return defaults

    if not isinstance(raw, dict):
        logger.error("Config file %s did not contain an object", cfg_path)
        return defaults

    data = asdict(defaults)
    data["device_name"] = str(raw.get("device_name", data["device_name"]))
    data["baud_rate"] = _coerce_int(raw.get("baud_rate"), defaults.baud_rate, 1)
    data["settle_delay_ms"] = _coerce_int(raw.get("settle_delay_ms"), defaults.settle_delay_ms)
    data["read_timeout_ms"] = _coerce_int(raw.get("read_timeout_ms"), defaults.read_timeout_ms, 1)
    data["write_timeout_ms"] = _coerce_int(raw.get("write_timeout_ms"), defaults.write_timeout_ms, 1)
    data["reconnection_delay_ms"] = _coerce_int(
        raw.get("reconnection_delay_ms"), defaults.reconnection_delay_ms
    )
    data["max_unread_messages"] = _coerce_int(
        raw.get("max_unread_messages"), defaults.max_unread_messages, 1
    )
    probe = str(raw.get("handshake_probe", data["handshake_probe"]))
    data["handshake_probe"] = probe[:1] or defaults.handshake_probe
    data["handshake_token"] = str(raw.get("handshake_token", data["handshake_token"]))
    for flag in ("dtr", "rts", "rtscts", "xonxoff"):
        data[flag] = bool(raw.get(flag, data[flag]))
    data["port_prefixes"] = _coerce_prefixes(raw.get("port_prefixes"), defaults.port_prefixes)

    return BridgeConfig(**data)


def save_config(config: BridgeConfig, path: str | Path = CONFIG_FILE) -> None:
    """Persist *config* to *path*, logging errors without raising."""

    cfg_path = Path(path)
    try:
        cfg_path.parent.mkdir(parents=True, exist_ok=True)
        cfg_path.write_text(json.dumps(asdict(config), indent=4), encoding="utf-8")
    except OSError as exc:
        logger.error("Could not write config file %s: %s", cfg_path, exc)
