"""Device settings and their persistent storage."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SENSOR_INTERVAL_S = 10
DEVICE_ID_MAX_LENGTH = 50
TOKEN_MAX_LENGTH = 100

_LEADING_INTEGER = re.compile(r"\s*([+-]?\d+)")


@dataclass
class DeviceSettings:
    """Connection parameters of the gateway."""

    device_id: str = ""
    token: str = ""
    interval: int = SENSOR_INTERVAL_S
    ssid: str = ""
    password: str = ""
    new_config: bool = False

    def has_parameters(self) -> bool:
        """True when both the device id and the access token are set."""
        return bool(self.device_id) and bool(self.token)

    def has_credentials(self) -> bool:
        """True when both the WiFi network name and its passphrase are set."""
        return bool(self.ssid) and bool(self.password)


def _parse_interval(value: str | int) -> int:
    if isinstance(value, int):
        return value
    match = _LEADING_INTEGER.match(value)
    return int(match.group(1)) if match else 0


def apply_portal_values(
    settings: DeviceSettings, device_id: str, token: str, interval: str | int
) -> bool:
    """Apply values entered in the configuration portal.

    A non-positive or unparsable interval falls back to the default. A changed
    token or device id marks the settings as a new configuration. Returns True
    if either of them changed.
    """
    parsed = _parse_interval(interval)
    settings.interval = parsed if parsed > 0 else SENSOR_INTERVAL_S

    changed = False
    if token != settings.token:
        settings.token = token[:TOKEN_MAX_LENGTH]
        changed = True
    if device_id != settings.device_id:
        settings.device_id = device_id[:DEVICE_ID_MAX_LENGTH]
        changed = True
    if changed:
        settings.new_config = True
    return changed


class SettingsStore:
    """Key-value settings kept in a JSON file."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"settings file {self.path} does not hold an object")
        return data

    def _update(self, values: dict[str, Any]) -> None:
        data = self._load()
        data.update(values)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".settings-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def load_parameters(self, settings: DeviceSettings) -> bool:
        """Load id, token and interval into ``settings``.

        The interval is always loaded. Returns False, leaving id and token
        untouched, if either of them is missing.
        """
        data = self._load()
        token = str(data.get("token", ""))
        device_id = str(data.get("device_id", ""))
        settings.interval = int(data.get("interval", SENSOR_INTERVAL_S))

        if not device_id or not token:
            logger.debug("Missing device ID or token!")
            return False

        settings.device_id = device_id[:DEVICE_ID_MAX_LENGTH]
        settings.token = token[:TOKEN_MAX_LENGTH]
        return True

    def save_parameters(self, settings: DeviceSettings) -> None:
        """Persist id, token and interval."""
        self._update(
            {
                "token": settings.token,
                "device_id": settings.device_id,
                "interval": settings.interval,
            }
        )

    def load_credentials(self, settings: DeviceSettings) -> None:
        """Load the WiFi network name and passphrase into ``settings``."""
        data = self._load()
        settings.ssid = str(data.get("ssid", ""))
        settings.password = str(data.get("password", ""))

    def save_credentials(self, settings: DeviceSettings) -> None:
        """Persist the WiFi network name and passphrase."""
        self._update({"ssid": settings.ssid, "password": settings.password})