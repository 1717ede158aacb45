"""MQTT telemetry client for the dashboard broker."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

import paho.mqtt.client as paho

from farmbox.settings import DeviceSettings

logger = logging.getLogger(__name__)

THINGSBOARD_SERVER = "thingsboard.cloud"
MQTT_PORT = 1883
MQTT_SUB_TOPIC = "v1/devices/me/attributes"
MQTT_PUB_TELEMETRY = "v1/devices/me/telemetry"
KEEPALIVE_S = 60
RETRY_DELAY_S = 4.0
PING_KEY = "ping"
PING_CHALLENGE = "mohub"
PING_REPLY = '{"ping": "success"}'


def _paho_client(client_id: str) -> Any:
    api_version = getattr(paho, "CallbackAPIVersion", None)
    if api_version is not None:
        return paho.Client(api_version.VERSION2, client_id=client_id)
    return paho.Client(client_id=client_id)


class TelemetryClient:
    """Publishes telemetry and answers ping commands over MQTT.

    The underlying client is created by ``client_factory`` on ``setup()``,
    with the device id as MQTT client id and the token as user name.
    """

    def __init__(
        self,
        settings: DeviceSettings,
        client_factory: Callable[[str], Any] | None = None,
        server: str = THINGSBOARD_SERVER,
        port: int = MQTT_PORT,
        keepalive: int = KEEPALIVE_S,
        retry_delay: float = RETRY_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.client_factory = client_factory or _paho_client
        self.server = server
        self.port = port
        self.keepalive = keepalive
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.client: Any = None

    def setup(self) -> None:
        """Create the client, connect and subscribe to attribute updates."""
        self.client = self.client_factory(self.settings.device_id)
        self.client.on_message = self._on_message
        self.connect()
        self.client.subscribe(MQTT_SUB_TOPIC)

    def publish(self, message: str) -> bool:
        """Publish ``message`` as retained telemetry; return True on success."""
        logger.debug("Message: %s", message)
        if self.client is None:
            logger.debug("Failed to publish message: client not set up")
            return False
        info = self.client.publish(MQTT_PUB_TELEMETRY, message, retain=True)
        if info.rc == 0:
            logger.debug("Message published successfully!")
            return True
        logger.debug("Failed to publish message!")
        return False

    def connect(self) -> bool:
        """Connect unless already connected; return whether the attempt succeeded."""
        if self.is_connected():
            return True
        return self._reconnect()

    def _reconnect(self) -> bool:
        if self.client is None:
            raise RuntimeError("setup() must be called before connecting")
        logger.debug("Connecting to MQTT...")
        self.client.username_pw_set(self.settings.token, None)
        try:
            rc = self.client.connect(self.server, self.port, self.keepalive)
        except (OSError, ValueError) as exc:
            logger.debug("===> failed, %s; try again later", exc)
            self._sleep(self.retry_delay)
            return False
        if rc != 0:
            logger.debug("===> failed, ret=%d; try again later", rc)
            self._sleep(self.retry_delay)
            return False
        logger.debug("===> connected to broker")
        self.client.subscribe(MQTT_SUB_TOPIC)
        return True

    def disconnect(self) -> None:
        """Close the connection, if any."""
        if self.client is not None:
            self.client.disconnect()

    def loop(self) -> bool:
        """Process network traffic once; return True while connected."""
        if self.client is None:
            return False
        try:
            rc = self.client.loop(timeout=0.1)
        except OSError as exc:
            logger.debug("MQTT loop failed: %s", exc)
            return False
        return rc == 0 and bool(self.client.is_connected())

    def is_connected(self) -> bool:
        """True when the client exists and is connected."""
        return self.client is not None and bool(self.client.is_connected())

    def _on_message(self, client: Any, userdata: Any, message: Any) -> None:
        self.handle_message(message.topic, message.payload)

    def handle_message(self, topic: str, payload: bytes | str) -> bool:
        """Handle an incoming command; return True if a reply was published."""
        text = payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else payload
        logger.debug("Message arrived [%s]: %s", topic, text)
        try:
            document = json.loads(text)
        except ValueError:
            logger.debug("Invalid json format!")
            return False
        ping = document.get(PING_KEY) if isinstance(document, dict) else None
        if not isinstance(ping, str):
            logger.debug("Key not found!")
            return False
        if ping == PING_CHALLENGE:
            return self.publish(PING_REPLY)
        return False