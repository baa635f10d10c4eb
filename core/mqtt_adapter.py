"""
MQTT message adapter.

Connects to the broker, subscribes to the button topics and forwards every
received message, untouched, into the coordinator's inbound channel.
"""
from __future__ import annotations

import asyncio
import logging
import socket
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import paho.mqtt.client as mqtt

from config.base import MqttSettings
from .channels import EventChannel

logger = logging.getLogger(__name__)


class BusConnectionError(Exception):
    """Raised when the broker cannot be reached or refuses the connection."""


def _log_connected(client: mqtt.Client) -> None:
    logger.info("Connected")


def _log_connection_lost(client: mqtt.Client, reason: Any) -> None:
    logger.warning("Connect lost: %s", reason)


# ---------------------------------------------------------------------------
@dataclass(slots=True)
class ConnectionHooks:
    """Callbacks run on the paho network thread when the link changes."""

    on_connect: Callable[[mqtt.Client], None] = _log_connected
    on_connection_lost: Callable[[mqtt.Client, Any], None] = _log_connection_lost


def _reason_value(reason_code: Any) -> int:
    # ReasonCode in paho v2, plain int in older code paths
    return reason_code.value if hasattr(reason_code, "value") else reason_code


# ---------------------------------------------------------------------------
class MessageAdapter:
    """Bridges paho-mqtt callbacks to an EventChannel."""

    def __init__(
        self,
        settings: MqttSettings,
        inbound: EventChannel,
        hooks: Optional[ConnectionHooks] = None,
    ) -> None:
        self.settings = settings
        self.inbound = inbound
        self.hooks = hooks or ConnectionHooks()
        self.client: Optional[mqtt.Client] = None
        self._connack = threading.Event()
        self._connected = False
        self._refused: Optional[Any] = None
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self.client is not None and self._connected

    @property
    def client_id(self) -> str:
        return self.settings.client_id or f"doorbell-{socket.gethostname()}"

    async def start(self) -> None:
        """
        Connect and wait for the broker to accept the session.

        Raises:
            BusConnectionError: connect failed, was refused or timed out
        """
        logger.info("Connecting to MQTT broker %s:%d", self.settings.broker, self.settings.port)
        await asyncio.to_thread(self._create_and_connect)

        acknowledged = await asyncio.to_thread(self._connack.wait, self.settings.connect_timeout)
        if not acknowledged or self._refused is not None:
            reason = self._refused if acknowledged else "timed out waiting for CONNACK"
            await asyncio.to_thread(self._stop_client)
            raise BusConnectionError(
                f"MQTT connection to {self.settings.broker}:{self.settings.port} failed: {reason}"
            )

        logger.info("MQTT connection established")

    def close(self) -> None:
        """Disconnect from the broker and close the inbound channel."""
        if self._closing:
            return
        self._closing = True
        self._stop_client()
        self.inbound.close()

    # ------------------------------------------------------------------
    def _create_and_connect(self) -> None:
        logger.info("using client ID: %s", self.client_id)
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)
        if self.settings.username:
            client.username_pw_set(self.settings.username, self.settings.password)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        self.client = client

        try:
            client.connect(self.settings.broker, self.settings.port, keepalive=self.settings.keepalive)
        except (OSError, ValueError) as exc:
            self.client = None
            raise BusConnectionError(
                f"MQTT connect to {self.settings.broker}:{self.settings.port} failed: {exc}"
            ) from exc

        client.loop_start()

    def _stop_client(self) -> None:
        client, self.client = self.client, None
        self._connected = False
        if client is None:
            return
        try:
            client.disconnect()
            client.loop_stop()
        except Exception as e:
            logger.error("Error during MQTT disconnect: %s", e)

    def _subscribe(self, client: mqtt.Client) -> None:
        topics = [(topic, self.settings.qos) for topic in self.settings.topics]
        if not topics:
            logger.warning("No MQTT topics configured")
            return
        result, _ = client.subscribe(topics)
        if result != mqtt.MQTT_ERR_SUCCESS:
            logger.error("Failed to subscribe to %s: %s", self.settings.topics, result)
            return
        for topic, _qos in topics:
            logger.info("Subscribed to topic: %s", topic)

    # paho callbacks, all on the network thread --------------------------
    def _on_connect(self, client, userdata, connect_flags, reason_code, properties=None) -> None:
        rc = _reason_value(reason_code)
        if rc != 0:
            logger.error("MQTT connection refused with code %s", reason_code)
            self._connected = False
            if not self._connack.is_set():
                self._refused = reason_code
                self._connack.set()
            return

        self._connected = True
        self._connack.set()
        self._subscribe(client)
        try:
            self.hooks.on_connect(client)
        except Exception as e:
            logger.error("on_connect hook failed: %s", e)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None) -> None:
        self._connected = False
        if self._closing or _reason_value(reason_code) == 0:
            logger.info("MQTT disconnected")
            return
        try:
            self.hooks.on_connection_lost(client, reason_code)
        except Exception as e:
            logger.error("on_connection_lost hook failed: %s", e)

    def _on_message(self, client, userdata, message) -> None:
        logger.debug("received on %s: %r", message.topic, message.payload)
        self.inbound.put(message)
