"""Mirror bridge events to an MQTT broker.

For UIs that live in another process: every :class:`LocationEvent`
drained by the bridge is published as JSON to
``{topic_prefix}/{identity}/location``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from drivertrack._redact import mask_identity
from drivertrack.bridge import DeliveryBridge, Subscription
from drivertrack.config import TrackerConfig
from drivertrack.models.events import LocationEvent

_logger = logging.getLogger(__name__)

ClientFactory = Callable[[], mqtt.Client]


def _default_client() -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        protocol=mqtt.MQTTv5,
    )


class MqttEventRelay:
    """Threaded paho-mqtt publisher fed by a bridge subscription."""

    def __init__(
        self,
        config: TrackerConfig,
        bridge: DeliveryBridge,
        *,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._config = config
        self._bridge = bridge
        self._client_factory = client_factory or _default_client
        self._client: mqtt.Client | None = None
        self._subscription: Subscription | None = None
        self._forwarder: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._client is not None

    def topic_for(self, identity: str) -> str:
        return f"{self._config.mqtt_topic_prefix}/{identity}/location"

    def _connect(self, client: mqtt.Client) -> None:
        client.enable_logger(_logger)
        if self._config.mqtt_username:
            client.username_pw_set(self._config.mqtt_username, self._config.mqtt_password)
        if self._config.mqtt_tls:
            client.tls_set()

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._client is not None:
                _logger.debug("MQTT relay disconnected: %s", reason_code)

        client.on_disconnect = on_disconnect
        client.connect(self._config.mqtt_host, self._config.mqtt_port, keepalive=self._config.mqtt_keepalive)
        client.loop_start()

    async def start(self) -> None:
        """Connect to the broker and start forwarding bridge events."""
        if self._client is not None:
            return
        loop = asyncio.get_running_loop()
        client = self._client_factory()
        _logger.debug("MQTT relay connecting host=%s port=%s", self._config.mqtt_host, self._config.mqtt_port)
        await loop.run_in_executor(None, self._connect, client)
        self._client = client
        self._subscription = self._bridge.subscribe()
        self._forwarder = loop.create_task(self._forward(self._subscription))

    async def _forward(self, subscription: Subscription) -> None:
        async for event in subscription:
            self.publish(event)

    def publish(self, event: LocationEvent) -> bool:
        """Publish one event.  Returns ``False`` when the client rejected it."""
        client = self._client
        if client is None:
            return False
        info = client.publish(self.topic_for(event.identity), event.model_dump_json(), qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            _logger.warning(
                "MQTT relay publish failed for %s: %s",
                mask_identity(event.identity),
                mqtt.error_string(info.rc),
            )
            return False
        return True

    async def stop(self) -> None:
        """Stop forwarding and disconnect."""
        subscription = self._subscription
        forwarder = self._forwarder
        client = self._client
        self._subscription = None
        self._forwarder = None
        self._client = None

        if subscription is not None:
            subscription.unsubscribe()
        if forwarder is not None:
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)
        if client is None:
            return
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, client.disconnect)
        finally:
            await loop.run_in_executor(None, client.loop_stop)
            _logger.debug("MQTT relay stopped")
