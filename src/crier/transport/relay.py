"""MQTT relay transport.

Both ends connect outward to a broker, so neither needs an inbound port.
The topic is the only thing separating unrelated users of a shared broker.
"""

from __future__ import annotations

import collections
import logging
import socket
import threading
import time
import uuid
from typing import Deque, Iterator, Optional

import paho.mqtt.client as mqtt

from .base import BrokerUnreachable, Transport, TransportConnectionError, TransportTimeout

logger = logging.getLogger(__name__)

DEFAULT_BROKER = "broker.hivemq.com"
DEFAULT_PORT = 1883
QOS = 1


def check_topic(topic: str) -> str:
    if not topic:
        raise ValueError("an MQTT topic is required")
    if "+" in topic or "#" in topic:
        raise ValueError(f"wildcards are not allowed in a topic: {topic!r}")
    return topic


def _new_client(role: str) -> mqtt.Client:
    client_id = f"crier-{role}-{uuid.uuid4().hex[:12]}"
    return mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
        reconnect_on_failure=False,
    )


class Subscription:
    """One broker connection subscribed to one topic.

    A Subscription is never repaired: when its link fails the owner throws
    it away and builds a new one.
    """

    def __init__(self, host: str, port: int, topic: str, pending: Deque[bytes],
                 timeout: float, keepalive: int = 60):
        self.topic = topic
        self.pending = pending
        self.timeout = timeout
        self.connected = False
        self.subscribed = False
        self.failure: Optional[str] = None
        self.began = time.monotonic()

        self.client = _new_client("listen")
        self.client.connect_timeout = timeout
        self.client.on_connect = self._on_connect
        self.client.on_subscribe = self._on_subscribe
        self.client.on_message = self._on_message

        # Raises OSError if the broker cannot be reached at all.
        self.client.connect(host, port, keepalive)

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self.failure = f"broker refused connection: {reason_code}"
            client.disconnect()
            return

        self.connected = True
        client.subscribe(self.topic, qos=QOS)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties) -> None:
        for reason_code in reason_code_list:
            if reason_code.is_failure:
                self.failure = f"broker refused subscription to {self.topic!r}: {reason_code}"
                client.disconnect()
                return

        self.subscribed = True

    def _on_message(self, client, userdata, message) -> None:
        if not mqtt.topic_matches_sub(self.topic, message.topic):
            return

        if len(self.pending) == self.pending.maxlen:
            logger.warning("inbound queue full, dropping oldest message")

        self.pending.append(message.payload)

    def pump(self, interval: float) -> bool:
        """Run the network loop once; False when the link is gone."""

        rc = self.client.loop(timeout=interval)

        if self.failure is not None:
            return False

        if rc != mqtt.MQTT_ERR_SUCCESS:
            self.failure = mqtt.error_string(rc)
            return False

        if not self.connected and time.monotonic() - self.began > self.timeout:
            self.failure = f"no CONNACK within {self.timeout} seconds"
            return False

        return True

    def close(self) -> None:
        # The loop pass flushes DISCONNECT and releases the socket; on a
        # link that is already gone both calls return immediately.
        self.client.disconnect()
        self.client.loop(timeout=0.1)


class Relay(Transport):
    """Publish/subscribe through an MQTT broker on a single topic."""

    poll_interval = 0.1

    def __init__(self, topic: str, host: str = DEFAULT_BROKER, port: int = DEFAULT_PORT,
                 timeout: float = 10.0, backoff_minimum: float = 1.0,
                 backoff_maximum: float = 60.0, maximum_pending: int = 256):
        self.topic = check_topic(topic)
        self.host = host
        self.port = int(port)
        self.timeout = timeout
        self.backoff_minimum = backoff_minimum
        self.backoff_maximum = backoff_maximum

        self.pending: Deque[bytes] = collections.deque(maxlen=maximum_pending)
        self.subscription: Optional[Subscription] = None
        self.connections = 0
        self._stopped = threading.Event()

    @property
    def shutdown(self) -> bool:
        return self._stopped.is_set()

    @property
    def is_open(self) -> bool:
        subscription = self.subscription
        return subscription is not None and subscription.subscribed

    def describe(self) -> str:
        return f"mqtt://{self.host}:{self.port}/{self.topic}"

    def close(self) -> None:
        self._stopped.set()

    # --- listening side ---

    def listen(self) -> Iterator[bytes]:
        delay = self.backoff_minimum

        while not self.shutdown:
            try:
                subscription = Subscription(self.host, self.port, self.topic,
                                            self.pending, self.timeout)
            except OSError as e:
                logger.warning("broker %s unreachable (%s), retrying in %.1f s",
                               self.describe(), e, delay)
                self._stopped.wait(delay)
                delay = min(delay * 2, self.backoff_maximum)
                continue

            self.subscription = subscription
            announced = False

            try:
                while not self.shutdown:
                    alive = subscription.pump(self.poll_interval)

                    if subscription.connected and not announced:
                        announced = True
                        self.connections += 1
                        delay = self.backoff_minimum
                        logger.info("connected to %s", self.describe())

                    while self.pending and not self.shutdown:
                        yield self.pending.popleft()

                    if not alive:
                        break
            finally:
                self.subscription = None
                subscription.close()

            if self.shutdown:
                break

            logger.warning("lost broker link to %s (%s), reconnecting in %.1f s",
                           self.describe(), subscription.failure, delay)
            self._stopped.wait(delay)
            delay = min(delay * 2, self.backoff_maximum)

    # --- sending side ---

    def send(self, payload: bytes) -> None:
        client = _new_client("send")
        client.connect_timeout = self.timeout

        connected = threading.Event()
        reasons = []

        def on_connect(client, userdata, flags, reason_code, properties):
            reasons.append(reason_code)
            connected.set()

        client.on_connect = on_connect

        try:
            client.connect(self.host, self.port, keepalive=60)
        except (TimeoutError, socket.timeout) as exc:
            raise BrokerUnreachable(f"connect to {self.host}:{self.port} timed out") from exc
        except OSError as exc:
            raise BrokerUnreachable(f"cannot reach broker {self.host}:{self.port}: {exc}") from exc

        client.loop_start()

        try:
            if not connected.wait(self.timeout):
                raise BrokerUnreachable(f"no CONNACK from {self.host}:{self.port} in {self.timeout} seconds")

            if reasons[0].is_failure:
                raise TransportConnectionError(f"broker refused connection: {reasons[0]}")

            info = client.publish(self.topic, payload, qos=QOS)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                raise TransportConnectionError("publish failed: " + mqtt.error_string(info.rc))

            try:
                info.wait_for_publish(self.timeout)
            except (RuntimeError, ValueError) as exc:
                raise TransportConnectionError(f"publish failed: {exc}") from exc

            if not info.is_published():
                raise TransportTimeout(f"no PUBACK from {self.host}:{self.port} in {self.timeout} seconds")
        finally:
            client.disconnect()
            client.loop_stop()
