"""
Broadcast transports for the sync channel.

A transport fans out opaque byte payloads per topic. It gives no
delivery or ordering guarantee; the protocol above it tolerates loss,
duplicates and reordering.

    LocalBus       in-process hub (several clients in one process)
    ZmqTransport   ZeroMQ PUB/SUB through a SyncRelay

Usage:
    transport = ZmqTransport("tcp://relay:5570", "tcp://relay:5571")
    transport.start()
    sub = transport.subscribe("program:abc", on_message, on_joined)
    transport.publish("program:abc", b"...")
    sub.close()
    transport.stop()
"""

import logging
import queue
import threading
import time
import uuid
from typing import Callable, Dict, List, Optional

import zmq

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, bytes], None]
JoinedCallback = Callable[[], None]

# Payload prefix of join probes; probes never reach subscribers.
PROBE_MARKER = b"\x00kairon-probe:"


class Subscription:
    """
    One listener on one topic. Closing it is idempotent.
    """

    def __init__(
        self,
        transport: "Transport",
        topic: str,
        on_message: MessageCallback,
        on_joined: Optional[JoinedCallback] = None,
    ):
        self.transport = transport
        self.topic = topic
        self.on_message = on_message
        self.on_joined = on_joined
        self.joined = False
        self.closed = False

    def deliver(self, data: bytes):
        if self.closed:
            return
        try:
            self.on_message(self.topic, data)
        except Exception as e:
            logger.exception(f"Subscriber on {self.topic} failed: {e}")

    def mark_joined(self):
        if self.joined or self.closed:
            return
        self.joined = True
        if self.on_joined:
            try:
                self.on_joined()
            except Exception as e:
                logger.exception(f"Join callback on {self.topic} failed: {e}")

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.transport._remove(self)


class Transport:
    """Base class: topic subscription bookkeeping."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def start(self):
        pass

    def stop(self):
        pass

    def publish(self, topic: str, data: bytes):
        raise NotImplementedError

    def subscribe(
        self,
        topic: str,
        on_message: MessageCallback,
        on_joined: Optional[JoinedCallback] = None,
    ) -> Subscription:
        sub = Subscription(self, topic, on_message, on_joined)
        with self._lock:
            first = topic not in self._subscriptions
            self._subscriptions.setdefault(topic, []).append(sub)
        self._added(sub, first)
        return sub

    def _subscribers(self, topic: str) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.get(topic, ()))

    def _remove(self, sub: Subscription):
        with self._lock:
            subs = self._subscriptions.get(sub.topic, [])
            if sub in subs:
                subs.remove(sub)
            last = not subs
            if last:
                self._subscriptions.pop(sub.topic, None)
        self._removed(sub, last)

    def _added(self, sub: Subscription, first: bool):
        pass

    def _removed(self, sub: Subscription, last: bool):
        pass


class LocalBus(Transport):
    """
    In-process broadcast hub.

    Delivery is synchronous, in the publisher's thread, to every
    subscriber of the topic (the publisher's own subscription included;
    channels drop their own echoes). Joining is immediate.
    """

    def __init__(self):
        super().__init__()
        self.published = 0

    def publish(self, topic: str, data: bytes):
        self.published += 1
        for sub in self._subscribers(topic):
            sub.deliver(data)

    def _added(self, sub: Subscription, first: bool):
        sub.mark_joined()


class ZmqTransport(Transport):
    """
    ZeroMQ PUB/SUB transport.

    The PUB socket connects to the relay's XSUB side and the SUB socket to
    its XPUB side, so clients never need to know each other. SUB socket
    operations run only on the receive thread; subscription changes are
    queued to it. Sends from any thread are serialized by a lock.

    ZeroMQ subscriptions propagate asynchronously, so a subscription is
    only reported as joined once a probe published on its topic has come
    back through the relay.
    """

    def __init__(
        self,
        publish_address: str,
        subscribe_address: str,
        context: Optional[zmq.Context] = None,
        probe_interval: float = 1.0,
        poll_timeout_ms: int = 100,
    ):
        """
        Args:
            publish_address: Relay XSUB endpoint (e.g. tcp://127.0.0.1:5570)
            subscribe_address: Relay XPUB endpoint (e.g. tcp://127.0.0.1:5571)
            context: ZeroMQ context (default: shared instance)
            probe_interval: Seconds between join probes for unconfirmed topics
            poll_timeout_ms: Receive poll timeout; bounds shutdown latency
        """
        super().__init__()
        self.publish_address = publish_address
        self.subscribe_address = subscribe_address
        self.context = context or zmq.Context.instance()
        self.probe_interval = probe_interval
        self.poll_timeout_ms = poll_timeout_ms

        self._pub: Optional[zmq.Socket] = None
        self._sub: Optional[zmq.Socket] = None
        self._pub_lock = threading.Lock()
        self._changes: "queue.Queue[tuple]" = queue.Queue()
        self._probes: Dict[str, bytes] = {}
        self._last_probe: Dict[str, float] = {}
        self._thread: Optional[threading.Thread] = None
        self._running = False

        self.stats = {'published': 0, 'received': 0, 'dropped': 0}

    def start(self):
        if self._running:
            logger.warning("ZeroMQ transport already running")
            return

        self._pub = self.context.socket(zmq.PUB)
        self._pub.setsockopt(zmq.LINGER, 0)
        self._pub.connect(self.publish_address)

        self._sub = self.context.socket(zmq.SUB)
        self._sub.setsockopt(zmq.LINGER, 0)
        self._sub.connect(self.subscribe_address)

        self._running = True
        self._thread = threading.Thread(
            target=self._receive_loop,
            name="SyncReceive",
            daemon=True
        )
        self._thread.start()
        logger.info(f"ZeroMQ transport connected: pub={self.publish_address} sub={self.subscribe_address}")

    def stop(self):
        self._running = False
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
        with self._pub_lock:
            if self._pub is not None:
                self._pub.close()
                self._pub = None
        if self._sub is not None:
            self._sub.close()
            self._sub = None
        logger.info("ZeroMQ transport stopped")

    def publish(self, topic: str, data: bytes):
        with self._pub_lock:
            if self._pub is None:
                self.stats['dropped'] += 1
                logger.warning(f"Cannot publish on {topic}: transport not started")
                return
            self._pub.send_multipart([topic.encode("utf-8"), data])
            self.stats['published'] += 1

    def _added(self, sub: Subscription, first: bool):
        self._changes.put(("subscribe" if first else "probe", sub.topic))

    def _removed(self, sub: Subscription, last: bool):
        if last:
            self._changes.put(("unsubscribe", sub.topic))

    # --- Receive thread ----------------------------------------------------

    def _apply_changes(self):
        while True:
            try:
                action, topic = self._changes.get_nowait()
            except queue.Empty:
                return
            raw_topic = topic.encode("utf-8")
            if action in ("subscribe", "probe"):
                if action == "subscribe":
                    self._sub.setsockopt(zmq.SUBSCRIBE, raw_topic)
                self._probes.setdefault(topic, PROBE_MARKER + uuid.uuid4().hex.encode("ascii"))
                self._last_probe.pop(topic, None)
            else:
                self._sub.setsockopt(zmq.UNSUBSCRIBE, raw_topic)
                self._probes.pop(topic, None)
                self._last_probe.pop(topic, None)

    def _send_probes(self):
        now = time.monotonic()
        for topic, probe in list(self._probes.items()):
            if not any(not s.joined for s in self._subscribers(topic)):
                continue
            if now - self._last_probe.get(topic, 0.0) < self.probe_interval:
                continue
            self._last_probe[topic] = now
            self.publish(topic, probe)

    def _handle(self, frames: List[bytes]):
        if len(frames) != 2:
            self.stats['dropped'] += 1
            logger.debug(f"Dropping message with {len(frames)} frames")
            return
        topic = frames[0].decode("utf-8", errors="replace")
        data = frames[1]
        subs = self._subscribers(topic)
        if not subs:
            # Prefix match on another program's topic.
            return

        if data.startswith(PROBE_MARKER):
            if data == self._probes.get(topic):
                for sub in subs:
                    sub.mark_joined()
            return

        self.stats['received'] += 1
        for sub in subs:
            if sub.joined:
                sub.deliver(data)

    def _receive_loop(self):
        logger.debug("Sync receive thread started")
        poller = zmq.Poller()
        poller.register(self._sub, zmq.POLLIN)

        while self._running:
            try:
                self._apply_changes()
                self._send_probes()
                events = dict(poller.poll(self.poll_timeout_ms))
                if self._sub in events:
                    while True:
                        try:
                            frames = self._sub.recv_multipart(zmq.NOBLOCK)
                        except zmq.Again:
                            break
                        self._handle(frames)
            except zmq.ZMQError as e:
                if not self._running:
                    break
                logger.error(f"Sync receive error: {e}")
                time.sleep(0.5)

        logger.debug("Sync receive thread stopped")
