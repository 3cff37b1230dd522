"""
Broadcast relay.

A stateless XSUB/XPUB forwarder: clients publish into the front end and
subscribe at the back end. The relay keeps no program or timer state
and never answers anything itself, so any number of relays can be
restarted without losing a session; clients re-sync on join.

Usage:
    relay = SyncRelay("tcp://*:5570", "tcp://*:5571")
    relay.start()
    ...
    relay.stop()
"""

import logging
import threading
import time
from typing import Optional

import zmq

logger = logging.getLogger(__name__)


class SyncRelay:
    """Forwards every published message to every matching subscriber."""

    def __init__(
        self,
        frontend_address: str = "tcp://*:5570",
        backend_address: str = "tcp://*:5571",
        context: Optional[zmq.Context] = None,
        poll_timeout_ms: int = 250,
    ):
        """
        Args:
            frontend_address: XSUB bind address (clients' PUB sockets connect here)
            backend_address: XPUB bind address (clients' SUB sockets connect here)
            context: ZeroMQ context (default: shared instance)
            poll_timeout_ms: Poll timeout; bounds shutdown latency
        """
        self.frontend_address = frontend_address
        self.backend_address = backend_address
        self.context = context or zmq.Context.instance()
        self.poll_timeout_ms = poll_timeout_ms

        self.frontend: Optional[zmq.Socket] = None
        self.backend: Optional[zmq.Socket] = None
        self.thread: Optional[threading.Thread] = None
        self._running = False

        self.stats = {
            'messages_forwarded': 0,
            'subscription_changes': 0,
            'start_time': 0.0,
        }

    def start(self):
        """Bind both sockets and forward in a background thread."""
        if self._running:
            logger.warning("Relay already running")
            return

        self.frontend = self.context.socket(zmq.XSUB)
        self.frontend.setsockopt(zmq.LINGER, 0)
        self.frontend.bind(self.frontend_address)

        self.backend = self.context.socket(zmq.XPUB)
        self.backend.setsockopt(zmq.LINGER, 0)
        self.backend.bind(self.backend_address)

        self._running = True
        self.stats['start_time'] = time.time()
        self.thread = threading.Thread(
            target=self._forward,
            name="SyncRelay",
            daemon=True
        )
        self.thread.start()

        logger.info("Relay started")
        logger.info(f"  Publish into:  {self.frontend_address}")
        logger.info(f"  Subscribe at:  {self.backend_address}")

    def _forward(self):
        poller = zmq.Poller()
        poller.register(self.frontend, zmq.POLLIN)
        poller.register(self.backend, zmq.POLLIN)

        while self._running:
            try:
                events = dict(poller.poll(self.poll_timeout_ms))
                if self.frontend in events:
                    self.backend.send_multipart(self.frontend.recv_multipart())
                    self.stats['messages_forwarded'] += 1
                if self.backend in events:
                    # Subscribe/unsubscribe frames flow upstream.
                    self.frontend.send_multipart(self.backend.recv_multipart())
                    self.stats['subscription_changes'] += 1
            except zmq.ZMQError as e:
                if not self._running:
                    break
                logger.error(f"Relay error: {e}")
                time.sleep(0.5)

    def stop(self):
        self._running = False
        if self.thread:
            self.thread.join(timeout=2.0)
            self.thread = None
        for sock in (self.frontend, self.backend):
            if sock is not None:
                sock.close()
        self.frontend = None
        self.backend = None

        uptime = time.time() - self.stats['start_time'] if self.stats['start_time'] else 0.0
        logger.info("Relay stopped")
        logger.info(f"  Uptime: {uptime:.1f}s")
        logger.info(f"  Messages forwarded: {self.stats['messages_forwarded']}")

    def run(self):
        """Run the relay (blocking)."""
        import signal

        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}")
            self._running = False

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

        self.start()
        try:
            while self._running:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()
