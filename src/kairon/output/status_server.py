"""
Status HTTP Server for kairon.

Read-only view of one live session for TV and attendee displays,
stage monitors and monitoring systems. Nothing served here can change
the session.

Endpoints:
    GET /health     - Basic health check (200 OK if running)
    GET /status     - JSON session snapshot (program, phase, countdown)
    GET /metrics    - Prometheus-compatible metrics

Usage:
    from kairon.output.status_server import StatusServer

    server = StatusServer(port=8080)
    server.set_session(live_session)
    server.start()
"""

import json
import logging
import threading
from http.server import HTTPServer, BaseHTTPRequestHandler
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

PHASE_VALUES = {'IDLE': 1, 'PAUSED': 2, 'RUNNING': 3, 'COMPLETE': 4}


def format_prometheus_metrics(status: Dict[str, Any]) -> str:
    """Format a session status snapshot as Prometheus metrics."""
    timer = status.get('timer', {})
    program = status.get('program', {})
    channel = status.get('channel', {})
    channel_stats = channel.get('stats', {})

    lines = [
        '# HELP kairon_timer_active Whether the slot timer is running',
        '# TYPE kairon_timer_active gauge',
        f'kairon_timer_active {1 if timer.get("isTimerActive") else 0}',
        '',
        '# HELP kairon_current_slot_index Index of the current slot',
        '# TYPE kairon_current_slot_index gauge',
        f'kairon_current_slot_index {timer.get("currentSlotIndex", 0)}',
        '',
        '# HELP kairon_slot_count Number of slots in the loaded program',
        '# TYPE kairon_slot_count gauge',
        f'kairon_slot_count {program.get("slot_count", 0)}',
        '',
        '# HELP kairon_remaining_seconds Seconds left on the current slot',
        '# TYPE kairon_remaining_seconds gauge',
        f'kairon_remaining_seconds {status.get("remaining_seconds", 0)}',
        '',
        '# HELP kairon_slot_progress Fraction of the current slot still remaining',
        '# TYPE kairon_slot_progress gauge',
        f'kairon_slot_progress {status.get("progress", 0.0):.4f}',
        '',
        '# HELP kairon_messages_sent_total Sync messages sent',
        '# TYPE kairon_messages_sent_total counter',
        f'kairon_messages_sent_total {channel_stats.get("sent", 0)}',
        '',
        '# HELP kairon_messages_received_total Sync messages received from peers',
        '# TYPE kairon_messages_received_total counter',
        f'kairon_messages_received_total {channel_stats.get("received", 0)}',
        '',
        '# HELP kairon_messages_dropped_total Sync messages dropped on send',
        '# TYPE kairon_messages_dropped_total counter',
        f'kairon_messages_dropped_total {channel_stats.get("dropped", 0)}',
        '',
        '# HELP kairon_uptime_seconds Session uptime in seconds',
        '# TYPE kairon_uptime_seconds gauge',
        f'kairon_uptime_seconds {status.get("uptime_seconds", 0):.1f}',
        '',
        '# HELP kairon_phase Session phase (1=IDLE, 2=PAUSED, 3=RUNNING, 4=COMPLETE)',
        '# TYPE kairon_phase gauge',
        f'kairon_phase {PHASE_VALUES.get(status.get("phase"), 0)}',
    ]

    budget = status.get('budget_delta_minutes')
    if budget is not None:
        lines.extend([
            '',
            '# HELP kairon_budget_delta_minutes Slack before the target end time (negative = over)',
            '# TYPE kairon_budget_delta_minutes gauge',
            f'kairon_budget_delta_minutes {budget}',
        ])

    lines.append('')
    return '\n'.join(lines)


class StatusRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for status endpoints."""

    def log_message(self, format, *args):
        """Suppress default HTTP logging."""
        pass

    @property
    def get_status(self) -> Optional[Callable[[], Dict[str, Any]]]:
        return getattr(self.server, 'get_status', None)

    def do_GET(self):
        path = self.path.split('?', 1)[0]
        if path == '/health':
            self._handle_health()
        elif path == '/status':
            self._handle_status()
        elif path == '/metrics':
            self._handle_metrics()
        else:
            self.send_error(404, "Not Found")

    def _reply(self, code: int, content_type: str, body: bytes):
        self.send_response(code)
        self.send_header('Content-Type', content_type)
        self.send_header('Cache-Control', 'no-store')
        self.end_headers()
        self.wfile.write(body)

    def _handle_health(self):
        self._reply(200, 'text/plain', b'OK\n')

    def _handle_status(self):
        if not self.get_status:
            self._reply(503, 'application/json', json.dumps({'error': 'No session attached'}).encode())
            return
        try:
            status = self.get_status()
        except Exception as e:
            logger.error(f"Status snapshot failed: {e}")
            self._reply(500, 'application/json', json.dumps({'error': str(e)}).encode())
            return
        self._reply(200, 'application/json', json.dumps(status, indent=2).encode())

    def _handle_metrics(self):
        if not self.get_status:
            self._reply(503, 'text/plain', b'# No session attached\n')
            return
        try:
            metrics = format_prometheus_metrics(self.get_status())
        except Exception as e:
            logger.error(f"Metrics snapshot failed: {e}")
            self._reply(500, 'text/plain', f'# Error: {e}\n'.encode())
            return
        self._reply(200, 'text/plain; version=0.0.4', metrics.encode())


class StatusServer:
    """
    HTTP server for session status.

    Runs in a background thread; each server reports on the session
    attached to it.
    """

    def __init__(self, port: int = 8080, bind_address: str = '0.0.0.0'):
        """
        Args:
            port: HTTP port to listen on
            bind_address: Address to bind to (default: all interfaces)
        """
        self.port = port
        self.bind_address = bind_address
        self.server: Optional[HTTPServer] = None
        self.thread: Optional[threading.Thread] = None
        self.session = None
        self._running = False

    def set_session(self, session):
        """
        Attach a LiveSession for status reporting.

        Args:
            session: LiveSession instance (anything with a status() method)
        """
        self.session = session
        if self.server is not None:
            self.server.get_status = self._get_status

    def _get_status(self) -> Dict[str, Any]:
        return self.session.status()

    def start(self) -> bool:
        """Start the status server in a background thread."""
        if self._running:
            logger.warning("Status server already running")
            return True

        try:
            self.server = HTTPServer(
                (self.bind_address, self.port),
                StatusRequestHandler
            )
        except OSError as e:
            logger.error(f"Failed to start status server: {e}")
            return False

        self.server.get_status = self._get_status if self.session is not None else None
        # Timeout so handle_request returns and the loop can see stop()
        self.server.timeout = 1.0
        self._running = True

        self.thread = threading.Thread(
            target=self._serve,
            name="StatusServer",
            daemon=True
        )
        self.thread.start()

        logger.info(f"Status server started on http://{self.bind_address}:{self.port}")
        logger.info(f"  GET /health  - Health check")
        logger.info(f"  GET /status  - JSON status")
        logger.info(f"  GET /metrics - Prometheus metrics")
        return True

    def _serve(self):
        """Server loop (runs in background thread)."""
        while self._running:
            try:
                self.server.handle_request()
            except OSError:
                if self._running:
                    logger.debug("Status server request failed", exc_info=True)

    def stop(self):
        self._running = False
        if self.thread:
            self.thread.join(timeout=2.0)
            self.thread = None
        if self.server:
            self.server.server_close()
            self.server = None
        logger.info("Status server stopped")
