"""
Tests for the status HTTP server.
"""

import json
import time
import urllib.error
import urllib.request
from unittest.mock import MagicMock

import pytest


def sample_status():
    return {
        'timestamp': time.time(),
        'mode': 'editor',
        'client_id': 'abc123',
        'program': {'id': 'prog-1', 'title': 'Morning Sessions', 'slot_count': 2},
        'phase': 'RUNNING',
        'current_slot': {'id': 'slot-a', 'title': 'A'},
        'next_slot': {'id': 'slot-b', 'title': 'B'},
        'remaining_seconds': 42,
        'countdown': '00:42',
        'progress': 0.7,
        'budget_delta_minutes': -3,
        'timer': {
            'programId': 'prog-1',
            'isTimerActive': True,
            'currentSlotIndex': 0,
            'secondsElapsed': 18,
            'timerStartTimestamp': 1_700_000_000_000,
        },
        'channel': {'topic': 'program:prog-1', 'open': True, 'joined': True,
                    'stats': {'sent': 7, 'received': 5, 'dropped': 1, 'discarded': 0}},
        'last_save_error': None,
        'stats': {},
        'uptime_seconds': 100.0,
    }


class TestStatusServer:
    """Tests for StatusServer."""

    def test_initialization(self):
        from kairon.output.status_server import StatusServer

        server = StatusServer(port=9999, bind_address='127.0.0.1')
        assert server.port == 9999
        assert server.bind_address == '127.0.0.1'
        assert server.session is None
        assert server._running is False


class TestStatusServerIntegration:
    """Integration tests for StatusServer (requires network)."""

    PORT = 19877

    @pytest.fixture
    def status_server(self):
        from kairon.output.status_server import StatusServer

        session = MagicMock()
        session.status.return_value = sample_status()

        server = StatusServer(port=self.PORT, bind_address='127.0.0.1')
        server.set_session(session)
        if not server.start():
            pytest.skip("Could not bind status server port")
        time.sleep(0.1)

        yield server

        server.stop()

    def _get(self, path):
        try:
            return urllib.request.urlopen(f'http://127.0.0.1:{self.PORT}{path}', timeout=2)
        except urllib.error.HTTPError:
            raise
        except OSError as e:
            pytest.skip(f"Network test failed: {e}")

    def test_health_endpoint(self, status_server):
        response = self._get('/health')
        assert response.status == 200
        assert response.read() == b'OK\n'

    def test_status_endpoint(self, status_server):
        response = self._get('/status?refresh=1')
        assert response.status == 200

        data = json.loads(response.read())
        assert data['phase'] == 'RUNNING'
        assert data['countdown'] == '00:42'
        assert data['timer']['programId'] == 'prog-1'

    def test_metrics_endpoint(self, status_server):
        response = self._get('/metrics')
        assert response.status == 200

        content = response.read().decode()
        assert 'kairon_remaining_seconds 42' in content
        assert 'kairon_phase 3' in content

    def test_unknown_path(self, status_server):
        with pytest.raises(urllib.error.HTTPError) as exc_info:
            self._get('/control/next')
        assert exc_info.value.code == 404

    def test_no_session_attached(self):
        from kairon.output.status_server import StatusServer

        server = StatusServer(port=self.PORT + 1, bind_address='127.0.0.1')
        if not server.start():
            pytest.skip("Could not bind status server port")
        time.sleep(0.1)
        try:
            with pytest.raises(urllib.error.HTTPError) as exc_info:
                try:
                    urllib.request.urlopen(f'http://127.0.0.1:{self.PORT + 1}/status', timeout=2)
                except urllib.error.HTTPError:
                    raise
                except OSError as e:
                    pytest.skip(f"Network test failed: {e}")
            assert exc_info.value.code == 503
        finally:
            server.stop()


class TestPrometheusMetrics:
    """Tests for Prometheus metrics formatting."""

    def test_prometheus_format(self):
        from kairon.output.status_server import format_prometheus_metrics

        metrics = format_prometheus_metrics(sample_status())

        assert 'kairon_timer_active 1' in metrics
        assert 'kairon_current_slot_index 0' in metrics
        assert 'kairon_slot_count 2' in metrics
        assert 'kairon_slot_progress 0.7000' in metrics
        assert 'kairon_messages_sent_total 7' in metrics
        assert 'kairon_messages_dropped_total 1' in metrics
        assert 'kairon_budget_delta_minutes -3' in metrics
        assert 'kairon_phase 3' in metrics  # RUNNING = 3

    def test_budget_omitted_without_end_time(self):
        from kairon.output.status_server import format_prometheus_metrics

        status = sample_status()
        status['budget_delta_minutes'] = None
        assert 'kairon_budget_delta_minutes' not in format_prometheus_metrics(status)

    def test_status_from_live_session(self, local_bus, sample_program, fake_clock):
        """A real session snapshot formats without errors."""
        from kairon.engine.live_session import LiveSession
        from kairon.output.status_server import format_prometheus_metrics

        live = LiveSession(local_bus, sample_program, now_fn=fake_clock, tick_interval=0)
        metrics = format_prometheus_metrics(live.status())
        assert 'kairon_phase 2' in metrics
        assert 'kairon_remaining_seconds 60' in metrics
