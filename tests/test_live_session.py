"""
Integration tests for LiveSession: several clients sharing an in-process bus.

The controller thread is disabled (tick_interval=0) and autosave is
synchronous unless a test says otherwise, so every effect is visible as
soon as the triggering call returns.
"""

from unittest.mock import MagicMock

import pytest


@pytest.fixture
def make_client(local_bus, fake_clock):
    """Factory for started LiveSessions on the shared bus."""
    from kairon.engine.live_session import LiveSession

    clients = []

    def factory(program, mode="editor", start=True, **kwargs):
        kwargs.setdefault("tick_interval", 0)
        kwargs.setdefault("autosave_delay", 0)
        client = LiveSession(local_bus, program, mode=mode, now_fn=fake_clock, **kwargs)
        if start:
            client.start()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.stop()


class TestLateJoin:
    """Late joiners converge on the running timer."""

    def test_viewer_joins_running_timer(self, make_client, sample_program, fake_clock):
        editor = make_client(sample_program)
        editor.start_timer()
        fake_clock.advance(30)

        viewer = make_client(sample_program, mode="viewer")

        assert viewer.session.is_timer_active
        assert viewer.session.current_slot_index == 0
        assert abs(viewer.session.current_elapsed() - editor.session.current_elapsed()) <= 1
        assert editor.stats['sync_requests_answered'] == 1

    def test_joiner_with_stub_program_receives_content(self, make_client, sample_program):
        from kairon.interfaces.program import Program

        make_client(sample_program)
        viewer = make_client(Program(id="prog-1", title="", date=""), mode="viewer")

        assert viewer.program.title == "Morning Sessions"
        assert [s.id for s in viewer.program.slots] == ["slot-a", "slot-b"]

    def test_read_only_clients_never_answer(self, make_client, sample_program, local_bus):
        first = make_client(sample_program, mode="viewer")
        before = local_bus.published
        second = make_client(sample_program, mode="viewer")

        assert first.stats['sync_requests_answered'] == 0
        # Only the second viewer's own sync_request went out
        assert local_bus.published == before + 1
        assert not second.session.is_timer_active

    def test_coeditor_answers(self, make_client, sample_program, fake_clock):
        coeditor = make_client(sample_program, mode="coeditor")
        coeditor.start_timer()
        fake_clock.advance(5)

        joiner = make_client(sample_program, mode="viewer")
        assert coeditor.stats['sync_requests_answered'] == 1
        assert joiner.session.current_elapsed() == 5


class TestPropagation:
    """Local actions reach every peer on the program's channel."""

    def test_start_pause_next(self, make_client, sample_program, fake_clock):
        editor = make_client(sample_program)
        viewer = make_client(sample_program, mode="viewer")

        editor.start_timer()
        assert viewer.session.is_timer_active

        fake_clock.advance(20)
        editor.pause_timer()
        assert not viewer.session.is_timer_active
        assert viewer.session.seconds_elapsed == 20

        editor.next_slot()
        assert viewer.session.current_slot_index == 1
        assert viewer.program.slots[0].actual_duration == 0

    def test_edit_propagates(self, make_client, sample_program):
        from kairon.timing import timeline

        editor = make_client(sample_program)
        peer = make_client(sample_program, mode="coeditor")

        assert editor.edit(timeline.update_slot, "slot-b", title="Bee")
        assert peer.program.slots[1].title == "Bee"

    def test_two_editors_last_write_wins(self, make_client, sample_program):
        first = make_client(sample_program)
        second = make_client(sample_program)

        first.next_slot()
        second.prev_slot()
        assert first.session.current_slot_index == 0
        assert second.session.current_slot_index == 0

    def test_viewer_actions_are_noops(self, make_client, sample_program, local_bus):
        from kairon.timing import timeline

        make_client(sample_program)
        viewer = make_client(sample_program, mode="viewer")
        before = local_bus.published

        assert not viewer.start_timer()
        assert not viewer.next_slot()
        assert not viewer.edit(timeline.add_slot)
        assert local_bus.published == before


class TestProgramSwitch:
    """Loading another program moves the client to that program's channel."""

    def test_switch_moves_channel(self, make_client, sample_program, conference_program):
        from kairon.sync.messages import topic_for

        mover = make_client(sample_program)
        stayer = make_client(sample_program, mode="viewer")
        other = make_client(conference_program)
        other.start_timer()
        received_before = stayer.channel.stats['received']

        state = mover.load_program(conference_program)

        assert mover.channel.topic == topic_for("conf-2026")
        assert mover.channel.is_open
        assert state.program_id == "conf-2026"
        # The reset reached the new program's peers only
        assert not other.session.is_timer_active
        assert stayer.channel.stats['received'] == received_before

        other.start_timer()
        assert mover.session.is_timer_active
        assert mover.stats['programs_loaded'] == 2

    def test_old_channel_is_closed(self, make_client, sample_program, conference_program):
        mover = make_client(sample_program)
        old_channel = mover.channel
        mover.load_program(conference_program)

        assert not old_channel.is_open
        assert old_channel is not mover.channel

    def test_reload_same_program_resets_peers(self, make_client, sample_program):
        editor = make_client(sample_program)
        viewer = make_client(sample_program, mode="viewer")
        editor.next_slot()

        channel = editor.channel
        editor.load_program(sample_program)
        assert editor.channel is channel
        assert viewer.session.current_slot_index == 0

    def test_viewer_switch_is_silent(self, make_client, sample_program, conference_program):
        make_client(conference_program)
        viewer = make_client(sample_program, mode="viewer")
        viewer.load_program(conference_program)
        assert viewer.channel.stats['sent'] == 1  # its sync_request


class TestAutosave:
    """Edits are saved to the store; failures are reported, never rolled back."""

    def test_edit_is_saved(self, make_client, sample_program, tmp_path):
        from kairon.storage.program_store import ProgramStore
        from kairon.timing import timeline

        store = ProgramStore(str(tmp_path / "programs.json"))
        editor = make_client(sample_program, store=store)
        editor.edit(timeline.add_slot)

        assert store.get("prog-1").slot_count == 3
        assert editor.stats['saves'] >= 1

    def test_placeholder_not_saved(self, make_client, tmp_path):
        from kairon.interfaces.program import Program
        from kairon.storage.program_store import ProgramStore

        store = ProgramStore(str(tmp_path / "programs.json"))
        editor = make_client(Program.new(), store=store)
        editor.load_program(Program.new())
        assert store.list() == []

    def test_failure_notifies_and_keeps_edit(self, make_client, sample_program):
        from kairon.storage.program_store import PersistenceError
        from kairon.timing import timeline

        store = MagicMock()
        store.upsert.side_effect = PersistenceError("disk full")
        messages = []
        editor = make_client(sample_program, store=store, notify=messages.append)

        assert editor.edit(timeline.update_slot, "slot-a", title="Renamed")
        assert editor.program.slots[0].title == "Renamed"
        assert editor.last_save_error == "disk full"
        assert editor.stats['save_failures'] == 1
        assert len(messages) == 1 and "disk full" in messages[0]

    def test_debounced_saves_coalesce(self, make_client, sample_program):
        from kairon.timing import timeline

        store = MagicMock()
        editor = make_client(sample_program, store=store, autosave_delay=60)
        editor.edit(timeline.update_slot, "slot-a", title="One")
        editor.edit(timeline.update_slot, "slot-a", title="Two")
        store.upsert.assert_not_called()

        editor.flush_autosave()
        store.upsert.assert_called_once()
        assert store.upsert.call_args[0][0].slots[0].title == "Two"

    def test_remote_edits_not_saved_by_receiver(self, make_client, sample_program):
        from kairon.timing import timeline

        editor = make_client(sample_program)
        store = MagicMock()
        make_client(sample_program, mode="coeditor", store=store)

        editor.edit(timeline.add_slot)
        store.upsert.assert_not_called()


class TestDrafts:
    """Generated drafts replace content but keep program identity."""

    def _draft(self):
        from kairon.interfaces.program import Program, Slot

        return Program(id="draft-id", title="Drafted", date="2020-01-01",
                       slots=[Slot(id="d1", title="Only", duration_minutes=10)])

    def test_draft_keeps_id_and_date(self, make_client, sample_program):
        editor = make_client(sample_program)
        assert editor.apply_draft(self._draft(), "prog-1")
        assert editor.program.id == "prog-1"
        assert editor.program.date == "2026-03-14"
        assert editor.program.title == "Drafted"
        assert editor.program.slot_count == 1

    def test_stale_or_failed_draft_ignored(self, make_client, sample_program):
        editor = make_client(sample_program)
        assert not editor.apply_draft(self._draft(), "somewhere-else")
        assert not editor.apply_draft(None, "prog-1")
        assert editor.program.title == "Morning Sessions"

    def test_request_draft(self, make_client, sample_program):
        editor = make_client(sample_program)
        generator = MagicMock()
        generator.generate_async.side_effect = lambda text, callback: callback(self._draft())

        editor.request_draft(generator, "9am keynote, 10am panel")
        generator.generate_async.assert_called_once()
        assert editor.program.title == "Drafted"


class TestStatus:
    """status() snapshot."""

    def test_status_fields(self, make_client, sample_program, fake_clock):
        editor = make_client(sample_program)
        editor.start_timer()
        fake_clock.advance(15)

        status = editor.status()
        assert status['mode'] == "editor"
        assert status['phase'] == "RUNNING"
        assert status['program']['id'] == "prog-1"
        assert status['program']['slot_count'] == 2
        assert status['current_slot']['title'] == "A"
        assert status['next_slot']['title'] == "B"
        assert status['remaining_seconds'] == 45
        assert status['countdown'] == "00:45"
        # 09:00 + 3 minutes against 09:05
        assert status['budget_delta_minutes'] == 2
        assert status['timer']['isTimerActive'] is True
        assert status['channel']['open']
        assert status['last_save_error'] is None
