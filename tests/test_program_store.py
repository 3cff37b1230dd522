"""
Tests for the JSON file program store.
"""

import json

import pytest


@pytest.fixture
def store(tmp_path):
    from kairon.storage.program_store import ProgramStore

    return ProgramStore(str(tmp_path / "data" / "programs.json"))


class TestProgramStore:
    """Create/read/update/delete."""

    def test_empty_store(self, store):
        assert store.list() == []
        assert store.get("nothing") is None

    def test_create_and_get(self, store, conference_program):
        store.create(conference_program)
        assert store.get("conf-2026") == conference_program
        assert store.path.exists()

    def test_create_twice_rejected(self, store, sample_program):
        from kairon.storage.program_store import PersistenceError

        store.create(sample_program)
        with pytest.raises(PersistenceError):
            store.create(sample_program)

    def test_update_replaces_slots(self, store, sample_program):
        from kairon.timing import timeline

        store.create(sample_program)
        store.update(timeline.remove_slot(sample_program, "slot-a"))
        assert [s.id for s in store.get("prog-1").slots] == ["slot-b"]

    def test_update_missing_rejected(self, store, sample_program):
        from kairon.storage.program_store import PersistenceError

        with pytest.raises(PersistenceError):
            store.update(sample_program)

    def test_upsert(self, store, sample_program):
        from dataclasses import replace

        assert store.upsert(sample_program) is True
        assert store.upsert(replace(sample_program, title="Renamed")) is False
        assert store.get("prog-1").title == "Renamed"

    def test_delete(self, store, sample_program):
        from kairon.storage.program_store import PersistenceError

        store.create(sample_program)
        store.delete("prog-1")
        assert store.get("prog-1") is None
        with pytest.raises(PersistenceError):
            store.delete("prog-1")

    def test_list_newest_first(self, store, sample_program, conference_program):
        store.create(sample_program)
        store.create(conference_program)

        document = json.loads(store.path.read_text())
        document["programs"]["prog-1"]["createdAt"] = 1
        document["programs"]["conf-2026"]["createdAt"] = 2
        store.path.write_text(json.dumps(document))

        assert [p.id for p in store.list()] == ["conf-2026", "prog-1"]


class TestSlotOrder:
    """Slot order survives the document layout."""

    def test_order_field_written(self, store, conference_program):
        store.create(conference_program)
        slots = json.loads(store.path.read_text())["programs"]["conf-2026"]["program"]["slots"]
        assert [s["order"] for s in slots] == [0, 1, 2, 3]

    def test_slots_sorted_on_read(self, store, conference_program):
        store.create(conference_program)
        document = json.loads(store.path.read_text())
        record = document["programs"]["conf-2026"]["program"]
        record["slots"].reverse()
        store.path.write_text(json.dumps(document))

        assert [s.id for s in store.get("conf-2026").slots] == ["k", "b", "p", "w"]


class TestCorruptStore:
    """Unreadable files surface as PersistenceError."""

    def test_invalid_json(self, store):
        from kairon.storage.program_store import PersistenceError

        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json")
        with pytest.raises(PersistenceError):
            store.list()

    def test_wrong_shape(self, store):
        from kairon.storage.program_store import PersistenceError

        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps([1, 2, 3]))
        with pytest.raises(PersistenceError):
            store.get("x")

    def test_unreadable_record_skipped_in_list(self, store, sample_program):
        store.create(sample_program)
        document = json.loads(store.path.read_text())
        document["programs"]["broken"] = {"program": {"title": "no id"}, "createdAt": 0}
        store.path.write_text(json.dumps(document))

        assert [p.id for p in store.list()] == ["prog-1"]

    @pytest.mark.parametrize("record", [
        {"id": "broken", "title": "T", "slots": ["junk"]},
        {"id": "broken", "title": "T", "slots": [{"id": "s", "title": "A", "durationMinutes": 5, "order": "first"}]},
        "not a program",
    ])
    def test_malformed_slots_skipped_in_list(self, store, sample_program, record):
        from kairon.storage.program_store import PersistenceError

        store.create(sample_program)
        document = json.loads(store.path.read_text())
        document["programs"]["broken"] = {"program": record, "createdAt": 0}
        store.path.write_text(json.dumps(document))

        assert [p.id for p in store.list()] == ["prog-1"]
        with pytest.raises(PersistenceError):
            store.get("broken")
