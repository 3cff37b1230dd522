"""
Program Store

JSON file persistence for programs. The whole store is one document:

    {
      "programs": {
        "<id>": {"program": {...}, "createdAt": <epoch ms>, "updatedAt": <epoch ms>}
      }
    }

Slots are written with an explicit "order" field and sorted on read, so
slot order never depends on how the document happens to be laid out.

The file is replaced atomically (write to temp, rename) to prevent
partial reads by other processes sharing the store.

Usage:
    store = ProgramStore('~/.local/share/kairon/programs.json')
    store.upsert(program)
    for p in store.list():
        print(p.title)
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..interfaces.program import Program
from ..timing.clock import now_ms

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A create, update or delete was rejected or could not be written."""


def _program_record(program: Program) -> dict:
    data = program.to_dict()
    for order, slot in enumerate(data["slots"]):
        slot["order"] = order
    return data


def _program_from_record(data: Dict[str, Any]) -> Program:
    """
    Raises:
        ValueError: if the record is not a readable program
    """
    if not isinstance(data, dict):
        raise ValueError("program record must be an object")
    slots = data.get("slots") or []
    if not isinstance(slots, list) or not all(isinstance(s, dict) for s in slots):
        raise ValueError("'slots' must be a list of objects")
    orders = [s.get("order", 0) for s in slots]
    if any(isinstance(o, bool) or not isinstance(o, (int, float)) for o in orders):
        raise ValueError("slot 'order' must be a number")
    slots = sorted(slots, key=lambda s: s.get("order", 0))
    data = dict(data, slots=[{k: v for k, v in s.items() if k != "order"} for s in slots])
    return Program.from_dict(data)


class ProgramStore:
    """
    File-backed program collection.

    create() is used once per program id, update() afterwards; upsert()
    picks between them explicitly. update() replaces the slot list
    wholesale.
    """

    DEFAULT_PATH = "~/.local/share/kairon/programs.json"

    def __init__(self, path: Optional[str] = None):
        """
        Args:
            path: Store file (default: ~/.local/share/kairon/programs.json)
        """
        self.path = Path(path or self.DEFAULT_PATH).expanduser()
        self._lock = threading.Lock()
        self.write_count = 0
        logger.info(f"ProgramStore initialized: {self.path}")

    # --- File access -------------------------------------------------------

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        programs = document.get("programs") if isinstance(document, dict) else None
        if not isinstance(programs, dict):
            raise PersistenceError(f"{self.path} is not a program store")
        return programs

    def _save(self, programs: Dict[str, dict]):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                prefix='.programs_',
                suffix='.tmp'
            )
            try:
                with os.fdopen(fd, 'w') as f:
                    json.dump({"programs": programs}, f, indent=2)
                os.replace(temp_path, self.path)
            except Exception:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e
        self.write_count += 1

    # --- Collaborator contract -------------------------------------------

    def list(self) -> List[Program]:
        """All programs, most recently created first."""
        with self._lock:
            entries = list(self._load().values())
        entries.sort(key=lambda e: e.get("createdAt", 0), reverse=True)
        programs = []
        for entry in entries:
            try:
                programs.append(_program_from_record(entry["program"]))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable program record: {e}")
        return programs

    def get(self, program_id: str) -> Optional[Program]:
        with self._lock:
            entry = self._load().get(program_id)
        if entry is None:
            return None
        try:
            return _program_from_record(entry["program"])
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f"Program {program_id} is unreadable: {e}") from e

    def create(self, program: Program) -> Program:
        with self._lock:
            programs = self._load()
            if program.id in programs:
                raise PersistenceError(f"Program {program.id} already exists")
            now = now_ms()
            programs[program.id] = {
                "program": _program_record(program),
                "createdAt": now,
                "updatedAt": now,
            }
            self._save(programs)
        logger.info(f"Created program '{program.title}' ({program.id})")
        return program.copy()

    def update(self, program: Program):
        with self._lock:
            programs = self._load()
            entry = programs.get(program.id)
            if entry is None:
                raise PersistenceError(f"Program {program.id} does not exist")
            entry["program"] = _program_record(program)
            entry["updatedAt"] = now_ms()
            self._save(programs)
        logger.debug(f"Updated program '{program.title}' ({program.id}, {program.slot_count} slots)")

    def upsert(self, program: Program) -> bool:
        """
        Create or update.

        Returns:
            True if the program was created
        """
        with self._lock:
            programs = self._load()
            now = now_ms()
            created = program.id not in programs
            entry = programs.setdefault(program.id, {"createdAt": now})
            entry["program"] = _program_record(program)
            entry["updatedAt"] = now
            self._save(programs)
        logger.debug(f"Saved program '{program.title}' ({program.id}, created={created})")
        return created

    def delete(self, program_id: str):
        with self._lock:
            programs = self._load()
            if programs.pop(program_id, None) is None:
                raise PersistenceError(f"Program {program_id} does not exist")
            self._save(programs)
        logger.info(f"Deleted program {program_id}")
