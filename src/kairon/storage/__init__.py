"""Program persistence."""

from .program_store import ProgramStore, PersistenceError

__all__ = ['ProgramStore', 'PersistenceError']
