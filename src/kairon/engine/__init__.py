"""Session engine - timer state machine and its live orchestration.

Contains:
- SessionState: per-client timer state machine for one program
- AutoController: 1-second tick and scheduled auto-start
- LiveSession: session + sync channel + controller + autosave
"""

from .session import SessionState
from .controller import AutoController, should_auto_start
from .live_session import LiveSession

__all__ = ['SessionState', 'AutoController', 'should_auto_start', 'LiveSession']
