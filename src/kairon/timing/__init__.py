"""
Schedule and countdown arithmetic for kairon.

Pure functions only: the clock model, program timeline and run analytics.
"""

from . import clock, timeline
from .analytics import build_report, RunReport

__all__ = ['clock', 'timeline', 'build_report', 'RunReport']
