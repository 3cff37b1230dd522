"""Draft programs generated from free text."""

from .generator import DraftGenerator, program_from_draft

__all__ = ['DraftGenerator', 'program_from_draft']
