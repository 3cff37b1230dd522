"""Shareable links: program tokens and client routes."""

from .codec import encode_program, decode_program
from .routes import Mode, View, Route, allowed_views, viewer_link, editor_link, import_link

__all__ = [
    'encode_program', 'decode_program',
    'Mode', 'View', 'Route', 'allowed_views',
    'viewer_link', 'editor_link', 'import_link',
]
