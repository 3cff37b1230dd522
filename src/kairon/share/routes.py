"""
Router surface.

Client views are addressed by hash fragments such as

    #/live?mode=viewer&id=<program id>
    #/?mode=editor&import=<share token>

Each view is parametrized by a mode. Viewers are read-only and limited
to the display views; a view the mode may not open resolves to `live`
with the same parameters.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, FrozenSet, Optional
from urllib.parse import parse_qs, urlencode

from ..interfaces.program import Program
from .codec import encode_program


class Mode(str, Enum):
    EDITOR = "editor"
    VIEWER = "viewer"
    COEDITOR = "coeditor"

    @property
    def read_only(self) -> bool:
        return self is Mode.VIEWER

    @classmethod
    def parse(cls, value: Optional[str]) -> "Mode":
        """Unknown or missing modes fall back to editor."""
        try:
            return cls(value)
        except ValueError:
            return cls.EDITOR


class View(str, Enum):
    HOME = "home"
    LIVE = "live"
    LIST = "list"
    EDITOR = "editor"
    CALENDAR = "calendar"
    TV = "tv"


ALLOWED_VIEWS: Dict[Mode, FrozenSet[View]] = {
    Mode.EDITOR: frozenset(View),
    Mode.COEDITOR: frozenset({View.LIVE, View.LIST, View.EDITOR, View.TV}),
    Mode.VIEWER: frozenset({View.LIVE, View.LIST, View.TV}),
}


def allowed_views(mode: Mode) -> FrozenSet[View]:
    return ALLOWED_VIEWS[mode]


@dataclass(frozen=True)
class Route:
    view: View = View.HOME
    mode: Mode = Mode.EDITOR
    program_id: Optional[str] = None
    import_token: Optional[str] = None

    @classmethod
    def parse(cls, fragment: str) -> "Route":
        """
        Parse a hash fragment ("#/live?mode=viewer&id=X") or a full URL
        carrying one. Unknown views fall back to home.
        """
        if "#" in fragment:
            fragment = fragment.split("#", 1)[1]
        path, _, query = fragment.partition("?")
        name = path.strip("/") or View.HOME.value
        try:
            view = View(name)
        except ValueError:
            view = View.HOME

        params = parse_qs(query)

        def first(key: str) -> Optional[str]:
            values = params.get(key)
            return values[0] if values else None

        return cls(
            view=view,
            mode=Mode.parse(first("mode")),
            program_id=first("id"),
            import_token=first("import"),
        )

    def to_fragment(self) -> str:
        path = "" if self.view is View.HOME else self.view.value
        params = {"mode": self.mode.value}
        if self.program_id:
            params["id"] = self.program_id
        if self.import_token:
            params["import"] = self.import_token
        return f"#/{path}?{urlencode(params)}"

    @property
    def read_only(self) -> bool:
        return self.mode.read_only

    def resolve(self) -> "Route":
        """The route actually shown: disallowed views become live."""
        if self.view in allowed_views(self.mode):
            return self
        return replace(self, view=View.LIVE)


def _join(base_url: str, route: Route) -> str:
    return f"{base_url.rstrip('/')}/{route.to_fragment()}"


def viewer_link(base_url: str, program_id: str) -> str:
    return _join(base_url, Route(view=View.LIVE, mode=Mode.VIEWER, program_id=program_id))


def editor_link(base_url: str, program_id: str) -> str:
    return _join(base_url, Route(view=View.HOME, mode=Mode.EDITOR, program_id=program_id))


def import_link(base_url: str, program: Program, mode: Mode = Mode.VIEWER) -> str:
    """Link that carries the program itself rather than its id."""
    view = View.LIVE if mode.read_only else View.HOME
    return _join(base_url, Route(view=view, mode=mode, import_token=encode_program(program)))
