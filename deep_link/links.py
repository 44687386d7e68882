"""
IncomingLink: one received URI, parsed once and discarded after classification.
"""
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import parse_qsl, urlsplit


class LinkSource(str, Enum):
    COLD_START = "cold_start"
    BACKGROUND = "background"
    FOREGROUND = "foreground"


def _first_wins(pairs: list[tuple[str, str]]) -> tuple[tuple[str, str], ...]:
    seen: dict[str, str] = {}
    for key, value in pairs:
        seen.setdefault(key, value)
    return tuple(seen.items())


@dataclass(frozen=True)
class IncomingLink:
    scheme: str
    host: str
    path: str
    # Query and fragment may carry codes/tokens; keep them out of repr()
    query: tuple[tuple[str, str], ...] = field(repr=False)
    fragment: str = field(repr=False)
    source: LinkSource = LinkSource.FOREGROUND

    @classmethod
    def parse(cls, uri: str, source: LinkSource | str = LinkSource.FOREGROUND) -> "IncomingLink":
        """Raises ValueError for URIs urlsplit cannot handle."""
        parts = urlsplit(uri)
        return cls(
            scheme=parts.scheme.lower(),
            host=(parts.hostname or "").lower(),
            path=parts.path,
            query=_first_wins(parse_qsl(parts.query, keep_blank_values=True)),
            fragment=parts.fragment,
            source=LinkSource(source),
        )

    def query_param(self, name: str) -> str | None:
        for key, value in self.query:
            if key == name:
                return value
        return None

    def has_query_param(self, name: str) -> bool:
        return any(key == name for key, _ in self.query)

    def fragment_params(self) -> dict[str, str]:
        """Fragment parsed as a URL-encoded query string (implicit-flow tokens)."""
        if not self.fragment:
            return {}
        return dict(_first_wins(parse_qsl(self.fragment, keep_blank_values=True)))
