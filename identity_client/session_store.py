"""
Local persistence owned by the identity client: the current session and the
pending PKCE code_verifier of this device. In-memory by default.
"""
import json
from dataclasses import asdict, dataclass, field


@dataclass
class Session:
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_at: int | None = None
    user_id: str | None = None
    email: str | None = field(default=None, repr=False)

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, raw: str) -> "Session":
        return cls(**json.loads(raw))


class MemoryStorage:
    """Key/value storage with the get/set/remove shape client libraries expect."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)
